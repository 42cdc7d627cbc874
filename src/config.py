"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "Daylight"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- CORS ---
    cors_origins: list[str] = ["http://localhost:3000"]

    # --- Database (empty = in-memory stores) ---
    database_url: str = ""

    # --- FHIR data exchange ---
    fhir_base_url: str = "http://localhost:8000"
    fhir_patient_id: str = "40010"
    fhir_device_id: str = "70001"

    # --- Auth (static token for dev, or OAuth refresh for the real exchange) ---
    fhir_access_token: str = ""
    oauth_token_url: str = ""
    oauth_client_id: str = ""
    oauth_refresh_token: str = ""

    # --- User locale / home zone ---
    timezone: str = "UTC"  # IANA name; defines calendar days
    home_latitude: float | None = None
    home_longitude: float | None = None
    home_radius_m: float = 100.0

    # --- Scheduler ---
    scheduler_enabled: bool = True

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
