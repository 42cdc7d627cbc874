"""Load, validate, and hot-reload the outdoor-time tuning configuration.

The config lives in ``outdoors_config.yaml`` alongside this module.  At
startup it is loaded once and cached.  Call ``reload_outdoors_config()`` to
re-read from disk; no restart required.

Usage::

    from src.outdoors.config_loader import get_outdoors_config

    config = get_outdoors_config()
    threshold = config.classifier.good_signal_threshold_m   # 10.0
    entry = config.schema("outdoor-time")                   # SchemaEntry
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger("daylight.outdoors.config")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "outdoors_config.yaml"


# ---------------------------------------------------------------------------
# Typed config sections
# ---------------------------------------------------------------------------


@dataclass
class ClassifierConfig:
    good_signal_threshold_m: float


@dataclass
class BackfillConfig:
    days: int


@dataclass
class UploadConfig:
    """Observation encoding and transport settings."""

    end_time_offset_hours: int
    observation_schema: str
    identifier_system: str
    timeout_seconds: float


@dataclass
class SchedulerConfig:
    interval_seconds: int
    deadline_seconds: float | None


@dataclass
class SchemaEntry:
    """One wire-code mapping in the schema registry.

    Attributes:
        name:         Registry key, e.g. 'outdoor-time'.
        system:       ``code.coding[].system`` sent on the Observation.
        code:         ``code.coding[].code`` sent on the Observation.
        disguised_as: The clinical type the code really names, when the
                      payload is carried under a code that is not its own.
        description:  Free text for operators.
    """

    name: str
    system: str
    code: str
    disguised_as: str | None = None
    description: str = ""

    @property
    def coding(self) -> dict[str, str]:
        return {"system": self.system, "code": self.code}


@dataclass
class OutdoorsConfig:
    """Complete, validated tuning configuration.

    Attributes:
        version:         Config schema version string.
        classifier:      Home/outdoor classification settings.
        backfill:        Daily aggregate back-fill settings.
        upload:          Observation encoding settings.
        scheduler:       Retry cadence and deadline.
        schema_registry: Wire codes keyed by payload kind.
    """

    version: str
    classifier: ClassifierConfig
    backfill: BackfillConfig
    upload: UploadConfig
    scheduler: SchedulerConfig
    schema_registry: dict[str, SchemaEntry]
    _raw: dict = field(default_factory=dict, repr=False)

    def schema(self, name: str) -> SchemaEntry:
        """Return the registry entry for ``name``.

        Raises:
            KeyError: If the payload kind is not registered.
        """
        if name not in self.schema_registry:
            raise KeyError(
                f"No schema registered for '{name}'. "
                f"Available: {list(self.schema_registry)}"
            )
        return self.schema_registry[name]


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when outdoors_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        raise FileNotFoundError(f"Outdoors config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _validate_and_build(raw: dict) -> OutdoorsConfig:
    """Validate the raw YAML dict and construct an OutdoorsConfig.

    Applies defaults for optional fields and collects every problem before
    raising, so one run reports all of them.

    Raises:
        ConfigValidationError: If required fields are missing or invalid.
    """
    errors: list[str] = []

    def _number(section: dict, key: str, default: float, path: str) -> float:
        value = section.get(key, default)
        try:
            return float(value)
        except (TypeError, ValueError):
            errors.append(f"{path}.{key} must be a number, got {value!r}")
            return default

    version = str(raw.get("version", "1.0"))

    # ── Classifier ──
    cl_raw = raw.get("classifier", {}) or {}
    threshold = _number(cl_raw, "good_signal_threshold_m", 10.0, "classifier")
    if threshold <= 0:
        errors.append(f"classifier.good_signal_threshold_m must be positive, got {threshold}")
    classifier = ClassifierConfig(good_signal_threshold_m=threshold)

    # ── Backfill ──
    bf_raw = raw.get("backfill", {}) or {}
    days = int(_number(bf_raw, "days", 5, "backfill"))
    if days < 1:
        errors.append(f"backfill.days must be at least 1, got {days}")
    backfill = BackfillConfig(days=days)

    # ── Upload ──
    up_raw = raw.get("upload", {}) or {}
    upload = UploadConfig(
        end_time_offset_hours=int(_number(up_raw, "end_time_offset_hours", 5, "upload")),
        observation_schema=str(up_raw.get("observation_schema", "outdoor-time")),
        identifier_system=str(up_raw.get("identifier_system", "https://ehr.example.com")),
        timeout_seconds=_number(up_raw, "timeout_seconds", 30.0, "upload"),
    )

    # ── Scheduler ──
    sc_raw = raw.get("scheduler", {}) or {}
    interval = int(_number(sc_raw, "interval_seconds", 7200, "scheduler"))
    if interval <= 0:
        errors.append(f"scheduler.interval_seconds must be positive, got {interval}")
    deadline_raw = sc_raw.get("deadline_seconds")
    scheduler = SchedulerConfig(
        interval_seconds=interval,
        deadline_seconds=(
            None if deadline_raw is None
            else _number(sc_raw, "deadline_seconds", 25.0, "scheduler")
        ),
    )

    # ── Schema registry ──
    registry: dict[str, SchemaEntry] = {}
    for name, entry in (raw.get("schema_registry", {}) or {}).items():
        if not isinstance(entry, dict):
            errors.append(f"schema_registry.{name} must be a mapping")
            continue
        if not entry.get("system") or not entry.get("code"):
            errors.append(f"schema_registry.{name} needs both 'system' and 'code'")
            continue
        registry[name] = SchemaEntry(
            name=name,
            system=str(entry["system"]),
            code=str(entry["code"]),
            disguised_as=entry.get("disguised_as"),
            description=entry.get("description", ""),
        )

    if upload.observation_schema not in registry:
        errors.append(
            f"upload.observation_schema '{upload.observation_schema}' "
            "is not in schema_registry"
        )

    if errors:
        raise ConfigValidationError(
            f"outdoors_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return OutdoorsConfig(
        version=version,
        classifier=classifier,
        backfill=backfill,
        upload=upload,
        scheduler=scheduler,
        schema_registry=registry,
        _raw=raw,
    )


def load_outdoors_config(path: Path | None = None) -> OutdoorsConfig:
    """Load and validate the tuning config from disk.

    Args:
        path: Override path to YAML. Uses the bundled outdoors_config.yaml by default.
    """
    target = path or _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw)
    logger.info("Loaded outdoors config v%s from %s", config.version, target)
    return config


# ---------------------------------------------------------------------------
# Global cache with hot-reload support
# ---------------------------------------------------------------------------

_config: OutdoorsConfig | None = None
_config_lock = threading.Lock()


def get_outdoors_config() -> OutdoorsConfig:
    """Return the cached OutdoorsConfig, loading it on first call.  Thread-safe."""
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:  # double-checked locking
                _config = load_outdoors_config()
    return _config


def reload_outdoors_config(path: Path | None = None) -> OutdoorsConfig:
    """Reload the config from disk and replace the cached instance.

    If validation fails, the old config is retained and the error re-raised.

    Raises:
        ConfigValidationError: If the new config is invalid.
        FileNotFoundError:     If the config file is missing.
    """
    global _config
    new_config = load_outdoors_config(path)  # validate before acquiring lock
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info("Reloaded outdoors config: %s → %s", old_version, new_config.version)
    return new_config
