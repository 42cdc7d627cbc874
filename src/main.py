"""Daylight API, FastAPI application entry point.

Run locally:
    uvicorn src.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.config import get_settings
from src.outdoors.service import build_service
from src.routers import health, outdoors
from src.services.database import close_pool, init_pool

# ---------- Logging ----------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("daylight")


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks."""
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())
    logger.info(
        "Starting Daylight API v%s [%s]",
        settings.app_version,
        settings.environment,
    )

    pool = await init_pool(settings) if settings.database_url else None
    http_client = httpx.AsyncClient()
    service = build_service(settings, pool=pool, http_client=http_client)
    app.state.pool = pool
    app.state.outdoors = service

    if settings.scheduler_enabled:
        service.scheduler.start()
    try:
        yield
    finally:
        await service.scheduler.stop()
        await http_client.aclose()
        await close_pool(pool)
        logger.info("Daylight API shut down")


# ---------- App factory ----------

def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Daylight API",
        description=(
            "Time-outdoors tracking: daily aggregates from location samples, "
            "uploaded to a FHIR data exchange as Observations."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---------- Health check (outside v1 prefix, always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    app.include_router(outdoors.router, prefix="/api/v1")

    return app


app = create_app()
