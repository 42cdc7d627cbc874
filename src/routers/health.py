"""Health check endpoint, public."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from src.config import get_settings

router = APIRouter(tags=["system"])
logger = logging.getLogger("daylight.health")


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Liveness probe. Returns 200 if the API process is up.

    Also performs a lightweight DB connectivity check when a database is
    configured, and reports the scheduler state.
    """
    settings = get_settings()
    pool = getattr(request.app.state, "pool", None)
    service = getattr(request.app.state, "outdoors", None)

    db_status = "in-memory"
    if pool is not None:
        db_status = "unreachable"
        try:
            async with pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            db_status = "connected"
        except Exception as exc:
            logger.warning("Health check DB probe failed: %s", exc)

    return {
        "status": "degraded" if db_status == "unreachable" else "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "database": db_status,
        "scheduler": service.scheduler.state.value if service else "stopped",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
