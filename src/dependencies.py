"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from src.outdoors.service import OutdoorService


async def get_outdoor_service(request: Request) -> OutdoorService:
    """Return the component graph built at startup.

    The lifespan hook stores it on ``app.state.outdoors`` before routes run.
    """
    service: OutdoorService | None = getattr(request.app.state, "outdoors", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Outdoor service not initialized")
    return service


# Annotated shortcuts for route signatures
Outdoors = Annotated[OutdoorService, Depends(get_outdoor_service)]
