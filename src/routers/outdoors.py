"""Outdoor-time endpoints: foreground upload, back-fill, aggregates, day totals, CSV export."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import PlainTextResponse

from src.dependencies import Outdoors
from src.models.base import ErrorDetail
from src.models.outdoors import (
    AggregateRead,
    BackfillReportRead,
    DayTotalsRead,
    SchedulerStatusRead,
    UploadRequest,
    UploadResultRead,
)
from src.outdoors.accumulator import to_minutes
from src.outdoors.errors import (
    EntryRejected,
    NetworkFailure,
    NotAuthenticated,
    SerializationFailure,
    ServerRejected,
)
from src.outdoors.sync.scheduler import DEADLINE_EXPIRED

router = APIRouter(prefix="/outdoors", tags=["outdoors"])
logger = logging.getLogger("daylight.routers.outdoors")

# Error code of a failed run → HTTP status
_ERROR_STATUS: dict[str, int] = {
    NotAuthenticated.code: 401,
    EntryRejected.code: 422,
    NetworkFailure.code: 502,
    ServerRejected.code: 502,
    DEADLINE_EXPIRED: 504,
    SerializationFailure.code: 500,
}


# ---------- Upload ----------

@router.post(
    "/upload",
    response_model=UploadResultRead,
    responses={code: {"model": ErrorDetail} for code in (401, 409, 422, 502, 504)},
)
async def upload(service: Outdoors, body: UploadRequest | None = None) -> Any:
    """Foreground trigger: back-fill, then upload every pending aggregate.

    A partial batch answers 200 with the per-day failures in the body; a run
    that uploaded nothing answers with the error status of its cause.
    """
    deadline = body.deadline_seconds if body else None
    run = await service.scheduler.trigger_foreground(deadline_seconds=deadline)
    if run is None:
        raise HTTPException(status_code=409, detail="An outdoor upload is already running")

    result = run.upload
    if result.status == "error":
        status_code = _ERROR_STATUS.get(result.error_code or "", 500)
        raise HTTPException(status_code=status_code, detail=result.message)
    return result


# ---------- Back-fill ----------

@router.post("/backfill", response_model=BackfillReportRead)
async def backfill(service: Outdoors) -> Any:
    return await service.backfill.run()


# ---------- Aggregates ----------

@router.get("/aggregates", response_model=list[AggregateRead])
async def list_aggregates(
    service: Outdoors,
    uploaded: bool | None = Query(default=None),
) -> Any:
    aggregates = await service.store.fetch_all()
    if uploaded is not None:
        aggregates = [a for a in aggregates if a.uploaded is uploaded]
    return aggregates


# ---------- Days ----------

@router.get("/days/{day}", response_model=DayTotalsRead)
async def day_totals(day: date, service: Outdoors) -> Any:
    samples, totals = await service.day_totals(day)
    return DayTotalsRead(
        date=day,
        minutes_away=to_minutes(totals.time_away),
        minutes_outdoors=to_minutes(totals.time_outdoors),
        sample_count=len(samples),
    )


@router.get("/days/{day}/export.csv", response_class=PlainTextResponse)
async def export_day(day: date, service: Outdoors) -> PlainTextResponse:
    content = await service.export_day(day)
    return PlainTextResponse(
        content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="outdoors-{day.isoformat()}.csv"'},
    )


# ---------- Scheduler ----------

@router.get("/scheduler", response_model=SchedulerStatusRead)
async def scheduler_status(service: Outdoors) -> Any:
    scheduler = service.scheduler
    return {
        "state": scheduler.state.value,
        "interval_seconds": scheduler.interval_seconds,
        "next_tick_at": scheduler.next_tick_at,
        "last_run": scheduler.last_run,
    }
