"""Pydantic models for the outdoor-time API: aggregates, uploads, back-fill, day totals."""

from __future__ import annotations

import uuid
from datetime import date, datetime

from pydantic import Field

from src.models.base import DaylightBase


# ---------- Aggregates ----------

class AggregateRead(DaylightBase):
    id: uuid.UUID
    date: date
    total_outdoor_minutes: int = Field(ge=0)
    uploaded: bool = False
    calculated_at: datetime


# ---------- Day totals ----------

class DayTotalsRead(DaylightBase):
    date: date
    minutes_away: int = Field(ge=0)
    minutes_outdoors: int = Field(ge=0)
    sample_count: int = Field(ge=0)


# ---------- Upload ----------

class EntryFailureRead(DaylightBase):
    date: date
    status: str | None = None
    reason: str
    code: str
    consent_related: bool = False


class UploadResultRead(DaylightBase):
    status: str  # success | partial | error
    message: str
    attempted: int = 0
    uploaded_ids: list[uuid.UUID] = Field(default_factory=list)
    failures: list[EntryFailureRead] = Field(default_factory=list)
    error_code: str | None = None
    finished_at: datetime


class UploadRequest(DaylightBase):
    deadline_seconds: float | None = Field(default=None, gt=0, le=300)


# ---------- Back-fill ----------

class BackfillReportRead(DaylightBase):
    days_examined: int
    created: dict[date, int] = Field(default_factory=dict)
    skipped: list[date] = Field(default_factory=list)
    zero_days: list[date] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


# ---------- Scheduler ----------

class SchedulerRunRead(DaylightBase):
    trigger: str
    upload: UploadResultRead
    backfill: BackfillReportRead | None = None
    started_at: datetime
    finished_at: datetime


class SchedulerStatusRead(DaylightBase):
    state: str
    interval_seconds: float
    next_tick_at: datetime | None = None
    last_run: SchedulerRunRead | None = None
