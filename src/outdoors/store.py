"""Daily aggregate store: one outdoor-time record per calendar day.

``create`` is not an upsert.  The first computed value for a day
wins, and a second ``create`` for the same day raises ``AlreadyAggregated``
instead of silently merging.  Callers check ``exists`` first; the store still
enforces the rule atomically in case two callers race.

Every operation runs under one injected ``asyncio.Lock``, the serialized
execution context shared by foreground and background triggers.  No other
code path writes aggregate rows.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable
from uuid import UUID, uuid4

from src.outdoors.base import DailyOutdoorAggregate, LocationSample, SampleStore, utc_now
from src.outdoors.errors import AlreadyAggregated
from src.services.database import fetch, fetchrow, fetchval, get_connection

logger = logging.getLogger("daylight.outdoors.store")


@dataclass
class MarkResult:
    """Outcome of ``mark_uploaded``.

    Attributes:
        marked:  Ids now flagged as uploaded (including ones already flagged).
        missing: Ids that matched no aggregate.  Logged, never fatal.
    """

    marked: set[UUID] = field(default_factory=set)
    missing: set[UUID] = field(default_factory=set)

    @property
    def ok(self) -> bool:
        return not self.missing


class DailyAggregateStore(ABC):
    """Repository contract for DailyOutdoorAggregate rows."""

    def __init__(self, lock: asyncio.Lock | None = None) -> None:
        self._lock = lock or asyncio.Lock()

    @property
    def lock(self) -> asyncio.Lock:
        return self._lock

    async def exists(self, day: date) -> bool:
        async with self._lock:
            return await self._exists(day)

    async def create(self, day: date, total_outdoor_minutes: int) -> UUID:
        """Insert the aggregate for ``day`` and return its id.

        Raises:
            AlreadyAggregated: If ``day`` already has an aggregate.
            ValueError:        If the total is negative.
        """
        if total_outdoor_minutes < 0:
            raise ValueError(f"total_outdoor_minutes must be >= 0, got {total_outdoor_minutes}")
        async with self._lock:
            aggregate_id = await self._create(day, total_outdoor_minutes)
        logger.info("Saved outdoor aggregate for %s: %d minutes", day, total_outdoor_minutes)
        return aggregate_id

    async def fetch_unuploaded(self) -> list[DailyOutdoorAggregate]:
        """Return every aggregate not yet accepted by the server, oldest day first."""
        async with self._lock:
            return await self._fetch_unuploaded()

    async def fetch_all(self) -> list[DailyOutdoorAggregate]:
        """Return every aggregate, oldest day first."""
        async with self._lock:
            return await self._fetch_all()

    async def mark_uploaded(self, ids: Iterable[UUID]) -> MarkResult:
        """Flag ``ids`` as uploaded in one atomic step.  Idempotent."""
        wanted = set(ids)
        if not wanted:
            return MarkResult()
        async with self._lock:
            result = await self._mark_uploaded(wanted)
        if result.missing:
            logger.warning(
                "mark_uploaded: %d of %d aggregates not found: %s",
                len(result.missing), len(wanted), sorted(str(i) for i in result.missing),
            )
        logger.info("Marked %d outdoor aggregates as uploaded", len(result.marked))
        return result

    @abstractmethod
    async def _exists(self, day: date) -> bool: ...

    @abstractmethod
    async def _create(self, day: date, total_outdoor_minutes: int) -> UUID: ...

    @abstractmethod
    async def _fetch_unuploaded(self) -> list[DailyOutdoorAggregate]: ...

    @abstractmethod
    async def _fetch_all(self) -> list[DailyOutdoorAggregate]: ...

    @abstractmethod
    async def _mark_uploaded(self, ids: set[UUID]) -> MarkResult: ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


class InMemoryAggregateStore(DailyAggregateStore):
    """Aggregates kept in a dict keyed by day.

    Used in tests and when no database is configured.
    """

    def __init__(self, lock: asyncio.Lock | None = None) -> None:
        super().__init__(lock)
        self._by_day: dict[date, DailyOutdoorAggregate] = {}

    async def _exists(self, day: date) -> bool:
        return day in self._by_day

    async def _create(self, day: date, total_outdoor_minutes: int) -> UUID:
        if day in self._by_day:
            raise AlreadyAggregated(day)
        aggregate = DailyOutdoorAggregate(
            id=uuid4(), date=day, total_outdoor_minutes=total_outdoor_minutes
        )
        self._by_day[day] = aggregate
        return aggregate.id

    async def _fetch_unuploaded(self) -> list[DailyOutdoorAggregate]:
        pending = [a for a in self._by_day.values() if not a.uploaded]
        return sorted(pending, key=lambda a: a.date)

    async def _mark_uploaded(self, ids: set[UUID]) -> MarkResult:
        by_id = {a.id: a for a in self._by_day.values()}
        result = MarkResult(missing=ids - by_id.keys())
        for aggregate_id in ids & by_id.keys():
            by_id[aggregate_id].uploaded = True
            result.marked.add(aggregate_id)
        return result

    async def _fetch_all(self) -> list[DailyOutdoorAggregate]:
        return sorted(self._by_day.values(), key=lambda a: a.date)

    def clear(self) -> None:
        """Drop every aggregate (test tooling and explicit user reset only)."""
        self._by_day.clear()

    def __len__(self) -> int:
        return len(self._by_day)


# ---------------------------------------------------------------------------
# PostgreSQL implementation
# ---------------------------------------------------------------------------


def _row_to_aggregate(row: Any) -> DailyOutdoorAggregate:
    return DailyOutdoorAggregate(
        id=row["id"],
        date=row["date"],
        total_outdoor_minutes=row["total_outdoor_minutes"],
        uploaded=row["uploaded"],
        calculated_at=row["calculated_at"],
    )


class PostgresAggregateStore(DailyAggregateStore):
    """Aggregates in ``daily_outdoor_aggregates`` (see services/schema.sql).

    ``UNIQUE(date)`` plus ``ON CONFLICT DO NOTHING`` makes ``create`` an
    atomic check-then-insert even across processes.
    """

    def __init__(self, pool: Any, lock: asyncio.Lock | None = None) -> None:
        super().__init__(lock)
        self._pool = pool

    async def _exists(self, day: date) -> bool:
        return bool(
            await fetchval(
                self._pool,
                "SELECT EXISTS (SELECT 1 FROM daily_outdoor_aggregates WHERE date = $1)",
                day,
            )
        )

    async def _create(self, day: date, total_outdoor_minutes: int) -> UUID:
        row = await fetchrow(
            self._pool,
            """
            INSERT INTO daily_outdoor_aggregates (id, date, total_outdoor_minutes, uploaded, calculated_at)
            VALUES ($1, $2, $3, FALSE, $4)
            ON CONFLICT (date) DO NOTHING
            RETURNING id
            """,
            uuid4(),
            day,
            total_outdoor_minutes,
            utc_now(),
        )
        if row is None:
            raise AlreadyAggregated(day)
        return row["id"]

    async def _fetch_unuploaded(self) -> list[DailyOutdoorAggregate]:
        rows = await fetch(
            self._pool,
            "SELECT * FROM daily_outdoor_aggregates WHERE NOT uploaded ORDER BY date ASC",
        )
        return [_row_to_aggregate(r) for r in rows]

    async def _fetch_all(self) -> list[DailyOutdoorAggregate]:
        rows = await fetch(self._pool, "SELECT * FROM daily_outdoor_aggregates ORDER BY date ASC")
        return [_row_to_aggregate(r) for r in rows]

    async def _mark_uploaded(self, ids: set[UUID]) -> MarkResult:
        async with get_connection(self._pool) as conn:
            rows = await conn.fetch(
                "UPDATE daily_outdoor_aggregates SET uploaded = TRUE "
                "WHERE id = ANY($1::uuid[]) RETURNING id",
                list(ids),
            )
        marked = {r["id"] for r in rows}
        return MarkResult(marked=marked, missing=ids - marked)


class PostgresSampleStore(SampleStore):
    """Read-only view of ``location_samples`` for the engine."""

    def __init__(self, pool: Any) -> None:
        self._pool = pool

    async def fetch_samples(self, day: date) -> list[LocationSample]:
        rows = await fetch(
            self._pool,
            """
            SELECT recorded_at, latitude, longitude, horizontal_accuracy_m, is_home, uploaded
            FROM location_samples
            WHERE local_date = $1
            ORDER BY recorded_at ASC
            """,
            day,
        )
        return [
            LocationSample(
                timestamp=r["recorded_at"],
                latitude=r["latitude"],
                longitude=r["longitude"],
                horizontal_accuracy_m=r["horizontal_accuracy_m"],
                is_home=r["is_home"],
                uploaded=r["uploaded"],
            )
            for r in rows
        ]
