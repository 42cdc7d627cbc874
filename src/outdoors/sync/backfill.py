"""Daily aggregate back-fill.

Looks back over the last N days (today excluded; it is still accumulating)
and creates the outdoor-time aggregate for every day that does not have one
yet.  Days already aggregated are skipped, never recomputed, so running the
job twice is a no-op the second time.

Days with zero outdoor minutes are not stored.  "No aggregate" therefore
means either "not computed yet" or "computed as zero"; such days are simply
recomputed on the next run while they remain inside the window.

Usage::

    backfill = OutdoorBackfill(samples, store, accumulator, tz=ZoneInfo("America/New_York"))
    report = await backfill.run()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone, tzinfo

from src.outdoors.accumulator import IntervalAccumulator, day_horizon, to_minutes
from src.outdoors.base import SampleStore, utc_now
from src.outdoors.config_loader import OutdoorsConfig, get_outdoors_config
from src.outdoors.errors import AlreadyAggregated
from src.outdoors.store import DailyAggregateStore

logger = logging.getLogger("daylight.outdoors.sync.backfill")


@dataclass
class BackfillReport:
    """What one back-fill run did.

    Attributes:
        days_examined: Days inside the window.
        created:       Day → minutes for every aggregate written.
        skipped:       Days that already had an aggregate.
        zero_days:     Days computed as zero minutes and not stored.
        errors:        Per-day error messages.
    """

    days_examined: int = 0
    created: dict[date, int] = field(default_factory=dict)
    skipped: list[date] = field(default_factory=list)
    zero_days: list[date] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


class OutdoorBackfill:
    """Create missing daily aggregates for the recent past."""

    def __init__(
        self,
        samples: SampleStore,
        store: DailyAggregateStore,
        accumulator: IntervalAccumulator,
        tz: tzinfo = timezone.utc,
        days: int | None = None,
        config: OutdoorsConfig | None = None,
    ) -> None:
        """Initialize the job.

        Args:
            samples:     Source of recorded location samples.
            store:       Aggregate store; the only place aggregates are written.
            accumulator: Computes time outdoors per day.
            tz:          The user's timezone; defines calendar days.
            days:        Window size.  Defaults to the configured value (5).
            config:      Tuning config; the cached one if None.
        """
        self._samples = samples
        self._store = store
        self._accumulator = accumulator
        self._tz = tz
        self._days = days if days is not None else (config or get_outdoors_config()).backfill.days

    def target_dates(self, today: date) -> list[date]:
        """Return the days to examine: yesterday back to ``today - days``."""
        return [today - timedelta(days=i) for i in range(1, self._days + 1)]

    async def compute_minutes(self, day: date, now: datetime) -> int:
        samples = await self._samples.fetch_samples(day)
        horizon = day_horizon(day, now, self._tz)
        totals = self._accumulator.totals(samples, horizon)
        return to_minutes(totals.time_outdoors)

    async def run(self, now: datetime | None = None) -> BackfillReport:
        """Examine the window and create every missing non-zero aggregate."""
        now = now or utc_now()
        today = now.astimezone(self._tz).date()
        report = BackfillReport()

        for day in self.target_dates(today):
            report.days_examined += 1
            try:
                if await self._store.exists(day):
                    logger.debug("Outdoor aggregate for %s already exists. Skipping.", day)
                    report.skipped.append(day)
                    continue

                minutes = await self.compute_minutes(day, now)
                if minutes <= 0:
                    logger.debug("No outdoor time calculated for %s. Not saving.", day)
                    report.zero_days.append(day)
                    continue

                await self._store.create(day, minutes)
                report.created[day] = minutes

            except AlreadyAggregated:
                # Another trigger created it between exists() and create().
                report.skipped.append(day)
            except Exception as exc:
                logger.warning("Back-fill error on %s: %s", day, exc)
                report.errors.append(f"Error on {day}: {exc}")

        logger.info(
            "Back-fill complete: %d examined, %d created, %d skipped, %d errors",
            report.days_examined, len(report.created), len(report.skipped), len(report.errors),
        )
        return report
