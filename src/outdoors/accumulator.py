"""Interval accumulator: turn one day of classified samples into durations.

The same recurrence is run once per predicate ("not home" gives time away,
"outdoors" gives time outdoors):

1. Walk samples in timestamp order, keeping an open ``segment_start``.
2. When the predicate turns true at a sample, open a segment there.  Time
   before the first qualifying sample of the day is never counted.
3. When it turns false, add ``sample - segment_start`` and close the segment.
4. A segment still open at the end of the walk runs to the horizon.
5. If the predicate never turned false all day, the whole span from the
   first sample to the horizon counts instead.
6. Every interval is clamped at zero, so duplicate or out-of-order
   timestamps can never subtract time.

Evaluating the recurrence at horizon = end of day (or now, for today) gives
the daily total.  Evaluating it at each sample's own timestamp gives the
running column used by the CSV export.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Callable, Iterable, Iterator, Sequence

from src.outdoors.base import Classification, DayTotals, LocationSample
from src.outdoors.classifier import HomeZoneClassifier

logger = logging.getLogger("daylight.outdoors.accumulator")

Predicate = Callable[[Classification], bool]

_ZERO = timedelta(0)


def away(c: Classification) -> bool:
    return c.is_away


def outdoors(c: Classification) -> bool:
    return c.is_outdoors


def _clamp(delta: timedelta) -> timedelta:
    return delta if delta > _ZERO else _ZERO


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------


def local_midnight(day: date, tz: tzinfo) -> datetime:
    """Return the instant the local calendar ``day`` starts in ``tz``."""
    return datetime.combine(day, time.min, tzinfo=tz)


def local_day_bounds(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """Return ``[start, end)`` of ``day`` as tz-aware instants."""
    return local_midnight(day, tz), local_midnight(day + timedelta(days=1), tz)


def day_horizon(day: date, now: datetime, tz: tzinfo) -> datetime:
    """Return the instant accumulation for ``day`` stops.

    Past days run to local end-of-day; today runs to ``now``.  A future day
    has not started, so its horizon is its own start.
    """
    start, end = local_day_bounds(day, tz)
    if now >= end:
        return end
    return max(now, start)


def to_minutes(duration: timedelta) -> int:
    """Round a non-negative duration to the nearest whole minute (halves up)."""
    return int(math.floor(duration.total_seconds() / 60.0 + 0.5))


# ---------------------------------------------------------------------------
# The recurrence
# ---------------------------------------------------------------------------


@dataclass
class SegmentRecurrence:
    """Incremental state of the segment walk for one predicate.

    Feed samples in order with ``feed``; ask for the accumulated duration at
    any horizon with ``value_at``.  Feeding never looks ahead, so the value
    after each feed is the running total up to that sample.
    """

    total: timedelta = _ZERO
    segment_start: datetime | None = None
    first_timestamp: datetime | None = None
    ever_false: bool = False

    def feed(self, timestamp: datetime, qualifies: bool) -> None:
        # Same-tzinfo subtraction is wall-clock; compare instants in UTC.
        timestamp = timestamp.astimezone(timezone.utc)
        if self.first_timestamp is None:
            self.first_timestamp = timestamp

        if qualifies:
            if self.segment_start is None:
                self.segment_start = timestamp
            return

        self.ever_false = True
        if self.segment_start is not None:
            self.total += _clamp(timestamp - self.segment_start)
            self.segment_start = None

    def value_at(self, horizon: datetime) -> timedelta:
        if self.first_timestamp is None:
            return _ZERO
        horizon = horizon.astimezone(timezone.utc)

        # Unbroken day: qualifying from first contact to the horizon.
        if not self.ever_false:
            return _clamp(horizon - self.first_timestamp)

        total = self.total
        if self.segment_start is not None:
            total += _clamp(horizon - self.segment_start)
        return _clamp(total)


def accumulate(points: Iterable[tuple[datetime, bool]], horizon: datetime) -> timedelta:
    """Run the recurrence over ``(timestamp, qualifies)`` pairs to ``horizon``."""
    recurrence = SegmentRecurrence()
    for timestamp, qualifies in points:
        recurrence.feed(timestamp, qualifies)
    return recurrence.value_at(horizon)


# ---------------------------------------------------------------------------
# Accumulator
# ---------------------------------------------------------------------------


class IntervalAccumulator:
    """Compute time away and time outdoors for one day of samples.

    Samples must already carry their recorded ``is_home`` flag and be sorted
    ascending; the outdoor flag is derived through the injected classifier.
    """

    def __init__(self, classifier: HomeZoneClassifier | None = None) -> None:
        self._classifier = classifier or HomeZoneClassifier()

    def _points(
        self, samples: Sequence[LocationSample], predicate: Predicate
    ) -> Iterator[tuple[datetime, bool]]:
        for sample in samples:
            yield sample.timestamp, predicate(self._classifier.classify_recorded(sample))

    def duration(
        self, samples: Sequence[LocationSample], horizon: datetime, predicate: Predicate
    ) -> timedelta:
        return accumulate(self._points(samples, predicate), horizon)

    def totals(self, samples: Sequence[LocationSample], horizon: datetime) -> DayTotals:
        """Return both day totals, evaluated at ``horizon``.

        Args:
            samples: One day's samples, oldest first.  May be empty.
            horizon: ``now`` for the current day, local end-of-day otherwise.

        Returns:
            DayTotals with non-negative ``time_away`` and ``time_outdoors``.
        """
        if not samples:
            return DayTotals()

        result = DayTotals(
            time_away=self.duration(samples, horizon, away),
            time_outdoors=self.duration(samples, horizon, outdoors),
        )
        logger.debug(
            "Accumulated %d samples to %s: away=%s outdoors=%s",
            len(samples), horizon.isoformat(), result.time_away, result.time_outdoors,
        )
        return result

    def cumulative(
        self, samples: Sequence[LocationSample], predicate: Predicate = outdoors
    ) -> Iterator[tuple[LocationSample, timedelta]]:
        """Yield ``(sample, running_total)`` with the horizon at each sample.

        The last value equals ``duration(samples, samples[-1].timestamp, predicate)``.
        """
        recurrence = SegmentRecurrence()
        for sample in samples:
            qualifies = predicate(self._classifier.classify_recorded(sample))
            recurrence.feed(sample.timestamp, qualifies)
            yield sample, recurrence.value_at(sample.timestamp)
