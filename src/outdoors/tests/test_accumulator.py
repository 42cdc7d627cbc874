"""Tests for the interval accumulator: time away and time outdoors per day."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from src.outdoors.accumulator import (
    IntervalAccumulator,
    SegmentRecurrence,
    away,
    day_horizon,
    local_day_bounds,
    outdoors,
    to_minutes,
)
from src.outdoors.base import DayTotals, LocationSample
from src.outdoors.tests.conftest import TEST_DAY, at, make_sample

UTC = timezone.utc
END_OF_DAY = at(0, day=TEST_DAY + timedelta(days=1))


# ---------------------------------------------------------------------------
# Calendar helpers
# ---------------------------------------------------------------------------


class TestCalendar:
    def test_day_bounds_utc(self) -> None:
        start, end = local_day_bounds(TEST_DAY, UTC)
        assert start == at(0)
        assert end - start == timedelta(days=1)

    def test_day_bounds_dst_spring_forward_is_23_hours(self) -> None:
        start, end = local_day_bounds(date(2025, 3, 9), ZoneInfo("America/New_York"))
        assert end.astimezone(UTC) - start.astimezone(UTC) == timedelta(hours=23)

    def test_horizon_past_day_is_end_of_day(self) -> None:
        now = datetime(2025, 4, 25, 8, 0, tzinfo=UTC)
        assert day_horizon(TEST_DAY, now, UTC) == END_OF_DAY

    def test_horizon_today_is_now(self) -> None:
        now = at(13, 15)
        assert day_horizon(TEST_DAY, now, UTC) == now

    def test_horizon_future_day_is_its_start(self) -> None:
        now = at(13, 15, day=TEST_DAY - timedelta(days=1))
        assert day_horizon(TEST_DAY, now, UTC) == at(0)

    def test_to_minutes_rounds_half_up(self) -> None:
        assert to_minutes(timedelta(minutes=29, seconds=30)) == 30
        assert to_minutes(timedelta(minutes=29, seconds=29)) == 29
        assert to_minutes(timedelta(0)) == 0


# ---------------------------------------------------------------------------
# Daily totals
# ---------------------------------------------------------------------------


class TestTotals:
    def test_thirty_minute_walk(self, accumulator: IntervalAccumulator) -> None:
        """Outdoors at 10:00 with a 5 m fix, home at 10:30 → 30 minutes."""
        samples = [make_sample(10, 0, accuracy=5.0), make_sample(10, 30, home=True)]
        totals = accumulator.totals(samples, END_OF_DAY)
        assert totals.time_outdoors == timedelta(minutes=30)
        assert totals.time_away == timedelta(minutes=30)

    def test_no_samples_is_zero(self, accumulator: IntervalAccumulator) -> None:
        assert accumulator.totals([], END_OF_DAY) == DayTotals()

    def test_away_all_day_runs_from_first_sample_to_end(
        self, accumulator: IntervalAccumulator
    ) -> None:
        samples = [make_sample(8), make_sample(12), make_sample(18)]
        totals = accumulator.totals(samples, END_OF_DAY)
        assert totals.time_away == timedelta(hours=16)
        assert totals.time_outdoors == timedelta(hours=16)

    def test_time_before_first_qualifying_sample_not_counted(
        self, accumulator: IntervalAccumulator
    ) -> None:
        samples = [make_sample(8, home=True), make_sample(9), make_sample(9, 45, home=True)]
        assert accumulator.totals(samples, END_OF_DAY).time_outdoors == timedelta(minutes=45)

    def test_open_segment_runs_to_horizon(self, accumulator: IntervalAccumulator) -> None:
        samples = [make_sample(7, home=True), make_sample(22)]
        totals = accumulator.totals(samples, END_OF_DAY)
        assert totals.time_outdoors == timedelta(hours=2)

    def test_today_stops_at_now(self, accumulator: IntervalAccumulator) -> None:
        samples = [make_sample(11)]
        totals = accumulator.totals(samples, at(12))
        assert totals.time_outdoors == timedelta(hours=1)

    def test_away_indoors_counts_away_only(self, accumulator: IntervalAccumulator) -> None:
        samples = [make_sample(9, accuracy=50.0), make_sample(10, home=True)]
        totals = accumulator.totals(samples, END_OF_DAY)
        assert totals.time_away == timedelta(hours=1)
        assert totals.time_outdoors == timedelta(0)

    def test_several_segments_add_up(self, accumulator: IntervalAccumulator) -> None:
        samples = [
            make_sample(8),
            make_sample(8, 20, home=True),
            make_sample(12),
            make_sample(12, 40, accuracy=30.0),
            make_sample(13, home=True),
        ]
        totals = accumulator.totals(samples, END_OF_DAY)
        assert totals.time_outdoors == timedelta(minutes=60)
        assert totals.time_away == timedelta(minutes=80)

    def test_out_of_order_timestamps_never_subtract(
        self, accumulator: IntervalAccumulator
    ) -> None:
        samples = [make_sample(10, 30), make_sample(10, 0, home=True)]
        totals = accumulator.totals(samples, END_OF_DAY)
        assert totals.time_outdoors == timedelta(0)
        assert totals.time_away == timedelta(0)

    def test_horizon_before_first_sample_is_zero(
        self, accumulator: IntervalAccumulator
    ) -> None:
        assert accumulator.totals([make_sample(15)], at(9)).time_outdoors == timedelta(0)

    def test_duplicate_timestamps(self, accumulator: IntervalAccumulator) -> None:
        samples = [make_sample(10), make_sample(10), make_sample(10, 10, home=True)]
        assert accumulator.totals(samples, END_OF_DAY).time_outdoors == timedelta(minutes=10)

    def test_segment_closed_then_reopened_to_horizon(
        self, accumulator: IntervalAccumulator
    ) -> None:
        """Away 10:00-10:10, home until 10:40, away again until 11:00 → 30 minutes."""
        samples = [make_sample(10), make_sample(10, 10, home=True), make_sample(10, 40)]
        assert accumulator.totals(samples, at(11)).time_away == timedelta(minutes=30)

    def test_unbroken_day_runs_from_first_sample_to_horizon(
        self, accumulator: IntervalAccumulator
    ) -> None:
        samples = [make_sample(10), make_sample(10, 30), make_sample(11)]
        totals = accumulator.totals(samples, at(13))
        assert totals.time_outdoors == timedelta(hours=3)
        assert totals.time_away == timedelta(hours=3)


class TestDaylightSaving:
    """2025-03-09 in New York is 23 hours long; clocks jump from 02:00 to 03:00."""

    NY = ZoneInfo("America/New_York")
    DAY = date(2025, 3, 9)

    def _local_samples(self) -> list[LocationSample]:
        return [
            LocationSample(datetime(2025, 3, 9, 0, 30, tzinfo=self.NY), 40.0, -75.0, 5.0),
            LocationSample(datetime(2025, 3, 9, 1, 30, tzinfo=self.NY), 40.0, -75.0, 5.0),
        ]

    def test_unbroken_day_counts_elapsed_time(self, accumulator: IntervalAccumulator) -> None:
        horizon = day_horizon(self.DAY, datetime(2025, 3, 11, tzinfo=UTC), self.NY)
        totals = accumulator.totals(self._local_samples(), horizon)
        assert totals.time_outdoors == timedelta(hours=22, minutes=30)
        assert totals.time_away == timedelta(hours=22, minutes=30)

    def test_segment_across_the_jump(self, accumulator: IntervalAccumulator) -> None:
        samples = [
            LocationSample(datetime(2025, 3, 9, 1, 30, tzinfo=self.NY), 40.0, -75.0, 5.0),
            LocationSample(
                datetime(2025, 3, 9, 3, 30, tzinfo=self.NY), 40.0, -75.0, 5.0, is_home=True
            ),
        ]
        horizon = day_horizon(self.DAY, datetime(2025, 3, 11, tzinfo=UTC), self.NY)
        assert accumulator.totals(samples, horizon).time_outdoors == timedelta(hours=1)

    def test_running_total_is_elapsed_time(self, accumulator: IntervalAccumulator) -> None:
        samples = self._local_samples() + [
            LocationSample(datetime(2025, 3, 9, 3, 30, tzinfo=self.NY), 40.0, -75.0, 5.0)
        ]
        running = [value for _, value in accumulator.cumulative(samples)]
        assert running == [timedelta(0), timedelta(hours=1), timedelta(hours=2)]


# ---------------------------------------------------------------------------
# Recurrence & streaming variant
# ---------------------------------------------------------------------------


class TestRecurrence:
    def test_empty_recurrence_is_zero(self) -> None:
        assert SegmentRecurrence().value_at(END_OF_DAY) == timedelta(0)

    def test_never_true_is_zero(self) -> None:
        r = SegmentRecurrence()
        r.feed(at(9), False)
        r.feed(at(10), False)
        assert r.value_at(END_OF_DAY) == timedelta(0)

    def test_predicates(self, classifier) -> None:
        flags = classifier.classify_recorded(make_sample(9, accuracy=50.0))
        assert away(flags)
        assert not outdoors(flags)


class TestCumulative:
    def test_running_total_at_each_sample(self, accumulator: IntervalAccumulator) -> None:
        samples = [make_sample(10), make_sample(10, 15), make_sample(10, 30, home=True)]
        running = [value for _, value in accumulator.cumulative(samples)]
        assert running == [timedelta(0), timedelta(minutes=15), timedelta(minutes=30)]

    def test_last_value_matches_duration_at_last_sample(
        self, accumulator: IntervalAccumulator
    ) -> None:
        samples = [
            make_sample(8, home=True),
            make_sample(9),
            make_sample(9, 50, home=True),
            make_sample(11),
            make_sample(11, 5),
        ]
        *_, (last, value) = accumulator.cumulative(samples, outdoors)
        assert value == accumulator.duration(samples, last.timestamp, outdoors)

    def test_yields_samples_unchanged(self, accumulator: IntervalAccumulator) -> None:
        samples = [make_sample(10), make_sample(11)]
        assert [s for s, _ in accumulator.cumulative(samples)] == samples
