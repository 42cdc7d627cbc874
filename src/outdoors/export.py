"""CSV export of one day's samples with a running outdoor-time column."""

from __future__ import annotations

import csv
import io
from typing import Sequence

from src.outdoors.accumulator import IntervalAccumulator, outdoors
from src.outdoors.base import LocationSample
from src.outdoors.classifier import HomeZoneClassifier

CSV_COLUMNS = [
    "timestamp",
    "latitude",
    "longitude",
    "isHome",
    "isOutdoors",
    "cumulativeOutdoorMinutes",
]


def export_day_csv(
    samples: Sequence[LocationSample],
    classifier: HomeZoneClassifier | None = None,
) -> str:
    """Render samples as CSV, one row per sample, oldest first.

    ``cumulativeOutdoorMinutes`` is the outdoor total evaluated at each row's
    own timestamp, to two decimals.
    """
    classifier = classifier or HomeZoneClassifier()
    accumulator = IntervalAccumulator(classifier)

    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for sample, running in accumulator.cumulative(samples, outdoors):
        flags = classifier.classify_recorded(sample)
        writer.writerow([
            sample.timestamp.isoformat(),
            sample.latitude,
            sample.longitude,
            "1" if flags.is_home else "0",
            "1" if flags.is_outdoors else "0",
            f"{running.total_seconds() / 60.0:.2f}",
        ])
    return buf.getvalue()
