"""Home zone classifier: at home, away, or (heuristically) outdoors.

``is_home`` is a geometric fact: the great-circle distance from the fix to
the zone centre is within the zone radius.  ``is_outdoors`` is a guess.
Indoor GPS fixes usually degrade, so an unusually precise fix taken away
from home is read as evidence of open sky.  Callers should treat outdoor
time as an estimate, never as ground truth.
"""

from __future__ import annotations

import dataclasses
import logging
import math

from src.outdoors.base import Classification, HomeZone, LocationSample
from src.outdoors.config_loader import OutdoorsConfig, get_outdoors_config

logger = logging.getLogger("daylight.outdoors.classifier")

# Mean Earth radius (IUGG), meters
EARTH_RADIUS_M = 6_371_008.8


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Return the great-circle distance between two points in meters."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = phi2 - phi1
    d_lambda = math.radians(lon2 - lon1)
    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


class HomeZoneClassifier:
    """Classify location samples against a home zone.

    Pure: no I/O, no state beyond the accuracy threshold.

    Usage::

        classifier = HomeZoneClassifier()
        recorded = classifier.stamp(sample, zones.current_zone())
        flags = classifier.classify_recorded(recorded)
    """

    def __init__(
        self,
        good_signal_threshold_m: float | None = None,
        config: OutdoorsConfig | None = None,
    ) -> None:
        """Initialize the classifier.

        Args:
            good_signal_threshold_m: Accuracy below which a fix away from home
                                     counts as outdoors.  Defaults to the
                                     configured value.
            config:                  Tuning config; the cached one if None.
        """
        if good_signal_threshold_m is None:
            cfg = config or get_outdoors_config()
            good_signal_threshold_m = cfg.classifier.good_signal_threshold_m
        self.good_signal_threshold_m = good_signal_threshold_m

    def is_home(self, sample: LocationSample, zone: HomeZone | None) -> bool:
        if zone is None:
            return False
        distance = haversine_m(
            sample.latitude, sample.longitude, zone.latitude, zone.longitude
        )
        return distance <= zone.radius_m

    def is_outdoors(self, sample: LocationSample, is_home: bool) -> bool:
        if is_home:
            return False
        accuracy = sample.horizontal_accuracy_m
        return accuracy is None or accuracy < self.good_signal_threshold_m

    def classify(self, sample: LocationSample, zone: HomeZone | None) -> Classification:
        """Classify a sample against ``zone`` (None means every sample is away)."""
        home = self.is_home(sample, zone)
        return Classification(is_home=home, is_outdoors=self.is_outdoors(sample, home))

    def classify_recorded(self, sample: LocationSample) -> Classification:
        """Classify using the ``is_home`` stamped when the sample was recorded.

        Zone changes never rewrite history, so back-fill and statistics go
        through this rather than ``classify``.
        """
        return Classification(
            is_home=sample.is_home,
            is_outdoors=self.is_outdoors(sample, sample.is_home),
        )

    def stamp(self, sample: LocationSample, zone: HomeZone | None) -> LocationSample:
        """Return a copy of ``sample`` with ``is_home`` set against ``zone``."""
        home = self.is_home(sample, zone)
        logger.debug(
            "Stamped sample at %s: is_home=%s (zone=%s)",
            sample.timestamp.isoformat(), home, zone is not None,
        )
        return dataclasses.replace(sample, is_home=home)
