"""Base classes and canonical data models for the Daylight outdoor-time engine.

Every collaborator the engine consumes (sample store, home zone provider,
auth provider) is described here as an ABC, alongside the value types that
flow between the classifier, accumulator, aggregate store and upload
pipeline.  Concrete collaborators live next to their concern; the engine
itself only ever sees these interfaces.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any
from uuid import UUID

logger = logging.getLogger("daylight.outdoors")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Location samples & home zone
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LocationSample:
    """One recorded position fix.

    Owned by the external sample store; read-only to this engine.

    Attributes:
        timestamp:             Tz-aware instant the fix was taken.
        latitude:              Degrees.
        longitude:             Degrees.
        horizontal_accuracy_m: Reported accuracy radius in meters. None means
                               unknown, which is treated as a good signal.
        is_home:               Stamped by HomeZoneClassifier when the sample was
                               recorded, against the zone active at that time.
        uploaded:              Owned by the separate location-upload path.
                               Never read or written here.
    """

    timestamp: datetime
    latitude: float
    longitude: float
    horizontal_accuracy_m: float | None = None
    is_home: bool = False
    uploaded: bool = False


@dataclass(frozen=True)
class HomeZone:
    """Centre point plus radius that defines "at home"."""

    latitude: float
    longitude: float
    radius_m: float


@dataclass(frozen=True)
class Classification:
    """Result of classifying one sample.

    ``is_outdoors`` is a heuristic (away from home with a precise fix), not
    ground truth.
    """

    is_home: bool
    is_outdoors: bool

    @property
    def is_away(self) -> bool:
        return not self.is_home


@dataclass(frozen=True)
class DayTotals:
    """Accumulated durations for one calendar day."""

    time_away: timedelta = timedelta(0)
    time_outdoors: timedelta = timedelta(0)


# ---------------------------------------------------------------------------
# Daily aggregate
# ---------------------------------------------------------------------------


@dataclass
class DailyOutdoorAggregate:
    """The single persisted outdoor-time summary for one calendar day.

    Attributes:
        id:                    Store-assigned identifier.
        date:                  Calendar day (the user's local date).
        total_outdoor_minutes: Whole minutes outdoors, never negative.
        uploaded:              True once the FHIR server accepted the entry.
        calculated_at:         UTC instant the total was computed.
    """

    id: UUID
    date: date
    total_outdoor_minutes: int
    uploaded: bool = False
    calculated_at: datetime = field(default_factory=utc_now)


@dataclass
class UploadBatchEntry:
    """An aggregate paired with its encoded Observation for one upload attempt.

    Never persisted; owned by the pipeline run that built it.
    """

    aggregate: DailyOutdoorAggregate
    observation: dict[str, Any]

    def as_bundle_entry(self) -> dict[str, Any]:
        return {
            "resource": self.observation,
            "request": {"method": "POST", "url": "Observation"},
        }


# ---------------------------------------------------------------------------
# Collaborator interfaces
# ---------------------------------------------------------------------------


class SampleStore(ABC):
    """Read contract of the location sample store."""

    @abstractmethod
    async def fetch_samples(self, day: date) -> list[LocationSample]:
        """Return every sample recorded on ``day`` (local date), oldest first."""


class HomeZoneProvider(ABC):
    """Supplies the currently configured home zone, if any."""

    @abstractmethod
    def current_zone(self) -> HomeZone | None:
        """Return the active zone or None when the user has not set one."""


class AuthProvider(ABC):
    """Bearer token source for the FHIR endpoint.

    The engine never runs the login ceremony.  It asks for a refresh when
    needed and then reads whatever token is current.
    """

    @abstractmethod
    def current_access_token(self) -> str | None:
        """Return the current access token, or None when not authenticated."""

    @abstractmethod
    async def refresh_if_needed(self) -> None:
        """Refresh the token if it is close to expiry.

        Implementations should log and swallow refresh failures; the caller
        falls back to ``current_access_token()``.
        """


# ---------------------------------------------------------------------------
# Simple in-process collaborators
# ---------------------------------------------------------------------------


class StaticHomeZoneProvider(HomeZoneProvider):
    """Home zone held in memory; replaced wholesale via ``set_zone``."""

    def __init__(self, zone: HomeZone | None = None) -> None:
        self._zone = zone

    def current_zone(self) -> HomeZone | None:
        return self._zone

    def set_zone(self, zone: HomeZone | None) -> None:
        logger.info("Home zone replaced: %s", zone)
        self._zone = zone


class InMemorySampleStore(SampleStore):
    """Sample store backed by a list, bucketed by local date on read.

    Used in tests and when no database is configured.
    """

    def __init__(self, tz: Any = timezone.utc) -> None:
        self._tz = tz
        self._samples: list[LocationSample] = []

    def add(self, *samples: LocationSample) -> None:
        self._samples.extend(samples)

    async def fetch_samples(self, day: date) -> list[LocationSample]:
        rows = [
            s for s in self._samples if s.timestamp.astimezone(self._tz).date() == day
        ]
        return sorted(rows, key=lambda s: s.timestamp)

    def __len__(self) -> int:
        return len(self._samples)
