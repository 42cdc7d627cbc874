"""Daylight outdoor-time engine.

Turns recorded location samples into one outdoor-time total per calendar
day and uploads the totals to a FHIR data exchange.

Subpackages:
    sync/  Upload pipeline, FHIR client, daily back-fill, retry scheduler

Core modules:
    base          Collaborator ABCs and canonical data models
    classifier    Home / outdoors classification of one sample
    accumulator   Time away and time outdoors over a day
    store         Daily aggregate store (in-memory and PostgreSQL)
    encoder       Aggregate → FHIR Observation encoding
    auth          Bearer token providers
    export        Per-day CSV export
    config_loader Load/validate outdoors_config.yaml
    service       Component wiring
"""

from src.outdoors.base import (
    DailyOutdoorAggregate,
    DayTotals,
    HomeZone,
    LocationSample,
)
from src.outdoors.config_loader import OutdoorsConfig, get_outdoors_config

__all__ = [
    "LocationSample",
    "HomeZone",
    "DayTotals",
    "DailyOutdoorAggregate",
    "OutdoorsConfig",
    "get_outdoors_config",
]
