"""Encode daily outdoor aggregates as FHIR Observations inside a batch Bundle.

Wire shape (the exchange accepts nothing else):

    Observation.valueAttachment.data = base64(json({
        "end_date_time": "<ISO-8601 UTC, ms precision>",
        "duration": {"value": <minutes>, "unit": "min"},
    }))

The server has no outdoor-time schema, so the Observation carries the code
registered under ``outdoor-time`` in the schema registry, which today is the
OMH blood-glucose code.  Swapping in a real code is a config change only.

``end_date_time`` is local midnight after the aggregated day minus a fixed
5-hour offset.  The server pairs uploads by that exact instant, so the
offset must not change without a matching server change.
"""

from __future__ import annotations

import base64
import json
import logging
import uuid
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, Sequence

from src.outdoors.accumulator import local_midnight
from src.outdoors.base import DailyOutdoorAggregate, UploadBatchEntry
from src.outdoors.config_loader import OutdoorsConfig, SchemaEntry, get_outdoors_config
from src.outdoors.errors import SerializationFailure

logger = logging.getLogger("daylight.outdoors.encoder")

OUTDOOR_TIME_SCHEMA = "outdoor-time"


def format_utc_millis(value: datetime) -> str:
    """Format an aware datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC."""
    utc = value.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def end_date_time(day: date, tz: tzinfo, offset_hours: int = 5) -> datetime:
    """Return the UTC instant reported as the end of ``day``."""
    next_midnight = local_midnight(day + timedelta(days=1), tz).astimezone(timezone.utc)
    return next_midnight - timedelta(hours=offset_hours)


class UploadEncoder:
    """Build Observation resources and batch Bundles for outdoor aggregates.

    Args:
        patient_id: FHIR Patient id the observations belong to.
        device_id:  FHIR Device id recorded on each observation.
        tz:         The user's timezone; aggregate dates are local dates.
        config:     Tuning config; the cached one if None.
    """

    def __init__(
        self,
        patient_id: str,
        device_id: str,
        tz: tzinfo = timezone.utc,
        config: OutdoorsConfig | None = None,
    ) -> None:
        cfg = config or get_outdoors_config()
        self.patient_id = patient_id
        self.device_id = device_id
        self.tz = tz
        self._offset_hours = cfg.upload.end_time_offset_hours
        self._identifier_system = cfg.upload.identifier_system
        self._schema: SchemaEntry = cfg.schema(cfg.upload.observation_schema)
        if self._schema.disguised_as:
            logger.debug(
                "Observation code for %s is disguised as %s (%s)",
                self._schema.name, self._schema.disguised_as, self._schema.code,
            )

    def payload(self, aggregate: DailyOutdoorAggregate) -> dict[str, Any]:
        """Return the inner OMH-style payload for one aggregate.

        Raises:
            SerializationFailure: If the minute total is not a non-negative int.
        """
        minutes = aggregate.total_outdoor_minutes
        if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes < 0:
            raise SerializationFailure(
                f"Aggregate {aggregate.date} has invalid total {minutes!r}"
            )
        return {
            "end_date_time": format_utc_millis(
                end_date_time(aggregate.date, self.tz, self._offset_hours)
            ),
            "duration": {"value": minutes, "unit": "min"},
        }

    def encode(self, aggregate: DailyOutdoorAggregate) -> dict[str, Any]:
        """Return the Observation resource carrying ``aggregate``.

        Raises:
            SerializationFailure: If the payload cannot be JSON-encoded.
        """
        try:
            raw = json.dumps(self.payload(aggregate), allow_nan=False).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise SerializationFailure(
                f"Could not serialize aggregate for {aggregate.date}: {exc}"
            ) from exc

        return {
            "resourceType": "Observation",
            "status": "final",
            "subject": {"reference": f"Patient/{self.patient_id}"},
            "device": {"reference": f"Device/{self.device_id}"},
            "code": {"coding": [self._schema.coding]},
            "valueAttachment": {
                "contentType": "application/json",
                "data": base64.b64encode(raw).decode("ascii"),
            },
            "identifier": [
                {"value": str(uuid.uuid4()), "system": self._identifier_system}
            ],
        }

    def entry(self, aggregate: DailyOutdoorAggregate) -> UploadBatchEntry:
        return UploadBatchEntry(aggregate=aggregate, observation=self.encode(aggregate))

    @staticmethod
    def bundle(entries: Sequence[UploadBatchEntry]) -> dict[str, Any]:
        """Wrap entries, in order, into one ``batch`` Bundle."""
        return {
            "resourceType": "Bundle",
            "type": "batch",
            "entry": [e.as_bundle_entry() for e in entries],
        }


def decode_payload(observation: dict[str, Any]) -> dict[str, Any]:
    """Inverse of ``UploadEncoder.encode`` for the attachment payload.

    Raises:
        ValueError: If the observation carries no decodable attachment.
    """
    try:
        data = observation["valueAttachment"]["data"]
        return json.loads(base64.b64decode(data, validate=True))
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError(f"Observation has no decodable payload: {exc}") from exc
