"""Tests for the Observation encoder and batch Bundle shape."""

from __future__ import annotations

import base64
import json
from datetime import date, datetime, timezone
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo

import pytest

from src.outdoors.base import DailyOutdoorAggregate
from src.outdoors.encoder import (
    UploadEncoder,
    decode_payload,
    end_date_time,
    format_utc_millis,
)
from src.outdoors.errors import SerializationFailure
from src.outdoors.tests.conftest import TEST_DAY

NEW_YORK = ZoneInfo("America/New_York")


def _aggregate(minutes: object = 42, day: date = TEST_DAY) -> DailyOutdoorAggregate:
    return DailyOutdoorAggregate(id=uuid4(), date=day, total_outdoor_minutes=minutes)


# ---------------------------------------------------------------------------
# end_date_time
# ---------------------------------------------------------------------------


class TestEndDateTime:
    def test_utc_day(self) -> None:
        assert end_date_time(TEST_DAY, timezone.utc) == datetime(
            2025, 4, 21, 19, 0, tzinfo=timezone.utc
        )

    def test_new_york_daylight_time(self) -> None:
        # Midnight 22 Apr EDT = 04:00Z, minus 5 h
        value = end_date_time(TEST_DAY, NEW_YORK)
        assert format_utc_millis(value) == "2025-04-21T23:00:00.000Z"

    def test_new_york_winter(self) -> None:
        # Midnight 16 Jan EST = 05:00Z, minus 5 h
        value = end_date_time(date(2025, 1, 15), NEW_YORK)
        assert format_utc_millis(value) == "2025-01-16T00:00:00.000Z"

    def test_offset_is_configurable(self) -> None:
        value = end_date_time(TEST_DAY, timezone.utc, offset_hours=0)
        assert value == datetime(2025, 4, 22, 0, 0, tzinfo=timezone.utc)

    def test_millisecond_formatting(self) -> None:
        value = datetime(2025, 4, 21, 23, 0, 1, 987654, tzinfo=timezone.utc)
        assert format_utc_millis(value) == "2025-04-21T23:00:01.987Z"


# ---------------------------------------------------------------------------
# Observation
# ---------------------------------------------------------------------------


class TestEncode:
    def test_payload_shape(self, encoder: UploadEncoder) -> None:
        payload = encoder.payload(_aggregate(42))
        assert payload == {
            "end_date_time": "2025-04-21T19:00:00.000Z",
            "duration": {"value": 42, "unit": "min"},
        }

    def test_attachment_decodes_to_payload(self, encoder: UploadEncoder) -> None:
        aggregate = _aggregate(42)
        observation = encoder.encode(aggregate)
        assert decode_payload(observation) == encoder.payload(aggregate)

    def test_attachment_is_single_base64(self, encoder: UploadEncoder) -> None:
        data = encoder.encode(_aggregate(7))["valueAttachment"]["data"]
        decoded = json.loads(base64.b64decode(data))
        assert decoded["duration"]["value"] == 7

    def test_observation_fields(self, encoder: UploadEncoder) -> None:
        observation = encoder.encode(_aggregate())
        assert observation["resourceType"] == "Observation"
        assert observation["status"] == "final"
        assert observation["subject"] == {"reference": "Patient/40010"}
        assert observation["device"] == {"reference": "Device/70001"}
        assert observation["valueAttachment"]["contentType"] == "application/json"

    def test_coding_from_schema_registry(self, encoder: UploadEncoder) -> None:
        coding = encoder.encode(_aggregate())["code"]["coding"]
        assert coding == [
            {"system": "https://w3id.org/openmhealth", "code": "omh:blood-glucose:4.0"}
        ]

    def test_identifier_is_fresh_uuid(self, encoder: UploadEncoder) -> None:
        aggregate = _aggregate()
        first = encoder.encode(aggregate)["identifier"][0]
        second = encoder.encode(aggregate)["identifier"][0]
        assert first["system"] == "https://ehr.example.com"
        assert UUID(first["value"]).version == 4
        assert first["value"] != second["value"]

    def test_zero_minutes_encodes(self, encoder: UploadEncoder) -> None:
        assert decode_payload(encoder.encode(_aggregate(0)))["duration"]["value"] == 0

    @pytest.mark.parametrize("bad", [-1, 12.5, "30", True, None])
    def test_invalid_total_raises(self, encoder: UploadEncoder, bad: object) -> None:
        with pytest.raises(SerializationFailure):
            encoder.encode(_aggregate(bad))


# ---------------------------------------------------------------------------
# Bundle
# ---------------------------------------------------------------------------


class TestBundle:
    def test_batch_bundle_keeps_order(self, encoder: UploadEncoder) -> None:
        aggregates = [_aggregate(10), _aggregate(20, day=date(2025, 4, 22))]
        entries = [encoder.entry(a) for a in aggregates]
        bundle = UploadEncoder.bundle(entries)

        assert bundle["resourceType"] == "Bundle"
        assert bundle["type"] == "batch"
        assert [decode_payload(e["resource"])["duration"]["value"] for e in bundle["entry"]] == [10, 20]
        for entry in bundle["entry"]:
            assert entry["request"] == {"method": "POST", "url": "Observation"}

    def test_entry_keeps_aggregate(self, encoder: UploadEncoder) -> None:
        aggregate = _aggregate()
        assert encoder.entry(aggregate).aggregate is aggregate


class TestDecodePayload:
    def test_missing_attachment(self) -> None:
        with pytest.raises(ValueError):
            decode_payload({"resourceType": "Observation"})

    def test_garbage_data(self) -> None:
        with pytest.raises(ValueError):
            decode_payload({"valueAttachment": {"data": "!!not base64!!"}})
