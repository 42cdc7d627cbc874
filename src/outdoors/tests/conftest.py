"""Shared fixtures and builders for outdoor-time engine tests."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from src.outdoors.accumulator import IntervalAccumulator
from src.outdoors.auth import StaticTokenProvider
from src.outdoors.base import InMemorySampleStore, LocationSample
from src.outdoors.classifier import HomeZoneClassifier
from src.outdoors.config_loader import OutdoorsConfig, load_outdoors_config
from src.outdoors.encoder import UploadEncoder
from src.outdoors.store import InMemoryAggregateStore
from src.outdoors.sync.fhir_client import FHIRClient
from src.outdoors.sync.pipeline import BatchUploadPipeline

UTC = timezone.utc

# Canonical test day and "now" (noon the day after)
TEST_DAY = date(2025, 4, 21)
TEST_NOW = datetime(2025, 4, 22, 12, 0, tzinfo=UTC)

FHIR_BASE_URL = "https://fhir.test"
FHIR_ENDPOINT = "https://fhir.test/fhir/r5/"
TEST_TOKEN = "test-access-token"
TEST_PATIENT_ID = "40010"
TEST_DEVICE_ID = "70001"


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def at(hour: int, minute: int = 0, day: date = TEST_DAY) -> datetime:
    """UTC instant on ``day``."""
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=UTC)


def make_sample(
    hour: int,
    minute: int = 0,
    *,
    day: date = TEST_DAY,
    home: bool = False,
    accuracy: float | None = 5.0,
) -> LocationSample:
    """A recorded sample; away with a precise fix (outdoors) by default."""
    return LocationSample(
        timestamp=at(hour, minute, day),
        latitude=40.0,
        longitude=-75.0,
        horizontal_accuracy_m=accuracy,
        is_home=home,
    )


def batch_response(*statuses: str | tuple[str, str]) -> dict[str, Any]:
    """Build a batch-response Bundle.  A tuple entry is (status, issue text)."""
    entries = []
    for item in statuses:
        status, text = item if isinstance(item, tuple) else (item, None)
        response: dict[str, Any] = {"status": status}
        if text:
            response["outcome"] = {
                "resourceType": "OperationOutcome",
                "issue": [{"severity": "error", "details": {"text": text}}],
            }
        entries.append({"response": response})
    return {"resourceType": "Bundle", "type": "batch-response", "entry": entries}


def http_response(status_code: int = 200, **kwargs: Any) -> httpx.Response:
    return httpx.Response(
        status_code, request=httpx.Request("POST", FHIR_ENDPOINT), **kwargs
    )


def mock_http_client(*responses: httpx.Response) -> MagicMock:
    """An httpx.AsyncClient stand-in whose ``post`` returns ``responses`` in order."""
    client = MagicMock(spec=httpx.AsyncClient)
    client.post = AsyncMock(side_effect=list(responses))
    return client


def posted_bundle(client: MagicMock, call: int = -1) -> dict[str, Any]:
    return client.post.call_args_list[call].kwargs["json"]


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def outdoors_config() -> OutdoorsConfig:
    """Load the real tuning config for tests."""
    return load_outdoors_config()


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def classifier(outdoors_config: OutdoorsConfig) -> HomeZoneClassifier:
    return HomeZoneClassifier(config=outdoors_config)


@pytest.fixture
def accumulator(classifier: HomeZoneClassifier) -> IntervalAccumulator:
    return IntervalAccumulator(classifier)


@pytest.fixture
def sample_store() -> InMemorySampleStore:
    return InMemorySampleStore(tz=UTC)


@pytest.fixture
def aggregate_store() -> InMemoryAggregateStore:
    return InMemoryAggregateStore()


@pytest.fixture
def encoder(outdoors_config: OutdoorsConfig) -> UploadEncoder:
    return UploadEncoder(TEST_PATIENT_ID, TEST_DEVICE_ID, tz=UTC, config=outdoors_config)


@pytest.fixture
def seeded_store(aggregate_store: InMemoryAggregateStore):
    """Coroutine factory: create aggregates for consecutive days from TEST_DAY."""

    async def _seed(*minutes: int) -> InMemoryAggregateStore:
        for offset, value in enumerate(minutes):
            await aggregate_store.create(TEST_DAY + timedelta(days=offset), value)
        return aggregate_store

    return _seed


def make_pipeline(
    store: InMemoryAggregateStore,
    encoder: UploadEncoder,
    http_client: MagicMock,
    token: str | None = TEST_TOKEN,
) -> BatchUploadPipeline:
    client = FHIRClient(FHIR_BASE_URL, http_client=http_client)
    return BatchUploadPipeline(store, encoder, client, StaticTokenProvider(token))
