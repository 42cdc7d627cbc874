"""Wire the outdoor-time components together.

One ``OutdoorService`` is built per process (or per test) and passed around
explicitly; none of the components reach for globals.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Any
from zoneinfo import ZoneInfo

import httpx

from src.config import Settings
from src.outdoors.accumulator import IntervalAccumulator, day_horizon
from src.outdoors.auth import OAuthTokenProvider, OAuthTokens, StaticTokenProvider
from src.outdoors.base import (
    AuthProvider,
    DayTotals,
    HomeZone,
    InMemorySampleStore,
    LocationSample,
    SampleStore,
    StaticHomeZoneProvider,
    utc_now,
)
from src.outdoors.classifier import HomeZoneClassifier
from src.outdoors.config_loader import OutdoorsConfig, get_outdoors_config
from src.outdoors.encoder import UploadEncoder
from src.outdoors.export import export_day_csv
from src.outdoors.store import (
    DailyAggregateStore,
    InMemoryAggregateStore,
    PostgresAggregateStore,
    PostgresSampleStore,
)
from src.outdoors.sync.backfill import OutdoorBackfill
from src.outdoors.sync.fhir_client import FHIRClient
from src.outdoors.sync.pipeline import BatchUploadPipeline
from src.outdoors.sync.scheduler import RetryScheduler

logger = logging.getLogger("daylight.outdoors.service")


@dataclass
class OutdoorService:
    """Every outdoor-time component, constructed once and shared."""

    tz: tzinfo
    classifier: HomeZoneClassifier
    accumulator: IntervalAccumulator
    zones: StaticHomeZoneProvider
    samples: SampleStore
    store: DailyAggregateStore
    auth: AuthProvider
    encoder: UploadEncoder
    pipeline: BatchUploadPipeline
    backfill: OutdoorBackfill
    scheduler: RetryScheduler

    def stamp(self, sample: LocationSample) -> LocationSample:
        """Set ``is_home`` against the zone active right now (recording path)."""
        return self.classifier.stamp(sample, self.zones.current_zone())

    async def day_totals(
        self, day: date, now: datetime | None = None
    ) -> tuple[list[LocationSample], DayTotals]:
        """Samples for ``day`` and the totals computed from that same read.

        Today is evaluated up to ``now``.
        """
        samples = await self.samples.fetch_samples(day)
        horizon = day_horizon(day, now or utc_now(), self.tz)
        return samples, self.accumulator.totals(samples, horizon)

    async def export_day(self, day: date) -> str:
        return export_day_csv(await self.samples.fetch_samples(day), self.classifier)


def _home_zone(settings: Settings) -> HomeZone | None:
    if settings.home_latitude is None or settings.home_longitude is None:
        return None
    return HomeZone(
        latitude=settings.home_latitude,
        longitude=settings.home_longitude,
        radius_m=settings.home_radius_m,
    )


def _auth_provider(settings: Settings, http_client: httpx.AsyncClient | None) -> AuthProvider:
    if settings.oauth_token_url and settings.oauth_refresh_token:
        # Expiry unknown until the first refresh; treat the seed token as stale.
        tokens = OAuthTokens(
            access_token=settings.fhir_access_token,
            refresh_token=settings.oauth_refresh_token,
            expires_at=utc_now(),
        )
        return OAuthTokenProvider(
            settings.oauth_token_url,
            settings.oauth_client_id,
            tokens=tokens,
            http_client=http_client,
        )
    return StaticTokenProvider(settings.fhir_access_token)


def build_service(
    settings: Settings,
    pool: Any = None,
    http_client: httpx.AsyncClient | None = None,
    config: OutdoorsConfig | None = None,
) -> OutdoorService:
    """Construct the component graph.

    Args:
        settings:    Environment settings.
        pool:        asyncpg pool; in-memory stores are used when None.
        http_client: Shared httpx client for the FHIR and token endpoints.
        config:      Tuning config; the cached one if None.
    """
    cfg = config or get_outdoors_config()
    tz = ZoneInfo(settings.timezone)
    lock = asyncio.Lock()

    if pool is not None:
        samples: SampleStore = PostgresSampleStore(pool)
        store: DailyAggregateStore = PostgresAggregateStore(pool, lock=lock)
    else:
        logger.warning("No database configured; outdoor aggregates are kept in memory")
        samples = InMemorySampleStore(tz=tz)
        store = InMemoryAggregateStore(lock=lock)

    classifier = HomeZoneClassifier(config=cfg)
    accumulator = IntervalAccumulator(classifier)
    auth = _auth_provider(settings, http_client)
    encoder = UploadEncoder(
        settings.fhir_patient_id, settings.fhir_device_id, tz=tz, config=cfg
    )
    client = FHIRClient(
        settings.fhir_base_url,
        timeout_seconds=cfg.upload.timeout_seconds,
        http_client=http_client,
    )
    pipeline = BatchUploadPipeline(store, encoder, client, auth)
    backfill = OutdoorBackfill(samples, store, accumulator, tz=tz, config=cfg)
    scheduler = RetryScheduler(pipeline, backfill, config=cfg)

    return OutdoorService(
        tz=tz,
        classifier=classifier,
        accumulator=accumulator,
        zones=StaticHomeZoneProvider(_home_zone(settings)),
        samples=samples,
        store=store,
        auth=auth,
        encoder=encoder,
        pipeline=pipeline,
        backfill=backfill,
        scheduler=scheduler,
    )
