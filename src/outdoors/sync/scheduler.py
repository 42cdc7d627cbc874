"""Retry scheduler for outdoor-time uploads.

Two states, IDLE and RUNNING.  A run (back-fill, then upload) starts on a
periodic tick or on an explicit foreground trigger and ends when the
pipeline finishes, whatever the outcome, or when the caller's deadline
expires.  On expiry the in-flight work (normally the HTTP POST) is cancelled
and the attempt is reported as failed.

The next periodic tick is always scheduled before the current one acts, so a
failed or expired run never stops future attempts.

The re-entrancy guard is an in-memory flag: a trigger that arrives while a
run is in progress is a no-op.  It does not protect against a second process
uploading the same aggregates.

Cadence (from outdoors_config.yaml):
    interval_seconds: 7200 (every 2 hours)
    deadline_seconds: 25   (background-task budget)
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from src.outdoors.base import utc_now
from src.outdoors.config_loader import OutdoorsConfig, get_outdoors_config
from src.outdoors.sync.backfill import BackfillReport, OutdoorBackfill
from src.outdoors.sync.pipeline import BatchUploadPipeline, UploadResult

logger = logging.getLogger("daylight.outdoors.sync.scheduler")

DEADLINE_EXPIRED = "DEADLINE_EXPIRED"


class SchedulerState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"


@dataclass
class SchedulerRun:
    """Result of one scheduled or foreground attempt.

    Attributes:
        trigger:     'periodic' or 'foreground'.
        upload:      Pipeline result (an error result on deadline expiry).
        backfill:    Back-fill report, None if it did not finish.
        started_at:  UTC timestamp the attempt started.
        finished_at: UTC timestamp the attempt ended.
    """

    trigger: str
    upload: UploadResult
    backfill: BackfillReport | None = None
    started_at: datetime = field(default_factory=utc_now)
    finished_at: datetime = field(default_factory=utc_now)

    @property
    def success(self) -> bool:
        return self.upload.success


class RetryScheduler:
    """Drive back-fill and upload on a fixed cadence and on demand.

    Usage::

        scheduler = RetryScheduler(pipeline, backfill)
        scheduler.start()                           # inside a running loop
        run = await scheduler.trigger_foreground()  # button press
        await scheduler.stop()
    """

    def __init__(
        self,
        pipeline: BatchUploadPipeline,
        backfill: OutdoorBackfill | None = None,
        interval_seconds: float | None = None,
        deadline_seconds: float | None = None,
        config: OutdoorsConfig | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            pipeline:         Upload pipeline invoked on each run.
            backfill:         Optional back-fill job run before each upload.
            interval_seconds: Periodic cadence.  Defaults to config.
            deadline_seconds: Default deadline for periodic runs.  Defaults
                              to config; None means no deadline.
            config:           Tuning config; the cached one if None.
        """
        cfg = (config or get_outdoors_config()).scheduler
        self._pipeline = pipeline
        self._backfill = backfill
        self._interval = interval_seconds if interval_seconds is not None else cfg.interval_seconds
        self._deadline = deadline_seconds if deadline_seconds is not None else cfg.deadline_seconds
        self._state = SchedulerState.IDLE
        self._handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()
        self._started = False
        self.next_tick_at: datetime | None = None
        self.last_run: SchedulerRun | None = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def interval_seconds(self) -> float:
        return self._interval

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Arrange the first periodic tick.  Must be called inside a running loop."""
        if self._started:
            return
        self._started = True
        self._schedule_next()
        logger.info("Retry scheduler started (every %ss)", self._interval)

    async def stop(self) -> None:
        """Cancel the pending tick and any periodic run still in flight."""
        self._started = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self.next_tick_at = None
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Retry scheduler stopped")

    def _schedule_next(self) -> None:
        if not self._started:
            return
        loop = asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self._interval, self._on_timer)
        self.next_tick_at = utc_now() + timedelta(seconds=self._interval)
        logger.debug("Next outdoor upload tick at %s", self.next_tick_at.isoformat())

    def _on_timer(self) -> None:
        task = asyncio.get_running_loop().create_task(self.tick())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    async def tick(self) -> SchedulerRun | None:
        """Periodic trigger: schedule the next tick, then run."""
        self._schedule_next()
        return await self._attempt("periodic", self._deadline)

    async def trigger_foreground(self, deadline_seconds: float | None = None) -> SchedulerRun | None:
        """Explicit trigger (app foregrounded, button press).

        Returns:
            The run, or None if a run was already in progress.
        """
        return await self._attempt("foreground", deadline_seconds)

    async def _attempt(self, trigger: str, deadline_seconds: float | None) -> SchedulerRun | None:
        if self._state is SchedulerState.RUNNING:
            logger.info("Outdoor upload already running; %s trigger ignored", trigger)
            return None

        self._state = SchedulerState.RUNNING
        started_at = utc_now()
        logger.info("Outdoor upload run started (%s, deadline=%s)", trigger, deadline_seconds)
        try:
            run = await asyncio.wait_for(self._work(trigger), timeout=deadline_seconds)
        except asyncio.TimeoutError:
            logger.warning("Outdoor upload %s run hit its %ss deadline", trigger, deadline_seconds)
            run = SchedulerRun(
                trigger=trigger,
                upload=UploadResult(
                    status="error",
                    message="Deadline expired before the upload completed.",
                    error_code=DEADLINE_EXPIRED,
                ),
            )
        except Exception as exc:
            logger.exception("Outdoor upload %s run crashed: %s", trigger, exc)
            run = SchedulerRun(
                trigger=trigger,
                upload=UploadResult(status="error", message=str(exc), error_code="INTERNAL_ERROR"),
            )
        finally:
            self._state = SchedulerState.IDLE

        run.started_at = started_at
        run.finished_at = utc_now()
        self.last_run = run
        return run

    async def _work(self, trigger: str) -> SchedulerRun:
        report = await self._backfill.run() if self._backfill else None
        upload = await self._pipeline.run()
        return SchedulerRun(trigger=trigger, upload=upload, backfill=report)
