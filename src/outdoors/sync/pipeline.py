"""Batch upload pipeline for daily outdoor aggregates.

One run:
1. Make sure a bearer token is available (refreshing if needed)
2. Fetch every unuploaded aggregate, oldest day first
3. Encode each into an Observation; skip the ones that cannot be encoded
4. POST a single batch Bundle
5. Reconcile the batch-response entry by entry
6. Mark only the accepted aggregates as uploaded

Rejected entries stay unuploaded and are retried by the next run.  The
response carries no correlation id, so entry *i* of the response is matched
to entry *i* of the request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Sequence
from uuid import UUID

from src.outdoors.base import (
    AuthProvider,
    DailyOutdoorAggregate,
    UploadBatchEntry,
    utc_now,
)
from src.outdoors.encoder import UploadEncoder
from src.outdoors.errors import (
    EntryRejected,
    NotAuthenticated,
    OutdoorSyncError,
    SerializationFailure,
)
from src.outdoors.store import DailyAggregateStore
from src.outdoors.sync.fhir_client import FHIRClient

logger = logging.getLogger("daylight.outdoors.sync.pipeline")

_CONSENT_MARKERS = ("consent",)


@dataclass
class EntryFailure:
    """One aggregate that was not accepted in this run.

    Attributes:
        date:            Day of the aggregate.
        status:          Entry status from the server, None if never sent.
        reason:          Human-readable reason.
        code:            Error code from the taxonomy.
        consent_related: True when the server refused for lack of consent.
    """

    date: date
    status: str | None
    reason: str
    code: str = EntryRejected.code
    consent_related: bool = False


@dataclass
class UploadResult:
    """Result of one pipeline run.

    Attributes:
        status:       'success', 'partial', 'error'.
        message:      Human-readable summary.
        attempted:    Aggregates sent in the batch.
        uploaded_ids: Aggregates marked uploaded by this run.
        failures:     Aggregates left for the next run.
        error_code:   Taxonomy code when status == 'error'.
        finished_at:  UTC timestamp of completion.
    """

    status: str = "success"
    message: str = ""
    attempted: int = 0
    uploaded_ids: list[UUID] = field(default_factory=list)
    failures: list[EntryFailure] = field(default_factory=list)
    error_code: str | None = None
    finished_at: datetime = field(default_factory=utc_now)

    @property
    def success(self) -> bool:
        return self.status == "success"

    @classmethod
    def failed(cls, exc: OutdoorSyncError, attempted: int = 0) -> "UploadResult":
        return cls(status="error", message=exc.message, attempted=attempted, error_code=exc.code)


def _is_consent_reason(reason: str) -> bool:
    lowered = reason.lower()
    return any(marker in lowered for marker in _CONSENT_MARKERS)


def _issue_text(response: dict[str, Any]) -> str:
    outcome = response.get("outcome") or {}
    texts = []
    for issue in outcome.get("issue") or []:
        text = ((issue or {}).get("details") or {}).get("text")
        if text:
            texts.append(str(text))
    return "; ".join(texts)


def reconcile(
    entries: Sequence[UploadBatchEntry], response_bundle: dict[str, Any]
) -> tuple[list[UploadBatchEntry], list[tuple[UploadBatchEntry, EntryRejected]]]:
    """Split request entries into accepted ones and per-entry rejections.

    Matching is positional.  A request entry with no counterpart in the
    response is treated as rejected.

    Returns:
        ``(accepted, rejected)`` where ``rejected`` pairs each request entry
        with the rejection it met.
    """
    response_entries = response_bundle.get("entry") or []
    if len(response_entries) != len(entries):
        logger.warning(
            "batch-response has %d entries for %d requests; matching by position",
            len(response_entries), len(entries),
        )

    accepted: list[UploadBatchEntry] = []
    rejected: list[tuple[UploadBatchEntry, EntryRejected]] = []
    for index, entry in enumerate(entries):
        if index >= len(response_entries):
            rejection = EntryRejected(status="missing", reason="No response entry")
        else:
            response = (response_entries[index] or {}).get("response") or {}
            status = str(response.get("status", ""))
            if status.startswith("2"):
                accepted.append(entry)
                continue
            reason = _issue_text(response) or f"Entry status: {status or 'missing'}"
            rejection = EntryRejected(
                status=status, reason=reason, consent_related=_is_consent_reason(reason)
            )
        rejected.append((entry, rejection))
    return accepted, rejected


class BatchUploadPipeline:
    """Upload unsent daily aggregates in one FHIR batch.

    Usage::

        pipeline = BatchUploadPipeline(store, encoder, client, auth)
        result = await pipeline.run()
    """

    def __init__(
        self,
        store: DailyAggregateStore,
        encoder: UploadEncoder,
        client: FHIRClient,
        auth: AuthProvider,
    ) -> None:
        self._store = store
        self._encoder = encoder
        self._client = client
        self._auth = auth

    async def run(self) -> UploadResult:
        """Execute one upload attempt.  Never raises taxonomy errors."""
        try:
            result = await self._run()
        except OutdoorSyncError as exc:
            logger.error("Outdoor time upload failed: %s", exc.message)
            return UploadResult.failed(exc)

        log = logger.info if result.status == "success" else logger.warning
        log("Outdoor time upload %s: %s", result.status, result.message)
        return result

    async def _token(self) -> str:
        await self._auth.refresh_if_needed()
        token = self._auth.current_access_token()
        if not token:
            raise NotAuthenticated()
        return token

    def _prepare(
        self, aggregates: Sequence[DailyOutdoorAggregate]
    ) -> tuple[list[UploadBatchEntry], list[EntryFailure]]:
        entries: list[UploadBatchEntry] = []
        failures: list[EntryFailure] = []
        for aggregate in aggregates:
            try:
                entries.append(self._encoder.entry(aggregate))
            except SerializationFailure as exc:
                logger.warning("Skipping aggregate %s: %s", aggregate.date, exc.message)
                failures.append(
                    EntryFailure(
                        date=aggregate.date, status=None, reason=exc.message, code=exc.code
                    )
                )
        return entries, failures

    async def _run(self) -> UploadResult:
        token = await self._token()

        pending = await self._store.fetch_unuploaded()
        if not pending:
            return UploadResult(message="No new outdoor time records to upload.")
        logger.info("Found %d outdoor time records to upload", len(pending))

        entries, failures = self._prepare(pending)
        if not entries:
            return UploadResult(
                status="error",
                message="Failed to prepare any outdoor records for upload.",
                failures=failures,
                error_code=SerializationFailure.code,
            )

        response = await self._client.post_bundle(self._encoder.bundle(entries), token)
        accepted, rejected = reconcile(entries, response)

        for entry, rejection in rejected:
            day = entry.aggregate.date
            logger.warning("Aggregate %s not accepted: %s", day, rejection.message)
            failures.append(
                EntryFailure(
                    date=day,
                    status=rejection.status,
                    reason=rejection.reason,
                    consent_related=rejection.consent_related,
                )
            )

        marked = await self._store.mark_uploaded(e.aggregate.id for e in accepted)

        result = UploadResult(
            attempted=len(entries),
            uploaded_ids=sorted(marked.marked, key=str),
            failures=failures,
        )
        total = len(pending)
        if not failures:
            result.message = f"Successfully uploaded {len(accepted)} outdoor time records."
        else:
            result.status = "partial" if accepted else "error"
            if not accepted:
                result.error_code = EntryRejected.code
            consent = sum(1 for f in failures if f.consent_related)
            result.message = (
                f"Uploaded {len(accepted)} of {total} outdoor time records; "
                f"{len(failures)} not accepted"
                + (f" ({consent} for missing consent)" if consent else "")
                + f": {failures[0].reason}"
            )
        return result
