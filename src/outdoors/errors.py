"""Exception taxonomy for the outdoor-time pipeline.

Every failure the pipeline can meet is one of these.  They are raised close
to where they happen and converted into an ``UploadResult`` at the pipeline
boundary, so nothing here is ever fatal to the process.
"""

from __future__ import annotations

from datetime import date


class OutdoorSyncError(Exception):
    """Base exception for the outdoor-time engine."""

    code = "OUTDOOR_SYNC_ERROR"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotAuthenticated(OutdoorSyncError):
    """No access token is available."""

    code = "NOT_AUTHENTICATED"

    def __init__(self, message: str = "User not authenticated. Cannot upload outdoor time.") -> None:
        super().__init__(message)


class NetworkFailure(OutdoorSyncError):
    """Transport error or timeout talking to the FHIR endpoint."""

    code = "NETWORK_FAILURE"


class ServerRejected(OutdoorSyncError):
    """Non-2xx outer status, or a body that is not a batch-response Bundle."""

    code = "SERVER_REJECTED"

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class EntryRejected(OutdoorSyncError):
    """One entry of an otherwise accepted batch came back without a 2xx status."""

    code = "ENTRY_REJECTED"

    def __init__(self, status: str, reason: str, consent_related: bool = False) -> None:
        self.status = status
        self.reason = reason
        self.consent_related = consent_related
        label = "consent rejected" if consent_related else "rejected"
        super().__init__(f"Entry {label} (status {status}): {reason}")


class SerializationFailure(OutdoorSyncError):
    """An aggregate could not be encoded into an Observation payload."""

    code = "SERIALIZATION_FAILURE"


class AlreadyAggregated(OutdoorSyncError):
    """An aggregate already exists for the day.  Benign; callers skip."""

    code = "ALREADY_AGGREGATED"

    def __init__(self, day: date) -> None:
        self.day = day
        super().__init__(f"Outdoor aggregate for {day.isoformat()} already exists")
