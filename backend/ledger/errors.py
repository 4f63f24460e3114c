"""
Error taxonomy for the match ledger.

Every error is recoverable by the caller; none of them is raised after a
partial write, the surrounding transaction is rolled back first.
"""
from __future__ import annotations

from typing import Any, Optional


class LedgerError(Exception):
    """Base class. ``code`` is machine-readable, ``status_code`` maps to HTTP."""

    status_code = 400
    code = "ledger_error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(LedgerError):
    status_code = 422
    code = "validation_error"


class InvalidLineupError(ValidationError):
    code = "invalid_lineup"


class ScoreOverrideError(ValidationError):
    code = "score_override_rejected"


class NotFoundError(LedgerError):
    status_code = 404
    code = "not_found"


class ReferencedByEventError(LedgerError):
    status_code = 409
    code = "referenced_by_event"

    def __init__(self, entry_id: int, event_ids: list[int]) -> None:
        super().__init__(
            f"Lineup entry {entry_id} is referenced by events {event_ids}; delete those events first",
            entry_id=entry_id,
            event_ids=event_ids,
        )


class MatchClosedError(LedgerError):
    status_code = 409
    code = "match_closed"

    def __init__(self, match_id: int, status: str) -> None:
        super().__init__(
            f"Match {match_id} is {status}; reset its status to 'created' before editing",
            match_id=match_id,
            status=status,
            hint="POST /v1/matches/{id}/reset-status",
        )


class InvalidTransitionError(LedgerError):
    status_code = 409
    code = "invalid_transition"


class ConflictError(LedgerError):
    status_code = 409
    code = "conflict"

    def __init__(self, message: str = "Match was modified concurrently; reload and retry", **details: Any) -> None:
        super().__init__(message, **details)


class SyncDisabledError(LedgerError):
    status_code = 409
    code = "sync_disabled"


class SyncTransientError(LedgerError):
    status_code = 503
    code = "sync_unavailable"

    def __init__(self, message: str, retry_after: Optional[float] = None, **details: Any) -> None:
        super().__init__(message, **details)
        self.retry_after = retry_after
