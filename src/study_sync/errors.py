"""Exception hierarchy for the progress synchronization engine.

Remote failures carry the HTTP status and raw body so callers can log
them; local refusals (rate limit, disabled sync) never touch the network.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any


class SyncError(Exception):
    """Base exception for study_sync.

    Attributes:
        details: Optional structured information (status, ids, reset time).
    """

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.details = details or {}


class RemoteError(SyncError):
    """Non-2xx response from the document store."""

    def __init__(
        self,
        message: str,
        *,
        status: int,
        body: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        merged = {"status": status}
        merged.update(details or {})
        super().__init__(f"{message} (HTTP {status})", details=merged)
        self.status = status
        self.body = body


class NotFoundError(RemoteError):
    """The document does not exist (HTTP 404)."""


class ConflictError(RemoteError):
    """The document was modified concurrently (HTTP 409)."""


class InvalidCredentialError(SyncError):
    """The credential was rejected. Never retried automatically."""


class RateLimitedError(SyncError):
    """The request budget is exhausted until ``reset_at``."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        *,
        reset_at: datetime | None = None,
    ) -> None:
        if reset_at is not None:
            message = f"{message} (resets at {reset_at.isoformat()})"
        super().__init__(
            message,
            details={
                "reset_at": reset_at.isoformat() if reset_at else None
            },
        )
        self.reset_at = reset_at


class MalformedRemoteDataError(SyncError):
    """Remote document content does not match the progress schema."""


class SyncDisabledError(SyncError):
    """An explicit sync action was requested while sync is disabled."""
