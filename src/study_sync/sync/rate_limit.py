"""Request-budget tracking for the remote document store.

``RateLimitTracker`` is a two-state machine:

* **Open** -- remote operations are permitted.
* **Limited** -- remote operations are refused locally until ``reset_at``.

Every response from the store client is passed to ``observe()``.  An
explicit exhaustion signal (``x-ratelimit-remaining: 0``, HTTP 429, or
HTTP 403 mentioning a rate limit) moves the tracker to Limited; the next
successful response moves it back to Open.  Failed responses without a
signal leave the state untouched.

``reset_at`` is persisted through the ``KeyValueStore`` port so a process
restart does not forget an active limit and burn the exhausted budget
again.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta, timezone
from typing import Any

from ..errors import RateLimitedError
from ..storage import RATE_LIMIT_KEY, KeyValueStore

logger = logging.getLogger(__name__)

REMAINING_HEADER = "x-ratelimit-remaining"
RESET_HEADER = "x-ratelimit-reset"
RETRY_AFTER_HEADER = "retry-after"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _header(headers: Mapping[str, str] | None, name: str) -> str | None:
    """Case-insensitive header lookup that works on plain dicts too."""
    if not headers:
        return None
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, val in headers.items():
        if key.lower() == lowered:
            return val
    return None


def is_rate_limit_signal(
    status: int, headers: Mapping[str, str] | None, body: str = ""
) -> bool:
    """Return ``True`` if a response indicates budget exhaustion."""
    if _header(headers, REMAINING_HEADER) == "0":
        return True
    if status == 429:
        return True
    return status == 403 and "rate limit" in (body or "").lower()


class RateLimitTracker:
    """Track and persist the store's rate-limit window.

    Args:
        store: Persistence port holding ``rate_limited_until``.
        buffer_seconds: Added to server-reported reset times to absorb
            clock skew between client and server.
        clock: Returns the current timezone-aware time.  Tests inject a
            fixed clock.
    """

    def __init__(
        self,
        store: KeyValueStore,
        buffer_seconds: int = 0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._buffer = timedelta(seconds=buffer_seconds)
        self._clock = clock or _utcnow
        self._reset_at = self._load()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def reset_at(self) -> datetime | None:
        return self._reset_at

    def is_limited(self) -> bool:
        """Return ``True`` while ``reset_at`` lies in the future."""
        return self._reset_at is not None and self._clock() < self._reset_at

    def ensure_open(self) -> None:
        """Raise ``RateLimitedError`` if remote operations are refused."""
        if self.is_limited():
            raise RateLimitedError(
                "Remote operations paused by rate limit",
                reset_at=self._reset_at,
            )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def observe(self, response: Any) -> bool:
        """Inspect a response and update the state.

        Args:
            response: Object exposing ``status_code``, ``headers`` and
                ``text`` (a ``requests.Response``).

        Returns:
            ``True`` if the response carried a rate-limit signal.
        """
        status = int(response.status_code)
        headers = response.headers
        body = getattr(response, "text", "") or ""

        if is_rate_limit_signal(status, headers, body):
            self.mark_limited(self._reset_from_headers(headers))
            return True

        if 200 <= status < 300:
            self.clear()
        return False

    def mark_limited(self, reset_at: datetime | None) -> None:
        """Enter Limited.  A ``None`` *reset_at* keeps the previous value."""
        if reset_at is not None:
            self._reset_at = reset_at
        if self._reset_at is None:
            logger.warning(
                "Rate limit signalled without a reset time; "
                "no previous window to keep"
            )
            return
        self._store.set(RATE_LIMIT_KEY, self._reset_at.isoformat())
        logger.warning(
            "Rate limit reached, remote operations paused until %s",
            self._reset_at.isoformat(),
        )

    def clear(self) -> None:
        """Enter Open and drop the persisted window."""
        if self._reset_at is None:
            return
        logger.info("Rate limit window cleared")
        self._reset_at = None
        self._store.remove(RATE_LIMIT_KEY)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _reset_from_headers(
        self, headers: Mapping[str, str] | None
    ) -> datetime | None:
        reset_raw = _header(headers, RESET_HEADER)
        if reset_raw is not None:
            try:
                epoch = int(float(reset_raw))
            except ValueError:
                logger.debug("Ignoring unparseable %s header", RESET_HEADER)
            else:
                return (
                    datetime.fromtimestamp(epoch, tz=timezone.utc)
                    + self._buffer
                )

        retry_raw = _header(headers, RETRY_AFTER_HEADER)
        if retry_raw is not None:
            try:
                seconds = int(retry_raw)
            except ValueError:
                logger.debug(
                    "Ignoring non-numeric %s header", RETRY_AFTER_HEADER
                )
            else:
                return self._clock() + timedelta(seconds=seconds) + self._buffer
        return None

    def _load(self) -> datetime | None:
        raw = self._store.get(RATE_LIMIT_KEY)
        if raw is None:
            return None
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            logger.warning("Dropping unreadable rate limit state: %r", raw)
            self._store.remove(RATE_LIMIT_KEY)
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
