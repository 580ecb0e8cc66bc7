"""Tests for sync/rate_limit.py: Open/Limited tracking and persistence.

Covers:
- is_rate_limit_signal() for remaining=0, 429, and 403 bodies
- observe() transitions driven by response headers
- Reset time derivation (epoch header, retry-after, buffer)
- Persistence of reset_at across tracker instances
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from conftest import FIXED_NOW, FakeClock
from study_sync.errors import RateLimitedError
from study_sync.storage import RATE_LIMIT_KEY, MemoryStore
from study_sync.sync.rate_limit import RateLimitTracker, is_rate_limit_signal


def _response(status=200, headers=None, text=""):
    response = Mock()
    response.status_code = status
    response.headers = headers or {}
    response.text = text
    return response


def _epoch(dt: datetime) -> str:
    return str(int(dt.timestamp()))


# ---------------------------------------------------------------------------
# is_rate_limit_signal tests
# ---------------------------------------------------------------------------


class TestIsRateLimitSignal:
    """Tests for is_rate_limit_signal()."""

    def test_remaining_zero(self):
        assert is_rate_limit_signal(200, {"x-ratelimit-remaining": "0"})

    def test_remaining_header_case_insensitive(self):
        assert is_rate_limit_signal(403, {"X-RateLimit-Remaining": "0"})

    def test_remaining_nonzero_is_not_signal(self):
        assert not is_rate_limit_signal(200, {"x-ratelimit-remaining": "12"})

    def test_429(self):
        assert is_rate_limit_signal(429, {})

    def test_403_with_rate_limit_body(self):
        assert is_rate_limit_signal(
            403, {}, '{"message": "API rate limit exceeded for user"}'
        )

    def test_plain_403_is_not_signal(self):
        assert not is_rate_limit_signal(403, {}, '{"message": "Forbidden"}')

    def test_other_errors_are_not_signals(self):
        assert not is_rate_limit_signal(500, {})
        assert not is_rate_limit_signal(404, None)


# ---------------------------------------------------------------------------
# RateLimitTracker tests
# ---------------------------------------------------------------------------


class TestRateLimitTracker:
    """Tests for RateLimitTracker state transitions."""

    def test_starts_open(self, tracker):
        assert not tracker.is_limited()
        assert tracker.reset_at is None
        tracker.ensure_open()

    def test_remaining_zero_enters_limited(self, tracker, memory_store):
        reset = FIXED_NOW + timedelta(minutes=10)

        signalled = tracker.observe(
            _response(
                200,
                {
                    "x-ratelimit-remaining": "0",
                    "x-ratelimit-reset": _epoch(reset),
                },
            )
        )

        assert signalled
        assert tracker.is_limited()
        assert tracker.reset_at == reset
        assert memory_store.get(RATE_LIMIT_KEY) == reset.isoformat()

    def test_ensure_open_raises_while_limited(self, tracker):
        tracker.mark_limited(FIXED_NOW + timedelta(minutes=5))

        with pytest.raises(RateLimitedError) as exc_info:
            tracker.ensure_open()

        assert exc_info.value.reset_at == FIXED_NOW + timedelta(minutes=5)

    def test_retry_after_used_without_reset_header(self, tracker):
        tracker.observe(_response(429, {"Retry-After": "120"}))

        assert tracker.reset_at == FIXED_NOW + timedelta(seconds=120)

    def test_buffer_added_to_reset(self, memory_store, clock):
        tracker = RateLimitTracker(memory_store, buffer_seconds=30, clock=clock)
        reset = FIXED_NOW + timedelta(minutes=1)

        tracker.observe(
            _response(403, {"x-ratelimit-reset": _epoch(reset)}, "rate limit")
        )

        assert tracker.reset_at == reset + timedelta(seconds=30)

    def test_signal_without_reset_keeps_previous(self, tracker):
        earlier = FIXED_NOW + timedelta(minutes=3)
        tracker.mark_limited(earlier)

        tracker.observe(_response(429, {}))

        assert tracker.reset_at == earlier

    def test_signal_without_any_reset_does_not_gate(self, tracker, memory_store):
        tracker.observe(_response(429, {}))

        assert not tracker.is_limited()
        assert RATE_LIMIT_KEY not in memory_store.data

    def test_success_clears(self, tracker, memory_store):
        tracker.mark_limited(FIXED_NOW - timedelta(seconds=1))

        tracker.observe(_response(200, {"x-ratelimit-remaining": "4999"}))

        assert tracker.reset_at is None
        assert RATE_LIMIT_KEY not in memory_store.data

    def test_error_without_signal_leaves_state(self, tracker):
        until = FIXED_NOW + timedelta(minutes=1)
        tracker.mark_limited(until)

        assert not tracker.observe(_response(500, {}))
        assert tracker.reset_at == until

    def test_limit_expires_with_clock(self, memory_store):
        clock = FakeClock()
        tracker = RateLimitTracker(memory_store, clock=clock)
        tracker.mark_limited(FIXED_NOW + timedelta(seconds=60))

        assert tracker.is_limited()
        clock.advance(61)
        assert not tracker.is_limited()

    def test_unparseable_reset_header_falls_back(self, tracker):
        tracker.observe(
            _response(
                429,
                {"x-ratelimit-reset": "soon", "retry-after": "10"},
            )
        )

        assert tracker.reset_at == FIXED_NOW + timedelta(seconds=10)


class TestRateLimitPersistence:
    """reset_at survives a new tracker over the same store."""

    def test_reloaded_from_store(self, clock):
        store = MemoryStore()
        until = FIXED_NOW + timedelta(minutes=15)
        RateLimitTracker(store, clock=clock).mark_limited(until)

        reloaded = RateLimitTracker(store, clock=clock)

        assert reloaded.is_limited()
        assert reloaded.reset_at == until

    def test_naive_stored_value_read_as_utc(self, clock):
        store = MemoryStore({RATE_LIMIT_KEY: "2025-01-10T13:00:00"})

        tracker = RateLimitTracker(store, clock=clock)

        assert tracker.reset_at == datetime(
            2025, 1, 10, 13, 0, tzinfo=timezone.utc
        )

    def test_unreadable_value_dropped(self, clock):
        store = MemoryStore({RATE_LIMIT_KEY: "not-a-date"})

        tracker = RateLimitTracker(store, clock=clock)

        assert tracker.reset_at is None
        assert RATE_LIMIT_KEY not in store.data
