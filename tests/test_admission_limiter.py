"""
Tests for the per-resource admission limiter.

Test Scenarios:
- Limit lookup: exact, parent, default
- Sliding-window invariant over sequential and concurrent callers
- Waits are computed from the oldest timestamp plus buffer
- Independent keys never block each other
- rate.delayed events
"""

import asyncio

import pytest

from conftest import FakeClock

from ghostbrowse.core.events import EventBus, EventType
from ghostbrowse.research.limiter import (
    AdmissionLimiter,
    RateLimit,
    parent_key,
    resource_key,
)


def _limiter(clock: FakeClock, limits=None, **kwargs) -> AdmissionLimiter:
    return AdmissionLimiter(limits or {}, clock=clock, sleep=clock.sleep, **kwargs)


def _window_ok(times_ms, limit: RateLimit) -> bool:
    for t in times_ms:
        inside = [x for x in times_ms if t - limit.window_ms <= x <= t]
        if len(inside) > limit.max_requests:
            return False
    return True


class TestResourceKeys:
    """Key normalization and parent lookup."""

    def test_url_reduced_to_hostname(self):
        assert resource_key("https://News.YCombinator.com/item?id=1") == "news.ycombinator.com"

    def test_bare_domain_lowercased(self):
        assert resource_key("Google.com") == "google.com"

    def test_parent_only_for_three_labels_or_more(self):
        assert parent_key("api.google.com") == "google.com"
        assert parent_key("google.com") is None
        assert parent_key("localhost") is None


class TestLimitLookup:
    """limit_for(): exact, then parent, then default."""

    def test_exact_match(self, fake_clock):
        limiter = _limiter(fake_clock, {"google.com": RateLimit(3, 60_000)})
        assert limiter.limit_for("google.com") == RateLimit(3, 60_000)

    def test_parent_match(self, fake_clock):
        limiter = _limiter(fake_clock, {"google.com": RateLimit(3, 60_000)})
        assert limiter.limit_for("https://www.google.com/search?q=x") == RateLimit(3, 60_000)

    def test_default_when_unknown(self, fake_clock):
        limiter = _limiter(fake_clock, {"default": RateLimit(7, 1000)})
        assert limiter.limit_for("example.org") == RateLimit(7, 1000)

    def test_builtin_default(self, fake_clock):
        limiter = _limiter(fake_clock)
        assert limiter.limit_for("example.org") == RateLimit(20, 60_000)

    def test_invalid_rate_limit_rejected(self):
        with pytest.raises(ValueError):
            RateLimit(0, 1000)
        with pytest.raises(ValueError):
            RateLimit(1, 0)


class TestAwaitSlot:
    """Admission behaviour."""

    @pytest.mark.asyncio
    async def test_under_limit_does_not_wait(self, fake_clock):
        limiter = _limiter(fake_clock, {"a.com": RateLimit(3, 1000)})
        for _ in range(3):
            await limiter.await_slot("a.com")
        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_wait_is_oldest_plus_window_plus_buffer(self, fake_clock):
        limiter = _limiter(fake_clock, {"a.com": RateLimit(3, 1000)})
        for _ in range(7):
            await limiter.await_slot("a.com")
        assert fake_clock.sleeps == pytest.approx([1.1, 1.1])

    @pytest.mark.asyncio
    async def test_window_invariant_sequential(self, fake_clock):
        limit = RateLimit(3, 1000)
        limiter = _limiter(fake_clock, {"a.com": limit})
        admitted = []
        for i in range(12):
            await limiter.await_slot("a.com")
            admitted.append(fake_clock.ms())
            fake_clock.advance(0.05 * (i % 4))
        assert _window_ok(admitted, limit)

    @pytest.mark.asyncio
    async def test_window_invariant_concurrent(self, fake_clock):
        limit = RateLimit(2, 1000)
        limiter = _limiter(fake_clock, {"a.com": limit})
        admitted = []

        async def worker():
            await limiter.await_slot("a.com")
            admitted.append(fake_clock.ms())

        await asyncio.gather(*(worker() for _ in range(6)))
        assert len(admitted) == 6
        assert _window_ok(admitted, limit)
        assert len(fake_clock.sleeps) == 2

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, fake_clock):
        limiter = _limiter(fake_clock, {"a.com": RateLimit(1, 60_000)})
        await limiter.await_slot("a.com")
        await limiter.await_slot("b.com")
        await limiter.await_slot("c.com")
        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_record_only_counts_against_window(self, fake_clock):
        limiter = _limiter(fake_clock, {"a.com": RateLimit(1, 1000)})
        limiter.record_only("a.com")
        await limiter.await_slot("a.com")
        assert fake_clock.sleeps == pytest.approx([1.1])

    @pytest.mark.asyncio
    async def test_never_raises_for_odd_input(self, fake_clock):
        limiter = _limiter(fake_clock)
        await limiter.await_slot("")
        await limiter.await_slot("not a url at all")
        await limiter.await_slot("http://[broken")

    @pytest.mark.asyncio
    async def test_custom_buffer(self, fake_clock):
        limiter = _limiter(fake_clock, {"a.com": RateLimit(1, 1000)}, buffer_ms=0)
        await limiter.await_slot("a.com")
        await limiter.await_slot("a.com")
        # window edge is inclusive, so one extra millisecond is needed
        assert fake_clock.sleeps == pytest.approx([1.0, 0.001])


class TestStatusAndEvents:

    @pytest.mark.asyncio
    async def test_status_reports_recent_usage(self, fake_clock):
        limiter = _limiter(fake_clock, {"a.com": RateLimit(5, 1000)})
        await limiter.await_slot("a.com")
        await limiter.await_slot("a.com")
        assert limiter.status() == {"a.com": {"recent": 2, "limit": 5, "window_ms": 1000}}

        fake_clock.advance(2)
        assert limiter.status()["a.com"]["recent"] == 0

    @pytest.mark.asyncio
    async def test_rate_delayed_event_published(self, fake_clock):
        bus = EventBus()
        limiter = _limiter(fake_clock, {"a.com": RateLimit(1, 1000)}, event_bus=bus)
        await limiter.await_slot("a.com")
        await limiter.await_slot("a.com")

        events = bus.get_history(EventType.RATE_DELAYED)
        assert len(events) == 1
        assert events[0].data["resource"] == "a.com"
        assert events[0].data["wait_ms"] == 1100
