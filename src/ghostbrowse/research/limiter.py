"""
Per-resource admission limiter.

Sliding-window request budget per host. Callers ``await await_slot(resource)``
before every network operation against that host; the call only ever delays,
it never rejects and never raises.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Mapping, Optional
from urllib.parse import urlparse

from ghostbrowse.core.events import EventBus, EventType, emit

logger = logging.getLogger(__name__)

DEFAULT_KEY = "default"
DEFAULT_BUFFER_MS = 100


@dataclass(frozen=True)
class RateLimit:
    """At most ``max_requests`` admissions in any ``window_ms`` window."""
    max_requests: int
    window_ms: int

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError(f"max_requests must be >= 1, got {self.max_requests}")
        if self.window_ms <= 0:
            raise ValueError(f"window_ms must be > 0, got {self.window_ms}")


DEFAULT_RATE_LIMIT = RateLimit(max_requests=20, window_ms=60_000)


def resource_key(resource: str) -> str:
    """Reduce a URL to its hostname; bare domains are lower-cased as given."""
    text = (resource or "").strip()
    if "://" in text:
        try:
            host = urlparse(text).hostname
        except ValueError:
            host = None
        if host:
            return host.lower()
    return text.lower()


def parent_key(key: str) -> Optional[str]:
    """Last two dot labels, only when the key has more than two."""
    parts = key.split(".")
    if len(parts) > 2:
        return ".".join(parts[-2:])
    return None


class AdmissionLimiter:
    """
    Sliding-window admission control keyed by host.

    Invariant: for every key, the number of recorded admissions inside any
    closed interval ``[t - window_ms, t]`` never exceeds ``max_requests``.

    Concurrent waiters on the same key are serialized by a per-key
    ``asyncio.Lock`` held across check, sleep and record, so they are admitted
    one at a time in arrival order. Different keys never block each other.
    """

    def __init__(
        self,
        limits: Optional[Mapping[str, RateLimit]] = None,
        buffer_ms: int = DEFAULT_BUFFER_MS,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        event_bus: Optional[EventBus] = None,
    ):
        """
        Initialize limiter.

        Args:
            limits: ``resource -> RateLimit`` mapping, may contain ``"default"``
            buffer_ms: Extra wait added on top of the computed window expiry
            clock: Monotonic clock in seconds (injectable for tests)
            sleep: Async sleep taking seconds (injectable for tests)
            event_bus: Optional bus receiving ``rate.delayed`` events
        """
        self._limits: Dict[str, RateLimit] = {
            k.lower(): v for k, v in (limits or {}).items()
        }
        self._limits.setdefault(DEFAULT_KEY, DEFAULT_RATE_LIMIT)
        self.buffer_ms = max(0, buffer_ms)
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self.event_bus = event_bus
        self._windows: Dict[str, deque] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    # ── Lookup ───────────────────────────────────────────────────

    def limit_for(self, resource: str) -> RateLimit:
        """Exact key, then parent key, then the default entry."""
        key = resource_key(resource)
        if key in self._limits:
            return self._limits[key]
        parent = parent_key(key)
        if parent and parent in self._limits:
            return self._limits[parent]
        return self._limits[DEFAULT_KEY]

    # ── Admission ────────────────────────────────────────────────

    async def await_slot(self, resource: str) -> None:
        """Suspend until one more request on *resource* fits, then record it."""
        key = resource_key(resource)
        limit = self.limit_for(key)
        lock = self._locks.setdefault(key, asyncio.Lock())

        async with lock:
            window = self._windows.setdefault(key, deque())
            while True:
                now_ms = self._now_ms()
                self._cleanup(window, now_ms, limit.window_ms)
                if len(window) < limit.max_requests:
                    break

                wait_ms = window[0] + limit.window_ms - now_ms + self.buffer_ms
                wait_ms = max(wait_ms, 1)
                logger.info(
                    "[AdmissionLimiter] %s: %d/%d in window, waiting %.1fs",
                    key, len(window), limit.max_requests, wait_ms / 1000,
                )
                emit(self.event_bus, EventType.RATE_DELAYED, {
                    "resource": key,
                    "wait_ms": round(wait_ms),
                    "recent": len(window),
                    "limit": limit.max_requests,
                }, source="limiter")
                await self._sleep(wait_ms / 1000)

            window.append(self._now_ms())

    def record_only(self, resource: str) -> None:
        """Record a request without waiting (e.g. a request made elsewhere)."""
        key = resource_key(resource)
        self._windows.setdefault(key, deque()).append(self._now_ms())

    # ── Introspection ────────────────────────────────────────────

    def status(self) -> Dict[str, Dict[str, int]]:
        """Current usage per tracked key."""
        now_ms = self._now_ms()
        report: Dict[str, Dict[str, int]] = {}
        for key, window in self._windows.items():
            limit = self.limit_for(key)
            self._cleanup(window, now_ms, limit.window_ms)
            report[key] = {
                "recent": len(window),
                "limit": limit.max_requests,
                "window_ms": limit.window_ms,
            }
        return report

    # ── Internal ─────────────────────────────────────────────────

    def _now_ms(self) -> float:
        return self._clock() * 1000

    @staticmethod
    def _cleanup(window: deque, now_ms: float, window_ms: int) -> None:
        """Remove timestamps that fell out of the window."""
        cutoff = now_ms - window_ms
        while window and window[0] < cutoff:
            window.popleft()
