"""
Bounded retry with exponential backoff.

Delay after failed attempt ``k`` is ``base_delay_ms * 2 ** (k - 1)``: with
``RetryPolicy(3, 1000)`` the waits are 1s then 2s. No jitter, so waits are
deterministic and testable.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ghostbrowse.core.errors import truncate_error
from ghostbrowse.core.events import EventBus, EventType, emit

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRY_BACKOFF_FACTOR = 2


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 2
    base_delay_ms: int = 1000

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay_ms < 0:
            raise ValueError(f"base_delay_ms must be >= 0, got {self.base_delay_ms}")

    def delay_ms(self, attempt: int) -> int:
        """Backoff after failed attempt number *attempt* (1-based)."""
        return self.base_delay_ms * RETRY_BACKOFF_FACTOR ** (attempt - 1)


DEFAULT_RETRY_POLICY = RetryPolicy()


class RetryExecutor:
    """Runs a zero-argument coroutine factory under a :class:`RetryPolicy`."""

    def __init__(
        self,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self._sleep = sleep or asyncio.sleep
        self.event_bus = event_bus

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        label: str = "",
    ) -> T:
        """
        Call *operation* until it succeeds or attempts are exhausted.

        Args:
            operation: Factory returning a fresh awaitable per attempt
            policy: Attempt count and base delay
            label: Short tag used in log lines and events

        Returns:
            The first successful result.

        Raises:
            The exception of the final attempt, unchanged. Cancellation is
            never caught.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as exc:
                if attempt >= policy.max_attempts:
                    raise
                delay_ms = policy.delay_ms(attempt)
                message = truncate_error(exc)
                logger.warning(
                    "[Retry] %s attempt=%d/%d failed: %s backoff=%.1fs",
                    label or "operation", attempt, policy.max_attempts,
                    message, delay_ms / 1000,
                )
                self._emit(label, attempt, policy, delay_ms, message)
                await self._sleep(delay_ms / 1000)

    def _emit(
        self, label: str, attempt: int, policy: RetryPolicy, delay_ms: int, error: str,
    ) -> None:
        data: dict[str, Any] = {
            "label": label,
            "attempt": attempt,
            "max_attempts": policy.max_attempts,
            "delay_ms": delay_ms,
            "error": error,
        }
        emit(self.event_bus, EventType.RETRY, data, source="retry")
