"""Research progress event bus.

Features:
- Synchronous and async publish
- Wildcard prefix subscribe: ``source.*`` matches ``source.completed``, ``source.failed``
- Catch-all subscribe
- Bounded, thread-safe history
- Fire-and-forget: subscriber errors are logged, never raised to the publisher

Events flow:
- scheduler -> publish("source.completed", {"source": "web", "count": 5, ...})
- limiter -> publish("rate.delayed", {"resource": "google.com", "wait_ms": 2100})
- page reader -> publish("page.read", {"url": ..., "chars": 2500, "from_cache": False})

Buses are plain values handed to the components that publish on them; there
is no process-wide instance.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Standard event types emitted by the research pipeline."""

    # === Session ===
    RESEARCH_STARTED = "research.started"  # {"topic": ..., "sources": [...]}
    RESEARCH_DECOMPOSED = "research.decomposed"  # {"sub_questions": 5, "queries": 11}
    RESEARCH_COMPLETED = "research.completed"  # {"confidence": "HIGH", "elapsed_seconds": 12.3}

    # === Source jobs ===
    SOURCE_STARTED = "source.started"
    SOURCE_COMPLETED = "source.completed"
    SOURCE_FAILED = "source.failed"

    # === Throttling / retries ===
    RATE_DELAYED = "rate.delayed"
    RETRY = "retry"  # {"attempt": 2, "delay_ms": 2000, "error": "..."}

    # === Page reads ===
    PAGE_READ = "page.read"
    PAGE_FAILED = "page.failed"


@dataclass
class Event:
    """Single event in the bus."""
    event_type: str
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=datetime.now)
    source: str = "research"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.event_type,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source,
        }


EventHandler = Callable[[Event], None]
AsyncEventHandler = Callable[[Event], Any]  # Coroutine-returning handler


class EventBus:
    """Pub/sub event bus with wildcard matching and async support.

    - Exact-match subscribe: ``subscribe("source.failed", handler)``
    - Wildcard prefix subscribe: ``subscribe("source.*", handler)``
    - Catch-all: ``subscribe_all(handler)``
    - Async publish: ``apublish()`` also awaits coroutine handlers
    """

    def __init__(self, history_size: int = 200) -> None:
        self._subscribers: Dict[str, List[EventHandler]] = {}
        self._async_subscribers: Dict[str, List[AsyncEventHandler]] = {}
        self._global_subscribers: List[EventHandler] = []
        self._history: deque[Event] = deque(maxlen=history_size)
        self._lock = threading.Lock()

    # ── Subscribe ────────────────────────────────────────────────

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Subscribe to a specific event type (``"source.*"`` wildcards allowed)."""
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(handler)

    def subscribe_async(self, event_type: str, handler: AsyncEventHandler) -> None:
        """Subscribe an async handler; only dispatched by ``apublish()``."""
        with self._lock:
            self._async_subscribers.setdefault(event_type, []).append(handler)

    def subscribe_all(self, handler: EventHandler) -> None:
        """Subscribe to ALL events (catch-all)."""
        with self._lock:
            self._global_subscribers.append(handler)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        """Unsubscribe from an event type."""
        with self._lock:
            if event_type in self._subscribers:
                try:
                    self._subscribers[event_type].remove(handler)
                except ValueError:
                    pass

    # ── Publish ──────────────────────────────────────────────────

    def publish(
        self,
        event_type: EventType | str,
        data: Optional[Dict[str, Any]] = None,
        source: str = "research",
    ) -> Event:
        """Publish an event synchronously to sync handlers."""
        event = Event(
            event_type=_type_name(event_type),
            data=data or {},
            source=source,
        )

        with self._lock:
            self._history.append(event)
            handlers = self._collect(self._subscribers, event.event_type)
            handlers.extend(self._global_subscribers)

        for handler in handlers:
            try:
                handler(event)
            except Exception as exc:
                logger.error(
                    "[EventBus] Handler %s error on %s: %s",
                    getattr(handler, "__name__", repr(handler)),
                    event.event_type,
                    exc,
                )

        return event

    async def apublish(
        self,
        event_type: EventType | str,
        data: Optional[Dict[str, Any]] = None,
        source: str = "research",
    ) -> Event:
        """Publish to sync handlers, then await matching async handlers."""
        event = self.publish(event_type, data, source)

        with self._lock:
            async_handlers = self._collect(self._async_subscribers, event.event_type)

        if async_handlers:
            await asyncio.gather(
                *(self._safe_async_call(h, event) for h in async_handlers),
                return_exceptions=True,
            )
        return event

    # ── History ──────────────────────────────────────────────────

    def get_history(
        self, event_type: EventType | str | None = None, limit: int = 50
    ) -> List[Event]:
        """Get recent events from history, optionally filtered by type."""
        with self._lock:
            if event_type is not None:
                name = _type_name(event_type)
                events = [e for e in self._history if e.event_type == name]
            else:
                events = list(self._history)
        return events[-limit:]

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()

    # ── Internal ─────────────────────────────────────────────────

    @staticmethod
    def _collect(table: Dict[str, List[Any]], event_type: str) -> List[Any]:
        """Exact matches first, then ``prefix.*`` wildcard matches."""
        handlers: List[Any] = list(table.get(event_type, []))
        for pattern, subs in table.items():
            if pattern.endswith(".*") and event_type.startswith(pattern[:-2] + "."):
                handlers.extend(subs)
        return handlers

    @staticmethod
    async def _safe_async_call(handler: AsyncEventHandler, event: Event) -> None:
        try:
            await handler(event)
        except Exception as exc:
            logger.error(
                "[EventBus] Async handler %s error: %s",
                getattr(handler, "__name__", repr(handler)),
                exc,
            )


def _type_name(event_type: EventType | str) -> str:
    return event_type.value if isinstance(event_type, EventType) else str(event_type)


def emit(
    bus: Optional[EventBus],
    event_type: EventType,
    data: Dict[str, Any],
    source: str = "research",
) -> None:
    """Publish on *bus* when one is configured."""
    if bus is not None:
        bus.publish(event_type, data, source=source)
