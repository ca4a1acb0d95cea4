"""
Source job scheduler.

Fans one job per source out onto the event loop and joins them with
partial-failure tolerance:

- every job runs under its own ``asyncio.wait_for`` deadline,
- a job that raises or times out becomes a ``SourceResult`` with ``error`` set,
- siblings are never cancelled and the join never raises for job failures.

Usage::

    scheduler = SourceScheduler(limiter, RetryExecutor())
    results = await scheduler.run_all([SourceJob("web", ["rust async"], producer=web)])
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from typing import Callable, List, Optional, Sequence

from ghostbrowse.core.errors import (
    ErrorKind,
    SourceTimeout,
    UnknownSourceError,
    classify_error,
    truncate_error,
)
from ghostbrowse.core.events import EventBus, EventType, emit
from ghostbrowse.research.limiter import AdmissionLimiter
from ghostbrowse.research.models import Item, SourceJob, SourceResult
from ghostbrowse.research.retry import RetryExecutor

logger = logging.getLogger(__name__)


def dedupe_by_url(items: Sequence[Item], seen: Optional[set] = None) -> List[Item]:
    """Drop items whose ``url`` was already seen; items without a URL are kept."""
    seen = set() if seen is None else seen
    unique: List[Item] = []
    for item in items:
        url = item.get("url") if isinstance(item, dict) else None
        if url:
            if url in seen:
                continue
            seen.add(url)
        unique.append(item)
    return unique


class SourceScheduler:
    """
    Runs source jobs concurrently with per-job deadlines.

    Results come back in submission order regardless of completion order.
    """

    def __init__(
        self,
        limiter: AdmissionLimiter,
        retry_executor: Optional[RetryExecutor] = None,
        event_bus: Optional[EventBus] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.limiter = limiter
        self.retry_executor = retry_executor or RetryExecutor(event_bus=event_bus)
        self.event_bus = event_bus
        self._clock = clock or time.monotonic

    async def run_all(self, jobs: Sequence[SourceJob]) -> List[SourceResult]:
        """Run every job; one result per job, in submission order."""
        if not jobs:
            return []
        return list(await asyncio.gather(*(self.run_one(job) for job in jobs)))

    async def run_one(self, job: SourceJob) -> SourceResult:
        """Run a single job; never raises for job failures."""
        start = self._clock()
        emit(self.event_bus, EventType.SOURCE_STARTED, {
            "source": job.source_name,
            "queries": list(job.queries),
        }, source="scheduler")

        try:
            if job.producer is None:
                raise UnknownSourceError(f"Unknown source: {job.source_name}")
            if job.timeout_ms and job.timeout_ms > 0:
                items = await asyncio.wait_for(
                    self._execute(job), timeout=job.timeout_ms / 1000
                )
            else:
                items = await self._execute(job)
        except asyncio.TimeoutError:
            return self._failed(
                job, start, f"Timeout after {job.timeout_ms}ms", ErrorKind.TIMEOUT
            )
        except Exception as exc:
            return self._failed(job, start, truncate_error(exc), classify_error(exc))

        elapsed = self._clock() - start
        logger.info(
            "[Scheduler] %s: %d results in %.1fs", job.source_name, len(items), elapsed
        )
        emit(self.event_bus, EventType.SOURCE_COMPLETED, {
            "source": job.source_name,
            "count": len(items),
            "elapsed_seconds": round(elapsed, 2),
        }, source="scheduler")
        return SourceResult(
            source=job.source_name,
            results=items,
            elapsed_seconds=elapsed,
            queries=list(job.queries),
        )

    # ── Internal ─────────────────────────────────────────────────

    async def _execute(self, job: SourceJob) -> List[Item]:
        """Search every query in turn, merging results by URL."""
        producer = job.producer
        key = job.resource_key or getattr(producer, "resource_key", job.source_name)
        seen: set = set()
        merged: List[Item] = []

        for query in job.queries:
            operation = functools.partial(self._admitted_search, producer, key, query)
            if job.retry_policy is not None:
                items = await self.retry_executor.run(
                    operation, job.retry_policy, label=f"{job.source_name}:{query[:40]}"
                )
            else:
                items = await operation()
            merged.extend(dedupe_by_url(items or [], seen))

        return merged[: job.result_cap]

    async def _admitted_search(self, producer, key: str, query: str) -> List[Item]:
        await self.limiter.await_slot(key)
        try:
            return await producer.search(query)
        except asyncio.TimeoutError as exc:
            # only the job deadline itself reports "Timeout after Nms"
            raise SourceTimeout(truncate_error(exc)) from exc

    def _failed(
        self, job: SourceJob, start: float, message: str, kind: ErrorKind
    ) -> SourceResult:
        elapsed = self._clock() - start
        logger.warning(
            "[Scheduler] %s failed (%s) after %.1fs: %s",
            job.source_name, kind.value, elapsed, message,
        )
        emit(self.event_bus, EventType.SOURCE_FAILED, {
            "source": job.source_name,
            "error": message,
            "error_kind": kind.value,
        }, source="scheduler")
        return SourceResult(
            source=job.source_name,
            results=[],
            elapsed_seconds=elapsed,
            error=message,
            error_kind=kind,
            queries=list(job.queries),
        )
