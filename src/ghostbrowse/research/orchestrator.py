"""
Research Service.

Orchestrates one research session:
1. Decompose the topic (optional)
2. Fan out one job per source under admission control, retry and deadlines
3. Read the top web pages through the cache
4. Score confidence and cross-reference the results
5. Return an immutable ResearchSession
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, List, Optional, Sequence

from ghostbrowse.browser.renderer import Renderer, RenderOptions
from ghostbrowse.core.events import EventBus, EventType
from ghostbrowse.logs.logger import JsonlLogger
from ghostbrowse.research.cache import ResultCache
from ghostbrowse.research.confidence import compute_confidence, cross_reference
from ghostbrowse.research.decomposer import SubQuestion, decompose, lead_queries, unique_queries
from ghostbrowse.research.limiter import AdmissionLimiter
from ghostbrowse.research.models import ResearchSession, SourceJob, SourceResult
from ghostbrowse.research.page_reader import PageReader
from ghostbrowse.research.pdf import PdfReader
from ghostbrowse.research.retry import RetryExecutor, RetryPolicy
from ghostbrowse.research.scheduler import SourceScheduler
from ghostbrowse.sources.base import SourceRegistry

logger = logging.getLogger(__name__)

DEFAULT_SOURCES = ("web", "twitter", "reddit", "hn")
WEB_SOURCE = "web"


@dataclass(frozen=True)
class ResearchOptions:
    """
    Per-session knobs.

    Attributes:
        limit_per_source: Result cap per source (doubled for multi-query jobs)
        read_top_n: How many top web results to read in full
        read_concurrency: Page reads per chunk
        per_source_timeout_ms: Deadline for each source job
        decompose: Expand the topic into sub-questions for the web source
        retry_policy: Retry policy for searches and page reads (None disables)
        cache_ttl_ms: Maximum age of a usable cache entry
        max_chars: Text kept per read page
        read_timeout_ms: Optional deadline per page read
    """
    limit_per_source: int = 5
    read_top_n: int = 3
    read_concurrency: int = 3
    per_source_timeout_ms: int = 30_000
    decompose: bool = False
    retry_policy: Optional[RetryPolicy] = field(default_factory=RetryPolicy)
    cache_ttl_ms: int = 600_000
    max_chars: int = 2500
    read_timeout_ms: Optional[int] = None

    @classmethod
    def from_config(cls, config, **overrides) -> "ResearchOptions":
        """Options carrying the deadline, cache TTL and retry policy of *config*."""
        values = dict(
            per_source_timeout_ms=config.per_source_timeout_ms,
            cache_ttl_ms=config.cache_ttl_ms,
            retry_policy=RetryPolicy(config.retry_max_attempts, config.retry_base_delay_ms),
        )
        values.update(overrides)
        return cls(**values)


class ResearchService:
    """
    Runs research sessions against a registry of sources.

    Combines the scheduler, page reader and analyzer into a single call.
    Limiter windows and the cache are shared across sessions run by the
    same service.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        limiter: Optional[AdmissionLimiter] = None,
        cache: Optional[ResultCache] = None,
        renderer: Optional[Renderer] = None,
        pdf_reader: Optional[PdfReader] = None,
        event_bus: Optional[EventBus] = None,
        retry_executor: Optional[RetryExecutor] = None,
        session_log: Optional[JsonlLogger] = None,
        render_options: Optional[RenderOptions] = None,
        default_options: Optional[ResearchOptions] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize ResearchService.

        Args:
            registry: Source producers by name
            limiter: Shared admission limiter (default limits when omitted)
            cache: Page cache (reads are never cached when omitted)
            renderer: Renderer used by the page reader
            pdf_reader: Reader for ``.pdf`` URLs
            event_bus: Optional event bus for progress events
            retry_executor: Retry executor shared by jobs and reads
            session_log: Optional JSONL log receiving one line per session
            render_options: Page-load settings for page reads
            default_options: Options used when a session passes none
            clock: Monotonic clock in seconds
        """
        self.registry = registry
        self.event_bus = event_bus
        self.limiter = limiter or AdmissionLimiter(event_bus=event_bus)
        self.cache = cache
        self.renderer = renderer
        self.pdf_reader = pdf_reader
        self.retry_executor = retry_executor or RetryExecutor(event_bus=event_bus)
        self.session_log = session_log
        self.render_options = render_options
        self.default_options = default_options or ResearchOptions()
        self._clock = clock or time.monotonic
        self.scheduler = SourceScheduler(
            self.limiter, self.retry_executor, event_bus=event_bus, clock=self._clock
        )

    async def run_research(
        self,
        topic: str,
        sources: Optional[Sequence[str]] = None,
        options: Optional[ResearchOptions] = None,
    ) -> ResearchSession:
        """
        Execute one research session.

        Never raises for source or page failures: they are recorded on the
        returned session.

        Args:
            topic: Research topic
            sources: Source names (default: web, twitter, reddit, hn)
            options: Session options (the service defaults when omitted)

        Returns:
            ResearchSession with all findings
        """
        options = options or self.default_options
        names = _unique(sources or DEFAULT_SOURCES)
        start = self._clock()

        self._emit_event(EventType.RESEARCH_STARTED, {
            "topic": topic,
            "sources": names,
            "decompose": options.decompose,
        })

        sub_questions: List[SubQuestion] = []
        if options.decompose:
            sub_questions = decompose(topic, year=date.today().year)
            self._emit_event(EventType.RESEARCH_DECOMPOSED, {
                "sub_questions": len(sub_questions),
                "queries": len(unique_queries(sub_questions)),
            })

        jobs = [self._build_job(name, topic, sub_questions, options) for name in names]
        source_results = await self.scheduler.run_all(jobs)

        page_results = await self._read_pages(source_results, options)

        confidence = compute_confidence(source_results)
        cross_refs = cross_reference(source_results)
        elapsed = self._clock() - start

        session = ResearchSession(
            topic=topic,
            source_results=tuple(source_results),
            page_results=tuple(page_results),
            confidence=confidence,
            cross_refs=tuple(cross_refs),
            sub_questions=tuple(sub_questions),
            elapsed_seconds=elapsed,
        )

        logger.info(
            "Research %r: %s confidence, %d results from %d/%d sources in %.1fs",
            topic, confidence.level.value, confidence.total_results,
            confidence.sources_with_data, len(names), elapsed,
        )
        self._emit_event(EventType.RESEARCH_COMPLETED, {
            "topic": topic,
            "confidence": confidence.level.value,
            "total_results": confidence.total_results,
            "pages": len(page_results),
            "cross_refs": len(cross_refs),
            "elapsed_seconds": round(elapsed, 2),
        })
        self._log_session(session)
        return session

    def _build_job(
        self,
        name: str,
        topic: str,
        sub_questions: Sequence[SubQuestion],
        options: ResearchOptions,
    ) -> SourceJob:
        producer = self.registry.get(name)
        if name == WEB_SOURCE and sub_questions:
            queries = lead_queries(sub_questions)
        else:
            queries = [topic]
        return SourceJob(
            source_name=name,
            queries=queries,
            producer=producer,
            limit=options.limit_per_source,
            resource_key=getattr(producer, "resource_key", None),
            timeout_ms=options.per_source_timeout_ms,
            retry_policy=options.retry_policy,
        )

    async def _read_pages(
        self, source_results: Sequence[SourceResult], options: ResearchOptions
    ):
        web = next((r for r in source_results if r.source == WEB_SOURCE), None)
        if web is None or not web.results or options.read_top_n <= 0:
            return []

        urls = [str(i["url"]) for i in web.results if i.get("url")][: options.read_top_n]
        if not urls:
            return []

        reader = PageReader(
            renderer=self.renderer,
            cache=self.cache,
            limiter=self.limiter,
            retry_executor=self.retry_executor,
            pdf_reader=self.pdf_reader,
            event_bus=self.event_bus,
            render_options=self.render_options,
            max_chars=options.max_chars,
            ttl_ms=options.cache_ttl_ms,
            retry_policy=options.retry_policy or RetryPolicy(max_attempts=1),
            read_timeout_ms=options.read_timeout_ms,
        )
        logger.info("Reading top %d pages", len(urls))
        return await reader.read_all(urls, options.read_concurrency)

    def _log_session(self, session: ResearchSession) -> None:
        if self.session_log is None:
            return
        try:
            self.session_log.log_session(session)
        except OSError as e:
            logger.warning("Session log write failed: %s", e)

    def _emit_event(self, event_type: EventType, data: dict) -> None:
        """Emit event to event bus if available."""
        if self.event_bus:
            self.event_bus.publish(
                event_type=event_type,
                data=data,
                source="research_service",
            )


def _unique(names: Sequence[str]) -> List[str]:
    out: List[str] = []
    for name in names:
        key = name.strip().lower()
        if key and key not in out:
            out.append(key)
    return out


# Factory function for creating a service with defaults
def create_research_service(
    config=None,
    renderer: Optional[Renderer] = None,
    registry: Optional[SourceRegistry] = None,
    event_bus: Optional[EventBus] = None,
) -> ResearchService:
    """
    Create a ResearchService wired from configuration.

    Args:
        config: GhostBrowseConfig (loaded from disk/env when omitted)
        renderer: Renderer shared by producers and the page reader
        registry: Source registry (default producers when omitted)
        event_bus: Optional event bus for progress events

    Returns:
        Configured ResearchService
    """
    from ghostbrowse.config import load_config
    from ghostbrowse.sources import build_default_registry

    if config is None:
        config = load_config()
    limiter = AdmissionLimiter(config.rate_limits, event_bus=event_bus)
    if registry is None:
        registry = build_default_registry(
            renderer, engine=config.default_engine, limiter=limiter
        )

    return ResearchService(
        registry=registry,
        limiter=limiter,
        cache=ResultCache(config.cache_dir),
        renderer=renderer,
        pdf_reader=PdfReader(),
        event_bus=event_bus,
        session_log=JsonlLogger(str(config.log_file)) if config.log_file else None,
        default_options=ResearchOptions.from_config(config),
    )


async def run_research(
    topic: str,
    sources: Optional[Sequence[str]] = None,
    options: Optional[ResearchOptions] = None,
    *,
    service: Optional[ResearchService] = None,
    renderer: Optional[Renderer] = None,
) -> ResearchSession:
    """Convenience wrapper: run one session on *service* (or a default one)."""
    if service is None:
        service = create_research_service(renderer=renderer)
    return await service.run_research(topic, sources, options)
