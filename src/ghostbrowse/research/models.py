"""
Research data model.

Jobs, per-source results, read pages and the immutable session that
``run_research`` hands back to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from ghostbrowse.core.errors import ErrorKind

if TYPE_CHECKING:
    from ghostbrowse.research.confidence import ConfidenceReport, CrossReference
    from ghostbrowse.research.decomposer import SubQuestion
    from ghostbrowse.research.retry import RetryPolicy
    from ghostbrowse.sources.base import SourceProducer


# Source-specific record. Only ``url`` and title-like fields are ever read.
Item = Dict[str, Any]

DEFAULT_SOURCE_TIMEOUT_MS = 30_000


@dataclass
class SourceJob:
    """
    One unit of work submitted to the scheduler.

    Attributes:
        source_name: Registry name of the source ("web", "hn", ...)
        queries: One query normally, several in decompose mode
        producer: Object implementing ``async search(query)``
        limit: Result cap (doubled when more than one query ran)
        resource_key: Admission-limiter bucket; defaults to the producer's
        timeout_ms: Deadline for the whole job
        retry_policy: Optional retry policy wrapped around each search
    """
    source_name: str
    queries: List[str]
    producer: Optional["SourceProducer"] = None
    limit: int = 5
    resource_key: Optional[str] = None
    timeout_ms: int = DEFAULT_SOURCE_TIMEOUT_MS
    retry_policy: Optional["RetryPolicy"] = None

    @property
    def result_cap(self) -> int:
        return self.limit * 2 if len(self.queries) > 1 else self.limit


@dataclass
class SourceResult:
    """Outcome of one source job. ``results`` is empty on total failure."""
    source: str
    results: List[Item] = field(default_factory=list)
    elapsed_seconds: float = 0.0
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    queries: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "source": self.source,
            "results": self.results,
            "elapsed_seconds": round(self.elapsed_seconds, 1),
        }
        if self.error is not None:
            data["error"] = self.error
            data["error_kind"] = self.error_kind.value if self.error_kind else None
        if len(self.queries) > 1:
            data["queries"] = list(self.queries)
        return data


@dataclass
class PageResult:
    """Text extracted from one page (or PDF)."""
    url: str
    title: str = ""
    content: str = ""
    from_cache: bool = False
    error: bool = False
    error_kind: Optional[ErrorKind] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def cache_record(self) -> Dict[str, Any]:
        """Fields persisted in the result cache."""
        return {"title": self.title, "content": self.content, **self.extra}

    @classmethod
    def from_cache_record(cls, url: str, record: Dict[str, Any]) -> "PageResult":
        extra = {
            k: v for k, v in record.items()
            if k not in ("url", "title", "content", "from_cache")
        }
        return cls(
            url=url,
            title=record.get("title", ""),
            content=record.get("content", ""),
            from_cache=True,
            extra=extra,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "url": self.url,
            "title": self.title,
            "content": self.content,
            "from_cache": self.from_cache,
        }
        if self.error:
            data["error"] = True
        data.update(self.extra)
        return data


@dataclass(frozen=True)
class ResearchSession:
    """
    Immutable outcome of one ``run_research`` call.

    Built once, never persisted; the cache directory is the only durable
    artifact of a run.
    """
    topic: str
    source_results: Tuple[SourceResult, ...]
    page_results: Tuple[PageResult, ...]
    confidence: "ConfidenceReport"
    cross_refs: Tuple["CrossReference", ...] = ()
    sub_questions: Tuple["SubQuestion", ...] = ()
    elapsed_seconds: float = 0.0

    def result_for(self, source: str) -> Optional[SourceResult]:
        for result in self.source_results:
            if result.source == source:
                return result
        return None

    @property
    def errors(self) -> List[SourceResult]:
        return [r for r in self.source_results if r.error is not None]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "topic": self.topic,
            "elapsed_seconds": round(self.elapsed_seconds, 1),
            "confidence": self.confidence.to_dict(),
            "sub_questions": [q.to_dict() for q in self.sub_questions],
            "sources": {r.source: r.to_dict() for r in self.source_results},
            "pages": [p.to_dict() for p in self.page_results],
            "cross_references": [c.to_dict() for c in self.cross_refs],
        }
