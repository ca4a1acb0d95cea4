"""
Confidence scoring and cross-referencing.

Pure post-processing over the settled source results: how much data came
back, from how many sources, and which items showed up in more than one
source (higher credibility).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Sequence

from ghostbrowse.research.models import Item, SourceResult

logger = logging.getLogger(__name__)


# Confidence level thresholds: (min sources with data, min total results)
HIGH_MIN_SOURCES = 3
HIGH_MIN_RESULTS = 10
MEDIUM_MIN_SOURCES = 2
MEDIUM_MIN_RESULTS = 5

# Cross-reference tuning
MIN_CROSS_SOURCES = 2
TITLE_TOKEN_MIN_LEN = 5  # tokens must be longer than 4 chars
TITLE_KEY_TOKENS = 5
TITLE_KEY_MIN_LEN = 11  # key must be longer than 10 chars
TITLE_FIELDS = ("title", "text", "name")


class ConfidenceLevel(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def emoji(self) -> str:
        return {"HIGH": "🟢", "MEDIUM": "🟡", "LOW": "🔴"}[self.value]


@dataclass(frozen=True)
class ConfidenceReport:
    """
    Result of confidence scoring.

    Attributes:
        level: HIGH / MEDIUM / LOW
        sources_with_data: Sources that returned at least one result
        total_results: Sum of result counts across sources
        per_source_counts: Result count per source name
    """
    level: ConfidenceLevel
    sources_with_data: int
    total_results: int
    per_source_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level.value,
            "sources_with_data": self.sources_with_data,
            "total_results": self.total_results,
            "per_source_counts": dict(self.per_source_counts),
        }


@dataclass(frozen=True)
class CrossReference:
    """An item (by URL) or topic (by title key) backed by several sources."""
    kind: str  # "exact-url" | "similar-topic"
    sources: FrozenSet[str]
    url: Optional[str] = None
    title_key: Optional[str] = None
    title: Optional[str] = None
    items: tuple = ()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.kind, "sources": sorted(self.sources)}
        if self.url:
            data["url"] = self.url
        if self.title:
            data["title"] = self.title
        if self.items:
            data["items"] = [dict(i) for i in self.items]
        return data


def compute_confidence(source_results: Sequence[SourceResult]) -> ConfidenceReport:
    """Classify how well a session is backed by data."""
    counts: Dict[str, int] = {}
    total = 0
    with_data = 0

    for result in source_results:
        count = len(result.results or [])
        counts[result.source] = count
        total += count
        if count > 0:
            with_data += 1

    if with_data >= HIGH_MIN_SOURCES and total >= HIGH_MIN_RESULTS:
        level = ConfidenceLevel.HIGH
    elif with_data >= MEDIUM_MIN_SOURCES and total >= MEDIUM_MIN_RESULTS:
        level = ConfidenceLevel.MEDIUM
    else:
        level = ConfidenceLevel.LOW

    return ConfidenceReport(
        level=level,
        sources_with_data=with_data,
        total_results=total,
        per_source_counts=counts,
    )


def item_title(item: Item) -> str:
    """First non-empty title-like field of an item."""
    for key in TITLE_FIELDS:
        value = item.get(key)
        if value:
            return str(value)
    return ""


def title_key(title: str) -> Optional[str]:
    """Fuzzy key for a title, or None when too little signal remains."""
    words = [w for w in title.lower().split() if len(w) >= TITLE_TOKEN_MIN_LEN]
    key = " ".join(words[:TITLE_KEY_TOKENS])
    return key if len(key) >= TITLE_KEY_MIN_LEN else None


def cross_reference(source_results: Sequence[SourceResult]) -> List[CrossReference]:
    """
    Find items appearing in two or more distinct sources.

    Exact-URL matches come first, then similar-topic matches by title key;
    both in first-seen order.
    """
    url_sources: Dict[str, List[str]] = {}
    topic_items: Dict[str, List[Dict[str, Any]]] = {}

    for result in source_results:
        for item in result.results or []:
            if not isinstance(item, dict):
                continue
            url = str(item.get("url") or "")
            if url:
                seen = url_sources.setdefault(url, [])
                if result.source not in seen:
                    seen.append(result.source)

            title = item_title(item)
            key = title_key(title)
            if key:
                topic_items.setdefault(key, []).append(
                    {"source": result.source, "title": title, "url": url}
                )

    refs: List[CrossReference] = []
    for url, sources in url_sources.items():
        if len(sources) >= MIN_CROSS_SOURCES:
            refs.append(CrossReference(kind="exact-url", sources=frozenset(sources), url=url))

    for key, entries in topic_items.items():
        sources = {e["source"] for e in entries}
        if len(sources) >= MIN_CROSS_SOURCES:
            refs.append(CrossReference(
                kind="similar-topic",
                sources=frozenset(sources),
                title_key=key,
                title=entries[0]["title"],
                items=tuple(entries),
            ))

    logger.debug("Cross-referenced %d items", len(refs))
    return refs
