"""
Topic decomposition.

Expands one topic into five research angles, each with a few query
variants, so the web source covers more ground than a single search.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

STOP_WORDS = frozenset({
    "the", "and", "for", "with", "from", "about",
    "how", "what", "why", "does", "are", "its",
})
MIN_WORD_LEN = 3


@dataclass(frozen=True)
class SubQuestion:
    label: str
    queries: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "queries": list(self.queries)}


def core_phrase(topic: str) -> str:
    """Lower-cased topic words minus stop words; the topic itself if none survive."""
    words = [w for w in topic.lower().split() if len(w) >= MIN_WORD_LEN]
    core = [w for w in words if w not in STOP_WORDS]
    return " ".join(core) if core else topic.strip()


def decompose(topic: str, year: Optional[int] = None) -> List[SubQuestion]:
    """
    Split *topic* into five labelled sub-questions.

    Args:
        topic: Free-text research topic
        year: Year used in the overview query (defaults to the current year)

    Returns:
        Exactly five sub-questions, 2-3 queries each. Same input, same output.
    """
    core = core_phrase(topic)
    year = year if year is not None else date.today().year

    return [
        SubQuestion("Overview & current state", (
            topic,
            f"{core} {year} overview",
            f"{core} latest news",
        )),
        SubQuestion("Key players & projects", (
            f"{core} top companies projects",
            f"{core} leading players market",
        )),
        SubQuestion("Technical details", (
            f"{core} how it works technical",
            f"{core} architecture explained",
        )),
        SubQuestion("Challenges & risks", (
            f"{core} challenges problems risks",
            f"{core} criticism concerns",
        )),
        SubQuestion("Future outlook", (
            f"{core} future predictions trends",
            f"{core} roadmap next",
        )),
    ]


def unique_queries(sub_questions: Iterable[SubQuestion]) -> List[str]:
    """All queries, flattened, first occurrence wins."""
    seen: Dict[str, None] = {}
    for sq in sub_questions:
        for q in sq.queries:
            seen.setdefault(q, None)
    return list(seen)


def lead_queries(sub_questions: Iterable[SubQuestion]) -> List[str]:
    """First query of every sub-question (what the web source searches)."""
    return [sq.queries[0] for sq in sub_questions if sq.queries]
