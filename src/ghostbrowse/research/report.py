"""Markdown and JSON rendering of a research session."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ghostbrowse.research.confidence import item_title
from ghostbrowse.research.models import Item, ResearchSession, SourceResult

MAX_CROSS_REFS = 10
SNIPPET_CHARS = 200


def render_json(session: ResearchSession) -> str:
    return json.dumps(session.to_dict(), indent=2, ensure_ascii=False)


def render_markdown(
    session: ResearchSession,
    max_chars: int = 2500,
    engine: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Render *session* as a Markdown report.

    Args:
        session: Finished research session
        max_chars: Characters of page text shown per read page
        engine: Web engine name shown in the web section header
        now: Timestamp for the header (defaults to the current UTC time)

    Returns:
        The report text.
    """
    now = now or datetime.now(timezone.utc)
    conf = session.confidence
    lines: List[str] = [f"# Research: {session.topic}"]
    lines.append(
        f"_{now.strftime('%Y-%m-%d %H:%M')} UTC"
        f" | Sources: {', '.join(r.source for r in session.source_results)}"
        f" | Confidence: {conf.level.emoji} {conf.level.value}"
        f" ({conf.sources_with_data} sources, {conf.total_results} results)_\n"
    )

    if session.sub_questions:
        lines.append("## 🔍 Research Sub-Questions")
        for i, sq in enumerate(session.sub_questions, 1):
            lines.append(f"{i}. **{sq.label}**: {' / '.join(sq.queries[:2])}")
        lines.append("")

    if session.cross_refs:
        lines.append("## 🔗 Cross-Referenced (appeared in 2+ sources)")
        for ref in session.cross_refs[:MAX_CROSS_REFS]:
            found_in = ", ".join(sorted(ref.sources))
            if ref.title:
                lines.append(f"- **{ref.title[:100]}** — found in: {found_in}")
            else:
                lines.append(f"- {ref.url} — found in: {found_in}")
        lines.append("")

    web = session.result_for("web")
    if web is not None and web.results:
        label = f" [{engine}]" if engine else ""
        lines.append(f"## 🌐 Web Search{label} ({_elapsed(web)})")
        for i, r in enumerate(web.results, 1):
            lines.append(f"{i}. **{item_title(r)}**")
            lines.append(f"   {r.get('url', '')}")
            if r.get("snippet"):
                lines.append(f"   > {str(r['snippet'])[:SNIPPET_CHARS]}")
        lines.append("")

    if session.page_results:
        lines.append(f"## 📖 Read Pages ({len(session.page_results)})")
        for i, page in enumerate(session.page_results, 1):
            if page.error:
                lines.append(f"### {i}. ❌ {page.url}\n")
                continue
            lines.append(f"### {i}. {page.title}")
            lines.append(f"{page.url}{' (cached)' if page.from_cache else ''}\n")
            lines.append(page.content[:max_chars])
            lines.append("")

    for result in session.source_results:
        if result.source == "web" or not result.results:
            continue
        formatter = _SECTIONS.get(result.source)
        if formatter is None:
            header, fmt = f"## 📚 {result.source}", _format_generic
        else:
            header, fmt = formatter
        lines.append(f"{header} ({_elapsed(result)})")
        for i, item in enumerate(result.results, 1):
            lines.extend(fmt(i, item))
        lines.append("")

    errors = session.errors
    if errors:
        lines.append("## ⚠️ Errors")
        for r in errors:
            lines.append(f"- {r.source}: {r.error}")
        lines.append("")

    return "\n".join(lines)


# ── Per-source sections ──────────────────────────────────────────


def _elapsed(result: SourceResult) -> str:
    return f"{result.elapsed_seconds:.1f}s"


def _format_twitter(i: int, r: Item) -> List[str]:
    user = str(r.get("user") or "").split("@")[0].strip() or "?"
    out = [f"{i}. **@{user}**: {str(r.get('text') or '')[:SNIPPET_CHARS]}"]
    if r.get("url"):
        out.append(f"   {r['url']}")
    out.append(
        f"   ❤️ {r.get('likes') or 0} | 🔄 {r.get('retweets') or 0} | 💬 {r.get('replies') or 0}"
    )
    return out


def _format_reddit(i: int, r: Item) -> List[str]:
    out = [f"{i}. **{r.get('title', '')}** ({r.get('subreddit', '')})"]
    if r.get("url"):
        out.append(f"   {r['url']}")
    out.append(f"   ⬆️ {r.get('score', 0)} | 💬 {r.get('comments', 0)}")
    return out


def _format_hn(i: int, r: Item) -> List[str]:
    out = [f"{i}. **{r.get('title', '')}** — {r.get('points', '')}"]
    if r.get("url"):
        out.append(f"   {r['url']}")
    if r.get("comments_url"):
        out.append(f"   💬 {r.get('comments', '')} — {r['comments_url']}")
    return out


def _format_github(i: int, r: Item) -> List[str]:
    head = f"{i}. **{r.get('name', '')}**"
    if r.get("language"):
        head += f" [{r['language']}]"
    if r.get("stars"):
        head += f" ★{r['stars']}"
    out = [head]
    if r.get("description"):
        out.append(f"   {r['description']}")
    if r.get("url"):
        out.append(f"   {r['url']}")
    return out


def _format_generic(i: int, r: Item) -> List[str]:
    out = [f"{i}. **{item_title(r) or '(untitled)'}**"]
    if r.get("url"):
        out.append(f"   {r['url']}")
    return out


_SECTIONS: Dict[str, Any] = {
    "twitter": ("## 🐦 Twitter/X", _format_twitter),
    "reddit": ("## 🤖 Reddit", _format_reddit),
    "hn": ("## 🟧 HackerNews", _format_hn),
    "github": ("## 🐙 GitHub", _format_github),
}
