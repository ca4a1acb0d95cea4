"""Reddit source: JSON search API first, rendered search page as fallback."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional
from urllib.parse import quote_plus

from ghostbrowse.browser.renderer import ExtractionRule, Renderer, RenderOptions
from ghostbrowse.core.errors import ErrorKind, RenderError
from ghostbrowse.research.limiter import AdmissionLimiter
from ghostbrowse.research.models import Item
from ghostbrowse.sources.base import RenderedSource, first_non_empty

logger = logging.getLogger(__name__)

_BODY_TEXT_RULE = ExtractionRule(
    name="reddit_json_body",
    script="""() => {
        const pre = document.querySelector('pre');
        return pre ? pre.textContent : (document.body ? document.body.innerText : '');
    }""",
)

_SHREDDIT_RULE = ExtractionRule(
    name="reddit_shreddit_posts",
    script="""() => {
        const results = [];
        document.querySelectorAll('shreddit-post').forEach(el => {
            const permalink = el.getAttribute('permalink') || '';
            const author = el.getAttribute('author');
            results.push({
                title: el.getAttribute('post-title') || '',
                url: permalink ? `https://reddit.com${permalink}` : '',
                subreddit: el.getAttribute('subreddit-prefixed-name') || '',
                author: author ? `u/${author}` : '',
                score: parseInt(el.getAttribute('score') || '0'),
                comments: parseInt(el.getAttribute('comment-count') || '0'),
            });
        });
        return results;
    }""",
)


def parse_listing(text: str) -> list[Item]:
    """Posts from a ``search.json`` listing body."""
    try:
        data = json.loads(text or "")
    except json.JSONDecodeError as e:
        raise RenderError(f"Reddit JSON unreadable: {e}", kind=ErrorKind.PARSE_FAILURE) from e

    children: Any = ((data or {}).get("data") or {}).get("children") or []
    posts: list[Item] = []
    for child in children:
        p = child.get("data") if isinstance(child, dict) else None
        if not isinstance(p, dict) or not p.get("title"):
            continue
        posts.append({
            "title": p["title"],
            "url": f"https://reddit.com{p.get('permalink', '')}",
            "subreddit": p.get("subreddit_name_prefixed") or f"r/{p.get('subreddit', '')}",
            "author": f"u/{p.get('author', '')}",
            "score": p.get("score", 0),
            "comments": p.get("num_comments", 0),
        })
    return posts


class RedditProducer(RenderedSource):
    name = "reddit"
    resource_key = "reddit.com"

    def __init__(
        self,
        renderer: Optional[Renderer],
        limiter: Optional[AdmissionLimiter] = None,
    ) -> None:
        super().__init__(renderer, limiter)

    async def search(self, query: str) -> list[Item]:
        q = quote_plus(query)
        return await first_non_empty([
            ("reddit-json", lambda: self._search_json(q)),
            ("reddit-html", lambda: self._search_html(q)),
        ], admit=self._admit)

    async def _search_json(self, q: str) -> list[Item]:
        url = f"https://www.reddit.com/search.json?q={q}&sort=relevance&t=month&limit=25"
        text = await self._render(
            url, _BODY_TEXT_RULE, RenderOptions(timeout_ms=20_000, settle_ms=1_500)
        )
        return parse_listing(str(text or ""))

    async def _search_html(self, q: str) -> list[Item]:
        url = f"https://www.reddit.com/search/?q={q}&sort=relevance&t=month"
        raw = await self._render(url, _SHREDDIT_RULE, RenderOptions(
            timeout_ms=25_000,
            settle_ms=2_000,
            wait_for_selector="shreddit-post",
            selector_timeout_ms=10_000,
        ))
        return [p for p in self._as_items(raw) if p.get("title")]
