"""HackerNews source: Algolia story search, front page when search is empty."""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote_plus

from ghostbrowse.browser.renderer import ExtractionRule, Renderer, RenderOptions
from ghostbrowse.research.limiter import AdmissionLimiter
from ghostbrowse.research.models import Item
from ghostbrowse.sources.base import RenderedSource, first_non_empty

logger = logging.getLogger(__name__)

FRONT_PAGE_URL = "https://news.ycombinator.com/"

_ALGOLIA_RULE = ExtractionRule(
    name="hn_algolia_stories",
    script="""() => {
        const items = [];
        document.querySelectorAll('.Story').forEach(el => {
            const titleEl = el.querySelector('.Story_title a');
            const pointsEl = el.querySelector('.Story_meta span');
            const commentsEl = el.querySelector('.Story_comment a');
            if (titleEl) items.push({
                title: titleEl.textContent.trim(),
                url: titleEl.href,
                points: pointsEl ? pointsEl.textContent.trim() : '0',
                comments: commentsEl ? commentsEl.textContent.trim() : '0',
                comments_url: commentsEl ? commentsEl.href : '',
            });
        });
        return items;
    }""",
)

_FRONT_PAGE_RULE = ExtractionRule(
    name="hn_front_page",
    script="""() => {
        const items = [];
        document.querySelectorAll('.athing').forEach(el => {
            const titleEl = el.querySelector('.titleline a');
            const sub = el.nextElementSibling ? el.nextElementSibling.querySelector('.subtext') : null;
            const score = sub ? sub.querySelector('.score') : null;
            const link = sub ? Array.from(sub.querySelectorAll('a')).find(a => a.href.includes('item?')) : null;
            if (titleEl) items.push({
                id: el.id,
                title: titleEl.textContent.trim(),
                url: titleEl.href,
                points: score ? score.textContent.trim() : '0',
                comments: link ? link.textContent.trim() : '0',
                comments_url: link ? link.href : '',
            });
        });
        return items;
    }""",
)


class HackerNewsProducer(RenderedSource):
    name = "hn"
    resource_key = "news.ycombinator.com"

    def __init__(
        self,
        renderer: Optional[Renderer],
        limiter: Optional[AdmissionLimiter] = None,
    ) -> None:
        super().__init__(renderer, limiter)

    async def search(self, query: str) -> list[Item]:
        return await first_non_empty([
            ("hn-algolia", lambda: self._search_algolia(query)),
            ("hn-front-page", self._front_page),
        ], admit=self._admit)

    async def _search_algolia(self, query: str) -> list[Item]:
        url = (
            "https://hn.algolia.com/?dateRange=pastMonth&page=0&prefix=true"
            f"&query={quote_plus(query)}&sort=byPopularity&type=story"
        )
        raw = await self._render(url, _ALGOLIA_RULE, RenderOptions(timeout_ms=25_000, settle_ms=3_000))
        return self._as_items(raw)

    async def _front_page(self) -> list[Item]:
        raw = await self._render(
            FRONT_PAGE_URL, _FRONT_PAGE_RULE, RenderOptions(timeout_ms=30_000, settle_ms=0)
        )
        items = self._as_items(raw)
        logger.debug("HN front page fallback: %d stories", len(items))
        return items
