"""GitHub repository search, sorted by stars."""

from __future__ import annotations

from typing import Optional
from urllib.parse import quote_plus

from ghostbrowse.browser.renderer import ExtractionRule, Renderer, RenderOptions
from ghostbrowse.research.limiter import AdmissionLimiter
from ghostbrowse.research.models import Item
from ghostbrowse.sources.base import RenderedSource

_REPOS_RULE = ExtractionRule(
    name="github_repos",
    script="""() => {
        const items = [];
        document.querySelectorAll('[data-testid="results-list"] > div, .repo-list-item, article').forEach(el => {
            const nameEl = el.querySelector('a[href*="/"]');
            const descEl = el.querySelector('p, .mb-1');
            const langEl = el.querySelector('[itemprop="programmingLanguage"], span.repo-language-color + span');
            const starsEl = el.querySelector('a[href*="/stargazers"]');
            if (nameEl && nameEl.textContent.includes('/')) {
                const href = nameEl.getAttribute('href') || '';
                items.push({
                    name: nameEl.textContent.replace(/\\s+/g, ' ').trim(),
                    url: nameEl.href && nameEl.href.startsWith('http') ? nameEl.href : `https://github.com${href}`,
                    description: descEl ? descEl.textContent.trim().slice(0, 200) : '',
                    language: langEl ? langEl.textContent.trim() : '',
                    stars: starsEl ? starsEl.textContent.trim() : '',
                });
            }
        });
        return items;
    }""",
)


class GitHubProducer(RenderedSource):
    name = "github"
    resource_key = "github.com"

    def __init__(
        self,
        renderer: Optional[Renderer],
        limiter: Optional[AdmissionLimiter] = None,
    ) -> None:
        super().__init__(renderer, limiter)

    async def search(self, query: str) -> list[Item]:
        url = f"https://github.com/search?q={quote_plus(query)}&type=repositories&s=stars&o=desc"
        raw = await self._render(url, _REPOS_RULE, RenderOptions(timeout_ms=25_000, settle_ms=3_000))
        return self._as_items(raw)
