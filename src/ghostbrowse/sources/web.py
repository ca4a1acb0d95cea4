"""Web search source (DuckDuckGo HTML, Bing, Google).

Results are scraped from the engine's result page and cleaned up:
redirect wrappers (DuckDuckGo ``uddg=``, Bing ``u=a1<base64url>``) are
decoded back to the target URL and engine-internal links are dropped.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from typing import Any, Optional
from urllib.parse import quote_plus, unquote

from ghostbrowse.browser.renderer import ExtractionRule, Renderer, RenderOptions
from ghostbrowse.research.limiter import AdmissionLimiter
from ghostbrowse.research.models import Item
from ghostbrowse.sources.base import RenderedSource

logger = logging.getLogger(__name__)

ENGINE_HOSTS = {
    "ddg": "duckduckgo.com",
    "bing": "bing.com",
    "google": "google.com",
}

_UDDG_RE = re.compile(r"uddg=([^&]+)")
_BING_RE = re.compile(r"[&?]u=a1([^&]+)")


_DDG_RULE = ExtractionRule(
    name="ddg_results",
    script="""() => {
        const items = [];
        document.querySelectorAll('.result').forEach(el => {
            const t = el.querySelector('.result__title a, .result__a, h2 a');
            const s = el.querySelector('.result__snippet');
            if (t) items.push({ title: t.textContent.trim(), url: t.href,
                                snippet: s ? s.textContent.trim() : '' });
        });
        return items;
    }""",
)

_BING_RULE = ExtractionRule(
    name="bing_results",
    script="""() => {
        const items = [];
        document.querySelectorAll('li.b_algo').forEach(el => {
            const t = el.querySelector('h2 a');
            const s = el.querySelector('.b_caption p, .b_algoSlug');
            if (t) items.push({ title: t.textContent.trim(), url: t.href,
                                snippet: s ? s.textContent.trim() : '' });
        });
        return items;
    }""",
)

_GOOGLE_CONSENT_RULE = ExtractionRule(
    name="google_consent",
    script="""() => {
        for (const sel of ['#L2AGLb', 'button[aria-label*="Reject"]']) {
            const b = document.querySelector(sel);
            if (b) { b.click(); return true; }
        }
        return false;
    }""",
)

_GOOGLE_RULE = ExtractionRule(
    name="google_results",
    script="""() => {
        const items = [];
        document.querySelectorAll('h3').forEach(h3 => {
            const link = h3.closest('a');
            if (!link || !link.href) return;
            const container = h3.closest('[data-ved], .g')
                || (h3.parentElement && h3.parentElement.parentElement);
            const sn = container ? container.querySelector('.VwiC3b, .yDYNvb') : null;
            items.push({ title: h3.textContent.trim(), url: link.href,
                         snippet: sn ? sn.textContent.trim() : '' });
        });
        return items;
    }""",
)


def decode_ddg_url(url: str) -> str:
    """Unwrap a DuckDuckGo ``/l/?uddg=`` redirect."""
    match = _UDDG_RE.search(url or "")
    if match:
        return unquote(match.group(1))
    return url


def decode_bing_url(url: str) -> str:
    """Unwrap a Bing ``/ck/a?...&u=a1<base64url>`` redirect."""
    if not url or "bing.com/ck/" not in url:
        return url
    match = _BING_RE.search(url)
    if not match:
        return url
    token = match.group(1)
    try:
        decoded = base64.urlsafe_b64decode(token + "=" * (-len(token) % 4)).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return url
    return decoded if decoded.startswith("http") else url


def clean_results(engine: str, raw: list[Item]) -> list[Item]:
    """Decode redirect URLs and drop engine-internal links."""
    host = ENGINE_HOSTS.get(engine, "")
    results: list[Item] = []
    for item in raw:
        url = str(item.get("url") or "")
        if engine == "ddg":
            url = decode_ddg_url(url)
        elif engine == "bing":
            url = decode_bing_url(url)
        if not url or (host and host in url):
            continue
        results.append({
            "title": str(item.get("title") or "")[:200],
            "url": url,
            "snippet": str(item.get("snippet") or ""),
        })
    return results


class WebSearchProducer(RenderedSource):
    """Scrapes a search engine result page."""

    name = "web"

    def __init__(
        self,
        renderer: Optional[Renderer],
        engine: str = "ddg",
        options: Optional[RenderOptions] = None,
        limiter: Optional[AdmissionLimiter] = None,
    ) -> None:
        super().__init__(renderer, limiter)
        if engine not in ENGINE_HOSTS:
            raise ValueError(f"Unknown engine {engine!r}; expected one of {sorted(ENGINE_HOSTS)}")
        self.engine = engine
        self.resource_key = ENGINE_HOSTS[engine]
        self.options = options or RenderOptions(timeout_ms=25_000, settle_ms=1_500)

    def search_url(self, query: str) -> str:
        q = quote_plus(query)
        if self.engine == "google":
            return f"https://www.google.com/search?q={q}&hl=en"
        if self.engine == "bing":
            return f"https://www.bing.com/search?q={q}"
        return f"https://html.duckduckgo.com/html/?q={q}"

    async def search(self, query: str) -> list[Item]:
        url = self.search_url(query)
        if self.engine == "google":
            raw = await self._search_google(url)
        elif self.engine == "bing":
            raw = await self._render(url, _BING_RULE, self.options)
        else:
            raw = await self._render(url, _DDG_RULE, self.options)

        results = clean_results(self.engine, self._as_items(raw))
        logger.debug("Web [%s] %r: %d results", self.engine, query, len(results))
        return results

    async def _search_google(self, url: str) -> Any:
        renderer = self.renderer
        if renderer is None:
            return await self._render(url, _GOOGLE_RULE, self.options)
        handle = await renderer.open(url, RenderOptions(timeout_ms=25_000, settle_ms=2_000))
        try:
            if await renderer.extract(handle, _GOOGLE_CONSENT_RULE):
                logger.debug("Dismissed Google consent dialog")
            return await renderer.extract(handle, _GOOGLE_RULE)
        finally:
            await renderer.close(handle)
