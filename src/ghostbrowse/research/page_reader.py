"""
Chunked page reader.

Reads the top result pages of a session:

- cache first (no network on a hit),
- admission + retry around every render,
- ``.pdf`` URLs go to the PDF reader instead of the renderer,
- chunks of ``concurrency`` URLs; concurrent inside a chunk, sequential
  between chunks,
- a failed read becomes an error ``PageResult`` and never aborts the batch.
"""

from __future__ import annotations

import asyncio
import html
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from ghostbrowse.browser.renderer import (
    ExtractionRule,
    Renderer,
    RenderOptions,
    render_and_extract,
)
from ghostbrowse.core.errors import (
    RenderError,
    SourceTimeout,
    classify_error,
    truncate_error,
)
from ghostbrowse.core.events import EventBus, EventType, emit
from ghostbrowse.research.cache import DEFAULT_TTL_MS, ResultCache
from ghostbrowse.research.limiter import AdmissionLimiter
from ghostbrowse.research.models import PageResult
from ghostbrowse.research.pdf import PdfReader, is_pdf_url
from ghostbrowse.research.retry import DEFAULT_RETRY_POLICY, RetryExecutor, RetryPolicy

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 2500
DEFAULT_CONCURRENCY = 3

_SCRIPT_RE = re.compile(r"<script[\s\S]*?</script>", re.IGNORECASE)
_STYLE_RE = re.compile(r"<style[\s\S]*?</style>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")

# Body clone without page chrome; text conversion happens in Python.
PAGE_TEXT_RULE = ExtractionRule(
    name="page_text",
    script="""() => {
        const clone = document.body ? document.body.cloneNode(true) : null;
        if (!clone) return { title: document.title || '', html: '' };
        ['script', 'style', 'nav', 'footer', 'header', 'aside', 'iframe', 'noscript']
            .forEach(t => clone.querySelectorAll(t).forEach(e => e.remove()));
        return { title: document.title || '', html: clone.innerHTML };
    }""",
)


def html_to_text(markup: str) -> str:
    """Drop script/style blocks and tags, unescape entities, collapse whitespace."""
    h = str(markup or "")
    h = _SCRIPT_RE.sub(" ", h)
    h = _STYLE_RE.sub(" ", h)
    h = _TAG_RE.sub(" ", h)
    h = html.unescape(h)
    return _WS_RE.sub(" ", h).strip()


class PageReader:
    """Reads pages through cache, limiter, retry and renderer."""

    def __init__(
        self,
        renderer: Optional[Renderer],
        cache: Optional[ResultCache],
        limiter: AdmissionLimiter,
        retry_executor: Optional[RetryExecutor] = None,
        pdf_reader: Optional[PdfReader] = None,
        event_bus: Optional[EventBus] = None,
        render_options: Optional[RenderOptions] = None,
        max_chars: int = DEFAULT_MAX_CHARS,
        ttl_ms: int = DEFAULT_TTL_MS,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        read_timeout_ms: Optional[int] = None,
    ):
        self.renderer = renderer
        self.cache = cache
        self.limiter = limiter
        self.retry_executor = retry_executor or RetryExecutor(event_bus=event_bus)
        self.pdf_reader = pdf_reader
        self.event_bus = event_bus
        self.render_options = render_options or RenderOptions()
        self.max_chars = max_chars
        self.ttl_ms = ttl_ms
        self.retry_policy = retry_policy
        self.read_timeout_ms = read_timeout_ms

    async def read_all(
        self, urls: Sequence[str], concurrency: int = DEFAULT_CONCURRENCY
    ) -> List[PageResult]:
        """Read *urls* in chunks of *concurrency*; output order matches input."""
        size = max(1, concurrency)
        results: List[PageResult] = []
        for i in range(0, len(urls), size):
            chunk = urls[i:i + size]
            results.extend(await asyncio.gather(*(self.read(u) for u in chunk)))
        return results

    async def read(self, url: str) -> PageResult:
        """Read one page. Never raises for fetch failures."""
        cached = self._cached(url)
        if cached is not None:
            page = PageResult.from_cache_record(url, cached)
            self._emit_read(page)
            return page

        try:
            if self.read_timeout_ms:
                try:
                    page = await asyncio.wait_for(
                        self._fetch_with_retry(url), timeout=self.read_timeout_ms / 1000
                    )
                except asyncio.TimeoutError:
                    raise SourceTimeout(
                        f"Read timeout after {self.read_timeout_ms}ms"
                    ) from None
            else:
                page = await self._fetch_with_retry(url)
        except Exception as exc:
            return self._failed(url, exc)

        self._store(page)
        self._emit_read(page)
        return page

    # ── Internal ─────────────────────────────────────────────────

    def _cached(self, url: str) -> Optional[Dict[str, Any]]:
        if self.cache is None:
            return None
        try:
            return self.cache.get(url, self.ttl_ms)
        except OSError as exc:
            logger.warning("[PageReader] Cache lookup failed for %s: %s", url, exc)
            return None

    async def _fetch_with_retry(self, url: str) -> PageResult:
        return await self.retry_executor.run(
            lambda: self._fetch(url), self.retry_policy, label=f"read:{url[:60]}"
        )

    async def _fetch(self, url: str) -> PageResult:
        await self.limiter.await_slot(url)

        if is_pdf_url(url):
            if self.pdf_reader is None:
                raise RenderError("No PDF reader configured")
            doc = await self.pdf_reader.read(url, self.max_chars)
            return PageResult(
                url=url,
                title=doc.title,
                content=doc.content,
                extra={"page_count": doc.page_count},
            )

        if self.renderer is None:
            raise RenderError("No renderer configured")
        raw = await render_and_extract(
            self.renderer, url, PAGE_TEXT_RULE, self.render_options
        )
        if not isinstance(raw, dict):
            raise RenderError("Page extraction returned nothing")
        return PageResult(
            url=url,
            title=str(raw.get("title") or ""),
            content=html_to_text(raw.get("html") or "")[: self.max_chars],
        )

    def _store(self, page: PageResult) -> None:
        if self.cache is None:
            return
        try:
            self.cache.set(page.url, page.cache_record())
        except OSError as exc:
            logger.warning("[PageReader] Cache write failed for %s: %s", page.url, exc)

    def _failed(self, url: str, exc: BaseException) -> PageResult:
        message = truncate_error(exc)
        kind = classify_error(exc)
        logger.warning("[PageReader] %s failed (%s): %s", url, kind.value, message)
        emit(self.event_bus, EventType.PAGE_FAILED, {
            "url": url,
            "error": message,
            "error_kind": kind.value,
        }, source="page_reader")
        return PageResult(
            url=url,
            title="Error",
            content=f"[Failed: {message}]",
            error=True,
            error_kind=kind,
        )

    def _emit_read(self, page: PageResult) -> None:
        data: Dict[str, Any] = {
            "url": page.url,
            "chars": len(page.content),
            "from_cache": page.from_cache,
        }
        emit(self.event_bus, EventType.PAGE_READ, data, source="page_reader")
