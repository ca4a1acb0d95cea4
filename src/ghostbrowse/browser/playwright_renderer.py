"""Renderer backed by Playwright (async API, Chromium).

One browser and one context per renderer; every ``open`` gets its own page,
so concurrent source jobs and page reads never share a tab.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from ghostbrowse.browser.renderer import ExtractionRule, RenderOptions
from ghostbrowse.core.errors import RenderError, SourceTimeout

logger = logging.getLogger(__name__)

DEFAULT_VIEWPORT = {"width": 1280, "height": 800}


class PlaywrightRenderer:
    """Async context manager around a Chromium instance.

    Chromium is launched by the first ``open``; leaving the context shuts it
    down if it was started.

    Usage::

        async with PlaywrightRenderer(headless=True) as renderer:
            handle = await renderer.open(url, RenderOptions())
            ...
    """

    def __init__(
        self,
        headless: bool = True,
        executable_path: Optional[str] = None,
        locale: str = "en-US",
    ) -> None:
        self.headless = headless
        self.executable_path = executable_path
        self.locale = locale
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> "PlaywrightRenderer":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    async def start(self) -> BrowserContext:
        """Lazily launch the browser and return the shared context.

        Raises:
            RenderError: Chromium could not be launched.
        """
        async with self._lock:
            if self._context is not None:
                return self._context
            launch_args: dict[str, Any] = {
                "headless": self.headless,
                "args": ["--disable-blink-features=AutomationControlled"],
            }
            if self.executable_path:
                launch_args["executable_path"] = self.executable_path
            try:
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(**launch_args)
                self._context = await self._browser.new_context(
                    viewport=DEFAULT_VIEWPORT,
                    locale=self.locale,
                )
            except PlaywrightError as e:
                logger.error("Chromium launch failed: %s", e.message)
                await self.shutdown()
                raise RenderError(f"Browser launch failed: {e.message}") from e
            logger.info("Chromium started (headless=%s)", self.headless)
            return self._context

    async def open(self, url: str, options: RenderOptions) -> Page:
        context = await self.start()
        page = await context.new_page()
        try:
            await page.goto(url, wait_until=options.wait_until, timeout=options.timeout_ms)
            if options.wait_for_selector:
                try:
                    await page.wait_for_selector(
                        options.wait_for_selector, timeout=options.selector_timeout_ms
                    )
                except PlaywrightTimeoutError:
                    logger.debug("Selector %s not found on %s", options.wait_for_selector, url)
            if options.settle_ms > 0:
                await asyncio.sleep(options.settle_ms / 1000)
        except PlaywrightTimeoutError as e:
            await page.close()
            raise SourceTimeout(f"Navigation timeout: {url}") from e
        except PlaywrightError as e:
            await page.close()
            raise RenderError(f"Navigation failed: {e.message}") from e
        except BaseException:
            await page.close()
            raise
        return page

    async def extract(self, handle: Page, rule: ExtractionRule) -> Any:
        try:
            if rule.arg is None:
                return await handle.evaluate(rule.script)
            return await handle.evaluate(rule.script, rule.arg)
        except PlaywrightError as e:
            raise RenderError(f"Extraction {rule.name} failed: {e.message}") from e

    async def close(self, handle: Page) -> None:
        try:
            await handle.close()
        except PlaywrightError as e:
            logger.debug("Page close failed: %s", e)

    async def shutdown(self) -> None:
        """Clean shutdown."""
        if self._context is not None:
            await self._context.close()
        if self._browser is not None:
            await self._browser.close()
        if self._playwright is not None:
            await self._playwright.stop()
        self._context = None
        self._browser = None
        self._playwright = None
