"""Renderer interface.

The research core never drives a browser directly. Producers and the page
reader go through this small protocol: open a URL, run extraction scripts
against the loaded page, close it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class RenderOptions:
    """How a page is loaded before extraction.

    Attributes:
        wait_until: Playwright load state to wait for on navigation
        timeout_ms: Navigation timeout
        settle_ms: Extra delay after navigation for client-side rendering
        wait_for_selector: Optional selector to wait for after navigation
        selector_timeout_ms: Timeout for ``wait_for_selector``
    """
    wait_until: str = "domcontentloaded"
    timeout_ms: int = 20_000
    settle_ms: int = 1_500
    wait_for_selector: Optional[str] = None
    selector_timeout_ms: int = 10_000


@dataclass(frozen=True)
class ExtractionRule:
    """A named JavaScript function evaluated in the page.

    ``script`` must be a function expression (``"() => ..."`` or
    ``"(arg) => ..."``); ``arg`` is passed through when set.
    """
    name: str
    script: str
    arg: Any = None


@runtime_checkable
class Renderer(Protocol):
    """Loads pages and evaluates extraction rules against them."""

    async def open(self, url: str, options: RenderOptions) -> Any:
        ...

    async def extract(self, handle: Any, rule: ExtractionRule) -> Any:
        ...

    async def close(self, handle: Any) -> None:
        ...


async def render_and_extract(
    renderer: Renderer,
    url: str,
    rule: ExtractionRule,
    options: Optional[RenderOptions] = None,
) -> Any:
    """Open *url*, evaluate *rule*, always close the handle."""
    handle = await renderer.open(url, options or RenderOptions())
    try:
        return await renderer.extract(handle, rule)
    finally:
        await renderer.close(handle)
