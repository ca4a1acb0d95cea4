"""Renderer interface. The Playwright implementation lives in
:mod:`ghostbrowse.browser.playwright_renderer`."""

from ghostbrowse.browser.renderer import (
    ExtractionRule,
    Renderer,
    RenderOptions,
    render_and_extract,
)

__all__ = ["ExtractionRule", "Renderer", "RenderOptions", "render_and_extract"]
