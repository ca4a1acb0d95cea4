from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

import pytest

from ghostbrowse.browser.renderer import ExtractionRule, RenderOptions


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run tests marked with @pytest.mark.integration (real browser + network).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if config.getoption("--run-integration"):
        return

    deselected: list[pytest.Item] = []
    selected: list[pytest.Item] = []
    for item in items:
        if item.get_closest_marker("integration"):
            deselected.append(item)
        else:
            selected.append(item)

    if deselected:
        config.hook.pytest_deselected(items=deselected)
        items[:] = selected


# ── Fakes ────────────────────────────────────────────────────────


class FakeClock:
    """Monotonic clock in seconds whose sleep advances time instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def ms(self) -> float:
        return self.now * 1000

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProducer:
    """Source producer returning canned items (or raising) per query."""

    def __init__(
        self,
        name: str,
        items: Any = None,
        error: Optional[BaseException] = None,
        delay: float = 0.0,
        resource_key: Optional[str] = None,
    ) -> None:
        self.name = name
        self.resource_key = resource_key or f"{name}.example"
        self._items = items if items is not None else []
        self._error = error
        self._delay = delay
        self.queries: list[str] = []

    async def search(self, query: str) -> list[dict]:
        self.queries.append(query)
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        if callable(self._items):
            return self._items(query)
        return list(self._items)


class FakeRenderer:
    """Renderer serving canned extraction output per URL.

    ``pages`` maps a URL to either a value, an exception to raise on open,
    or a callable ``(rule) -> value``.
    """

    def __init__(
        self,
        pages: Optional[dict[str, Any]] = None,
        default: Any = None,
        delay: float = 0.0,
    ) -> None:
        self.pages = dict(pages or {})
        self.default = default
        self.delay = delay
        self.opened: list[str] = []
        self.closed: list[str] = []
        self.options: list[RenderOptions] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def open(self, url: str, options: RenderOptions) -> str:
        self.opened.append(url)
        self.options.append(options)
        value = self.pages.get(url, self.default)
        if isinstance(value, BaseException):
            raise value
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        if self.delay:
            await asyncio.sleep(self.delay)
        return url

    async def extract(self, handle: str, rule: ExtractionRule) -> Any:
        value = self.pages.get(handle, self.default)
        if callable(value):
            return value(rule)
        return value

    async def close(self, handle: str) -> None:
        self.closed.append(handle)
        self.in_flight -= 1


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_producer() -> Callable[..., FakeProducer]:
    return FakeProducer


def web_items(*urls: str, prefix: str = "Result") -> list[dict]:
    return [
        {"title": f"{prefix} {i}", "url": url, "snippet": f"snippet {i}"}
        for i, url in enumerate(urls, 1)
    ]
