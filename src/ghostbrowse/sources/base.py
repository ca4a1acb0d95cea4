"""Source producer interface and registry.

A source producer turns a query into a list of items (plain dicts) for one
external source. The research core only ever calls ``search``; how the
producer drives the renderer and maps markup to fields is its own business.

Producers are looked up by name through :class:`SourceRegistry`, so callers
can plug in their own sources next to the defaults.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Iterable, Optional, Protocol, runtime_checkable

from ghostbrowse.browser.renderer import (
    ExtractionRule,
    Renderer,
    RenderOptions,
    render_and_extract,
)
from ghostbrowse.core.errors import RenderError, truncate_error
from ghostbrowse.research.limiter import AdmissionLimiter
from ghostbrowse.research.models import Item

logger = logging.getLogger(__name__)


@runtime_checkable
class SourceProducer(Protocol):
    """Anything that can search one external source."""

    name: str
    resource_key: str

    async def search(self, query: str) -> list[Item]:
        ...


Strategy = Callable[[], Awaitable[list[Item]]]


async def first_non_empty(
    strategies: Iterable[tuple[str, Strategy]],
    admit: Optional[Callable[[], Awaitable[None]]] = None,
) -> list[Item]:
    """Run *strategies* in order until one yields a non-empty list.

    Parameters
    ----------
    strategies : iterable of (label, factory)
        Each factory is called lazily; a failing strategy is logged and
        skipped.
    admit : callable, optional
        Awaited before every strategy after the first, so each fallback
        passes admission control like the first attempt did.

    Returns
    -------
    list
        The first non-empty result, or ``[]`` when every strategy came up
        empty. When every strategy raised, the last error propagates.
    """
    last_error: Optional[BaseException] = None
    any_succeeded = False
    for index, (label, strategy) in enumerate(strategies):
        if index and admit is not None:
            await admit()
        try:
            items = await strategy()
        except Exception as exc:
            last_error = exc
            logger.warning("Strategy %s failed: %s", label, truncate_error(exc))
            continue
        any_succeeded = True
        if items:
            logger.debug("Strategy %s returned %d items", label, len(items))
            return list(items)
    if last_error is not None and not any_succeeded:
        raise last_error
    return []


class SourceRegistry:
    """Registry of source producers keyed by name."""

    def __init__(self) -> None:
        self._producers: dict[str, SourceProducer] = {}

    def register(self, producer: SourceProducer) -> None:
        """Register a producer.

        Raises
        ------
        ValueError
            If a producer with the same name is already registered.
        """
        if producer.name in self._producers:
            raise ValueError(
                f"Source {producer.name!r} is already registered. "
                f"Unregister it first or use a different name."
            )
        self._producers[producer.name] = producer
        logger.debug("Registered source: %s (%s)", producer.name, producer.resource_key)

    def unregister(self, name: str) -> bool:
        """Unregister a producer by name.

        Returns True if the producer was found and removed.
        """
        if name in self._producers:
            del self._producers[name]
            return True
        return False

    def get(self, name: str) -> Optional[SourceProducer]:
        """Get a producer by name."""
        return self._producers.get(name)

    @property
    def names(self) -> list[str]:
        """Registered source names, in registration order."""
        return list(self._producers)

    def __contains__(self, name: Any) -> bool:
        return name in self._producers

    def __len__(self) -> int:
        return len(self._producers)


class RenderedSource:
    """Base for producers that load pages through a :class:`Renderer`."""

    name: str = ""
    resource_key: str = ""

    def __init__(
        self,
        renderer: Optional[Renderer],
        limiter: Optional[AdmissionLimiter] = None,
    ) -> None:
        self.renderer = renderer
        self.limiter = limiter

    async def _admit(self) -> None:
        """Wait for a slot on this source's resource key (no-op without a limiter)."""
        if self.limiter is not None:
            await self.limiter.await_slot(self.resource_key)

    async def _render(
        self,
        url: str,
        rule: ExtractionRule,
        options: Optional[RenderOptions] = None,
    ) -> Any:
        if self.renderer is None:
            raise RenderError(f"{self.name}: no renderer configured")
        return await render_and_extract(self.renderer, url, rule, options)

    @staticmethod
    def _as_items(raw: Any) -> list[Item]:
        """Extraction output as a list of dicts; anything else is a render failure."""
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise RenderError(f"Extraction returned {type(raw).__name__}, expected a list")
        return [r for r in raw if isinstance(r, dict)]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, resource_key={self.resource_key!r})"
