"""Source producers.

Each producer searches one external source through a :class:`Renderer` and
returns plain dict items. ``build_default_registry`` wires up the built-in
ones under their short names.
"""

from __future__ import annotations

from typing import Optional

from ghostbrowse.browser.renderer import Renderer
from ghostbrowse.research.limiter import AdmissionLimiter
from ghostbrowse.sources.base import SourceProducer, SourceRegistry, first_non_empty
from ghostbrowse.sources.github import GitHubProducer
from ghostbrowse.sources.hackernews import HackerNewsProducer
from ghostbrowse.sources.reddit import RedditProducer
from ghostbrowse.sources.twitter import TwitterProducer
from ghostbrowse.sources.web import WebSearchProducer


def build_default_registry(
    renderer: Optional[Renderer],
    engine: str = "ddg",
    limiter: Optional[AdmissionLimiter] = None,
) -> SourceRegistry:
    """Registry with web, reddit, hn, github and twitter producers.

    Producers with fallback strategies pass each fallback through *limiter*.
    """
    registry = SourceRegistry()
    registry.register(WebSearchProducer(renderer, engine=engine, limiter=limiter))
    registry.register(RedditProducer(renderer, limiter))
    registry.register(HackerNewsProducer(renderer, limiter))
    registry.register(GitHubProducer(renderer, limiter))
    registry.register(TwitterProducer(renderer, limiter))
    return registry


__all__ = [
    "GitHubProducer",
    "HackerNewsProducer",
    "RedditProducer",
    "SourceProducer",
    "SourceRegistry",
    "TwitterProducer",
    "WebSearchProducer",
    "build_default_registry",
    "first_non_empty",
]
