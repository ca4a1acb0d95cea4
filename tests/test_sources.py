"""
Tests for source producers and the registry.

Producers run against FakeRenderer, which answers by extraction rule name,
so no browser or network is involved.
"""

import base64
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FakeProducer, FakeRenderer

from ghostbrowse.core.errors import ErrorKind, RenderError
from ghostbrowse.sources import build_default_registry
from ghostbrowse.sources.base import SourceProducer, SourceRegistry, first_non_empty
from ghostbrowse.sources.github import GitHubProducer
from ghostbrowse.sources.hackernews import FRONT_PAGE_URL, HackerNewsProducer
from ghostbrowse.sources.reddit import RedditProducer, parse_listing
from ghostbrowse.sources.twitter import TwitterProducer
from ghostbrowse.sources.web import (
    WebSearchProducer,
    clean_results,
    decode_bing_url,
    decode_ddg_url,
)


def _by_rule(**answers):
    """Renderer page answering per extraction rule name."""
    def answer(rule):
        value = answers.get(rule.name)
        if isinstance(value, BaseException):
            raise value
        return value
    return answer


def _listing(*titles):
    return json.dumps({"data": {"children": [
        {"data": {
            "title": t,
            "permalink": f"/r/rust/comments/{i}/",
            "subreddit": "rust",
            "author": "ferris",
            "score": 10 * i,
            "num_comments": i,
        }} for i, t in enumerate(titles, 1)
    ]}})


# ── Registry ─────────────────────────────────────────────────────


class TestSourceRegistry:

    def test_register_and_get(self):
        registry = SourceRegistry()
        producer = FakeProducer("web")
        registry.register(producer)
        assert registry.get("web") is producer
        assert "web" in registry
        assert len(registry) == 1

    def test_duplicate_rejected(self):
        registry = SourceRegistry()
        registry.register(FakeProducer("web"))
        with pytest.raises(ValueError, match="already registered"):
            registry.register(FakeProducer("web"))

    def test_unregister(self):
        registry = SourceRegistry()
        registry.register(FakeProducer("web"))
        assert registry.unregister("web") is True
        assert registry.unregister("web") is False
        assert registry.get("web") is None

    def test_default_registry(self):
        registry = build_default_registry(FakeRenderer())
        assert registry.names == ["web", "reddit", "hn", "github", "twitter"]
        assert all(isinstance(registry.get(n), SourceProducer) for n in registry.names)
        assert registry.get("hn").resource_key == "news.ycombinator.com"


class TestFirstNonEmpty:

    @pytest.mark.asyncio
    async def test_first_non_empty_wins(self):
        calls = []

        async def empty():
            calls.append("empty")
            return []

        async def full():
            calls.append("full")
            return [{"url": "a"}]

        async def never():
            calls.append("never")
            return [{"url": "b"}]

        result = await first_non_empty([("e", empty), ("f", full), ("n", never)])
        assert result == [{"url": "a"}]
        assert calls == ["empty", "full"]

    @pytest.mark.asyncio
    async def test_failure_falls_through(self):
        async def broken():
            raise RenderError("blocked")

        async def full():
            return [{"url": "a"}]

        assert await first_non_empty([("b", broken), ("f", full)]) == [{"url": "a"}]

    @pytest.mark.asyncio
    async def test_all_failing_raises_last(self):
        async def first():
            raise RenderError("first")

        async def second():
            raise RenderError("second")

        with pytest.raises(RenderError, match="second"):
            await first_non_empty([("a", first), ("b", second)])

    @pytest.mark.asyncio
    async def test_empty_after_failure_is_empty(self):
        async def broken():
            raise RenderError("blocked")

        async def empty():
            return []

        assert await first_non_empty([("b", broken), ("e", empty)]) == []

    @pytest.mark.asyncio
    async def test_admit_runs_before_each_fallback(self):
        calls = []

        async def admit():
            calls.append("admit")

        async def empty():
            calls.append("empty")
            return []

        async def full():
            calls.append("full")
            return [{"url": "a"}]

        await first_non_empty([("e", empty), ("e2", empty), ("f", full)], admit=admit)
        assert calls == ["empty", "admit", "empty", "admit", "full"]


# ── Web ──────────────────────────────────────────────────────────


class TestWebUrlDecoding:

    def test_ddg_redirect(self):
        url = "https://duckduckgo.com/l/?uddg=https%3A%2F%2Fexample.com%2Fa%3Fb%3D1&rut=abc"
        assert decode_ddg_url(url) == "https://example.com/a?b=1"

    def test_ddg_plain_url_unchanged(self):
        assert decode_ddg_url("https://example.com") == "https://example.com"

    def test_bing_redirect(self):
        token = base64.urlsafe_b64encode(b"https://example.com/page").decode().rstrip("=")
        url = f"https://www.bing.com/ck/a?!&&p=abc&u=a1{token}&ntb=1"
        assert decode_bing_url(url) == "https://example.com/page"

    def test_bing_garbage_token_unchanged(self):
        url = "https://www.bing.com/ck/a?u=a1!!!notbase64"
        assert decode_bing_url(url) == url

    def test_clean_results_drops_engine_links(self):
        raw = [
            {"title": "Ad", "url": "https://duckduckgo.com/y.js?ad=1"},
            {"title": "T" * 300, "url": "https://example.com", "snippet": "s"},
            {"title": "No url", "url": ""},
        ]
        cleaned = clean_results("ddg", raw)
        assert len(cleaned) == 1
        assert cleaned[0]["url"] == "https://example.com"
        assert len(cleaned[0]["title"]) == 200


class TestWebSearchProducer:

    @pytest.mark.asyncio
    async def test_ddg_search(self):
        page = _by_rule(ddg_results=[
            {"title": "Example", "url": "https://duckduckgo.com/l/?uddg=https%3A%2F%2Fexample.com", "snippet": "x"},
        ])
        renderer = FakeRenderer(default=page)
        producer = WebSearchProducer(renderer)

        results = await producer.search("rust async")

        assert results == [{"title": "Example", "url": "https://example.com", "snippet": "x"}]
        assert renderer.opened == ["https://html.duckduckgo.com/html/?q=rust+async"]
        assert renderer.closed == renderer.opened

    @pytest.mark.asyncio
    async def test_google_consent_then_results(self):
        page = _by_rule(
            google_consent=True,
            google_results=[{"title": "G", "url": "https://example.org"}],
        )
        renderer = FakeRenderer(default=page)
        producer = WebSearchProducer(renderer, engine="google")

        results = await producer.search("q")

        assert [r["url"] for r in results] == ["https://example.org"]
        assert producer.resource_key == "google.com"
        assert len(renderer.closed) == 1

    @pytest.mark.asyncio
    async def test_non_list_extraction_is_render_failure(self):
        renderer = FakeRenderer(default=_by_rule(bing_results="captcha"))
        with pytest.raises(RenderError):
            await WebSearchProducer(renderer, engine="bing").search("q")

    @pytest.mark.asyncio
    async def test_no_renderer(self):
        with pytest.raises(RenderError, match="no renderer"):
            await WebSearchProducer(None).search("q")

    def test_unknown_engine(self):
        with pytest.raises(ValueError):
            WebSearchProducer(FakeRenderer(), engine="altavista")


# ── Reddit / HN / GitHub / Twitter ───────────────────────────────


class TestReddit:

    def test_parse_listing(self):
        posts = parse_listing(_listing("Async in Rust", "Tokio 2.0"))
        assert posts[0] == {
            "title": "Async in Rust",
            "url": "https://reddit.com/r/rust/comments/1/",
            "subreddit": "r/rust",
            "author": "u/ferris",
            "score": 10,
            "comments": 1,
        }
        assert len(posts) == 2

    def test_parse_listing_bad_json(self):
        with pytest.raises(RenderError) as exc_info:
            parse_listing("<html>blocked</html>")
        assert exc_info.value.kind == ErrorKind.PARSE_FAILURE

    @pytest.mark.asyncio
    async def test_json_path(self):
        renderer = FakeRenderer(default=_by_rule(reddit_json_body=_listing("One")))
        posts = await RedditProducer(renderer).search("rust")
        assert [p["title"] for p in posts] == ["One"]
        assert len(renderer.opened) == 1

    @pytest.mark.asyncio
    async def test_html_fallback_when_json_blocked(self):
        renderer = FakeRenderer(default=_by_rule(
            reddit_json_body="<html>blocked</html>",
            reddit_shreddit_posts=[{"title": "From HTML", "url": "https://reddit.com/r/x/1"}],
        ))
        posts = await RedditProducer(renderer).search("rust")

        assert [p["title"] for p in posts] == ["From HTML"]
        assert len(renderer.opened) == 2
        assert renderer.options[1].wait_for_selector == "shreddit-post"

    @pytest.mark.asyncio
    async def test_html_fallback_passes_admission(self):
        limiter = MagicMock()
        limiter.await_slot = AsyncMock()
        renderer = FakeRenderer(default=_by_rule(
            reddit_json_body="<html>blocked</html>",
            reddit_shreddit_posts=[{"title": "From HTML", "url": "https://reddit.com/r/x/1"}],
        ))

        await RedditProducer(renderer, limiter).search("rust")

        limiter.await_slot.assert_awaited_once_with("reddit.com")


class TestHackerNews:

    @pytest.mark.asyncio
    async def test_algolia_results(self):
        story = {"title": "Show HN", "url": "https://a.com", "points": "10",
                 "comments": "3", "comments_url": "https://news.ycombinator.com/item?id=9"}
        renderer = FakeRenderer(default=_by_rule(hn_algolia_stories=[story]))
        assert await HackerNewsProducer(renderer).search("show") == [story]

    @pytest.mark.asyncio
    async def test_front_page_fallback(self):
        renderer = FakeRenderer(default=_by_rule(
            hn_algolia_stories=[],
            hn_front_page=[{"title": "Front", "url": "https://b.com"}],
        ))
        stories = await HackerNewsProducer(renderer).search("nothing")
        assert [s["title"] for s in stories] == ["Front"]
        assert renderer.opened[-1] == FRONT_PAGE_URL

    @pytest.mark.asyncio
    async def test_no_fallback_admission_when_first_strategy_hits(self):
        limiter = MagicMock()
        limiter.await_slot = AsyncMock()
        renderer = FakeRenderer(default=_by_rule(hn_algolia_stories=[{"title": "A", "url": "https://a.com"}]))

        await HackerNewsProducer(renderer, limiter).search("show")

        limiter.await_slot.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_front_page_fallback_passes_admission(self):
        limiter = MagicMock()
        limiter.await_slot = AsyncMock()
        renderer = FakeRenderer(default=_by_rule(
            hn_algolia_stories=[],
            hn_front_page=[{"title": "Front", "url": "https://b.com"}],
        ))

        await HackerNewsProducer(renderer, limiter).search("nothing")

        limiter.await_slot.assert_awaited_once_with("news.ycombinator.com")


class TestGitHubAndTwitter:

    @pytest.mark.asyncio
    async def test_github(self):
        repo = {"name": "tokio-rs/tokio", "url": "https://github.com/tokio-rs/tokio", "stars": "25k"}
        renderer = FakeRenderer(default=_by_rule(github_repos=[repo]))
        assert await GitHubProducer(renderer).search("async runtime") == [repo]
        assert "s=stars" in renderer.opened[0]

    @pytest.mark.asyncio
    async def test_twitter_waits_for_tweets(self):
        tweet = {"user": "ferris", "text": "hello", "url": "https://x.com/f/status/1"}
        renderer = FakeRenderer(default=_by_rule(x_tweets=[tweet]))
        assert await TwitterProducer(renderer).search("rust") == [tweet]
        assert renderer.options[0].wait_for_selector == '[data-testid="tweet"]'

    @pytest.mark.asyncio
    async def test_twitter_empty_page(self):
        renderer = FakeRenderer(default=_by_rule(x_tweets=None))
        assert await TwitterProducer(renderer).search("rust") == []
