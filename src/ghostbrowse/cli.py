"""ghostbrowse CLI - multi-source research from the terminal.

Modes:
  - Research: `ghostbrowse "topic" --sources web,reddit,hn --read 3`
  - Cache maintenance: `ghostbrowse --cache-stats` / `ghostbrowse --clear-cache`

Progress lines go to stderr; the report (Markdown or --json) goes to stdout.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from ghostbrowse import __version__
from ghostbrowse.browser.playwright_renderer import PlaywrightRenderer
from ghostbrowse.config import ENGINES, GhostBrowseConfig, load_config
from ghostbrowse.core.errors import ConfigError
from ghostbrowse.core.events import Event, EventBus
from ghostbrowse.research.cache import ResultCache
from ghostbrowse.research.models import ResearchSession
from ghostbrowse.research.orchestrator import (
    DEFAULT_SOURCES,
    ResearchOptions,
    create_research_service,
)
from ghostbrowse.research.report import render_json, render_markdown

logger = logging.getLogger(__name__)


# ANSI colors
class Colors:
    RESET = "\033[0m"
    DIM = "\033[2m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    RED = "\033[31m"


def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {raw!r}") from None
    if value < 0:
        raise argparse.ArgumentTypeError(f"expected a non-negative integer, got {value}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ghostbrowse",
        description="Research a topic across web search, social feeds, forums and code hosts.",
    )
    parser.add_argument("topic", nargs="?", help="Research topic")
    parser.add_argument(
        "--sources",
        default=",".join(DEFAULT_SOURCES),
        help="Comma-separated sources: web,twitter,reddit,hn,github (default: %(default)s)",
    )
    parser.add_argument("--engine", choices=ENGINES, default=None, help="Web search engine")
    parser.add_argument("--limit", type=_positive_int, default=5, help="Results per source")
    parser.add_argument("--read", type=_positive_int, default=3, help="Top web pages to read in full")
    parser.add_argument("--max", type=_positive_int, default=2500, help="Characters kept per page")
    parser.add_argument("--concurrency", type=_positive_int, default=3, help="Parallel page reads")
    parser.add_argument("--decompose", action="store_true", help="Split the topic into sub-questions")
    parser.add_argument("--json", action="store_true", help="Print the session as JSON")
    parser.add_argument("--config", default=None, metavar="PATH", help="Config YAML path")
    parser.add_argument("--timeout-ms", type=_positive_int, default=None, help="Per-source deadline")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--cache-stats", action="store_true", help="Show cache statistics and exit")
    parser.add_argument("--clear-cache", action="store_true", help="Delete all cache entries and exit")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def parse_sources(raw: str) -> list[str]:
    return [s.strip().lower() for s in raw.split(",") if s.strip()]


def build_options(args: argparse.Namespace, config: GhostBrowseConfig) -> ResearchOptions:
    overrides = dict(
        limit_per_source=args.limit,
        read_top_n=args.read,
        read_concurrency=max(1, args.concurrency),
        decompose=args.decompose,
        max_chars=args.max,
    )
    if args.timeout_ms is not None:
        overrides["per_source_timeout_ms"] = args.timeout_ms
    return ResearchOptions.from_config(config, **overrides)


def print_progress(event: Event) -> None:
    """One stderr line per progress event."""
    c = Colors
    d = event.data
    t = event.event_type
    if t == "source.completed":
        line = f"  {c.GREEN}✅ {d.get('source')}: {d.get('count')} results ({d.get('elapsed_seconds')}s){c.RESET}"
    elif t == "source.failed":
        line = f"  {c.RED}❌ {d.get('source')}: {str(d.get('error', ''))[:60]}{c.RESET}"
    elif t == "rate.delayed":
        line = f"  {c.YELLOW}⏳ Rate limit {d.get('resource')}: waiting {d.get('wait_ms', 0) / 1000:.1f}s{c.RESET}"
    elif t == "retry":
        line = f"  {c.YELLOW}↻ Retry {d.get('attempt')}/{d.get('max_attempts')}: {d.get('error')}{c.RESET}"
    elif t == "page.read":
        cached = ", cached" if d.get("from_cache") else ""
        line = f"  {c.GREEN}📖 {d.get('url')} ({d.get('chars')} chars{cached}){c.RESET}"
    elif t == "page.failed":
        line = f"  {c.RED}❌ {d.get('url')}: {d.get('error')}{c.RESET}"
    elif t == "research.decomposed":
        line = f"{c.DIM}📋 {d.get('sub_questions')} sub-questions ({d.get('queries')} queries){c.RESET}"
    else:
        return
    print(line, file=sys.stderr)


async def run_session(
    args: argparse.Namespace, config: GhostBrowseConfig, event_bus: EventBus
) -> ResearchSession:
    """Run one research session; Chromium starts on first use and is shut down after."""
    async with PlaywrightRenderer(
        headless=config.headless, executable_path=config.browser_executable
    ) as renderer:
        service = create_research_service(config, renderer=renderer, event_bus=event_bus)
        return await service.run_research(
            args.topic, parse_sources(args.sources), build_options(args, config)
        )


def _cache_command(args: argparse.Namespace, config: GhostBrowseConfig) -> int:
    cache = ResultCache(config.cache_dir)
    if args.clear_cache:
        removed = cache.clear()
        print(f"🗑️  Cleared {removed} cache entries")
    if args.cache_stats:
        stats = cache.stats()
        print(f"📦 Cache: {stats['entries']} entries, {stats['size_kb']}KB ({config.cache_dir})")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(Path(args.config) if args.config else None)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 1
    if args.engine:
        config.default_engine = args.engine

    if args.cache_stats or args.clear_cache:
        return _cache_command(args, config)

    if not args.topic or not args.topic.strip():
        parser.error("a topic is required (or use --cache-stats / --clear-cache)")
    if not parse_sources(args.sources):
        parser.error("--sources must name at least one source")

    bus = EventBus()
    bus.subscribe_all(print_progress)
    print(
        f"\n🔬 Research: \"{args.topic}\" | Sources: {args.sources}"
        f" | Engine: {config.default_engine}{' | Decompose: ON' if args.decompose else ''}",
        file=sys.stderr,
    )

    try:
        session = asyncio.run(run_session(args, config, bus))
    except KeyboardInterrupt:
        return 130

    conf = session.confidence
    print(
        f"\n✅ Done in {session.elapsed_seconds:.1f}s | Confidence: {conf.level.emoji} {conf.level.value}"
        f" | Sources with data: {conf.sources_with_data}/{len(session.source_results)}"
        f" | Total results: {conf.total_results}",
        file=sys.stderr,
    )

    if args.json:
        print(render_json(session))
    else:
        print(render_markdown(session, max_chars=args.max, engine=config.default_engine))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
