"""Command line interface for bookscope."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Awaitable, Callable, Sequence

from dotenv import load_dotenv

from .analysis import book_chat_agent, build_coordinator
from .cache import build_cache, cache_status, clear_book
from .config import BookscopeConfig
from .errors import BookscopeError, InvalidIdentifier
from .llm.providers import build_provider
from .text_source import GutenbergTextSource

__all__ = ["main", "build_parser"]

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bookscope",
        description="Fetch Project Gutenberg books and produce cached literary analyses.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        allow_abbrev=False,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    subparsers = parser.add_subparsers(dest="command")

    analyze = subparsers.add_parser("analyze", help="Analyze a book (served from cache when available).")
    analyze.add_argument("book_id", help="Project Gutenberg book ID.")
    analyze.add_argument("--markdown", action="store_true", help="Print a Markdown report instead of JSON.")
    _register_provider_arguments(analyze)

    text = subparsers.add_parser("text", help="Print the (truncated) text of a book.")
    text.add_argument("book_id", help="Project Gutenberg book ID.")

    ask = subparsers.add_parser("ask", help="Ask a question about a book.")
    ask.add_argument("book_id", help="Project Gutenberg book ID.")
    ask.add_argument("question", help="Question to ask about the book.")
    _register_provider_arguments(ask)

    cache = subparsers.add_parser("cache", help="Inspect or clear cached data for a book.")
    cache_sub = cache.add_subparsers(dest="cache_command", required=True)
    for name, help_text in [
        ("status", "Show which cache tiers hold data for the book."),
        ("clear", "Delete cached text and analysis for the book."),
    ]:
        sub = cache_sub.add_parser(name, help=help_text)
        sub.add_argument("book_id", help="Project Gutenberg book ID.")

    return parser


def _register_provider_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--model", default=None, help="Model name; defaults to BOOKSCOPE_MODEL/GROQ_MODEL.")
    parser.add_argument("--base-url", dest="base_url", default=None, help="OpenAI-compatible API base URL.")
    parser.add_argument("--temperature", type=float, default=None, help="Sampling temperature.")
    parser.add_argument("--max-tokens", dest="max_tokens", type=int, default=None, help="Maximum response tokens.")


def _provider_overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides = {
        "model": args.model,
        "base_url": args.base_url,
        "temperature": args.temperature,
        "max_tokens": args.max_tokens,
    }
    return {key: value for key, value in overrides.items() if value is not None}


def _emit(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


async def _run_analyze(args: argparse.Namespace, config: BookscopeConfig) -> None:
    coordinator = build_coordinator(config, **_provider_overrides(args))
    result = await coordinator.get_analysis(args.book_id)
    if args.markdown:
        print(result.to_markdown(), end="")
    else:
        _emit(result.to_payload())


async def _run_text(args: argparse.Namespace, config: BookscopeConfig) -> None:
    text_source = GutenbergTextSource(build_cache(config.cache), config.text)
    print(await text_source.fetch_text(args.book_id))


async def _run_ask(args: argparse.Namespace, config: BookscopeConfig) -> None:
    cache = build_cache(config.cache)
    book_text = await GutenbergTextSource(cache, config.text).fetch_text(args.book_id)
    provider = build_provider(timeout=config.analysis.model_timeout, **config.as_provider_kwargs(**_provider_overrides(args)))
    agent = book_chat_agent(provider)
    reply = await agent.chat(
        [
            {"role": "user", "content": f"Here is the text of the book:\n\n{book_text}"},
            {"role": "user", "content": args.question},
        ]
    )
    print(reply)


async def _run_cache(args: argparse.Namespace, config: BookscopeConfig) -> None:
    book_id = (args.book_id or "").strip()
    if not book_id:
        raise InvalidIdentifier("Invalid book ID provided")
    if not config.cache.is_remote:
        logger.warning(
            "No remote cache configured; %s reflects an empty per-process store. "
            "Set UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN.",
            args.cache_command,
        )
    cache = build_cache(config.cache)
    if args.cache_command == "status":
        _emit({"bookId": book_id, **await cache_status(cache, book_id)})
    else:
        cleared = await clear_book(cache, book_id)
        _emit({"bookId": book_id, "cleared": cleared})


def main(argv: Sequence[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    command_map: dict[str, Callable[[argparse.Namespace, BookscopeConfig], Awaitable[None]]] = {
        "analyze": _run_analyze,
        "text": _run_text,
        "ask": _run_ask,
        "cache": _run_cache,
    }
    runner = command_map.get(args.command)
    if runner is None:
        parser.print_help()
        return 0

    try:
        asyncio.run(runner(args, BookscopeConfig()))
    except BookscopeError as exc:
        logger.debug("Command failed", exc_info=True)
        print(f"Error [{exc.category}]: {exc}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
