"""CLI/bootstrap helpers for the reader preloading client."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import logging.handlers
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir

from reader_preload.config import CONFIG_APP_NAME, ReaderSettings, load_config, save_config
from reader_preload.models import ReadingProgressEvent, SchedulerStats
from reader_preload.scheduler import PreloadScheduler
from reader_preload.services.interfaces import ReaderApiClient
from reader_preload.services.reader_api_service import ReaderApiError

logger = logging.getLogger(__name__)


DEBUG_LOG_FILENAME = "debug.log"
DEBUG_LOG_MAX_BYTES = 5 * 1024 * 1024
DEBUG_LOG_BACKUPS = 3
DEBUG_LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def _configure_logging(debug: bool) -> None:
    """Silence logging, or with ``--debug`` send every record to a rotating ``debug.log``.

    Chapter text goes to stdout, so log output never shares a stream with it.
    """
    if not debug:
        logging.disable(logging.CRITICAL)
        return

    log_path = Path(user_config_dir(CONFIG_APP_NAME)) / DEBUG_LOG_FILENAME
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        log_path,
        maxBytes=DEBUG_LOG_MAX_BYTES,
        backupCount=DEBUG_LOG_BACKUPS,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(DEBUG_LOG_FORMAT, datefmt="%H:%M:%S"))

    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG)
    logger.debug("Debug log at %s", log_path)


def format_stats(stats: SchedulerStats) -> str:
    """Render a scheduler stats snapshot as short ``key: value`` lines."""
    cache = stats.cache
    return "\n".join(
        [
            f"cache size:       {cache.current_cache_size}",
            f"cache hits:       {cache.cache_hits}",
            f"cache misses:     {cache.cache_misses}",
            f"hit rate:         {stats.hit_rate:.1f}%",
            f"preload success:  {cache.preload_success}",
            f"preload failures: {cache.preload_failures}",
            f"queue size:       {stats.queue_size}",
            f"preloading:       {'yes' if stats.is_preloading else 'no'}",
        ]
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Read chapters from a reader server, preloading upcoming chapters"
    )
    parser.add_argument(
        "--server",
        type=str,
        default=None,
        help="Reader API base URL (default: config value)",
    )
    parser.add_argument(
        "--save-server",
        action="store_true",
        help="Store --server in the config file as the new default",
    )
    parser.add_argument("--book", type=str, default=None, help="Book URL to read")
    parser.add_argument(
        "--chapter",
        type=int,
        default=0,
        help="Zero-based chapter index to read (default: 0)",
    )
    parser.add_argument(
        "--list-books",
        action="store_true",
        help="List the books on the bookshelf and exit",
    )
    parser.add_argument(
        "--list-chapters",
        action="store_true",
        help="List the chapters of --book and exit",
    )
    parser.add_argument(
        "--progress",
        type=float,
        default=100.0,
        help="Reading progress (0-100) to report after showing the chapter (default: 100)",
    )
    parser.add_argument(
        "--no-preload",
        action="store_true",
        help="Disable preloading of upcoming chapters",
    )
    parser.add_argument(
        "--wait-preload",
        action="store_true",
        help="Wait for queued preloads to finish before exiting",
    )
    parser.add_argument(
        "--stats",
        action="store_true",
        help="Print cache and preload statistics to stderr",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging to file (~/.config/reader-preload/debug.log)",
    )
    return parser


async def _run(
    args: argparse.Namespace,
    settings: ReaderSettings,
    client_factory: Callable[..., Any],
) -> int:
    server_url = args.server or settings.server_url
    async with client_factory(
        server_url, timeout_seconds=settings.request_timeout_seconds
    ) as api:
        if args.list_books:
            books = await api.fetch_bookshelf()
            if not books:
                print("Bookshelf is empty.")
            for book in books:
                author = f" by {book.author}" if book.author else ""
                print(f"{book.name}{author}\n  {book.book_url}")
            return 0

        if not args.book:
            print("Error: --book is required unless --list-books is given", file=sys.stderr)
            return 1

        chapters = await api.fetch_chapter_list(args.book)
        if args.list_chapters:
            for chapter in chapters:
                print(f"{chapter.index:5d}  {chapter.title}")
            return 0

        total = len(chapters)
        if not 0 <= args.chapter < total:
            print(
                f"Error: chapter {args.chapter} is out of range (book has {total} chapters)",
                file=sys.stderr,
            )
            return 1

        preload = settings.preload
        if args.no_preload:
            preload = dataclasses.replace(preload, enabled=False)

        async with PreloadScheduler(api, preload) as scheduler:
            scheduler.set_current_book(args.book, total)
            content = await scheduler.get_chapter_content(args.book, args.chapter)
            print(content.title or chapters[args.chapter].title)
            print()
            print(content.content)

            scheduler.on_reading_progress(
                ReadingProgressEvent(
                    chapter_index=args.chapter,
                    progress=args.progress,
                    total_chapters=total,
                )
            )
            if args.wait_preload:
                await scheduler.wait_until_idle()
            if args.stats:
                print(format_stats(scheduler.get_stats()), file=sys.stderr)
    return 0


def main(
    argv: list[str] | None = None,
    *,
    load_config_fn: Callable[[], ReaderSettings] = load_config,
    save_config_fn: Callable[[ReaderSettings], bool] = save_config,
    configure_logging_fn: Callable[[bool], None] = _configure_logging,
    client_factory: Callable[..., Any] = ReaderApiClient,
) -> int:
    """Main entry point. Returns exit code."""
    args = _build_parser().parse_args(argv)
    configure_logging_fn(args.debug)
    logger.debug("reader-preload starting, cwd=%s", Path.cwd())

    settings = load_config_fn()
    if args.save_server:
        if not args.server:
            print("Error: --save-server requires --server", file=sys.stderr)
            return 1
        settings = dataclasses.replace(settings, server_url=args.server)
        if not save_config_fn(settings):
            print("Warning: could not save the server URL to the config file", file=sys.stderr)

    try:
        return asyncio.run(_run(args, settings, client_factory))
    except ReaderApiError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except OSError:
        print("Error: Failed to reach the reader server (network or I/O error).", file=sys.stderr)
        return 1


__all__ = [
    "_configure_logging",
    "format_stats",
    "main",
]
