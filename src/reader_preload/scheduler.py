"""Predictive chapter preloading driven by reading progress.

The scheduler watches reading-progress events for the open book and, once the
reader passes the configured threshold, queues the next few chapters for
speculative fetching. A single drain loop works through the queue one task at
a time, bounding each fetch with a timeout and retrying failures with
exponential backoff. Results land in a :class:`PreloadCache`, which also backs
the cache-first :meth:`PreloadScheduler.get_chapter_content` read path.

Everything runs on one asyncio event loop; the "one drain loop at a time"
rule is a plain boolean guard, not a lock.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from reader_preload.cache import PreloadCache
from reader_preload.models import (
    BookContent,
    CacheKey,
    CurrentBook,
    PreloadConfig,
    PreloadStatus,
    PreloadTask,
    ReadingProgressEvent,
    SchedulerStats,
)
from reader_preload.services.interfaces import ContentFetcher

logger = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================

PRELOAD_TIMEOUT_SECONDS = 30.0
MAX_RETRY_ATTEMPTS = 3
RETRY_BASE_DELAY_SECONDS = 2.0  # doubles each retry: 2s, 4s, 8s
INTER_TASK_DELAY_SECONDS = 0.5  # pause between fetches to avoid bursting the server
EXPIRY_SWEEP_INTERVAL_SECONDS = 10 * 60
PROGRESS_DELTA_THRESHOLD = 5.0  # percentage points between preload triggers


def preload_window(current_chapter: int, chapter_count: int, total_chapters: int) -> range:
    """Chapters to preload after ``current_chapter``, clamped to the book's end."""
    start = current_chapter + 1
    end = min(current_chapter + chapter_count, total_chapters - 1)
    return range(start, end + 1)


class PreloadScheduler:
    """Decides which chapters to fetch ahead and runs those fetches in the background."""

    def __init__(
        self,
        fetcher: ContentFetcher,
        config: PreloadConfig,
        *,
        cache: PreloadCache | None = None,
        fetch_timeout: float = PRELOAD_TIMEOUT_SECONDS,
        retry_base_delay: float = RETRY_BASE_DELAY_SECONDS,
        max_retries: int = MAX_RETRY_ATTEMPTS,
        inter_task_delay: float = INTER_TASK_DELAY_SECONDS,
        sweep_interval: float = EXPIRY_SWEEP_INTERVAL_SECONDS,
    ) -> None:
        self._fetcher = fetcher
        self._config = config
        self._cache = cache if cache is not None else PreloadCache(config.max_cache_size)
        self._cache.set_max_size(config.max_cache_size)
        self._fetch_timeout = fetch_timeout
        self._retry_base_delay = retry_base_delay
        self._max_retries = max_retries
        self._inter_task_delay = inter_task_delay
        self._sweep_interval = sweep_interval

        self._queue: dict[CacheKey, PreloadTask] = {}
        self._retry_attempts: dict[CacheKey, int] = {}
        self._retry_timers: dict[CacheKey, asyncio.TimerHandle] = {}
        self._current_book: CurrentBook | None = None
        self._last_triggered_progress = 0.0

        self._draining = False
        self._rerun_requested = False
        self._drain_task: asyncio.Task[None] | None = None
        self._sweep_task: asyncio.Task[None] | None = None
        self._background_tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def config(self) -> PreloadConfig:
        return self._config

    @property
    def cache(self) -> PreloadCache:
        return self._cache

    @property
    def current_book(self) -> CurrentBook | None:
        return self._current_book

    @property
    def is_preloading(self) -> bool:
        return self._draining

    def pending_tasks(self) -> list[PreloadTask]:
        """Snapshot of queued tasks in insertion order."""
        return list(self._queue.values())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic expiry sweep. Requires a running event loop.

        Called implicitly on first use of the read path or the drain loop.
        """
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = self._track_task(self._sweep_expired_forever())

    def dispose(self) -> None:
        """Tear down: drop queued work and cached content, stop background tasks."""
        self._clear_queue()
        self._cache.clear()
        for task in list(self._background_tasks):
            task.cancel()
        self._sweep_task = None
        self._drain_task = None
        self._draining = False
        self._rerun_requested = False
        logger.info("Preload scheduler disposed")

    async def __aenter__(self) -> PreloadScheduler:
        self.start()
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        self.dispose()

    async def wait_until_idle(self) -> None:
        """Wait for the active drain loop to finish. Pending backoff timers are not awaited."""
        while (task := self._drain_task) is not None:
            await asyncio.wait({task})
            if self._drain_task is task:
                break

    def _track_task(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        """Create an asyncio task and track it to prevent garbage collection."""
        task = asyncio.get_running_loop().create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        task.add_done_callback(self._on_task_done)
        return task

    @staticmethod
    def _on_task_done(task: asyncio.Task[None]) -> None:
        """Log unhandled exceptions from background tasks."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Unhandled exception in preload task: %s", exc, exc_info=exc)

    async def _sweep_expired_forever(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            removed = self._cache.clean_expired()
            if removed:
                logger.info("Expired %d cached chapters", removed)

    # ------------------------------------------------------------------
    # Inputs from the host
    # ------------------------------------------------------------------

    def update_config(self, config: PreloadConfig) -> None:
        """Apply new settings; resizes the cache and drops queued work when disabled."""
        self._config = config
        self._cache.set_max_size(config.max_cache_size)
        if not config.enabled:
            self._clear_queue()
        logger.info("Preload config updated: %s", config)

    def set_current_book(self, book_id: str, total_chapters: int) -> None:
        """Track the open book. Switching books clears the queue, not the cache."""
        if self._current_book is None or self._current_book.book_id != book_id:
            self._clear_queue()
            self._last_triggered_progress = 0.0
        self._current_book = CurrentBook(book_id=book_id, total_chapters=total_chapters)
        logger.info("Current book: %s (%d chapters)", book_id, total_chapters)

    def update_api_client(self, fetcher: ContentFetcher) -> None:
        """Swap the content source. Nothing fetched from the old source is kept."""
        self._fetcher = fetcher
        self._clear_queue()
        self._cache.clear()
        logger.info("Content fetcher replaced; queue and cache cleared")

    def on_reading_progress(self, event: ReadingProgressEvent) -> None:
        """React to a scroll-progress report. Must be called from the event loop."""
        book = self._current_book
        if not self._config.enabled or book is None:
            logger.debug(
                "Ignoring progress: enabled=%s, has_book=%s",
                self._config.enabled,
                book is not None,
            )
            return

        delta = abs(event.progress - self._last_triggered_progress)
        if delta < PROGRESS_DELTA_THRESHOLD:
            logger.debug("Progress moved %.1f points, below trigger delta", delta)
            return

        if event.progress < self._config.trigger_progress:
            logger.debug(
                "Progress %.1f%% below trigger %.1f%%",
                event.progress,
                self._config.trigger_progress,
            )
            return

        self._last_triggered_progress = event.progress
        window = preload_window(
            event.chapter_index, self._config.chapter_count, event.total_chapters
        )
        added = 0
        for chapter_index in window:
            key = (book.book_id, chapter_index)
            if self._cache.has(*key) or key in self._queue:
                continue
            self._queue[key] = PreloadTask(book_id=book.book_id, chapter_index=chapter_index)
            added += 1
        logger.debug(
            "Progress %.1f%% on chapter %d: queued %d of %d chapters",
            event.progress,
            event.chapter_index,
            added,
            len(window),
        )
        self._kick()

    # ------------------------------------------------------------------
    # Drain loop
    # ------------------------------------------------------------------

    def _kick(self) -> None:
        """Start the drain loop unless one is already running or there is nothing to do."""
        self.start()
        if self._draining:
            self._rerun_requested = True
            return
        if not self._queue:
            return
        self._drain_task = self._track_task(self._drain())
        self._draining = True

    def _due_tasks(self) -> list[PreloadTask]:
        now = asyncio.get_running_loop().time()
        ready = [
            task
            for task in self._queue.values()
            if task.status is PreloadStatus.IDLE and task.retry_at <= now
        ]
        return sorted(ready, key=lambda task: task.chapter_index)

    async def _drain(self) -> None:
        try:
            while True:
                self._rerun_requested = False
                for task in self._due_tasks():
                    if not self._config.enabled:
                        logger.debug("Preloading disabled mid-drain, stopping")
                        return
                    if self._queue.get(task.key) is not task:
                        continue  # dropped by a book switch or config change
                    await self._execute(task)
                    await asyncio.sleep(self._inter_task_delay)
                if not self._rerun_requested or not self._config.enabled:
                    return
        finally:
            # A drain cancelled by dispose() must not reset a newer loop's guard.
            if self._drain_task is asyncio.current_task():
                self._draining = False
                self._drain_task = None

    async def _execute(self, task: PreloadTask) -> None:
        fetcher = self._fetcher
        task.status = PreloadStatus.LOADING
        logger.debug("Preloading %s chapter %d", task.book_id, task.chapter_index)
        try:
            content = await asyncio.wait_for(
                fetcher.fetch_chapter(task.book_id, task.chapter_index),
                timeout=self._fetch_timeout,
            )
        except TimeoutError:
            logger.warning(
                "Preload of %s chapter %d timed out after %.1fs",
                task.book_id,
                task.chapter_index,
                self._fetch_timeout,
            )
            self._cache.record_preload_failure()
            self._handle_failure(task)
            return
        except Exception as exc:
            logger.warning(
                "Preload of %s chapter %d failed: %s",
                task.book_id,
                task.chapter_index,
                exc,
                exc_info=True,
            )
            self._cache.record_preload_failure()
            self._handle_failure(task)
            return

        if fetcher is not self._fetcher:
            logger.debug("Discarding chapter %d fetched from a replaced source", task.chapter_index)
            return

        self._cache.set(task.book_id, task.chapter_index, content)
        task.status = PreloadStatus.COMPLETED
        self._forget(task)
        # A book switch and back may have queued a second task for this chapter.
        duplicate = self._queue.get(task.key)
        if duplicate is not None and duplicate.status is PreloadStatus.IDLE:
            self._forget(duplicate)
        logger.debug("Preloaded %s chapter %d", task.book_id, task.chapter_index)

    def _handle_failure(self, task: PreloadTask) -> None:
        key = task.key
        if self._queue.get(key) is not task:
            return  # queue was cleared while the fetch was in flight

        attempts = self._retry_attempts.get(key, 0)
        if attempts >= self._max_retries:
            task.status = PreloadStatus.FAILED
            self._forget(task)
            logger.warning(
                "Giving up on %s chapter %d after %d retries",
                task.book_id,
                task.chapter_index,
                attempts,
            )
            return

        loop = asyncio.get_running_loop()
        delay = self._retry_base_delay * 2**attempts
        self._retry_attempts[key] = attempts + 1
        task.retry_count = attempts + 1
        task.status = PreloadStatus.IDLE
        task.retry_at = loop.time() + delay
        self._retry_timers[key] = loop.call_later(delay, self._on_retry_due, key)
        logger.info(
            "Retrying %s chapter %d in %.1fs (retry %d/%d)",
            task.book_id,
            task.chapter_index,
            delay,
            attempts + 1,
            self._max_retries,
        )

    def _on_retry_due(self, key: CacheKey) -> None:
        self._retry_timers.pop(key, None)
        task = self._queue.get(key)
        if task is None:
            return
        # Timers may fire up to one clock tick early; mark the task due outright.
        task.retry_at = 0.0
        self._kick()

    def _forget(self, task: PreloadTask) -> None:
        """Remove a finished task and its retry bookkeeping."""
        key = task.key
        if self._queue.get(key) is task:
            del self._queue[key]
        self._retry_attempts.pop(key, None)
        timer = self._retry_timers.pop(key, None)
        if timer is not None:
            timer.cancel()

    def _clear_queue(self) -> None:
        self._queue.clear()
        self._retry_attempts.clear()
        for timer in self._retry_timers.values():
            timer.cancel()
        self._retry_timers.clear()
        logger.debug("Preload queue cleared")

    # ------------------------------------------------------------------
    # Outputs to the host
    # ------------------------------------------------------------------

    async def get_chapter_content(self, book_id: str, chapter_index: int) -> BookContent:
        """Return a chapter from cache, or fetch and cache it. Fetch errors propagate."""
        self.start()
        cached =self._cache.get(book_id, chapter_index)
        if cached is not None:
            return cached

        logger.debug("Fetching %s chapter %d directly", book_id, chapter_index)
        content = await self._fetcher.fetch_chapter(book_id, chapter_index)
        self._cache.set(book_id, chapter_index, content)
        return content

    def get_stats(self) -> SchedulerStats:
        return SchedulerStats(
            cache=self._cache.get_stats(),
            hit_rate=self._cache.get_hit_rate(),
            queue_size=len(self._queue),
            is_preloading=self._draining,
        )


__all__ = [
    "EXPIRY_SWEEP_INTERVAL_SECONDS",
    "INTER_TASK_DELAY_SECONDS",
    "MAX_RETRY_ATTEMPTS",
    "PRELOAD_TIMEOUT_SECONDS",
    "PROGRESS_DELTA_THRESHOLD",
    "RETRY_BASE_DELAY_SECONDS",
    "PreloadScheduler",
    "preload_window",
]
