"""Bounded in-memory chapter cache with LRU eviction and age-based expiry.

The cache is keyed by ``(book_id, chapter_index)``. A single ``OrderedDict``
holds both the entries and their recency order: the front is the least
recently used key (the eviction candidate), the back the most recent.

No operation raises. Absence is reported as ``None`` or ``False``.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from collections.abc import Callable

from reader_preload.models import (
    DEFAULT_MAX_CACHE_SIZE,
    BookContent,
    CacheEntry,
    CacheKey,
    PreloadStats,
)

logger = logging.getLogger(__name__)

CACHE_ENTRY_TTL_SECONDS = 60 * 60  # Entries older than one hour are swept


class PreloadCache:
    """LRU cache for fetched chapters, with hit/miss/success/failure counters."""

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_CACHE_SIZE,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._max_size = max_size
        self._clock = clock
        self._entries: OrderedDict[CacheKey, CacheEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._preload_success = 0
        self._preload_failures = 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def max_size(self) -> int:
        return self._max_size

    def keys(self) -> list[CacheKey]:
        """Return cached keys from least to most recently used."""
        return list(self._entries)

    def _evict_lru(self) -> None:
        if not self._entries:
            return
        key, _ = self._entries.popitem(last=False)
        logger.debug("Evicted %s chapter %d", key[0], key[1])

    def set(self, book_id: str, chapter_index: int, content: BookContent) -> None:
        """Insert or overwrite a chapter, evicting LRU entries to make room."""
        key = (book_id, chapter_index)
        now = self._clock()

        while self._entries and len(self._entries) >= self._max_size:
            self._evict_lru()

        self._entries[key] = CacheEntry(content=content, cache_time=now, access_time=now)
        self._entries.move_to_end(key)
        # NOTE: counts every write, including direct-read population and
        # overwrites, so preload_success over-reports genuine preloads.
        self._preload_success += 1
        logger.debug("Cached %s chapter %d", book_id, chapter_index)

    def get(self, book_id: str, chapter_index: int) -> BookContent | None:
        """Return cached content and mark it most recently used, or None on miss."""
        key = (book_id, chapter_index)
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            logger.debug("Cache miss: %s chapter %d", book_id, chapter_index)
            return None

        entry.access_time = self._clock()
        self._entries.move_to_end(key)
        self._hits += 1
        logger.debug("Cache hit: %s chapter %d", book_id, chapter_index)
        return entry.content

    def has(self, book_id: str, chapter_index: int) -> bool:
        return (book_id, chapter_index) in self._entries

    def peek(self, book_id: str, chapter_index: int) -> CacheEntry | None:
        """Return the raw entry without touching recency or counters."""
        return self._entries.get((book_id, chapter_index))

    def delete(self, book_id: str, chapter_index: int) -> bool:
        """Remove one chapter. Returns True if it was cached."""
        entry = self._entries.pop((book_id, chapter_index), None)
        if entry is None:
            return False
        logger.debug("Deleted %s chapter %d", book_id, chapter_index)
        return True

    def clear(self) -> None:
        """Drop every entry. Counters are kept."""
        self._entries.clear()
        logger.debug("Cache cleared")

    def clean_expired(self) -> int:
        """Remove entries cached more than an hour ago. Returns the count removed."""
        now = self._clock()
        expired = [
            key
            for key, entry in self._entries.items()
            if now - entry.cache_time > CACHE_ENTRY_TTL_SECONDS
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Removed %d expired cache entries", len(expired))
        return len(expired)

    def set_max_size(self, max_size: int) -> None:
        """Change capacity, evicting LRU entries until the cache fits."""
        self._max_size = max_size
        while len(self._entries) > self._max_size:
            self._evict_lru()
        logger.debug("Cache capacity set to %d", max_size)

    def get_stats(self) -> PreloadStats:
        return PreloadStats(
            cache_hits=self._hits,
            cache_misses=self._misses,
            preload_success=self._preload_success,
            preload_failures=self._preload_failures,
            current_cache_size=len(self._entries),
        )

    def get_hit_rate(self) -> float:
        """Hit percentage over all lookups; 0 when nothing was looked up yet."""
        total = self._hits + self._misses
        if total == 0:
            return 0.0
        return self._hits / total * 100

    def record_preload_failure(self) -> None:
        self._preload_failures += 1


__all__ = [
    "CACHE_ENTRY_TTL_SECONDS",
    "PreloadCache",
]
