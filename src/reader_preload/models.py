"""Data models and constants for the reader preloading client."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum

# Used for platformdirs config and log paths
CONFIG_APP_NAME = "reader-preload"

DEFAULT_SERVER_URL = "http://localhost:8080"

# Preload defaults (mirrors the reader's out-of-the-box behaviour)
DEFAULT_PRELOAD_ENABLED = True
DEFAULT_PRELOAD_CHAPTER_COUNT = 2
DEFAULT_TRIGGER_PROGRESS = 50.0
DEFAULT_MAX_CACHE_SIZE = 10

CacheKey = tuple[str, int]  # (book_id, chapter_index)


@dataclass(slots=True)
class BookContent:
    """Content of a single chapter as returned by the reader API."""

    title: str
    content: str
    next_url: str | None = None
    prev_url: str | None = None


@dataclass(slots=True)
class Book:
    """A book on the user's bookshelf."""

    name: str
    author: str
    book_url: str
    cover_url: str | None = None
    latest_chapter_title: str | None = None
    dur_chapter_index: int | None = None  # Saved reading position
    total_chapter_num: int | None = None


@dataclass(slots=True)
class Chapter:
    """One entry of a book's table of contents."""

    title: str
    url: str
    index: int


@dataclass(slots=True)
class PreloadConfig:
    """User-tunable preloading behaviour."""

    enabled: bool = DEFAULT_PRELOAD_ENABLED
    chapter_count: int = DEFAULT_PRELOAD_CHAPTER_COUNT  # Chapters to fetch ahead
    trigger_progress: float = DEFAULT_TRIGGER_PROGRESS  # Percent read before preloading
    max_cache_size: int = DEFAULT_MAX_CACHE_SIZE  # Entry count, not bytes


class PreloadStatus(StrEnum):
    """Lifecycle of a speculative chapter fetch."""

    IDLE = "idle"
    LOADING = "loading"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class PreloadTask:
    """A pending or in-flight speculative fetch for one chapter."""

    book_id: str
    chapter_index: int
    status: PreloadStatus = PreloadStatus.IDLE
    retry_count: int = 0
    created_at: float = field(default_factory=time.time)
    retry_at: float = 0.0  # Event-loop time before which a backing-off task is not drained

    @property
    def key(self) -> CacheKey:
        return (self.book_id, self.chapter_index)


@dataclass(slots=True)
class CacheEntry:
    """Cached chapter content plus its timestamps (seconds since epoch)."""

    content: BookContent
    cache_time: float
    access_time: float


@dataclass(slots=True, frozen=True)
class PreloadStats:
    """Immutable snapshot of cache counters."""

    cache_hits: int = 0
    cache_misses: int = 0
    preload_success: int = 0
    preload_failures: int = 0
    current_cache_size: int = 0


@dataclass(slots=True, frozen=True)
class SchedulerStats:
    """Immutable snapshot of scheduler state for diagnostics."""

    cache: PreloadStats
    hit_rate: float
    queue_size: int
    is_preloading: bool


@dataclass(slots=True)
class ReadingProgressEvent:
    """Scroll position report from the reading view."""

    chapter_index: int
    progress: float  # 0..100
    total_chapters: int


@dataclass(slots=True)
class CurrentBook:
    """The book the reader currently has open."""

    book_id: str
    total_chapters: int


__all__ = [
    "CONFIG_APP_NAME",
    "DEFAULT_MAX_CACHE_SIZE",
    "DEFAULT_PRELOAD_CHAPTER_COUNT",
    "DEFAULT_PRELOAD_ENABLED",
    "DEFAULT_SERVER_URL",
    "DEFAULT_TRIGGER_PROGRESS",
    "Book",
    "BookContent",
    "CacheEntry",
    "CacheKey",
    "Chapter",
    "CurrentBook",
    "PreloadConfig",
    "PreloadStats",
    "PreloadStatus",
    "PreloadTask",
    "ReadingProgressEvent",
    "SchedulerStats",
]
