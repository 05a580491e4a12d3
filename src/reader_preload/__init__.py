"""Predictive chapter preloading for a remote-book reading client."""

from reader_preload.cache import PreloadCache
from reader_preload.models import (
    Book,
    BookContent,
    Chapter,
    PreloadConfig,
    PreloadStats,
    PreloadStatus,
    PreloadTask,
    ReadingProgressEvent,
    SchedulerStats,
)
from reader_preload.scheduler import PreloadScheduler, preload_window
from reader_preload.services import ContentFetcher, ReaderApiClient, ReaderApiError

__version__ = "0.1.0"

__all__ = [
    "Book",
    "BookContent",
    "Chapter",
    "ContentFetcher",
    "PreloadCache",
    "PreloadConfig",
    "PreloadScheduler",
    "PreloadStats",
    "PreloadStatus",
    "PreloadTask",
    "ReaderApiClient",
    "ReaderApiError",
    "ReadingProgressEvent",
    "SchedulerStats",
    "__version__",
    "preload_window",
]
