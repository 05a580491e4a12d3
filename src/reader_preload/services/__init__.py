"""Internal service layer: content fetcher protocol and reader API helpers."""

from reader_preload.services.interfaces import BookCatalog, ContentFetcher, ReaderApiClient
from reader_preload.services.reader_api_service import (
    ReaderApiError,
    fetch_book_content,
    fetch_bookshelf,
    fetch_chapter_list,
)

__all__ = [
    "BookCatalog",
    "ContentFetcher",
    "ReaderApiClient",
    "ReaderApiError",
    "fetch_book_content",
    "fetch_bookshelf",
    "fetch_chapter_list",
]
