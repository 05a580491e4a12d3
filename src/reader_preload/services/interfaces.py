"""Service interfaces + the default httpx-backed reader API adapter."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import httpx

from reader_preload.models import Book, BookContent, Chapter
from reader_preload.services import reader_api_service as _reader_api


@runtime_checkable
class ContentFetcher(Protocol):
    """Anything that can fetch one chapter. Raises on failure; no retry or timeout."""

    async def fetch_chapter(self, book_id: str, chapter_index: int) -> BookContent:
        """Fetch one chapter of a book."""
        ...


@runtime_checkable
class BookCatalog(Protocol):
    """Interface for bookshelf and table-of-contents lookups."""

    async def fetch_bookshelf(self) -> list[Book]:
        """List the books on the user's shelf."""
        ...

    async def fetch_chapter_list(self, book_id: str) -> list[Chapter]:
        """List a book's chapters in reading order."""
        ...


class ReaderApiClient:
    """Default adapter that delegates to function-based reader API services.

    Used as an async context manager it owns one ``httpx.AsyncClient`` for its
    lifetime; otherwise each call opens a short-lived client.
    """

    __slots__ = ("_base_url", "_client", "_owns_client", "_timeout_seconds", "_user_agent")

    def __init__(
        self,
        base_url: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = _reader_api.READER_API_TIMEOUT,
        user_agent: str = _reader_api.READER_API_USER_AGENT,
    ) -> None:
        self._base_url = _reader_api.normalize_base_url(base_url)
        self._client = client
        self._owns_client = False
        self._timeout_seconds = timeout_seconds
        self._user_agent = user_agent

    @property
    def base_url(self) -> str:
        return self._base_url

    async def __aenter__(self) -> ReaderApiClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
            self._owns_client = True
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this adapter created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
            self._owns_client = False

    async def fetch_chapter(self, book_id: str, chapter_index: int) -> BookContent:
        return await _reader_api.fetch_book_content(
            client=self._client,
            base_url=self._base_url,
            book_url=book_id,
            chapter_index=chapter_index,
            timeout_seconds=self._timeout_seconds,
            user_agent=self._user_agent,
        )

    async def fetch_bookshelf(self) -> list[Book]:
        return await _reader_api.fetch_bookshelf(
            client=self._client,
            base_url=self._base_url,
            timeout_seconds=self._timeout_seconds,
            user_agent=self._user_agent,
        )

    async def fetch_chapter_list(self, book_id: str) -> list[Chapter]:
        return await _reader_api.fetch_chapter_list(
            client=self._client,
            base_url=self._base_url,
            book_url=book_id,
            timeout_seconds=self._timeout_seconds,
            user_agent=self._user_agent,
        )


__all__ = [
    "BookCatalog",
    "ContentFetcher",
    "ReaderApiClient",
]
