"""Internal reader API service helpers for bookshelf, chapter list, and chapter fetches."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from reader_preload.models import Book, BookContent, Chapter
from reader_preload.parsing import parse_book_content, parse_bookshelf, parse_chapter_list

logger = logging.getLogger(__name__)

READER_API_TIMEOUT = 30  # seconds
READER_API_USER_AGENT = "reader-preload/0.1"


class ReaderApiError(RuntimeError):
    """Raised when a reader API call fails (transport, HTTP status, or payload)."""


def normalize_base_url(base_url: str) -> str:
    """Strip a single trailing slash so paths can be appended directly."""
    return base_url[:-1] if base_url.endswith("/") else base_url


def unwrap_response(payload: Any) -> Any:
    """Unwrap the ``{"isSuccess", "data", "errorMsg"}`` envelope some servers use.

    Payloads without the envelope are returned unchanged.
    """
    if isinstance(payload, dict) and "isSuccess" in payload:
        if payload.get("isSuccess"):
            return payload.get("data")
        message = payload.get("errorMsg")
        raise ReaderApiError(message if isinstance(message, str) and message else "request failed")
    return payload


async def _get_json(
    *,
    client: httpx.AsyncClient | None,
    base_url: str,
    path: str,
    params: dict[str, str | int] | None,
    timeout_seconds: float,
    user_agent: str,
) -> Any:
    url = f"{normalize_base_url(base_url)}{path}"
    headers = {"User-Agent": user_agent, "Content-Type": "application/json"}
    logger.debug("GET %s params=%s", url, params)

    try:
        if client is not None:
            response = await client.get(
                url, params=params, headers=headers, timeout=timeout_seconds
            )
        else:
            async with httpx.AsyncClient() as tmp_client:
                response = await tmp_client.get(
                    url, params=params, headers=headers, timeout=timeout_seconds
                )
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise ReaderApiError(
            f"{path} returned HTTP {exc.response.status_code}"
        ) from exc
    except httpx.HTTPError as exc:
        raise ReaderApiError(f"{path} request failed: {exc}") from exc

    try:
        payload = response.json()
    except ValueError as exc:
        raise ReaderApiError(f"{path} returned invalid JSON: {response.text[:200]}") from exc
    return unwrap_response(payload)


async def fetch_book_content(
    *,
    client: httpx.AsyncClient | None,
    base_url: str,
    book_url: str,
    chapter_index: int,
    timeout_seconds: float = READER_API_TIMEOUT,
    user_agent: str = READER_API_USER_AGENT,
) -> BookContent:
    """Fetch and parse one chapter of a book."""
    data = await _get_json(
        client=client,
        base_url=base_url,
        path="/getBookContent",
        params={"url": book_url, "index": chapter_index},
        timeout_seconds=timeout_seconds,
        user_agent=user_agent,
    )
    content = parse_book_content(data)
    if content is None:
        raise ReaderApiError(f"/getBookContent returned a malformed chapter {chapter_index}")
    return content


async def fetch_bookshelf(
    *,
    client: httpx.AsyncClient | None,
    base_url: str,
    timeout_seconds: float = READER_API_TIMEOUT,
    user_agent: str = READER_API_USER_AGENT,
) -> list[Book]:
    """Fetch the user's bookshelf. An empty response yields an empty list."""
    data = await _get_json(
        client=client,
        base_url=base_url,
        path="/getBookshelf",
        params=None,
        timeout_seconds=timeout_seconds,
        user_agent=user_agent,
    )
    return parse_bookshelf(data)


async def fetch_chapter_list(
    *,
    client: httpx.AsyncClient | None,
    base_url: str,
    book_url: str,
    timeout_seconds: float = READER_API_TIMEOUT,
    user_agent: str = READER_API_USER_AGENT,
) -> list[Chapter]:
    """Fetch a book's table of contents."""
    data = await _get_json(
        client=client,
        base_url=base_url,
        path="/getChapterList",
        params={"url": book_url},
        timeout_seconds=timeout_seconds,
        user_agent=user_agent,
    )
    return parse_chapter_list(data)


__all__ = [
    "READER_API_TIMEOUT",
    "READER_API_USER_AGENT",
    "ReaderApiError",
    "fetch_book_content",
    "fetch_bookshelf",
    "fetch_chapter_list",
    "normalize_base_url",
    "unwrap_response",
]
