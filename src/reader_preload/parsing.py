"""Parsing of untrusted reader-API JSON into data models.

Parsers never raise on bad input: wrong-typed fields fall back to defaults and
records missing their essential fields come back as ``None``.
"""

from __future__ import annotations

from typing import Any

from reader_preload.models import Book, BookContent, Chapter


def _coerce_int(value: Any, default: int | None = None) -> int | None:
    """Coerce untrusted values to int, excluding bool."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return default


def _coerce_str(value: Any, default: str = "") -> str:
    """Coerce untrusted values to str."""
    if isinstance(value, str):
        return value
    return default


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def parse_book_content(data: Any) -> BookContent | None:
    """Parse a ``/getBookContent`` payload.

    Some servers return the chapter body as a bare string instead of an
    object; that is accepted as an untitled chapter.
    """
    if isinstance(data, str):
        return BookContent(title="", content=data)
    if not isinstance(data, dict):
        return None
    content = data.get("content")
    if not isinstance(content, str):
        return None
    return BookContent(
        title=_coerce_str(data.get("title")),
        content=content,
        next_url=_optional_str(data.get("nextUrl")),
        prev_url=_optional_str(data.get("prevUrl")),
    )


def parse_book(item: Any) -> Book | None:
    """Parse one bookshelf entry. Returns None without a ``bookUrl``."""
    if not isinstance(item, dict):
        return None
    book_url = _coerce_str(item.get("bookUrl"))
    if not book_url:
        return None
    return Book(
        name=_coerce_str(item.get("name")),
        author=_coerce_str(item.get("author")),
        book_url=book_url,
        cover_url=_optional_str(item.get("coverUrl")),
        latest_chapter_title=_optional_str(item.get("latestChapterTitle")),
        dur_chapter_index=_coerce_int(item.get("durChapterIndex")),
        total_chapter_num=_coerce_int(item.get("totalChapterNum")),
    )


def parse_chapter(item: Any, fallback_index: int) -> Chapter | None:
    """Parse one table-of-contents entry; ``fallback_index`` fills a missing index."""
    if not isinstance(item, dict):
        return None
    index = _coerce_int(item.get("index"), fallback_index)
    return Chapter(
        title=_coerce_str(item.get("title")),
        url=_coerce_str(item.get("url")),
        index=fallback_index if index is None else index,
    )


def parse_bookshelf(data: Any) -> list[Book]:
    if not isinstance(data, list):
        return []
    return [book for book in (parse_book(item) for item in data) if book is not None]


def parse_chapter_list(data: Any) -> list[Chapter]:
    if not isinstance(data, list):
        return []
    chapters: list[Chapter] = []
    for position, item in enumerate(data):
        chapter = parse_chapter(item, position)
        if chapter is not None:
            chapters.append(chapter)
    return chapters


__all__ = [
    "parse_book",
    "parse_book_content",
    "parse_bookshelf",
    "parse_chapter",
    "parse_chapter_list",
]
