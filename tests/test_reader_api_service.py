"""Tests for reader API service helpers."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import httpx
import pytest

from reader_preload.services.reader_api_service import (
    ReaderApiError,
    fetch_book_content,
    fetch_bookshelf,
    fetch_chapter_list,
    normalize_base_url,
    unwrap_response,
)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _json_response(payload, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json=payload)


def test_normalize_base_url_strips_trailing_slash() -> None:
    assert normalize_base_url("http://host:8080/") == "http://host:8080"
    assert normalize_base_url("http://host:8080") == "http://host:8080"


def test_unwrap_response_returns_data_on_success() -> None:
    assert unwrap_response({"isSuccess": True, "data": [1, 2]}) == [1, 2]


def test_unwrap_response_passes_through_bare_payload() -> None:
    assert unwrap_response({"title": "t", "content": "c"}) == {"title": "t", "content": "c"}


def test_unwrap_response_raises_server_message() -> None:
    with pytest.raises(ReaderApiError, match="book not found"):
        unwrap_response({"isSuccess": False, "errorMsg": "book not found"})


def test_unwrap_response_raises_generic_message_without_error_text() -> None:
    with pytest.raises(ReaderApiError, match="request failed"):
        unwrap_response({"isSuccess": False, "errorMsg": ""})


@pytest.mark.asyncio
async def test_fetch_book_content_builds_request_and_parses() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return _json_response(
            {
                "isSuccess": True,
                "data": {"title": "Ch 4", "content": "text", "nextUrl": "/n"},
            }
        )

    async with _client(handler) as client:
        content = await fetch_book_content(
            client=client,
            base_url="http://reader.local/",
            book_url="https://books.example/b1",
            chapter_index=4,
        )

    assert content.title == "Ch 4"
    assert content.content == "text"
    assert content.next_url == "/n"
    request = seen[0]
    assert request.url.path == "/getBookContent"
    assert request.url.params["url"] == "https://books.example/b1"
    assert request.url.params["index"] == "4"
    assert request.headers["User-Agent"].startswith("reader-preload/")


@pytest.mark.asyncio
async def test_fetch_book_content_rejects_malformed_chapter() -> None:
    async with _client(lambda _request: _json_response({"isSuccess": True, "data": 7})) as client:
        with pytest.raises(ReaderApiError, match="malformed chapter 2"):
            await fetch_book_content(
                client=client, base_url="http://reader.local", book_url="b", chapter_index=2
            )


@pytest.mark.asyncio
async def test_http_status_error_is_wrapped() -> None:
    async with _client(lambda _request: httpx.Response(503, text="down")) as client:
        with pytest.raises(ReaderApiError, match="HTTP 503"):
            await fetch_bookshelf(client=client, base_url="http://reader.local")


@pytest.mark.asyncio
async def test_transport_error_is_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(ReaderApiError, match="request failed") as exc_info:
            await fetch_bookshelf(client=client, base_url="http://reader.local")

    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


@pytest.mark.asyncio
async def test_invalid_json_is_wrapped() -> None:
    async with _client(lambda _request: httpx.Response(200, text="<html>")) as client:
        with pytest.raises(ReaderApiError, match="invalid JSON"):
            await fetch_chapter_list(client=client, base_url="http://reader.local", book_url="b")


@pytest.mark.asyncio
async def test_envelope_failure_surfaces_server_message() -> None:
    payload = {"isSuccess": False, "errorMsg": "not logged in"}
    async with _client(lambda _request: _json_response(payload)) as client:
        with pytest.raises(ReaderApiError, match="not logged in"):
            await fetch_bookshelf(client=client, base_url="http://reader.local")


@pytest.mark.asyncio
async def test_fetch_bookshelf_skips_invalid_entries() -> None:
    payload = {
        "isSuccess": True,
        "data": [
            {"name": "Dune", "author": "Herbert", "bookUrl": "u1", "totalChapterNum": 48},
            {"name": "No url"},
            "garbage",
        ],
    }
    async with _client(lambda _request: _json_response(payload)) as client:
        books = await fetch_bookshelf(client=client, base_url="http://reader.local")

    assert [book.book_url for book in books] == ["u1"]
    assert books[0].total_chapter_num == 48


@pytest.mark.asyncio
async def test_fetch_chapter_list_sends_book_url() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return _json_response([{"title": "One", "url": "c1", "index": 0}, {"title": "Two"}])

    async with _client(handler) as client:
        chapters = await fetch_chapter_list(
            client=client, base_url="http://reader.local", book_url="book-1"
        )

    assert [(c.title, c.index) for c in chapters] == [("One", 0), ("Two", 1)]
    assert seen[0].url.path == "/getChapterList"
    assert seen[0].url.params["url"] == "book-1"


@pytest.mark.asyncio
async def test_without_shared_client_uses_temp_client() -> None:
    response = MagicMock()
    response.raise_for_status = MagicMock()
    response.json = MagicMock(return_value={"isSuccess": True, "data": []})

    class DummyClient:
        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb):
            return False

        async def get(self, *_args, **_kwargs):
            return response

    with patch(
        "reader_preload.services.reader_api_service.httpx.AsyncClient",
        return_value=DummyClient(),
    ):
        books = await fetch_bookshelf(client=None, base_url="http://reader.local")

    assert books == []
    response.raise_for_status.assert_called_once()
