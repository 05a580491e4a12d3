"""Shared test fixtures for reader-preload tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from typing import Any

import pytest

from reader_preload.models import BookContent, PreloadConfig

# ── Factories ────────────────────────────────────────────────────────────────


@pytest.fixture
def make_content():
    """Factory fixture for creating BookContent instances with sensible defaults."""

    def _make(
        title: str = "Chapter",
        content: str = "Once upon a time.",
        next_url: str | None = None,
        prev_url: str | None = None,
    ) -> BookContent:
        return BookContent(title=title, content=content, next_url=next_url, prev_url=prev_url)

    return _make


@pytest.fixture
def sample_config() -> PreloadConfig:
    """Enabled preloading with the stock thresholds."""
    return PreloadConfig(enabled=True, chapter_count=2, trigger_progress=50.0, max_cache_size=10)


class FakeClock:
    """Manually advanced wall clock for cache expiry tests."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


class FakeFetcher:
    """In-memory ContentFetcher that records calls and can be scripted to fail.

    ``failures`` maps a chapter index to how many leading calls for it raise;
    ``always_fail`` chapters never succeed. ``delay`` is awaited on every call.
    """

    def __init__(
        self,
        *,
        failures: dict[int, int] | None = None,
        always_fail: Iterable[int] = (),
        delay: float = 0.0,
        tag: str = "",
    ) -> None:
        self.calls: list[tuple[str, int]] = []
        self.call_times: list[float] = []  # event-loop time of each call
        self.failures = dict(failures or {})
        self.always_fail = set(always_fail)
        self.delay = delay
        self.tag = tag
        self.in_flight = 0
        self.max_in_flight = 0

    def calls_for(self, chapter_index: int) -> int:
        return sum(1 for _, index in self.calls if index == chapter_index)

    async def fetch_chapter(self, book_id: str, chapter_index: int) -> BookContent:
        self.calls.append((book_id, chapter_index))
        self.call_times.append(asyncio.get_running_loop().time())
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if chapter_index in self.always_fail:
                raise ConnectionError(f"chapter {chapter_index} unavailable")
            remaining = self.failures.get(chapter_index, 0)
            if remaining > 0:
                self.failures[chapter_index] = remaining - 1
                raise ConnectionError(f"transient failure on chapter {chapter_index}")
            return BookContent(
                title=f"{self.tag}Chapter {chapter_index}",
                content=f"{book_id} body {chapter_index}",
            )
        finally:
            self.in_flight -= 1


@pytest.fixture
def make_fetcher() -> Callable[..., FakeFetcher]:
    def _make(**kwargs: Any) -> FakeFetcher:
        return FakeFetcher(**kwargs)

    return _make
