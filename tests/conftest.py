"""Shared test fixtures for wayback.

Provides a frozen clock, a scripted fetcher that never touches the
network, and a factory for caches rooted in a temporary container.
These fixtures are automatically discovered by pytest and available to
all test modules without explicit imports.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

import pytest

from wayback.cache import Cache
from wayback.clock import Clock
from wayback.fetcher import Fetcher
from wayback.models import FetchResult

# Monday 2024-01-15 10:30:00 UTC
START = int(datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc).timestamp())
URL = "https://api.example.com/data"


class FixedClock(Clock):
    """A clock that only moves when told to."""

    def __init__(self, start: int = START) -> None:
        super().__init__(tz=timezone.utc)
        self.current = start

    def now(self) -> int:
        return self.current

    def advance(self, seconds: int) -> None:
        self.current += seconds


class ScriptedFetcher(Fetcher):
    """Returns queued results in order and records every requested URL.

    Once the queue is empty every fetch fails.
    """

    def __init__(self, *results: FetchResult) -> None:
        super().__init__()
        self.results = list(results)
        self.calls: list[str] = []

    def queue(self, *results: FetchResult) -> None:
        self.results.extend(results)

    def fetch(self, url: str) -> FetchResult:
        self.calls.append(url)
        if not self.results:
            return FetchResult(url=url, success=False)
        return self.results.pop(0)


def ok(body: str, headers: Optional[dict[str, str]] = None, status: int = 200) -> FetchResult:
    """Build a successful fetch result."""
    return FetchResult(
        status_code=status,
        headers=headers or {},
        body=body,
        url=URL,
        success=True,
    )


def failed(status: int = 503) -> FetchResult:
    """Build an unsuccessful fetch result."""
    return FetchResult(status_code=status, url=URL, success=False)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def fetcher() -> ScriptedFetcher:
    return ScriptedFetcher()


@pytest.fixture
def container(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture
def make_cache(
    container: Path, clock: FixedClock, fetcher: ScriptedFetcher
) -> Iterator[Callable[..., Cache]]:
    """Factory building caches in the shared container, clock and fetcher.

    Keyword arguments override config fields; ``clear`` is passed through.
    """
    created: list[Cache] = []

    def _make(clear: bool = False, **overrides: Any) -> Cache:
        config: dict[str, Any] = {
            "key": "test",
            "url": URL,
            "container": container,
            "expire": "hourly",
            "history_limit": 3,
        }
        config.update(overrides)
        cache = Cache(config, clear=clear, clock=clock, fetcher=fetcher)
        created.append(cache)
        return cache

    yield _make

    for cache in created:
        cache.close()
