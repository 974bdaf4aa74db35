"""Per-domain daily request budget shared by all caches in a container.

Some sources cap the number of calls a client may make per day.  A
:class:`RequestLog` counts requests per host per calendar day in a
:class:`diskcache.Cache` stored under ``<container>/.requests/`` and
refuses further requests once the configured limit is reached.  Counters
roll over at midnight (in the clock's zone) and expire on their own two
days later.

Check-and-increment runs inside a :mod:`diskcache` transaction, so
several processes sharing one container never exceed the budget.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlsplit

import diskcache

logger = logging.getLogger(__name__)

_COUNTER_TTL = 2 * 24 * 60 * 60


class RequestLog:
    """Disk-backed request counters keyed by day and host.

    Args:
        directory: Directory for the :class:`diskcache.Cache`.
        limit: Maximum requests per host per day.
        tz: Zone that defines the day boundary; ``None`` is local time.

    Example::

        log = RequestLog(container / ".requests", limit=100)
        if log.acquire("https://api.example.com/data"):
            ...  # make the request
    """

    def __init__(self, directory: str | Path, limit: int, tz: Optional[tzinfo] = None) -> None:
        self._directory = Path(directory)
        self._limit = limit
        self._tz = tz
        self._cache: Optional[diskcache.Cache] = diskcache.Cache(str(self._directory))

    @property
    def limit(self) -> int:
        """The per-host daily request limit."""
        return self._limit

    def acquire(self, url: str, now: Optional[int] = None) -> bool:
        """Count one request to *url*'s host, unless the budget is spent.

        Returns:
            ``True`` if the request may proceed, ``False`` once today's
            limit for the host has been reached.
        """
        key = self._make_key(url, now)
        cache = self._require_cache()
        with cache.transact():
            count = cache.get(key, default=0)
            if count >= self._limit:
                logger.warning(
                    "Request limit of %d reached for %s", self._limit, key
                )
                return False
            cache.set(key, count + 1, expire=_COUNTER_TTL)
        return True

    def count(self, url: str, now: Optional[int] = None) -> int:
        """Return how many requests to *url*'s host were counted today."""
        return self._require_cache().get(self._make_key(url, now), default=0)

    def stats(self) -> dict[str, Any]:
        """Return the limit, directory, and number of live counters."""
        return {
            "limit": self._limit,
            "directory": str(self._directory),
            "counters": len(self._require_cache()),
        }

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache` and release resources."""
        if self._cache is not None:
            self._cache.close()
            self._cache = None

    def _require_cache(self) -> diskcache.Cache:
        if self._cache is None:
            raise RuntimeError("RequestLog is closed")
        return self._cache

    def _make_key(self, url: str, now: Optional[int]) -> str:
        """Build the ``<day>|<host>`` counter key."""
        if now is None:
            now = int(time.time())
        day = datetime.fromtimestamp(now, self._tz).strftime("%Y-%m-%d")
        host = urlsplit(url).hostname or url
        return f"{day}|{host}"
