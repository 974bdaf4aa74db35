"""History-aware TTL cache in front of a slow or rate-limited source.

A :class:`Cache` owns one directory, ``<container>/<key>/``, holding a
``.catalog`` JSON document (see :class:`~wayback.models.CatalogData`) and
one file per retained history state.  On every :meth:`Cache.get` it
decides whether to serve the newest stored snapshot or fetch a fresh one:

1. Fresh content (``now < expireTime``) is served without a request.
2. Stale content is served as-is, with the expiration pushed to its next
   natural boundary, when the last response said the source's rate limit
   is nearly spent.
3. Otherwise the source is fetched (twice at most with ``retry``).  A
   failed, empty, or regex-rejected fetch also falls back to the last
   stored content and pushes the expiration forward; callers always get
   the best content available, never an exception.
4. A good fetch is written to a new file, prepended to the history, the
   history is capped at ``history_limit``, and the catalog is saved in a
   single merge.  Files that drop out of the history are deleted, and
   once a day a cleanup pass removes any unreferenced file left behind.

Constructing a cache compares its configuration with the fingerprint
stored in the catalog.  Any difference rebuilds the catalog from scratch,
so a cache never serves data gathered under different settings.

See Also:
    :class:`~wayback.models.CacheConfig` -- every option the cache accepts.
"""

from __future__ import annotations

import hashlib
import logging
import re
from collections.abc import Mapping
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from wayback.catalog import Catalog
from wayback.clock import Clock, next_cleanup, next_expire, parse_timestamp
from wayback.config import get_cache_dir, load_cache_config
from wayback.exceptions import ConfigError
from wayback.fetcher import Fetcher
from wayback.models import CATALOG_VERSION, CacheConfig, CatalogData, FetchResult, HistoryState
from wayback.request_log import RequestLog
from wayback.storage import Storage

logger = logging.getLogger(__name__)

CATALOG_NAME = ".catalog"
REQUEST_LOG_NAME = ".requests"
RETRY_ATTEMPTS = 2

_REQUIRED_FIELDS = ("createdTime", "expireTime", "cleanupTime", "history")


def key_for_url(url: str) -> str:
    """Derive a stable, filesystem-safe cache key from a URL."""
    return hashlib.sha256(url.encode("utf-8")).hexdigest()


class Cache:
    """A single cache key with its history of snapshots.

    Args:
        config: A :class:`~wayback.models.CacheConfig`, or a mapping of
            its fields.
        clear: Delete the cache directory before initialising, discarding
            all stored history.
        clock: Source of the current time and calendar zone.
        storage: Filesystem primitives.
        fetcher: Performs the HTTP requests.  When omitted, one is built
            from ``config`` on first use and closed by :meth:`close`.
        request_log: Shared per-domain request budget.  When omitted and
            ``config.request_limit`` is set, one is opened under
            ``<container>/.requests``.

    Raises:
        ConfigError: If the configuration is invalid (unknown fields, no
            key or URL, bad regular expression).

    Example::

        with Cache({"key": "weather", "url": URL, "expire": "hourly"}) as cache:
            body = cache.get()
    """

    def __init__(
        self,
        config: CacheConfig | Mapping[str, Any],
        *,
        clear: bool = False,
        clock: Optional[Clock] = None,
        storage: Optional[Storage] = None,
        fetcher: Optional[Fetcher] = None,
        request_log: Optional[RequestLog] = None,
    ) -> None:
        self._config = load_cache_config(config)
        self._clock = clock or Clock()
        self._storage = storage or Storage()
        self._fetcher = fetcher
        self._owns_fetcher = fetcher is None

        self._must_match = _compile(self._config.must_match)
        self._must_not_match = _compile(self._config.must_not_match)

        container = self._config.container
        self._container = Path(container) if container is not None else get_cache_dir()
        self._key = self._config.key or key_for_url(self._config.url or "")
        self._path = self._container / self._key
        self._catalog = Catalog(self._path / CATALOG_NAME, self._storage)

        self._request_log = request_log
        self._owns_request_log = False
        if request_log is None and self._config.request_limit is not None:
            self._request_log = RequestLog(
                self._container / REQUEST_LOG_NAME,
                self._config.request_limit,
                tz=self._clock.tz,
            )
            self._owns_request_log = True

        if clear:
            self._storage.delete_dir(self._path)

        if not self.is_valid():
            self._init()

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> Cache:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        """Release the fetcher and request log, if this cache created them."""
        if self._owns_fetcher and self._fetcher is not None:
            self._fetcher.close()
            self._fetcher = None
        if self._owns_request_log and self._request_log is not None:
            self._request_log.close()
            self._request_log = None

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #

    @property
    def config(self) -> CacheConfig:
        """The validated configuration."""
        return self._config

    @property
    def key(self) -> str:
        """The cache key (explicit, or derived from the URL)."""
        return self._key

    @property
    def path(self) -> Path:
        """This cache's directory."""
        return self._path

    @property
    def catalog(self) -> Catalog:
        """The catalog holding this cache's metadata."""
        return self._catalog

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def get(self, url: Optional[str] = None) -> Optional[str]:
        """Return the newest content, fetching from *url* when it is stale.

        Args:
            url: Source to fetch from; defaults to ``config.url``.

        Returns:
            The freshly fetched body, or the last stored content when the
            cache is fresh, the source is rate limited, or the fetch
            failed or was rejected.  ``None`` only when nothing has ever
            been stored.

        Raises:
            ConfigError: If no URL is given and none is configured.
            StorageError: If a history file or the catalog cannot be written.
        """
        url = url or self._config.url
        if not url:
            raise ConfigError(f"No URL given and none configured for cache '{self._key}'")

        self._ensure_catalog()
        now = self._clock.now()
        last = self.read_history(0)

        if last is not None and not self.is_expired(now):
            logger.debug("Cache hit for '%s'", self._key)
            return last

        if self._is_rate_limited(now):
            logger.info("Rate limit nearly spent for '%s', serving stored content", self._key)
            self._increment(now)
            return last

        result = self._fetch(url, last, now)
        if result is None or not self._passes_regex(result.body):
            if result is not None:
                logger.warning("Content from %s rejected by pattern for '%s'", url, self._key)
            self._increment(now)
            return last

        self._store(result.body, result.history_data(), now)
        return result.body

    def read(self) -> Optional[str]:
        """Return the newest content if it has not expired, else ``None``.  Never fetches."""
        if self.is_expired():
            return None
        return self.read_history(0)

    def set(self, contents: str, history_data: Optional[Mapping[str, Any]] = None) -> bool:
        """Store *contents* as a new history state.

        The configured ``must_match``/``must_not_match`` patterns still
        apply; rejected content is not stored.

        Args:
            contents: The content to store.
            history_data: Extra fields recorded on the history state.

        Returns:
            ``True`` if the content was stored, ``False`` if rejected.

        Raises:
            ConfigError: If *history_data* cannot be recorded (for example
                non-string header values); nothing is written then.
        """
        if not self._passes_regex(contents):
            return False
        self._ensure_catalog()
        self._store(contents, dict(history_data or {}), self._clock.now())
        return True

    def read_history(self, index: int = 0) -> Optional[str]:
        """Return the content of a history state (0 is the newest), or ``None``."""
        history = self._history()
        if index < 0 or index >= len(history):
            return None
        name = history[index].get("file") if isinstance(history[index], dict) else None
        if not name:
            return None
        return self._storage.read(self._path / name)

    def history(self) -> list[HistoryState]:
        """Return the retained history states, newest first."""
        return [HistoryState.model_validate(state) for state in self._history()]

    def is_expired(self, now: Optional[int] = None) -> bool:
        """Whether the stored content is past its expiration time."""
        if now is None:
            now = self._clock.now()
        expire_time = self._catalog.read("expireTime")
        return expire_time is None or now >= expire_time

    def is_valid(self) -> bool:
        """Whether the catalog on disk was written under this configuration."""
        stored = self._catalog.read()
        for field in _REQUIRED_FIELDS:
            if field not in stored:
                return False
        if not isinstance(stored["history"], list):
            return False
        for field, value in self._fingerprint().items():
            if field not in stored or stored[field] != value:
                return False
        return True

    def invalidate(self) -> bool:
        """Expire the stored content so that the next :meth:`get` refetches."""
        return self._catalog.update("expireTime", 0)

    def clear(self) -> bool:
        """Delete this cache's directory, catalog and history included.

        The next :meth:`get` or :meth:`set` starts a fresh catalog.

        Returns:
            ``True`` if the directory existed and was removed.
        """
        removed = self._storage.delete_dir(self._path)
        self._catalog = Catalog(self._path / CATALOG_NAME, self._storage)
        return removed

    def cleanup(self) -> int:
        """Delete every file in the cache directory not referenced by the history.

        Hidden leftovers of interrupted writes are removed as well (see
        :meth:`~wayback.storage.Storage.reap_stale`).

        Returns:
            The number of files removed.
        """
        keep = {state.get("file") for state in self._history() if isinstance(state, dict)}
        removed = 0
        for name in self._storage.list_files(self._path):
            if name not in keep and self._storage.delete(self._path / name):
                removed += 1
        removed += self._storage.reap_stale(self._path)
        if removed:
            logger.info("Cleanup removed %d file(s) from '%s'", removed, self._key)
        return removed

    def stats(self) -> dict[str, Any]:
        """Return a summary of this cache's state.

        Returns:
            A ``dict`` with ``key``, ``directory``, ``expire``,
            ``expire_time``, ``cleanup_time``, ``history_size``,
            ``history_limit`` and ``expired``.
        """
        return {
            "key": self._key,
            "directory": str(self._path),
            "expire": self._config.expire,
            "expire_time": self._catalog.read("expireTime"),
            "cleanup_time": self._catalog.read("cleanupTime"),
            "history_size": len(self._history()),
            "history_limit": self._config.history_limit,
            "expired": self.is_expired(),
        }

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _fingerprint(self) -> dict[str, Any]:
        """The catalog fields that must match this configuration."""
        fingerprint: dict[str, Any] = {
            "version": CATALOG_VERSION,
            "key": self._key,
            "expire": self._config.expire,
            "offset": self._config.offset,
            "mustMatch": self._config.must_match,
            "mustNotMatch": self._config.must_not_match,
            "historyLimit": self._config.history_limit,
        }
        if self._config.match_container:
            fingerprint["container"] = str(self._container)
        return fingerprint

    def _init(self) -> None:
        """Create the directory and write a fresh, empty catalog."""
        now = self._clock.now()
        self._storage.create_dir(self._path)
        data = CatalogData(
            key=self._key,
            container=str(self._container),
            expire=self._config.expire,
            offset=self._config.offset,
            must_match=self._config.must_match,
            must_not_match=self._config.must_not_match,
            history_limit=self._config.history_limit,
            created_time=now,
            expire_time=self._next_expire(now),
            cleanup_time=next_cleanup(now=now, tz=self._clock.tz),
        )
        self._catalog.create(data.to_document())
        logger.info("Initialised cache '%s' at %s", self._key, self._path)

    def _ensure_catalog(self) -> None:
        # The catalog only goes missing after clear().
        if self._catalog.read("createdTime") is None:
            self._init()

    def _history(self) -> list[Any]:
        history = self._catalog.read("history")
        return history if isinstance(history, list) else []

    def _next_expire(self, now: int) -> int:
        return next_expire(self._config.expire, self._config.offset, now=now, tz=self._clock.tz)

    def _increment(self, now: int) -> None:
        """Push the expiration to its next boundary without touching the history."""
        self._catalog.update("expireTime", self._next_expire(now))

    def _is_rate_limited(self, now: int) -> bool:
        """Whether the last response said the source's rate limit is nearly spent."""
        remaining_header = self._config.remaining_header
        reset_header = self._config.reset_header
        if not remaining_header or not reset_header:
            return False

        history = self._catalog.read("history", refresh=True)
        if not history:
            return False
        try:
            last = HistoryState.model_validate(history[0])
        except ValidationError:
            return False

        remaining = last.header(remaining_header)
        reset_time = parse_timestamp(last.header(reset_header))
        if remaining is None or reset_time is None:
            return False
        try:
            remaining_count = int(float(remaining))
        except (ValueError, OverflowError):
            return False

        return remaining_count <= self._config.rate_limit_buffer and now < reset_time

    def _fetch(self, url: str, last: Optional[str], now: int) -> Optional[FetchResult]:
        """Request *url*, retrying once for new content when ``retry`` is set.

        Stopping as soon as the body differs from *last* is best effort: a
        source that returns identical, valid content twice is simply
        stored again.

        Returns:
            The best usable result, or ``None`` if every attempt failed,
            came back empty, or was refused by the request budget.
        """
        attempts = RETRY_ATTEMPTS if self._config.retry else 1
        best: Optional[FetchResult] = None

        for attempt in range(attempts):
            if self._request_log is not None and not self._request_log.acquire(url, now):
                break

            result = self._get_fetcher().fetch(url)
            logger.debug(
                "Fetched %s for '%s': HTTP %s (attempt %d/%d)",
                url, self._key, result.status_code, attempt + 1, attempts,
            )
            if not result.success:
                continue
            if result.body or self._config.cache_empty:
                if best is None or result.body:
                    best = result
            if result.body and result.body != last:
                break

        return best

    def _passes_regex(self, contents: str) -> bool:
        if self._must_match is not None and self._must_match.search(contents) is None:
            return False
        if self._must_not_match is not None and self._must_not_match.search(contents) is not None:
            return False
        return True

    def _store(self, contents: str, history_data: dict[str, Any], now: int) -> None:
        """Write a new history state and save the catalog in one merge."""
        prefix = datetime.fromtimestamp(now, self._clock.tz).strftime("%Y%m%d-")
        name = self._storage.available_name(self._path, prefix=prefix)
        try:
            state = HistoryState.model_validate({**history_data, "file": name, "time": now})
            record = state.model_dump(mode="json")
        except ValueError as exc:  # pydantic validation and serialization errors
            raise ConfigError(f"Invalid history data for cache '{self._key}': {exc}") from exc
        self._storage.write(self._path / name, contents)

        history = [record] + self._history()
        limit = self._config.history_limit
        retained, evicted = history[:limit], history[limit:]

        changes: dict[str, Any] = {
            "history": retained,
            "expireTime": self._next_expire(now),
        }
        cleanup_time = self._catalog.read("cleanupTime")
        cleanup_due = cleanup_time is None or now >= cleanup_time
        if cleanup_due:
            changes["cleanupTime"] = next_cleanup(now=now, tz=self._clock.tz)

        self._catalog.update(changes)

        # Only delete once no saved history state references the file.
        kept = {item.get("file") for item in retained if isinstance(item, dict)}
        for item in evicted:
            evicted_name = item.get("file") if isinstance(item, dict) else None
            if evicted_name and evicted_name not in kept:
                self._storage.delete(self._path / evicted_name)

        if cleanup_due:
            self.cleanup()

    def _get_fetcher(self) -> Fetcher:
        if self._fetcher is None:
            self._fetcher = Fetcher.from_config(self._config)
        return self._fetcher


def _compile(pattern: Optional[str]) -> Optional[re.Pattern[str]]:
    return re.compile(pattern) if pattern is not None else None
