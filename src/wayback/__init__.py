"""wayback -- a history-aware TTL cache for slow or rate-limited sources.

A :class:`Cache` sits in front of an HTTP endpoint and keeps the current
response plus a bounded trail of earlier ones on the local filesystem.
It refetches only when the stored content expires, backs off when the
source reports its rate limit is nearly spent, falls back to the last
good content whenever a fetch fails or is rejected, and rebuilds itself
when its own configuration changes.

Typical use::

    from wayback import Cache

    with Cache({"key": "weather", "url": URL, "expire": "hourly"}) as cache:
        body = cache.get()

Modules:
    cache: The :class:`Cache` orchestrator.
    catalog: JSON-backed metadata record for one cache.
    clock: Expiration keywords and the injectable current time.
    config: Default container directory and config loading.
    exceptions: Exception hierarchy.
    fetcher: httpx-backed single-request fetcher.
    models: Pydantic models shared across the package.
    request_log: Per-domain daily request budget.
    storage: Locked, atomic filesystem primitives.
"""

from wayback.cache import Cache, key_for_url
from wayback.catalog import Catalog
from wayback.clock import Clock, next_cleanup, next_expire
from wayback.config import load_cache_config
from wayback.exceptions import ConfigError, StorageError, WaybackError
from wayback.fetcher import Fetcher
from wayback.models import CacheConfig, FetchResult, HistoryState
from wayback.request_log import RequestLog
from wayback.storage import Storage

__version__ = "1.0.0"

__all__ = [
    "Cache",
    "CacheConfig",
    "Catalog",
    "Clock",
    "ConfigError",
    "FetchResult",
    "Fetcher",
    "HistoryState",
    "RequestLog",
    "Storage",
    "StorageError",
    "WaybackError",
    "key_for_url",
    "load_cache_config",
    "next_cleanup",
    "next_expire",
]
