"""Canonical Pydantic models shared across all wayback modules.

Every other module imports its data shapes from here.  The models fall
into three groups:

**Configuration** -- :class:`CacheConfig`, the closed, validated set of
options a :class:`~wayback.cache.Cache` is constructed with.  Unknown
keys are rejected (``extra="forbid"``) so that a typo never silently
changes cache behaviour.

**Persisted records** -- :class:`CatalogData` is the versioned schema of
the ``.catalog`` JSON document and :class:`HistoryState` is one entry of
its ``history`` list.  Both serialise with the camelCase field names
other tooling reads (``expireTime``, ``historyLimit``, ...).

**Collaborator results** -- :class:`FetchResult`, the outcome of a single
request made by :class:`~wayback.fetcher.Fetcher`.

All models use Pydantic v2.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

CATALOG_VERSION = 1
"""Schema version written to every catalog; a mismatch forces re-initialisation."""


# --- Configuration ---


class CacheConfig(BaseModel):
    """Immutable configuration of one cache instance.

    Either ``key`` or ``url`` must be supplied.  When only ``url`` is
    given, the cache derives a filesystem-safe key from it (see
    :func:`~wayback.cache.key_for_url`).

    The fields ``key``, ``expire``, ``offset``, ``must_match``,
    ``must_not_match`` and ``history_limit`` form the cache's
    *fingerprint*: if any of them differs from what the catalog on disk
    recorded, the stored history is discarded and the cache starts over.

    Example::

        CacheConfig(
            key="weather",
            url="https://api.example.com/forecast",
            expire="hourly",
            history_limit=24,
            must_match=r'"forecast"',
        )
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    key: Optional[str] = Field(
        default=None, description="Cache identifier, also the directory name"
    )
    url: Optional[str] = Field(
        default=None, description="Default source URL for get()"
    )
    container: Optional[Path] = Field(
        default=None,
        description="Root directory for all caches (default: XDG cache dir)",
    )
    expire: str = Field(
        default="nightly",
        description="second, minute, hourly, workday, halfday, nightly, weekly, "
        "monthly, or a number of seconds",
    )
    offset: int = Field(
        default=0, description="Seconds added to every computed expiration"
    )
    must_match: Optional[str] = Field(
        default=None, description="Regex that fetched content must match"
    )
    must_not_match: Optional[str] = Field(
        default=None, description="Regex that fetched content must not match"
    )
    history_limit: int = Field(
        default=10, ge=1, description="Number of history states to retain"
    )
    retry: bool = Field(
        default=False, description="Make a second attempt when a fetch yields nothing new"
    )
    cache_empty: bool = Field(
        default=False, description="Accept an empty body as valid content"
    )
    remaining_header: Optional[str] = Field(
        default="X-RateLimit-Remaining",
        description="Response header carrying the number of requests remaining",
    )
    reset_header: Optional[str] = Field(
        default="X-RateLimit-Reset",
        description="Response header carrying the rate-limit reset time",
    )
    rate_limit_buffer: int = Field(
        default=10, ge=0, description="Stop fetching at this many remaining requests"
    )
    request_limit: Optional[int] = Field(
        default=None, ge=1, description="Max requests per domain per day"
    )
    timeout: float = Field(default=10.0, gt=0, description="Fetch timeout in seconds")
    username: Optional[str] = Field(default=None, description="HTTP basic auth user")
    password: Optional[str] = Field(default=None, description="HTTP basic auth password")
    headers: dict[str, str] = Field(
        default_factory=dict, description="Extra request headers"
    )
    match_container: bool = Field(
        default=False,
        description="Treat a moved container as a configuration change",
    )

    @field_validator("key")
    @classmethod
    def _check_key(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        if not value.strip():
            raise ValueError("key must not be empty")
        if "/" in value or "\\" in value or value.startswith("."):
            raise ValueError(f"key {value!r} must be a single, non-hidden path segment")
        return value

    @field_validator("expire", mode="before")
    @classmethod
    def _normalise_expire(cls, value: Any) -> Any:
        # Integers are stored in their string form so the catalog compares equal.
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("must_match", "must_not_match")
    @classmethod
    def _check_regex(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"invalid regular expression {value!r}: {exc}") from exc
        return value

    @model_validator(mode="after")
    def _require_key_or_url(self) -> CacheConfig:
        if not self.key and not self.url:
            raise ValueError("either 'key' or 'url' is required")
        return self


# --- Persisted records ---


class HistoryState(BaseModel):
    """One retained snapshot, as recorded in the catalog's ``history`` list.

    ``file`` names a file inside the cache directory and ``time`` is the
    capture timestamp.  Anything else passed in by the caller (for
    example ``url`` and ``statusCode`` after a fetch) is kept as an extra
    field and written back unchanged.
    """

    model_config = ConfigDict(extra="allow")

    file: str
    time: int
    headers: dict[str, str] = Field(default_factory=dict)

    def header(self, name: str) -> Optional[str]:
        """Look up a recorded response header, ignoring case."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None


class CatalogData(BaseModel):
    """Versioned schema of a cache's ``.catalog`` document.

    Serialise with :meth:`to_document` to get the on-disk field names.
    Documents written by other schema versions are not migrated; they
    fail the fingerprint comparison and the cache is rebuilt.
    """

    model_config = ConfigDict(populate_by_name=True)

    version: int = CATALOG_VERSION
    key: str
    container: str
    expire: str
    offset: int = 0
    must_match: Optional[str] = Field(default=None, alias="mustMatch")
    must_not_match: Optional[str] = Field(default=None, alias="mustNotMatch")
    history_limit: int = Field(alias="historyLimit")
    created_time: int = Field(alias="createdTime")
    expire_time: int = Field(alias="expireTime")
    cleanup_time: int = Field(alias="cleanupTime")
    history: list[HistoryState] = Field(default_factory=list)

    def to_document(self) -> dict[str, Any]:
        """Return the JSON-ready dict with camelCase field names."""
        return self.model_dump(mode="json", by_alias=True)


# --- Collaborator results ---


class FetchResult(BaseModel):
    """Outcome of one GET performed by :class:`~wayback.fetcher.Fetcher`.

    ``success`` is ``True`` only for 2xx and 3xx statuses.  Network
    failures are reported with ``status_code=0``.
    """

    status_code: int = 0
    headers: dict[str, str] = Field(default_factory=dict)
    body: str = ""
    url: str = ""
    success: bool = False

    def history_data(self) -> dict[str, Any]:
        """Response metadata to record alongside the stored body."""
        return {
            "headers": dict(self.headers),
            "url": self.url,
            "statusCode": self.status_code,
        }
