"""Single-request HTTP fetcher backed by :mod:`httpx`.

:class:`Fetcher` performs one GET per call and reports the outcome as a
:class:`~wayback.models.FetchResult` instead of raising.  Redirects are
followed, the configured timeout bounds every request, and optional
basic-auth credentials and extra headers are attached.

The cache treats an unsuccessful result as terminal for the current
access; retry policy lives in :class:`~wayback.cache.Cache`, not here.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from wayback.models import CacheConfig, FetchResult

logger = logging.getLogger(__name__)


class Fetcher:
    """Blocking HTTP GET with timeout, redirects, and optional auth.

    The underlying :class:`httpx.Client` is created on first use and
    released by :meth:`close` (or by leaving the ``with`` block).

    Args:
        timeout: Seconds before a request is abandoned.
        headers: Extra request headers sent with every request.
        auth: Optional ``(username, password)`` for HTTP basic auth.
        transport: Optional :mod:`httpx` transport, e.g.
            :class:`httpx.MockTransport` in tests.

    Example::

        with Fetcher(timeout=5) as fetcher:
            result = fetcher.fetch("https://api.example.com/status")
            if result.success:
                print(result.body)
    """

    def __init__(
        self,
        timeout: float = 10.0,
        headers: Optional[dict[str, str]] = None,
        auth: Optional[tuple[str, str]] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._timeout = timeout
        self._headers = dict(headers or {})
        self._auth = auth
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    @classmethod
    def from_config(
        cls,
        config: CacheConfig,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> Fetcher:
        """Build a fetcher from the request-related fields of a cache config."""
        auth = None
        if config.username is not None:
            auth = (config.username, config.password or "")
        return cls(
            timeout=config.timeout,
            headers=config.headers,
            auth=auth,
            transport=transport,
        )

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> Fetcher:
        self._get_client()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying :class:`httpx.Client`, if one was opened."""
        if self._client is not None:
            self._client.close()
            self._client = None

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def fetch(self, url: str) -> FetchResult:
        """GET *url* and describe the response.

        Args:
            url: Absolute URL to request.

        Returns:
            A :class:`~wayback.models.FetchResult`.  ``success`` is
            ``True`` for 2xx/3xx statuses; network errors and timeouts
            yield ``success=False`` with ``status_code=0``.
        """
        client = self._get_client()
        try:
            response = client.get(url)
        except httpx.HTTPError as exc:
            logger.warning("Fetching %s failed: %s", url, exc)
            return FetchResult(url=url, success=False)

        status = response.status_code
        success = 200 <= status < 400
        if not success:
            logger.warning("Fetching %s returned HTTP %s", url, status)

        return FetchResult(
            status_code=status,
            headers=dict(response.headers),
            body=response.text.strip(),
            url=str(response.url),
            success=success,
        )

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            kwargs: dict[str, Any] = {
                "timeout": self._timeout,
                "headers": self._headers,
                "follow_redirects": True,
            }
            if self._auth is not None:
                kwargs["auth"] = httpx.BasicAuth(*self._auth)
            if self._transport is not None:
                kwargs["transport"] = self._transport
            self._client = httpx.Client(**kwargs)
        return self._client
