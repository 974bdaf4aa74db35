"""Tests for the httpx-backed fetcher."""

from __future__ import annotations

import base64

import httpx
import pytest

from wayback.fetcher import Fetcher
from wayback.models import CacheConfig

URL = "https://api.example.com/data"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _fetcher(handler, **kwargs) -> Fetcher:
    return Fetcher(transport=httpx.MockTransport(handler), **kwargs)


def _text(body: str, status_code: int = 200, headers: dict | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, text=body, headers=headers)

    return handler


# ---------------------------------------------------------------------------
# Context manager
# ---------------------------------------------------------------------------


class TestContextManager:
    def test_enter_creates_client(self) -> None:
        fetcher = _fetcher(_text("x"))
        assert fetcher._client is None
        with fetcher:
            assert fetcher._client is not None
        assert fetcher._client is None

    def test_close_is_idempotent(self) -> None:
        fetcher = _fetcher(_text("x"))
        fetcher.fetch(URL)
        fetcher.close()
        fetcher.close()
        assert fetcher._client is None

    def test_reopens_after_close(self) -> None:
        fetcher = _fetcher(_text("again"))
        fetcher.close()
        assert fetcher.fetch(URL).body == "again"
        fetcher.close()


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class TestFetch:
    def test_success(self) -> None:
        with _fetcher(_text("  payload\n", headers={"X-RateLimit-Remaining": "42"})) as f:
            result = f.fetch(URL)
        assert result.success is True
        assert result.status_code == 200
        assert result.body == "payload"
        assert result.url == URL
        assert result.headers["x-ratelimit-remaining"] == "42"

    @pytest.mark.parametrize(
        ("status", "success"),
        [(204, True), (304, True), (399, True), (400, False), (404, False), (503, False)],
    )
    def test_success_flag(self, status: int, success: bool) -> None:
        with _fetcher(_text("", status_code=status)) as f:
            result = f.fetch(URL)
        assert result.status_code == status
        assert result.success is success

    def test_error_body_still_reported(self) -> None:
        with _fetcher(_text("not found", status_code=404)) as f:
            result = f.fetch(URL)
        assert result.body == "not found"

    def test_follows_redirects(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/data":
                return httpx.Response(302, headers={"Location": "https://api.example.com/final"})
            return httpx.Response(200, text="moved")

        with _fetcher(handler) as f:
            result = f.fetch(URL)
        assert result.body == "moved"
        assert result.url == "https://api.example.com/final"

    def test_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        with _fetcher(handler) as f:
            result = f.fetch(URL)
        assert result.success is False
        assert result.status_code == 0
        assert result.body == ""
        assert result.url == URL

    def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with _fetcher(handler) as f:
            assert f.fetch(URL).success is False

    def test_history_data(self) -> None:
        with _fetcher(_text("x", headers={"ETag": "abc"})) as f:
            data = f.fetch(URL).history_data()
        assert data["statusCode"] == 200
        assert data["url"] == URL
        assert data["headers"]["etag"] == "abc"


# ---------------------------------------------------------------------------
# Request options
# ---------------------------------------------------------------------------


class TestRequestOptions:
    def test_extra_headers(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="ok")

        with _fetcher(handler, headers={"Accept": "text/plain"}) as f:
            f.fetch(URL)
        assert seen[0].headers["accept"] == "text/plain"

    def test_basic_auth(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="ok")

        with _fetcher(handler, auth=("alice", "secret")) as f:
            f.fetch(URL)
        expected = base64.b64encode(b"alice:secret").decode("ascii")
        assert seen[0].headers["authorization"] == f"Basic {expected}"

    def test_from_config(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="ok")

        config = CacheConfig(
            key="wx",
            username="bob",
            headers={"X-Client": "wayback"},
            timeout=3.0,
        )
        fetcher = Fetcher.from_config(config, transport=httpx.MockTransport(handler))
        with fetcher:
            fetcher.fetch(URL)
        expected = base64.b64encode(b"bob:").decode("ascii")
        assert seen[0].headers["authorization"] == f"Basic {expected}"
        assert seen[0].headers["x-client"] == "wayback"
        assert fetcher._timeout == 3.0

    def test_from_config_without_credentials(self) -> None:
        fetcher = Fetcher.from_config(CacheConfig(key="wx"))
        assert fetcher._auth is None
