"""Tests for the wayback exception hierarchy."""

from __future__ import annotations

import pytest

from wayback.exceptions import ConfigError, StorageError, WaybackError


class TestExceptions:
    @pytest.mark.parametrize("cls", [WaybackError, ConfigError, StorageError])
    def test_message_attribute(self, cls: type[WaybackError]) -> None:
        exc = cls("something broke")
        assert exc.message == "something broke"
        assert str(exc) == "something broke"

    def test_hierarchy(self) -> None:
        assert issubclass(ConfigError, WaybackError)
        assert issubclass(StorageError, WaybackError)

    def test_storage_error_path(self) -> None:
        exc = StorageError("Cannot write", "/tmp/x")
        assert exc.path == "/tmp/x"
        assert exc.message == "Cannot write"
        assert StorageError("no path").path is None
