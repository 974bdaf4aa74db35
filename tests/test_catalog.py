"""Tests for wayback.catalog -- the JSON-backed metadata record."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from wayback.catalog import Catalog
from wayback.exceptions import StorageError


@pytest.fixture()
def catalog(tmp_path: Path) -> Catalog:
    return Catalog(tmp_path / "wx" / ".catalog")


def _on_disk(catalog: Catalog) -> dict:
    return json.loads(catalog.path.read_text(encoding="utf-8"))


class TestRead:
    def test_missing_file_reads_empty(self, catalog: Catalog) -> None:
        assert catalog.read() == {}
        assert catalog.read("history") is None
        assert catalog.exists is False

    def test_corrupt_file_reads_empty(self, catalog: Catalog) -> None:
        catalog.path.parent.mkdir(parents=True)
        catalog.path.write_text("{oops", encoding="utf-8")
        assert catalog.read() == {}

    def test_non_object_reads_empty(self, catalog: Catalog) -> None:
        catalog.path.parent.mkdir(parents=True)
        catalog.path.write_text("[1, 2]", encoding="utf-8")
        assert catalog.read() == {}

    def test_returns_copies(self, catalog: Catalog) -> None:
        catalog.create({"history": [{"file": "a", "time": 1}]})
        history = catalog.read("history")
        history.append({"file": "b", "time": 2})
        assert len(catalog.read("history")) == 1

    def test_in_memory_copy_until_refresh(self, catalog: Catalog) -> None:
        catalog.create({"expireTime": 10})
        catalog.path.write_text(json.dumps({"expireTime": 20}), encoding="utf-8")
        assert catalog.read("expireTime") == 10
        assert catalog.read("expireTime", refresh=True) == 20


class TestWrite:
    def test_create_overwrites(self, catalog: Catalog) -> None:
        catalog.create({"a": 1, "b": 2})
        assert catalog.create({"c": 3}) is True
        assert _on_disk(catalog) == {"c": 3}
        assert catalog.exists is True

    def test_update_merges_top_level(self, catalog: Catalog) -> None:
        catalog.create({"key": "wx", "expireTime": 1})
        catalog.update({"expireTime": 2, "cleanupTime": 3})
        assert _on_disk(catalog) == {"key": "wx", "expireTime": 2, "cleanupTime": 3}

    def test_update_key_value(self, catalog: Catalog) -> None:
        catalog.create({"expireTime": 1})
        assert catalog.update("expireTime", 0) is True
        assert catalog.read("expireTime") == 0
        assert _on_disk(catalog)["expireTime"] == 0

    def test_update_key_without_value(self, catalog: Catalog) -> None:
        with pytest.raises(TypeError):
            catalog.update("expireTime")

    def test_history_replaced_not_merged(self, catalog: Catalog) -> None:
        catalog.create({"history": [{"file": "a", "time": 1}, {"file": "b", "time": 0}]})
        catalog.update({"history": [{"file": "c", "time": 2}]})
        assert _on_disk(catalog)["history"] == [{"file": "c", "time": 2}]

    def test_update_on_missing_file_creates_it(self, catalog: Catalog) -> None:
        catalog.update({"expireTime": 5})
        assert _on_disk(catalog) == {"expireTime": 5}

    def test_write_failure_raises(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("not a directory", encoding="utf-8")
        catalog = Catalog(blocker / ".catalog")
        with pytest.raises(StorageError):
            catalog.create({"a": 1})


class TestDelete:
    def test_delete_removes_file(self, catalog: Catalog) -> None:
        catalog.create({"a": 1})
        assert catalog.delete() is True
        assert catalog.exists is False
        assert catalog.read() == {}

    def test_delete_missing(self, catalog: Catalog) -> None:
        assert catalog.delete() is False
