"""JSON-backed metadata record for one cache.

A :class:`Catalog` wraps the ``.catalog`` file in a cache directory.  It
keeps an in-memory copy of the document after the first read; callers
that need to see writes made by another process pass ``refresh=True``.

A missing or unparseable file reads as an empty mapping rather than an
error: the owning cache treats an empty catalog as "not initialised"
and rebuilds it.  Writes, on the other hand, must succeed -- a failure is
raised as :class:`~wayback.exceptions.StorageError`.
"""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

from wayback.storage import Storage

logger = logging.getLogger(__name__)

_MISSING = object()


class Catalog:
    """Read, overwrite, merge, and delete one JSON document.

    Args:
        path: Location of the catalog file.
        storage: Filesystem primitives; a default :class:`Storage` is
            used when omitted.

    Example::

        catalog = Catalog(cache_dir / ".catalog")
        catalog.create({"key": "wx", "history": []})
        catalog.update("expireTime", 1700000000)
        catalog.read("expireTime")
    """

    def __init__(self, path: str | Path, storage: Optional[Storage] = None) -> None:
        self._path = Path(path)
        self._storage = storage or Storage()
        self._data: Optional[dict[str, Any]] = None

    @property
    def path(self) -> Path:
        """The filesystem path of the catalog document."""
        return self._path

    @property
    def exists(self) -> bool:
        """Whether the catalog file is present on disk."""
        return self._path.is_file()

    def read(self, key: Optional[str] = None, refresh: bool = False) -> Any:
        """Return one value, or a copy of the whole document.

        Args:
            key: The top-level field to return.  When omitted, a deep
                copy of the entire document is returned.
            refresh: Re-read the file instead of using the in-memory copy.

        Returns:
            The value for *key* (``None`` if absent), or the full mapping.
        """
        data = self._load(refresh)
        if key is None:
            return copy.deepcopy(data)
        return copy.deepcopy(data.get(key))

    def create(self, data: Mapping[str, Any]) -> bool:
        """Replace the whole document with *data* and save it.

        Returns:
            ``True`` once the file has been written.
        """
        self._data = copy.deepcopy(dict(data))
        return self._save()

    def update(self, data: Mapping[str, Any] | str, value: Any = _MISSING) -> bool:
        """Shallow-merge top-level fields into the document and save it.

        Accepts either a mapping, or a single field name plus *value*.
        Nested values are replaced, not merged, so passing ``history``
        swaps in the new list wholesale.

        Returns:
            ``True`` once the file has been written.
        """
        if isinstance(data, str):
            if value is _MISSING:
                raise TypeError("update() with a field name requires a value")
            changes: dict[str, Any] = {data: value}
        else:
            changes = dict(data)

        current = self._load()
        current.update(copy.deepcopy(changes))
        return self._save()

    def delete(self) -> bool:
        """Forget the in-memory data and remove the file.

        Returns:
            ``True`` if a file was removed.
        """
        self._data = {}
        return self._storage.delete(self._path)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _load(self, refresh: bool = False) -> dict[str, Any]:
        if self._data is None or refresh:
            self._data = self._read_file()
        return self._data

    def _read_file(self) -> dict[str, Any]:
        text = self._storage.read(self._path)
        if text is None:
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            logger.warning("Ignoring corrupt catalog at %s", self._path)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self) -> bool:
        self._storage.write(self._path, json.dumps(self._data))
        return True
