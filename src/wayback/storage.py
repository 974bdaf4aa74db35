"""Filesystem primitives used by the cache and its catalog.

:class:`Storage` is deliberately small: create a directory, write a file
durably, read one back, list a directory, delete files and trees, and
pick a fresh file name.  Every write goes to a temporary file in the
target directory, is fsynced, then renamed over the destination with
``os.replace``, so readers never observe a partially written file.

Concurrent writers to the same directory are serialised with an exclusive
``fcntl`` lock on one hidden ``.lock`` file in that directory.  The lock
is held only for the physical write, never while a caller is fetching or
deciding.  Temporary files left behind by an interrupted write are
removed by :meth:`Storage.reap_stale`.

OS-level failures are raised as :class:`~wayback.exceptions.StorageError`.
"""

from __future__ import annotations

import fcntl
import logging
import os
import secrets
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from wayback.exceptions import StorageError

logger = logging.getLogger(__name__)

LOCK_NAME = ".lock"


class Storage:
    """Durable, lock-protected file operations.

    Args:
        dir_mode: Permission bits for directories created by
            :meth:`create_dir`.
    """

    def __init__(self, dir_mode: int = 0o775) -> None:
        self._dir_mode = dir_mode

    def create_dir(self, path: str | Path) -> Path:
        """Create *path* and any missing parents.

        Returns:
            The directory path.

        Raises:
            StorageError: If the directory cannot be created.
        """
        path = Path(path)
        try:
            path.mkdir(mode=self._dir_mode, parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create directory {path}: {exc}", str(path)) from exc
        return path

    def write(self, path: str | Path, data: str) -> None:
        """Write *data* to *path* atomically under an exclusive lock.

        Raises:
            StorageError: If the file cannot be written (permissions,
                disk full, etc.).
        """
        path = Path(path)
        self.create_dir(path.parent)

        try:
            with self._locked(path.parent):
                self._atomic_write(path, data)
        except OSError as exc:
            raise StorageError(f"Cannot write {path}: {exc}", str(path)) from exc

    def read(self, path: str | Path) -> Optional[str]:
        """Return the text content of *path*, or ``None`` if it does not exist."""
        path = Path(path)
        try:
            with open(path, encoding="utf-8", newline="") as f:
                return f.read()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return None
        except OSError as exc:
            raise StorageError(f"Cannot read {path}: {exc}", str(path)) from exc

    def list_files(self, directory: str | Path) -> list[str]:
        """Return the names of the non-hidden regular files in *directory*, sorted."""
        directory = Path(directory)
        if not directory.is_dir():
            return []
        return sorted(
            p.name for p in directory.iterdir() if p.is_file() and not p.name.startswith(".")
        )

    def delete(self, path: str | Path) -> bool:
        """Remove a single file.

        Returns:
            ``True`` if a file was removed, ``False`` if it was already gone.
        """
        path = Path(path)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(f"Cannot delete {path}: {exc}", str(path)) from exc
        return True

    def delete_dir(self, path: str | Path) -> bool:
        """Recursively delete a directory and everything in it.

        Returns:
            ``True`` if the directory existed and was removed.
        """
        path = Path(path)
        if not path.is_dir():
            return False
        try:
            shutil.rmtree(path)
        except OSError as exc:
            raise StorageError(f"Cannot delete directory {path}: {exc}", str(path)) from exc
        logger.debug("Deleted directory %s", path)
        return True

    def available_name(self, directory: str | Path, prefix: str = "", extension: str = "") -> str:
        """Generate a file name that does not yet exist in *directory*.

        Args:
            directory: Where the file will be created.
            prefix: Optional leading text, e.g. a date stamp.
            extension: Optional extension, with or without the leading dot.
        """
        directory = Path(directory)
        extension = f".{extension.strip('.')}" if extension else ""
        while True:
            name = f"{prefix}{secrets.token_hex(16)}{extension}"
            if not (directory / name).exists():
                return name

    def reap_stale(self, directory: str | Path) -> int:
        """Remove hidden leftovers of interrupted or older writes.

        Deletes ``.*.tmp`` files and any ``.*.lock`` file other than the
        directory's own :data:`LOCK_NAME`.  The directory lock is held
        meanwhile, so no temp file still being written is touched.

        Returns:
            The number of entries removed.
        """
        directory = Path(directory)
        if not directory.is_dir():
            return 0
        removed = 0
        try:
            with self._locked(directory):
                for entry in list(directory.iterdir()):
                    name = entry.name
                    if not name.startswith(".") or name == LOCK_NAME:
                        continue
                    if name.endswith((".tmp", ".lock")) and entry.is_file():
                        if self.delete(entry):
                            removed += 1
        except OSError as exc:
            raise StorageError(f"Cannot clean {directory}: {exc}", str(directory)) from exc
        if removed:
            logger.debug("Removed %d stale file(s) from %s", removed, directory)
        return removed

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    @contextmanager
    def _locked(self, directory: Path) -> Iterator[None]:
        """Hold an exclusive lock on *directory*'s ``.lock`` file."""
        fd = os.open(directory / LOCK_NAME, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    @staticmethod
    def _atomic_write(path: Path, data: str) -> None:
        """Write data to file atomically using temp file + rename.

        The temporary file is created in the same directory as *path* so that
        ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
        On any failure the temp file is cleaned up.
        """
        fd = None
        tmp_path: Optional[str] = None
        try:
            fd = tempfile.NamedTemporaryFile(
                mode="w",
                dir=path.parent,
                prefix=f".{path.name}.",
                suffix=".tmp",
                delete=False,
                encoding="utf-8",
                newline="",
            )
            tmp_path = fd.name
            fd.write(data)
            fd.flush()
            os.fsync(fd.fileno())
            fd.close()
            fd = None  # prevent double-close below
            os.replace(tmp_path, path)
        except BaseException:
            # Clean up the temp file on any error (including KeyboardInterrupt).
            if fd is not None:
                fd.close()
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
            raise
