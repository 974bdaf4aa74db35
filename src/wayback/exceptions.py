"""Exception hierarchy for wayback.

All exceptions inherit from :class:`WaybackError`.  Only two failure
classes ever reach the caller:

* configuration problems, raised while a :class:`~wayback.cache.Cache`
  is being constructed (or a config file is loaded), and
* filesystem failures, propagated because a half-written catalog or
  history file leaves state that cannot be trusted.

Transient fetch errors and rejected content are recovered inside the
cache and never surface as exceptions.

Subclass hierarchy::

    WaybackError
    +-- ConfigError
    +-- StorageError
"""


class WaybackError(Exception):
    """Base exception for all wayback errors.

    Args:
        message: Human-readable error description.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigError(WaybackError):
    """Raised for configuration problems (missing key, invalid regex, unknown fields, unreadable config file, unrecordable history data)."""


class StorageError(WaybackError):
    """Raised when the cache directory, a history file, or the catalog cannot be written or removed.

    Args:
        message: Human-readable error description.
        path: The filesystem path involved, when known.
    """

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path
