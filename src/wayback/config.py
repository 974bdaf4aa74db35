"""Configuration loading and the default cache container location.

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.wayback/cache/`` on macOS and Windows.  See :func:`get_cache_dir`.
  This is only the *default*; a :class:`~wayback.models.CacheConfig`
  with an explicit ``container`` never consults the environment.
* **Config files** -- :func:`load_cache_config` turns a mapping, an
  existing :class:`~wayback.models.CacheConfig`, or a JSON or YAML file into a
  validated configuration, raising :class:`~wayback.exceptions.ConfigError`
  for anything it cannot accept.  :func:`save_cache_config` writes one
  back atomically.
"""

from __future__ import annotations

import json
import os
import platform
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Union

import yaml
from pydantic import ValidationError

from wayback.exceptions import ConfigError
from wayback.models import CacheConfig
from wayback.storage import Storage

_APP_NAME = "wayback"
_YAML_SUFFIXES = (".yaml", ".yml")

ConfigSource = Union[CacheConfig, Mapping[str, Any], str, Path]


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def get_cache_dir() -> Path:
    """Return the default container directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CACHE_HOME/wayback/`` (default ``~/.cache/wayback/``).
    On macOS/Windows: ``~/.wayback/cache/``.

    Returns:
        Absolute path to the directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        env_value = os.environ.get("XDG_CACHE_HOME", "")
        base = Path(env_value) if env_value else Path.home() / ".cache"
        path = base / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}" / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Loading and saving ---


def load_cache_config(source: ConfigSource) -> CacheConfig:
    """Build a validated :class:`~wayback.models.CacheConfig`.

    Args:
        source: An existing config (returned unchanged), a mapping of
            field names to values, or the path of a JSON file holding
            such a mapping (``.yaml``/``.yml`` files are read as YAML).

    Returns:
        The validated configuration.

    Raises:
        ConfigError: If the file is missing or cannot be parsed, or if the
            data names unknown fields, omits both ``key`` and ``url``, or
            carries an invalid regular expression.
    """
    if isinstance(source, CacheConfig):
        return source

    if isinstance(source, (str, Path)):
        path = Path(source).expanduser()
        if not path.is_file():
            raise ConfigError(f"Cache config not found at {path}")
        source = _read_config_file(path)

    try:
        return CacheConfig.model_validate(dict(source))
    except ValidationError as exc:
        raise ConfigError(f"Invalid cache config: {exc}") from exc


def save_cache_config(config: CacheConfig, path: str | Path) -> None:
    """Persist a configuration atomically.

    The format follows the extension: ``.yaml``/``.yml`` files are
    written as YAML, anything else as JSON.

    Args:
        config: The configuration to save.
        path: Destination file; parent directories are created.
    """
    path = Path(path)
    data = config.model_dump(mode="json", exclude_defaults=True)
    if path.suffix.lower() in _YAML_SUFFIXES:
        content = yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    else:
        content = json.dumps(data, indent=2) + "\n"
    Storage().write(path, content)


def _read_config_file(path: Path) -> dict[str, Any]:
    """Parse a JSON or YAML config file into a dict.

    YAML is chosen by extension; everything else is parsed as JSON.
    """
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Invalid cache config at {path}: {exc}") from exc

    try:
        if path.suffix.lower() in _YAML_SUFFIXES:
            data = yaml.safe_load(content)
        else:
            data = json.loads(content)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"Invalid cache config at {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(
            f"Invalid cache config at {path}: expected an object, "
            f"got {type(data).__name__}"
        )
    return data
