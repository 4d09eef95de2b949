"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for fleetclient:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.fleetclient/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir`.
* **Config file** -- a single :class:`~fleetclient.models.ClientConfig`
  JSON file, read with :func:`load_config` and written with
  :func:`save_config`.
* **Precedence resolution** -- :func:`resolve_config` overlays environment
  variables and CLI flags on the stored config.

The persistent storage backend keeps its database under the cache
directory (``<cache dir>/storage``); deleting it only drops cached data and
stored tokens.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from fleetclient.exceptions import ConfigError
from fleetclient.models import ClientConfig

_APP_NAME = "fleetclient"
_CONFIG_FILENAME = "config.json"

# Environment variable -> dotted ClientConfig field.
ENV_OVERRIDES: dict[str, str] = {
    "FLEETCLIENT_BASE_URL": "base_url",
    "FLEETCLIENT_ANALYTICS": "analytics_enabled",
    "FLEETCLIENT_TIMEOUT": "request.timeout",
    "FLEETCLIENT_RETRY": "request.retry",
    "FLEETCLIENT_RETRY_DELAY": "request.retry_delay",
    "FLEETCLIENT_CACHE_ENABLED": "cache.enabled",
    "FLEETCLIENT_CACHE_TTL": "cache.ttl",
    "FLEETCLIENT_STORAGE_PREFIX": "storage.prefix",
    "FLEETCLIENT_STORAGE_DRIVER": "storage.driver",
    "FLEETCLIENT_STORAGE_ENCRYPTION": "storage.encryption",
    "FLEETCLIENT_STORAGE_COMPRESSION": "storage.compression",
}


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True on platforms following the XDG Base Directory spec (Linux/BSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from *env_var* or ``$HOME/<segments>``."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/fleetclient/`` (default
    ``~/.config/fleetclient/``). Elsewhere: ``~/.fleetclient/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache directory, creating it if necessary.

    Holds the persistent storage backend. On Linux/BSD:
    ``$XDG_CACHE_HOME/fleetclient/`` (default ``~/.cache/fleetclient/``).
    Elsewhere: ``~/.fleetclient/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/fleetclient/`` (default
    ``~/.local/share/fleetclient/``). Elsewhere: ``~/.fleetclient/data/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write *data* to *path* via a temp file in the same directory + rename.

    On any failure the temp file is removed and the original file is left
    untouched.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

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
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Config file ---


def config_path() -> Path:
    """Path to the config file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_config() -> ClientConfig:
    """Load the stored configuration.

    Returns:
        The stored :class:`~fleetclient.models.ClientConfig`, or the
        defaults when no file exists.

    Raises:
        ConfigError: If the file contains invalid JSON or invalid values.
    """
    path = config_path()
    if not path.is_file():
        return ClientConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return ClientConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_config(config: ClientConfig) -> None:
    """Persist *config* atomically."""
    data = config.model_dump(mode="json")
    _atomic_write(config_path(), json.dumps(data, indent=2) + "\n")


def reset_config() -> None:
    """Delete the config file so the defaults apply again."""
    path = config_path()
    if path.is_file():
        path.unlink()


def set_config_value(data: dict[str, Any], dotted_key: str, value: Any) -> None:
    """Assign *value* at *dotted_key* (e.g. ``cache.ttl``) inside *data*.

    Raises:
        ConfigError: If any segment of the key does not exist.
    """
    keys = dotted_key.split(".")
    target = data
    for key in keys[:-1]:
        if not isinstance(target.get(key), dict):
            raise ConfigError(f"Unknown config key: {dotted_key}")
        target = target[key]
    if keys[-1] not in target:
        raise ConfigError(f"Unknown config key: {dotted_key}")
    target[keys[-1]] = value


# --- Precedence resolution ---


def resolve_config(cli_base_url: Optional[str] = None) -> ClientConfig:
    """Resolve the effective configuration.

    Precedence (high to low):
        1. CLI flags (``cli_base_url``)
        2. Environment variables (see :data:`ENV_OVERRIDES`)
        3. The config file (``~/.config/fleetclient/config.json``)
        4. Defaults

    Environment values are strings; Pydantic coerces them to the field
    types (``"true"`` -> ``True``, ``"5000"`` -> ``5000``).

    Raises:
        ConfigError: If the file or an environment value is invalid.
    """
    data = load_config().model_dump(mode="json")

    for env_var, dotted_key in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            set_config_value(data, dotted_key, value)

    if cli_base_url is not None:
        data["base_url"] = cli_base_url

    try:
        return ClientConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration value: {exc}") from exc
