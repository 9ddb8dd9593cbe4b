"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for deskauth:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.deskauth/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Client config** -- a single :class:`~deskauth.models.OAuthConfig` JSON
  file (``config.json``) in the config directory.
* **Precedence resolution** -- :func:`resolve_config` merges explicit
  overrides, ``DESKAUTH_*`` environment variables, the config file and the
  built-in defaults.

All file writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`) so a crash never leaves a half-written file behind.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from deskauth.exceptions import ConfigError
from deskauth.models import OAuthConfig

_APP_NAME = "deskauth"
_CONFIG_FILENAME = "config.json"

# Environment variable -> OAuthConfig field
_ENV_OVERRIDES = {
    "DESKAUTH_CLIENT_ID": "client_id",
    "DESKAUTH_AUTHORIZATION_URL": "authorization_url",
    "DESKAUTH_TOKEN_URL": "token_url",
    "DESKAUTH_REDIRECT_PORT": "redirect_port",
    "DESKAUTH_AUTH_TIMEOUT": "auth_timeout",
}


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform follows the XDG Base Directory spec (Linux/BSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    return Path.home().joinpath(*default_segments)


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/deskauth/`` (default ``~/.config/deskauth/``).
    On macOS/Windows: ``~/.deskauth/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (credentials, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/deskauth/`` (default ``~/.local/share/deskauth/``).
    On macOS/Windows: ``~/.deskauth/data/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}" / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_credentials_dir() -> Path:
    """Return ``<data_dir>/credentials``, created with owner-only permissions."""
    path = get_data_dir() / "credentials"
    path.mkdir(mode=0o700, parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write *data* to *path* atomically using a temp file + rename.

    The temporary file lives in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX. When *mode* is given the
    permissions are applied before any content is written.
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
        if mode is not None:
            os.chmod(tmp_path, mode)
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


# --- Client config ---


def config_path() -> Path:
    """Path to the client config file."""
    return get_config_dir() / _CONFIG_FILENAME


def _read_config_file() -> dict[str, Any]:
    path = config_path()
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid config at {path}: expected a JSON object")
    return data


def load_config() -> OAuthConfig:
    """Load the client configuration from the config directory.

    Returns:
        The stored :class:`~deskauth.models.OAuthConfig`, or the defaults
        when no file exists.

    Raises:
        ConfigError: If the file contains invalid JSON or invalid values.
    """
    try:
        return OAuthConfig.model_validate(_read_config_file())
    except ValidationError as exc:
        raise ConfigError(f"Invalid config at {config_path()}: {exc}") from exc


def save_config(config: OAuthConfig) -> None:
    """Persist the client configuration atomically."""
    data = config.model_dump(mode="json")
    atomic_write(config_path(), json.dumps(data, indent=2) + "\n")


def resolve_config(overrides: Optional[dict[str, Any]] = None) -> OAuthConfig:
    """Resolve the effective client configuration.

    Precedence (high to low):
        1. *overrides* (CLI flags); ``None`` values are ignored
        2. ``DESKAUTH_*`` environment variables
        3. The config file
        4. Built-in defaults

    Raises:
        ConfigError: If any layer supplies an invalid value.
    """
    data = _read_config_file()

    for env_var, field in _ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            data[field] = value

    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return OAuthConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
