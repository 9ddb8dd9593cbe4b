"""Secure-storage backends for the persisted credential.

:class:`FileSecureStorage` keeps one file per ``(service_id, key)`` under
``~/.local/share/deskauth/credentials/`` (XDG) or the platform-equivalent
directory. Files are written atomically via :func:`deskauth.config.atomic_write`
with ``0o600`` permissions so that secrets are never world-readable, even
momentarily.

:class:`MemorySecureStorage` keeps secrets in process memory only. It suits
embedded hosts that persist nothing, and the test-suite.

See Also:
    :class:`~deskauth.auth.base.SecureStorage` -- the capability interface.
    :class:`~deskauth.auth.token_store.TokenStore` -- the only writer.
"""

from __future__ import annotations

import re
import threading
from pathlib import Path
from typing import Optional

from deskauth.auth.base import SecureStorage
from deskauth.config import atomic_write, get_credentials_dir
from deskauth.exceptions import StorageError

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def _safe_name(value: str) -> str:
    return _UNSAFE_CHARS.sub("_", value)


class FileSecureStorage(SecureStorage):
    """Owner-only files, one per ``(service_id, key)``.

    Args:
        directory: Where to keep the files. Defaults to
            :func:`~deskauth.config.get_credentials_dir`, resolved lazily so
            that constructing the storage never touches the filesystem.

    Example::

        storage = FileSecureStorage()
        storage.set("deskauth", "oauth_token", "{...}")
        assert storage.get("deskauth", "oauth_token") == "{...}"
    """

    def __init__(self, directory: Optional[Path] = None) -> None:
        self._directory = directory

    def path_for(self, service_id: str, key: str) -> Path:
        """The file that holds the secret for ``(service_id, key)``."""
        directory = self._directory or get_credentials_dir()
        return directory / f"{_safe_name(service_id)}.{_safe_name(key)}.secret"

    def get(self, service_id: str, key: str) -> Optional[str]:
        try:
            path = self.path_for(service_id, key)
            if not path.is_file():
                return None
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageError(f"Cannot read credential {service_id}/{key}: {exc}") from exc

    def set(self, service_id: str, key: str, secret: str) -> None:
        try:
            atomic_write(self.path_for(service_id, key), secret, mode=0o600)
        except (OSError, UnicodeEncodeError) as exc:
            raise StorageError(f"Cannot write credential {service_id}/{key}: {exc}") from exc

    def clear(self, service_id: str, key: str) -> None:
        try:
            self.path_for(service_id, key).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot remove credential {service_id}/{key}: {exc}") from exc


class MemorySecureStorage(SecureStorage):
    """Thread-safe, process-local storage. Nothing survives a restart."""

    def __init__(self) -> None:
        self._secrets: dict[tuple[str, str], str] = {}
        self._lock = threading.Lock()

    def get(self, service_id: str, key: str) -> Optional[str]:
        with self._lock:
            return self._secrets.get((service_id, key))

    def set(self, service_id: str, key: str, secret: str) -> None:
        with self._lock:
            self._secrets[(service_id, key)] = secret

    def clear(self, service_id: str, key: str) -> None:
        with self._lock:
            self._secrets.pop((service_id, key), None)
