"""Abstract collaborators of the auth subsystem.

This module defines the seams through which the token lifecycle talks to
the outside world, so tests can substitute fakes:

- :class:`SecureStorage` -- the secret-blob capability (get/set/clear)
  that persists the credential. Implementations live in
  :mod:`deskauth.auth.credential_store`.
- :data:`Clock` -- a callable returning the current time in epoch
  milliseconds; :func:`system_clock` is the default.

See Also:
    :class:`~deskauth.auth.token_store.TokenStore`, the sole user of
    :class:`SecureStorage`.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

Clock = Callable[[], int]
"""Returns "now" as epoch milliseconds."""


def system_clock() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class SecureStorage(ABC):
    """Opaque secret storage keyed by ``(service_id, key)``.

    Secrets are already protected at rest by the implementation; callers
    hand over plain strings. Every method raises
    :class:`~deskauth.exceptions.StorageError` on I/O failure.
    """

    @abstractmethod
    def get(self, service_id: str, key: str) -> Optional[str]:
        """Return the stored secret, or ``None`` if nothing is stored."""
        ...

    @abstractmethod
    def set(self, service_id: str, key: str, secret: str) -> None:
        """Store *secret*, replacing any previous value in one step."""
        ...

    @abstractmethod
    def clear(self, service_id: str, key: str) -> None:
        """Remove the stored secret. A no-op when nothing is stored."""
        ...
