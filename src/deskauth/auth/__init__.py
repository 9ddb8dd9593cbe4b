"""OAuth2 Authorization Code + PKCE authentication for desktop clients.

The main entry points are:

- :func:`create_token_store` -- wires the components below and returns a
  :class:`TokenStore`, the consumer-facing API (``is_authenticated``,
  ``get_access_token``, ``authenticate``, ``logout``).
- :class:`FlowCoordinator` -- runs one browser sign-in at a time on a
  worker thread.
- :class:`RedirectListener` -- the single-use loopback ``/callback`` server.
- :class:`TokenExchanger` -- ``authorization_code`` and ``refresh_token``
  grants against the token endpoint.
- :class:`SecureStorage` and its :class:`FileSecureStorage` /
  :class:`MemorySecureStorage` implementations.

Typical usage::

    from deskauth.auth import create_token_store
    from deskauth.config import resolve_config

    store = create_token_store(resolve_config())
    if store.authenticate().result():
        headers = store.authorization_headers()
"""

from deskauth.auth.authorization import build_authorization_url
from deskauth.auth.base import Clock, SecureStorage, system_clock
from deskauth.auth.callback_server import RedirectListener, classify_callback
from deskauth.auth.credential_store import FileSecureStorage, MemorySecureStorage
from deskauth.auth.flow import FlowCoordinator
from deskauth.auth.manager import create_token_store
from deskauth.auth.pkce import generate_pkce
from deskauth.auth.token_exchange import TokenExchanger
from deskauth.auth.token_store import TokenStore

__all__ = [
    "Clock",
    "FileSecureStorage",
    "FlowCoordinator",
    "MemorySecureStorage",
    "RedirectListener",
    "SecureStorage",
    "TokenExchanger",
    "TokenStore",
    "build_authorization_url",
    "classify_callback",
    "create_token_store",
    "generate_pkce",
    "system_clock",
]
