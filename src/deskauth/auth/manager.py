"""Assembly of the auth subsystem from its collaborators.

:func:`create_token_store` is the one place where the exchanger, flow
coordinator and token store are wired together. Every collaborator can be
injected, so hosts and tests choose storage, HTTP client, clock and browser
behaviour explicitly instead of relying on process-wide singletons.

See Also:
    :class:`~deskauth.auth.token_store.TokenStore` -- the object returned.
"""

from __future__ import annotations

from typing import Optional

import httpx

from deskauth.auth.base import Clock, SecureStorage, system_clock
from deskauth.auth.credential_store import FileSecureStorage
from deskauth.auth.flow import BrowserOpener, FlowCoordinator, ListenerFactory
from deskauth.auth.token_exchange import TokenExchanger
from deskauth.auth.token_store import TokenStore
from deskauth.models import OAuthConfig


def create_token_store(
    config: OAuthConfig,
    storage: Optional[SecureStorage] = None,
    http_client: Optional[httpx.Client] = None,
    clock: Optional[Clock] = None,
    open_browser: Optional[BrowserOpener] = None,
    listener_factory: Optional[ListenerFactory] = None,
) -> TokenStore:
    """Build a :class:`TokenStore` with its exchanger and flow coordinator.

    Args:
        config: Client configuration shared by all components.
        storage: Credential storage; :class:`FileSecureStorage` by default.
        http_client: Client for the token endpoint; the exchanger creates
            its own when omitted.
        clock: Epoch-millisecond clock; :func:`system_clock` by default.
        open_browser: Opens the authorization URL; the system browser by
            default.
        listener_factory: Builds the redirect listener for each attempt.

    Returns:
        A ready-to-use :class:`TokenStore`. Call
        :meth:`~TokenStore.close` when done with it.
    """
    clock = clock or system_clock
    exchanger = TokenExchanger(config, client=http_client, clock=clock)
    flow = FlowCoordinator(
        config,
        exchanger,
        open_browser=open_browser,
        listener_factory=listener_factory,
    )
    return TokenStore(
        config,
        storage=storage or FileSecureStorage(),
        exchanger=exchanger,
        flow=flow,
        clock=clock,
    )
