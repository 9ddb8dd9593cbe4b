"""Owner of the OAuth credential: cache, expiry, refresh, persistence.

:class:`TokenStore` is the consumer-facing surface of the subsystem
(:meth:`~TokenStore.is_authenticated`, :meth:`~TokenStore.get_access_token`,
:meth:`~TokenStore.authenticate`, :meth:`~TokenStore.logout`). It is the only
component that reads or writes :class:`~deskauth.auth.base.SecureStorage`.

The in-memory copy is a cache over storage, populated lazily on first use.
Every write updates storage first and memory second while holding the store
lock, so readers never see the two disagree. ``get_access_token`` performs
its whole read-refresh-write sequence under the same lock: concurrent callers
wait for one refresh instead of racing their own.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Optional

from pydantic import ValidationError

from deskauth.auth.base import Clock, SecureStorage, system_clock
from deskauth.auth.flow import FlowCoordinator
from deskauth.auth.token_exchange import TokenExchanger
from deskauth.exceptions import AuthError, StorageError
from deskauth.models import OAuthConfig, OAuthToken

logger = logging.getLogger(__name__)


class TokenStore:
    """Serve valid access tokens, refreshing or clearing the credential as needed.

    Args:
        config: Supplies the secure-storage coordinates
            (``credential_service``, ``credential_key``).
        storage: Secure storage holding the serialised credential.
        exchanger: Used for ``refresh_token`` grants.
        flow: Runs interactive sign-ins for :meth:`authenticate`.
        clock: Source of "now" (epoch milliseconds) for expiry checks.

    Example::

        store = create_token_store(load_config())
        if not store.is_authenticated():
            store.authenticate().result()
        token = store.get_access_token()
    """

    def __init__(
        self,
        config: OAuthConfig,
        storage: SecureStorage,
        exchanger: TokenExchanger,
        flow: Optional[FlowCoordinator] = None,
        clock: Clock = system_clock,
    ) -> None:
        self._service = config.credential_service
        self._key = config.credential_key
        self._storage = storage
        self._exchanger = exchanger
        self._flow = flow
        self._clock = clock
        self._lock = threading.RLock()
        self._token: Optional[OAuthToken] = None
        self._loaded = False

    # ------------------------------------------------------------------
    # Consumer interface
    # ------------------------------------------------------------------

    def is_authenticated(self) -> bool:
        """True iff a credential is stored and not expired. Never refreshes."""
        with self._lock:
            token = self._load()
            return token is not None and not token.is_expired(self._clock())

    def get_access_token(self) -> Optional[str]:
        """Return a usable access token, refreshing an expired one first.

        On refresh failure the credential is cleared from memory and storage
        and ``None`` is returned; the caller should prompt for a new sign-in.
        """
        with self._lock:
            token = self._load()
            if token is None:
                return None
            if not token.is_expired(self._clock()):
                return token.access_token

            if not token.refresh_token:
                logger.warning("Access token expired and no refresh token is stored")
                self._clear()
                return None

            try:
                refreshed = self._exchanger.refresh(token.refresh_token)
            except AuthError as exc:
                logger.warning("Failed to refresh token: %s", exc)
                self._clear()
                return None

            try:
                self._save(refreshed)
            except StorageError as exc:
                logger.warning("Failed to persist refreshed token: %s", exc)
                self._clear()
                return None

            logger.debug("Access token refreshed")
            return refreshed.access_token

    def authenticate(self) -> Future[bool]:
        """Start an interactive sign-in; the credential is saved on success.

        Raises:
            RuntimeError: If the store was built without a flow coordinator.
        """
        if self._flow is None:
            raise RuntimeError("TokenStore was created without a FlowCoordinator")
        return self._flow.authenticate(on_token=self.save)

    def logout(self) -> None:
        """Forget the credential in memory and in storage. Idempotent."""
        with self._lock:
            self._clear()

    # ------------------------------------------------------------------
    # Helpers for hosts and consumers
    # ------------------------------------------------------------------

    @property
    def last_error(self) -> Optional[str]:
        """Reason the last sign-in attempt failed, if it did."""
        return self._flow.last_error if self._flow is not None else None

    def get_token(self) -> Optional[OAuthToken]:
        """Return the current credential as stored, without refreshing it."""
        with self._lock:
            return self._load()

    def authorization_headers(self) -> Optional[dict[str, str]]:
        """``{"Authorization": "Bearer <token>"}`` for a valid token, else ``None``."""
        access_token = self.get_access_token()
        if access_token is None:
            return None
        return {"Authorization": f"Bearer {access_token}"}

    def save(self, token: OAuthToken) -> None:
        """Replace the credential in storage and memory.

        Raises:
            StorageError: If storage rejects the write; memory is left as it was.
        """
        with self._lock:
            self._save(token)

    def close(self) -> None:
        """Release the flow executor and the HTTP client."""
        if self._flow is not None:
            self._flow.close()
        self._exchanger.close()

    # ------------------------------------------------------------------
    # Internals (callers hold self._lock)
    # ------------------------------------------------------------------

    def _load(self) -> Optional[OAuthToken]:
        if self._loaded:
            return self._token

        try:
            secret = self._storage.get(self._service, self._key)
        except StorageError as exc:
            logger.warning("Cannot read stored credential: %s", exc)
            return None

        token: Optional[OAuthToken] = None
        if secret:
            try:
                token = OAuthToken.from_secret(secret)
            except ValidationError as exc:
                # Treated as signed out for the rest of the process; the blob stays in place.
                logger.warning("Ignoring unreadable stored credential: %s", exc)

        self._token = token
        self._loaded = True
        return token

    def _save(self, token: OAuthToken) -> None:
        self._storage.set(self._service, self._key, token.to_secret())
        self._token = token
        self._loaded = True

    def _clear(self) -> None:
        self._token = None
        self._loaded = True
        try:
            self._storage.clear(self._service, self._key)
        except StorageError as exc:
            # Memory stays cleared, so the stale blob is ignored for this process.
            logger.warning("Cannot remove stored credential: %s", exc)
