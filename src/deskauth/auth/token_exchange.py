"""Token endpoint client for the ``authorization_code`` and ``refresh_token`` grants.

:class:`TokenExchanger` posts form-encoded grant requests and turns the JSON
reply into an :class:`~deskauth.models.OAuthToken`. It never retries: any
failure is raised as a :class:`~deskauth.exceptions.TransportError`
(network) or :class:`~deskauth.exceptions.ProtocolError` (non-200 status,
malformed body) and the caller decides what to do next.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from deskauth.auth.base import Clock, system_clock
from deskauth.exceptions import ProtocolError, TransportError
from deskauth.models import OAuthConfig, OAuthToken, TokenResponse

logger = logging.getLogger(__name__)


class TokenExchanger:
    """Perform grant requests against the configured token endpoint.

    Args:
        config: Client configuration (token URL, client id, redirect URI,
            timeouts).
        client: HTTP client to use. When omitted an :class:`httpx.Client`
            with ``config.http_timeout`` is created and owned by the
            exchanger.
        clock: Source of "now" for computing ``expires_at``.
    """

    def __init__(
        self,
        config: OAuthConfig,
        client: Optional[httpx.Client] = None,
        clock: Clock = system_clock,
    ) -> None:
        self._config = config
        self._owns_client = client is None
        self._client = (
            client if client is not None
            else httpx.Client(timeout=httpx.Timeout(config.http_timeout))
        )
        self._clock = clock

    def exchange(self, code: str, code_verifier: str) -> OAuthToken:
        """Redeem an authorization code, proving possession with the PKCE verifier.

        Returns:
            The new credential. Its ``refresh_token`` is empty if the server
            did not issue one.

        Raises:
            TransportError: If the token endpoint cannot be reached.
            ProtocolError: On a non-200 response or an unparseable body.
        """
        data = {
            "grant_type": "authorization_code",
            "client_id": self._config.client_id,
            "code": code,
            "redirect_uri": self._config.redirect_uri,
            "code_verifier": code_verifier,
        }
        response = self._post(data, "Token exchange")
        return response.to_token(self._clock())

    def refresh(self, refresh_token: str) -> OAuthToken:
        """Mint a new access token from *refresh_token*.

        Some providers omit ``refresh_token`` from refresh replies; the
        previous refresh token is then carried over to the new credential.

        Raises:
            TransportError: If the token endpoint cannot be reached.
            ProtocolError: On a non-200 response or an unparseable body.
        """
        data = {
            "grant_type": "refresh_token",
            "client_id": self._config.client_id,
            "refresh_token": refresh_token,
        }
        response = self._post(data, "Token refresh")
        if not response.refresh_token:
            logger.debug("Refresh response carried no refresh_token; keeping the previous one")
        return response.to_token(self._clock(), fallback_refresh_token=refresh_token)

    def close(self) -> None:
        """Close the HTTP client if this exchanger created it."""
        if self._owns_client:
            self._client.close()

    def _post(self, data: dict[str, str], action: str) -> TokenResponse:
        try:
            response = self._client.post(
                self._config.token_url,
                data=data,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"{action} failed: {exc}") from exc

        if response.status_code != 200:
            raise ProtocolError(
                f"{action} failed with status {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        try:
            return TokenResponse.model_validate(response.json())
        except ValueError as exc:
            # Covers both JSON decoding errors and pydantic validation errors.
            raise ProtocolError(f"{action} returned a malformed response: {exc}") from exc
