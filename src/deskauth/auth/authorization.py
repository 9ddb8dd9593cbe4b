"""Authorization endpoint URL construction."""

from __future__ import annotations

from urllib.parse import urlencode

from deskauth.models import OAuthConfig


def build_authorization_url(code_challenge: str, state: str, config: OAuthConfig) -> str:
    """Compose the URL the browser is sent to.

    Every parameter is form-encoded with :func:`urllib.parse.urlencode`, so
    reserved characters in the scope list and state are percent-escaped and
    the space joining the scopes becomes ``+``. An authorization URL that
    already carries a query string is extended with ``&``.

    Args:
        code_challenge: The S256 challenge derived from the PKCE verifier.
        state: The anti-CSRF state echoed back on the redirect.
        config: Client configuration supplying endpoint, client id,
            redirect URI and scopes.

    Returns:
        The complete authorization URL.
    """
    params: dict[str, str] = {
        "client_id": config.client_id,
        "redirect_uri": config.redirect_uri,
        "response_type": "code",
        "scope": " ".join(config.scopes),
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    separator = "&" if "?" in config.authorization_url else "?"
    return f"{config.authorization_url}{separator}{urlencode(params)}"
