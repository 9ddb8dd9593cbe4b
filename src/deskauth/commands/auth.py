"""Auth commands -- sign in, sign out, inspect and print the credential.

Provides ``deskauth login``, ``logout``, ``status`` and ``token``. Each
command builds a :class:`~deskauth.auth.token_store.TokenStore` from the
resolved configuration, so the same flags, environment variables and config
file apply everywhere.

Typical workflow::

    deskauth login                # browser sign-in
    deskauth status               # is the credential still valid?
    curl -H "Authorization: Bearer $(deskauth token)" https://api.example.com/...
    deskauth logout
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

import typer

from deskauth.auth import create_token_store
from deskauth.auth.token_store import TokenStore
from deskauth.config import resolve_config
from deskauth.exceptions import ConfigError
from deskauth.exit_codes import EXIT_AUTH_FAILURE
from deskauth.output import error, info, print_data, print_json, print_table, success, suggest


def _open_store(overrides: Optional[dict[str, Any]] = None, **kwargs: Any) -> TokenStore:
    """Resolve configuration and build a store, exiting cleanly on bad config."""
    try:
        config = resolve_config(overrides)
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    return create_token_store(config, **kwargs)


def _format_expiry(expires_at_ms: int) -> str:
    return datetime.fromtimestamp(expires_at_ms / 1000).astimezone().isoformat(timespec="seconds")


def login(
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Seconds to wait for the browser (default 300)."
    ),
    port: Optional[int] = typer.Option(
        None, "--port", help="Loopback port for the redirect listener."
    ),
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Print the sign-in URL instead of opening a browser."
    ),
) -> None:
    """Sign in through the browser (OAuth2 Authorization Code + PKCE).

    Starts a one-shot listener on the loopback redirect port, opens the
    authorization page, and stores the resulting credential.

    Raises:
        typer.Exit: With code 3 if the sign-in fails or times out.
    """
    overrides = {"auth_timeout": timeout, "redirect_port": port}

    def show_url(url: str) -> None:
        info("Open this URL in your browser to sign in:")
        print_data(url)

    store = _open_store(overrides, open_browser=show_url if no_browser else None)
    try:
        if not no_browser:
            info("Opening your browser to sign in...")
        ok = store.authenticate().result()
    finally:
        store.close()

    if not ok:
        error(f"Sign-in failed: {store.last_error or 'unknown error'}")
        raise typer.Exit(code=EXIT_AUTH_FAILURE)
    success("Signed in.")


def logout() -> None:
    """Remove the stored credential. Safe to run when already signed out."""
    store = _open_store()
    try:
        store.logout()
    finally:
        store.close()
    success("Signed out.")


def status(
    json_output: bool = typer.Option(False, "--json", help="Print status as JSON."),
) -> None:
    """Show whether a valid credential is stored. Never contacts the server."""
    store = _open_store()
    try:
        token = store.get_token()
        authenticated = store.is_authenticated()
    finally:
        store.close()

    if json_output:
        print_json(
            {
                "authenticated": authenticated,
                "expires_at": _format_expiry(token.expires_at) if token else None,
                "has_refresh_token": bool(token and token.refresh_token),
            }
        )
        return

    if token is None:
        info("Not signed in.")
        suggest("Sign in: deskauth login")
        return

    print_table(
        ["Field", "Value"],
        [
            ["Authenticated", "yes" if authenticated else "no (expired)"],
            ["Expires At", _format_expiry(token.expires_at)],
            ["Refresh Token", "present" if token.refresh_token else "none"],
        ],
        title="Credential",
    )
    if not authenticated:
        suggest("Run `deskauth token` to refresh, or `deskauth login` to sign in again.")


def token() -> None:
    """Print a valid access token to stdout, refreshing it if it has expired.

    Raises:
        typer.Exit: With code 3 if no usable credential is available.
    """
    store = _open_store()
    try:
        access_token = store.get_access_token()
    finally:
        store.close()

    if access_token is None:
        error("Not signed in, or the session could not be refreshed.")
        suggest("Sign in: deskauth login")
        raise typer.Exit(code=EXIT_AUTH_FAILURE)
    print_data(access_token)
