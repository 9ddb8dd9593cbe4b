"""deskauth -- OAuth2 Authorization Code + PKCE sign-in for desktop clients.

This package signs a desktop client in against an OAuth2 authorization
server without a client secret, then keeps a long-lived, auto-refreshing
access credential in secure storage for later API calls.

Typical usage::

    deskauth login        # browser sign-in through a loopback redirect
    deskauth token        # print a valid access token

Modules:
    app: Typer application and CLI entry point.
    auth: PKCE, redirect listener, token exchange, token store, flow.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration loading and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric process exit codes.
    output: stdout/stderr formatting with Rich.
"""

__version__ = "0.1.0"
