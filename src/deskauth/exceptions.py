"""Exception hierarchy for deskauth.

All exceptions inherit from :class:`DeskauthError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`deskauth.exit_codes`.
Inside the library these errors never cross the
:class:`~deskauth.auth.token_store.TokenStore` /
:class:`~deskauth.auth.flow.FlowCoordinator` boundary: they are converted to
``False`` / ``None`` plus a short reason string. Only the CLI maps them to
process exit codes.

Subclass hierarchy::

    DeskauthError (exit 1)
    +-- ConfigError                 (exit 2)
    +-- StorageError                (exit 8)
    +-- AuthError                   (exit 3)
        +-- SetupError              (exit 3)
        +-- TransportError          (exit 6)
        +-- ProtocolError           (exit 3)
        +-- CallbackValidationError (exit 3)
        +-- AuthTimeoutError        (exit 3)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from deskauth.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_STORAGE_ERROR,
)

if TYPE_CHECKING:
    from deskauth.models import AuthorizationResult


class DeskauthError(Exception):
    """Base exception for all deskauth errors.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(DeskauthError):
    """Raised for configuration problems (invalid JSON, bad values, missing fields)."""

    exit_code = EXIT_INVALID_USAGE


class StorageError(DeskauthError):
    """Raised when the secure credential storage cannot be read or written."""

    exit_code = EXIT_STORAGE_ERROR


class AuthError(DeskauthError):
    """Base class for failures of an authentication attempt or token refresh."""

    exit_code = EXIT_AUTH_FAILURE


class SetupError(AuthError):
    """Raised when the local redirect listener cannot bind its port."""


class TransportError(AuthError):
    """Raised on network-level failures talking to the token endpoint."""

    exit_code = EXIT_CONNECTION_ERROR


class ProtocolError(AuthError):
    """Raised on a non-200 token response or a malformed response body.

    Args:
        message: Human-readable error description.
        status_code: HTTP status of the offending response, if any.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class CallbackValidationError(AuthError):
    """Raised when the authorization redirect was denied, forged, or incomplete.

    Args:
        result: The non-success :class:`~deskauth.models.AuthorizationResult`
            produced by the redirect listener.
    """

    def __init__(self, result: AuthorizationResult):
        super().__init__(result.message)
        self.result = result


class AuthTimeoutError(AuthError):
    """Raised when the browser redirect does not arrive before the deadline."""
