"""Canonical Pydantic models shared across all deskauth modules.

This is the single source of truth for data shapes in the project. The
models fall into three groups:

**Configuration** -- :class:`OAuthConfig`, persisted as JSON in the user's
config directory and overridable from the environment.

**Credentials and wire payloads** -- :class:`OAuthToken` (the credential
owned by :class:`~deskauth.auth.token_store.TokenStore`) and
:class:`TokenResponse` (the token endpoint's JSON reply).

**Per-attempt flow state** -- :class:`PkceMaterial` and
:class:`AuthorizationResult`, which live for exactly one authentication
attempt.
"""

from __future__ import annotations

import enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

EXPIRY_BUFFER_MS = 60_000
"""A credential counts as expired this many milliseconds before ``expires_at``."""

DEFAULT_CLIENT_ID = "9d1c250a-e61b-44d9-88ed-5944d1962f5e"
DEFAULT_AUTHORIZATION_URL = "https://claude.ai/oauth/authorize"
DEFAULT_TOKEN_URL = "https://console.anthropic.com/v1/oauth/token"
DEFAULT_REDIRECT_PORT = 19284
DEFAULT_SCOPES = ("user:inference", "user:profile")


# --- Configuration ---


class OAuthConfig(BaseModel):
    """Static configuration of the OAuth2 client.

    The client is public (no secret): possession of the authorization code
    is proven with PKCE instead.

    Example::

        OAuthConfig(
            client_id="my-desktop-app",
            authorization_url="https://auth.example.com/authorize",
            token_url="https://auth.example.com/token",
            scopes=["read"],
        )
    """

    client_id: str = Field(default=DEFAULT_CLIENT_ID, min_length=1)
    authorization_url: str = Field(default=DEFAULT_AUTHORIZATION_URL, min_length=1)
    token_url: str = Field(default=DEFAULT_TOKEN_URL, min_length=1)
    redirect_port: int = Field(
        default=DEFAULT_REDIRECT_PORT,
        ge=1,
        le=65535,
        description="Fixed loopback port the redirect listener binds",
    )
    redirect_path: str = Field(default="/callback")
    scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_SCOPES))
    credential_service: str = Field(
        default="deskauth", description="Secure-storage service identifier"
    )
    credential_key: str = Field(
        default="oauth_token", description="Secure-storage key for the credential"
    )
    auth_timeout: float = Field(
        default=300.0,
        gt=0,
        description="Seconds to wait for the browser redirect",
    )
    http_timeout: float = Field(
        default=30.0, gt=0, description="Token endpoint timeout in seconds"
    )

    @property
    def redirect_uri(self) -> str:
        """The redirect URI registered with the authorization server."""
        return f"http://localhost:{self.redirect_port}{self.redirect_path}"


# --- Credentials ---


class OAuthToken(BaseModel):
    """The credential: an access token, its refresh token and expiry.

    ``expires_at`` is an absolute epoch timestamp in milliseconds, in the same
    clock domain as the :data:`~deskauth.auth.base.Clock` used for checks.
    Serialised with camelCase keys (``accessToken`` etc.); either spelling is
    accepted when reading.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(default="", alias="refreshToken")
    expires_at: int = Field(alias="expiresAt")

    def is_expired(self, now_ms: int) -> bool:
        """Return True once *now_ms* is within one minute of ``expires_at``."""
        return now_ms >= self.expires_at - EXPIRY_BUFFER_MS

    def to_secret(self) -> str:
        """Serialise to the JSON blob kept in secure storage."""
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_secret(cls, secret: str) -> OAuthToken:
        """Parse a blob written by :meth:`to_secret`.

        Raises:
            pydantic.ValidationError: If the blob is not a valid credential.
        """
        return cls.model_validate_json(secret)


class TokenResponse(BaseModel):
    """JSON body returned by the token endpoint for both grant types."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(min_length=1)
    refresh_token: Optional[str] = None
    expires_in: int = Field(ge=0, description="Lifetime in seconds")
    token_type: Optional[str] = None

    def to_token(self, now_ms: int, fallback_refresh_token: str = "") -> OAuthToken:
        """Build a credential, keeping *fallback_refresh_token* if none was issued."""
        return OAuthToken(
            access_token=self.access_token,
            refresh_token=self.refresh_token or fallback_refresh_token,
            expires_at=now_ms + self.expires_in * 1000,
        )


# --- Per-attempt flow state ---


class PkceMaterial(BaseModel):
    """Verifier, S256 challenge and anti-CSRF state for one attempt."""

    model_config = ConfigDict(frozen=True)

    code_verifier: str
    code_challenge: str
    state: str


class AuthorizationStatus(str, enum.Enum):
    """Outcome categories of the authorization redirect."""

    SUCCESS = "success"
    DENIED = "denied"
    INVALID_STATE = "invalid_state"
    MISSING_CODE = "missing_code"


class AuthorizationResult(BaseModel):
    """What the redirect listener captured: a code, or why there is none.

    Use the constructors (:meth:`success`, :meth:`denied`,
    :meth:`invalid_state`, :meth:`missing_code`) rather than building the
    model directly.
    """

    model_config = ConfigDict(frozen=True)

    status: AuthorizationStatus
    code: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def success(cls, code: str) -> AuthorizationResult:
        return cls(status=AuthorizationStatus.SUCCESS, code=code)

    @classmethod
    def denied(cls, reason: str) -> AuthorizationResult:
        return cls(status=AuthorizationStatus.DENIED, reason=reason)

    @classmethod
    def invalid_state(cls) -> AuthorizationResult:
        return cls(status=AuthorizationStatus.INVALID_STATE)

    @classmethod
    def missing_code(cls) -> AuthorizationResult:
        return cls(status=AuthorizationStatus.MISSING_CODE)

    @property
    def succeeded(self) -> bool:
        return self.status is AuthorizationStatus.SUCCESS

    @property
    def message(self) -> str:
        """Short, user-facing description of the outcome."""
        if self.status is AuthorizationStatus.SUCCESS:
            return "Authorization code received"
        if self.status is AuthorizationStatus.DENIED:
            return f"Authorization denied: {self.reason}"
        if self.status is AuthorizationStatus.INVALID_STATE:
            return "Invalid state parameter"
        return "No authorization code received"
