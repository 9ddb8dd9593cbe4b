"""PKCE material generation (:rfc:`7636`, ``S256`` method only)."""

from __future__ import annotations

import base64
import hashlib
import secrets

from deskauth.models import PkceMaterial

_VERIFIER_BYTES = 32
_STATE_BYTES = 16


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def code_challenge_for(code_verifier: str) -> str:
    """Return ``base64url(SHA-256(code_verifier))`` without padding."""
    return _b64url(hashlib.sha256(code_verifier.encode("ascii")).digest())


def generate_pkce() -> PkceMaterial:
    """Generate a fresh verifier, its S256 challenge, and a state token.

    The verifier is 32 random bytes (43 characters once encoded) and the
    state 16 random bytes (22 characters), both from :mod:`secrets`. The
    result must be used for a single authentication attempt only.
    """
    code_verifier = _b64url(secrets.token_bytes(_VERIFIER_BYTES))
    return PkceMaterial(
        code_verifier=code_verifier,
        code_challenge=code_challenge_for(code_verifier),
        state=_b64url(secrets.token_bytes(_STATE_BYTES)),
    )
