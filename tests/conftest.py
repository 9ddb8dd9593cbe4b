"""Shared test fixtures for deskauth.

Provides isolated config environments, a controllable clock, in-memory
secure storage and a loopback-port helper. These fixtures are automatically
discovered by pytest and available to all test modules without explicit
imports.
"""

from __future__ import annotations

import socket
from pathlib import Path

import pytest

from deskauth.auth.credential_store import MemorySecureStorage
from deskauth.models import OAuthConfig
from deskauth.output import reset_output

NOW_MS = 1_700_000_000_000


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time. When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Time and storage doubles
# ---------------------------------------------------------------------------


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, now_ms: int = NOW_MS) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, seconds: float) -> None:
        self.now_ms += int(seconds * 1000)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_storage() -> MemorySecureStorage:
    return MemorySecureStorage()


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def unused_port() -> int:
    """A loopback port that was free a moment ago."""
    return _free_port()


@pytest.fixture
def oauth_config() -> OAuthConfig:
    """Client config pointing at an example provider on a free port."""
    return OAuthConfig(
        client_id="test-client",
        authorization_url="https://auth.example.com/oauth/authorize",
        token_url="https://auth.example.com/oauth/token",
        redirect_port=_free_port(),
        scopes=["user:inference", "user:profile"],
        auth_timeout=5.0,
    )


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME to subdirectories of tmp_path
    and clears all DESKAUTH_* environment variables. The XDG check is
    forced on so the layout is the same on every platform.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("deskauth.config._is_xdg_platform", lambda: True)

    for var in [
        "DESKAUTH_CLIENT_ID",
        "DESKAUTH_AUTHORIZATION_URL",
        "DESKAUTH_TOKEN_URL",
        "DESKAUTH_REDIRECT_PORT",
        "DESKAUTH_AUTH_TIMEOUT",
    ]:
        monkeypatch.delenv(var, raising=False)

    return tmp_path


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
