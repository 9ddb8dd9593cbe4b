"""Tests for the Authorization Code + PKCE flow coordinator.

The browser is simulated by an opener that reads the state from the
authorization URL and sends the redirect to the real loopback listener.
"""

from __future__ import annotations

import threading
import time
from http.client import HTTPConnection
from typing import TYPE_CHECKING, Callable, Iterator, Optional
from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlencode, urlparse

import httpx
import pytest

from deskauth.auth import create_token_store
from deskauth.auth.callback_server import RedirectListener
from deskauth.auth.credential_store import MemorySecureStorage
from deskauth.auth.flow import FlowCoordinator
from deskauth.auth.pkce import code_challenge_for
from deskauth.auth.token_exchange import TokenExchanger
from deskauth.auth.token_store import TokenStore
from deskauth.exceptions import ProtocolError, SetupError
from deskauth.models import OAuthConfig, OAuthToken

if TYPE_CHECKING:
    from conftest import FakeClock


class FakeBrowser:
    """Record the authorization URL and answer it like an authorization server."""

    def __init__(self, **redirect_params: str) -> None:
        self.redirect_params = redirect_params
        self.urls: list[str] = []
        self.opened = threading.Event()
        self.release = threading.Event()
        self.release.set()
        self.respond = True

    @property
    def url_params(self) -> dict[str, str]:
        return {k: v[0] for k, v in parse_qs(urlparse(self.urls[-1]).query).items()}

    def __call__(self, url: str) -> None:
        self.urls.append(url)
        self.opened.set()
        self.release.wait(5)
        if not self.respond:
            return

        params = {"state": self.url_params["state"], **self.redirect_params}
        redirect = urlparse(self.url_params["redirect_uri"])
        conn = HTTPConnection("127.0.0.1", redirect.port, timeout=5)
        try:
            conn.request("GET", f"{redirect.path}?{urlencode(params)}")
            conn.getresponse().read()
        finally:
            conn.close()


def _token(access: str = "at1") -> OAuthToken:
    return OAuthToken(access_token=access, refresh_token="rt1", expires_at=10**13)


def _port_is_free(port: int) -> bool:
    probe = RedirectListener(port)
    try:
        probe.start("probe", lambda result: None)
    except SetupError:
        return False
    probe.stop()
    return True


@pytest.fixture()
def exchanger() -> MagicMock:
    mock = MagicMock(spec=TokenExchanger)
    mock.exchange.return_value = _token()
    return mock


@pytest.fixture()
def make_store(
    oauth_config: OAuthConfig,
    memory_storage: MemorySecureStorage,
    exchanger: MagicMock,
    clock: FakeClock,
) -> Iterator[Callable[..., TokenStore]]:
    stores: list[TokenStore] = []

    def factory(browser: FakeBrowser, config: Optional[OAuthConfig] = None) -> TokenStore:
        flow = FlowCoordinator(config or oauth_config, exchanger, open_browser=browser)
        store = TokenStore(
            config or oauth_config,
            storage=memory_storage,
            exchanger=exchanger,
            flow=flow,
            clock=clock,
        )
        stores.append(store)
        return store

    yield factory
    for store in stores:
        store.close()


class TestSuccessfulSignIn:
    def test_code_is_exchanged_and_stored(
        self, make_store: Callable[..., TokenStore], exchanger: MagicMock
    ) -> None:
        browser = FakeBrowser(code="abc")
        store = make_store(browser)

        assert store.authenticate().result(timeout=10) is True

        assert store.last_error is None
        assert store.get_access_token() == "at1"
        exchanger.refresh.assert_not_called()
        exchanger.exchange.assert_called_once()

    def test_verifier_matches_challenge_sent_to_browser(
        self, make_store: Callable[..., TokenStore], exchanger: MagicMock
    ) -> None:
        browser = FakeBrowser(code="abc")
        store = make_store(browser)

        store.authenticate().result(timeout=10)

        code, verifier = exchanger.exchange.call_args.args
        assert code == "abc"
        assert browser.url_params["code_challenge"] == code_challenge_for(verifier)
        assert browser.url_params["code_challenge_method"] == "S256"

    def test_each_attempt_uses_fresh_pkce(
        self, make_store: Callable[..., TokenStore], exchanger: MagicMock
    ) -> None:
        browser = FakeBrowser(code="abc")
        store = make_store(browser)

        store.authenticate().result(timeout=10)
        first = browser.url_params
        store.authenticate().result(timeout=10)
        second = browser.url_params

        assert first["state"] != second["state"]
        assert first["code_challenge"] != second["code_challenge"]

    def test_listener_released_after_success(
        self, make_store: Callable[..., TokenStore], oauth_config: OAuthConfig
    ) -> None:
        store = make_store(FakeBrowser(code="abc"))
        store.authenticate().result(timeout=10)
        assert _port_is_free(oauth_config.redirect_port)


class TestFailedSignIn:
    def test_denied(self, make_store: Callable[..., TokenStore], exchanger: MagicMock) -> None:
        store = make_store(FakeBrowser(error="access_denied"))

        assert store.authenticate().result(timeout=10) is False

        assert store.last_error == "Authorization denied: access_denied"
        exchanger.exchange.assert_not_called()
        assert store.get_access_token() is None

    def test_forged_state(self, make_store: Callable[..., TokenStore], exchanger: MagicMock) -> None:
        browser = FakeBrowser(code="abc")
        store = make_store(browser)
        browser.redirect_params["state"] = "forged"

        assert store.authenticate().result(timeout=10) is False

        assert store.last_error == "Invalid state parameter"
        exchanger.exchange.assert_not_called()

    def test_missing_code(self, make_store: Callable[..., TokenStore], exchanger: MagicMock) -> None:
        store = make_store(FakeBrowser())

        assert store.authenticate().result(timeout=10) is False
        assert store.last_error == "No authorization code received"
        exchanger.exchange.assert_not_called()

    def test_exchange_failure(self, make_store: Callable[..., TokenStore], exchanger: MagicMock) -> None:
        exchanger.exchange.side_effect = ProtocolError("Token exchange failed with status 400: bad")
        store = make_store(FakeBrowser(code="abc"))

        assert store.authenticate().result(timeout=10) is False
        assert "status 400" in (store.last_error or "")
        assert store.get_access_token() is None

    def test_timeout_stops_listener(
        self,
        make_store: Callable[..., TokenStore],
        oauth_config: OAuthConfig,
        exchanger: MagicMock,
    ) -> None:
        config = oauth_config.model_copy(update={"auth_timeout": 0.3})
        browser = FakeBrowser(code="abc")
        browser.respond = False
        store = make_store(browser, config)

        assert store.authenticate().result(timeout=10) is False

        assert "No response from the browser" in (store.last_error or "")
        exchanger.exchange.assert_not_called()
        assert _port_is_free(config.redirect_port)

    def test_port_in_use(
        self, make_store: Callable[..., TokenStore], oauth_config: OAuthConfig
    ) -> None:
        squatter = RedirectListener(oauth_config.redirect_port)
        squatter.start("other", lambda result: None)
        browser = FakeBrowser(code="abc")
        store = make_store(browser)
        try:
            assert store.authenticate().result(timeout=10) is False
        finally:
            squatter.stop()

        assert "Cannot listen" in (store.last_error or "")
        assert browser.urls == []

    def test_browser_failure_releases_port(
        self,
        oauth_config: OAuthConfig,
        exchanger: MagicMock,
    ) -> None:
        def broken_browser(url: str) -> None:
            raise OSError("no display")

        flow = FlowCoordinator(oauth_config, exchanger, open_browser=broken_browser)
        try:
            assert flow.authenticate(lambda token: None).result(timeout=10) is False
        finally:
            flow.close()

        assert "no display" in (flow.last_error or "")
        assert _port_is_free(oauth_config.redirect_port)


class TestSingleAttempt:
    def test_second_call_while_in_flight_fails_fast(
        self, make_store: Callable[..., TokenStore], exchanger: MagicMock
    ) -> None:
        browser = FakeBrowser(code="abc")
        browser.release.clear()
        store = make_store(browser)

        first = store.authenticate()
        assert browser.opened.wait(5)
        second = store.authenticate()

        assert second.done()
        assert second.result() is False
        assert store.last_error == "Another sign-in is already in progress"

        browser.release.set()
        assert first.result(timeout=10) is True
        exchanger.exchange.assert_called_once()

    def test_cancel(self, oauth_config: OAuthConfig, exchanger: MagicMock) -> None:
        browser = FakeBrowser(code="abc")
        browser.respond = False
        flow = FlowCoordinator(oauth_config, exchanger, open_browser=browser)
        try:
            future = flow.authenticate(lambda token: None)
            assert browser.opened.wait(5)
            flow.cancel()
            assert future.result(timeout=10) is False
        finally:
            flow.close()

        assert flow.last_error == "Sign-in was cancelled"
        exchanger.exchange.assert_not_called()
        assert _port_is_free(oauth_config.redirect_port)

    def test_cancel_before_listener_starts(
        self, oauth_config: OAuthConfig, exchanger: MagicMock
    ) -> None:
        def slow_listener(config: OAuthConfig) -> RedirectListener:
            time.sleep(0.3)
            return RedirectListener(config.redirect_port, config.redirect_path)

        browser = FakeBrowser(code="abc")
        flow = FlowCoordinator(
            oauth_config, exchanger, open_browser=browser, listener_factory=slow_listener
        )
        try:
            future = flow.authenticate(lambda token: None)
            flow.cancel()
            assert future.result(timeout=2) is False
        finally:
            flow.close()

        assert flow.last_error == "Sign-in was cancelled"
        assert browser.urls == []
        exchanger.exchange.assert_not_called()
        assert _port_is_free(oauth_config.redirect_port)

    def test_cancel_does_not_leak_into_next_attempt(
        self, oauth_config: OAuthConfig, exchanger: MagicMock
    ) -> None:
        flow = FlowCoordinator(oauth_config, exchanger, open_browser=FakeBrowser(code="abc"))
        try:
            flow.cancel()
            assert flow.authenticate(lambda token: None).result(timeout=10) is True
        finally:
            flow.close()

    def test_closed_coordinator_rejects_attempts(
        self, oauth_config: OAuthConfig, exchanger: MagicMock
    ) -> None:
        flow = FlowCoordinator(oauth_config, exchanger, open_browser=FakeBrowser(code="abc"))
        flow.close()

        assert flow.authenticate(lambda token: None).result(timeout=1) is False
        assert "Cannot start sign-in" in (flow.last_error or "")
        assert not flow.in_progress


class TestAssembledStore:
    def test_end_to_end_with_http_client(
        self,
        oauth_config: OAuthConfig,
        memory_storage: MemorySecureStorage,
        clock: FakeClock,
    ) -> None:
        response = MagicMock(spec=httpx.Response)
        response.status_code = 200
        response.json.return_value = {
            "access_token": "live-token",
            "refresh_token": "live-refresh",
            "expires_in": 3600,
        }
        client = MagicMock(spec=httpx.Client)
        client.post.return_value = response

        store = create_token_store(
            oauth_config,
            storage=memory_storage,
            http_client=client,
            clock=clock,
            open_browser=FakeBrowser(code="abc"),
        )
        try:
            assert store.authenticate().result(timeout=10) is True
            assert store.get_access_token() == "live-token"
            assert store.is_authenticated() is True
        finally:
            store.close()

        assert client.post.call_args.kwargs["data"]["code"] == "abc"
        client.close.assert_not_called()
