"""Authorization Code + PKCE flow orchestration.

:class:`FlowCoordinator` runs one browser sign-in on a worker thread:

1. Generates fresh PKCE material.
2. Starts a :class:`~deskauth.auth.callback_server.RedirectListener` bound to
   the expected state.
3. Opens the authorization URL in the system browser.
4. Waits for the listener's single result, or for ``auth_timeout``.
5. Exchanges the code for a credential and hands it to the caller's
   ``on_token`` callback (the token store persists it).

The listener is stopped on every exit path, and only one attempt may be in
flight per coordinator since the redirect port is an exclusive resource.
"""

from __future__ import annotations

import logging
import queue
import threading
import webbrowser
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from deskauth.auth.authorization import build_authorization_url
from deskauth.auth.callback_server import RedirectListener
from deskauth.auth.pkce import generate_pkce
from deskauth.auth.token_exchange import TokenExchanger
from deskauth.exceptions import (
    AuthError,
    AuthTimeoutError,
    CallbackValidationError,
    DeskauthError,
)
from deskauth.models import AuthorizationResult, OAuthConfig, OAuthToken

logger = logging.getLogger(__name__)

BrowserOpener = Callable[[str], Any]
ListenerFactory = Callable[[OAuthConfig], RedirectListener]
TokenCallback = Callable[[OAuthToken], None]

_CANCELLED = "Sign-in was cancelled"


def open_system_browser(url: str) -> None:
    """Open *url* with :mod:`webbrowser`, logging the URL if that is impossible."""
    if not webbrowser.open(url):
        logger.warning("Could not open a browser. Visit this URL to sign in: %s", url)


def _default_listener(config: OAuthConfig) -> RedirectListener:
    return RedirectListener(config.redirect_port, config.redirect_path)


class FlowCoordinator:
    """Run interactive sign-ins off the caller's thread.

    Args:
        config: Client configuration; ``auth_timeout`` bounds the wait for
            the browser redirect.
        exchanger: Performs the ``authorization_code`` grant.
        open_browser: Called with the authorization URL. Defaults to
            :func:`open_system_browser`.
        listener_factory: Builds the redirect listener for an attempt.
        executor: Where attempts run. A single-thread pool is created (and
            owned) when omitted.
    """

    def __init__(
        self,
        config: OAuthConfig,
        exchanger: TokenExchanger,
        open_browser: Optional[BrowserOpener] = None,
        listener_factory: Optional[ListenerFactory] = None,
        executor: Optional[Executor] = None,
    ) -> None:
        self._config = config
        self._exchanger = exchanger
        self._open_browser = open_browser or open_system_browser
        self._listener_factory = listener_factory or _default_listener
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="deskauth-auth"
        )
        self._attempt_lock = threading.Lock()
        self._cancelled = threading.Event()
        self._last_error: Optional[str] = None
        self._pending: Optional[queue.Queue[Optional[AuthorizationResult]]] = None
        self._listener: Optional[RedirectListener] = None

    @property
    def last_error(self) -> Optional[str]:
        """Why the most recent attempt failed, or ``None`` after a success."""
        return self._last_error

    @property
    def in_progress(self) -> bool:
        return self._attempt_lock.locked()

    def authenticate(self, on_token: TokenCallback) -> Future[bool]:
        """Start a sign-in and return a future resolving to its success.

        The future never raises: every failure resolves it to ``False`` and
        sets :attr:`last_error`. A call made while another attempt is in
        flight resolves to ``False`` immediately.
        """
        if not self._attempt_lock.acquire(blocking=False):
            logger.warning("Authentication already in progress; ignoring second request")
            self._last_error = "Another sign-in is already in progress"
            return _resolved(False)

        self._last_error = None
        self._cancelled.clear()
        try:
            return self._executor.submit(self._run, on_token)
        except RuntimeError as exc:
            # Executor has been shut down.
            self._attempt_lock.release()
            self._last_error = f"Cannot start sign-in: {exc}"
            logger.warning("Cannot start authentication: %s", exc)
            return _resolved(False)

    def cancel(self) -> None:
        """Abort the attempt in flight, if any. Its future resolves to False.

        Safe to call at any point after :meth:`authenticate`, including before
        the worker has bound the redirect port.
        """
        self._cancelled.set()
        listener, pending = self._listener, self._pending
        if listener is not None:
            listener.stop()
        if pending is not None:
            try:
                pending.put_nowait(None)
            except queue.Full:
                pass  # a result is already waiting and will be consumed

    def close(self) -> None:
        """Cancel any attempt in flight and shut down an owned executor."""
        self.cancel()
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    def _run(self, on_token: TokenCallback) -> bool:
        try:
            self._attempt(on_token)
        except DeskauthError as exc:
            self._last_error = str(exc)
            logger.warning("Authentication failed: %s", exc)
            return False
        except Exception as exc:
            self._last_error = f"Unexpected error: {exc}"
            logger.exception("Authentication failed unexpectedly")
            return False
        finally:
            self._attempt_lock.release()

        logger.info("Authentication succeeded")
        return True

    def _attempt(self, on_token: TokenCallback) -> None:
        pkce = generate_pkce()
        results: queue.Queue[Optional[AuthorizationResult]] = queue.Queue(maxsize=1)
        listener = self._listener_factory(self._config)
        self._pending, self._listener = results, listener

        try:
            # Registered first, so a cancel either sees the queue or is seen here.
            if self._cancelled.is_set():
                raise AuthError(_CANCELLED)
            listener.start(pkce.state, results.put_nowait)
            auth_url = build_authorization_url(pkce.code_challenge, pkce.state, self._config)
            self._open_browser(auth_url)
            try:
                result = results.get(timeout=self._config.auth_timeout)
            except queue.Empty:
                raise AuthTimeoutError(
                    f"No response from the browser within {self._config.auth_timeout:g} seconds"
                ) from None
        finally:
            listener.stop()
            self._pending, self._listener = None, None

        if result is None:
            raise AuthError(_CANCELLED)
        if not result.succeeded or result.code is None:
            raise CallbackValidationError(result)

        on_token(self._exchanger.exchange(result.code, pkce.code_verifier))


def _resolved(value: bool) -> Future[bool]:
    future: Future[bool] = Future()
    future.set_result(value)
    return future
