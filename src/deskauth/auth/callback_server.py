"""Single-use loopback listener for the OAuth2 authorization redirect.

:class:`RedirectListener` binds ``127.0.0.1:<port>``, waits for the
authorization server to redirect the browser to ``/callback``, classifies the
query string into an :class:`~deskauth.models.AuthorizationResult`, answers
the browser with a small HTML page and then closes its socket. At most one
result is ever delivered; once torn down the port is released and further
requests are refused by the operating system.

The classification order is fixed: ``error`` first, then the ``state``
check (CSRF guard, applied even when a code is present), then ``code``.
"""

from __future__ import annotations

import hmac
import html
import logging
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable, Optional
from urllib.parse import parse_qs, urlparse

from deskauth.exceptions import SetupError
from deskauth.models import AuthorizationResult

logger = logging.getLogger(__name__)

ResultCallback = Callable[[AuthorizationResult], None]

_PAGE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>{title}</title>
<style>
body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
       display: flex; justify-content: center; align-items: center; height: 100vh;
       margin: 0; background: #1a1a2e; color: #fff; }}
h1 {{ color: {color}; }}
p {{ color: #a1a1aa; }}
</style>
</head>
<body>
<div style="text-align: center">
<h1>{title}</h1>
<p>{detail}</p>
</div>
</body>
</html>
"""


def _first(params: dict[str, list[str]], name: str) -> Optional[str]:
    values = params.get(name)
    return values[0] if values else None


def classify_callback(
    params: dict[str, list[str]], expected_state: str
) -> AuthorizationResult:
    """Turn redirect query parameters into an authorization result.

    Args:
        params: Parsed query string, as returned by
            :func:`urllib.parse.parse_qs` with ``keep_blank_values=True``.
        expected_state: The state sent with the authorization request.

    Returns:
        ``denied`` if ``error`` is present, else ``invalid_state`` if the
        state does not match, else ``missing_code`` if ``code`` is absent
        or empty, else ``success``.
    """
    error = _first(params, "error")
    if error is not None:
        reason = error or "unknown_error"
        description = _first(params, "error_description")
        if description:
            reason = f"{reason} - {description}"
        return AuthorizationResult.denied(reason)

    state = _first(params, "state")
    if state is None or not hmac.compare_digest(
        state.encode("utf-8"), expected_state.encode("utf-8")
    ):
        return AuthorizationResult.invalid_state()

    code = _first(params, "code")
    if not code:
        return AuthorizationResult.missing_code()
    return AuthorizationResult.success(code)


def render_page(result: Optional[AuthorizationResult]) -> str:
    """HTML shown in the browser; ``None`` means the attempt was already over.

    The page reflects the redirect only: the code exchange runs afterwards in
    the application, which reports the final outcome.
    """
    if result is None:
        title, color = "Authentication Failed", "#f87171"
        detail = "This sign-in attempt has expired. Please start again from the application."
    elif result.succeeded:
        title, color = "Authorization Received", "#4ade80"
        detail = "Return to the application to finish signing in. You can close this window."
    else:
        title, color = "Authentication Failed", "#f87171"
        detail = result.message
    return _PAGE.format(title=html.escape(title), color=color, detail=html.escape(detail))


class RedirectListener:
    """Accept exactly one authorization redirect on a fixed loopback port.

    Args:
        port: TCP port to bind. ``0`` picks a free port (see :attr:`port`).
        path: Request path of the redirect URI.
        host: Interface to bind; loopback only by default.
        poll_interval: How often the serving thread checks for shutdown.
        request_timeout: Socket timeout for a single browser connection, so
            an idle speculative connection cannot pin the listener open.

    Example::

        listener = RedirectListener(19284)
        listener.start(pkce.state, results.put_nowait)
        try:
            result = results.get(timeout=300)
        finally:
            listener.stop()
    """

    def __init__(
        self,
        port: int,
        path: str = "/callback",
        host: str = "127.0.0.1",
        poll_interval: float = 0.1,
        request_timeout: float = 5.0,
    ) -> None:
        self._host = host
        self._port = port
        self._path = path
        self._poll_interval = poll_interval
        self._request_timeout = request_timeout
        self._server: Optional[HTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self._on_result: Optional[ResultCallback] = None
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._closed = threading.Event()

    @property
    def port(self) -> int:
        """The bound port once started, else the configured one."""
        if self._server is not None:
            return self._server.server_address[1]
        return self._port

    @property
    def is_serving(self) -> bool:
        return self._server is not None and not self._closed.is_set()

    def start(self, expected_state: str, on_result: ResultCallback) -> None:
        """Bind the port and serve in a background thread.

        *on_result* is called at most once, from the serving thread, with
        the classified redirect. It must not block.

        Raises:
            SetupError: If the port cannot be bound, or the listener was
                already started (listeners are single-use).
        """
        if self._server is not None:
            raise SetupError("Redirect listener has already been used")

        listener = self
        request_timeout = self._request_timeout

        class CallbackHandler(BaseHTTPRequestHandler):
            timeout = request_timeout

            def do_GET(self) -> None:
                parsed = urlparse(self.path)
                if parsed.path != listener._path:
                    self.send_error(404)
                    return

                result = classify_callback(
                    parse_qs(parsed.query, keep_blank_values=True), expected_state
                )
                delivered = listener._deliver(result)
                body = render_page(result if delivered else None).encode("utf-8")

                self.send_response(200)
                self.send_header("Content-Type", "text/html; charset=utf-8")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def log_message(self, format: str, *args: Any) -> None:
                # The request line carries the authorization code; log the path only.
                path = urlparse(getattr(self, "path", "")).path
                logger.debug("Redirect listener request for %s", path or "<unparsed>")

        try:
            server = HTTPServer((self._host, self._port), CallbackHandler)
        except OSError as exc:
            raise SetupError(
                f"Cannot listen for the redirect on {self._host}:{self._port}: {exc}"
            ) from exc

        server.timeout = self._poll_interval
        self._server = server
        self._on_result = on_result
        self._thread = threading.Thread(
            target=self._serve, name="deskauth-redirect-listener", daemon=True
        )
        self._thread.start()
        logger.debug("Redirect listener bound to %s:%d", self._host, self.port)

    def stop(self) -> None:
        """Stop accepting requests and release the port. Idempotent."""
        with self._lock:
            self._done.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(self._request_timeout + 1.0)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is closed; return False on timeout."""
        return self._closed.wait(timeout)

    def _serve(self) -> None:
        assert self._server is not None
        try:
            while not self._done.is_set():
                self._server.handle_request()
        finally:
            self._server.server_close()
            self._closed.set()
            logger.debug("Redirect listener closed")

    def _deliver(self, result: AuthorizationResult) -> bool:
        """Hand *result* to the callback unless something already ended the listener."""
        with self._lock:
            if self._done.is_set():
                return False
            self._done.set()
            callback = self._on_result

        if callback is not None:
            try:
                callback(result)
            except Exception:
                logger.exception("Redirect result handler raised")
        return True
