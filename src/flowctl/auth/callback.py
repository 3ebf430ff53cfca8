"""Single-shot loopback listener for the OAuth redirect.

:class:`CallbackListener` binds an HTTP server to ``127.0.0.1`` on a port
chosen by the OS and serves it from a background thread until the first
hit on ``/callback``. That request's query parameters are captured and the
socket is closed. Any other path (``/favicon.ico``, health checks) receives a 404
and is otherwise ignored.

Each connection is handled on its own thread with a socket timeout, so a
browser's idle preconnect can neither delay the real redirect nor hold
:meth:`CallbackListener.wait` past its deadline.

The listener is a context manager so the port is released on every exit
path, including protocol errors and Ctrl-C::

    with CallbackListener() as listener:
        client_id = register_client(endpoint, listener.redirect_uri)
        webbrowser.open(authorize_url)
        params = listener.wait(timeout=300)
"""

from __future__ import annotations

import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Optional
from urllib.parse import parse_qs, urlparse

from flowctl.exceptions import CallbackTimeoutError
from flowctl.models import CallbackParams
from flowctl.output import debug

CALLBACK_PATH = "/callback"

# Seconds a connection may stay silent before its handler gives up
CONNECTION_TIMEOUT = 5

SUCCESS_PAGE = (
    "<html><body><h1>Authentication successful</h1>"
    "You can close this window and return to the terminal.</body></html>"
)


class _CallbackServer(ThreadingHTTPServer):
    """HTTP server that records the first callback it receives."""

    daemon_threads = True

    def __init__(self, server_address: tuple[str, int], callback_path: str) -> None:
        super().__init__(server_address, _CallbackHandler)
        self.callback_path = callback_path
        self.result: Optional[CallbackParams] = None
        self.resolved = threading.Event()
        self._claim_lock = threading.Lock()

    def claim(self) -> bool:
        """Return True for exactly one caller: the first callback request."""
        with self._claim_lock:
            if self.result is not None:
                return False
            self.result = CallbackParams()
            return True


class _CallbackHandler(BaseHTTPRequestHandler):
    server: _CallbackServer
    timeout = CONNECTION_TIMEOUT

    def do_GET(self) -> None:
        parsed = urlparse(self.path)
        if parsed.path != self.server.callback_path or not self.server.claim():
            self.send_response(404)
            self.send_header("Content-Length", "0")
            self.end_headers()
            return

        query = parse_qs(parsed.query, keep_blank_values=True)
        body = SUCCESS_PAGE.encode("utf-8")
        try:
            self.send_response(200)
            self.send_header("Content-Type", "text/html; charset=utf-8")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)
        finally:
            self.server.result = CallbackParams(
                params={key: values[0] for key, values in query.items()}
            )
            self.server.resolved.set()

    def log_request(self, code: Any = "-", size: Any = "-") -> None:
        # Path only: the query carries the authorization code and state
        status = int(code) if isinstance(code, int) else code
        debug(f"callback listener: {self.command} {urlparse(self.path).path} -> {status}")

    def log_message(self, format: str, *args: Any) -> None:
        debug(f"callback listener: {format % args}")


class CallbackListener:
    """Loopback HTTP listener that resolves exactly once.

    Args:
        host: Interface to bind. Always loopback in practice.
        path: The only route that completes the rendezvous.
    """

    def __init__(self, host: str = "127.0.0.1", path: str = CALLBACK_PATH) -> None:
        self._host = host
        self._path = path
        self._server: Optional[_CallbackServer] = None
        self._thread: Optional[threading.Thread] = None
        self._port: Optional[int] = None
        self._result: Optional[CallbackParams] = None

    def __enter__(self) -> CallbackListener:
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def start(self) -> None:
        """Bind to an OS-assigned ephemeral port and start serving.

        Raises:
            RuntimeError: If the listener was already started.
        """
        if self._port is not None:
            raise RuntimeError("CallbackListener is single-use")
        self._server = _CallbackServer((self._host, 0), self._path)
        self._port = self._server.server_address[1]
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            kwargs={"poll_interval": 0.1},
            name="flowctl-callback",
            daemon=True,
        )
        self._thread.start()
        debug(f"Callback listener bound to {self._host}:{self._port}")

    @property
    def port(self) -> int:
        """The bound port. Only valid after :meth:`start`."""
        if self._port is None:
            raise RuntimeError("CallbackListener has not been started")
        return self._port

    @property
    def redirect_uri(self) -> str:
        """``http://<host>:<port><path>``, the URI to register with the server."""
        return f"http://{self._host}:{self.port}{self._path}"

    @property
    def is_open(self) -> bool:
        """Whether the socket is still bound."""
        return self._server is not None

    def wait(self, timeout: Optional[float] = None) -> CallbackParams:
        """Block until the browser hits the callback route.

        The listener is closed before returning, whatever the callback
        carries: interpreting ``error`` or ``state`` is the caller's job.

        Args:
            timeout: Seconds to wait. ``None`` waits until a callback
                arrives or the process is interrupted.

        Returns:
            The captured query parameters.

        Raises:
            CallbackTimeoutError: If *timeout* elapses first.
            RuntimeError: If the listener was never started.
        """
        if self._result is not None:
            return self._result
        if self._server is None:
            raise RuntimeError("CallbackListener has not been started")

        server = self._server
        try:
            if timeout is None:
                # Short slices keep the main thread responsive to Ctrl-C
                while not server.resolved.wait(0.5):
                    pass
            elif not server.resolved.wait(timeout):
                raise CallbackTimeoutError(
                    f"Timed out after {timeout:g}s waiting for the browser redirect"
                )
            self._result = server.result
        finally:
            self.close()
        return self._result

    def close(self) -> None:
        """Stop serving and release the port. Safe to call more than once."""
        if self._server is None:
            return
        server, self._server = self._server, None
        server.shutdown()
        server.server_close()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        debug("Callback listener closed")
