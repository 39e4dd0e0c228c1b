"""
One-shot local HTTP server for the OAuth2 authorization callback.

Spotify redirects the browser to http://127.0.0.1:<port>/callback after the
user grants (or refuses) access. CallbackServer listens on that port in a
background thread, turns the first callback into a CallbackResult, hands it
to the waiting thread through a queue, and is then stopped by the owner.

The callback URL format is:
- Success: /callback?code=AUTHORIZATION_CODE&state=STATE
- Error:   /callback?error=ERROR_CODE&state=STATE

Only the first callback counts. Later callbacks still get an HTML page but
their result is dropped.
"""

import html
import queue
import socket
import threading
import urllib.parse
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Optional

from spot_control.core.exceptions import PortUnavailable
from spot_control.core.logger import get_logger

logger = get_logger(__name__)


CALLBACK_HOST = "127.0.0.1"
DEFAULT_CALLBACK_PATH = "/callback"

_PAGE_TEMPLATE = """<html>
<head><title>{title}</title></head>
<body style="font-family: Arial, sans-serif; text-align: center; margin-top: 50px;">
    <h1 style="color: {color};">{title}</h1>
    {body}
</body>
</html>
"""


@dataclass(frozen=True)
class CallbackResult:
    """
    Outcome of one authorization callback.

    Exactly one of code/error is set.

    Attributes:
        code: Authorization code on success.
        state: CSRF state echoed back by the provider, if any.
        error: Error reported by the provider, or 'no_code'.
    """
    code: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.code is not None


def is_port_available(port: int, host: str = CALLBACK_HOST) -> bool:
    """
    Check whether the callback port can be bound right now.

    Uses SO_REUSEADDR like the server itself, so a port whose only leftovers
    are TIME_WAIT connections counts as free while a live listener does not.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            s.bind((host, port))
        except OSError:
            return False
    return True


class _CallbackHTTPServer(HTTPServer):
    """HTTPServer carrying the callback path and the result handoff queue."""

    allow_reuse_address = True

    def __init__(self, address: tuple[str, int], callback_path: str):
        self.callback_path = callback_path
        self.results: "queue.Queue[CallbackResult]" = queue.Queue(maxsize=1)
        super().__init__(address, CallbackHandler)

    def deliver(self, result: CallbackResult) -> bool:
        """Hand over a result. Returns False if an earlier callback already won."""
        try:
            self.results.put_nowait(result)
        except queue.Full:
            logger.debug("Ignoring duplicate authorization callback")
            return False
        return True


class CallbackHandler(BaseHTTPRequestHandler):
    """
    HTTP request handler for OAuth2 callback processing.

    Extracts the authorization code (or error) from the callback query,
    delivers it to the parent server's queue and answers with a small HTML
    page telling the user what happened.
    """

    server: _CallbackHTTPServer

    def do_GET(self):
        parsed_url = urllib.parse.urlparse(self.path)

        if parsed_url.path != self.server.callback_path:
            self._send_page(404, "Not Found", "#535353",
                            "<p>Waiting for the Spotify authorization callback.</p>")
            return

        query_params = urllib.parse.parse_qs(parsed_url.query)
        code = query_params.get("code", [None])[0]
        state = query_params.get("state", [None])[0]
        error = query_params.get("error", [None])[0]

        if code:
            self.server.deliver(CallbackResult(code=code, state=state))
            self._send_page(
                200, "Authorization Successful!", "#1DB954",
                "<p>You can now close this window and return to the terminal.</p>"
                "<script>setTimeout(() => { window.close(); }, 3000);</script>"
            )
        elif error:
            self.server.deliver(CallbackResult(error=error, state=state))
            self._send_page(
                400, "Authorization Failed", "#E22134",
                f"<p>Error: {html.escape(error)}</p>"
                "<p>You can close this window and try again in your terminal.</p>"
            )
        else:
            self.server.deliver(CallbackResult(error="no_code", state=state))
            self._send_page(
                400, "Authorization Failed", "#E22134",
                "<p>No authorization code received.</p>"
                "<p>You can close this window and try again in your terminal.</p>"
            )

    def _send_page(self, status: int, title: str, color: str, body: str) -> None:
        page = _PAGE_TEMPLATE.format(title=title, color=color, body=body).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(page)))
        self.end_headers()
        self.wfile.write(page)

    def log_message(self, format, *args):
        logger.debug("Callback server: " + format, *args)


class CallbackServer:
    """
    Background listener that accepts one authorization callback.

    Attributes:
        port: TCP port on 127.0.0.1 to bind.
        callback_path: Path the provider redirects to (default '/callback').

    Example:
        server = CallbackServer(9876)
        server.start()
        try:
            result = server.wait_for_result(timeout=120)
        finally:
            server.stop()
    """

    def __init__(self, port: int, callback_path: str = DEFAULT_CALLBACK_PATH):
        self.port = port
        self.callback_path = callback_path
        self._server: Optional[_CallbackHTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._server is not None

    @property
    def callback_url(self) -> str:
        return f"http://{CALLBACK_HOST}:{self.port}{self.callback_path}"

    def start(self) -> None:
        """
        Bind 127.0.0.1:<port> and start serving in a daemon thread.

        Raises:
            PortUnavailable: If the bind fails.
            RuntimeError: If the server is already running.
        """
        with self._lock:
            if self._server is not None:
                raise RuntimeError("Callback server is already running")

            try:
                server = _CallbackHTTPServer((CALLBACK_HOST, self.port), self.callback_path)
            except OSError as e:
                raise PortUnavailable(self.port, details={"original_error": str(e)}) from e

            self._server = server
            self._thread = threading.Thread(
                target=server.serve_forever,
                kwargs={"poll_interval": 0.1},
                name=f"oauth-callback-{self.port}",
                daemon=True  # Never keep the process alive on abnormal exit
            )
            self._thread.start()
            logger.debug(f"Callback server listening on {self.callback_url}")

    def wait_for_result(self, timeout: float) -> Optional[CallbackResult]:
        """
        Block until the first callback arrives.

        Args:
            timeout: Seconds to wait.

        Returns:
            The CallbackResult, or None on timeout.

        Raises:
            RuntimeError: If the server has not been started.
        """
        server = self._server
        if server is None:
            raise RuntimeError("Callback server is not running")

        try:
            return server.results.get(timeout=timeout)
        except queue.Empty:
            return None

    def stop(self) -> None:
        """
        Stop serving and release the port. Safe to call multiple times.
        """
        with self._lock:
            server, thread = self._server, self._thread
            self._server = None
            self._thread = None

        if server is None:
            return

        server.shutdown()
        server.server_close()
        if thread is not None:
            thread.join(timeout=5)
        logger.debug(f"Callback server on port {self.port} stopped")

    def __enter__(self) -> "CallbackServer":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
