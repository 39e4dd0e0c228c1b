"""
Browser-driven OAuth2 authorization code flow.

AuthorizationFlow obtains a fresh authorization code through a one-shot
local callback server and exchanges it for a TokenSet via TokenManager.

The flow follows Spotify's OAuth2 specification:
1. Check the callback port is free (fail fast otherwise)
2. Start the callback server on 127.0.0.1:<port>
3. Build the authorization URL with a CSRF state nonce
4. Open the URL in the user's browser (best effort, URL also handed to the caller)
5. Wait for the callback, bounded by a caller-supplied timeout
6. Check the echoed state and exchange the code for tokens

The callback server is stopped on every exit path.

State machine:
    IDLE -> URL_BUILT -> SERVER_LISTENING -> AWAITING_CALLBACK -> CODE_RECEIVED
         -> TOKEN_EXCHANGED -> DONE
    AWAITING_CALLBACK -> TIMED_OUT | CALLBACK_ERROR
"""

import secrets
import urllib.parse
import webbrowser
from enum import Enum
from typing import Callable, Iterable, Optional

from spot_control.auth.callback_server import CallbackServer, is_port_available
from spot_control.auth.tokens import TokenManager, TokenSet
from spot_control.core.config import SpotifyConfig
from spot_control.core.exceptions import (
    AuthorizationDenied,
    AuthTimeout,
    MissingCredentials,
    PortUnavailable,
)
from spot_control.core.logger import get_logger
from spot_control.core.store import AUTH_STATE_PREFIX, STATE_TTL

logger = get_logger(__name__)


AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
STATE_NONCE_BYTES = 16


class FlowState(Enum):
    IDLE = "idle"
    URL_BUILT = "url_built"
    SERVER_LISTENING = "server_listening"
    AWAITING_CALLBACK = "awaiting_callback"
    CODE_RECEIVED = "code_received"
    TOKEN_EXCHANGED = "token_exchanged"
    DONE = "done"
    TIMED_OUT = "timed_out"
    CALLBACK_ERROR = "callback_error"


def open_browser(url: str) -> bool:
    """
    Try to open url in the default browser.

    Returns:
        True if a browser reported success. Failures are logged, never raised.
    """
    try:
        opened = webbrowser.open(url)
    except (webbrowser.Error, OSError) as e:
        logger.debug(f"Could not open browser: {e}")
        return False

    if not opened:
        logger.debug("No browser available to open the authorization URL")
    return opened


class AuthorizationFlow:
    """
    Interactive authorization against Spotify's accounts service.

    Attributes:
        token_manager: Performs the code exchange and persists tokens.
        config: Spotify settings (redirect URI, port, default scopes).
        browser_opener: Callable used to open the authorization URL.
        on_url: Optional hook receiving the URL so the caller can display it.
        state: Current FlowState.
        authorization_url: Last URL built, or None.

    Example:
        flow = AuthorizationFlow(manager, config.spotify, on_url=click.echo)
        token_set = flow.run(timeout=120)
    """

    def __init__(
        self,
        token_manager: TokenManager,
        config: SpotifyConfig,
        browser_opener: Callable[[str], bool] = open_browser,
        on_url: Optional[Callable[[str], None]] = None
    ):
        self.token_manager = token_manager
        self.config = config
        self.browser_opener = browser_opener
        self.on_url = on_url
        self.state = FlowState.IDLE
        self.authorization_url: Optional[str] = None
        self._nonce: Optional[str] = None

    @property
    def store(self):
        return self.token_manager.store

    def build_authorization_url(self, scopes: Optional[Iterable[str]] = None) -> str:
        """
        Build the provider authorize URL with a fresh state nonce.

        The nonce is stored with a short TTL and consumed by the callback check.

        Args:
            scopes: Scopes to request. Defaults to the configured scopes.

        Returns:
            Complete authorization URL.
        """
        scope_list = list(scopes) if scopes is not None else list(self.config.scopes)
        nonce = secrets.token_hex(STATE_NONCE_BYTES)
        self.store.put(f"{AUTH_STATE_PREFIX}{nonce}", True, ttl=STATE_TTL)
        self._nonce = nonce

        params = {
            "client_id": self.token_manager.client_id,
            "response_type": "code",
            "redirect_uri": self.config.redirect_uri,
            "scope": " ".join(scope_list),
            "state": nonce,
        }
        self.authorization_url = f"{AUTHORIZE_URL}?{urllib.parse.urlencode(params)}"
        self.state = FlowState.URL_BUILT
        return self.authorization_url

    def consume_state(self, nonce: Optional[str]) -> bool:
        """
        Check a callback state against the nonce this flow issued. Single use.

        Nonces left in the store by earlier, abandoned runs are rejected.

        Returns:
            True if the nonce is the one in authorization_url and has not expired.
        """
        if not nonce or nonce != self._nonce:
            return False
        self._nonce = None
        key = f"{AUTH_STATE_PREFIX}{nonce}"
        valid = bool(self.store.get(key))
        self.store.forget(key)
        return valid

    def _open_browser(self, url: str) -> None:
        logger.info("Opening browser for Spotify authorization...")
        try:
            opened = self.browser_opener(url)
        except Exception as e:
            # Opening the browser is a side effect; the flow continues without it
            logger.debug(f"Browser opener failed: {e}")
            opened = False

        if not opened:
            logger.warning(f"Browser could not be opened automatically. Visit: {url}")

    def run(self, timeout: float, scopes: Optional[Iterable[str]] = None) -> TokenSet:
        """
        Run the full interactive authorization.

        Args:
            timeout: Seconds to wait for the browser callback.
            scopes: Scopes to request. Defaults to the configured scopes.

        Returns:
            The new, persisted TokenSet.

        Raises:
            MissingCredentials: If no client id/secret is configured.
            PortUnavailable: If the callback port is taken. No browser is opened.
            AuthTimeout: If no callback arrives within timeout.
            AuthorizationDenied: If the callback carries an error or a bad state.
            TokenExchangeError: If the code exchange fails.
        """
        if not self.token_manager.has_credentials():
            raise MissingCredentials()

        port = self.config.callback_port
        if not is_port_available(port):
            raise PortUnavailable(port)

        server = CallbackServer(port, self.config.callback_path)
        server.start()
        try:
            url = self.build_authorization_url(scopes)
            self.state = FlowState.SERVER_LISTENING

            if self.on_url is not None:
                self.on_url(url)
            self._open_browser(url)

            self.state = FlowState.AWAITING_CALLBACK
            logger.debug(f"Waiting up to {timeout:g}s for the authorization callback")
            result = server.wait_for_result(timeout)

            if result is None:
                self.state = FlowState.TIMED_OUT
                raise AuthTimeout(timeout)

            if not result.ok:
                self.state = FlowState.CALLBACK_ERROR
                raise AuthorizationDenied(result.error or "unknown_error")

            if not self.consume_state(result.state):
                self.state = FlowState.CALLBACK_ERROR
                raise AuthorizationDenied("state_mismatch")

            self.state = FlowState.CODE_RECEIVED
        finally:
            server.stop()

        token_set = self.token_manager.exchange_code(result.code, self.config.redirect_uri)
        self.state = FlowState.TOKEN_EXCHANGED
        logger.info("Authorization successful!")
        self.state = FlowState.DONE
        return token_set
