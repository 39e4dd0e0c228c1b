"""
OAuth2 token lifecycle for the Spotify Web API.

TokenManager is the single owner of token state. It reads and writes the
TokenSet through an injected CredentialStore, refreshes expired access
tokens transparently, and exchanges authorization codes obtained by
AuthorizationFlow.

Token lifecycle:
1. exchange_code() turns an authorization code into a TokenSet and persists it
2. get_access_token() returns the stored token while it is unexpired
3. Once expired, one refresh_token grant is attempted
4. On refresh failure the TokenSet is cleared and None is returned
5. revoke() clears the TokenSet (logout)

Refresh failures are never raised past TokenManager. They degrade to
"not authenticated" and leave the decision to re-authenticate to the caller.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import requests

from spot_control.core.config import SpotifyConfig
from spot_control.core.exceptions import MissingCredentials, StoreError, TokenExchangeError
from spot_control.core.logger import get_logger
from spot_control.core.store import (
    ACCESS_TOKEN_KEY,
    CLIENT_ID_KEY,
    CLIENT_SECRET_KEY,
    CREDENTIAL_KEYS,
    EXPIRES_AT_KEY,
    LONG_TTL,
    REFRESH_TOKEN_KEY,
    TOKEN_KEYS,
    CredentialStore,
)

logger = get_logger(__name__)


TOKEN_URL = "https://accounts.spotify.com/api/token"
DEFAULT_EXPIRES_IN = 3600
DEFAULT_TIMEOUT = 30


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TokenSet:
    """
    Access/refresh token pair with its absolute expiry.

    Replaced wholesale on every exchange or refresh, never mutated.

    Attributes:
        access_token: Bearer token sent with API requests.
        refresh_token: Long-lived token used to mint new access tokens.
                       May be None if the provider never issued one.
        expires_at: Timezone-aware UTC instant the access token stops working.
    """
    access_token: str
    refresh_token: Optional[str]
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or _utcnow()) >= self.expires_at

    @classmethod
    def from_token_response(
        cls,
        payload: dict[str, Any],
        previous_refresh_token: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> "TokenSet":
        """
        Build a TokenSet from the token endpoint's JSON response.

        Spotify returns access_token, token_type, expires_in (seconds),
        scope and, not always, refresh_token. When refresh_token is
        missing the previous one is carried over.

        Raises:
            KeyError: If access_token is missing.
            ValueError: If expires_in is not a number.
        """
        access_token = payload["access_token"]
        if not access_token:
            raise ValueError("Token response contains an empty access_token")

        expires_in = int(payload.get("expires_in") or DEFAULT_EXPIRES_IN)
        return cls(
            access_token=access_token,
            refresh_token=payload.get("refresh_token") or previous_refresh_token,
            expires_at=(now or _utcnow()) + timedelta(seconds=expires_in)
        )


class TokenManager:
    """
    Produces a currently valid access token or fails cleanly.

    Attributes:
        store: Credential store holding client credentials and tokens.
        config: Spotify application settings (fallback credentials, redirect URI).
        session: requests session used for token endpoint calls.
        timeout: Seconds before a token endpoint request is abandoned.

    Example:
        manager = TokenManager(SqliteCredentialStore(path), config.spotify)
        token = manager.get_access_token()
        if token is None:
            AuthorizationFlow(manager, config.spotify).run(timeout=120)
    """

    def __init__(
        self,
        store: CredentialStore,
        config: SpotifyConfig,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT
    ):
        self.store = store
        self.config = config
        self.session = session or requests.Session()
        self.timeout = timeout

    # =========================================================================
    # Client credentials
    # =========================================================================

    @property
    def client_id(self) -> str:
        """Stored client id, falling back to configuration."""
        return self.store.get(CLIENT_ID_KEY) or self.config.client_id

    @property
    def client_secret(self) -> str:
        """Stored client secret, falling back to configuration."""
        return self.store.get(CLIENT_SECRET_KEY) or self.config.client_secret

    def has_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def store_credentials(self, client_id: str, client_secret: str) -> None:
        """
        Persist client credentials in the store.

        Raises:
            ValueError: If either value is empty.
        """
        client_id = client_id.strip()
        client_secret = client_secret.strip()
        if not client_id or not client_secret:
            raise ValueError("client_id and client_secret must be non-empty")

        self.store.put(CLIENT_ID_KEY, client_id, ttl=LONG_TTL)
        self.store.put(CLIENT_SECRET_KEY, client_secret, ttl=LONG_TTL)
        logger.info("Stored Spotify client credentials")

    def clear_credentials(self) -> None:
        self.store.forget_many(CREDENTIAL_KEYS)

    def reset(self) -> None:
        """Remove credentials and tokens (full logout + unconfigure)."""
        self.revoke()
        self.clear_credentials()

    # =========================================================================
    # TokenSet persistence
    # =========================================================================

    def load_token_set(self) -> Optional[TokenSet]:
        """
        Read the TokenSet from the store.

        Returns:
            TokenSet, or None if absent or only partially written.
        """
        access_token = self.store.get(ACCESS_TOKEN_KEY)
        expires_raw = self.store.get(EXPIRES_AT_KEY)
        if not access_token or not expires_raw:
            return None

        try:
            expires_at = datetime.fromisoformat(expires_raw)
        except (TypeError, ValueError):
            logger.warning("Stored token expiry is unreadable, ignoring stored token")
            return None

        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)

        return TokenSet(
            access_token=access_token,
            refresh_token=self.store.get(REFRESH_TOKEN_KEY),
            expires_at=expires_at
        )

    def save_token_set(self, token_set: TokenSet) -> None:
        # Old access token goes first and the new one last: a stored access
        # token always belongs to the stored expiry
        self.store.forget(ACCESS_TOKEN_KEY)
        self.store.put(EXPIRES_AT_KEY, token_set.expires_at.isoformat(), ttl=LONG_TTL)
        if token_set.refresh_token:
            self.store.put(REFRESH_TOKEN_KEY, token_set.refresh_token, ttl=LONG_TTL)
        self.store.put(ACCESS_TOKEN_KEY, token_set.access_token, ttl=LONG_TTL)

    # =========================================================================
    # Token endpoint
    # =========================================================================

    def _request_token(self, data: dict[str, str], previous_refresh_token: Optional[str] = None) -> TokenSet:
        """
        POST a grant to the token endpoint and parse the response.

        Raises:
            TokenExchangeError: On transport errors, non-2xx responses or
                                malformed response bodies.
        """
        grant_type = data["grant_type"]
        payload = {
            **data,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }

        try:
            response = self.session.post(
                TOKEN_URL,
                data=payload,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout
            )
            response.raise_for_status()
            return TokenSet.from_token_response(response.json(), previous_refresh_token)
        except requests.RequestException as e:
            raise TokenExchangeError(
                f"Token request ({grant_type}) failed: {e}",
                details={"grant_type": grant_type, "original_error": str(e)}
            ) from e
        except (KeyError, TypeError, ValueError) as e:
            raise TokenExchangeError(
                f"Token endpoint returned an invalid response ({grant_type}): {e}",
                details={"grant_type": grant_type, "original_error": str(e)}
            ) from e

    def exchange_code(self, code: str, redirect_uri: Optional[str] = None) -> TokenSet:
        """
        Exchange an authorization code for a TokenSet and persist it.

        Args:
            code: Authorization code from the callback.
            redirect_uri: Must exactly match the one used in the authorization
                          request. Defaults to the configured redirect URI.

        Returns:
            The new TokenSet.

        Raises:
            MissingCredentials: If no client id/secret is configured.
            TokenExchangeError: If the token endpoint rejects the code.
        """
        if not self.has_credentials():
            raise MissingCredentials()

        token_set = self._request_token({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri or self.config.redirect_uri,
        })
        self.save_token_set(token_set)
        logger.info("Authorization code exchanged for access token")
        return token_set

    def refresh(self, refresh_token: str) -> TokenSet:
        """
        Mint a new access token from a refresh token and persist it.

        The old refresh token is kept if the response does not carry a new one.

        Raises:
            TokenExchangeError: If the refresh grant fails.
        """
        token_set = self._request_token(
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            previous_refresh_token=refresh_token
        )
        self.save_token_set(token_set)
        logger.debug("Access token refreshed, valid until %s", token_set.expires_at.isoformat())
        return token_set

    # =========================================================================
    # Public token API
    # =========================================================================

    def get_access_token(self) -> Optional[str]:
        """
        Get a valid access token, refreshing it once if it has expired.

        Returns:
            Access token string, or None if not authenticated.

        Flow:
        1. No stored TokenSet -> None
        2. Unexpired -> stored access token, no network call
        3. Expired with refresh token -> one refresh grant; on failure
           clear the TokenSet and return None
        4. Expired without refresh token -> clear and return None
        """
        token_set = self.load_token_set()
        if token_set is None:
            return None

        if not token_set.is_expired():
            return token_set.access_token

        if not token_set.refresh_token:
            logger.info("Access token expired and no refresh token is stored")
            self.revoke()
            return None

        logger.debug("Access token expired, refreshing")
        try:
            refreshed = self.refresh(token_set.refresh_token)
        except TokenExchangeError as e:
            logger.warning(f"Token refresh failed, re-authorization required: {e.message}")
            self._discard_tokens()
            return None
        except StoreError as e:
            logger.warning(f"Could not save refreshed token, re-authorization required: {e.message}")
            self._discard_tokens()
            return None

        return refreshed.access_token

    def is_authenticated(self) -> bool:
        return self.get_access_token() is not None

    def ensure_authenticated(self) -> bool:
        """
        Fast, non-interactive authentication check.

        Returns:
            True if a valid (possibly just refreshed) token is available.
            False means the caller must drive an AuthorizationFlow.
        """
        return self.is_authenticated()

    def revoke(self) -> None:
        """
        Clear the stored TokenSet. Idempotent.

        Note:
            Only local state is removed. The tokens remain valid on Spotify's
            side until they expire.
        """
        self.store.forget_many(TOKEN_KEYS)

    def _discard_tokens(self) -> None:
        """Best-effort revoke for when the store itself is failing."""
        try:
            self.revoke()
        except StoreError as e:
            logger.debug(f"Could not clear stored tokens: {e.message}")
