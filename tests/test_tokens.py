# tests/test_tokens.py
"""Tests for TokenSet and TokenManager"""

from datetime import datetime, timedelta, timezone

import pytest
import requests

from conftest import make_response
from spot_control.auth.tokens import TOKEN_URL, TokenManager, TokenSet
from spot_control.core.config import SpotifyConfig
from spot_control.core.exceptions import MissingCredentials, StoreError, TokenExchangeError
from spot_control.core.store import (
    ACCESS_TOKEN_KEY,
    CLIENT_ID_KEY,
    CLIENT_SECRET_KEY,
    EXPIRES_AT_KEY,
    REFRESH_TOKEN_KEY,
    MemoryCredentialStore,
)


class FailingPutStore(MemoryCredentialStore):
    """Memory store whose writes to one key fail once armed"""

    def __init__(self, failing_key):
        super().__init__()
        self.failing_key = failing_key
        self.armed = False

    def put(self, key, value, ttl=None):
        if self.armed and key == self.failing_key:
            raise StoreError(f"disk full while writing {key}")
        super().put(key, value, ttl)


class TestTokenSet:
    """Test TokenSet parsing and expiry"""

    def test_is_expired_at_exact_expiry(self):
        """Expiry instant itself counts as expired"""
        now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        token_set = TokenSet("a", "r", expires_at=now)
        assert token_set.is_expired(now) is True
        assert token_set.is_expired(now - timedelta(seconds=1)) is False

    def test_from_token_response(self):
        """Test absolute expiry computed from expires_in"""
        now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        token_set = TokenSet.from_token_response(
            {"access_token": "new", "refresh_token": "r2", "expires_in": 3600},
            now=now,
        )
        assert token_set.access_token == "new"
        assert token_set.refresh_token == "r2"
        assert token_set.expires_at == now + timedelta(hours=1)

    def test_from_token_response_keeps_previous_refresh_token(self):
        """Test refresh token carried over when the response omits it"""
        token_set = TokenSet.from_token_response(
            {"access_token": "new", "expires_in": 3600},
            previous_refresh_token="old_refresh",
        )
        assert token_set.refresh_token == "old_refresh"

    def test_from_token_response_missing_access_token(self):
        with pytest.raises(KeyError):
            TokenSet.from_token_response({"expires_in": 3600})


class TestTokenManagerAccessToken:
    """Test get_access_token refresh behavior"""

    def test_no_token_returns_none(self, token_manager, mock_session):
        assert token_manager.get_access_token() is None
        mock_session.post.assert_not_called()

    def test_valid_token_makes_no_network_call(self, token_manager, mock_session, valid_token_set):
        """Unexpired token is returned as stored"""
        token_manager.save_token_set(valid_token_set)

        assert token_manager.get_access_token() == "valid_access_token"
        mock_session.post.assert_not_called()

    def test_expired_token_refreshes_exactly_once(self, token_manager, mock_session, expired_token_set):
        """Expired token triggers one refresh grant and returns the new token"""
        token_manager.save_token_set(expired_token_set)
        mock_session.post.return_value = make_response(
            200, {"access_token": "new_access", "expires_in": 3600}
        )

        assert token_manager.get_access_token() == "new_access"

        mock_session.post.assert_called_once()
        args, kwargs = mock_session.post.call_args
        assert args[0] == TOKEN_URL
        assert kwargs["data"]["grant_type"] == "refresh_token"
        assert kwargs["data"]["refresh_token"] == "old_refresh_token"
        assert kwargs["data"]["client_id"] == "test_client_id"

    def test_refresh_persists_new_token_and_keeps_refresh_token(
        self, token_manager, mock_session, expired_token_set
    ):
        token_manager.save_token_set(expired_token_set)
        mock_session.post.return_value = make_response(
            200, {"access_token": "new_access", "expires_in": 3600}
        )

        token_manager.get_access_token()
        stored = token_manager.load_token_set()

        assert stored.access_token == "new_access"
        assert stored.refresh_token == "old_refresh_token"
        assert not stored.is_expired()

        # Second call uses the refreshed token without another request
        assert token_manager.get_access_token() == "new_access"
        assert mock_session.post.call_count == 1

    def test_refresh_failure_clears_tokens(self, token_manager, mock_session, store, expired_token_set):
        """Rejected refresh leaves the manager unauthenticated"""
        token_manager.save_token_set(expired_token_set)
        mock_session.post.return_value = make_response(400, {"error": "invalid_grant"})

        assert token_manager.get_access_token() is None
        assert token_manager.is_authenticated() is False
        assert store.get(ACCESS_TOKEN_KEY) is None
        assert store.get(REFRESH_TOKEN_KEY) is None
        assert store.get(EXPIRES_AT_KEY) is None

    def test_refresh_transport_error_clears_tokens(self, token_manager, mock_session, expired_token_set):
        token_manager.save_token_set(expired_token_set)
        mock_session.post.side_effect = requests.ConnectionError("offline")

        assert token_manager.get_access_token() is None
        assert token_manager.load_token_set() is None

    def test_expired_without_refresh_token(self, token_manager, mock_session):
        """Expired token with no refresh token is cleared without a request"""
        token_manager.save_token_set(TokenSet(
            "old", None, datetime.now(timezone.utc) - timedelta(seconds=5)
        ))

        assert token_manager.get_access_token() is None
        mock_session.post.assert_not_called()
        assert token_manager.load_token_set() is None

    def test_failed_access_token_write_during_refresh(self, spotify_config, mock_session, expired_token_set):
        """Old expired token never comes back paired with the new expiry"""
        store = FailingPutStore(ACCESS_TOKEN_KEY)
        manager = TokenManager(store, spotify_config, session=mock_session)
        manager.save_token_set(expired_token_set)
        store.armed = True
        mock_session.post.return_value = make_response(
            200, {"access_token": "new_access", "expires_in": 3600}
        )

        assert manager.get_access_token() is None
        assert manager.get_access_token() is None
        assert store.get(ACCESS_TOKEN_KEY) is None
        assert manager.is_authenticated() is False

    def test_interrupted_save_leaves_no_access_token(self, spotify_config, mock_session,
                                                     expired_token_set, valid_token_set):
        store = FailingPutStore(ACCESS_TOKEN_KEY)
        manager = TokenManager(store, spotify_config, session=mock_session)
        manager.save_token_set(expired_token_set)
        store.armed = True

        with pytest.raises(StoreError):
            manager.save_token_set(valid_token_set)

        assert manager.load_token_set() is None

    def test_partial_write_is_not_authenticated(self, token_manager, store):
        """Expiry without an access token counts as no token"""
        store.put(EXPIRES_AT_KEY, datetime.now(timezone.utc).isoformat())
        assert token_manager.load_token_set() is None
        assert token_manager.is_authenticated() is False

    def test_unreadable_expiry_is_ignored(self, token_manager, store):
        store.put(ACCESS_TOKEN_KEY, "token")
        store.put(EXPIRES_AT_KEY, "not-a-date")
        assert token_manager.load_token_set() is None


class TestTokenManagerExchange:
    """Test authorization code exchange"""

    def test_exchange_code_posts_and_persists(self, token_manager, mock_session, spotify_config):
        mock_session.post.return_value = make_response(
            200,
            {"access_token": "abc", "refresh_token": "def", "expires_in": 3600, "token_type": "Bearer"},
        )

        token_set = token_manager.exchange_code("AUTH_CODE")

        data = mock_session.post.call_args.kwargs["data"]
        assert data["grant_type"] == "authorization_code"
        assert data["code"] == "AUTH_CODE"
        assert data["redirect_uri"] == spotify_config.redirect_uri
        assert data["client_secret"] == "test_client_secret"
        assert token_set.access_token == "abc"
        assert token_manager.load_token_set() == token_set

    def test_exchange_code_rejected(self, token_manager, mock_session):
        mock_session.post.return_value = make_response(400, {"error": "invalid_grant"})

        with pytest.raises(TokenExchangeError):
            token_manager.exchange_code("BAD_CODE")
        assert token_manager.load_token_set() is None

    def test_exchange_code_malformed_body(self, token_manager, mock_session):
        mock_session.post.return_value = make_response(200, {"token_type": "Bearer"})

        with pytest.raises(TokenExchangeError):
            token_manager.exchange_code("CODE")

    def test_exchange_code_without_credentials(self, store, mock_session):
        manager = TokenManager(store, SpotifyConfig(), session=mock_session)

        with pytest.raises(MissingCredentials):
            manager.exchange_code("CODE")
        mock_session.post.assert_not_called()


class TestTokenManagerCredentials:
    """Test client credential storage and logout"""

    def test_stored_credentials_win_over_config(self, token_manager, store):
        token_manager.store_credentials("stored_id", "stored_secret")
        assert token_manager.client_id == "stored_id"
        assert store.get(CLIENT_SECRET_KEY) == "stored_secret"

    def test_config_credentials_used_as_fallback(self, token_manager):
        assert token_manager.client_id == "test_client_id"
        assert token_manager.has_credentials() is True

    def test_store_credentials_rejects_empty(self, token_manager):
        with pytest.raises(ValueError):
            token_manager.store_credentials("  ", "secret")

    def test_revoke_is_idempotent(self, token_manager, valid_token_set):
        token_manager.save_token_set(valid_token_set)

        token_manager.revoke()
        token_manager.revoke()

        assert token_manager.is_authenticated() is False

    def test_reset_removes_credentials_and_tokens(self, store, mock_session, valid_token_set):
        manager = TokenManager(store, SpotifyConfig(), session=mock_session)
        manager.store_credentials("id", "secret")
        manager.save_token_set(valid_token_set)

        manager.reset()

        assert store.get(CLIENT_ID_KEY) is None
        assert manager.has_credentials() is False
        assert manager.load_token_set() is None
