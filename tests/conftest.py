"""Test configuration and fixtures"""

import json
import socket
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import Mock

import pytest
import requests

from spot_control.auth.tokens import TokenManager, TokenSet
from spot_control.core.config import SpotifyConfig
from spot_control.core.store import MemoryCredentialStore


def make_response(status_code=200, body=None, headers=None, reason=None):
    """Build a real requests.Response with the given status and JSON body"""
    response = requests.Response()
    response.status_code = status_code
    response.reason = reason or ""
    response.headers.update(headers or {})
    response.url = "https://example.invalid/"
    if body is None:
        response._content = b""
    elif isinstance(body, (bytes, str)):
        response._content = body.encode() if isinstance(body, str) else body
    else:
        response._content = json.dumps(body).encode()
        response.headers.setdefault("Content-Type", "application/json")
    return response


def find_free_port():
    """Ask the OS for a port nothing is listening on"""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def store():
    """Empty in-memory credential store"""
    return MemoryCredentialStore()


@pytest.fixture
def free_port():
    return find_free_port()


@pytest.fixture
def spotify_config(free_port):
    """Spotify settings with test credentials and a free callback port"""
    return SpotifyConfig(
        client_id="test_client_id",
        client_secret="test_client_secret",
        redirect_uri=f"http://127.0.0.1:{free_port}/callback",
    )


@pytest.fixture
def mock_session():
    """requests.Session stand-in; tests set post/request return values"""
    return Mock(spec=requests.Session)


@pytest.fixture
def token_manager(store, spotify_config, mock_session):
    return TokenManager(store, spotify_config, session=mock_session)


@pytest.fixture
def valid_token_set():
    """Token set expiring in one hour"""
    return TokenSet(
        access_token="valid_access_token",
        refresh_token="valid_refresh_token",
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
    )


@pytest.fixture
def expired_token_set():
    """Token set that expired a minute ago"""
    return TokenSet(
        access_token="expired_access_token",
        refresh_token="old_refresh_token",
        expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
    )


@pytest.fixture
def sample_devices():
    """Device list as returned by GET me/player/devices"""
    return {
        "devices": [
            {
                "id": "device_1",
                "is_active": True,
                "name": "Desktop",
                "type": "Computer",
                "volume_percent": 60,
            },
            {
                "id": "device_2",
                "is_active": False,
                "name": "Phone",
                "type": "Smartphone",
                "volume_percent": None,
            },
        ]
    }


def http_get(url, **kwargs):
    """GET against the loopback callback server, ignoring proxy settings"""
    with requests.Session() as session:
        session.trust_env = False
        return session.get(url, timeout=5, **kwargs)
