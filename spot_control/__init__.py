"""
spot-control: Control Spotify playback from the command line.

This package wraps the Spotify Web API behind a small CLI: browser-based
OAuth login through a one-shot local callback server, transparent token
refresh, and playback, device, playlist and search commands.

Architecture:
    core/       - Configuration, credential store, logging, exceptions
    auth/       - TokenManager, local callback server, AuthorizationFlow
    spotify/    - Authenticated Web API client with typed error mapping
    cli.py      - Command-line interface

Usage:
    Command Line:
        spot-control setup --client-id ID --client-secret SECRET
        spot-control login
        spot-control play spotify:playlist:37i9dQZF1DX0XUsuxWHRQd
        spot-control volume 60

    Python API:
        from spot_control.core import load_config, SqliteCredentialStore
        from spot_control.auth import TokenManager, AuthorizationFlow
        from spot_control.spotify import SpotifyApiClient

        config = load_config()
        store = SqliteCredentialStore(config.storage.path)
        tokens = TokenManager(store, config.spotify)

        if not tokens.ensure_authenticated():
            AuthorizationFlow(tokens, config.spotify).run(timeout=config.auth.timeout)

        api = SpotifyApiClient(tokens)
        api.play("spotify:track:4uLU6hMCjMI75M1A2tKUQC")

Dependencies:
    - requests: HTTP for the token endpoint and the Web API
    - click / rich-click: CLI framework and help colors
    - pyyaml: Configuration file parsing
    - python-dotenv: .env loading for credentials
    - colorama: Colored console logging
"""

__version__ = "0.1.0"
__author__ = "spot-control"
__license__ = "MIT"

# Convenience imports for common usage
from spot_control.auth import AuthorizationFlow, TokenManager, TokenSet
from spot_control.core import (
    Config,
    ConfigError,
    CredentialStore,
    MemoryCredentialStore,
    SpotControlError,
    SpotifyApiError,
    SqliteCredentialStore,
    get_logger,
    load_config,
    setup_logging,
)
from spot_control.spotify import SpotifyApiClient

__all__ = [
    # Version
    "__version__",
    # Core
    "Config",
    "load_config",
    "CredentialStore",
    "MemoryCredentialStore",
    "SqliteCredentialStore",
    "setup_logging",
    "get_logger",
    # Exceptions
    "SpotControlError",
    "ConfigError",
    "SpotifyApiError",
    # Auth
    "TokenManager",
    "TokenSet",
    "AuthorizationFlow",
    # API
    "SpotifyApiClient",
]
