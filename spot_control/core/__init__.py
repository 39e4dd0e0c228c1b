"""
Core module for spot-control.

This module provides the foundational components used throughout the application:
    - exceptions: Custom exception classes for error handling
    - config: Configuration loading and validation
    - store: Credential stores (SQLite and in-memory) with per-key expiry
    - logger: Logging system with console and file outputs

Usage:
    from spot_control.core import (
        Config, load_config,
        SqliteCredentialStore,
        setup_logging, get_logger,
        SpotControlError, ConfigError
    )
"""

from spot_control.core.config import (
    AuthConfig,
    Config,
    PlaybackConfig,
    SpotifyConfig,
    StorageConfig,
    load_config,
)
from spot_control.core.exceptions import (
    ActionNotPermitted,
    AuthError,
    AuthorizationDenied,
    AuthTimeout,
    ConfigError,
    MissingCredentials,
    NoActiveDevice,
    NoSearchResults,
    NotAuthenticated,
    PortUnavailable,
    PremiumRequired,
    RateLimited,
    SpotControlError,
    SpotifyApiError,
    StoreError,
    TokenExchangeError,
    TokenExpired,
)
from spot_control.core.logger import (
    get_logger,
    setup_logging,
    shutdown_logging,
)
from spot_control.core.store import (
    LONG_TTL,
    STATE_TTL,
    CredentialStore,
    MemoryCredentialStore,
    SqliteCredentialStore,
)

__all__ = [
    # Config
    "Config",
    "SpotifyConfig",
    "StorageConfig",
    "AuthConfig",
    "PlaybackConfig",
    "load_config",
    # Store
    "CredentialStore",
    "MemoryCredentialStore",
    "SqliteCredentialStore",
    "LONG_TTL",
    "STATE_TTL",
    # Exceptions
    "SpotControlError",
    "ConfigError",
    "StoreError",
    "AuthError",
    "PortUnavailable",
    "AuthTimeout",
    "AuthorizationDenied",
    "NotAuthenticated",
    "MissingCredentials",
    "TokenExchangeError",
    "SpotifyApiError",
    "TokenExpired",
    "RateLimited",
    "NoActiveDevice",
    "PremiumRequired",
    "ActionNotPermitted",
    "NoSearchResults",
    # Logger
    "setup_logging",
    "get_logger",
    "shutdown_logging",
]
