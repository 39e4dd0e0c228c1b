"""
Configuration management for spot-control.

This module handles loading, validating, and providing access to the
application configuration stored in config.yaml and the environment.

Configuration Sources (highest precedence first):
    1. Environment variables (also read from a .env file if present)
       SPOTIFY_CLIENT_ID, SPOTIFY_CLIENT_SECRET, SPOTIFY_REDIRECT_URI,
       SPOT_CONTROL_STORE
    2. config.yaml (explicit path, ./config.yaml, or ~/.spot-control/config.yaml)
    3. Built-in defaults

Client credentials may also live in the credential store (see
spot_control.auth.tokens.TokenManager), so a config file without
them is valid.

Example config.yaml:
    spotify:
      client_id: "your_client_id_here"
      client_secret: "your_client_secret_here"
      redirect_uri: "http://127.0.0.1:9876/callback"
      scopes:
        - user-read-playback-state
        - user-modify-playback-state

    storage:
      path: "~/.spot-control/credentials.db"

    auth:
      timeout: 120

    playback:
      default_volume: 70

    presets:
      coding: "spotify:playlist:37i9dQZF1DX0XUsuxWHRQd"
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any
from urllib.parse import urlparse, urlunparse

import yaml
from dotenv import load_dotenv

from spot_control.core.exceptions import ConfigError


CONFIG_FILENAME = "config.yaml"
DEFAULT_CONFIG_DIR = Path("~/.spot-control")
DEFAULT_STORE_PATH = "~/.spot-control/credentials.db"

DEFAULT_CALLBACK_PORT = 9876
DEFAULT_REDIRECT_URI = f"http://127.0.0.1:{DEFAULT_CALLBACK_PORT}/callback"
HTTP_DEFAULT_PORT = 80
DEFAULT_AUTH_TIMEOUT = 120
DEFAULT_VOLUME = 70

# Spotify rejects "localhost" redirect URIs for new apps
LOOPBACK_HOST = "127.0.0.1"

DEFAULT_SCOPES = (
    "user-read-playback-state",
    "user-modify-playback-state",
    "user-read-currently-playing",
    "playlist-read-private",
    "playlist-modify-public",
    "playlist-modify-private",
    "user-library-read",
    "user-library-modify",
)

DEFAULT_PRESETS = {
    "coding": "spotify:playlist:37i9dQZF1DX0XUsuxWHRQd",   # Deep Focus
    "break": "spotify:playlist:37i9dQZF1DX3rxVfibe1L0",    # Chill Hits
    "deploy": "spotify:playlist:37i9dQZF1DX0XUfTFmNBRM",   # Upbeat Indie
    "debug": "spotify:playlist:37i9dQZF1DX4sWSpwAYIy1",    # Peaceful Piano
    "testing": "spotify:playlist:37i9dQZF1DX5trt9i14X7j",  # Concentration
}


@dataclass(frozen=True)
class SpotifyConfig:
    """
    Spotify application settings.

    Attributes:
        client_id: Application client ID from the Developer Dashboard.
                   May be empty if stored in the credential store instead.
        client_secret: Application client secret. Same as above.
        redirect_uri: OAuth callback URL registered for the app.
                      Must point at 127.0.0.1.
        scopes: Permission scopes requested during authorization.
    """
    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = DEFAULT_REDIRECT_URI
    scopes: tuple[str, ...] = DEFAULT_SCOPES

    @property
    def callback_port(self) -> int:
        """
        Port the local callback server must bind, taken from redirect_uri.

        Without an explicit port the browser is sent to the http default,
        so that is what must be bound.
        """
        port = urlparse(self.redirect_uri).port
        return port if port is not None else HTTP_DEFAULT_PORT

    @property
    def callback_path(self) -> str:
        return urlparse(self.redirect_uri).path or "/callback"

    def with_port(self, port: int) -> "SpotifyConfig":
        """
        Return a copy whose redirect URI uses a different port.

        Args:
            port: New callback port.

        Returns:
            SpotifyConfig with the same settings and the rewritten redirect URI.
        """
        parsed = urlparse(self.redirect_uri)
        netloc = f"{parsed.hostname}:{port}"
        return replace(self, redirect_uri=urlunparse(parsed._replace(netloc=netloc)))


@dataclass(frozen=True)
class StorageConfig:
    """
    Credential store settings.

    Attributes:
        path: Absolute path of the SQLite credential database.
    """
    path: Path


@dataclass(frozen=True)
class AuthConfig:
    """
    Interactive authorization settings.

    Attributes:
        timeout: Seconds to wait for the browser callback.
    """
    timeout: float = DEFAULT_AUTH_TIMEOUT


@dataclass(frozen=True)
class PlaybackConfig:
    """
    Playback defaults.

    Attributes:
        default_volume: Volume used when none is given, 0-100.
    """
    default_volume: int = DEFAULT_VOLUME


@dataclass(frozen=True)
class Config:
    """
    Complete application configuration.

    Created by load_config() and treated as immutable (frozen dataclass).

    Example:
        config = load_config()
        print(f"Callback on port {config.spotify.callback_port}")
        print(f"Credentials stored in {config.storage.path}")
    """
    spotify: SpotifyConfig
    storage: StorageConfig
    auth: AuthConfig = field(default_factory=AuthConfig)
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)
    presets: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_PRESETS))


def load_config(config_path: Path | None = None) -> Config:
    """
    Load and validate configuration from config.yaml and the environment.

    Args:
        config_path: Optional explicit path to config file.
                     If None, ./config.yaml then ~/.spot-control/config.yaml
                     are tried; if neither exists, defaults are used.

    Returns:
        Config: A frozen dataclass containing all configuration values.

    Raises:
        ConfigError: If an explicit config file is not found, has invalid
                     YAML syntax, or contains invalid values.

    Behavior:
        1. Load .env into the process environment (existing vars win)
        2. Locate and parse the YAML file, if any
        3. Parse each section with defaults applied
        4. Overlay environment variables
        5. Validate the redirect URI
    """
    load_dotenv()

    raw_config = _read_config_file(config_path)

    spotify_config = _parse_spotify_config(raw_config.get("spotify"))
    storage_config = _parse_storage_config(raw_config.get("storage"))
    auth_config = _parse_auth_config(raw_config.get("auth"))
    playback_config = _parse_playback_config(raw_config.get("playback"))
    presets = _parse_presets(raw_config.get("presets"))

    spotify_config = replace(
        spotify_config,
        client_id=os.environ.get("SPOTIFY_CLIENT_ID", spotify_config.client_id).strip(),
        client_secret=os.environ.get("SPOTIFY_CLIENT_SECRET", spotify_config.client_secret).strip(),
        redirect_uri=os.environ.get("SPOTIFY_REDIRECT_URI", spotify_config.redirect_uri).strip(),
    )
    _validate_redirect_uri(spotify_config.redirect_uri)

    store_override = os.environ.get("SPOT_CONTROL_STORE")
    if store_override:
        storage_config = StorageConfig(path=_expand_path(store_override))

    return Config(
        spotify=spotify_config,
        storage=storage_config,
        auth=auth_config,
        playback=playback_config,
        presets=presets
    )


def _read_config_file(config_path: Path | None) -> dict[str, Any]:
    """
    Locate, read and parse the YAML config file.

    Returns an empty dict when no explicit path is given and no default
    file exists.
    """
    if config_path is None:
        candidates = [
            Path.cwd() / CONFIG_FILENAME,
            DEFAULT_CONFIG_DIR.expanduser() / CONFIG_FILENAME,
        ]
        config_path = next((path for path in candidates if path.exists()), None)
        if config_path is None:
            return {}
    elif not config_path.exists():
        raise ConfigError(
            f"Configuration file not found: {config_path}",
            details={"file_path": str(config_path)}
        )

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()
    except IOError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML syntax in configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    # Empty file
    if raw_config is None:
        return {}

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": str(config_path)}
        )

    for section in ("spotify", "storage", "auth", "playback", "presets"):
        if section in raw_config and raw_config[section] is not None \
                and not isinstance(raw_config[section], dict):
            raise ConfigError(
                f"Section '{section}' must be a dictionary",
                details={"section": section}
            )

    return raw_config


def _parse_spotify_config(spotify_section: dict[str, Any] | None) -> SpotifyConfig:
    """
    Parse the Spotify section.

    Raises:
        ConfigError: If a field has the wrong type.
    """
    if not spotify_section:
        return SpotifyConfig()

    values: dict[str, Any] = {}
    for key in ("client_id", "client_secret", "redirect_uri"):
        raw = spotify_section.get(key)
        if raw is None:
            continue
        if not isinstance(raw, str):
            raise ConfigError(
                f"'spotify.{key}' must be a string",
                details={"field": f"spotify.{key}"}
            )
        values[key] = raw.strip()

    raw_scopes = spotify_section.get("scopes")
    if raw_scopes is not None:
        if not isinstance(raw_scopes, list) or not all(isinstance(s, str) for s in raw_scopes):
            raise ConfigError(
                "'spotify.scopes' must be a list of strings",
                details={"field": "spotify.scopes"}
            )
        values["scopes"] = tuple(s.strip() for s in raw_scopes if s.strip())

    return SpotifyConfig(**values)


def _parse_storage_config(storage_section: dict[str, Any] | None) -> StorageConfig:
    raw_path = (storage_section or {}).get("path", DEFAULT_STORE_PATH)
    if not isinstance(raw_path, str) or not raw_path.strip():
        raise ConfigError(
            "'storage.path' must be a non-empty string",
            details={"field": "storage.path"}
        )
    return StorageConfig(path=_expand_path(raw_path))


def _parse_auth_config(auth_section: dict[str, Any] | None) -> AuthConfig:
    raw_timeout = (auth_section or {}).get("timeout")
    if raw_timeout is None:
        return AuthConfig()
    if isinstance(raw_timeout, bool) or not isinstance(raw_timeout, (int, float)) or raw_timeout <= 0:
        raise ConfigError(
            "'auth.timeout' must be a positive number",
            details={"field": "auth.timeout", "value": raw_timeout}
        )
    return AuthConfig(timeout=float(raw_timeout))


def _parse_playback_config(playback_section: dict[str, Any] | None) -> PlaybackConfig:
    raw_volume = (playback_section or {}).get("default_volume")
    if raw_volume is None:
        return PlaybackConfig()
    if isinstance(raw_volume, bool) or not isinstance(raw_volume, int):
        raise ConfigError(
            "'playback.default_volume' must be an integer",
            details={"field": "playback.default_volume", "value": raw_volume}
        )
    return PlaybackConfig(default_volume=max(0, min(100, raw_volume)))


def _parse_presets(presets_section: dict[str, Any] | None) -> dict[str, str]:
    """Merge user presets over the built-in ones."""
    presets = dict(DEFAULT_PRESETS)
    for name, uri in (presets_section or {}).items():
        if not isinstance(uri, str) or not uri.strip():
            raise ConfigError(
                f"Preset '{name}' must be a non-empty Spotify URI",
                details={"field": f"presets.{name}"}
            )
        presets[str(name)] = uri.strip()
    return presets


def _validate_redirect_uri(redirect_uri: str) -> None:
    """
    Check the redirect URI points at an explicit port on the loopback IP.

    The callback server binds whatever port the URI names, so the port
    must be spelled out.

    Raises:
        ConfigError: If the scheme is not http, the host is not 127.0.0.1,
                     or the port is missing or invalid.
    """
    parsed = urlparse(redirect_uri)
    try:
        port = parsed.port
    except ValueError:
        port = None

    if parsed.scheme != "http" or parsed.hostname != LOOPBACK_HOST or port is None:
        raise ConfigError(
            f"Redirect URI must be http://{LOOPBACK_HOST}:<port>/<path>, got: {redirect_uri}",
            details={"field": "spotify.redirect_uri", "value": redirect_uri}
        )


def _expand_path(raw_path: str) -> Path:
    return Path(raw_path.strip()).expanduser().resolve()
