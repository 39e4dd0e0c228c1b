"""
Spotify Web API access for spot-control.

Usage:
    from spot_control.spotify import SpotifyApiClient, resolve_play_target

    api = SpotifyApiClient(token_manager)
    api.play(resolve_play_target(api, "daft punk", presets).uri)
"""

from spot_control.spotify.client import API_BASE_URL, SpotifyApiClient, clamp_volume
from spot_control.spotify.playback import (
    DeviceChoice,
    PlayTarget,
    find_first_track,
    resolve_play_target,
    select_device,
)

__all__ = [
    "SpotifyApiClient",
    "API_BASE_URL",
    "clamp_volume",
    "DeviceChoice",
    "PlayTarget",
    "find_first_track",
    "resolve_play_target",
    "select_device",
]
