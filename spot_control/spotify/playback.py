"""
Playback target and device resolution.

Stateless helpers on top of SpotifyApiClient that turn what the user typed
into something the player endpoints accept:

    resolve_play_target: Spotify URI, preset name or free-text query -> URI
    find_first_track: free-text query -> first matching track URI
    select_device: pick a device when none was given

Free-text matching order for play:
1. Preset name
2. Track whose name equals the query (case-insensitive)
3. Artist whose name equals the query
4. First track, else first artist
"""

import time
from dataclasses import dataclass
from typing import Any, Optional

from spot_control.core.exceptions import NoSearchResults
from spot_control.core.logger import get_logger
from spot_control.spotify.client import SpotifyApiClient

logger = get_logger(__name__)


SPOTIFY_URI_PREFIX = "spotify:"
PLAY_SEARCH_LIMIT = 5

# Seconds a freshly transferred device gets before playback starts
ACTIVATION_DELAY = 1.0


@dataclass(frozen=True)
class PlayTarget:
    """
    Resolved playback target.

    Attributes:
        uri: Spotify URI to send to the player.
        label: Human-readable description for the terminal.
    """
    uri: str
    label: str


@dataclass(frozen=True)
class DeviceChoice:
    """
    Device picked for playback.

    Attributes:
        device_id: Target device id.
        name: Device name for display.
        activated: True if playback had to be transferred to it first.
    """
    device_id: str
    name: str
    activated: bool = False


def _artist_names(item: dict[str, Any]) -> str:
    return ", ".join(artist.get("name", "") for artist in item.get("artists") or [])


def _track_target(track: dict[str, Any]) -> PlayTarget:
    return PlayTarget(track["uri"], f"track {track.get('name')} by {_artist_names(track)}")


def _items(results: dict[str, Any], group: str) -> list[dict[str, Any]]:
    return [item for item in (results.get(group) or {}).get("items") or [] if item]


def resolve_play_target(api: SpotifyApiClient, query: str, presets: dict[str, str]) -> PlayTarget:
    """
    Turn a play argument into a URI.

    Args:
        api: Client used for the search fallback.
        query: Spotify URI, preset name or free-text search.
        presets: Preset name -> URI map from the configuration.

    Returns:
        PlayTarget with the URI to play.

    Raises:
        NoSearchResults: If the search finds neither tracks nor artists.
    """
    if query.startswith(SPOTIFY_URI_PREFIX):
        return PlayTarget(query, query)

    if query in presets:
        return PlayTarget(presets[query], f"preset {query}")

    logger.debug(f'Searching for "{query}"')
    results = api.search(query, types=["track", "artist"], limit=PLAY_SEARCH_LIMIT)
    tracks = _items(results, "tracks")
    artists = _items(results, "artists")
    wanted = query.casefold()

    for track in tracks:
        if str(track.get("name", "")).casefold() == wanted:
            return _track_target(track)

    for artist in artists:
        if str(artist.get("name", "")).casefold() == wanted:
            return PlayTarget(artist["uri"], f"artist {artist.get('name')}")

    if tracks:
        return _track_target(tracks[0])
    if artists:
        return PlayTarget(artists[0]["uri"], f"artist {artists[0].get('name')}")

    raise NoSearchResults(query)


def find_first_track(api: SpotifyApiClient, query: str) -> PlayTarget:
    """
    Resolve a queue argument: URIs pass through, text takes the first track.

    Raises:
        NoSearchResults: If no track matches.
    """
    if query.startswith(SPOTIFY_URI_PREFIX):
        return PlayTarget(query, query)

    tracks = _items(api.search(query, types=["track"], limit=1), "tracks")
    if not tracks:
        raise NoSearchResults(query)
    return _track_target(tracks[0])


def select_device(api: SpotifyApiClient) -> Optional[DeviceChoice]:
    """
    Pick a playback device when the user did not name one.

    Order: the device of the current playback state, then any active
    device, then the first available device (playback is transferred to
    it, paused). Returns None when the account has no devices at all; the
    player call then fails with NoActiveDevice.
    """
    playback = api.get_current_playback()
    device = (playback or {}).get("device")
    if device and device.get("id"):
        return DeviceChoice(device["id"], device.get("name", device["id"]))

    devices = [d for d in api.get_available_devices() if d.get("id")]
    for candidate in devices:
        if candidate.get("is_active"):
            return DeviceChoice(candidate["id"], candidate.get("name", candidate["id"]))

    if not devices:
        return None

    first = devices[0]
    logger.info(f"Activating device: {first.get('name', first['id'])}")
    api.transfer_playback(first["id"], play=False)
    time.sleep(ACTIVATION_DELAY)
    return DeviceChoice(first["id"], first.get("name", first["id"]), activated=True)
