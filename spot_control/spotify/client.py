"""
Authenticated Spotify Web API client for spot-control.

SpotifyApiClient wraps the REST endpoints used for playback control, device
management, playlists and search. Every call obtains its bearer token from
TokenManager (which refreshes expired tokens once, transparently) and maps
HTTP failures to the typed errors in spot_control.core.exceptions.

Error mapping:
    401                     -> TokenExpired (never retried here)
    429                     -> RateLimited(retry_after from Retry-After, default 1)
    404 on a player endpoint -> NoActiveDevice
    403 PREMIUM_REQUIRED    -> PremiumRequired
    403 otherwise           -> ActionNotPermitted
    other non-2xx/transport -> SpotifyApiError

204 No Content is success: playback endpoints answer play/pause/skip/volume
with an empty body.

Usage:
    api = SpotifyApiClient(token_manager)
    api.play("spotify:playlist:37i9dQZF1DX0XUsuxWHRQd")
    api.set_volume(60)
    devices = api.get_available_devices()
"""

from typing import Any, Optional

import requests

from spot_control.auth.tokens import TokenManager
from spot_control.core.exceptions import (
    ActionNotPermitted,
    NoActiveDevice,
    NotAuthenticated,
    PremiumRequired,
    RateLimited,
    SpotifyApiError,
    TokenExpired,
)
from spot_control.core.logger import get_logger

logger = get_logger(__name__)


API_BASE_URL = "https://api.spotify.com/v1/"
DEFAULT_TIMEOUT = 30
DEFAULT_RETRY_AFTER = 1
TRACK_URI_PREFIX = "spotify:track:"


def clamp_volume(volume: int) -> int:
    """Clamp a volume level to the 0-100 range the API accepts."""
    return max(0, min(100, int(volume)))


def _device_params(device_id: Optional[str], **params: Any) -> dict[str, Any]:
    if device_id:
        params["device_id"] = device_id
    return params


class SpotifyApiClient:
    """
    Spotify Web API client.

    Attributes:
        token_manager: Source of access tokens.
        session: requests session used for all API calls.
        base_url: API root, ending with a slash.
        timeout: Seconds before a request is abandoned.

    Retry Policy:
        No automatic retries. The only retry is the implicit
        refresh-then-use inside TokenManager.get_access_token().
    """

    def __init__(
        self,
        token_manager: TokenManager,
        session: Optional[requests.Session] = None,
        base_url: str = API_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT
    ):
        self.token_manager = token_manager
        self.session = session or requests.Session()
        self.base_url = base_url
        self.timeout = timeout

    # =========================================================================
    # Request core
    # =========================================================================

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict[str, Any]] = None,
        payload: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        """
        Make an authenticated request and decode the JSON response.

        Args:
            method: HTTP method.
            endpoint: Path relative to base_url (e.g. 'me/player/play').
            params: Query parameters.
            payload: JSON body, sent only for POST/PUT/PATCH when non-empty.

        Returns:
            Decoded JSON object, or {} for 204 and empty bodies.

        Raises:
            NotAuthenticated: If no access token is available (no request made).
            SpotifyApiError: Or one of its subclasses, see module docstring.
        """
        access_token = self.token_manager.get_access_token()
        if not access_token:
            raise NotAuthenticated()

        kwargs: dict[str, Any] = {
            "headers": {
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json",
            },
            "timeout": self.timeout,
        }
        if params:
            kwargs["params"] = params
        if payload and method.upper() in ("POST", "PUT", "PATCH"):
            kwargs["json"] = payload

        url = f"{self.base_url}{endpoint}"
        logger.debug(f"{method} {endpoint}")

        try:
            response = self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            raise SpotifyApiError(
                f"Spotify API error: {e}",
                details={"endpoint": endpoint, "original_error": str(e)}
            ) from e

        if response.status_code == 204:
            return {}

        if response.status_code >= 400:
            self._raise_for_status(response, endpoint)

        if not response.content:
            return {}

        try:
            data = response.json()
        except ValueError as e:
            raise SpotifyApiError(
                f"Spotify API returned invalid JSON for {endpoint}",
                status_code=response.status_code,
                details={"endpoint": endpoint}
            ) from e

        return data if isinstance(data, dict) else {}

    def _raise_for_status(self, response: requests.Response, endpoint: str) -> None:
        """Translate an error response into the matching exception."""
        status = response.status_code
        details = {"endpoint": endpoint, "status_code": status}
        error_body = self._error_body(response)

        if status == 401:
            raise TokenExpired(details=details)

        if status == 429:
            raise RateLimited(self._retry_after(response), details=details)

        if status == 404 and "player" in endpoint:
            raise NoActiveDevice(details=details)

        if status == 403:
            reason = error_body.get("reason")
            if reason == "PREMIUM_REQUIRED":
                raise PremiumRequired(details=details)
            raise ActionNotPermitted(reason=reason, details=details)

        message = error_body.get("message") or response.reason or f"HTTP {status}"
        raise SpotifyApiError(
            f"Spotify API error: {message}",
            status_code=status,
            details=details
        )

    @staticmethod
    def _error_body(response: requests.Response) -> dict[str, Any]:
        """
        Extract the 'error' object from an error response.

        Spotify uses {"error": {"status": ..., "message": ..., "reason": ...}};
        returns {} when the body is missing or shaped differently.
        """
        try:
            data = response.json()
        except ValueError:
            return {}
        if not isinstance(data, dict):
            return {}
        error = data.get("error")
        return error if isinstance(error, dict) else {}

    @staticmethod
    def _retry_after(response: requests.Response) -> int:
        raw = response.headers.get("Retry-After")
        try:
            return max(0, int(raw))
        except (TypeError, ValueError):
            return DEFAULT_RETRY_AFTER

    # =========================================================================
    # Playback state
    # =========================================================================

    def get_current_user(self) -> dict[str, Any]:
        return self._request("GET", "me")

    def get_current_playback(self) -> Optional[dict[str, Any]]:
        """Full playback state, or None when nothing is playing."""
        return self._request("GET", "me/player") or None

    def get_current_track(self) -> Optional[dict[str, Any]]:
        """Currently playing item, or None when nothing is playing."""
        return self._request("GET", "me/player/currently-playing") or None

    # =========================================================================
    # Playback control
    # =========================================================================

    def play(self, context_uri: Optional[str] = None, device_id: Optional[str] = None) -> bool:
        """
        Start or resume playback.

        A track URI is sent as {"uris": [uri]}; albums, playlists and artists
        are sent as {"context_uri": uri}. Without a URI playback resumes.

        Args:
            context_uri: Spotify URI to play, or None to resume.
            device_id: Target device, or None for the active one.

        Returns:
            True on success (errors raise).
        """
        payload: dict[str, Any] = {}
        if context_uri:
            if context_uri.startswith(TRACK_URI_PREFIX):
                payload["uris"] = [context_uri]
            else:
                payload["context_uri"] = context_uri

        self._request("PUT", "me/player/play", params=_device_params(device_id), payload=payload)
        return True

    def pause(self, device_id: Optional[str] = None) -> bool:
        self._request("PUT", "me/player/pause", params=_device_params(device_id))
        return True

    def skip_to_next(self, device_id: Optional[str] = None) -> bool:
        self._request("POST", "me/player/next", params=_device_params(device_id))
        return True

    def skip_to_previous(self, device_id: Optional[str] = None) -> bool:
        self._request("POST", "me/player/previous", params=_device_params(device_id))
        return True

    def set_volume(self, volume: int, device_id: Optional[str] = None) -> bool:
        """Set volume; values outside 0-100 are clamped before sending."""
        volume = clamp_volume(volume)
        self._request(
            "PUT", "me/player/volume",
            params=_device_params(device_id, volume_percent=volume)
        )
        return True

    def set_shuffle(self, shuffle: bool, device_id: Optional[str] = None) -> bool:
        self._request(
            "PUT", "me/player/shuffle",
            params=_device_params(device_id, state="true" if shuffle else "false")
        )
        return True

    def add_to_queue(self, uri: str, device_id: Optional[str] = None) -> bool:
        self._request("POST", "me/player/queue", params=_device_params(device_id, uri=uri))
        return True

    # =========================================================================
    # Devices
    # =========================================================================

    def get_available_devices(self) -> list[dict[str, Any]]:
        """
        List the user's devices.

        Returns:
            Device objects exactly as returned by Spotify
            (id, name, type, is_active, volume_percent, ...).
        """
        return self._request("GET", "me/player/devices").get("devices", [])

    def transfer_playback(self, device_id: str, play: bool = False) -> bool:
        self._request("PUT", "me/player", payload={"device_ids": [device_id], "play": play})
        return True

    # =========================================================================
    # Library, playlists and search
    # =========================================================================

    def get_user_playlists(self, limit: int = 20, offset: int = 0) -> list[dict[str, Any]]:
        result = self._request("GET", "me/playlists", params={"limit": limit, "offset": offset})
        return result.get("items", [])

    def get_playlist_tracks(self, playlist_id: str, limit: int = 50, offset: int = 0) -> list[dict[str, Any]]:
        result = self._request(
            "GET", f"playlists/{playlist_id}/tracks",
            params={"limit": limit, "offset": offset}
        )
        return result.get("items", [])

    def create_playlist(self, name: str, description: str = "", public: bool = False) -> dict[str, Any]:
        """
        Create a playlist owned by the current user.

        Returns:
            The created playlist object.
        """
        user_id = self.get_current_user()["id"]
        return self._request(
            "POST", f"users/{user_id}/playlists",
            payload={"name": name, "description": description, "public": public}
        )

    def add_tracks_to_playlist(self, playlist_id: str, track_uris: list[str]) -> bool:
        self._request("POST", f"playlists/{playlist_id}/tracks", payload={"uris": list(track_uris)})
        return True

    def search(self, query: str, types: Optional[list[str]] = None, limit: int = 20) -> dict[str, Any]:
        """
        Search the catalog.

        Args:
            query: Free-text query.
            types: Item types, e.g. ['track', 'playlist']. Default ['track'].
            limit: Maximum results per type.

        Returns:
            Search response keyed by plural type ('tracks', 'playlists', ...).
        """
        return self._request(
            "GET", "search",
            params={"q": query, "type": ",".join(types or ["track"]), "limit": limit}
        )

    def get_artist(self, artist_id: str) -> dict[str, Any]:
        return self._request("GET", f"artists/{artist_id}")
