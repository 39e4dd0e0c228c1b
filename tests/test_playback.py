# tests/test_playback.py
"""Tests for play target and device resolution"""

from unittest.mock import Mock

import pytest

from spot_control.core.exceptions import NoSearchResults
from spot_control.spotify.client import SpotifyApiClient
from spot_control.spotify.playback import (
    DeviceChoice,
    PlayTarget,
    find_first_track,
    resolve_play_target,
    select_device,
)


PRESETS = {"focus": "spotify:playlist:focus"}


@pytest.fixture
def api():
    return Mock(spec=SpotifyApiClient)


@pytest.fixture
def no_delay(monkeypatch):
    monkeypatch.setattr("spot_control.spotify.playback.ACTIVATION_DELAY", 0)


def track(name, uri, artist="Daft Punk"):
    return {"name": name, "uri": uri, "artists": [{"name": artist}]}


class TestResolvePlayTarget:
    """Test URI, preset and search resolution"""

    def test_uri_passes_through(self, api):
        assert resolve_play_target(api, "spotify:album:1", PRESETS) == PlayTarget("spotify:album:1", "spotify:album:1")
        api.search.assert_not_called()

    def test_preset_name(self, api):
        target = resolve_play_target(api, "focus", PRESETS)

        assert target.uri == "spotify:playlist:focus"
        api.search.assert_not_called()

    def test_searches_tracks_and_artists(self, api):
        api.search.return_value = {"tracks": {"items": [track("Aerodynamic", "spotify:track:1")]}}
        resolve_play_target(api, "aerodynamic", PRESETS)

        api.search.assert_called_once_with("aerodynamic", types=["track", "artist"], limit=5)

    def test_exact_track_beats_exact_artist(self, api):
        api.search.return_value = {
            "tracks": {"items": [track("Intro", "spotify:track:other"), track("Justice", "spotify:track:j")]},
            "artists": {"items": [{"name": "Justice", "uri": "spotify:artist:j"}]},
        }
        assert resolve_play_target(api, "JUSTICE", PRESETS).uri == "spotify:track:j"

    def test_exact_artist_beats_first_track(self, api):
        api.search.return_value = {
            "tracks": {"items": [track("Get Lucky", "spotify:track:gl")]},
            "artists": {"items": [{"name": "Daft Punk", "uri": "spotify:artist:dp"}]},
        }
        target = resolve_play_target(api, "daft punk", PRESETS)

        assert target.uri == "spotify:artist:dp"
        assert target.label == "artist Daft Punk"

    def test_first_track_when_nothing_matches_exactly(self, api):
        api.search.return_value = {
            "tracks": {"items": [None, track("Get Lucky", "spotify:track:gl")]},
            "artists": {"items": [{"name": "Pharrell Williams", "uri": "spotify:artist:pw"}]},
        }
        assert resolve_play_target(api, "lucky", PRESETS).uri == "spotify:track:gl"

    def test_first_artist_when_no_tracks(self, api):
        api.search.return_value = {
            "tracks": {"items": []},
            "artists": {"items": [{"name": "Daft Punk", "uri": "spotify:artist:dp"}]},
        }
        assert resolve_play_target(api, "daft", PRESETS).uri == "spotify:artist:dp"

    def test_no_results(self, api):
        api.search.return_value = {"tracks": {"items": []}, "artists": {"items": []}}

        with pytest.raises(NoSearchResults) as exc_info:
            resolve_play_target(api, "nothing here", PRESETS)
        assert exc_info.value.query == "nothing here"


class TestFindFirstTrack:

    def test_uri_passes_through(self, api):
        assert find_first_track(api, "spotify:episode:1").uri == "spotify:episode:1"
        api.search.assert_not_called()

    def test_first_track(self, api):
        api.search.return_value = {"tracks": {"items": [track("Veridis Quo", "spotify:track:vq")]}}
        target = find_first_track(api, "veridis quo")

        assert target == PlayTarget("spotify:track:vq", "track Veridis Quo by Daft Punk")
        api.search.assert_called_once_with("veridis quo", types=["track"], limit=1)

    def test_no_track(self, api):
        api.search.return_value = {}
        with pytest.raises(NoSearchResults):
            find_first_track(api, "silence")


class TestSelectDevice:
    """Test device fallback order"""

    def test_current_playback_device(self, api):
        api.get_current_playback.return_value = {"device": {"id": "device_2", "name": "Phone"}}

        assert select_device(api) == DeviceChoice("device_2", "Phone")
        api.get_available_devices.assert_not_called()

    def test_active_device(self, api, sample_devices):
        api.get_current_playback.return_value = None
        api.get_available_devices.return_value = sample_devices["devices"]

        assert select_device(api) == DeviceChoice("device_1", "Desktop")
        api.transfer_playback.assert_not_called()

    def test_first_device_is_activated(self, api, sample_devices, no_delay):
        for device in sample_devices["devices"]:
            device["is_active"] = False
        api.get_current_playback.return_value = None
        api.get_available_devices.return_value = sample_devices["devices"]

        choice = select_device(api)

        assert choice == DeviceChoice("device_1", "Desktop", activated=True)
        api.transfer_playback.assert_called_once_with("device_1", play=False)

    def test_no_devices(self, api):
        api.get_current_playback.return_value = None
        api.get_available_devices.return_value = []

        assert select_device(api) is None
        api.transfer_playback.assert_not_called()
