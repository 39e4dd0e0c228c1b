"""
Command-line interface for spot-control.

This module implements the CLI using Click, with rich-click for help colors.
It is a thin layer: every command delegates to TokenManager,
AuthorizationFlow or SpotifyApiClient and turns typed errors into a short
message and an exit code.

Commands:
    spot-control setup --client-id ID --client-secret SECRET
    spot-control login [--timeout 120] [--port 9876] [--no-browser] [--force]
    spot-control logout
    spot-control status
    spot-control reset
    spot-control play [URI|PRESET|QUERY] [--preset NAME] [--device ID]
    spot-control pause | next | previous [--device ID]
    spot-control volume LEVEL [--device ID]
    spot-control shuffle on|off [--device ID]
    spot-control devices
    spot-control transfer DEVICE_ID [--play]
    spot-control queue URI|QUERY [--device ID]
    spot-control current
    spot-control playlists [--limit N]
    spot-control search QUERY [--type track] [--limit N] [--play]

Global Options:
    --config <path>     Explicit config.yaml
    --verbose           Show debug output
    --log-dir <path>    Also write log files to this directory

Exit Codes:
    0 on success (and when the player is already in the requested state),
    1 on any error.
"""

import functools
import sys
from pathlib import Path
from typing import Callable, Optional

import requests
import rich_click as click

# Configure rich-click for better help formatting
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.MAX_WIDTH = 100
click.rich_click.COMMAND_GROUPS = {
    "spot-control": [
        {
            "name": "Account",
            "commands": ["setup", "login", "logout", "status", "reset"],
        },
        {
            "name": "Playback",
            "commands": ["play", "pause", "next", "previous", "volume", "shuffle", "queue", "current"],
        },
        {
            "name": "Devices & Library",
            "commands": ["devices", "transfer", "playlists", "search"],
        },
    ],
}

from spot_control import __version__
from spot_control.auth import AuthorizationFlow, TokenManager, open_browser
from spot_control.core import (
    ActionNotPermitted,
    Config,
    CredentialStore,
    NoSearchResults,
    SpotControlError,
    SqliteCredentialStore,
    get_logger,
    load_config,
    setup_logging,
    shutdown_logging,
)
from spot_control.spotify import SpotifyApiClient
from spot_control.spotify.client import clamp_volume
from spot_control.spotify.playback import PlayTarget, find_first_track, resolve_play_target, select_device

logger = get_logger(__name__)


class AppContext:
    """
    Lazily built collaborators shared by all commands.

    Nothing touches the filesystem or network until a command asks for it,
    so `--help` works without a config or credential store.

    Attributes:
        config_path: Explicit config file, or None for the default lookup.
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        config: Optional[Config] = None,
        store: Optional[CredentialStore] = None,
        session: Optional[requests.Session] = None
    ):
        self.config_path = config_path
        self._config = config
        self._store = store
        self._session = session
        self._tokens: Optional[TokenManager] = None
        self._api: Optional[SpotifyApiClient] = None

    @property
    def config(self) -> Config:
        if self._config is None:
            self._config = load_config(self.config_path)
        return self._config

    @property
    def store(self) -> CredentialStore:
        if self._store is None:
            store = SqliteCredentialStore(self.config.storage.path)
            removed = store.purge_expired()
            if removed:
                logger.debug(f"Purged {removed} expired credential store entries")
            self._store = store
        return self._store

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
            self._session.headers["User-Agent"] = f"spot-control/{__version__}"
        return self._session

    @property
    def tokens(self) -> TokenManager:
        if self._tokens is None:
            self._tokens = TokenManager(self.store, self.config.spotify, session=self.session)
        return self._tokens

    @property
    def api(self) -> SpotifyApiClient:
        if self._api is None:
            self._api = SpotifyApiClient(self.tokens, session=self.session)
        return self._api


pass_app = click.make_pass_decorator(AppContext)


def handle_errors(func: Callable) -> Callable:
    """
    Turn typed errors into a message and exit code.

    ActionNotPermitted means the player is already in the requested
    state, so it is reported without failing.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ActionNotPermitted as e:
            click.echo(e.message)
        except SpotControlError as e:
            logger.debug(f"{type(e).__name__}: {e.details}")
            click.echo(f"Error: {e.message}", err=True)
            sys.exit(1)
        except (click.ClickException, click.Abort):
            raise
        except Exception as e:
            click.echo(f"Unexpected error: {e}", err=True)
            logger.exception("Unexpected error")
            sys.exit(1)
    return wrapper


@click.group()
@click.option(
    "--config", "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    metavar="<config.yaml>",
    help="Configuration file (default: ./config.yaml or ~/.spot-control/config.yaml)"
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Show debug output"
)
@click.option(
    "--log-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    metavar="<dir>",
    help="Also write full and error logs to this directory"
)
@click.version_option(__version__, prog_name="spot-control")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], verbose: bool, log_dir: Optional[Path]) -> None:
    """
    spot-control: Control Spotify playback from the command line.

    \b
    FIRST RUN:
        spot-control setup --client-id ID --client-secret SECRET
        spot-control login

    \b
    PLAYBACK:
        spot-control play spotify:playlist:...    # Play a playlist
        spot-control play --preset coding         # Play a preset
        spot-control play "daft punk"             # Search and play
        spot-control volume 60
        spot-control next
    """
    # Pre-built context (tests, embedding) keeps its own logging setup
    if isinstance(ctx.obj, AppContext):
        return

    setup_logging(log_dir, verbose=verbose)
    ctx.call_on_close(shutdown_logging)
    ctx.obj = AppContext(config_path=config_path)


# =============================================================================
# Account commands
# =============================================================================

@cli.command()
@click.option("--client-id", required=True, help="Spotify application client ID")
@click.option("--client-secret", required=True, help="Spotify application client secret")
@pass_app
@handle_errors
def setup(app: AppContext, client_id: str, client_secret: str) -> None:
    """Store Spotify application credentials."""
    try:
        app.tokens.store_credentials(client_id, client_secret)
    except ValueError as e:
        raise click.UsageError(str(e))
    click.echo("Spotify credentials saved.")
    click.echo(f"Redirect URI to register in your Spotify app: {app.config.spotify.redirect_uri}")


@cli.command()
@click.option("--timeout", type=click.FloatRange(min=1), default=None,
              help="Seconds to wait for the browser callback")
@click.option("--port", type=click.IntRange(1, 65535), default=None,
              help="Callback port (must match the registered redirect URI)")
@click.option("--no-browser", is_flag=True, help="Only print the authorization URL")
@click.option("--force", is_flag=True, help="Re-authorize even if already logged in")
@pass_app
@handle_errors
def login(app: AppContext, timeout: Optional[float], port: Optional[int], no_browser: bool, force: bool) -> None:
    """Authorize spot-control with your Spotify account."""
    if not force and app.tokens.ensure_authenticated():
        click.echo("Already authenticated with Spotify.")
        return

    spotify_config = app.config.spotify
    if port is not None:
        spotify_config = spotify_config.with_port(port)

    flow = AuthorizationFlow(
        app.tokens,
        spotify_config,
        browser_opener=(lambda url: False) if no_browser else open_browser,
        on_url=lambda url: click.echo(f"Authorization URL:\n{url}\n")
    )
    flow.run(timeout=timeout or app.config.auth.timeout)
    click.echo("Logged in to Spotify.")


@cli.command()
@pass_app
@handle_errors
def logout(app: AppContext) -> None:
    """Forget the stored Spotify tokens."""
    if not app.tokens.is_authenticated():
        click.echo("Not currently logged in to Spotify.")
        return

    app.tokens.revoke()
    click.echo("Logged out from Spotify.")


@cli.command()
@pass_app
@handle_errors
def status(app: AppContext) -> None:
    """Show credential and login status."""
    tokens = app.tokens
    click.echo(f"Credentials: {'configured' if tokens.has_credentials() else 'missing'}")
    if tokens.is_authenticated():
        token_set = tokens.load_token_set()
        click.echo("Authenticated: yes")
        if token_set is not None:
            click.echo(f"Token valid until: {token_set.expires_at.isoformat()}")
    else:
        click.echo("Authenticated: no (run: spot-control login)")


@cli.command()
@pass_app
@handle_errors
def reset(app: AppContext) -> None:
    """Remove stored credentials and tokens."""
    app.tokens.reset()
    click.echo("Stored Spotify credentials and tokens removed.")


# =============================================================================
# Playback commands
# =============================================================================

device_option = click.option("--device", "device_id", default=None, metavar="<device-id>",
                             help="Target device (default: current or active device)")


def _playback_device(app: AppContext, device_id: Optional[str]) -> Optional[str]:
    """Explicit device, else the one select_device() picks."""
    if device_id:
        return device_id

    choice = select_device(app.api)
    if choice is None:
        return None
    if choice.activated:
        click.echo(f"Activated device: {choice.name}")
    else:
        click.echo(f"Using device: {choice.name}")
    return choice.device_id


def _start_playback(app: AppContext, target: Optional[PlayTarget], device_id: Optional[str]) -> None:
    device_id = _playback_device(app, device_id)
    app.api.play(target.uri if target else None, device_id=device_id)
    click.echo(f"Playing {target.label}" if target else "Playback resumed")


@cli.command()
@click.argument("target", required=False)
@click.option("--preset", default=None, help="Play a preset from the config (e.g. coding)")
@device_option
@pass_app
@handle_errors
def play(app: AppContext, target: Optional[str], preset: Optional[str], device_id: Optional[str]) -> None:
    """
    Start or resume playback.

    TARGET is a Spotify URI, a preset name or a search query such as
    "daft punk". Without TARGET the current playback resumes.
    """
    if target and preset:
        raise click.UsageError("Use either TARGET or --preset, not both")

    if preset:
        presets = app.config.presets
        if preset not in presets:
            raise click.UsageError(
                f"Unknown preset '{preset}'. Available: {', '.join(sorted(presets))}"
            )
        target = preset

    resolved = resolve_play_target(app.api, target, app.config.presets) if target else None
    _start_playback(app, resolved, device_id)


@cli.command()
@device_option
@pass_app
@handle_errors
def pause(app: AppContext, device_id: Optional[str]) -> None:
    """Pause playback."""
    app.api.pause(device_id=device_id)
    click.echo("Playback paused")


@cli.command(name="next")
@device_option
@pass_app
@handle_errors
def next_track(app: AppContext, device_id: Optional[str]) -> None:
    """Skip to the next track."""
    app.api.skip_to_next(device_id=device_id)
    click.echo("Skipped to next track")


@cli.command()
@device_option
@pass_app
@handle_errors
def previous(app: AppContext, device_id: Optional[str]) -> None:
    """Skip to the previous track."""
    app.api.skip_to_previous(device_id=device_id)
    click.echo("Skipped to previous track")


@cli.command()
@click.argument("level", type=int, required=False)
@device_option
@pass_app
@handle_errors
def volume(app: AppContext, level: Optional[int], device_id: Optional[str]) -> None:
    """Set playback volume (0-100, default from config)."""
    level = clamp_volume(app.config.playback.default_volume if level is None else level)
    app.api.set_volume(level, device_id=device_id)
    click.echo(f"Volume set to {level}%")


@cli.command()
@click.argument("state", type=click.Choice(["on", "off"]))
@device_option
@pass_app
@handle_errors
def shuffle(app: AppContext, state: str, device_id: Optional[str]) -> None:
    """Turn shuffle on or off."""
    app.api.set_shuffle(state == "on", device_id=device_id)
    click.echo(f"Shuffle {state}")


@cli.command()
@click.argument("target")
@device_option
@pass_app
@handle_errors
def queue(app: AppContext, target: str, device_id: Optional[str]) -> None:
    """
    Add a track to the playback queue.

    TARGET is a Spotify URI or a search query; a query queues the first
    matching track.
    """
    track = find_first_track(app.api, target)
    app.api.add_to_queue(track.uri, device_id=device_id)
    click.echo(f"Queued {track.label}")


@cli.command()
@pass_app
@handle_errors
def current(app: AppContext) -> None:
    """Show the currently playing track."""
    playing = app.api.get_current_track()
    item = (playing or {}).get("item")
    if not item:
        click.echo("Nothing is playing")
        return

    artists = ", ".join(artist.get("name", "") for artist in item.get("artists", []))
    state = "Playing" if playing.get("is_playing") else "Paused"
    click.echo(f"{state}: {artists} - {item.get('name', 'Unknown')}")


# =============================================================================
# Devices & library commands
# =============================================================================

@cli.command()
@pass_app
@handle_errors
def devices(app: AppContext) -> None:
    """List available playback devices."""
    available = app.api.get_available_devices()
    if not available:
        click.echo("No devices found. Open Spotify on a device and try again.")
        return

    for device in available:
        marker = "*" if device.get("is_active") else " "
        volume_percent = device.get("volume_percent")
        volume_str = f"{volume_percent}%" if volume_percent is not None else "-"
        click.echo(
            f"{marker} {device.get('name')} ({device.get('type')}) "
            f"volume {volume_str}  id={device.get('id')}"
        )


@cli.command()
@click.argument("device_id")
@click.option("--play", "start_playing", is_flag=True, help="Start playing on the new device")
@pass_app
@handle_errors
def transfer(app: AppContext, device_id: str, start_playing: bool) -> None:
    """Move playback to another device."""
    app.api.transfer_playback(device_id, play=start_playing)
    click.echo(f"Playback transferred to {device_id}")


@cli.command()
@click.option("--limit", type=click.IntRange(1, 50), default=20, help="Number of playlists")
@pass_app
@handle_errors
def playlists(app: AppContext, limit: int) -> None:
    """List your playlists."""
    items = app.api.get_user_playlists(limit=limit)
    if not items:
        click.echo("No playlists found")
        return

    for playlist in items:
        total = (playlist.get("tracks") or {}).get("total", 0)
        click.echo(f"{playlist.get('name')} ({total} tracks)  {playlist.get('uri')}")


@cli.command()
@click.argument("query")
@click.option("--type", "types", multiple=True,
              type=click.Choice(["track", "album", "artist", "playlist"]),
              help="Item type to search (repeatable, default: track)")
@click.option("--limit", type=click.IntRange(1, 50), default=10, help="Results per type")
@click.option("--play", "play_first", is_flag=True, help="Play the first result")
@device_option
@pass_app
@handle_errors
def search(app: AppContext, query: str, types: tuple[str, ...], limit: int,
           play_first: bool, device_id: Optional[str]) -> None:
    """Search the Spotify catalog."""
    types = list(types) or ["track"]
    results = app.api.search(query, types=types, limit=limit)

    first = None
    for type_name in types:
        for item in (results.get(f"{type_name}s") or {}).get("items") or []:
            if not item:
                continue
            if first is None:
                first = PlayTarget(item["uri"], f"{type_name} {item.get('name')}")
            click.echo(f"[{type_name}] {item.get('name')}  {item.get('uri')}")

    if first is None:
        if play_first:
            raise NoSearchResults(query)
        click.echo(f"No results for '{query}'")
        return

    if play_first:
        _start_playback(app, first, device_id)


def main() -> None:
    """
    Entry point for the CLI.

    This function is called when running `spot-control` from the command line.
    """
    cli()


if __name__ == "__main__":
    main()
