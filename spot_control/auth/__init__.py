"""
Spotify OAuth2 authentication for spot-control.

Components:
    tokens: TokenSet and TokenManager (token storage, refresh, code exchange)
    callback_server: One-shot local HTTP server receiving the OAuth redirect
    flow: AuthorizationFlow tying browser, callback server and exchange together

Usage:
    from spot_control.auth import TokenManager, AuthorizationFlow

    manager = TokenManager(store, config.spotify)
    if not manager.ensure_authenticated():
        AuthorizationFlow(manager, config.spotify).run(timeout=120)
"""

from spot_control.auth.callback_server import (
    CallbackResult,
    CallbackServer,
    is_port_available,
)
from spot_control.auth.flow import AuthorizationFlow, FlowState, open_browser
from spot_control.auth.tokens import TokenManager, TokenSet

__all__ = [
    "TokenManager",
    "TokenSet",
    "CallbackServer",
    "CallbackResult",
    "is_port_available",
    "AuthorizationFlow",
    "FlowState",
    "open_browser",
]
