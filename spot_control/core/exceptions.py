"""
Exception classes for spot-control.

This module defines all custom exceptions used throughout the application.
Each exception maps to one failure mode that needs a different remedy from
the caller, so they should never be collapsed into generic errors.

Exception Hierarchy:
    SpotControlError (base)
        ConfigError - Configuration file issues
        StoreError - Credential store issues
        AuthError - OAuth flow and token issues
            PortUnavailable - Callback port already bound
            AuthTimeout - No callback received in time
            AuthorizationDenied - User or provider refused authorization
            NotAuthenticated - No usable access token
            MissingCredentials - No client id/secret configured
            TokenExchangeError - Token endpoint rejected a code or refresh token
        SpotifyApiError - Web API request failures
            TokenExpired - 401 despite a locally valid token
            RateLimited - 429 with Retry-After
            NoActiveDevice - 404 on a player endpoint
            PremiumRequired - 403 with PREMIUM_REQUIRED
            ActionNotPermitted - any other 403
        NoSearchResults - A search query matched nothing playable
"""


class SpotControlError(Exception):
    """
    Base exception for all spot-control errors.

    All custom exceptions in this project inherit from this class,
    allowing callers to catch all spot-control errors with a single
    except clause if desired.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (e.g., port, status code).

    Example:
        try:
            api.play("spotify:playlist:xyz")
        except SpotControlError as e:
            logger.error(f"Operation failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description that will be shown to the user.
            details: Optional dictionary containing additional context about the error.
                     Common keys include:
                     - 'port': Callback port involved in the error
                     - 'status_code': HTTP status returned by Spotify
                     - 'endpoint': API endpoint that failed
                     - 'original_error': The underlying exception if wrapping another error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(SpotControlError):
    """
    Raised when there's an issue with the configuration file or environment.

    Common causes:
        - Explicit config path not found
        - config.yaml has invalid YAML syntax
        - Redirect URI not using 127.0.0.1
        - Invalid field types (e.g., scopes not a list)
    """
    pass


class StoreError(SpotControlError):
    """
    Raised when the credential store cannot be read or written.

    Common causes:
        - Parent directory of the database does not exist
        - Permission denied
        - Corrupted SQLite file
    """
    pass


class AuthError(SpotControlError):
    """Base class for OAuth flow and token lifecycle failures."""
    pass


class PortUnavailable(AuthError):
    """
    Raised when the local callback port cannot be bound.

    Recoverable: the user may have another process (or an abandoned
    previous login) holding the port. Never retried automatically.
    """

    def __init__(self, port: int, details: dict | None = None) -> None:
        super().__init__(
            f"Port {port} is not available. Make sure nothing else is listening on it, "
            f"or change the redirect URI in your Spotify app settings.",
            details={"port": port, **(details or {})}
        )
        self.port = port


class AuthTimeout(AuthError):
    """Raised when no authorization callback arrives within the timeout."""

    def __init__(self, timeout: float) -> None:
        super().__init__(
            f"Authorization timed out after {timeout:g} seconds",
            details={"timeout": timeout}
        )
        self.timeout = timeout


class AuthorizationDenied(AuthError):
    """
    Raised when the callback reports an error instead of a code.

    Attributes:
        reason: The 'error' query parameter from the callback
                (e.g. 'access_denied'), 'no_code' or 'state_mismatch'.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(
            f"Authorization denied: {reason}",
            details={"reason": reason}
        )
        self.reason = reason


class NotAuthenticated(AuthError):
    """Raised before any network call when no access token is available."""

    def __init__(self, message: str = "Spotify authentication required. Run: spot-control login") -> None:
        super().__init__(message)


class MissingCredentials(AuthError):
    """Raised when no client id/secret is configured for the OAuth flow."""

    def __init__(self) -> None:
        super().__init__(
            "Spotify client credentials are not configured. "
            "Run: spot-control setup --client-id ... --client-secret ..."
        )


class TokenExchangeError(AuthError):
    """Raised when the token endpoint rejects an authorization code or refresh token."""
    pass


class SpotifyApiError(SpotControlError):
    """
    Raised when a Spotify Web API request fails.

    This is the generic variant for transport errors and unmapped
    non-2xx responses. Specific statuses use the subclasses below.

    Attributes:
        status_code: HTTP status code, or None for transport failures.

    Example:
        raise SpotifyApiError(
            "Spotify API error: Service unavailable",
            status_code=503,
            details={'endpoint': 'me/player'}
        )
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict | None = None
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code


class TokenExpired(SpotifyApiError):
    """
    Raised on 401 from the Web API.

    The token was already validated as unexpired locally, so a 401 means
    it was revoked at the provider. Not retried; the caller should run a
    full re-authentication.
    """

    def __init__(self, details: dict | None = None) -> None:
        super().__init__(
            "Spotify token expired or was revoked. Please re-authenticate: spot-control login",
            status_code=401,
            details=details
        )


class RateLimited(SpotifyApiError):
    """
    Raised on 429 from the Web API.

    Attributes:
        retry_after: Seconds to wait before retrying, from the Retry-After header.
    """

    def __init__(self, retry_after: int, details: dict | None = None) -> None:
        super().__init__(
            f"Spotify API rate limit exceeded. Please try again in {retry_after} seconds.",
            status_code=429,
            details={"retry_after": retry_after, **(details or {})}
        )
        self.retry_after = retry_after


class NoActiveDevice(SpotifyApiError):
    """Raised on 404 from a player endpoint."""

    def __init__(self, details: dict | None = None) -> None:
        super().__init__(
            "No active Spotify device found. Please open Spotify on a device and try again.",
            status_code=404,
            details=details
        )


class PremiumRequired(SpotifyApiError):
    """Raised on 403 with reason PREMIUM_REQUIRED."""

    def __init__(self, details: dict | None = None) -> None:
        super().__init__(
            "Premium Spotify subscription required for this action.",
            status_code=403,
            details=details
        )


class ActionNotPermitted(SpotifyApiError):
    """
    Raised on any other 403.

    Usually means the player is already in the requested state
    (e.g. play while already playing), so no action is needed.
    """

    def __init__(self, reason: str | None = None, details: dict | None = None) -> None:
        super().__init__(
            "Already in the requested state or action not allowed.",
            status_code=403,
            details={"reason": reason, **(details or {})}
        )
        self.reason = reason


class NoSearchResults(SpotControlError):
    """
    Raised when a free-text query resolves to nothing playable.

    Attributes:
        query: The search text as given by the user.
    """

    def __init__(self, query: str) -> None:
        super().__init__(
            f'No results found for: "{query}"',
            details={"query": query}
        )
        self.query = query
