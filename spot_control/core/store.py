"""
Credential stores for spot-control.

A credential store is a small key-value store with per-key expiry. It holds
the Spotify client id/secret, the current access/refresh token pair, the
token expiry timestamp and short-lived CSRF state nonces.

Keys:
    spotify_client_id           long TTL
    spotify_client_secret       long TTL
    spotify_access_token        long TTL
    spotify_refresh_token       long TTL
    spotify_token_expires_at    long TTL (ISO 8601, UTC)
    spotify_auth_state_<nonce>  STATE_TTL

No atomicity across keys is promised. Callers must treat partially written
token data as "not authenticated". Concurrent writers from several
processes are not synchronized: the last write wins.

Usage:
    store = SqliteCredentialStore(Path("~/.spot-control/credentials.db").expanduser())
    store.put("spotify_client_id", "abc", ttl=LONG_TTL)
    store.get("spotify_client_id")   # "abc"
    store.forget("spotify_client_id")
"""

import json
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import timedelta
from pathlib import Path
from typing import Any, Generator, Iterable

from spot_control.core.exceptions import StoreError


LONG_TTL = timedelta(days=365)
STATE_TTL = timedelta(minutes=10)

CLIENT_ID_KEY = "spotify_client_id"
CLIENT_SECRET_KEY = "spotify_client_secret"
ACCESS_TOKEN_KEY = "spotify_access_token"
REFRESH_TOKEN_KEY = "spotify_refresh_token"
EXPIRES_AT_KEY = "spotify_token_expires_at"
AUTH_STATE_PREFIX = "spotify_auth_state_"

TOKEN_KEYS = (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY, EXPIRES_AT_KEY)
CREDENTIAL_KEYS = (CLIENT_ID_KEY, CLIENT_SECRET_KEY)


def _expiry_from_ttl(ttl: timedelta | float | None) -> float | None:
    """Convert a TTL into an absolute epoch deadline (None = never expires)."""
    if ttl is None:
        return None
    seconds = ttl.total_seconds() if isinstance(ttl, timedelta) else float(ttl)
    return time.time() + seconds


class CredentialStore(ABC):
    """
    Abstract key-value store with per-key expiry.

    Any durable store with expiry qualifies. Implementations must return
    `default` for missing and expired keys alike.
    """

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under key, or default if absent/expired."""

    @abstractmethod
    def put(self, key: str, value: Any, ttl: timedelta | float | None = None) -> None:
        """Store value under key. ttl is a timedelta or seconds; None never expires."""

    @abstractmethod
    def forget(self, key: str) -> None:
        """Delete key. Deleting a missing key is not an error."""

    def forget_many(self, keys: Iterable[str]) -> None:
        for key in keys:
            self.forget(key)


class MemoryCredentialStore(CredentialStore):
    """
    In-process credential store.

    Thread-safe. Contents are lost when the process exits, so this is
    meant for tests and one-shot sessions.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: dict[str, tuple[Any, float | None]] = {}

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return default
            value, expires_at = entry
            if expires_at is not None and time.time() >= expires_at:
                del self._data[key]
                return default
            return value

    def put(self, key: str, value: Any, ttl: timedelta | float | None = None) -> None:
        with self._lock:
            self._data[key] = (value, _expiry_from_ttl(ttl))

    def forget(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        """Return the keys currently held, expired ones included."""
        with self._lock:
            return list(self._data)


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS credentials (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    expires_at REAL
);
"""


class SqliteCredentialStore(CredentialStore):
    """
    Thread-safe SQLite credential store.

    Uses a single persistent connection with thread locking for safety.
    All public methods acquire self._lock before executing. Values are
    JSON-encoded so non-string values survive the round trip.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

        if not db_path.parent.exists():
            try:
                db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StoreError(
                    f"Cannot create credential store directory: {db_path.parent}",
                    details={"path": str(db_path.parent), "original_error": str(e)}
                ) from e

        try:
            self._init_database()
        except sqlite3.Error as e:
            raise StoreError(
                f"Failed to initialize credential store: {e}",
                details={"path": str(db_path)}
            ) from e

        # Owner read/write only; not supported everywhere
        try:
            self.db_path.chmod(0o600)
        except OSError:
            pass

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Get the persistent database connection as a context manager.

        The connection is created once and reused for all operations.
        """
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                timeout=30.0,
                check_same_thread=False  # We handle thread safety with _lock
            )
        yield self._conn

    def _init_database(self) -> None:
        with self._get_connection() as conn:
            conn.executescript(_SCHEMA_SQL)
            conn.commit()

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            try:
                with self._get_connection() as conn:
                    row = conn.execute(
                        "SELECT value, expires_at FROM credentials WHERE key = ?", (key,)
                    ).fetchone()
                    if row is None:
                        return default

                    value, expires_at = row
                    if expires_at is not None and time.time() >= expires_at:
                        conn.execute("DELETE FROM credentials WHERE key = ?", (key,))
                        conn.commit()
                        return default
            except sqlite3.Error as e:
                raise StoreError(
                    f"Failed to read '{key}' from credential store: {e}",
                    details={"key": key, "path": str(self.db_path)}
                ) from e

        try:
            return json.loads(value)
        except (json.JSONDecodeError, TypeError):
            return default

    def put(self, key: str, value: Any, ttl: timedelta | float | None = None) -> None:
        with self._lock:
            try:
                with self._get_connection() as conn:
                    conn.execute("""
                        INSERT INTO credentials (key, value, expires_at)
                        VALUES (?, ?, ?)
                        ON CONFLICT(key) DO UPDATE SET
                            value = excluded.value,
                            expires_at = excluded.expires_at
                    """, (key, json.dumps(value), _expiry_from_ttl(ttl)))
                    conn.commit()
            except sqlite3.Error as e:
                raise StoreError(
                    f"Failed to write '{key}' to credential store: {e}",
                    details={"key": key, "path": str(self.db_path)}
                ) from e

    def forget(self, key: str) -> None:
        with self._lock:
            try:
                with self._get_connection() as conn:
                    conn.execute("DELETE FROM credentials WHERE key = ?", (key,))
                    conn.commit()
            except sqlite3.Error as e:
                raise StoreError(
                    f"Failed to delete '{key}' from credential store: {e}",
                    details={"key": key, "path": str(self.db_path)}
                ) from e

    def purge_expired(self) -> int:
        """
        Delete all expired rows.

        Returns:
            Number of rows removed.
        """
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "DELETE FROM credentials WHERE expires_at IS NOT NULL AND expires_at <= ?",
                    (time.time(),)
                )
                conn.commit()
                return cursor.rowcount
