# tests/test_store.py
"""Tests for the credential stores"""

import stat
import time
from datetime import timedelta

import pytest

from spot_control.core.exceptions import StoreError
from spot_control.core.store import MemoryCredentialStore, SqliteCredentialStore


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, temp_dir):
    """Run the same behavior checks against both backends"""
    if request.param == "memory":
        yield MemoryCredentialStore()
    else:
        store = SqliteCredentialStore(temp_dir / "credentials.db")
        yield store
        store.close()


class TestCredentialStore:
    """Behavior shared by all backends"""

    def test_put_get_forget(self, any_store):
        any_store.put("key", "value")
        assert any_store.get("key") == "value"

        any_store.forget("key")
        assert any_store.get("key") is None

    def test_missing_key_default(self, any_store):
        assert any_store.get("missing", "fallback") == "fallback"

    def test_forget_missing_key(self, any_store):
        any_store.forget("never_written")

    def test_overwrite(self, any_store):
        any_store.put("key", "first")
        any_store.put("key", "second")
        assert any_store.get("key") == "second"

    def test_expired_value_reads_as_missing(self, any_store):
        any_store.put("nonce", True, ttl=0.05)
        assert any_store.get("nonce") is True

        time.sleep(0.1)
        assert any_store.get("nonce") is None

    def test_timedelta_ttl(self, any_store):
        any_store.put("key", "value", ttl=timedelta(minutes=10))
        assert any_store.get("key") == "value"

    def test_forget_many(self, any_store):
        any_store.put("a", 1)
        any_store.put("b", 2)
        any_store.forget_many(["a", "b"])
        assert any_store.get("a") is None
        assert any_store.get("b") is None


class TestSqliteCredentialStore:
    """SQLite-specific behavior"""

    def test_persists_across_instances(self, temp_dir):
        path = temp_dir / "credentials.db"
        first = SqliteCredentialStore(path)
        first.put("spotify_client_id", "abc")
        first.close()

        second = SqliteCredentialStore(path)
        assert second.get("spotify_client_id") == "abc"
        second.close()

    def test_non_string_values(self, temp_dir):
        store = SqliteCredentialStore(temp_dir / "credentials.db")
        store.put("flag", True)
        store.put("number", 42)
        assert store.get("flag") is True
        assert store.get("number") == 42
        store.close()

    def test_creates_parent_directory(self, temp_dir):
        path = temp_dir / "nested" / "dir" / "credentials.db"
        store = SqliteCredentialStore(path)
        assert path.exists()
        store.close()

    def test_file_is_private(self, temp_dir):
        path = temp_dir / "credentials.db"
        SqliteCredentialStore(path).close()
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_purge_expired(self, temp_dir):
        store = SqliteCredentialStore(temp_dir / "credentials.db")
        store.put("old", "x", ttl=0.01)
        store.put("keep", "y")
        time.sleep(0.05)

        assert store.purge_expired() == 1
        assert store.get("keep") == "y"
        store.close()

    def test_unusable_path(self, temp_dir):
        """A directory where the database file should be is a StoreError"""
        (temp_dir / "credentials.db").mkdir()
        with pytest.raises(StoreError):
            SqliteCredentialStore(temp_dir / "credentials.db")
