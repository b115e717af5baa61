"""Tests for UserPreferences SQLite key/value store.

Covers:
  - Database file creation
  - get / set / get_all / delete / clear operations
  - JSON value types survive a round trip
  - Defaults overlay
  - Singleton management
"""

import pytest

from citadel_otp.core.user_preferences import (
    DEFAULT_PREFERENCES,
    PREF_AUTO_LOCK_MINUTES,
    PREF_PIN_ENABLED,
    UserPreferences,
    get_user_preferences,
    set_user_preferences,
)


class TestUserPreferences:
    """Core preference store operations."""

    @pytest.fixture
    def prefs(self, tmp_path):
        return UserPreferences(db_path=tmp_path / "prefs.db")

    def test_creates_db_file(self, tmp_path):
        UserPreferences(db_path=tmp_path / "prefs.db")
        assert (tmp_path / "prefs.db").exists()

    def test_creates_parent_dirs(self, tmp_path):
        UserPreferences(db_path=tmp_path / "sub" / "dir" / "prefs.db")
        assert (tmp_path / "sub" / "dir" / "prefs.db").exists()

    def test_get_returns_default_when_missing(self, prefs):
        assert prefs.get("nonexistent") is None
        assert prefs.get("nonexistent", "fallback") == "fallback"

    def test_set_and_get(self, prefs):
        prefs.set("accentColor", "#FF0000")
        assert prefs.get("accentColor") == "#FF0000"

    def test_types_survive(self, prefs):
        prefs.set(PREF_PIN_ENABLED, False)
        prefs.set(PREF_AUTO_LOCK_MINUTES, 15)
        assert prefs.get(PREF_PIN_ENABLED) is False
        assert prefs.get(PREF_AUTO_LOCK_MINUTES) == 15

    def test_set_upsert_overwrites(self, prefs):
        prefs.set("privacyMode", False)
        prefs.set("privacyMode", True)
        assert prefs.get("privacyMode") is True

    def test_set_many(self, prefs):
        prefs.set_many({"a": 1, "b": "two"})
        assert prefs.get_all() == {"a": 1, "b": "two"}

    def test_get_all_empty(self, prefs):
        assert prefs.get_all() == {}

    def test_get_preferences_overlays_defaults(self, prefs):
        prefs.set(PREF_AUTO_LOCK_MINUTES, 0)
        merged = prefs.get_preferences()
        assert merged[PREF_AUTO_LOCK_MINUTES] == 0
        assert merged["accentColor"] == "#00E5FF"
        assert set(merged) >= set(DEFAULT_PREFERENCES)

    def test_defaults(self):
        assert DEFAULT_PREFERENCES == {
            "accentColor": "#00E5FF",
            "autoLockMinutes": 5,
            "privacyMode": False,
            "compactLayout": False,
            "closeAfterCopy": True,
            "autoFocusSearch": True,
            "pinEnabled": True,
        }

    def test_delete_existing_key(self, prefs):
        prefs.set("x", "val")
        assert prefs.delete("x") is True
        assert prefs.get("x") is None

    def test_delete_nonexistent_key(self, prefs):
        assert prefs.delete("nope") is False

    def test_clear(self, prefs):
        prefs.set_many({"a": 1, "b": 2})
        prefs.clear()
        assert prefs.get_all() == {}


class TestSingleton:
    """Singleton get/set helpers."""

    def test_singleton_roundtrip(self, tmp_path):
        instance = UserPreferences(db_path=tmp_path / "singleton.db")
        set_user_preferences(instance)
        assert get_user_preferences() is instance
        # Reset global
        set_user_preferences(None)

    def test_singleton_created_on_demand(self):
        first = get_user_preferences()
        assert get_user_preferences() is first
