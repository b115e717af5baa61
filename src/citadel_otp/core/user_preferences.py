# User Preferences Store
# SQLite-backed key/value store for non-sensitive settings.
# Values are JSON-encoded so booleans and ints survive a round trip.
#
# Nothing secret lives here: accent color, auto-lock minutes, the
# PIN-enabled flag and UI toggles.

import json
import logging
import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Well-known preference keys
PREF_ACCENT_COLOR = "accentColor"
PREF_AUTO_LOCK_MINUTES = "autoLockMinutes"
PREF_PRIVACY_MODE = "privacyMode"
PREF_COMPACT_LAYOUT = "compactLayout"
PREF_CLOSE_AFTER_COPY = "closeAfterCopy"
PREF_AUTO_FOCUS_SEARCH = "autoFocusSearch"
PREF_PIN_ENABLED = "pinEnabled"

DEFAULT_PREFERENCES: Dict[str, Any] = {
    PREF_ACCENT_COLOR: "#00E5FF",
    PREF_AUTO_LOCK_MINUTES: 5,
    PREF_PRIVACY_MODE: False,
    PREF_COMPACT_LAYOUT: False,
    PREF_CLOSE_AFTER_COPY: True,
    PREF_AUTO_FOCUS_SEARCH: True,
    PREF_PIN_ENABLED: True,
}


class UserPreferences:
    """SQLite key/value store for user preferences.

    Args:
        db_path: Path to SQLite file. Defaults to data/user_preferences.db.
    """

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = Path(db_path) if db_path else Path("data/user_preferences.db")
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _init_database(self):
        with closing(self._connect()) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS user_preferences (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.commit()

    def _connect(self) -> sqlite3.Connection:
        from .db import connect as db_connect

        return db_connect(self.db_path, row_factory=True)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a preference value by key. Returns default if not found."""
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT value FROM user_preferences WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return default
        return json.loads(row["value"])

    def set(self, key: str, value: Any) -> None:
        """Set a preference value (upsert)."""
        now = datetime.now(timezone.utc).isoformat()
        with closing(self._connect()) as conn:
            conn.execute(
                """INSERT INTO user_preferences (key, value, updated_at)
                   VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET
                       value = excluded.value,
                       updated_at = excluded.updated_at""",
                (key, json.dumps(value), now),
            )
            conn.commit()

    def set_many(self, prefs: Dict[str, Any]) -> None:
        """Set several preferences at once."""
        for key, value in prefs.items():
            self.set(key, value)

    def get_all(self) -> Dict[str, Any]:
        """Return stored preferences only (no defaults)."""
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT key, value FROM user_preferences ORDER BY key"
            ).fetchall()
        return {row["key"]: json.loads(row["value"]) for row in rows}

    def get_preferences(self) -> Dict[str, Any]:
        """Return defaults overlaid with stored preferences."""
        return {**DEFAULT_PREFERENCES, **self.get_all()}

    def delete(self, key: str) -> bool:
        """Delete a preference. Returns True if the key existed."""
        with closing(self._connect()) as conn:
            cur = conn.execute(
                "DELETE FROM user_preferences WHERE key = ?", (key,)
            )
            conn.commit()
            return cur.rowcount > 0

    def clear(self) -> None:
        """Delete every stored preference."""
        with closing(self._connect()) as conn:
            conn.execute("DELETE FROM user_preferences")
            conn.commit()
        logger.info("User preferences cleared")


# ── Singleton ────────────────────────────────────────────────────────

_instance: Optional[UserPreferences] = None


def get_user_preferences() -> UserPreferences:
    """Get or create the singleton UserPreferences instance."""
    global _instance
    if _instance is None:
        _instance = UserPreferences()
    return _instance


def set_user_preferences(instance: Optional[UserPreferences]) -> None:
    """Replace the singleton (for testing)."""
    global _instance
    _instance = instance
