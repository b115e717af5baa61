# Vault - Persistence Tiers
#
# Durable tier  -> SQLiteKeyValueStore (encrypted vault blob, PIN record, folders)
# Session tier  -> MemoryKeyValueStore (decrypted account list while unlocked)
#
# Both expose the same async get/set/remove/clear shape so the vault
# store never cares where a value lives. Values are JSON-serializable.

import asyncio
import copy
import json
import logging
from contextlib import closing
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..core.db import connect as db_connect

logger = logging.getLogger(__name__)

# Well-known keys
KEY_VAULT = "vault"
KEY_PIN_DATA = "pinData"
KEY_FOLDERS = "folders"
KEY_ACCOUNTS = "accounts"


class KeyValueStore:
    """Async key/value interface shared by every persistence tier."""

    async def get(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    async def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    async def remove(self, key: str) -> None:
        raise NotImplementedError

    async def clear(self) -> None:
        raise NotImplementedError


class MemoryKeyValueStore(KeyValueStore):
    """Volatile store; gone on clear() or process exit.

    Values are deep-copied in and out so callers can never mutate
    stored state without going through set().
    """

    def __init__(self):
        self._data: Dict[str, Any] = {}

    async def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def clear(self) -> None:
        self._data.clear()


class SQLiteKeyValueStore(KeyValueStore):
    """SQLite-backed durable store with JSON-encoded values.

    Args:
        db_path: Path to SQLite file. Defaults to data/vault.db.
        table: Table holding this tier's keys.
    """

    def __init__(self, db_path: Optional[Union[str, Path]] = None, table: str = "vault_store"):
        if not table.isidentifier():
            raise ValueError(f"Invalid table name: {table!r}")
        self.db_path = Path(db_path) if db_path else Path("data/vault.db")
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.table = table
        self._init_database()

    def _init_database(self):
        with closing(db_connect(self.db_path)) as conn:
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.table} (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            conn.commit()

    # Synchronous primitives (run on a worker thread by the async API)

    def get_sync(self, key: str, default: Any = None) -> Any:
        with closing(db_connect(self.db_path)) as conn:
            row = conn.execute(
                f"SELECT value FROM {self.table} WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return default
        return json.loads(row[0])

    def set_sync(self, key: str, value: Any) -> None:
        payload = json.dumps(value)
        with closing(db_connect(self.db_path)) as conn:
            conn.execute(
                f"""INSERT INTO {self.table} (key, value, updated_at)
                    VALUES (?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at""",
                (key, payload),
            )
            conn.commit()

    def remove_sync(self, key: str) -> None:
        with closing(db_connect(self.db_path)) as conn:
            conn.execute(f"DELETE FROM {self.table} WHERE key = ?", (key,))
            conn.commit()

    def clear_sync(self) -> None:
        with closing(db_connect(self.db_path)) as conn:
            conn.execute(f"DELETE FROM {self.table}")
            conn.commit()
        logger.info("Durable store %s cleared", self.table)

    # Async API

    async def get(self, key: str, default: Any = None) -> Any:
        return await asyncio.to_thread(self.get_sync, key, default)

    async def set(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self.set_sync, key, value)

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self.remove_sync, key)

    async def clear(self) -> None:
        await asyncio.to_thread(self.clear_sync)
