"""Tests for the durable (SQLite) and session (memory) key/value tiers."""

import pytest

from citadel_otp.vault.storage import MemoryKeyValueStore, SQLiteKeyValueStore


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return MemoryKeyValueStore()
    return SQLiteKeyValueStore(tmp_path / "vault.db")


class TestKeyValueStore:

    @pytest.mark.asyncio
    async def test_get_missing_returns_default(self, store):
        assert await store.get("nope") is None
        assert await store.get("nope", []) == []

    @pytest.mark.asyncio
    async def test_set_and_get_json_values(self, store):
        value = {"salt": "abc", "n": 1, "flag": True, "items": [1, None]}
        await store.set("vault", value)
        assert await store.get("vault") == value

    @pytest.mark.asyncio
    async def test_overwrite(self, store):
        await store.set("k", 1)
        await store.set("k", 2)
        assert await store.get("k") == 2

    @pytest.mark.asyncio
    async def test_remove(self, store):
        await store.set("k", "v")
        await store.remove("k")
        assert await store.get("k") is None
        # removing a missing key is fine
        await store.remove("k")

    @pytest.mark.asyncio
    async def test_clear(self, store):
        await store.set("a", 1)
        await store.set("b", 2)
        await store.clear()
        assert await store.get("a") is None
        assert await store.get("b") is None

    @pytest.mark.asyncio
    async def test_returned_values_are_copies(self, store):
        await store.set("accounts", [{"id": "1"}])
        fetched = await store.get("accounts")
        fetched.append({"id": "2"})
        assert await store.get("accounts") == [{"id": "1"}]


class TestSQLiteKeyValueStore:

    def test_creates_parent_dirs(self, tmp_path):
        SQLiteKeyValueStore(tmp_path / "sub" / "dir" / "vault.db")
        assert (tmp_path / "sub" / "dir" / "vault.db").exists()

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path):
        db = tmp_path / "vault.db"
        await SQLiteKeyValueStore(db).set("pinData", {"hash": "h", "salt": "s"})
        assert await SQLiteKeyValueStore(db).get("pinData") == {"hash": "h", "salt": "s"}

    @pytest.mark.asyncio
    async def test_tables_are_independent(self, tmp_path):
        db = tmp_path / "vault.db"
        a = SQLiteKeyValueStore(db, table="tier_a")
        b = SQLiteKeyValueStore(db, table="tier_b")
        await a.set("k", "a")
        await b.clear()
        assert await a.get("k") == "a"

    def test_rejects_bad_table_name(self, tmp_path):
        with pytest.raises(ValueError):
            SQLiteKeyValueStore(tmp_path / "vault.db", table="x; DROP TABLE y")

    def test_wal_mode(self, tmp_path):
        from contextlib import closing
        from citadel_otp.core.db import connect

        store = SQLiteKeyValueStore(tmp_path / "vault.db")
        store.set_sync("k", 1)
        with closing(connect(store.db_path)) as conn:
            mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
        assert mode == "wal"
