"""
Tests for the vault API endpoints.

Uses FastAPI TestClient against a VaultStore injected with set_vault_store().
Auth bypassed via dependency_overrides.
"""

import json
import time

import pytest
from fastapi.testclient import TestClient

from citadel_otp.api.main import app
from citadel_otp.api.security import verify_session_token
from citadel_otp.api.vault_routes import get_auto_lock_timer, get_vault_store, set_vault_store
from citadel_otp.core.user_preferences import PREF_AUTO_LOCK_MINUTES, UserPreferences
from citadel_otp.vault import MemoryKeyValueStore, VaultCrypto, VaultStore

URI = "otpauth://totp/GitHub:me%40x.com?secret=JBSWY3DPEHPK3PXP&issuer=GitHub"


@pytest.fixture
def vault(tmp_path, fast_kdf):
    store = VaultStore(
        durable=MemoryKeyValueStore(),
        preferences=UserPreferences(db_path=tmp_path / "prefs.db"),
        crypto=VaultCrypto(environment=lambda: ["test"]),
    )
    set_vault_store(store)
    yield store
    set_vault_store(None)


@pytest.fixture
def client(vault):
    """TestClient with auth bypass."""
    app.dependency_overrides[verify_session_token] = lambda: "test-token"
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def unauth_client():
    """TestClient without auth."""
    app.dependency_overrides.pop(verify_session_token, None)
    return TestClient(app)


@pytest.fixture
def unlocked(client):
    assert client.post("/api/vault/unlock", json={}).status_code == 200
    return client


class TestAuth:

    def test_requires_session_token(self, unauth_client):
        resp = unauth_client.get("/api/vault/status")
        assert resp.status_code in (401, 503)

    def test_session_token_flow(self, vault):
        app.dependency_overrides.clear()
        with TestClient(app) as client:
            token = client.get("/api/session").json()["token"]
            assert client.get("/api/vault/status").status_code == 401
            resp = client.get("/api/vault/status", headers={"X-Session-Token": token})
            assert resp.status_code == 200


class TestStatusAndLock:

    def test_first_run_status(self, client):
        data = client.get("/api/vault/status").json()
        assert data["state"] == "uninitialized"
        assert data["first_time_setup"] is True
        assert data["pin_enabled"] is False

    def test_locked_routes_return_423(self, client):
        resp = client.get("/api/vault/accounts")
        assert resp.status_code == 423
        assert resp.json()["kind"] == "locked"

    def test_unlock_then_lock(self, client):
        assert client.post("/api/vault/unlock", json={}).json()["account_count"] == 0
        assert client.get("/api/vault/status").json()["state"] == "unlocked"
        client.post("/api/vault/lock")
        assert client.get("/api/vault/accounts").status_code == 423

    def test_wrong_password_is_401(self, unlocked):
        unlocked.post("/api/vault/accounts/uri", json={"uri": URI})
        unlocked.post("/api/vault/lock")
        resp = unlocked.post("/api/vault/unlock", json={"password": "wrong"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Incorrect PIN/password or corrupted data"


class TestAccountRoutes:

    def test_add_and_list(self, unlocked):
        resp = unlocked.post("/api/vault/accounts", json={
            "issuer": "GitHub", "account": "me@x.com", "secret": "jbswy3dpehpk3pxp",
        })
        assert resp.status_code == 201
        account = resp.json()["account"]
        assert account["secret"] == "JBSWY3DPEHPK3PXP"

        listed = unlocked.get("/api/vault/accounts").json()["accounts"]
        assert [a["id"] for a in listed] == [account["id"]]

    def test_add_invalid_secret_is_400(self, unlocked):
        resp = unlocked.post("/api/vault/accounts", json={"secret": "bad!"})
        assert resp.status_code == 400
        assert resp.json()["kind"] == "validation"

    def test_search(self, unlocked):
        unlocked.post("/api/vault/accounts/uri", json={"uri": URI})
        assert len(unlocked.get("/api/vault/accounts", params={"q": "git"}).json()["accounts"]) == 1
        assert unlocked.get("/api/vault/accounts", params={"q": "zzz"}).json()["accounts"] == []

    def test_update_and_delete(self, unlocked):
        account_id = unlocked.post("/api/vault/accounts/uri", json={"uri": URI}).json()["account"]["id"]

        resp = unlocked.patch(f"/api/vault/accounts/{account_id}", json={"issuer": "GH"})
        assert resp.json()["account"]["issuer"] == "GH"

        assert unlocked.delete(f"/api/vault/accounts/{account_id}").status_code == 200
        assert unlocked.delete(f"/api/vault/accounts/{account_id}").status_code == 404

    def test_codes(self, unlocked):
        unlocked.post("/api/vault/accounts/uri", json={"uri": URI})
        (entry,) = unlocked.get("/api/vault/codes").json()["codes"]
        assert len(entry["code"]) == 6
        assert 1 <= entry["remaining"] <= 30
        assert "secret" not in entry

    def test_reorder(self, unlocked):
        ids = [
            unlocked.post("/api/vault/accounts", json={"account": f"u{i}", "secret": "JBSWY3DPEHPK3PXP"}).json()["account"]["id"]
            for i in range(3)
        ]
        resp = unlocked.post("/api/vault/accounts/reorder", json={"ordered_ids": list(reversed(ids))})
        assert resp.json()["order"] == list(reversed(ids))

    def test_folders(self, unlocked):
        folder = unlocked.post("/api/vault/folders", json={"name": "Work"}).json()["folder"]
        account_id = unlocked.post("/api/vault/accounts/uri", json={"uri": URI}).json()["account"]["id"]

        resp = unlocked.put(f"/api/vault/accounts/{account_id}/folder", json={"folder_id": folder["id"]})
        assert resp.json()["account"]["folderId"] == folder["id"]

        assert unlocked.delete(f"/api/vault/folders/{folder['id']}").status_code == 200
        account = unlocked.get(f"/api/vault/accounts/{account_id}").json()
        assert account["folderId"] is None

    def test_delete_all(self, unlocked):
        unlocked.post("/api/vault/accounts/uri", json={"uri": URI})
        assert unlocked.delete("/api/vault/accounts").status_code == 200
        assert unlocked.get("/api/vault/accounts").json()["accounts"] == []


class TestBackupRoutes:

    def test_export_import(self, unlocked):
        unlocked.post("/api/vault/accounts/uri", json={"uri": URI})
        backup = unlocked.post("/api/vault/backup/export", json={"password": "pw"}).json()["backup"]
        assert json.loads(backup)["accountCount"] == 1

        resp = unlocked.post("/api/vault/backup/import", json={"backup": backup, "password": "pw"})
        assert resp.json() == {"success": True, "imported": 0, "total": 1}

    def test_import_wrong_password_is_401(self, unlocked):
        unlocked.post("/api/vault/accounts/uri", json={"uri": URI})
        backup = unlocked.post("/api/vault/backup/export", json={"password": "pw"}).json()["backup"]
        resp = unlocked.post("/api/vault/backup/import", json={"backup": backup, "password": "nope"})
        assert resp.status_code == 401

    def test_import_foreign_file_is_422(self, unlocked):
        resp = unlocked.post("/api/vault/backup/import", json={"backup": '{"app": "x"}'})
        assert resp.status_code == 422
        assert resp.json()["kind"] == "format"

    def test_restore(self, unlocked):
        resp = unlocked.post("/api/vault/backup/restore", json=[
            {"issuer": "AWS", "account": "root", "secret": "MFRGGZDFMZTWQ2LK"},
        ])
        assert resp.json()["imported"] == 1


class TestPinRoutes:

    def test_setup_change_disable(self, unlocked, vault):
        assert unlocked.post("/api/vault/pin/setup", json={"pin": "1234"}).status_code == 200
        assert unlocked.get("/api/vault/status").json()["pin_enabled"] is True

        resp = unlocked.post("/api/vault/pin/change", json={"current_pin": "0000", "new_pin": "5678"})
        assert resp.status_code == 401
        resp = unlocked.post("/api/vault/pin/change", json={"current_pin": "1234", "new_pin": "5678"})
        assert resp.status_code == 200

        unlocked.post("/api/vault/lock")
        assert unlocked.post("/api/vault/unlock/pin", json={"pin": "5678"}).status_code == 200

        assert unlocked.post("/api/vault/pin/disable").status_code == 200
        assert unlocked.get("/api/vault/status").json()["pin_enabled"] is False

    def test_short_pin_is_400(self, unlocked):
        assert unlocked.post("/api/vault/pin/setup", json={"pin": "12"}).status_code == 400


class TestWipe:

    def test_requires_confirmation(self, unlocked):
        resp = unlocked.post("/api/vault/wipe", json={"confirmation": "yes"})
        assert resp.status_code == 400

    def test_wipe(self, unlocked):
        unlocked.post("/api/vault/accounts/uri", json={"uri": URI})
        assert unlocked.post("/api/vault/wipe", json={"confirmation": "DELETE"}).status_code == 200
        assert unlocked.get("/api/vault/status").json()["state"] == "uninitialized"

    def test_wipe_rotates_session_token(self, vault):
        app.dependency_overrides.clear()
        with TestClient(app) as client:
            old = {"X-Session-Token": client.get("/api/session").json()["token"]}
            client.post("/api/vault/unlock", json={}, headers=old)
            resp = client.post("/api/vault/wipe", json={"confirmation": "DELETE"}, headers=old)
            assert resp.status_code == 200
            new = {"X-Session-Token": resp.json()["token"]}

            assert new != old
            assert client.get("/api/vault/status", headers=old).status_code == 401
            assert client.get("/api/vault/status", headers=new).status_code == 200
            assert client.get("/api/session").json()["token"] == new["X-Session-Token"]


class TestAutoLock:
    """The app drives one idle timer per vault; `with TestClient` keeps its loop alive."""

    @pytest.fixture
    def live_client(self, vault):
        app.dependency_overrides[verify_session_token] = lambda: "test-token"
        with TestClient(app) as client:
            yield client
        app.dependency_overrides.clear()

    def test_idle_vault_locks(self, live_client, vault):
        vault.preferences.set(PREF_AUTO_LOCK_MINUTES, 0.002)  # 120 ms
        live_client.post("/api/vault/unlock", json={})
        live_client.post("/api/vault/accounts/uri", json={"uri": URI})

        time.sleep(0.6)
        assert not vault.is_unlocked
        assert live_client.get("/api/vault/status").json()["state"] == "locked"

    def test_activity_keeps_vault_open(self, live_client, vault):
        vault.preferences.set(PREF_AUTO_LOCK_MINUTES, 0.01)  # 600 ms
        live_client.post("/api/vault/unlock", json={})
        for _ in range(3):
            time.sleep(0.3)
            assert live_client.get("/api/vault/codes").status_code == 200
        assert vault.is_unlocked

    def test_unlock_arms_and_lock_cancels(self, live_client):
        timer = get_auto_lock_timer()
        assert not timer.active

        live_client.post("/api/vault/unlock", json={})
        assert timer.active

        live_client.post("/api/vault/lock")
        assert not timer.active

    def test_shutdown_cancels_timer(self, vault):
        app.dependency_overrides[verify_session_token] = lambda: "test-token"
        try:
            with TestClient(app) as client:
                client.post("/api/vault/unlock", json={})
                timer = get_auto_lock_timer()
                assert timer.active
        finally:
            app.dependency_overrides.clear()
        assert not timer.active
        assert not vault.is_unlocked


class TestSingleton:

    def test_default_store_uses_data_dir(self, tmp_path):
        store = get_vault_store()
        assert store is get_vault_store()
        assert str(store.durable.db_path).startswith(str(tmp_path))
