"""
Shared pytest fixtures for the Citadel OTP test suite.

Autouse fixtures below isolate tests from the live application data:
  - Audit logger     -> temp directory  (prevents fake events in audit_logs/)
  - User preferences -> temp directory  (prevents writes to data/user_preferences.db)
  - Vault store      -> reset singleton and its auto-lock timer (prevents writes to data/vault.db)
"""

import pytest


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path, monkeypatch):
    """Redirect the global AuditLogger to a temp directory for every test.

    Without this, any test that (directly or indirectly) calls
    ``get_audit_logger().log_event(...)`` writes into the real
    ``./audit_logs/`` directory.
    """
    import citadel_otp.core.audit_log as audit_mod

    # Reset the singleton so the next call to get_audit_logger() creates
    # a fresh instance pointing at the temp directory.
    old_logger = audit_mod._audit_logger
    audit_mod._audit_logger = None

    orig_init = audit_mod.AuditLogger.__init__

    def patched_init(self, log_dir=None):
        orig_init(self, log_dir=log_dir or tmp_path / "audit_logs")

    monkeypatch.setattr(audit_mod.AuditLogger, "__init__", patched_init)

    yield

    if audit_mod._audit_logger is not None:
        audit_mod._audit_logger.close()
    audit_mod._audit_logger = old_logger


@pytest.fixture(autouse=True)
def _isolate_user_preferences(tmp_path, monkeypatch):
    """Point the UserPreferences singleton default at a temp database."""
    import citadel_otp.core.user_preferences as prefs_mod

    old_instance = prefs_mod._instance
    prefs_mod._instance = None

    orig_init = prefs_mod.UserPreferences.__init__
    tmp_db = tmp_path / "user_preferences.db"

    def patched_init(self, db_path=None):
        orig_init(self, db_path=db_path or tmp_db)

    monkeypatch.setattr(prefs_mod.UserPreferences, "__init__", patched_init)

    yield

    prefs_mod._instance = old_instance


@pytest.fixture(autouse=True)
def _isolate_vault_store(tmp_path, monkeypatch):
    """Reset the API VaultStore singleton and keep its databases in tmp_path."""
    import citadel_otp.api.vault_routes as routes_mod

    monkeypatch.setenv("CITADEL_OTP_DATA_DIR", str(tmp_path / "data"))
    old_store, old_timer = routes_mod._vault_store, routes_mod._auto_lock
    routes_mod._vault_store = None
    routes_mod._auto_lock = None

    yield

    if routes_mod._auto_lock is not None:
        routes_mod._auto_lock.cancel()
    routes_mod._vault_store, routes_mod._auto_lock = old_store, old_timer


@pytest.fixture
def fast_kdf(monkeypatch):
    """Cut PBKDF2 iterations so vault-level tests do not spend seconds per save."""
    from citadel_otp.vault.encryption import VaultCrypto

    monkeypatch.setattr(VaultCrypto, "PBKDF2_ITERATIONS", 1_000)
    monkeypatch.setattr(VaultCrypto, "PIN_ITERATIONS", 1_000)
