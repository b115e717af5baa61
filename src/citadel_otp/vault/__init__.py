# Vault Module - Encrypted OTP Account Storage
#
# Encrypted account vault with PIN protection, folders and
# password-protected backup export/import.

from .auto_lock import AutoLockTimer
from .encryption import (
    DeviceDefault,
    EncryptionContext,
    UserPin,
    VaultCrypto,
    resolve_context,
    validate_pin,
)
from .models import Account, EncryptedBundle, Folder, ImportResult, PinRecord, VaultState
from .storage import KeyValueStore, MemoryKeyValueStore, SQLiteKeyValueStore
from .vault_store import VaultStore

__all__ = [
    "AutoLockTimer",
    "VaultStore",
    "VaultCrypto",
    "EncryptionContext",
    "UserPin",
    "DeviceDefault",
    "resolve_context",
    "validate_pin",
    "Account",
    "Folder",
    "EncryptedBundle",
    "PinRecord",
    "ImportResult",
    "VaultState",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SQLiteKeyValueStore",
]
