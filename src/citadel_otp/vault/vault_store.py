# Vault Store - Encrypted OTP Account Vault
#
# Lock/unlock state machine, account CRUD with re-encryption on every
# mutation, folders, PIN management and backup export/import.
#
# The durable tier only ever holds the encrypted bundle; the decrypted
# account list lives in the session tier while unlocked.

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, TypeVar, Union

from ..core import EventSeverity, EventType, get_audit_logger
from ..core.exceptions import (
    AuthenticationFailure,
    FormatError,
    NotFoundError,
    ValidationError,
    VaultError,
    VaultLockedError,
)
from ..core.user_preferences import PREF_PIN_ENABLED, UserPreferences, get_user_preferences
from ..otp.totp import CodeEngine, format_display
from ..otp.uri import ParsedCredential, parse_uri
from .backup_format import build_backup, dumps_backup, parse_account_array, parse_backup
from .encryption import DeviceDefault, EncryptionContext, UserPin, VaultCrypto, resolve_context
from .models import (
    Account,
    EncryptedBundle,
    Folder,
    ImportResult,
    PinRecord,
    VaultState,
    new_id,
    now_ms,
)
from .storage import (
    KEY_ACCOUNTS,
    KEY_FOLDERS,
    KEY_PIN_DATA,
    KEY_VAULT,
    KeyValueStore,
    MemoryKeyValueStore,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

PasswordLike = Union[str, EncryptionContext, None]

# Fields update_account() may change; everything else is managed here
_UPDATABLE_FIELDS = {
    "issuer": "issuer",
    "account": "account",
    "label": "account",
    "secret": "secret",
    "algorithm": "algorithm",
    "digits": "digits",
    "period": "period",
    "folderId": "folder_id",
    "folder_id": "folder_id",
}


class VaultStore:
    """
    Encrypted vault of OTP accounts.

    States:
    - UNINITIALIZED: no durable vault, no PIN
    - LOCKED: durable vault and/or PIN exist, no session
    - UNLOCKED: session populated, encryption context held in memory

    Every public operation runs under one asyncio.Lock, so each
    read-modify-save sequence is atomic even with concurrent callers.
    If the durable write fails the session list is rolled back and the
    error propagates; session and durable state never diverge.
    """

    def __init__(
        self,
        durable: KeyValueStore,
        session: Optional[KeyValueStore] = None,
        preferences: Optional[UserPreferences] = None,
        crypto: Optional[VaultCrypto] = None,
        code_engine: Optional[CodeEngine] = None,
        audit_logger=None,
    ):
        self.durable = durable
        self.session = session or MemoryKeyValueStore()
        self.preferences = preferences or get_user_preferences()
        self.crypto = crypto or VaultCrypto()
        self.code_engine = code_engine or CodeEngine()
        self.audit = audit_logger or get_audit_logger()

        self._lock = asyncio.Lock()
        self._context: Optional[EncryptionContext] = None

    # ── State ────────────────────────────────────────────────────────

    @property
    def is_unlocked(self) -> bool:
        return self._context is not None

    async def get_state(self) -> VaultState:
        if self.is_unlocked:
            return VaultState.UNLOCKED
        if await self.durable.get(KEY_VAULT) is not None or await self.is_pin_setup():
            return VaultState.LOCKED
        return VaultState.UNINITIALIZED

    async def vault_exists(self) -> bool:
        return await self.durable.get(KEY_VAULT) is not None

    async def is_first_time_setup(self) -> bool:
        """True when there is neither a PIN nor a vault."""
        return not await self.is_pin_setup() and not await self.vault_exists()

    def _require_unlocked(self) -> EncryptionContext:
        if self._context is None:
            raise VaultLockedError()
        return self._context

    # ── Internals ────────────────────────────────────────────────────

    async def _read_accounts(self) -> List[Account]:
        raw = await self.session.get(KEY_ACCOUNTS, [])
        return [Account.from_dict(item) for item in raw]

    async def _read_folders(self) -> List[Folder]:
        raw = await self.durable.get(KEY_FOLDERS, [])
        return [Folder.from_dict(item) for item in raw]

    async def _write_vault(self, accounts: Sequence[Account], context: EncryptionContext) -> None:
        """Serialize + encrypt the full list and overwrite the durable blob."""
        created = await self.durable.get(KEY_VAULT) is None
        plaintext = json.dumps([a.to_dict() for a in accounts])
        bundle = await asyncio.to_thread(self.crypto.encrypt, plaintext, context)
        await self.durable.set(KEY_VAULT, bundle.to_dict())

        if created:
            self.audit.log_vault_event(
                EventType.VAULT_CREATED,
                "Encrypted vault created",
                details={"pin_protected": isinstance(context, UserPin)},
            )

    async def _commit(
        self,
        accounts: Sequence[Account],
        context: Optional[EncryptionContext] = None,
    ) -> None:
        """Write the session list, then persist it; roll back on failure."""
        context = context or self._require_unlocked()
        previous = await self.session.get(KEY_ACCOUNTS)
        await self.session.set(KEY_ACCOUNTS, [a.to_dict() for a in accounts])
        try:
            await self._write_vault(accounts, context)
        except Exception as e:
            if previous is None:
                await self.session.remove(KEY_ACCOUNTS)
            else:
                await self.session.set(KEY_ACCOUNTS, previous)
            self.audit.log_event(
                event_type=EventType.VAULT_ERROR,
                severity=EventSeverity.CRITICAL,
                message=f"Vault save failed, session rolled back: {type(e).__name__}",
            )
            raise

    async def _transact(self, mutate: Callable[[List[Account]], T]) -> T:
        """Read the session list, mutate it in place, write back and save."""
        self._require_unlocked()
        accounts = await self._read_accounts()
        result = mutate(accounts)
        await self._commit(accounts)
        return result

    @staticmethod
    def _find(accounts: List[Account], account_id: str) -> int:
        for index, account in enumerate(accounts):
            if account.id == account_id:
                return index
        raise NotFoundError(f"Account not found: {account_id}")

    async def _ensure_folder(self, folder_id: Optional[str]) -> None:
        if folder_id is None:
            return
        if not any(f.id == folder_id for f in await self._read_folders()):
            raise NotFoundError(f"Folder not found: {folder_id}")

    # ── Lock / unlock ────────────────────────────────────────────────

    async def unlock(self, password: PasswordLike = None) -> List[Account]:
        """
        Decrypt the vault into the session.

        With no durable vault (first run) this yields an empty list and
        unlocks straight away. A falsy password means the default key.

        Raises:
            AuthenticationFailure: wrong password or corrupted vault;
                the vault stays as it was
        """
        context = resolve_context(password)
        async with self._lock:
            raw = await self.durable.get(KEY_VAULT)
            if raw is None:
                accounts: List[Account] = []
            else:
                try:
                    bundle = EncryptedBundle.from_dict(raw)
                    plaintext = await asyncio.to_thread(self.crypto.decrypt, bundle, context)
                    accounts = [Account.from_dict(item) for item in parse_account_array(plaintext)]
                except VaultError:
                    self.audit.log_vault_event(
                        EventType.VAULT_UNLOCK_FAILED,
                        "Unlock failed: incorrect PIN/password or corrupted data",
                        severity=EventSeverity.INVESTIGATE,
                    )
                    raise AuthenticationFailure() from None

            await self.session.set(KEY_ACCOUNTS, [a.to_dict() for a in accounts])
            self._context = context

        self.audit.log_vault_event(
            EventType.VAULT_UNLOCKED,
            "Vault unlocked",
            details={"accounts": len(accounts), "pin_protected": isinstance(context, UserPin)},
        )
        return accounts

    async def unlock_with_pin(self, pin: str) -> List[Account]:
        """
        Check the PIN against the stored record, then unlock with it.

        Raises:
            AuthenticationFailure: no PIN record, or the PIN does not match
        """
        record = await self._get_pin_record()
        valid = record is not None and await asyncio.to_thread(
            self.crypto.verify_pin, pin, record.hash, record.salt
        )
        if not valid:
            self.audit.log_vault_event(
                EventType.VAULT_UNLOCK_FAILED,
                "Unlock failed: incorrect PIN",
                severity=EventSeverity.INVESTIGATE,
            )
            raise AuthenticationFailure()
        return await self.unlock(UserPin(pin))

    async def lock(self) -> None:
        """Drop the session and the held context. No re-encryption needed."""
        async with self._lock:
            await self.session.clear()
            self._context = None
            self.crypto.clear_default_key_cache()

        self.audit.log_vault_event(EventType.VAULT_LOCKED, "Vault locked")

    async def save(self, password: PasswordLike = None) -> None:
        """
        Re-encrypt the session list into the durable tier.

        With a password, the vault is re-keyed to it and that context is
        held from now on; without one the held context is used.
        """
        async with self._lock:
            current = self._require_unlocked()
            context = current if password is None else resolve_context(password)
            await self._commit(await self._read_accounts(), context)
            self._context = context

    # ── Accounts ─────────────────────────────────────────────────────

    async def get_accounts(self) -> List[Account]:
        self._require_unlocked()
        return await self._read_accounts()

    async def get_account(self, account_id: str) -> Account:
        accounts = await self.get_accounts()
        return accounts[self._find(accounts, account_id)]

    async def search_accounts(self, query: Optional[str]) -> List[Account]:
        """Case-insensitive substring match over issuer and account."""
        accounts = await self.get_accounts()
        if not query or not query.strip():
            return accounts
        q = query.lower()
        return [
            a for a in accounts
            if q in (a.issuer or "").lower() or q in (a.account or "").lower()
        ]

    async def add_account(self, data: Union[Mapping[str, Any], ParsedCredential]) -> Account:
        """
        Validate and append a new account, then re-encrypt the vault.

        Raises:
            ValidationError: bad secret, digits, period or algorithm
            NotFoundError: folderId refers to an unknown folder
        """
        if isinstance(data, ParsedCredential):
            data = data.to_dict()
        account = Account.create(data)

        async with self._lock:
            self._require_unlocked()
            await self._ensure_folder(account.folder_id)
            await self._transact(lambda accounts: accounts.append(account))

        self.audit.log_vault_event(
            EventType.ACCOUNT_ADDED,
            f"Account added: {account.issuer or 'Unknown'}",
            details={"account_id": account.id},
        )
        return account

    async def add_account_from_uri(self, uri: str) -> Account:
        """Parse an otpauth:// URI and add the resulting account."""
        return await self.add_account(parse_uri(uri))

    async def update_account(self, account_id: str, updates: Mapping[str, Any]) -> Account:
        """
        Apply field updates to one account. The id never changes.

        Raises:
            NotFoundError: unknown id (nothing is written)
            ValidationError: the updated account is invalid (nothing is written)
        """
        async with self._lock:
            self._require_unlocked()
            if "folderId" in updates or "folder_id" in updates:
                await self._ensure_folder(updates.get("folderId", updates.get("folder_id")))

            def mutate(accounts: List[Account]) -> Account:
                index = self._find(accounts, account_id)
                merged = accounts[index].to_dict()
                for key, value in updates.items():
                    if key in _UPDATABLE_FIELDS:
                        merged[_field_wire_name(_UPDATABLE_FIELDS[key])] = value
                merged["id"] = account_id
                merged["updatedAt"] = now_ms()
                try:
                    updated = Account.from_dict(merged)
                except FormatError as e:
                    raise ValidationError(e.message) from None
                accounts[index] = updated
                return updated

            updated = await self._transact(mutate)

        self.audit.log_vault_event(
            EventType.ACCOUNT_UPDATED,
            "Account updated",
            details={"account_id": account_id, "fields": sorted(k for k in updates if k in _UPDATABLE_FIELDS)},
        )
        return updated

    async def delete_account(self, account_id: str) -> None:
        """
        Raises:
            NotFoundError: unknown id (nothing is written)
        """
        async with self._lock:
            await self._transact(lambda accounts: accounts.pop(self._find(accounts, account_id)))

        self.audit.log_vault_event(
            EventType.ACCOUNT_DELETED,
            "Account deleted",
            details={"account_id": account_id},
        )

    async def reorder_accounts(self, ordered_ids: Iterable[str]) -> List[Account]:
        """
        Put accounts in the given order.

        Unknown and repeated ids are ignored. Accounts missing from
        ordered_ids keep their relative order after the listed ones.
        """
        ordered_ids = list(ordered_ids)

        def mutate(accounts: List[Account]) -> List[Account]:
            by_id = {a.id: a for a in accounts}
            reordered: List[Account] = []
            for account_id in ordered_ids:
                account = by_id.pop(account_id, None)
                if account is not None:
                    reordered.append(account)
            reordered.extend(a for a in accounts if a.id in by_id)
            accounts[:] = reordered
            return list(reordered)

        async with self._lock:
            result = await self._transact(mutate)

        self.audit.log_vault_event(EventType.ACCOUNTS_REORDERED, "Accounts reordered")
        return result

    async def move_account_to_folder(self, account_id: str, folder_id: Optional[str]) -> Account:
        """
        Assign an account to a folder, or to none with folder_id=None.

        Raises:
            NotFoundError: unknown account or folder
        """
        async with self._lock:
            self._require_unlocked()
            await self._ensure_folder(folder_id)

            def mutate(accounts: List[Account]) -> Account:
                account = accounts[self._find(accounts, account_id)]
                account.folder_id = folder_id
                account.updated_at = now_ms()
                return account

            return await self._transact(mutate)

    async def delete_all_accounts(self) -> None:
        """Empty the account list and save."""
        async with self._lock:
            await self._transact(lambda accounts: accounts.clear())

        self.audit.log_vault_event(
            EventType.ACCOUNTS_CLEARED,
            "All accounts deleted",
            severity=EventSeverity.ALERT,
        )

    async def current_codes(self) -> List[Dict[str, Any]]:
        """Live code for every account (no secrets in the result)."""
        codes = []
        for account in await self.get_accounts():
            code = self.code_engine.generate_code(
                account.secret,
                digits=account.digits,
                period=account.period,
                algorithm=account.algorithm,
            )
            codes.append({
                "id": account.id,
                "issuer": account.issuer,
                "account": account.account,
                "folderId": account.folder_id,
                "code": code,
                "display": format_display(code),
                "period": account.period,
                "remaining": self.code_engine.remaining_seconds(account.period),
                "elapsed": self.code_engine.elapsed_fraction(account.period),
            })
        return codes

    # ── Folders ──────────────────────────────────────────────────────

    async def get_folders(self) -> List[Folder]:
        return await self._read_folders()

    async def add_folder(self, name: str, color: str = "#00E5FF") -> Folder:
        if not name or not name.strip():
            raise ValidationError("Folder name is required")
        folder = Folder(name=name.strip(), color=color)
        async with self._lock:
            self._require_unlocked()
            folders = await self._read_folders()
            folders.append(folder)
            await self.durable.set(KEY_FOLDERS, [f.to_dict() for f in folders])

        self.audit.log_vault_event(
            EventType.FOLDER_CHANGED, "Folder added", details={"folder_id": folder.id}
        )
        return folder

    async def update_folder(
        self,
        folder_id: str,
        name: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Folder:
        if name is not None and not name.strip():
            raise ValidationError("Folder name is required")
        async with self._lock:
            self._require_unlocked()
            folders = await self._read_folders()
            folder = next((f for f in folders if f.id == folder_id), None)
            if folder is None:
                raise NotFoundError(f"Folder not found: {folder_id}")
            if name is not None:
                folder.name = name.strip()
            if color is not None:
                folder.color = color
            await self.durable.set(KEY_FOLDERS, [f.to_dict() for f in folders])
        return folder

    async def delete_folder(self, folder_id: str) -> None:
        """Remove a folder; its accounts become uncategorized, never deleted."""
        async with self._lock:
            self._require_unlocked()
            folders = await self._read_folders()
            remaining = [f for f in folders if f.id != folder_id]
            if len(remaining) == len(folders):
                raise NotFoundError(f"Folder not found: {folder_id}")

            def mutate(accounts: List[Account]) -> None:
                for account in accounts:
                    if account.folder_id == folder_id:
                        account.folder_id = None

            await self._transact(mutate)
            await self.durable.set(KEY_FOLDERS, [f.to_dict() for f in remaining])

        self.audit.log_vault_event(
            EventType.FOLDER_CHANGED, "Folder deleted", details={"folder_id": folder_id}
        )

    # ── Backup export / import ───────────────────────────────────────

    async def export_backup(self, export_password: PasswordLike = None) -> str:
        """
        Encrypt the full account list under the export password (which may
        differ from the vault's) and wrap it in the backup envelope.
        """
        context = resolve_context(export_password)
        async with self._lock:
            self._require_unlocked()
            accounts = await self._read_accounts()

        plaintext = json.dumps([a.to_dict() for a in accounts])
        bundle = await asyncio.to_thread(self.crypto.encrypt, plaintext, context)
        payload = dumps_backup(build_backup(len(accounts), bundle))

        self.audit.log_vault_event(
            EventType.BACKUP_EXPORTED,
            "Backup exported",
            details={"accounts": len(accounts), "pin_protected": isinstance(context, UserPin)},
        )
        return payload

    async def import_backup(
        self,
        payload: Union[str, bytes, Dict[str, Any]],
        import_password: PasswordLike = None,
    ) -> ImportResult:
        """
        Decrypt a backup and merge its accounts into the vault.

        The merged list is saved under the vault's own context.

        Raises:
            FormatError: malformed JSON, wrong app tag or bad account data
                (nothing is merged)
            AuthenticationFailure: wrong import password
        """
        self._require_unlocked()
        bundle = parse_backup(payload)
        plaintext = await asyncio.to_thread(
            self.crypto.decrypt, bundle, resolve_context(import_password)
        )
        incoming = parse_account_array(plaintext)

        result = await self._merge(incoming)
        self.audit.log_vault_event(
            EventType.BACKUP_IMPORTED,
            "Backup imported",
            details=result.to_dict(),
        )
        return result

    async def restore_accounts(self, accounts_data: Any) -> ImportResult:
        """Merge an already-decrypted account array (e.g. a drive backup)."""
        if not isinstance(accounts_data, list):
            raise FormatError("Invalid backup: accounts data is not an array")
        result = await self._merge(accounts_data)
        self.audit.log_vault_event(
            EventType.BACKUP_RESTORED,
            "Accounts restored",
            details=result.to_dict(),
        )
        return result

    async def _merge(self, incoming: List[Any]) -> ImportResult:
        """
        Dedup-merge incoming account records into the vault.

        Dedup key is secret + account. Survivors get fresh ids and are
        appended; any invalid record aborts the whole merge.
        """
        candidates: List[Account] = []
        for position, item in enumerate(incoming):
            if not isinstance(item, Mapping):
                raise FormatError(f"Invalid backup: account #{position + 1} is not an object")
            try:
                candidates.append(Account.from_dict({**item, "id": item.get("id") or new_id()}))
            except (ValidationError, FormatError) as e:
                raise FormatError(f"Invalid backup: account #{position + 1}: {e.message}") from None

        async with self._lock:
            self._require_unlocked()
            folder_ids = {f.id for f in await self._read_folders()}

            def mutate(accounts: List[Account]) -> ImportResult:
                seen = {a.dedup_key for a in accounts}
                imported = 0
                for account in candidates:
                    if account.dedup_key in seen:
                        continue
                    seen.add(account.dedup_key)
                    account.id = new_id()
                    if account.folder_id not in folder_ids:
                        account.folder_id = None
                    accounts.append(account)
                    imported += 1
                return ImportResult(imported=imported, total=len(accounts))

            return await self._transact(mutate)

    # ── PIN ──────────────────────────────────────────────────────────

    async def _get_pin_record(self) -> Optional[PinRecord]:
        raw = await self.durable.get(KEY_PIN_DATA)
        return PinRecord.from_dict(raw) if raw else None

    async def is_pin_setup(self) -> bool:
        return await self.durable.get(KEY_PIN_DATA) is not None

    async def is_pin_enabled(self) -> bool:
        """Explicit preference if set, else 'a PIN record exists'."""
        enabled = await asyncio.to_thread(self.preferences.get, PREF_PIN_ENABLED)
        if enabled is None:
            return await self.is_pin_setup()
        return bool(enabled)

    async def set_pin_enabled(self, enabled: bool) -> None:
        """Write the PIN-enabled flag only; see setup_pin/enable_pin/disable_pin."""
        await asyncio.to_thread(self.preferences.set, PREF_PIN_ENABLED, bool(enabled))

    async def setup_pin(self, pin: str) -> PinRecord:
        """
        Create (or replace) the PIN, enable PIN protection and re-encrypt
        the vault under it.

        Raises:
            ValidationError: PIN too short
            VaultLockedError: vault is not unlocked
        """
        async with self._lock:
            self._require_unlocked()
            record = await asyncio.to_thread(self.crypto.setup_pin, pin)
            context = UserPin(pin)
            await self._commit(await self._read_accounts(), context)
            await self.durable.set(KEY_PIN_DATA, record.to_dict())
            await self.set_pin_enabled(True)
            self._context = context

        self.audit.log_vault_event(EventType.PIN_SET, "PIN protection enabled")
        return record

    async def enable_pin(self, pin: str) -> None:
        """
        Re-enable an existing (inert) PIN and re-encrypt the vault under it.

        Raises:
            AuthenticationFailure: no PIN record or PIN mismatch
        """
        async with self._lock:
            self._require_unlocked()
            record = await self._get_pin_record()
            if record is None or not await asyncio.to_thread(
                self.crypto.verify_pin, pin, record.hash, record.salt
            ):
                raise AuthenticationFailure()
            context = UserPin(pin)
            await self._commit(await self._read_accounts(), context)
            await self.set_pin_enabled(True)
            self._context = context

        self.audit.log_vault_event(EventType.PIN_SET, "PIN protection re-enabled")

    async def change_pin(self, current_pin: str, new_pin: str) -> PinRecord:
        """
        Replace the PIN after verifying the current one.

        Raises:
            AuthenticationFailure: current PIN is wrong
            ValidationError: new PIN too short
        """
        async with self._lock:
            self._require_unlocked()
            record = await self._get_pin_record()
            if record is None or not await asyncio.to_thread(
                self.crypto.verify_pin, current_pin, record.hash, record.salt
            ):
                self.audit.log_vault_event(
                    EventType.VAULT_UNLOCK_FAILED,
                    "PIN change refused: current PIN is incorrect",
                    severity=EventSeverity.INVESTIGATE,
                )
                raise AuthenticationFailure("Current PIN is incorrect")

            new_record = await asyncio.to_thread(self.crypto.setup_pin, new_pin)
            context = UserPin(new_pin)
            await self._commit(await self._read_accounts(), context)
            await self.durable.set(KEY_PIN_DATA, new_record.to_dict())
            self._context = context

        self.audit.log_vault_event(EventType.PIN_CHANGED, "PIN changed")
        return new_record

    async def disable_pin(self) -> None:
        """
        Turn PIN protection off: re-encrypt under the default key. The PIN
        record is kept (inert) so it can be re-enabled later.
        """
        async with self._lock:
            self._require_unlocked()
            context = DeviceDefault()
            await self._commit(await self._read_accounts(), context)
            await self.set_pin_enabled(False)
            self._context = context

        self.audit.log_vault_event(
            EventType.PIN_DISABLED,
            "PIN protection disabled",
            severity=EventSeverity.ALERT,
        )

    # ── Destructive ──────────────────────────────────────────────────

    async def wipe_all_data(self) -> None:
        """Erase vault, PIN record, folders, preferences and session. Irreversible."""
        async with self._lock:
            await self.durable.clear()
            await self.session.clear()
            await asyncio.to_thread(self.preferences.clear)
            self._context = None
            self.crypto.clear_default_key_cache()

        self.audit.log_vault_event(
            EventType.VAULT_WIPED,
            "All data wiped",
            severity=EventSeverity.ALERT,
        )


def _field_wire_name(attr: str) -> str:
    return {"folder_id": "folderId"}.get(attr, attr)
