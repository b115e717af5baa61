# Vault API - REST endpoints for the OTP vault
#
# Thin adapter over VaultStore:
# - Status / unlock / lock
# - Account CRUD, search, reorder, folders, live codes
# - Backup export/import, PIN management, destructive resets
#
# VaultError kinds map onto HTTP status codes in vault_error_handler().
# Every authenticated request counts as activity for the auto-lock timer.

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..core.config import load_settings
from ..core.exceptions import ErrorKind, ValidationError, VaultError
from ..core.user_preferences import UserPreferences
from ..vault import AutoLockTimer, SQLiteKeyValueStore, VaultStore
from .security import rotate_session_token, verify_session_token

WIPE_CONFIRMATION = "DELETE"

_STATUS_FOR_KIND = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.AUTHENTICATION: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.FORMAT: 422,
    ErrorKind.LOCKED: status.HTTP_423_LOCKED,
}

# Vault store singleton (one vault per desktop backend)
_vault_store: Optional[VaultStore] = None
_auto_lock: Optional[AutoLockTimer] = None


def get_vault_store() -> VaultStore:
    """Get or create the global VaultStore singleton."""
    global _vault_store
    if _vault_store is None:
        settings = load_settings()
        _vault_store = VaultStore(
            durable=SQLiteKeyValueStore(settings.vault_db_path),
            preferences=UserPreferences(db_path=settings.preferences_db_path),
        )
    return _vault_store


def set_vault_store(store: Optional[VaultStore]):
    """Allow DI for testing. Drops the timer bound to the previous store."""
    global _vault_store, _auto_lock
    if _auto_lock is not None:
        _auto_lock.cancel()
        _auto_lock = None
    _vault_store = store


def get_auto_lock_timer() -> AutoLockTimer:
    """Get or create the idle timer for the current vault store."""
    global _auto_lock
    vault = get_vault_store()
    if _auto_lock is None or _auto_lock.vault is not vault:
        if _auto_lock is not None:
            _auto_lock.cancel()
        _auto_lock = AutoLockTimer(vault)
    return _auto_lock


async def record_activity():
    """Restart the idle countdown while the vault is unlocked."""
    timer = get_auto_lock_timer()
    if timer.vault.is_unlocked:
        await timer.reset()


router = APIRouter(
    prefix="/api/vault",
    tags=["vault"],
    dependencies=[Depends(verify_session_token), Depends(record_activity)],
)


async def vault_error_handler(request: Request, exc: VaultError) -> JSONResponse:
    return JSONResponse(
        status_code=_STATUS_FOR_KIND.get(exc.kind, status.HTTP_400_BAD_REQUEST),
        content={"detail": exc.message, "kind": exc.kind.value},
    )


# ── Request models ────────────────────────────────────────────────────

class UnlockRequest(BaseModel):
    password: Optional[str] = None


class PinUnlockRequest(BaseModel):
    pin: str


class AccountRequest(BaseModel):
    secret: str = Field(..., min_length=1)
    issuer: str = ""
    account: str = ""
    algorithm: str = "SHA1"
    digits: int = 6
    period: int = 30
    folderId: Optional[str] = None


class AccountUpdateRequest(BaseModel):
    issuer: Optional[str] = None
    account: Optional[str] = None
    secret: Optional[str] = None
    algorithm: Optional[str] = None
    digits: Optional[int] = None
    period: Optional[int] = None


class UriRequest(BaseModel):
    uri: str


class ReorderRequest(BaseModel):
    ordered_ids: List[str]


class MoveRequest(BaseModel):
    folder_id: Optional[str] = None


class FolderRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: str = "#00E5FF"


class FolderUpdateRequest(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None


class ExportRequest(BaseModel):
    password: Optional[str] = None


class ImportRequest(BaseModel):
    backup: str
    password: Optional[str] = None


class PinSetupRequest(BaseModel):
    pin: str


class PinChangeRequest(BaseModel):
    current_pin: str
    new_pin: str


class WipeRequest(BaseModel):
    confirmation: str


# ── Status / lock ─────────────────────────────────────────────────────

@router.get("/status")
async def get_vault_status(token: str = Depends(verify_session_token)):
    """Current vault state plus PIN flags."""
    vault = get_vault_store()
    state = await vault.get_state()
    return {
        "state": state.value,
        "is_unlocked": vault.is_unlocked,
        "pin_setup": await vault.is_pin_setup(),
        "pin_enabled": await vault.is_pin_enabled(),
        "first_time_setup": await vault.is_first_time_setup(),
    }


@router.post("/unlock")
async def unlock_vault(request: UnlockRequest, token: str = Depends(verify_session_token)):
    """Unlock with a password, or with the device default key when omitted."""
    accounts = await get_vault_store().unlock(request.password)
    await get_auto_lock_timer().reset()
    return {"success": True, "account_count": len(accounts)}


@router.post("/unlock/pin")
async def unlock_vault_with_pin(request: PinUnlockRequest, token: str = Depends(verify_session_token)):
    accounts = await get_vault_store().unlock_with_pin(request.pin)
    await get_auto_lock_timer().reset()
    return {"success": True, "account_count": len(accounts)}


@router.post("/lock")
async def lock_vault(token: str = Depends(verify_session_token)):
    get_auto_lock_timer().cancel()
    await get_vault_store().lock()
    return {"success": True, "message": "Vault locked"}


# ── Accounts ──────────────────────────────────────────────────────────

@router.get("/accounts")
async def list_accounts(q: Optional[str] = None, token: str = Depends(verify_session_token)):
    """
    List accounts, optionally filtered by a search query.

    Secrets are included: the frontend needs them for QR export.
    """
    accounts = await get_vault_store().search_accounts(q)
    return {"accounts": [a.to_dict() for a in accounts]}


@router.get("/accounts/{account_id}")
async def get_account(account_id: str, token: str = Depends(verify_session_token)):
    account = await get_vault_store().get_account(account_id)
    return account.to_dict()


@router.post("/accounts", status_code=status.HTTP_201_CREATED)
async def add_account(request: AccountRequest, token: str = Depends(verify_session_token)):
    account = await get_vault_store().add_account(request.model_dump())
    return {"success": True, "account": account.to_dict()}


@router.post("/accounts/uri", status_code=status.HTTP_201_CREATED)
async def add_account_from_uri(request: UriRequest, token: str = Depends(verify_session_token)):
    """Add an account from a scanned otpauth:// URI."""
    account = await get_vault_store().add_account_from_uri(request.uri)
    return {"success": True, "account": account.to_dict()}


@router.patch("/accounts/{account_id}")
async def update_account(
    account_id: str,
    request: AccountUpdateRequest,
    token: str = Depends(verify_session_token),
):
    updates = request.model_dump(exclude_none=True)
    account = await get_vault_store().update_account(account_id, updates)
    return {"success": True, "account": account.to_dict()}


@router.delete("/accounts/{account_id}")
async def delete_account(account_id: str, token: str = Depends(verify_session_token)):
    await get_vault_store().delete_account(account_id)
    return {"success": True}


@router.post("/accounts/reorder")
async def reorder_accounts(request: ReorderRequest, token: str = Depends(verify_session_token)):
    accounts = await get_vault_store().reorder_accounts(request.ordered_ids)
    return {"success": True, "order": [a.id for a in accounts]}


@router.put("/accounts/{account_id}/folder")
async def move_account_to_folder(
    account_id: str,
    request: MoveRequest,
    token: str = Depends(verify_session_token),
):
    account = await get_vault_store().move_account_to_folder(account_id, request.folder_id)
    return {"success": True, "account": account.to_dict()}


@router.get("/codes")
async def get_codes(token: str = Depends(verify_session_token)):
    """Live codes with countdown for every account."""
    return {"codes": await get_vault_store().current_codes()}


# ── Folders ───────────────────────────────────────────────────────────

@router.get("/folders")
async def list_folders(token: str = Depends(verify_session_token)):
    folders = await get_vault_store().get_folders()
    return {"folders": [f.to_dict() for f in folders]}


@router.post("/folders", status_code=status.HTTP_201_CREATED)
async def add_folder(request: FolderRequest, token: str = Depends(verify_session_token)):
    folder = await get_vault_store().add_folder(request.name, request.color)
    return {"success": True, "folder": folder.to_dict()}


@router.patch("/folders/{folder_id}")
async def update_folder(
    folder_id: str,
    request: FolderUpdateRequest,
    token: str = Depends(verify_session_token),
):
    folder = await get_vault_store().update_folder(folder_id, request.name, request.color)
    return {"success": True, "folder": folder.to_dict()}


@router.delete("/folders/{folder_id}")
async def delete_folder(folder_id: str, token: str = Depends(verify_session_token)):
    """Delete a folder; its accounts move to uncategorized."""
    await get_vault_store().delete_folder(folder_id)
    return {"success": True}


# ── Backup ────────────────────────────────────────────────────────────

@router.post("/backup/export")
async def export_backup(request: ExportRequest, token: str = Depends(verify_session_token)):
    """Return the backup file contents; the password may differ from the vault's."""
    backup = await get_vault_store().export_backup(request.password)
    return {"success": True, "backup": backup}


@router.post("/backup/import")
async def import_backup(request: ImportRequest, token: str = Depends(verify_session_token)):
    result = await get_vault_store().import_backup(request.backup, request.password)
    return {"success": True, **result.to_dict()}


@router.post("/backup/restore")
async def restore_accounts(accounts: List[Dict[str, Any]], token: str = Depends(verify_session_token)):
    """Merge an already-decrypted account array (e.g. from a drive backup)."""
    result = await get_vault_store().restore_accounts(accounts)
    return {"success": True, **result.to_dict()}


# ── PIN ───────────────────────────────────────────────────────────────

@router.post("/pin/setup")
async def setup_pin(request: PinSetupRequest, token: str = Depends(verify_session_token)):
    await get_vault_store().setup_pin(request.pin)
    return {"success": True, "message": "PIN enabled"}


@router.post("/pin/enable")
async def enable_pin(request: PinSetupRequest, token: str = Depends(verify_session_token)):
    await get_vault_store().enable_pin(request.pin)
    return {"success": True, "message": "PIN enabled"}


@router.post("/pin/change")
async def change_pin(request: PinChangeRequest, token: str = Depends(verify_session_token)):
    await get_vault_store().change_pin(request.current_pin, request.new_pin)
    return {"success": True, "message": "PIN changed"}


@router.post("/pin/disable")
async def disable_pin(token: str = Depends(verify_session_token)):
    await get_vault_store().disable_pin()
    return {"success": True, "message": "PIN disabled"}


# ── Destructive ───────────────────────────────────────────────────────

@router.delete("/accounts")
async def delete_all_accounts(token: str = Depends(verify_session_token)):
    await get_vault_store().delete_all_accounts()
    return {"success": True}


@router.post("/wipe")
async def wipe_all_data(request: WipeRequest, token: str = Depends(verify_session_token)):
    """
    Erase everything. The caller must type the confirmation word.

    The session token is rotated as well; the response carries the new one.
    """
    if request.confirmation != WIPE_CONFIRMATION:
        raise ValidationError(f"Type {WIPE_CONFIRMATION} to confirm")
    get_auto_lock_timer().cancel()
    await get_vault_store().wipe_all_data()
    return {"success": True, "message": "All data wiped", "token": rotate_session_token()}
