# Vault - Data Models
#
# Accounts and folders as stored inside the encrypted vault, plus the
# durable encrypted bundle and PIN record shapes. Wire keys are camelCase
# so vault blobs and backup files stay compatible across versions.

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional
from uuid import uuid4

from ..core.exceptions import FormatError, ValidationError
from ..otp.totp import (
    DEFAULT_DIGITS,
    DEFAULT_PERIOD,
    is_valid_secret,
    normalize_secret,
    validate_otp_params,
)

VAULT_FORMAT_VERSION = 1


class VaultState(str, Enum):
    """Lock/unlock state machine."""
    UNINITIALIZED = "uninitialized"  # No durable vault and no PIN
    LOCKED = "locked"                # Durable vault and/or PIN, no session
    UNLOCKED = "unlocked"            # Session populated, context held


def new_id() -> str:
    """Opaque unique identifier for accounts and folders."""
    return uuid4().hex


def now_ms() -> int:
    return int(time.time() * 1000)


def _value_or(data: Mapping[str, Any], key: str, default):
    value = data.get(key)
    return default if value is None or value == "" else value


@dataclass
class Account:
    """One OTP credential."""

    id: str
    secret: str
    issuer: str = ""
    account: str = ""
    algorithm: str = "SHA1"
    digits: int = DEFAULT_DIGITS
    period: int = DEFAULT_PERIOD
    folder_id: Optional[str] = None
    created_at: Optional[int] = None
    updated_at: Optional[int] = None

    @property
    def dedup_key(self) -> str:
        """secret + account: identifies the same credential across vaults."""
        return self.secret + self.account

    def validate(self) -> "Account":
        """
        Normalize the secret and check every OTP parameter.

        Raises:
            ValidationError: bad secret, digits, period or algorithm
        """
        if not is_valid_secret(self.secret):
            raise ValidationError("Invalid Base32 secret key")
        self.secret = normalize_secret(self.secret)
        self.algorithm = validate_otp_params(self.digits, self.period, self.algorithm).value
        self.issuer = self.issuer or ""
        self.account = self.account or ""
        return self

    @classmethod
    def create(cls, data: Mapping[str, Any]) -> "Account":
        """Build a brand-new, validated account with a fresh id."""
        if not data.get("secret"):
            raise ValidationError("Secret is required")
        account = cls(
            id=new_id(),
            secret=data["secret"],
            issuer=data.get("issuer") or "",
            account=data.get("account") or data.get("label") or "",
            algorithm=data.get("algorithm") or "SHA1",
            digits=_value_or(data, "digits", DEFAULT_DIGITS),
            period=_value_or(data, "period", DEFAULT_PERIOD),
            folder_id=data.get("folderId") or data.get("folder_id"),
            created_at=now_ms(),
        )
        return account.validate()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "issuer": self.issuer,
            "account": self.account,
            "secret": self.secret,
            "algorithm": self.algorithm,
            "digits": self.digits,
            "period": self.period,
            "folderId": self.folder_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Account":
        """
        Rebuild an account from its stored form.

        Raises:
            FormatError: not a mapping, or missing id/secret
            ValidationError: parameters fail validation
        """
        if not isinstance(data, Mapping):
            raise FormatError("Invalid account record: expected an object")
        if not data.get("id") or not data.get("secret"):
            raise FormatError("Invalid account record: missing id or secret")
        account = cls(
            id=str(data["id"]),
            secret=data["secret"],
            issuer=data.get("issuer") or "",
            account=data.get("account") or "",
            algorithm=data.get("algorithm") or "SHA1",
            digits=_value_or(data, "digits", DEFAULT_DIGITS),
            period=_value_or(data, "period", DEFAULT_PERIOD),
            folder_id=data.get("folderId"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )
        return account.validate()


@dataclass
class Folder:
    """A named, colored group of accounts."""

    name: str
    color: str = "#00E5FF"
    id: str = field(default_factory=new_id)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Folder":
        return cls(id=data["id"], name=data.get("name", ""), color=data.get("color", "#00E5FF"))


@dataclass(frozen=True)
class EncryptedBundle:
    """Durable encrypted vault form; all four fields travel together."""

    salt: str
    iv: str
    ciphertext: str
    version: int = VAULT_FORMAT_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> "EncryptedBundle":
        """
        Raises:
            FormatError: a field is missing or has the wrong type
        """
        if not isinstance(data, Mapping):
            raise FormatError("Invalid encrypted bundle: expected an object")
        missing = [k for k in ("salt", "iv", "ciphertext", "version") if k not in data]
        if missing:
            raise FormatError(f"Invalid encrypted bundle: missing {', '.join(missing)}")
        if not all(isinstance(data[k], str) for k in ("salt", "iv", "ciphertext")):
            raise FormatError("Invalid encrypted bundle: fields must be base64 strings")
        if data["version"] != VAULT_FORMAT_VERSION:
            raise FormatError(f"Unsupported vault format version: {data['version']}")
        return cls(
            salt=data["salt"],
            iv=data["iv"],
            ciphertext=data["ciphertext"],
            version=data["version"],
        )


@dataclass(frozen=True)
class PinRecord:
    """PIN verification hash + salt (independent of the vault key)."""

    hash: str
    salt: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PinRecord":
        return cls(hash=data["hash"], salt=data["salt"])


@dataclass(frozen=True)
class ImportResult:
    """Outcome of a backup import or restore merge."""

    imported: int
    total: int

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)
