"""Backup file envelope for exported vaults.

The account list is encrypted exactly like the live vault (see
vault/encryption.py) and wrapped with an application tag so a foreign
JSON file is rejected before any decryption is attempted:

    {
      "app": "citadel-otp",
      "version": "1.0.0",
      "exportedAt": "<ISO8601>",
      "accountCount": <int>,
      "encrypted": {"salt", "iv", "ciphertext", "version"}
    }
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from ..core.exceptions import FormatError
from .models import EncryptedBundle

APP_TAG = "citadel-otp"
BACKUP_FORMAT_VERSION = "1.0.0"


def build_backup(
    account_count: int,
    bundle: EncryptedBundle,
    exported_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Wrap an encrypted account list in the backup envelope."""
    exported_at = exported_at or datetime.now(timezone.utc)
    return {
        "app": APP_TAG,
        "version": BACKUP_FORMAT_VERSION,
        "exportedAt": exported_at.isoformat().replace("+00:00", "Z"),
        "accountCount": account_count,
        "encrypted": bundle.to_dict(),
    }


def dumps_backup(backup: Dict[str, Any]) -> str:
    return json.dumps(backup, indent=2)


def parse_backup(payload: Union[str, bytes, Dict[str, Any]]) -> EncryptedBundle:
    """
    Validate the envelope and return the encrypted bundle inside it.

    Raises:
        FormatError: invalid JSON, wrong app tag or malformed bundle
    """
    if isinstance(payload, (str, bytes)):
        try:
            backup = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise FormatError("Invalid backup file: not valid JSON") from None
    else:
        backup = payload

    if not isinstance(backup, dict) or backup.get("app") != APP_TAG:
        raise FormatError("Invalid backup file: not a Citadel OTP backup")

    return EncryptedBundle.from_dict(backup.get("encrypted"))


def parse_account_array(plaintext: str) -> List[Any]:
    """
    Decode the decrypted inner payload.

    Raises:
        FormatError: not JSON, or not a JSON array
    """
    try:
        accounts = json.loads(plaintext)
    except json.JSONDecodeError:
        raise FormatError("Invalid backup: corrupted account data") from None
    if not isinstance(accounts, list):
        raise FormatError("Invalid backup: corrupted account data")
    return accounts
