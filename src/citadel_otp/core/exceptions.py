"""
Vault Exception Classes

Every error raised by the vault engine carries an ``ErrorKind`` so callers
branch on ``exc.kind`` instead of parsing messages.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Closed set of error kinds surfaced by the vault engine."""
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    NOT_FOUND = "not_found"
    FORMAT = "format"
    LOCKED = "locked"


class VaultError(Exception):
    """Base exception for vault operations"""
    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(VaultError):
    """Raised for a bad secret, bad digits/period or a missing required field"""
    kind = ErrorKind.VALIDATION


class AuthenticationFailure(VaultError):
    """Raised for a wrong password/PIN or corrupted ciphertext"""
    kind = ErrorKind.AUTHENTICATION

    GENERIC_MESSAGE = "Incorrect PIN/password or corrupted data"

    def __init__(self, message: str = GENERIC_MESSAGE):
        super().__init__(message)


class NotFoundError(VaultError):
    """Raised when an account or folder id does not exist"""
    kind = ErrorKind.NOT_FOUND


class FormatError(VaultError):
    """Raised for a malformed backup, wrong application tag or non-array payload"""
    kind = ErrorKind.FORMAT


class VaultLockedError(VaultError):
    """Raised when an operation needs an unlocked vault (re-auth required)"""
    kind = ErrorKind.LOCKED

    def __init__(self, message: str = "Vault is locked. Unlock vault first."):
        super().__init__(message)
