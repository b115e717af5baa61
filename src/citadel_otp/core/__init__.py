# Core Module - Shared Utilities
#
# Shared functionality across all Citadel OTP modules:
# - Audit logging
# - Configuration
# - Error taxonomy
# - SQLite connection helper and preferences store

from .audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
    get_audit_logger,
)
from .config import Settings, load_settings
from .exceptions import (
    AuthenticationFailure,
    ErrorKind,
    FormatError,
    NotFoundError,
    ValidationError,
    VaultError,
    VaultLockedError,
)

__all__ = [
    # Audit Logging
    "AuditLogger",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
    # Configuration
    "Settings",
    "load_settings",
    # Errors
    "ErrorKind",
    "VaultError",
    "ValidationError",
    "AuthenticationFailure",
    "NotFoundError",
    "FormatError",
    "VaultLockedError",
]
