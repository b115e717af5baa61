# Citadel OTP - Main Package
#
# Encrypted TOTP authenticator vault: code generation, otpauth:// URIs,
# PIN-protected storage and password-protected backups.

__version__ = "0.1.0"
__author__ = "Citadel Team"
__description__ = "Encrypted TOTP authenticator vault"

from .core import EventSeverity, EventType, get_audit_logger

__all__ = [
    "__version__",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
]
