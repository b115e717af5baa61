# Core - Audit Logging
#
# Append-only audit trail for every vault security event: unlocks,
# failed unlocks, locks, account changes, backups, PIN changes, wipes.
# Secrets, PINs, codes and keys are never part of an event.

import logging
import os
import socket
import sys
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

import structlog


class EventType(str, Enum):
    """Types of security events that can be logged."""

    # Vault lifecycle
    VAULT_CREATED = "vault.created"
    VAULT_UNLOCKED = "vault.unlocked"
    VAULT_LOCKED = "vault.locked"
    VAULT_UNLOCK_FAILED = "vault.unlock.failed"
    VAULT_WIPED = "vault.wiped"
    VAULT_ERROR = "vault.error"

    # Accounts
    ACCOUNT_ADDED = "vault.account.added"
    ACCOUNT_UPDATED = "vault.account.updated"
    ACCOUNT_DELETED = "vault.account.deleted"
    ACCOUNTS_REORDERED = "vault.account.reordered"
    ACCOUNTS_CLEARED = "vault.account.cleared"

    # Folders
    FOLDER_CHANGED = "vault.folder.changed"

    # Backups
    BACKUP_EXPORTED = "vault.backup.exported"
    BACKUP_IMPORTED = "vault.backup.imported"
    BACKUP_RESTORED = "vault.backup.restored"

    # PIN
    PIN_SET = "vault.pin.set"
    PIN_CHANGED = "vault.pin.changed"
    PIN_DISABLED = "vault.pin.disabled"

    # System Events
    SYSTEM_START = "system.start"
    SYSTEM_STOP = "system.stop"


class EventSeverity(str, Enum):
    """
    Severity levels for security events.

    - INFO: Normal activity (logged only)
    - INVESTIGATE: Something unusual, e.g. a failed unlock
    - ALERT: Destructive or security-relevant change
    - CRITICAL: Operation failed in a way the user must know about
    """
    INFO = "info"
    INVESTIGATE = "investigate"
    ALERT = "alert"
    CRITICAL = "critical"


class AuditLogger:
    """
    Append-only audit logger for vault events.

    Features:
    - Structured JSON logging via structlog
    - Automatic timestamp and event ID
    - OS user / host context capture
    - One log file per day
    """

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize audit logger.

        Args:
            log_dir: Directory for audit logs (default: $CITADEL_OTP_AUDIT_DIR
                or ./audit_logs)
        """
        self.log_dir = Path(log_dir or os.environ.get("CITADEL_OTP_AUDIT_DIR", "audit_logs"))
        self.log_dir.mkdir(parents=True, exist_ok=True)

        # Setup structured logging
        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer()
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        self._setup_file_handler()

        self.logger = structlog.get_logger("citadel_otp.audit")

    def _setup_file_handler(self):
        """Attach a daily file handler to the audit logger."""
        today = datetime.now().strftime("%Y-%m-%d")
        self.log_file = self.log_dir / f"audit_{today}.log"

        file_handler = logging.FileHandler(self.log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter('%(message)s'))  # structlog formats

        audit_logger = logging.getLogger("citadel_otp.audit")
        audit_logger.addHandler(file_handler)
        audit_logger.setLevel(logging.INFO)
        self._file_handler = file_handler

    def close(self) -> None:
        """Detach and close the file handler."""
        logging.getLogger("citadel_otp.audit").removeHandler(self._file_handler)
        self._file_handler.close()

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        user_context: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Log a security event (append-only).

        Args:
            event_type: Type of event (from EventType enum)
            severity: Severity level (from EventSeverity enum)
            message: Human-readable event description
            details: Additional event details (never secrets)
            user_context: User context (defaults to OS user + hostname)

        Returns:
            str: Event ID (UUID) for reference
        """
        event_id = str(uuid4())

        event_data = {
            "event_id": event_id,
            "event_type": event_type.value,
            "severity": severity.value,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "details": details or {},
            "user_context": user_context or self._get_default_user_context(),
        }

        self.logger.info("security_event", **event_data)

        return event_id

    def log_vault_event(
        self,
        event_type: EventType,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: EventSeverity = EventSeverity.INFO,
    ) -> str:
        """
        Log a Vault event.

        Args:
            event_type: Type of Vault event
            message: Event description
            details: Additional details (never log secrets or PINs!)
            severity: Defaults to INFO

        Returns:
            str: Event ID
        """
        return self.log_event(
            event_type=event_type,
            severity=severity,
            message=f"Vault: {message}",
            details=details
        )

    def _get_default_user_context(self) -> Dict[str, Any]:
        """Get default user context (OS user, hostname, etc.)."""
        return {
            "os_user": os.getenv("USERNAME") or os.getenv("USER"),
            "hostname": socket.gethostname(),
            "platform": sys.platform,
        }


# Global logger instance
_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """Get global audit logger (singleton pattern)."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger
