# envpocket: Audit Logging
#
# Append-only audit trail for every vault operation.
# Records keys, counts and outcomes. Secret values and passwords are
# never passed to the logger.

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
    """Types of vault events that can be logged."""
    ENTRY_SAVED = "entry.saved"
    HISTORY_BACKED_UP = "entry.history_backed_up"
    ENTRY_ACCESSED = "entry.accessed"
    ENTRY_DELETED = "entry.deleted"
    DELETE_CANCELLED = "entry.delete_cancelled"
    ENTRY_EXPORTED = "entry.exported"
    ENTRY_IMPORTED = "entry.imported"
    IMPORT_FAILED = "entry.import_failed"

    STORE_ERROR = "store.error"

    SYSTEM_START = "system.start"


class EventSeverity(str, Enum):
    """
    Severity levels for vault events.

    - INFO: normal activity
    - WARNING: partial failure, the operation still completed
    - ERROR: the operation failed
    """
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditLogger:
    """
    Append-only audit logger for vault events.

    Features:
    - Structured JSON logging (structlog)
    - Automatic timestamp and event ID
    - OS user / host context on every event
    - One log file per day
    """

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize audit logger.

        Args:
            log_dir: Directory for audit logs (default: ./audit_logs)
        """
        self.log_dir = Path(log_dir) if log_dir else Path("./audit_logs")
        self.log_dir.mkdir(parents=True, exist_ok=True)

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

        self.logger = structlog.get_logger("envpocket.audit")

    def _setup_file_handler(self):
        """Attach a daily file handler to the audit logger."""
        today = datetime.now().strftime("%Y-%m-%d")
        self.log_file = self.log_dir / f"audit_{today}.log"

        file_handler = logging.FileHandler(self.log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter('%(message)s'))  # structlog formats

        audit_logger = logging.getLogger("envpocket.audit")
        audit_logger.addHandler(file_handler)
        audit_logger.setLevel(logging.INFO)
        # Keep audit JSON out of the console.
        audit_logger.propagate = False
        self._file_handler = file_handler

    def close(self):
        """Detach and close the file handler."""
        audit_logger = logging.getLogger("envpocket.audit")
        audit_logger.removeHandler(self._file_handler)
        self._file_handler.close()

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Log a vault event.

        Args:
            event_type: Type of event (from EventType enum)
            severity: Severity level (from EventSeverity enum)
            message: Human-readable event description
            details: Additional event details (never secret values)

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
            "user_context": self._get_default_user_context(),
        }

        if severity == EventSeverity.ERROR:
            self.logger.error("vault_event", **event_data)
        elif severity == EventSeverity.WARNING:
            self.logger.warning("vault_event", **event_data)
        else:
            self.logger.info("vault_event", **event_data)

        return event_id

    def _get_default_user_context(self) -> Dict[str, Any]:
        """Get default user context (OS user, hostname, platform)."""
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
        from .config import load_config

        _audit_logger = AuditLogger(load_config().audit_dir)
    return _audit_logger


def set_audit_logger(instance: Optional[AuditLogger]) -> None:
    """Replace the global audit logger (None resets it)."""
    global _audit_logger
    _audit_logger = instance


def log_vault_event(
    event_type: EventType,
    severity: EventSeverity,
    message: str,
    **kwargs
) -> str:
    """
    Convenience function for logging vault events.

    Usage:
        log_vault_event(
            EventType.ENTRY_DELETED,
            EventSeverity.INFO,
            "Deleted key",
            details={"key": "myapp-dev", "history_deleted": 2}
        )
    """
    return get_audit_logger().log_event(event_type, severity, message, **kwargs)
