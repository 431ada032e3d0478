# envpocket: Core Module - Shared Utilities
#
# - Audit logging
# - Configuration
# - SQLite connection helper

from .audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
    get_audit_logger,
    log_vault_event,
    set_audit_logger,
)
from .config import (
    EnvPocketConfig,
    build_store,
    load_config,
)

__all__ = [
    # Audit Logging
    "AuditLogger",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
    "set_audit_logger",
    "log_vault_event",
    # Configuration
    "EnvPocketConfig",
    "load_config",
    "build_store",
]
