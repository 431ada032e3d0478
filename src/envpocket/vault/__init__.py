# envpocket: Vault Module - Versioned Secret Storage
#
# Versioned entries (snapshot-on-overwrite history, wildcard bulk delete)
# Portable export containers (PBKDF2 + AES-256-GCM)

from .vault_manager import (
    DeleteResult,
    EntrySummary,
    HistoryRef,
    PendingDeletion,
    SaveResult,
    VaultEntry,
    VersionedVault,
    is_confirmation,
)
from .export_codec import ExportCodec, ImportSummary, MAGIC
from .encryption import EncryptionService
from .patterns import PatternMatcher, compile_pattern, has_wildcards
from .exceptions import (
    ContainerFormatError,
    DecryptionError,
    EnvPocketError,
    HistoryIndexError,
    InvalidKeyError,
    KeyNotFoundError,
    StoreError,
    ValidationError,
)

__all__ = [
    "VersionedVault",
    "SaveResult",
    "VaultEntry",
    "HistoryRef",
    "PendingDeletion",
    "DeleteResult",
    "EntrySummary",
    "is_confirmation",
    "ExportCodec",
    "ImportSummary",
    "MAGIC",
    "EncryptionService",
    "PatternMatcher",
    "compile_pattern",
    "has_wildcards",
    "EnvPocketError",
    "StoreError",
    "KeyNotFoundError",
    "ContainerFormatError",
    "DecryptionError",
    "ValidationError",
    "InvalidKeyError",
    "HistoryIndexError",
]
