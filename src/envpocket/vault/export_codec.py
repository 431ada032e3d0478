# envpocket: Export / Import Codec
#
# Portable, password-protected container for one vault entry and its full
# history, so an entry can be moved to another machine.
#
# Container layout (all offsets in bytes):
#
#   0    "ENVPOCKET_V1"     magic, 12 bytes ASCII
#   12   salt               32 bytes, PBKDF2 salt
#   44   nonce              12 bytes, AES-GCM nonce
#   56   ciphertext         variable
#   -16  tag                16 bytes, AES-GCM tag
#
# Plaintext is a JSON document:
#
#   {"data": "<base64>",
#    "metadata": {"key": ..., "originalPath": ...?, "lastModified": ...?,
#                 "history": [{"data": "<base64>", "originalPath": ...?,
#                              "timestamp": ...}]?}}
#
# Security:
#   - Fresh random salt and nonce for every export
#   - Wrong passwords and corrupted containers raise the same DecryptionError
#   - Nothing is written to the vault until decryption has succeeded

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..core import EventSeverity, EventType
from .encryption import EncryptionService
from .exceptions import (
    ContainerFormatError,
    DecryptionError,
    StoreError,
    ValidationError,
)
from .vault_manager import VersionedVault

logger = logging.getLogger(__name__)

MAGIC = b"ENVPOCKET_V1"
MAGIC_LENGTH = len(MAGIC)
SALT_LENGTH = EncryptionService.SALT_LENGTH
NONCE_LENGTH = EncryptionService.NONCE_LENGTH
TAG_LENGTH = EncryptionService.TAG_LENGTH
HEADER_LENGTH = MAGIC_LENGTH + SALT_LENGTH + NONCE_LENGTH


@dataclass
class ImportSummary:
    """Outcome of import_entry()."""
    key: str
    history_total: int = 0
    history_restored: int = 0

    @property
    def success(self) -> bool:
        return self.history_restored == self.history_total


def derive_key(
    password: str,
    salt: bytes,
    iterations: int = EncryptionService.PBKDF2_ITERATIONS,
    length: int = EncryptionService.KEY_LENGTH,
) -> bytes:
    """PBKDF2-HMAC-SHA256 key for an export container."""
    return EncryptionService.derive_key(password, salt, iterations, length)


class ExportCodec:
    """
    Serializes vault entries into encrypted containers and back.

    Usage::

        codec = ExportCodec(vault)
        blob = codec.export_entry("myapp-dev", "s3cret")
        summary = ExportCodec(other_vault).import_entry("myapp-dev", blob, "s3cret")
    """

    def __init__(self, vault: VersionedVault):
        self.vault = vault

    # ── Export ───────────────────────────────────────────────────────

    def build_document(self, key: str) -> Dict[str, Any]:
        """
        Collect the current value and full history of ``key``.

        Raises:
            KeyNotFoundError: If the key has no current value
        """
        current = self.vault.get(key)

        metadata: Dict[str, Any] = {"key": key}
        if current.original_path is not None:
            metadata["originalPath"] = current.original_path
        if current.last_modified is not None:
            metadata["lastModified"] = current.last_modified

        history: List[Dict[str, Any]] = []
        for ref in self.vault.list_history(key):
            item = self.vault.store.load(ref.account)
            if item is None or item.data is None:
                # Removed between listing and loading
                continue
            record: Dict[str, Any] = {
                "data": EncryptionService.encode_for_storage(item.data),
                "timestamp": ref.timestamp,
            }
            if item.label is not None:
                record["originalPath"] = item.label
            history.append(record)

        if history:
            metadata["history"] = history

        return {
            "data": EncryptionService.encode_for_storage(current.data),
            "metadata": metadata,
        }

    def export_entry(self, key: str, password: str) -> bytes:
        """
        Produce the encrypted container for ``key``.

        Raises:
            KeyNotFoundError: If the key has no current value
        """
        document = self.build_document(key)
        plaintext = json.dumps(document).encode("utf-8")

        salt = EncryptionService.generate_salt()
        encryption_key = derive_key(password, salt)
        nonce, ciphertext, tag = EncryptionService.seal(plaintext, encryption_key)

        self.vault.audit.log_event(
            event_type=EventType.ENTRY_EXPORTED,
            severity=EventSeverity.INFO,
            message=f"Exported '{key}'",
            details={"key": key, "history_items": len(document["metadata"].get("history", []))},
        )

        return MAGIC + salt + nonce + ciphertext + tag

    def export_to_file(self, key: str, path: Union[str, Path], password: str) -> int:
        """Write the container to ``path``. Returns the number of bytes written."""
        container = self.export_entry(key, password)
        Path(path).write_bytes(container)
        return len(container)

    # ── Import ───────────────────────────────────────────────────────

    @staticmethod
    def parse_container(container: bytes) -> Dict[str, bytes]:
        """
        Split a container into its parts without decrypting.

        Raises:
            ContainerFormatError: Wrong magic or truncated container
        """
        if not container.startswith(MAGIC):
            raise ContainerFormatError("Invalid file format: missing ENVPOCKET_V1 header")

        body = container[MAGIC_LENGTH:]
        if len(body) <= SALT_LENGTH + NONCE_LENGTH:
            raise ContainerFormatError("Invalid file format: container is truncated")

        salt = body[:SALT_LENGTH]
        nonce = body[SALT_LENGTH:SALT_LENGTH + NONCE_LENGTH]
        remainder = body[SALT_LENGTH + NONCE_LENGTH:]
        if len(remainder) <= TAG_LENGTH:
            raise ContainerFormatError("Invalid file format: container is truncated")

        return {
            "salt": salt,
            "nonce": nonce,
            "ciphertext": remainder[:-TAG_LENGTH],
            "tag": remainder[-TAG_LENGTH:],
        }

    def decrypt_document(self, container: bytes, password: str) -> Dict[str, Any]:
        """
        Decrypt and parse a container.

        Raises:
            ContainerFormatError: Bad header, truncation or malformed document
            DecryptionError: Wrong password or corrupted ciphertext
        """
        parts = self.parse_container(container)
        encryption_key = derive_key(password, parts["salt"])
        plaintext = EncryptionService.unseal(
            parts["nonce"], parts["ciphertext"], parts["tag"], encryption_key
        )

        try:
            document = json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ContainerFormatError(f"Invalid export document: {e}") from e

        if not isinstance(document, dict) or not isinstance(document.get("data"), str):
            raise ContainerFormatError("Invalid export document: missing 'data'")
        metadata = document.get("metadata", {})
        if not isinstance(metadata, dict):
            raise ContainerFormatError("Invalid export document: 'metadata' must be an object")
        history = metadata.get("history", [])
        if not isinstance(history, list):
            raise ContainerFormatError("Invalid export document: 'history' must be a list")

        return document

    def import_entry(self, key: str, container: bytes, password: str) -> ImportSummary:
        """
        Restore an exported entry under ``key``.

        The current value is replaced directly (the old one is not
        snapshotted). Each history item is then written under its original
        timestamp; items that cannot be restored are skipped and counted.

        Raises:
            ContainerFormatError: Bad header, truncation or malformed document
            DecryptionError: Wrong password or corrupted ciphertext
            InvalidKeyError: If ``key`` is not a valid vault key
            StoreError: If the current value cannot be written
        """
        self.vault.validate_key(key)
        try:
            document = self.decrypt_document(container, password)
        except (ContainerFormatError, DecryptionError) as e:
            self.vault.audit.log_event(
                event_type=EventType.IMPORT_FAILED,
                severity=EventSeverity.ERROR,
                message=f"Import into '{key}' failed: {e}",
                details={"key": key},
            )
            raise

        try:
            data = EncryptionService.decode_from_storage(document["data"])
        except ValueError as e:
            raise ContainerFormatError(f"Invalid export document: bad 'data' encoding: {e}") from e

        metadata = document.get("metadata", {})
        self.vault.restore_current(
            key,
            data,
            original_path=_optional_str(metadata.get("originalPath")),
            last_modified=_optional_str(metadata.get("lastModified")),
        )

        history = metadata.get("history", [])
        summary = ImportSummary(key=key, history_total=len(history))
        for record in history:
            if self._restore_history_record(key, record):
                summary.history_restored += 1

        self.vault.audit.log_event(
            event_type=EventType.ENTRY_IMPORTED,
            severity=EventSeverity.INFO if summary.success else EventSeverity.WARNING,
            message=f"Imported '{key}'",
            details={
                "key": key,
                "history_total": summary.history_total,
                "history_restored": summary.history_restored,
            },
        )
        return summary

    def _restore_history_record(self, key: str, record: Any) -> bool:
        if not isinstance(record, dict):
            logger.warning("Skipping malformed history record for '%s'", key)
            return False
        timestamp = record.get("timestamp")
        encoded = record.get("data")
        if not isinstance(timestamp, str) or not isinstance(encoded, str):
            logger.warning("Skipping incomplete history record for '%s'", key)
            return False
        try:
            data = EncryptionService.decode_from_storage(encoded)
            self.vault.restore_history(
                key, timestamp, data, original_path=_optional_str(record.get("originalPath"))
            )
        except (ValueError, ValidationError, StoreError) as e:
            logger.warning("Failed to restore history item %s for '%s': %s", timestamp, key, e)
            return False
        return True

    def import_from_file(self, key: str, path: Union[str, Path], password: str) -> ImportSummary:
        """Read a container from ``path`` and import it."""
        return self.import_entry(key, Path(path).read_bytes(), password)


def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None
