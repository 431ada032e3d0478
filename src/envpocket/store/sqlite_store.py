# envpocket: SQLite Attribute Store
#
# Local, file-backed attribute store used by the CLI.
#
# Security:
#   - Item data is sealed with AES-256-GCM under a random 256-bit data key
#   - The account name is bound to each ciphertext as associated data, so a
#     blob copied onto another row fails authentication
#   - The data key lives in a separate file created with 0600 permissions
#   - Labels and comments (paths, timestamps) are stored in clear text
#
# Design:
#   - Follows the UserPreferences pattern: core.db connect helper, one
#     fresh connection per call, upsert on write

import logging
import os
import sqlite3
from pathlib import Path
from typing import List, Optional, Union

from ..core.db import connect as db_connect
from ..vault.encryption import EncryptionService
from ..vault.exceptions import DecryptionError, StoreError
from .base import AttributeStore, StoreItem

logger = logging.getLogger(__name__)


class SQLiteAttributeStore(AttributeStore):
    """SQLite-backed attribute store with sealed item data.

    Args:
        db_path: Path to the SQLite file (parent directories are created).
        key_path: Path to the data key file. Created on first use.
    """

    def __init__(self, db_path: Union[str, Path], key_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self.key_path = Path(key_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._data_key = self._load_or_create_key()
        self._init_database()

    def _load_or_create_key(self) -> bytes:
        if self.key_path.exists():
            key = self.key_path.read_bytes()
            if len(key) != EncryptionService.KEY_LENGTH:
                raise StoreError(f"Corrupted data key file: {self.key_path}")
            return key

        self.key_path.parent.mkdir(parents=True, exist_ok=True)
        key = os.urandom(EncryptionService.KEY_LENGTH)
        fd = os.open(str(self.key_path), os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(key)
        logger.info("Created new data key at %s", self.key_path)
        return key

    def _init_database(self):
        try:
            with db_connect(self.db_path) as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS items (
                        account TEXT PRIMARY KEY,
                        nonce BLOB NOT NULL,
                        ciphertext BLOB NOT NULL,
                        tag BLOB NOT NULL,
                        label TEXT,
                        comment TEXT
                    )
                """)
                conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to initialize store at {self.db_path}: {e}") from e

    def _connect(self) -> sqlite3.Connection:
        return db_connect(self.db_path, row_factory=True)

    def save(self, account, data, label=None, comment=None):
        nonce, ciphertext, tag = EncryptionService.seal(
            bytes(data), self._data_key, associated_data=account.encode("utf-8")
        )
        try:
            with self._connect() as conn:
                conn.execute(
                    """INSERT INTO items (account, nonce, ciphertext, tag, label, comment)
                       VALUES (?, ?, ?, ?, ?, ?)
                       ON CONFLICT(account) DO UPDATE SET
                           nonce = excluded.nonce,
                           ciphertext = excluded.ciphertext,
                           tag = excluded.tag,
                           label = excluded.label,
                           comment = excluded.comment""",
                    (account, nonce, ciphertext, tag, label, comment),
                )
                conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to save '{account}': {e}") from e

    def load(self, account) -> Optional[StoreItem]:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT nonce, ciphertext, tag, label, comment FROM items WHERE account = ?",
                    (account,),
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to load '{account}': {e}") from e

        if row is None:
            return None

        try:
            data = EncryptionService.unseal(
                row["nonce"], row["ciphertext"], row["tag"], self._data_key,
                associated_data=account.encode("utf-8"),
            )
        except DecryptionError:
            raise StoreError(
                f"Item '{account}' failed integrity check (wrong data key or tampered row)"
            ) from None

        return StoreItem(account=account, data=data, label=row["label"], comment=row["comment"])

    def delete(self, account) -> bool:
        try:
            with self._connect() as conn:
                cursor = conn.execute("DELETE FROM items WHERE account = ?", (account,))
                conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to delete '{account}': {e}") from e
        return cursor.rowcount > 0

    def list_items(self) -> List[StoreItem]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT account, label, comment FROM items ORDER BY account"
                ).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"Failed to list store items: {e}") from e
        return [
            StoreItem(account=row["account"], label=row["label"], comment=row["comment"])
            for row in rows
        ]
