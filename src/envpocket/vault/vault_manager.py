# envpocket: Versioned Vault
#
# Every key maps to one current item plus any number of history items in
# the attribute store:
#
#   current:  <entry_prefix><key>                      label = original path
#                                                      comment = "Last modified: <ts>"
#   history:  <history_prefix><key>:<ts>               label = original path
#
# <ts> is a UTC ISO 8601 timestamp with second resolution. It doubles as
# the history item's identifier, so two overwrites of the same key within
# one second share an identifier and the second snapshot replaces the first.
#
# Concurrency: save() is load → write history → write current, and delete()
# removes items one by one. Neither sequence is atomic; two processes
# working on the same key at the same moment can lose an update or a
# snapshot.

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union
from urllib.parse import unquote

from ..core import AuditLogger, EventSeverity, EventType, get_audit_logger
from ..core.config import DEFAULT_ENTRY_PREFIX, DEFAULT_HISTORY_PREFIX
from ..store.base import AttributeStore
from .exceptions import (
    HistoryIndexError,
    InvalidKeyError,
    KeyNotFoundError,
    StoreError,
    ValidationError,
)
from .patterns import compile_pattern, has_wildcards

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
LAST_MODIFIED_PREFIX = "Last modified: "
CONFIRM_ANSWERS = ("yes", "y")

_HISTORY_SUFFIX = re.compile(r":(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z)$")


# ── Timestamp Helpers ────────────────────────────────────────────────


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """Render a moment in the vault's timestamp encoding."""
    return moment.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(text: str) -> Optional[datetime]:
    """Parse the vault's timestamp encoding. Returns None if malformed."""
    try:
        return datetime.strptime(text, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return None


def last_modified_text(comment: Optional[str]) -> Optional[str]:
    """The raw timestamp text in a current item's comment, if any."""
    if not comment or not comment.startswith(LAST_MODIFIED_PREFIX):
        return None
    return comment[len(LAST_MODIFIED_PREFIX):]


def parse_last_modified(comment: Optional[str]) -> Optional[datetime]:
    """Extract the modification time from a current item's comment."""
    text = last_modified_text(comment)
    return parse_timestamp(text) if text is not None else None


def is_confirmation(answer: Optional[str]) -> bool:
    """True for "yes" / "y" in any case."""
    return answer is not None and answer.strip().lower() in CONFIRM_ANSWERS


# ── Data Model ───────────────────────────────────────────────────────


@dataclass
class SaveResult:
    """Outcome of save(). ``history_timestamp`` is set when a snapshot was written."""
    key: str
    history_backed_up: bool = False
    history_timestamp: Optional[str] = None


@dataclass
class VaultEntry:
    """A value read back from the vault (current or historical)."""
    key: str
    data: bytes
    original_path: Optional[str] = None
    last_modified: Optional[str] = None   # current entries only
    version: Optional[int] = None         # history index, None = current
    timestamp: Optional[str] = None       # history timestamp, None = current

    @property
    def is_historical(self) -> bool:
        return self.version is not None


@dataclass
class HistoryRef:
    """Pointer to one history item."""
    key: str
    account: str
    timestamp: str
    moment: datetime


@dataclass
class PendingDeletion:
    """One key proposed for deletion, shown to the confirmation callback."""
    key: str
    history_count: int = 0


@dataclass
class DeleteResult:
    pattern: str
    matched: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    history_deleted: int = 0
    cancelled: bool = False

    @property
    def count(self) -> int:
        return len(self.deleted)

    @property
    def success(self) -> bool:
        return (
            not self.cancelled
            and bool(self.matched)
            and len(self.deleted) == len(self.matched)
        )


@dataclass
class EntrySummary:
    """One row of list_entries()."""
    key: str
    original_path: Optional[str] = None
    last_modified: Optional[datetime] = None
    history_count: int = 0
    has_current: bool = True


ConfirmCallback = Callable[[List[PendingDeletion]], bool]


# ── Versioned Vault ──────────────────────────────────────────────────


class VersionedVault:
    """
    Versioned file storage on top of an AttributeStore.

    Usage::

        vault = VersionedVault(SQLiteAttributeStore(db_path, key_path))
        vault.save("myapp-dev", b"API_KEY=...", "/home/me/myapp/.env")
        entry = vault.get("myapp-dev")
        previous = vault.get("myapp-dev", version=0)
    """

    def __init__(
        self,
        store: AttributeStore,
        entry_prefix: str = DEFAULT_ENTRY_PREFIX,
        history_prefix: str = DEFAULT_HISTORY_PREFIX,
        clock: Optional[Callable[[], datetime]] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        """
        Args:
            store: Backend holding current and history items
            entry_prefix: Account prefix for current items
            history_prefix: Account prefix for history items
            clock: Returns the current time (UTC); defaults to the wall clock
            audit_logger: Defaults to the global audit logger
        """
        if not entry_prefix or not history_prefix or entry_prefix == history_prefix:
            raise ValueError("Entry and history prefixes must be non-empty and distinct")

        self.store = store
        self.entry_prefix = entry_prefix
        self.history_prefix = history_prefix
        self._clock = clock or utc_now
        self.audit = audit_logger or get_audit_logger()

    # ── Naming scheme ────────────────────────────────────────────────

    def entry_account(self, key: str) -> str:
        return self.entry_prefix + key

    def history_account(self, key: str, timestamp: str) -> str:
        return self.history_prefix + key + ":" + timestamp

    def _history_scope(self, key: str) -> str:
        return self.history_prefix + key + ":"

    def _split_history_account(self, account: str) -> Optional[Tuple[str, str]]:
        """Return (key, timestamp) for a history account, or None."""
        if not account.startswith(self.history_prefix):
            return None
        rest = account[len(self.history_prefix):]
        match = _HISTORY_SUFFIX.search(rest)
        if match is None or parse_timestamp(match.group(1)) is None:
            return None
        key = rest[:match.start()]
        if not key:
            return None
        return key, match.group(1)

    def _current_key(self, account: str) -> Optional[str]:
        if account.startswith(self.history_prefix):
            return None
        if not account.startswith(self.entry_prefix):
            return None
        return account[len(self.entry_prefix):]

    @staticmethod
    def validate_key(key: str) -> None:
        """Raise InvalidKeyError for empty keys or keys containing wildcards."""
        if not isinstance(key, str) or not key:
            raise InvalidKeyError("Key must be a non-empty string")
        if has_wildcards(key):
            raise InvalidKeyError(f"Key '{key}' must not contain '*' or '?'")

    # ── Save ─────────────────────────────────────────────────────────

    def save(
        self,
        key: str,
        data: bytes,
        original_path: Optional[str] = None,
    ) -> SaveResult:
        """
        Store ``data`` as the current value of ``key``.

        An existing current value is first copied into history under the
        current timestamp, keeping its own original path (or the new one if
        it had none). A failed snapshot is logged and does not block the
        write of the new value.

        Raises:
            InvalidKeyError: If the key is empty or contains wildcards
            StoreError: If the new current value cannot be written
        """
        self.validate_key(key)
        account = self.entry_account(key)
        moment = format_timestamp(self._clock())
        result = SaveResult(key=key)

        current = self.store.load(account)
        if current is not None and current.data is not None:
            history_account = self.history_account(key, moment)
            try:
                self.store.save(
                    history_account,
                    current.data,
                    label=current.label or original_path,
                    comment=None,
                )
                result.history_backed_up = True
                result.history_timestamp = moment
                self.audit.log_event(
                    event_type=EventType.HISTORY_BACKED_UP,
                    severity=EventSeverity.INFO,
                    message=f"Previous version of '{key}' backed up to history",
                    details={"key": key, "timestamp": moment},
                )
            except StoreError as e:
                logger.warning("Failed to save history for '%s': %s", key, e)
                self.audit.log_event(
                    event_type=EventType.STORE_ERROR,
                    severity=EventSeverity.WARNING,
                    message=f"Failed to back up previous version of '{key}': {e}",
                    details={"key": key},
                )

        try:
            self.store.save(
                account,
                bytes(data),
                label=original_path,
                comment=LAST_MODIFIED_PREFIX + moment,
            )
        except StoreError as e:
            self.audit.log_event(
                event_type=EventType.STORE_ERROR,
                severity=EventSeverity.ERROR,
                message=f"Failed to save '{key}': {e}",
                details={"key": key},
            )
            raise

        self.audit.log_event(
            event_type=EventType.ENTRY_SAVED,
            severity=EventSeverity.INFO,
            message=f"Saved '{key}'",
            details={
                "key": key,
                "size_bytes": len(data),
                "history_backed_up": result.history_backed_up,
            },
        )
        return result

    def save_file(self, key: str, path: Union[str, Path]) -> SaveResult:
        """Read a local file and save it, recording its absolute path.

        Raises:
            OSError: If the file cannot be read
        """
        source = Path(path)
        data = source.read_bytes()
        return self.save(key, data, str(source.resolve()))

    # ── Read ─────────────────────────────────────────────────────────

    def get(self, key: str, version: Optional[int] = None) -> VaultEntry:
        """
        Read the current value of ``key``, or history item ``version``
        (0 = most recent snapshot).

        Raises:
            HistoryIndexError: If ``version`` is out of range
            KeyNotFoundError: If the item does not exist
        """
        timestamp = None
        if version is None:
            account = self.entry_account(key)
        else:
            refs = self.list_history(key)
            if version < 0 or version >= len(refs):
                raise HistoryIndexError(key, version, len(refs))
            account = refs[version].account
            timestamp = refs[version].timestamp

        item = self.store.load(account)
        if item is None or item.data is None:
            raise KeyNotFoundError(key)

        last_modified = last_modified_text(item.comment) if version is None else None

        self.audit.log_event(
            event_type=EventType.ENTRY_ACCESSED,
            severity=EventSeverity.INFO,
            message=f"Accessed '{key}'" + (f" (version {version})" if version is not None else ""),
            details={"key": key, "version": version},
        )

        return VaultEntry(
            key=key,
            data=item.data,
            original_path=item.label,
            last_modified=last_modified,
            version=version,
            timestamp=timestamp,
        )

    def list_history(self, key: str) -> List[HistoryRef]:
        """History items for ``key``, newest first."""
        scope = self._history_scope(key)
        refs = []
        for item in self.store.list_items():
            if not item.account.startswith(scope):
                continue
            timestamp = item.account[len(scope):]
            moment = parse_timestamp(timestamp)
            if moment is None:
                # Belongs to a longer key sharing this prefix, e.g. "app:dev"
                continue
            refs.append(HistoryRef(key=key, account=item.account, timestamp=timestamp, moment=moment))

        refs.sort(key=lambda ref: (ref.moment, ref.timestamp), reverse=True)
        return refs

    def match_keys(self, pattern: str) -> List[str]:
        """Current keys matching a wildcard pattern, ascending."""
        matcher = compile_pattern(pattern)
        keys = []
        for item in self.store.list_items():
            key = self._current_key(item.account)
            if key is not None and matcher.matches(key):
                keys.append(key)
        return sorted(keys)

    def _history_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = defaultdict(int)
        for item in self.store.list_items():
            parsed = self._split_history_account(item.account)
            if parsed is not None:
                counts[parsed[0]] += 1
        return counts

    def list_entries(self) -> List[EntrySummary]:
        """
        Summarize every key, sorted ascending.

        History is counted separately from current items, so keys whose
        current item is gone but whose history remains still appear
        (``has_current=False``).
        """
        summaries: Dict[str, EntrySummary] = {}

        for item in self.store.list_items():
            parsed = self._split_history_account(item.account)
            if parsed is not None:
                key = parsed[0]
                summary = summaries.setdefault(key, EntrySummary(key=key, has_current=False))
                summary.history_count += 1
                continue

            key = self._current_key(item.account)
            if key is None:
                continue
            summary = summaries.setdefault(key, EntrySummary(key=key))
            summary.has_current = True
            summary.original_path = unquote(item.label) if item.label else None
            summary.last_modified = parse_last_modified(item.comment)

        return [summaries[key] for key in sorted(summaries)]

    # ── Delete ───────────────────────────────────────────────────────

    def plan_deletion(self, key_or_pattern: str) -> List[PendingDeletion]:
        """The keys delete() would remove, with their history counts."""
        if has_wildcards(key_or_pattern):
            keys = self.match_keys(key_or_pattern)
        else:
            keys = [key_or_pattern]
        counts = self._history_counts()
        return [PendingDeletion(key=key, history_count=counts.get(key, 0)) for key in keys]

    def delete(
        self,
        key_or_pattern: str,
        force: bool = False,
        confirm: Optional[ConfirmCallback] = None,
    ) -> DeleteResult:
        """
        Delete a key (or every key matching a wildcard pattern) together
        with all of its history.

        Pattern deletions need approval: unless ``force`` is set,
        ``confirm`` receives the proposed deletions and must return True.
        Without a callback the deletion is cancelled.

        Raises:
            KeyNotFoundError: Literal key without a current item, or a
                              pattern that matches nothing
            StoreError: Backend failure while deleting a literal key
        """
        if not has_wildcards(key_or_pattern):
            key = key_or_pattern
            deleted, history_deleted = self._delete_single(key)
            if not deleted:
                raise KeyNotFoundError(key)
            return DeleteResult(
                pattern=key, matched=[key], deleted=[key], history_deleted=history_deleted
            )

        pending = self.plan_deletion(key_or_pattern)
        if not pending:
            raise KeyNotFoundError(
                key_or_pattern, f"No keys found matching pattern '{key_or_pattern}'"
            )

        result = DeleteResult(pattern=key_or_pattern, matched=[p.key for p in pending])

        if not force:
            approved = confirm(list(pending)) if confirm is not None else False
            if not approved:
                result.cancelled = True
                self.audit.log_event(
                    event_type=EventType.DELETE_CANCELLED,
                    severity=EventSeverity.INFO,
                    message=f"Deletion of '{key_or_pattern}' cancelled",
                    details={"pattern": key_or_pattern, "matched": len(pending)},
                )
                return result

        for key in result.matched:
            try:
                deleted, history_deleted = self._delete_single(key)
            except StoreError as e:
                logger.warning("Failed to delete '%s': %s", key, e)
                continue
            result.history_deleted += history_deleted
            if deleted:
                result.deleted.append(key)

        return result

    def _delete_single(self, key: str) -> Tuple[bool, int]:
        """Delete the current item and all history of one key.

        Returns:
            (current_deleted, history_items_deleted)
        """
        deleted = self.store.delete(self.entry_account(key))

        history_deleted = 0
        for ref in self.list_history(key):
            if self.store.delete(ref.account):
                history_deleted += 1

        if deleted or history_deleted:
            self.audit.log_event(
                event_type=EventType.ENTRY_DELETED,
                severity=EventSeverity.INFO if deleted else EventSeverity.WARNING,
                message=f"Deleted '{key}'" if deleted else f"Deleted orphaned history of '{key}'",
                details={"key": key, "current_deleted": deleted, "history_deleted": history_deleted},
            )
        return deleted, history_deleted

    # ── Restore (used by import) ─────────────────────────────────────

    def restore_current(
        self,
        key: str,
        data: bytes,
        original_path: Optional[str] = None,
        last_modified: Optional[str] = None,
    ) -> None:
        """Overwrite the current value without snapshotting the old one.

        ``last_modified`` keeps an imported modification time; malformed or
        missing values are replaced by the clock.
        """
        self.validate_key(key)
        if last_modified is None or parse_timestamp(last_modified) is None:
            last_modified = format_timestamp(self._clock())
        self.store.save(
            self.entry_account(key),
            bytes(data),
            label=original_path,
            comment=LAST_MODIFIED_PREFIX + last_modified,
        )

    def restore_history(
        self,
        key: str,
        timestamp: str,
        data: bytes,
        original_path: Optional[str] = None,
    ) -> None:
        """Write one history item under an existing timestamp.

        Raises:
            ValidationError: If ``timestamp`` is not in the vault encoding
        """
        self.validate_key(key)
        if parse_timestamp(timestamp) is None:
            raise ValidationError(f"Invalid history timestamp '{timestamp}'")
        self.store.save(
            self.history_account(key, timestamp),
            bytes(data),
            label=original_path,
            comment=None,
        )
