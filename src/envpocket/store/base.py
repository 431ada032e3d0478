"""Abstract interface for the secure attribute store.

The vault never talks to a storage backend directly. Each backend exposes
the same four operations over opaque items addressed by an ``account``
string, each carrying a data blob plus optional ``label`` and ``comment``
text attributes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class StoreItem:
    """One item in the attribute store.

    ``data`` is None for items returned by ``list_items()``, which only
    enumerates attributes.
    """
    account: str
    data: Optional[bytes] = None
    label: Optional[str] = None
    comment: Optional[str] = None


class AttributeStore(ABC):
    """Secure key/value substrate with label and comment attributes."""

    @abstractmethod
    def save(
        self,
        account: str,
        data: bytes,
        label: Optional[str] = None,
        comment: Optional[str] = None,
    ) -> None:
        """Create or replace the item for ``account``.

        Raises:
            StoreError: If the backend rejects the write.
        """

    @abstractmethod
    def load(self, account: str) -> Optional[StoreItem]:
        """Return the item with its data, or None if it does not exist."""

    @abstractmethod
    def delete(self, account: str) -> bool:
        """Delete an item. Returns False if it did not exist.

        Raises:
            StoreError: If the backend fails for any other reason.
        """

    @abstractmethod
    def list_items(self) -> List[StoreItem]:
        """Return the attributes of every item (without data)."""
