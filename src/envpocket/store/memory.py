"""In-memory attribute store, used by tests and throwaway sessions."""

from typing import Dict, List, Optional

from .base import AttributeStore, StoreItem


class InMemoryAttributeStore(AttributeStore):
    """Dict-backed store. Nothing survives the process."""

    def __init__(self):
        self._items: Dict[str, StoreItem] = {}

    def save(self, account, data, label=None, comment=None):
        self._items[account] = StoreItem(
            account=account, data=bytes(data), label=label, comment=comment
        )

    def load(self, account):
        item = self._items.get(account)
        if item is None:
            return None
        return StoreItem(item.account, item.data, item.label, item.comment)

    def delete(self, account):
        return self._items.pop(account, None) is not None

    def list_items(self) -> List[StoreItem]:
        return [
            StoreItem(account=item.account, label=item.label, comment=item.comment)
            for item in self._items.values()
        ]

    def accounts(self) -> List[str]:
        """All stored account names, sorted (test helper)."""
        return sorted(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, account: Optional[str]) -> bool:
        return account in self._items
