"""Attribute store backends."""

from .base import AttributeStore, StoreItem
from .memory import InMemoryAttributeStore
from .sqlite_store import SQLiteAttributeStore

__all__ = [
    "AttributeStore",
    "StoreItem",
    "InMemoryAttributeStore",
    "SQLiteAttributeStore",
]
