# envpocket - versioned, encrypted storage for environment files
#
# Files are stored under string keys; every overwrite keeps the previous
# version in history. Entries can be exported as password-protected
# containers and imported on another machine.

__version__ = "0.2.0"
__description__ = "Versioned, encrypted storage for environment files"

from .vault import (
    ExportCodec,
    VersionedVault,
)
from .store import (
    AttributeStore,
    InMemoryAttributeStore,
    SQLiteAttributeStore,
)

__all__ = [
    "__version__",
    "VersionedVault",
    "ExportCodec",
    "AttributeStore",
    "InMemoryAttributeStore",
    "SQLiteAttributeStore",
]
