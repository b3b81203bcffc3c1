"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
The ledger lives in a collection store: in memory for tests and local use,
Google Sheets for persistence.
"""

from pocketledger.services.storage.interface import (
    AuditStorageInterface,
    CollectionStore,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    StorageError,
)
from pocketledger.services.storage.memory import InMemoryCollectionStore
from pocketledger.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsCollectionStore,
)
from pocketledger.services.storage.repository import (
    CollectionAuditStorage,
    Collections,
    LedgerRepository,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "CollectionStore",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "GoogleSheetsClient",
    "GoogleSheetsCollectionStore",
    "InMemoryCollectionStore",
    # Repository
    "CollectionAuditStorage",
    "Collections",
    "LedgerRepository",
]
