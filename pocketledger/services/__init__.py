"""Services package."""

from pocketledger.services.storage import (
    AuditStorageInterface,
    CollectionAuditStorage,
    Collections,
    CollectionStore,
    ConnectionError,
    DuplicateError,
    GoogleSheetsClient,
    GoogleSheetsCollectionStore,
    InMemoryCollectionStore,
    LedgerRepository,
    NotFoundError,
    StorageError,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "CollectionAuditStorage",
    "Collections",
    "CollectionStore",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsClient",
    "GoogleSheetsCollectionStore",
    "InMemoryCollectionStore",
    "LedgerRepository",
    "NotFoundError",
    "StorageError",
]
