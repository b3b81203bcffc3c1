"""
Abstract Storage Interface

DESIGN DECISION: The engine only needs a key -> list-of-records store.
Each collection (rules, transactions, instruments, accounts, ...) is
read and written whole. This allows us to:
1. Back the ledger with Google Sheets or an in-memory store
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

Records are plain JSON-serializable dicts. Typed (de)serialization lives
in the repository layer, not in the backends.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from pocketledger.models.audit import AuditEvent

Record = dict[str, Any]


class CollectionStore(ABC):
    """
    Abstract interface for whole-collection storage.

    Any storage implementation (Google Sheets, in-memory, ...) must
    implement these methods.
    """

    @abstractmethod
    async def get(self, collection: str) -> list[Record]:
        """
        Read every record of a collection.

        Args:
            collection: Collection name

        Returns:
            The records, or an empty list if the collection does not exist

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def set(self, collection: str, records: list[Record]) -> None:
        """
        Replace the whole content of a collection.

        Args:
            collection: Collection name
            records: JSON-serializable records

        Raises:
            StorageError: If the write fails
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one recurring run).

        Args:
            correlation_id: The correlation identifier

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
        entity_id: Optional[str] = None,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Args:
            limit: Maximum number of events to return
            entity_id: Only events about this entity

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
