"""
Ledger Repository

Maps collection-store records to pydantic models and owns write
serialization.

CRITICAL: Every mutation is a whole-collection read-modify-write. Two
concurrent writers on the same collection would lose an update, so each
collection has its own asyncio.Lock. Callers that touch several
collections take them through ``locked()``, which always acquires in
sorted name order so two flows can never deadlock each other.

The load/save methods here do NOT lock. The flow layer takes the locks
once per operation and then calls them.
"""

import asyncio
from collections import defaultdict
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, Optional, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from pocketledger.models.audit import AuditEvent
from pocketledger.models.ledger import (
    Account,
    FundingInstrument,
    SettlementLink,
    Transaction,
)
from pocketledger.models.recurrence import RecurrenceRule
from pocketledger.models.settlement import EngineState
from pocketledger.services.storage.interface import (
    AuditStorageInterface,
    CollectionStore,
    StorageError,
)

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class Collections:
    """Collection names in the store."""
    RULES = "recurring_rules"
    TRANSACTIONS = "transactions"
    INSTRUMENTS = "funding_instruments"
    ACCOUNTS = "accounts"
    SETTLEMENT_LINKS = "settlement_links"
    ENGINE_STATE = "engine_state"
    AUDIT_LOG = "audit_log"


class LedgerRepository:
    """
    Typed access to the ledger collections.

    Usage:
        async with repository.locked(Collections.TRANSACTIONS, Collections.ACCOUNTS):
            transactions = await repository.load_transactions()
            ...
            await repository.save_transactions(transactions)
    """

    def __init__(self, store: CollectionStore):
        self._store = store
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def store(self) -> CollectionStore:
        return self._store

    @asynccontextmanager
    async def locked(self, *collections: str) -> AsyncIterator[None]:
        """Hold the write locks of ``collections`` (sorted, deduplicated)."""
        async with AsyncExitStack() as stack:
            for name in sorted(set(collections)):
                await stack.enter_async_context(self._locks[name])
            yield

    # =========================================================================
    # GENERIC MAPPING
    # =========================================================================

    async def _load(self, collection: str, model: type[ModelT]) -> list[ModelT]:
        records = await self._store.get(collection)
        items = []
        for record in records:
            try:
                items.append(model.model_validate(record))
            except ValidationError as e:
                # Saving the collection back would silently drop the record
                raise StorageError(
                    f"Invalid record in '{collection}' (id={record.get('id')}): {e}"
                ) from e
        return items

    async def _save(self, collection: str, items: list[BaseModel]) -> None:
        await self._store.set(
            collection,
            [item.model_dump(mode="json") for item in items],
        )

    # =========================================================================
    # COLLECTIONS
    # =========================================================================

    async def load_rules(self) -> list[RecurrenceRule]:
        return await self._load(Collections.RULES, RecurrenceRule)

    async def save_rules(self, rules: list[RecurrenceRule]) -> None:
        await self._save(Collections.RULES, rules)

    async def load_transactions(self) -> list[Transaction]:
        return await self._load(Collections.TRANSACTIONS, Transaction)

    async def save_transactions(self, transactions: list[Transaction]) -> None:
        await self._save(Collections.TRANSACTIONS, transactions)

    async def load_instruments(self) -> list[FundingInstrument]:
        return await self._load(Collections.INSTRUMENTS, FundingInstrument)

    async def save_instruments(self, instruments: list[FundingInstrument]) -> None:
        await self._save(Collections.INSTRUMENTS, instruments)

    async def load_accounts(self) -> list[Account]:
        return await self._load(Collections.ACCOUNTS, Account)

    async def save_accounts(self, accounts: list[Account]) -> None:
        await self._save(Collections.ACCOUNTS, accounts)

    async def load_links(self) -> list[SettlementLink]:
        return await self._load(Collections.SETTLEMENT_LINKS, SettlementLink)

    async def save_links(self, links: list[SettlementLink]) -> None:
        await self._save(Collections.SETTLEMENT_LINKS, links)

    async def load_state(self) -> EngineState:
        """The singleton engine state record (defaults when absent)."""
        records = await self._load(Collections.ENGINE_STATE, EngineState)
        return records[0] if records else EngineState()

    async def save_state(self, state: EngineState) -> None:
        await self._save(Collections.ENGINE_STATE, [state])

    async def load_audit_events(self) -> list[AuditEvent]:
        return await self._load(Collections.AUDIT_LOG, AuditEvent)

    async def save_audit_events(self, events: list[AuditEvent]) -> None:
        await self._save(Collections.AUDIT_LOG, events)

    async def mark_settlements_dirty(self) -> None:
        """Invalidate the cached projection. Caller holds the engine_state lock."""
        state = await self.load_state()
        if not state.settlements_dirty:
            state.settlements_dirty = True
            await self.save_state(state)


class CollectionAuditStorage(AuditStorageInterface):
    """
    Audit log kept as a collection in the same store as the ledger.

    Audit events are append-only. The oldest events are dropped once the
    log grows past ``max_events``.
    """

    def __init__(self, repository: LedgerRepository, max_events: int = 5000):
        self._repository = repository
        self._max_events = max_events

    async def _events(self) -> list[AuditEvent]:
        return await self._repository.load_audit_events()

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            async with self._repository.locked(Collections.AUDIT_LOG):
                events = await self._events()
                events.append(event)
                if len(events) > self._max_events:
                    events = events[-self._max_events:]
                await self._repository.save_audit_events(events)
            return True
        except StorageError as e:
            # Don't raise - audit logging should not break the main flow
            logger.warning("audit_write_failed", error=str(e))
            return False

    async def get_events_by_correlation_id(self, correlation_id: str) -> list[AuditEvent]:
        """Get events by correlation ID."""
        events = [
            e for e in await self._events()
            if e.correlation_id is not None and str(e.correlation_id) == str(correlation_id)
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
        entity_id: Optional[str] = None,
    ) -> list[AuditEvent]:
        """Get recent events (newest first)."""
        events = await self._events()
        if entity_id is not None:
            events = [e for e in events if e.entity_id == entity_id]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
