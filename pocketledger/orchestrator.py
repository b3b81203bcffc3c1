"""
Main Orchestrator for Pocket Ledger

This module ties together all the components and defines the
end-to-end flows for:
1. Ledger maintenance (record/update/delete → settle → rebalance)
2. Recurring processing (rule → due date → transaction → cursor)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Pure calculation (recurrence, settlement, balances) never touches storage
- Every store mutation is a locked whole-collection read-modify-write
- Settlement fields, link rows and rule cursors are written only here
- Every write is audited

This is the "glue" that keeps derived data (balances, projections,
settlement entries) consistent with the ledger.
"""

import asyncio
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional, Union
from uuid import UUID

import structlog

from pocketledger.audit import AuditLogger, configure_logging, create_correlation_id
from pocketledger.balances import BalanceEngine
from pocketledger.config import EngineSettings, get_settings
from pocketledger.models.audit import AuditEventType
from pocketledger.models.ledger import (
    Account,
    BalanceReport,
    FundingInstrument,
    SettlementLink,
    Transaction,
    TransactionStatus,
    TransactionType,
    ValidationResult,
    utcnow,
)
from pocketledger.models.recurrence import RecurrenceRule, RuleStatus, RunSummary
from pocketledger.models.settlement import SettlementProjection
from pocketledger.recurrence import as_date, next_occurrence
from pocketledger.services.storage import (
    CollectionAuditStorage,
    Collections,
    CollectionStore,
    DuplicateError,
    GoogleSheetsClient,
    GoogleSheetsCollectionStore,
    InMemoryCollectionStore,
    LedgerRepository,
    NotFoundError,
)
from pocketledger.settlement import apply_settlement, upcoming_settlements
from pocketledger.validation import LedgerValidator

logger = structlog.get_logger(__name__)

# Fields callers may never set through update_* calls
TRANSACTION_ENGINE_FIELDS = frozenset({"id", "status", "settlement_date", "created_at", "updated_at"})
RULE_ENGINE_FIELDS = frozenset({"id", "last_generated_date", "created_at", "updated_at"})

# Settlement entries aggregate charges sharing this key
SettlementKey = tuple[str, date, TransactionType, str]


def _as_utc(moment: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


class LedgerFlow:
    """
    Orchestrates ledger writes and the projections derived from them.

    Flow for a transaction write:
    1. Validate → pydantic model validation
    2. Settle → attach settlement date / pending status from the instrument
    3. Persist → transactions collection, projection marked dirty
    4. Rebalance → full balance recompute

    Settlement entries are engine-owned. Callers cannot create or edit
    them except through ``post_settlements``.
    """

    def __init__(
        self,
        repository: LedgerRepository,
        audit_logger: Optional[AuditLogger] = None,
        balance_engine: Optional[BalanceEngine] = None,
        validator: Optional[LedgerValidator] = None,
    ):
        self._repository = repository
        self._audit_logger = audit_logger
        self._balance_engine = balance_engine or BalanceEngine()
        self._validator = validator or LedgerValidator(repository)

    @property
    def repository(self) -> LedgerRepository:
        return self._repository

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    async def record_transaction(
        self,
        transaction: Transaction,
        refresh_balances: bool = True,
    ) -> Transaction:
        """
        Record a new ledger entry.

        Args:
            transaction: The entry to record (settlement fields are derived)
            refresh_balances: Recompute balances after the write

        Returns:
            The stored transaction

        Raises:
            DuplicateError: If a transaction with the same id exists
            ValueError: If the entry is a settlement entry
        """
        if transaction.status == TransactionStatus.SETTLEMENT:
            raise ValueError("Settlement entries are managed by post_settlements")

        repo = self._repository
        async with repo.locked(Collections.TRANSACTIONS, Collections.INSTRUMENTS, Collections.ENGINE_STATE):
            transactions = await repo.load_transactions()
            if any(t.id == transaction.id for t in transactions):
                raise DuplicateError(f"Transaction already exists: {transaction.id}")

            instruments = {i.id: i for i in await repo.load_instruments()}
            stored = apply_settlement(transaction, instruments.get(transaction.instrument_id or ""))

            transactions.append(stored)
            await repo.save_transactions(transactions)
            await repo.mark_settlements_dirty()

        logger.info(
            "transaction_recorded",
            transaction_id=stored.id,
            type=stored.type.value,
            status=stored.status.value,
        )
        if self._audit_logger:
            await self._audit_logger.log_transaction_recorded(
                transaction_id=stored.id,
                transaction_type=stored.type.value,
                amount=stored.amount,
                status=stored.status.value,
                settlement_date=stored.settlement_date,
            )

        if refresh_balances:
            await self.refresh_balances()
        return stored

    async def record_occurrence(self, rule_id: str, transaction: Transaction) -> tuple[Transaction, bool]:
        """
        Record a rule-generated transaction and move the rule's cursor to
        its date in one locked write.

        A transaction already generated for the same rule and date is kept
        instead of recorded again. If the cursor cannot be written the new
        transaction is removed again before the error propagates.

        Returns:
            (stored transaction, True if it was newly recorded)

        Raises:
            NotFoundError: If the rule doesn't exist
        """
        repo = self._repository
        occurrence = transaction.transaction_date

        async with repo.locked(
            Collections.RULES,
            Collections.TRANSACTIONS,
            Collections.INSTRUMENTS,
            Collections.ENGINE_STATE,
        ):
            rules = await repo.load_rules()
            index = next((i for i, r in enumerate(rules) if r.id == rule_id), None)
            if index is None:
                raise NotFoundError(f"Rule not found: {rule_id}")

            transactions = await repo.load_transactions()
            existing = next(
                (
                    t for t in transactions
                    if t.recurring_rule_id == rule_id and t.transaction_date == occurrence
                ),
                None,
            )
            if existing is None:
                instruments = {i.id: i for i in await repo.load_instruments()}
                stored = apply_settlement(transaction, instruments.get(transaction.instrument_id or ""))
                await repo.save_transactions([*transactions, stored])
                await repo.mark_settlements_dirty()
            else:
                logger.warning(
                    "occurrence_already_recorded",
                    rule_id=rule_id,
                    occurrence=occurrence.isoformat(),
                    transaction_id=existing.id,
                )
                stored = existing

            rules[index] = rules[index].model_copy(update={
                "last_generated_date": occurrence,
                "updated_at": utcnow(),
            })
            try:
                await repo.save_rules(rules)
            except Exception:
                if existing is None:
                    await repo.save_transactions(transactions)
                raise

        if existing is not None:
            return stored, False

        logger.info(
            "transaction_recorded",
            transaction_id=stored.id,
            type=stored.type.value,
            status=stored.status.value,
        )
        if self._audit_logger:
            await self._audit_logger.log_transaction_recorded(
                transaction_id=stored.id,
                transaction_type=stored.type.value,
                amount=stored.amount,
                status=stored.status.value,
                settlement_date=stored.settlement_date,
            )
        return stored, True

    async def update_transaction(self, transaction_id: str, **changes: Any) -> Transaction:
        """
        Edit a ledger entry and re-derive its settlement fields.

        An edited charge is detached from any settlement entry it was
        posted to, so the next posting run settles it again with its new
        amount and date.

        Raises:
            NotFoundError: If the transaction doesn't exist
            ValueError: On engine-owned fields or settlement entries
        """
        protected = TRANSACTION_ENGINE_FIELDS & changes.keys()
        if protected:
            raise ValueError(f"Engine-owned fields cannot be updated: {sorted(protected)}")

        repo = self._repository
        async with repo.locked(
            Collections.TRANSACTIONS,
            Collections.INSTRUMENTS,
            Collections.SETTLEMENT_LINKS,
            Collections.ENGINE_STATE,
        ):
            transactions = await repo.load_transactions()
            current = self._find(transactions, transaction_id)
            if current.status == TransactionStatus.SETTLEMENT:
                raise ValueError("Settlement entries are managed by post_settlements")

            edited = Transaction.model_validate({
                **current.model_dump(),
                **changes,
                "updated_at": utcnow(),
            })

            links = await repo.load_links()
            transactions, links, _ = self._detach(current, transactions, links)

            instruments = {i.id: i for i in await repo.load_instruments()}
            stored = apply_settlement(edited, instruments.get(edited.instrument_id or ""))
            transactions = [stored if t.id == stored.id else t for t in transactions]

            await repo.save_transactions(transactions)
            await repo.save_links(links)
            await repo.mark_settlements_dirty()

        if self._audit_logger:
            await self._audit_logger.log_entity_saved(
                event_type=AuditEventType.TRANSACTION_UPDATED,
                entity_type="transaction",
                entity_id=stored.id,
                details={"fields": sorted(changes)},
            )

        await self.refresh_balances()
        return stored

    async def delete_transaction(self, transaction_id: str) -> list[str]:
        """
        Remove a ledger entry.

        - Deleting a charge subtracts it from its settlement entry, and
          removes the entry once nothing is linked to it.
        - Deleting a settlement entry drops its links, so its charges are
          posted again on the next posting run.

        Returns:
            Ids of every transaction removed

        Raises:
            NotFoundError: If the transaction doesn't exist
        """
        repo = self._repository
        async with repo.locked(
            Collections.TRANSACTIONS,
            Collections.SETTLEMENT_LINKS,
            Collections.ENGINE_STATE,
        ):
            transactions = await repo.load_transactions()
            target = self._find(transactions, transaction_id)
            links = await repo.load_links()

            if target.status == TransactionStatus.SETTLEMENT:
                links = [row for row in links if row.settlement_id != target.id]
                removed = [target.id]
            else:
                transactions, links, removed = self._detach(target, transactions, links)
                removed.insert(0, target.id)

            transactions = [t for t in transactions if t.id != target.id]
            await repo.save_transactions(transactions)
            await repo.save_links(links)
            await repo.mark_settlements_dirty()

        logger.info("transaction_deleted", transaction_id=transaction_id, removed=removed)
        if self._audit_logger:
            await self._audit_logger.log_transaction_deleted(
                transaction_id=transaction_id,
                removed_ids=removed,
            )

        await self.refresh_balances()
        return removed

    @staticmethod
    def _find(transactions: list[Transaction], transaction_id: str) -> Transaction:
        for txn in transactions:
            if txn.id == transaction_id:
                return txn
        raise NotFoundError(f"Transaction not found: {transaction_id}")

    @staticmethod
    def _detach(
        origin: Transaction,
        transactions: list[Transaction],
        links: list[SettlementLink],
    ) -> tuple[list[Transaction], list[SettlementLink], list[str]]:
        """
        Take a charge out of its settlement entry.

        Returns the new transactions and links, plus the ids of settlement
        entries removed because they became empty.
        """
        link = next((row for row in links if row.origin_id == origin.id), None)
        if link is None:
            return transactions, links, []

        links = [row for row in links if row.origin_id != origin.id]
        still_linked = any(row.settlement_id == link.settlement_id for row in links)

        if not still_linked:
            return [t for t in transactions if t.id != link.settlement_id], links, [link.settlement_id]

        result = []
        for txn in transactions:
            if txn.id == link.settlement_id:
                txn = txn.model_copy(update={
                    "amount": max(txn.amount - origin.amount, Decimal("0")),
                    "updated_at": utcnow(),
                })
            result.append(txn)
        return result, links, []

    # =========================================================================
    # SETTLEMENT POSTING
    # =========================================================================

    async def post_settlements(
        self,
        now: Optional[Union[date, datetime]] = None,
        refresh_balances: bool = True,
    ) -> list[Transaction]:
        """
        Post every pending charge whose settlement date has arrived.

        Charges are grouped by (instrument, settlement date, type, credited
        account). Each group extends the matching settlement entry or
        creates a new one, and every charge gets a link row.

        Returns:
            The settlement entries created or extended
        """
        today = as_date(now or utcnow())
        repo = self._repository
        posted: dict[str, tuple[Transaction, list[str]]] = {}

        async with repo.locked(
            Collections.TRANSACTIONS,
            Collections.INSTRUMENTS,
            Collections.SETTLEMENT_LINKS,
            Collections.ENGINE_STATE,
        ):
            transactions = await repo.load_transactions()
            instruments = {i.id: i for i in await repo.load_instruments()}
            links = await repo.load_links()
            linked = {row.origin_id for row in links}

            groups: dict[SettlementKey, list[Transaction]] = defaultdict(list)
            for txn in transactions:
                if (
                    txn.status != TransactionStatus.PENDING_SETTLEMENT
                    or txn.settlement_date is None
                    or txn.settlement_date > today
                    or txn.id in linked
                ):
                    continue
                instrument = instruments.get(txn.instrument_id or "")
                if instrument is None:
                    logger.warning("settlement_skipped_missing_instrument", transaction_id=txn.id)
                    continue
                target = instrument.account_id if txn.type == TransactionType.EXPENSE else txn.account_id
                if not target:
                    logger.warning("settlement_skipped_missing_account", transaction_id=txn.id)
                    continue
                groups[(instrument.id, txn.settlement_date, txn.type, target)].append(txn)

            if not groups:
                return []

            entries: dict[SettlementKey, Transaction] = {
                (t.instrument_id, t.transaction_date, t.type, t.account_id): t
                for t in transactions
                if t.status == TransactionStatus.SETTLEMENT
            }

            for key, charges in groups.items():
                instrument_id, settle_on, txn_type, target = key
                total = sum((c.amount for c in charges), Decimal("0"))
                entry = entries.get(key)

                if entry is None:
                    entry = Transaction(
                        type=txn_type,
                        amount=total,
                        transaction_date=settle_on,
                        description=f"{instruments[instrument_id].name} settlement".strip(),
                        account_id=target,
                        instrument_id=instrument_id,
                        status=TransactionStatus.SETTLEMENT,
                        settlement_date=settle_on,
                    )
                    transactions.append(entry)
                else:
                    entry = entry.model_copy(update={
                        "amount": entry.amount + total,
                        "updated_at": utcnow(),
                    })
                    transactions = [entry if t.id == entry.id else t for t in transactions]
                entries[key] = entry

                links.extend(SettlementLink(origin_id=c.id, settlement_id=entry.id) for c in charges)
                origin_ids = posted.get(entry.id, (entry, []))[1] + [c.id for c in charges]
                posted[entry.id] = (entry, origin_ids)

            await repo.save_transactions(transactions)
            await repo.save_links(links)
            await repo.mark_settlements_dirty()

        for entry, origin_ids in posted.values():
            logger.info(
                "settlement_posted",
                settlement_id=entry.id,
                instrument_id=entry.instrument_id,
                settlement_date=entry.transaction_date.isoformat(),
                origins=len(origin_ids),
            )
            if self._audit_logger:
                await self._audit_logger.log_settlement_posted(
                    settlement_id=entry.id,
                    instrument_id=entry.instrument_id,
                    settlement_date=entry.transaction_date,
                    amount=entry.amount,
                    origin_ids=origin_ids,
                )

        if refresh_balances:
            await self.refresh_balances()
        return [entry for entry, _ in posted.values()]

    # =========================================================================
    # PROJECTIONS
    # =========================================================================

    async def refresh_balances(self) -> BalanceReport:
        """Recompute every account balance from the full ledger and persist it."""
        repo = self._repository
        async with repo.locked(Collections.ACCOUNTS, Collections.TRANSACTIONS, Collections.INSTRUMENTS):
            report = self._balance_engine.recompute(
                await repo.load_transactions(),
                await repo.load_accounts(),
                await repo.load_instruments(),
            )
            await repo.save_accounts(report.accounts)

        if self._audit_logger:
            await self._audit_logger.log_balances_recomputed(
                account_count=len(report.accounts),
                applied_count=report.applied_count,
                skipped_count=len(report.skipped),
            )
            for issue in report.skipped:
                await self._audit_logger.log_dangling_reference(
                    transaction_id=issue.entity_id,
                    field=issue.field,
                    message=issue.message,
                )
        return report

    async def upcoming_settlements(
        self,
        today: Optional[Union[date, datetime]] = None,
    ) -> SettlementProjection:
        """
        This month's and next month's settlements.

        Served from the cached projection while no write has happened
        since it was computed for the same day.
        """
        today = as_date(today or utcnow())
        repo = self._repository
        async with repo.locked(
            Collections.ENGINE_STATE,
            Collections.TRANSACTIONS,
            Collections.INSTRUMENTS,
            Collections.ACCOUNTS,
        ):
            state = await repo.load_state()
            cached = state.cached_projection
            if not state.settlements_dirty and cached is not None and cached.as_of == today:
                return cached

            projection = upcoming_settlements(
                await repo.load_transactions(),
                await repo.load_instruments(),
                await repo.load_accounts(),
                today,
            )
            state.cached_projection = projection
            state.settlements_dirty = False
            await repo.save_state(state)

        logger.debug(
            "settlement_projection_rebuilt",
            as_of=today.isoformat(),
            current=len(projection.current_month),
            upcoming=len(projection.next_month),
        )
        return projection

    async def check_integrity(self) -> ValidationResult:
        """Run the two-stage integrity check over stored data."""
        return await self._validator.validate_stored()

    # =========================================================================
    # RULES, INSTRUMENTS, ACCOUNTS
    # =========================================================================

    async def save_rule(self, rule: RecurrenceRule) -> RecurrenceRule:
        """
        Register a new recurrence rule.

        Raises:
            DuplicateError: If a rule with the same id exists
            ValueError: If the rule already carries a generation cursor
        """
        if rule.last_generated_date is not None:
            raise ValueError("last_generated_date is managed by the recurring processor")

        async with self._repository.locked(Collections.RULES):
            rules = await self._repository.load_rules()
            if any(r.id == rule.id for r in rules):
                raise DuplicateError(f"Rule already exists: {rule.id}")
            rules.append(rule)
            await self._repository.save_rules(rules)

        if self._audit_logger:
            await self._audit_logger.log_entity_saved(
                event_type=AuditEventType.RULE_SAVED,
                entity_type="rule",
                entity_id=rule.id,
                details={"title": rule.title, "frequency": rule.frequency.value},
            )
        return rule

    async def update_rule(self, rule_id: str, **changes: Any) -> RecurrenceRule:
        """
        Edit a recurrence rule. The generation cursor is left untouched.

        Raises:
            NotFoundError: If the rule doesn't exist
            ValueError: On engine-owned fields or an invalid schedule
        """
        protected = RULE_ENGINE_FIELDS & changes.keys()
        if protected:
            raise ValueError(f"Engine-owned fields cannot be updated: {sorted(protected)}")

        async with self._repository.locked(Collections.RULES):
            rules = await self._repository.load_rules()
            current = next((r for r in rules if r.id == rule_id), None)
            if current is None:
                raise NotFoundError(f"Rule not found: {rule_id}")

            updated = RecurrenceRule.model_validate({
                **current.model_dump(),
                **changes,
                "updated_at": utcnow(),
            })
            await self._repository.save_rules([updated if r.id == rule_id else r for r in rules])

        if self._audit_logger:
            await self._audit_logger.log_entity_saved(
                event_type=AuditEventType.RULE_UPDATED,
                entity_type="rule",
                entity_id=rule_id,
                details={"fields": sorted(changes)},
            )
        return updated

    async def save_instrument(self, instrument: FundingInstrument) -> FundingInstrument:
        """Insert or replace a funding instrument."""
        repo = self._repository
        async with repo.locked(Collections.INSTRUMENTS, Collections.ENGINE_STATE):
            instruments = [i for i in await repo.load_instruments() if i.id != instrument.id]
            instruments.append(instrument)
            await repo.save_instruments(instruments)
            await repo.mark_settlements_dirty()

        if self._audit_logger:
            await self._audit_logger.log_entity_saved(
                event_type=AuditEventType.INSTRUMENT_SAVED,
                entity_type="instrument",
                entity_id=instrument.id,
                details={"kind": instrument.kind.value},
            )
        return instrument

    async def save_account(self, account: Account) -> Account:
        """Insert or replace an account. Its balance is rebuilt from the ledger."""
        repo = self._repository
        async with repo.locked(Collections.ACCOUNTS, Collections.ENGINE_STATE):
            accounts = [a for a in await repo.load_accounts() if a.id != account.id]
            accounts.append(account)
            await repo.save_accounts(accounts)
            await repo.mark_settlements_dirty()

        if self._audit_logger:
            await self._audit_logger.log_entity_saved(
                event_type=AuditEventType.ACCOUNT_SAVED,
                entity_type="account",
                entity_id=account.id,
                details={"type": account.type.value},
            )

        report = await self.refresh_balances()
        return next(a for a in report.accounts if a.id == account.id)


class RecurringTransactionProcessor:
    """
    Materializes due occurrences of recurring rules.

    Flow per run:
    1. Load active rules
    2. For each rule, compute the next occurrence
    3. Due → record one transaction and advance the rule's cursor together
    4. Post settlements that came due
    5. Rebalance once

    CRITICAL: A failing rule is counted and audited, never allowed to
    abort the batch. Runs are single-flight.
    """

    def __init__(
        self,
        repository: LedgerRepository,
        ledger: LedgerFlow,
        audit_logger: Optional[AuditLogger] = None,
        cooldown_hours: Optional[float] = None,
    ):
        if cooldown_hours is None:
            cooldown_hours = get_settings().engine.recurring_cooldown_hours
        self._repository = repository
        self._ledger = ledger
        self._audit_logger = audit_logger
        self._cooldown = timedelta(hours=cooldown_hours)
        self._run_lock = asyncio.Lock()

    @staticmethod
    def materialize(rule: RecurrenceRule, occurrence: date) -> Transaction:
        """Build the transaction a rule produces on ``occurrence``."""
        return Transaction(
            type=rule.type,
            amount=rule.amount,
            transaction_date=occurrence,
            description=rule.title,
            category_id=rule.category_id,
            account_id=rule.account_id,
            instrument_id=rule.instrument_id,
            source_account_id=rule.source_account_id,
            status=TransactionStatus.COMPLETED,
            recurring_rule_id=rule.id,
        )

    async def run(self, now: Optional[datetime] = None) -> RunSummary:
        """
        Process every active rule once.

        Returns:
            RunSummary with processed/created/error counts
        """
        async with self._run_lock:
            return await self._run_unlocked(_as_utc(now or utcnow()))

    async def startup_check(self, now: Optional[datetime] = None) -> Optional[RunSummary]:
        """
        Run unless the last startup run is within the cooldown window.

        Returns:
            The run summary, or None if the run was skipped
        """
        now = _as_utc(now or utcnow())
        repo = self._repository

        async with self._run_lock:
            async with repo.locked(Collections.ENGINE_STATE):
                state = await repo.load_state()

            last_run = state.last_recurring_run_at
            if last_run is not None and now - _as_utc(last_run) < self._cooldown:
                logger.info("recurring_run_skipped", last_run_at=last_run.isoformat())
                if self._audit_logger:
                    await self._audit_logger.log_run_skipped(
                        last_run_at=last_run,
                        cooldown_hours=self._cooldown.total_seconds() / 3600,
                    )
                return None

            summary = await self._run_unlocked(now)

            async with repo.locked(Collections.ENGINE_STATE):
                state = await repo.load_state()
                state.last_recurring_run_at = now
                await repo.save_state(state)

        return summary

    async def _run_unlocked(self, now: datetime) -> RunSummary:
        correlation_id = create_correlation_id()
        today = as_date(now)
        summary = RunSummary(started_at=now)

        async with self._repository.locked(Collections.RULES):
            rules = await self._repository.load_rules()

        for rule in rules:
            if rule.status != RuleStatus.ACTIVE:
                continue
            summary.processed += 1
            try:
                created = await self._process_rule(rule, today, correlation_id)
            except Exception as e:
                summary.errors += 1
                summary.failed_rule_ids.append(rule.id)
                logger.error("recurring_rule_failed", rule_id=rule.id, error=str(e))
                if self._audit_logger:
                    await self._audit_logger.log_rule_failed(
                        rule_id=rule.id,
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
                continue
            if created:
                summary.created += 1

        posted = await self._ledger.post_settlements(today, refresh_balances=False)
        if summary.created or posted:
            await self._ledger.refresh_balances()

        logger.info(
            "recurring_run_completed",
            processed=summary.processed,
            created=summary.created,
            errors=summary.errors,
        )
        if self._audit_logger:
            await self._audit_logger.log_run_completed(
                processed=summary.processed,
                created=summary.created,
                errors=summary.errors,
                correlation_id=correlation_id,
            )
        return summary

    async def _process_rule(
        self,
        rule: RecurrenceRule,
        today: date,
        correlation_id: UUID,
    ) -> bool:
        """
        Materialize at most one occurrence. Returns True if one was created.

        The occurrence is the first one after the rule's cursor. Missed
        periods are worked off one per run rather than skipped.
        """
        cursor = rule.last_generated_date or rule.start_date
        occurrence = next_occurrence(rule, cursor)
        if occurrence is None or occurrence > today:
            return False

        transaction = self.materialize(rule, occurrence)
        stored, created = await self._ledger.record_occurrence(rule.id, transaction)
        if not created:
            return False

        logger.info(
            "occurrence_materialized",
            rule_id=rule.id,
            occurrence=occurrence.isoformat(),
            transaction_id=stored.id,
        )
        if self._audit_logger:
            await self._audit_logger.log_occurrence_materialized(
                rule_id=rule.id,
                transaction_id=stored.id,
                occurrence=occurrence,
                correlation_id=correlation_id,
            )
        return True


def create_app_components(
    settings: Optional[EngineSettings] = None,
    store: Optional[CollectionStore] = None,
) -> tuple[LedgerFlow, RecurringTransactionProcessor, LedgerRepository]:
    """
    Factory function to create all application components.

    Args:
        settings: Engine settings. Loaded from the environment if None.
        store: Collection store to use instead of the configured backend.

    Returns:
        (ledger_flow, recurring_processor, repository)
    """
    settings = settings or get_settings().engine
    configure_logging(settings.debug_mode)

    if store is None:
        if settings.storage_backend == "google_sheets":
            try:
                store = GoogleSheetsCollectionStore(GoogleSheetsClient())
            except Exception as e:
                # Storage not configured - continue in memory
                logger.warning("storage_not_configured", backend="google_sheets", error=str(e))
                store = InMemoryCollectionStore()
        else:
            store = InMemoryCollectionStore()

    repository = LedgerRepository(store)
    audit_logger = AuditLogger(
        CollectionAuditStorage(repository, max_events=settings.audit_log_max_events)
    )

    ledger_flow = LedgerFlow(repository, audit_logger=audit_logger)
    processor = RecurringTransactionProcessor(
        repository,
        ledger_flow,
        audit_logger=audit_logger,
        cooldown_hours=settings.recurring_cooldown_hours,
    )

    return ledger_flow, processor, repository
