"""
Balance Engine

Folds the full transaction ledger into per-account balances.

Posting rules:
- pending_settlement: ignored (the charge waits for its settlement entry)
- income: credit account_id
- expense: debit the account bound to the funding instrument
- investment: debit the funding instrument's account, credit account_id
- transfer: debit source_account_id, credit account_id

DESIGN DECISION: There is no incremental update. Every run starts from
zero and refolds the whole ledger, so edits and deletes can never leave
drift behind. Postings are plain additions, so transaction order does
not matter.

A transaction whose references do not resolve is skipped as a whole and
reported. It never fails the recompute.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Optional

import structlog

from pocketledger.models.ledger import (
    POSTED_STATUSES,
    Account,
    BalanceReport,
    FundingInstrument,
    Transaction,
    TransactionStatus,
    TransactionType,
    ValidationIssue,
)

logger = structlog.get_logger(__name__)


class DanglingReference(Exception):
    """A transaction points at an account or instrument that does not exist."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class BalanceEngine:
    """
    Recomputes account balances from the ledger.

    GUARANTEES:
    - Idempotent: the same inputs always give the same balances
    - Order-independent
    - Accounts come back in the order they were given, with only
      ``balance`` changed
    """

    def _account(self, account_id: Optional[str], field: str, known: set[str]) -> str:
        if not account_id or account_id not in known:
            raise DanglingReference(field, f"{field} '{account_id}' does not match any account")
        return account_id

    def _postings(
        self,
        transaction: Transaction,
        known_accounts: set[str],
        instruments: dict[str, FundingInstrument],
    ) -> list[tuple[str, Decimal]]:
        """Signed (account_id, amount) legs for one transaction."""
        amount = transaction.amount

        if transaction.type == TransactionType.INCOME:
            target = self._account(transaction.account_id, "account_id", known_accounts)
            return [(target, amount)]

        if transaction.type in (TransactionType.EXPENSE, TransactionType.INVESTMENT):
            instrument = instruments.get(transaction.instrument_id or "")
            if instrument is None:
                raise DanglingReference(
                    "instrument_id",
                    f"instrument_id '{transaction.instrument_id}' does not match any instrument",
                )
            funding = self._account(instrument.account_id, "instrument.account_id", known_accounts)
            legs = [(funding, -amount)]
            if transaction.type == TransactionType.INVESTMENT:
                target = self._account(transaction.account_id, "account_id", known_accounts)
                legs.append((target, amount))
            return legs

        if transaction.type == TransactionType.TRANSFER:
            source = self._account(transaction.source_account_id, "source_account_id", known_accounts)
            target = self._account(transaction.account_id, "account_id", known_accounts)
            return [(source, -amount), (target, amount)]

        raise ValueError(f"Unsupported transaction type: {transaction.type}")

    def recompute(
        self,
        transactions: list[Transaction],
        accounts: list[Account],
        instruments: list[FundingInstrument],
    ) -> BalanceReport:
        """
        Rebuild every account balance from scratch.

        Args:
            transactions: Full ledger, in any order
            accounts: Accounts to rebuild (their stored balances are discarded)
            instruments: Funding instruments, used to resolve debited accounts

        Returns:
            BalanceReport with rebuilt accounts and any skipped transactions
        """
        known_accounts = {account.id for account in accounts}
        instrument_index = {instrument.id: instrument for instrument in instruments}
        totals: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))

        applied = 0
        ignored = 0
        skipped: list[ValidationIssue] = []

        for transaction in transactions:
            if transaction.status == TransactionStatus.PENDING_SETTLEMENT:
                ignored += 1
                continue
            if transaction.status not in POSTED_STATUSES:
                ignored += 1
                continue

            try:
                legs = self._postings(transaction, known_accounts, instrument_index)
            except DanglingReference as e:
                logger.warning(
                    "balance_posting_skipped",
                    transaction_id=transaction.id,
                    field=e.field,
                    reason=str(e),
                )
                skipped.append(ValidationIssue(
                    field=e.field,
                    issue_type="dangling_reference",
                    message=str(e),
                    severity="warning",
                    entity_id=transaction.id,
                ))
                continue

            for account_id, delta in legs:
                totals[account_id] += delta
            applied += 1

        rebuilt = [
            account.model_copy(update={"balance": totals.get(account.id, Decimal("0"))})
            for account in accounts
        ]

        return BalanceReport(
            accounts=rebuilt,
            applied_count=applied,
            ignored_count=ignored,
            skipped=skipped,
        )


def recompute_balances(
    transactions: list[Transaction],
    accounts: list[Account],
    instruments: list[FundingInstrument],
) -> list[Account]:
    """Rebuild balances and return the accounts (balance field only changes)."""
    return BalanceEngine().recompute(transactions, accounts, instruments).accounts
