"""
Ledger Reports

DESIGN DECISION: Reports are DETERMINISTIC folds over stored
transactions. They never estimate and never read derived balances.

Settlement entries are excluded everywhere: they restate charges that
are already counted on their own transaction date, so including them
would count card spending twice.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from pocketledger.models.ledger import (
    FundingInstrument,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from pocketledger.models.reports import GroupTotal, InstrumentBreakdown, MonthlySummary
from pocketledger.services.storage import LedgerRepository

UNCATEGORIZED = "uncategorized"


def _in_month(transactions: Iterable[Transaction], year: int, month: int) -> list[Transaction]:
    return [
        t for t in transactions
        if t.transaction_date.year == year
        and t.transaction_date.month == month
        and t.status != TransactionStatus.SETTLEMENT
    ]


def _grouped(
    transactions: list[Transaction],
    key_of,
    names: Optional[dict[str, str]] = None,
) -> tuple[Decimal, list[GroupTotal]]:
    """Sum amounts per group; groups sorted by amount, largest first."""
    amounts: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    counts: dict[str, int] = defaultdict(int)
    for txn in transactions:
        key = key_of(txn)
        amounts[key] += txn.amount
        counts[key] += 1

    total = sum(amounts.values(), Decimal("0"))
    groups = [
        GroupTotal(
            key=key,
            name=(names or {}).get(key),
            amount=amount,
            percentage=float(amount * 100 / total) if total > 0 else 0.0,
            transaction_count=counts[key],
        )
        for key, amount in amounts.items()
    ]
    groups.sort(key=lambda g: g.amount, reverse=True)
    return total, groups


def monthly_summary(
    transactions: Iterable[Transaction],
    year: int,
    month: int,
    category_names: Optional[dict[str, str]] = None,
) -> MonthlySummary:
    """
    Income and expenses of one calendar month, grouped by category.

    Args:
        transactions: Full ledger
        year: Calendar year
        month: Calendar month (1-12)
        category_names: Optional display names keyed by category id

    Returns:
        MonthlySummary with both breakdowns sorted by amount
    """
    monthly = _in_month(transactions, year, month)

    def category_of(txn: Transaction) -> str:
        return txn.category_id or UNCATEGORIZED

    total_expenses, expense_groups = _grouped(
        [t for t in monthly if t.type == TransactionType.EXPENSE],
        category_of,
        category_names,
    )
    total_income, income_groups = _grouped(
        [t for t in monthly if t.type == TransactionType.INCOME],
        category_of,
        category_names,
    )

    return MonthlySummary(
        year=year,
        month=month,
        total_income=total_income,
        total_expenses=total_expenses,
        expense_breakdown=expense_groups,
        income_breakdown=income_groups,
    )


def monthly_instrument_breakdown(
    transactions: Iterable[Transaction],
    instruments: Iterable[FundingInstrument],
    year: int,
    month: int,
) -> InstrumentBreakdown:
    """Expenses of one calendar month, grouped by funding instrument."""
    names = {i.id: i.name for i in instruments}
    expenses = [
        t for t in _in_month(transactions, year, month)
        if t.type == TransactionType.EXPENSE and t.instrument_id
    ]

    total, groups = _grouped(expenses, lambda t: t.instrument_id, names)

    return InstrumentBreakdown(
        year=year,
        month=month,
        total_expenses=total,
        instruments=groups,
    )


class ReportQueries:
    """
    Runs the monthly reports against stored data.

    GUARANTEES:
    - Only returns real data from storage
    - Never invents or estimates
    - Empty breakdowns (not errors) if nothing matches
    """

    def __init__(self, repository: LedgerRepository):
        self._repository = repository

    async def monthly_summary(
        self,
        target: date,
        category_names: Optional[dict[str, str]] = None,
    ) -> MonthlySummary:
        transactions = await self._repository.load_transactions()
        return monthly_summary(transactions, target.year, target.month, category_names)

    async def monthly_instrument_breakdown(self, target: date) -> InstrumentBreakdown:
        transactions = await self._repository.load_transactions()
        instruments = await self._repository.load_instruments()
        return monthly_instrument_breakdown(transactions, instruments, target.year, target.month)
