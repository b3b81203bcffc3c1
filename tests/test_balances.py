"""
Tests for the balance engine (full ledger recompute).
"""

import pytest
from datetime import date
from decimal import Decimal

from pocketledger.balances import BalanceEngine, recompute_balances
from pocketledger.models.ledger import (
    Account,
    AccountType,
    FundingInstrument,
    InstrumentKind,
    Transaction,
    TransactionStatus,
    TransactionType,
)


@pytest.fixture
def accounts():
    return [
        Account(id="A", name="Bank", type=AccountType.BANK, balance=Decimal("123456")),
        Account(id="B", name="Savings", type=AccountType.BANK),
        Account(id="NISA", name="NISA", type=AccountType.INVESTMENT),
    ]


@pytest.fixture
def instruments():
    return [
        FundingInstrument(id="debit", kind=InstrumentKind.BANK_TRANSFER, account_id="A"),
        FundingInstrument(
            id="card",
            kind=InstrumentKind.CREDIT_CARD,
            account_id="A",
            closing_day=15,
            billing_day=10,
        ),
    ]


def income(amount, account_id="A"):
    return Transaction(
        type=TransactionType.INCOME,
        amount=Decimal(amount),
        transaction_date=date(2024, 3, 1),
        account_id=account_id,
    )


def expense(amount, instrument_id="debit", status=TransactionStatus.COMPLETED):
    return Transaction(
        type=TransactionType.EXPENSE,
        amount=Decimal(amount),
        transaction_date=date(2024, 3, 2),
        instrument_id=instrument_id,
        status=status,
    )


class TestRecomputeBalances:
    """Tests for the posting rules."""

    def test_income_and_expense_any_order(self, accounts, instruments):
        """Income 1000 and expense 400 on the same account leave 600."""
        ledger = [income("1000"), expense("400")]

        forward = recompute_balances(ledger, accounts, instruments)
        backward = recompute_balances(list(reversed(ledger)), accounts, instruments)

        assert forward[0].balance == Decimal("600")
        assert backward[0].balance == Decimal("600")

    def test_stored_balances_are_discarded(self, accounts, instruments):
        """Every run starts from zero."""
        result = recompute_balances([], accounts, instruments)
        assert all(a.balance == Decimal("0") for a in result)
        assert accounts[0].balance == Decimal("123456")

    def test_idempotent(self, accounts, instruments):
        """Feeding the output back in gives the same balances."""
        ledger = [income("1000"), expense("400"), income("50", "B")]
        first = recompute_balances(ledger, accounts, instruments)
        second = recompute_balances(ledger, first, instruments)
        assert [a.balance for a in first] == [a.balance for a in second]

    def test_pending_charges_ignored(self, accounts, instruments):
        """Card charges waiting for settlement do not move balances."""
        ledger = [
            income("1000"),
            expense("400", instrument_id="card", status=TransactionStatus.PENDING_SETTLEMENT),
        ]
        report = BalanceEngine().recompute(ledger, accounts, instruments)
        assert report.balance_of("A") == Decimal("1000")
        assert report.ignored_count == 1
        assert report.applied_count == 1

    def test_settlement_entry_debits_funding_account(self, accounts, instruments):
        """The aggregated settlement entry is what moves the balance."""
        ledger = [
            income("1000"),
            expense("400", instrument_id="card", status=TransactionStatus.PENDING_SETTLEMENT),
            expense("400", instrument_id="card", status=TransactionStatus.SETTLEMENT),
        ]
        result = recompute_balances(ledger, accounts, instruments)
        assert result[0].balance == Decimal("600")

    def test_transfer(self, accounts, instruments):
        """Transfers debit the source and credit the destination."""
        transfer = Transaction(
            type=TransactionType.TRANSFER,
            amount=Decimal("250"),
            transaction_date=date(2024, 3, 3),
            source_account_id="A",
            account_id="B",
        )
        report = BalanceEngine().recompute([income("1000"), transfer], accounts, instruments)
        assert report.balance_of("A") == Decimal("750")
        assert report.balance_of("B") == Decimal("250")

    def test_investment(self, accounts, instruments):
        """Investments move money from the funding account to the investment account."""
        buy = Transaction(
            type=TransactionType.INVESTMENT,
            amount=Decimal("3000"),
            transaction_date=date(2024, 3, 4),
            instrument_id="debit",
            account_id="NISA",
        )
        report = BalanceEngine().recompute([buy], accounts, instruments)
        assert report.balance_of("A") == Decimal("-3000")
        assert report.balance_of("NISA") == Decimal("3000")

    def test_decimal_precision(self, accounts, instruments):
        """Amounts are summed exactly."""
        ledger = [income("0.10"), income("0.20")]
        result = recompute_balances(ledger, accounts, instruments)
        assert result[0].balance == Decimal("0.30")


class TestDanglingReferences:
    """Tests for transactions whose references do not resolve."""

    def test_unknown_instrument_skipped_and_reported(self, accounts, instruments):
        """A charge on a missing instrument is skipped, not fatal."""
        ledger = [income("1000"), expense("400", instrument_id="gone")]
        report = BalanceEngine().recompute(ledger, accounts, instruments)

        assert report.balance_of("A") == Decimal("1000")
        assert len(report.skipped) == 1
        issue = report.skipped[0]
        assert issue.issue_type == "dangling_reference"
        assert issue.severity == "warning"
        assert issue.field == "instrument_id"
        assert issue.entity_id == ledger[1].id

    def test_half_resolvable_transfer_skipped_whole(self, accounts, instruments):
        """A transfer with one missing end posts neither leg."""
        transfer = Transaction(
            type=TransactionType.TRANSFER,
            amount=Decimal("250"),
            transaction_date=date(2024, 3, 3),
            source_account_id="A",
            account_id="closed",
        )
        report = BalanceEngine().recompute([transfer], accounts, instruments)
        assert report.balance_of("A") == Decimal("0")
        assert report.skipped[0].field == "account_id"

    def test_instrument_bound_to_missing_account(self, accounts):
        """An instrument whose funding account is gone is reported."""
        orphan = FundingInstrument(id="debit", kind=InstrumentKind.BANK_TRANSFER, account_id="old")
        report = BalanceEngine().recompute([expense("10")], accounts, [orphan])
        assert report.skipped[0].field == "instrument.account_id"
        assert report.applied_count == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
