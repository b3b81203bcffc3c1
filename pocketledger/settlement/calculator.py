"""
Settlement Calculator

Maps a charge on a cycle-billed instrument (credit card, direct debit)
to the date its funding account is actually debited.

Rules:
- A charge on or before the closing day belongs to the cycle that is
  billed next month.
- A charge after the closing day belongs to the following cycle, billed
  the month after next.
- Days are not clamped. A billing day of 31 in a 30-day month rolls
  into the 1st of the following month.
"""

from datetime import date, timedelta
from typing import Optional

from pocketledger.models.ledger import (
    CHARGE_TYPES,
    FundingInstrument,
    Transaction,
    TransactionStatus,
)


def calendar_date(year: int, month: int, day: int) -> date:
    """
    Build a date the way a calendar overflows.

    ``month`` may fall outside 1..12 (it wraps into neighbouring years) and
    ``day`` may exceed the month's length (it rolls into the next month).
    """
    years, month_index = divmod(month - 1, 12)
    first = date(year + years, month_index + 1, 1)
    return first + timedelta(days=day - 1)


def settlement_date(charge_date: date, closing_day: int, billing_day: int) -> date:
    """
    Compute the date a charge is debited from the funding account.

    Args:
        charge_date: Date the charge was made
        closing_day: Day of month the billing cycle closes
        billing_day: Day of month the funding account is debited

    Returns:
        The settlement date
    """
    closing_date = calendar_date(charge_date.year, charge_date.month, closing_day)
    months_ahead = 2 if charge_date > closing_date else 1
    return calendar_date(charge_date.year, charge_date.month + months_ahead, billing_day)


def settlement_date_for(
    transaction: Transaction,
    instrument: Optional[FundingInstrument],
) -> Optional[date]:
    """Settlement date for a charge, or None when no billing cycle applies."""
    if instrument is None or not instrument.is_cycle_billed:
        return None
    if transaction.type not in CHARGE_TYPES:
        return None
    return settlement_date(
        transaction.transaction_date,
        instrument.closing_day,
        instrument.billing_day,
    )


def apply_settlement(
    transaction: Transaction,
    instrument: Optional[FundingInstrument],
) -> Transaction:
    """
    Derive the engine-owned settlement fields of a transaction.

    Charges on a cycle-billed instrument get a settlement date and wait as
    ``pending_settlement``. Everything else is ``completed`` with no
    settlement date. Settlement entries are returned unchanged.
    """
    if transaction.status == TransactionStatus.SETTLEMENT:
        return transaction

    due = settlement_date_for(transaction, instrument)
    if due is None:
        return transaction.model_copy(update={
            "status": TransactionStatus.COMPLETED,
            "settlement_date": None,
        })
    return transaction.model_copy(update={
        "status": TransactionStatus.PENDING_SETTLEMENT,
        "settlement_date": due,
    })
