"""
Settlement Aggregator

Projects what each cycle-billed instrument will debit from its funding
account this calendar month and next calendar month.

Two derivations coexist:
1. Charges that carry a settlement date are bucketed by that date.
2. Legacy charges recorded before settlement dates existed are summed
   over the active billing window (previous closing, current closing].

Charges of one instrument that settle in the same month always collapse
into a single projected payment.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

import structlog

from pocketledger.models.ledger import (
    CHARGE_TYPES,
    Account,
    FundingInstrument,
    Transaction,
    TransactionStatus,
)
from pocketledger.models.settlement import (
    ProjectionSource,
    SettlementPayment,
    SettlementProjection,
)
from pocketledger.settlement.calculator import calendar_date

logger = structlog.get_logger(__name__)


def _in_month(value: date, month_start: date) -> bool:
    return value.year == month_start.year and value.month == month_start.month


def _charges_for(
    instrument: FundingInstrument,
    transactions: Iterable[Transaction],
) -> list[Transaction]:
    """Charges drawn on ``instrument``; aggregated settlement entries excluded."""
    return [
        t for t in transactions
        if t.instrument_id == instrument.id
        and t.type in CHARGE_TYPES
        and t.status != TransactionStatus.SETTLEMENT
    ]


def _payment(
    instrument: FundingInstrument,
    charges: list[Transaction],
    billing_date: date,
    source: ProjectionSource,
    account_names: dict[str, str],
) -> SettlementPayment:
    return SettlementPayment(
        instrument_id=instrument.id,
        instrument_name=instrument.name,
        kind=instrument.kind,
        account_id=instrument.account_id,
        account_name=account_names.get(instrument.account_id),
        amount=sum((t.amount for t in charges), Decimal("0")),
        billing_day=instrument.billing_day,
        billing_date=billing_date,
        charge_count=len(charges),
        source=source,
    )


def _project_from_settlement_dates(
    instrument: FundingInstrument,
    dated: list[Transaction],
    today: date,
    this_month: date,
    next_month: date,
    account_names: dict[str, str],
) -> tuple[Optional[SettlementPayment], Optional[SettlementPayment]]:
    # a billing date already passed this month has been paid
    current_charges = [
        t for t in dated
        if _in_month(t.settlement_date, this_month) and t.settlement_date >= today
    ]
    next_charges = [t for t in dated if _in_month(t.settlement_date, next_month)]

    current = None
    if current_charges:
        current = _payment(
            instrument,
            current_charges,
            min(t.settlement_date for t in current_charges),
            ProjectionSource.SETTLEMENT_DATE,
            account_names,
        )

    upcoming = None
    if next_charges:
        upcoming = _payment(
            instrument,
            next_charges,
            min(t.settlement_date for t in next_charges),
            ProjectionSource.SETTLEMENT_DATE,
            account_names,
        )

    return current, upcoming


def _project_from_billing_window(
    instrument: FundingInstrument,
    charges: list[Transaction],
    today: date,
    account_names: dict[str, str],
) -> tuple[Optional[SettlementPayment], Optional[SettlementPayment]]:
    closing = calendar_date(today.year, today.month, instrument.closing_day)
    previous_closing = calendar_date(today.year, today.month - 1, instrument.closing_day)

    in_window = [
        t for t in charges
        if previous_closing < t.transaction_date <= closing
    ]
    if not in_window:
        return None, None

    # A billing day before the closing day means the cycle is billed next month
    billed_this_month = instrument.billing_day >= instrument.closing_day
    if billed_this_month and today.day <= instrument.billing_day:
        billing_date = calendar_date(today.year, today.month, instrument.billing_day)
        return _payment(
            instrument, in_window, billing_date,
            ProjectionSource.BILLING_WINDOW, account_names,
        ), None

    billing_date = calendar_date(today.year, today.month + 1, instrument.billing_day)
    return None, _payment(
        instrument, in_window, billing_date,
        ProjectionSource.BILLING_WINDOW, account_names,
    )


def upcoming_settlements(
    transactions: list[Transaction],
    instruments: list[FundingInstrument],
    accounts: list[Account],
    today: date,
) -> SettlementProjection:
    """
    Project this month's and next month's settlements per instrument.

    Args:
        transactions: Full ledger
        instruments: All funding instruments (non cycle-billed ones are ignored)
        accounts: Accounts, used to name the funding account of each payment
        today: Day the projection is computed for

    Returns:
        SettlementProjection with both buckets sorted by billing day
    """
    this_month = today.replace(day=1)
    next_month = calendar_date(today.year, today.month + 1, 1)
    account_names = {a.id: a.name for a in accounts}

    current_payments: list[SettlementPayment] = []
    next_payments: list[SettlementPayment] = []

    for instrument in instruments:
        if not instrument.is_cycle_billed:
            continue

        charges = _charges_for(instrument, transactions)
        if not charges:
            continue

        dated = [t for t in charges if t.settlement_date is not None]
        if dated:
            current, upcoming = _project_from_settlement_dates(
                instrument, dated, today, this_month, next_month, account_names,
            )
        else:
            logger.debug(
                "settlement_projection_fallback",
                instrument_id=instrument.id,
                charge_count=len(charges),
            )
            current, upcoming = _project_from_billing_window(
                instrument, charges, today, account_names,
            )

        if current is not None:
            current_payments.append(current)
        if upcoming is not None:
            next_payments.append(upcoming)

    current_payments.sort(key=lambda p: p.billing_day)
    next_payments.sort(key=lambda p: p.billing_day)

    return SettlementProjection(
        as_of=today,
        current_month=current_payments,
        next_month=next_payments,
        total_current_month=sum((p.amount for p in current_payments), Decimal("0")),
        total_next_month=sum((p.amount for p in next_payments), Decimal("0")),
    )
