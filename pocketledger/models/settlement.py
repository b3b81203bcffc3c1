"""
Settlement Projection Models

Read-side views of cycle-billed spending: what each card or direct
debit will take from its funding account this month and next month.
Also holds the engine's persisted state record, which caches the last
projection behind a dirty flag.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from pocketledger.models.ledger import InstrumentKind, utcnow


class ProjectionSource(str, Enum):
    """How a projected payment was derived."""
    SETTLEMENT_DATE = "settlement_date"  # charges carry a settlement date
    BILLING_WINDOW = "billing_window"    # legacy charges, derived from the cycle


class SettlementPayment(BaseModel):
    """
    One projected debit: every charge of an instrument that settles in
    the same month, collapsed into a single amount.
    """

    instrument_id: str
    instrument_name: str = ""
    kind: InstrumentKind
    account_id: str = Field(..., description="Funding account to be debited")
    account_name: Optional[str] = None
    amount: Decimal = Field(default=Decimal("0"), ge=0)
    billing_day: int = Field(..., ge=1, le=31)
    billing_date: date
    charge_count: int = Field(default=0, ge=0)
    source: ProjectionSource = ProjectionSource.SETTLEMENT_DATE


class SettlementProjection(BaseModel):
    """Upcoming settlements for the current and the next calendar month."""

    as_of: date = Field(..., description="Day the projection was computed for")
    computed_at: datetime = Field(default_factory=utcnow)
    current_month: list[SettlementPayment] = Field(default_factory=list)
    next_month: list[SettlementPayment] = Field(default_factory=list)
    total_current_month: Decimal = Decimal("0")
    total_next_month: Decimal = Decimal("0")


class EngineState(BaseModel):
    """
    Singleton record of persisted engine state.

    DESIGN DECISION: The cooldown timestamp and the projection cache live
    in the store, passed in and out explicitly. Nothing is kept in module
    globals.
    """

    last_recurring_run_at: Optional[datetime] = Field(
        default=None,
        description="When the recurring processor last ran from a startup check"
    )
    settlements_dirty: bool = Field(
        default=True,
        description="Set by every transaction write; cleared when the projection is rebuilt"
    )
    cached_projection: Optional[SettlementProjection] = None
