"""
Recurrence Models for Pocket Ledger

A recurrence rule is a template for a repeating financial event
(salary, rent, subscriptions). The recurrence engine turns it into
concrete occurrence dates; the processor turns due occurrences into
ledger transactions.

CRITICAL: Rules are validated when they are constructed. A rule that
could make the engine loop forever (interval < 1) or that describes an
impossible schedule is never accepted.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)

from pocketledger.models.ledger import TransactionType, new_id, utcnow


class Frequency(str, Enum):
    """Recurrence unit."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class RuleStatus(str, Enum):
    """
    Rule lifecycle.

    Only ACTIVE rules are processed. PAUSED rules keep their cursor and
    resume from it. CANCELLED rules are kept for history.
    """
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"


class RecurrenceRule(BaseModel):
    """
    Template describing a repeating transaction.

    ``last_generated_date`` is the engine's cursor: the highest occurrence
    already materialized into the ledger. It is written only by the
    recurring processor.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    id: str = Field(default_factory=new_id)
    title: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Title copied into generated transactions"
    )

    # What to generate
    type: TransactionType
    amount: Annotated[
        Decimal,
        Field(gt=0, decimal_places=2, description="Amount per occurrence")
    ]
    category_id: Optional[str] = None
    account_id: Optional[str] = None
    instrument_id: Optional[str] = None
    source_account_id: Optional[str] = Field(
        default=None,
        description="Debited account for transfer rules"
    )

    # When to generate it
    start_date: date
    end_date: Optional[date] = None
    frequency: Frequency
    interval: int = Field(
        default=1,
        ge=1,
        description="Number of frequency units between occurrences"
    )
    day_of_month: Optional[int] = Field(
        default=None,
        ge=1,
        le=31,
        description="Preferred day of month (monthly/yearly rules)"
    )
    day_of_week: Optional[int] = Field(
        default=None,
        ge=0,
        le=6,
        description="Preferred weekday, 0 = Sunday (weekly rules)"
    )
    month_of_year: Optional[int] = Field(
        default=None,
        ge=1,
        le=12,
        description="Preferred month (yearly rules)"
    )

    status: RuleStatus = Field(default=RuleStatus.ACTIVE)

    # Engine-owned cursor
    last_generated_date: Optional[date] = Field(
        default=None,
        description="Highest materialized occurrence"
    )

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode='after')
    def validate_schedule(self) -> 'RecurrenceRule':
        """Validate date relationships and frequency-specific fields."""
        if self.end_date is not None and self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")

        if self.day_of_month is not None and self.frequency not in (
            Frequency.MONTHLY,
            Frequency.YEARLY,
        ):
            raise ValueError("day_of_month only applies to monthly or yearly rules")

        if self.day_of_week is not None and self.frequency != Frequency.WEEKLY:
            raise ValueError("day_of_week only applies to weekly rules")

        if self.month_of_year is not None:
            if self.frequency != Frequency.YEARLY:
                raise ValueError("month_of_year only applies to yearly rules")
            if self.day_of_month is None:
                raise ValueError("Yearly rules with month_of_year also need day_of_month")

        if self.type == TransactionType.TRANSFER and not (
            self.source_account_id and self.account_id
        ):
            raise ValueError("Transfer rules need both source_account_id and account_id")

        return self


class RunSummary(BaseModel):
    """Result of one recurring-processor run."""

    started_at: datetime = Field(default_factory=utcnow)
    processed: int = Field(default=0, ge=0, description="Active rules examined")
    created: int = Field(default=0, ge=0, description="Transactions materialized")
    errors: int = Field(default=0, ge=0, description="Rules that failed")
    failed_rule_ids: list[str] = Field(default_factory=list)
