"""
Core Ledger Models for Pocket Ledger

These models define the strict schemas for everything the engine reads
from and writes to the collection store:
1. Transactions (the ledger, sole source of truth for balances)
2. Accounts (balances are derived, never authoritative)
3. Funding instruments (payment methods bound to a funding account)
4. Settlement links (originating charge -> aggregated settlement entry)

DESIGN DECISION: Every model round-trips through
``model_dump(mode="json")`` / ``model_validate`` so the store only ever
sees JSON-serializable records with ISO-8601 dates.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


def new_id() -> str:
    """Generate an opaque record identifier."""
    return uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Kind of money movement a transaction or rule represents."""
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"
    INVESTMENT = "investment"


class TransactionStatus(str, Enum):
    """
    Posting state of a transaction.

    COMPLETED and SETTLEMENT entries move balances.
    PENDING_SETTLEMENT charges wait for their cycle to be settled and are
    ignored by the balance engine until a SETTLEMENT entry covers them.
    """
    COMPLETED = "completed"
    PENDING_SETTLEMENT = "pending_settlement"
    SETTLEMENT = "settlement"


class AccountType(str, Enum):
    """
    Explicit account kind.

    DESIGN DECISION: The kind is always a stored tag. It is never inferred
    from the shape of the account identifier.
    """
    CASH = "cash"
    BANK = "bank"
    CREDIT = "credit"
    INVESTMENT = "investment"


class InstrumentKind(str, Enum):
    """Payment method kinds."""
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    BANK_TRANSFER = "bank_transfer"
    ELECTRONIC_MONEY = "electronic_money"
    DIRECT_DEBIT = "direct_debit"


# Kinds that accumulate charges between a closing day and debit in bulk
CYCLE_BILLED_KINDS = frozenset({InstrumentKind.CREDIT_CARD, InstrumentKind.DIRECT_DEBIT})

# Transaction types that draw on a funding instrument
CHARGE_TYPES = frozenset({TransactionType.EXPENSE, TransactionType.INVESTMENT})

# Statuses that move balances
POSTED_STATUSES = frozenset({TransactionStatus.COMPLETED, TransactionStatus.SETTLEMENT})


# =============================================================================
# LEDGER MODELS
# =============================================================================

class Account(BaseModel):
    """
    A place money lives.

    CRITICAL: ``balance`` is a projection of the ledger. It is reset and
    rebuilt by every BalanceEngine run and never patched in place.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=new_id,
        description="Unique account ID"
    )
    name: str = Field(
        default="",
        max_length=200,
        description="Display name"
    )
    type: AccountType = Field(
        ...,
        description="Explicit account kind"
    )
    currency: str = Field(
        default="JPY",
        min_length=3,
        max_length=3,
        description="ISO-4217 currency code"
    )
    balance: Decimal = Field(
        default=Decimal("0"),
        description="Derived balance (recomputed from the ledger)"
    )


class FundingInstrument(BaseModel):
    """
    A payment method bound to the account it draws funds from.

    Cycle-billed kinds (credit cards, direct debits) may carry a closing
    day and a billing day. Both are present or both are absent.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(default="", max_length=200)
    kind: InstrumentKind
    account_id: str = Field(
        ...,
        description="Funding/settlement account the instrument draws on"
    )
    closing_day: Optional[int] = Field(
        default=None,
        ge=1,
        le=31,
        description="Day of month the billing cycle closes"
    )
    billing_day: Optional[int] = Field(
        default=None,
        ge=1,
        le=31,
        description="Day of month the funding account is debited"
    )

    @model_validator(mode='after')
    def validate_cycle(self) -> 'FundingInstrument':
        """Closing and billing days come as a pair, on cycle-billed kinds only."""
        has_closing = self.closing_day is not None
        has_billing = self.billing_day is not None
        if has_closing != has_billing:
            raise ValueError("closing_day and billing_day must be set together")
        if has_closing and self.kind not in CYCLE_BILLED_KINDS:
            raise ValueError(
                f"Billing cycle is only allowed on credit_card/direct_debit, not {self.kind.value}"
            )
        return self

    @property
    def is_cycle_billed(self) -> bool:
        """True when charges on this instrument settle on a billing day."""
        return (
            self.kind in CYCLE_BILLED_KINDS
            and self.closing_day is not None
            and self.billing_day is not None
        )


class Transaction(BaseModel):
    """
    One ledger entry.

    Transactions come from direct entry or from the recurring processor.
    ``settlement_date`` and ``status`` are engine-owned: they are derived
    from the funding instrument when the transaction is written.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    id: str = Field(default_factory=new_id)

    type: TransactionType
    amount: Annotated[
        Decimal,
        Field(ge=0, decimal_places=2, description="Amount (never negative)")
    ]
    transaction_date: date = Field(
        ...,
        description="Date the transaction happened (charge date for cards)"
    )
    description: str = Field(default="", max_length=500)

    category_id: Optional[str] = None
    account_id: Optional[str] = Field(
        default=None,
        description="Credited account (income, investment target, transfer destination)"
    )
    instrument_id: Optional[str] = Field(
        default=None,
        description="Funding instrument for expense/investment"
    )
    source_account_id: Optional[str] = Field(
        default=None,
        description="Debited account for transfers"
    )

    # Engine-owned
    status: TransactionStatus = Field(default=TransactionStatus.COMPLETED)
    settlement_date: Optional[date] = Field(
        default=None,
        description="Date the funding account is actually debited"
    )

    # Provenance
    recurring_rule_id: Optional[str] = None

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode='after')
    def validate_transfer(self) -> 'Transaction':
        """Transfers name both ends."""
        if self.type == TransactionType.TRANSFER:
            if not self.source_account_id or not self.account_id:
                raise ValueError("Transfers need both source_account_id and account_id")
            if self.source_account_id == self.account_id:
                raise ValueError("Transfer source and destination must differ")
        return self


class SettlementLink(BaseModel):
    """
    Relation row: one originating charge -> one settlement entry.

    A settlement entry may be referenced by many rows. An originating
    charge appears in at most one row.
    """

    origin_id: str = Field(..., description="Originating charge")
    settlement_id: str = Field(..., description="Aggregated settlement entry")


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single integrity issue found in ledger data."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'dangling_reference', 'settlement_mismatch')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Record the issue was found on"
    )


class ValidationResult(BaseModel):
    """Result of a ledger integrity check."""

    validated_at: datetime = Field(default_factory=utcnow)
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]


class BalanceReport(BaseModel):
    """Output of a full balance recompute."""

    accounts: list[Account] = Field(default_factory=list)
    applied_count: int = Field(default=0, ge=0)
    ignored_count: int = Field(
        default=0,
        ge=0,
        description="Transactions that do not move balances (pending settlement)"
    )
    skipped: list[ValidationIssue] = Field(
        default_factory=list,
        description="Transactions skipped because of dangling references"
    )

    def balance_of(self, account_id: str) -> Optional[Decimal]:
        for account in self.accounts:
            if account.id == account_id:
                return account.balance
        return None
