"""Report models returned by the ledger queries."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class GroupTotal(BaseModel):
    """Amount for one group (category or funding instrument) in a month."""

    key: str = Field(..., description="Category or instrument id")
    name: Optional[str] = None
    amount: Decimal = Decimal("0")
    percentage: float = Field(default=0.0, ge=0.0, le=100.0)
    transaction_count: int = Field(default=0, ge=0)


class MonthlySummary(BaseModel):
    """Income and expenses for one calendar month, grouped by category."""

    year: int
    month: int = Field(..., ge=1, le=12)
    total_income: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    expense_breakdown: list[GroupTotal] = Field(default_factory=list)
    income_breakdown: list[GroupTotal] = Field(default_factory=list)

    @property
    def net(self) -> Decimal:
        return self.total_income - self.total_expenses


class InstrumentBreakdown(BaseModel):
    """Expenses for one calendar month, grouped by funding instrument."""

    year: int
    month: int = Field(..., ge=1, le=12)
    total_expenses: Decimal = Decimal("0")
    instruments: list[GroupTotal] = Field(default_factory=list)
