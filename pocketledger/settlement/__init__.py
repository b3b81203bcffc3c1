"""Settlement-cycle date math and projections."""

from pocketledger.settlement.aggregator import upcoming_settlements
from pocketledger.settlement.calculator import (
    apply_settlement,
    calendar_date,
    settlement_date,
    settlement_date_for,
)

__all__ = [
    "apply_settlement",
    "calendar_date",
    "settlement_date",
    "settlement_date_for",
    "upcoming_settlements",
]
