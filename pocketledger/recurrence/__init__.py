"""Recurrence rule date math."""

from pocketledger.recurrence.engine import (
    add_months,
    add_years,
    as_date,
    last_day_of_month,
    next_occurrence,
    occurrences_in_range,
)

__all__ = [
    "add_months",
    "add_years",
    "as_date",
    "last_day_of_month",
    "next_occurrence",
    "occurrences_in_range",
]
