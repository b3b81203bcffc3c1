"""Ledger report queries."""

from pocketledger.queries.reports import (
    UNCATEGORIZED,
    ReportQueries,
    monthly_instrument_breakdown,
    monthly_summary,
)

__all__ = ["UNCATEGORIZED", "ReportQueries", "monthly_instrument_breakdown", "monthly_summary"]
