"""Ledger integrity validation."""

from pocketledger.validation.validator import LedgerValidator

__all__ = ["LedgerValidator"]
