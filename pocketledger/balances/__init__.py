"""Ledger balance projection."""

from pocketledger.balances.engine import BalanceEngine, recompute_balances

__all__ = ["BalanceEngine", "recompute_balances"]
