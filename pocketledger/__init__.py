"""
Pocket Ledger - Source Package

The temporal calculation engine of a personal finance tracker:
recurring transactions, card settlement cycles and ledger balances.

DESIGN PRINCIPLES:
1. The transaction ledger is the only source of truth
2. Derived data (balances, projections) is always fully recomputable
3. No silent corrections
4. Every write must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Pocket Ledger Team"
