"""
Ledger Core - Source Package

The posting and reconciliation engine of a personal finance ledger.
Every change to cash, investments, loans, savings and credit is recorded
as a balanced double-entry transaction.

DESIGN PRINCIPLES:
1. Every action is prepared as one atomic unit of writes
2. Fail early, fail visibly (reject before any write is prepared)
3. No silent corrections
4. Every revert is the exact inverse of its posting
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Personal Ledger Team"
