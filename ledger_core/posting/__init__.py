"""
Posting package: the Ledger Poster, the Balance Reconciler and the
errors both raise.
"""

from ledger_core.posting.errors import (
    AccountStateError,
    ActionValidationError,
    LedgerError,
    MissingEquityFundError,
    OverRepaymentError,
    OversellError,
    RevertRejectedError,
    TransactionNotFoundError,
    UnknownAccountError,
)
from ledger_core.posting.poster import LedgerPoster, post_action
from ledger_core.posting.reconciler import BalanceReconciler, revert_transaction

__all__ = [
    "LedgerPoster",
    "post_action",
    "BalanceReconciler",
    "revert_transaction",
    # Errors
    "LedgerError",
    "ActionValidationError",
    "UnknownAccountError",
    "AccountStateError",
    "OversellError",
    "OverRepaymentError",
    "MissingEquityFundError",
    "RevertRejectedError",
    "TransactionNotFoundError",
]
