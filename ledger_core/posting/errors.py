"""
Ledger Errors

Every error raised by the poster, the reconciler and the validator is
a LedgerError carrying a machine-readable `code`. All of them are
raised before any write is prepared, so a caller that sees one knows
the ledger is unchanged.
"""

from decimal import Decimal
from typing import Optional

from ledger_core.models.validation import ValidationIssue


class LedgerError(Exception):
    """Base ledger error."""

    code = "LEDGER_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ActionValidationError(LedgerError):
    """The action descriptor is malformed."""

    code = "INVALID_ACTION"

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        summary = "; ".join(
            f"{issue.field}: {issue.message}" for issue in issues if issue.severity == "error"
        )
        super().__init__(f"Invalid action: {summary}")


class UnknownAccountError(LedgerError):
    code = "UNKNOWN_ACCOUNT"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account {account_id} does not exist")


class AccountStateError(LedgerError):
    """The operation is not allowed for the account's category, group or status."""

    code = "ACCOUNT_STATE"

    def __init__(self, account_id: str, message: str):
        self.account_id = account_id
        super().__init__(message)


class OversellError(LedgerError):
    code = "OVERSELL"

    def __init__(self, account_id: str, requested: Decimal, held: Decimal):
        self.account_id = account_id
        self.requested = requested
        self.held = held
        super().__init__(f"Cannot sell {requested} units, only {held} held")


class OverRepaymentError(LedgerError):
    code = "OVER_REPAYMENT"

    def __init__(self, account_id: str, requested: Decimal, outstanding: Decimal):
        self.account_id = account_id
        self.requested = requested
        self.outstanding = outstanding
        super().__init__(f"Cannot repay {requested}, outstanding principal is {outstanding}")


class MissingEquityFundError(LedgerError):
    """No linked or fallback Equity Fund exists for a required leg."""

    code = "MISSING_EQUITY_FUND"

    def __init__(self, account_id: Optional[str] = None, suggested_name: Optional[str] = None):
        self.account_id = account_id
        hint = f" (for example '{suggested_name}')" if suggested_name else ""
        super().__init__(
            f"No active Equity Fund found; create one{hint} before posting gains, losses, fees or interest"
        )


class RevertRejectedError(LedgerError):
    """Reverting would drive units or principal negative."""

    code = "REVERT_REJECTED"

    def __init__(self, transaction_id: str, message: str):
        self.transaction_id = transaction_id
        super().__init__(message)


class TransactionNotFoundError(LedgerError):
    code = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} does not exist")
