"""
Transaction and Action Models

A Transaction is the immutable record of one balanced financial event.
A LedgerAction is the fully-formed request a caller hands to the poster.

DESIGN DECISION: Amounts are always non-negative.
Direction is expressed only by which account is debited and which is
credited. The account group then decides whether that raises or lowers
the balance.
"""

from datetime import date as date_type
from datetime import datetime as datetime_type
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ledger_core.models.account import (
    Account,
    AccountGroup,
    PaymentCycle,
    new_id,
    utc_now,
)


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    """Economic meaning of a transaction."""
    DAILY_CASHFLOW = "DAILY_CASHFLOW"
    CREDIT_SPENDING = "CREDIT_SPENDING"
    CREDIT_PAYMENT = "CREDIT_PAYMENT"
    INTERNAL_TRANSFER = "INTERNAL_TRANSFER"
    ASSET_BUY = "ASSET_BUY"
    ASSET_SELL = "ASSET_SELL"
    ASSET_INVESTMENT = "ASSET_INVESTMENT"
    ASSET_REVALUATION = "ASSET_REVALUATION"
    LENDING = "LENDING"
    BORROWING = "BORROWING"
    DEBT_REPAYMENT = "DEBT_REPAYMENT"
    CAPITAL_INJECTION = "CAPITAL_INJECTION"
    CAPITAL_WITHDRAWAL = "CAPITAL_WITHDRAWAL"
    FUND_ALLOCATION = "FUND_ALLOCATION"
    INTEREST_LOG = "INTEREST_LOG"
    INITIAL_BALANCE = "INITIAL_BALANCE"


class ActionType(str, Enum):
    """Financial actions the poster understands."""
    TRANSFER = "TRANSFER"
    OPEN_ACCOUNT = "OPEN_ACCOUNT"
    BUY_INVESTMENT = "BUY_INVESTMENT"
    SELL_INVESTMENT = "SELL_INVESTMENT"
    REVALUE_INVESTMENT = "REVALUE_INVESTMENT"
    INVEST_REAL_ESTATE = "INVEST_REAL_ESTATE"
    OPEN_LIABILITY = "OPEN_LIABILITY"
    BORROW_MORE = "BORROW_MORE"
    REPAY_PRINCIPAL = "REPAY_PRINCIPAL"
    PAY_INTEREST = "PAY_INTEREST"
    EXTEND_LIABILITY = "EXTEND_LIABILITY"
    SETTLE_LIABILITY = "SETTLE_LIABILITY"
    OPEN_SAVINGS = "OPEN_SAVINGS"
    ADD_SAVINGS_DEPOSIT = "ADD_SAVINGS_DEPOSIT"
    SETTLE_SAVINGS_DEPOSIT = "SETTLE_SAVINGS_DEPOSIT"


# Transaction types that inject capital into a real-estate holding
CAPITAL_INJECTION_TYPES = frozenset({
    TransactionType.ASSET_INVESTMENT,
    TransactionType.CAPITAL_INJECTION,
})


# =============================================================================
# TRANSACTION
# =============================================================================

class Transaction(BaseModel):
    """
    One balanced financial event.

    `related_detail_id` points at the log or deposit entry this
    transaction created (or settled). It is the exact-match key used
    when the transaction is reverted.

    `parent_transaction_id` links auxiliary legs (realized P/L,
    settlement interest and fees) to their primary transaction.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    debit_account_id: str = Field(..., min_length=1)
    credit_account_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., ge=0)
    type: TransactionType

    date: date_type
    datetime: datetime_type = Field(default_factory=utc_now)

    # Investment-specific
    units: Optional[Decimal] = Field(default=None, ge=0)
    price: Optional[Decimal] = Field(default=None, ge=0)
    fees: Optional[Decimal] = Field(default=None, ge=0)

    related_detail_id: Optional[str] = None
    parent_transaction_id: Optional[str] = None

    category: Optional[str] = Field(default=None, max_length=100)
    note: Optional[str] = Field(default=None, max_length=500)
    group: Optional[AccountGroup] = Field(
        default=None,
        description="Group of the account the user acted on, for reporting"
    )

    @model_validator(mode='after')
    def validate_distinct_accounts(self) -> 'Transaction':
        if self.debit_account_id == self.credit_account_id:
            raise ValueError("Debit and credit account must differ")
        return self


# =============================================================================
# ACTION DESCRIPTOR
# =============================================================================

class LedgerAction(BaseModel):
    """
    A fully-formed financial action.

    Field meaning by action:
    - `account_id`: the account acted on (investment, liability, savings,
      real estate). For TRANSFER use `debit_account_id`/`credit_account_id`.
    - `counter_account_id`: the cash side (paying or receiving account).
      For OPEN_ACCOUNT it is the Equity Fund that funds the opening balance.
    - `amount`: money amount. For buys and sells it is derived from
      units, price and fees when omitted.

    Numeric fields reject negatives and non-numeric input here, so such
    values never reach the poster.
    """

    action: ActionType
    date: date_type
    transaction_type: Optional[TransactionType] = None

    amount: Optional[Decimal] = Field(default=None, ge=0)
    account_id: Optional[str] = None
    counter_account_id: Optional[str] = None
    debit_account_id: Optional[str] = None
    credit_account_id: Optional[str] = None

    # Investments
    units: Optional[Decimal] = Field(default=None, ge=0)
    price: Optional[Decimal] = Field(default=None, ge=0)
    fees: Optional[Decimal] = Field(default=None, ge=0)

    # Liabilities and savings
    accrued_interest: Optional[Decimal] = Field(default=None, ge=0)
    manual_fee: Optional[Decimal] = Field(default=None, ge=0)
    interest_rate: Optional[Decimal] = Field(default=None, ge=0)
    term_months: Optional[int] = Field(default=None, ge=0)
    payment_cycle: Optional[PaymentCycle] = None
    fixed_payment_day: Optional[int] = Field(default=None, ge=0, le=31)
    deposit_id: Optional[str] = None
    new_end_date: Optional[date_type] = None

    # OPEN_* actions
    new_account: Optional[Account] = None

    category: Optional[str] = Field(default=None, max_length=100)
    note: Optional[str] = Field(default=None, max_length=500)

    @property
    def fee_amount(self) -> Decimal:
        return self.fees or Decimal("0")
