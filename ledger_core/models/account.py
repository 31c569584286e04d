"""
Account Models for Ledger Core

An account is a named ledger node. Its meaning depends on its group:
- ASSETS: things owned (cash, savings, stocks, receivables)
- CAPITAL: owner's equity funds and liabilities owed to others
- INCOME / EXPENSES: flow accounts

DESIGN DECISION: Category-specific data is a tagged variant.
Each account carries at most one `details` object whose `kind` must match
its category. This keeps "is this a liability?" checks in one place
instead of scattering optional-field checks through the poster.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountGroup(str, Enum):
    """
    Accounting group of an account.

    The group decides the sign of a debit or credit on the balance.
    """
    ASSETS = "ASSETS"
    CAPITAL = "CAPITAL"
    INCOME = "INCOME"
    EXPENSES = "EXPENSES"


class AccountCategory(str, Enum):
    """Supported account categories."""
    CASH = "Cash"
    SAVINGS = "Savings"
    STOCKS = "Stocks"
    CRYPTO = "Crypto"
    GOLD = "Gold"
    REAL_ESTATE = "Real Estate"
    RECEIVABLES = "Receivables"
    EQUITY_FUND = "Equity Fund"
    LIABILITY = "Liability"
    CREDIT_CARD = "Credit Card"
    OTHER = "Other"


class AccountStatus(str, Enum):
    """
    Account lifecycle status.

    Accounts are never deleted by the engine. When their economic
    life ends they are CLOSED (repaid, settled) or LIQUIDATED (sold out).
    """
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"
    LIQUIDATED = "LIQUIDATED"


class LogType(str, Enum):
    """Type tag of a sub-ledger log entry."""
    BUY = "BUY"
    SELL = "SELL"
    CAPEX = "CAPEX"
    OPEX = "OPEX"
    REVALUE = "REVALUE"
    DISBURSEMENT = "DISBURSEMENT"
    REPAYMENT = "REPAYMENT"
    BORROW_MORE = "BORROW_MORE"
    CONTRACT_ADJUSTMENT = "CONTRACT_ADJUSTMENT"


class InterestType(str, Enum):
    REDUCING_BALANCE = "REDUCING_BALANCE"
    FLAT = "FLAT"


class RatePeriod(str, Enum):
    """Period the quoted interest rate applies to."""
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class PaymentCycle(str, Enum):
    """Cash-flow cycle of a liability or savings product."""
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    SEMI_ANNUAL = "SEMI_ANNUAL"
    YEARLY = "YEARLY"
    END_OF_TERM = "END_OF_TERM"


class CashFlowDirection(str, Enum):
    """INFLOW is money received, OUTFLOW is money owed."""
    INFLOW = "INFLOW"
    OUTFLOW = "OUTFLOW"


class DepositStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SETTLED = "SETTLED"


# =============================================================================
# SUB-LEDGER ENTRIES
# =============================================================================

class AccountLog(BaseModel):
    """
    One entry of an account's append-only log sequence.

    `price` is the monetary value of the event. For unit-based
    events (BUY, SELL, REVALUE) it is the per-unit price.
    """

    id: str = Field(default_factory=new_id)
    date: date
    type: LogType
    units: Optional[Decimal] = Field(default=None, ge=0)
    price: Decimal = Field(default=Decimal("0"), ge=0)
    fees: Optional[Decimal] = Field(default=None, ge=0)
    note: Optional[str] = Field(default=None, max_length=500)

    @property
    def value(self) -> Decimal:
        """Monetary value used when matching this entry to a transaction."""
        if self.units and self.price:
            return self.price * self.units
        return self.price


class SavingsDeposit(BaseModel):
    """A single term deposit held inside a savings account."""

    id: str = Field(default_factory=new_id)
    amount: Decimal = Field(..., ge=0)
    interest_rate: Decimal = Field(default=Decimal("0"), ge=0)
    term_months: int = Field(default=0, ge=0)
    start_date: date
    end_date: Optional[date] = None
    status: DepositStatus = DepositStatus.ACTIVE
    settled_date: Optional[date] = None
    settled_interest: Optional[Decimal] = None


class ScheduledEvent(BaseModel):
    """A projected future cash flow (interest payment, maturity)."""

    id: str = Field(default_factory=new_id)
    date: date
    title: str
    amount: Decimal = Field(..., description="Projected total cash flow")
    interest_amount: Decimal = Field(default=Decimal("0"))
    principal_amount: Decimal = Field(default=Decimal("0"))
    direction: CashFlowDirection
    completed: bool = False
    account_id: Optional[str] = None
    source_id: Optional[str] = Field(
        default=None,
        description="Log or deposit entry the event was projected from"
    )


class ValuationPoint(BaseModel):
    date: date
    price: Decimal = Field(..., ge=0)


# =============================================================================
# CATEGORY-SPECIFIC DETAIL VARIANTS
# =============================================================================

class InvestmentDetails(BaseModel):
    """Position of a unit-based investment (stocks, crypto, gold)."""

    kind: Literal["investment"] = "investment"
    symbol: str = ""
    total_units: Decimal = Field(default=Decimal("0"), ge=0)
    avg_price: Decimal = Field(default=Decimal("0"), ge=0)
    market_price: Decimal = Field(default=Decimal("0"), ge=0)
    currency: Optional[str] = None


class LiabilityDetails(BaseModel):
    """Terms and outstanding principal of a loan owed."""

    kind: Literal["liability"] = "liability"
    lender_name: Optional[str] = None
    principal_amount: Decimal = Field(default=Decimal("0"), ge=0)
    interest_rate: Decimal = Field(default=Decimal("0"), ge=0)
    interest_type: InterestType = InterestType.REDUCING_BALANCE
    interest_period: RatePeriod = RatePeriod.YEARLY
    payment_cycle: PaymentCycle = PaymentCycle.MONTHLY
    payment_day: Optional[int] = Field(default=None, ge=0, le=31)
    early_settlement_fee: Decimal = Field(default=Decimal("0"), ge=0)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    term_months: int = Field(default=0, ge=0)
    grace_period_months: int = Field(default=0, ge=0)


class SavingsDetails(BaseModel):
    """Savings book made of one or more term deposits."""

    kind: Literal["savings"] = "savings"
    provider_name: Optional[str] = None
    principal_amount: Decimal = Field(default=Decimal("0"), ge=0)
    interest_rate: Decimal = Field(default=Decimal("0"), ge=0)
    term_months: int = Field(default=0, ge=0)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    early_withdrawal_rate: Decimal = Field(default=Decimal("0"), ge=0)
    deposits: list[SavingsDeposit] = Field(default_factory=list)


class CreditCardDetails(BaseModel):
    """Static terms of a credit card."""

    kind: Literal["credit_card"] = "credit_card"
    bank_name: Optional[str] = None
    credit_limit: Decimal = Field(default=Decimal("0"), ge=0)
    statement_day: int = Field(..., ge=1, le=31)
    due_day: int = Field(..., ge=1, le=31)
    interest_rate: Decimal = Field(default=Decimal("0"), ge=0)
    card_last_digits: Optional[str] = Field(default=None, max_length=4)


class RealEstateDetails(BaseModel):
    kind: Literal["real_estate"] = "real_estate"
    address: Optional[str] = None
    total_investment: Decimal = Field(default=Decimal("0"), ge=0)
    valuation_history: list[ValuationPoint] = Field(default_factory=list)


AccountDetails = Annotated[
    Union[
        InvestmentDetails,
        LiabilityDetails,
        SavingsDetails,
        CreditCardDetails,
        RealEstateDetails,
    ],
    Field(discriminator="kind"),
]


INVESTMENT_CATEGORIES = frozenset({
    AccountCategory.STOCKS,
    AccountCategory.CRYPTO,
    AccountCategory.GOLD,
})

# Which detail variant each category may carry
CATEGORY_DETAIL_KIND: dict[AccountCategory, str] = {
    AccountCategory.STOCKS: "investment",
    AccountCategory.CRYPTO: "investment",
    AccountCategory.GOLD: "investment",
    AccountCategory.LIABILITY: "liability",
    AccountCategory.SAVINGS: "savings",
    AccountCategory.CREDIT_CARD: "credit_card",
    AccountCategory.REAL_ESTATE: "real_estate",
}

# Categories whose group is fixed
CATEGORY_GROUP: dict[AccountCategory, AccountGroup] = {
    AccountCategory.CASH: AccountGroup.ASSETS,
    AccountCategory.SAVINGS: AccountGroup.ASSETS,
    AccountCategory.STOCKS: AccountGroup.ASSETS,
    AccountCategory.CRYPTO: AccountGroup.ASSETS,
    AccountCategory.GOLD: AccountGroup.ASSETS,
    AccountCategory.REAL_ESTATE: AccountGroup.ASSETS,
    AccountCategory.RECEIVABLES: AccountGroup.ASSETS,
    AccountCategory.EQUITY_FUND: AccountGroup.CAPITAL,
    AccountCategory.LIABILITY: AccountGroup.CAPITAL,
    AccountCategory.CREDIT_CARD: AccountGroup.CAPITAL,
}


# =============================================================================
# ACCOUNT
# =============================================================================

class Account(BaseModel):
    """
    A ledger account.

    `current_balance` is always stored positive-normal for its group:
    an asset worth 100 has balance 100, a loan of 100 has balance 100.

    `version` is maintained by the store and used for compare-and-swap
    on commit. It is never edited by the engine.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)
    group: AccountGroup
    category: AccountCategory
    current_balance: Decimal = Field(default=Decimal("0"))
    status: AccountStatus = AccountStatus.ACTIVE

    linked_fund_id: Optional[str] = Field(
        default=None,
        description="Equity Fund receiving this account's gains, losses and fees"
    )
    realized_pnl: Decimal = Field(default=Decimal("0"))
    unrealized_pnl: Decimal = Field(default=Decimal("0"))
    accrued_interest: Decimal = Field(default=Decimal("0"), ge=0)

    details: Optional[AccountDetails] = None
    logs: list[AccountLog] = Field(default_factory=list)
    scheduled_events: list[ScheduledEvent] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    version: int = Field(default=0, ge=0)

    @model_validator(mode='after')
    def validate_category(self) -> 'Account':
        """Group and detail variant must agree with the category."""
        expected_group = CATEGORY_GROUP.get(self.category)
        if expected_group is not None and self.group != expected_group:
            raise ValueError(
                f"Category {self.category.value} belongs to group "
                f"{expected_group.value}, not {self.group.value}"
            )

        if self.details is not None:
            expected_kind = CATEGORY_DETAIL_KIND.get(self.category)
            if self.details.kind != expected_kind:
                raise ValueError(
                    f"Details of kind '{self.details.kind}' are not valid "
                    f"for category {self.category.value}"
                )
        return self

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    @property
    def is_equity_fund(self) -> bool:
        return self.category == AccountCategory.EQUITY_FUND

    @property
    def investment(self) -> Optional[InvestmentDetails]:
        return self.details if isinstance(self.details, InvestmentDetails) else None

    @property
    def liability(self) -> Optional[LiabilityDetails]:
        return self.details if isinstance(self.details, LiabilityDetails) else None

    @property
    def savings(self) -> Optional[SavingsDetails]:
        return self.details if isinstance(self.details, SavingsDetails) else None

    @property
    def credit_card(self) -> Optional[CreditCardDetails]:
        return self.details if isinstance(self.details, CreditCardDetails) else None

    @property
    def real_estate(self) -> Optional[RealEstateDetails]:
        return self.details if isinstance(self.details, RealEstateDetails) else None
