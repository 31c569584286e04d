"""
Shared fixtures.

Accounts are built fresh per test so plans computed in one test never
leak into another. Amounts are Decimals throughout.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from ledger_core.config import get_settings
from ledger_core.models import (
    Account,
    AccountCategory,
    AccountGroup,
    AccountLog,
    CreditCardDetails,
    InvestmentDetails,
    LedgerSnapshot,
    LiabilityDetails,
    LogType,
    RealEstateDetails,
    SavingsDetails,
)

USER_ID = "user-1"
TRADE_DATE = date(2024, 3, 15)


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    """Fast, deterministic settings for every test."""
    monkeypatch.setenv("COMMIT_RETRY_WAIT_MIN_SECONDS", "0")
    monkeypatch.setenv("COMMIT_RETRY_WAIT_MAX_SECONDS", "0")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def fund() -> Account:
    return Account(
        id="fund",
        name="Spending Fund",
        group=AccountGroup.CAPITAL,
        category=AccountCategory.EQUITY_FUND,
        current_balance=Decimal("100000000"),
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def cash() -> Account:
    return Account(
        id="cash",
        name="Wallet",
        group=AccountGroup.ASSETS,
        category=AccountCategory.CASH,
        current_balance=Decimal("50000000"),
    )


@pytest.fixture
def groceries() -> Account:
    return Account(
        id="groceries",
        name="Groceries",
        group=AccountGroup.EXPENSES,
        category=AccountCategory.OTHER,
    )


@pytest.fixture
def stock(fund) -> Account:
    """Empty stock position linked to the fund."""
    return Account(
        id="stock",
        name="VNM Shares",
        group=AccountGroup.ASSETS,
        category=AccountCategory.STOCKS,
        linked_fund_id=fund.id,
        details=InvestmentDetails(symbol="VNM"),
    )


@pytest.fixture
def held_stock(fund) -> Account:
    """10 units bought at 100 with fee 5 (average cost 100.5)."""
    buy = AccountLog(
        id="buy-1",
        date=date(2024, 1, 10),
        type=LogType.BUY,
        units=Decimal("10"),
        price=Decimal("100"),
        fees=Decimal("5"),
    )
    return Account(
        id="stock",
        name="VNM Shares",
        group=AccountGroup.ASSETS,
        category=AccountCategory.STOCKS,
        current_balance=Decimal("1005"),
        linked_fund_id=fund.id,
        details=InvestmentDetails(
            symbol="VNM",
            total_units=Decimal("10"),
            avg_price=Decimal("100.5"),
            market_price=Decimal("100"),
        ),
        logs=[buy],
    )


@pytest.fixture
def loan(fund) -> Account:
    """Liability with 4,500,000 outstanding after one repayment of 500,000."""
    return Account(
        id="loan",
        name="Car Loan",
        group=AccountGroup.CAPITAL,
        category=AccountCategory.LIABILITY,
        current_balance=Decimal("4500000"),
        linked_fund_id=fund.id,
        details=LiabilityDetails(
            lender_name="Bank",
            principal_amount=Decimal("4500000"),
            interest_rate=Decimal("12"),
            start_date=date(2024, 1, 1),
            end_date=date(2025, 1, 1),
            term_months=12,
        ),
        logs=[
            AccountLog(
                id="repay-1",
                date=TRADE_DATE,
                type=LogType.REPAYMENT,
                price=Decimal("500000"),
            ),
        ],
    )


@pytest.fixture
def house() -> Account:
    return Account(
        id="house",
        name="Apartment",
        group=AccountGroup.ASSETS,
        category=AccountCategory.REAL_ESTATE,
        details=RealEstateDetails(address="District 1"),
    )


@pytest.fixture
def card() -> Account:
    return Account(
        id="card",
        name="Visa",
        group=AccountGroup.CAPITAL,
        category=AccountCategory.CREDIT_CARD,
        current_balance=Decimal("3000000"),
        details=CreditCardDetails(
            credit_limit=Decimal("10000000"),
            statement_day=20,
            due_day=5,
        ),
    )


@pytest.fixture
def savings_template() -> Account:
    return Account(
        id="savings",
        name="Term Deposit",
        group=AccountGroup.ASSETS,
        category=AccountCategory.SAVINGS,
        details=SavingsDetails(
            provider_name="Bank",
            interest_rate=Decimal("6"),
            term_months=12,
            early_withdrawal_rate=Decimal("1"),
        ),
    )


@pytest.fixture
def snapshot_of():
    """Build a snapshot from accounts and transactions."""
    def build(*accounts, transactions=()):
        return LedgerSnapshot(
            user_id=USER_ID,
            accounts={a.id: a for a in accounts},
            transactions={tx.id: tx for tx in transactions},
        )
    return build
