"""
Double-Entry Sign Rule

Everything a transaction does to an account that can be derived from the
transaction record alone is derived here, in one function. The poster
applies it forward, the reconciler applies it negated, so a revert is the
exact inverse of a post by construction.

Sign rule:
    ASSETS, EXPENSES    debit increases, credit decreases
    CAPITAL, INCOME     debit decreases, credit increases

Derived sub-ledger fields move with the signed balance effect:
    liability / savings principal_amount
    real-estate total_investment (capital injections only)
    investment realized_pnl / unrealized_pnl (revaluation legs only)
Investment units follow the side: debit adds units, credit removes them.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from ledger_core.models.account import Account, AccountGroup, DepositStatus
from ledger_core.models.ledger import AccountDelta
from ledger_core.models.transaction import (
    CAPITAL_INJECTION_TYPES,
    Transaction,
    TransactionType,
)

DEBIT_NORMAL_GROUPS = frozenset({AccountGroup.ASSETS, AccountGroup.EXPENSES})

# Categories of revaluation legs that realize profit or loss on a sale
REALIZED_GAIN = "Realized Gain"
REALIZED_LOSS = "Realized Loss"
REALIZED_PNL_CATEGORIES = frozenset({REALIZED_GAIN, REALIZED_LOSS})
UNREALIZED_RELEASE = "Unrealized Release"
REVALUATION = "Revaluation"


class Side(str, Enum):
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


def signed_amount(group: AccountGroup, side: Side, amount: Decimal) -> Decimal:
    """Balance effect of debiting or crediting `amount` to an account of `group`."""
    increases = (side == Side.DEBIT) == (group in DEBIT_NORMAL_GROUPS)
    return amount if increases else -amount


def leg_delta(account: Account, tx: Transaction, side: Side, direction: int = 1) -> AccountDelta:
    """
    Delta one side of `tx` causes on `account`.

    `direction` is 1 to post and -1 to revert.
    """
    balance = signed_amount(account.group, side, tx.amount) * direction
    increments: dict[str, Decimal] = {}

    if account.liability is not None or account.savings is not None:
        increments["details.principal_amount"] = balance

    if account.investment is not None:
        if tx.units:
            units = tx.units if side == Side.DEBIT else -tx.units
            increments["details.total_units"] = units * direction
        if tx.type == TransactionType.ASSET_REVALUATION:
            field = "realized_pnl" if tx.category in REALIZED_PNL_CATEGORIES else "unrealized_pnl"
            increments[field] = balance

    if account.real_estate is not None and tx.type in CAPITAL_INJECTION_TYPES:
        increments["details.total_investment"] = balance

    return AccountDelta(
        account_id=account.id,
        balance_delta=balance,
        increments=increments,
    )


def transaction_deltas(
    tx: Transaction,
    debit_account: Account,
    credit_account: Account,
    direction: int = 1,
) -> list[AccountDelta]:
    return [
        leg_delta(debit_account, tx, Side.DEBIT, direction),
        leg_delta(credit_account, tx, Side.CREDIT, direction),
    ]


def has_position(account: Account) -> bool:
    """True if the account still holds something (balance, units, principal, deposits)."""
    if account.current_balance != 0:
        return True
    if account.investment is not None and account.investment.total_units > 0:
        return True
    if account.liability is not None and account.liability.principal_amount > 0:
        return True
    if account.savings is not None:
        return any(d.status == DepositStatus.ACTIVE for d in account.savings.deposits)
    return False


def position_shortfall(account: Account, delta: AccountDelta) -> Optional[tuple[str, Decimal, Decimal]]:
    """
    Check that `delta` keeps units and principal non-negative.

    Returns (field, held, change) for the first field that would go
    negative, or None.
    """
    checks = []
    if account.investment is not None:
        checks.append(("total_units", account.investment.total_units))
    if account.liability is not None:
        checks.append(("principal_amount", account.liability.principal_amount))
    if account.savings is not None:
        checks.append(("principal_amount", account.savings.principal_amount))

    for field, held in checks:
        change = delta.increments.get(f"details.{field}", Decimal("0"))
        if held + change < 0:
            return field, held, change
    return None
