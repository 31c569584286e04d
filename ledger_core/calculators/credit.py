"""
Credit Status Calculator

Derives the current billing cycle, utilization and minimum payment of a
credit card from its static terms and its outstanding balance.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from ledger_core.calculators.money import ZERO, Number, quantize, to_decimal
from ledger_core.calculators.schedule import add_months
from ledger_core.config import get_settings
from ledger_core.models.account import CreditCardDetails


class CreditStatus(BaseModel):
    available: Decimal
    utilization: Decimal
    billing_cycle_label: str
    is_statement_open: bool
    days_to_due: int
    minimum_payment: Decimal

    statement_date: date
    due_date: date
    cycle_end: date
    is_overdue: bool
    status_color: str
    in_grace_period: bool


def _on_day(year: int, month: int, day: int) -> date:
    """`day` of the given month, clamped to the month's length."""
    return add_months(date(year, month, 1), 0, day)


def last_statement_date(statement_day: int, today: date) -> date:
    """Most recent occurrence of `statement_day` on or before today."""
    candidate = _on_day(today.year, today.month, statement_day)
    if candidate > today:
        previous = add_months(date(today.year, today.month, 1), -1)
        candidate = _on_day(previous.year, previous.month, statement_day)
    return candidate


def due_date_after(statement_date: date, due_day: int) -> date:
    """First occurrence of `due_day` strictly after the statement date."""
    candidate = _on_day(statement_date.year, statement_date.month, due_day)
    if candidate <= statement_date:
        following = add_months(date(statement_date.year, statement_date.month, 1), 1)
        candidate = _on_day(following.year, following.month, due_day)
    return candidate


def credit_card_status(
    balance: Number,
    details: CreditCardDetails,
    today: Optional[date] = None,
) -> CreditStatus:
    """
    Compute the status of a credit card.

    A negative balance (card in credit) counts as nothing outstanding.
    `days_to_due` of zero or less means the payment is overdue.
    """
    settings = get_settings().ledger
    today = today or date.today()

    outstanding = max(to_decimal(balance), ZERO)
    limit = details.credit_limit

    utilization = outstanding / limit * Decimal(100) if limit > 0 else ZERO
    minimum_payment = quantize(outstanding * settings.minimum_payment_rate)

    statement_date = last_statement_date(details.statement_day, today)
    due_date = due_date_after(statement_date, details.due_day)
    next_statement = add_months(
        date(statement_date.year, statement_date.month, 1), 1, details.statement_day
    )
    days_to_due = (due_date - today).days

    if utilization > settings.utilization_danger_percent:
        status_color = "red"
    elif utilization > settings.utilization_warning_percent:
        status_color = "yellow"
    else:
        status_color = "green"

    return CreditStatus(
        available=max(ZERO, limit - outstanding),
        utilization=utilization,
        billing_cycle_label=f"Cycle {statement_date:%d/%m} - {due_date:%d/%m}",
        is_statement_open=outstanding > 0 and today >= statement_date,
        days_to_due=days_to_due,
        minimum_payment=minimum_payment,
        statement_date=statement_date,
        due_date=due_date,
        cycle_end=next_statement - timedelta(days=1),
        is_overdue=outstanding > 0 and days_to_due <= 0,
        status_color=status_color,
        in_grace_period=outstanding > 0 and 0 < days_to_due <= 45,
    )
