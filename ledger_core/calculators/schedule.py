"""
Schedule Generator

Projects future cash flows (interest payments, maturities) of a
liability or savings product from its principal, rate, term and cycle.

Dates use calendar-month arithmetic: adding one month to Jan 31 lands
on the last day of February.
"""

import calendar
from datetime import date
from decimal import Decimal
from typing import Optional

from ledger_core.calculators.money import Number, quantize, to_decimal
from ledger_core.models.account import CashFlowDirection, PaymentCycle, ScheduledEvent

CYCLE_MONTHS: dict[PaymentCycle, int] = {
    PaymentCycle.MONTHLY: 1,
    PaymentCycle.QUARTERLY: 3,
    PaymentCycle.SEMI_ANNUAL: 6,
    PaymentCycle.YEARLY: 12,
}


def add_months(start: date, months: int, day: Optional[int] = None) -> date:
    """
    Add calendar months, clamping to the end of the resulting month.

    `day` overrides the day-of-month of the result (0 = last day).
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]

    target = start.day if day is None else day
    if target == 0 or target > last_day:
        target = last_day
    return date(year, month, target)


def period_interest(principal: Number, annual_rate_percent: Number, months: int) -> Decimal:
    """Simple pro-rata interest: principal * rate/100 * months/12."""
    return (
        to_decimal(principal)
        * to_decimal(annual_rate_percent) / Decimal(100)
        * Decimal(months) / Decimal(12)
    )


def generate_schedule(
    principal: Number,
    annual_rate_percent: Number,
    start_date: date,
    term_months: int,
    cycle: PaymentCycle,
    direction: CashFlowDirection,
    label: str,
    fixed_payment_day: Optional[int] = None,
    account_id: Optional[str] = None,
    source_id: Optional[str] = None,
) -> list[ScheduledEvent]:
    """
    Generate projected cash-flow events.

    END_OF_TERM produces a single maturity event at start + term
    carrying principal plus interest for the whole term.

    Periodic cycles produce one event per cycle boundary up to and
    including maturity. A term that is not a multiple of the cycle ends
    with a shorter final period on the maturity date. Each event carries
    the interest of its period and an equal share of the principal.

    Returns an empty list for a zero term.
    """
    principal = to_decimal(principal)
    if term_months <= 0:
        return []

    if cycle == PaymentCycle.END_OF_TERM:
        interest = quantize(period_interest(principal, annual_rate_percent, term_months))
        return [
            ScheduledEvent(
                date=add_months(start_date, term_months, fixed_payment_day),
                title=f"Maturity: {label}",
                amount=principal + interest,
                interest_amount=interest,
                principal_amount=principal,
                direction=direction,
                account_id=account_id,
                source_id=source_id,
            )
        ]

    interval = CYCLE_MONTHS[cycle]
    count = -(-term_months // interval)
    principal_share = quantize(principal / count)

    events = []
    elapsed = 0
    for i in range(1, count + 1):
        offset = min(i * interval, term_months)
        period_months = offset - elapsed
        elapsed = offset

        interest = quantize(period_interest(principal, annual_rate_percent, period_months))
        events.append(ScheduledEvent(
            date=add_months(start_date, offset, fixed_payment_day),
            title=f"Period {i}: {label}",
            amount=principal_share + interest,
            interest_amount=interest,
            principal_amount=principal_share,
            direction=direction,
            account_id=account_id,
            source_id=source_id,
        ))
    return events
