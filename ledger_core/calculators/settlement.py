"""Settlement Calculator: total payoff to close a liability."""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from ledger_core.calculators.money import ZERO, Number, quantize, to_decimal
from ledger_core.models.account import RatePeriod

DAYS_PER_YEAR = Decimal(365)


class SettlementQuote(BaseModel):
    principal: Decimal
    accrued_interest: Decimal
    fee: Decimal
    total: Decimal


def settle(
    principal: Number,
    accrued_interest: Optional[Number] = None,
    manual_fee: Optional[Number] = None,
) -> SettlementQuote:
    """total = principal + accrued_interest + manual_fee"""
    principal = to_decimal(principal)
    accrued_interest = to_decimal(accrued_interest)
    fee = to_decimal(manual_fee)
    return SettlementQuote(
        principal=principal,
        accrued_interest=accrued_interest,
        fee=fee,
        total=principal + accrued_interest + fee,
    )


def estimate_accrued_interest(
    principal: Number,
    rate_percent: Number,
    period: RatePeriod,
    since: date,
    as_of: date,
) -> Decimal:
    """
    Simple daily interest accrued on `principal` between two dates.

    A MONTHLY rate is annualized by twelve before the daily split.
    """
    days = (as_of - since).days
    if days <= 0:
        return ZERO

    annual_rate = to_decimal(rate_percent)
    if period == RatePeriod.MONTHLY:
        annual_rate *= 12
    interest = to_decimal(principal) * annual_rate / Decimal(100) * Decimal(days) / DAYS_PER_YEAR
    return quantize(interest)
