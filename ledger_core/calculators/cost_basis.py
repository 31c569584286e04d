"""
Cost-Basis Calculator (Weighted Average Cost)

The average cost of a position changes only on buys. Sells reduce the
unit count and realize profit or loss against the current average.
"""

from decimal import Decimal
from typing import Optional

from ledger_core.calculators.money import ZERO, Number, to_decimal


def weighted_average_cost(
    prev_units: Number,
    prev_avg_cost: Number,
    new_units: Number,
    new_price: Number,
    new_fees: Optional[Number] = None,
) -> Decimal:
    """
    Average cost after buying `new_units` at `new_price`.

    Fees are capitalized into the cost. When the resulting unit count
    is zero the new price is returned.
    """
    prev_units = to_decimal(prev_units)
    new_units = to_decimal(new_units)
    new_price = to_decimal(new_price)

    total_units = prev_units + new_units
    if total_units == 0:
        return new_price

    total_cost = (
        prev_units * to_decimal(prev_avg_cost)
        + new_units * new_price
        + to_decimal(new_fees)
    )
    return total_cost / total_units


def realized_pnl(
    sell_price: Number,
    quantity: Number,
    sell_fees: Optional[Number],
    avg_cost: Number,
) -> Decimal:
    """(sell_price * quantity - sell_fees) - avg_cost * quantity"""
    quantity = to_decimal(quantity)
    proceeds = to_decimal(sell_price) * quantity - to_decimal(sell_fees)
    return proceeds - to_decimal(avg_cost) * quantity


def unwind_average_cost(
    held_units: Number,
    avg_cost: Number,
    removed_units: Number,
    removed_cost: Number,
) -> Decimal:
    """
    Average cost before a buy of `removed_units` that cost `removed_cost`
    (fees included) was added to a position of `held_units`.

    Used to undo a buy from the transaction alone, so positions whose
    logs do not cover every unit still get their prior average back.
    Zero when no units remain.
    """
    held_units = to_decimal(held_units)
    remaining = held_units - to_decimal(removed_units)
    if remaining <= 0:
        return ZERO

    prior_cost = held_units * to_decimal(avg_cost) - to_decimal(removed_cost)
    return max(ZERO, prior_cost / remaining)
