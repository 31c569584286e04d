"""
Pure numeric calculators.

None of these functions read or write the ledger. The poster calls
them and turns their results into account deltas.
"""

from ledger_core.calculators.cost_basis import (
    realized_pnl,
    unwind_average_cost,
    weighted_average_cost,
)
from ledger_core.calculators.credit import CreditStatus, credit_card_status
from ledger_core.calculators.money import ZERO, quantize, to_decimal
from ledger_core.calculators.schedule import add_months, generate_schedule, period_interest
from ledger_core.calculators.settlement import (
    SettlementQuote,
    estimate_accrued_interest,
    settle,
)

__all__ = [
    "CreditStatus",
    "SettlementQuote",
    "ZERO",
    "add_months",
    "credit_card_status",
    "estimate_accrued_interest",
    "generate_schedule",
    "period_interest",
    "quantize",
    "realized_pnl",
    "settle",
    "to_decimal",
    "unwind_average_cost",
    "weighted_average_cost",
]
