"""Decimal money helpers. All ledger arithmetic is Decimal, never float."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from ledger_core.config import get_settings

Number = Union[Decimal, int, str]

ZERO = Decimal("0")


def to_decimal(value: Optional[Number]) -> Decimal:
    """Coerce an int, str or Decimal to Decimal. None becomes zero."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise TypeError("Floats are not accepted as money, pass a str or Decimal")
    return Decimal(str(value))


def quantize(value: Number, places: Optional[int] = None) -> Decimal:
    """Round half-up to the configured number of decimal places."""
    if places is None:
        places = get_settings().ledger.money_decimal_places
    exponent = Decimal(1).scaleb(-places)
    return to_decimal(value).quantize(exponent, rounding=ROUND_HALF_UP)
