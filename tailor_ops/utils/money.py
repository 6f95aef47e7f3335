"""
Money coercion for order prices, deposits and balances

Amounts are held to the cent, the precision of the stored columns, so a
balance computed in memory is the same value that gets stored and published.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """Coerce user input to a Decimal rounded to the cent.

    Invalid, missing, NaN or infinite input becomes 0.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            # str() keeps floats like 0.1 from dragging binary noise along
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return ZERO
    if not result.is_finite():
        return ZERO
    try:
        return result.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # Too many digits to hold at cent precision
        return ZERO


def compute_balance(price: Any, deposit: Any) -> Decimal:
    return to_decimal(price) - to_decimal(deposit)
