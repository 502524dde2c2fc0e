"""
Monetary Amount Handling

Parses and formats amounts as Decimal. NEVER uses float for monetary values:
a float reaching this module is rejected rather than converted.
"""

from decimal import Decimal, InvalidOperation, getcontext
from typing import Any

from .errors import InvalidAmountError

# Set global decimal context for financial precision
getcontext().prec = 28

DEFAULT_DECIMAL_PLACES = 2


def parse_amount(value: Any, decimal_places: int = DEFAULT_DECIMAL_PLACES,
                 allow_zero: bool = False) -> Decimal:
    """
    Convert ``value`` to a Decimal amount or raise InvalidAmountError.

    Accepts Decimal, int and numeric strings. Rejects floats, bools, NaN,
    infinities, values with more than ``decimal_places`` non-zero fractional
    digits and non-positive values (zero is accepted with ``allow_zero``).
    Surplus trailing zeros are dropped.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmountError(
            f"Amount must be a decimal, not {type(value).__name__}"
        )

    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, str):
        try:
            amount = Decimal(value.strip())
        except InvalidOperation:
            raise InvalidAmountError(f"Malformed amount: {value!r}")
    else:
        raise InvalidAmountError(f"Unsupported amount type: {type(value).__name__}")

    if not amount.is_finite():
        raise InvalidAmountError(f"Amount must be finite: {value!r}")

    if amount.as_tuple().exponent < -decimal_places:
        # Trailing zeros beyond the allowed places are fine: 40.000 is 40.00
        if amount.normalize().as_tuple().exponent < -decimal_places:
            raise InvalidAmountError(
                f"Amount {amount} has more than {decimal_places} decimal places"
            )
        try:
            amount = amount.quantize(Decimal(1).scaleb(-decimal_places))
        except InvalidOperation:
            raise InvalidAmountError(f"Amount out of range: {value!r}")

    if amount < 0 or (amount == 0 and not allow_zero):
        raise InvalidAmountError(f"Amount must be positive, got {amount}")

    return amount


def format_amount(amount: Decimal, decimal_places: int = DEFAULT_DECIMAL_PLACES) -> str:
    """Render an amount with a fixed number of decimal places"""
    return str(amount.quantize(Decimal(1).scaleb(-decimal_places)))
