"""
Money Utilities - Safe Decimal operations for monetary values.

Prices arrive from the commerce backend as decimal strings ("25.00") and stay
Decimal throughout; floats are never used for arithmetic.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Iterable, Union

Number = Union[str, int, float, Decimal, None]

# Default precision for money operations (2 decimal places)
MONEY_PRECISION = Decimal("0.01")

ZERO = Decimal("0.00")


def to_decimal(value: Number) -> Decimal:
    """
    Convert any value to Decimal safely.

    Args:
        value: Value to convert (str, int, float, Decimal, or None)

    Returns:
        Decimal representation of the value, or Decimal("0") if None/invalid
    """
    if value is None:
        return Decimal("0")

    if isinstance(value, Decimal):
        return value

    try:
        if isinstance(value, float):
            # Go through repr so 0.1 stays 0.1
            return Decimal(str(value))
        return Decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        return Decimal("0")


def parse_amount(value: Number) -> Decimal:
    """
    Strict variant of ``to_decimal`` for amounts coming off the wire.

    Raises:
        ValueError: If the value is not a finite decimal.
    """
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, AttributeError) as e:
            raise ValueError(f"Invalid money amount: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"Invalid money amount: {value!r}")
    return result


def round_money(value: Number) -> Decimal:
    """
    Round monetary value to cents, half up.

    Args:
        value: Value to round

    Returns:
        Rounded Decimal value
    """
    return to_decimal(value).quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


def multiply(value: Number, factor: Number) -> Decimal:
    """Safe multiplication of monetary value by a factor."""
    return to_decimal(value) * to_decimal(factor)


def subtract(a: Number, b: Number) -> Decimal:
    """Safe subtraction of monetary values."""
    return to_decimal(a) - to_decimal(b)


def total(values: Iterable[Number]) -> Decimal:
    """Exact sum of monetary values; empty input sums to 0.00."""
    return sum((to_decimal(v) for v in values), ZERO)
