"""
Money helpers - decimal coercion and minor-unit rounding.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP


ZERO = Decimal('0')
HUNDRED = Decimal('100')


def to_decimal(value) -> Decimal:
    """
    Coerce a price-like value to Decimal.

    Floats go through str() so 10.1 becomes Decimal('10.1') rather than its
    binary expansion. Raises ValueError for anything non-numeric.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary value: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValueError(f"Not a monetary value: {value!r}") from None
    else:
        raise ValueError(f"Not a monetary value: {value!r}")

    if not result.is_finite():
        raise ValueError(f"Not a finite monetary value: {value!r}")
    return result


def minor_unit(minor_units: int = 2) -> Decimal:
    """Smallest currency step, e.g. Decimal('0.01') for 2 minor units."""
    return Decimal(1).scaleb(-minor_units)


def round_money(amount: Decimal, minor_units: int = 2) -> Decimal:
    """Round half-up to the currency's minor unit."""
    return amount.quantize(minor_unit(minor_units), rounding=ROUND_HALF_UP)
