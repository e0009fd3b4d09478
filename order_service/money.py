"""Fixed-point helpers for monetary amounts (two decimal places)."""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Converts `value` to a Decimal rounded half-up to whole cents.

    Floats are converted through their string form so that 149.99 stays 149.99.
    """
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"Invalid monetary amount: {value!r}") from e


def format_money(value: Decimal) -> str:
    return str(to_money(value))
