"""Currency arithmetic helpers.

Amounts are kept as ``Decimal`` end to end. Floats only appear at the
JSON boundary and are converted through ``str`` so that ``0.1`` stays
``0.1``.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Union, Optional

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Optional[Number]) -> Decimal:
    """Coerce a number-like value to Decimal (None and blanks become 0)."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return ZERO
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Not a valid amount: {value!r}")


def round2(value: Optional[Number]) -> Decimal:
    """Round half away from zero to 2 decimal places."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal, percent: Decimal) -> Decimal:
    """Unrounded ``amount * percent / 100``."""
    return amount * percent / HUNDRED
