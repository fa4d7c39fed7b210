"""Money rounding helpers (round half away from zero, on decimals not floats)"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

Number = Union[int, float, Decimal, str]

CENT = Decimal("0.01")


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps 0.1 as 0.1 instead of its binary expansion
    return Decimal(str(value))


def round_currency(value: Number) -> float:
    """Round a dollar amount to cents, e.g. 12.345 -> 12.35"""
    return float(to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))


def round_cents(value: Number) -> int:
    """Round a fractional cent amount to a whole cent, e.g. 670.5 -> 671"""
    return int(to_decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def dollars_to_cents(amount: Number) -> int:
    return round_cents(to_decimal(amount) * 100)


def cents_to_dollars(cents: int) -> float:
    return round_currency(Decimal(cents) / 100)


def split_cents(total_cents: int, parts: int) -> list[int]:
    """
    Split an amount evenly across parts; leftover cents go one each to the
    first parts so the shares always sum to the total.
    """
    if parts <= 0:
        return []
    base, remainder = divmod(total_cents, parts)
    return [base + 1 if i < remainder else base for i in range(parts)]
