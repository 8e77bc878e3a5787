"""Exact money handling.

Amounts travel through the application as ``Decimal`` with two places and are
stored as integer minor units, so SQL-side increments and sums never touch
binary floating point.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from sqlalchemy import BigInteger
from sqlalchemy.types import TypeDecorator

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")

AmountLike = Union[Decimal, int, str]


class InvalidAmount(ValueError):
    pass


def to_decimal(value: AmountLike) -> Decimal:
    """Parse ``value`` into a two-place Decimal, refusing anything inexact."""
    if isinstance(value, (bool, float)):
        raise InvalidAmount(f"Amount must be a Decimal, int or str, got {value!r}")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, str)):
        try:
            amount = Decimal(value)
        except InvalidOperation as exc:
            raise InvalidAmount(f"Invalid amount: {value!r}") from exc
    else:
        raise InvalidAmount(f"Unsupported amount type: {type(value).__name__}")

    if not amount.is_finite():
        raise InvalidAmount(f"Amount must be finite, got {value!r}")
    if (amount * HUNDRED) % 1 != 0:
        raise InvalidAmount(f"Amount {value} has more than two decimal places")
    return amount.quantize(CENT)


def to_minor_units(value: AmountLike) -> int:
    return int(to_decimal(value) * HUNDRED)


def from_minor_units(value: int) -> Decimal:
    return Decimal(int(value)).scaleb(-2)


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def percentage(part: Decimal, whole: Decimal) -> Decimal:
    if whole == 0:
        return ZERO
    return quantize(part / whole * HUNDRED)


def reaches_percent(part: Decimal, whole: Decimal, threshold) -> bool:
    """``part / whole >= threshold %`` without rounding; never true for ``whole <= 0``.

    ``percentage`` rounds for display, so 1599.99 of 2000 shows as 80.00
    while still being below an 80 % threshold.
    """
    if whole <= 0:
        return False
    return part * HUNDRED >= Decimal(threshold) * whole


class Money(TypeDecorator):
    """Decimal in Python, BIGINT minor units in the database."""

    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return to_minor_units(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return from_minor_units(value)

    @property
    def python_type(self):
        return Decimal
