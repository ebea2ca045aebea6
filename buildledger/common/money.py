"""Decimal helpers shared by every financial computation.

Amounts keep full precision while they flow through the engine. Rounding to
two places happens only when a pydantic model is serialized, via the
``Money`` and ``Percent`` annotated types below.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Any

from pydantic import PlainSerializer

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENTS = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """Coerce stored values to Decimal. Missing or garbage values become 0."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        # str() keeps floats like 0.1 from dragging binary noise along
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return ZERO


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def non_negative(value: Decimal) -> Decimal:
    return value if value > ZERO else ZERO


def percentage(part: Decimal, whole: Decimal) -> Decimal:
    """``part / whole * 100``, or 0 when either side is not positive."""
    if part > ZERO and whole > ZERO:
        return part / whole * HUNDRED
    return ZERO


def _serialize_money(value: Decimal | None) -> Decimal | None:
    if value is None:
        return None
    return quantize_money(value)


def _serialize_percent(value: Decimal | float | None) -> float | None:
    if value is None:
        return None
    return round(float(value), 2)


Money = Annotated[Decimal, PlainSerializer(_serialize_money, return_type=Decimal)]
OptionalMoney = Annotated[Decimal | None, PlainSerializer(_serialize_money, return_type=Decimal | None)]
Percent = Annotated[Decimal, PlainSerializer(_serialize_percent, return_type=float)]
OptionalPercent = Annotated[
    Decimal | None, PlainSerializer(_serialize_percent, return_type=float | None)
]
