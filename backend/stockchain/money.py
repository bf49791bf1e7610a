# Overview: Decimal helpers for prices and stock values (two decimal places, half-up).

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

from .errors import ValidationError

CENT = Decimal("0.01")


def to_decimal(value, field: str = "amount") -> Optional[Decimal]:
    """Coerce JSON numbers/strings to Decimal. Floats go through str() to avoid binary noise."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")


def quantize(value: Optional[Decimal]) -> Optional[Decimal]:
    if value is None:
        return None
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def money_to_json(value: Optional[Decimal]) -> Optional[float]:
    if value is None:
        return None
    return float(quantize(Decimal(value)))
