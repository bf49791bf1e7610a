# Overview: Per-item dispatch pricing; resolves adjustments to final unit prices.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Optional

from ..errors import ValidationError
from ..models.requests import ADJUSTMENT_FIXED, ADJUSTMENT_PERCENTAGE
from ..money import quantize, to_decimal

ADJUSTMENT_TYPES = (ADJUSTMENT_PERCENTAGE, ADJUSTMENT_FIXED)

HUNDRED = Decimal("100")


def _pick(data: Mapping, *keys):
    for key in keys:
        if key in data:
            return data[key]
    return None


def compute_final_price(unit_price, adjustment_type: str, adjustment_value) -> Decimal:
    """
    Final unit price after the dispatcher's adjustment.

    percentage: unit_price - unit_price * value / 100
    fixed:      value, taken literally as the final unit price
    """
    unit = to_decimal(unit_price, "unit_price")
    value = to_decimal(adjustment_value, "adjustment_value")
    if unit is None or unit <= 0:
        raise ValidationError("unit_price must be greater than 0")
    if value is None:
        value = Decimal("0")

    if adjustment_type == ADJUSTMENT_PERCENTAGE:
        if value < 0 or value > HUNDRED:
            raise ValidationError("percentage adjustment must be between 0 and 100")
        return quantize(unit - unit * value / HUNDRED)
    if adjustment_type == ADJUSTMENT_FIXED:
        if value < 0:
            raise ValidationError("fixed price cannot be negative")
        return quantize(value)
    raise ValidationError(f"adjustment_type must be one of {', '.join(ADJUSTMENT_TYPES)}")


@dataclass(frozen=True)
class EntryPricing:
    """Pricing snapshot copied onto a stock batch."""
    unit_price: Optional[Decimal] = None
    discount_percent: Optional[Decimal] = None
    final_price: Optional[Decimal] = None

    @property
    def effective_price(self) -> Optional[Decimal]:
        return self.final_price if self.final_price is not None else self.unit_price

    def total_for(self, quantity: int) -> Optional[Decimal]:
        price = self.effective_price
        if price is None:
            return None
        return quantize(price * quantity)

    @classmethod
    def from_mapping(cls, data: Mapping | None) -> Optional["EntryPricing"]:
        if not data:
            return None
        pricing = cls(
            unit_price=quantize(to_decimal(_pick(data, "unit_price", "unitPrice"), "unit_price")),
            discount_percent=quantize(
                to_decimal(_pick(data, "discount_percent", "discountPercent"), "discount_percent")
            ),
            final_price=quantize(to_decimal(_pick(data, "final_price", "finalPrice"), "final_price")),
        )
        if pricing.effective_price is None:
            return None
        if pricing.effective_price < 0:
            raise ValidationError("price cannot be negative")
        return pricing

    @classmethod
    def from_entry(cls, entry) -> Optional["EntryPricing"]:
        if entry.unit_price is None and entry.final_price is None:
            return None
        return cls(
            unit_price=entry.unit_price,
            discount_percent=entry.discount_percent,
            final_price=entry.final_price,
        )


@dataclass(frozen=True)
class PriceAdjustment:
    """A dispatcher's pricing decision for one request item."""
    unit_price: Decimal
    adjustment_type: str
    adjustment_value: Decimal

    @property
    def final_price(self) -> Decimal:
        return compute_final_price(self.unit_price, self.adjustment_type, self.adjustment_value)

    @property
    def discount_percent(self) -> Optional[Decimal]:
        """Equivalent discount in percent; None for a fixed price above the unit price."""
        if self.adjustment_type == ADJUSTMENT_PERCENTAGE:
            return quantize(self.adjustment_value)
        if self.final_price > self.unit_price:
            return None
        return quantize((self.unit_price - self.final_price) / self.unit_price * HUNDRED)

    def to_entry_pricing(self) -> EntryPricing:
        return EntryPricing(
            unit_price=self.unit_price,
            discount_percent=self.discount_percent,
            final_price=self.final_price,
        )

    @classmethod
    def from_mapping(cls, data: Mapping) -> "PriceAdjustment":
        """
        Accepts {unitPrice, adjustmentType, adjustmentValue} or the legacy
        {unitPrice, discountPercent} shape (a percentage adjustment).
        """
        if not isinstance(data, Mapping):
            raise ValidationError("pricing must be an object")
        unit = to_decimal(_pick(data, "unit_price", "unitPrice"), "unit_price")
        adjustment_type = _pick(data, "adjustment_type", "adjustmentType")
        value = _pick(data, "adjustment_value", "adjustmentValue")
        if adjustment_type is None:
            adjustment_type = ADJUSTMENT_PERCENTAGE
            value = _pick(data, "discount_percent", "discountPercent")
        adjustment = cls(
            unit_price=quantize(unit) if unit is not None else None,
            adjustment_type=adjustment_type,
            adjustment_value=quantize(to_decimal(value, "adjustment_value") or Decimal("0")),
        )
        compute_final_price(adjustment.unit_price, adjustment.adjustment_type, adjustment.adjustment_value)
        return adjustment
