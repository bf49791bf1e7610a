from decimal import Decimal

import pytest

from stockchain.errors import ValidationError
from stockchain.services.pricing import EntryPricing, PriceAdjustment, compute_final_price


class TestComputeFinalPrice:
    def test_percentage_discount(self):
        assert compute_final_price(100, "percentage", 10) == Decimal("90.00")

    def test_fixed_price_is_literal(self):
        assert compute_final_price(100, "fixed", 75) == Decimal("75.00")

    def test_fixed_price_may_exceed_unit_price(self):
        assert compute_final_price("10.00", "fixed", "12.50") == Decimal("12.50")

    def test_rounds_half_up(self):
        assert compute_final_price("10.05", "percentage", 50) == Decimal("5.03")

    def test_zero_percent_keeps_unit_price(self):
        assert compute_final_price("19.99", "percentage", 0) == Decimal("19.99")

    @pytest.mark.parametrize("unit_price, adjustment_type, value", [
        (0, "percentage", 10),
        (-5, "fixed", 1),
        (100, "percentage", 101),
        (100, "percentage", -1),
        (100, "fixed", -1),
        (100, "markup", 5),
        ("abc", "fixed", 5),
    ])
    def test_invalid_adjustments(self, unit_price, adjustment_type, value):
        with pytest.raises(ValidationError):
            compute_final_price(unit_price, adjustment_type, value)


class TestPriceAdjustment:
    def test_from_mapping(self):
        adjustment = PriceAdjustment.from_mapping(
            {"unitPrice": 100, "adjustmentType": "percentage", "adjustmentValue": 10}
        )
        assert adjustment.final_price == Decimal("90.00")
        assert adjustment.discount_percent == Decimal("10.00")

    def test_legacy_discount_percent_shape(self):
        adjustment = PriceAdjustment.from_mapping({"unitPrice": 50, "discountPercent": 20})
        assert adjustment.adjustment_type == "percentage"
        assert adjustment.final_price == Decimal("40.00")

    def test_fixed_reports_equivalent_discount(self):
        adjustment = PriceAdjustment.from_mapping(
            {"unit_price": 100, "adjustment_type": "fixed", "adjustment_value": 80}
        )
        assert adjustment.discount_percent == Decimal("20.00")
        entry_pricing = adjustment.to_entry_pricing()
        assert entry_pricing.total_for(3) == Decimal("240.00")

    def test_fixed_markup_has_no_discount(self):
        adjustment = PriceAdjustment.from_mapping(
            {"unitPrice": "0.01", "adjustmentType": "fixed", "adjustmentValue": 50}
        )
        assert adjustment.final_price == Decimal("50.00")
        assert adjustment.discount_percent is None
        assert adjustment.to_entry_pricing().discount_percent is None

    def test_missing_unit_price(self):
        with pytest.raises(ValidationError):
            PriceAdjustment.from_mapping({"adjustmentType": "fixed", "adjustmentValue": 5})

    def test_not_a_mapping(self):
        with pytest.raises(ValidationError):
            PriceAdjustment.from_mapping(90)


class TestEntryPricing:
    def test_empty_mapping_means_unpriced(self):
        assert EntryPricing.from_mapping(None) is None
        assert EntryPricing.from_mapping({}) is None

    def test_final_price_wins_over_unit_price(self):
        pricing = EntryPricing.from_mapping({"unitPrice": 10, "finalPrice": 8})
        assert pricing.effective_price == Decimal("8.00")
        assert pricing.total_for(5) == Decimal("40.00")

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationError):
            EntryPricing.from_mapping({"unitPrice": -1})
