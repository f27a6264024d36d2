"""
Tests for the five-way fee split.

compute_split is pure, so no database access is needed.
"""

from decimal import Decimal

import pytest

from billing.fees import FeeConfig, FeeSplit, LineItem, compute_split
from billing.fees.calculator import pharmacy_wholesale_total
from core.exceptions import ComputationError

REFERENCE_CONFIG = FeeConfig(
    platform_fee_percent=Decimal("10"),
    processor_fee_percent=Decimal("3"),
    clinician_flat_fee=Decimal("15.00"),
)


def line(quantity=1, cost="20.00", product_id="p1"):
    return LineItem(
        product_id=product_id,
        quantity=quantity,
        wholesale_cost_per_unit=Decimal(cost) if cost is not None else None,
    )


class TestComputeSplit:
    def test_reference_checkout(self):
        split = compute_split(Decimal("100.00"), [line()], REFERENCE_CONFIG)

        assert split == FeeSplit(
            platform_fee_amount=Decimal("10.00"),
            stripe_amount=Decimal("3.00"),
            doctor_amount=Decimal("15.00"),
            pharmacy_wholesale_amount=Decimal("20.00"),
            brand_amount=Decimal("52.00"),
        )

    @pytest.mark.parametrize(
        "total", ["0.01", "1.00", "33.33", "99.99", "100.00", "12345.67"]
    )
    def test_components_sum_to_total_when_brand_positive(self, total):
        config = FeeConfig(Decimal("7.5"), Decimal("2.9"), Decimal("0.00"))

        split = compute_split(Decimal(total), [], config)

        assert split.brand_amount >= 0
        assert split.total == Decimal(total)

    def test_rounds_percentages_to_cent(self):
        config = FeeConfig(Decimal("10"), Decimal("2.9"), Decimal("0"))

        split = compute_split(Decimal("33.33"), [], config)

        assert split.platform_fee_amount == Decimal("3.33")
        assert split.stripe_amount == Decimal("0.97")
        assert split.brand_amount == Decimal("29.03")

    def test_brand_share_floored_at_zero(self):
        split = compute_split(Decimal("30.00"), [line(cost="20.00")], REFERENCE_CONFIG)

        assert split.brand_amount == Decimal("0.00")
        assert split.total > Decimal("30.00")

    def test_pharmacy_cost_multiplies_quantity(self):
        split = compute_split(
            Decimal("300.00"),
            [line(quantity=2, cost="20.00"), line(quantity=1, cost="5.50", product_id="p2")],
            REFERENCE_CONFIG,
        )

        assert split.pharmacy_wholesale_amount == Decimal("45.50")

    def test_missing_config_raises(self):
        with pytest.raises(ComputationError):
            compute_split(Decimal("100.00"), [line()], None)

    def test_negative_total_raises(self):
        with pytest.raises(ComputationError):
            compute_split(Decimal("-1.00"), [line()], REFERENCE_CONFIG)

    def test_negative_percent_raises(self):
        config = FeeConfig(Decimal("-1"), Decimal("3"), Decimal("15"))

        with pytest.raises(ComputationError):
            compute_split(Decimal("100.00"), [], config)

    def test_zero_split(self):
        assert FeeSplit.zero().total == Decimal("0.00")

    def test_metadata_is_strings(self):
        split = compute_split(Decimal("100.00"), [line()], REFERENCE_CONFIG)

        assert split.as_metadata()["brand_amount"] == "52.00"


class TestPharmacyWholesaleTotal:
    def test_skips_unset_cost_and_zero_quantity(self):
        total = pharmacy_wholesale_total(
            [line(cost=None), line(quantity=0, cost="9.00"), line(quantity=3, cost="1.10")]
        )

        assert total == Decimal("3.30")

    def test_negative_cost_raises(self):
        with pytest.raises(ComputationError):
            pharmacy_wholesale_total([line(cost="-1.00")])
