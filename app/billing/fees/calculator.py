"""
Five-way fee split of a paid order amount.

The calculator is a pure function: all configuration arrives as a
FeeConfig value resolved once per request, so it never reads settings or
the database.

Split:
    platform = total × platform_fee_percent / 100     (rounded to cent)
    stripe   = total × processor_fee_percent / 100    (rounded to cent)
    doctor   = clinician_flat_fee
    pharmacy = Σ wholesale_cost_per_unit × quantity   (selected items only)
    brand    = max(0, total − platform − stripe − doctor − pharmacy)

The brand share is computed from the rounded components, so the five
parts add up to the total exactly unless the brand share hit the zero
floor.

Usage:
    split = compute_split(
        Decimal("100.00"),
        [LineItem(product_id=p.id, quantity=1, wholesale_cost_per_unit=Decimal("20.00"))],
        FeeConfig(Decimal("10"), Decimal("3"), Decimal("15.00")),
    )
    split.brand_amount  # Decimal("52.00")
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from billing.money import ZERO, quantize, to_decimal
from core.exceptions import ComputationError

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class FeeConfig:
    """Fee parameters for one checkout."""

    platform_fee_percent: Decimal
    processor_fee_percent: Decimal
    clinician_flat_fee: Decimal


@dataclass(frozen=True)
class LineItem:
    """A selected product with its per-unit pharmacy cost."""

    product_id: Any
    quantity: int
    wholesale_cost_per_unit: Decimal | None


@dataclass(frozen=True)
class FeeSplit:
    """Result of compute_split. All amounts are cent-quantized Decimals."""

    platform_fee_amount: Decimal
    stripe_amount: Decimal
    doctor_amount: Decimal
    pharmacy_wholesale_amount: Decimal
    brand_amount: Decimal

    @classmethod
    def zero(cls) -> FeeSplit:
        """Split used when the computation degrades."""
        return cls(ZERO, ZERO, ZERO, ZERO, ZERO)

    @property
    def total(self) -> Decimal:
        return (
            self.platform_fee_amount
            + self.stripe_amount
            + self.doctor_amount
            + self.pharmacy_wholesale_amount
            + self.brand_amount
        )

    def as_metadata(self) -> dict[str, str]:
        """String form for gateway metadata and logs."""
        return {
            "platform_fee_amount": str(self.platform_fee_amount),
            "stripe_amount": str(self.stripe_amount),
            "doctor_amount": str(self.doctor_amount),
            "pharmacy_wholesale_amount": str(self.pharmacy_wholesale_amount),
            "brand_amount": str(self.brand_amount),
        }


def _non_negative(name: str, value) -> Decimal:
    try:
        amount = to_decimal(value)
    except ValueError as e:
        raise ComputationError(
            f"{name} is not a valid amount",
            details={name: repr(value)},
        ) from e
    if amount < 0:
        raise ComputationError(
            f"{name} must not be negative",
            details={name: str(amount)},
        )
    return amount


def pharmacy_wholesale_total(line_items: Iterable[LineItem]) -> Decimal:
    """
    Sum wholesale cost over the items actually ordered.

    Items with no quantity or no configured cost contribute nothing.
    """
    total = ZERO
    for item in line_items:
        if not item.quantity or item.quantity <= 0:
            continue
        if item.wholesale_cost_per_unit is None:
            continue
        unit_cost = _non_negative("wholesale_cost_per_unit", item.wholesale_cost_per_unit)
        total += unit_cost * item.quantity
    return quantize(total)


def compute_split(
    total_paid,
    line_items: Iterable[LineItem],
    fee_config: FeeConfig,
) -> FeeSplit:
    """
    Compute the fee split of total_paid.

    Args:
        total_paid: Amount charged to the patient (major units)
        line_items: Selected products with quantities and wholesale cost
        fee_config: Platform/processor percentages and clinician flat fee

    Returns:
        FeeSplit whose components sum to total_paid unless the brand share
        was floored at zero

    Raises:
        ComputationError: On missing config or negative/non-numeric input
    """
    if fee_config is None:
        raise ComputationError("Fee configuration is missing")

    total = quantize(_non_negative("total_paid", total_paid))
    platform_percent = _non_negative(
        "platform_fee_percent", fee_config.platform_fee_percent
    )
    processor_percent = _non_negative(
        "processor_fee_percent", fee_config.processor_fee_percent
    )
    doctor_amount = quantize(
        _non_negative("clinician_flat_fee", fee_config.clinician_flat_fee)
    )

    platform_fee_amount = quantize(total * platform_percent / HUNDRED)
    stripe_amount = quantize(total * processor_percent / HUNDRED)
    pharmacy_amount = pharmacy_wholesale_total(line_items)

    residual = total - platform_fee_amount - stripe_amount - doctor_amount - pharmacy_amount

    return FeeSplit(
        platform_fee_amount=platform_fee_amount,
        stripe_amount=stripe_amount,
        doctor_amount=doctor_amount,
        pharmacy_wholesale_amount=pharmacy_amount,
        brand_amount=max(ZERO, residual),
    )
