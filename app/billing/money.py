"""
Money conversion at the payment gateway boundary.

Internal storage uses Decimal major units (dollars). Stripe takes and
returns integer minor units (cents). Conversion happens here and only
here, rounding half-up to the cent.

Usage:
    from billing.money import to_cents, from_cents, quantize

    to_cents(Decimal("52.005"))  # 5201
    from_cents(5200)             # Decimal("52.00")
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value) -> Decimal:
    """
    Coerce a stored or user-supplied amount to Decimal.

    Floats are converted through their string form so 0.1 stays 0.1.

    Raises:
        ValueError: If the value is not numeric
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise ValueError(f"Not a monetary amount: {value!r}")
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValueError(f"Not a monetary amount: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    return result


def quantize(amount: Decimal) -> Decimal:
    """Round to the cent, half-up."""
    return to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(amount) -> int:
    """Convert a major-unit amount to integer cents for the gateway."""
    return int((quantize(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    """Convert integer cents from the gateway to a major-unit Decimal."""
    return (Decimal(int(cents)) / 100).quantize(CENT)
