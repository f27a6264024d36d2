"""
Helper functions for common infrastructure operations.

These utilities are pure infrastructure - they have no knowledge of
orders, payments or refunds.

Usage:
    from core.helpers import parse_uuid

    order_id = parse_uuid(request.data.get("order_id"), "order_id")
"""

from __future__ import annotations

import uuid
from typing import Any

from core.exceptions import ValidationError


def parse_uuid(value: Any, name: str = "id") -> uuid.UUID:
    """
    Coerce a caller-supplied identifier to a UUID.

    Args:
        value: UUID instance or its string form
        name: Field name used in the error message

    Returns:
        The parsed UUID

    Raises:
        ValidationError: If the value is missing or not a UUID

    Example:
        parse_uuid("550e8400-e29b-41d4-a716-446655440000", "order_id")
    """
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError) as e:
        raise ValidationError(
            f"{name} is not a valid id",
            details={name: repr(value)},
        ) from e
