"""
FeeConfig resolution.

Global defaults come from the active GlobalFees row. A clinic on a fee
tier with a platform percentage overrides the global platform fee; the
processor fee and clinician flat fee are always global.
"""

from __future__ import annotations

import logging

from billing.fees.calculator import FeeConfig
from billing.models import Clinic, GlobalFees
from core.exceptions import ComputationError

logger = logging.getLogger(__name__)


def resolve_fee_config(clinic: Clinic | None) -> FeeConfig:
    """
    Build the FeeConfig for a checkout at the given clinic.

    Raises:
        ComputationError: If no active GlobalFees row exists
    """
    global_fees = GlobalFees.current()
    if global_fees is None:
        raise ComputationError("Global fees are not configured")

    platform_fee_percent = global_fees.platform_fee_percent
    tier = clinic.fee_tier if clinic is not None else None
    if tier is not None and tier.platform_fee_percent is not None:
        platform_fee_percent = tier.platform_fee_percent
        logger.debug(
            "Using tier platform fee",
            extra={
                "clinic_id": str(clinic.id),
                "fee_tier": tier.name,
                "platform_fee_percent": str(platform_fee_percent),
            },
        )

    return FeeConfig(
        platform_fee_percent=platform_fee_percent,
        processor_fee_percent=global_fees.stripe_fee_percent,
        clinician_flat_fee=global_fees.doctor_flat_fee,
    )
