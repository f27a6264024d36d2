"""
Telehealth visit fee resolution.

The visit type a patient needs depends on their state, configured on the
treatment as visit_type_by_state. The fee for that visit type comes from
the clinic's visit_type_fees, falling back to its medical company's.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from billing.models import Clinic, Treatment
from billing.money import ZERO, quantize, to_decimal
from billing.state_machines import VisitType
from core.exceptions import ComputationError


@dataclass(frozen=True)
class VisitFee:
    visit_type: str | None
    amount: Decimal


NO_VISIT_FEE = VisitFee(visit_type=None, amount=ZERO)


def resolve_visit_fee(
    treatment: Treatment | None,
    clinic: Clinic | None,
    patient_state: str | None,
) -> VisitFee:
    """
    Resolve the visit type and fee for a checkout.

    Missing configuration yields a zero fee: no treatment, no state, no
    visit type for the state, or no fee for the visit type.

    Raises:
        ComputationError: If configuration exists but is malformed
    """
    if treatment is None or not patient_state:
        return NO_VISIT_FEE

    by_state = treatment.visit_type_by_state or {}
    if not isinstance(by_state, dict):
        raise ComputationError(
            "visit_type_by_state must be a mapping",
            details={"treatment_id": str(treatment.id)},
        )

    visit_type = by_state.get(patient_state.strip().upper())
    if not visit_type:
        return NO_VISIT_FEE
    if visit_type not in VisitType.values:
        raise ComputationError(
            f"Unknown visit type {visit_type!r}",
            details={"treatment_id": str(treatment.id), "state": patient_state},
        )

    raw_fee = None
    if clinic is not None:
        raw_fee = (clinic.visit_type_fees or {}).get(visit_type)
        if raw_fee is None and clinic.medical_company is not None:
            raw_fee = (clinic.medical_company.visit_type_fees or {}).get(visit_type)

    if raw_fee is None:
        return VisitFee(visit_type=visit_type, amount=ZERO)

    try:
        amount = quantize(to_decimal(raw_fee))
    except ValueError as e:
        raise ComputationError(
            f"Visit fee for {visit_type} is not a valid amount",
            details={"visit_type": visit_type, "fee": repr(raw_fee)},
        ) from e
    if amount < 0:
        raise ComputationError(
            f"Visit fee for {visit_type} is negative",
            details={"visit_type": visit_type, "fee": str(amount)},
        )
    return VisitFee(visit_type=visit_type, amount=amount)
