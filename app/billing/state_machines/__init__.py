"""
State machine enums for billing models.

This module defines the state and choice enums used by billing models
with django-fsm.
"""

from billing.state_machines.states import (
    ClinicBalanceStatus,
    ClinicBalanceType,
    ComputationKind,
    OrderStatus,
    PaymentStatus,
    RefundRequestStatus,
    VisitType,
)

__all__ = [
    "ClinicBalanceStatus",
    "ClinicBalanceType",
    "ComputationKind",
    "OrderStatus",
    "PaymentStatus",
    "RefundRequestStatus",
    "VisitType",
]
