"""
Billing services.

This module provides:
- OrderService: Checkout order creation with fee split and PaymentIntent
- RefundRequestService: Brand-filed refund requests and admin resolution
- ClinicBalanceService: Append-only refund coverage ledger

Usage:
    from billing.services import OrderService, CreateOrderParams

    result = OrderService.create_order_and_intent(
        CreateOrderParams(
            user=patient,
            treatment_id=treatment.id,
            selected_products={str(product.id): 1},
        )
    )

    from billing.services import RefundRequestService

    result = RefundRequestService.approve_refund_request(
        request_id=refund_request.id,
        reviewer=admin,
    )
"""

from billing.services.clinic_balance_service import ClinicBalanceService
from billing.services.order_service import (
    CreateOrderParams,
    OrderIntentResult,
    OrderService,
)
from billing.services.refund_request_service import (
    RefundApprovalResult,
    RefundRequestService,
)

__all__ = [
    "ClinicBalanceService",
    "CreateOrderParams",
    "OrderIntentResult",
    "OrderService",
    "RefundApprovalResult",
    "RefundRequestService",
]
