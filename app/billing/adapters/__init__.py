"""
Payment gateway adapters.

All Stripe API calls go through StripeAdapter to keep error handling,
timeouts, idempotency and logging consistent.

Usage:
    from billing.adapters import StripeAdapter, CreateRefundParams

    result = StripeAdapter.create_refund(
        CreateRefundParams(
            payment_intent_id="pi_xxx",
            idempotency_key="refund:123:1:abcd1234",
            reverse_transfer=True,
        )
    )
"""

from billing.adapters.stripe_adapter import (
    CreatePaymentIntentParams,
    CreateRefundParams,
    CreateTransferParams,
    IdempotencyKeyGenerator,
    PaymentIntentResult,
    RefundResult,
    StripeAdapter,
    TransferResult,
)

__all__ = [
    "CreatePaymentIntentParams",
    "CreateRefundParams",
    "CreateTransferParams",
    "IdempotencyKeyGenerator",
    "PaymentIntentResult",
    "RefundResult",
    "StripeAdapter",
    "TransferResult",
]
