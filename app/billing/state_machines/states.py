"""
State enums for billing models.

These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Order States:
    pending → paid → shipped → delivered
    pending → failed (intent creation failed or payment declined)
    pending → cancelled
    paid/shipped/delivered → refunded (approved refund request only)

Payment States:
    pending → captured → refunded
    pending → failed

RefundRequest States:
    pending → approved
    pending → denied
"""

from django.db import models


class OrderStatus(models.TextChoices):
    """
    States for the Order lifecycle.

    Terminal states: FAILED, CANCELLED, REFUNDED

    Captured states (money was taken): PAID, SHIPPED, DELIVERED.
    REFUNDED is only reachable from a captured state.
    """

    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"
    SHIPPED = "shipped", "Shipped"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"
    REFUNDED = "refunded", "Refunded"

    @classmethod
    def captured_states(cls) -> list[str]:
        return [cls.PAID, cls.SHIPPED, cls.DELIVERED]


class PaymentStatus(models.TextChoices):
    """
    States for the Payment record bound to one gateway PaymentIntent.

    State Flow:
        PENDING → CAPTURED (gateway webhook) → REFUNDED (refund approval)
        PENDING → FAILED
    """

    PENDING = "pending", "Pending"
    CAPTURED = "captured", "Captured"
    REFUNDED = "refunded", "Refunded"
    FAILED = "failed", "Failed"


class RefundRequestStatus(models.TextChoices):
    """
    States for a brand-filed refund request.

    Terminal states: APPROVED, DENIED. A resolved request never changes
    again; at most one PENDING request exists per order.
    """

    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    DENIED = "denied", "Denied"


class ClinicBalanceType(models.TextChoices):
    """Kind of clinic ledger line. Refund approval writes REFUND_DEBT."""

    REFUND_DEBT = "refund_debt", "Refund Debt"
    PAYMENT = "payment", "Payment"
    ADJUSTMENT = "adjustment", "Adjustment"


class ClinicBalanceStatus(models.TextChoices):
    """
    Settlement status of a clinic ledger line.

    PENDING rows are collections items handled out of band.
    """

    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    CANCELLED = "cancelled", "Cancelled"


class ComputationKind(models.TextChoices):
    """Checkout computations that degrade to zero instead of failing."""

    FEE_SPLIT = "fee_split", "Fee Split"
    VISIT_FEE = "visit_fee", "Visit Fee"


class VisitType(models.TextChoices):
    """Telehealth visit modality, configured per patient state."""

    SYNCHRONOUS = "synchronous", "Synchronous"
    ASYNCHRONOUS = "asynchronous", "Asynchronous"
