"""
Payment model bound 1:1 to an Order and a Stripe PaymentIntent.

A Payment row exists only if the gateway accepted the PaymentIntent, so
"Payment exists" means money was authorized for the order.

Usage:
    payment = Payment.objects.create(
        order=order,
        stripe_payment_intent_id="pi_xxx",
        amount=order.total_amount,
        currency="USD",
    )

    # Refund approval
    payment.mark_refunded(amount=order.total_amount, stripe_refund_id="re_xxx")
    payment.save()
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from billing.state_machines import PaymentStatus
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel


class Payment(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Gateway payment for one order.

    State Flow:
        PENDING -> CAPTURED -> REFUNDED
        PENDING -> FAILED

    Fields:
        order: The order paid for (one payment per order)
        stripe_payment_intent_id: External correlation key (pi_xxx)
        status: Current FSM state
        amount / currency: Charged amount, upper-case ISO 4217 currency
        refunded_amount / refunded_at / stripe_refund_id: Set on refund
    """

    order = models.OneToOneField(
        "billing.Order",
        on_delete=models.PROTECT,
        related_name="payment",
    )

    # ==========================================================================
    # Stripe Integration
    # ==========================================================================

    stripe_payment_intent_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe PaymentIntent ID (pi_xxx)",
    )
    stripe_refund_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Stripe Refund ID (re_xxx)",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PaymentStatus.PENDING,
        choices=PaymentStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current payment status (managed by FSM)",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="USD")
    refunded_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
    )

    captured_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gte=0, refunded_amount__gte=0),
                name="payment_amounts_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"Payment({self.stripe_payment_intent_id}, {self.status}, {self.amount} {self.currency})"

    def save(self, *args, **kwargs):
        self.currency = (self.currency or "").upper()
        super().save(*args, **kwargs)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status, source=PaymentStatus.PENDING, target=PaymentStatus.CAPTURED
    )
    def capture(self):
        """Gateway confirmed capture (webhook)."""
        self.captured_at = timezone.now()

    @transition(
        field=status, source=PaymentStatus.PENDING, target=PaymentStatus.FAILED
    )
    def fail(self):
        pass

    @transition(
        field=status, source=PaymentStatus.CAPTURED, target=PaymentStatus.REFUNDED
    )
    def mark_refunded(self, amount: Decimal, stripe_refund_id: str | None = None):
        """
        Record a completed gateway refund.

        Args:
            amount: Amount refunded to the patient
            stripe_refund_id: Stripe Refund ID (re_xxx)
        """
        self.refunded_amount = amount
        self.refunded_at = timezone.now()
        self.stripe_refund_id = stripe_refund_id
