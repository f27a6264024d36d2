"""
Order models.

An Order is one checkout attempt. It is created pending, carries the
fee split computed at checkout, and is bound to at most one Payment.

Usage:
    from billing.models import Order
    from billing.state_machines import OrderStatus

    order = Order.objects.create(
        order_number=generate_order_number(),
        user=patient,
        clinic=clinic,
        subtotal_amount=Decimal("100.00"),
        total_amount=Decimal("100.00"),
    )

    # After gateway webhook confirms payment
    order.mark_paid()
    order.save()
"""

from __future__ import annotations

import secrets
import string
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from billing.state_machines import OrderStatus, VisitType
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel

ORDER_NUMBER_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def generate_order_number(now=None) -> str:
    """
    Build a display order number: ORD-YYYYMMDD-HHMMSS-XXXXXX.

    The suffix is six random uppercase alphanumerics; uniqueness is
    enforced by the database.
    """
    now = now or timezone.now()
    suffix = "".join(secrets.choice(ORDER_NUMBER_SUFFIX_ALPHABET) for _ in range(6))
    return f"ORD-{now:%Y%m%d}-{now:%H%M%S}-{suffix}"


def _money_field(**kwargs):
    kwargs.setdefault("default", Decimal("0.00"))
    return models.DecimalField(max_digits=12, decimal_places=2, **kwargs)


class Order(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    One checkout attempt.

    State Flow:
        PENDING -> PAID -> SHIPPED -> DELIVERED
        PENDING -> FAILED
        PENDING -> CANCELLED
        PAID/SHIPPED/DELIVERED -> REFUNDED

    Fields:
        order_number: Unique display number
        user: Patient placing the order
        clinic: Tenant storefront (optional)
        affiliate: Referring affiliate user (optional)
        treatment: Bundle the patient checked out with
        subtotal/visit_fee/total: Order amounts, total = subtotal + visit fee
        platform_fee_amount/stripe_amount/doctor_amount/
        pharmacy_wholesale_amount/brand_amount: Fee split of total_amount
        platform_fee_percent: Percentage the platform fee was computed with
        visit_type: Telehealth visit type resolved for the patient's state

    Note:
        The fee split sums to total_amount to the cent unless the brand
        share was floored at zero. This is enforced by the calculator,
        not by a database constraint.
    """

    # ==========================================================================
    # Identity & Relationships
    # ==========================================================================

    order_number = models.CharField(
        max_length=32,
        unique=True,
        help_text="Display order number (ORD-YYYYMMDD-HHMMSS-XXXXXX)",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
        help_text="Patient who placed the order",
    )
    clinic = models.ForeignKey(
        "billing.Clinic",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="orders",
    )
    affiliate = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="referred_orders",
        help_text="Affiliate credited with the referral",
    )
    treatment = models.ForeignKey(
        "billing.Treatment",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=OrderStatus.PENDING,
        choices=OrderStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current order status (managed by FSM)",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    currency = models.CharField(max_length=3, default="USD")
    subtotal_amount = _money_field()
    visit_fee_amount = _money_field()
    total_amount = _money_field(help_text="subtotal_amount + visit_fee_amount")

    # ==========================================================================
    # Fee Split
    # ==========================================================================

    platform_fee_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    platform_fee_amount = _money_field()
    stripe_amount = _money_field(help_text="Processor fee")
    doctor_amount = _money_field(help_text="Flat clinician fee")
    pharmacy_wholesale_amount = _money_field()
    brand_amount = _money_field(help_text="Residual credited to the brand")

    # ==========================================================================
    # Visit
    # ==========================================================================

    visit_type = models.CharField(
        max_length=20,
        choices=VisitType.choices,
        null=True,
        blank=True,
    )

    # Written later by the telehealth case sync
    external_case_id = models.CharField(max_length=255, null=True, blank=True)

    # ==========================================================================
    # Timestamps
    # ==========================================================================

    paid_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        indexes = [
            models.Index(fields=["clinic", "status"], name="order_clinic_status_idx"),
            models.Index(fields=["user", "created_at"], name="order_user_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(
                    subtotal_amount__gte=0,
                    visit_fee_amount__gte=0,
                    total_amount__gte=0,
                    brand_amount__gte=0,
                ),
                name="order_amounts_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"Order({self.order_number}, {self.status}, {self.total_amount})"

    @property
    def split_total(self) -> Decimal:
        """Sum of the five fee split components."""
        return (
            self.platform_fee_amount
            + self.stripe_amount
            + self.doctor_amount
            + self.pharmacy_wholesale_amount
            + self.brand_amount
        )

    @property
    def is_captured(self) -> bool:
        return self.status in OrderStatus.captured_states()

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=OrderStatus.PENDING, target=OrderStatus.PAID)
    def mark_paid(self):
        """Gateway confirmed the payment (webhook)."""
        self.paid_at = timezone.now()

    @transition(field=status, source=OrderStatus.PENDING, target=OrderStatus.FAILED)
    def mark_failed(self):
        """Payment intent creation failed or the payment was declined."""

    @transition(field=status, source=OrderStatus.PAID, target=OrderStatus.SHIPPED)
    def ship(self):
        pass

    @transition(
        field=status, source=OrderStatus.SHIPPED, target=OrderStatus.DELIVERED
    )
    def deliver(self):
        pass

    @transition(
        field=status, source=OrderStatus.PENDING, target=OrderStatus.CANCELLED
    )
    def cancel(self):
        pass

    @transition(
        field=status,
        source=OrderStatus.captured_states(),
        target=OrderStatus.REFUNDED,
    )
    def mark_refunded(self):
        """
        Mark the order refunded.

        Only called by an approved refund request after the gateway
        refund succeeded.
        """
        self.refunded_at = timezone.now()


class OrderItem(UUIDPrimaryKeyMixin, BaseModel):
    """
    One selected product line of an order.

    Prices and wholesale cost are snapshotted at checkout so later catalog
    edits do not change historical splits.
    """

    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name="items",
    )
    product = models.ForeignKey(
        "billing.Product",
        on_delete=models.PROTECT,
        related_name="order_items",
    )
    quantity = models.PositiveIntegerField()
    unit_price = _money_field()
    total_price = _money_field()
    wholesale_cost_per_unit = _money_field()

    class Meta:
        ordering = ["created_at"]
        verbose_name = "Order Item"
        verbose_name_plural = "Order Items"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0),
                name="order_item_quantity_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"OrderItem({self.product_id} x{self.quantity})"


class ShippingAddress(UUIDPrimaryKeyMixin, BaseModel):
    """Delivery address, created only when all required parts were supplied."""

    REQUIRED_FIELDS = ("address", "city", "state", "zip_code")

    order = models.OneToOneField(
        Order,
        on_delete=models.CASCADE,
        related_name="shipping_address",
    )
    address = models.CharField(max_length=255)
    apartment = models.CharField(max_length=100, blank=True, default="")
    city = models.CharField(max_length=100)
    state = models.CharField(max_length=2)
    zip_code = models.CharField(max_length=10)
    country = models.CharField(max_length=2, default="US")

    class Meta:
        verbose_name = "Shipping Address"
        verbose_name_plural = "Shipping Addresses"

    def __str__(self) -> str:
        return f"{self.address}, {self.city}, {self.state} {self.zip_code}"
