"""
RefundRequest model: a brand's request to reverse one order's payment.

Filed by a brand administrator, resolved by a platform administrator.
Immutable once approved or denied.

Usage:
    refund_request.approve(reviewer=admin, review_notes="ok", stripe_refund_id="re_1")
    refund_request.save()
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from billing.state_machines import RefundRequestStatus
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel


class RefundRequest(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Request to refund an order in full.

    State Flow:
        PENDING -> APPROVED (refund issued)
        PENDING -> DENIED (no funds move)

    Fields:
        order / clinic: Order to refund and its tenant
        requested_by: Brand user who filed the request
        amount: Always the order total (no partial refunds)
        brand_coverage_amount: amount - order.brand_amount, the part the
            brand was never credited and must cover
        reason: Why the brand wants to refund
        reviewed_by / review_notes / reviewed_at: Resolution details
        stripe_refund_id: Gateway refund issued on approval

    Note:
        At most one PENDING request per order, enforced by a partial
        unique constraint.
    """

    order = models.ForeignKey(
        "billing.Order",
        on_delete=models.PROTECT,
        related_name="refund_requests",
    )
    clinic = models.ForeignKey(
        "billing.Clinic",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="refund_requests",
    )
    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="refund_requests",
    )

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    brand_coverage_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Portion the platform absorbs if the brand cannot be charged",
    )
    reason = models.TextField(blank=True, default="")

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=RefundRequestStatus.PENDING,
        choices=RefundRequestStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current request status (managed by FSM)",
    )

    # ==========================================================================
    # Review
    # ==========================================================================

    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="reviewed_refund_requests",
    )
    review_notes = models.TextField(null=True, blank=True)
    reviewed_at = models.DateTimeField(null=True, blank=True)

    stripe_refund_id = models.CharField(max_length=255, null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Refund Request"
        verbose_name_plural = "Refund Requests"
        indexes = [
            models.Index(fields=["clinic", "status"], name="refund_req_clinic_status_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["order"],
                condition=models.Q(status=RefundRequestStatus.PENDING),
                name="refund_request_one_pending_per_order",
            ),
            models.CheckConstraint(
                condition=models.Q(amount__gte=0),
                name="refund_request_amount_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"RefundRequest({self.id}, {self.status}, {self.amount})"

    @property
    def is_resolved(self) -> bool:
        return self.status != RefundRequestStatus.PENDING

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=RefundRequestStatus.PENDING,
        target=RefundRequestStatus.APPROVED,
    )
    def approve(self, reviewer, review_notes=None, stripe_refund_id=None):
        """Resolve as approved after the gateway refund succeeded."""
        self.reviewed_by = reviewer
        self.review_notes = review_notes
        self.reviewed_at = timezone.now()
        self.stripe_refund_id = stripe_refund_id

    @transition(
        field=status,
        source=RefundRequestStatus.PENDING,
        target=RefundRequestStatus.DENIED,
    )
    def deny(self, reviewer, review_notes=None):
        """Resolve as denied. No funds move."""
        self.reviewed_by = reviewer
        self.review_notes = review_notes
        self.reviewed_at = timezone.now()
