"""
ClinicBalance: append-only ledger of refund coverage owed by a clinic.

When a full refund exceeds what the brand was ever credited, the
platform absorbs the difference (clinician and pharmacy payouts cannot
be clawed back). Approval tries to collect that coverage from the
clinic's connected account and records the outcome here.

Sign convention:
    amount > 0, status=paid     coverage collected by instant transfer
    amount < 0, status=pending  coverage still owed, collected out of band

Rows are reconciliation records, never a live balance, and are never
updated after insert.
"""

from __future__ import annotations

from django.db import models

from billing.state_machines import ClinicBalanceStatus, ClinicBalanceType
from core.exceptions import InvalidStateError
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class ClinicBalance(UUIDPrimaryKeyMixin, BaseModel):
    """
    One ledger line of money fronted by the platform on a clinic's behalf.

    Fields:
        clinic / order / refund_request: What the line relates to
        amount: Signed amount (see module docstring)
        type: Ledger line kind (refund approval writes REFUND_DEBT)
        status: PENDING or PAID
        stripe_transfer_id: Coverage transfer (tr_xxx), when collected
        stripe_refund_id: Refund the coverage belongs to (re_xxx)
        description / notes: Human-readable context, failure reason
        paid_at: When coverage was collected
    """

    clinic = models.ForeignKey(
        "billing.Clinic",
        on_delete=models.PROTECT,
        related_name="balances",
    )
    order = models.ForeignKey(
        "billing.Order",
        on_delete=models.PROTECT,
        related_name="clinic_balances",
    )
    refund_request = models.ForeignKey(
        "billing.RefundRequest",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="clinic_balances",
    )

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    type = models.CharField(
        max_length=20,
        choices=ClinicBalanceType.choices,
        default=ClinicBalanceType.REFUND_DEBT,
    )
    status = models.CharField(
        max_length=20,
        choices=ClinicBalanceStatus.choices,
        default=ClinicBalanceStatus.PENDING,
        db_index=True,
    )

    stripe_transfer_id = models.CharField(max_length=255, null=True, blank=True)
    stripe_refund_id = models.CharField(max_length=255, null=True, blank=True)
    description = models.TextField(blank=True, default="")
    notes = models.TextField(blank=True, default="")
    paid_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Clinic Balance"
        verbose_name_plural = "Clinic Balances"
        indexes = [
            models.Index(fields=["clinic", "status"], name="clinic_balance_status_idx"),
        ]

    def __str__(self) -> str:
        return f"ClinicBalance({self.clinic_id}, {self.status}, {self.amount})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise InvalidStateError(
                "Clinic balance entries are append-only",
                details={"clinic_balance_id": str(self.pk)},
            )
        super().save(*args, **kwargs)
