"""
ComputationAudit: record of a checkout computation that degraded to zero.

Fee split and visit fee failures never block checkout. Each one leaves a
row here so degraded orders can be found and corrected.
"""

from __future__ import annotations

from django.db import models

from billing.state_machines import ComputationKind
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class ComputationAudit(UUIDPrimaryKeyMixin, BaseModel):
    """
    Fields:
        order: Order whose amounts were defaulted
        kind: Which computation failed
        error_message: Exception message
        context: Inputs useful for correcting the order later
        resolved: Set once an operator corrected the order
    """

    order = models.ForeignKey(
        "billing.Order",
        on_delete=models.CASCADE,
        related_name="computation_audits",
    )
    kind = models.CharField(max_length=20, choices=ComputationKind.choices)
    error_message = models.TextField()
    context = models.JSONField(default=dict, blank=True)
    resolved = models.BooleanField(default=False)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Computation Audit"
        verbose_name_plural = "Computation Audits"
        indexes = [
            models.Index(fields=["kind", "resolved"], name="computation_audit_kind_idx"),
        ]

    def __str__(self) -> str:
        return f"ComputationAudit({self.kind}, order={self.order_id})"
