"""
Clinic balance service: append-only refund coverage ledger.

Refund approval records here what happened to the coverage owed by a
clinic (collected by transfer, or still pending). Rows are never updated;
corrections are new rows.

Usage:
    from billing.services import ClinicBalanceService

    ClinicBalanceService.record_coverage_paid(
        refund_request=refund_request,
        amount=Decimal("48.00"),
        stripe_transfer_id="tr_xxx",
        stripe_refund_id="re_xxx",
    )
    ClinicBalanceService.outstanding_debt(clinic)  # Decimal("0.00")
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from django.db.models import Sum
from django.utils import timezone

from billing.models import ClinicBalance
from billing.money import ZERO, quantize
from billing.state_machines import ClinicBalanceStatus, ClinicBalanceType
from core.services import BaseService

if TYPE_CHECKING:
    from billing.models import Clinic, RefundRequest


class ClinicBalanceService(BaseService):
    """
    Service for clinic coverage ledger lines.

    Sign convention:
        +amount, PAID     coverage collected from the clinic's account
        -amount, PENDING  coverage owed, collected out of band
    """

    @classmethod
    def record_coverage_paid(
        cls,
        refund_request: RefundRequest,
        amount: Decimal,
        stripe_transfer_id: str,
        stripe_refund_id: str | None,
    ) -> ClinicBalance:
        """Record coverage collected by an instant transfer."""
        amount = quantize(amount)
        balance = ClinicBalance.objects.create(
            clinic=refund_request.clinic,
            order=refund_request.order,
            refund_request=refund_request,
            amount=amount,
            type=ClinicBalanceType.REFUND_DEBT,
            status=ClinicBalanceStatus.PAID,
            stripe_transfer_id=stripe_transfer_id,
            stripe_refund_id=stripe_refund_id,
            description=(
                f"Refund coverage for order {refund_request.order.order_number} "
                "collected from clinic account"
            ),
            paid_at=timezone.now(),
        )
        cls.get_logger().info(
            "Recorded paid refund coverage",
            extra={
                "clinic_balance_id": str(balance.id),
                "clinic_id": str(balance.clinic_id),
                "amount": str(amount),
                "stripe_transfer_id": stripe_transfer_id,
            },
        )
        return balance

    @classmethod
    def record_coverage_pending(
        cls,
        refund_request: RefundRequest,
        amount: Decimal,
        stripe_refund_id: str | None,
        notes: str = "",
    ) -> ClinicBalance:
        """
        Record coverage the clinic still owes.

        Args:
            amount: Positive coverage amount; stored negated
            notes: Why collection did not happen (e.g. the transfer error)
        """
        amount = quantize(amount)
        balance = ClinicBalance.objects.create(
            clinic=refund_request.clinic,
            order=refund_request.order,
            refund_request=refund_request,
            amount=-amount,
            type=ClinicBalanceType.REFUND_DEBT,
            status=ClinicBalanceStatus.PENDING,
            stripe_refund_id=stripe_refund_id,
            description=(
                f"Refund coverage for order {refund_request.order.order_number} "
                "owed by clinic"
            ),
            notes=notes,
        )
        cls.get_logger().warning(
            "Recorded pending refund coverage",
            extra={
                "clinic_balance_id": str(balance.id),
                "clinic_id": str(balance.clinic_id),
                "amount": str(-amount),
                "notes": notes,
            },
        )
        return balance

    @classmethod
    def outstanding_debt(cls, clinic: Clinic) -> Decimal:
        """Total coverage the clinic still owes, as a positive amount."""
        total = ClinicBalance.objects.filter(
            clinic=clinic,
            status=ClinicBalanceStatus.PENDING,
            amount__lt=0,
        ).aggregate(total=Sum("amount"))["total"]
        return quantize(ZERO - (total or ZERO))
