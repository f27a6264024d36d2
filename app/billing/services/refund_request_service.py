"""
Refund request service: brand-filed refunds resolved by platform admins.

This module provides the RefundRequestService class which handles the
two-step refund workflow:

1. A brand administrator files a request for one of their clinic's
   captured orders (always the full order total)
2. A platform administrator approves it (money moves) or denies it

Approval follows a two-phase pattern:
    1. Under the per-order lock, validate the request and payment
    2. Issue the Stripe refund OUTSIDE any transaction (re-using a refund
       already issued for this request, if one exists)
    3. Collect the coverage the brand was never credited from the
       clinic's connected account, or record it as pending debt
    4. In one transaction: Payment refunded, Order refunded, request
       approved

A gateway refund failure leaves every local row untouched. A coverage
transfer failure never undoes the refund.

Usage:
    from billing.services import RefundRequestService

    result = RefundRequestService.create_refund_request(
        order_id=order.id,
        reason="Patient changed their mind",
        requested_by=brand_user,
    )

    result = RefundRequestService.approve_refund_request(
        request_id=result.data.id,
        reviewer=admin_user,
        review_notes="Approved per policy",
    )
    if result.success:
        print(result.data.stripe_refund_id)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db import IntegrityError, transaction

from billing.adapters import (
    CreateRefundParams,
    CreateTransferParams,
    IdempotencyKeyGenerator,
    RefundResult,
    StripeAdapter,
)
from billing.exceptions import (
    StripeError,
    StripeInvalidResponseError,
    StripeNoAssociatedTransferError,
)
from billing.locks import check_version, order_lock
from billing.models import ClinicBalance, Order, Payment, RefundRequest
from billing.money import ZERO, quantize, to_cents
from billing.services.clinic_balance_service import ClinicBalanceService
from billing.state_machines import (
    OrderStatus,
    PaymentStatus,
    RefundRequestStatus,
)
from core.exceptions import (
    BaseApplicationError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from core.helpers import parse_uuid
from core.services import BaseService, ServiceResult

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from authentication.models import User


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class RefundApprovalResult:
    """
    Result of an approval.

    Attributes:
        refund_request: The approved request
        stripe_refund_id: Gateway refund (re_xxx)
        coverage_amount: Part of the refund the brand was never credited
        clinic_balance: Ledger line for the coverage, if one was written
        already_refunded: The payment was refunded before this call, so
            no gateway call was made
    """

    refund_request: RefundRequest
    stripe_refund_id: str | None
    coverage_amount: Decimal = ZERO
    clinic_balance: ClinicBalance | None = None
    already_refunded: bool = False


# =============================================================================
# Refund Request Service
# =============================================================================


class RefundRequestService(BaseService):
    """
    Service for the refund request workflow.

    State Flow:
        PENDING -> APPROVED (Stripe refund issued, order refunded)
        PENDING -> DENIED (nothing else changes)

    Concurrency:
        Creation and resolution of requests for one order are serialized
        by order_lock(). The partial unique constraint on pending requests
        backs up creation; check_version() guards the final approval write.

    Failure modes (ServiceResult.error_code):
        - VALIDATION_ERROR: malformed id or status filter
        - NOT_FOUND: order, payment or request missing (or another tenant's)
        - PERMISSION_DENIED: caller's role may not perform the operation
        - INVALID_STATE: request resolved, order refunded, payment not
          captured, duplicate pending request, lock contention, an
          unrelated refund already on the payment intent
        - GATEWAY_ERROR: Stripe refund failed (nothing changed locally)
    """

    # Stripe adapter - can be injected for testing
    _stripe_adapter: type | None = None

    @classmethod
    def get_stripe_adapter(cls) -> type:
        """Get the Stripe adapter class."""
        return cls._stripe_adapter or StripeAdapter

    @classmethod
    def set_stripe_adapter(cls, adapter: type | None) -> None:
        """Set the Stripe adapter class (for testing)."""
        cls._stripe_adapter = adapter

    # =========================================================================
    # Creation
    # =========================================================================

    @classmethod
    def create_refund_request(
        cls,
        order_id: Any,
        reason: str | None,
        requested_by: User,
    ) -> ServiceResult[RefundRequest]:
        """
        File a refund request for the full order total.

        Args:
            order_id: Order to refund
            reason: Free-text reason shown to the reviewer
            requested_by: Brand user (or platform admin) filing the request

        Returns:
            ServiceResult containing the pending RefundRequest
        """
        logger = cls.get_logger()
        logger.info(
            "Creating refund request",
            extra={"order_id": str(order_id), "requested_by": requested_by.id},
        )

        try:
            order_uuid = parse_uuid(order_id, "order_id")
            with order_lock(order_uuid):
                refund_request = cls._create_locked(order_uuid, reason, requested_by)
        except BaseApplicationError as e:
            logger.warning(
                "Refund request rejected",
                extra={
                    "order_id": str(order_id),
                    "error_code": e.error_code,
                    "error": e.message,
                },
            )
            return ServiceResult.from_exception(e)

        logger.info(
            "Refund request created",
            extra={
                "refund_request_id": str(refund_request.id),
                "order_id": str(order_uuid),
                "amount": str(refund_request.amount),
                "brand_coverage_amount": str(refund_request.brand_coverage_amount),
            },
        )
        return ServiceResult.success(refund_request)

    @classmethod
    def _create_locked(
        cls,
        order_id: uuid.UUID,
        reason: str | None,
        requested_by: User,
    ) -> RefundRequest:
        with cls.atomic():
            order = (
                Order.objects.select_for_update()
                .select_related("clinic")
                .filter(id=order_id)
                .first()
            )
            if order is None or not cls._can_manage(requested_by, order):
                raise NotFoundError(
                    "Order not found",
                    details={"order_id": str(order_id)},
                )

            payment = Payment.objects.filter(order=order).first()
            if payment is None:
                raise NotFoundError(
                    "No payment found for this order",
                    details={"order_id": str(order_id)},
                )

            if order.status == OrderStatus.REFUNDED:
                raise InvalidStateError(
                    "Order has already been refunded",
                    details={"order_id": str(order_id)},
                )
            if payment.status != PaymentStatus.CAPTURED:
                raise InvalidStateError(
                    "Only captured payments can be refunded",
                    details={"order_id": str(order_id), "payment_status": payment.status},
                )
            if RefundRequest.objects.filter(
                order=order, status=RefundRequestStatus.PENDING
            ).exists():
                raise InvalidStateError(
                    "A pending refund request already exists for this order",
                    details={"order_id": str(order_id)},
                )

            amount = order.total_amount
            try:
                with transaction.atomic():
                    return RefundRequest.objects.create(
                        order=order,
                        clinic=order.clinic,
                        requested_by=requested_by,
                        amount=amount,
                        brand_coverage_amount=quantize(amount - order.brand_amount),
                        reason=reason or "",
                    )
            except IntegrityError as e:
                raise InvalidStateError(
                    "A pending refund request already exists for this order",
                    details={"order_id": str(order_id)},
                ) from e

    # =========================================================================
    # Approval
    # =========================================================================

    @classmethod
    def approve_refund_request(
        cls,
        request_id: Any,
        reviewer: User,
        review_notes: str | None = None,
    ) -> ServiceResult[RefundApprovalResult]:
        """
        Approve a pending request and refund the order in full.

        Args:
            request_id: RefundRequest to approve
            reviewer: Platform administrator
            review_notes: Optional notes stored on the request

        Returns:
            ServiceResult containing RefundApprovalResult
        """
        logger = cls.get_logger()
        logger.info(
            "Approving refund request",
            extra={"refund_request_id": str(request_id), "reviewer_id": reviewer.id},
        )

        try:
            refund_request = cls._load_for_review(request_id, reviewer)
            with order_lock(refund_request.order_id):
                result = cls._approve_locked(refund_request.id, reviewer, review_notes)
        except BaseApplicationError as e:
            logger.warning(
                "Refund approval failed",
                extra={
                    "refund_request_id": str(request_id),
                    "error_code": e.error_code,
                    "error": e.message,
                },
            )
            return ServiceResult.from_exception(e)

        logger.info(
            "Refund request approved",
            extra={
                "refund_request_id": str(result.refund_request.id),
                "stripe_refund_id": result.stripe_refund_id,
                "coverage_amount": str(result.coverage_amount),
                "already_refunded": result.already_refunded,
            },
        )
        return ServiceResult.success(result)

    @classmethod
    def _approve_locked(
        cls,
        request_id: uuid.UUID,
        reviewer: User,
        review_notes: str | None,
    ) -> RefundApprovalResult:
        # Re-read under the lock; another reviewer may have resolved it
        refund_request = (
            RefundRequest.objects.select_related("order", "order__clinic", "clinic")
            .get(id=request_id)
        )
        _ensure_pending(refund_request)
        order = refund_request.order

        payment = Payment.objects.filter(order=order).first()
        if payment is None:
            raise NotFoundError(
                "No payment found for this order",
                details={"order_id": str(order.id)},
            )

        if payment.status == PaymentStatus.REFUNDED:
            return cls._approve_already_refunded(
                refund_request, payment, reviewer, review_notes
            )

        if payment.status != PaymentStatus.CAPTURED or not order.is_captured:
            raise InvalidStateError(
                "Order is not in a refundable state",
                details={
                    "order_id": str(order.id),
                    "order_status": order.status,
                    "payment_status": payment.status,
                },
            )

        refund = cls._issue_refund(refund_request, payment)

        coverage = quantize(refund_request.amount - order.brand_amount)
        clinic_balance = None
        if coverage > 0:
            clinic_balance = cls._settle_coverage(refund_request, payment, coverage, refund.id)

        cls._persist_approval(
            refund_request, payment, refund.id, reviewer, review_notes
        )

        return RefundApprovalResult(
            refund_request=RefundRequest.objects.get(id=refund_request.id),
            stripe_refund_id=refund.id,
            coverage_amount=max(coverage, ZERO),
            clinic_balance=clinic_balance,
        )

    @classmethod
    def _approve_already_refunded(
        cls,
        refund_request: RefundRequest,
        payment: Payment,
        reviewer: User,
        review_notes: str | None,
    ) -> RefundApprovalResult:
        """Resolve the request without touching the gateway."""
        cls.get_logger().info(
            "Payment already refunded, skipping gateway",
            extra={
                "refund_request_id": str(refund_request.id),
                "payment_id": str(payment.id),
                "stripe_refund_id": payment.stripe_refund_id,
            },
        )
        with cls.atomic():
            current = check_version(
                RefundRequest, refund_request.id, refund_request.version
            )
            order = Order.objects.select_for_update().get(id=refund_request.order_id)
            if order.status in OrderStatus.captured_states():
                order.mark_refunded()
                order.save()
            current.approve(
                reviewer=reviewer,
                review_notes=review_notes,
                stripe_refund_id=payment.stripe_refund_id,
            )
            current.save()

        return RefundApprovalResult(
            refund_request=RefundRequest.objects.get(id=refund_request.id),
            stripe_refund_id=payment.stripe_refund_id,
            already_refunded=True,
        )

    @classmethod
    def _issue_refund(
        cls,
        refund_request: RefundRequest,
        payment: Payment,
    ) -> RefundResult:
        """
        Refund the payment in full through Stripe.

        A refund already issued for this request (e.g. by an earlier attempt
        whose local write failed) is reused. Otherwise the refund pulls the
        brand transfer back; a charge without a destination transfer is
        refunded plainly.

        Raises:
            StripeError: Refund failed; nothing local has changed
            InvalidStateError: The intent carries an unrelated refund
        """
        adapter = cls.get_stripe_adapter()
        logger = cls.get_logger()
        amount_cents = to_cents(refund_request.amount)

        unrelated = []
        for existing in adapter.list_refunds(payment.stripe_payment_intent_id):
            if not existing.is_effective:
                continue
            issued_for = existing.metadata.get("refund_request_id")
            if issued_for == str(refund_request.id) or (
                issued_for is None and existing.amount_cents == amount_cents
            ):
                logger.warning(
                    "Reusing refund already issued for payment intent",
                    extra={
                        "refund_request_id": str(refund_request.id),
                        "payment_intent_id": payment.stripe_payment_intent_id,
                        "stripe_refund_id": existing.id,
                    },
                )
                return existing
            unrelated.append(existing)

        if unrelated:
            # A full refund on top would exceed the charge; needs manual review
            logger.error(
                "Payment intent already carries an unrelated refund",
                extra={
                    "refund_request_id": str(refund_request.id),
                    "payment_intent_id": payment.stripe_payment_intent_id,
                    "stripe_refund_ids": [r.id for r in unrelated],
                },
            )
            raise InvalidStateError(
                "Payment already has a refund that does not match this request; "
                "resolve it manually",
                details={
                    "payment_intent_id": payment.stripe_payment_intent_id,
                    "stripe_refund_ids": [r.id for r in unrelated],
                    "refunded_cents": sum(r.amount_cents for r in unrelated),
                    "requested_cents": amount_cents,
                },
            )

        metadata = {
            "order_id": str(refund_request.order_id),
            "order_number": refund_request.order.order_number,
            "refund_request_id": str(refund_request.id),
        }

        try:
            return adapter.create_refund(
                CreateRefundParams(
                    payment_intent_id=payment.stripe_payment_intent_id,
                    idempotency_key=IdempotencyKeyGenerator.generate(
                        "refund", refund_request.id
                    ),
                    amount_cents=amount_cents,
                    reverse_transfer=True,
                    metadata=metadata,
                )
            )
        except StripeNoAssociatedTransferError:
            logger.info(
                "No associated transfer, issuing plain refund",
                extra={
                    "refund_request_id": str(refund_request.id),
                    "payment_intent_id": payment.stripe_payment_intent_id,
                },
            )

        return adapter.create_refund(
            CreateRefundParams(
                payment_intent_id=payment.stripe_payment_intent_id,
                idempotency_key=IdempotencyKeyGenerator.generate(
                    "refund_plain", refund_request.id
                ),
                amount_cents=amount_cents,
                reverse_transfer=False,
                metadata=metadata,
            )
        )

    @classmethod
    def _settle_coverage(
        cls,
        refund_request: RefundRequest,
        payment: Payment,
        coverage: Decimal,
        stripe_refund_id: str,
    ) -> ClinicBalance | None:
        """
        Collect coverage from the clinic, or record it as owed.

        Transfer failures are recorded, never raised, and never retried.
        """
        logger = cls.get_logger()
        order = refund_request.order
        clinic = order.clinic

        if clinic is None:
            logger.warning(
                "Refund coverage owed but order has no clinic",
                extra={"order_id": str(order.id), "coverage": str(coverage)},
            )
            return None

        existing = ClinicBalance.objects.filter(refund_request=refund_request).first()
        if existing is not None:
            return existing

        if not clinic.has_connected_account:
            return ClinicBalanceService.record_coverage_pending(
                refund_request,
                coverage,
                stripe_refund_id=stripe_refund_id,
                notes="Clinic has no connected account",
            )

        idempotency_key = IdempotencyKeyGenerator.generate(
            "refund_coverage", refund_request.id
        )
        try:
            transfer = cls.get_stripe_adapter().create_transfer(
                CreateTransferParams(
                    amount_cents=to_cents(coverage),
                    currency=payment.currency.lower(),
                    destination_account=settings.STRIPE_PLATFORM_ACCOUNT_ID,
                    source_account=clinic.stripe_account_id,
                    idempotency_key=idempotency_key,
                    metadata={
                        "type": "refund_coverage",
                        "order_id": str(order.id),
                        "order_number": order.order_number,
                        "refund_request_id": str(refund_request.id),
                        "refund_id": stripe_refund_id,
                    },
                )
            )
        except StripeInvalidResponseError as e:
            # The transfer may exist despite the malformed response
            logger.error(
                "Refund coverage transfer outcome unknown",
                extra={
                    "refund_request_id": str(refund_request.id),
                    "clinic_id": str(clinic.id),
                    "coverage": str(coverage),
                    "idempotency_key": idempotency_key,
                    "error": e.message,
                },
            )
            return ClinicBalanceService.record_coverage_pending(
                refund_request,
                coverage,
                stripe_refund_id=stripe_refund_id,
                notes=(
                    f"Transfer outcome unknown: {e.message}. The transfer may "
                    f"have been created; verify idempotency key {idempotency_key} "
                    "on Stripe before collecting."
                ),
            )
        except (StripeError, ValueError) as e:
            reason = e.message if isinstance(e, StripeError) else str(e)
            logger.warning(
                "Refund coverage transfer failed",
                extra={
                    "refund_request_id": str(refund_request.id),
                    "clinic_id": str(clinic.id),
                    "coverage": str(coverage),
                    "error": reason,
                },
            )
            return ClinicBalanceService.record_coverage_pending(
                refund_request,
                coverage,
                stripe_refund_id=stripe_refund_id,
                notes=f"Transfer failed: {reason}",
            )

        return ClinicBalanceService.record_coverage_paid(
            refund_request,
            coverage,
            stripe_transfer_id=transfer.id,
            stripe_refund_id=stripe_refund_id,
        )

    @classmethod
    def _persist_approval(
        cls,
        refund_request: RefundRequest,
        payment: Payment,
        stripe_refund_id: str,
        reviewer: User,
        review_notes: str | None,
    ) -> None:
        """Write the refund outcome to payment, order and request atomically."""
        try:
            with cls.atomic():
                current = check_version(
                    RefundRequest, refund_request.id, refund_request.version
                )
                locked_payment = Payment.objects.select_for_update().get(id=payment.id)
                locked_payment.mark_refunded(
                    amount=current.amount, stripe_refund_id=stripe_refund_id
                )
                locked_payment.save()

                order = Order.objects.select_for_update().get(id=current.order_id)
                order.mark_refunded()
                order.save()

                current.approve(
                    reviewer=reviewer,
                    review_notes=review_notes,
                    stripe_refund_id=stripe_refund_id,
                )
                current.save()
        except Exception:
            cls.get_logger().critical(
                "Stripe refund issued but local state was not updated",
                extra={
                    "refund_request_id": str(refund_request.id),
                    "payment_id": str(payment.id),
                    "stripe_refund_id": stripe_refund_id,
                },
                exc_info=True,
            )
            raise

    # =========================================================================
    # Denial
    # =========================================================================

    @classmethod
    def deny_refund_request(
        cls,
        request_id: Any,
        reviewer: User,
        review_notes: str | None = None,
    ) -> ServiceResult[RefundRequest]:
        """
        Deny a pending request. No funds move and the order is unchanged.
        """
        logger = cls.get_logger()

        try:
            refund_request = cls._load_for_review(request_id, reviewer)
            with order_lock(refund_request.order_id):
                with cls.atomic():
                    current = (
                        RefundRequest.objects.select_for_update()
                        .get(id=refund_request.id)
                    )
                    _ensure_pending(current)
                    current.deny(reviewer=reviewer, review_notes=review_notes)
                    current.save()
        except BaseApplicationError as e:
            logger.warning(
                "Refund denial failed",
                extra={
                    "refund_request_id": str(request_id),
                    "error_code": e.error_code,
                    "error": e.message,
                },
            )
            return ServiceResult.from_exception(e)

        logger.info(
            "Refund request denied",
            extra={"refund_request_id": str(current.id), "reviewer_id": reviewer.id},
        )
        return ServiceResult.success(RefundRequest.objects.get(id=current.id))

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def list_refund_requests(
        cls,
        user: User,
        clinic_id: Any = None,
        status: str | None = None,
    ) -> ServiceResult[QuerySet]:
        """
        List refund requests visible to the user, newest first.

        Platform admins see every clinic and may narrow by clinic_id
        ("all" means no narrowing). Brand users only see their own clinic.
        """
        try:
            queryset = RefundRequest.objects.select_related(
                "order", "clinic", "requested_by", "reviewed_by"
            ).order_by("-created_at")

            if user.is_platform_admin:
                if clinic_id and str(clinic_id) != "all":
                    queryset = queryset.filter(
                        clinic_id=parse_uuid(clinic_id, "clinic_id")
                    )
            elif user.is_brand and user.clinic_id:
                queryset = queryset.filter(clinic_id=user.clinic_id)
            else:
                raise PermissionDeniedError(
                    "Only brand and platform administrators can list refund requests"
                )

            if status:
                if status not in RefundRequestStatus.values:
                    raise ValidationError(
                        "Unknown refund request status",
                        details={
                            "status": status,
                            "allowed": list(RefundRequestStatus.values),
                        },
                    )
                queryset = queryset.filter(status=status)
        except BaseApplicationError as e:
            return ServiceResult.from_exception(e)

        return ServiceResult.success(queryset)

    @classmethod
    def get_refund_request_for_order(
        cls,
        order_id: Any,
        user: User,
    ) -> ServiceResult[RefundRequest | None]:
        """
        Latest refund request for an order, or None if none was filed.

        Visible to platform admins, the order's clinic administrators and
        the patient who placed it.
        """
        try:
            order_uuid = parse_uuid(order_id, "order_id")
            order = Order.objects.filter(id=order_uuid).first()
            if order is None or not (
                cls._can_manage(user, order) or order.user_id == user.id
            ):
                raise NotFoundError(
                    "Order not found",
                    details={"order_id": str(order_uuid)},
                )
        except BaseApplicationError as e:
            return ServiceResult.from_exception(e)

        refund_request = (
            RefundRequest.objects.select_related("requested_by", "reviewed_by")
            .filter(order=order)
            .order_by("-created_at")
            .first()
        )
        return ServiceResult.success(refund_request)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _can_manage(user: User, order: Order) -> bool:
        """Platform admins manage every order; brand users their clinic's."""
        if user.is_platform_admin:
            return True
        return bool(
            user.is_brand and user.clinic_id and user.clinic_id == order.clinic_id
        )

    @staticmethod
    def _load_for_review(request_id: Any, reviewer: User) -> RefundRequest:
        if not reviewer.is_platform_admin:
            raise PermissionDeniedError(
                "Only platform administrators can resolve refund requests"
            )
        request_uuid = parse_uuid(request_id, "request_id")
        refund_request = RefundRequest.objects.filter(id=request_uuid).first()
        if refund_request is None:
            raise NotFoundError(
                "Refund request not found",
                details={"refund_request_id": str(request_uuid)},
            )
        _ensure_pending(refund_request)
        return refund_request


def _ensure_pending(refund_request: RefundRequest) -> None:
    if refund_request.status != RefundRequestStatus.PENDING:
        raise InvalidStateError(
            f"Refund request is already {refund_request.status}",
            details={
                "refund_request_id": str(refund_request.id),
                "status": refund_request.status,
            },
        )
