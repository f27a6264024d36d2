"""
Tests for RefundRequestService.

Covers the refund workflow end to end against a mocked Stripe adapter:
1. Filing requests (tenant scoping, state checks, one pending per order)
2. Approval (reverse transfer, plain-refund fallback, coverage ledger)
3. Retried approvals (no second gateway refund)
4. Denial
5. Listing and lookup
"""

from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from django.db.models import QuerySet

from authentication.tests.factories import UserFactory
from billing.exceptions import (
    StripeAPIUnavailableError,
    StripeInsufficientFundsError,
    StripeInvalidResponseError,
    StripeNoAssociatedTransferError,
    StripeTimeoutError,
)
from billing.locks import DistributedLock
from billing.models import ClinicBalance, Order, Payment, RefundRequest
from billing.services import RefundRequestService
from billing.state_machines import (
    ClinicBalanceStatus,
    OrderStatus,
    PaymentStatus,
    RefundRequestStatus,
)
from billing.tests.conftest import make_refund
from billing.tests.factories import (
    BrandUserFactory,
    ClinicFactory,
    OrderFactory,
    PaymentFactory,
    RefundRequestFactory,
)


def file_request(order, user, reason="Patient changed their mind"):
    return RefundRequestService.create_refund_request(
        order_id=order.id, reason=reason, requested_by=user
    )


def reload(order):
    return (
        Order.objects.get(id=order.id),
        Payment.objects.get(order_id=order.id),
    )


# =============================================================================
# Creation
# =============================================================================


@pytest.mark.django_db
class TestCreateRefundRequest:
    def test_brand_files_full_refund(self, captured_order, brand_user):
        result = file_request(captured_order, brand_user)

        assert result.success, result.error
        refund_request = result.data
        assert refund_request.status == RefundRequestStatus.PENDING
        assert refund_request.amount == Decimal("100.00")
        assert refund_request.brand_coverage_amount == Decimal("48.00")
        assert refund_request.clinic == captured_order.clinic
        assert refund_request.requested_by == brand_user

    def test_second_pending_request_rejected(self, captured_order, brand_user):
        file_request(captured_order, brand_user)

        result = file_request(captured_order, brand_user)

        assert result.error_code == "INVALID_STATE"
        assert RefundRequest.objects.filter(order=captured_order).count() == 1

    def test_other_clinics_order_is_not_found(self, captured_order):
        outsider = BrandUserFactory(clinic=ClinicFactory())

        result = file_request(captured_order, outsider)

        assert result.error_code == "NOT_FOUND"

    def test_patient_cannot_file(self, captured_order):
        result = file_request(captured_order, captured_order.user)

        assert result.error_code == "NOT_FOUND"

    def test_platform_admin_can_file(self, captured_order, admin_user):
        assert file_request(captured_order, admin_user).success

    def test_order_without_payment(self, clinic, brand_user):
        order = OrderFactory(clinic=clinic, status=OrderStatus.PAID)

        result = file_request(order, brand_user)

        assert result.error_code == "NOT_FOUND"

    def test_uncaptured_payment(self, clinic, brand_user):
        order = OrderFactory(clinic=clinic)
        PaymentFactory(order=order, status=PaymentStatus.PENDING)

        result = file_request(order, brand_user)

        assert result.error_code == "INVALID_STATE"

    def test_refunded_order(self, clinic, brand_user):
        order = OrderFactory(clinic=clinic, status=OrderStatus.REFUNDED)
        PaymentFactory(order=order, status=PaymentStatus.REFUNDED)

        result = file_request(order, brand_user)

        assert result.error_code == "INVALID_STATE"

    def test_malformed_order_id(self, brand_user):
        result = RefundRequestService.create_refund_request(
            order_id="nope", reason=None, requested_by=brand_user
        )

        assert result.error_code == "VALIDATION_ERROR"

    def test_lock_contention(self, captured_order, brand_user, mock_redis_lock, mocker):
        mock_redis_lock.set.return_value = False
        mocker.patch(
            "billing.services.refund_request_service.order_lock",
            side_effect=lambda order_id: DistributedLock(
                f"refund:order:{order_id}", blocking=False
            ),
        )

        result = file_request(captured_order, brand_user)

        assert result.error_code == "INVALID_STATE"
        assert not RefundRequest.objects.exists()

    def test_concurrent_insert_hits_unique_constraint(
        self, captured_order, brand_user, mocker
    ):
        # Another filer committed between the pending check and the insert
        RefundRequestFactory(order=captured_order, requested_by=brand_user)
        exists = mocker.patch.object(QuerySet, "exists", return_value=False)

        result = file_request(captured_order, brand_user)

        assert result.error_code == "INVALID_STATE"
        assert RefundRequest.objects.filter(order=captured_order).count() == 1
        exists.assert_called_once()


# =============================================================================
# Approval
# =============================================================================


@pytest.mark.django_db
class TestApproveRefundRequest:
    def test_reverse_transfer_refund_and_paid_coverage(
        self, captured_order, brand_user, admin_user, stripe_adapter, platform_account
    ):
        refund_request = file_request(captured_order, brand_user).data

        result = RefundRequestService.approve_refund_request(
            refund_request.id, admin_user, review_notes="Approved"
        )

        assert result.success, result.error
        refund_params = stripe_adapter.create_refund.call_args[0][0]
        assert refund_params.reverse_transfer is True
        assert refund_params.amount_cents == 10000
        assert refund_params.payment_intent_id == captured_order.payment.stripe_payment_intent_id

        transfer_params = stripe_adapter.create_transfer.call_args[0][0]
        assert transfer_params.amount_cents == 4800
        assert transfer_params.source_account == captured_order.clinic.stripe_account_id
        assert transfer_params.destination_account == "acct_platform"
        assert transfer_params.metadata["type"] == "refund_coverage"

        order, payment = reload(captured_order)
        assert order.status == OrderStatus.REFUNDED
        assert payment.status == PaymentStatus.REFUNDED
        assert payment.refunded_amount == Decimal("100.00")
        assert payment.stripe_refund_id == "re_test_123"

        approved = RefundRequest.objects.get(id=refund_request.id)
        assert approved.status == RefundRequestStatus.APPROVED
        assert approved.reviewed_by == admin_user
        assert approved.review_notes == "Approved"
        assert approved.stripe_refund_id == "re_test_123"

        balance = ClinicBalance.objects.get(refund_request=refund_request)
        assert balance.status == ClinicBalanceStatus.PAID
        assert balance.amount == Decimal("48.00")
        assert balance.stripe_transfer_id == "tr_test_123"
        assert result.data.coverage_amount == Decimal("48.00")

    def test_no_connected_account_plain_refund_and_pending_coverage(
        self, captured_order_without_account, admin_user, stripe_adapter
    ):
        order = captured_order_without_account
        brand = BrandUserFactory(clinic=order.clinic)
        refund_request = file_request(order, brand).data
        stripe_adapter.create_refund.side_effect = [
            StripeNoAssociatedTransferError(
                "The charge does not have an associated transfer"
            ),
            make_refund("re_plain"),
        ]

        result = RefundRequestService.approve_refund_request(refund_request.id, admin_user)

        assert result.success, result.error
        calls = stripe_adapter.create_refund.call_args_list
        assert [c[0][0].reverse_transfer for c in calls] == [True, False]
        assert calls[0][0][0].idempotency_key != calls[1][0][0].idempotency_key
        stripe_adapter.create_transfer.assert_not_called()

        balance = ClinicBalance.objects.get(refund_request=refund_request)
        assert balance.status == ClinicBalanceStatus.PENDING
        assert balance.amount == Decimal("-48.00")
        assert balance.stripe_refund_id == "re_plain"

        order, payment = reload(order)
        assert order.status == OrderStatus.REFUNDED
        assert payment.stripe_refund_id == "re_plain"

    def test_gateway_failure_changes_nothing(
        self, captured_order, brand_user, admin_user, stripe_adapter
    ):
        refund_request = file_request(captured_order, brand_user).data
        stripe_adapter.create_refund.side_effect = StripeAPIUnavailableError(
            "Could not connect to Stripe"
        )

        result = RefundRequestService.approve_refund_request(refund_request.id, admin_user)

        assert result.error_code == "GATEWAY_ERROR"
        assert RefundRequest.objects.get(id=refund_request.id).status == RefundRequestStatus.PENDING
        assert not ClinicBalance.objects.exists()
        order, payment = reload(captured_order)
        assert order.status == OrderStatus.PAID
        assert payment.status == PaymentStatus.CAPTURED

    def test_coverage_transfer_failure_keeps_refund(
        self, captured_order, brand_user, admin_user, stripe_adapter, platform_account
    ):
        refund_request = file_request(captured_order, brand_user).data
        stripe_adapter.create_transfer.side_effect = StripeInsufficientFundsError(
            "Insufficient funds in Stripe account"
        )

        result = RefundRequestService.approve_refund_request(refund_request.id, admin_user)

        assert result.success
        balance = ClinicBalance.objects.get(refund_request=refund_request)
        assert balance.status == ClinicBalanceStatus.PENDING
        assert balance.amount == Decimal("-48.00")
        assert balance.notes.startswith("Transfer failed:")
        assert reload(captured_order)[0].status == OrderStatus.REFUNDED

    def test_malformed_transfer_response_flags_possible_transfer(
        self, captured_order, brand_user, admin_user, stripe_adapter, platform_account
    ):
        refund_request = file_request(captured_order, brand_user).data
        stripe_adapter.create_transfer.side_effect = StripeInvalidResponseError(
            "Transfer response missing required fields: id"
        )

        result = RefundRequestService.approve_refund_request(refund_request.id, admin_user)

        assert result.success
        balance = ClinicBalance.objects.get(refund_request=refund_request)
        assert balance.status == ClinicBalanceStatus.PENDING
        assert balance.notes.startswith("Transfer outcome unknown:")
        idempotency_key = stripe_adapter.create_transfer.call_args[0][0].idempotency_key
        assert idempotency_key in balance.notes

    def test_missing_platform_account_records_pending(
        self, captured_order, brand_user, admin_user, stripe_adapter, settings
    ):
        settings.STRIPE_PLATFORM_ACCOUNT_ID = ""
        refund_request = file_request(captured_order, brand_user).data

        result = RefundRequestService.approve_refund_request(refund_request.id, admin_user)

        assert result.success
        stripe_adapter.create_transfer.assert_not_called()
        balance = ClinicBalance.objects.get(refund_request=refund_request)
        assert balance.status == ClinicBalanceStatus.PENDING

    def test_no_coverage_when_brand_credited_in_full(
        self, clinic, brand_user, admin_user, stripe_adapter
    ):
        order = OrderFactory(clinic=clinic, status=OrderStatus.PAID, brand_amount=Decimal("100.00"))
        PaymentFactory(order=order, status=PaymentStatus.CAPTURED)
        refund_request = file_request(order, brand_user).data

        result = RefundRequestService.approve_refund_request(refund_request.id, admin_user)

        assert result.success
        assert result.data.coverage_amount == Decimal("0.00")
        assert not ClinicBalance.objects.exists()
        stripe_adapter.create_transfer.assert_not_called()

    def test_existing_gateway_refund_is_reused(
        self, captured_order, brand_user, admin_user, stripe_adapter, platform_account
    ):
        refund_request = file_request(captured_order, brand_user).data
        stripe_adapter.list_refunds.return_value = [
            make_refund("re_failed", status="failed"),
            make_refund("re_earlier"),
        ]

        result = RefundRequestService.approve_refund_request(refund_request.id, admin_user)

        assert result.data.stripe_refund_id == "re_earlier"
        stripe_adapter.create_refund.assert_not_called()

    def test_unrelated_partial_refund_blocks_approval(
        self, captured_order, brand_user, admin_user, stripe_adapter, platform_account
    ):
        refund_request = file_request(captured_order, brand_user).data
        stripe_adapter.list_refunds.return_value = [
            make_refund("re_partial", amount_cents=1000)
        ]

        result = RefundRequestService.approve_refund_request(refund_request.id, admin_user)

        assert result.error_code == "INVALID_STATE"
        assert result.details["stripe_refund_ids"] == ["re_partial"]
        stripe_adapter.create_refund.assert_not_called()
        stripe_adapter.create_transfer.assert_not_called()
        assert RefundRequest.objects.get(id=refund_request.id).status == RefundRequestStatus.PENDING
        assert not ClinicBalance.objects.exists()
        order, payment = reload(captured_order)
        assert order.status == OrderStatus.PAID
        assert payment.status == PaymentStatus.CAPTURED
        assert payment.stripe_refund_id is None

    def test_refund_tagged_with_request_is_reused(
        self, captured_order, brand_user, admin_user, stripe_adapter, platform_account
    ):
        refund_request = file_request(captured_order, brand_user).data
        stripe_adapter.list_refunds.return_value = [
            make_refund("re_other", amount_cents=1000),
            make_refund(
                "re_ours", metadata={"refund_request_id": str(refund_request.id)}
            ),
        ]

        result = RefundRequestService.approve_refund_request(refund_request.id, admin_user)

        assert result.success, result.error
        assert result.data.stripe_refund_id == "re_ours"
        stripe_adapter.create_refund.assert_not_called()

    def test_full_refund_for_another_request_is_not_reused(
        self, captured_order, brand_user, admin_user, stripe_adapter
    ):
        refund_request = file_request(captured_order, brand_user).data
        stripe_adapter.list_refunds.return_value = [
            make_refund("re_elsewhere", metadata={"refund_request_id": str(uuid.uuid4())})
        ]

        result = RefundRequestService.approve_refund_request(refund_request.id, admin_user)

        assert result.error_code == "INVALID_STATE"
        stripe_adapter.create_refund.assert_not_called()

    def test_already_refunded_payment_skips_gateway(
        self, clinic, brand_user, admin_user, stripe_adapter
    ):
        order = OrderFactory(clinic=clinic, status=OrderStatus.PAID)
        PaymentFactory(
            order=order,
            status=PaymentStatus.REFUNDED,
            stripe_refund_id="re_before",
        )
        refund_request = RefundRequestFactory(order=order, requested_by=brand_user)

        result = RefundRequestService.approve_refund_request(refund_request.id, admin_user)

        assert result.success
        assert result.data.already_refunded is True
        assert result.data.stripe_refund_id == "re_before"
        stripe_adapter.list_refunds.assert_not_called()
        stripe_adapter.create_refund.assert_not_called()
        assert Order.objects.get(id=order.id).status == OrderStatus.REFUNDED

    def test_approving_twice_is_rejected(
        self, captured_order, brand_user, admin_user, stripe_adapter, platform_account
    ):
        refund_request = file_request(captured_order, brand_user).data
        RefundRequestService.approve_refund_request(refund_request.id, admin_user)

        result = RefundRequestService.approve_refund_request(refund_request.id, admin_user)

        assert result.error_code == "INVALID_STATE"
        assert stripe_adapter.create_refund.call_count == 1

    def test_brand_user_cannot_approve(self, captured_order, brand_user, stripe_adapter):
        refund_request = file_request(captured_order, brand_user).data

        result = RefundRequestService.approve_refund_request(refund_request.id, brand_user)

        assert result.error_code == "PERMISSION_DENIED"
        stripe_adapter.create_refund.assert_not_called()

    def test_unknown_request(self, admin_user, stripe_adapter):
        result = RefundRequestService.approve_refund_request(uuid.uuid4(), admin_user)

        assert result.error_code == "NOT_FOUND"

    def test_timeout_leaves_request_pending_for_retry(
        self, captured_order, brand_user, admin_user, stripe_adapter, platform_account
    ):
        refund_request = file_request(captured_order, brand_user).data
        stripe_adapter.create_refund.side_effect = StripeTimeoutError("timed out")

        first = RefundRequestService.approve_refund_request(refund_request.id, admin_user)

        assert first.error_code == "GATEWAY_ERROR"

        # The refund went through on Stripe's side; the retry finds it
        stripe_adapter.list_refunds.return_value = [make_refund("re_lost_response")]
        second = RefundRequestService.approve_refund_request(refund_request.id, admin_user)

        assert second.success
        assert second.data.stripe_refund_id == "re_lost_response"
        assert stripe_adapter.create_refund.call_count == 1


# =============================================================================
# Denial
# =============================================================================


@pytest.mark.django_db
class TestDenyRefundRequest:
    def test_deny_leaves_order_and_payment_untouched(
        self, captured_order, brand_user, admin_user, stripe_adapter
    ):
        refund_request = file_request(captured_order, brand_user).data

        result = RefundRequestService.deny_refund_request(
            refund_request.id, admin_user, review_notes="Outside refund window"
        )

        assert result.success
        assert result.data.status == RefundRequestStatus.DENIED
        assert result.data.review_notes == "Outside refund window"
        order, payment = reload(captured_order)
        assert order.status == OrderStatus.PAID
        assert payment.status == PaymentStatus.CAPTURED
        stripe_adapter.create_refund.assert_not_called()

    def test_denied_request_cannot_be_approved(
        self, captured_order, brand_user, admin_user, stripe_adapter
    ):
        refund_request = file_request(captured_order, brand_user).data
        RefundRequestService.deny_refund_request(refund_request.id, admin_user)

        result = RefundRequestService.approve_refund_request(refund_request.id, admin_user)

        assert result.error_code == "INVALID_STATE"
        assert RefundRequest.objects.get(id=refund_request.id).status == RefundRequestStatus.DENIED

    def test_new_request_allowed_after_denial(
        self, captured_order, brand_user, admin_user
    ):
        first = file_request(captured_order, brand_user).data
        RefundRequestService.deny_refund_request(first.id, admin_user)

        assert file_request(captured_order, brand_user).success

    def test_brand_user_cannot_deny(self, captured_order, brand_user):
        refund_request = file_request(captured_order, brand_user).data

        result = RefundRequestService.deny_refund_request(refund_request.id, brand_user)

        assert result.error_code == "PERMISSION_DENIED"


# =============================================================================
# Queries
# =============================================================================


@pytest.mark.django_db
class TestListRefundRequests:
    def test_brand_sees_own_clinic_only(self, brand_user):
        own = RefundRequestFactory(order=OrderFactory(clinic=brand_user.clinic, status=OrderStatus.PAID))
        RefundRequestFactory()

        result = RefundRequestService.list_refund_requests(brand_user)

        assert list(result.data) == [own]

    def test_admin_sees_all_and_filters(self, admin_user):
        first = RefundRequestFactory()
        RefundRequestFactory(status=RefundRequestStatus.DENIED)

        assert RefundRequestService.list_refund_requests(admin_user).data.count() == 2
        assert RefundRequestService.list_refund_requests(admin_user, clinic_id="all").data.count() == 2
        by_clinic = RefundRequestService.list_refund_requests(admin_user, clinic_id=str(first.clinic_id))
        assert list(by_clinic.data) == [first]
        pending = RefundRequestService.list_refund_requests(admin_user, status="pending")
        assert list(pending.data) == [first]

    def test_invalid_status(self, admin_user):
        result = RefundRequestService.list_refund_requests(admin_user, status="lost")

        assert result.error_code == "VALIDATION_ERROR"

    def test_patient_denied(self):
        result = RefundRequestService.list_refund_requests(UserFactory())

        assert result.error_code == "PERMISSION_DENIED"


@pytest.mark.django_db
class TestGetRefundRequestForOrder:
    def test_returns_latest(self, captured_order, brand_user, admin_user):
        first = file_request(captured_order, brand_user).data
        RefundRequestService.deny_refund_request(first.id, admin_user)
        second = file_request(captured_order, brand_user).data

        result = RefundRequestService.get_refund_request_for_order(captured_order.id, brand_user)

        assert result.data == second

    def test_none_when_no_request(self, captured_order, brand_user):
        result = RefundRequestService.get_refund_request_for_order(captured_order.id, brand_user)

        assert result.success
        assert result.data is None

    def test_patient_sees_own_order(self, captured_order, brand_user):
        file_request(captured_order, brand_user)

        result = RefundRequestService.get_refund_request_for_order(
            captured_order.id, captured_order.user
        )

        assert result.data is not None

    def test_stranger_gets_not_found(self, captured_order):
        result = RefundRequestService.get_refund_request_for_order(captured_order.id, UserFactory())

        assert result.error_code == "NOT_FOUND"
