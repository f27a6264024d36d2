"""Tests for ClinicBalanceService ledger writes and debt totals."""

from decimal import Decimal

import pytest

from billing.services import ClinicBalanceService
from billing.state_machines import ClinicBalanceStatus, ClinicBalanceType
from billing.tests.factories import (
    ClinicBalanceFactory,
    ClinicFactory,
    RefundRequestFactory,
)


@pytest.fixture
def refund_request(db):
    return RefundRequestFactory()


@pytest.mark.django_db
class TestRecordCoverage:
    def test_paid_line_is_positive(self, refund_request):
        balance = ClinicBalanceService.record_coverage_paid(
            refund_request,
            Decimal("48"),
            stripe_transfer_id="tr_1",
            stripe_refund_id="re_1",
        )

        assert balance.amount == Decimal("48.00")
        assert balance.status == ClinicBalanceStatus.PAID
        assert balance.type == ClinicBalanceType.REFUND_DEBT
        assert balance.clinic == refund_request.clinic
        assert balance.order == refund_request.order
        assert balance.paid_at is not None
        assert balance.stripe_transfer_id == "tr_1"

    def test_pending_line_is_negative(self, refund_request):
        balance = ClinicBalanceService.record_coverage_pending(
            refund_request,
            Decimal("48.00"),
            stripe_refund_id="re_1",
            notes="Clinic has no connected account",
        )

        assert balance.amount == Decimal("-48.00")
        assert balance.status == ClinicBalanceStatus.PENDING
        assert balance.paid_at is None
        assert balance.notes == "Clinic has no connected account"


@pytest.mark.django_db
class TestOutstandingDebt:
    def test_no_rows(self):
        assert ClinicBalanceService.outstanding_debt(ClinicFactory()) == Decimal("0.00")

    def test_sums_pending_debt_only(self):
        clinic = ClinicFactory()
        ClinicBalanceFactory(clinic=clinic, amount=Decimal("-48.00"))
        ClinicBalanceFactory(clinic=clinic, amount=Decimal("-12.50"))
        ClinicBalanceFactory(
            clinic=clinic,
            amount=Decimal("30.00"),
            status=ClinicBalanceStatus.PAID,
        )
        ClinicBalanceFactory(amount=Decimal("-99.00"))

        assert ClinicBalanceService.outstanding_debt(clinic) == Decimal("60.50")
