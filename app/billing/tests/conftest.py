"""
Pytest fixtures for billing tests.

Every billing test runs with Redis mocked out of the per-order lock, and
services use a MagicMock Stripe adapter injected through
set_stripe_adapter().

Usage:
    def test_approve(captured_order, admin_user, stripe_adapter):
        stripe_adapter.create_refund.return_value = make_refund("re_1")
        ...
"""

from unittest.mock import MagicMock, patch

import pytest

from billing.adapters import PaymentIntentResult, RefundResult, TransferResult
from billing.services import OrderService, RefundRequestService
from billing.state_machines import OrderStatus, PaymentStatus
from billing.tests.factories import (
    AdminUserFactory,
    BrandUserFactory,
    ClinicFactory,
    GlobalFeesFactory,
    OrderFactory,
    PaymentFactory,
)


def make_intent(intent_id="pi_test_123", amount_cents=10000, metadata=None):
    return PaymentIntentResult(
        id=intent_id,
        status="requires_payment_method",
        amount_cents=amount_cents,
        currency="usd",
        client_secret=f"{intent_id}_secret_abc",
        metadata=metadata or {},
        raw_response={},
    )


def make_refund(refund_id="re_test_123", amount_cents=10000, status="succeeded", metadata=None):
    return RefundResult(
        id=refund_id,
        amount_cents=amount_cents,
        currency="usd",
        status=status,
        payment_intent_id="pi_test_123",
        metadata=metadata or {},
        raw_response={},
    )


def make_transfer(transfer_id="tr_test_123", amount_cents=4800):
    return TransferResult(
        id=transfer_id,
        amount_cents=amount_cents,
        currency="usd",
        destination_account="acct_platform",
        metadata={},
        raw_response={},
    )


# =============================================================================
# Infrastructure Mocks
# =============================================================================


@pytest.fixture(autouse=True)
def mock_redis_lock():
    """Mock Redis for distributed locking."""
    mock_redis = MagicMock()
    mock_redis.set.return_value = True
    mock_redis.get.return_value = None
    mock_redis.delete.return_value = 1
    mock_redis.eval.return_value = 1

    with patch("billing.locks.get_redis_connection", return_value=mock_redis):
        yield mock_redis


@pytest.fixture
def stripe_adapter():
    """
    MagicMock Stripe adapter injected into both services.

    No refunds exist for any intent unless a test says otherwise.
    """
    adapter = MagicMock()
    adapter.list_refunds.return_value = []
    adapter.create_payment_intent.return_value = make_intent()
    adapter.create_refund.return_value = make_refund()
    adapter.create_transfer.return_value = make_transfer()

    OrderService.set_stripe_adapter(adapter)
    RefundRequestService.set_stripe_adapter(adapter)
    try:
        yield adapter
    finally:
        OrderService.set_stripe_adapter(None)
        RefundRequestService.set_stripe_adapter(None)


@pytest.fixture
def platform_account(settings):
    settings.STRIPE_PLATFORM_ACCOUNT_ID = "acct_platform"
    return settings.STRIPE_PLATFORM_ACCOUNT_ID


# =============================================================================
# Users & Configuration
# =============================================================================


@pytest.fixture
def global_fees(db):
    return GlobalFeesFactory()


@pytest.fixture
def clinic(db):
    """Clinic with a connected account."""
    return ClinicFactory()


@pytest.fixture
def clinic_without_account(db):
    return ClinicFactory(stripe_account_id=None)


@pytest.fixture
def brand_user(db, clinic):
    return BrandUserFactory(clinic=clinic)


@pytest.fixture
def admin_user(db):
    return AdminUserFactory()


# =============================================================================
# Order State Fixtures
# =============================================================================


@pytest.fixture
def captured_order(db, clinic):
    """Paid 100.00 order (brand credited 52.00) with a captured payment."""
    order = OrderFactory(clinic=clinic, status=OrderStatus.PAID)
    PaymentFactory(order=order, status=PaymentStatus.CAPTURED)
    return order


@pytest.fixture
def captured_order_without_account(db, clinic_without_account):
    order = OrderFactory(clinic=clinic_without_account, status=OrderStatus.PAID)
    PaymentFactory(order=order, status=PaymentStatus.CAPTURED)
    return order
