"""
Tests for billing concurrency control.

DistributedLock runs against the mocked Redis connection from conftest;
check_version runs against the test database.
"""

import uuid

import pytest

from billing.exceptions import LockAcquisitionError, StaleRecordError
from billing.locks import DistributedLock, check_version, order_lock
from billing.models import Order
from billing.tests.factories import OrderFactory
from core.exceptions import NotFoundError


class TestDistributedLock:
    """Tests for DistributedLock class."""

    def test_acquire_success(self, mock_redis_lock):
        lock = DistributedLock("test:key", ttl=30, blocking=False)

        assert lock.acquire() is True
        assert lock.is_held is True
        call_args = mock_redis_lock.set.call_args
        assert call_args[0][0] == "lock:test:key"
        assert call_args[1]["nx"] is True
        assert call_args[1]["ex"] == 30

    def test_acquire_generates_unique_token(self, mock_redis_lock):
        lock1 = DistributedLock("test:key1", blocking=False)
        lock2 = DistributedLock("test:key2", blocking=False)

        lock1.acquire()
        lock2.acquire()

        assert lock1._token != lock2._token

    def test_acquire_non_blocking_raises_when_held(self, mock_redis_lock):
        mock_redis_lock.set.return_value = False
        lock = DistributedLock("test:key", blocking=False)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert exc_info.value.details["key"] == "lock:test:key"
        assert exc_info.value.error_code == "INVALID_STATE"
        assert lock.is_held is False

    def test_acquire_blocking_waits_and_acquires(self, mock_redis_lock):
        mock_redis_lock.set.side_effect = [False, False, True]
        lock = DistributedLock("test:key", blocking=True, timeout=1.0)

        assert lock.acquire() is True
        assert mock_redis_lock.set.call_count == 3

    def test_acquire_blocking_timeout_raises_error(self, mock_redis_lock):
        mock_redis_lock.set.return_value = False
        lock = DistributedLock("test:key", blocking=True, timeout=0.1)

        with pytest.raises(LockAcquisitionError):
            lock.acquire()

    def test_release_only_if_owned(self, mock_redis_lock):
        mock_redis_lock.eval.return_value = 0
        lock = DistributedLock("test:key", blocking=False)
        lock.acquire()

        assert lock.release() is False
        assert lock.is_held is False

    def test_release_without_acquire_returns_false(self, mock_redis_lock):
        assert DistributedLock("test:key").release() is False
        mock_redis_lock.eval.assert_not_called()

    def test_context_manager_releases_on_exception(self, mock_redis_lock):
        with pytest.raises(RuntimeError):
            with DistributedLock("test:key", blocking=False):
                raise RuntimeError("boom")

        mock_redis_lock.eval.assert_called_once()


class TestOrderLock:
    def test_keyed_on_order_with_configured_ttl(self, settings):
        settings.REFUND_LOCK_TIMEOUT = 90

        lock = order_lock("abc")

        assert lock.key == "lock:refund:order:abc"
        assert lock.ttl == 90
        assert lock.blocking is True


@pytest.mark.django_db
class TestCheckVersion:
    def test_returns_row_when_version_matches(self):
        order = OrderFactory()

        locked = check_version(Order, order.id, expected_version=1)

        assert locked.id == order.id

    def test_stale_version_raises(self):
        order = OrderFactory()
        order.mark_failed()
        order.save()

        with pytest.raises(StaleRecordError) as exc_info:
            check_version(Order, order.id, expected_version=1)

        assert exc_info.value.details["current_version"] == 2

    def test_missing_row_raises_not_found(self):
        with pytest.raises(NotFoundError):
            check_version(Order, uuid.uuid4(), expected_version=1)
