"""
Concurrency control utilities for billing operations.

Two complementary mechanisms:

1. **Distributed Locks** (DistributedLock, order_lock)
   - Redis-based mutual exclusion across processes/servers
   - TTL prevents deadlocks from crashed processes
   - Serializes refund-request creation and resolution per order

2. **Optimistic Locking** (check_version)
   - Version-based conflict detection at write time
   - Guards the final persistence step of a refund approval in case the
     distributed lock expired during a slow gateway call

Usage:

    from billing.locks import order_lock, check_version

    with order_lock(order.id):
        create_refund_request(order)

    with transaction.atomic():
        refund_request = check_version(RefundRequest, request_id, expected_version=1)
        refund_request.approve(reviewer=user)
        refund_request.save()

Note:
    The partial unique constraint on RefundRequest (one pending request
    per order) is the storage-level backstop behind order_lock.
"""

from __future__ import annotations

import time
import uuid as uuid_module
from typing import TYPE_CHECKING, TypeVar

from django.conf import settings
from django.db import models, transaction
from django_redis import get_redis_connection

from billing.exceptions import LockAcquisitionError, StaleRecordError
from core.exceptions import NotFoundError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis

T = TypeVar("T", bound=models.Model)


# =============================================================================
# Distributed Locks
# =============================================================================


class DistributedLock:
    """
    Redis-based distributed lock with TTL.

    Features:
        - Automatic TTL prevents deadlocks from crashed processes
        - Token-based ownership prevents release by another process
        - Blocking and non-blocking acquisition modes
        - Context manager support

    Example:
        with DistributedLock("refund:order:123", ttl=60):
            approve()

        lock = DistributedLock("refund:order:123", blocking=False)
        try:
            with lock:
                approve()
        except LockAcquisitionError:
            # Another reviewer is resolving this order
            ...

    Args:
        key: Lock identifier (will be prefixed with "lock:")
        ttl: Lock TTL in seconds (auto-releases after this time)
        blocking: If True, acquire() waits until lock is available
        timeout: Maximum wait time in seconds (only if blocking=True)
    """

    # Atomic check-and-delete so only the owner releases
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    def __init__(
        self,
        key: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def acquire(self) -> bool:
        """
        Acquire the lock.

        Returns:
            True if lock was acquired

        Raises:
            LockAcquisitionError: If lock couldn't be acquired
        """
        self._token = str(uuid_module.uuid4())
        redis = self._get_redis()

        if self.blocking:
            end_time = time.time() + self.timeout
            while time.time() < end_time:
                if self._try_acquire(redis):
                    return True
                time.sleep(0.05)

            self._token = None
            raise LockAcquisitionError(
                "Another operation on this order is in progress",
                details={"key": self.key, "timeout": self.timeout},
            )

        if not self._try_acquire(redis):
            self._token = None
            raise LockAcquisitionError(
                "Another operation on this order is in progress",
                details={"key": self.key},
            )
        return True

    def _try_acquire(self, redis: Redis) -> bool:
        return bool(redis.set(self.key, self._token, nx=True, ex=self.ttl))

    def release(self) -> bool:
        """
        Release the lock if we hold it.

        Returns:
            True if lock was released, False if we didn't hold it
        """
        if self._token is None:
            return False

        redis = self._get_redis()
        result = redis.eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        self.release()
        return False


def order_lock(order_id: Any) -> DistributedLock:
    """
    Lock serializing refund operations on one order.

    TTL comes from settings.REFUND_LOCK_TIMEOUT and must outlive the
    gateway refund plus coverage transfer calls.
    """
    return DistributedLock(
        f"refund:order:{order_id}",
        ttl=settings.REFUND_LOCK_TIMEOUT,
        blocking=True,
        timeout=5.0,
    )


# =============================================================================
# Optimistic Locking
# =============================================================================


def check_version(
    model_class: type[T],
    pk: Any,
    expected_version: int,
) -> T:
    """
    Lock a record for update and verify its version.

    Args:
        model_class: Django model class (must have a 'version' field)
        pk: Primary key of the record
        expected_version: Version the caller loaded earlier

    Returns:
        The row-locked model instance

    Raises:
        StaleRecordError: If the version moved on (concurrent modification)
        NotFoundError: If the record doesn't exist

    Note:
        Must be called inside transaction.atomic(); the row lock is held
        until the outer transaction ends.
    """
    with transaction.atomic():
        instance = (
            model_class.objects.select_for_update()
            .filter(pk=pk, version=expected_version)
            .first()
        )

        if instance is None:
            model_name = model_class.__name__
            current = model_class.objects.filter(pk=pk).values_list(
                "version", flat=True
            ).first()
            if current is None:
                raise NotFoundError(
                    f"{model_name} {pk} not found",
                    details={"pk": str(pk)},
                )
            raise StaleRecordError(
                f"{model_name} {pk} has been modified concurrently",
                details={
                    "pk": str(pk),
                    "expected_version": expected_version,
                    "current_version": current,
                },
            )

        return instance


__all__ = [
    "DistributedLock",
    "check_version",
    "order_lock",
]
