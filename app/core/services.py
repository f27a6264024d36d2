"""
Base service layer patterns for business logic encapsulation.

This module provides foundational patterns for the service layer:
- ServiceResult: Standard result wrapper for consistent success/failure handling
- BaseService: Base class with common service utilities

Pattern Comparison:
    - ServiceResult: Returned from public service methods. Expected
      failures (validation, not found, invalid state, gateway rejection)
      travel as ``error_code`` values.
    - Exceptions: Raised inside services and adapters, converted to
      ServiceResult at the public boundary via ``from_exception``.

Usage:
    from core.services import BaseService, ServiceResult

    class RefundRequestService(BaseService):
        @classmethod
        def deny_refund_request(cls, request_id, reviewer):
            try:
                refund_request = cls._deny(request_id, reviewer)
            except BaseApplicationError as e:
                return ServiceResult.from_exception(e)
            return ServiceResult.success(refund_request)

    # In view
    result = RefundRequestService.deny_refund_request(request_id, user)
    if result.success:
        return Response(RefundRequestSerializer(result.data).data)
    return error_response(result)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable discriminant (VALIDATION_ERROR,
            NOT_FOUND, INVALID_STATE, GATEWAY_ERROR, ...)
        details: Diagnostic context; only shown to callers in DEBUG

    Usage:
        result = OrderService.create_order_and_intent(params)
        if result.success:
            client_secret = result.data.client_secret
        else:
            print(f"Error: {result.error} ({result.error_code})")
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """Create a successful result."""
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code for client handling
            details: Diagnostic context

        Returns:
            ServiceResult with success=False and error details
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            details=details or {},
        )

    @classmethod
    def from_exception(cls, exc: Exception) -> ServiceResult[T]:
        """
        Create a failed result from an exception.

        Application errors keep their own code and details; anything else
        is reported by class name.
        """
        if isinstance(exc, BaseApplicationError):
            return cls.failure(exc.message, exc.error_code, exc.details)
        return cls.failure(str(exc), exc.__class__.__name__.upper())

    def to_response(self, include_details: bool = False) -> dict[str, Any]:
        """
        Convert a failed result to the API error payload.

        Args:
            include_details: Whether diagnostic details are exposed
        """
        response: dict[str, Any] = {
            "error": self.error,
            "error_code": self.error_code,
        }
        if include_details and self.details:
            response["details"] = self.details
        return response

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Design Notes:
        - Use @classmethod (no instance state)
        - Use ServiceResult for expected failures
        - Raise exceptions for unexpected failures
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Returns a logger named after the service class for
        easy filtering in logs.
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        Thin wrapper around Django's transaction.atomic() that makes
        transaction boundaries explicit in service code.
        """
        with transaction.atomic():
            yield
