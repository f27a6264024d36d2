"""
Base exception classes for application-wide error handling.

Every caller-facing failure carries a stable ``error_code`` discriminant
and a human-readable message. Views translate the code into an HTTP
status; services translate exceptions into ServiceResult failures.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Malformed input, nothing mutated
    ├── NotFoundError - Referenced record does not exist
    ├── PermissionDeniedError - Caller role not allowed
    ├── InvalidStateError - Operation not legal in the current state
    ├── GatewayError - Payment gateway rejected or failed a call
    └── ComputationError - Fee/visit computation failed (never surfaced)

Usage:
    from core.exceptions import InvalidStateError, NotFoundError

    raise NotFoundError("Order not found", details={"order_id": str(order_id)})

    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=ERROR_STATUS[e.error_code])

Note:
    ``details`` may contain gateway diagnostics. Views only expose them
    when settings.DEBUG is enabled.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable discriminant for client handling
        details: Additional error context (ids, gateway codes, etc.)
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self, include_details: bool = True) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Args:
            include_details: Whether to include the details payload.
                Disabled for production responses.

        Returns:
            Dict with error, error_code, and optionally details keys
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if include_details and self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input is malformed.

    Use for missing ids, non-numeric amounts, empty product selections.
    Raised before any state is mutated.
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """
    Raised when a referenced Order, Payment or RefundRequest does not exist.

    Also used when a record exists but belongs to another tenant, so the
    caller cannot probe for other clinics' orders.
    """

    default_error_code: str = "NOT_FOUND"


class PermissionDeniedError(BaseApplicationError):
    """Raised when the caller's role may not perform the operation."""

    default_error_code: str = "PERMISSION_DENIED"


class InvalidStateError(BaseApplicationError):
    """
    Raised when an operation is not legal in the current state.

    Examples:
        - a second pending refund request for the same order
        - approving or denying an already resolved request
        - refunding an order that is already refunded

    Note:
        HTTP 409 Conflict is the appropriate status for these errors.
    """

    default_error_code: str = "INVALID_STATE"


class GatewayError(BaseApplicationError):
    """
    Raised when the payment gateway rejects or fails a call.

    Subclasses in billing.exceptions carry the gateway-specific detail and
    an ``is_retryable`` flag.

    Note:
        Log the original error for debugging but don't expose
        internal details to clients in production.
    """

    default_error_code: str = "GATEWAY_ERROR"


class ComputationError(BaseApplicationError):
    """
    Raised when a fee split or visit fee cannot be computed.

    Never propagated to callers: the order flow substitutes zero amounts
    and writes an audit record instead.
    """

    default_error_code: str = "COMPUTATION_ERROR"
