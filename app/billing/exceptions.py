"""
Billing-specific exceptions.

Gateway exceptions all share the caller-facing ``GATEWAY_ERROR`` code;
the Stripe-specific reason is kept in ``gateway_code`` and in ``details``
for logs and non-production responses.

Exception Hierarchy:
    GatewayError (core)
    └── StripeError
        ├── StripeCardDeclinedError
        ├── StripeInsufficientFundsError   (transfer from a drained sub-account)
        ├── StripeInvalidAccountError
        ├── StripeInvalidRequestError
        │   └── StripeNoAssociatedTransferError
        ├── StripeInvalidResponseError
        ├── StripeRateLimitError           (retryable)
        ├── StripeAPIUnavailableError      (retryable)
        └── StripeTimeoutError             (retryable)

    InvalidStateError (core)
    ├── StaleRecordError
    └── LockAcquisitionError

Usage:
    from billing.exceptions import StripeNoAssociatedTransferError

    try:
        StripeAdapter.create_refund(params)
    except StripeNoAssociatedTransferError:
        StripeAdapter.create_refund(replace(params, reverse_transfer=False))
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import GatewayError, InvalidStateError

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Stripe Errors
# =============================================================================


class StripeError(GatewayError):
    """
    Base exception for Stripe API errors.

    Attributes:
        stripe_code: Error code reported by Stripe, if any
        gateway_code: Stable classification of the failure
        is_retryable: Whether the same call may succeed if repeated
    """

    gateway_code: str = "stripe_error"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        stripe_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.stripe_code = stripe_code
        merged = {"gateway_code": self.gateway_code}
        if stripe_code:
            merged["stripe_code"] = stripe_code
        merged.update(details or {})
        super().__init__(message, details=merged)


class StripeCardDeclinedError(StripeError):
    """The patient's card was declined."""

    gateway_code = "card_declined"


class StripeInsufficientFundsError(StripeError):
    """
    The source balance cannot cover the amount.

    Typically raised for coverage transfers out of a clinic sub-account
    whose available balance is lower than the coverage owed.
    """

    gateway_code = "insufficient_funds"


class StripeInvalidAccountError(StripeError):
    """The connected account is missing, restricted or not owned by the platform."""

    gateway_code = "invalid_account"


class StripeInvalidRequestError(StripeError):
    """Stripe rejected the request parameters."""

    gateway_code = "invalid_request"


class StripeNoAssociatedTransferError(StripeInvalidRequestError):
    """
    A reverse-transfer refund was requested for a charge without a transfer.

    The caller retries as a plain refund. Transfer reversal and plain
    refund are mutually exclusive, and whether a charge carried a
    destination transfer is only known to the gateway.
    """

    gateway_code = "no_associated_transfer"

    MARKER = "does not have an associated transfer"

    @classmethod
    def matches(cls, message: str | None) -> bool:
        return bool(message) and cls.MARKER in message


class StripeInvalidResponseError(StripeError):
    """A Stripe response lacked a field the billing ledger requires."""

    gateway_code = "invalid_response"


class StripeRateLimitError(StripeError):
    """Too many requests to Stripe."""

    gateway_code = "rate_limited"
    is_retryable = True


class StripeAPIUnavailableError(StripeError):
    """
    Stripe could not be reached or returned a server error.

    The outcome of the call is unknown. Refund re-attempts must first
    check whether a refund was already issued.
    """

    gateway_code = "unavailable"
    is_retryable = True


class StripeTimeoutError(StripeAPIUnavailableError):
    """The Stripe call timed out; the outcome is unknown."""

    gateway_code = "timeout"


# =============================================================================
# Concurrency Errors
# =============================================================================


class StaleRecordError(InvalidStateError):
    """
    A versioned record changed between read and write.

    Raised by check_version() when the stored version differs from the
    version the caller loaded.
    """


class LockAcquisitionError(InvalidStateError):
    """
    Another process holds the lock for this order.

    Raised when a refund operation for the same order is already in
    progress. The caller can retry once the other operation finishes.
    """
