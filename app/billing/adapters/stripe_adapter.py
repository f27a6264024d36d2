"""
Stripe API adapter for billing operations.

All Stripe calls go through StripeAdapter so error translation,
timeouts, idempotency and logging are consistent.

Features:
- Client timeout and network retries from settings
- Stripe exceptions translated to billing.exceptions
- Typed results with required-field checks (no untyped payloads reach
  the ledger)
- Structured logging with timing

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_API_VERSION: Pinned API version (optional)
- STRIPE_API_TIMEOUT_SECONDS: Request timeout
- STRIPE_MAX_NETWORK_RETRIES: Client-level retries for transient failures

Usage:
    from billing.adapters import StripeAdapter, CreatePaymentIntentParams

    result = StripeAdapter.create_payment_intent(
        CreatePaymentIntentParams(
            amount_cents=10000,
            currency="usd",
            metadata={"order_id": str(order.id)},
            idempotency_key=IdempotencyKeyGenerator.generate("create_intent", order.id),
            transfer_data={"destination": "acct_xxx", "amount": 5200},
        )
    )
"""

from __future__ import annotations

import hashlib
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

import stripe
from django.conf import settings

from billing.exceptions import (
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeError,
    StripeInsufficientFundsError,
    StripeInvalidAccountError,
    StripeInvalidRequestError,
    StripeInvalidResponseError,
    StripeNoAssociatedTransferError,
    StripeRateLimitError,
    StripeTimeoutError,
)


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CreatePaymentIntentParams:
    """
    Parameters for creating a Stripe PaymentIntent.

    Attributes:
        amount_cents: Amount in smallest currency unit
        currency: ISO 4217 currency code (lower case)
        idempotency_key: Unique key for idempotent creation
        metadata: Key-value pairs attached to the PaymentIntent
        transfer_data: Connect destination transfer
            ({"destination": "acct_xxx", "amount": cents})
        payment_method_types: Allowed payment methods (default: ['card'])
    """

    amount_cents: int
    currency: str
    idempotency_key: str
    metadata: dict[str, str] = field(default_factory=dict)
    transfer_data: dict[str, Any] | None = None
    payment_method_types: list[str] = field(default_factory=lambda: ["card"])

    def __post_init__(self) -> None:
        if self.amount_cents <= 0:
            raise ValueError("amount_cents must be positive")
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")
        if not self.currency:
            raise ValueError("currency is required")


@dataclass
class CreateRefundParams:
    """
    Parameters for refunding a PaymentIntent.

    Attributes:
        payment_intent_id: PaymentIntent to refund (pi_xxx)
        idempotency_key: Unique key for idempotent refund
        amount_cents: Amount to refund (None for full refund)
        reverse_transfer: Pull the destination transfer back from the
            connected account
        metadata: Key-value pairs attached to the Refund
    """

    payment_intent_id: str
    idempotency_key: str
    amount_cents: int | None = None
    reverse_transfer: bool = False
    metadata: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.payment_intent_id:
            raise ValueError("payment_intent_id is required")
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")
        if self.amount_cents is not None and self.amount_cents <= 0:
            raise ValueError("amount_cents must be positive")


@dataclass
class CreateTransferParams:
    """
    Parameters for a Stripe Transfer.

    Attributes:
        amount_cents: Amount to move
        currency: ISO 4217 currency code
        destination_account: Receiving account (acct_xxx)
        idempotency_key: Unique key for idempotent transfer
        source_account: Connected account to send from; the call is made
            on behalf of this account (Stripe-Account header). None sends
            from the platform balance.
        metadata: Key-value pairs attached to the Transfer
    """

    amount_cents: int
    currency: str
    destination_account: str
    idempotency_key: str
    source_account: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.amount_cents <= 0:
            raise ValueError("amount_cents must be positive")
        if not self.destination_account:
            raise ValueError("destination_account is required")
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")


@dataclass
class PaymentIntentResult:
    """
    Result from Stripe PaymentIntent creation.

    Attributes:
        id: PaymentIntent ID (pi_xxx)
        status: Current status (requires_payment_method, succeeded, etc.)
        amount_cents: Amount in cents
        currency: Currency code
        client_secret: Secret for client-side confirmation
        metadata: Attached metadata
        raw_response: Full Stripe response dict (for debugging)
    """

    id: str
    status: str
    amount_cents: int
    currency: str
    client_secret: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class TransferResult:
    """
    Result from Stripe Transfer creation.

    Attributes:
        id: Transfer ID (tr_xxx)
        amount_cents: Amount transferred in cents
        currency: Currency code
        destination_account: Receiving account ID
        metadata: Attached metadata
        raw_response: Full Stripe response dict
    """

    id: str
    amount_cents: int
    currency: str
    destination_account: str
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class RefundResult:
    """
    Result from Stripe Refund operations.

    Attributes:
        id: Refund ID (re_xxx)
        amount_cents: Refunded amount in cents
        currency: Currency code
        status: Refund status (succeeded, pending, failed, canceled)
        payment_intent_id: Original PaymentIntent ID
        metadata: Attached metadata
        raw_response: Full Stripe response dict
    """

    id: str
    amount_cents: int
    currency: str
    status: str
    payment_intent_id: str
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)

    FAILED_STATUSES = ("failed", "canceled")

    @property
    def is_effective(self) -> bool:
        """Whether the refund went (or is going) through."""
        return self.status not in self.FAILED_STATUSES


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for Stripe API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    The same operation on the same entity always yields the same key, so a
    retried call returns Stripe's original response instead of acting
    twice.

    Example:
        key = IdempotencyKeyGenerator.generate("refund", refund_request.id)
        # "refund:550e8400-e29b-41d4-a716-446655440000:1:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


def _to_dict(obj: Any) -> dict[str, Any]:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


def _require(obj: Any, object_name: str, *field_names: str) -> None:
    """Fail fast when Stripe omits a field the ledger depends on."""
    missing = [name for name in field_names if getattr(obj, name, None) in (None, "")]
    if missing:
        raise StripeInvalidResponseError(
            f"Stripe {object_name} response missing required fields",
            details={"missing": missing},
        )


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    All methods are classmethods - no instance state is maintained.
    Services hold the adapter class and tests substitute a MagicMock.

    Usage:
        result = StripeAdapter.create_payment_intent(params)
        refund = StripeAdapter.create_refund(CreateRefundParams(...))
        transfer = StripeAdapter.create_transfer(CreateTransferParams(...))
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key, version, timeout and retries."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        if settings.STRIPE_API_VERSION:
            stripe.api_version = settings.STRIPE_API_VERSION
        stripe.max_network_retries = settings.STRIPE_MAX_NETWORK_RETRIES
        stripe.default_http_client = stripe.RequestsClient(
            timeout=settings.STRIPE_API_TIMEOUT_SECONDS
        )

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Core Operations
    # =========================================================================

    @classmethod
    def create_payment_intent(
        cls,
        params: CreatePaymentIntentParams,
    ) -> PaymentIntentResult:
        """
        Create a PaymentIntent.

        Args:
            params: PaymentIntent creation parameters

        Returns:
            PaymentIntentResult with id and client_secret

        Raises:
            StripeError subclasses on gateway failure
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_payment_intent",
            "amount_cents": params.amount_cents,
            "currency": params.currency,
            "idempotency_key": params.idempotency_key,
            "has_transfer": params.transfer_data is not None,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            intent_params: dict[str, Any] = {
                "amount": params.amount_cents,
                "currency": params.currency,
                "metadata": params.metadata,
                "payment_method_types": params.payment_method_types,
            }
            if params.transfer_data:
                intent_params["transfer_data"] = params.transfer_data

            intent = stripe.PaymentIntent.create(
                idempotency_key=params.idempotency_key,
                **intent_params,
            )
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

        _require(intent, "PaymentIntent", "id", "status", "client_secret")

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Stripe operation completed",
            extra={
                **log_context,
                "payment_intent_id": intent.id,
                "status": intent.status,
                "duration_ms": duration_ms,
            },
        )

        return PaymentIntentResult(
            id=intent.id,
            status=intent.status,
            amount_cents=intent.amount,
            currency=intent.currency,
            client_secret=intent.client_secret,
            metadata=dict(intent.metadata or {}),
            raw_response=_to_dict(intent),
        )

    @classmethod
    def create_refund(cls, params: CreateRefundParams) -> RefundResult:
        """
        Refund a PaymentIntent.

        Args:
            params: Refund parameters

        Returns:
            RefundResult with refund details

        Raises:
            StripeNoAssociatedTransferError: reverse_transfer was requested
                for a charge that carried no transfer
            StripeError subclasses on other gateway failures
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_refund",
            "payment_intent_id": params.payment_intent_id,
            "amount_cents": params.amount_cents,
            "reverse_transfer": params.reverse_transfer,
            "idempotency_key": params.idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            refund_params: dict[str, Any] = {
                "payment_intent": params.payment_intent_id,
                "metadata": params.metadata,
            }
            if params.amount_cents is not None:
                refund_params["amount"] = params.amount_cents
            if params.reverse_transfer:
                refund_params["reverse_transfer"] = True

            refund = stripe.Refund.create(
                idempotency_key=params.idempotency_key,
                **refund_params,
            )
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

        result = cls._refund_result(refund)

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Stripe operation completed",
            extra={
                **log_context,
                "refund_id": result.id,
                "status": result.status,
                "duration_ms": duration_ms,
            },
        )
        return result

    @classmethod
    def list_refunds(cls, payment_intent_id: str, limit: int = 10) -> list[RefundResult]:
        """
        List refunds already issued for a PaymentIntent.

        Used before issuing a refund so an approval retried after a lost
        response does not refund twice.
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "list_refunds",
            "payment_intent_id": payment_intent_id,
        }

        start_time = time.time()
        try:
            refunds = stripe.Refund.list(payment_intent=payment_intent_id, limit=limit)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

        results = [cls._refund_result(refund) for refund in refunds.data]
        logger.debug(
            "Stripe operation completed",
            extra={**log_context, "count": len(results)},
        )
        return results

    @classmethod
    def create_transfer(cls, params: CreateTransferParams) -> TransferResult:
        """
        Create a Transfer.

        With source_account set, funds move out of that connected account
        (used to collect refund coverage from a clinic).

        Raises:
            StripeInsufficientFundsError: Source balance too low
            StripeInvalidAccountError: Source or destination account invalid
            StripeError subclasses on other gateway failures
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_transfer",
            "amount_cents": params.amount_cents,
            "destination_account": params.destination_account,
            "source_account": params.source_account,
            "idempotency_key": params.idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            request_options: dict[str, Any] = {"idempotency_key": params.idempotency_key}
            if params.source_account:
                request_options["stripe_account"] = params.source_account

            transfer = stripe.Transfer.create(
                amount=params.amount_cents,
                currency=params.currency,
                destination=params.destination_account,
                metadata=params.metadata,
                **request_options,
            )
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

        _require(transfer, "Transfer", "id")

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Stripe operation completed",
            extra={
                **log_context,
                "transfer_id": transfer.id,
                "duration_ms": duration_ms,
            },
        )

        return TransferResult(
            id=transfer.id,
            amount_cents=transfer.amount,
            currency=transfer.currency,
            destination_account=transfer.destination,
            metadata=dict(transfer.metadata or {}),
            raw_response=_to_dict(transfer),
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _refund_result(refund: Any) -> RefundResult:
        _require(refund, "Refund", "id", "status", "amount")
        return RefundResult(
            id=refund.id,
            amount_cents=refund.amount,
            currency=refund.currency,
            status=refund.status,
            payment_intent_id=refund.payment_intent,
            metadata=dict(refund.metadata or {}),
            raw_response=_to_dict(refund),
        )

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to billing exceptions.

        Raises:
            StripeCardDeclinedError: Card was declined
            StripeInsufficientFundsError: Insufficient funds / balance
            StripeNoAssociatedTransferError: Reverse transfer on a charge
                without a transfer
            StripeInvalidAccountError: Invalid Connect account
            StripeInvalidRequestError: Invalid request parameters
            StripeRateLimitError: Rate limited
            StripeTimeoutError: Request timed out
            StripeAPIUnavailableError: API unavailable
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, StripeError):
            return

        if isinstance(error, stripe.CardError):
            decline_code = getattr(error, "decline_code", None)
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )
            details = {"decline_code": decline_code} if decline_code else None
            if decline_code == "insufficient_funds":
                raise StripeInsufficientFundsError(
                    str(error.user_message or error),
                    stripe_code=error.code,
                    details=details,
                )
            raise StripeCardDeclinedError(
                str(error.user_message or error),
                stripe_code=error.code,
                details=details,
            )

        if isinstance(error, stripe.InvalidRequestError):
            message = str(error.user_message or error)
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            if StripeNoAssociatedTransferError.matches(message):
                raise StripeNoAssociatedTransferError(message, stripe_code=error.code)
            if error.code in ("balance_insufficient", "insufficient_funds"):
                raise StripeInsufficientFundsError(message, stripe_code=error.code)
            if "account" in message.lower():
                raise StripeInvalidAccountError(message, stripe_code=error.code)
            raise StripeInvalidRequestError(message, stripe_code=error.code)

        if isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code="rate_limit",
            )

        if isinstance(error, stripe.APIConnectionError):
            logger.error(
                "Connection error to Stripe",
                extra=log_context,
                exc_info=True,
            )
            if "timed out" in str(error).lower() or "timeout" in str(error).lower():
                raise StripeTimeoutError(
                    "Stripe request timed out; outcome unknown.",
                    stripe_code="timeout",
                )
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe. Please retry.",
                stripe_code="api_connection_error",
            )

        if isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise StripeInvalidRequestError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
            )

        if isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Stripe service error. Please retry.",
                stripe_code="api_error",
            )

        if isinstance(error, stripe.StripeError):
            logger.error(
                "Unexpected Stripe error",
                extra={**log_context, "error_type": type(error).__name__},
                exc_info=True,
            )
            raise StripeError(str(error), stripe_code=getattr(error, "code", None))
