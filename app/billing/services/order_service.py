"""
Order service: checkout order creation and PaymentIntent.

This module provides the OrderService class which turns a patient's
treatment selection into a pending Order with its fee split and a Stripe
PaymentIntent the frontend confirms with the returned client_secret.

Two-phase pattern:
    1. In one transaction: Order, OrderItems, ShippingAddress, visit fee
       and fee split are written (committed before any gateway call)
    2. Stripe PaymentIntent is created OUTSIDE the transaction
    3. Success: Payment(pending) is bound to the intent
       Failure: Order is marked failed, no Payment row exists

Fee split and visit fee failures never block checkout; they degrade to
zero and leave a ComputationAudit row.

Usage:
    from billing.services import OrderService, CreateOrderParams

    result = OrderService.create_order_and_intent(
        CreateOrderParams(
            user=request.user,
            treatment_id=treatment.id,
            selected_products={str(product.id): 2},
            shipping_info={"address": "1 Main St", "city": "Austin",
                           "state": "TX", "zip_code": "78701"},
        )
    )
    if result.success:
        client_secret = result.data.client_secret
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db import transaction

from billing.adapters import (
    CreatePaymentIntentParams,
    IdempotencyKeyGenerator,
    StripeAdapter,
)
from billing.exceptions import StripeError
from billing.fees import (
    FeeSplit,
    LineItem,
    compute_split,
    resolve_fee_config,
    resolve_visit_fee,
)
from billing.fees.visit_fee import NO_VISIT_FEE
from billing.models import (
    ComputationAudit,
    Order,
    OrderItem,
    Payment,
    ShippingAddress,
    Treatment,
    generate_order_number,
)
from billing.money import ZERO, quantize, to_cents
from billing.state_machines import ComputationKind
from core.exceptions import BaseApplicationError, NotFoundError, ValidationError
from core.helpers import parse_uuid
from core.services import BaseService, ServiceResult

if TYPE_CHECKING:
    from authentication.models import User
    from billing.fees import VisitFee
    from billing.models import Clinic


# Hosts shaped like affiliate.brand.domain.tld carry an affiliate slug
AFFILIATE_HOST_MIN_LABELS = 4


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CreateOrderParams:
    """
    Parameters for checkout.

    Attributes:
        user: Patient placing the order
        treatment_id: Treatment being checked out
        selected_products: Product id -> quantity
        shipping_info: Address parts (address, apartment, city, state,
            zip_code, country); None when not collected yet
        affiliate_id: Explicit referring affiliate (optional)
        host: Request host, used to infer the affiliate from its subdomain
        currency: ISO 4217 currency (defaults to BILLING_CURRENCY)
    """

    user: User
    treatment_id: Any
    selected_products: dict[Any, Any]
    shipping_info: dict[str, Any] | None = None
    affiliate_id: Any = None
    host: str | None = None
    currency: str | None = None


@dataclass
class OrderIntentResult:
    """
    Result of a successful checkout.

    Attributes:
        client_secret: Secret the frontend confirms the payment with
        order_id / order_number: Created order
        payment_intent_id: Stripe PaymentIntent (pi_xxx)
    """

    client_secret: str
    order_id: uuid.UUID
    order_number: str
    payment_intent_id: str


@dataclass
class _Selection:
    """A validated product selection line."""

    product: Any
    quantity: int
    line_total: Decimal = field(default=ZERO)


# =============================================================================
# Order Service
# =============================================================================


class OrderService(BaseService):
    """
    Service for checkout order creation.

    All methods are class methods - no instance state is maintained.

    Failure modes (ServiceResult.error_code):
        - VALIDATION_ERROR: malformed treatment id or product selection
        - NOT_FOUND: treatment does not exist
        - GATEWAY_ERROR: Stripe rejected the PaymentIntent (order is failed)
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
    # Checkout
    # =========================================================================

    @classmethod
    def create_order_and_intent(
        cls,
        params: CreateOrderParams,
    ) -> ServiceResult[OrderIntentResult]:
        """
        Create a pending Order and its Stripe PaymentIntent.

        Args:
            params: Checkout parameters

        Returns:
            ServiceResult containing OrderIntentResult on success
        """
        logger = cls.get_logger()
        logger.info(
            "Starting checkout",
            extra={
                "user_id": str(params.user.id),
                "treatment_id": str(params.treatment_id),
                "selected_count": len(params.selected_products or {}),
            },
        )

        try:
            treatment, selection = cls._validate(params)
            affiliate = cls.resolve_affiliate(params.affiliate_id, params.host)
            order = cls._create_order(params, treatment, selection, affiliate)
        except BaseApplicationError as e:
            logger.warning(
                "Checkout rejected",
                extra={"error_code": e.error_code, "error": e.message},
            )
            return ServiceResult.from_exception(e)

        try:
            intent = cls._create_intent(order)
        except StripeError as e:
            order.mark_failed()
            order.save()
            logger.error(
                "PaymentIntent creation failed, order marked failed",
                extra={
                    "order_id": str(order.id),
                    "gateway_code": e.gateway_code,
                    "error": e.message,
                },
            )
            return ServiceResult.from_exception(e)
        except Exception as e:
            order.mark_failed()
            order.save()
            logger.error(
                f"Unexpected error creating PaymentIntent: {type(e).__name__}",
                extra={"order_id": str(order.id)},
                exc_info=True,
            )
            raise

        Payment.objects.create(
            order=order,
            stripe_payment_intent_id=intent.id,
            amount=order.total_amount,
            currency=order.currency,
        )

        logger.info(
            "Checkout completed",
            extra={
                "order_id": str(order.id),
                "order_number": order.order_number,
                "payment_intent_id": intent.id,
                "total_amount": str(order.total_amount),
            },
        )

        return ServiceResult.success(
            OrderIntentResult(
                client_secret=intent.client_secret,
                order_id=order.id,
                order_number=order.order_number,
                payment_intent_id=intent.id,
            )
        )

    # =========================================================================
    # Validation
    # =========================================================================

    @classmethod
    def _validate(cls, params: CreateOrderParams) -> tuple[Treatment, list[_Selection]]:
        """
        Resolve the treatment and the selected products.

        Products are looked up among the treatment's own products; unknown
        ids are skipped. At least one valid line must remain.

        Raises:
            ValidationError: Malformed ids, quantities or empty selection
            NotFoundError: Treatment does not exist
        """
        treatment_id = parse_uuid(params.treatment_id, "treatment_id")

        if not params.selected_products or not isinstance(params.selected_products, dict):
            raise ValidationError("At least one product must be selected")

        quantities: dict[uuid.UUID, int] = {}
        for raw_id, raw_quantity in params.selected_products.items():
            product_id = parse_uuid(raw_id, "product_id")
            try:
                quantity = int(raw_quantity)
            except (TypeError, ValueError) as e:
                raise ValidationError(
                    "Quantity must be a whole number",
                    details={"product_id": str(product_id), "quantity": repr(raw_quantity)},
                ) from e
            if quantity <= 0:
                raise ValidationError(
                    "Quantity must be positive",
                    details={"product_id": str(product_id), "quantity": quantity},
                )
            quantities[product_id] = quantity

        try:
            treatment = Treatment.objects.select_related(
                "clinic", "clinic__fee_tier", "clinic__medical_company"
            ).get(id=treatment_id)
        except Treatment.DoesNotExist as e:
            raise NotFoundError(
                "Treatment not found",
                details={"treatment_id": str(treatment_id)},
            ) from e

        products = {
            product.id: product
            for product in treatment.products.filter(id__in=quantities.keys())
        }

        skipped = [str(pid) for pid in quantities if pid not in products]
        if skipped:
            cls.get_logger().warning(
                "Ignoring products not offered by treatment",
                extra={"treatment_id": str(treatment.id), "product_ids": skipped},
            )

        selection = [
            _Selection(
                product=products[pid],
                quantity=quantity,
                line_total=quantize(products[pid].price * quantity),
            )
            for pid, quantity in quantities.items()
            if pid in products
        ]
        if not selection:
            raise ValidationError(
                "None of the selected products belong to this treatment",
                details={"treatment_id": str(treatment.id)},
            )
        if sum((line.line_total for line in selection), ZERO) <= 0:
            raise ValidationError(
                "Order total must be positive",
                details={"treatment_id": str(treatment.id)},
            )

        return treatment, selection

    # =========================================================================
    # Affiliate Resolution
    # =========================================================================

    @classmethod
    def resolve_affiliate(cls, affiliate_id: Any, host: str | None) -> User | None:
        """
        Find the referring affiliate, if any.

        An explicit affiliate_id wins when it names an affiliate user.
        Otherwise a host of at least four labels
        (affiliate.brand.domain.tld) is matched on its first label against
        User.website. Never fails checkout.
        """
        from authentication.models import User, UserRole

        logger = cls.get_logger()
        affiliates = User.objects.filter(role=UserRole.AFFILIATE, is_active=True)

        if affiliate_id:
            try:
                affiliate = affiliates.filter(id=int(affiliate_id)).first()
            except (TypeError, ValueError):
                affiliate = None
            if affiliate is not None:
                return affiliate
            logger.info(
                "Ignoring unknown affiliate id",
                extra={"affiliate_id": str(affiliate_id)},
            )

        if not host:
            return None

        hostname = host.split(":", 1)[0].strip().lower()
        labels = hostname.split(".")
        if len(labels) < AFFILIATE_HOST_MIN_LABELS or not labels[0]:
            return None

        affiliate = affiliates.filter(website=labels[0]).first()
        if affiliate is None:
            logger.info(
                "No affiliate matches host",
                extra={"host": hostname, "slug": labels[0]},
            )
        return affiliate

    # =========================================================================
    # Order Creation
    # =========================================================================

    @classmethod
    def _create_order(
        cls,
        params: CreateOrderParams,
        treatment: Treatment,
        selection: list[_Selection],
        affiliate: User | None,
    ) -> Order:
        """Write the order, its lines, address and amounts in one transaction."""
        clinic = treatment.clinic
        currency = (params.currency or settings.BILLING_CURRENCY).upper()
        subtotal = quantize(sum((line.line_total for line in selection), ZERO))
        shipping_info = params.shipping_info or {}

        with cls.atomic():
            order = Order.objects.create(
                order_number=generate_order_number(),
                user=params.user,
                clinic=clinic,
                affiliate=affiliate,
                treatment=treatment,
                currency=currency,
                subtotal_amount=subtotal,
                total_amount=subtotal,
            )

            OrderItem.objects.bulk_create(
                [
                    OrderItem(
                        order=order,
                        product=line.product,
                        quantity=line.quantity,
                        unit_price=line.product.price,
                        total_price=line.line_total,
                        wholesale_cost_per_unit=line.product.wholesale_cost,
                    )
                    for line in selection
                ]
            )

            if all(shipping_info.get(name) for name in ShippingAddress.REQUIRED_FIELDS):
                ShippingAddress.objects.create(
                    order=order,
                    address=shipping_info["address"],
                    apartment=shipping_info.get("apartment") or "",
                    city=shipping_info["city"],
                    state=str(shipping_info["state"]).strip().upper(),
                    zip_code=shipping_info["zip_code"],
                    country=shipping_info.get("country") or "US",
                )

            visit_fee = cls._visit_fee(order, treatment, clinic, shipping_info.get("state"))
            order.visit_type = visit_fee.visit_type
            order.visit_fee_amount = visit_fee.amount
            order.total_amount = quantize(subtotal + visit_fee.amount)

            split, platform_fee_percent = cls._fee_split(order, clinic, selection)
            order.platform_fee_percent = platform_fee_percent
            order.platform_fee_amount = split.platform_fee_amount
            order.stripe_amount = split.stripe_amount
            order.doctor_amount = split.doctor_amount
            order.pharmacy_wholesale_amount = split.pharmacy_wholesale_amount
            order.brand_amount = split.brand_amount
            order.save()

        return order

    @classmethod
    def _visit_fee(
        cls,
        order: Order,
        treatment: Treatment,
        clinic: Clinic | None,
        patient_state: str | None,
    ) -> VisitFee:
        try:
            # Savepoint keeps a failed lookup from poisoning the checkout transaction
            with transaction.atomic():
                return resolve_visit_fee(treatment, clinic, patient_state)
        except Exception as e:
            cls._record_degraded(
                order,
                ComputationKind.VISIT_FEE,
                e,
                {"treatment_id": str(treatment.id), "state": patient_state},
            )
            return NO_VISIT_FEE

    @classmethod
    def _fee_split(
        cls,
        order: Order,
        clinic: Clinic | None,
        selection: list[_Selection],
    ) -> tuple[FeeSplit, Decimal]:
        line_items = [
            LineItem(
                product_id=line.product.id,
                quantity=line.quantity,
                wholesale_cost_per_unit=line.product.wholesale_cost,
            )
            for line in selection
        ]
        try:
            with transaction.atomic():
                fee_config = resolve_fee_config(clinic)
                split = compute_split(order.total_amount, line_items, fee_config)
        except Exception as e:
            cls._record_degraded(
                order,
                ComputationKind.FEE_SPLIT,
                e,
                {
                    "total_amount": str(order.total_amount),
                    "clinic_id": str(clinic.id) if clinic else None,
                },
            )
            return FeeSplit.zero(), ZERO
        return split, fee_config.platform_fee_percent

    @classmethod
    def _record_degraded(
        cls,
        order: Order,
        kind: str,
        error: Exception,
        context: dict[str, Any],
    ) -> None:
        """Log a degraded computation and leave an audit row for correction."""
        cls.get_logger().warning(
            "Computation degraded to zero",
            extra={
                "order_id": str(order.id),
                "kind": kind,
                "error_type": type(error).__name__,
                "error": str(error),
            },
        )
        ComputationAudit.objects.create(
            order=order,
            kind=kind,
            error_message=str(error),
            context=context,
        )

    # =========================================================================
    # Gateway
    # =========================================================================

    @classmethod
    def _create_intent(cls, order: Order):
        """
        Create the PaymentIntent for the order total.

        The brand residual is routed to the clinic's connected account via
        transfer_data when both exist.
        """
        clinic = order.clinic
        transfer_data = None
        if clinic is not None and clinic.has_connected_account and order.brand_amount > 0:
            transfer_data = {
                "destination": clinic.stripe_account_id,
                "amount": to_cents(order.brand_amount),
            }

        metadata = {
            "order_id": str(order.id),
            "order_number": order.order_number,
            "user_id": str(order.user_id),
            "clinic_id": str(order.clinic_id) if order.clinic_id else "",
            "treatment_id": str(order.treatment_id) if order.treatment_id else "",
            "platform_fee_percent": str(order.platform_fee_percent),
            "platform_fee_amount": str(order.platform_fee_amount),
            "stripe_amount": str(order.stripe_amount),
            "doctor_amount": str(order.doctor_amount),
            "pharmacy_wholesale_amount": str(order.pharmacy_wholesale_amount),
            "brand_amount": str(order.brand_amount),
            "visit_type": order.visit_type or "",
            "visit_fee_amount": str(order.visit_fee_amount),
        }

        return cls.get_stripe_adapter().create_payment_intent(
            CreatePaymentIntentParams(
                amount_cents=to_cents(order.total_amount),
                currency=order.currency.lower(),
                idempotency_key=IdempotencyKeyGenerator.generate(
                    "create_intent", order.id
                ),
                metadata=metadata,
                transfer_data=transfer_data,
            )
        )
