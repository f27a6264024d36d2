"""
DRF serializers for the billing API.

Request serializers validate shape only; business rules (treatment
membership, refund eligibility, tenant scoping) live in the services.

Related files:
    - services/: OrderService, RefundRequestService
    - views.py: Billing API views

Usage:
    serializer = CreateOrderSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
"""

from __future__ import annotations

from rest_framework import serializers

from authentication.models import User
from billing.models import ClinicBalance, RefundRequest


# =============================================================================
# Checkout
# =============================================================================


class ShippingInfoSerializer(serializers.Serializer):
    """
    Delivery address parts.

    All fields are optional; an address is stored only when address, city,
    state and zip_code are all present.
    """

    address = serializers.CharField(max_length=255, required=False, allow_blank=True)
    apartment = serializers.CharField(max_length=100, required=False, allow_blank=True)
    city = serializers.CharField(max_length=100, required=False, allow_blank=True)
    state = serializers.CharField(max_length=2, required=False, allow_blank=True)
    zip_code = serializers.CharField(max_length=10, required=False, allow_blank=True)
    country = serializers.CharField(max_length=2, required=False, allow_blank=True)


class CreateOrderSerializer(serializers.Serializer):
    """
    Checkout request.

    Fields:
        treatment_id: Treatment being purchased
        selected_products: Product id -> quantity
        shipping_info: Delivery address (optional)
        affiliate_id: Referring affiliate user id (optional)
        currency: ISO 4217 code, defaults to the platform currency
    """

    treatment_id = serializers.UUIDField()
    selected_products = serializers.DictField(
        child=serializers.IntegerField(min_value=1),
        allow_empty=False,
    )
    shipping_info = ShippingInfoSerializer(required=False, allow_null=True)
    affiliate_id = serializers.IntegerField(required=False, allow_null=True)
    currency = serializers.CharField(min_length=3, max_length=3, required=False)


class OrderIntentSerializer(serializers.Serializer):
    """Checkout response with the secret the frontend confirms payment with."""

    client_secret = serializers.CharField(read_only=True)
    order_id = serializers.UUIDField(read_only=True)
    order_number = serializers.CharField(read_only=True)
    payment_intent_id = serializers.CharField(read_only=True)


# =============================================================================
# Refund Requests
# =============================================================================


class UserSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ["id", "email", "first_name", "last_name"]
        read_only_fields = fields


class RefundRequestSerializer(serializers.ModelSerializer):
    """
    Refund request for API responses.

    Fields:
        order_number: Display number of the refunded order
        amount: Full order total being refunded
        brand_coverage_amount: Part of the refund the brand was never credited
        requested_by / reviewed_by: User summaries
    """

    order_id = serializers.UUIDField(read_only=True)
    order_number = serializers.CharField(source="order.order_number", read_only=True)
    clinic_id = serializers.UUIDField(read_only=True, allow_null=True)
    requested_by = UserSummarySerializer(read_only=True)
    reviewed_by = UserSummarySerializer(read_only=True, allow_null=True)

    class Meta:
        model = RefundRequest
        fields = [
            "id",
            "order_id",
            "order_number",
            "clinic_id",
            "amount",
            "brand_coverage_amount",
            "reason",
            "status",
            "requested_by",
            "reviewed_by",
            "review_notes",
            "reviewed_at",
            "stripe_refund_id",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class CreateRefundRequestSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    reason = serializers.CharField(
        max_length=2000,
        required=False,
        allow_blank=True,
        default="",
    )


class ReviewRefundRequestSerializer(serializers.Serializer):
    review_notes = serializers.CharField(
        max_length=2000,
        required=False,
        allow_blank=True,
        allow_null=True,
    )


class ClinicBalanceSerializer(serializers.ModelSerializer):
    class Meta:
        model = ClinicBalance
        fields = [
            "id",
            "clinic_id",
            "amount",
            "type",
            "status",
            "stripe_transfer_id",
            "stripe_refund_id",
            "notes",
            "paid_at",
            "created_at",
        ]
        read_only_fields = fields


class RefundApprovalSerializer(serializers.Serializer):
    """Approval response: the resolved request and what moved at the gateway."""

    refund_request = RefundRequestSerializer(read_only=True)
    stripe_refund_id = serializers.CharField(read_only=True, allow_null=True)
    coverage_amount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        read_only=True,
    )
    clinic_balance = ClinicBalanceSerializer(read_only=True, allow_null=True)
    already_refunded = serializers.BooleanField(read_only=True)
