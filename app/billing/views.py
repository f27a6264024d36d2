"""
API views for billing.

Thin wrappers over the billing services: request serializers validate
shape, services enforce the rules, and failed ServiceResults are mapped
to HTTP by core.views.error_response.

URL Structure:
    /api/v1/billing/orders/                               POST
    /api/v1/billing/refund-requests/                      GET, POST
    /api/v1/billing/refund-requests/order/{order_id}/     GET
    /api/v1/billing/refund-requests/{id}/approve/         POST
    /api/v1/billing/refund-requests/{id}/deny/            POST

Error Mapping:
    VALIDATION_ERROR  -> 400
    PERMISSION_DENIED -> 403
    NOT_FOUND         -> 404
    INVALID_STATE     -> 409
    GATEWAY_ERROR     -> 502
"""

from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from billing.permissions import IsBrandOrPlatformAdmin, IsPatient, IsPlatformAdmin
from billing.serializers import (
    CreateOrderSerializer,
    CreateRefundRequestSerializer,
    OrderIntentSerializer,
    RefundApprovalSerializer,
    RefundRequestSerializer,
    ReviewRefundRequestSerializer,
)
from billing.services import CreateOrderParams, OrderService, RefundRequestService
from core.views import error_response


class CreateOrderView(APIView):
    """
    Checkout: create an order and its Stripe PaymentIntent.

    POST /api/v1/billing/orders/

    Response:
        201 Created: Order created, client_secret returned
        400 Bad Request: Invalid treatment or product selection
        404 Not Found: Treatment does not exist
        502 Bad Gateway: Stripe rejected the PaymentIntent (order failed)
    """

    permission_classes = [IsAuthenticated, IsPatient]

    @extend_schema(
        operation_id="create_order",
        summary="Create order and payment intent",
        description=(
            "Create a pending order for the selected treatment products, "
            "compute its fee split and create a Stripe PaymentIntent. The "
            "affiliate is taken from affiliate_id or inferred from the host."
        ),
        request=CreateOrderSerializer,
        responses={
            201: OpenApiResponse(
                response=OrderIntentSerializer,
                description="Order created",
            ),
            400: OpenApiResponse(description="Validation error"),
            404: OpenApiResponse(description="Treatment not found"),
            502: OpenApiResponse(description="Payment gateway error"),
        },
        tags=["Billing - Orders"],
    )
    def post(self, request):
        serializer = CreateOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = OrderService.create_order_and_intent(
            CreateOrderParams(
                user=request.user,
                treatment_id=data["treatment_id"],
                selected_products=data["selected_products"],
                shipping_info=data.get("shipping_info"),
                affiliate_id=data.get("affiliate_id"),
                host=request.get_host(),
                currency=data.get("currency"),
            )
        )
        if not result.success:
            return error_response(result)

        return Response(
            OrderIntentSerializer(result.data).data,
            status=status.HTTP_201_CREATED,
        )


class RefundRequestListCreateView(APIView):
    """
    List or file refund requests.

    GET  /api/v1/billing/refund-requests/?clinic_id=&status=
    POST /api/v1/billing/refund-requests/

    Brand users only see and file requests for their own clinic.
    """

    permission_classes = [IsAuthenticated, IsBrandOrPlatformAdmin]

    @extend_schema(
        operation_id="list_refund_requests",
        summary="List refund requests",
        parameters=[
            OpenApiParameter(
                name="clinic_id",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                description="Clinic UUID or 'all' (platform admins only)",
            ),
            OpenApiParameter(
                name="status",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                description="pending, approved or denied",
            ),
        ],
        responses={
            200: RefundRequestSerializer(many=True),
            400: OpenApiResponse(description="Invalid filter"),
        },
        tags=["Billing - Refund Requests"],
    )
    def get(self, request):
        result = RefundRequestService.list_refund_requests(
            request.user,
            clinic_id=request.query_params.get("clinic_id"),
            status=request.query_params.get("status"),
        )
        if not result.success:
            return error_response(result)
        return Response(RefundRequestSerializer(result.data, many=True).data)

    @extend_schema(
        operation_id="create_refund_request",
        summary="Request a refund",
        description="File a refund request for the full total of a captured order.",
        request=CreateRefundRequestSerializer,
        responses={
            201: RefundRequestSerializer,
            400: OpenApiResponse(description="Validation error"),
            404: OpenApiResponse(description="Order or payment not found"),
            409: OpenApiResponse(
                description="Order refunded, payment not captured, or request pending"
            ),
        },
        tags=["Billing - Refund Requests"],
    )
    def post(self, request):
        serializer = CreateRefundRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = RefundRequestService.create_refund_request(
            order_id=serializer.validated_data["order_id"],
            reason=serializer.validated_data.get("reason"),
            requested_by=request.user,
        )
        if not result.success:
            return error_response(result)

        return Response(
            RefundRequestSerializer(result.data).data,
            status=status.HTTP_201_CREATED,
        )


class RefundRequestByOrderView(APIView):
    """
    Latest refund request for an order.

    GET /api/v1/billing/refund-requests/order/{order_id}/

    Returns null when no request was filed.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_refund_request_for_order",
        summary="Get refund request for order",
        responses={
            200: RefundRequestSerializer,
            404: OpenApiResponse(description="Order not found"),
        },
        tags=["Billing - Refund Requests"],
    )
    def get(self, request, order_id):
        result = RefundRequestService.get_refund_request_for_order(order_id, request.user)
        if not result.success:
            return error_response(result)
        if result.data is None:
            return Response(None)
        return Response(RefundRequestSerializer(result.data).data)


class ApproveRefundRequestView(APIView):
    """
    Approve a refund request and refund the order through Stripe.

    POST /api/v1/billing/refund-requests/{id}/approve/

    Response:
        200 OK: Refund issued, order refunded
        404 Not Found: Request does not exist
        409 Conflict: Request already resolved or order not refundable
        502 Bad Gateway: Stripe refund failed (nothing changed)
    """

    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    @extend_schema(
        operation_id="approve_refund_request",
        summary="Approve refund request",
        request=ReviewRefundRequestSerializer,
        responses={
            200: RefundApprovalSerializer,
            404: OpenApiResponse(description="Refund request not found"),
            409: OpenApiResponse(description="Refund request not pending"),
            502: OpenApiResponse(description="Payment gateway error"),
        },
        tags=["Billing - Refund Requests"],
    )
    def post(self, request, request_id):
        serializer = ReviewRefundRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = RefundRequestService.approve_refund_request(
            request_id=request_id,
            reviewer=request.user,
            review_notes=serializer.validated_data.get("review_notes"),
        )
        if not result.success:
            return error_response(result)
        return Response(RefundApprovalSerializer(result.data).data)


class DenyRefundRequestView(APIView):
    """
    Deny a refund request. No funds move.

    POST /api/v1/billing/refund-requests/{id}/deny/
    """

    permission_classes = [IsAuthenticated, IsPlatformAdmin]

    @extend_schema(
        operation_id="deny_refund_request",
        summary="Deny refund request",
        request=ReviewRefundRequestSerializer,
        responses={
            200: RefundRequestSerializer,
            404: OpenApiResponse(description="Refund request not found"),
            409: OpenApiResponse(description="Refund request not pending"),
        },
        tags=["Billing - Refund Requests"],
    )
    def post(self, request, request_id):
        serializer = ReviewRefundRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = RefundRequestService.deny_refund_request(
            request_id=request_id,
            reviewer=request.user,
            review_notes=serializer.validated_data.get("review_notes"),
        )
        if not result.success:
            return error_response(result)
        return Response(RefundRequestSerializer(result.data).data)
