"""
URL configuration for the billing app.

Routes:
    - POST /orders/ - Checkout (order + PaymentIntent)
    - GET/POST /refund-requests/ - List / file refund requests
    - GET /refund-requests/order/<order_id>/ - Latest request for an order
    - POST /refund-requests/<request_id>/approve/ - Approve (platform admin)
    - POST /refund-requests/<request_id>/deny/ - Deny (platform admin)

All routes are prefixed with /api/v1/billing/ when included in the main URLconf.
"""

from django.urls import path

from billing.views import (
    ApproveRefundRequestView,
    CreateOrderView,
    DenyRefundRequestView,
    RefundRequestByOrderView,
    RefundRequestListCreateView,
)

app_name = "billing"

urlpatterns = [
    path("orders/", CreateOrderView.as_view(), name="order_create"),
    path(
        "refund-requests/",
        RefundRequestListCreateView.as_view(),
        name="refund_request_list",
    ),
    path(
        "refund-requests/order/<str:order_id>/",
        RefundRequestByOrderView.as_view(),
        name="refund_request_for_order",
    ),
    path(
        "refund-requests/<str:request_id>/approve/",
        ApproveRefundRequestView.as_view(),
        name="refund_request_approve",
    ),
    path(
        "refund-requests/<str:request_id>/deny/",
        DenyRefundRequestView.as_view(),
        name="refund_request_deny",
    ),
]
