"""
Tests for the billing app.

This package contains test modules for:
- test_models.py: Order, Payment, RefundRequest, ClinicBalance model tests
- test_fee_calculator.py / test_fee_resolution.py: Fee split and fee lookup
- test_order_service.py: Checkout (order + PaymentIntent)
- test_refund_request_service.py: Refund request workflow
- test_views.py: API endpoint tests

Usage:
    pytest billing/tests/
    pytest billing/tests/test_refund_request_service.py
"""
