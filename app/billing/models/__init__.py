"""
Billing domain models.

- Clinic, FeeTier, MedicalCompany, GlobalFees: tenant and fee configuration
- Product, Treatment: priceable catalog
- Order, OrderItem, ShippingAddress: checkout attempt and its lines
- Payment: gateway PaymentIntent bound 1:1 to an Order
- RefundRequest: brand-filed refund awaiting admin review
- ClinicBalance: append-only ledger of refund coverage owed by a clinic
- ComputationAudit: degraded fee split / visit fee records
"""

from billing.models.audit import ComputationAudit
from billing.models.catalog import Product, Treatment
from billing.models.clinic import Clinic, FeeTier, GlobalFees, MedicalCompany
from billing.models.clinic_balance import ClinicBalance
from billing.models.order import Order, OrderItem, ShippingAddress, generate_order_number
from billing.models.payment import Payment
from billing.models.refund_request import RefundRequest

__all__ = [
    "Clinic",
    "ClinicBalance",
    "ComputationAudit",
    "FeeTier",
    "GlobalFees",
    "MedicalCompany",
    "Order",
    "OrderItem",
    "Payment",
    "Product",
    "RefundRequest",
    "ShippingAddress",
    "Treatment",
    "generate_order_number",
]
