"""
Billing app: checkout fee split, payment intents and refund approval.

This app handles:
- Five-way fee split of a paid order (platform, processor, clinician,
  pharmacy, brand)
- Order and Stripe PaymentIntent creation with destination transfers
- Refund requests filed by brands and resolved by platform admins
- Clinic balance ledger for refund coverage owed by a brand

Related apps:
    - authentication: User roles (patient, brand, admin, affiliate)
    - core: BaseModel, ServiceResult, exception hierarchy

Usage:
    from billing.services import OrderService, RefundRequestService

    result = OrderService.create_order_and_intent(params)
    result = RefundRequestService.approve_refund_request(request_id, reviewer)
"""
