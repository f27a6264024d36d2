"""
Billing admin configuration.

Configuration models (clinics, fees, catalog) are editable. Orders,
payments and refund requests are inspected here but change state only
through the services. Clinic balance lines and computation audits are
read-only records.
"""

from django.contrib import admin

from billing.models import (
    Clinic,
    ClinicBalance,
    ComputationAudit,
    FeeTier,
    GlobalFees,
    MedicalCompany,
    Order,
    OrderItem,
    Payment,
    Product,
    RefundRequest,
    ShippingAddress,
    Treatment,
)


# =============================================================================
# Configuration
# =============================================================================


@admin.register(MedicalCompany)
class MedicalCompanyAdmin(admin.ModelAdmin):
    list_display = ["name", "created_at"]
    search_fields = ["name"]


@admin.register(FeeTier)
class FeeTierAdmin(admin.ModelAdmin):
    list_display = ["name", "platform_fee_percent"]
    search_fields = ["name"]


@admin.register(Clinic)
class ClinicAdmin(admin.ModelAdmin):
    list_display = ["name", "slug", "stripe_account_id", "fee_tier", "medical_company"]
    list_filter = ["fee_tier"]
    search_fields = ["name", "slug", "stripe_account_id"]
    prepopulated_fields = {"slug": ("name",)}


@admin.register(GlobalFees)
class GlobalFeesAdmin(admin.ModelAdmin):
    list_display = [
        "platform_fee_percent",
        "stripe_fee_percent",
        "doctor_flat_fee",
        "is_active",
        "created_at",
    ]
    list_filter = ["is_active"]


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ["name", "clinic", "price", "wholesale_cost", "is_active"]
    list_filter = ["is_active"]
    search_fields = ["name"]


@admin.register(Treatment)
class TreatmentAdmin(admin.ModelAdmin):
    list_display = ["name", "clinic", "is_active"]
    list_filter = ["is_active"]
    search_fields = ["name"]
    filter_horizontal = ["products"]


# =============================================================================
# Orders & Payments
# =============================================================================


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = [
        "product",
        "quantity",
        "unit_price",
        "total_price",
        "wholesale_cost_per_unit",
    ]
    can_delete = False


class ShippingAddressInline(admin.StackedInline):
    model = ShippingAddress
    extra = 0
    can_delete = False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Orders with their fee split.

    Status is FSM-protected and not editable here.
    """

    list_display = [
        "order_number",
        "user",
        "clinic",
        "status",
        "total_amount",
        "brand_amount",
        "created_at",
    ]
    list_filter = ["status", "clinic"]
    search_fields = ["order_number", "user__email", "external_case_id"]
    raw_id_fields = ["user", "affiliate", "treatment", "clinic"]
    inlines = [OrderItemInline, ShippingAddressInline]
    ordering = ["-created_at"]
    readonly_fields = [
        "id",
        "order_number",
        "status",
        "subtotal_amount",
        "visit_fee_amount",
        "total_amount",
        "platform_fee_percent",
        "platform_fee_amount",
        "stripe_amount",
        "doctor_amount",
        "pharmacy_wholesale_amount",
        "brand_amount",
        "visit_type",
        "paid_at",
        "refunded_at",
        "version",
        "created_at",
        "updated_at",
    ]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = [
        "stripe_payment_intent_id",
        "order",
        "status",
        "amount",
        "currency",
        "refunded_amount",
        "created_at",
    ]
    list_filter = ["status", "currency"]
    search_fields = ["stripe_payment_intent_id", "stripe_refund_id", "order__order_number"]
    raw_id_fields = ["order"]
    readonly_fields = [
        "id",
        "status",
        "stripe_payment_intent_id",
        "stripe_refund_id",
        "amount",
        "currency",
        "refunded_amount",
        "captured_at",
        "refunded_at",
        "version",
        "created_at",
        "updated_at",
    ]


@admin.register(RefundRequest)
class RefundRequestAdmin(admin.ModelAdmin):
    """Refund requests are resolved through the API, not the admin."""

    list_display = [
        "id",
        "order",
        "clinic",
        "status",
        "amount",
        "brand_coverage_amount",
        "requested_by",
        "reviewed_by",
        "created_at",
    ]
    list_filter = ["status", "clinic"]
    search_fields = ["order__order_number", "stripe_refund_id"]
    raw_id_fields = ["order", "clinic", "requested_by", "reviewed_by"]
    readonly_fields = [
        "id",
        "status",
        "amount",
        "brand_coverage_amount",
        "reviewed_by",
        "reviewed_at",
        "stripe_refund_id",
        "version",
        "created_at",
        "updated_at",
    ]


# =============================================================================
# Read-only Records
# =============================================================================


class ReadOnlyAdmin(admin.ModelAdmin):
    """Records written only by the billing services."""

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(ClinicBalance)
class ClinicBalanceAdmin(ReadOnlyAdmin):
    list_display = [
        "clinic",
        "order",
        "amount",
        "type",
        "status",
        "stripe_transfer_id",
        "created_at",
    ]
    list_filter = ["status", "type", "clinic"]
    search_fields = ["stripe_transfer_id", "stripe_refund_id", "order__order_number"]
    ordering = ["-created_at"]


@admin.register(ComputationAudit)
class ComputationAuditAdmin(ReadOnlyAdmin):
    list_display = ["order", "kind", "error_message", "resolved", "created_at"]
    list_filter = ["kind", "resolved"]
    search_fields = ["order__order_number", "error_message"]
    ordering = ["-created_at"]
