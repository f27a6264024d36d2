import uuid
from decimal import Decimal

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


def _id():
    return (
        "id",
        models.UUIDField(
            default=uuid.uuid4,
            editable=False,
            help_text="Unique identifier for this record",
            primary_key=True,
            serialize=False,
        ),
    )


def _timestamps():
    return [
        (
            "created_at",
            models.DateTimeField(
                auto_now_add=True,
                db_index=True,
                help_text="Timestamp when this record was created",
            ),
        ),
        (
            "updated_at",
            models.DateTimeField(
                auto_now=True,
                help_text="Timestamp when this record was last modified",
            ),
        ),
    ]


def _version():
    return (
        "version",
        models.PositiveIntegerField(
            default=1,
            help_text="Version for optimistic locking - incremented on each save",
        ),
    )


def _money(name, **kwargs):
    kwargs.setdefault("default", Decimal("0.00"))
    return (name, models.DecimalField(decimal_places=2, max_digits=12, **kwargs))


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        # =====================================================================
        # Configuration
        # =====================================================================
        migrations.CreateModel(
            name="MedicalCompany",
            fields=[
                _id(),
                *_timestamps(),
                ("name", models.CharField(max_length=200)),
                (
                    "visit_type_fees",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Visit fee per visit type (decimal strings)",
                    ),
                ),
            ],
            options={
                "verbose_name": "Medical Company",
                "verbose_name_plural": "Medical Companies",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="FeeTier",
            fields=[
                _id(),
                *_timestamps(),
                ("name", models.CharField(max_length=100, unique=True)),
                (
                    "platform_fee_percent",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        help_text="Platform fee percentage for clinics on this tier",
                        max_digits=5,
                        null=True,
                    ),
                ),
            ],
            options={
                "verbose_name": "Fee Tier",
                "verbose_name_plural": "Fee Tiers",
                "ordering": ["name"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("platform_fee_percent__isnull", True))
                        | models.Q(
                            ("platform_fee_percent__gte", 0),
                            ("platform_fee_percent__lte", 100),
                        ),
                        name="fee_tier_percent_range",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Clinic",
            fields=[
                _id(),
                *_timestamps(),
                ("name", models.CharField(max_length=200)),
                ("slug", models.SlugField(max_length=100, unique=True)),
                (
                    "stripe_account_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Stripe Connect account ID (acct_xxx)",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "visit_type_fees",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Clinic override of visit fee per visit type",
                    ),
                ),
                (
                    "fee_tier",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="clinics",
                        to="billing.feetier",
                    ),
                ),
                (
                    "medical_company",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="clinics",
                        to="billing.medicalcompany",
                    ),
                ),
            ],
            options={
                "verbose_name": "Clinic",
                "verbose_name_plural": "Clinics",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="GlobalFees",
            fields=[
                _id(),
                *_timestamps(),
                (
                    "platform_fee_percent",
                    models.DecimalField(
                        decimal_places=2, default=Decimal("0.00"), max_digits=5
                    ),
                ),
                (
                    "stripe_fee_percent",
                    models.DecimalField(
                        decimal_places=2, default=Decimal("0.00"), max_digits=5
                    ),
                ),
                _money("doctor_flat_fee"),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={
                "verbose_name": "Global Fees",
                "verbose_name_plural": "Global Fees",
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            ("platform_fee_percent__gte", 0),
                            ("platform_fee_percent__lte", 100),
                            ("stripe_fee_percent__gte", 0),
                            ("stripe_fee_percent__lte", 100),
                            ("doctor_flat_fee__gte", 0),
                        ),
                        name="global_fees_non_negative",
                    ),
                ],
            },
        ),
        # =====================================================================
        # Catalog
        # =====================================================================
        migrations.CreateModel(
            name="Product",
            fields=[
                _id(),
                *_timestamps(),
                ("name", models.CharField(max_length=200)),
                ("price", models.DecimalField(decimal_places=2, max_digits=12)),
                _money("wholesale_cost", help_text="Pharmacy wholesale cost per unit"),
                ("is_active", models.BooleanField(default=True)),
                (
                    "clinic",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="products",
                        to="billing.clinic",
                    ),
                ),
            ],
            options={
                "verbose_name": "Product",
                "verbose_name_plural": "Products",
                "ordering": ["name"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("price__gte", 0), ("wholesale_cost__gte", 0)),
                        name="product_amounts_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Treatment",
            fields=[
                _id(),
                *_timestamps(),
                ("name", models.CharField(max_length=200)),
                (
                    "visit_type_by_state",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Visit type per two-letter state code",
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                (
                    "clinic",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="treatments",
                        to="billing.clinic",
                    ),
                ),
                (
                    "products",
                    models.ManyToManyField(
                        blank=True,
                        related_name="treatments",
                        to="billing.product",
                    ),
                ),
            ],
            options={
                "verbose_name": "Treatment",
                "verbose_name_plural": "Treatments",
                "ordering": ["name"],
            },
        ),
        # =====================================================================
        # Orders
        # =====================================================================
        migrations.CreateModel(
            name="Order",
            fields=[
                _id(),
                _version(),
                *_timestamps(),
                (
                    "order_number",
                    models.CharField(
                        help_text="Display order number (ORD-YYYYMMDD-HHMMSS-XXXXXX)",
                        max_length=32,
                        unique=True,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("paid", "Paid"),
                            ("failed", "Failed"),
                            ("shipped", "Shipped"),
                            ("delivered", "Delivered"),
                            ("cancelled", "Cancelled"),
                            ("refunded", "Refunded"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current order status (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("currency", models.CharField(default="USD", max_length=3)),
                _money("subtotal_amount"),
                _money("visit_fee_amount"),
                _money("total_amount", help_text="subtotal_amount + visit_fee_amount"),
                (
                    "platform_fee_percent",
                    models.DecimalField(
                        decimal_places=2, default=Decimal("0.00"), max_digits=5
                    ),
                ),
                _money("platform_fee_amount"),
                _money("stripe_amount", help_text="Processor fee"),
                _money("doctor_amount", help_text="Flat clinician fee"),
                _money("pharmacy_wholesale_amount"),
                _money("brand_amount", help_text="Residual credited to the brand"),
                (
                    "visit_type",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("synchronous", "Synchronous"),
                            ("asynchronous", "Asynchronous"),
                        ],
                        max_length=20,
                        null=True,
                    ),
                ),
                (
                    "external_case_id",
                    models.CharField(blank=True, max_length=255, null=True),
                ),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                (
                    "user",
                    models.ForeignKey(
                        help_text="Patient who placed the order",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "clinic",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to="billing.clinic",
                    ),
                ),
                (
                    "affiliate",
                    models.ForeignKey(
                        blank=True,
                        help_text="Affiliate credited with the referral",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="referred_orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "treatment",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="orders",
                        to="billing.treatment",
                    ),
                ),
            ],
            options={
                "verbose_name": "Order",
                "verbose_name_plural": "Orders",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["clinic", "status"], name="order_clinic_status_idx"
                    ),
                    models.Index(
                        fields=["user", "created_at"], name="order_user_created_idx"
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            ("subtotal_amount__gte", 0),
                            ("visit_fee_amount__gte", 0),
                            ("total_amount__gte", 0),
                            ("brand_amount__gte", 0),
                        ),
                        name="order_amounts_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderItem",
            fields=[
                _id(),
                *_timestamps(),
                ("quantity", models.PositiveIntegerField()),
                _money("unit_price"),
                _money("total_price"),
                _money("wholesale_cost_per_unit"),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="billing.order",
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="order_items",
                        to="billing.product",
                    ),
                ),
            ],
            options={
                "verbose_name": "Order Item",
                "verbose_name_plural": "Order Items",
                "ordering": ["created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("quantity__gt", 0)),
                        name="order_item_quantity_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ShippingAddress",
            fields=[
                _id(),
                *_timestamps(),
                ("address", models.CharField(max_length=255)),
                ("apartment", models.CharField(blank=True, default="", max_length=100)),
                ("city", models.CharField(max_length=100)),
                ("state", models.CharField(max_length=2)),
                ("zip_code", models.CharField(max_length=10)),
                ("country", models.CharField(default="US", max_length=2)),
                (
                    "order",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="shipping_address",
                        to="billing.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Shipping Address",
                "verbose_name_plural": "Shipping Addresses",
            },
        ),
        # =====================================================================
        # Payments & Refunds
        # =====================================================================
        migrations.CreateModel(
            name="Payment",
            fields=[
                _id(),
                _version(),
                *_timestamps(),
                (
                    "stripe_payment_intent_id",
                    models.CharField(
                        help_text="Stripe PaymentIntent ID (pi_xxx)",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "stripe_refund_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe Refund ID (re_xxx)",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("captured", "Captured"),
                            ("refunded", "Refunded"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current payment status (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("currency", models.CharField(default="USD", max_length=3)),
                _money("refunded_amount"),
                ("captured_at", models.DateTimeField(blank=True, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                (
                    "order",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payment",
                        to="billing.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment",
                "verbose_name_plural": "Payments",
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gte", 0), ("refunded_amount__gte", 0)),
                        name="payment_amounts_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="RefundRequest",
            fields=[
                _id(),
                _version(),
                *_timestamps(),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                _money(
                    "brand_coverage_amount",
                    help_text="Portion the platform absorbs if the brand cannot be charged",
                ),
                ("reason", models.TextField(blank=True, default="")),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("approved", "Approved"),
                            ("denied", "Denied"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current request status (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("review_notes", models.TextField(blank=True, null=True)),
                ("reviewed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "stripe_refund_id",
                    models.CharField(blank=True, max_length=255, null=True),
                ),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refund_requests",
                        to="billing.order",
                    ),
                ),
                (
                    "clinic",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refund_requests",
                        to="billing.clinic",
                    ),
                ),
                (
                    "requested_by",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refund_requests",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "reviewed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="reviewed_refund_requests",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Refund Request",
                "verbose_name_plural": "Refund Requests",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["clinic", "status"],
                        name="refund_req_clinic_status_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status", "pending")),
                        fields=("order",),
                        name="refund_request_one_pending_per_order",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("amount__gte", 0)),
                        name="refund_request_amount_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ClinicBalance",
            fields=[
                _id(),
                *_timestamps(),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                (
                    "type",
                    models.CharField(
                        choices=[
                            ("refund_debt", "Refund Debt"),
                            ("payment", "Payment"),
                            ("adjustment", "Adjustment"),
                        ],
                        default="refund_debt",
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("paid", "Paid"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "stripe_transfer_id",
                    models.CharField(blank=True, max_length=255, null=True),
                ),
                (
                    "stripe_refund_id",
                    models.CharField(blank=True, max_length=255, null=True),
                ),
                ("description", models.TextField(blank=True, default="")),
                ("notes", models.TextField(blank=True, default="")),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                (
                    "clinic",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="balances",
                        to="billing.clinic",
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="clinic_balances",
                        to="billing.order",
                    ),
                ),
                (
                    "refund_request",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="clinic_balances",
                        to="billing.refundrequest",
                    ),
                ),
            ],
            options={
                "verbose_name": "Clinic Balance",
                "verbose_name_plural": "Clinic Balances",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["clinic", "status"], name="clinic_balance_status_idx"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ComputationAudit",
            fields=[
                _id(),
                *_timestamps(),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("fee_split", "Fee Split"),
                            ("visit_fee", "Visit Fee"),
                        ],
                        max_length=20,
                    ),
                ),
                ("error_message", models.TextField()),
                ("context", models.JSONField(blank=True, default=dict)),
                ("resolved", models.BooleanField(default=False)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="computation_audits",
                        to="billing.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Computation Audit",
                "verbose_name_plural": "Computation Audits",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["kind", "resolved"], name="computation_audit_kind_idx"
                    ),
                ],
            },
        ),
    ]
