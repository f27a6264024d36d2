"""
Tenant configuration models read by the billing core.

- MedicalCompany: telehealth provider group with default visit fees
- FeeTier: pricing tier overriding the platform fee percentage
- Clinic: a brand's storefront, optionally with a Stripe connected account
- GlobalFees: process-wide fee defaults

These rows are reference data for checkout and refunds; the billing
services never modify them.
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class MedicalCompany(UUIDPrimaryKeyMixin, BaseModel):
    """
    Provider group supplying clinicians to clinics.

    Fields:
        name: Display name
        visit_type_fees: Fee per visit type, e.g.
            {"synchronous": "30.00", "asynchronous": "15.00"}
    """

    name = models.CharField(max_length=200)
    visit_type_fees = models.JSONField(
        default=dict,
        blank=True,
        help_text="Visit fee per visit type (decimal strings)",
    )

    class Meta:
        ordering = ["name"]
        verbose_name = "Medical Company"
        verbose_name_plural = "Medical Companies"

    def __str__(self) -> str:
        return self.name


class FeeTier(UUIDPrimaryKeyMixin, BaseModel):
    """
    Pricing tier assigned to clinics.

    A null platform_fee_percent means the tier does not override the
    global default.
    """

    name = models.CharField(max_length=100, unique=True)
    platform_fee_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Platform fee percentage for clinics on this tier",
    )

    class Meta:
        ordering = ["name"]
        verbose_name = "Fee Tier"
        verbose_name_plural = "Fee Tiers"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(platform_fee_percent__isnull=True)
                | models.Q(
                    platform_fee_percent__gte=0, platform_fee_percent__lte=100
                ),
                name="fee_tier_percent_range",
            ),
        ]

    def __str__(self) -> str:
        return self.name


class Clinic(UUIDPrimaryKeyMixin, BaseModel):
    """
    A brand's clinic storefront (the tenant).

    Fields:
        name / slug: Display name and storefront identifier
        stripe_account_id: Connected sub-account (acct_xxx); receives the
            brand residual at checkout and funds refund coverage
        fee_tier: Optional pricing tier
        medical_company: Provider group used for visit fee fallback
        visit_type_fees: Clinic-level visit fee overrides
    """

    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=100, unique=True)

    stripe_account_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Stripe Connect account ID (acct_xxx)",
    )

    fee_tier = models.ForeignKey(
        FeeTier,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="clinics",
    )
    medical_company = models.ForeignKey(
        MedicalCompany,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="clinics",
    )
    visit_type_fees = models.JSONField(
        default=dict,
        blank=True,
        help_text="Clinic override of visit fee per visit type",
    )

    class Meta:
        ordering = ["name"]
        verbose_name = "Clinic"
        verbose_name_plural = "Clinics"

    def __str__(self) -> str:
        return self.name

    @property
    def has_connected_account(self) -> bool:
        return bool(self.stripe_account_id)


class GlobalFees(UUIDPrimaryKeyMixin, BaseModel):
    """
    Process-wide fee defaults.

    The most recently created active row wins. Checkout reads it once per
    order through billing.fees.resolve_fee_config().

    Fields:
        platform_fee_percent: Default platform cut (percent of total)
        stripe_fee_percent: Processor fee (percent of total)
        doctor_flat_fee: Flat clinician fee per order
        is_active: Whether this row is eligible
    """

    platform_fee_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    stripe_fee_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    doctor_flat_fee = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Global Fees"
        verbose_name_plural = "Global Fees"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(
                    platform_fee_percent__gte=0,
                    platform_fee_percent__lte=100,
                    stripe_fee_percent__gte=0,
                    stripe_fee_percent__lte=100,
                    doctor_flat_fee__gte=0,
                ),
                name="global_fees_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"GlobalFees(platform={self.platform_fee_percent}%, "
            f"stripe={self.stripe_fee_percent}%, doctor={self.doctor_flat_fee})"
        )

    @classmethod
    def current(cls) -> GlobalFees | None:
        """Return the active fee row, or None when unconfigured."""
        return cls.objects.filter(is_active=True).order_by("-created_at").first()
