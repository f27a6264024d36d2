"""
Priceable catalog models.

- Product: a dispensable item with retail price and pharmacy wholesale cost
- Treatment: the product/questionnaire bundle a patient checks out with
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class Product(UUIDPrimaryKeyMixin, BaseModel):
    """
    A product dispensed by the fulfilling pharmacy.

    Fields:
        price: Retail price per unit charged to the patient
        wholesale_cost: Pharmacy cost per unit, deducted from the brand share
    """

    name = models.CharField(max_length=200)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    wholesale_cost = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Pharmacy wholesale cost per unit",
    )
    clinic = models.ForeignKey(
        "billing.Clinic",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="products",
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]
        verbose_name = "Product"
        verbose_name_plural = "Products"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(price__gte=0, wholesale_cost__gte=0),
                name="product_amounts_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return self.name


class Treatment(UUIDPrimaryKeyMixin, BaseModel):
    """
    Product bundle with its intake questionnaire configuration.

    Fields:
        clinic: Storefront selling the treatment
        products: Products the patient may select
        visit_type_by_state: Visit type required per patient state, e.g.
            {"CA": "synchronous", "TX": "asynchronous"}
    """

    name = models.CharField(max_length=200)
    clinic = models.ForeignKey(
        "billing.Clinic",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="treatments",
    )
    products = models.ManyToManyField(
        Product,
        blank=True,
        related_name="treatments",
    )
    visit_type_by_state = models.JSONField(
        default=dict,
        blank=True,
        help_text="Visit type per two-letter state code",
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]
        verbose_name = "Treatment"
        verbose_name_plural = "Treatments"

    def __str__(self) -> str:
        return self.name
