"""
Authentication models.

This module defines the user model the billing core reads identity from:
- User: email-based login with a platform role

Roles:
    patient   - places orders
    brand     - administers a clinic storefront, files refund requests
    admin     - platform administrator, approves or denies refunds
    affiliate - refers patients through a storefront subdomain

Related files:
    - managers.py: Custom user manager for email-based creation
    - billing.models.Clinic: the tenant a brand user administers
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from authentication.managers import UserManager


class UserRole(models.TextChoices):
    """Platform roles used for authorization in billing endpoints."""

    PATIENT = "patient", "Patient"
    BRAND = "brand", "Brand"
    ADMIN = "admin", "Admin"
    AFFILIATE = "affiliate", "Affiliate"


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    Fields:
        email: Primary identifier, unique, used for login
        first_name / last_name: Display name
        role: Platform role (see UserRole)
        clinic: Clinic administered by a brand user
        website: Storefront subdomain slug of an affiliate
        is_active / is_staff: Django account flags

    Usage:
        brand_user = User.objects.create_user(
            email="owner@clinic.com",
            password="securepassword",
            role=UserRole.BRAND,
            clinic=clinic,
        )
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )
    first_name = models.CharField(max_length=150, blank=True)
    last_name = models.CharField(max_length=150, blank=True)

    role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.PATIENT,
        db_index=True,
        help_text="Platform role used for authorization",
    )
    clinic = models.ForeignKey(
        "billing.Clinic",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="users",
        help_text="Clinic administered by this user (brand role)",
    )
    website = models.SlugField(
        max_length=100,
        null=True,
        blank=True,
        unique=True,
        help_text="Storefront subdomain slug for affiliate attribution",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )

    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"

    def __str__(self):
        return self.email

    @property
    def is_platform_admin(self) -> bool:
        return self.role == UserRole.ADMIN or self.is_superuser

    @property
    def is_brand(self) -> bool:
        return self.role == UserRole.BRAND

    @property
    def is_affiliate(self) -> bool:
        return self.role == UserRole.AFFILIATE
