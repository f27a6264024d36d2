"""
Permission classes for the billing API.

- IsPatient: checkout is open to patients only
- IsBrandOrPlatformAdmin: refund requests are filed and listed by brand
  administrators (and platform admins)
- IsPlatformAdmin: refund requests are resolved by platform admins only

Tenant scoping (a brand only sees its own clinic) is enforced again in
RefundRequestService so non-HTTP callers get the same rules.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import permissions

from authentication.models import UserRole

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView


class IsPatient(permissions.BasePermission):
    message = "Only patients can place orders."

    def has_permission(self, request: Request, view: APIView) -> bool:
        user = request.user
        return bool(
            user and user.is_authenticated and user.role == UserRole.PATIENT
        )


class IsBrandOrPlatformAdmin(permissions.BasePermission):
    message = "Only brand or platform administrators can manage refund requests."

    def has_permission(self, request: Request, view: APIView) -> bool:
        user = request.user
        return bool(
            user
            and user.is_authenticated
            and (user.is_platform_admin or user.is_brand)
        )


class IsPlatformAdmin(permissions.BasePermission):
    message = "Only platform administrators can review refund requests."

    def has_permission(self, request: Request, view: APIView) -> bool:
        user = request.user
        return bool(user and user.is_authenticated and user.is_platform_admin)
