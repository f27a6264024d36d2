"""
Authentication application.

Provides the email-based User model with the platform role the billing
endpoints authorize against (patient, brand, admin, affiliate). Tokens
are issued by rest_framework_simplejwt; see config/urls.py.

Usage:
    from authentication.models import User, UserRole
"""
