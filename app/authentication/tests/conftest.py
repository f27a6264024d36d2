"""
Test configuration and fixtures for authentication tests.

Usage:
    def test_example(patient, authenticated_client):
        response = authenticated_client.get("/health/")
"""

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from authentication.models import User, UserRole
from authentication.tests.factories import UserFactory


@pytest.fixture
def patient(db):
    """Create a patient user."""
    return UserFactory(role=UserRole.PATIENT)


@pytest.fixture
def superuser(db):
    """Create a superuser with admin privileges."""
    return User.objects.create_superuser(
        email="superuser@example.com",
        password="SuperPass123!",
    )


@pytest.fixture
def api_client():
    """Unauthenticated DRF API client."""
    return APIClient()


@pytest.fixture
def authenticated_client(patient):
    """API client authenticated as the patient via a JWT access token."""
    client = APIClient()
    refresh = RefreshToken.for_user(patient)
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh.access_token}")
    return client
