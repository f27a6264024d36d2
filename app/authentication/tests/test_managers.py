"""
Tests for UserManager.

The UserManager provides:
- create_user(): Regular users (patients, brand users, affiliates)
- create_superuser(): Platform administrators

Related files:
    - managers.py: Implementation under test
    - models.py: User model that uses this manager
"""

import pytest

from authentication.models import User, UserRole


class TestUserManagerCreateUser:
    """Tests for UserManager.create_user() method."""

    def test_creates_user_with_email_and_password(self, db):
        """
        Given valid email and password
        When create_user is called
        Then a user is created with those credentials
        """
        user = User.objects.create_user(email="create@example.com", password="Secure123!")

        assert user.pk is not None
        assert user.email == "create@example.com"
        assert user.check_password("Secure123!") is True

    def test_normalizes_email_domain_to_lowercase(self, db):
        user = User.objects.create_user(email="Mixed@EXAMPLE.COM", password="pw")

        assert user.email == "Mixed@example.com"

    @pytest.mark.parametrize("email", ["", None])
    def test_raises_valueerror_when_email_missing(self, db, email):
        with pytest.raises(ValueError, match="Email"):
            User.objects.create_user(email=email, password="pw")

    def test_without_password_sets_unusable_password(self, db):
        user = User.objects.create_user(email="nopass@example.com")

        assert user.has_usable_password() is False

    def test_sets_default_flags_for_regular_user(self, db):
        user = User.objects.create_user(email="flags@example.com", password="pw")

        assert user.is_active is True
        assert user.is_staff is False
        assert user.is_superuser is False

    def test_accepts_role_and_website(self, db):
        user = User.objects.create_user(
            email="affiliate@example.com",
            password="pw",
            role=UserRole.AFFILIATE,
            website="janedoe",
        )

        assert user.role == UserRole.AFFILIATE
        assert user.website == "janedoe"


class TestUserManagerCreateSuperuser:
    """Tests for UserManager.create_superuser() method."""

    def test_creates_superuser_with_admin_role(self, db):
        admin = User.objects.create_superuser(email="ops@example.com", password="pw")

        assert admin.is_staff is True
        assert admin.is_superuser is True
        assert admin.role == UserRole.ADMIN
        assert admin.is_platform_admin

    def test_raises_valueerror_when_is_staff_is_false(self, db):
        with pytest.raises(ValueError, match="is_staff"):
            User.objects.create_superuser(
                email="bad@example.com", password="pw", is_staff=False
            )

    def test_raises_valueerror_when_is_superuser_is_false(self, db):
        with pytest.raises(ValueError, match="is_superuser"):
            User.objects.create_superuser(
                email="bad@example.com", password="pw", is_superuser=False
            )
