"""
Tests for UserManager.
"""

import pytest

from authentication.models import User


class TestCreateUser:
    def test_creates_user_with_password(self, db):
        user = User.objects.create_user(email="Ada@Example.COM", password="s3cure-pass")

        assert user.email == "Ada@example.com"
        assert user.check_password("s3cure-pass")
        assert not user.is_staff
        assert not user.is_superuser

    def test_without_password(self, db):
        user = User.objects.create_user(email="nopass@example.com")

        assert not user.has_usable_password()

    def test_email_required(self, db):
        with pytest.raises(ValueError, match="Email"):
            User.objects.create_user(email="")


class TestCreateSuperuser:
    def test_creates_staff_superuser(self, db):
        admin = User.objects.create_superuser(email="admin@example.com", password="admin-pass")

        assert admin.is_staff
        assert admin.is_superuser

    @pytest.mark.parametrize("flag", ["is_staff", "is_superuser"])
    def test_flags_must_be_true(self, db, flag):
        with pytest.raises(ValueError):
            User.objects.create_superuser(email="admin@example.com", password="admin-pass", **{flag: False})
