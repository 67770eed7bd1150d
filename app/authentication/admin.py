"""
Django admin configuration for the User model.

Credit balance and plan fields are shown read-only: they are owned by the
payments engine and must only change through the credit ledger and the
subscription service.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from authentication.models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Admin configuration for the email-keyed User model."""

    list_display = (
        "email",
        "name",
        "plan_type",
        "credits",
        "is_active",
        "is_staff",
        "date_joined",
    )
    list_filter = ("is_active", "is_staff", "is_superuser", "plan_type")
    search_fields = ("email", "name")
    ordering = ("-date_joined",)

    readonly_fields = ("credits", "plan_type", "plan_expires_at", "date_joined", "last_login")

    fieldsets = (
        (None, {"fields": ("email", "name", "password")}),
        ("Status", {"fields": ("is_active", "is_staff", "is_superuser")}),
        ("Billing", {"fields": ("credits", "plan_type", "plan_expires_at")}),
        ("Permissions", {"fields": ("groups", "user_permissions")}),
        ("Important dates", {"fields": ("date_joined", "last_login")}),
    )

    add_fieldsets = (
        (
            None,
            {
                "classes": ("wide",),
                "fields": ("email", "password1", "password2"),
            },
        ),
    )
