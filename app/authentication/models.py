"""
Authentication models.

User is the email-keyed account. It owns three pieces of state that are
written exclusively by the payments engine:

- credits: prepaid balance (see payments.ledger.CreditLedger)
- plan_type / plan_expires_at: effective membership
  (see payments.services.subscriptions.SubscriptionService)

Related files:
    - managers.py: Custom user manager for email-based creation
"""

from django.conf import settings
from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from authentication.managers import UserManager


def default_plan_type():
    return settings.PAYMENTS_DEFAULT_PLAN_TYPE


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using email as the primary identifier.

    Fields:
        email: Primary identifier, unique, used for login
        name: Display name used on receipts and emails
        is_active: Cleared when the account is suspended (e.g. chargeback)
        is_staff: Admin site access and admin-only payment endpoints
        credits: Prepaid credit balance, never negative
        plan_type: Effective plan name ("free" when no active subscription)
        plan_expires_at: End of the paid period backing plan_type
        date_joined / updated_at: Timestamps
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )
    name = models.CharField(
        max_length=150,
        blank=True,
        help_text="Display name used on receipts and emails",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )

    # Payment-owned state
    credits = models.PositiveIntegerField(
        default=0,
        help_text="Prepaid credit balance (mutated only by the credit ledger)",
    )
    plan_type = models.CharField(
        max_length=50,
        default=default_plan_type,
        help_text="Effective plan name",
    )
    plan_expires_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the paid period backing plan_type ends",
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
        ordering = ["-date_joined"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(credits__gte=0),
                name="user_credits_non_negative",
            ),
        ]

    def __str__(self):
        return self.email

    def get_full_name(self):
        return self.name or self.email

    def get_short_name(self):
        return self.name.split(" ")[0] if self.name else self.email.split("@")[0]

    @property
    def has_paid_plan(self):
        """True while a non-default plan is in effect."""
        return self.plan_type != settings.PAYMENTS_DEFAULT_PLAN_TYPE
