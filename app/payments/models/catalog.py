"""
Catalog models: what a user can buy.

- Plan: a membership tier sold as a monthly or yearly subscription
- CreditPackage: a one-off bundle of prepaid credits

Pricing rules live outside this app; these rows only carry what the engine
needs to record a purchase (price, currency, credits, provider plan ids).
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import BillingPeriod


class Plan(UUIDPrimaryKeyMixin, BaseModel):
    """
    A subscription plan.

    Fields:
        name: Machine name, copied to User.plan_type on activation
        display_name: Human-readable name for receipts
        monthly_price / yearly_price / currency: List prices
        included_credits: Credits granted on each activation
        razorpay_plan_id / razorpay_yearly_plan_id: Razorpay plan ids
        is_active: Whether new subscriptions may be created
    """

    name = models.CharField(max_length=50, unique=True)
    display_name = models.CharField(max_length=100)
    monthly_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    yearly_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0"))
    currency = models.CharField(max_length=3, default="INR")
    included_credits = models.PositiveIntegerField(default=0)
    razorpay_plan_id = models.CharField(max_length=255, blank=True)
    razorpay_yearly_plan_id = models.CharField(max_length=255, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["monthly_price"]

    def __str__(self) -> str:
        return self.display_name or self.name

    def price_for(self, billing_period: str) -> Decimal:
        if billing_period == BillingPeriod.YEARLY:
            return self.yearly_price
        return self.monthly_price

    def razorpay_plan_id_for(self, billing_period: str) -> str:
        if billing_period == BillingPeriod.YEARLY:
            return self.razorpay_yearly_plan_id
        return self.razorpay_plan_id


class CreditPackage(UUIDPrimaryKeyMixin, BaseModel):
    """A purchasable bundle of prepaid credits."""

    name = models.CharField(max_length=100)
    credits = models.PositiveIntegerField()
    price = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="INR")
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["price"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(credits__gt=0),
                name="credit_package_credits_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.credits} credits)"
