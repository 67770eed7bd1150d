"""
Subscription model for per-user membership lifecycle.

Each user has at most one Subscription row. It is created by the first
successful activation event from any gateway and afterwards updated in
place: renewals extend the period, a gateway switch swaps the provider id,
cancellation flips the state. Rows are never deleted.

Usage:
    from payments.models import Subscription
    from payments.state_machines import Gateway

    subscription = Subscription.objects.select_for_update().get(user=user)
    subscription.set_gateway_subscription_id(Gateway.RAZORPAY, "sub_xxx")
    subscription.activate(period_start, period_end)
    subscription.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import BillingPeriod, Gateway, SubscriptionState

# Provider subscription id column per gateway. Exactly one may be populated.
GATEWAY_ID_FIELDS = {
    Gateway.RAZORPAY: "razorpay_subscription_id",
    Gateway.STRIPE: "stripe_subscription_id",
    Gateway.PAYSTACK: "paystack_subscription_code",
}


def _single_gateway_id_condition() -> Q:
    fields = list(GATEWAY_ID_FIELDS.values())
    condition = Q()
    for i, first in enumerate(fields):
        for second in fields[i + 1 :]:
            condition &= ~(Q(**{f"{first}__isnull": False}) & Q(**{f"{second}__isnull": False}))
    return condition


class Subscription(UUIDPrimaryKeyMixin, BaseModel):
    """
    A user's membership subscription.

    Uses django-fsm for state management and a version column that is
    incremented on every save so concurrent writers can be detected.

    State Flow:
        ACTIVE -> PAST_DUE (pending/halted charge)
        PAST_DUE -> ACTIVE (successful renewal)
        ACTIVE/PAST_DUE -> CANCELLED
        any -> ACTIVE (activation, including a switch of gateway)

    Fields:
        user: Owner (one subscription per user)
        plan: Plan currently subscribed to
        status: Current FSM state
        billing_period: monthly or yearly
        current_period_start/end: Paid period boundaries
        razorpay_subscription_id / stripe_subscription_id /
        paystack_subscription_code: Provider ids, mutually exclusive
        cancel_at_period_end: Cancellation requested for the end of the cycle
        cancelled_at: When the subscription entered CANCELLED
        version: Incremented on every save
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="subscription",
        help_text="User owning this subscription",
    )
    plan = models.ForeignKey(
        "payments.Plan",
        on_delete=models.PROTECT,
        related_name="subscriptions",
        help_text="Plan currently subscribed to",
    )

    status = FSMField(
        default=SubscriptionState.ACTIVE,
        choices=SubscriptionState.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the subscription (managed by FSM)",
    )
    billing_period = models.CharField(
        max_length=10,
        choices=BillingPeriod.choices,
        default=BillingPeriod.MONTHLY,
    )

    current_period_start = models.DateTimeField(help_text="Start of current billing period")
    current_period_end = models.DateTimeField(help_text="End of current billing period")

    # ==========================================================================
    # Provider ids
    # ==========================================================================

    razorpay_subscription_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Razorpay subscription id (sub_xxx)",
    )
    stripe_subscription_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe subscription id (sub_xxx)",
    )
    paystack_subscription_code = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Paystack subscription code (SUB_xxx)",
    )

    cancel_at_period_end = models.BooleanField(
        default=False,
        help_text="Whether the subscription will cancel at period end",
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Subscription"
        verbose_name_plural = "Subscriptions"
        indexes = [
            models.Index(fields=["status", "current_period_end"], name="subscription_status_end_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=_single_gateway_id_condition(),
                name="subscription_single_gateway_id",
            ),
        ]

    def __str__(self) -> str:
        return f"Subscription({self.id}, {self.status}, {self.billing_period})"

    def save(self, *args, **kwargs):
        """Save with version auto-increment for optimistic locking."""
        is_update = self.pk and not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    # ==========================================================================
    # Gateway id handling
    # ==========================================================================

    @property
    def gateway(self) -> str | None:
        """The gateway whose subscription id is populated, if any."""
        for gateway, field_name in GATEWAY_ID_FIELDS.items():
            if getattr(self, field_name):
                return gateway
        return None

    @property
    def gateway_subscription_id(self) -> str | None:
        gateway = self.gateway
        return getattr(self, GATEWAY_ID_FIELDS[gateway]) if gateway else None

    def set_gateway_subscription_id(self, gateway: str, value: str | None) -> None:
        """Store ``value`` under ``gateway`` and clear every other provider id."""
        for other, field_name in GATEWAY_ID_FIELDS.items():
            setattr(self, field_name, value if other == gateway else None)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source="*", target=SubscriptionState.ACTIVE)
    def activate(self, period_start, period_end):
        """
        Start a fresh paid period.

        Transition: any -> ACTIVE
        """
        self.current_period_start = period_start
        self.current_period_end = period_end
        self.cancel_at_period_end = False
        self.cancelled_at = None

    @transition(field=status, source="*", target=SubscriptionState.ACTIVE)
    def renew(self, period_end):
        """
        Extend the paid period after a successful recurring charge.

        Transition: any -> ACTIVE
        """
        self.current_period_start = timezone.now()
        self.current_period_end = period_end

    @transition(
        field=status,
        source=[SubscriptionState.ACTIVE, SubscriptionState.PAST_DUE],
        target=SubscriptionState.PAST_DUE,
    )
    def mark_past_due(self):
        """
        Flag a failed or pending recurring charge.

        Transition: ACTIVE/PAST_DUE -> PAST_DUE
        """

    @transition(
        field=status,
        source=[SubscriptionState.ACTIVE, SubscriptionState.PAST_DUE],
        target=SubscriptionState.CANCELLED,
    )
    def cancel(self):
        """
        Terminate the subscription.

        Transition: ACTIVE/PAST_DUE -> CANCELLED
        """
        self.cancel_at_period_end = False
        self.cancelled_at = timezone.now()

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionState.ACTIVE

    @property
    def is_cancelled(self) -> bool:
        return self.status == SubscriptionState.CANCELLED
