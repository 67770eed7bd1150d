"""
PaymentTransaction model: the durable record of every captured charge.

The ``(gateway, gateway_transaction_id)`` unique constraint is the engine's
idempotency boundary. Inserting the row is how an event claims the right to
mutate credits or subscription state; a second delivery of the same event
hits IntegrityError and is treated as already processed.

Usage:
    from payments.models import PaymentTransaction

    txn = PaymentTransaction.objects.get(
        gateway=Gateway.RAZORPAY,
        gateway_transaction_id="pay_xxx",
    )
    txn.mark_refunded()
    txn.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import (
    BillingPeriod,
    Gateway,
    TransactionStatus,
    TransactionType,
)


class PaymentTransaction(UUIDPrimaryKeyMixin, BaseModel):
    """
    One captured payment (subscription charge or credits purchase).

    Created exactly once, already COMPLETED. Afterwards the only permitted
    change is a single status flip to REFUNDED or DISPUTED. Never deleted.

    Fields:
        user: Paying user
        type: subscription or credits
        gateway / gateway_transaction_id: Provider identity of the charge
        gateway_subscription_id: Provider subscription id for renewals
        amount / currency: Charged amount in major units
        status: completed, refunded or disputed (FSM)
        credits_awarded: Credits granted because of this charge
        subscription / plan / credit_package: What was bought
        billing_period: Period purchased for subscription charges
        completed_at: When the provider captured the funds
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payment_transactions",
    )
    type = models.CharField(max_length=20, choices=TransactionType.choices)
    gateway = models.CharField(max_length=20, choices=Gateway.choices)
    gateway_transaction_id = models.CharField(
        max_length=255,
        help_text="Provider payment id (pay_xxx, pi_xxx, Paystack reference)",
    )
    gateway_subscription_id = models.CharField(max_length=255, null=True, blank=True)

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3)

    status = FSMField(
        default=TransactionStatus.COMPLETED,
        choices=TransactionStatus.choices,
        db_index=True,
        protected=True,
    )

    credits_awarded = models.PositiveIntegerField(null=True, blank=True)

    subscription = models.ForeignKey(
        "payments.Subscription",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transactions",
    )
    plan = models.ForeignKey(
        "payments.Plan",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="transactions",
    )
    credit_package = models.ForeignKey(
        "payments.CreditPackage",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="transactions",
    )
    billing_period = models.CharField(
        max_length=10,
        choices=BillingPeriod.choices,
        blank=True,
    )
    description = models.CharField(max_length=255, blank=True)

    completed_at = models.DateTimeField()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment Transaction"
        verbose_name_plural = "Payment Transactions"
        indexes = [
            models.Index(fields=["user", "-created_at"], name="transaction_user_created_idx"),
            models.Index(fields=["gateway_subscription_id"], name="transaction_gateway_sub_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["gateway", "gateway_transaction_id"],
                name="uniq_gateway_transaction",
            ),
            models.CheckConstraint(
                condition=models.Q(amount__gte=0),
                name="transaction_amount_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.gateway}:{self.gateway_transaction_id} {self.amount} {self.currency} ({self.status})"

    @transition(
        field=status,
        source=TransactionStatus.COMPLETED,
        target=TransactionStatus.REFUNDED,
    )
    def mark_refunded(self):
        """Transition: COMPLETED -> REFUNDED"""

    @transition(
        field=status,
        source=TransactionStatus.COMPLETED,
        target=TransactionStatus.DISPUTED,
    )
    def mark_disputed(self):
        """Transition: COMPLETED -> DISPUTED"""

    @property
    def is_refundable(self) -> bool:
        return self.status == TransactionStatus.COMPLETED
