"""
Refund model for money returned to a customer.

A Refund is written once per refund or chargeback event and is immutable
afterwards (the single exception is a pending gateway refund settling,
which is applied with a queryset update by RefundService).

``transaction`` is a one-to-one link: a given PaymentTransaction can be
refunded at most once, enforced by the database rather than a read-check.

Usage:
    from payments.models import Refund
    from payments.state_machines import RefundReason

    refund = Refund.objects.create(
        transaction=txn,
        user=txn.user,
        amount=txn.amount,
        currency=txn.currency,
        gateway=txn.gateway,
        gateway_refund_id="rfnd_xxx",
        reason=RefundReason.GATEWAY_REFUND,
        initiated_by="gateway",
    )
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import Gateway, RefundReason, RefundState


class Refund(UUIDPrimaryKeyMixin, BaseModel):
    """
    Money returned on a PaymentTransaction.

    Fields:
        transaction: The refunded transaction (unique)
        user: Owner of the transaction
        amount / currency: Refunded amount in major units
        gateway / gateway_refund_id: Provider identity of the refund/dispute
        reason: gateway_refund, chargeback or admin_initiated
        initiated_by: "gateway" or the admin's email
        state: pending or completed
        credits_reversed: Credits actually removed from the balance
    """

    transaction = models.OneToOneField(
        "payments.PaymentTransaction",
        on_delete=models.PROTECT,
        related_name="refund",
        help_text="Transaction being refunded (at most one refund each)",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="refunds",
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3)
    gateway = models.CharField(max_length=20, choices=Gateway.choices)
    gateway_refund_id = models.CharField(max_length=255, null=True, blank=True)
    reason = models.CharField(max_length=20, choices=RefundReason.choices)
    initiated_by = models.CharField(max_length=255, default="gateway")
    state = models.CharField(
        max_length=20,
        choices=RefundState.choices,
        default=RefundState.COMPLETED,
        db_index=True,
    )
    credits_reversed = models.PositiveIntegerField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Refund"
        verbose_name_plural = "Refunds"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gte=0),
                name="refund_amount_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"Refund({self.id}, {self.reason}, {self.amount} {self.currency})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Refund records are immutable once created")
        super().save(*args, **kwargs)
