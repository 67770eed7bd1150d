"""
AuditEntry model: append-only log of payment decisions.

Entries are written by ``payments.services.audit.AuditService`` only. They
are never updated or deleted; both operations raise.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import AuditAction, Gateway


class AuditEntry(UUIDPrimaryKeyMixin, BaseModel):
    """
    One payment-relevant decision.

    Fields:
        gateway: Provider involved (blank for gateway-agnostic actions)
        user: Affected user, when known (ids from event metadata are stored
            as-is, without a foreign key constraint)
        transaction: Affected transaction, when one exists
        action: What happened (AuditAction)
        amount / currency: Money involved, when any
        external_event_id: Provider event id that triggered the entry
        metadata: Free-form context (event type, reason, credits, ...)
    """

    gateway = models.CharField(max_length=20, choices=Gateway.choices, blank=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="payment_audit_entries",
        db_constraint=False,
    )
    transaction = models.ForeignKey(
        "payments.PaymentTransaction",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="audit_entries",
    )
    action = models.CharField(max_length=40, choices=AuditAction.choices, db_index=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    currency = models.CharField(max_length=3, blank=True)
    external_event_id = models.CharField(max_length=255, blank=True, db_index=True)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Audit Entry"
        verbose_name_plural = "Audit Entries"
        indexes = [
            models.Index(fields=["user", "-created_at"], name="audit_user_created_idx"),
            models.Index(fields=["gateway", "action"], name="audit_gateway_action_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.created_at:%Y-%m-%d %H:%M:%S} {self.gateway or '-'} {self.action}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Audit entries are append-only")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Audit entries are append-only")
