"""
WebhookRetryRecord model: durable backlog of webhook deliveries that failed
after their signature was verified.

A record is created the first time processing raises, replayed by the
``sweep_webhook_retries`` task on a fixed backoff schedule and deleted once
a replay succeeds. Records whose ``expires_at`` has passed are flagged as
dead letters and kept for manual inspection.

Usage:
    from payments.models import WebhookRetryRecord

    due = WebhookRetryRecord.objects.due()
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import Gateway


class WebhookRetryQuerySet(models.QuerySet):
    def due(self, now=None):
        """Live records whose next attempt time has arrived."""
        now = now or timezone.now()
        return self.filter(
            is_dead_letter=False,
            next_attempt_at__lte=now,
            expires_at__gt=now,
        ).order_by("next_attempt_at")

    def expired(self, now=None):
        """Live records past their retry window."""
        now = now or timezone.now()
        return self.filter(is_dead_letter=False, expires_at__lte=now)

    def dead_letters(self):
        return self.filter(is_dead_letter=True)


class WebhookRetryRecord(UUIDPrimaryKeyMixin, BaseModel):
    """
    A verified webhook whose processing failed and will be replayed.

    Fields:
        gateway: Provider the event came from
        event_type: Provider event type string
        external_event_id: Provider event id (or body digest when absent)
        raw_payload: Parsed JSON body as received
        last_error: Error message of the latest failure
        error_history: One entry per failed attempt
        attempt_count: Replays attempted so far (0 right after enqueue)
        next_attempt_at: When the sweeper may replay it
        expires_at: End of the retry window
        is_dead_letter / dead_lettered_at: Set once the window has passed
    """

    gateway = models.CharField(max_length=20, choices=Gateway.choices)
    event_type = models.CharField(max_length=100)
    external_event_id = models.CharField(max_length=255)
    raw_payload = models.JSONField()

    last_error = models.TextField(blank=True)
    error_history = models.JSONField(default=list, blank=True)
    attempt_count = models.PositiveIntegerField(default=0)
    next_attempt_at = models.DateTimeField(db_index=True)
    expires_at = models.DateTimeField()

    is_dead_letter = models.BooleanField(default=False, db_index=True)
    dead_lettered_at = models.DateTimeField(null=True, blank=True)

    objects = WebhookRetryQuerySet.as_manager()

    class Meta:
        ordering = ["next_attempt_at"]
        verbose_name = "Webhook Retry"
        verbose_name_plural = "Webhook Retries"
        constraints = [
            models.UniqueConstraint(
                fields=["gateway", "external_event_id"],
                name="uniq_webhook_retry_event",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.gateway}:{self.event_type} ({self.external_event_id}) attempt {self.attempt_count}"
