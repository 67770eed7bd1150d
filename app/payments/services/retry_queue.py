"""
Retry queue for webhook deliveries whose processing failed.

Lifecycle of a WebhookRetryRecord:
    queue_failed_webhook  -> attempt_count=0, next_attempt_at=now+1m
    sweep (replay fails)  -> attempt_count+=1, next_attempt_at per backoff
    sweep (replay works)  -> record deleted
    sweep (expired)       -> is_dead_letter=True, kept for inspection
    requeue_dead_letter   -> live again with a fresh retry window
    purge_dead_letters    -> dead letters past retention deleted

Backoff comes from ``PAYMENTS_WEBHOOK_RETRY_INTERVALS_MINUTES`` (default
1, 5, 15, 30, 60; the last interval repeats) and the retry window from
``PAYMENTS_WEBHOOK_RETRY_EXPIRY_HOURS`` (default 24).

Usage:
    from payments.services import RetryQueueService

    RetryQueueService.queue_failed_webhook(
        gateway=Gateway.RAZORPAY,
        event_type="payment.captured",
        external_event_id="evt_xxx",
        payload=payload,
        error=str(exc),
    )
    stats = RetryQueueService.sweep()
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.services import BaseService, ServiceResult

from payments.models import WebhookRetryRecord

if TYPE_CHECKING:
    from datetime import datetime
    from typing import Any


# Most recent entries kept in error_history
MAX_ERROR_HISTORY = 20


@dataclass
class SweepStats:
    """Counters for one sweeper run."""

    dead_lettered: int = 0
    replayed: int = 0
    failed: int = 0
    skipped: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "dead_lettered": self.dead_lettered,
            "replayed": self.replayed,
            "failed": self.failed,
            "skipped": self.skipped,
        }


class RetryQueueService(BaseService):
    """Durable backlog of failed webhook deliveries."""

    # =========================================================================
    # Schedule
    # =========================================================================

    @staticmethod
    def retry_intervals() -> list[int]:
        return [int(minutes) for minutes in settings.PAYMENTS_WEBHOOK_RETRY_INTERVALS_MINUTES]

    @classmethod
    def backoff(cls, attempt_count: int) -> timedelta:
        """Delay before attempt ``attempt_count + 1``."""
        intervals = cls.retry_intervals()
        return timedelta(minutes=intervals[min(attempt_count, len(intervals) - 1)])

    @staticmethod
    def retry_window() -> timedelta:
        return timedelta(hours=settings.PAYMENTS_WEBHOOK_RETRY_EXPIRY_HOURS)

    @staticmethod
    def _history_entry(error: str, attempt: int, now: datetime) -> dict[str, Any]:
        return {"at": now.isoformat(), "attempt": attempt, "error": error[:2000]}

    # =========================================================================
    # Enqueue
    # =========================================================================

    @classmethod
    def queue_failed_webhook(
        cls,
        *,
        gateway: str,
        event_type: str,
        external_event_id: str,
        payload: dict[str, Any],
        error: str,
    ) -> WebhookRetryRecord:
        """
        Persist a failed delivery for later replay.

        When the provider redelivers an event that is already queued, no
        second record is created; the new error is appended to the history
        of the existing one.
        """
        now = timezone.now()
        with cls.atomic():
            record, created = WebhookRetryRecord.objects.select_for_update().get_or_create(
                gateway=gateway,
                external_event_id=external_event_id,
                defaults={
                    "event_type": event_type,
                    "raw_payload": payload,
                    "last_error": error,
                    "error_history": [cls._history_entry(error, 0, now)],
                    "attempt_count": 0,
                    "next_attempt_at": now + cls.backoff(0),
                    "expires_at": now + cls.retry_window(),
                },
            )
            if not created:
                record.last_error = error
                record.error_history = [
                    *record.error_history,
                    cls._history_entry(error, record.attempt_count, now),
                ][-MAX_ERROR_HISTORY:]
                record.save(update_fields=["last_error", "error_history", "updated_at"])

        cls.get_logger().warning(
            "Webhook queued for retry" if created else "Webhook already queued, error appended",
            extra={
                "gateway": gateway,
                "event_type": event_type,
                "event_id": external_event_id,
                "retry_record_id": str(record.id),
                "next_attempt_at": record.next_attempt_at.isoformat(),
            },
        )
        return record

    # =========================================================================
    # Replay
    # =========================================================================

    @classmethod
    def replay(cls, record: WebhookRetryRecord) -> bool:
        """
        Re-deliver one record through the normal webhook pipeline.

        Must be called with the record locked. On success the record is
        deleted; on failure the attempt is counted and rescheduled.

        Returns:
            True if the replay succeeded
        """
        from payments.webhooks.handlers import WebhookProcessor

        try:
            with transaction.atomic():
                outcome = WebhookProcessor.process_payload(
                    record.gateway,
                    record.raw_payload,
                    event_id=record.external_event_id,
                )
        except Exception as e:
            now = timezone.now()
            record.attempt_count += 1
            record.last_error = str(e) or e.__class__.__name__
            record.error_history = [
                *record.error_history,
                cls._history_entry(record.last_error, record.attempt_count, now),
            ][-MAX_ERROR_HISTORY:]
            record.next_attempt_at = now + cls.backoff(record.attempt_count)
            record.save(
                update_fields=[
                    "attempt_count",
                    "last_error",
                    "error_history",
                    "next_attempt_at",
                    "updated_at",
                ]
            )
            cls.get_logger().exception(
                "Webhook replay failed",
                extra={
                    "gateway": record.gateway,
                    "event_id": record.external_event_id,
                    "attempt": record.attempt_count,
                    "next_attempt_at": record.next_attempt_at.isoformat(),
                },
            )
            return False

        cls.get_logger().info(
            "Webhook replay succeeded",
            extra={
                "gateway": record.gateway,
                "event_id": record.external_event_id,
                "attempt": record.attempt_count + 1,
                "outcome": outcome.status,
            },
        )
        record.delete()
        return True

    @classmethod
    def mark_dead_letters(cls, now: datetime | None = None) -> int:
        """Flag every live record past its retry window."""
        now = now or timezone.now()
        expired = list(
            WebhookRetryRecord.objects.expired(now).values_list("gateway", "external_event_id", "attempt_count")
        )
        if not expired:
            return 0

        count = WebhookRetryRecord.objects.expired(now).update(
            is_dead_letter=True,
            dead_lettered_at=now,
            updated_at=now,
        )
        for gateway, event_id, attempts in expired:
            cls.get_logger().error(
                "Webhook moved to dead letter",
                extra={"gateway": gateway, "event_id": event_id, "attempts": attempts},
            )
        return count

    @classmethod
    def sweep(cls, now: datetime | None = None, batch_size: int | None = None) -> SweepStats:
        """
        Dead-letter expired records, then replay the due ones.

        Each record is locked with ``SELECT ... FOR UPDATE SKIP LOCKED`` so
        overlapping sweeper runs never replay the same record twice.
        """
        now = now or timezone.now()
        batch_size = batch_size or settings.PAYMENTS_WEBHOOK_RETRY_BATCH_SIZE
        stats = SweepStats(dead_lettered=cls.mark_dead_letters(now))

        due_ids = list(WebhookRetryRecord.objects.due(now).values_list("pk", flat=True)[:batch_size])
        for record_id in due_ids:
            with transaction.atomic():
                record = (
                    WebhookRetryRecord.objects.select_for_update(skip_locked=True)
                    .filter(pk=record_id, is_dead_letter=False, next_attempt_at__lte=now)
                    .first()
                )
                if record is None:
                    stats.skipped += 1
                    continue
                if cls.replay(record):
                    stats.replayed += 1
                else:
                    stats.failed += 1

        if due_ids or stats.dead_lettered:
            cls.get_logger().info("Webhook retry sweep finished", extra=stats.as_dict())
        return stats

    # =========================================================================
    # Dead letters
    # =========================================================================

    @classmethod
    def requeue_dead_letter(cls, record_id) -> ServiceResult[WebhookRetryRecord]:
        """Give a dead letter a fresh retry window, due immediately."""
        now = timezone.now()
        with cls.atomic():
            record = WebhookRetryRecord.objects.select_for_update().filter(pk=record_id).first()
            if record is None:
                return ServiceResult.failure("Retry record not found", error_code="RETRY_RECORD_NOT_FOUND")
            if not record.is_dead_letter:
                return ServiceResult.failure("Retry record is not a dead letter", error_code="NOT_DEAD_LETTER")

            record.is_dead_letter = False
            record.dead_lettered_at = None
            record.attempt_count = 0
            record.next_attempt_at = now
            record.expires_at = now + cls.retry_window()
            record.save()

        cls.get_logger().info(
            "Dead letter requeued",
            extra={"gateway": record.gateway, "event_id": record.external_event_id},
        )
        return ServiceResult.success(record)

    @classmethod
    def purge_dead_letters(cls, older_than: timedelta | None = None) -> int:
        """Delete dead letters flagged longer ago than the retention window."""
        older_than = older_than or timedelta(days=settings.PAYMENTS_DEAD_LETTER_RETENTION_DAYS)
        cutoff = timezone.now() - older_than
        deleted, _ = WebhookRetryRecord.objects.dead_letters().filter(dead_lettered_at__lt=cutoff).delete()
        if deleted:
            cls.get_logger().info("Dead letters purged", extra={"count": deleted, "cutoff": cutoff.isoformat()})
        return deleted
