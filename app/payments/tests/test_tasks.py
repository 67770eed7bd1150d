"""
Tests for payments Celery tasks.

Tasks are called directly (synchronously); the retry sweeper's replay path
is patched at the processor.
"""

import uuid
from datetime import datetime, timedelta, timezone as dt_timezone
from unittest.mock import patch

from django.utils import timezone

from payments.models import WebhookRetryRecord
from payments.state_machines import BillingPeriod, TransactionType
from payments.tasks import (
    generate_invoice,
    invoice_number,
    notify_membership_upgraded,
    purge_dead_letter_webhooks,
    send_account_suspended_email,
    send_payment_failed_email,
    send_purchase_confirmation_email,
    sweep_webhook_retries,
)
from payments.tests.factories import PaymentTransactionFactory, UserFactory, WebhookRetryRecordFactory
from payments.webhooks.handlers import ProcessingOutcome


# =============================================================================
# Retry Queue Tasks
# =============================================================================


class TestSweepWebhookRetries:
    def test_returns_stats(self, db):
        WebhookRetryRecordFactory(next_attempt_at=timezone.now() - timedelta(seconds=1))

        with patch(
            "payments.webhooks.handlers.WebhookProcessor.process_payload",
            return_value=ProcessingOutcome(status=ProcessingOutcome.PROCESSED),
        ):
            result = sweep_webhook_retries()

        assert result["replayed"] == 1
        assert not WebhookRetryRecord.objects.exists()


class TestPurgeDeadLetterWebhooks:
    def test_uses_retention_setting(self, db, settings):
        settings.PAYMENTS_DEAD_LETTER_RETENTION_DAYS = 30
        WebhookRetryRecordFactory(is_dead_letter=True, dead_lettered_at=timezone.now() - timedelta(days=31))
        WebhookRetryRecordFactory(is_dead_letter=True, dead_lettered_at=timezone.now() - timedelta(days=29))

        assert purge_dead_letter_webhooks() == {"deleted": 1}
        assert WebhookRetryRecord.objects.count() == 1

    def test_days_override(self, db):
        WebhookRetryRecordFactory(is_dead_letter=True, dead_lettered_at=timezone.now() - timedelta(days=3))

        assert purge_dead_letter_webhooks(days=2) == {"deleted": 1}


# =============================================================================
# Collaborator Tasks
# =============================================================================


class TestPurchaseConfirmationEmail:
    def test_credits_receipt(self, db, credits_transaction, mailoutbox):
        assert send_purchase_confirmation_email(str(credits_transaction.id)) is True

        assert len(mailoutbox) == 1
        message = mailoutbox[0]
        assert message.to == [credits_transaction.user.email]
        assert "500 credits" in message.body
        assert "pay_credits_1" in message.body

    def test_subscription_receipt(self, db, plan, mailoutbox):
        txn = PaymentTransactionFactory(type=TransactionType.SUBSCRIPTION, plan=plan, billing_period=BillingPeriod.MONTHLY)

        send_purchase_confirmation_email(str(txn.id))

        assert "Pro plan (monthly)" in mailoutbox[0].body

    def test_missing_transaction(self, db, mailoutbox):
        assert send_purchase_confirmation_email(str(uuid.uuid4())) is False
        assert mailoutbox == []


class TestUserEmails:
    def test_payment_failed(self, db, mailoutbox):
        user = UserFactory(name="Asha Rao")

        assert send_payment_failed_email(user.pk, "Card declined") is True

        assert mailoutbox[0].subject == "Your payment could not be processed"
        assert "Hi Asha" in mailoutbox[0].body
        assert "Card declined" in mailoutbox[0].body

    def test_account_suspended(self, db, user, mailoutbox):
        assert send_account_suspended_email(user.pk, "fraudulent") is True

        assert mailoutbox[0].subject == "Your account has been suspended"
        assert "fraudulent" in mailoutbox[0].body

    def test_membership_upgraded(self, db, user, mailoutbox):
        assert notify_membership_upgraded(user.pk, "Pro") is True

        assert mailoutbox[0].subject == "Welcome to Pro"

    def test_unknown_user_skipped(self, db, mailoutbox):
        assert send_payment_failed_email(999_999) is False
        assert mailoutbox == []


class TestGenerateInvoice:
    def test_invoice_number_format(self, db):
        txn = PaymentTransactionFactory(completed_at=datetime(2025, 2, 14, tzinfo=dt_timezone.utc))

        number = invoice_number(txn)

        assert number == f"INV-20250214-{str(txn.id)[:8].upper()}"

    def test_emails_invoice(self, db, credits_transaction, mailoutbox):
        number = generate_invoice(str(credits_transaction.id))

        assert number == invoice_number(credits_transaction)
        assert mailoutbox[0].subject == f"Invoice {number}"
        assert "299.00 INR" in mailoutbox[0].body
        assert "Razorpay" in mailoutbox[0].body

    def test_missing_transaction(self, db, mailoutbox):
        assert generate_invoice(str(uuid.uuid4())) is None
        assert mailoutbox == []
