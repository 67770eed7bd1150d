"""
Celery tasks for payment processing.

This module provides async tasks for:
- Replaying failed webhook deliveries (retry queue sweeper)
- Purging old dead letters
- Collaborator calls queued after a payment commits: purchase receipts,
  payment-failed and suspension emails, upgrade notifications, invoices

Collaborator tasks are queued by ``payments.notifications.PaymentNotifier``
with ``transaction.on_commit``; they read committed state only and never
change financial data.

Usage:
    from payments.tasks import sweep_webhook_retries

    # Replay due retry records (normally every 5 minutes via celery-beat)
    sweep_webhook_retries.delay()
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import send_mail

from payments.models import PaymentTransaction
from payments.services import RetryQueueService

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_EMAIL_RETRIES = 3


# =============================================================================
# Retry Queue Tasks
# =============================================================================


@shared_task
def sweep_webhook_retries() -> dict:
    """
    Dead-letter expired retry records and replay the due ones.

    Scheduled every 5 minutes via celery-beat.

    Returns:
        Dict with dead_lettered/replayed/failed/skipped counts
    """
    stats = RetryQueueService.sweep()
    return stats.as_dict()


@shared_task
def purge_dead_letter_webhooks(days: int | None = None) -> dict:
    """
    Delete dead letters older than the retention window.

    Args:
        days: Override for PAYMENTS_DEAD_LETTER_RETENTION_DAYS

    Returns:
        Dict with count of deleted records
    """
    older_than = timedelta(days=days) if days is not None else None
    deleted = RetryQueueService.purge_dead_letters(older_than)
    return {"deleted": deleted}


# =============================================================================
# Collaborator Tasks
# =============================================================================


def _get_user(user_id):
    User = get_user_model()
    user = User.objects.filter(pk=user_id).first()
    if user is None:
        logger.warning(f"User {user_id} not found, skipping payment email")
    return user


def _get_transaction(transaction_id: str) -> PaymentTransaction | None:
    txn = (
        PaymentTransaction.objects.select_related("user", "plan", "credit_package")
        .filter(pk=transaction_id)
        .first()
    )
    if txn is None:
        logger.warning(f"Transaction {transaction_id} not found, skipping")
    return txn


def _send(to: str, subject: str, body: str) -> None:
    send_mail(
        subject=subject,
        message=body,
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[to],
    )


def invoice_number(txn: PaymentTransaction) -> str:
    return f"INV-{txn.completed_at:%Y%m%d}-{str(txn.id)[:8].upper()}"


@shared_task(
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_kwargs={"max_retries": MAX_EMAIL_RETRIES},
)
def send_purchase_confirmation_email(transaction_id: str) -> bool:
    """
    Email the receipt for a subscription charge or credit purchase.

    Returns:
        True if sent, False if the transaction or user is gone
    """
    txn = _get_transaction(transaction_id)
    if txn is None:
        return False

    if txn.credit_package_id:
        item = f"{txn.credits_awarded} credits ({txn.credit_package.name})"
    elif txn.plan_id:
        item = f"{txn.plan.display_name} plan ({txn.billing_period})"
    else:
        item = txn.description or txn.type

    _send(
        txn.user.email,
        "Your purchase is confirmed",
        f"Hi {txn.user.get_short_name()},\n\n"
        f"We received your payment of {txn.amount} {txn.currency} for {item}.\n"
        f"Reference: {txn.gateway_transaction_id}\n",
    )
    logger.info(
        "Purchase confirmation sent",
        extra={"transaction_id": transaction_id, "user_id": txn.user_id},
    )
    return True


@shared_task(
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_kwargs={"max_retries": MAX_EMAIL_RETRIES},
)
def send_payment_failed_email(user_id, reason: str = "") -> bool:
    """Tell the user a payment or subscription renewal did not go through."""
    user = _get_user(user_id)
    if user is None:
        return False

    _send(
        user.email,
        "Your payment could not be processed",
        f"Hi {user.get_short_name()},\n\n"
        "We could not process your latest payment"
        f"{': ' + reason if reason else ''}.\n"
        "Please update your payment method to keep your membership active.\n",
    )
    logger.info("Payment failed email sent", extra={"user_id": user_id})
    return True


@shared_task(
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_kwargs={"max_retries": MAX_EMAIL_RETRIES},
)
def send_account_suspended_email(user_id, reason: str = "chargeback") -> bool:
    """Tell the user their account was suspended after a chargeback."""
    user = _get_user(user_id)
    if user is None:
        return False

    _send(
        user.email,
        "Your account has been suspended",
        f"Hi {user.get_short_name()},\n\n"
        "A payment on your account was disputed with your bank "
        f"({reason}). Your account is suspended until the dispute is resolved.\n",
    )
    logger.info("Account suspension email sent", extra={"user_id": user_id, "reason": reason})
    return True


@shared_task(
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_kwargs={"max_retries": MAX_EMAIL_RETRIES},
)
def notify_membership_upgraded(user_id, plan_name: str) -> bool:
    """Welcome the user to their new plan."""
    user = _get_user(user_id)
    if user is None:
        return False

    _send(
        user.email,
        f"Welcome to {plan_name}",
        f"Hi {user.get_short_name()},\n\nYour membership is now on the {plan_name} plan.\n",
    )
    logger.info("Membership upgrade notification sent", extra={"user_id": user_id, "plan": plan_name})
    return True


@shared_task(
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_kwargs={"max_retries": MAX_EMAIL_RETRIES},
)
def generate_invoice(transaction_id: str) -> str | None:
    """
    Generate the invoice for a completed transaction and email it.

    Returns:
        The invoice number, or None if the transaction is gone
    """
    txn = _get_transaction(transaction_id)
    if txn is None:
        return None

    number = invoice_number(txn)
    lines = [
        f"Invoice {number}",
        f"Date: {txn.completed_at:%Y-%m-%d}",
        f"Billed to: {txn.user.get_full_name()} <{txn.user.email}>",
        "",
        f"{txn.description or txn.type}: {txn.amount} {txn.currency}",
        f"Paid via {txn.get_gateway_display()} ({txn.gateway_transaction_id})",
    ]
    _send(txn.user.email, f"Invoice {number}", "\n".join(lines) + "\n")
    logger.info("Invoice generated", extra={"transaction_id": transaction_id, "invoice_number": number})
    return number
