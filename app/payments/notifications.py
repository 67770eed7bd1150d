"""
Post-commit dispatch to the notification, email and invoice collaborators.

Financial state is committed first; the collaborators run afterwards as
Celery tasks. Dispatch is registered with ``transaction.on_commit`` so a
rolled-back event never sends anything, and a broker outage is logged
instead of raised, so it cannot fail a webhook that already succeeded.

Usage:
    from payments.notifications import PaymentNotifier

    with transaction.atomic():
        ...
        PaymentNotifier.purchase_confirmation(txn)
        PaymentNotifier.invoice(txn)
"""

from __future__ import annotations

import logging

from django.db import transaction

logger = logging.getLogger(__name__)


def _dispatch(task_name: str, *args) -> None:
    from payments import tasks

    task = getattr(tasks, task_name)

    def send():
        try:
            task.delay(*args)
        except Exception:
            logger.exception(
                "Failed to queue payment notification",
                extra={"task": task_name, "task_args": [str(arg) for arg in args]},
            )

    transaction.on_commit(send)


class PaymentNotifier:
    """Best-effort collaborator calls, queued after commit."""

    @staticmethod
    def upgrade(user_id, plan_name: str) -> None:
        _dispatch("notify_membership_upgraded", user_id, plan_name)

    @staticmethod
    def suspension(user_id, reason: str = "chargeback") -> None:
        _dispatch("send_account_suspended_email", user_id, reason)

    @staticmethod
    def purchase_confirmation(txn) -> None:
        _dispatch("send_purchase_confirmation_email", str(txn.id))

    @staticmethod
    def payment_failed(user_id, reason: str = "") -> None:
        _dispatch("send_payment_failed_email", user_id, reason)

    @staticmethod
    def invoice(txn) -> None:
        _dispatch("generate_invoice", str(txn.id))
