"""
Idempotency guard for financial events.

The guard does not check whether an event was seen before. It inserts the
row that proves the event was applied and lets the database unique
constraint arbitrate:

- PaymentTransaction is unique on ``(gateway, gateway_transaction_id)``
- Refund is unique on ``transaction``

The insert runs in a savepoint. When it hits the constraint the savepoint
is rolled back and ``DuplicateEventError`` propagates, which rolls back the
surrounding event transaction as well, so a duplicate delivery never leaves
partial side effects behind.

Usage:
    with transaction.atomic():
        txn = IdempotencyGuard.claim_transaction(
            gateway=Gateway.RAZORPAY,
            gateway_transaction_id="pay_xxx",
            user_id=user.id,
            type=TransactionType.CREDITS,
            amount=Decimal("499.00"),
            currency="INR",
            credits_awarded=500,
        )
        CreditLedger.award_credits(user.id, 500, reason_ref="pay_xxx")
"""

from __future__ import annotations

from django.db import IntegrityError, transaction
from django.utils import timezone

from core.services import BaseService

from payments.exceptions import DuplicateEventError
from payments.models import PaymentTransaction, Refund
from payments.state_machines import TransactionStatus


class IdempotencyGuard(BaseService):
    """Claims PaymentTransaction and Refund rows through unique inserts."""

    @classmethod
    def claim_transaction(cls, *, gateway: str, gateway_transaction_id: str, **fields) -> PaymentTransaction:
        """
        Insert the PaymentTransaction for a captured charge.

        Args:
            gateway: Provider name
            gateway_transaction_id: Provider payment id
            **fields: Remaining PaymentTransaction fields

        Returns:
            The new, COMPLETED PaymentTransaction

        Raises:
            DuplicateEventError: If the charge was already recorded
        """
        fields.setdefault("completed_at", timezone.now())
        try:
            with transaction.atomic():
                txn = PaymentTransaction.objects.create(
                    gateway=gateway,
                    gateway_transaction_id=gateway_transaction_id,
                    status=TransactionStatus.COMPLETED,
                    **fields,
                )
        except IntegrityError:
            if not PaymentTransaction.objects.filter(
                gateway=gateway, gateway_transaction_id=gateway_transaction_id
            ).exists():
                # Some other constraint failed
                raise
            cls.get_logger().info(
                "Transaction already recorded",
                extra={"gateway": gateway, "gateway_transaction_id": gateway_transaction_id},
            )
            raise DuplicateEventError(
                f"Transaction {gateway}:{gateway_transaction_id} already recorded",
                details={"gateway": gateway, "gateway_transaction_id": gateway_transaction_id},
            )

        cls.get_logger().info(
            "Transaction claimed",
            extra={
                "gateway": gateway,
                "gateway_transaction_id": gateway_transaction_id,
                "transaction_id": str(txn.id),
            },
        )
        return txn

    @classmethod
    def claim_refund(cls, txn: PaymentTransaction, **fields) -> Refund:
        """
        Insert the Refund for ``txn``.

        Raises:
            DuplicateEventError: If the transaction already has a refund
        """
        try:
            with transaction.atomic():
                refund = Refund.objects.create(
                    transaction=txn,
                    user_id=txn.user_id,
                    gateway=txn.gateway,
                    **fields,
                )
        except IntegrityError:
            if not Refund.objects.filter(transaction=txn).exists():
                raise
            cls.get_logger().info(
                "Refund already recorded",
                extra={"transaction_id": str(txn.id), "gateway": txn.gateway},
            )
            raise DuplicateEventError(
                f"Transaction {txn.id} already refunded",
                error_code="ALREADY_REFUNDED",
                details={"transaction_id": str(txn.id)},
            )
        return refund

    @staticmethod
    def find_transaction(gateway: str, payment_ids, *, lock: bool = False) -> PaymentTransaction | None:
        """
        Look up a recorded charge by any of its provider ids.

        Args:
            gateway: Provider name
            payment_ids: Candidate ``gateway_transaction_id`` values, in
                order of preference
            lock: Take a row lock (``SELECT ... FOR UPDATE``)
        """
        queryset = PaymentTransaction.objects.filter(gateway=gateway)
        if lock:
            queryset = queryset.select_for_update()
        for payment_id in payment_ids:
            txn = queryset.filter(gateway_transaction_id=payment_id).first()
            if txn is not None:
                return txn
        return None
