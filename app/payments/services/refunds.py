"""
Refund service: gateway refunds, chargebacks and admin-initiated refunds.

A transaction is refunded at most once. Every path locks the transaction
row before looking at its refund, and the one-to-one ``Refund.transaction``
column backs that up at the database level, so concurrent refund and
dispute deliveries for the same charge produce exactly one Refund.

Credit reversal:
    When the refunded transaction awarded credits, the same number is
    reversed through the CreditLedger. The balance is clamped at zero;
    ``Refund.credits_reversed`` stores what was actually removed.

Usage:
    from payments.services import RefundService

    result = RefundService.admin_refund(transaction_id, admin_user)
    if not result.success:
        return Response(result.to_response(), status=400)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.utils import timezone

from core.services import BaseService, ServiceResult

from payments.adapters import get_client
from payments.events import to_minor_units
from payments.exceptions import DuplicateEventError, PaymentNotFoundError, PaymentValidationError
from payments.ledger import CreditLedger
from payments.models import PaymentTransaction, Refund
from payments.notifications import PaymentNotifier
from payments.services.audit import AuditService
from payments.services.idempotency import IdempotencyGuard
from payments.services.subscriptions import SubscriptionService
from payments.state_machines import AuditAction, RefundReason, RefundState

if TYPE_CHECKING:
    from payments.adapters import GatewayRefundResult
    from payments.events import CanonicalEvent


@dataclass
class RefundOutcome:
    """
    Result of a refund or dispute.

    Attributes:
        refund: The Refund row
        credits_reversed: Credits actually removed from the balance
        settled: True when an existing pending refund was completed
    """

    refund: Refund
    credits_reversed: int = 0
    settled: bool = False


class RefundService(BaseService):
    """
    Records money returned on a PaymentTransaction.

    Webhook paths (``gateway_refund``, ``dispute``) raise on missing data and
    duplicates; the admin path returns ServiceResult failures for expected
    refusals and lets provider errors propagate to the caller.
    """

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _locate(event: CanonicalEvent) -> PaymentTransaction:
        if not event.payment_ids:
            raise PaymentValidationError(
                "Refund event does not reference a payment",
                error_code="MISSING_PAYMENT_ID",
            )
        txn = IdempotencyGuard.find_transaction(event.gateway, event.payment_ids, lock=True)
        if txn is None:
            raise PaymentNotFoundError(
                "No transaction recorded for refunded payment",
                error_code="TRANSACTION_NOT_FOUND",
                details={"gateway": event.gateway, "payment_ids": event.payment_ids},
            )
        return txn

    @staticmethod
    def existing_refund(txn: PaymentTransaction) -> Refund | None:
        return Refund.objects.filter(transaction=txn).first()

    @staticmethod
    def _reverse_credits(txn: PaymentTransaction, reason_ref: str) -> int:
        if not txn.credits_awarded:
            return 0
        change = CreditLedger.reverse_credits(txn.user_id, txn.credits_awarded, reason_ref=reason_ref)
        return -change.applied

    # =========================================================================
    # Webhook paths
    # =========================================================================

    @classmethod
    def gateway_refund(cls, event: CanonicalEvent) -> ServiceResult[RefundOutcome]:
        """
        Record a refund the provider reports.

        A refund the provider still reports as pending is stored as
        PENDING. A later delivery for the same refund that reports it
        processed completes it in place.

        Raises:
            PaymentValidationError: No payment id on the event
            PaymentNotFoundError: Payment not recorded
            DuplicateEventError: Transaction already refunded or disputed
        """
        with cls.atomic():
            txn = cls._locate(event)
            existing = cls.existing_refund(txn)
            if existing is not None:
                if existing.state == RefundState.PENDING and event.refund_processed:
                    return ServiceResult.success(cls._settle(existing, event))
                raise DuplicateEventError(
                    f"Transaction {txn.id} already refunded",
                    error_code="ALREADY_REFUNDED",
                    details={"transaction_id": str(txn.id), "refund_id": str(existing.id)},
                )

            reversed_credits = cls._reverse_credits(txn, event.refund_id or event.event_id)
            refund = IdempotencyGuard.claim_refund(
                txn,
                amount=event.amount if event.amount is not None else txn.amount,
                currency=(event.currency or txn.currency).upper(),
                gateway_refund_id=event.refund_id,
                reason=RefundReason.GATEWAY_REFUND,
                initiated_by="gateway",
                state=RefundState.COMPLETED if event.refund_processed else RefundState.PENDING,
                credits_reversed=reversed_credits or None,
            )
            txn.mark_refunded()
            txn.save()

            AuditService.record_event(
                AuditAction.REFUND_COMPLETED if event.refund_processed else AuditAction.REFUND_INITIATED,
                event,
                transaction=txn,
                metadata={
                    "refund_id": str(refund.id),
                    "gateway_refund_id": event.refund_id,
                    "credits_reversed": reversed_credits,
                    "reason": event.reason,
                },
            )

        cls.get_logger().info(
            "Gateway refund recorded",
            extra={**event.log_context(), "transaction_id": str(txn.id), "credits_reversed": reversed_credits},
        )
        return ServiceResult.success(RefundOutcome(refund=refund, credits_reversed=reversed_credits))

    @classmethod
    def _settle(cls, refund: Refund, event: CanonicalEvent) -> RefundOutcome:
        Refund.objects.filter(pk=refund.pk, state=RefundState.PENDING).update(
            state=RefundState.COMPLETED,
            updated_at=timezone.now(),
        )
        refund = Refund.objects.get(pk=refund.pk)
        AuditService.record_event(
            AuditAction.REFUND_COMPLETED,
            event,
            transaction=refund.transaction,
            metadata={"refund_id": str(refund.id), "settled": True},
        )
        cls.get_logger().info(
            "Pending refund settled",
            extra={**event.log_context(), "refund_id": str(refund.id)},
        )
        return RefundOutcome(refund=refund, credits_reversed=refund.credits_reversed or 0, settled=True)

    @classmethod
    def dispute(cls, event: CanonicalEvent) -> ServiceResult[RefundOutcome]:
        """
        Apply a chargeback: forced refund plus account suspension.

        Reverses the credits the disputed transaction awarded (clamped at
        zero), records a ``chargeback`` Refund, flips the transaction to
        DISPUTED and deactivates the user.

        Raises:
            PaymentValidationError: No payment id on the event
            PaymentNotFoundError: Payment not recorded
            DuplicateEventError: Transaction already refunded or disputed
        """
        with cls.atomic():
            txn = cls._locate(event)
            existing = cls.existing_refund(txn)
            if existing is not None:
                raise DuplicateEventError(
                    f"Transaction {txn.id} already refunded",
                    error_code="ALREADY_REFUNDED",
                    details={"transaction_id": str(txn.id), "refund_id": str(existing.id)},
                )

            user = SubscriptionService.lock_user(txn.user_id)
            reversed_credits = cls._reverse_credits(txn, event.refund_id or event.event_id)
            refund = IdempotencyGuard.claim_refund(
                txn,
                amount=event.amount if event.amount is not None else txn.amount,
                currency=(event.currency or txn.currency).upper(),
                gateway_refund_id=event.refund_id,
                reason=RefundReason.CHARGEBACK,
                initiated_by="gateway",
                state=RefundState.COMPLETED,
                credits_reversed=reversed_credits or None,
            )
            txn.mark_disputed()
            txn.save()

            user.is_active = False
            user.save(update_fields=["is_active", "updated_at"])

            AuditService.record_event(
                AuditAction.DISPUTE_OPENED,
                event,
                transaction=txn,
                metadata={
                    "refund_id": str(refund.id),
                    "dispute_id": event.refund_id,
                    "credits_reversed": reversed_credits,
                    "reason": event.reason,
                    "user_suspended": True,
                },
            )
            PaymentNotifier.suspension(user.pk, reason=event.reason or "chargeback")

        cls.get_logger().warning(
            "Chargeback applied, user suspended",
            extra={**event.log_context(), "transaction_id": str(txn.id), "credits_reversed": reversed_credits},
        )
        return ServiceResult.success(RefundOutcome(refund=refund, credits_reversed=reversed_credits))

    # =========================================================================
    # Admin path
    # =========================================================================

    @classmethod
    def admin_refund(cls, transaction_id, admin_user, reason: str = "") -> ServiceResult[RefundOutcome]:
        """
        Refund a transaction in full on behalf of an administrator.

        Flow:
            1. Check the transaction is still refundable
            2. Audit refund_initiated
            3. Call the provider OUTSIDE any database transaction
            4. Atomically record the Refund, reverse credits, flip the
               transaction to REFUNDED, audit refund_completed

        If the provider's own refund webhook got there first, its Refund is
        returned instead of creating a second one.

        Raises:
            TransientGatewayError: Provider unreachable; safe to retry
            GatewayError: Provider rejected the refund
            GatewayNotConfiguredError: Gateway disabled or missing credentials
        """
        txn = PaymentTransaction.objects.filter(pk=transaction_id).first()
        if txn is None:
            return ServiceResult.failure("Transaction not found", error_code="TRANSACTION_NOT_FOUND")
        if not txn.is_refundable or cls.existing_refund(txn) is not None:
            return ServiceResult.failure(
                f"Transaction is {txn.status} and cannot be refunded",
                error_code="REFUND_NOT_ALLOWED",
            )

        initiated_by = getattr(admin_user, "email", "") or str(admin_user)
        AuditService.record(
            AuditAction.REFUND_INITIATED,
            transaction=txn,
            metadata={"initiated_by": initiated_by, "reason": reason},
        )

        client = get_client(txn.gateway)
        result: GatewayRefundResult = client.refund_payment(
            txn.gateway_transaction_id,
            amount_minor=to_minor_units(txn.amount),
            notes={"transactionId": str(txn.id), "initiatedBy": initiated_by, "reason": reason},
        )

        try:
            with cls.atomic():
                txn = PaymentTransaction.objects.select_for_update().get(pk=txn.pk)
                existing = cls.existing_refund(txn)
                if existing is not None:
                    raise DuplicateEventError(
                        f"Transaction {txn.id} already refunded",
                        error_code="ALREADY_REFUNDED",
                        details={"refund_id": str(existing.id)},
                    )

                reversed_credits = cls._reverse_credits(txn, result.refund_id)
                refund = IdempotencyGuard.claim_refund(
                    txn,
                    amount=txn.amount,
                    currency=txn.currency,
                    gateway_refund_id=result.refund_id,
                    reason=RefundReason.ADMIN_INITIATED,
                    initiated_by=initiated_by,
                    state=RefundState.COMPLETED if result.processed else RefundState.PENDING,
                    credits_reversed=reversed_credits or None,
                )
                txn.mark_refunded()
                txn.save()

                AuditService.record(
                    AuditAction.REFUND_COMPLETED,
                    transaction=txn,
                    metadata={
                        "refund_id": str(refund.id),
                        "gateway_refund_id": result.refund_id,
                        "provider_status": result.status,
                        "credits_reversed": reversed_credits,
                        "initiated_by": initiated_by,
                    },
                )
        except DuplicateEventError:
            refund = Refund.objects.get(transaction_id=txn.pk)
            cls.get_logger().info(
                "Refund already recorded by gateway webhook",
                extra={"transaction_id": str(txn.id), "refund_id": str(refund.id)},
            )
            return ServiceResult.success(RefundOutcome(refund=refund, credits_reversed=refund.credits_reversed or 0))

        cls.get_logger().info(
            "Admin refund completed",
            extra={
                "transaction_id": str(txn.id),
                "gateway": txn.gateway,
                "gateway_refund_id": result.refund_id,
                "initiated_by": initiated_by,
            },
        )
        return ServiceResult.success(RefundOutcome(refund=refund, credits_reversed=reversed_credits))
