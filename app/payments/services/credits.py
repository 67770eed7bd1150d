"""
Credit purchase service: one-off credit package payments.

Usage:
    from payments.services import CreditPurchaseService

    result = CreditPurchaseService.capture(event)
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from core.services import BaseService, ServiceResult

from payments.exceptions import PaymentNotFoundError, PaymentValidationError
from payments.ledger import CreditLedger
from payments.models import CreditPackage
from payments.notifications import PaymentNotifier
from payments.services.audit import AuditService
from payments.services.idempotency import IdempotencyGuard
from payments.services.subscriptions import SubscriptionService
from payments.state_machines import AuditAction, TransactionType

if TYPE_CHECKING:
    from payments.events import CanonicalEvent
    from payments.models import PaymentTransaction


class CreditPurchaseService(BaseService):
    """Records captured credit purchases and awards the credits."""

    @staticmethod
    def get_package(package_id) -> CreditPackage:
        try:
            return CreditPackage.objects.get(pk=uuid.UUID(str(package_id)))
        except (ValueError, CreditPackage.DoesNotExist):
            raise PaymentNotFoundError(
                f"Credit package {package_id} not found",
                error_code="PACKAGE_NOT_FOUND",
                details={"package_id": str(package_id)},
            )

    @classmethod
    def capture(cls, event: CanonicalEvent) -> ServiceResult[PaymentTransaction]:
        """
        Record a credit package payment and award its credits.

        The number of credits comes from the package row, not from the
        payment metadata, so a tampered client cannot inflate it.

        Raises:
            PaymentValidationError: Missing userId/packageId or payment id
            PaymentNotFoundError: Unknown user or package
            DuplicateEventError: Payment already recorded
        """
        metadata = event.metadata.require("user_id", "package_id")
        if not event.payment_id:
            raise PaymentValidationError(
                "Payment event carries no payment id",
                error_code="MISSING_PAYMENT_ID",
            )
        package = cls.get_package(metadata.package_id)

        with cls.atomic():
            user = SubscriptionService.lock_user(metadata.user_id)
            txn = IdempotencyGuard.claim_transaction(
                gateway=event.gateway,
                gateway_transaction_id=event.payment_id,
                user=user,
                type=TransactionType.CREDITS,
                amount=event.amount if event.amount is not None else package.price,
                currency=(event.currency or package.currency).upper(),
                credits_awarded=package.credits,
                credit_package=package,
                description=package.name,
            )
            change = CreditLedger.award_credits(user.pk, package.credits, reason_ref=event.payment_id)

            AuditService.record_event(
                AuditAction.CREDITS_AWARDED,
                event,
                transaction=txn,
                metadata={"credits": package.credits, "balance": change.balance_after},
            )
            PaymentNotifier.invoice(txn)
            PaymentNotifier.purchase_confirmation(txn)

        cls.get_logger().info(
            "Credits purchased",
            extra={**event.log_context(), "transaction_id": str(txn.id), "credits": package.credits},
        )
        return ServiceResult.success(txn)

    @classmethod
    def payment_failed(cls, event: CanonicalEvent) -> ServiceResult[None]:
        """A one-off payment failed: nothing to change, audit and tell the user."""
        with cls.atomic():
            AuditService.record_event(
                AuditAction.PAYMENT_FAILED,
                event,
                metadata={"payment_id": event.payment_id, "reason": event.reason},
            )
            if event.metadata.user_id is not None:
                PaymentNotifier.payment_failed(event.metadata.user_id, event.reason)

        cls.get_logger().warning("Payment failed", extra={**event.log_context(), "reason": event.reason})
        return ServiceResult.success(None)
