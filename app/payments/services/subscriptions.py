"""
Subscription service: applies subscription lifecycle events.

Each public method handles one canonical event kind and runs inside a single
database transaction that also holds the row locks on the user and the
subscription. Charge events claim their PaymentTransaction first (see
``IdempotencyGuard``); status-only events are naturally idempotent.

State Machine:
    activated  -> ACTIVE (create, or update in place on gateway switch)
    charged    -> ACTIVE, period extended by one billing unit
    pending    -> PAST_DUE
    halted     -> PAST_DUE + payment-failed email
    cancelled  -> CANCELLED, user back on the default plan
    completed  -> CANCELLED, user back on the default plan

Usage:
    from payments.services import SubscriptionService

    result = SubscriptionService.activate(event)
    if result.success:
        txn = result.data
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from django.conf import settings
from django.contrib.auth import get_user_model
from django.utils import timezone

from django_fsm import can_proceed

from core.helpers import add_months
from core.services import BaseService, ServiceResult

from payments.adapters import get_client
from payments.exceptions import PaymentNotFoundError, PaymentValidationError
from payments.ledger import CreditLedger
from payments.models import GATEWAY_ID_FIELDS, Plan, Subscription
from payments.notifications import PaymentNotifier
from payments.services.audit import AuditService
from payments.services.idempotency import IdempotencyGuard
from payments.state_machines import AuditAction, BillingPeriod, SubscriptionState, TransactionType

if TYPE_CHECKING:
    from datetime import datetime

    from payments.events import CanonicalEvent
    from payments.models import PaymentTransaction


MONTHS_PER_PERIOD = {
    BillingPeriod.MONTHLY: 1,
    BillingPeriod.YEARLY: 12,
}


def period_end_for(billing_period: str, start: datetime) -> datetime:
    """End of a billing period starting at ``start`` (+1 month or +1 year)."""
    return add_months(start, MONTHS_PER_PERIOD[billing_period])


class SubscriptionService(BaseService):
    """
    Subscription lifecycle transitions driven by gateway events.

    All methods are classmethods; no instance state is maintained.
    Expected no-op outcomes (stale events, repeated cancellation) return a
    successful ServiceResult whose data is None. Missing data raises
    ``PaymentValidationError``/``PaymentNotFoundError``; duplicate charges
    raise ``DuplicateEventError`` after rolling everything back.
    """

    # =========================================================================
    # Lookups
    # =========================================================================

    @staticmethod
    def lock_user(user_id):
        User = get_user_model()
        try:
            return User.objects.select_for_update().get(pk=user_id)
        except User.DoesNotExist:
            raise PaymentNotFoundError(
                f"User {user_id} not found",
                error_code="USER_NOT_FOUND",
                details={"user_id": user_id},
            )

    @staticmethod
    def get_plan(plan_id) -> Plan:
        """Resolve a plan by primary key or by machine name."""
        try:
            lookup = {"pk": uuid.UUID(str(plan_id))}
        except ValueError:
            lookup = {"name": plan_id}
        try:
            return Plan.objects.get(**lookup)
        except Plan.DoesNotExist:
            raise PaymentNotFoundError(
                f"Plan {plan_id} not found",
                error_code="PLAN_NOT_FOUND",
                details={"plan_id": str(plan_id)},
            )

    @classmethod
    def locate(cls, event: CanonicalEvent) -> Subscription:
        """
        Find and lock the subscription an event refers to.

        The provider subscription id is authoritative. A subscription still
        stored under the event's provisional id is rebound to the provider
        id. When neither matches, the subscription of the user named in the
        metadata is used instead.

        Raises:
            PaymentNotFoundError: If no subscription matches
        """
        queryset = Subscription.objects.select_for_update().select_related("plan", "user")
        field_name = GATEWAY_ID_FIELDS[event.gateway]

        subscription = None
        if event.subscription_id:
            subscription = queryset.filter(**{field_name: event.subscription_id}).first()
        if subscription is None:
            subscription = cls._rebind_provisional(queryset, event)
        if subscription is None and event.metadata.user_id is not None:
            subscription = queryset.filter(user_id=event.metadata.user_id).first()
        if subscription is None:
            raise PaymentNotFoundError(
                "No subscription found for event",
                error_code="SUBSCRIPTION_NOT_FOUND",
                details={
                    "gateway": event.gateway,
                    "subscription_id": event.subscription_id,
                    "user_id": event.metadata.user_id,
                },
            )
        return subscription

    @classmethod
    def _rebind_provisional(cls, queryset, event: CanonicalEvent) -> Subscription | None:
        if not (event.subscription_id and event.provisional_subscription_id):
            return None
        field_name = GATEWAY_ID_FIELDS[event.gateway]
        subscription = queryset.filter(**{field_name: event.provisional_subscription_id}).first()
        if subscription is None:
            return None

        subscription.set_gateway_subscription_id(event.gateway, event.subscription_id)
        subscription.save()
        cls.get_logger().info(
            "Subscription rebound to provider id",
            extra={
                **event.log_context(),
                "subscription_id": str(subscription.id),
                "provisional_id": event.provisional_subscription_id,
            },
        )
        return subscription

    @staticmethod
    def is_stale(subscription: Subscription, event: CanonicalEvent) -> bool:
        """
        True when the event belongs to a provider subscription the user has
        since replaced (e.g. the old gateway's cancellation after a switch).
        """
        if not event.subscription_id:
            return False
        return (
            subscription.gateway != event.gateway
            or subscription.gateway_subscription_id != event.subscription_id
        )

    @staticmethod
    def is_current(event: CanonicalEvent) -> bool:
        """True when the event's provider subscription is already stored and live."""
        ids = [value for value in (event.subscription_id, event.provisional_subscription_id) if value]
        if not ids:
            return False
        return (
            Subscription.objects.filter(**{f"{GATEWAY_ID_FIELDS[event.gateway]}__in": ids})
            .exclude(status=SubscriptionState.CANCELLED)
            .exists()
        )

    @classmethod
    def _ignore_stale(cls, subscription: Subscription, event: CanonicalEvent, action: str) -> ServiceResult:
        cls.get_logger().warning(
            "Ignoring event for replaced subscription",
            extra={**event.log_context(), "subscription_id": str(subscription.id)},
        )
        AuditService.record_event(
            action,
            event,
            user_id=subscription.user_id,
            metadata={
                "ignored": "stale_subscription",
                "current_gateway": subscription.gateway,
                "current_subscription_id": subscription.gateway_subscription_id,
            },
        )
        return ServiceResult.success(None)

    @staticmethod
    def sync_user_plan(user, plan_type: str, expires_at) -> None:
        user.plan_type = plan_type
        user.plan_expires_at = expires_at
        user.save(update_fields=["plan_type", "plan_expires_at", "updated_at"])

    # =========================================================================
    # Event handlers
    # =========================================================================

    @classmethod
    def authenticated(cls, event: CanonicalEvent) -> ServiceResult[None]:
        """
        Mandate approved, nothing charged yet: no lifecycle change.

        When the provider reports the code of a subscription already stored
        under a provisional id (Paystack ``subscription.create`` after the
        first charge), the stored id is replaced by that code.
        """
        with cls.atomic():
            queryset = Subscription.objects.select_for_update()
            subscription = cls._rebind_provisional(queryset, event)
            AuditService.record_event(
                AuditAction.WEBHOOK_RECEIVED,
                event,
                user_id=subscription.user_id if subscription else None,
                metadata={
                    "subscription_id": event.subscription_id,
                    "rebound_from": event.provisional_subscription_id if subscription else None,
                },
            )
        return ServiceResult.success(None)

    @classmethod
    def activate(cls, event: CanonicalEvent) -> ServiceResult[PaymentTransaction]:
        """
        Start (or switch) a user's subscription after its first payment.

        Steps, in one transaction:
        1. Claim the PaymentTransaction for the charge
        2. Create the subscription or update it in place, keeping only this
           gateway's subscription id
        3. Set the user's plan and expiry
        4. Award the plan's included credits
        5. Audit, then queue upgrade notification, invoice and receipt

        Raises:
            PaymentValidationError: Missing userId/planId or payment id
            PaymentNotFoundError: Unknown user or plan
            DuplicateEventError: Charge already recorded
        """
        if event.payment_id and cls.is_current(event):
            # Providers that report every successful charge the same way
            # (Paystack charge.success) land here on renewal.
            return cls.charge(event)

        metadata = event.metadata.require("user_id", "plan_id")
        gateway_transaction_id = event.payment_id or event.subscription_id
        if not gateway_transaction_id:
            raise PaymentValidationError(
                "Activation event carries neither a payment nor a subscription id",
                error_code="MISSING_PAYMENT_ID",
            )

        plan = cls.get_plan(metadata.plan_id)
        billing_period = metadata.billing_period
        now = timezone.now()
        period_end = period_end_for(billing_period, now)

        with cls.atomic():
            user = cls.lock_user(metadata.user_id)
            credits = plan.included_credits or None

            txn = IdempotencyGuard.claim_transaction(
                gateway=event.gateway,
                gateway_transaction_id=gateway_transaction_id,
                user=user,
                type=TransactionType.SUBSCRIPTION,
                gateway_subscription_id=event.subscription_id,
                amount=event.amount if event.amount is not None else plan.price_for(billing_period),
                currency=(event.currency or plan.currency).upper(),
                credits_awarded=credits,
                plan=plan,
                billing_period=billing_period,
                description=f"{plan.display_name} ({billing_period})",
                completed_at=now,
            )

            subscription = Subscription.objects.select_for_update().filter(user=user).first()
            created = subscription is None
            if created:
                subscription = Subscription(user=user)
            subscription.plan = plan
            subscription.billing_period = billing_period
            subscription.set_gateway_subscription_id(event.gateway, event.subscription_id)
            subscription.activate(now, period_end)
            subscription.save()

            txn.subscription = subscription
            txn.save(update_fields=["subscription", "updated_at"])

            cls.sync_user_plan(user, plan.name, period_end)

            if credits:
                CreditLedger.award_credits(user.pk, credits, reason_ref=gateway_transaction_id)

            AuditService.record_event(
                AuditAction.SUBSCRIPTION_CREATED,
                event,
                transaction=txn,
                metadata={
                    "plan": plan.name,
                    "billing_period": billing_period,
                    "credits": credits or 0,
                    "switched": not created,
                },
            )

            PaymentNotifier.upgrade(user.pk, plan.name)
            PaymentNotifier.invoice(txn)
            PaymentNotifier.purchase_confirmation(txn)

        cls.get_logger().info(
            "Subscription activated",
            extra={
                **event.log_context(),
                "subscription_id": str(subscription.id),
                "transaction_id": str(txn.id),
                "subscription_created": created,
            },
        )
        return ServiceResult.success(txn)

    @classmethod
    def charge(cls, event: CanonicalEvent) -> ServiceResult[PaymentTransaction | None]:
        """
        Record a recurring charge and extend the period by one unit from now.

        Renewals do not award credits.

        Raises:
            PaymentValidationError: No payment id on the event
            PaymentNotFoundError: No subscription to renew
            DuplicateEventError: Charge already recorded (including the
                first charge, which the activation already recorded)
        """
        if not event.payment_id:
            raise PaymentValidationError(
                "Charge event carries no payment id",
                error_code="MISSING_PAYMENT_ID",
            )

        with cls.atomic():
            subscription = cls.locate(event)
            if cls.is_stale(subscription, event):
                return cls._ignore_stale(subscription, event, AuditAction.SUBSCRIPTION_RENEWED)

            user = cls.lock_user(subscription.user_id)
            plan = subscription.plan
            now = timezone.now()
            period_end = period_end_for(subscription.billing_period, now)

            txn = IdempotencyGuard.claim_transaction(
                gateway=event.gateway,
                gateway_transaction_id=event.payment_id,
                user=user,
                type=TransactionType.SUBSCRIPTION,
                gateway_subscription_id=subscription.gateway_subscription_id,
                amount=event.amount if event.amount is not None else plan.price_for(subscription.billing_period),
                currency=(event.currency or plan.currency).upper(),
                subscription=subscription,
                plan=plan,
                billing_period=subscription.billing_period,
                description=f"{plan.display_name} renewal",
                completed_at=now,
            )

            subscription.renew(period_end)
            subscription.save()
            cls.sync_user_plan(user, plan.name, period_end)

            AuditService.record_event(
                AuditAction.SUBSCRIPTION_RENEWED,
                event,
                transaction=txn,
                metadata={"period_end": period_end.isoformat()},
            )
            PaymentNotifier.invoice(txn)
            PaymentNotifier.purchase_confirmation(txn)

        cls.get_logger().info(
            "Subscription renewed",
            extra={**event.log_context(), "subscription_id": str(subscription.id), "transaction_id": str(txn.id)},
        )
        return ServiceResult.success(txn)

    @classmethod
    def mark_past_due(cls, event: CanonicalEvent, notify: bool = False) -> ServiceResult[Subscription | None]:
        """
        Flag a pending or halted recurring charge.

        Args:
            event: The pending/halted event
            notify: Send the payment-failed email (halted only)
        """
        with cls.atomic():
            subscription = cls.locate(event)
            if cls.is_stale(subscription, event):
                return cls._ignore_stale(subscription, event, AuditAction.PAYMENT_FAILED)

            changed = can_proceed(subscription.mark_past_due)
            if changed:
                subscription.mark_past_due()
                subscription.save()

            AuditService.record_event(
                AuditAction.PAYMENT_FAILED,
                event,
                user_id=subscription.user_id,
                metadata={
                    "subscription_id": str(subscription.id),
                    "status": subscription.status,
                    "reason": event.reason,
                    "ignored": None if changed else "subscription_not_active",
                },
            )
            if notify and changed:
                PaymentNotifier.payment_failed(subscription.user_id, event.reason)

        cls.get_logger().warning(
            "Subscription payment failed",
            extra={**event.log_context(), "subscription_id": str(subscription.id), "changed": changed},
        )
        return ServiceResult.success(subscription if changed else None)

    @classmethod
    def cancel(cls, event: CanonicalEvent) -> ServiceResult[Subscription | None]:
        """
        Terminate the subscription and put the user back on the default plan.

        Cancelling an already cancelled subscription changes nothing.
        """
        with cls.atomic():
            subscription = cls.locate(event)
            if cls.is_stale(subscription, event):
                return cls._ignore_stale(subscription, event, AuditAction.SUBSCRIPTION_CANCELLED)

            changed = not subscription.is_cancelled
            if changed:
                user = cls.lock_user(subscription.user_id)
                subscription.cancel()
                subscription.save()
                cls.sync_user_plan(user, settings.PAYMENTS_DEFAULT_PLAN_TYPE, None)

            AuditService.record_event(
                AuditAction.SUBSCRIPTION_CANCELLED,
                event,
                user_id=subscription.user_id,
                metadata={
                    "subscription_id": str(subscription.id),
                    "ignored": None if changed else "already_cancelled",
                },
            )

        cls.get_logger().info(
            "Subscription cancelled",
            extra={**event.log_context(), "subscription_id": str(subscription.id), "changed": changed},
        )
        return ServiceResult.success(subscription if changed else None)

    @classmethod
    def schedule_cancellation(cls, event: CanonicalEvent) -> ServiceResult[Subscription | None]:
        """Provider reports the subscription will not renew: set cancel_at_period_end."""
        with cls.atomic():
            subscription = cls.locate(event)
            if cls.is_stale(subscription, event):
                return cls._ignore_stale(subscription, event, AuditAction.SUBSCRIPTION_CANCELLED)

            changed = not subscription.is_cancelled and not subscription.cancel_at_period_end
            if changed:
                subscription.cancel_at_period_end = True
                subscription.save()

            AuditService.record_event(
                AuditAction.SUBSCRIPTION_CANCELLED,
                event,
                user_id=subscription.user_id,
                metadata={
                    "subscription_id": str(subscription.id),
                    "at_period_end": True,
                    "ignored": None if changed else "nothing_to_schedule",
                },
            )
        return ServiceResult.success(subscription if changed else None)

    # =========================================================================
    # Client-initiated
    # =========================================================================

    @classmethod
    def cancel_at_period_end(cls, user) -> ServiceResult[Subscription]:
        """
        Ask the provider to stop renewing the user's subscription.

        The provider call is made outside the database transaction. The
        subscription stays ACTIVE until the provider's cancelled/completed
        webhook arrives.
        """
        subscription = Subscription.objects.filter(user=user).first()
        if subscription is None or subscription.is_cancelled:
            return ServiceResult.failure("No active subscription", error_code="NO_ACTIVE_SUBSCRIPTION")
        if subscription.cancel_at_period_end:
            return ServiceResult.success(subscription)
        if subscription.gateway is None:
            return ServiceResult.failure(
                "Subscription has no provider subscription id",
                error_code="NO_GATEWAY_SUBSCRIPTION",
            )

        gateway = subscription.gateway
        gateway_subscription_id = subscription.gateway_subscription_id
        get_client(gateway).cancel_subscription(gateway_subscription_id, at_period_end=True)

        with cls.atomic():
            subscription = Subscription.objects.select_for_update().get(pk=subscription.pk)
            subscription.cancel_at_period_end = True
            subscription.save()
            AuditService.record(
                AuditAction.SUBSCRIPTION_CANCELLED,
                gateway=gateway,
                user_id=user.pk,
                metadata={
                    "subscription_id": str(subscription.id),
                    "gateway_subscription_id": gateway_subscription_id,
                    "at_period_end": True,
                    "initiated_by": "user",
                },
            )

        cls.get_logger().info(
            "Subscription cancellation scheduled",
            extra={"user_id": user.pk, "gateway": gateway, "subscription_id": str(subscription.id)},
        )
        return ServiceResult.success(subscription)
