"""
Razorpay checkout service: the client-initiated purchase path.

Razorpay Checkout runs in the browser. The server creates the subscription
or order (carrying typed notes), the browser pays, and then calls back with
the ids and signature Razorpay handed it. Verification re-applies the
purchase through the same services the webhooks use, so whichever of the
browser callback and the webhook arrives second is a duplicate no-op.

Usage:
    from payments.services import RazorpayCheckoutService

    result = RazorpayCheckoutService.create_subscription(user, plan_id, "monthly")
    result = RazorpayCheckoutService.verify_subscription(
        user, payment_id="pay_xxx", subscription_id="sub_xxx", signature="..."
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.utils import timezone

from core.exceptions import PermissionDeniedError
from core.services import BaseService, ServiceResult

from payments.adapters import get_client
from payments.config import GatewayConfigResolver
from payments.events import (
    CanonicalEvent,
    CanonicalEventKind,
    PaymentMetadata,
    from_minor_units,
    to_minor_units,
)
from payments.exceptions import DuplicateEventError
from payments.models import PaymentTransaction, Subscription
from payments.services.audit import AuditService
from payments.services.credits import CreditPurchaseService
from payments.services.subscriptions import SubscriptionService
from payments.state_machines import AuditAction, BillingPeriod, Gateway, SubscriptionState, TransactionType

if TYPE_CHECKING:
    from typing import Any, Mapping


# Number of billing cycles Razorpay is authorized to charge
TOTAL_COUNT = {
    BillingPeriod.MONTHLY: 60,
    BillingPeriod.YEARLY: 5,
}


class RazorpayCheckoutService(BaseService):
    """Creates Razorpay subscriptions/orders and verifies checkout callbacks."""

    gateway = Gateway.RAZORPAY

    @classmethod
    def _ensure_owner(cls, notes: Mapping[str, Any], user) -> PaymentMetadata:
        metadata = PaymentMetadata.from_mapping(notes)
        if metadata.user_id != user.pk:
            cls.get_logger().warning(
                "Checkout verification for another user's payment",
                extra={"user_id": user.pk, "notes_user_id": metadata.user_id},
            )
            raise PermissionDeniedError(
                "This payment does not belong to you",
                error_code="PAYMENT_OWNER_MISMATCH",
            )
        return metadata

    @classmethod
    def _existing(cls, gateway_transaction_id: str) -> PaymentTransaction | None:
        return PaymentTransaction.objects.filter(
            gateway=cls.gateway,
            gateway_transaction_id=gateway_transaction_id,
        ).first()

    @classmethod
    def _already_applied(cls, event: CanonicalEvent, error: DuplicateEventError) -> ServiceResult[PaymentTransaction]:
        """The webhook (or an earlier callback) already recorded this payment."""
        AuditService.record_event(AuditAction.DUPLICATE_EVENT_IGNORED, event, metadata=error.details)
        return ServiceResult.success(cls._existing(event.payment_id))

    # =========================================================================
    # Subscriptions
    # =========================================================================

    @classmethod
    def create_subscription(cls, user, plan_id, billing_period: str) -> ServiceResult[dict]:
        """
        Create a Razorpay subscription for ``user`` on ``plan_id``.

        Returns:
            ServiceResult with subscription_id, key_id and plan details
        """
        plan = SubscriptionService.get_plan(plan_id)
        razorpay_plan_id = plan.razorpay_plan_id_for(billing_period)
        if not plan.is_active or not razorpay_plan_id:
            return ServiceResult.failure(
                f"{plan.display_name} is not available for {billing_period} billing",
                error_code="PLAN_NOT_AVAILABLE",
            )

        metadata = PaymentMetadata(
            user_id=user.pk,
            plan_id=str(plan.pk),
            billing_period=billing_period,
            purchase_type=TransactionType.SUBSCRIPTION,
        )
        client = get_client(cls.gateway)
        subscription = client.create_subscription(
            razorpay_plan_id,
            total_count=TOTAL_COUNT[billing_period],
            notes=metadata.to_notes(),
            notify_email=user.email,
        )

        AuditService.record(
            AuditAction.PAYMENT_INITIATED,
            gateway=cls.gateway,
            user_id=user.pk,
            amount=plan.price_for(billing_period),
            currency=plan.currency,
            metadata={
                "subscription_id": subscription["id"],
                "plan": plan.name,
                "billing_period": billing_period,
            },
        )
        cls.get_logger().info(
            "Razorpay subscription created",
            extra={"user_id": user.pk, "subscription_id": subscription["id"], "plan": plan.name},
        )
        return ServiceResult.success(
            {
                "subscription_id": subscription["id"],
                "key_id": client.config.key_id,
                "plan_id": str(plan.pk),
                "plan_name": plan.display_name,
                "billing_period": billing_period,
                "amount": str(plan.price_for(billing_period)),
                "currency": plan.currency,
            }
        )

    @classmethod
    def verify_subscription(
        cls, user, *, payment_id: str, subscription_id: str, signature: str
    ) -> ServiceResult[PaymentTransaction]:
        """
        Confirm a subscription payment reported by the browser.

        Raises:
            PermissionDeniedError: The subscription belongs to another user
            PaymentValidationError / PaymentNotFoundError: Bad notes or plan
        """
        client = get_client(cls.gateway)
        if not client.verify_payment_signature(payment_id, signature, subscription_id=subscription_id):
            cls.get_logger().warning(
                "Checkout signature mismatch",
                extra={"user_id": user.pk, "payment_id": payment_id, "subscription_id": subscription_id},
            )
            return ServiceResult.failure("Invalid payment signature", error_code="INVALID_SIGNATURE")

        subscription = client.fetch_subscription(subscription_id)
        metadata = cls._ensure_owner(subscription.get("notes") or {}, user)

        event = CanonicalEvent(
            kind=CanonicalEventKind.SUBSCRIPTION_ACTIVATED,
            gateway=cls.gateway,
            event_type="checkout.subscription.verified",
            event_id=f"checkout:{payment_id}",
            metadata=metadata,
            payment_id=payment_id,
            subscription_id=subscription_id,
        )
        try:
            return SubscriptionService.activate(event)
        except DuplicateEventError as e:
            return cls._already_applied(event, e)

    # =========================================================================
    # Credit orders
    # =========================================================================

    @classmethod
    def create_order(cls, user, package_id) -> ServiceResult[dict]:
        """
        Create a Razorpay order for a credit package.

        Credits are sold to members only: the user needs an active
        subscription.
        """
        has_membership = Subscription.objects.filter(user=user).exclude(status=SubscriptionState.CANCELLED).exists()
        if not has_membership:
            return ServiceResult.failure(
                "An active membership is required to buy credits",
                error_code="MEMBERSHIP_REQUIRED",
            )

        package = CreditPurchaseService.get_package(package_id)
        if not package.is_active:
            return ServiceResult.failure("Credit package is not available", error_code="PACKAGE_NOT_AVAILABLE")

        config = GatewayConfigResolver.resolve(cls.gateway)
        currency = config.currency or package.currency
        metadata = PaymentMetadata(
            user_id=user.pk,
            purchase_type=TransactionType.CREDITS,
            package_id=str(package.pk),
            credits=package.credits,
        )
        client = get_client(cls.gateway, config)
        order = client.create_order(
            amount_minor=to_minor_units(package.price),
            currency=currency,
            receipt=f"credits_{user.pk}_{int(timezone.now().timestamp())}",
            notes=metadata.to_notes(),
        )

        AuditService.record(
            AuditAction.PAYMENT_INITIATED,
            gateway=cls.gateway,
            user_id=user.pk,
            amount=package.price,
            currency=currency,
            metadata={"order_id": order["id"], "package_id": str(package.pk), "credits": package.credits},
        )
        cls.get_logger().info(
            "Razorpay order created",
            extra={"user_id": user.pk, "order_id": order["id"], "credits": package.credits},
        )
        return ServiceResult.success(
            {
                "order_id": order["id"],
                "key_id": client.config.key_id,
                "amount": order.get("amount"),
                "currency": order.get("currency", currency),
                "package_id": str(package.pk),
                "credits": package.credits,
            }
        )

    @classmethod
    def verify_order(cls, user, *, order_id: str, payment_id: str, signature: str) -> ServiceResult[PaymentTransaction]:
        """
        Confirm a credit order payment reported by the browser.

        Raises:
            PermissionDeniedError: The order belongs to another user
            PaymentValidationError / PaymentNotFoundError: Bad notes or package
        """
        client = get_client(cls.gateway)
        if not client.verify_payment_signature(payment_id, signature, order_id=order_id):
            cls.get_logger().warning(
                "Checkout signature mismatch",
                extra={"user_id": user.pk, "payment_id": payment_id, "order_id": order_id},
            )
            return ServiceResult.failure("Invalid payment signature", error_code="INVALID_SIGNATURE")

        order = client.fetch_order(order_id)
        metadata = cls._ensure_owner(order.get("notes") or {}, user)

        event = CanonicalEvent(
            kind=CanonicalEventKind.PAYMENT_CAPTURED,
            gateway=cls.gateway,
            event_type="checkout.order.verified",
            event_id=f"checkout:{payment_id}",
            metadata=metadata,
            payment_id=payment_id,
            amount=from_minor_units(order.get("amount")),
            currency=(order.get("currency") or "").upper() or None,
        )
        try:
            return CreditPurchaseService.capture(event)
        except DuplicateEventError as e:
            return cls._already_applied(event, e)
