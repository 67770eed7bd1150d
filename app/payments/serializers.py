"""
DRF serializers for payments app.

This module provides serializers for:
- Subscription display
- Transaction history
- Razorpay checkout requests (create/verify subscription and order)
- Admin refunds and gateway status

Related files:
    - models/: Subscription, PaymentTransaction, Refund
    - views.py: Payment API views

Usage:
    serializer = SubscriptionSerializer(subscription)
    data = serializer.data
"""

from __future__ import annotations

from rest_framework import serializers

from payments.models import PaymentTransaction, Refund, Subscription
from payments.state_machines import BillingPeriod


# =============================================================================
# Read serializers
# =============================================================================


class SubscriptionSerializer(serializers.ModelSerializer):
    """
    Subscription serializer for API responses.

    Fields:
        id: Subscription ID
        plan_name / plan_type: Display and machine name of the plan
        status: active, past_due or cancelled
        billing_period: monthly or yearly
        current_period_start / current_period_end: Paid period
        cancel_at_period_end: Whether it stops renewing
        gateway: Provider currently billing the subscription
    """

    plan_name = serializers.CharField(source="plan.display_name", read_only=True)
    plan_type = serializers.CharField(source="plan.name", read_only=True)
    gateway = serializers.CharField(read_only=True, allow_null=True)

    class Meta:
        model = Subscription
        fields = [
            "id",
            "plan_name",
            "plan_type",
            "status",
            "billing_period",
            "current_period_start",
            "current_period_end",
            "cancel_at_period_end",
            "gateway",
        ]
        read_only_fields = fields


class TransactionSerializer(serializers.ModelSerializer):
    """Transaction serializer for payment history."""

    class Meta:
        model = PaymentTransaction
        fields = [
            "id",
            "type",
            "gateway",
            "gateway_transaction_id",
            "amount",
            "currency",
            "status",
            "credits_awarded",
            "billing_period",
            "description",
            "completed_at",
        ]
        read_only_fields = fields


class RefundSerializer(serializers.ModelSerializer):
    transaction_id = serializers.UUIDField(source="transaction.id", read_only=True)

    class Meta:
        model = Refund
        fields = [
            "id",
            "transaction_id",
            "amount",
            "currency",
            "gateway",
            "gateway_refund_id",
            "reason",
            "initiated_by",
            "state",
            "credits_reversed",
            "created_at",
        ]
        read_only_fields = fields


class GatewayStatusSerializer(serializers.Serializer):
    gateway = serializers.CharField()
    enabled = serializers.BooleanField()
    configured = serializers.BooleanField()
    webhook_secret_set = serializers.BooleanField()
    last_webhook_received_at = serializers.DateTimeField(allow_null=True)


# =============================================================================
# Request serializers
# =============================================================================


class CreateSubscriptionSerializer(serializers.Serializer):
    """
    Request body for creating a Razorpay subscription.

    Fields:
        plan_id: Plan primary key or machine name
        billing_period: monthly (default) or yearly
    """

    plan_id = serializers.CharField(max_length=100)
    billing_period = serializers.ChoiceField(
        choices=BillingPeriod.choices,
        default=BillingPeriod.MONTHLY,
    )


class VerifySubscriptionSerializer(serializers.Serializer):
    """Values Razorpay Checkout returns after a subscription payment."""

    razorpay_payment_id = serializers.CharField(max_length=255)
    razorpay_subscription_id = serializers.CharField(max_length=255)
    razorpay_signature = serializers.CharField(max_length=255)


class CreateOrderSerializer(serializers.Serializer):
    package_id = serializers.UUIDField()


class VerifyOrderSerializer(serializers.Serializer):
    """Values Razorpay Checkout returns after an order payment."""

    razorpay_order_id = serializers.CharField(max_length=255)
    razorpay_payment_id = serializers.CharField(max_length=255)
    razorpay_signature = serializers.CharField(max_length=255)


class AdminRefundSerializer(serializers.Serializer):
    """
    Request body for an admin-initiated refund.

    Fields:
        transaction_id: PaymentTransaction to refund in full
        reason: Free-text note stored in the audit log
    """

    transaction_id = serializers.UUIDField()
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")
