"""
State and choice enums for payment models.

These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Subscription States:
    active → past_due → active (later successful charge)
    active/past_due → cancelled (terminal for the billing cycle)
    cancelled → active (only through a new activation)

    "authenticated" is a transient provider state (mandate approved, nothing
    charged yet) and is never persisted.

PaymentTransaction Status:
    completed → refunded
    completed → disputed

Refund States:
    pending → completed (provider settles asynchronously)
    completed (chargebacks and processed refunds are recorded as final)
"""

from django.db import models


class Gateway(models.TextChoices):
    """Payment providers the engine accepts events from."""

    RAZORPAY = "razorpay", "Razorpay"
    STRIPE = "stripe", "Stripe"
    PAYSTACK = "paystack", "Paystack"


class SubscriptionState(models.TextChoices):
    """
    States for the Subscription model lifecycle.

    State Flow:
        ACTIVE → PAST_DUE (pending/halted charge)
        PAST_DUE → ACTIVE (renewal charged)
        ACTIVE/PAST_DUE → CANCELLED (cancelled/completed)
        CANCELLED → ACTIVE (re-subscription, possibly on another gateway)
    """

    ACTIVE = "active", "Active"
    PAST_DUE = "past_due", "Past Due"
    CANCELLED = "cancelled", "Cancelled"


class BillingPeriod(models.TextChoices):
    MONTHLY = "monthly", "Monthly"
    YEARLY = "yearly", "Yearly"


class TransactionType(models.TextChoices):
    SUBSCRIPTION = "subscription", "Subscription"
    CREDITS = "credits", "Credits"


class TransactionStatus(models.TextChoices):
    """
    Status of a recorded money movement.

    Transactions are created COMPLETED and only ever flip once more, to
    REFUNDED or DISPUTED.
    """

    COMPLETED = "completed", "Completed"
    REFUNDED = "refunded", "Refunded"
    DISPUTED = "disputed", "Disputed"


class RefundReason(models.TextChoices):
    GATEWAY_REFUND = "gateway_refund", "Gateway Refund"
    CHARGEBACK = "chargeback", "Chargeback"
    ADMIN_INITIATED = "admin_initiated", "Admin Initiated"


class RefundState(models.TextChoices):
    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"


class AuditAction(models.TextChoices):
    """Actions recorded in the append-only payment audit log."""

    PAYMENT_INITIATED = "payment_initiated", "Payment Initiated"
    PAYMENT_COMPLETED = "payment_completed", "Payment Completed"
    PAYMENT_FAILED = "payment_failed", "Payment Failed"
    SUBSCRIPTION_CREATED = "subscription_created", "Subscription Created"
    SUBSCRIPTION_RENEWED = "subscription_renewed", "Subscription Renewed"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled", "Subscription Cancelled"
    REFUND_INITIATED = "refund_initiated", "Refund Initiated"
    REFUND_COMPLETED = "refund_completed", "Refund Completed"
    CREDITS_AWARDED = "credits_awarded", "Credits Awarded"
    DISPUTE_OPENED = "dispute_opened", "Dispute Opened"
    WEBHOOK_RECEIVED = "webhook_received", "Webhook Received"
    WEBHOOK_REJECTED = "webhook_rejected", "Webhook Rejected"
    DUPLICATE_EVENT_IGNORED = "duplicate_event_ignored", "Duplicate Event Ignored"
    EVENT_UNHANDLED = "event_unhandled", "Event Unhandled"
    EVENT_INVALID = "event_invalid", "Event Invalid"
