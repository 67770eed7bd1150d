"""
Payment services: the state-changing side of the engine.

This module provides:
- AuditService: Append-only audit trail
- IdempotencyGuard: Claims transactions and refunds via unique inserts
- SubscriptionService: Subscription lifecycle transitions
- CreditPurchaseService: Credit package purchases
- RefundService: Gateway refunds, chargebacks and admin refunds
- RetryQueueService: Failed webhook backlog and replay
- RazorpayCheckoutService: Client-side Razorpay checkout and verification

Usage:
    from payments.services import SubscriptionService

    result = SubscriptionService.activate(event)

    from payments.services import RefundService

    result = RefundService.admin_refund(transaction_id, request.user)

    from payments.services import RetryQueueService

    stats = RetryQueueService.sweep()
"""

from payments.services.audit import AuditService
from payments.services.checkout import RazorpayCheckoutService
from payments.services.credits import CreditPurchaseService
from payments.services.idempotency import IdempotencyGuard
from payments.services.refunds import RefundOutcome, RefundService
from payments.services.retry_queue import RetryQueueService, SweepStats
from payments.services.subscriptions import SubscriptionService, period_end_for

__all__ = [
    "AuditService",
    "CreditPurchaseService",
    "IdempotencyGuard",
    "RazorpayCheckoutService",
    "RefundOutcome",
    "RefundService",
    "RetryQueueService",
    "SubscriptionService",
    "SweepStats",
    "period_end_for",
]
