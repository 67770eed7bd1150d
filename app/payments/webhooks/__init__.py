"""
Webhook handling for payment events from Razorpay, Stripe and Paystack.

Deliveries are verified, normalized into canonical events and applied
synchronously. Failures after verification go to the retry queue.

Usage:
    # In urls.py
    from payments.webhooks.views import paystack_webhook

    urlpatterns = [
        path("webhooks/paystack/", paystack_webhook, name="paystack-webhook"),
    ]
"""

from payments.webhooks.handlers import WEBHOOK_HANDLERS, ProcessingOutcome, WebhookProcessor, register_handler
from payments.webhooks.views import paystack_webhook, razorpay_webhook, stripe_webhook

__all__ = [
    "ProcessingOutcome",
    "WEBHOOK_HANDLERS",
    "WebhookProcessor",
    "paystack_webhook",
    "razorpay_webhook",
    "register_handler",
    "stripe_webhook",
]
