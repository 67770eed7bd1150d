"""
Payments app configuration.

This app provides the payment event reconciliation engine:
- Webhook verification and normalization for Razorpay, Stripe and Paystack
- Idempotent subscription, credit, refund and dispute handling
- Retry queue for failed webhook deliveries
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
