"""
Payment gateway adapters.

Each gateway contributes two things:
- a webhook adapter (signature verification + normalization into a
  ``CanonicalEvent``)
- an API client for the calls the engine makes back to the provider
  (refunds, cancellations, Razorpay checkout)

All provider traffic goes through these classes so error translation,
timeouts and logging are consistent.

Usage:
    from payments.adapters import get_adapter, get_client

    adapter = get_adapter(Gateway.PAYSTACK)
    client = get_client(Gateway.RAZORPAY)
"""

from payments.adapters.base import GatewayAdapter, GatewayRefundResult, hmac_signature_matches
from payments.adapters.paystack_adapter import PaystackClient, PaystackWebhookAdapter
from payments.adapters.razorpay_adapter import RazorpayClient, RazorpayWebhookAdapter
from payments.adapters.registry import get_adapter, get_client
from payments.adapters.stripe_adapter import StripeClient, StripeWebhookAdapter

__all__ = [
    "GatewayAdapter",
    "GatewayRefundResult",
    "PaystackClient",
    "PaystackWebhookAdapter",
    "RazorpayClient",
    "RazorpayWebhookAdapter",
    "StripeClient",
    "StripeWebhookAdapter",
    "get_adapter",
    "get_client",
    "hmac_signature_matches",
]
