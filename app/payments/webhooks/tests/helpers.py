"""
Signing helpers and payload builders for webhook tests.

Signatures are computed with the same secrets the ``gateway_credentials``
fixture installs, so requests go through real verification.
"""

import hashlib
import hmac
import time

from payments.conftest import PAYSTACK_SECRET_KEY, RAZORPAY_WEBHOOK_SECRET, STRIPE_WEBHOOK_SECRET
from payments.events import PaymentMetadata
from payments.state_machines import TransactionType


# =============================================================================
# Signing
# =============================================================================


def razorpay_signature(body: str, secret: str = RAZORPAY_WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode(), body.encode(), hashlib.sha256).hexdigest()


def paystack_signature(body: str, secret: str = PAYSTACK_SECRET_KEY) -> str:
    return hmac.new(secret.encode(), body.encode(), hashlib.sha512).hexdigest()


def stripe_signature(body: str, secret: str = STRIPE_WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = hmac.new(secret.encode(), f"{timestamp}.{body}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signed}"


# =============================================================================
# Payload Builders
# =============================================================================


def subscription_notes(user, plan, billing_period="monthly") -> dict:
    return PaymentMetadata(
        user_id=user.pk,
        plan_id=str(plan.pk),
        billing_period=billing_period,
        purchase_type=TransactionType.SUBSCRIPTION,
    ).to_notes()


def credit_notes(user, package) -> dict:
    return PaymentMetadata(
        user_id=user.pk,
        purchase_type=TransactionType.CREDITS,
        package_id=str(package.pk),
        credits=package.credits,
    ).to_notes()


def razorpay_subscription_event(event, subscription_id, notes, payment_id=None, amount=49900):
    payload = {
        "entity": "event",
        "event": event,
        "payload": {"subscription": {"entity": {"id": subscription_id, "notes": notes}}},
    }
    if payment_id:
        payload["payload"]["payment"] = {
            "entity": {
                "id": payment_id,
                "amount": amount,
                "currency": "INR",
                "subscription_id": subscription_id,
            }
        }
    return payload


def razorpay_payment_event(event, payment_id, notes, amount=29900, **payment_fields):
    return {
        "entity": "event",
        "event": event,
        "payload": {
            "payment": {
                "entity": {
                    "id": payment_id,
                    "amount": amount,
                    "currency": "INR",
                    "notes": notes,
                    **payment_fields,
                }
            }
        },
    }


def razorpay_refund_event(payment_id, refund_id="rfnd_1", amount=29900, status="processed"):
    return {
        "entity": "event",
        "event": "refund.processed" if status == "processed" else "refund.created",
        "payload": {
            "refund": {
                "entity": {
                    "id": refund_id,
                    "payment_id": payment_id,
                    "amount": amount,
                    "currency": "INR",
                    "status": status,
                }
            }
        },
    }
