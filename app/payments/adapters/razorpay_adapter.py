"""
Razorpay adapter: webhook verification/normalization and REST API client.

Webhooks:
    Signature: hex HMAC-SHA256 of the raw body keyed by the webhook secret,
    sent in ``X-Razorpay-Signature``. The event id arrives in
    ``X-Razorpay-Event-Id``; the event type is ``payload["event"]`` and the
    entities sit under ``payload["payload"][<name>]["entity"]``.

API:
    Basic auth with key id/secret against https://api.razorpay.com/v1.
    Amounts are in paise.

Usage:
    from payments.adapters.registry import get_adapter, get_client

    adapter = get_adapter(Gateway.RAZORPAY)
    if adapter.verify_signature(request.body, request.headers.get(adapter.signature_header)):
        event = adapter.normalize(payload, event_id)

    client = get_client(Gateway.RAZORPAY)
    subscription = client.create_subscription(plan_id="plan_xxx", total_count=60, notes=notes)
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Any, Mapping

from payments.adapters.base import GatewayAdapter, GatewayRefundResult, hmac_signature_matches
from payments.adapters.http import GatewayHttpClient
from payments.events import CanonicalEvent, CanonicalEventKind, PaymentMetadata, from_minor_units
from payments.state_machines import Gateway

Kind = CanonicalEventKind

RAZORPAY_EVENT_KINDS: dict[str, CanonicalEventKind] = {
    "subscription.authenticated": Kind.SUBSCRIPTION_AUTHENTICATED,
    "subscription.activated": Kind.SUBSCRIPTION_ACTIVATED,
    "subscription.charged": Kind.SUBSCRIPTION_CHARGED,
    "subscription.pending": Kind.SUBSCRIPTION_PENDING,
    "subscription.halted": Kind.SUBSCRIPTION_HALTED,
    "subscription.cancelled": Kind.SUBSCRIPTION_CANCELLED,
    "subscription.completed": Kind.SUBSCRIPTION_COMPLETED,
    "payment.captured": Kind.PAYMENT_CAPTURED,
    "payment.failed": Kind.PAYMENT_FAILED,
    "refund.created": Kind.REFUND_CREATED,
    "refund.processed": Kind.REFUND_CREATED,
    "payment.dispute.created": Kind.DISPUTE_OPENED,
    "payment.dispute.won": Kind.DISPUTE_OPENED,
    "payment.dispute.lost": Kind.DISPUTE_OPENED,
}


def _entity(payload: Mapping[str, Any], name: str) -> dict[str, Any]:
    wrapper = (payload.get("payload") or {}).get(name) or {}
    return wrapper.get("entity") or {}


class RazorpayWebhookAdapter(GatewayAdapter):
    gateway = Gateway.RAZORPAY
    signature_header = "X-Razorpay-Signature"
    event_id_header = "X-Razorpay-Event-Id"

    def verify_signature(self, body: bytes, signature: str | None) -> bool:
        return hmac_signature_matches(self.config.webhook_secret, body, signature, hashlib.sha256)

    def event_type(self, payload: Mapping[str, Any]) -> str:
        return str(payload.get("event") or "")

    def event_id(self, payload: Mapping[str, Any], headers: Mapping[str, str] | None = None) -> str:
        if headers and headers.get(self.event_id_header):
            return headers[self.event_id_header]
        if payload.get("id"):
            return str(payload["id"])
        return super().event_id(payload, headers)

    def normalize(self, payload: Mapping[str, Any], event_id: str) -> CanonicalEvent:
        event_type = self.event_type(payload)
        kind = RAZORPAY_EVENT_KINDS.get(event_type)
        if kind is None:
            return self.unhandled(event_type, event_id)

        subscription = _entity(payload, "subscription")
        payment = _entity(payload, "payment")
        refund = _entity(payload, "refund")
        dispute = _entity(payload, "dispute")

        if event_type.startswith("subscription."):
            metadata = PaymentMetadata.from_mapping(subscription.get("notes"))
        else:
            metadata = PaymentMetadata.from_mapping(payment.get("notes"))

        fields: dict[str, Any] = {
            "payment_id": payment.get("id"),
            "subscription_id": subscription.get("id") or payment.get("subscription_id"),
            "amount": from_minor_units(payment.get("amount")),
            "currency": payment.get("currency"),
        }

        if kind is Kind.PAYMENT_FAILED:
            fields["reason"] = payment.get("error_description") or "Payment failed"
        elif kind is Kind.REFUND_CREATED:
            fields["payment_id"] = payment.get("id") or refund.get("payment_id")
            fields["refund_id"] = refund.get("id")
            fields["amount"] = from_minor_units(refund.get("amount"))
            fields["currency"] = refund.get("currency") or payment.get("currency")
            fields["refund_processed"] = refund.get("status") == "processed"
            fields["reason"] = (refund.get("notes") or {}).get("reason") or "external_refund"
        elif kind is Kind.DISPUTE_OPENED:
            fields["payment_id"] = payment.get("id") or dispute.get("payment_id")
            fields["refund_id"] = dispute.get("id")
            fields["amount"] = from_minor_units(dispute.get("amount"))
            fields["currency"] = dispute.get("currency") or payment.get("currency")
            fields["reason"] = dispute.get("reason_code") or "unknown"

        return CanonicalEvent(
            kind=kind,
            gateway=self.gateway,
            event_type=event_type,
            event_id=event_id,
            metadata=metadata,
            **fields,
        )


class RazorpayClient(GatewayHttpClient):
    """Razorpay REST API client."""

    base_url = "https://api.razorpay.com/v1"

    def auth_options(self) -> dict[str, Any]:
        return {"auth": (self.config.key_id, self.config.key_secret)}

    def provider_error(self, response) -> tuple[str, str | None]:
        try:
            error = response.json().get("error") or {}
        except ValueError:
            return response.text[:500], None
        return error.get("description") or "Razorpay request failed", error.get("code")

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def create_subscription(
        self,
        plan_id: str,
        total_count: int,
        notes: dict[str, str],
        notify_email: str | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "plan_id": plan_id,
            "total_count": total_count,
            "customer_notify": 1,
            "notes": notes,
        }
        if notify_email:
            body["notify_info"] = {"notify_email": notify_email}
        return self.request("POST", "/subscriptions", json=body)

    def fetch_subscription(self, subscription_id: str) -> dict[str, Any]:
        return self.request("GET", f"/subscriptions/{subscription_id}")

    def cancel_subscription(self, subscription_id: str, at_period_end: bool = True) -> dict[str, Any]:
        return self.request(
            "POST",
            f"/subscriptions/{subscription_id}/cancel",
            json={"cancel_at_cycle_end": 1 if at_period_end else 0},
        )

    # =========================================================================
    # Orders, refunds
    # =========================================================================

    def create_order(
        self,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: dict[str, str],
    ) -> dict[str, Any]:
        return self.request(
            "POST",
            "/orders",
            json={"amount": amount_minor, "currency": currency, "receipt": receipt, "notes": notes},
        )

    def fetch_order(self, order_id: str) -> dict[str, Any]:
        return self.request("GET", f"/orders/{order_id}")

    def refund_payment(
        self,
        payment_id: str,
        amount_minor: int | None = None,
        notes: dict[str, str] | None = None,
    ) -> GatewayRefundResult:
        body: dict[str, Any] = {}
        if amount_minor is not None:
            body["amount"] = amount_minor
        if notes:
            body["notes"] = notes
        refund = self.request("POST", f"/payments/{payment_id}/refund", json=body)
        return GatewayRefundResult(
            refund_id=refund["id"],
            status=refund.get("status", ""),
            processed=refund.get("status") == "processed",
            raw_response=refund,
        )

    # =========================================================================
    # Checkout signature
    # =========================================================================

    def verify_payment_signature(
        self,
        payment_id: str,
        signature: str,
        subscription_id: str | None = None,
        order_id: str | None = None,
    ) -> bool:
        """
        Verify the signature Razorpay Checkout hands back to the browser.

        Subscriptions sign ``payment_id|subscription_id``; orders sign
        ``order_id|payment_id``. Keyed by the API key secret.
        """
        if subscription_id:
            message = f"{payment_id}|{subscription_id}"
        elif order_id:
            message = f"{order_id}|{payment_id}"
        else:
            return False
        if not signature:
            return False
        expected = hmac.new(
            self.config.key_secret.encode("utf-8"),
            message.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return hmac.compare_digest(expected, signature)
