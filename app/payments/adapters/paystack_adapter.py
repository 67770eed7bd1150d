"""
Paystack adapter: webhook verification/normalization and REST API client.

Webhooks:
    Signature: hex HMAC-SHA512 of the raw body keyed by the secret key,
    sent in ``X-Paystack-Signature``. Payloads are ``{"event", "data"}``
    and carry no event id, so the payload digest is used.

    ``charge.success`` covers both purchase kinds; ``metadata.type``
    decides (``subscription`` when absent).

    A first subscription charge often arrives before Paystack has issued
    the subscription code, so it is stored under the card authorization
    code. Later subscription events carry that authorization code as
    ``provisional_subscription_id`` and the stored id is replaced by the
    real ``SUB_`` code the first time one is matched.

API:
    Bearer secret key against https://api.paystack.co. Amounts in kobo.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Mapping

from payments.adapters.base import GatewayAdapter, GatewayRefundResult, hmac_signature_matches
from payments.adapters.http import GatewayHttpClient
from payments.events import CanonicalEvent, CanonicalEventKind, PaymentMetadata, from_minor_units
from payments.exceptions import GatewayError, PaymentValidationError
from payments.state_machines import Gateway, TransactionType

Kind = CanonicalEventKind


def _metadata(raw: Any) -> PaymentMetadata:
    # Paystack echoes metadata back as a JSON string when it was sent as one
    if isinstance(raw, str):
        try:
            raw = json.loads(raw) if raw.strip() else {}
        except ValueError:
            raise PaymentValidationError(
                "Paystack metadata is not valid JSON",
                error_code="INVALID_METADATA",
            )
    return PaymentMetadata.from_mapping(raw)


def _authorization_code(data: Mapping[str, Any]) -> str | None:
    return (data.get("authorization") or {}).get("authorization_code")


class PaystackWebhookAdapter(GatewayAdapter):
    gateway = Gateway.PAYSTACK
    signature_header = "X-Paystack-Signature"

    def verify_signature(self, body: bytes, signature: str | None) -> bool:
        return hmac_signature_matches(self.config.webhook_secret, body, signature, hashlib.sha512)

    def event_type(self, payload: Mapping[str, Any]) -> str:
        return str(payload.get("event") or "")

    def normalize(self, payload: Mapping[str, Any], event_id: str) -> CanonicalEvent:
        event_type = self.event_type(payload)
        data = payload.get("data") or {}
        base = {"gateway": self.gateway, "event_type": event_type, "event_id": event_id}
        currency = (data.get("currency") or "").upper() or None

        if event_type == "charge.success":
            metadata = _metadata(data.get("metadata"))
            subscription_code = (data.get("subscription") or {}).get("subscription_code")
            kind = (
                Kind.PAYMENT_CAPTURED
                if metadata.purchase_type == TransactionType.CREDITS
                else Kind.SUBSCRIPTION_ACTIVATED
            )
            return CanonicalEvent(
                kind=kind,
                metadata=metadata,
                payment_id=data.get("reference"),
                subscription_id=subscription_code or _authorization_code(data),
                provisional_subscription_id=_authorization_code(data) if subscription_code else None,
                amount=from_minor_units(data.get("amount")),
                currency=currency,
                **base,
            )

        if event_type == "subscription.create":
            return CanonicalEvent(
                kind=Kind.SUBSCRIPTION_AUTHENTICATED,
                subscription_id=data.get("subscription_code"),
                provisional_subscription_id=_authorization_code(data),
                **base,
            )

        if event_type == "subscription.disable":
            return CanonicalEvent(
                kind=Kind.SUBSCRIPTION_CANCELLED,
                subscription_id=data.get("subscription_code"),
                provisional_subscription_id=_authorization_code(data),
                **base,
            )

        if event_type == "subscription.not_renew":
            return CanonicalEvent(
                kind=Kind.SUBSCRIPTION_CANCEL_SCHEDULED,
                subscription_id=data.get("subscription_code"),
                provisional_subscription_id=_authorization_code(data),
                **base,
            )

        if event_type == "invoice.payment_failed":
            subscription = data.get("subscription") or {}
            return CanonicalEvent(
                kind=Kind.SUBSCRIPTION_PENDING,
                subscription_id=subscription.get("subscription_code"),
                provisional_subscription_id=_authorization_code(data),
                amount=from_minor_units(data.get("amount")),
                currency=currency,
                reason="Subscription renewal failed",
                **base,
            )

        if event_type == "refund.processed":
            reference = data.get("transaction_reference") or (data.get("transaction") or {}).get("reference")
            return CanonicalEvent(
                kind=Kind.REFUND_CREATED,
                payment_id=reference,
                refund_id=str(data["id"]) if data.get("id") is not None else None,
                amount=from_minor_units(data.get("amount")),
                currency=currency,
                reason=data.get("merchant_note") or "external_refund",
                **base,
            )

        if event_type == "charge.dispute.create":
            transaction = data.get("transaction") or {}
            return CanonicalEvent(
                kind=Kind.DISPUTE_OPENED,
                payment_id=transaction.get("reference"),
                refund_id=str(data["id"]) if data.get("id") is not None else None,
                amount=from_minor_units(data.get("refund_amount") or transaction.get("amount")),
                currency=currency or (transaction.get("currency") or "").upper() or None,
                reason=data.get("reason") or data.get("category") or "unknown",
                **base,
            )

        return self.unhandled(event_type, event_id)


class PaystackClient(GatewayHttpClient):
    """Paystack REST API client."""

    base_url = "https://api.paystack.co"

    def auth_options(self) -> dict[str, Any]:
        return {"headers": {"Authorization": f"Bearer {self.config.secret_key}"}}

    def provider_error(self, response) -> tuple[str, str | None]:
        try:
            body = response.json()
        except ValueError:
            return response.text[:500], None
        return body.get("message") or "Paystack request failed", body.get("code")

    def _data(self, method: str, path: str, json: dict[str, Any] | None = None) -> dict[str, Any]:
        body = self.request(method, path, json=json)
        if not body.get("status"):
            raise GatewayError(
                body.get("message") or "Paystack request failed",
                gateway=self.gateway,
                details={"path": path},
            )
        return body.get("data") or {}

    def refund_payment(
        self,
        payment_id: str,
        amount_minor: int | None = None,
        notes: dict[str, str] | None = None,
    ) -> GatewayRefundResult:
        body: dict[str, Any] = {"transaction": payment_id}
        if amount_minor is not None:
            body["amount"] = amount_minor
        if notes and notes.get("reason"):
            body["merchant_note"] = notes["reason"]
        refund = self._data("POST", "/refund", json=body)
        return GatewayRefundResult(
            refund_id=str(refund.get("id", "")),
            status=refund.get("status", ""),
            processed=refund.get("status") == "processed",
            raw_response=refund,
        )

    def fetch_subscription(self, subscription_code: str) -> dict[str, Any]:
        return self._data("GET", f"/subscription/{subscription_code}")

    def cancel_subscription(self, subscription_id: str, at_period_end: bool = True) -> dict[str, Any]:
        """
        Disable a subscription.

        Paystack stops future charges immediately; the paid period is left
        untouched, so ``at_period_end`` has no separate effect.
        """
        subscription = self.fetch_subscription(subscription_id)
        return self._data(
            "POST",
            "/subscription/disable",
            json={"code": subscription_id, "token": subscription.get("email_token")},
        )
