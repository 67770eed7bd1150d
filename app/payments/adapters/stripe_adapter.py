"""
Stripe adapter: webhook verification/normalization and API client.

All Stripe calls go through this module so SDK errors are translated into
the payment exception taxonomy in one place.

Webhooks:
    ``stripe.Webhook.construct_event`` checks the ``Stripe-Signature``
    header (timestamped HMAC-SHA256) against the endpoint secret. Events
    carry their own id (``evt_xxx``).

Identity of a charge:
    Credits purchases are recorded under the PaymentIntent id; subscription
    charges under the Invoice id. Refund and dispute events list both so the
    engine can find the owning transaction either way.

API:
    Every request passes the resolved secret key as ``api_key``; the SDK's
    module-level key is never set.

Usage:
    from payments.adapters.registry import get_client

    client = get_client(Gateway.STRIPE)
    result = client.refund_payment("pi_xxx", idempotency_key="refund:txn_123")
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any, Mapping

import stripe

from payments.adapters.base import GatewayAdapter, GatewayRefundResult
from payments.events import CanonicalEvent, CanonicalEventKind, PaymentMetadata, from_minor_units
from payments.exceptions import GatewayError, GatewayNotConfiguredError, TransientGatewayError
from payments.state_machines import Gateway, TransactionType

if TYPE_CHECKING:
    from payments.config import GatewayConfig


logger = logging.getLogger(__name__)

Kind = CanonicalEventKind

# Invoice billing reasons that represent a renewal charge
RENEWAL_BILLING_REASONS = {"subscription_cycle"}


def _object(payload: Mapping[str, Any]) -> dict[str, Any]:
    return (payload.get("data") or {}).get("object") or {}


def _invoice_subscription(invoice: Mapping[str, Any]) -> tuple[str | None, dict[str, Any]]:
    """
    Subscription id and metadata of an invoice.

    Newer API versions nest them under ``parent.subscription_details``.
    """
    details = invoice.get("subscription_details") or {}
    parent_details = (invoice.get("parent") or {}).get("subscription_details") or {}
    subscription_id = invoice.get("subscription") or parent_details.get("subscription")
    if isinstance(subscription_id, dict):
        subscription_id = subscription_id.get("id")
    metadata = details.get("metadata") or parent_details.get("metadata") or invoice.get("metadata") or {}
    return subscription_id, metadata


# =============================================================================
# Webhooks
# =============================================================================


class StripeWebhookAdapter(GatewayAdapter):
    gateway = Gateway.STRIPE
    signature_header = "Stripe-Signature"

    def verify_signature(self, body: bytes, signature: str | None) -> bool:
        secret = self.config.webhook_secret
        if not secret or not signature:
            return False
        try:
            stripe.Webhook.construct_event(body, signature, secret)
        except stripe.SignatureVerificationError as e:
            logger.warning(
                "Stripe webhook signature verification failed",
                extra={"gateway": self.gateway, "error": str(e)},
            )
            return False
        except ValueError:
            logger.warning("Stripe webhook body is not valid JSON", extra={"gateway": self.gateway})
            return False
        return True

    def event_type(self, payload: Mapping[str, Any]) -> str:
        return str(payload.get("type") or "")

    def event_id(self, payload: Mapping[str, Any], headers: Mapping[str, str] | None = None) -> str:
        return str(payload.get("id") or super().event_id(payload, headers))

    def normalize(self, payload: Mapping[str, Any], event_id: str) -> CanonicalEvent:
        event_type = self.event_type(payload)
        obj = _object(payload)
        base = {"gateway": self.gateway, "event_type": event_type, "event_id": event_id}

        if event_type == "checkout.session.completed":
            metadata = PaymentMetadata.from_mapping(obj.get("metadata"))
            amount = from_minor_units(obj.get("amount_total"))
            currency = (obj.get("currency") or "").upper() or None
            if metadata.purchase_type == TransactionType.CREDITS:
                return CanonicalEvent(
                    kind=Kind.PAYMENT_CAPTURED,
                    metadata=metadata,
                    payment_id=obj.get("payment_intent") or obj.get("id"),
                    amount=amount,
                    currency=currency,
                    **base,
                )
            if obj.get("mode") == "subscription":
                return CanonicalEvent(
                    kind=Kind.SUBSCRIPTION_ACTIVATED,
                    metadata=metadata,
                    payment_id=obj.get("invoice") or obj.get("id"),
                    subscription_id=obj.get("subscription"),
                    amount=amount,
                    currency=currency,
                    **base,
                )
            return self.unhandled(event_type, event_id)

        if event_type == "invoice.payment_succeeded":
            if obj.get("billing_reason") not in RENEWAL_BILLING_REASONS:
                # First invoice is covered by checkout.session.completed
                return self.unhandled(event_type, event_id)
            subscription_id, raw_metadata = _invoice_subscription(obj)
            return CanonicalEvent(
                kind=Kind.SUBSCRIPTION_CHARGED,
                metadata=PaymentMetadata.from_mapping(raw_metadata),
                payment_id=obj.get("id"),
                subscription_id=subscription_id,
                amount=from_minor_units(obj.get("amount_paid")),
                currency=(obj.get("currency") or "").upper() or None,
                **base,
            )

        if event_type == "invoice.payment_failed":
            subscription_id, raw_metadata = _invoice_subscription(obj)
            return CanonicalEvent(
                kind=Kind.SUBSCRIPTION_PENDING,
                metadata=PaymentMetadata.from_mapping(raw_metadata),
                payment_id=obj.get("id"),
                subscription_id=subscription_id,
                amount=from_minor_units(obj.get("amount_due")),
                currency=(obj.get("currency") or "").upper() or None,
                reason="Invoice payment failed",
                **base,
            )

        if event_type == "customer.subscription.deleted":
            return CanonicalEvent(
                kind=Kind.SUBSCRIPTION_CANCELLED,
                metadata=PaymentMetadata.from_mapping(obj.get("metadata")),
                subscription_id=obj.get("id"),
                **base,
            )

        if event_type == "customer.subscription.updated" and obj.get("cancel_at_period_end"):
            return CanonicalEvent(
                kind=Kind.SUBSCRIPTION_CANCEL_SCHEDULED,
                metadata=PaymentMetadata.from_mapping(obj.get("metadata")),
                subscription_id=obj.get("id"),
                **base,
            )

        if event_type == "payment_intent.payment_failed":
            error = obj.get("last_payment_error") or {}
            return CanonicalEvent(
                kind=Kind.PAYMENT_FAILED,
                metadata=PaymentMetadata.from_mapping(obj.get("metadata")),
                payment_id=obj.get("id"),
                amount=from_minor_units(obj.get("amount")),
                currency=(obj.get("currency") or "").upper() or None,
                reason=error.get("message") or "Payment failed",
                **base,
            )

        if event_type == "charge.refunded":
            refunds = (obj.get("refunds") or {}).get("data") or []
            latest = refunds[0] if refunds else {}
            return CanonicalEvent(
                kind=Kind.REFUND_CREATED,
                metadata=PaymentMetadata.from_mapping(obj.get("metadata")),
                payment_id=obj.get("payment_intent"),
                alternate_payment_ids=tuple(i for i in (obj.get("invoice"), obj.get("id")) if i),
                refund_id=latest.get("id") or obj.get("id"),
                amount=from_minor_units(obj.get("amount_refunded")),
                currency=(obj.get("currency") or "").upper() or None,
                refund_processed=(latest.get("status") or "succeeded") == "succeeded",
                reason=latest.get("reason") or "external_refund",
                **base,
            )

        if event_type == "charge.dispute.created":
            return CanonicalEvent(
                kind=Kind.DISPUTE_OPENED,
                metadata=PaymentMetadata.from_mapping(obj.get("metadata")),
                payment_id=obj.get("payment_intent"),
                alternate_payment_ids=tuple(i for i in (obj.get("charge"),) if i),
                refund_id=obj.get("id"),
                amount=from_minor_units(obj.get("amount")),
                currency=(obj.get("currency") or "").upper() or None,
                reason=obj.get("reason") or "unknown",
                **base,
            )

        return self.unhandled(event_type, event_id)


# =============================================================================
# API client
# =============================================================================


class StripeClient:
    """
    Stripe API client bound to one resolved GatewayConfig.

    Features:
    - Per-request API key (no module-level SDK state)
    - Automatic error translation to payment exceptions
    - Structured logging with timing
    - Idempotency keys on refunds
    """

    def __init__(self, config: GatewayConfig):
        if not config.is_configured:
            raise GatewayNotConfiguredError(
                "Stripe secret key is not configured",
                details={"gateway": Gateway.STRIPE},
            )
        self.config = config
        self.gateway = Gateway.STRIPE

    def close(self) -> None:
        """Nothing to release; present for parity with the HTTP clients."""

    @property
    def _options(self) -> dict[str, Any]:
        return {"api_key": self.config.secret_key}

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    def refund_payment(
        self,
        payment_id: str,
        amount_minor: int | None = None,
        notes: dict[str, str] | None = None,
        idempotency_key: str | None = None,
    ) -> GatewayRefundResult:
        """
        Refund a charge recorded under a PaymentIntent, Charge or Invoice id.

        Raises:
            TransientGatewayError: Network, rate limit or Stripe outage
            GatewayError: Stripe rejected the refund
        """
        log_context = {"operation": "refund_payment", "payment_id": payment_id}
        start_time = time.time()
        self.get_logger().info("Starting Stripe operation", extra=log_context)

        try:
            params: dict[str, Any] = {"metadata": notes or {}}
            if payment_id.startswith("in_"):
                invoice = stripe.Invoice.retrieve(payment_id, **self._options)
                if invoice.get("payment_intent"):
                    params["payment_intent"] = invoice["payment_intent"]
                else:
                    params["charge"] = invoice.get("charge")
            elif payment_id.startswith("ch_"):
                params["charge"] = payment_id
            else:
                params["payment_intent"] = payment_id
            if amount_minor is not None:
                params["amount"] = amount_minor

            # A payment is refunded at most once
            options = {**self._options, "idempotency_key": idempotency_key or f"refund-{payment_id}"}
            refund = stripe.Refund.create(**params, **options)
        except stripe.StripeError as e:
            self._handle_stripe_error(e, log_context, (time.time() - start_time) * 1000)
            raise

        self.get_logger().info(
            "Stripe operation completed",
            extra={
                **log_context,
                "refund_id": refund.id,
                "status": refund.status,
                "duration_ms": (time.time() - start_time) * 1000,
            },
        )
        return GatewayRefundResult(
            refund_id=refund.id,
            status=refund.status,
            processed=refund.status == "succeeded",
            raw_response=refund.to_dict(),
        )

    def cancel_subscription(self, subscription_id: str, at_period_end: bool = True) -> dict[str, Any]:
        log_context = {"operation": "cancel_subscription", "subscription_id": subscription_id}
        start_time = time.time()
        try:
            if at_period_end:
                subscription = stripe.Subscription.modify(
                    subscription_id,
                    cancel_at_period_end=True,
                    **self._options,
                )
            else:
                subscription = stripe.Subscription.cancel(subscription_id, **self._options)
        except stripe.StripeError as e:
            self._handle_stripe_error(e, log_context, (time.time() - start_time) * 1000)
            raise

        self.get_logger().info(
            "Stripe operation completed",
            extra={**log_context, "duration_ms": (time.time() - start_time) * 1000},
        )
        return subscription.to_dict()

    # =========================================================================
    # Error Handling
    # =========================================================================

    def _handle_stripe_error(
        self,
        error: stripe.StripeError,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe SDK exceptions into payment exceptions.

        Raises:
            TransientGatewayError: Rate limit, connection failure, Stripe 5xx
            GatewayError: Invalid request, card error, authentication failure
        """
        logger = self.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms, "stripe_code": error.code}

        if isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise TransientGatewayError(
                "Stripe rate limit exceeded. Please retry.",
                gateway=self.gateway,
                provider_code="rate_limit",
            ) from error

        if isinstance(error, stripe.APIConnectionError):
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            raise TransientGatewayError(
                "Could not connect to Stripe. Please retry.",
                gateway=self.gateway,
                provider_code="api_connection_error",
            ) from error

        if isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise TransientGatewayError(
                "Stripe service error. Please retry.",
                gateway=self.gateway,
                provider_code="api_error",
            ) from error

        if isinstance(error, stripe.AuthenticationError):
            logger.critical("Stripe authentication failed - check API key", extra=log_context)
            raise GatewayError(
                "Stripe authentication failed",
                gateway=self.gateway,
                error_code="GATEWAY_AUTHENTICATION_FAILED",
                provider_code="authentication_error",
            ) from error

        logger.error(f"Stripe rejected request: {type(error).__name__}", extra=log_context)
        raise GatewayError(
            str(error.user_message or error),
            gateway=self.gateway,
            provider_code=error.code,
        ) from error
