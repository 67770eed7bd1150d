"""
Webhook endpoint views, one per gateway.

Every view runs the same pipeline:
1. Verify the signature over the raw body (fails closed without a secret)
2. Record receipt time for the gateway status page
3. Normalize and apply the event synchronously
4. Acknowledge with ``200 {"received": true}``

Responses:
    200: Processed, duplicate, unhandled or invalid (acknowledged) event
    400: Missing or invalid signature; nothing recorded but the rejection
    500: Processing failed; the delivery is in the retry queue

Usage:
    # In urls.py
    from payments.webhooks.views import razorpay_webhook

    urlpatterns = [
        path("webhooks/razorpay/", razorpay_webhook, name="razorpay-webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from core.helpers import get_client_ip

from payments.adapters import get_adapter
from payments.config import GatewayConfigResolver
from payments.exceptions import PaymentValidationError
from payments.services import AuditService, RetryQueueService
from payments.state_machines import AuditAction, Gateway
from payments.webhooks.handlers import WebhookProcessor


logger = logging.getLogger(__name__)


def _received() -> JsonResponse:
    return JsonResponse({"received": True})


def handle_webhook(request: HttpRequest, gateway: str) -> JsonResponse:
    """
    Verify, apply and acknowledge one webhook delivery.

    Processing is synchronous: handlers only touch the database, and
    collaborator calls (email, invoices) are queued after commit.
    """
    config = GatewayConfigResolver.resolve(gateway)
    adapter = get_adapter(gateway, config)
    body = request.body
    signature = request.headers.get(adapter.signature_header)

    # Step 1: Verify signature
    if not adapter.verify_signature(body, signature):
        logger.warning(
            "Webhook signature verification failed",
            extra={
                "gateway": gateway,
                "has_signature": bool(signature),
                "has_secret": bool(config.webhook_secret),
                "remote_ip": get_client_ip(request),
            },
        )
        AuditService.record(
            AuditAction.WEBHOOK_REJECTED,
            gateway=gateway,
            metadata={
                "reason": "missing_signature" if not signature else "invalid_signature",
                "remote_ip": get_client_ip(request),
            },
        )
        return JsonResponse({"error": "Invalid signature"}, status=400)

    GatewayConfigResolver.record_webhook_received(gateway)

    # Step 2: Parse
    try:
        payload = adapter.parse_body(body)
    except PaymentValidationError as e:
        logger.warning("Webhook body is not valid JSON", extra={"gateway": gateway})
        AuditService.record(
            AuditAction.EVENT_INVALID,
            gateway=gateway,
            metadata={"error": e.message, "error_code": e.error_code},
        )
        return _received()

    event_id = adapter.event_id(payload, request.headers)
    event_type = adapter.event_type(payload)
    logger.info(
        f"Received {gateway} webhook: {event_type}",
        extra={"gateway": gateway, "event_type": event_type, "event_id": event_id},
    )

    # Step 3: Apply; any failure goes to the retry queue
    try:
        outcome = WebhookProcessor.process_payload(gateway, payload, event_id=event_id, adapter=adapter)
    except Exception as e:
        logger.exception(
            "Webhook processing failed, queued for retry",
            extra={"gateway": gateway, "event_type": event_type, "event_id": event_id},
        )
        RetryQueueService.queue_failed_webhook(
            gateway=gateway,
            event_type=event_type,
            external_event_id=event_id,
            payload=payload,
            error=str(e) or e.__class__.__name__,
        )
        return JsonResponse({"error": "Processing failed"}, status=500)

    logger.info(
        f"Webhook {outcome.status}",
        extra={"gateway": gateway, "event_type": event_type, "event_id": event_id, "outcome": outcome.status},
    )
    return _received()


@csrf_exempt
@require_POST
def razorpay_webhook(request: HttpRequest) -> JsonResponse:
    """Razorpay webhooks, signed with ``X-Razorpay-Signature``."""
    return handle_webhook(request, Gateway.RAZORPAY)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> JsonResponse:
    """Stripe webhooks, signed with ``Stripe-Signature``."""
    return handle_webhook(request, Gateway.STRIPE)


@csrf_exempt
@require_POST
def paystack_webhook(request: HttpRequest) -> JsonResponse:
    """Paystack webhooks, signed with ``X-Paystack-Signature``."""
    return handle_webhook(request, Gateway.PAYSTACK)
