"""
Webhook event handlers and the processor that dispatches to them.

The handler registry is keyed by ``CanonicalEventKind``. Every kind must
have exactly one handler; the check runs when this module is imported, so a
kind added without a handler fails at startup instead of falling through
at runtime.

Outcome classification (WebhookProcessor.apply):
    handler returns           -> processed / unhandled
    DuplicateEventError       -> duplicate, audited, success
    PaymentValidationError    -> invalid, audited, acknowledged (no retry)
    PaymentNotFoundError      -> invalid, audited, acknowledged (no retry)
    anything else             -> ProcessingError raised (caller queues retry)

Usage:
    from payments.webhooks.handlers import WebhookProcessor

    outcome = WebhookProcessor.process_payload(Gateway.PAYSTACK, payload, event_id)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from django.core.exceptions import ImproperlyConfigured

from core.services import BaseService, ServiceResult

from payments.adapters import get_adapter
from payments.events import CanonicalEvent, CanonicalEventKind
from payments.exceptions import (
    DuplicateEventError,
    PaymentNotFoundError,
    PaymentValidationError,
    ProcessingError,
)
from payments.services import (
    AuditService,
    CreditPurchaseService,
    RefundService,
    SubscriptionService,
)
from payments.state_machines import AuditAction

if TYPE_CHECKING:
    from typing import Any, Mapping

    from payments.adapters import GatewayAdapter


logger = logging.getLogger(__name__)

Kind = CanonicalEventKind


# =============================================================================
# Handler Registry
# =============================================================================


# Maps canonical event kinds to handler functions
WEBHOOK_HANDLERS: dict[CanonicalEventKind, Callable[[CanonicalEvent], ServiceResult]] = {}


def register_handler(*kinds: CanonicalEventKind) -> Callable:
    """
    Decorator to register a handler for one or more canonical kinds.

    Usage:
        @register_handler(Kind.SUBSCRIPTION_CANCELLED, Kind.SUBSCRIPTION_COMPLETED)
        def handle_subscription_ended(event: CanonicalEvent) -> ServiceResult:
            ...

    Raises:
        ImproperlyConfigured: If a kind already has a handler
    """

    def decorator(func: Callable[[CanonicalEvent], ServiceResult]) -> Callable:
        for kind in kinds:
            if kind in WEBHOOK_HANDLERS:
                raise ImproperlyConfigured(f"Duplicate webhook handler for {kind}")
            WEBHOOK_HANDLERS[kind] = func
            logger.debug(f"Registered webhook handler for {kind.value}")
        return func

    return decorator


# =============================================================================
# Subscription Handlers
# =============================================================================


@register_handler(Kind.SUBSCRIPTION_AUTHENTICATED)
def handle_subscription_authenticated(event: CanonicalEvent) -> ServiceResult:
    return SubscriptionService.authenticated(event)


@register_handler(Kind.SUBSCRIPTION_ACTIVATED)
def handle_subscription_activated(event: CanonicalEvent) -> ServiceResult:
    return SubscriptionService.activate(event)


@register_handler(Kind.SUBSCRIPTION_CHARGED)
def handle_subscription_charged(event: CanonicalEvent) -> ServiceResult:
    return SubscriptionService.charge(event)


@register_handler(Kind.SUBSCRIPTION_PENDING)
def handle_subscription_pending(event: CanonicalEvent) -> ServiceResult:
    return SubscriptionService.mark_past_due(event)


@register_handler(Kind.SUBSCRIPTION_HALTED)
def handle_subscription_halted(event: CanonicalEvent) -> ServiceResult:
    """Halted means the provider gave up retrying: tell the user."""
    return SubscriptionService.mark_past_due(event, notify=True)


@register_handler(Kind.SUBSCRIPTION_CANCELLED, Kind.SUBSCRIPTION_COMPLETED)
def handle_subscription_ended(event: CanonicalEvent) -> ServiceResult:
    return SubscriptionService.cancel(event)


@register_handler(Kind.SUBSCRIPTION_CANCEL_SCHEDULED)
def handle_subscription_cancel_scheduled(event: CanonicalEvent) -> ServiceResult:
    return SubscriptionService.schedule_cancellation(event)


# =============================================================================
# Payment Handlers
# =============================================================================


@register_handler(Kind.PAYMENT_CAPTURED)
def handle_payment_captured(event: CanonicalEvent) -> ServiceResult:
    return CreditPurchaseService.capture(event)


@register_handler(Kind.PAYMENT_FAILED)
def handle_payment_failed(event: CanonicalEvent) -> ServiceResult:
    return CreditPurchaseService.payment_failed(event)


@register_handler(Kind.REFUND_CREATED)
def handle_refund_created(event: CanonicalEvent) -> ServiceResult:
    return RefundService.gateway_refund(event)


@register_handler(Kind.DISPUTE_OPENED)
def handle_dispute_opened(event: CanonicalEvent) -> ServiceResult:
    return RefundService.dispute(event)


@register_handler(Kind.UNHANDLED)
def handle_unhandled(event: CanonicalEvent) -> ServiceResult:
    """Unknown event types are acknowledged so the provider stops retrying."""
    AuditService.record_event(AuditAction.EVENT_UNHANDLED, event)
    return ServiceResult.success(None)


_missing = [kind.value for kind in CanonicalEventKind if kind not in WEBHOOK_HANDLERS]
if _missing:
    raise ImproperlyConfigured(f"No webhook handler registered for: {', '.join(_missing)}")


# =============================================================================
# Processor
# =============================================================================


@dataclass
class ProcessingOutcome:
    """
    How a delivery was classified.

    Attributes:
        status: processed, duplicate, invalid or unhandled
        event: The normalized event (None when normalization failed)
        result: Handler result for processed events
        error_code: Error code for duplicate/invalid outcomes
    """

    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    INVALID = "invalid"
    UNHANDLED = "unhandled"

    status: str
    event: CanonicalEvent | None = None
    result: ServiceResult | None = None
    error_code: str | None = None


class WebhookProcessor(BaseService):
    """
    Runs a verified delivery through normalization and its handler.

    Used by the webhook views for first delivery and by the retry sweeper
    for replays, so both paths classify outcomes the same way.
    """

    @classmethod
    def process_payload(
        cls,
        gateway: str,
        payload: Mapping[str, Any],
        event_id: str | None = None,
        adapter: GatewayAdapter | None = None,
    ) -> ProcessingOutcome:
        """
        Normalize a parsed payload and apply it.

        Args:
            gateway: Provider name
            payload: Parsed JSON body (signature already verified)
            event_id: Provider event id, when known from headers
            adapter: Adapter to use (defaults to the gateway's)

        Raises:
            ProcessingError: If applying the event failed unexpectedly
        """
        adapter = adapter or get_adapter(gateway)
        event_id = event_id or adapter.event_id(payload)
        try:
            event = adapter.normalize(payload, event_id)
        except PaymentValidationError as e:
            cls.get_logger().warning(
                "Webhook payload rejected",
                extra={"gateway": gateway, "event_id": event_id, "error_code": e.error_code},
            )
            AuditService.record(
                AuditAction.EVENT_INVALID,
                gateway=gateway,
                external_event_id=event_id,
                metadata={
                    "event_type": adapter.event_type(payload),
                    "error": e.message,
                    "error_code": e.error_code,
                    **e.details,
                },
            )
            return ProcessingOutcome(status=ProcessingOutcome.INVALID, error_code=e.error_code)
        return cls.apply(event)

    @classmethod
    def apply(cls, event: CanonicalEvent) -> ProcessingOutcome:
        """Dispatch a normalized event to its handler and classify the result."""
        handler = WEBHOOK_HANDLERS[event.kind]
        log_context = event.log_context()
        cls.get_logger().info(f"Applying {event.event_type}", extra=log_context)

        try:
            result = handler(event)
        except DuplicateEventError as e:
            cls.get_logger().info("Duplicate event ignored", extra={**log_context, **e.details})
            AuditService.record_event(AuditAction.DUPLICATE_EVENT_IGNORED, event, metadata=e.details)
            return ProcessingOutcome(status=ProcessingOutcome.DUPLICATE, event=event, error_code=e.error_code)
        except (PaymentValidationError, PaymentNotFoundError) as e:
            cls.get_logger().warning(
                f"Event acknowledged without changes: {e.message}",
                extra={**log_context, "error_code": e.error_code},
            )
            AuditService.record_event(
                AuditAction.EVENT_INVALID,
                event,
                metadata={"error": e.message, "error_code": e.error_code, **e.details},
            )
            return ProcessingOutcome(status=ProcessingOutcome.INVALID, event=event, error_code=e.error_code)
        except ProcessingError:
            raise
        except Exception as e:
            raise ProcessingError(
                f"Failed to apply {event.event_type}: {e}",
                details=log_context,
            ) from e

        status = ProcessingOutcome.UNHANDLED if event.is_unhandled else ProcessingOutcome.PROCESSED
        return ProcessingOutcome(status=status, event=event, result=result)
