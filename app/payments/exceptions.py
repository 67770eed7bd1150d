"""
Payment-specific exceptions.

Every failure the engine can meet falls into one of these classes, and the
class decides what happens to the delivery that caused it.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── PaymentValidationError - Malformed or incomplete event metadata
    │                            (acknowledged, audited, never retried)
    ├── DuplicateEventError - Idempotency hit (treated as success)
    ├── PaymentNotFoundError - Referenced plan/package/transaction missing
    │                          (acknowledged, needs operator attention)
    ├── ProcessingError - Unexpected failure while mutating state
    │                     (queued for replay until the retry window closes)
    ├── GatewayNotConfiguredError - Gateway disabled or missing credentials
    └── GatewayError - Provider API rejected a call (permanent)
        └── TransientGatewayError - Network/timeout/5xx/rate limit (retryable)

Usage:
    from payments.exceptions import PaymentValidationError

    if not metadata.user_id:
        raise PaymentValidationError(
            "No userId in payment notes",
            error_code="MISSING_USER_ID",
            details={"field": "userId"},
        )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


class PaymentError(BaseApplicationError):
    """
    Base exception for all payment operations.

    Example:
        try:
            RefundService.admin_refund(transaction_id, admin)
        except PaymentError as e:
            return Response(e.to_dict(), status=400)
    """

    default_error_code: str = "PAYMENT_ERROR"


class PaymentValidationError(PaymentError, ValidationError):
    """
    Raised when an event or request lacks required, well-formed data.

    Retrying cannot repair bad data, so webhook deliveries failing with
    this error are acknowledged and audited instead of queued.
    """

    default_error_code: str = "PAYMENT_VALIDATION_ERROR"


class DuplicateEventError(PaymentError, ConflictError):
    """
    Raised when an event has already been applied.

    Callers translate this into a successful no-op result.
    """

    default_error_code: str = "DUPLICATE_EVENT"


class PaymentNotFoundError(PaymentError, NotFoundError):
    """
    Raised when a referenced payment entity cannot be found.

    Example:
        raise PaymentNotFoundError(
            f"Plan {plan_id} not found",
            error_code="PLAN_NOT_FOUND",
            details={"plan_id": plan_id},
        )
    """

    default_error_code: str = "PAYMENT_NOT_FOUND"


class ProcessingError(PaymentError):
    """Raised when applying an event fails unexpectedly."""

    default_error_code: str = "PAYMENT_PROCESSING_ERROR"


class GatewayNotConfiguredError(PaymentError):
    """Raised when a gateway is disabled or its credentials are missing."""

    default_error_code: str = "GATEWAY_NOT_CONFIGURED"


# =============================================================================
# Provider API Exceptions
# =============================================================================


class GatewayError(PaymentError, ExternalServiceError):
    """
    Raised when a provider API call fails.

    Attributes:
        gateway: Provider that failed
        provider_code: Provider's own error code, when it sent one
        is_retryable: Whether repeating the call may succeed

    Example:
        try:
            client.refund_payment(payment_id, amount)
        except GatewayError as e:
            if e.is_retryable:
                ...  # surface "try again" to the admin
    """

    default_error_code: str = "GATEWAY_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        gateway: str | None = None,
        error_code: str | None = None,
        provider_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if gateway:
            details["gateway"] = gateway
        if provider_code:
            details["provider_code"] = provider_code
        super().__init__(message, error_code=error_code, details=details)
        self.gateway = gateway
        self.provider_code = provider_code


class TransientGatewayError(GatewayError):
    """
    Raised for network errors, timeouts, rate limits and provider 5xx.

    Safe to retry with backoff; admin flows surface it as 503.
    """

    default_error_code: str = "GATEWAY_UNAVAILABLE"
    is_retryable: bool = True
