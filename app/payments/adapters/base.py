"""
Base class for gateway webhook adapters.

An adapter owns everything provider-specific about an inbound webhook:
which header carries the signature, how the signature is computed, where
the event type and event id live, and how the payload maps onto a
``CanonicalEvent``. The engine only ever talks to this interface.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, Mapping

from payments.events import CanonicalEvent, CanonicalEventKind, payload_digest
from payments.exceptions import PaymentValidationError

if TYPE_CHECKING:
    from payments.config import GatewayConfig


logger = logging.getLogger(__name__)


def hmac_signature_matches(
    secret: str,
    body: bytes,
    signature: str | None,
    digestmod=hashlib.sha256,
) -> bool:
    """
    Constant-time check of a hex HMAC over the raw body.

    Fails closed: an empty secret or an empty signature never verifies.
    """
    if not secret or not signature:
        return False
    expected = hmac.new(secret.encode("utf-8"), body, digestmod).hexdigest()
    return hmac.compare_digest(expected, signature.strip())


class GatewayAdapter(ABC):
    """
    Signature verifier and event normalizer for one gateway.

    Subclasses set ``gateway`` and ``signature_header`` and implement
    ``verify_signature``, ``event_type`` and ``normalize``.
    """

    gateway: ClassVar[str]
    signature_header: ClassVar[str]

    def __init__(self, config: GatewayConfig):
        self.config = config

    @abstractmethod
    def verify_signature(self, body: bytes, signature: str | None) -> bool:
        """Return True only if ``signature`` authenticates ``body``."""

    @abstractmethod
    def event_type(self, payload: Mapping[str, Any]) -> str:
        """Provider event type string."""

    @abstractmethod
    def normalize(self, payload: Mapping[str, Any], event_id: str) -> CanonicalEvent:
        """
        Map a provider payload onto a CanonicalEvent.

        Unknown event types return an UNHANDLED event rather than raising.

        Raises:
            PaymentValidationError: If a known event carries malformed data
        """

    def event_id(self, payload: Mapping[str, Any], headers: Mapping[str, str] | None = None) -> str:
        """Provider event id; defaults to a digest of the payload."""
        return payload_digest(payload)

    def parse_body(self, body: bytes) -> dict[str, Any]:
        try:
            payload = json.loads(body)
        except (UnicodeDecodeError, ValueError):
            raise PaymentValidationError(
                "Webhook body is not valid JSON",
                error_code="INVALID_PAYLOAD",
                details={"gateway": self.gateway},
            )
        if not isinstance(payload, dict):
            raise PaymentValidationError(
                "Webhook body must be a JSON object",
                error_code="INVALID_PAYLOAD",
                details={"gateway": self.gateway},
            )
        return payload

    def unhandled(self, event_type: str, event_id: str) -> CanonicalEvent:
        logger.info(
            f"Unhandled {self.gateway} event type: {event_type}",
            extra={"gateway": self.gateway, "event_type": event_type, "event_id": event_id},
        )
        return CanonicalEvent(
            kind=CanonicalEventKind.UNHANDLED,
            gateway=self.gateway,
            event_type=event_type,
            event_id=event_id,
        )


@dataclass
class GatewayRefundResult:
    """
    Outcome of a refund requested through a gateway API.

    Attributes:
        refund_id: Provider refund id
        status: Provider status string
        processed: Whether the money has already moved
        raw_response: Provider response for debugging
    """

    refund_id: str
    status: str
    processed: bool
    raw_response: dict[str, Any] = field(default_factory=dict)
