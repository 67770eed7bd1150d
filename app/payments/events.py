"""
Canonical payment events.

Every gateway adapter turns its provider payload into a ``CanonicalEvent``.
The engine never looks at provider payloads directly: handlers receive the
closed set of kinds defined by ``CanonicalEventKind`` plus typed metadata.

Types:
    CanonicalEventKind: What happened, independent of the provider
    PaymentMetadata: Validated userId/planId/billingPeriod/... bag
    CanonicalEvent: One normalized delivery

Usage:
    from payments.events import CanonicalEvent, CanonicalEventKind

    if event.kind is CanonicalEventKind.PAYMENT_CAPTURED:
        user_id = event.metadata.require("user_id", "package_id").user_id
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from payments.exceptions import PaymentValidationError
from payments.state_machines import BillingPeriod, TransactionType


class CanonicalEventKind(enum.Enum):
    """Provider-independent event kinds the engine knows how to apply."""

    SUBSCRIPTION_AUTHENTICATED = "subscription_authenticated"
    SUBSCRIPTION_ACTIVATED = "subscription_activated"
    SUBSCRIPTION_CHARGED = "subscription_charged"
    SUBSCRIPTION_PENDING = "subscription_pending"
    SUBSCRIPTION_HALTED = "subscription_halted"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled"
    SUBSCRIPTION_COMPLETED = "subscription_completed"
    SUBSCRIPTION_CANCEL_SCHEDULED = "subscription_cancel_scheduled"
    PAYMENT_CAPTURED = "payment_captured"
    PAYMENT_FAILED = "payment_failed"
    REFUND_CREATED = "refund_created"
    DISPUTE_OPENED = "dispute_opened"
    UNHANDLED = "unhandled"


# Keys accepted in provider metadata, first match wins.
_METADATA_KEYS = {
    "user_id": ("userId", "user_id"),
    "plan_id": ("planId", "plan_id"),
    "billing_period": ("billingPeriod", "billing_period"),
    "purchase_type": ("type",),
    "package_id": ("packageId", "package_id"),
    "credits": ("credits",),
}


def _first(source: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = source.get(key)
        if value not in (None, ""):
            return value
    return None


@dataclass(frozen=True)
class PaymentMetadata:
    """
    Typed view over the metadata a payment was created with.

    Values are parsed and validated once, when the event is normalized.
    Malformed values raise immediately; missing values stay ``None`` until
    a handler calls ``require()``.
    """

    user_id: int | None = None
    plan_id: str | None = None
    billing_period: str = BillingPeriod.MONTHLY
    purchase_type: str | None = None
    package_id: str | None = None
    credits: int | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> PaymentMetadata:
        """
        Parse provider notes/metadata.

        Raises:
            PaymentValidationError: If a present value is malformed
        """
        if not raw:
            return cls()
        if not isinstance(raw, Mapping):
            raise PaymentValidationError(
                "Payment metadata must be an object",
                error_code="INVALID_METADATA",
            )

        values = {name: _first(raw, keys) for name, keys in _METADATA_KEYS.items()}

        user_id = values["user_id"]
        if user_id is not None:
            user_id = cls._parse_int(user_id, "userId")

        credits = values["credits"]
        if credits is not None:
            credits = cls._parse_int(credits, "credits")
            if credits < 0:
                raise PaymentValidationError(
                    "credits must not be negative",
                    error_code="INVALID_METADATA",
                    details={"field": "credits", "value": credits},
                )

        billing_period = values["billing_period"] or BillingPeriod.MONTHLY
        if billing_period not in BillingPeriod.values:
            raise PaymentValidationError(
                f"Unknown billing period: {billing_period}",
                error_code="INVALID_BILLING_PERIOD",
                details={"field": "billingPeriod", "value": billing_period},
            )

        purchase_type = values["purchase_type"]
        if purchase_type is not None and purchase_type not in TransactionType.values:
            raise PaymentValidationError(
                f"Unknown purchase type: {purchase_type}",
                error_code="INVALID_METADATA",
                details={"field": "type", "value": purchase_type},
            )

        return cls(
            user_id=user_id,
            plan_id=str(values["plan_id"]) if values["plan_id"] is not None else None,
            billing_period=billing_period,
            purchase_type=purchase_type,
            package_id=str(values["package_id"]) if values["package_id"] is not None else None,
            credits=credits,
        )

    @staticmethod
    def _parse_int(value: Any, field_name: str) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            raise PaymentValidationError(
                f"{field_name} must be an integer",
                error_code="INVALID_METADATA",
                details={"field": field_name, "value": str(value)},
            )

    def require(self, *fields: str) -> PaymentMetadata:
        """
        Ensure the named fields are present.

        Returns self so calls can be chained.

        Raises:
            PaymentValidationError: Listing every missing field
        """
        missing = [name for name in fields if getattr(self, name) is None]
        if missing:
            raise PaymentValidationError(
                f"Missing required payment metadata: {', '.join(missing)}",
                error_code="MISSING_METADATA",
                details={"missing": missing},
            )
        return self

    def to_notes(self) -> dict[str, str]:
        """Render as provider notes (string values, camelCase keys)."""
        notes = {
            "userId": self.user_id,
            "planId": self.plan_id,
            "billingPeriod": self.billing_period,
            "type": self.purchase_type,
            "packageId": self.package_id,
            "credits": self.credits,
        }
        return {key: str(value) for key, value in notes.items() if value is not None}


@dataclass(frozen=True)
class CanonicalEvent:
    """
    A provider event after normalization.

    Attributes:
        kind: Canonical kind
        gateway: Provider name
        event_type: Provider's own event type string
        event_id: Provider event id, or a digest of the payload
        metadata: Typed metadata
        payment_id: Provider payment id (gateway_transaction_id)
        subscription_id: Provider subscription id
        provisional_subscription_id: Id the subscription may have been stored
            under before the provider issued ``subscription_id``
        refund_id: Provider refund or dispute id
        alternate_payment_ids: Other ids the charge may be recorded under
        amount / currency: Amount in major units, when the provider sent one
        refund_processed: False while a provider refund is still settling
        reason: Failure, refund or dispute reason
    """

    kind: CanonicalEventKind
    gateway: str
    event_type: str
    event_id: str
    metadata: PaymentMetadata = field(default_factory=PaymentMetadata)
    payment_id: str | None = None
    subscription_id: str | None = None
    provisional_subscription_id: str | None = None
    refund_id: str | None = None
    alternate_payment_ids: tuple[str, ...] = ()
    amount: Decimal | None = None
    currency: str | None = None
    refund_processed: bool = True
    reason: str = ""

    @property
    def payment_ids(self) -> list[str]:
        """payment_id followed by alternates, without blanks."""
        return [value for value in (self.payment_id, *self.alternate_payment_ids) if value]

    @property
    def is_unhandled(self) -> bool:
        return self.kind is CanonicalEventKind.UNHANDLED

    def log_context(self) -> dict[str, Any]:
        return {
            "gateway": self.gateway,
            "event_type": self.event_type,
            "event_id": self.event_id,
            "event_kind": self.kind.value,
            "user_id": self.metadata.user_id,
        }


def from_minor_units(value: Any) -> Decimal | None:
    """Convert a provider amount in minor units (paise, kobo, cents) to major units."""
    if value in (None, ""):
        return None
    try:
        return (Decimal(str(value)) / 100).quantize(Decimal("0.01"))
    except InvalidOperation:
        raise PaymentValidationError(
            f"Invalid amount: {value}",
            error_code="INVALID_AMOUNT",
            details={"value": str(value)},
        )


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1")))


def payload_digest(payload: Mapping[str, Any]) -> str:
    """
    Stable identifier for providers that do not send an event id.

    Computed over the canonical JSON form so a replayed payload yields the
    same id as the original delivery.
    """
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
