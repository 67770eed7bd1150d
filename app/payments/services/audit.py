"""
Audit service: the single writer of AuditEntry rows.

Every branch of the engine that makes or declines a payment decision calls
``AuditService.record`` exactly once. Entries are written inside the
caller's transaction, so an entry for a rolled-back mutation disappears
with it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.services import BaseService

from payments.models import AuditEntry

if TYPE_CHECKING:
    from decimal import Decimal
    from typing import Any

    from payments.events import CanonicalEvent
    from payments.models import PaymentTransaction


class AuditService(BaseService):
    """Append-only audit trail for payment decisions."""

    @classmethod
    def record(
        cls,
        action: str,
        *,
        gateway: str = "",
        user_id=None,
        transaction: PaymentTransaction | None = None,
        amount: Decimal | None = None,
        currency: str = "",
        external_event_id: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> AuditEntry:
        """
        Write one audit entry.

        Args:
            action: AuditAction value
            gateway: Provider involved, if any
            user_id: Affected user
            transaction: Affected transaction; fills user/amount/currency
                when those are not given
            amount / currency: Money involved
            external_event_id: Provider event id
            metadata: Extra context, stored as JSON

        Returns:
            The created AuditEntry
        """
        if transaction is not None:
            user_id = user_id or transaction.user_id
            gateway = gateway or transaction.gateway
            if amount is None:
                amount = transaction.amount
            currency = currency or transaction.currency

        entry = AuditEntry.objects.create(
            action=action,
            gateway=gateway or "",
            user_id=user_id,
            transaction=transaction,
            amount=amount,
            currency=(currency or "").upper(),
            external_event_id=external_event_id or "",
            metadata=metadata or {},
        )

        cls.get_logger().info(
            f"Audit: {action}",
            extra={
                "action": action,
                "gateway": gateway,
                "user_id": user_id,
                "transaction_id": str(transaction.id) if transaction else None,
                "event_id": external_event_id,
            },
        )
        return entry

    @classmethod
    def record_event(
        cls,
        action: str,
        event: CanonicalEvent,
        *,
        user_id=None,
        transaction: PaymentTransaction | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditEntry:
        """Shortcut for entries triggered by a webhook event."""
        context = {"event_type": event.event_type, "event_kind": event.kind.value}
        if metadata:
            context.update(metadata)
        return cls.record(
            action,
            gateway=event.gateway,
            user_id=user_id if user_id is not None else event.metadata.user_id,
            transaction=transaction,
            amount=None if transaction is not None else event.amount,
            currency="" if transaction is not None else (event.currency or ""),
            external_event_id=event.event_id,
            metadata=context,
        )
