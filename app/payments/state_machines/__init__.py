"""
State machine enums for payment models.
"""

from payments.state_machines.states import (
    AuditAction,
    BillingPeriod,
    Gateway,
    RefundReason,
    RefundState,
    SubscriptionState,
    TransactionStatus,
    TransactionType,
)

__all__ = [
    "AuditAction",
    "BillingPeriod",
    "Gateway",
    "RefundReason",
    "RefundState",
    "SubscriptionState",
    "TransactionStatus",
    "TransactionType",
]
