"""
Payment domain models.

- PaymentTransaction: captured charges, keyed by (gateway, gateway_transaction_id)
- Subscription: per-user membership lifecycle
- Refund: money returned on a transaction (at most one per transaction)
- WebhookRetryRecord: failed webhook deliveries awaiting replay
- AuditEntry: append-only decision log
- Plan / CreditPackage: purchasable catalog
- GatewaySetting: persisted gateway configuration
"""

from payments.models.audit import AuditEntry
from payments.models.catalog import CreditPackage, Plan
from payments.models.gateway_setting import GatewaySetting, GatewaySettingKey
from payments.models.refund import Refund
from payments.models.subscription import GATEWAY_ID_FIELDS, Subscription
from payments.models.transaction import PaymentTransaction
from payments.models.webhook_retry import WebhookRetryRecord

__all__ = [
    "AuditEntry",
    "CreditPackage",
    "GATEWAY_ID_FIELDS",
    "GatewaySetting",
    "GatewaySettingKey",
    "PaymentTransaction",
    "Plan",
    "Refund",
    "Subscription",
    "WebhookRetryRecord",
]
