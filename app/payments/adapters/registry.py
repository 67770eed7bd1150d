"""
Lookup of webhook adapters and API clients by gateway.

Adapters are built per call from freshly resolved configuration, so a
rotated webhook secret applies to the very next delivery.

API clients are cached per gateway together with the fingerprint of the
configuration they were built from; a client is rebuilt (and the old one
dropped) as soon as the resolved configuration differs. A dropped client is
not closed: a request on another thread may still be using it, and its
connection pool is released once the last reference goes away.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Union

from payments.adapters.base import GatewayAdapter
from payments.adapters.paystack_adapter import PaystackClient, PaystackWebhookAdapter
from payments.adapters.razorpay_adapter import RazorpayClient, RazorpayWebhookAdapter
from payments.adapters.stripe_adapter import StripeClient, StripeWebhookAdapter
from payments.config import GatewayConfigResolver
from payments.exceptions import GatewayNotConfiguredError
from payments.state_machines import Gateway

if TYPE_CHECKING:
    from payments.config import GatewayConfig


logger = logging.getLogger(__name__)

GatewayClient = Union[RazorpayClient, StripeClient, PaystackClient]

ADAPTER_CLASSES: dict[str, type[GatewayAdapter]] = {
    Gateway.RAZORPAY: RazorpayWebhookAdapter,
    Gateway.STRIPE: StripeWebhookAdapter,
    Gateway.PAYSTACK: PaystackWebhookAdapter,
}

CLIENT_CLASSES: dict[str, type] = {
    Gateway.RAZORPAY: RazorpayClient,
    Gateway.STRIPE: StripeClient,
    Gateway.PAYSTACK: PaystackClient,
}


def get_adapter(gateway: str, config: GatewayConfig | None = None) -> GatewayAdapter:
    try:
        adapter_class = ADAPTER_CLASSES[gateway]
    except KeyError:
        raise GatewayNotConfiguredError(
            f"Unknown gateway: {gateway}",
            details={"gateway": gateway},
        )
    return adapter_class(config or GatewayConfigResolver.resolve(gateway))


class GatewayClientCache:
    """Per-gateway API clients keyed by configuration fingerprint."""

    def __init__(self):
        self._clients: dict[str, tuple[str, GatewayClient]] = {}
        self._lock = threading.Lock()

    def get(self, gateway: str, config: GatewayConfig | None = None) -> GatewayClient:
        config = config or GatewayConfigResolver.resolve(gateway)
        if gateway not in CLIENT_CLASSES:
            raise GatewayNotConfiguredError(
                f"Unknown gateway: {gateway}",
                details={"gateway": gateway},
            )
        if not config.enabled:
            raise GatewayNotConfiguredError(
                f"{gateway} payments are not enabled",
                error_code="GATEWAY_DISABLED",
                details={"gateway": gateway},
            )

        with self._lock:
            cached = self._clients.get(gateway)
            if cached and cached[0] == config.fingerprint:
                return cached[1]

            client = CLIENT_CLASSES[gateway](config)
            if cached:
                logger.info(
                    "Gateway configuration changed, rebuilding client",
                    extra={"gateway": gateway},
                )
            self._clients[gateway] = (config.fingerprint, client)
            return client

    def clear(self) -> None:
        """Close and forget every client. Only safe once no request is in flight."""
        with self._lock:
            for _, client in self._clients.values():
                client.close()
            self._clients.clear()


clients = GatewayClientCache()


def get_client(gateway: str, config: GatewayConfig | None = None) -> GatewayClient:
    return clients.get(gateway, config)
