"""
Shared HTTP plumbing for gateways called over their REST APIs.

Razorpay and Paystack have no SDK dependency here; both are called with
``httpx``. This base class owns the connection, timeout and the mapping of
transport and HTTP failures onto the payment exception taxonomy:

    timeout / connection error / 429 / 5xx -> TransientGatewayError
    other 4xx                              -> GatewayError
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from payments.exceptions import GatewayError, GatewayNotConfiguredError, TransientGatewayError

if TYPE_CHECKING:
    from payments.config import GatewayConfig


logger = logging.getLogger(__name__)


class GatewayHttpClient:
    """
    Synchronous JSON API client bound to one resolved GatewayConfig.

    Instances are cheap and hold no global state; build one per
    configuration (see ``payments.adapters.registry``).
    """

    base_url: str = ""

    def __init__(self, config: GatewayConfig, http_client: httpx.Client | None = None):
        if not config.is_configured:
            raise GatewayNotConfiguredError(
                f"{config.gateway} API credentials are not configured",
                details={"gateway": config.gateway},
            )
        self.config = config
        self.gateway = config.gateway
        self._http = http_client or httpx.Client(
            base_url=self.base_url,
            timeout=config.timeout,
            **self.auth_options(),
        )

    def auth_options(self) -> dict[str, Any]:
        """Keyword arguments for httpx.Client carrying the credentials."""
        return {}

    def close(self) -> None:
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def provider_error(self, response: httpx.Response) -> tuple[str, str | None]:
        """Extract (message, provider_code) from an error response."""
        return response.text[:500], None

    def request(self, method: str, path: str, json: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            response = self._http.request(method, path, json=json)
        except httpx.TimeoutException as e:
            logger.warning(
                f"{self.gateway} API timeout",
                extra={"gateway": self.gateway, "path": path},
            )
            raise TransientGatewayError(
                f"{self.gateway} API timed out",
                gateway=self.gateway,
                error_code="GATEWAY_TIMEOUT",
                details={"path": path},
            ) from e
        except httpx.TransportError as e:
            logger.warning(
                f"{self.gateway} API connection error: {type(e).__name__}",
                extra={"gateway": self.gateway, "path": path},
            )
            raise TransientGatewayError(
                f"Could not reach {self.gateway} API",
                gateway=self.gateway,
                error_code="GATEWAY_CONNECTION_ERROR",
                details={"path": path},
            ) from e

        if response.is_success:
            return response.json()

        message, provider_code = self.provider_error(response)
        logger.error(
            f"{self.gateway} API error {response.status_code}",
            extra={
                "gateway": self.gateway,
                "path": path,
                "status_code": response.status_code,
                "provider_code": provider_code,
            },
        )
        error_class = (
            TransientGatewayError
            if response.status_code == 429 or response.status_code >= 500
            else GatewayError
        )
        raise error_class(
            message,
            gateway=self.gateway,
            provider_code=provider_code,
            details={"path": path, "status_code": response.status_code},
        )
