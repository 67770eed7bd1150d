"""
Gateway configuration resolution.

Credentials and switches for each gateway come from two places: the
``GatewaySetting`` table (editable in the admin) and environment defaults
loaded into Django settings. A persisted, non-empty value wins.

Resolution happens on every call, so a secret rotated in the admin takes
effect on the next webhook without a restart.

Usage:
    from payments.config import GatewayConfigResolver

    config = GatewayConfigResolver.resolve(Gateway.RAZORPAY)
    if not config.enabled:
        ...
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime

from django.conf import settings
from django.core.cache import cache
from django.utils import timezone

from payments.models import GatewaySetting, GatewaySettingKey
from payments.state_machines import Gateway


# settings attribute holding the environment default for each key
ENV_DEFAULTS: dict[str, dict[str, str]] = {
    Gateway.RAZORPAY: {
        GatewaySettingKey.WEBHOOK_SECRET: "RAZORPAY_WEBHOOK_SECRET",
        GatewaySettingKey.KEY_ID: "RAZORPAY_KEY_ID",
        GatewaySettingKey.KEY_SECRET: "RAZORPAY_KEY_SECRET",
        GatewaySettingKey.CURRENCY: "RAZORPAY_CURRENCY",
    },
    Gateway.STRIPE: {
        GatewaySettingKey.WEBHOOK_SECRET: "STRIPE_WEBHOOK_SECRET",
        GatewaySettingKey.SECRET_KEY: "STRIPE_SECRET_KEY",
        GatewaySettingKey.CURRENCY: "STRIPE_CURRENCY",
    },
    Gateway.PAYSTACK: {
        GatewaySettingKey.SECRET_KEY: "PAYSTACK_SECRET_KEY",
        GatewaySettingKey.CURRENCY: "PAYSTACK_CURRENCY",
    },
}

WEBHOOK_RECEIVED_CACHE_KEY = "payments:webhook_received:{gateway}"

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class GatewayConfig:
    """Resolved configuration for one gateway."""

    gateway: str
    webhook_secret: str = ""
    key_id: str = ""
    key_secret: str = ""
    secret_key: str = ""
    currency: str = ""
    timeout: float = 30.0
    enabled_override: bool | None = None

    @property
    def is_configured(self) -> bool:
        """Whether API credentials are present."""
        if self.gateway == Gateway.RAZORPAY:
            return bool(self.key_id and self.key_secret)
        return bool(self.secret_key)

    @property
    def enabled(self) -> bool:
        if self.enabled_override is not None:
            return self.enabled_override
        return self.is_configured

    @property
    def fingerprint(self) -> str:
        """Digest of everything a client is built from."""
        material = "|".join(
            [self.gateway, self.key_id, self.key_secret, self.secret_key, str(self.timeout)]
        )
        return hashlib.sha256(material.encode("utf-8")).hexdigest()


class GatewayConfigResolver:
    """Resolves GatewayConfig from persisted settings with environment fallback."""

    @classmethod
    def resolve(cls, gateway: str) -> GatewayConfig:
        persisted = dict(
            GatewaySetting.objects.filter(gateway=gateway).values_list("key", "value")
        )
        defaults = ENV_DEFAULTS.get(gateway, {})

        def value_for(key: str) -> str:
            stored = (persisted.get(key) or "").strip()
            if stored:
                return stored
            setting_name = defaults.get(key)
            return getattr(settings, setting_name, "") if setting_name else ""

        secret_key = value_for(GatewaySettingKey.SECRET_KEY)
        webhook_secret = value_for(GatewaySettingKey.WEBHOOK_SECRET)
        if gateway == Gateway.PAYSTACK and not webhook_secret:
            # Paystack signs webhooks with the API secret key
            webhook_secret = secret_key

        enabled_raw = (persisted.get(GatewaySettingKey.ENABLED) or "").strip().lower()
        enabled_override = (enabled_raw in _TRUE_VALUES) if enabled_raw else None

        return GatewayConfig(
            gateway=gateway,
            webhook_secret=webhook_secret,
            key_id=value_for(GatewaySettingKey.KEY_ID),
            key_secret=value_for(GatewaySettingKey.KEY_SECRET),
            secret_key=secret_key,
            currency=(value_for(GatewaySettingKey.CURRENCY) or "").upper(),
            timeout=float(settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS),
            enabled_override=enabled_override,
        )

    @classmethod
    def is_gateway_enabled(cls, gateway: str) -> bool:
        return cls.resolve(gateway).enabled

    @staticmethod
    def record_webhook_received(gateway: str) -> None:
        """Remember when a verified webhook last arrived from ``gateway``."""
        cache.set(
            WEBHOOK_RECEIVED_CACHE_KEY.format(gateway=gateway),
            timezone.now().isoformat(),
            timeout=None,
        )

    @staticmethod
    def last_webhook_received(gateway: str) -> datetime | None:
        value = cache.get(WEBHOOK_RECEIVED_CACHE_KEY.format(gateway=gateway))
        if not value:
            return None
        return datetime.fromisoformat(value)

    @classmethod
    def status(cls) -> list[dict]:
        """Enabled/configured/last-webhook summary for every gateway."""
        rows = []
        for gateway in Gateway.values:
            config = cls.resolve(gateway)
            last_received = cls.last_webhook_received(gateway)
            rows.append(
                {
                    "gateway": gateway,
                    "enabled": config.enabled,
                    "configured": config.is_configured,
                    "webhook_secret_set": bool(config.webhook_secret),
                    "last_webhook_received_at": last_received,
                }
            )
        return rows
