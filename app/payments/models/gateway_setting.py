"""
GatewaySetting model: persisted, admin-editable gateway configuration.

Values stored here take precedence over the environment defaults in
settings (see payments.config.GatewayConfigResolver).
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel

from payments.state_machines import Gateway


class GatewaySettingKey(models.TextChoices):
    ENABLED = "enabled", "Enabled"
    WEBHOOK_SECRET = "webhook_secret", "Webhook Secret"
    KEY_ID = "key_id", "Key ID"
    KEY_SECRET = "key_secret", "Key Secret"
    SECRET_KEY = "secret_key", "Secret Key"
    CURRENCY = "currency", "Currency"


class GatewaySetting(BaseModel):
    """One configuration value for one gateway."""

    gateway = models.CharField(max_length=20, choices=Gateway.choices)
    key = models.CharField(max_length=40, choices=GatewaySettingKey.choices)
    value = models.TextField(blank=True)

    class Meta:
        ordering = ["gateway", "key"]
        constraints = [
            models.UniqueConstraint(fields=["gateway", "key"], name="uniq_gateway_setting"),
        ]

    def __str__(self) -> str:
        return f"{self.gateway}.{self.key}"
