"""
Tests for gateway configuration resolution and the client registry.
"""

import pytest
from freezegun import freeze_time

from payments.adapters import RazorpayClient, get_client
from payments.adapters.registry import clients
from payments.config import GatewayConfigResolver
from payments.exceptions import GatewayNotConfiguredError
from payments.models import GatewaySettingKey
from payments.state_machines import Gateway
from payments.tests.factories import GatewaySettingFactory


class TestResolve:
    """Tests for GatewayConfigResolver.resolve."""

    def test_environment_defaults(self, db):
        config = GatewayConfigResolver.resolve(Gateway.RAZORPAY)

        assert config.key_id == "rzp_test_key"
        assert config.key_secret == "rzp_test_secret"
        assert config.webhook_secret == "rzp_webhook_secret"
        assert config.currency == "INR"
        assert config.is_configured
        assert config.enabled

    def test_persisted_value_wins(self, db):
        GatewaySettingFactory(gateway=Gateway.STRIPE, key=GatewaySettingKey.WEBHOOK_SECRET, value="whsec_rotated")

        assert GatewayConfigResolver.resolve(Gateway.STRIPE).webhook_secret == "whsec_rotated"

    def test_blank_persisted_value_falls_back(self, db):
        GatewaySettingFactory(gateway=Gateway.STRIPE, key=GatewaySettingKey.WEBHOOK_SECRET, value="  ")

        assert GatewayConfigResolver.resolve(Gateway.STRIPE).webhook_secret == "whsec_test_123"

    def test_paystack_signs_with_secret_key(self, db):
        assert GatewayConfigResolver.resolve(Gateway.PAYSTACK).webhook_secret == "sk_test_paystack"

    def test_missing_credentials_disable_gateway(self, db, settings):
        settings.RAZORPAY_KEY_SECRET = ""

        config = GatewayConfigResolver.resolve(Gateway.RAZORPAY)

        assert not config.is_configured
        assert not config.enabled

    @pytest.mark.parametrize("value, enabled", [("false", False), ("0", False), ("true", True), ("ON", True)])
    def test_enabled_switch(self, db, value, enabled):
        GatewaySettingFactory(gateway=Gateway.PAYSTACK, key=GatewaySettingKey.ENABLED, value=value)

        assert GatewayConfigResolver.is_gateway_enabled(Gateway.PAYSTACK) is enabled


class TestStatus:
    def test_lists_every_gateway(self, db):
        rows = GatewayConfigResolver.status()

        assert [row["gateway"] for row in rows] == ["razorpay", "stripe", "paystack"]
        assert all(row["configured"] and row["webhook_secret_set"] for row in rows)
        assert all(row["last_webhook_received_at"] is None for row in rows)

    @freeze_time("2025-05-01 08:30:00")
    def test_reports_last_webhook(self, db):
        GatewayConfigResolver.record_webhook_received(Gateway.STRIPE)

        rows = {row["gateway"]: row for row in GatewayConfigResolver.status()}

        assert rows["stripe"]["last_webhook_received_at"].isoformat() == "2025-05-01T08:30:00+00:00"
        assert rows["razorpay"]["last_webhook_received_at"] is None


class TestClientRegistry:
    """Tests for get_client."""

    def test_client_is_cached(self, db):
        first = get_client(Gateway.RAZORPAY)

        assert isinstance(first, RazorpayClient)
        assert get_client(Gateway.RAZORPAY) is first

    def test_rotated_credentials_rebuild_client(self, db):
        first = get_client(Gateway.RAZORPAY)
        GatewaySettingFactory(gateway=Gateway.RAZORPAY, key=GatewaySettingKey.KEY_SECRET, value="rzp_rotated")

        second = get_client(Gateway.RAZORPAY)

        assert second is not first
        assert second.config.key_secret == "rzp_rotated"

    def test_rebuild_leaves_old_client_open(self, db):
        """A request still running on the old client must not lose its connection."""
        first = get_client(Gateway.RAZORPAY)
        GatewaySettingFactory(gateway=Gateway.RAZORPAY, key=GatewaySettingKey.KEY_SECRET, value="rzp_rotated")

        get_client(Gateway.RAZORPAY)

        assert not first._http.is_closed

    def test_clear_closes_clients(self, db):
        client = get_client(Gateway.RAZORPAY)

        clients.clear()

        assert client._http.is_closed
        assert get_client(Gateway.RAZORPAY) is not client

    def test_disabled_gateway(self, db):
        GatewaySettingFactory(gateway=Gateway.STRIPE, key=GatewaySettingKey.ENABLED, value="false")

        with pytest.raises(GatewayNotConfiguredError) as exc_info:
            get_client(Gateway.STRIPE)

        assert exc_info.value.error_code == "GATEWAY_DISABLED"

    def test_unknown_gateway(self, db):
        with pytest.raises(GatewayNotConfiguredError):
            clients.get("paypal")
