"""
Tests for the Razorpay webhook adapter and checkout signature check.
"""

import hashlib
import hmac
from decimal import Decimal

import pytest

from payments.adapters.razorpay_adapter import RazorpayClient, RazorpayWebhookAdapter
from payments.config import GatewayConfig
from payments.events import CanonicalEventKind
from payments.exceptions import PaymentValidationError
from payments.state_machines import Gateway
from payments.webhooks.tests.helpers import (
    razorpay_payment_event,
    razorpay_refund_event,
    razorpay_subscription_event,
)

Kind = CanonicalEventKind

CONFIG = GatewayConfig(
    gateway=Gateway.RAZORPAY,
    webhook_secret="rzp_whsec",
    key_id="rzp_test_key",
    key_secret="rzp_test_secret",
)


@pytest.fixture
def adapter():
    return RazorpayWebhookAdapter(CONFIG)


class TestVerifySignature:
    def test_valid(self, adapter):
        body = b'{"event":"payment.captured"}'
        signature = hmac.new(b"rzp_whsec", body, hashlib.sha256).hexdigest()

        assert adapter.verify_signature(body, signature)

    def test_wrong_secret(self, adapter):
        body = b'{"event":"payment.captured"}'
        signature = hmac.new(b"other", body, hashlib.sha256).hexdigest()

        assert not adapter.verify_signature(body, signature)

    @pytest.mark.parametrize("signature", [None, ""])
    def test_missing_signature(self, adapter, signature):
        assert not adapter.verify_signature(b"{}", signature)

    def test_empty_secret_never_verifies(self):
        adapter = RazorpayWebhookAdapter(GatewayConfig(gateway=Gateway.RAZORPAY))
        body = b"{}"

        assert not adapter.verify_signature(body, hmac.new(b"", body, hashlib.sha256).hexdigest())


class TestEventId:
    def test_header_preferred(self, adapter):
        assert adapter.event_id({"id": "evt_body"}, {"X-Razorpay-Event-Id": "evt_header"}) == "evt_header"

    def test_payload_id(self, adapter):
        assert adapter.event_id({"id": "evt_body"}, {}) == "evt_body"

    def test_digest_fallback_is_stable(self, adapter):
        payload = {"event": "payment.captured", "payload": {}}

        assert adapter.event_id(payload) == adapter.event_id(dict(payload))


class TestNormalize:
    """Tests for RazorpayWebhookAdapter.normalize."""

    def test_subscription_event_uses_subscription_notes(self, adapter):
        payload = razorpay_subscription_event(
            "subscription.charged",
            "sub_1",
            {"userId": "7", "planId": "pro", "billingPeriod": "yearly"},
            payment_id="pay_1",
            amount=499000,
        )

        event = adapter.normalize(payload, "evt_1")

        assert event.kind is Kind.SUBSCRIPTION_CHARGED
        assert event.gateway == Gateway.RAZORPAY
        assert event.subscription_id == "sub_1"
        assert event.payment_id == "pay_1"
        assert event.amount == Decimal("4990.00")
        assert event.metadata.user_id == 7
        assert event.metadata.billing_period == "yearly"

    def test_payment_event_uses_payment_notes(self, adapter):
        payload = razorpay_payment_event(
            "payment.captured",
            "pay_1",
            {"userId": "7", "type": "credits", "packageId": "pkg"},
        )

        event = adapter.normalize(payload, "evt_1")

        assert event.kind is Kind.PAYMENT_CAPTURED
        assert event.metadata.purchase_type == "credits"
        assert event.metadata.package_id == "pkg"
        assert event.amount == Decimal("299.00")

    def test_payment_failed_reason(self, adapter):
        payload = razorpay_payment_event(
            "payment.failed", "pay_1", {}, error_description="Card declined by bank"
        )

        event = adapter.normalize(payload, "evt_1")

        assert event.kind is Kind.PAYMENT_FAILED
        assert event.reason == "Card declined by bank"

    @pytest.mark.parametrize("status, processed", [("processed", True), ("pending", False)])
    def test_refund(self, adapter, status, processed):
        event = adapter.normalize(razorpay_refund_event("pay_1", amount=10000, status=status), "evt_1")

        assert event.kind is Kind.REFUND_CREATED
        assert event.payment_id == "pay_1"
        assert event.refund_id == "rfnd_1"
        assert event.amount == Decimal("100.00")
        assert event.refund_processed is processed

    def test_dispute(self, adapter):
        payload = {
            "event": "payment.dispute.created",
            "payload": {
                "dispute": {
                    "entity": {
                        "id": "disp_1",
                        "payment_id": "pay_1",
                        "amount": 29900,
                        "currency": "INR",
                        "reason_code": "fraud",
                    }
                }
            },
        }

        event = adapter.normalize(payload, "evt_1")

        assert event.kind is Kind.DISPUTE_OPENED
        assert event.payment_id == "pay_1"
        assert event.refund_id == "disp_1"
        assert event.reason == "fraud"

    def test_unknown_event(self, adapter):
        event = adapter.normalize({"event": "order.paid", "payload": {}}, "evt_1")

        assert event.kind is Kind.UNHANDLED
        assert event.event_type == "order.paid"

    def test_malformed_user_id(self, adapter):
        payload = razorpay_subscription_event("subscription.activated", "sub_1", {"userId": "abc"})

        with pytest.raises(PaymentValidationError) as exc_info:
            adapter.normalize(payload, "evt_1")

        assert exc_info.value.error_code == "INVALID_METADATA"


class TestCheckoutSignature:
    """Tests for RazorpayClient.verify_payment_signature."""

    @pytest.fixture
    def client(self):
        client = RazorpayClient(CONFIG)
        yield client
        client.close()

    @staticmethod
    def sign(message):
        return hmac.new(b"rzp_test_secret", message.encode(), hashlib.sha256).hexdigest()

    def test_subscription_signature(self, client):
        signature = self.sign("pay_1|sub_1")

        assert client.verify_payment_signature("pay_1", signature, subscription_id="sub_1")

    def test_order_signature(self, client):
        signature = self.sign("order_1|pay_1")

        assert client.verify_payment_signature("pay_1", signature, order_id="order_1")

    def test_order_signature_is_not_a_subscription_signature(self, client):
        signature = self.sign("order_1|pay_1")

        assert not client.verify_payment_signature("pay_1", signature, subscription_id="order_1")

    def test_requires_reference(self, client):
        assert not client.verify_payment_signature("pay_1", self.sign("pay_1|"))

    def test_empty_signature(self, client):
        assert not client.verify_payment_signature("pay_1", "", order_id="order_1")
