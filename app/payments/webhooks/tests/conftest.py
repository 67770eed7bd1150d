"""
Pytest fixtures for webhook tests.

Provides signed delivery helpers for each gateway. Each helper asserts the
response status (200 unless ``expected_status`` says otherwise), so a
delivery that silently fails cannot pass a flow test. Payload builders
live in ``payments.webhooks.tests.helpers``.
"""

import json

import pytest
from django.urls import reverse

from payments.webhooks.tests.helpers import paystack_signature, razorpay_signature, stripe_signature


@pytest.fixture
def post_webhook(client):
    """
    POST a raw body to a gateway's webhook endpoint.

    Usage:
        response = post_webhook("razorpay", body, {"X-Razorpay-Signature": sig})
    """

    def _post(gateway: str, body: str, headers: dict | None = None):
        return client.post(
            reverse(f"payments:{gateway}-webhook"),
            data=body,
            content_type="application/json",
            headers=headers or {},
        )

    return _post


def assert_status(response, expected_status: int):
    assert response.status_code == expected_status, (
        f"expected {expected_status}, got {response.status_code}: {response.content!r}"
    )
    return response


@pytest.fixture
def deliver_razorpay(post_webhook):
    """Sign and deliver a Razorpay payload; ``event_id`` goes in the header."""

    def _deliver(payload: dict, event_id: str | None = None, expected_status: int = 200):
        body = json.dumps(payload)
        headers = {"X-Razorpay-Signature": razorpay_signature(body)}
        if event_id:
            headers["X-Razorpay-Event-Id"] = event_id
        return assert_status(post_webhook("razorpay", body, headers), expected_status)

    return _deliver


@pytest.fixture
def deliver_stripe(post_webhook):
    def _deliver(payload: dict, expected_status: int = 200):
        body = json.dumps(payload)
        return assert_status(
            post_webhook("stripe", body, {"Stripe-Signature": stripe_signature(body)}),
            expected_status,
        )

    return _deliver


@pytest.fixture
def deliver_paystack(post_webhook):
    def _deliver(payload: dict, expected_status: int = 200):
        body = json.dumps(payload)
        return assert_status(
            post_webhook("paystack", body, {"X-Paystack-Signature": paystack_signature(body)}),
            expected_status,
        )

    return _deliver
