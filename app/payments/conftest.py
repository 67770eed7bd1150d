"""
Pytest fixtures shared by every payments test package.

Provides users, catalog rows, subscriptions in various states, gateway
credentials and a builder for canonical events, so service, webhook and
adapter tests all start from the same data.

Usage:
    def test_activation(make_event, user, plan):
        event = make_event(
            CanonicalEventKind.SUBSCRIPTION_ACTIVATED,
            metadata=PaymentMetadata(user_id=user.pk, plan_id=str(plan.pk)),
            payment_id="pay_1",
            subscription_id="sub_1",
        )
        SubscriptionService.activate(event)
"""

import uuid

import pytest

from payments.events import CanonicalEvent, CanonicalEventKind, PaymentMetadata
from payments.state_machines import Gateway, SubscriptionState
from payments.tests.factories import (
    CreditPackageFactory,
    PaymentTransactionFactory,
    PlanFactory,
    SubscriptionFactory,
    UserFactory,
)


# Credentials installed by the ``gateway_credentials`` fixture
RAZORPAY_KEY_ID = "rzp_test_key"
RAZORPAY_KEY_SECRET = "rzp_test_secret"
RAZORPAY_WEBHOOK_SECRET = "rzp_webhook_secret"
STRIPE_SECRET_KEY = "sk_test_123"
STRIPE_WEBHOOK_SECRET = "whsec_test_123"
PAYSTACK_SECRET_KEY = "sk_test_paystack"


# =============================================================================
# Configuration
# =============================================================================


@pytest.fixture(autouse=True)
def gateway_credentials(settings):
    """Configure all three gateways from settings (no persisted overrides)."""
    settings.RAZORPAY_KEY_ID = RAZORPAY_KEY_ID
    settings.RAZORPAY_KEY_SECRET = RAZORPAY_KEY_SECRET
    settings.RAZORPAY_WEBHOOK_SECRET = RAZORPAY_WEBHOOK_SECRET
    settings.STRIPE_SECRET_KEY = STRIPE_SECRET_KEY
    settings.STRIPE_WEBHOOK_SECRET = STRIPE_WEBHOOK_SECRET
    settings.PAYSTACK_SECRET_KEY = PAYSTACK_SECRET_KEY
    settings.PAYMENTS_WEBHOOK_RETRY_INTERVALS_MINUTES = [1, 5, 15, 30, 60]
    settings.PAYMENTS_WEBHOOK_RETRY_EXPIRY_HOURS = 24
    return settings


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def user(db):
    """Create a test user on the default plan."""
    return UserFactory()


@pytest.fixture
def other_user(db):
    return UserFactory()


@pytest.fixture
def staff_user(db):
    """Create a staff user allowed to issue admin refunds."""
    return UserFactory(email="finance@example.com", is_staff=True)


# =============================================================================
# Catalog Fixtures
# =============================================================================


@pytest.fixture
def plan(db):
    """Pro plan: 499/month, 4990/year, 100 credits included."""
    return PlanFactory(name="pro", display_name="Pro")


@pytest.fixture
def credit_package(db):
    """500 credits for 299 INR."""
    return CreditPackageFactory()


# =============================================================================
# Subscription Fixtures
# =============================================================================


@pytest.fixture
def subscription(db, user, plan):
    """Active monthly Razorpay subscription ``sub_rzp_active``."""
    return SubscriptionFactory(user=user, plan=plan, razorpay_subscription_id="sub_rzp_active")


@pytest.fixture
def past_due_subscription(db, user, plan):
    return SubscriptionFactory(
        user=user,
        plan=plan,
        razorpay_subscription_id="sub_rzp_active",
        status=SubscriptionState.PAST_DUE,
    )


@pytest.fixture
def cancelled_subscription(db, user, plan):
    return SubscriptionFactory(
        user=user,
        plan=plan,
        razorpay_subscription_id="sub_rzp_active",
        status=SubscriptionState.CANCELLED,
    )


# =============================================================================
# Transaction Fixtures
# =============================================================================


@pytest.fixture
def credits_transaction(db, user, credit_package):
    """Completed Razorpay credits purchase ``pay_credits_1`` that awarded 500 credits."""
    user.credits = 500
    user.save(update_fields=["credits"])
    return PaymentTransactionFactory(
        user=user,
        gateway_transaction_id="pay_credits_1",
        credits_awarded=500,
        credit_package=credit_package,
    )


# =============================================================================
# Event Builder
# =============================================================================


@pytest.fixture
def make_event():
    """
    Build a CanonicalEvent with sensible defaults.

    Returns a function taking the kind plus any CanonicalEvent field.
    """

    def _make_event(kind: CanonicalEventKind, **overrides) -> CanonicalEvent:
        fields = {
            "gateway": Gateway.RAZORPAY,
            "event_type": kind.value,
            "event_id": f"evt_{uuid.uuid4().hex[:12]}",
            "metadata": PaymentMetadata(),
        }
        fields.update(overrides)
        return CanonicalEvent(kind=kind, **fields)

    return _make_event
