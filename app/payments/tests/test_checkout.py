"""
Tests for RazorpayCheckoutService.

The Razorpay API client is replaced with a MagicMock; signature checks and
provider responses are controlled per test.
"""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from core.exceptions import PermissionDeniedError
from payments.events import PaymentMetadata
from payments.exceptions import PaymentNotFoundError
from payments.models import AuditEntry, PaymentTransaction, Subscription
from payments.services import RazorpayCheckoutService
from payments.state_machines import AuditAction, BillingPeriod, SubscriptionState, TransactionType
from payments.tests.factories import CreditPackageFactory


@pytest.fixture
def razorpay_client():
    client = MagicMock()
    client.config.key_id = "rzp_test_key"
    client.verify_payment_signature.return_value = True
    with patch("payments.services.checkout.get_client", return_value=client):
        yield client


def subscription_notes(user, plan, billing_period=BillingPeriod.MONTHLY):
    return PaymentMetadata(
        user_id=user.pk,
        plan_id=str(plan.pk),
        billing_period=billing_period,
        purchase_type=TransactionType.SUBSCRIPTION,
    ).to_notes()


def order_notes(user, package):
    return PaymentMetadata(
        user_id=user.pk,
        purchase_type=TransactionType.CREDITS,
        package_id=str(package.pk),
        credits=package.credits,
    ).to_notes()


# =============================================================================
# Subscriptions
# =============================================================================


class TestCreateSubscription:
    """Tests for create_subscription."""

    def test_creates_with_plan_and_notes(self, db, user, plan, razorpay_client):
        razorpay_client.create_subscription.return_value = {"id": "sub_rzp_new", "status": "created"}

        result = RazorpayCheckoutService.create_subscription(user, "pro", BillingPeriod.YEARLY)

        assert result.success
        assert result.data["subscription_id"] == "sub_rzp_new"
        assert result.data["key_id"] == "rzp_test_key"
        assert result.data["amount"] == "4990.00"

        args, kwargs = razorpay_client.create_subscription.call_args
        assert args == (plan.razorpay_yearly_plan_id,)
        assert kwargs["total_count"] == 5
        assert kwargs["notes"]["userId"] == str(user.pk)
        assert kwargs["notes"]["planId"] == str(plan.pk)
        assert kwargs["notes"]["billingPeriod"] == "yearly"
        assert AuditEntry.objects.filter(action=AuditAction.PAYMENT_INITIATED, user_id=user.pk).exists()

    def test_plan_without_razorpay_id(self, db, user, plan, razorpay_client):
        plan.razorpay_plan_id = ""
        plan.save()

        result = RazorpayCheckoutService.create_subscription(user, str(plan.pk), BillingPeriod.MONTHLY)

        assert result.error_code == "PLAN_NOT_AVAILABLE"
        razorpay_client.create_subscription.assert_not_called()

    def test_unknown_plan(self, db, user, razorpay_client):
        with pytest.raises(PaymentNotFoundError):
            RazorpayCheckoutService.create_subscription(user, "platinum", BillingPeriod.MONTHLY)


class TestVerifySubscription:
    """Tests for verify_subscription."""

    def verify(self, user, payment_id="pay_checkout_1"):
        return RazorpayCheckoutService.verify_subscription(
            user,
            payment_id=payment_id,
            subscription_id="sub_rzp_new",
            signature="sig",
        )

    def test_activates_subscription(self, db, user, plan, razorpay_client):
        razorpay_client.fetch_subscription.return_value = {"id": "sub_rzp_new", "notes": subscription_notes(user, plan)}

        result = self.verify(user)

        assert result.success
        txn = result.data
        assert txn.gateway_transaction_id == "pay_checkout_1"
        assert txn.amount == Decimal("499.00")
        razorpay_client.verify_payment_signature.assert_called_once_with(
            "pay_checkout_1", "sig", subscription_id="sub_rzp_new"
        )
        subscription = Subscription.objects.get(user=user)
        assert subscription.status == SubscriptionState.ACTIVE
        assert subscription.razorpay_subscription_id == "sub_rzp_new"

    def test_bad_signature(self, db, user, razorpay_client):
        razorpay_client.verify_payment_signature.return_value = False

        result = self.verify(user)

        assert result.error_code == "INVALID_SIGNATURE"
        razorpay_client.fetch_subscription.assert_not_called()
        assert not PaymentTransaction.objects.exists()

    def test_other_users_subscription(self, db, user, other_user, plan, razorpay_client):
        razorpay_client.fetch_subscription.return_value = {
            "id": "sub_rzp_new",
            "notes": subscription_notes(other_user, plan),
        }

        with pytest.raises(PermissionDeniedError) as exc_info:
            self.verify(user)

        assert exc_info.value.error_code == "PAYMENT_OWNER_MISMATCH"
        assert not Subscription.objects.exists()

    def test_second_verification_returns_recorded_transaction(self, db, user, plan, razorpay_client):
        """The webhook or an earlier callback already applied the payment."""
        razorpay_client.fetch_subscription.return_value = {"id": "sub_rzp_new", "notes": subscription_notes(user, plan)}
        first = self.verify(user).data

        second = self.verify(user)

        assert second.success
        assert second.data == first
        assert PaymentTransaction.objects.count() == 1
        assert AuditEntry.objects.filter(action=AuditAction.DUPLICATE_EVENT_IGNORED).count() == 1


# =============================================================================
# Credit orders
# =============================================================================


class TestCreateOrder:
    """Tests for create_order."""

    def test_creates_order_in_minor_units(self, db, user, subscription, credit_package, razorpay_client):
        razorpay_client.create_order.return_value = {"id": "order_1", "amount": 29900, "currency": "INR"}

        result = RazorpayCheckoutService.create_order(user, str(credit_package.pk))

        assert result.success
        assert result.data["order_id"] == "order_1"
        assert result.data["credits"] == 500
        kwargs = razorpay_client.create_order.call_args.kwargs
        assert kwargs["amount_minor"] == 29900
        assert kwargs["currency"] == "INR"
        assert kwargs["notes"]["packageId"] == str(credit_package.pk)

    def test_requires_membership(self, db, user, credit_package, razorpay_client):
        result = RazorpayCheckoutService.create_order(user, str(credit_package.pk))

        assert result.error_code == "MEMBERSHIP_REQUIRED"
        razorpay_client.create_order.assert_not_called()

    def test_cancelled_membership_not_enough(self, db, user, cancelled_subscription, credit_package, razorpay_client):
        result = RazorpayCheckoutService.create_order(user, str(credit_package.pk))

        assert result.error_code == "MEMBERSHIP_REQUIRED"

    def test_inactive_package(self, db, user, subscription, razorpay_client):
        package = CreditPackageFactory(is_active=False)

        result = RazorpayCheckoutService.create_order(user, str(package.pk))

        assert result.error_code == "PACKAGE_NOT_AVAILABLE"


class TestVerifyOrder:
    """Tests for verify_order."""

    def verify(self, user):
        return RazorpayCheckoutService.verify_order(
            user,
            order_id="order_1",
            payment_id="pay_order_1",
            signature="sig",
        )

    def test_awards_credits(self, db, user, credit_package, razorpay_client):
        razorpay_client.fetch_order.return_value = {
            "id": "order_1",
            "amount": 29900,
            "currency": "inr",
            "notes": order_notes(user, credit_package),
        }

        result = self.verify(user)

        assert result.success
        assert result.data.credits_awarded == 500
        assert result.data.amount == Decimal("299.00")
        assert result.data.currency == "INR"
        user.refresh_from_db()
        assert user.credits == 500

    def test_bad_signature(self, db, user, razorpay_client):
        razorpay_client.verify_payment_signature.return_value = False

        assert self.verify(user).error_code == "INVALID_SIGNATURE"

    def test_other_users_order(self, db, user, other_user, credit_package, razorpay_client):
        razorpay_client.fetch_order.return_value = {"id": "order_1", "notes": order_notes(other_user, credit_package)}

        with pytest.raises(PermissionDeniedError):
            self.verify(user)

        user.refresh_from_db()
        assert user.credits == 0

    def test_duplicate_awards_once(self, db, user, credit_package, razorpay_client):
        razorpay_client.fetch_order.return_value = {
            "id": "order_1",
            "amount": 29900,
            "currency": "INR",
            "notes": order_notes(user, credit_package),
        }
        first = self.verify(user).data

        second = self.verify(user)

        assert second.data == first
        user.refresh_from_db()
        assert user.credits == 500
