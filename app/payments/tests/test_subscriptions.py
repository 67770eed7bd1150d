"""
Tests for SubscriptionService.

Tests cover:
- Activation (create, gateway switch, renewal redirect, validation)
- Recurring charges and period extension
- Past due and halted handling
- Cancellation, stale events after a gateway switch
- Client-initiated cancel at period end
"""

import logging
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from django.utils import timezone
from freezegun import freeze_time

from authentication.models import User
from payments.events import CanonicalEventKind, PaymentMetadata
from payments.exceptions import DuplicateEventError, PaymentNotFoundError, PaymentValidationError
from payments.models import AuditEntry, PaymentTransaction, Subscription
from payments.services import SubscriptionService, period_end_for
from payments.state_machines import (
    AuditAction,
    BillingPeriod,
    Gateway,
    SubscriptionState,
    TransactionType,
)
from payments.tests.factories import SubscriptionFactory

Kind = CanonicalEventKind

FROZEN_NOW = datetime(2025, 1, 31, 12, 0, tzinfo=dt_timezone.utc)


@pytest.fixture
def activation(make_event, user, plan):
    """Build an activation event for ``user`` on ``plan``."""

    def _activation(**overrides):
        fields = {
            "metadata": PaymentMetadata(user_id=user.pk, plan_id=str(plan.pk)),
            "payment_id": "pay_first",
            "subscription_id": "sub_rzp_new",
            "amount": Decimal("499.00"),
            "currency": "INR",
        }
        fields.update(overrides)
        return make_event(Kind.SUBSCRIPTION_ACTIVATED, **fields)

    return _activation


# =============================================================================
# period_end_for
# =============================================================================


class TestPeriodEnd:
    def test_monthly_clamps_to_end_of_month(self):
        assert period_end_for(BillingPeriod.MONTHLY, FROZEN_NOW) == datetime(2025, 2, 28, 12, 0, tzinfo=dt_timezone.utc)

    def test_yearly_adds_twelve_months(self):
        assert period_end_for(BillingPeriod.YEARLY, FROZEN_NOW) == datetime(2026, 1, 31, 12, 0, tzinfo=dt_timezone.utc)


# =============================================================================
# Activation
# =============================================================================


class TestActivate:
    """Tests for SubscriptionService.activate."""

    @freeze_time(FROZEN_NOW)
    def test_first_activation_creates_subscription(self, db, activation, user, plan):
        result = SubscriptionService.activate(activation())

        assert result.success
        txn = result.data
        assert txn.type == TransactionType.SUBSCRIPTION
        assert txn.gateway_transaction_id == "pay_first"
        assert txn.gateway_subscription_id == "sub_rzp_new"
        assert txn.amount == Decimal("499.00")
        assert txn.credits_awarded == plan.included_credits

        subscription = Subscription.objects.get(user=user)
        assert subscription.status == SubscriptionState.ACTIVE
        assert subscription.razorpay_subscription_id == "sub_rzp_new"
        assert subscription.current_period_end == datetime(2025, 2, 28, 12, 0, tzinfo=dt_timezone.utc)
        assert txn.subscription_id == subscription.pk

        user.refresh_from_db()
        assert user.plan_type == plan.name
        assert user.plan_expires_at == subscription.current_period_end
        assert user.credits == plan.included_credits

        entry = AuditEntry.objects.get(action=AuditAction.SUBSCRIPTION_CREATED)
        assert entry.transaction == txn
        assert entry.metadata["switched"] is False

    @freeze_time(FROZEN_NOW)
    def test_yearly_activation(self, db, activation, user, plan):
        event = activation(
            metadata=PaymentMetadata(user_id=user.pk, plan_id=plan.name, billing_period=BillingPeriod.YEARLY),
            amount=None,
        )

        txn = SubscriptionService.activate(event).data

        assert txn.amount == plan.yearly_price
        assert Subscription.objects.get(user=user).current_period_end == datetime(
            2026, 1, 31, 12, 0, tzinfo=dt_timezone.utc
        )

    def test_duplicate_activation_changes_nothing(self, db, activation, user, plan):
        event = activation()
        SubscriptionService.activate(event)

        with pytest.raises(DuplicateEventError):
            SubscriptionService.activate(event)

        user.refresh_from_db()
        assert user.credits == plan.included_credits
        assert PaymentTransaction.objects.count() == 1
        assert Subscription.objects.get(user=user).version == 1

    def test_plan_without_credits_awards_none(self, db, activation, user, plan):
        plan.included_credits = 0
        plan.save()

        txn = SubscriptionService.activate(activation()).data

        user.refresh_from_db()
        assert txn.credits_awarded is None
        assert user.credits == 0

    def test_gateway_switch_updates_in_place(self, db, activation, user, plan, subscription):
        """Activation on another gateway replaces the provider id, same row."""
        event = activation(gateway=Gateway.STRIPE, payment_id="in_stripe_1", subscription_id="sub_stripe_1")

        SubscriptionService.activate(event)

        reloaded = Subscription.objects.get(user=user)
        assert reloaded.pk == subscription.pk
        assert reloaded.stripe_subscription_id == "sub_stripe_1"
        assert reloaded.razorpay_subscription_id is None
        assert reloaded.gateway == Gateway.STRIPE
        entry = AuditEntry.objects.get(action=AuditAction.SUBSCRIPTION_CREATED)
        assert entry.metadata["switched"] is True

    def test_reactivates_cancelled_subscription(self, db, activation, user, cancelled_subscription):
        SubscriptionService.activate(activation())

        reloaded = Subscription.objects.get(pk=cancelled_subscription.pk)
        assert reloaded.status == SubscriptionState.ACTIVE
        assert reloaded.cancelled_at is None

    def test_without_payment_id_uses_subscription_id(self, db, activation):
        txn = SubscriptionService.activate(activation(payment_id=None)).data

        assert txn.gateway_transaction_id == "sub_rzp_new"

    def test_without_any_id_rejected(self, db, activation):
        with pytest.raises(PaymentValidationError) as exc_info:
            SubscriptionService.activate(activation(payment_id=None, subscription_id=None))

        assert exc_info.value.error_code == "MISSING_PAYMENT_ID"

    def test_missing_user_id_rejected(self, db, activation, plan):
        with pytest.raises(PaymentValidationError) as exc_info:
            SubscriptionService.activate(activation(metadata=PaymentMetadata(plan_id=str(plan.pk))))

        assert exc_info.value.error_code == "MISSING_METADATA"
        assert exc_info.value.details["missing"] == ["user_id"]
        assert not PaymentTransaction.objects.exists()

    def test_unknown_plan_rejected(self, db, activation, user):
        with pytest.raises(PaymentNotFoundError) as exc_info:
            SubscriptionService.activate(activation(metadata=PaymentMetadata(user_id=user.pk, plan_id="nope")))

        assert exc_info.value.error_code == "PLAN_NOT_FOUND"

    def test_unknown_user_rejected(self, db, activation, plan):
        with pytest.raises(PaymentNotFoundError) as exc_info:
            SubscriptionService.activate(activation(metadata=PaymentMetadata(user_id=987654, plan_id=str(plan.pk))))

        assert exc_info.value.error_code == "USER_NOT_FOUND"
        assert not PaymentTransaction.objects.exists()

    def test_activation_of_live_subscription_is_a_renewal(self, db, activation, user, plan):
        """Paystack reports renewals as charge.success on the same subscription."""
        SubscriptionFactory(
            user=user,
            plan=plan,
            razorpay_subscription_id=None,
            paystack_subscription_code="SUB_live",
        )
        user.credits = 100
        user.save(update_fields=["credits"])

        result = SubscriptionService.activate(
            activation(gateway=Gateway.PAYSTACK, payment_id="ref_renewal", subscription_id="SUB_live")
        )

        user.refresh_from_db()
        assert result.data.credits_awarded is None
        assert user.credits == 100
        assert AuditEntry.objects.filter(action=AuditAction.SUBSCRIPTION_RENEWED).count() == 1
        assert not AuditEntry.objects.filter(action=AuditAction.SUBSCRIPTION_CREATED).exists()

    def test_notifications_sent_after_commit(self, db, activation, django_capture_on_commit_callbacks):
        with patch("payments.tasks.notify_membership_upgraded.delay") as upgrade, patch(
            "payments.tasks.generate_invoice.delay"
        ) as invoice, patch("payments.tasks.send_purchase_confirmation_email.delay") as receipt:
            with django_capture_on_commit_callbacks(execute=True):
                txn = SubscriptionService.activate(activation()).data

        upgrade.assert_called_once_with(txn.user_id, "pro")
        invoice.assert_called_once_with(str(txn.id))
        receipt.assert_called_once_with(str(txn.id))

    def test_activation_logs_at_info(self, db, activation, caplog):
        # The payments logger does not propagate to the root handler
        payments_logger = logging.getLogger("payments")
        payments_logger.addHandler(caplog.handler)
        try:
            with caplog.at_level(logging.INFO, logger="payments"):
                result = SubscriptionService.activate(activation())
        finally:
            payments_logger.removeHandler(caplog.handler)

        assert result.success
        record = next(r for r in caplog.records if r.getMessage() == "Subscription activated")
        assert record.subscription_created is True
        assert record.transaction_id == str(result.data.id)


# =============================================================================
# Recurring charge
# =============================================================================


class TestCharge:
    """Tests for SubscriptionService.charge."""

    def charge_event(self, make_event, **overrides):
        fields = {"payment_id": "pay_renewal_1", "subscription_id": "sub_rzp_active"}
        fields.update(overrides)
        return make_event(Kind.SUBSCRIPTION_CHARGED, **fields)

    @freeze_time(FROZEN_NOW)
    def test_charge_extends_period_from_now(self, db, make_event, user, subscription):
        result = SubscriptionService.charge(self.charge_event(make_event))

        txn = result.data
        assert txn.subscription_id == subscription.pk
        assert txn.credits_awarded is None
        assert txn.gateway_subscription_id == "sub_rzp_active"

        reloaded = Subscription.objects.get(pk=subscription.pk)
        assert reloaded.current_period_start == FROZEN_NOW
        assert reloaded.current_period_end == datetime(2025, 2, 28, 12, 0, tzinfo=dt_timezone.utc)

        user.refresh_from_db()
        assert user.plan_expires_at == reloaded.current_period_end

    def test_charge_reactivates_past_due(self, db, make_event, past_due_subscription):
        SubscriptionService.charge(self.charge_event(make_event))

        assert Subscription.objects.get(pk=past_due_subscription.pk).status == SubscriptionState.ACTIVE

    def test_charge_uses_plan_price_without_amount(self, db, make_event, subscription, plan):
        txn = SubscriptionService.charge(self.charge_event(make_event)).data

        assert txn.amount == plan.monthly_price
        assert txn.currency == "INR"

    def test_duplicate_charge_raises(self, db, make_event, subscription):
        event = self.charge_event(make_event)
        SubscriptionService.charge(event)
        version = Subscription.objects.get(pk=subscription.pk).version

        with pytest.raises(DuplicateEventError):
            SubscriptionService.charge(event)

        assert Subscription.objects.get(pk=subscription.pk).version == version

    def test_first_charge_after_activation_is_duplicate(self, db, activation, make_event):
        """Razorpay sends activated and charged for the same first payment."""
        SubscriptionService.activate(activation())

        with pytest.raises(DuplicateEventError):
            SubscriptionService.charge(self.charge_event(make_event, payment_id="pay_first", subscription_id="sub_rzp_new"))

    def test_missing_payment_id_rejected(self, db, make_event, subscription):
        with pytest.raises(PaymentValidationError):
            SubscriptionService.charge(self.charge_event(make_event, payment_id=None))

    def test_unknown_subscription(self, db, make_event):
        with pytest.raises(PaymentNotFoundError) as exc_info:
            SubscriptionService.charge(self.charge_event(make_event, subscription_id="sub_missing"))

        assert exc_info.value.error_code == "SUBSCRIPTION_NOT_FOUND"

    def test_falls_back_to_metadata_user(self, db, make_event, user, subscription):
        event = self.charge_event(make_event, subscription_id=None, metadata=PaymentMetadata(user_id=user.pk))

        assert SubscriptionService.charge(event).data.subscription_id == subscription.pk


# =============================================================================
# Past due / halted
# =============================================================================


class TestMarkPastDue:
    """Tests for pending and halted events."""

    def test_pending_marks_past_due(self, db, make_event, subscription):
        result = SubscriptionService.mark_past_due(
            make_event(Kind.SUBSCRIPTION_PENDING, subscription_id="sub_rzp_active")
        )

        assert result.data is not None
        assert Subscription.objects.get(pk=subscription.pk).status == SubscriptionState.PAST_DUE
        assert AuditEntry.objects.filter(action=AuditAction.PAYMENT_FAILED).count() == 1

    def test_halted_notifies_user(self, db, make_event, subscription, django_capture_on_commit_callbacks):
        with patch("payments.tasks.send_payment_failed_email.delay") as failed_email:
            with django_capture_on_commit_callbacks(execute=True):
                SubscriptionService.mark_past_due(
                    make_event(Kind.SUBSCRIPTION_HALTED, subscription_id="sub_rzp_active", reason="Card declined"),
                    notify=True,
                )

        failed_email.assert_called_once_with(subscription.user_id, "Card declined")

    def test_cancelled_subscription_not_revived(self, db, make_event, cancelled_subscription):
        result = SubscriptionService.mark_past_due(
            make_event(Kind.SUBSCRIPTION_PENDING, subscription_id="sub_rzp_active")
        )

        assert result.success
        assert result.data is None
        assert Subscription.objects.get(pk=cancelled_subscription.pk).status == SubscriptionState.CANCELLED
        entry = AuditEntry.objects.get(action=AuditAction.PAYMENT_FAILED)
        assert entry.metadata["ignored"] == "subscription_not_active"


# =============================================================================
# Cancellation
# =============================================================================


class TestCancel:
    """Tests for cancelled/completed events."""

    def test_cancel_resets_user_plan(self, db, make_event, user, subscription, settings):
        user.plan_type = "pro"
        user.plan_expires_at = timezone.now() + timedelta(days=10)
        user.save()

        result = SubscriptionService.cancel(make_event(Kind.SUBSCRIPTION_CANCELLED, subscription_id="sub_rzp_active"))

        assert result.data is not None
        assert Subscription.objects.get(pk=subscription.pk).status == SubscriptionState.CANCELLED
        user.refresh_from_db()
        assert user.plan_type == settings.PAYMENTS_DEFAULT_PLAN_TYPE
        assert user.plan_expires_at is None

    def test_repeated_cancel_is_noop(self, db, make_event, cancelled_subscription):
        version = cancelled_subscription.version

        result = SubscriptionService.cancel(make_event(Kind.SUBSCRIPTION_COMPLETED, subscription_id="sub_rzp_active"))

        assert result.success
        assert result.data is None
        assert Subscription.objects.get(pk=cancelled_subscription.pk).version == version

    def test_old_gateway_cancel_after_switch_is_ignored(self, db, make_event, activation, user, subscription):
        """Cancelling the replaced Razorpay subscription must not cancel the Stripe one."""
        SubscriptionService.activate(
            activation(gateway=Gateway.STRIPE, payment_id="in_switch", subscription_id="sub_stripe_new")
        )

        result = SubscriptionService.cancel(
            make_event(
                Kind.SUBSCRIPTION_CANCELLED,
                subscription_id="sub_rzp_active",
                metadata=PaymentMetadata(user_id=user.pk),
            )
        )

        assert result.data is None
        reloaded = Subscription.objects.get(user=user)
        assert reloaded.status == SubscriptionState.ACTIVE
        assert reloaded.stripe_subscription_id == "sub_stripe_new"
        assert User.objects.get(pk=user.pk).plan_type == "pro"
        entry = AuditEntry.objects.get(action=AuditAction.SUBSCRIPTION_CANCELLED)
        assert entry.metadata["ignored"] == "stale_subscription"

    def test_schedule_cancellation_sets_flag(self, db, make_event, subscription):
        result = SubscriptionService.schedule_cancellation(
            make_event(Kind.SUBSCRIPTION_CANCEL_SCHEDULED, subscription_id="sub_rzp_active")
        )

        reloaded = Subscription.objects.get(pk=subscription.pk)
        assert result.data is not None
        assert reloaded.cancel_at_period_end is True
        assert reloaded.status == SubscriptionState.ACTIVE


# =============================================================================
# Client-initiated cancellation
# =============================================================================


class TestCancelAtPeriodEnd:
    """Tests for SubscriptionService.cancel_at_period_end."""

    def test_asks_provider_and_sets_flag(self, db, user, subscription):
        client = MagicMock()
        with patch("payments.services.subscriptions.get_client", return_value=client) as get_client:
            result = SubscriptionService.cancel_at_period_end(user)

        assert result.success
        get_client.assert_called_once_with(Gateway.RAZORPAY)
        client.cancel_subscription.assert_called_once_with("sub_rzp_active", at_period_end=True)
        reloaded = Subscription.objects.get(pk=subscription.pk)
        assert reloaded.cancel_at_period_end is True
        assert reloaded.status == SubscriptionState.ACTIVE

    def test_already_scheduled_does_not_call_provider(self, db, user, plan):
        SubscriptionFactory(user=user, plan=plan, cancel_at_period_end=True)

        with patch("payments.services.subscriptions.get_client") as get_client:
            result = SubscriptionService.cancel_at_period_end(user)

        assert result.success
        get_client.assert_not_called()

    def test_no_subscription(self, db, user):
        result = SubscriptionService.cancel_at_period_end(user)

        assert not result.success
        assert result.error_code == "NO_ACTIVE_SUBSCRIPTION"

    def test_cancelled_subscription(self, db, user, cancelled_subscription):
        result = SubscriptionService.cancel_at_period_end(user)

        assert result.error_code == "NO_ACTIVE_SUBSCRIPTION"

    def test_provider_failure_leaves_flag_unset(self, db, user, subscription):
        from payments.exceptions import TransientGatewayError

        client = MagicMock()
        client.cancel_subscription.side_effect = TransientGatewayError("down", gateway=Gateway.RAZORPAY)
        with patch("payments.services.subscriptions.get_client", return_value=client):
            with pytest.raises(TransientGatewayError):
                SubscriptionService.cancel_at_period_end(user)

        assert Subscription.objects.get(pk=subscription.pk).cancel_at_period_end is False
