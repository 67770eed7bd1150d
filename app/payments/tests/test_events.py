"""
Tests for canonical events and payment metadata parsing.
"""

from decimal import Decimal

import pytest

from payments.events import (
    CanonicalEvent,
    CanonicalEventKind,
    PaymentMetadata,
    from_minor_units,
    payload_digest,
    to_minor_units,
)
from payments.exceptions import PaymentValidationError
from payments.state_machines import BillingPeriod, Gateway, TransactionType


# =============================================================================
# PaymentMetadata Tests
# =============================================================================


class TestPaymentMetadataParsing:
    """Tests for PaymentMetadata.from_mapping."""

    def test_parses_camel_case_notes(self):
        metadata = PaymentMetadata.from_mapping(
            {
                "userId": "42",
                "planId": "pro",
                "billingPeriod": "yearly",
                "type": "subscription",
            }
        )

        assert metadata.user_id == 42
        assert metadata.plan_id == "pro"
        assert metadata.billing_period == BillingPeriod.YEARLY
        assert metadata.purchase_type == TransactionType.SUBSCRIPTION

    def test_accepts_snake_case_keys(self):
        metadata = PaymentMetadata.from_mapping({"user_id": 7, "package_id": "abc", "credits": "500"})

        assert metadata.user_id == 7
        assert metadata.package_id == "abc"
        assert metadata.credits == 500

    def test_empty_metadata(self):
        metadata = PaymentMetadata.from_mapping(None)

        assert metadata.user_id is None
        assert metadata.billing_period == BillingPeriod.MONTHLY

    def test_billing_period_defaults_to_monthly(self):
        assert PaymentMetadata.from_mapping({"userId": "1"}).billing_period == BillingPeriod.MONTHLY

    def test_blank_values_are_missing(self):
        assert PaymentMetadata.from_mapping({"userId": "", "planId": ""}).user_id is None

    @pytest.mark.parametrize(
        "raw, error_code",
        [
            ({"userId": "abc"}, "INVALID_METADATA"),
            ({"credits": "-5"}, "INVALID_METADATA"),
            ({"type": "donation"}, "INVALID_METADATA"),
            ({"billingPeriod": "weekly"}, "INVALID_BILLING_PERIOD"),
        ],
    )
    def test_malformed_values_rejected(self, raw, error_code):
        with pytest.raises(PaymentValidationError) as exc_info:
            PaymentMetadata.from_mapping(raw)

        assert exc_info.value.error_code == error_code

    def test_non_mapping_rejected(self):
        with pytest.raises(PaymentValidationError):
            PaymentMetadata.from_mapping(["userId", "1"])


class TestPaymentMetadataRequire:
    def test_require_returns_self_when_present(self):
        metadata = PaymentMetadata(user_id=1, plan_id="pro")

        assert metadata.require("user_id", "plan_id") is metadata

    def test_require_lists_every_missing_field(self):
        with pytest.raises(PaymentValidationError) as exc_info:
            PaymentMetadata(user_id=1).require("user_id", "plan_id", "package_id")

        assert exc_info.value.error_code == "MISSING_METADATA"
        assert exc_info.value.details["missing"] == ["plan_id", "package_id"]


class TestPaymentMetadataNotes:
    def test_to_notes_renders_strings_and_skips_missing(self):
        notes = PaymentMetadata(user_id=5, purchase_type="credits", package_id="pkg", credits=500).to_notes()

        assert notes == {
            "userId": "5",
            "billingPeriod": "monthly",
            "type": "credits",
            "packageId": "pkg",
            "credits": "500",
        }

    def test_notes_parse_back(self):
        original = PaymentMetadata(user_id=5, plan_id="pro", billing_period="yearly", purchase_type="subscription")

        assert PaymentMetadata.from_mapping(original.to_notes()) == original


# =============================================================================
# CanonicalEvent Tests
# =============================================================================


class TestCanonicalEvent:
    def test_payment_ids_skip_blanks(self):
        event = CanonicalEvent(
            kind=CanonicalEventKind.REFUND_CREATED,
            gateway=Gateway.STRIPE,
            event_type="charge.refunded",
            event_id="evt_1",
            payment_id=None,
            alternate_payment_ids=("in_1", "ch_1"),
        )

        assert event.payment_ids == ["in_1", "ch_1"]

    def test_is_unhandled(self):
        event = CanonicalEvent(
            kind=CanonicalEventKind.UNHANDLED,
            gateway=Gateway.STRIPE,
            event_type="customer.created",
            event_id="evt_1",
        )

        assert event.is_unhandled
        assert event.log_context()["event_kind"] == "unhandled"


# =============================================================================
# Amount and Digest Helpers
# =============================================================================


class TestMinorUnits:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (49900, Decimal("499.00")),
            ("199", Decimal("1.99")),
            (0, Decimal("0.00")),
            (None, None),
            ("", None),
        ],
    )
    def test_from_minor_units(self, value, expected):
        assert from_minor_units(value) == expected

    def test_from_minor_units_rejects_garbage(self):
        with pytest.raises(PaymentValidationError) as exc_info:
            from_minor_units("12abc")

        assert exc_info.value.error_code == "INVALID_AMOUNT"

    def test_to_minor_units(self):
        assert to_minor_units(Decimal("499.00")) == 49900
        assert to_minor_units(Decimal("0.05")) == 5


class TestPayloadDigest:
    def test_digest_ignores_key_order(self):
        assert payload_digest({"a": 1, "b": {"c": 2}}) == payload_digest({"b": {"c": 2}, "a": 1})

    def test_digest_differs_for_different_payloads(self):
        assert payload_digest({"a": 1}) != payload_digest({"a": 2})
