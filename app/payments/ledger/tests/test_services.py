"""
Tests for CreditLedger.

This module tests awarding and reversing credits, including the clamp at
zero and the validation of amounts.
"""

import pytest
from django.db import transaction

from payments.ledger.exceptions import CreditAccountNotFound, InvalidCreditAmount
from payments.ledger.services import CreditLedger
from payments.tests.factories import UserFactory


class TestAwardCredits:
    """Tests for CreditLedger.award_credits."""

    def test_award_adds_to_balance(self, db):
        user = UserFactory(credits=100)

        change = CreditLedger.award_credits(user.pk, 500, reason_ref="pay_1")

        assert change.applied == 500
        assert change.balance_before == 100
        assert change.balance_after == 600
        assert not change.was_clamped
        user.refresh_from_db()
        assert user.credits == 600

    def test_award_inside_outer_transaction(self, db):
        user = UserFactory()

        with transaction.atomic():
            CreditLedger.award_credits(user.pk, 100)
            CreditLedger.award_credits(user.pk, 100)

        assert CreditLedger.get_balance(user.pk) == 200

    @pytest.mark.parametrize("amount", [0, -5, 1.5, "10", True])
    def test_invalid_amount(self, db, amount):
        user = UserFactory()

        with pytest.raises(InvalidCreditAmount) as exc_info:
            CreditLedger.award_credits(user.pk, amount)

        assert exc_info.value.error_code == "INVALID_CREDIT_AMOUNT"
        assert CreditLedger.get_balance(user.pk) == 0

    def test_unknown_user(self, db):
        with pytest.raises(CreditAccountNotFound):
            CreditLedger.award_credits(999_999, 10)


class TestReverseCredits:
    """Tests for CreditLedger.reverse_credits."""

    def test_full_reversal(self, db):
        user = UserFactory(credits=800)

        change = CreditLedger.reverse_credits(user.pk, 500)

        assert change.applied == -500
        assert change.balance_after == 300
        assert not change.was_clamped

    def test_reversal_clamped_at_zero(self, db):
        """A user who spent part of the credits ends at zero, not negative."""
        user = UserFactory(credits=300)

        change = CreditLedger.reverse_credits(user.pk, 500, reason_ref="rfnd_1")

        assert change.applied == -300
        assert change.balance_after == 0
        assert change.was_clamped
        assert str(change) == f"user {user.pk}: -300 credits (500 requested), 300 -> 0"

    def test_reversal_of_empty_balance(self, db):
        user = UserFactory(credits=0)

        change = CreditLedger.reverse_credits(user.pk, 500)

        assert change.applied == 0
        assert CreditLedger.get_balance(user.pk) == 0

    def test_invalid_amount(self, db):
        user = UserFactory(credits=10)

        with pytest.raises(InvalidCreditAmount):
            CreditLedger.reverse_credits(user.pk, 0)

    def test_unknown_user(self, db):
        with pytest.raises(CreditAccountNotFound):
            CreditLedger.reverse_credits(999_999, 10)


class TestGetBalance:
    def test_unknown_user(self, db):
        with pytest.raises(CreditAccountNotFound):
            CreditLedger.get_balance(999_999)
