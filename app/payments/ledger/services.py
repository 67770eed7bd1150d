"""
Credit ledger: the only code path that changes ``User.credits``.

Both operations lock the user row (``SELECT ... FOR UPDATE``) and apply
the change as a single ``UPDATE`` expression, so concurrent purchases,
refunds and spends on the same user are serialized by the database.

Reversal is clamped at zero with ``Greatest(credits - n, 0)``; a refund
larger than the remaining balance empties it instead of going negative.

Usage:
    from payments.ledger import CreditLedger

    with transaction.atomic():
        txn = IdempotencyGuard.claim_transaction(...)
        CreditLedger.award_credits(user.id, 500, reason_ref=txn.gateway_transaction_id)

    change = CreditLedger.reverse_credits(user.id, 500)
    change.applied  # -300 if only 300 were left
"""

from __future__ import annotations

import logging

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import F, IntegerField, Value
from django.db.models.functions import Greatest

from .exceptions import CreditAccountNotFound, InvalidCreditAmount
from .types import CreditChange


class CreditLedger:
    """
    Atomic award and reversal of prepaid credits.

    Key features:
    - Row lock on the user for the duration of the surrounding transaction
    - Database-side arithmetic (no read-modify-write in Python)
    - Reversals clamp at zero

    All methods are static - no instance state is maintained.
    Callers are expected to run inside ``transaction.atomic()`` together
    with the PaymentTransaction/Refund write the change belongs to; each
    method opens its own atomic block (a savepoint when nested).
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @staticmethod
    def _validate_amount(amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidCreditAmount(amount)

    @staticmethod
    def _lock_balance(user_id) -> int:
        User = get_user_model()
        try:
            return User.objects.select_for_update().values_list("credits", flat=True).get(pk=user_id)
        except User.DoesNotExist:
            raise CreditAccountNotFound(
                f"User {user_id} not found",
                details={"user_id": user_id},
            )

    @classmethod
    def award_credits(cls, user_id, amount: int, reason_ref: str = "") -> CreditChange:
        """
        Add ``amount`` credits to the user's balance.

        Must only be called after the PaymentTransaction carrying
        ``credits_awarded = amount`` has been written in the same
        database transaction.

        Args:
            user_id: Primary key of the user
            amount: Credits to add (positive)
            reason_ref: Reference for the logs (provider payment id)

        Returns:
            CreditChange describing the update

        Raises:
            InvalidCreditAmount: If amount is not a positive integer
            CreditAccountNotFound: If the user does not exist
        """
        cls._validate_amount(amount)
        User = get_user_model()

        with transaction.atomic():
            before = cls._lock_balance(user_id)
            User.objects.filter(pk=user_id).update(credits=F("credits") + amount)
            after = User.objects.values_list("credits", flat=True).get(pk=user_id)

        change = CreditChange(
            user_id=user_id,
            requested=amount,
            applied=after - before,
            balance_before=before,
            balance_after=after,
        )
        cls.get_logger().info(
            "Credits awarded",
            extra={"user_id": user_id, "credits": amount, "balance": after, "reason_ref": reason_ref},
        )
        return change

    @classmethod
    def reverse_credits(cls, user_id, amount: int, reason_ref: str = "") -> CreditChange:
        """
        Remove up to ``amount`` credits, never taking the balance below zero.

        Args:
            user_id: Primary key of the user
            amount: Credits to remove (positive)
            reason_ref: Reference for the logs (refund or dispute id)

        Returns:
            CreditChange; ``applied`` is the (negative) change actually made

        Raises:
            InvalidCreditAmount: If amount is not a positive integer
            CreditAccountNotFound: If the user does not exist
        """
        cls._validate_amount(amount)
        User = get_user_model()

        with transaction.atomic():
            before = cls._lock_balance(user_id)
            User.objects.filter(pk=user_id).update(
                credits=Greatest(F("credits") - amount, Value(0), output_field=IntegerField())
            )
            after = User.objects.values_list("credits", flat=True).get(pk=user_id)

        change = CreditChange(
            user_id=user_id,
            requested=amount,
            applied=after - before,
            balance_before=before,
            balance_after=after,
        )
        log = cls.get_logger().warning if change.was_clamped else cls.get_logger().info
        log(
            "Credits reversed",
            extra={
                "user_id": user_id,
                "credits": amount,
                "applied": change.applied,
                "balance": after,
                "reason_ref": reason_ref,
            },
        )
        return change

    @staticmethod
    def get_balance(user_id) -> int:
        User = get_user_model()
        try:
            return User.objects.values_list("credits", flat=True).get(pk=user_id)
        except User.DoesNotExist:
            raise CreditAccountNotFound(
                f"User {user_id} not found",
                details={"user_id": user_id},
            )
