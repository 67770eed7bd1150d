"""
Data types for credit ledger operations.

Types:
    CreditChange: Result of one award or reversal

Usage:
    from payments.ledger.types import CreditChange

    change = CreditLedger.reverse_credits(user.id, 500)
    print(change)  # "user 42: -300 credits (500 requested), 300 -> 0"
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CreditChange:
    """
    Outcome of a credit ledger operation.

    Reversals are clamped at zero, so ``applied`` can be smaller than
    ``requested`` when the user already spent part of the credits.

    Attributes:
        user_id: Affected user
        requested: Credits the caller asked to add or remove (positive)
        applied: Signed change actually made to the balance
        balance_before / balance_after: Balance around the change

    Example:
        change = CreditChange(user_id=42, requested=500, applied=-300,
                              balance_before=300, balance_after=0)
        assert change.was_clamped
    """

    user_id: int
    requested: int
    applied: int
    balance_before: int
    balance_after: int

    @property
    def was_clamped(self) -> bool:
        return abs(self.applied) < self.requested

    def __str__(self) -> str:
        sign = "+" if self.applied >= 0 else "-"
        return (
            f"user {self.user_id}: {sign}{abs(self.applied)} credits "
            f"({self.requested} requested), {self.balance_before} -> {self.balance_after}"
        )
