"""
Ledger - prepaid credit balance of a user.

``User.credits`` is owned by the authentication app but only ever changed
through this package. Every increase is tied one-to-one to a completed
PaymentTransaction (``credits_awarded``); every decrease to a Refund
(``credits_reversed``).

Public API:
    Service:
        CreditLedger - award_credits / reverse_credits / get_balance

    Types:
        CreditChange - Result of one award or reversal

    Exceptions:
        LedgerError - Base exception for ledger operations
        InvalidCreditAmount - Non-positive amount
        CreditAccountNotFound - User does not exist

Usage:
    from payments.ledger import CreditLedger

    change = CreditLedger.reverse_credits(user.id, txn.credits_awarded)
    refund.credits_reversed = -change.applied
"""

from .exceptions import CreditAccountNotFound, InvalidCreditAmount, LedgerError
from .services import CreditLedger
from .types import CreditChange

__all__ = [
    "CreditAccountNotFound",
    "CreditChange",
    "CreditLedger",
    "InvalidCreditAmount",
    "LedgerError",
]
