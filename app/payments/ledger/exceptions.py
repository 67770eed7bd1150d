"""
Credit ledger exceptions.

Exception Hierarchy:
    LedgerError (base)
    ├── InvalidCreditAmount - Non-positive amount passed to award/reverse
    └── CreditAccountNotFound - User row does not exist

Usage:
    from payments.ledger.exceptions import InvalidCreditAmount

    if amount <= 0:
        raise InvalidCreditAmount(amount)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, NotFoundError

if TYPE_CHECKING:
    from typing import Any


class LedgerError(BaseApplicationError):
    """
    Base exception for all credit ledger operations.

    Example:
        try:
            CreditLedger.award_credits(user_id, credits, reason_ref)
        except LedgerError as e:
            logger.error(f"Ledger operation failed: {e}")
    """

    default_error_code: str = "LEDGER_ERROR"


class InvalidCreditAmount(LedgerError):
    """
    Raised when a credit amount is not a positive integer.

    Attributes:
        amount: The rejected amount
    """

    default_error_code: str = "INVALID_CREDIT_AMOUNT"

    def __init__(
        self,
        amount: Any,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.amount = amount
        full_details = {"amount": amount}
        if details:
            full_details.update(details)
        super().__init__(
            message=f"Credit amount must be a positive integer, got {amount!r}",
            error_code=error_code,
            details=full_details,
        )


class CreditAccountNotFound(LedgerError, NotFoundError):
    """Raised when the user whose balance should change does not exist."""

    default_error_code: str = "CREDIT_ACCOUNT_NOT_FOUND"
