"""
Bank ledger exceptions.

This module provides a hierarchy of exceptions for bank ledger operations,
inheriting from the core exception base class for API consistency.

Exception Hierarchy:
    LedgerError (base)
    ├── AccountNotFound - Bank account lookup failures (404)
    ├── InsufficientFunds - Debit would overdraw a no-overdraft account (400)
    ├── InactiveAccount - Posting to a deactivated account (409)
    ├── SameAccountTransferError - Transfer source equals destination (409)
    └── ImmutableTransactionError - Attempt to edit or delete a posted row

Usage:
    from financial.ledger.exceptions import InsufficientFunds

    if new_balance < 0 and not account.allow_overdraft:
        raise InsufficientFunds(account.id, required=amount, available=balance)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    import uuid
    from typing import Any

    from financial.money import Money


class LedgerError(BaseApplicationError):
    """
    Base exception for all bank ledger operations.

    Example:
        try:
            BankLedgerService.transfer(source.id, destination.id, amount)
        except LedgerError as e:
            return application_error_response(e)
    """

    default_error_code: str = "LEDGER_ERROR"


class AccountNotFound(LedgerError):
    """
    Raised when a bank account cannot be found.

    Example:
        raise AccountNotFound(
            f"Bank account {account_id} not found",
            details={"account_id": str(account_id)},
        )
    """

    default_error_code: str = "ACCOUNT_NOT_FOUND"
    http_status = 404


class InsufficientFunds(LedgerError):
    """
    Raised when a debit would take a no-overdraft account below zero.

    Attributes:
        account_id: The account that would be overdrawn
        required: The amount being debited
        available: The balance before the debit
    """

    default_error_code: str = "INSUFFICIENT_FUNDS"
    http_status = 400

    def __init__(
        self,
        account_id: uuid.UUID,
        required: Money,
        available: Money,
        details: dict[str, Any] | None = None,
    ):
        self.account_id = account_id
        self.required = required
        self.available = available

        full_details = {
            "account_id": str(account_id),
            "required": str(required.amount),
            "available": str(available.amount),
        }
        if details:
            full_details.update(details)

        super().__init__(
            message=(
                f"Bank account {account_id} has insufficient funds: "
                f"required {required}, available {available}"
            ),
            details=full_details,
        )


class InactiveAccount(LedgerError):
    """
    Raised when posting to an inactive account.

    Deactivated accounts keep their history but accept no new postings.
    """

    default_error_code: str = "INACTIVE_ACCOUNT"
    http_status = 409


class SameAccountTransferError(LedgerError):
    """Raised when a transfer names the same account on both legs."""

    default_error_code: str = "SAME_ACCOUNT_TRANSFER"
    http_status = 409


class ImmutableTransactionError(LedgerError):
    """
    Raised when code tries to change or delete a posted transaction.

    Only the balance_after snapshot may be rewritten, and only by the
    balance recomputation pass.
    """

    default_error_code: str = "IMMUTABLE_TRANSACTION"
    http_status = 409
