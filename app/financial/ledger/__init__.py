"""
Bank ledger: append-only transaction log per bank account.

Components:
    - models: BankAccount, Transaction, TransactionType
    - services: BankLedgerService (post, transfer, recompute_account_balance)
    - types: TransferResult, RecomputeResult, PostingReference, LegDirection
    - exceptions: LedgerError and subclasses

Usage:
    from financial.ledger.services import bank_ledger
    from financial.ledger.models import TransactionType

Note:
    Models and services are not re-exported here: financial.models imports
    the ledger models while the app registry is loading.
"""

from .exceptions import (
    AccountNotFound,
    ImmutableTransactionError,
    InactiveAccount,
    InsufficientFunds,
    LedgerError,
    SameAccountTransferError,
)
from .types import LegDirection, PostingReference, RecomputeResult, TransferResult

__all__ = [
    # Types
    "LegDirection",
    "PostingReference",
    "RecomputeResult",
    "TransferResult",
    # Exceptions
    "LedgerError",
    "AccountNotFound",
    "ImmutableTransactionError",
    "InactiveAccount",
    "InsufficientFunds",
    "SameAccountTransferError",
]
