"""
Bank ledger service layer.

This module provides BankLedgerService, the only writer of bank
transactions and of BankAccount.balance_cents. Every operation locks the
accounts it touches, so postings on one account are serialized and a
running balance can never be computed from a stale read.

Usage:
    from financial.ledger.services import BankLedgerService, bank_ledger
    from financial.ledger.models import TransactionType
    from financial.money import Money

    account = bank_ledger.open_account("Operating", opening_balance=Money(cents=10000))

    bank_ledger.post(account.id, TransactionType.EXPENSE, Money(cents=4000))

    result = bank_ledger.transfer(account.id, savings.id, Money(cents=5000), "Reserve")
    result.from_balance  # Money(cents=1000)

    bank_ledger.recompute_account_balance(account.id)  # self-healing pass
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from django.db import transaction
from django.db.models import Max

from financial.exceptions import InvalidAmountError
from financial.locks import lock_bank_accounts, retry_on_conflict
from financial.money import Money

from .exceptions import (
    AccountNotFound,
    InactiveAccount,
    InsufficientFunds,
    SameAccountTransferError,
)
from .models import BankAccount, ReferenceType, Transaction, TransactionType
from .types import LegDirection, PostingReference, RecomputeResult, TransferResult

if TYPE_CHECKING:
    import datetime
    from typing import Any

    from django.db.models import QuerySet


logger = logging.getLogger(__name__)


class BankLedgerService:
    """
    Service class for bank ledger operations.

    Key features:
    - Per-account row locks around every read-modify-write of the balance
    - All-or-nothing postings: a rejected posting writes nothing
    - Transfers lock both accounts in id order and post both legs atomically
    - Balance recomputation from the ordered transaction history

    All methods are static - no instance state is maintained.
    """

    # ==========================================================================
    # Accounts
    # ==========================================================================

    @staticmethod
    def get_account(account_id: Any) -> BankAccount:
        """
        Get a bank account by id.

        Raises:
            AccountNotFound: If account doesn't exist
        """
        try:
            return BankAccount.objects.get(id=account_id)
        except (BankAccount.DoesNotExist, ValueError):
            raise AccountNotFound(
                f"Bank account {account_id} not found",
                details={"account_id": str(account_id)},
            )

    @staticmethod
    def open_account(
        name: str,
        bank_name: str = "",
        opening_balance: Money | None = None,
        allow_overdraft: bool = False,
        created_by=None,
    ) -> BankAccount:
        """
        Create a bank account.

        A non-zero opening balance is posted as an INCOME transaction so
        the cached balance stays derivable from history.

        Args:
            name: Display name
            bank_name: Bank or institution name
            opening_balance: Balance to start with (default: zero)
            allow_overdraft: Whether debits may take the balance below zero
            created_by: User opening the account

        Returns:
            The new BankAccount
        """
        with transaction.atomic():
            account = BankAccount.objects.create(
                name=name,
                bank_name=bank_name,
                allow_overdraft=allow_overdraft,
            )
            if opening_balance is not None and opening_balance.is_positive():
                BankLedgerService._append(
                    account,
                    TransactionType.INCOME,
                    opening_balance.cents,
                    PostingReference(ReferenceType.OPENING_BALANCE, str(account.id)),
                    description="Opening balance",
                    created_by=created_by,
                )

        logger.info(
            f"Opened bank account {account.name}",
            extra={"account_id": str(account.id), "opening_balance": str(opening_balance)},
        )
        return account

    # ==========================================================================
    # Postings
    # ==========================================================================

    @staticmethod
    def _signed_cents(
        transaction_type: str,
        amount: Money,
        direction: LegDirection | str | None,
    ) -> int:
        """Turn a positive amount into the signed amount stored on the row."""
        if not amount.is_positive():
            raise InvalidAmountError(
                "Amount must be greater than zero",
                details={"amount": str(amount.amount)},
            )

        if transaction_type == TransactionType.INCOME:
            return amount.cents
        if transaction_type == TransactionType.EXPENSE:
            return -amount.cents
        if transaction_type == TransactionType.TRANSFER:
            if direction is None:
                raise InvalidAmountError(
                    "TRANSFER postings need a direction (debit or credit)",
                    error_code="TRANSFER_DIRECTION_REQUIRED",
                )
            if LegDirection(direction) == LegDirection.DEBIT:
                return -amount.cents
            return amount.cents

        raise InvalidAmountError(
            f"Unknown transaction type: {transaction_type}",
            error_code="INVALID_TRANSACTION_TYPE",
        )

    @staticmethod
    def _append(
        account: BankAccount,
        transaction_type: str,
        signed_cents: int,
        reference: PostingReference | None = None,
        *,
        description: str = "",
        category: str = "",
        date: datetime.date | None = None,
        transfer_group: uuid.UUID | None = None,
        created_by=None,
    ) -> Transaction:
        """
        Append a transaction to a locked account and update its balance.

        The caller must hold the row lock on `account` (or have just
        created it) inside an open transaction.

        Raises:
            InactiveAccount: If the account is inactive
            InsufficientFunds: If a debit would overdraw a no-overdraft account
        """
        if not account.is_active:
            raise InactiveAccount(
                f"Bank account {account.id} is inactive",
                details={"account_id": str(account.id)},
            )

        previous = account.balance_cents
        new_balance = previous + signed_cents
        if signed_cents < 0 and new_balance < 0 and not account.allow_overdraft:
            raise InsufficientFunds(
                account.id,
                required=Money(cents=-signed_cents),
                available=Money(cents=previous),
            )

        last_sequence = account.transactions.aggregate(last=Max("sequence"))["last"] or 0
        reference = reference or PostingReference()

        extra_fields = {}
        if date is not None:
            extra_fields["date"] = date

        posted = Transaction.objects.create(
            bank_account=account,
            transaction_type=transaction_type,
            amount_cents=signed_cents,
            balance_after_cents=new_balance,
            sequence=last_sequence + 1,
            description=description,
            category=category,
            reference_type=reference.reference_type,
            reference_id=reference.reference_id,
            transfer_group=transfer_group,
            created_by=created_by,
            **extra_fields,
        )

        account.balance_cents = new_balance
        account.save(update_fields=["balance_cents", "updated_at"])

        logger.info(
            f"Posted {transaction_type} of {Money(cents=signed_cents)} on {account.name}",
            extra={
                "account_id": str(account.id),
                "transaction_id": str(posted.id),
                "balance_before": previous,
                "balance_after": new_balance,
            },
        )
        return posted

    @staticmethod
    @retry_on_conflict
    def post(
        account_id: Any,
        transaction_type: str,
        amount: Money,
        reference: PostingReference | None = None,
        *,
        direction: LegDirection | str | None = None,
        description: str = "",
        category: str = "",
        date: datetime.date | None = None,
        created_by=None,
    ) -> Transaction:
        """
        Append one transaction to an account.

        balance_after = previous balance + signed amount, where INCOME and
        the credit leg of a TRANSFER add and EXPENSE and the debit leg
        subtract. The account's cached balance moves in the same unit of
        work.

        Args:
            account_id: Account to post on
            transaction_type: INCOME, EXPENSE or TRANSFER
            amount: Positive amount; the sign comes from type/direction
            reference: Weak reference to the cause (obligation, counterpart)
            direction: Required for TRANSFER postings
            description: Free-text description
            category: Income/expense category
            date: Business date (default: today)
            created_by: User making the posting

        Returns:
            The created Transaction

        Raises:
            InvalidAmountError: If amount <= 0 or a TRANSFER has no direction
            AccountNotFound: If the account doesn't exist
            InactiveAccount: If the account is inactive
            InsufficientFunds: If a debit would overdraw a no-overdraft account
        """
        signed_cents = BankLedgerService._signed_cents(transaction_type, amount, direction)

        with transaction.atomic():
            account = lock_bank_accounts([account_id])[account_id]
            return BankLedgerService._append(
                account,
                transaction_type,
                signed_cents,
                reference,
                description=description,
                category=category,
                date=date,
                created_by=created_by,
            )

    @staticmethod
    @retry_on_conflict
    def transfer(
        from_account_id: Any,
        to_account_id: Any,
        amount: Money,
        description: str = "",
        *,
        date: datetime.date | None = None,
        created_by=None,
    ) -> TransferResult:
        """
        Move money between two accounts atomically.

        Posts a debit leg on the source and a credit leg on the
        destination, sharing a transfer_group. Each leg references the
        other leg's account. Either both legs and both balance updates
        commit, or nothing does.

        Raises:
            SameAccountTransferError: If source and destination are equal
            InvalidAmountError: If amount <= 0
            InsufficientFunds: If the source cannot cover the amount
            AccountNotFound / InactiveAccount: For invalid accounts
        """
        if str(from_account_id) == str(to_account_id):
            raise SameAccountTransferError(
                "Source and destination accounts must differ",
                details={"account_id": str(from_account_id)},
            )
        if not amount.is_positive():
            raise InvalidAmountError(
                "Transfer amount must be greater than zero",
                details={"amount": str(amount.amount)},
            )

        group = uuid.uuid4()
        description = description or "Transfer between accounts"

        with transaction.atomic():
            accounts = lock_bank_accounts([from_account_id, to_account_id])
            source = accounts[from_account_id]
            destination = accounts[to_account_id]

            debit = BankLedgerService._append(
                source,
                TransactionType.TRANSFER,
                -amount.cents,
                PostingReference(ReferenceType.BANK_ACCOUNT, str(destination.id)),
                description=description,
                date=date,
                transfer_group=group,
                created_by=created_by,
            )
            credit = BankLedgerService._append(
                destination,
                TransactionType.TRANSFER,
                amount.cents,
                PostingReference(ReferenceType.BANK_ACCOUNT, str(source.id)),
                description=description,
                date=date,
                transfer_group=group,
                created_by=created_by,
            )

        logger.info(
            f"Transferred {amount} from {source.name} to {destination.name}",
            extra={
                "from_account_id": str(source.id),
                "to_account_id": str(destination.id),
                "transfer_group": str(group),
            },
        )
        return TransferResult(
            debit=debit,
            credit=credit,
            from_balance=source.balance,
            to_balance=destination.balance,
        )

    # ==========================================================================
    # Recomputation
    # ==========================================================================

    @staticmethod
    def _replay(account: BankAccount) -> tuple[int, list[Transaction]]:
        """
        Replay an account's history from a zero starting balance.

        Returns:
            (final running balance, rows whose balance_after differs)
            The differing rows already carry the corrected value in memory.
        """
        running = 0
        drifted: list[Transaction] = []
        for row in account.transactions.order_by("created_at", "sequence"):
            running += row.amount_cents
            if row.balance_after_cents != running:
                row.balance_after_cents = running
                drifted.append(row)
        return running, drifted

    @staticmethod
    def inspect_account_balance(account_id: Any) -> RecomputeResult:
        """
        Compute what recompute_account_balance would change, writing nothing.

        Used by the dry-run balance audit.
        """
        account = BankLedgerService.get_account(account_id)
        running, drifted = BankLedgerService._replay(account)
        return RecomputeResult(
            account_id=account.id,
            old_balance=account.balance,
            new_balance=Money(cents=running),
            corrected_row_count=len(drifted),
        )

    @staticmethod
    @retry_on_conflict
    def recompute_account_balance(account_id: Any) -> RecomputeResult:
        """
        Rebuild balance_after snapshots and the cached balance from history.

        Reads all transactions in creation order, recomputes the running
        balance from zero, rewrites every balance_after that differs and
        sets the account balance to the final value. Amounts are never
        touched. Idempotent: a second call reports zero corrections.

        Returns:
            RecomputeResult with old/new balance and corrected row count
        """
        with transaction.atomic():
            account = lock_bank_accounts([account_id])[account_id]
            old_balance = account.balance
            running, drifted = BankLedgerService._replay(account)

            if drifted:
                Transaction.objects.bulk_update(drifted, ["balance_after_cents"])
            if account.balance_cents != running:
                account.balance_cents = running
                account.save(update_fields=["balance_cents", "updated_at"])

        result = RecomputeResult(
            account_id=account.id,
            old_balance=old_balance,
            new_balance=Money(cents=running),
            corrected_row_count=len(drifted),
        )
        if result.changed:
            logger.warning(
                f"Recomputed balance of {account.name}: {old_balance} -> {result.new_balance}",
                extra={
                    "account_id": str(account.id),
                    "old_balance": old_balance.cents,
                    "new_balance": running,
                    "corrected_rows": len(drifted),
                },
            )
        return result

    # ==========================================================================
    # Queries
    # ==========================================================================

    @staticmethod
    def get_transactions(
        account_id: Any,
        start_date: datetime.date | None = None,
        end_date: datetime.date | None = None,
    ) -> QuerySet[Transaction]:
        """
        Transactions of an account in insertion order, optionally by date.

        Raises:
            AccountNotFound: If the account doesn't exist
        """
        account = BankLedgerService.get_account(account_id)
        queryset = account.transactions.order_by("sequence")
        if start_date:
            queryset = queryset.filter(date__gte=start_date)
        if end_date:
            queryset = queryset.filter(date__lte=end_date)
        return queryset


# Module-level singleton for convenience
bank_ledger = BankLedgerService()
