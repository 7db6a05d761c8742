"""
Bank ledger models: append-only transaction log per bank account.

- BankAccount: a real bank account with a cached running balance
- Transaction: an immutable posting with a signed amount and the running
  balance snapshot taken when it was inserted

The authoritative balance of an account is the ordered sum of its
transactions' signed amounts. BankAccount.balance_cents is a cache that
only BankLedgerService writes.

Usage:
    from financial.ledger.models import BankAccount, Transaction, TransactionType

    account = BankAccount.objects.get(id=account_id)
    account.balance  # Money(cents=...)
    account.get_ledger_balance()  # recomputed from transactions
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import Sum
from django.db.models.functions import Coalesce
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from financial.ledger.exceptions import ImmutableTransactionError
from financial.money import Money


class TransactionType(models.TextChoices):
    """
    Types of bank transactions.

    Values:
        INCOME: Money in (positive amount)
        EXPENSE: Money out (negative amount)
        TRANSFER: One leg of an inter-account transfer (either sign)
    """

    INCOME = "income", "Income"
    EXPENSE = "expense", "Expense"
    TRANSFER = "transfer", "Transfer"


class ReferenceType(models.TextChoices):
    """What a transaction's weak reference points at."""

    BOLETO = "boleto", "Boleto"
    RECEIVABLE = "receivable", "Receivable"
    BANK_ACCOUNT = "bank_account", "Bank Account"
    OPENING_BALANCE = "opening_balance", "Opening Balance"
    MANUAL = "manual", "Manual"


class BankAccount(UUIDPrimaryKeyMixin, BaseModel):
    """
    A bank account tracked by the ledger.

    Fields:
        name: Display name (e.g. "Operating - Cora")
        bank_name: Bank / institution name
        balance_cents: Cached running balance (written only by the ledger service)
        allow_overdraft: Whether debits may take the balance below zero
        is_active: Inactive accounts accept no postings
    """

    name = models.CharField(
        max_length=100,
        help_text="Display name",
    )
    bank_name = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Bank or institution name",
    )
    agency = models.CharField(
        max_length=20,
        blank=True,
        default="",
        help_text="Branch (agência) number",
    )
    account_number = models.CharField(
        max_length=30,
        blank=True,
        default="",
        help_text="Account number",
    )
    balance_cents = models.BigIntegerField(
        default=0,
        help_text="Cached balance in cents (sum of transaction amounts)",
    )
    allow_overdraft = models.BooleanField(
        default=False,
        help_text="Whether debits may take the balance below zero",
    )
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Inactive accounts accept no postings",
    )

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return f"BankAccount({self.name}, {self.balance})"

    @property
    def balance(self) -> Money:
        return Money(cents=self.balance_cents)

    def get_ledger_balance(self) -> Money:
        """
        Sum of all transaction amounts for this account.

        This is the authoritative balance; balance_cents should match it.
        """
        result = self.transactions.aggregate(
            total=Coalesce(Sum("amount_cents"), 0),
        )
        return Money(cents=int(result["total"]))


class Transaction(UUIDPrimaryKeyMixin, BaseModel):
    """
    Immutable posting on a bank account.

    Rows are append-only. The only field that may change after insert is
    balance_after_cents, and only through the balance recomputation pass;
    any other update or a delete raises ImmutableTransactionError.

    Fields:
        bank_account: Account the posting belongs to
        transaction_type: INCOME, EXPENSE or TRANSFER
        amount_cents: Signed amount (positive credits, negative debits)
        balance_after_cents: Running balance snapshot after this posting
        sequence: Per-account insertion order, assigned under the account lock
        reference_type / reference_id: Weak pointer to the cause (obligation,
            transfer counterpart account); lookup only
        transfer_group: Shared by both legs of a transfer
    """

    bank_account = models.ForeignKey(
        BankAccount,
        on_delete=models.PROTECT,
        related_name="transactions",
        help_text="Account this posting belongs to",
    )
    transaction_type = models.CharField(
        max_length=20,
        choices=TransactionType.choices,
        db_index=True,
        help_text="Type of posting",
    )
    amount_cents = models.BigIntegerField(
        help_text="Signed amount in cents (positive = money in)",
    )
    balance_after_cents = models.BigIntegerField(
        help_text="Running balance in cents after this posting",
    )
    sequence = models.PositiveBigIntegerField(
        help_text="Per-account insertion order",
    )
    date = models.DateField(
        default=timezone.localdate,
        db_index=True,
        help_text="Business date of the posting",
    )
    description = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Free-text description",
    )
    category = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Income/expense category",
    )

    # ==========================================================================
    # Weak References (lookup only, no ownership)
    # ==========================================================================

    reference_type = models.CharField(
        max_length=30,
        choices=ReferenceType.choices,
        blank=True,
        default="",
        help_text="Kind of entity referenced",
    )
    reference_id = models.CharField(
        max_length=64,
        blank=True,
        default="",
        help_text="Id of the referenced entity",
    )
    transfer_group = models.UUIDField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Shared by both legs of a transfer",
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="User who posted the transaction",
    )

    class Meta:
        ordering = ["bank_account", "sequence"]
        constraints = [
            models.UniqueConstraint(
                fields=["bank_account", "sequence"],
                name="transaction_unique_account_sequence",
            ),
        ]
        indexes = [
            models.Index(fields=["reference_type", "reference_id"], name="transaction_reference_idx"),
            models.Index(fields=["bank_account", "created_at"], name="txn_account_created_idx"),
        ]

    def __str__(self) -> str:
        return (
            f"Transaction({self.transaction_type}, {self.amount}, "
            f"balance_after={self.balance_after})"
        )

    def save(self, *args, **kwargs):
        if not self._state.adding:
            update_fields = kwargs.get("update_fields")
            if update_fields is None or set(update_fields) != {"balance_after_cents"}:
                raise ImmutableTransactionError(
                    f"Transaction {self.id} is immutable",
                    details={"transaction_id": str(self.id)},
                )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableTransactionError(
            f"Transaction {self.id} cannot be deleted",
            details={"transaction_id": str(self.id)},
        )

    @property
    def amount(self) -> Money:
        return Money(cents=self.amount_cents)

    @property
    def balance_after(self) -> Money:
        return Money(cents=self.balance_after_cents)
