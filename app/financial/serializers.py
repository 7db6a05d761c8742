"""
DRF serializers for the financial app.

This module provides serializers for:
- Manual obligation payment requests
- Bank postings, transfers and transaction history
- Audit requests

Money crosses the API as 2-decimal strings and is converted to Money with
to_money(); no float ever reaches the services.

Related files:
    - views.py: Financial API views
    - services/: Business logic
"""

from __future__ import annotations

from decimal import Decimal

from django.utils import timezone
from rest_framework import serializers

from financial.ledger.models import Transaction, TransactionType
from financial.money import Money
from sales.models import PaymentMethod


def money_field(**kwargs) -> serializers.DecimalField:
    """A 2-decimal amount field (max 999,999,999,999.99)."""
    kwargs.setdefault("max_digits", 14)
    kwargs.setdefault("decimal_places", 2)
    return serializers.DecimalField(**kwargs)


def to_money(value: Decimal | None) -> Money | None:
    if value is None:
        return None
    return Money.from_decimal(value)


# =============================================================================
# Obligations
# =============================================================================


class MarkPaidSerializer(serializers.Serializer):
    """
    Manual payment override request.

    Fields:
        payment_method: How the customer paid
        payment_date: Date the money was received (default: today)
        paid_amount: Amount received; omit for the full amount
        bank_account_id: Account the money landed in (posts an INCOME)
        fee: Processing fee withheld from the bank posting
    """

    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices)
    payment_date = serializers.DateField(required=False)
    paid_amount = money_field(required=False, min_value=Decimal("0.01"))
    bank_account_id = serializers.UUIDField(required=False)
    fee = money_field(required=False, min_value=Decimal("0.00"))

    def validate(self, attrs: dict) -> dict:
        if attrs.get("fee") and not attrs.get("bank_account_id"):
            raise serializers.ValidationError(
                {"fee": "A fee only applies when the payment is posted to a bank account."}
            )
        attrs.setdefault("payment_date", timezone.localdate())
        return attrs


class BatchReceiveSerializer(serializers.Serializer):
    """Settle several receivables into one bank account."""

    receivable_ids = serializers.ListField(
        child=serializers.UUIDField(),
        allow_empty=False,
        max_length=500,
    )
    bank_account_id = serializers.UUIDField()
    payment_method = serializers.ChoiceField(
        choices=PaymentMethod.choices,
        default=PaymentMethod.CASH,
    )
    payment_date = serializers.DateField(required=False)

    def validate(self, attrs: dict) -> dict:
        attrs.setdefault("payment_date", timezone.localdate())
        return attrs


class ObligationSerializer(serializers.Serializer):
    """Boleto or receivable summary for API responses."""

    id = serializers.UUIDField(read_only=True)
    kind = serializers.SerializerMethodField()
    customer_id = serializers.IntegerField(read_only=True)
    amount = serializers.SerializerMethodField()
    paid_amount = serializers.SerializerMethodField()
    status = serializers.CharField(read_only=True)
    due_date = serializers.DateField(read_only=True)
    payment_method = serializers.CharField(read_only=True)

    def get_kind(self, obj) -> str:
        return obj._meta.model_name

    def get_amount(self, obj) -> str:
        return str(obj.amount.amount)

    def get_paid_amount(self, obj) -> str | None:
        return str(obj.paid_amount.amount) if obj.paid_amount is not None else None


# =============================================================================
# Bank ledger
# =============================================================================


class TransactionSerializer(serializers.ModelSerializer):
    """
    Transaction serializer for ledger history.

    Amounts are signed: debits are negative.
    """

    amount = serializers.SerializerMethodField()
    balance_after = serializers.SerializerMethodField()

    class Meta:
        model = Transaction
        fields = [
            "id",
            "bank_account",
            "transaction_type",
            "amount",
            "balance_after",
            "sequence",
            "date",
            "description",
            "category",
            "reference_type",
            "reference_id",
            "transfer_group",
            "created_at",
        ]
        read_only_fields = fields

    def get_amount(self, obj: Transaction) -> str:
        return str(obj.amount.amount)

    def get_balance_after(self, obj: Transaction) -> str:
        return str(obj.balance_after.amount)


class TransactionQuerySerializer(serializers.Serializer):
    """Optional date window for transaction listings."""

    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)

    def validate(self, attrs: dict) -> dict:
        start, end = attrs.get("start_date"), attrs.get("end_date")
        if start and end and start > end:
            raise serializers.ValidationError({"end_date": "Must not be before start_date."})
        return attrs


class PostingSerializer(serializers.Serializer):
    """Manual INCOME/EXPENSE posting request."""

    transaction_type = serializers.ChoiceField(
        choices=[TransactionType.INCOME, TransactionType.EXPENSE],
    )
    amount = money_field(min_value=Decimal("0.01"))
    description = serializers.CharField(max_length=255, required=False, default="")
    category = serializers.CharField(max_length=100, required=False, default="")
    date = serializers.DateField(required=False)


class TransferSerializer(serializers.Serializer):
    """Transfer between two bank accounts."""

    from_account_id = serializers.UUIDField()
    to_account_id = serializers.UUIDField()
    amount = money_field(min_value=Decimal("0.01"))
    description = serializers.CharField(max_length=255, required=False, default="")
    date = serializers.DateField(required=False)


# =============================================================================
# Audit
# =============================================================================


class AuditRequestSerializer(serializers.Serializer):
    """
    Audit request.

    autoFix=true applies corrections; the request itself is the operator's
    explicit confirmation.
    """

    autoFix = serializers.BooleanField(required=False, default=False)  # noqa: N815
