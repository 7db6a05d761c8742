"""
Sales models: Customer and Order.

Customer carries the two credit figures the financial core maintains:
- credit_limit_cents: configured ceiling, set by an administrator
- available_credit_cents: cached derived value, written only by
  financial.services.CreditService

Order carries the payment status the payment reconciler updates when a
boleto linked to the order is confirmed as paid.

Usage:
    from sales.models import Customer, Order

    customer = Customer.objects.create(name="Padaria Central", credit_limit_cents=100000)
    customer.credit_limit  # Money(cents=100000)
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel
from financial.money import Money


class PaymentMethod(models.TextChoices):
    """How an order or obligation is (or was) paid."""

    PIX = "pix", "PIX"
    BOLETO = "boleto", "Boleto"
    CASH = "cash", "Cash"
    CARD = "card", "Card"
    BANK_TRANSFER = "bank_transfer", "Bank Transfer"
    CREDIT = "credit", "Store Credit"


class OrderPaymentStatus(models.TextChoices):
    """Payment status of an order."""

    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    CANCELLED = "cancelled", "Cancelled"


class Customer(BaseModel):
    """
    A business customer buying on credit.

    available_credit_cents is a materialized view of
    clamp(credit_limit - outstanding_debt, 0, credit_limit). It must never be
    assigned directly outside CreditService; the audit service detects and
    repairs drift.
    """

    name = models.CharField(
        max_length=200,
        help_text="Customer (business) name",
    )
    document = models.CharField(
        max_length=20,
        blank=True,
        default="",
        db_index=True,
        help_text="CNPJ or CPF, digits only",
    )
    email = models.EmailField(
        blank=True,
        default="",
        help_text="Contact e-mail for payment notifications",
    )
    phone = models.CharField(
        max_length=20,
        blank=True,
        default="",
        help_text="Contact phone for payment notifications",
    )

    # ==========================================================================
    # Credit
    # ==========================================================================

    credit_limit_cents = models.BigIntegerField(
        default=0,
        help_text="Configured credit ceiling in cents (>= 0)",
    )
    available_credit_cents = models.BigIntegerField(
        default=0,
        help_text="Cached available credit in cents (derived, see CreditService)",
    )

    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Inactive customers are skipped by the credit audit",
    )

    class Meta:
        ordering = ["name"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(credit_limit_cents__gte=0),
                name="customer_credit_limit_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"Customer({self.pk}, {self.name})"

    @property
    def credit_limit(self) -> Money:
        return Money(cents=self.credit_limit_cents)

    @property
    def available_credit(self) -> Money:
        return Money(cents=self.available_credit_cents)


class Order(BaseModel):
    """
    A customer order.

    Only the financial attributes are modelled here: the order total, how
    it is paid and whether it has been paid.
    """

    customer = models.ForeignKey(
        Customer,
        on_delete=models.PROTECT,
        related_name="orders",
        help_text="Customer who placed the order",
    )
    order_number = models.CharField(
        max_length=30,
        unique=True,
        help_text="Human-facing order number",
    )
    total_cents = models.BigIntegerField(
        help_text="Order total in cents",
    )
    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        default=PaymentMethod.BOLETO,
        help_text="How the customer will pay",
    )
    payment_status = models.CharField(
        max_length=20,
        choices=OrderPaymentStatus.choices,
        default=OrderPaymentStatus.PENDING,
        db_index=True,
        help_text="Set to paid by the payment reconciler or a manual override",
    )
    paid_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the order was confirmed as paid",
    )

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"Order({self.order_number}, {self.total}, {self.payment_status})"

    @property
    def total(self) -> Money:
        return Money(cents=self.total_cents)
