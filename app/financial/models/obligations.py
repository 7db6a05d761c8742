"""
Obligation models: Boleto and Receivable.

Both record money a customer owes and share the same lifecycle
(see financial.state_machines.ObligationStatus):

    PENDING → OVERDUE → PAID
    PENDING/OVERDUE → CANCELLED

A Receivable may be *represented by* a Boleto through Receivable.boleto.
While that boleto is active (PENDING/OVERDUE), the receivable is the same
debt seen from another angle and is excluded from independent debt
aggregation. The relation is a back-reference, not ownership: deleting or
cancelling the boleto leaves the receivable in place.

Usage:
    from financial.models import Boleto, Receivable

    boleto = Boleto.objects.create(customer=customer, amount_cents=30000, due_date=due)
    receivable = Receivable.objects.create(
        customer=customer, amount_cents=30000, due_date=due, boleto=boleto,
    )

    boleto.mark_paid(paid_date=today)  # django-fsm transition
    boleto.save()

Note:
    Transitions only change in-memory state. Callers must save and then
    recompute the customer's credit in the same unit of work; use
    financial.services.ObligationService rather than calling transitions
    directly.
"""

from __future__ import annotations

import datetime

from django.conf import settings
from django.db import models
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from financial.money import Money
from financial.state_machines import ObligationStatus
from sales.models import PaymentMethod

_ACTIVE = [ObligationStatus.PENDING, ObligationStatus.OVERDUE]


class ObligationBase(UUIDPrimaryKeyMixin, BaseModel):
    """
    Fields and transitions shared by Boleto and Receivable.

    Fields:
        customer: Debtor (owner of the obligation)
        order: Order that originated the obligation, if any
        amount_cents: Amount owed in cents (> 0)
        due_date: Local business date the payment is due
        status: Lifecycle state (managed by django-fsm)
        payment_method: How the obligation was settled
        paid_amount_cents: Amount actually received (manual receipts)
        paid_by: Administrator who recorded a manual receipt
    """

    customer = models.ForeignKey(
        "sales.Customer",
        on_delete=models.PROTECT,
        help_text="Customer who owes this amount",
    )
    order = models.ForeignKey(
        "sales.Order",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        help_text="Order that originated this obligation",
    )
    amount_cents = models.BigIntegerField(
        help_text="Amount owed in cents",
    )
    due_date = models.DateField(
        db_index=True,
        help_text="Date the payment is due (local business date)",
    )
    description = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Free-text description shown to operators",
    )

    # Not protected: services reload rows with refresh_from_db after locking
    status = FSMField(
        default=ObligationStatus.PENDING,
        choices=ObligationStatus.choices,
        db_index=True,
        help_text="Current lifecycle state (managed by FSM)",
    )

    # ==========================================================================
    # Settlement
    # ==========================================================================

    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        blank=True,
        default="",
        help_text="How the obligation was settled",
    )
    paid_amount_cents = models.BigIntegerField(
        null=True,
        blank=True,
        help_text="Amount actually received in cents (may be below amount on partial payment)",
    )
    paid_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Administrator who recorded a manual receipt",
    )

    class Meta:
        abstract = True
        ordering = ["due_date", "created_at"]

    # ==========================================================================
    # Money views
    # ==========================================================================

    @property
    def amount(self) -> Money:
        return Money(cents=self.amount_cents)

    @property
    def paid_amount(self) -> Money | None:
        if self.paid_amount_cents is None:
            return None
        return Money(cents=self.paid_amount_cents)

    @property
    def is_active(self) -> bool:
        """True while the obligation counts as outstanding debt."""
        return self.status in _ACTIVE

    @property
    def is_terminal(self) -> bool:
        return self.status in ObligationStatus.terminal_values()

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=ObligationStatus.PENDING,
        target=ObligationStatus.OVERDUE,
    )
    def mark_overdue(self):
        """
        Flag the obligation as overdue.

        Transition: PENDING -> OVERDUE

        Called by the overdue sweep when due_date is before the local
        business date. The obligation still counts as outstanding debt.
        """
        pass

    @transition(
        field=status,
        source=_ACTIVE,
        target=ObligationStatus.CANCELLED,
    )
    def cancel(self):
        """
        Cancel the obligation.

        Transition: PENDING/OVERDUE -> CANCELLED

        Cancelled obligations stop counting toward outstanding debt.
        """
        pass

    def _record_payment(
        self,
        paid_on: datetime.date,
        payment_method: str = "",
        paid_amount: Money | None = None,
        paid_by=None,
    ) -> None:
        self.paid_amount_cents = (paid_amount or self.amount).cents
        if payment_method:
            self.payment_method = payment_method
        if paid_by is not None:
            self.paid_by = paid_by


class Boleto(ObligationBase):
    """
    Payment-slip obligation issued through the instant-payment provider.

    pix_payment_id is the provider's charge reference. Provider webhooks
    look boletos up by it, so it is unique when present.
    """

    customer = models.ForeignKey(
        "sales.Customer",
        on_delete=models.PROTECT,
        related_name="boletos",
        help_text="Customer who owes this amount",
    )
    order = models.ForeignKey(
        "sales.Order",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="boletos",
        help_text="Order that originated this boleto",
    )

    boleto_number = models.CharField(
        max_length=50,
        blank=True,
        default="",
        help_text="Printed boleto number / digitable line reference",
    )
    pix_payment_id = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text="Payment provider charge reference (unique when set)",
    )
    paid_date = models.DateField(
        null=True,
        blank=True,
        help_text="Date the boleto was confirmed as paid",
    )

    class Meta(ObligationBase.Meta):
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="boleto_amount_positive",
            ),
        ]
        indexes = [
            models.Index(fields=["customer", "status"], name="boleto_customer_status_idx"),
        ]

    def __str__(self) -> str:
        return f"Boleto({self.id}, {self.amount}, {self.status})"

    @transition(
        field="status",
        source=_ACTIVE,
        target=ObligationStatus.PAID,
    )
    def mark_paid(
        self,
        paid_on: datetime.date,
        payment_method: str = "",
        paid_amount: Money | None = None,
        paid_by=None,
    ):
        """
        Confirm the boleto as paid.

        Transition: PENDING/OVERDUE -> PAID

        Args:
            paid_on: Date the payment was received
            payment_method: How it was paid (defaults to unchanged)
            paid_amount: Amount received (defaults to the full amount)
            paid_by: Administrator recording a manual receipt
        """
        self.paid_date = paid_on
        self._record_payment(paid_on, payment_method, paid_amount, paid_by)


class Receivable(ObligationBase):
    """
    Generic amount owed by a customer (installment, manual charge).

    Fields:
        boleto: Boleto that represents this receivable, if any
        payment_date: Date the receivable was settled
        remainder_of: Receivable whose partial payment produced this one
    """

    customer = models.ForeignKey(
        "sales.Customer",
        on_delete=models.PROTECT,
        related_name="receivables",
        help_text="Customer who owes this amount",
    )
    order = models.ForeignKey(
        "sales.Order",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="receivables",
        help_text="Order that originated this receivable",
    )
    boleto = models.ForeignKey(
        Boleto,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="receivables",
        help_text="Boleto representing this receivable (excluded from debt while active)",
    )
    payment_date = models.DateField(
        null=True,
        blank=True,
        help_text="Date the receivable was settled",
    )
    remainder_of = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="remainders",
        help_text="Receivable whose partial payment created this remainder",
    )

    class Meta(ObligationBase.Meta):
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="receivable_amount_positive",
            ),
        ]
        indexes = [
            models.Index(fields=["customer", "status"], name="receivable_customer_status_idx"),
        ]

    def __str__(self) -> str:
        return f"Receivable({self.id}, {self.amount}, {self.status})"

    @transition(
        field="status",
        source=_ACTIVE,
        target=ObligationStatus.PAID,
    )
    def mark_paid(
        self,
        paid_on: datetime.date,
        payment_method: str = "",
        paid_amount: Money | None = None,
        paid_by=None,
    ):
        """
        Confirm the receivable as paid.

        Transition: PENDING/OVERDUE -> PAID
        """
        self.payment_date = paid_on
        self._record_payment(paid_on, payment_method, paid_amount, paid_by)
