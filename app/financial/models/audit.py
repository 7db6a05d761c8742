"""
Audit models: apply-fix runs and the corrections they made.

Dry-run audits write nothing. Only a confirmed apply-fix pass creates an
AuditRun, and every cached value it rewrites is recorded as a
DriftCorrection with its before and after values.

Usage:
    from financial.models import AuditRun, DriftCorrection

    run = AuditRun.objects.create(kind=AuditKind.CUSTOMER_CREDIT, started_at=now)
    DriftCorrection.objects.create(
        run=run, customer=customer, before_cents=20000, after_cents=50000,
    )
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from financial.state_machines import AuditKind, AuditRunStatus


class AuditRun(UUIDPrimaryKeyMixin, BaseModel):
    """
    One confirmed apply-fix pass.

    Fields:
        kind: Customer credit or account balance
        status: running / completed / failed
        entities_checked: Customers or accounts examined
        discrepancies_found: Entities beyond tolerance at apply time
        corrections_applied: Entities whose cached value was rewritten
        performed_by: Operator who confirmed the run (None for CLI runs)
    """

    kind = models.CharField(
        max_length=30,
        choices=AuditKind.choices,
        db_index=True,
        help_text="What this run compared",
    )
    status = models.CharField(
        max_length=20,
        choices=AuditRunStatus.choices,
        default=AuditRunStatus.RUNNING,
        db_index=True,
        help_text="Current status of this run",
    )
    started_at = models.DateTimeField(
        help_text="When this run started",
    )
    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When this run completed (or failed)",
    )
    entities_checked = models.PositiveIntegerField(
        default=0,
        help_text="Number of customers or accounts examined",
    )
    discrepancies_found = models.PositiveIntegerField(
        default=0,
        help_text="Entities beyond tolerance at apply time",
    )
    corrections_applied = models.PositiveIntegerField(
        default=0,
        help_text="Entities whose cached value was rewritten",
    )
    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Operator who confirmed the run",
    )
    error_message = models.TextField(
        blank=True,
        default="",
        help_text="Error message if the run failed",
    )

    class Meta:
        ordering = ["-started_at"]

    def __str__(self) -> str:
        return f"AuditRun({self.id}, {self.kind}, {self.status})"


class DriftCorrection(UUIDPrimaryKeyMixin, BaseModel):
    """
    Before/after trail for one corrected cached value.

    Exactly one of customer or bank_account is set, matching the run kind.
    For account corrections, corrected_rows counts transactions whose
    balance_after snapshot was rewritten.
    """

    run = models.ForeignKey(
        AuditRun,
        on_delete=models.CASCADE,
        related_name="corrections",
        help_text="Run that made this correction",
    )
    customer = models.ForeignKey(
        "sales.Customer",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="credit_corrections",
        help_text="Customer whose available credit was corrected",
    )
    bank_account = models.ForeignKey(
        "financial.BankAccount",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="balance_corrections",
        help_text="Bank account whose balance was corrected",
    )
    before_cents = models.BigIntegerField(
        help_text="Cached value before the correction",
    )
    after_cents = models.BigIntegerField(
        help_text="Recomputed value written by the correction",
    )
    corrected_rows = models.PositiveIntegerField(
        default=0,
        help_text="Transactions whose balance_after was rewritten",
    )
    details = models.JSONField(
        default=dict,
        blank=True,
        help_text="Contributing obligation counts or other context",
    )

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(customer__isnull=False, bank_account__isnull=True)
                    | models.Q(customer__isnull=True, bank_account__isnull=False)
                ),
                name="drift_correction_single_target",
            ),
        ]

    def __str__(self) -> str:
        target = self.customer_id or self.bank_account_id
        return f"DriftCorrection({target}, {self.before_cents} -> {self.after_cents})"

    @property
    def difference_cents(self) -> int:
        return self.after_cents - self.before_cents
