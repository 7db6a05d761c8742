"""
State enums for financial models.

This module defines the state enums used by financial models with
django-fsm. These are Django TextChoices for database storage and admin
integration.

State Machines Overview:

Obligation (Boleto and Receivable) States:
    pending → overdue           (scheduled sweep, due date passed)
    pending/overdue → paid      (provider confirmation or manual override)
    pending/overdue → cancelled (provider rejection or administrator)

ProviderWebhookEvent Status:
    pending → processed / ignored / failed
    failed → processed (redelivery succeeds)

AuditRun Status:
    running → completed / failed
"""

from django.db import models


class ObligationStatus(models.TextChoices):
    """
    States for Boleto and Receivable.

    Terminal states: PAID, CANCELLED

    State Flow:
        PENDING → OVERDUE → PAID
        PENDING → PAID
        PENDING/OVERDUE → CANCELLED

    Only PENDING and OVERDUE obligations count toward a customer's
    outstanding debt.
    """

    PENDING = "pending", "Pending"
    OVERDUE = "overdue", "Overdue"
    PAID = "paid", "Paid"
    CANCELLED = "cancelled", "Cancelled"

    @classmethod
    def active_values(cls) -> list[str]:
        """States that count toward outstanding debt."""
        return [cls.PENDING, cls.OVERDUE]

    @classmethod
    def terminal_values(cls) -> list[str]:
        """States that accept no further transitions."""
        return [cls.PAID, cls.CANCELLED]


class ProviderPaymentStatus(models.TextChoices):
    """
    Normalized status reported by the instant-payment provider.

    Raw provider strings are mapped onto these values by
    financial.webhooks.parsing.normalize_provider_status. Anything the
    reconciler does not act on is OTHER.
    """

    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    CANCELLED = "cancelled", "Cancelled"
    OTHER = "other", "Other"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status of a stored provider webhook delivery.

    Values:
        PENDING: Received, not yet handled
        PROCESSED: Handler changed obligation state
        IGNORED: Handled as a no-op (unknown reference, already terminal,
            non-actionable status)
        FAILED: Handler raised; the provider will redeliver
    """

    PENDING = "pending", "Pending"
    PROCESSED = "processed", "Processed"
    IGNORED = "ignored", "Ignored"
    FAILED = "failed", "Failed"


class AuditKind(models.TextChoices):
    """What an audit run compared."""

    CUSTOMER_CREDIT = "customer_credit", "Customer Credit"
    ACCOUNT_BALANCE = "account_balance", "Account Balance"


class AuditRunStatus(models.TextChoices):
    """Status of an apply-fix audit run."""

    RUNNING = "running", "Running"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
