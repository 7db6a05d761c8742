"""
External payment reconciliation.

PaymentReconciler applies a payment-provider confirmation to internal
obligation state. It is the only automated writer of "this boleto is now
paid".

Flow for reconcile(reference, status):
    1. Look up the boleto by pix_payment_id. Unknown → no-op.
    2. Lock the customer, then the boleto. Already PAID/CANCELLED → no-op.
    3. approved: boleto PAID, order PAID, linked receivables PAID,
       available credit recomputed, notification queued after commit.
    4. rejected/cancelled: boleto CANCELLED, available credit re-derived.
    5. Any other status → no-op.

Steps 3 and 4 run in one transaction: a failure partway rolls everything
back, so a boleto can never be PAID while its receivables are PENDING.

No bank posting happens here. Crediting a bank account for a provider
payment is a separate manual step (ObligationService.mark_paid with a
bank account, or BankLedgerService.post).

Usage:
    from financial.services import PaymentReconciler

    result = PaymentReconciler.reconcile("pix_abc123", ProviderPaymentStatus.APPROVED)
    if result.applied:
        ...
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.utils import timezone

from core.services import BaseService
from financial.locks import lock_customer, retry_on_conflict
from financial.models import Boleto
from financial.notifications import queue_paid_notification
from financial.services.credit_service import CreditService
from financial.services.obligation_service import ObligationService
from financial.state_machines import ProviderPaymentStatus
from sales.models import PaymentMethod

if TYPE_CHECKING:
    from typing import Any

    from financial.money import Money


class ReconciliationOutcome(str, enum.Enum):
    """What reconcile() did with an event."""

    APPLIED_PAID = "applied_paid"
    APPLIED_CANCELLED = "applied_cancelled"
    UNKNOWN_REFERENCE = "unknown_reference"
    ALREADY_TERMINAL = "already_terminal"
    IGNORED_STATUS = "ignored_status"


@dataclass
class ReconciliationResult:
    """
    Result of PaymentReconciler.reconcile().

    Attributes:
        outcome: What happened
        reference: Provider payment reference from the event
        provider_status: Normalized provider status
        boleto_id: Matched boleto, if any
        customer_id: Owner of the matched boleto, if any
        status: Boleto status after reconciliation
        settled_receivable_count: Linked receivables closed with the boleto
        available_credit: Customer's available credit after a change
    """

    outcome: ReconciliationOutcome
    reference: str
    provider_status: str
    boleto_id: Any = None
    customer_id: Any = None
    status: str | None = None
    settled_receivable_count: int = 0
    available_credit: Money | None = None

    @property
    def applied(self) -> bool:
        """True when obligation state changed."""
        return self.outcome in (
            ReconciliationOutcome.APPLIED_PAID,
            ReconciliationOutcome.APPLIED_CANCELLED,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "reference": self.reference,
            "provider_status": self.provider_status,
            "boleto_id": str(self.boleto_id) if self.boleto_id else None,
            "status": self.status,
            "settled_receivables": self.settled_receivable_count,
            "available_credit": (
                str(self.available_credit.amount) if self.available_credit is not None else None
            ),
        }


class PaymentReconciler(BaseService):
    """
    Applies provider payment confirmations to boletos.

    All methods are classmethods - no instance state is maintained.
    """

    @classmethod
    @retry_on_conflict
    def reconcile(cls, reference: str, provider_status: str) -> ReconciliationResult:
        """
        Apply a provider confirmation event, idempotently.

        Redelivering the same event is a no-op: the boleto is already
        terminal, so no credit change or notification happens twice.

        Args:
            reference: Provider payment reference (Boleto.pix_payment_id)
            provider_status: Normalized ProviderPaymentStatus value

        Returns:
            ReconciliationResult describing the outcome. Unknown references
            and already-terminal boletos are results, not errors.
        """
        logger = cls.get_logger()
        result = ReconciliationResult(
            outcome=ReconciliationOutcome.IGNORED_STATUS,
            reference=reference,
            provider_status=provider_status,
        )

        boleto = Boleto.objects.filter(pix_payment_id=reference).first() if reference else None
        if boleto is None:
            result.outcome = ReconciliationOutcome.UNKNOWN_REFERENCE
            logger.info(
                f"No boleto for provider reference {reference}; ignoring",
                extra={"provider_reference": reference, "provider_status": provider_status},
            )
            return result

        result.boleto_id = boleto.pk
        result.customer_id = boleto.customer_id

        if provider_status not in (
            ProviderPaymentStatus.APPROVED,
            ProviderPaymentStatus.REJECTED,
            ProviderPaymentStatus.CANCELLED,
        ):
            result.status = boleto.status
            logger.info(
                f"Provider status {provider_status} for boleto {boleto.pk} needs no action",
                extra={"provider_reference": reference, "boleto_id": str(boleto.pk)},
            )
            return result

        with cls.atomic():
            lock_customer(boleto.customer_id)
            boleto = Boleto.objects.select_for_update().get(pk=boleto.pk)

            if boleto.is_terminal:
                result.outcome = ReconciliationOutcome.ALREADY_TERMINAL
                result.status = boleto.status
                logger.info(
                    f"Boleto {boleto.pk} already {boleto.status}; redelivery ignored",
                    extra={
                        "provider_reference": reference,
                        "boleto_id": str(boleto.pk),
                        "provider_status": provider_status,
                    },
                )
                return result

            if provider_status == ProviderPaymentStatus.APPROVED:
                settled = ObligationService.settle_boleto(
                    boleto,
                    timezone.localdate(),
                    payment_method=PaymentMethod.PIX,
                )
                result.outcome = ReconciliationOutcome.APPLIED_PAID
                result.settled_receivable_count = len(settled)
                result.available_credit = CreditService.apply_and_persist(boleto.customer_id)
                queue_paid_notification(boleto)
            else:
                ObligationService.void_obligation(boleto)
                result.outcome = ReconciliationOutcome.APPLIED_CANCELLED
                result.available_credit = CreditService.apply_and_persist(boleto.customer_id)

            result.status = boleto.status

        logger.info(
            f"Reconciled boleto {boleto.pk}: {result.outcome.value}",
            extra={
                "provider_reference": reference,
                "boleto_id": str(boleto.pk),
                "customer_id": boleto.customer_id,
                "settled_receivables": result.settled_receivable_count,
            },
        )
        return result
