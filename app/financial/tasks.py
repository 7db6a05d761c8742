"""
Celery tasks for the financial app.

Tasks:
    notify_obligation_paid: Deliver a "payment received" notification
    mark_overdue_obligations: Daily PENDING -> OVERDUE sweep

Both are externally triggered: notify_obligation_paid is queued after the
commit of a payment, mark_overdue_obligations is scheduled through
django-celery-beat (or run by the management command of the same name).
"""

from __future__ import annotations

import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    autoretry_for=(ConnectionError, TimeoutError),
    retry_backoff=True,
    retry_backoff_max=600,
    max_retries=5,
)
def notify_obligation_paid(self, obligation_type: str, obligation_id: str) -> bool:
    """
    Send the payment confirmation for a boleto or receivable.

    Args:
        obligation_type: "boleto" or "receivable"
        obligation_id: UUID of the obligation

    Returns:
        True if a notification was sent, False if the obligation is gone
    """
    from financial.models import Boleto, Receivable
    from financial.notifications import get_notification_sender

    model = {"boleto": Boleto, "receivable": Receivable}.get(obligation_type)
    if model is None:
        logger.error(f"Unknown obligation type for notification: {obligation_type}")
        return False

    obligation = model.objects.select_related("customer").filter(pk=obligation_id).first()
    if obligation is None:
        logger.warning(
            f"{obligation_type} {obligation_id} not found for notification",
            extra={"obligation_id": obligation_id},
        )
        return False

    get_notification_sender().send_payment_confirmation(obligation)
    return True


@shared_task
def mark_overdue_obligations(as_of: str | None = None) -> dict:
    """
    Flag PENDING obligations whose due date has passed as OVERDUE.

    Args:
        as_of: ISO date to sweep against (default: local business date)

    Returns:
        Counts of boletos and receivables flagged
    """
    import datetime

    from financial.services import ObligationService

    date = datetime.date.fromisoformat(as_of) if as_of else None
    result = ObligationService.mark_overdue(as_of=date)

    logger.info(
        f"Overdue sweep flagged {result.total} obligations",
        extra={"as_of": result.as_of.isoformat(), "flagged": result.total},
    )
    return result.to_dict()
