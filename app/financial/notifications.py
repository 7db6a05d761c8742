"""
Payment notifications.

Delivery (SMS, WhatsApp, e-mail) is an external collaborator. This module
only decides *when* a notification goes out: after the unit of work that
marked an obligation as paid has committed, never inside its locks.

Usage:
    from financial.notifications import queue_paid_notification

    with transaction.atomic():
        boleto.mark_paid(...)
        boleto.save()
        queue_paid_notification(boleto)   # runs after COMMIT, never on rollback

The actual sender is configured by FINANCIAL_NOTIFICATION_SENDER (dotted
path to a class implementing NotificationSender).
"""

from __future__ import annotations

import logging
from functools import partial
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from django.conf import settings
from django.db import transaction
from django.utils.module_loading import import_string

if TYPE_CHECKING:
    from financial.models import Boleto, Receivable


logger = logging.getLogger(__name__)


@runtime_checkable
class NotificationSender(Protocol):
    """Delivers a "payment received" message for an obligation."""

    def send_payment_confirmation(self, obligation: Boleto | Receivable) -> None: ...


class LoggingNotificationSender:
    """Default sender: writes the notification to the log."""

    def send_payment_confirmation(self, obligation: Boleto | Receivable) -> None:
        logger.info(
            f"Payment confirmation for {obligation}",
            extra={
                "obligation_id": str(obligation.id),
                "customer_id": obligation.customer_id,
                "amount": obligation.amount_cents,
            },
        )


def get_notification_sender() -> NotificationSender:
    """Instantiate the sender named by FINANCIAL_NOTIFICATION_SENDER."""
    sender_class = import_string(settings.FINANCIAL_NOTIFICATION_SENDER)
    return sender_class()


def obligation_kind(obligation: Boleto | Receivable) -> str:
    return obligation._meta.model_name


def queue_paid_notification(obligation: Boleto | Receivable) -> None:
    """
    Schedule the paid notification for after the current transaction commits.

    Outside a transaction the callback runs immediately. A failure to
    enqueue is logged and does not affect the committed payment.
    """
    from financial.tasks import notify_obligation_paid

    transaction.on_commit(
        partial(
            notify_obligation_paid.delay,
            obligation_kind(obligation),
            str(obligation.id),
        ),
        robust=True,
    )
