"""
Payment-provider webhook handlers.

Event types are routed through a handler registry. Events without a
registered handler fall back to handle_payment_event, which reconciles
any delivery that carries a charge reference.

Usage:
    from financial.webhooks.handlers import dispatch_provider_event, register_handler

    @register_handler("invoice.refunded")
    def handle_invoice_refunded(event: ProviderEvent) -> ServiceResult:
        ...

    result = dispatch_provider_event(event)
    result.data  # ReconciliationResult, or None for a skipped event
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from core.services import ServiceResult
from financial.services import PaymentReconciler
from financial.state_machines import ProviderPaymentStatus

if TYPE_CHECKING:
    from financial.webhooks.parsing import ProviderEvent


logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


PROVIDER_HANDLERS: dict[str, Callable[[ProviderEvent], ServiceResult]] = {}


def register_handler(*event_types: str) -> Callable:
    """
    Decorator to register a handler for one or more provider event types.

    Usage:
        @register_handler("invoice.canceled", "invoice.cancelled")
        def handle_invoice_canceled(event: ProviderEvent) -> ServiceResult:
            ...
    """

    def decorator(func: Callable[[ProviderEvent], ServiceResult]) -> Callable:
        for event_type in event_types:
            PROVIDER_HANDLERS[event_type] = func
        return func

    return decorator


def dispatch_provider_event(event: ProviderEvent) -> ServiceResult:
    """
    Route an event to its handler.

    Unexpected errors propagate so the delivery is answered with a server
    error and the provider retries.
    """
    handler = PROVIDER_HANDLERS.get(event.event_type, handle_payment_event)
    logger.info(
        f"Dispatching provider event {event.event_type or '<untyped>'} to {handler.__name__}",
        extra={"event_id": event.event_id, "provider_reference": event.reference},
    )
    return handler(event)


def _reconcile(event: ProviderEvent, status: str) -> ServiceResult:
    if not event.reference:
        logger.info(
            "Provider event without a charge reference; ignoring",
            extra={"event_id": event.event_id, "event_type": event.event_type},
        )
        return ServiceResult.success(None)

    result = PaymentReconciler.reconcile(event.reference, status)
    return ServiceResult.success(result)


# =============================================================================
# Handlers
# =============================================================================


def handle_payment_event(event: ProviderEvent) -> ServiceResult:
    """Reconcile any event using the status carried in its body."""
    return _reconcile(event, event.status)


@register_handler("invoice.paid", "payment.paid")
def handle_invoice_paid(event: ProviderEvent) -> ServiceResult:
    """
    Handle a paid charge.

    A body status that disagrees with the event type (for instance a
    "*.paid" event reporting CANCELLED) wins, since the status describes
    the charge itself.
    """
    status = event.status
    if status == ProviderPaymentStatus.OTHER:
        status = ProviderPaymentStatus.APPROVED
    return _reconcile(event, status)


@register_handler("invoice.canceled", "invoice.cancelled", "payment.canceled")
def handle_invoice_canceled(event: ProviderEvent) -> ServiceResult:
    """Handle a charge cancelled on the provider side."""
    status = event.status
    if status == ProviderPaymentStatus.OTHER:
        status = ProviderPaymentStatus.CANCELLED
    return _reconcile(event, status)
