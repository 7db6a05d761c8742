"""
State machine enums for the financial app.

Usage:
    from financial.state_machines import ObligationStatus

    Boleto.objects.filter(status__in=ObligationStatus.active_values())
"""

from financial.state_machines.states import (
    AuditKind,
    AuditRunStatus,
    ObligationStatus,
    ProviderPaymentStatus,
    WebhookEventStatus,
)

__all__ = [
    "AuditKind",
    "AuditRunStatus",
    "ObligationStatus",
    "ProviderPaymentStatus",
    "WebhookEventStatus",
]
