"""
ProviderWebhookEvent model for payment-provider webhook tracking.

Every delivery from the instant-payment provider is stored before it is
handled. The journal gives operators a trace of what the provider sent and
what the system did with it; it is not what makes reconciliation
idempotent (that is the obligation's terminal state).

Usage:
    from financial.models import ProviderWebhookEvent
    from financial.state_machines import WebhookEventStatus

    event, created = ProviderWebhookEvent.objects.get_or_create(
        event_id="evt_123",
        defaults={"event_type": "invoice.paid", "payload": payload},
    )
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from financial.state_machines import WebhookEventStatus


class ProviderWebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    A webhook delivery from the payment provider.

    Fields:
        event_id: Provider event id, or a hash of the body when the payload
            carries none. Redeliveries of the same event share it.
        event_type: Provider event type (e.g. "invoice.paid")
        provider_reference: Charge reference the event is about
        provider_status: Raw status string as sent by the provider
        payload: Full JSON body
        status: Processing status
        outcome: Reconciliation outcome for the last attempt
        attempts: Number of deliveries handled
        error_message: Error details if the last attempt failed
    """

    # ==========================================================================
    # Event Identification
    # ==========================================================================

    event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Provider event id (or body hash) used to group redeliveries",
    )
    event_type = models.CharField(
        max_length=100,
        blank=True,
        default="",
        db_index=True,
        help_text="Provider event type",
    )
    provider_reference = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Provider charge reference (matches Boleto.pix_payment_id)",
    )
    provider_status = models.CharField(
        max_length=50,
        blank=True,
        default="",
        help_text="Raw provider status",
    )

    # ==========================================================================
    # Payload
    # ==========================================================================

    payload = models.JSONField(
        help_text="Full webhook body (JSON)",
    )

    # ==========================================================================
    # Processing Status
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
        help_text="Current processing status",
    )
    outcome = models.CharField(
        max_length=30,
        blank=True,
        default="",
        help_text="Reconciliation outcome of the last attempt",
    )
    attempts = models.PositiveIntegerField(
        default=0,
        help_text="Number of deliveries handled",
    )
    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the event was last handled successfully",
    )
    error_message = models.TextField(
        blank=True,
        default="",
        help_text="Error details if the last attempt failed",
    )

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"ProviderWebhookEvent({self.event_id}, {self.event_type}, {self.status})"

    @classmethod
    def fit(cls, field_name: str, value: str) -> str:
        """Clip a provider-supplied string to its column width."""
        return value[: cls._meta.get_field(field_name).max_length]
