"""
Payment-provider webhook payload parsing.

The provider has emitted three body shapes over time:

    1. {"event_type": "invoice.paid", "invoice_id": "inv_1", "status": "PAID"}
    2. {"id": "inv_1", "type": "invoice.paid", "data": {"status": "PAID"}}
    3. {"event": "invoice.paid", "invoice": {"id": "inv_1", "status": "PAID"}}

All three are reduced to a ProviderEvent. Raw statuses are normalized to
ProviderPaymentStatus; anything unrecognised becomes OTHER, which the
reconciler treats as a no-op.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from core.exceptions import ValidationError
from financial.state_machines import ProviderPaymentStatus

if TYPE_CHECKING:
    from typing import Any


STATUS_ALIASES: dict[str, str] = {
    "PAID": ProviderPaymentStatus.APPROVED,
    "APPROVED": ProviderPaymentStatus.APPROVED,
    "CANCELLED": ProviderPaymentStatus.CANCELLED,
    "CANCELED": ProviderPaymentStatus.CANCELLED,
    "REJECTED": ProviderPaymentStatus.REJECTED,
    "FAILED": ProviderPaymentStatus.REJECTED,
    "DECLINED": ProviderPaymentStatus.REJECTED,
}

# Longer provider event ids are replaced by their hash
MAX_EVENT_ID_LENGTH = 255


class WebhookPayloadError(ValidationError):
    """Raised when a webhook body is not a JSON object."""

    default_error_code: str = "INVALID_WEBHOOK_PAYLOAD"


def normalize_provider_status(raw_status: str | None) -> str:
    """
    Map a raw provider status onto ProviderPaymentStatus.

    >>> normalize_provider_status("paid")
    'approved'
    >>> normalize_provider_status("IN_PROCESS")
    'other'
    """
    if not raw_status:
        return ProviderPaymentStatus.OTHER
    return STATUS_ALIASES.get(str(raw_status).strip().upper(), ProviderPaymentStatus.OTHER)


@dataclass(frozen=True)
class ProviderEvent:
    """
    One provider delivery reduced to what reconciliation needs.

    Attributes:
        event_id: Provider event id, or a sha256 of the body when absent
            (of the id itself when it is too long to journal)
        event_type: Provider event type ("" when absent)
        reference: Charge reference (Boleto.pix_payment_id)
        raw_status: Status string as sent
        payload: Decoded body
    """

    event_id: str
    event_type: str
    reference: str
    raw_status: str
    payload: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def status(self) -> str:
        """Normalized status; a bare "*.paid" event with no status counts as approved."""
        status = normalize_provider_status(self.raw_status)
        if status == ProviderPaymentStatus.OTHER and not self.raw_status:
            if self.event_type.lower().endswith(".paid"):
                return ProviderPaymentStatus.APPROVED
        return status


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def parse_provider_payload(body: bytes) -> ProviderEvent:
    """
    Decode a webhook body into a ProviderEvent.

    Missing fields become empty strings; deciding whether an event is
    actionable is left to the handlers.

    Raises:
        WebhookPayloadError: If the body is not a JSON object
    """
    try:
        payload = json.loads(body or b"")
    except (ValueError, UnicodeDecodeError) as exc:
        raise WebhookPayloadError("Webhook body is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise WebhookPayloadError("Webhook body must be a JSON object")

    event_id = _text(payload.get("event_id"))
    if payload.get("invoice_id"):
        event_type = _text(payload.get("event_type"))
        reference = _text(payload.get("invoice_id"))
        raw_status = _text(payload.get("status"))
    elif payload.get("id") and isinstance(payload.get("data"), dict):
        event_type = _text(payload.get("type"))
        reference = _text(payload.get("id"))
        raw_status = _text(payload["data"].get("status"))
    elif isinstance(payload.get("invoice"), dict):
        event_type = _text(payload.get("event"))
        reference = _text(payload["invoice"].get("id"))
        raw_status = _text(payload["invoice"].get("status"))
    else:
        event_type = _text(payload.get("event_type") or payload.get("type") or payload.get("event"))
        reference = ""
        raw_status = _text(payload.get("status"))

    if not event_id:
        event_id = "sha256:" + hashlib.sha256(body).hexdigest()
    elif len(event_id) > MAX_EVENT_ID_LENGTH:
        event_id = "sha256:" + hashlib.sha256(event_id.encode()).hexdigest()

    return ProviderEvent(
        event_id=event_id,
        event_type=event_type,
        reference=reference,
        raw_status=raw_status,
        payload=payload,
    )
