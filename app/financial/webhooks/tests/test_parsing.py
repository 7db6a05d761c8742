"""
Tests for payment-provider payload parsing.
"""

import hashlib
import json

import pytest

from financial.state_machines import ProviderPaymentStatus
from financial.webhooks.parsing import (
    ProviderEvent,
    WebhookPayloadError,
    normalize_provider_status,
    parse_provider_payload,
)


def encode(payload):
    return json.dumps(payload).encode()


class TestParseProviderPayload:
    """Tests for parse_provider_payload() across the known body shapes."""

    def test_flat_shape(self):
        event = parse_provider_payload(
            encode(
                {
                    "event_id": "evt_1",
                    "event_type": "invoice.paid",
                    "invoice_id": "pix_ref_1",
                    "status": "PAID",
                }
            )
        )

        assert event == ProviderEvent(
            event_id="evt_1",
            event_type="invoice.paid",
            reference="pix_ref_1",
            raw_status="PAID",
        )
        assert event.status == ProviderPaymentStatus.APPROVED

    def test_data_envelope_shape(self):
        event = parse_provider_payload(
            encode({"id": "pix_ref_2", "type": "invoice.canceled", "data": {"status": "CANCELED"}})
        )

        assert event.reference == "pix_ref_2"
        assert event.event_type == "invoice.canceled"
        assert event.status == ProviderPaymentStatus.CANCELLED

    def test_nested_invoice_shape(self):
        event = parse_provider_payload(
            encode({"event": "invoice.paid", "invoice": {"id": "pix_ref_3", "status": "approved"}})
        )

        assert event.reference == "pix_ref_3"
        assert event.raw_status == "approved"
        assert event.status == ProviderPaymentStatus.APPROVED

    def test_missing_event_id_falls_back_to_body_hash(self):
        body = encode({"invoice_id": "pix_ref_1", "status": "PAID"})

        event = parse_provider_payload(body)

        assert event.event_id == "sha256:" + hashlib.sha256(body).hexdigest()
        assert parse_provider_payload(body).event_id == event.event_id

    def test_overlong_event_id_is_replaced_by_its_hash(self):
        long_id = "evt_" + "x" * 400

        event = parse_provider_payload(encode({"event_id": long_id, "invoice_id": "pix_ref_1"}))

        assert event.event_id == "sha256:" + hashlib.sha256(long_id.encode()).hexdigest()
        assert len(event.event_id) <= 255

    def test_body_without_reference(self):
        event = parse_provider_payload(encode({"type": "ping"}))

        assert event.reference == ""
        assert event.event_type == "ping"
        assert event.status == ProviderPaymentStatus.OTHER

    def test_payload_is_kept(self):
        event = parse_provider_payload(encode({"invoice_id": "x", "extra": 1}))

        assert event.payload["extra"] == 1

    @pytest.mark.parametrize("body", [b"", b"not json", b"\xff\xfe"])
    def test_invalid_json_raises(self, body):
        with pytest.raises(WebhookPayloadError) as exc_info:
            parse_provider_payload(body)

        assert exc_info.value.error_code == "INVALID_WEBHOOK_PAYLOAD"

    @pytest.mark.parametrize("body", [b"[]", b"42", b'"paid"'])
    def test_non_object_raises(self, body):
        with pytest.raises(WebhookPayloadError):
            parse_provider_payload(body)


class TestStatusNormalization:
    """Tests for normalize_provider_status() and ProviderEvent.status."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("PAID", ProviderPaymentStatus.APPROVED),
            ("approved", ProviderPaymentStatus.APPROVED),
            (" Paid ", ProviderPaymentStatus.APPROVED),
            ("CANCELLED", ProviderPaymentStatus.CANCELLED),
            ("canceled", ProviderPaymentStatus.CANCELLED),
            ("REJECTED", ProviderPaymentStatus.REJECTED),
            ("FAILED", ProviderPaymentStatus.REJECTED),
            ("DECLINED", ProviderPaymentStatus.REJECTED),
            ("IN_PROCESS", ProviderPaymentStatus.OTHER),
            ("", ProviderPaymentStatus.OTHER),
            (None, ProviderPaymentStatus.OTHER),
        ],
    )
    def test_aliases(self, raw, expected):
        assert normalize_provider_status(raw) == expected

    def test_bare_paid_event_counts_as_approved(self):
        event = ProviderEvent(event_id="e", event_type="invoice.paid", reference="r", raw_status="")

        assert event.status == ProviderPaymentStatus.APPROVED

    def test_unknown_status_on_paid_event_stays_other(self):
        """Only a missing status is inferred from the event type."""
        event = ProviderEvent(
            event_id="e", event_type="invoice.paid", reference="r", raw_status="IN_PROCESS"
        )

        assert event.status == ProviderPaymentStatus.OTHER
