"""
Tests for the payment-provider webhook endpoint.
"""

import json
from unittest.mock import patch

import pytest
from django.urls import reverse

from financial.models import ProviderWebhookEvent
from financial.money import Money
from financial.state_machines import ObligationStatus, WebhookEventStatus
from financial.tests.factories import BoletoFactory, ReceivableFactory

WEBHOOK_URL = reverse("financial:payment_provider_webhook")


def paid_body(reference="pix_ref_1", event_id="evt_1", status="PAID"):
    return {
        "event_id": event_id,
        "event_type": "invoice.paid",
        "invoice_id": reference,
        "status": status,
    }


@pytest.fixture
def post_webhook(client):
    def _post(payload, **kwargs):
        body = payload if isinstance(payload, (bytes, str)) else json.dumps(payload)
        return client.post(WEBHOOK_URL, data=body, content_type="application/json", **kwargs)

    return _post


@pytest.fixture
def boleto(customer, sync_credit):
    """Overdue boleto 300 plus an independent receivable 200: credit 500."""
    boleto = BoletoFactory(
        customer=customer,
        amount_cents=30000,
        pix_payment_id="pix_ref_1",
        status=ObligationStatus.OVERDUE,
    )
    ReceivableFactory(customer=customer, amount_cents=20000)
    sync_credit(customer)
    return boleto


class TestPaymentProviderWebhook:
    """Tests for payment_provider_webhook."""

    def test_paid_event_settles_boleto(self, post_webhook, boleto, customer):
        response = post_webhook(paid_body())

        boleto.refresh_from_db()
        customer.refresh_from_db()
        data = response.json()
        assert response.status_code == 200
        assert data["status"] == "processed"
        assert data["outcome"] == "applied_paid"
        assert data["result"]["available_credit"] == "800.00"
        assert boleto.status == ObligationStatus.PAID
        assert customer.available_credit == Money(cents=80000)

    def test_journals_the_delivery(self, post_webhook, boleto):
        post_webhook(paid_body())

        event = ProviderWebhookEvent.objects.get(event_id="evt_1")
        assert event.status == WebhookEventStatus.PROCESSED
        assert event.provider_reference == "pix_ref_1"
        assert event.provider_status == "PAID"
        assert event.attempts == 1
        assert event.processed_at is not None

    def test_duplicate_delivery_is_acknowledged(self, post_webhook, boleto, customer):
        post_webhook(paid_body())

        response = post_webhook(paid_body())

        customer.refresh_from_db()
        assert response.status_code == 200
        assert response.json() == {"status": "already_processed"}
        assert customer.available_credit == Money(cents=80000)
        assert ProviderWebhookEvent.objects.count() == 1

    def test_new_event_for_settled_boleto_is_ignored(self, post_webhook, boleto):
        """A different event id for the same charge finds the boleto terminal."""
        post_webhook(paid_body())

        response = post_webhook(paid_body(event_id="evt_2"))

        assert response.status_code == 200
        assert response.json()["outcome"] == "already_terminal"
        assert ProviderWebhookEvent.objects.get(event_id="evt_2").status == WebhookEventStatus.IGNORED

    def test_unknown_reference_is_a_200_no_op(self, post_webhook, boleto):
        response = post_webhook(paid_body(reference="pix_missing"))

        boleto.refresh_from_db()
        assert response.status_code == 200
        assert response.json()["outcome"] == "unknown_reference"
        assert boleto.status == ObligationStatus.OVERDUE

    def test_body_without_reference_is_skipped(self, post_webhook, db):
        response = post_webhook({"event_id": "evt_ping", "type": "ping"})

        assert response.status_code == 200
        assert response.json() == {"status": "ignored", "outcome": "skipped"}

    def test_oversized_status_and_type_are_journaled_clipped(self, post_webhook, boleto):
        """Unrecognised values still get a 200 so the provider stops retrying."""
        response = post_webhook(
            {
                "event_id": "evt_long",
                "event_type": "invoice." + "t" * 150,
                "invoice_id": "pix_ref_1",
                "status": "S" * 80,
            }
        )

        journal = ProviderWebhookEvent.objects.get(event_id="evt_long")
        boleto.refresh_from_db()
        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
        assert len(journal.event_type) == 100
        assert journal.provider_status == "S" * 50
        assert boleto.status == ObligationStatus.OVERDUE

    def test_cancel_event(self, post_webhook, boleto, customer):
        response = post_webhook(
            {"id": "pix_ref_1", "type": "invoice.canceled", "data": {"status": "CANCELED"}}
        )

        boleto.refresh_from_db()
        customer.refresh_from_db()
        assert response.json()["outcome"] == "applied_cancelled"
        assert boleto.status == ObligationStatus.CANCELLED
        assert customer.available_credit == Money(cents=80000)

    def test_invalid_json_returns_400(self, post_webhook, db):
        response = post_webhook(b"{not json")

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_WEBHOOK_PAYLOAD"
        assert not ProviderWebhookEvent.objects.exists()

    def test_internal_failure_returns_500_and_marks_failed(self, post_webhook, boleto):
        with patch(
            "financial.webhooks.views.dispatch_provider_event",
            side_effect=RuntimeError("database went away"),
        ):
            response = post_webhook(paid_body())

        event = ProviderWebhookEvent.objects.get(event_id="evt_1")
        boleto.refresh_from_db()
        assert response.status_code == 500
        assert response.json() == {"error": "Internal error"}
        assert event.status == WebhookEventStatus.FAILED
        assert "RuntimeError" in event.error_message
        assert boleto.status == ObligationStatus.OVERDUE

    def test_redelivery_after_failure_succeeds(self, post_webhook, boleto):
        with patch(
            "financial.webhooks.views.dispatch_provider_event",
            side_effect=RuntimeError("database went away"),
        ):
            post_webhook(paid_body())

        response = post_webhook(paid_body())

        event = ProviderWebhookEvent.objects.get(event_id="evt_1")
        assert response.status_code == 200
        assert event.status == WebhookEventStatus.PROCESSED
        assert event.attempts == 2
        assert event.error_message == ""

    def test_get_not_allowed(self, client, db):
        response = client.get(WEBHOOK_URL)

        assert response.status_code == 405


class TestWebhookSecret:
    """Tests for the shared-secret check."""

    @pytest.fixture(autouse=True)
    def webhook_secret(self, settings):
        settings.PAYMENT_PROVIDER_WEBHOOK_SECRET = "s3cret"

    def test_missing_secret_returns_401(self, post_webhook, boleto):
        response = post_webhook(paid_body())

        boleto.refresh_from_db()
        assert response.status_code == 401
        assert boleto.status == ObligationStatus.OVERDUE
        assert not ProviderWebhookEvent.objects.exists()

    def test_wrong_secret_returns_401(self, post_webhook, boleto):
        response = post_webhook(paid_body(), headers={"X-Webhook-Secret": "nope"})

        assert response.status_code == 401

    def test_correct_secret_is_accepted(self, post_webhook, boleto):
        response = post_webhook(paid_body(), headers={"X-Webhook-Secret": "s3cret"})

        assert response.status_code == 200
        assert response.json()["outcome"] == "applied_paid"
