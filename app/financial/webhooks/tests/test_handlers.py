"""
Tests for provider event routing.
"""

from unittest.mock import patch

import pytest

from financial.services import ReconciliationOutcome
from financial.state_machines import ObligationStatus, ProviderPaymentStatus
from financial.tests.factories import BoletoFactory
from financial.webhooks.handlers import (
    PROVIDER_HANDLERS,
    dispatch_provider_event,
    handle_invoice_canceled,
    handle_invoice_paid,
    handle_payment_event,
    register_handler,
)
from financial.webhooks.parsing import ProviderEvent


def make_event(event_type="", reference="pix_ref_1", raw_status=""):
    return ProviderEvent(
        event_id="evt_1",
        event_type=event_type,
        reference=reference,
        raw_status=raw_status,
    )


@pytest.fixture
def boleto(customer):
    return BoletoFactory(customer=customer, pix_payment_id="pix_ref_1")


class TestRegistry:
    def test_known_types_are_registered(self):
        assert PROVIDER_HANDLERS["invoice.paid"] is handle_invoice_paid
        assert PROVIDER_HANDLERS["payment.paid"] is handle_invoice_paid
        assert PROVIDER_HANDLERS["invoice.canceled"] is handle_invoice_canceled
        assert PROVIDER_HANDLERS["invoice.cancelled"] is handle_invoice_canceled

    def test_register_handler_adds_every_type(self):
        with patch.dict(PROVIDER_HANDLERS, clear=False):

            @register_handler("custom.one", "custom.two")
            def handler(event):
                return None

            assert PROVIDER_HANDLERS["custom.one"] is handler
            assert PROVIDER_HANDLERS["custom.two"] is handler

        assert "custom.one" not in PROVIDER_HANDLERS


class TestDispatch:
    """Tests for dispatch_provider_event()."""

    def test_paid_event_settles_boleto(self, boleto):
        result = dispatch_provider_event(make_event("invoice.paid"))

        boleto.refresh_from_db()
        assert result.success
        assert result.data.outcome == ReconciliationOutcome.APPLIED_PAID
        assert boleto.status == ObligationStatus.PAID

    def test_canceled_event_cancels_boleto(self, boleto):
        result = dispatch_provider_event(make_event("invoice.canceled"))

        boleto.refresh_from_db()
        assert result.data.outcome == ReconciliationOutcome.APPLIED_CANCELLED
        assert boleto.status == ObligationStatus.CANCELLED

    def test_body_status_wins_over_event_type(self, boleto):
        """A paid-typed event that reports CANCELLED cancels the charge."""
        dispatch_provider_event(make_event("invoice.paid", raw_status="CANCELLED"))

        boleto.refresh_from_db()
        assert boleto.status == ObligationStatus.CANCELLED

    def test_unregistered_type_uses_body_status(self, boleto):
        result = dispatch_provider_event(make_event("charge.updated", raw_status="PAID"))

        assert result.data.outcome == ReconciliationOutcome.APPLIED_PAID

    def test_unregistered_type_without_status_is_ignored(self, boleto):
        result = dispatch_provider_event(make_event("charge.updated"))

        boleto.refresh_from_db()
        assert result.data.outcome == ReconciliationOutcome.IGNORED_STATUS
        assert boleto.status == ObligationStatus.PENDING

    def test_event_without_reference_is_skipped(self, db):
        result = dispatch_provider_event(make_event("invoice.paid", reference=""))

        assert result.success
        assert result.data is None


class TestHandlers:
    def test_handle_payment_event_passes_normalized_status(self):
        with patch("financial.webhooks.handlers.PaymentReconciler.reconcile") as mock_reconcile:
            handle_payment_event(make_event(raw_status="declined"))

        mock_reconcile.assert_called_once_with("pix_ref_1", ProviderPaymentStatus.REJECTED)

    def test_errors_propagate(self):
        with patch(
            "financial.webhooks.handlers.PaymentReconciler.reconcile",
            side_effect=RuntimeError("boom"),
        ):
            with pytest.raises(RuntimeError):
                handle_invoice_paid(make_event("invoice.paid"))
