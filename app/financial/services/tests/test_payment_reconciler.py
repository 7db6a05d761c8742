"""
Tests for PaymentReconciler.

Covers the approved and cancelled paths, idempotent redelivery, unknown
references and all-or-nothing rollback.
"""

from unittest.mock import patch

import pytest

from financial.money import Money
from financial.services import ObligationAggregator, PaymentReconciler, ReconciliationOutcome
from financial.state_machines import ObligationStatus, ProviderPaymentStatus
from financial.tasks import notify_obligation_paid
from financial.tests.factories import BoletoFactory, ReceivableFactory
from sales.models import Order, OrderPaymentStatus
from sales.tests.factories import OrderFactory


@pytest.fixture
def overdue_boleto(customer, sync_credit):
    """
    Limit 1000, overdue boleto 300 (pix_ref_1), independent receivable 200.

    Available credit is 500.
    """
    order = OrderFactory(customer=customer, total_cents=30000)
    boleto = BoletoFactory(
        customer=customer,
        order=order,
        amount_cents=30000,
        pix_payment_id="pix_ref_1",
        status=ObligationStatus.OVERDUE,
    )
    ReceivableFactory(customer=customer, amount_cents=20000)
    assert sync_credit(customer) == Money(cents=50000)
    return boleto


class TestApproved:
    """Tests for approved provider confirmations."""

    def test_marks_boleto_paid_and_recomputes_credit(self, customer, overdue_boleto):
        """Available credit goes from 500 to 800."""
        result = PaymentReconciler.reconcile("pix_ref_1", ProviderPaymentStatus.APPROVED)

        overdue_boleto.refresh_from_db()
        customer.refresh_from_db()
        assert result.outcome == ReconciliationOutcome.APPLIED_PAID
        assert result.applied
        assert overdue_boleto.status == ObligationStatus.PAID
        assert overdue_boleto.payment_method == "pix"
        assert overdue_boleto.paid_date is not None
        assert customer.available_credit == Money(cents=80000)
        assert result.available_credit == Money(cents=80000)

    def test_marks_order_paid(self, overdue_boleto):
        PaymentReconciler.reconcile("pix_ref_1", ProviderPaymentStatus.APPROVED)

        order = overdue_boleto.order
        order.refresh_from_db()
        assert order.payment_status == OrderPaymentStatus.PAID
        assert order.paid_at is not None

    def test_closes_linked_receivables(self, customer, overdue_boleto):
        linked = ReceivableFactory(customer=customer, amount_cents=30000, boleto=overdue_boleto)

        result = PaymentReconciler.reconcile("pix_ref_1", ProviderPaymentStatus.APPROVED)

        linked.refresh_from_db()
        assert linked.status == ObligationStatus.PAID
        assert result.settled_receivable_count == 1

    def test_redelivery_is_a_no_op_with_one_notification(
        self, customer, overdue_boleto, django_capture_on_commit_callbacks
    ):
        with patch.object(notify_obligation_paid, "delay") as mock_delay:
            with django_capture_on_commit_callbacks(execute=True):
                first = PaymentReconciler.reconcile("pix_ref_1", ProviderPaymentStatus.APPROVED)
            with django_capture_on_commit_callbacks(execute=True):
                second = PaymentReconciler.reconcile("pix_ref_1", ProviderPaymentStatus.APPROVED)

        customer.refresh_from_db()
        assert first.outcome == ReconciliationOutcome.APPLIED_PAID
        assert second.outcome == ReconciliationOutcome.ALREADY_TERMINAL
        assert not second.applied
        assert customer.available_credit == Money(cents=80000)
        mock_delay.assert_called_once_with("boleto", str(overdue_boleto.id))

    def test_failure_rolls_back_everything(self, customer, overdue_boleto):
        """A boleto can never end up PAID while its receivables stay open."""
        linked = ReceivableFactory(customer=customer, amount_cents=30000, boleto=overdue_boleto)

        with patch(
            "financial.services.payment_reconciler.CreditService.apply_and_persist",
            side_effect=RuntimeError("database went away"),
        ):
            with pytest.raises(RuntimeError):
                PaymentReconciler.reconcile("pix_ref_1", ProviderPaymentStatus.APPROVED)

        overdue_boleto.refresh_from_db()
        linked.refresh_from_db()
        assert overdue_boleto.status == ObligationStatus.OVERDUE
        assert linked.status == ObligationStatus.PENDING
        assert Order.objects.get(pk=overdue_boleto.order_id).payment_status == OrderPaymentStatus.PENDING


class TestCancelled:
    """Tests for rejected and cancelled provider events."""

    @pytest.mark.parametrize(
        "status", [ProviderPaymentStatus.REJECTED, ProviderPaymentStatus.CANCELLED]
    )
    def test_cancels_boleto_and_restores_credit(self, customer, overdue_boleto, status):
        result = PaymentReconciler.reconcile("pix_ref_1", status)

        overdue_boleto.refresh_from_db()
        customer.refresh_from_db()
        assert result.outcome == ReconciliationOutcome.APPLIED_CANCELLED
        assert overdue_boleto.status == ObligationStatus.CANCELLED
        assert customer.available_credit == Money(cents=80000)

    def test_cancelling_boleto_restores_full_credit_with_linked_receivable(
        self, customer, sync_credit
    ):
        """Limit 1000, boleto 300 covering receivable 300: back to 1000."""
        boleto = BoletoFactory(customer=customer, amount_cents=30000, pix_payment_id="pix_c")
        ReceivableFactory(customer=customer, amount_cents=30000, boleto=boleto)
        sync_credit(customer)

        PaymentReconciler.reconcile("pix_c", ProviderPaymentStatus.CANCELLED)

        customer.refresh_from_db()
        assert customer.available_credit == Money(cents=100000)
        assert ObligationAggregator.outstanding_debt(customer.pk) == Money.zero()

    def test_approved_after_cancellation_is_ignored(self, overdue_boleto):
        PaymentReconciler.reconcile("pix_ref_1", ProviderPaymentStatus.CANCELLED)

        result = PaymentReconciler.reconcile("pix_ref_1", ProviderPaymentStatus.APPROVED)

        overdue_boleto.refresh_from_db()
        assert result.outcome == ReconciliationOutcome.ALREADY_TERMINAL
        assert overdue_boleto.status == ObligationStatus.CANCELLED


class TestNoOps:
    """Tests for events that change nothing."""

    def test_unknown_reference(self, customer, overdue_boleto):
        result = PaymentReconciler.reconcile("pix_missing", ProviderPaymentStatus.APPROVED)

        overdue_boleto.refresh_from_db()
        assert result.outcome == ReconciliationOutcome.UNKNOWN_REFERENCE
        assert result.boleto_id is None
        assert overdue_boleto.status == ObligationStatus.OVERDUE

    def test_empty_reference(self, db):
        result = PaymentReconciler.reconcile("", ProviderPaymentStatus.APPROVED)

        assert result.outcome == ReconciliationOutcome.UNKNOWN_REFERENCE

    def test_non_actionable_status(self, overdue_boleto):
        result = PaymentReconciler.reconcile("pix_ref_1", ProviderPaymentStatus.OTHER)

        overdue_boleto.refresh_from_db()
        assert result.outcome == ReconciliationOutcome.IGNORED_STATUS
        assert result.status == ObligationStatus.OVERDUE
        assert overdue_boleto.status == ObligationStatus.OVERDUE

    def test_result_to_dict(self, overdue_boleto):
        data = PaymentReconciler.reconcile("pix_ref_1", ProviderPaymentStatus.APPROVED).to_dict()

        assert data["outcome"] == "applied_paid"
        assert data["boleto_id"] == str(overdue_boleto.id)
        assert data["status"] == "paid"
        assert data["available_credit"] == "800.00"
