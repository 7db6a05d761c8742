"""
Tests for ObligationService.

Every operation that changes outstanding debt must leave the customer's
cached available credit equal to the derived value.
"""

import datetime
import uuid
from unittest.mock import patch

import pytest
from django.utils import timezone
from freezegun import freeze_time

from core.exceptions import ConflictError, ValidationError
from financial.exceptions import (
    CustomerNotFound,
    InvalidAmountError,
    InvalidTransitionError,
    ObligationNotFound,
)
from financial.ledger.exceptions import InactiveAccount
from financial.ledger.models import BankAccount, ReferenceType, Transaction, TransactionType
from financial.models import Boleto, Receivable
from financial.money import Money
from financial.services import CreditService, ObligationService
from financial.state_machines import ObligationStatus
from financial.tasks import notify_obligation_paid
from financial.tests.factories import BoletoFactory, ReceivableFactory
from sales.models import OrderPaymentStatus, PaymentMethod
from sales.tests.factories import CustomerFactory, OrderFactory


def assert_credit_consistent(customer):
    customer.refresh_from_db()
    assert customer.available_credit == CreditService.recompute(customer.pk)


class TestCreateReceivable:
    """Tests for ObligationService.create_receivable()."""

    def test_creates_pending_receivable_and_debits_credit(self, customer):
        due = timezone.localdate() + datetime.timedelta(days=30)

        receivable = ObligationService.create_receivable(customer.pk, Money(cents=25000), due)

        customer.refresh_from_db()
        assert receivable.status == ObligationStatus.PENDING
        assert customer.available_credit == Money(cents=75000)

    def test_rejects_non_positive_amount(self, customer):
        with pytest.raises(InvalidAmountError):
            ObligationService.create_receivable(customer.pk, Money.zero(), timezone.localdate())

        assert not Receivable.objects.exists()

    def test_unknown_customer_raises(self, db):
        with pytest.raises(CustomerNotFound):
            ObligationService.create_receivable(999999, Money(cents=100), timezone.localdate())


class TestIssueBoleto:
    """Tests for ObligationService.issue_boleto() and linking."""

    def test_covering_receivables_does_not_double_count(self, customer, sync_credit):
        receivable = ReceivableFactory(customer=customer, amount_cents=30000)
        sync_credit(customer)

        boleto = ObligationService.issue_boleto(
            customer.pk,
            Money(cents=30000),
            timezone.localdate(),
            pix_payment_id="pix_cover",
            covers=[receivable.id],
        )

        receivable.refresh_from_db()
        customer.refresh_from_db()
        assert receivable.boleto_id == boleto.id
        assert customer.available_credit == Money(cents=70000)

    def test_duplicate_provider_reference_rejected(self, customer):
        BoletoFactory(customer=customer, pix_payment_id="pix_dup")

        with pytest.raises(ConflictError) as exc_info:
            ObligationService.issue_boleto(
                customer.pk, Money(cents=100), timezone.localdate(), pix_payment_id="pix_dup"
            )

        assert exc_info.value.error_code == "DUPLICATE_PROVIDER_REFERENCE"

    def test_receivable_already_covered_by_active_boleto_rejected(self, customer):
        first = BoletoFactory(customer=customer)
        receivable = ReceivableFactory(customer=customer, boleto=first)

        with pytest.raises(InvalidTransitionError):
            ObligationService.issue_boleto(
                customer.pk, Money(cents=10000), timezone.localdate(), covers=[receivable.id]
            )

        assert Boleto.objects.filter(customer=customer).count() == 1

    def test_receivable_of_cancelled_boleto_can_be_covered_again(self, customer):
        cancelled = BoletoFactory(customer=customer, status=ObligationStatus.CANCELLED)
        receivable = ReceivableFactory(customer=customer, boleto=cancelled)

        boleto = ObligationService.issue_boleto(
            customer.pk, Money(cents=10000), timezone.localdate(), covers=[receivable.id]
        )

        receivable.refresh_from_db()
        assert receivable.boleto_id == boleto.id

    def test_paid_receivable_cannot_be_covered(self, customer):
        receivable = ReceivableFactory(customer=customer, status=ObligationStatus.PAID)

        with pytest.raises(InvalidTransitionError):
            ObligationService.issue_boleto(
                customer.pk, Money(cents=10000), timezone.localdate(), covers=[receivable.id]
            )

    def test_link_and_unlink(self, customer, sync_credit):
        boleto = BoletoFactory(customer=customer, amount_cents=10000)
        receivable = ReceivableFactory(customer=customer, amount_cents=10000)
        sync_credit(customer)
        assert customer.available_credit == Money(cents=80000)

        ObligationService.link_boleto(boleto.id, [receivable.id])
        customer.refresh_from_db()
        assert customer.available_credit == Money(cents=90000)

        ObligationService.unlink_boleto(receivable.id)
        customer.refresh_from_db()
        assert customer.available_credit == Money(cents=80000)

    def test_link_to_unknown_receivable_raises(self, customer):
        boleto = BoletoFactory(customer=customer)

        with pytest.raises(ObligationNotFound):
            ObligationService.link_boleto(boleto.id, [uuid.uuid4()])


class TestMarkPaid:
    """Tests for ObligationService.mark_paid() (manual override)."""

    def test_boleto_closes_order_and_linked_receivables(self, customer, sync_credit):
        order = OrderFactory(customer=customer)
        boleto = BoletoFactory(customer=customer, order=order, amount_cents=30000)
        linked = ReceivableFactory(customer=customer, amount_cents=30000, boleto=boleto)
        sync_credit(customer)

        result = ObligationService.mark_paid(boleto.id, "pix", timezone.localdate())

        boleto.refresh_from_db()
        linked.refresh_from_db()
        order.refresh_from_db()
        assert boleto.status == ObligationStatus.PAID
        assert linked.status == ObligationStatus.PAID
        assert order.payment_status == OrderPaymentStatus.PAID
        assert order.paid_at is not None
        assert [r.id for r in result.settled_receivables] == [linked.id]
        assert result.available_credit == Money(cents=100000)
        assert_credit_consistent(customer)

    def test_queues_one_notification_after_commit(self, customer, django_capture_on_commit_callbacks):
        receivable = ReceivableFactory(customer=customer)

        with patch.object(notify_obligation_paid, "delay") as mock_delay:
            with django_capture_on_commit_callbacks(execute=True):
                ObligationService.mark_paid(receivable.id, "cash", timezone.localdate())

        mock_delay.assert_called_once_with("receivable", str(receivable.id))

    def test_partial_payment_creates_remainder(self, customer, sync_credit, settings):
        settings.FINANCIAL_PARTIAL_PAYMENT_REMAINDER_DAYS = 7
        receivable = ReceivableFactory(customer=customer, amount_cents=10000)
        sync_credit(customer)
        paid_on = datetime.date(2024, 6, 3)

        result = ObligationService.mark_paid(
            receivable.id, "cash", paid_on, paid_amount=Money(cents=6000)
        )

        receivable.refresh_from_db()
        remainder = result.remainder
        assert receivable.status == ObligationStatus.PAID
        assert receivable.paid_amount == Money(cents=6000)
        assert remainder.status == ObligationStatus.PENDING
        assert remainder.amount == Money(cents=4000)
        assert remainder.due_date == datetime.date(2024, 6, 10)
        assert remainder.remainder_of_id == receivable.id
        assert result.available_credit == Money(cents=96000)
        assert_credit_consistent(customer)

    def test_shortfall_within_tolerance_creates_no_remainder(self, customer):
        receivable = ReceivableFactory(customer=customer, amount_cents=10000)

        result = ObligationService.mark_paid(
            receivable.id, "cash", timezone.localdate(), paid_amount=Money(cents=9999)
        )

        assert result.remainder is None
        assert Receivable.objects.filter(customer=customer).count() == 1

    def test_overpayment_rejected(self, customer):
        receivable = ReceivableFactory(customer=customer, amount_cents=10000)

        with pytest.raises(InvalidAmountError):
            ObligationService.mark_paid(
                receivable.id, "cash", timezone.localdate(), paid_amount=Money(cents=10001)
            )

        receivable.refresh_from_db()
        assert receivable.status == ObligationStatus.PENDING

    @pytest.mark.parametrize("terminal", [ObligationStatus.PAID, ObligationStatus.CANCELLED])
    def test_terminal_obligation_rejected(self, customer, terminal):
        boleto = BoletoFactory(customer=customer, status=terminal)

        with pytest.raises(InvalidTransitionError) as exc_info:
            ObligationService.mark_paid(boleto.id, "pix", timezone.localdate())

        assert exc_info.value.details["current_status"] == terminal

    def test_receivable_covered_by_active_boleto_rejected(self, customer):
        boleto = BoletoFactory(customer=customer)
        receivable = ReceivableFactory(customer=customer, boleto=boleto)

        with pytest.raises(InvalidTransitionError):
            ObligationService.mark_paid(receivable.id, "cash", timezone.localdate())

        receivable.refresh_from_db()
        assert receivable.status == ObligationStatus.PENDING

    def test_posts_net_income_to_bank_account(self, customer, operating_account):
        boleto = BoletoFactory(customer=customer, amount_cents=10000)

        result = ObligationService.mark_paid(
            boleto.id,
            "pix",
            timezone.localdate(),
            bank_account_id=operating_account.id,
            fee=Money(cents=250),
        )

        operating_account.refresh_from_db()
        posted = result.transaction
        assert posted.transaction_type == TransactionType.INCOME
        assert posted.amount == Money(cents=9750)
        assert posted.reference_type == ReferenceType.BOLETO
        assert posted.reference_id == str(boleto.id)
        assert operating_account.balance == Money(cents=19750)

    def test_bank_posting_failure_rolls_back_payment(self, customer, operating_account):
        """The obligation, remainder and credit change are undone with the posting."""
        BankAccount.objects.filter(pk=operating_account.pk).update(is_active=False)
        receivable = ReceivableFactory(customer=customer, amount_cents=10000)

        with pytest.raises(InactiveAccount):
            ObligationService.mark_paid(
                receivable.id,
                "cash",
                timezone.localdate(),
                paid_amount=Money(cents=5000),
                bank_account_id=operating_account.id,
            )

        receivable.refresh_from_db()
        customer.refresh_from_db()
        assert receivable.status == ObligationStatus.PENDING
        assert Receivable.objects.filter(customer=customer).count() == 1
        assert Transaction.objects.filter(reference_type=ReferenceType.RECEIVABLE).count() == 0
        assert customer.available_credit_cents == 100000

    def test_unknown_obligation_raises(self, db):
        with pytest.raises(ObligationNotFound):
            ObligationService.mark_paid(uuid.uuid4(), "pix", timezone.localdate())


class TestReceiveBatch:
    """Tests for ObligationService.receive_batch()."""

    @pytest.fixture
    def batch(self, customer, sync_credit):
        """Receivables of 200 and 100 for customer, 150 for a second customer (limit 500)."""
        other = CustomerFactory(credit_limit_cents=50000)
        receivables = [
            ReceivableFactory(customer=customer, amount_cents=20000),
            ReceivableFactory(customer=customer, amount_cents=10000),
            ReceivableFactory(customer=other, amount_cents=15000),
        ]
        assert sync_credit(customer) == Money(cents=70000)
        assert sync_credit(other) == Money(cents=35000)
        return receivables

    def test_settles_every_receivable_with_one_posting_each(
        self, customer, batch, operating_account
    ):
        other = batch[2].customer
        paid_on = datetime.date(2024, 5, 10)

        result = ObligationService.receive_batch(
            [receivable.id for receivable in batch],
            operating_account.id,
            PaymentMethod.PIX,
            paid_on,
        )

        operating_account.refresh_from_db()
        for receivable in batch:
            receivable.refresh_from_db()
            assert receivable.status == ObligationStatus.PAID
            assert receivable.payment_date == paid_on
            assert receivable.payment_method == PaymentMethod.PIX
        assert result.total == Money(cents=45000)
        assert sorted(row.reference_id for row in result.transactions) == sorted(
            str(receivable.id) for receivable in batch
        )
        assert all(row.transaction_type == TransactionType.INCOME for row in result.transactions)
        assert operating_account.balance == Money(cents=55000)
        assert result.available_credit == {
            customer.pk: Money(cents=100000),
            other.pk: Money(cents=50000),
        }
        assert_credit_consistent(customer)
        assert_credit_consistent(other)

    def test_duplicate_ids_are_settled_once(self, customer, operating_account):
        receivable = ReceivableFactory(customer=customer, amount_cents=5000)

        result = ObligationService.receive_batch(
            [receivable.id, str(receivable.id)], operating_account.id
        )

        operating_account.refresh_from_db()
        assert len(result.receivables) == 1
        assert operating_account.balance == Money(cents=15000)

    def test_terminal_receivable_rolls_back_whole_batch(self, customer, batch, operating_account):
        paid = ReceivableFactory(customer=customer, status=ObligationStatus.PAID)

        with pytest.raises(InvalidTransitionError):
            ObligationService.receive_batch(
                [receivable.id for receivable in batch] + [paid.id], operating_account.id
            )

        operating_account.refresh_from_db()
        customer.refresh_from_db()
        assert all(
            Receivable.objects.get(pk=receivable.pk).status == ObligationStatus.PENDING
            for receivable in batch
        )
        assert operating_account.balance == Money(cents=10000)
        assert operating_account.transactions.count() == 1
        assert customer.available_credit == Money(cents=70000)

    def test_receivable_covered_by_active_boleto_rejected(self, customer, operating_account):
        boleto = BoletoFactory(customer=customer)
        covered = ReceivableFactory(customer=customer, boleto=boleto)

        with pytest.raises(InvalidTransitionError) as exc_info:
            ObligationService.receive_batch([covered.id], operating_account.id)

        covered.refresh_from_db()
        assert covered.status == ObligationStatus.PENDING
        assert exc_info.value.details["boleto_id"] == str(boleto.id)

    def test_unknown_receivable_rolls_back(self, customer, batch, operating_account):
        with pytest.raises(ObligationNotFound):
            ObligationService.receive_batch([batch[0].id, uuid.uuid4()], operating_account.id)

        batch[0].refresh_from_db()
        assert batch[0].status == ObligationStatus.PENDING
        assert operating_account.transactions.count() == 1

    def test_inactive_account_rolls_back(self, customer, batch, operating_account):
        BankAccount.objects.filter(pk=operating_account.pk).update(is_active=False)

        with pytest.raises(InactiveAccount):
            ObligationService.receive_batch([batch[0].id, batch[1].id], operating_account.id)

        customer.refresh_from_db()
        assert not Receivable.objects.filter(status=ObligationStatus.PAID).exists()
        assert customer.available_credit == Money(cents=70000)

    def test_empty_batch_rejected(self, operating_account):
        with pytest.raises(ValidationError) as exc_info:
            ObligationService.receive_batch([], operating_account.id)

        assert exc_info.value.error_code == "EMPTY_BATCH"

    def test_one_notification_per_receivable_after_commit(
        self, batch, operating_account, django_capture_on_commit_callbacks
    ):
        with patch.object(notify_obligation_paid, "delay") as mock_delay:
            with django_capture_on_commit_callbacks(execute=True):
                ObligationService.receive_batch(
                    [receivable.id for receivable in batch], operating_account.id
                )

        assert mock_delay.call_count == 3


class TestCancel:
    """Tests for ObligationService.cancel()."""

    def test_cancel_restores_credit(self, customer, sync_credit):
        boleto = BoletoFactory(customer=customer, amount_cents=30000)
        sync_credit(customer)
        assert customer.available_credit == Money(cents=70000)

        ObligationService.cancel(boleto.id)

        boleto.refresh_from_db()
        customer.refresh_from_db()
        assert boleto.status == ObligationStatus.CANCELLED
        assert customer.available_credit == Money(cents=100000)

    def test_cancelling_boleto_releases_linked_receivable_debt(self, customer, sync_credit):
        """Boleto 300 covering receivable 300 on a 1000 limit: back to 1000."""
        boleto = BoletoFactory(customer=customer, amount_cents=30000)
        receivable = ReceivableFactory(customer=customer, amount_cents=30000, boleto=boleto)
        sync_credit(customer)

        ObligationService.cancel(boleto.id)

        customer.refresh_from_db()
        receivable.refresh_from_db()
        assert customer.available_credit == Money(cents=100000)
        assert receivable.boleto_id == boleto.id

    def test_unlinking_after_cancellation_bills_receivable_again(self, customer, sync_credit):
        boleto = BoletoFactory(customer=customer, amount_cents=30000)
        receivable = ReceivableFactory(customer=customer, amount_cents=30000, boleto=boleto)
        sync_credit(customer)
        ObligationService.cancel(boleto.id)

        ObligationService.unlink_boleto(receivable.id)

        customer.refresh_from_db()
        assert customer.available_credit == Money(cents=70000)

    def test_cancel_paid_rejected(self, customer):
        receivable = ReceivableFactory(customer=customer, status=ObligationStatus.PAID)

        with pytest.raises(InvalidTransitionError):
            ObligationService.cancel(receivable.id)

    def test_cancel_unknown_raises(self, db):
        with pytest.raises(ObligationNotFound):
            ObligationService.cancel("not-a-uuid")


class TestMarkOverdue:
    """Tests for ObligationService.mark_overdue() (scheduled sweep)."""

    @freeze_time("2024-06-10 12:00:00")
    def test_flags_pending_past_due(self, customer, sync_credit):
        late_boleto = BoletoFactory(customer=customer, due_date=datetime.date(2024, 6, 9))
        late_receivable = ReceivableFactory(customer=customer, due_date=datetime.date(2024, 6, 1))
        due_today = ReceivableFactory(customer=customer, due_date=datetime.date(2024, 6, 10))
        sync_credit(customer)
        before = customer.available_credit

        result = ObligationService.mark_overdue()

        late_boleto.refresh_from_db()
        late_receivable.refresh_from_db()
        due_today.refresh_from_db()
        customer.refresh_from_db()
        assert late_boleto.status == ObligationStatus.OVERDUE
        assert late_receivable.status == ObligationStatus.OVERDUE
        assert due_today.status == ObligationStatus.PENDING
        assert (result.boletos, result.receivables) == (1, 1)
        assert result.as_of == datetime.date(2024, 6, 10)
        assert customer.available_credit == before

    def test_explicit_as_of_and_idempotence(self, customer):
        ReceivableFactory(customer=customer, due_date=datetime.date(2024, 1, 1))

        first = ObligationService.mark_overdue(as_of=datetime.date(2024, 2, 1))
        second = ObligationService.mark_overdue(as_of=datetime.date(2024, 2, 1))

        assert first.total == 1
        assert second.total == 0
        assert first.to_dict() == {
            "as_of": "2024-02-01",
            "boletos": 0,
            "receivables": 1,
            "customers": 1,
        }

    def test_paid_and_cancelled_are_left_alone(self, customer):
        BoletoFactory(
            customer=customer, due_date=datetime.date(2024, 1, 1), status=ObligationStatus.PAID
        )
        ReceivableFactory(
            customer=customer,
            due_date=datetime.date(2024, 1, 1),
            status=ObligationStatus.CANCELLED,
        )

        result = ObligationService.mark_overdue(as_of=datetime.date(2024, 2, 1))

        assert result.total == 0
