"""
Tests for the financial management commands.
"""

import datetime
from io import StringIO
from unittest.mock import patch

import pytest
from django.core.management import CommandError, call_command

from financial.ledger.models import BankAccount
from financial.models import AuditRun
from financial.state_machines import ObligationStatus
from financial.tests.factories import BoletoFactory, ReceivableFactory
from sales.models import Customer


def run(*args):
    out = StringIO()
    call_command(*args, stdout=out)
    return out.getvalue()


@pytest.fixture
def drifted_customer(customer):
    Customer.objects.filter(pk=customer.pk).update(available_credit_cents=20000)
    return customer


class TestAuditCreditCommand:
    """Tests for `manage.py audit_credit`."""

    def test_clean_data(self, customer):
        output = run("audit_credit")

        assert "Checked 1 customers, 0 with drifted credit." in output
        assert "No drift found." in output

    def test_dry_run_lists_and_writes_nothing(self, drifted_customer):
        output = run("audit_credit")

        drifted_customer.refresh_from_db()
        assert f"customer {drifted_customer.pk}" in output
        assert "stored R$ 200.00, expected R$ 1000.00" in output
        assert "Dry run: nothing was changed" in output
        assert drifted_customer.available_credit_cents == 20000
        assert not AuditRun.objects.exists()

    def test_strict_fails_on_drift(self, drifted_customer):
        with pytest.raises(CommandError):
            run("audit_credit", "--strict")

    def test_strict_passes_when_clean(self, customer):
        assert "No drift found." in run("audit_credit", "--strict")

    def test_apply_with_yes(self, drifted_customer):
        output = run("audit_credit", "--apply", "--yes")

        drifted_customer.refresh_from_db()
        assert "Corrected 1 customers" in output
        assert drifted_customer.available_credit_cents == 100000

    def test_apply_prompts_and_aborts(self, drifted_customer):
        with patch("builtins.input", return_value="no") as mock_input:
            output = run("audit_credit", "--apply")

        drifted_customer.refresh_from_db()
        mock_input.assert_called_once()
        assert "Aborted, nothing was changed." in output
        assert drifted_customer.available_credit_cents == 20000

    def test_apply_prompts_and_confirms(self, drifted_customer):
        with patch("builtins.input", return_value="yes"):
            run("audit_credit", "--apply")

        drifted_customer.refresh_from_db()
        assert drifted_customer.available_credit_cents == 100000

    def test_held_lock_is_a_command_error(self, drifted_customer, fake_redis):
        fake_redis.set.return_value = False

        with pytest.raises(CommandError):
            run("audit_credit", "--apply", "--yes")


class TestAuditBalancesCommand:
    """Tests for `manage.py audit_balances`."""

    def test_clean_data(self, operating_account):
        assert "No drift found." in run("audit_balances")

    def test_dry_run_then_apply(self, operating_account):
        BankAccount.objects.filter(pk=operating_account.pk).update(balance_cents=1)

        dry = run("audit_balances")
        operating_account.refresh_from_db()
        assert "cached R$ 0.01, ledger R$ 100.00" in dry
        assert operating_account.balance_cents == 1

        applied = run("audit_balances", "--apply", "--yes")
        operating_account.refresh_from_db()
        assert "Corrected 1 accounts" in applied
        assert operating_account.balance_cents == 10000


class TestMarkOverdueCommand:
    """Tests for `manage.py mark_overdue_obligations`."""

    def test_flags_past_due_obligations(self, customer):
        boleto = BoletoFactory(customer=customer, due_date=datetime.date(2024, 1, 10))
        ReceivableFactory(customer=customer, due_date=datetime.date(2024, 1, 31))

        output = run("mark_overdue_obligations", "--as-of", "2024-01-20")

        boleto.refresh_from_db()
        assert "2024-01-20: 1 boletos and 0 receivables marked overdue" in output
        assert boleto.status == ObligationStatus.OVERDUE

    def test_invalid_date(self, db):
        with pytest.raises(CommandError, match="Invalid date"):
            run("mark_overdue_obligations", "--as-of", "20/01/2024")
