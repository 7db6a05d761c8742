"""
Pytest fixtures shared by all financial tests.

Sections:
    - Users and API clients
    - Customers
    - Bank accounts
    - Helpers
"""

import pytest
from rest_framework.test import APIClient

from financial.ledger.services import BankLedgerService
from financial.ledger.tests.factories import BankAccountFactory
from financial.money import Money
from financial.services import CreditService
from sales.tests.factories import CustomerFactory, UserFactory


# =============================================================================
# Users and API clients
# =============================================================================


@pytest.fixture
def operator(db):
    """Authenticated back-office user without staff rights."""
    return UserFactory()


@pytest.fixture
def staff_user(db):
    """Financial administrator (staff)."""
    return UserFactory(is_staff=True)


@pytest.fixture
def api_client():
    """Unauthenticated DRF client."""
    return APIClient()


@pytest.fixture
def operator_client(operator):
    client = APIClient()
    client.force_authenticate(user=operator)
    return client


@pytest.fixture
def staff_client(staff_user):
    client = APIClient()
    client.force_authenticate(user=staff_user)
    return client


# =============================================================================
# Customers
# =============================================================================


@pytest.fixture
def customer(db):
    """Customer with a R$ 1000.00 limit, no obligations, full credit available."""
    return CustomerFactory(credit_limit_cents=100000)


# =============================================================================
# Bank accounts
# =============================================================================


@pytest.fixture
def operating_account(db):
    """Account opened with R$ 100.00, posted as an opening INCOME."""
    return BankLedgerService.open_account("Operating", opening_balance=Money(cents=10000))


@pytest.fixture
def savings_account(db):
    """Empty account with no history."""
    return BankAccountFactory(name="Savings")


# =============================================================================
# Helpers
# =============================================================================


@pytest.fixture
def sync_credit():
    """
    Bring a customer's cached credit in line with its obligations.

    Factories create obligations without touching the cache; tests that
    start from a consistent state call this first.

    Usage:
        def test_x(customer, sync_credit):
            BoletoFactory(customer=customer, amount_cents=30000)
            sync_credit(customer)
    """

    def _sync(customer):
        CreditService.apply_and_persist(customer.pk)
        customer.refresh_from_db()
        return customer.available_credit

    return _sync
