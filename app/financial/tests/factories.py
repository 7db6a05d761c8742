"""
Factory Boy factories for financial test data.

This module provides factories for obligations and the webhook journal.
Bank account factories live in financial.ledger.tests.factories.

Usage:
    from financial.tests.factories import BoletoFactory, ReceivableFactory

    boleto = BoletoFactory(customer=customer, amount_cents=30000)
    linked = ReceivableFactory(customer=customer, amount_cents=30000, boleto=boleto)

    # Obligation in a specific state (use with caution - prefer services
    # when the test is about the transition itself)
    paid = BoletoFactory(status=ObligationStatus.PAID)
"""

import datetime
import uuid

import factory
from django.utils import timezone

from financial.models import Boleto, ProviderWebhookEvent, Receivable
from financial.state_machines import WebhookEventStatus
from sales.tests.factories import CustomerFactory


def _due_in(days: int):
    return factory.LazyFunction(lambda: timezone.localdate() + datetime.timedelta(days=days))


class BoletoFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating Boleto instances.

    Default creates a PENDING R$ 100.00 boleto due in 30 days with a
    unique provider reference.
    """

    class Meta:
        model = Boleto

    customer = factory.SubFactory(CustomerFactory)
    amount_cents = 10000  # R$ 100.00
    due_date = _due_in(30)
    pix_payment_id = factory.Sequence(lambda n: f"pix_test_{n}_{uuid.uuid4().hex[:8]}")
    boleto_number = factory.Sequence(lambda n: f"23790.{n:05d}")
    # Note: status is managed by FSM, default is PENDING


class ReceivableFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating Receivable instances.

    Default creates an unlinked PENDING R$ 100.00 receivable due in 30 days.
    """

    class Meta:
        model = Receivable

    customer = factory.SubFactory(CustomerFactory)
    amount_cents = 10000  # R$ 100.00
    due_date = _due_in(30)
    description = "Installment"


class ProviderWebhookEventFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating ProviderWebhookEvent journal rows.

    Default creates a PENDING invoice.paid delivery.
    """

    class Meta:
        model = ProviderWebhookEvent

    event_id = factory.Sequence(lambda n: f"evt_test_{n}_{uuid.uuid4().hex[:8]}")
    event_type = "invoice.paid"
    provider_reference = factory.Sequence(lambda n: f"inv_{n}")
    provider_status = "PAID"
    payload = factory.LazyAttribute(
        lambda o: {
            "event_type": o.event_type,
            "invoice_id": o.provider_reference,
            "status": o.provider_status,
        }
    )
    status = WebhookEventStatus.PENDING
