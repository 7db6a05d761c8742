"""
Factory Boy factories for sales test data.

Usage:
    from sales.tests.factories import CustomerFactory, OrderFactory

    # Customer with a R$ 1000.00 limit and no debt
    customer = CustomerFactory(credit_limit_cents=100000)

    # Order for that customer
    order = OrderFactory(customer=customer, total_cents=35000)

Note:
    CustomerFactory sets available_credit_cents equal to the credit limit,
    which is the correct cached value for a customer with no obligations.
    Factories for obligations do NOT update the cache; call
    CreditService.apply_and_persist() when a test needs it consistent.
"""

import factory
from django.contrib.auth import get_user_model

from sales.models import Customer, Order, PaymentMethod


class UserFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating operator (User) instances.

    Example:
        operator = UserFactory()
        admin = UserFactory(is_staff=True)
    """

    class Meta:
        model = get_user_model()
        skip_postgeneration_save = True

    username = factory.Sequence(lambda n: f"operator{n}")
    email = factory.Sequence(lambda n: f"operator{n}@example.com")
    password = factory.PostGenerationMethodCall("set_password", "testpass123")
    is_active = True


class CustomerFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating Customer instances.

    Default creates an active customer with a R$ 1000.00 limit and the
    full limit available.
    """

    class Meta:
        model = Customer

    name = factory.Sequence(lambda n: f"Padaria {n}")
    document = factory.Sequence(lambda n: f"{n:014d}")
    email = factory.Sequence(lambda n: f"compras{n}@example.com")
    credit_limit_cents = 100000  # R$ 1000.00
    available_credit_cents = factory.SelfAttribute("credit_limit_cents")
    is_active = True


class OrderFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating Order instances.

    Default creates a PENDING R$ 100.00 order paid by boleto.
    """

    class Meta:
        model = Order

    customer = factory.SubFactory(CustomerFactory)
    order_number = factory.Sequence(lambda n: f"PED-TEST-{n:06d}")
    total_cents = 10000  # R$ 100.00
    payment_method = PaymentMethod.BOLETO
