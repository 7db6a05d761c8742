"""
Order placement with credit check.

Orders paid on credit (store credit or boleto) consume the customer's
available credit. The check and the debit happen under the customer lock,
so two concurrent orders cannot both spend the same credit.

Usage:
    from sales.services import OrderPlacementService

    order = OrderPlacementService.place_order(
        customer.id,
        Money.from_decimal("350.00"),
        payment_method=PaymentMethod.CREDIT,
    )

Raises InsufficientCreditError (with .shortfall) when the total exceeds
the available credit.
"""

from __future__ import annotations

import datetime
import uuid
from typing import TYPE_CHECKING

from django.utils import timezone

from core.services import BaseService
from financial.exceptions import InvalidAmountError
from financial.locks import lock_customer, retry_on_conflict
from financial.models import Receivable
from financial.services import CreditService
from sales.models import Order, PaymentMethod

if TYPE_CHECKING:
    from typing import Any

    from financial.money import Money


# Payment methods that leave the order total as outstanding debt
CREDIT_PAYMENT_METHODS = frozenset({PaymentMethod.CREDIT, PaymentMethod.BOLETO})

DEFAULT_CREDIT_TERM_DAYS = 30


def generate_order_number() -> str:
    return f"PED-{timezone.localdate():%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"


class OrderPlacementService(BaseService):
    """
    Places orders and debits customer credit.

    All methods are classmethods - no instance state is maintained.
    """

    @classmethod
    @retry_on_conflict
    def place_order(
        cls,
        customer_id: Any,
        total: Money,
        *,
        payment_method: str = PaymentMethod.CREDIT,
        order_number: str | None = None,
        due_date: datetime.date | None = None,
        description: str = "",
    ) -> Order:
        """
        Create an order, checking and consuming credit when paid on credit.

        For credit payment methods the order total becomes a PENDING
        receivable due in DEFAULT_CREDIT_TERM_DAYS (or due_date), and the
        customer's available credit is persisted in the same transaction.

        Raises:
            InvalidAmountError: If total <= 0
            CustomerNotFound: If the customer does not exist
            InsufficientCreditError: If total exceeds the available credit
        """
        if not total.is_positive():
            raise InvalidAmountError(
                "Order total must be greater than zero",
                details={"total": str(total.amount)},
            )

        on_credit = payment_method in CREDIT_PAYMENT_METHODS

        with cls.atomic():
            customer = lock_customer(customer_id)
            if on_credit:
                CreditService.ensure_available(customer, total)

            order = Order.objects.create(
                customer=customer,
                order_number=order_number or generate_order_number(),
                total_cents=total.cents,
                payment_method=payment_method,
            )

            if on_credit:
                Receivable.objects.create(
                    customer=customer,
                    order=order,
                    amount_cents=total.cents,
                    due_date=due_date
                    or timezone.localdate() + datetime.timedelta(days=DEFAULT_CREDIT_TERM_DAYS),
                    description=description or f"Order {order.order_number}",
                )
                available = CreditService.apply_and_persist(customer.pk)
            else:
                available = customer.available_credit

        cls.get_logger().info(
            f"Placed order {order.order_number} for customer {customer.pk} ({total})",
            extra={
                "order_id": order.pk,
                "customer_id": customer.pk,
                "total": total.cents,
                "on_credit": on_credit,
                "available_credit": available.cents,
            },
        )
        return order
