"""
Customer credit calculation and persistence.

Available credit is a materialized view over obligation rows:

    available = clamp(credit_limit - outstanding_debt, 0, credit_limit)

It is never negative (a fully consumed customer stays at zero) and never
above the limit (paying down debt cannot create credit past the ceiling).

Usage:
    from financial.services import CreditService

    CreditService.recompute(customer.id)         # pure, writes nothing
    CreditService.apply_and_persist(customer.id) # locks, recomputes, writes
    CreditService.get_available_credit(customer.id)

Note:
    apply_and_persist must run in the same unit of work as any obligation
    transition that changes what counts as outstanding debt.
    ObligationService and PaymentReconciler do this for every mutation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from core.services import BaseService
from financial.exceptions import (
    CustomerNotFound,
    InsufficientCreditError,
    InvalidAmountError,
)
from financial.locks import lock_customer, retry_on_conflict
from financial.money import Money
from financial.services.obligation_aggregator import DebtBreakdown, ObligationAggregator
from sales.models import Customer

if TYPE_CHECKING:
    from collections.abc import Iterator
    from typing import Any


@dataclass(frozen=True)
class CreditSnapshot:
    """
    Stored versus expected available credit for one customer.

    Attributes:
        stored: Cached Customer.available_credit_cents
        expected: Value derived from current obligations
        breakdown: Obligations behind the expected value
    """

    customer_id: Any
    customer_name: str
    credit_limit: Money
    stored: Money
    expected: Money
    breakdown: DebtBreakdown

    @property
    def difference(self) -> Money:
        return self.expected - self.stored

    @property
    def drifted(self) -> bool:
        return self.stored.differs_materially(self.expected)

    def to_dict(self) -> dict[str, Any]:
        return {
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "credit_limit": str(self.credit_limit.amount),
            "stored": str(self.stored.amount),
            "expected": str(self.expected.amount),
            "difference": str(self.difference.amount),
            **self.breakdown.to_dict(),
        }


class CreditService(BaseService):
    """
    Derives, persists and checks customer available credit.

    All methods are classmethods - no instance state is maintained.
    """

    @staticmethod
    def calculate(credit_limit: Money, outstanding_debt: Money) -> Money:
        """clamp(credit_limit - outstanding_debt, 0, credit_limit)."""
        if credit_limit.is_negative():
            return Money.zero()
        return (credit_limit - outstanding_debt).clamp(Money.zero(), credit_limit)

    @staticmethod
    def _get_customer(customer_id: Any) -> Customer:
        try:
            return Customer.objects.get(pk=customer_id)
        except (Customer.DoesNotExist, ValueError):
            raise CustomerNotFound(
                f"Customer {customer_id} not found",
                details={"customer_id": str(customer_id)},
            )

    @classmethod
    def snapshot(cls, customer: Customer) -> CreditSnapshot:
        """Build the stored/expected comparison for a loaded customer."""
        breakdown = ObligationAggregator.breakdown(customer.pk)
        return CreditSnapshot(
            customer_id=customer.pk,
            customer_name=customer.name,
            credit_limit=customer.credit_limit,
            stored=customer.available_credit,
            expected=cls.calculate(customer.credit_limit, breakdown.total),
            breakdown=breakdown,
        )

    @classmethod
    def explain(cls, customer_id: Any) -> CreditSnapshot:
        """
        Stored and expected credit with the obligations behind them.

        Raises:
            CustomerNotFound: If the customer does not exist
        """
        return cls.snapshot(cls._get_customer(customer_id))

    @classmethod
    def recompute(cls, customer_id: Any) -> Money:
        """
        Expected available credit from current obligation state.

        Pure: reads only, writes nothing.

        Raises:
            CustomerNotFound: If the customer does not exist
        """
        customer = cls._get_customer(customer_id)
        return cls.calculate(
            customer.credit_limit,
            ObligationAggregator.outstanding_debt(customer.pk),
        )

    @classmethod
    @retry_on_conflict
    def apply_and_persist(cls, customer_id: Any) -> Money:
        """
        Recompute available credit under the customer lock and store it.

        Joins the caller's transaction when there is one, so the credit
        write commits or rolls back together with the obligation change
        that triggered it.

        Returns:
            The persisted available credit

        Raises:
            CustomerNotFound: If the customer does not exist
        """
        with cls.atomic():
            customer = lock_customer(customer_id)
            before = customer.available_credit
            expected = cls.calculate(
                customer.credit_limit,
                ObligationAggregator.outstanding_debt(customer.pk),
            )
            if expected != before:
                customer.available_credit_cents = expected.cents
                customer.save(update_fields=["available_credit_cents", "updated_at"])
                cls.get_logger().info(
                    f"Available credit for customer {customer.pk}: {before} -> {expected}",
                    extra={
                        "customer_id": customer.pk,
                        "before": before.cents,
                        "after": expected.cents,
                    },
                )
        return expected

    @classmethod
    def get_available_credit(cls, customer_id: Any) -> Money:
        """
        Cached available credit, as shown on dashboards.

        Raises:
            CustomerNotFound: If the customer does not exist
        """
        return cls._get_customer(customer_id).available_credit

    @classmethod
    def ensure_available(cls, customer: Customer, amount: Money) -> Money:
        """
        Reject an amount larger than the customer's available credit.

        The customer should be locked by the caller. The available credit
        is derived fresh from obligations rather than read from the cache.

        Returns:
            The available credit before the new amount

        Raises:
            InsufficientCreditError: With the shortfall when amount > available
        """
        available = cls.calculate(
            customer.credit_limit,
            ObligationAggregator.outstanding_debt(customer.pk),
        )
        if amount > available:
            cls.get_logger().info(
                f"Credit check failed for customer {customer.pk}",
                extra={
                    "customer_id": customer.pk,
                    "required": amount.cents,
                    "available": available.cents,
                },
            )
            raise InsufficientCreditError(
                customer_id=customer.pk,
                required=amount,
                available=available,
            )
        return available

    @classmethod
    @retry_on_conflict
    def set_credit_limit(cls, customer_id: Any, credit_limit: Money, changed_by=None) -> Money:
        """
        Change a customer's credit limit and re-derive available credit.

        Returns:
            The new available credit

        Raises:
            InvalidAmountError: If the limit is negative
            CustomerNotFound: If the customer does not exist
        """
        if credit_limit.is_negative():
            raise InvalidAmountError(
                "Credit limit cannot be negative",
                details={"credit_limit": str(credit_limit.amount)},
            )

        with cls.atomic():
            customer = lock_customer(customer_id)
            previous = customer.credit_limit
            customer.credit_limit_cents = credit_limit.cents
            customer.save(update_fields=["credit_limit_cents", "updated_at"])
            available = cls.apply_and_persist(customer.pk)

        cls.get_logger().info(
            f"Credit limit for customer {customer.pk}: {previous} -> {credit_limit}",
            extra={
                "customer_id": customer.pk,
                "before": previous.cents,
                "after": credit_limit.cents,
                "changed_by": getattr(changed_by, "pk", None),
            },
        )
        return available

    @classmethod
    def iter_snapshots(cls, active_only: bool = True) -> Iterator[CreditSnapshot]:
        """Stored/expected credit for every (active) customer, by id."""
        customers = Customer.objects.order_by("pk")
        if active_only:
            customers = customers.filter(is_active=True)
        for customer in customers.iterator():
            yield cls.snapshot(customer)

    @classmethod
    def recompute_all(cls, active_only: bool = True) -> list[CreditSnapshot]:
        """
        Batch variant of recompute(): one snapshot per customer.

        Read-only. The credit audit is built on this.
        """
        return list(cls.iter_snapshots(active_only=active_only))
