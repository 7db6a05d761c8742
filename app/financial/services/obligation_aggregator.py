"""
Outstanding-debt aggregation across boletos and receivables.

A customer's outstanding debt is:

    Σ boleto.amount      for boletos in {PENDING, OVERDUE}
  + Σ receivable.amount  for receivables in {PENDING, OVERDUE} with no boleto link

A receivable linked to a boleto is the same debt seen from two bookkeeping
angles, so it only counts on its own once the link is removed. Cancelling
the boleto drops both from the active set. The decision is re-derived from
current rows on every call; nothing about "already counted" is cached.

Usage:
    from financial.services import ObligationAggregator

    debt = ObligationAggregator.outstanding_debt(customer.id)
    breakdown = ObligationAggregator.breakdown(customer.id)
    breakdown.boleto_count, breakdown.linked_receivable_count
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.db.models import Count, Q, Sum
from django.db.models.functions import Coalesce

from financial.models import Boleto, Receivable
from financial.money import Money
from financial.state_machines import ObligationStatus

if TYPE_CHECKING:
    from typing import Any


@dataclass(frozen=True)
class DebtBreakdown:
    """
    Outstanding debt of one customer and the obligations behind it.

    Attributes:
        boleto_total: Sum of active boletos
        receivable_total: Sum of active receivables counted independently
        boleto_count: Active boletos counted
        receivable_count: Active receivables counted independently
        linked_receivable_count: Active receivables skipped because a
            boleto represents them
    """

    customer_id: Any
    boleto_total: Money
    receivable_total: Money
    boleto_count: int
    receivable_count: int
    linked_receivable_count: int

    @property
    def total(self) -> Money:
        return self.boleto_total + self.receivable_total

    def to_dict(self) -> dict[str, Any]:
        return {
            "outstanding_debt": str(self.total.amount),
            "boleto_total": str(self.boleto_total.amount),
            "receivable_total": str(self.receivable_total.amount),
            "boleto_count": self.boleto_count,
            "receivable_count": self.receivable_count,
            "linked_receivable_count": self.linked_receivable_count,
        }


def independent_receivable_filter() -> Q:
    """
    Receivables that count as debt on their own.

    Unlinked receivables only. A linked receivable is represented by its
    boleto whatever the boleto's status; unlink_boleto() makes it count
    on its own again.
    """
    return Q(boleto__isnull=True)


class ObligationAggregator:
    """
    Computes outstanding debt from obligation rows.

    All methods are static and read-only.
    """

    @staticmethod
    def breakdown(customer_id: Any) -> DebtBreakdown:
        """
        Aggregate a customer's active obligations.

        Two queries: one over boletos, one over receivables. Sums are done
        in the database on integer cents.
        """
        active = ObligationStatus.active_values()

        boletos = Boleto.objects.filter(customer_id=customer_id, status__in=active).aggregate(
            total=Coalesce(Sum("amount_cents"), 0),
            count=Count("id"),
        )

        independent = independent_receivable_filter()
        receivables = Receivable.objects.filter(
            customer_id=customer_id, status__in=active
        ).aggregate(
            total=Coalesce(Sum("amount_cents", filter=independent), 0),
            count=Count("id", filter=independent),
            active=Count("id"),
        )

        return DebtBreakdown(
            customer_id=customer_id,
            boleto_total=Money(cents=int(boletos["total"])),
            receivable_total=Money(cents=int(receivables["total"])),
            boleto_count=boletos["count"],
            receivable_count=receivables["count"],
            linked_receivable_count=receivables["active"] - receivables["count"],
        )

    @staticmethod
    def outstanding_debt(customer_id: Any) -> Money:
        """De-duplicated sum of a customer's unpaid obligations."""
        return ObligationAggregator.breakdown(customer_id).total
