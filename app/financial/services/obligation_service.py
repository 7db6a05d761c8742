"""
Obligation lifecycle operations.

ObligationService is the only place that moves boletos and receivables
through their state machine. Every operation that changes whether an
obligation counts as outstanding debt recomputes the customer's
available credit in the same unit of work.

Operations:
    create_receivable / issue_boleto: Issue new obligations
    link_boleto / unlink_boleto: Change which receivables a boleto covers
    mark_paid: Administrator override (manual receipt, partial payments)
    receive_batch: Settle several receivables into one bank account
    cancel: Administrator cancellation
    mark_overdue: Scheduled PENDING -> OVERDUE sweep
    settle_boleto / void_obligation: Lock-holding building blocks shared
        with PaymentReconciler

Lock order:
    Customer → obligation rows → bank account

Usage:
    from financial.services import ObligationService

    result = ObligationService.mark_paid(
        boleto.id,
        payment_method=PaymentMethod.PIX,
        payment_date=timezone.localdate(),
        bank_account_id=account.id,
    )
    result.available_credit
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.utils import timezone
from django_fsm import TransitionNotAllowed

from core.exceptions import ConflictError, ValidationError
from core.services import BaseService
from financial.exceptions import (
    InvalidAmountError,
    InvalidTransitionError,
    ObligationNotFound,
)
from financial.ledger.models import ReferenceType, TransactionType
from financial.ledger.services import BankLedgerService
from financial.ledger.types import PostingReference
from financial.locks import lock_customer, retry_on_conflict
from financial.models import Boleto, Receivable
from financial.money import TOLERANCE_CENTS, Money
from financial.notifications import queue_paid_notification
from financial.services.credit_service import CreditService
from financial.state_machines import ObligationStatus
from sales.models import Order, OrderPaymentStatus, PaymentMethod

if TYPE_CHECKING:
    from collections.abc import Iterable
    from typing import Any

    from financial.ledger.models import Transaction
    from sales.models import Customer

    Obligation = Boleto | Receivable


@dataclass
class ManualPaymentResult:
    """
    Result of ObligationService.mark_paid().

    Attributes:
        obligation: The obligation now PAID
        settled_receivables: Receivables closed together with a boleto
        remainder: New receivable for the unpaid part of a partial payment
        transaction: INCOME posted to the bank account, if one was given
        available_credit: Customer's available credit after the payment
    """

    obligation: Obligation
    available_credit: Money
    settled_receivables: list[Receivable] = field(default_factory=list)
    remainder: Receivable | None = None
    transaction: Transaction | None = None


@dataclass
class BatchReceiptResult:
    """
    Result of ObligationService.receive_batch().

    Attributes:
        receivables: Receivables now PAID, in id order
        transactions: One INCOME per receivable, same order
        available_credit: Recomputed available credit by customer id
    """

    receivables: list[Receivable] = field(default_factory=list)
    transactions: list[Transaction] = field(default_factory=list)
    available_credit: dict[Any, Money] = field(default_factory=dict)

    @property
    def total(self) -> Money:
        return sum((receivable.amount for receivable in self.receivables), Money.zero())


@dataclass
class OverdueSweepResult:
    """Counts of obligations flagged OVERDUE by one sweep."""

    as_of: datetime.date
    boletos: int = 0
    receivables: int = 0
    customer_ids: set = field(default_factory=set)

    @property
    def total(self) -> int:
        return self.boletos + self.receivables

    def to_dict(self) -> dict[str, Any]:
        return {
            "as_of": self.as_of.isoformat(),
            "boletos": self.boletos,
            "receivables": self.receivables,
            "customers": len(self.customer_ids),
        }


class ObligationService(BaseService):
    """
    Service for boleto and receivable state changes.

    All methods are classmethods - no instance state is maintained.
    """

    # ==========================================================================
    # Lookup and locking
    # ==========================================================================

    @classmethod
    def _find(cls, obligation_id: Any, *, for_update: bool = False) -> Obligation | None:
        for model in (Boleto, Receivable):
            queryset = model.objects.all()
            if for_update:
                queryset = queryset.select_for_update()
            try:
                obligation = queryset.filter(pk=obligation_id).first()
            except (DjangoValidationError, ValueError):
                return None
            if obligation is not None:
                return obligation
        return None

    @classmethod
    def get_obligation(cls, obligation_id: Any) -> Obligation:
        """
        Get a boleto or receivable by id.

        Raises:
            ObligationNotFound: If neither matches
        """
        obligation = cls._find(obligation_id)
        if obligation is None:
            raise ObligationNotFound(
                f"Obligation {obligation_id} not found",
                details={"obligation_id": str(obligation_id)},
            )
        return obligation

    @classmethod
    def _lock_obligation(cls, obligation_id: Any) -> tuple[Customer, Obligation]:
        """
        Lock the owning customer, then the obligation row.

        Must be called inside a transaction.
        """
        obligation = cls.get_obligation(obligation_id)
        customer = lock_customer(obligation.customer_id)
        locked = type(obligation).objects.select_for_update().get(pk=obligation.pk)
        return customer, locked

    @staticmethod
    def _transition(obligation: Obligation, action: str, *args, **kwargs) -> None:
        """Run a django-fsm transition, mapping refusals to InvalidTransitionError."""
        try:
            getattr(obligation, action)(*args, **kwargs)
        except TransitionNotAllowed as exc:
            kind = obligation._meta.verbose_name
            raise InvalidTransitionError(
                f"Cannot {action.replace('_', ' ')} {kind} {obligation.id} in status {obligation.status}",
                current_status=obligation.status,
                action=action,
                details={"obligation_id": str(obligation.id)},
            ) from exc

    @staticmethod
    def _require_positive(amount: Money, name: str = "amount") -> None:
        if not amount.is_positive():
            raise InvalidAmountError(
                f"{name.replace('_', ' ').capitalize()} must be greater than zero",
                details={name: str(amount.amount)},
            )

    # ==========================================================================
    # Issuing
    # ==========================================================================

    @classmethod
    @retry_on_conflict
    def create_receivable(
        cls,
        customer_id: Any,
        amount: Money,
        due_date: datetime.date,
        *,
        order: Order | None = None,
        description: str = "",
        boleto: Boleto | None = None,
        remainder_of: Receivable | None = None,
    ) -> Receivable:
        """
        Create a PENDING receivable and debit the customer's credit.

        Raises:
            InvalidAmountError: If amount <= 0
            CustomerNotFound: If the customer does not exist
        """
        cls._require_positive(amount)

        with cls.atomic():
            customer = lock_customer(customer_id)
            receivable = Receivable.objects.create(
                customer=customer,
                order=order,
                amount_cents=amount.cents,
                due_date=due_date,
                description=description,
                boleto=boleto,
                remainder_of=remainder_of,
            )
            CreditService.apply_and_persist(customer.pk)

        cls.get_logger().info(
            f"Created receivable {receivable.id} of {amount} for customer {customer.pk}",
            extra={"receivable_id": str(receivable.id), "customer_id": customer.pk},
        )
        return receivable

    @classmethod
    @retry_on_conflict
    def issue_boleto(
        cls,
        customer_id: Any,
        amount: Money,
        due_date: datetime.date,
        *,
        order: Order | None = None,
        pix_payment_id: str | None = None,
        boleto_number: str = "",
        description: str = "",
        covers: Iterable[Any] = (),
    ) -> Boleto:
        """
        Issue a PENDING boleto, optionally covering existing receivables.

        Covered receivables get their boleto link set, so from now on the
        boleto alone counts as their debt.

        Raises:
            InvalidAmountError: If amount <= 0
            ConflictError: If pix_payment_id is already used
            InvalidTransitionError: If a covered receivable is not active or
                already represented by another active boleto
        """
        cls._require_positive(amount)

        with cls.atomic():
            customer = lock_customer(customer_id)
            if pix_payment_id and Boleto.objects.filter(pix_payment_id=pix_payment_id).exists():
                raise ConflictError(
                    f"Provider reference {pix_payment_id} is already in use",
                    error_code="DUPLICATE_PROVIDER_REFERENCE",
                    details={"pix_payment_id": pix_payment_id},
                )

            boleto = Boleto.objects.create(
                customer=customer,
                order=order,
                amount_cents=amount.cents,
                due_date=due_date,
                pix_payment_id=pix_payment_id or None,
                boleto_number=boleto_number,
                description=description,
            )
            covered = list(covers)
            if covered:
                cls._link(boleto, covered)
            CreditService.apply_and_persist(customer.pk)

        cls.get_logger().info(
            f"Issued boleto {boleto.id} of {amount} for customer {customer.pk}",
            extra={
                "boleto_id": str(boleto.id),
                "customer_id": customer.pk,
                "provider_reference": pix_payment_id,
                "covers": len(covered),
            },
        )
        return boleto

    @classmethod
    def _link(cls, boleto: Boleto, receivable_ids: list[Any]) -> list[Receivable]:
        receivables = list(
            Receivable.objects.select_for_update(of=("self",))
            .select_related("boleto")
            .filter(pk__in=receivable_ids, customer_id=boleto.customer_id)
            .order_by("id")
        )
        found = {str(receivable.pk) for receivable in receivables}
        missing = [str(rid) for rid in receivable_ids if str(rid) not in found]
        if missing:
            raise ObligationNotFound(
                f"Receivable {missing[0]} not found for this customer",
                details={"obligation_id": missing[0]},
            )

        for receivable in receivables:
            if not receivable.is_active:
                raise InvalidTransitionError(
                    f"Receivable {receivable.id} is {receivable.status} and cannot be covered",
                    current_status=receivable.status,
                    action="link_boleto",
                )
            if receivable.boleto_id and receivable.boleto_id != boleto.pk and receivable.boleto.is_active:
                raise InvalidTransitionError(
                    f"Receivable {receivable.id} is already covered by boleto {receivable.boleto_id}",
                    current_status=receivable.status,
                    action="link_boleto",
                    details={"boleto_id": str(receivable.boleto_id)},
                )
            receivable.boleto = boleto
            receivable.save(update_fields=["boleto", "updated_at"])
        return receivables

    @classmethod
    @retry_on_conflict
    def link_boleto(cls, boleto_id: Any, receivable_ids: Iterable[Any]) -> list[Receivable]:
        """
        Mark receivables as represented by an active boleto.

        Raises:
            ObligationNotFound: If the boleto or a receivable does not exist
            InvalidTransitionError: If the boleto or a receivable is not active
        """
        with cls.atomic():
            customer, boleto = cls._lock_obligation(boleto_id)
            if not isinstance(boleto, Boleto):
                raise ObligationNotFound(
                    f"Boleto {boleto_id} not found",
                    details={"obligation_id": str(boleto_id)},
                )
            if not boleto.is_active:
                raise InvalidTransitionError(
                    f"Boleto {boleto.id} is {boleto.status} and cannot cover receivables",
                    current_status=boleto.status,
                    action="link_boleto",
                )
            linked = cls._link(boleto, list(receivable_ids))
            CreditService.apply_and_persist(customer.pk)
        return linked

    @classmethod
    @retry_on_conflict
    def unlink_boleto(cls, receivable_id: Any) -> Receivable:
        """
        Remove a receivable's boleto link so it counts on its own again.

        Raises:
            ObligationNotFound: If the receivable does not exist
        """
        with cls.atomic():
            customer, receivable = cls._lock_obligation(receivable_id)
            if not isinstance(receivable, Receivable):
                raise ObligationNotFound(
                    f"Receivable {receivable_id} not found",
                    details={"obligation_id": str(receivable_id)},
                )
            previous = receivable.boleto_id
            receivable.boleto = None
            receivable.save(update_fields=["boleto", "updated_at"])
            CreditService.apply_and_persist(customer.pk)

        cls.get_logger().info(
            f"Unlinked receivable {receivable.id} from boleto {previous}",
            extra={"receivable_id": str(receivable.id), "boleto_id": str(previous)},
        )
        return receivable

    # ==========================================================================
    # Settlement building blocks (caller holds the customer lock)
    # ==========================================================================

    @classmethod
    def settle_boleto(
        cls,
        boleto: Boleto,
        paid_on: datetime.date,
        payment_method: str = "",
        paid_amount: Money | None = None,
        paid_by=None,
    ) -> list[Receivable]:
        """
        Mark a locked boleto PAID together with its order and receivables.

        Does not recompute credit or notify; callers do both once their
        own changes are in place.

        Returns:
            The linked receivables that were closed

        Raises:
            InvalidTransitionError: If the boleto is not PENDING/OVERDUE
        """
        cls._transition(
            boleto,
            "mark_paid",
            paid_on,
            payment_method=payment_method,
            paid_amount=paid_amount,
            paid_by=paid_by,
        )
        boleto.save()

        if boleto.order_id:
            now = timezone.now()
            Order.objects.filter(pk=boleto.order_id).update(
                payment_status=OrderPaymentStatus.PAID,
                paid_at=now,
                updated_at=now,
            )

        settled = list(
            boleto.receivables.select_for_update()
            .filter(status__in=ObligationStatus.active_values())
            .order_by("id")
        )
        for receivable in settled:
            cls._transition(
                receivable,
                "mark_paid",
                paid_on,
                payment_method=boleto.payment_method,
                paid_by=paid_by,
            )
            receivable.save()
        return settled

    @classmethod
    def void_obligation(cls, obligation: Obligation) -> Obligation:
        """
        Cancel a locked obligation.

        Receivables covered by a cancelled boleto keep their link and stay
        out of outstanding debt; unlink them to bill them on their own.

        Raises:
            InvalidTransitionError: If the obligation is not PENDING/OVERDUE
        """
        cls._transition(obligation, "cancel")
        obligation.save()
        return obligation

    # ==========================================================================
    # Administrator operations
    # ==========================================================================

    @classmethod
    @retry_on_conflict
    def mark_paid(
        cls,
        obligation_id: Any,
        payment_method: str,
        payment_date: datetime.date,
        *,
        paid_amount: Money | None = None,
        bank_account_id: Any = None,
        fee: Money | None = None,
        paid_by=None,
    ) -> ManualPaymentResult:
        """
        Record a manual receipt for a boleto or receivable.

        Follows the same path as a provider confirmation: the obligation,
        its order and its covered receivables become PAID and the
        customer's credit is recomputed, all in one unit of work.

        Partial payment:
            When paid_amount is below the obligation amount by more than
            the tolerance, the obligation is still closed and a PENDING
            receivable for the remainder is created, due
            FINANCIAL_PARTIAL_PAYMENT_REMAINDER_DAYS after payment_date.

        Bank posting:
            When bank_account_id is given, an INCOME of paid_amount - fee
            is posted to that account in the same unit of work.

        Args:
            obligation_id: Boleto or receivable id
            payment_method: How it was paid
            payment_date: Date the money was received
            paid_amount: Amount received (default: the full amount)
            bank_account_id: Account the money landed in, if known
            fee: Processing fee withheld (default: zero)
            paid_by: Administrator recording the receipt

        Raises:
            ObligationNotFound: If the obligation does not exist
            InvalidTransitionError: If it is already PAID/CANCELLED, or is a
                receivable represented by an active boleto
            InvalidAmountError: For non-positive or excessive amounts
            InsufficientFunds / AccountNotFound: From the bank posting
        """
        fee = fee or Money.zero()
        if paid_amount is not None:
            cls._require_positive(paid_amount, "paid_amount")
        if fee.is_negative():
            raise InvalidAmountError("Fee cannot be negative", details={"fee": str(fee.amount)})

        with cls.atomic():
            customer, obligation = cls._lock_obligation(obligation_id)
            received = paid_amount or obligation.amount

            if obligation.is_terminal:
                raise InvalidTransitionError(
                    f"{obligation._meta.verbose_name.capitalize()} {obligation.id} is already {obligation.status}",
                    current_status=obligation.status,
                    action="mark_paid",
                    details={"obligation_id": str(obligation.id)},
                )
            if received > obligation.amount:
                raise InvalidAmountError(
                    f"Paid amount {received} exceeds the obligation amount {obligation.amount}",
                    details={
                        "paid_amount": str(received.amount),
                        "amount": str(obligation.amount.amount),
                    },
                )
            if isinstance(obligation, Receivable) and obligation.boleto_id:
                boleto = Boleto.objects.select_for_update().get(pk=obligation.boleto_id)
                if boleto.is_active:
                    raise InvalidTransitionError(
                        f"Receivable {obligation.id} is covered by active boleto {boleto.id}; "
                        "confirm the boleto instead",
                        current_status=obligation.status,
                        action="mark_paid",
                        details={"boleto_id": str(boleto.id)},
                    )

            result = ManualPaymentResult(obligation=obligation, available_credit=Money.zero())
            if isinstance(obligation, Boleto):
                result.settled_receivables = cls.settle_boleto(
                    obligation,
                    payment_date,
                    payment_method=payment_method,
                    paid_amount=received,
                    paid_by=paid_by,
                )
            else:
                cls._transition(
                    obligation,
                    "mark_paid",
                    payment_date,
                    payment_method=payment_method,
                    paid_amount=received,
                    paid_by=paid_by,
                )
                obligation.save()

            unpaid = obligation.amount - received
            if unpaid.cents > TOLERANCE_CENTS:
                result.remainder = Receivable.objects.create(
                    customer=customer,
                    order=obligation.order,
                    amount_cents=unpaid.cents,
                    due_date=payment_date
                    + datetime.timedelta(days=settings.FINANCIAL_PARTIAL_PAYMENT_REMAINDER_DAYS),
                    description=f"Remainder of {obligation._meta.verbose_name} {obligation.id}",
                    remainder_of=obligation if isinstance(obligation, Receivable) else None,
                )

            if bank_account_id is not None:
                net = received - fee
                cls._require_positive(net, "net_amount")
                reference_type = (
                    ReferenceType.BOLETO if isinstance(obligation, Boleto) else ReferenceType.RECEIVABLE
                )
                result.transaction = BankLedgerService.post(
                    bank_account_id,
                    TransactionType.INCOME,
                    net,
                    PostingReference(reference_type, str(obligation.id)),
                    description=f"Payment from {customer.name}",
                    category="receivables",
                    date=payment_date,
                    created_by=paid_by,
                )

            result.available_credit = CreditService.apply_and_persist(customer.pk)
            queue_paid_notification(obligation)

        cls.get_logger().info(
            f"Manually marked {obligation} as paid ({received})",
            extra={
                "obligation_id": str(obligation.id),
                "customer_id": customer.pk,
                "paid_amount": received.cents,
                "remainder_id": str(result.remainder.id) if result.remainder else None,
                "paid_by": getattr(paid_by, "pk", None),
            },
        )
        return result

    @classmethod
    @retry_on_conflict
    def receive_batch(
        cls,
        receivable_ids: Iterable[Any],
        bank_account_id: Any,
        payment_method: str = PaymentMethod.CASH,
        payment_date: datetime.date | None = None,
        *,
        paid_by=None,
    ) -> BatchReceiptResult:
        """
        Settle several receivables into one bank account at once.

        Every receivable is paid in full and gets its own INCOME posting
        referencing it. Customers are locked in id order, then the
        receivables, then the bank account. Nothing is applied unless the
        whole batch succeeds.

        Args:
            receivable_ids: Receivables to settle (duplicates are ignored)
            bank_account_id: Account the money landed in
            payment_method: How the customers paid (default: cash)
            payment_date: Date the money was received (default: local today)
            paid_by: Administrator recording the receipt

        Raises:
            ValidationError: If no receivable was given
            ObligationNotFound: If any receivable does not exist
            InvalidTransitionError: If any receivable is PAID/CANCELLED or
                covered by an active boleto
            AccountNotFound / InactiveAccount: From the bank posting
        """
        ids = list(dict.fromkeys(str(receivable_id) for receivable_id in receivable_ids))
        if not ids:
            raise ValidationError("No receivables selected", error_code="EMPTY_BATCH")
        payment_date = payment_date or timezone.localdate()
        result = BatchReceiptResult()

        with cls.atomic():
            try:
                customer_ids = sorted(
                    set(Receivable.objects.filter(pk__in=ids).values_list("customer_id", flat=True))
                )
            except (DjangoValidationError, ValueError):
                customer_ids = []
            customers = {customer_id: lock_customer(customer_id) for customer_id in customer_ids}

            receivables = (
                list(
                    Receivable.objects.select_for_update(of=("self",))
                    .select_related("boleto")
                    .filter(pk__in=ids)
                    .order_by("id")
                )
                if customer_ids
                else []
            )
            found = {str(receivable.pk) for receivable in receivables}
            missing = [receivable_id for receivable_id in ids if receivable_id not in found]
            if missing:
                raise ObligationNotFound(
                    f"Receivable {missing[0]} not found",
                    details={"obligation_id": missing[0]},
                )

            for receivable in receivables:
                if receivable.boleto_id and receivable.boleto.is_active:
                    raise InvalidTransitionError(
                        f"Receivable {receivable.id} is covered by active boleto "
                        f"{receivable.boleto_id}; confirm the boleto instead",
                        current_status=receivable.status,
                        action="mark_paid",
                        details={"boleto_id": str(receivable.boleto_id)},
                    )
                cls._transition(
                    receivable,
                    "mark_paid",
                    payment_date,
                    payment_method=payment_method,
                    paid_by=paid_by,
                )
                receivable.save()
                result.receivables.append(receivable)
                result.transactions.append(
                    BankLedgerService.post(
                        bank_account_id,
                        TransactionType.INCOME,
                        receivable.amount,
                        PostingReference(ReferenceType.RECEIVABLE, str(receivable.id)),
                        description=f"Batch receipt from {customers[receivable.customer_id].name}",
                        category="receivables",
                        date=payment_date,
                        created_by=paid_by,
                    )
                )
                queue_paid_notification(receivable)

            for customer_id in customer_ids:
                result.available_credit[customer_id] = CreditService.apply_and_persist(customer_id)

        cls.get_logger().info(
            f"Received {len(result.receivables)} receivables ({result.total}) into account {bank_account_id}",
            extra={
                "receivable_count": len(result.receivables),
                "total_cents": result.total.cents,
                "bank_account_id": str(bank_account_id),
                "customer_ids": customer_ids,
                "paid_by": getattr(paid_by, "pk", None),
            },
        )
        return result

    @classmethod
    @retry_on_conflict
    def cancel(cls, obligation_id: Any, cancelled_by=None) -> Obligation:
        """
        Cancel an active boleto or receivable.

        Raises:
            ObligationNotFound: If the obligation does not exist
            InvalidTransitionError: If it is already PAID/CANCELLED
        """
        with cls.atomic():
            customer, obligation = cls._lock_obligation(obligation_id)
            cls.void_obligation(obligation)
            CreditService.apply_and_persist(customer.pk)

        cls.get_logger().info(
            f"Cancelled {obligation}",
            extra={
                "obligation_id": str(obligation.id),
                "customer_id": customer.pk,
                "cancelled_by": getattr(cancelled_by, "pk", None),
            },
        )
        return obligation

    # ==========================================================================
    # Scheduled sweep
    # ==========================================================================

    @classmethod
    def mark_overdue(cls, as_of: datetime.date | None = None) -> OverdueSweepResult:
        """
        Flag PENDING obligations due before as_of as OVERDUE.

        OVERDUE still counts as outstanding debt, so available credit does
        not change; each customer is handled in its own short transaction
        under its lock.

        Args:
            as_of: Business date to compare against (default: local today)
        """
        as_of = as_of or timezone.localdate()
        result = OverdueSweepResult(as_of=as_of)

        customer_ids = set()
        for model in (Boleto, Receivable):
            customer_ids.update(
                model.objects.filter(
                    status=ObligationStatus.PENDING, due_date__lt=as_of
                ).values_list("customer_id", flat=True)
            )

        for customer_id in sorted(customer_ids):
            boletos, receivables = cls._mark_customer_overdue(customer_id, as_of)
            result.boletos += boletos
            result.receivables += receivables
            if boletos or receivables:
                result.customer_ids.add(customer_id)

        return result

    @classmethod
    @retry_on_conflict
    def _mark_customer_overdue(cls, customer_id: Any, as_of: datetime.date) -> tuple[int, int]:
        counts = []
        with cls.atomic():
            lock_customer(customer_id)
            for model in (Boleto, Receivable):
                due = model.objects.select_for_update().filter(
                    customer_id=customer_id,
                    status=ObligationStatus.PENDING,
                    due_date__lt=as_of,
                ).order_by("id")
                flagged = 0
                for obligation in due:
                    cls._transition(obligation, "mark_overdue")
                    obligation.save(update_fields=["status", "updated_at"])
                    flagged += 1
                counts.append(flagged)
            CreditService.apply_and_persist(customer_id)
        return counts[0], counts[1]
