"""
Audit and drift correction for cached financial values.

Customer.available_credit_cents and BankAccount.balance_cents are cached
values with an authoritative recomputation path. DriftAuditService
compares the two and, only when explicitly confirmed, rewrites the cache.

Modes:
    audit_customer_credit / audit_account_balances:
        Dry run. Builds a report, writes nothing. Two runs with no
        intervening changes produce equal reports.
    apply_credit_fixes / apply_balance_fixes:
        Requires confirm=True. Holds a Redis run lock, records an AuditRun
        and one DriftCorrection (before/after) per corrected entity. Each
        entity is re-derived under its row lock, so a stale report can
        never write a stale value. Re-running after a successful fix finds
        nothing to correct.
    assert_no_credit_drift / assert_no_balance_drift:
        Strict checks for monitoring; raise IntegrityViolationError.

Nothing here runs on a schedule. Audits are triggered by an operator
(management commands or the admin API).

Usage:
    from financial.services import DriftAuditService

    report = DriftAuditService.audit_customer_credit()
    for item in report.discrepancies:
        print(item.customer_id, item.stored, item.expected)

    DriftAuditService.apply_credit_fixes(report, confirm=True, performed_by=request.user)
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from core.services import BaseService
from financial.exceptions import ConfirmationRequiredError, IntegrityViolationError
from financial.ledger.models import BankAccount
from financial.ledger.services import BankLedgerService
from financial.locks import DistributedLock, lock_customer, retry_on_conflict
from financial.models import AuditRun, DriftCorrection
from financial.money import Money
from financial.services.credit_service import CreditService
from financial.state_machines import AuditKind, AuditRunStatus

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Any

    from financial.services.obligation_aggregator import DebtBreakdown


# =============================================================================
# Reports
# =============================================================================


@dataclass(frozen=True)
class CreditDiscrepancy:
    """A customer whose stored available credit differs from the derived value."""

    customer_id: Any
    customer_name: str
    stored: Money
    expected: Money
    breakdown: DebtBreakdown

    @property
    def difference(self) -> Money:
        return self.expected - self.stored

    def to_dict(self) -> dict[str, Any]:
        return {
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "stored": str(self.stored.amount),
            "expected": str(self.expected.amount),
            "difference": str(self.difference.amount),
            "boleto_count": self.breakdown.boleto_count,
            "receivable_count": self.breakdown.receivable_count,
            "linked_receivable_count": self.breakdown.linked_receivable_count,
        }


@dataclass
class CreditAuditReport:
    """
    Result of a customer credit audit.

    generated_at is excluded from equality so two dry runs over the same
    data compare equal.
    """

    customers_checked: int
    discrepancies: list[CreditDiscrepancy]
    generated_at: datetime.datetime = field(default_factory=timezone.now, compare=False)
    corrected: int = 0
    run_id: Any = None

    @property
    def has_drift(self) -> bool:
        return bool(self.discrepancies)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": AuditKind.CUSTOMER_CREDIT.value,
            "generated_at": self.generated_at.isoformat(),
            "customers_checked": self.customers_checked,
            "discrepancy_count": len(self.discrepancies),
            "discrepancies": [item.to_dict() for item in self.discrepancies],
            "corrected": self.corrected,
            "run_id": str(self.run_id) if self.run_id else None,
        }


@dataclass(frozen=True)
class BalanceDiscrepancy:
    """A bank account whose cached balance or snapshots disagree with its history."""

    account_id: Any
    account_name: str
    stored_balance: Money
    ledger_balance: Money
    drifted_rows: int

    @property
    def difference(self) -> Money:
        return self.ledger_balance - self.stored_balance

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_id": str(self.account_id),
            "account_name": self.account_name,
            "stored_balance": str(self.stored_balance.amount),
            "ledger_balance": str(self.ledger_balance.amount),
            "difference": str(self.difference.amount),
            "drifted_rows": self.drifted_rows,
        }


@dataclass
class BalanceAuditReport:
    """Result of a bank account balance audit."""

    accounts_checked: int
    discrepancies: list[BalanceDiscrepancy]
    generated_at: datetime.datetime = field(default_factory=timezone.now, compare=False)
    corrected: int = 0
    run_id: Any = None

    @property
    def has_drift(self) -> bool:
        return bool(self.discrepancies)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": AuditKind.ACCOUNT_BALANCE.value,
            "generated_at": self.generated_at.isoformat(),
            "accounts_checked": self.accounts_checked,
            "discrepancy_count": len(self.discrepancies),
            "discrepancies": [item.to_dict() for item in self.discrepancies],
            "corrected": self.corrected,
            "run_id": str(self.run_id) if self.run_id else None,
        }


# =============================================================================
# Service
# =============================================================================


class DriftAuditService(BaseService):
    """
    Detects and, on confirmation, corrects drift in cached financial values.

    All methods are classmethods - no instance state is maintained.
    """

    # ==========================================================================
    # Customer credit
    # ==========================================================================

    @classmethod
    def audit_customer_credit(cls) -> CreditAuditReport:
        """
        Compare stored and derived available credit for every active customer.

        Read-only.
        """
        snapshots = CreditService.recompute_all(active_only=True)
        discrepancies = [
            CreditDiscrepancy(
                customer_id=snapshot.customer_id,
                customer_name=snapshot.customer_name,
                stored=snapshot.stored,
                expected=snapshot.expected,
                breakdown=snapshot.breakdown,
            )
            for snapshot in snapshots
            if snapshot.drifted
        ]
        report = CreditAuditReport(customers_checked=len(snapshots), discrepancies=discrepancies)

        cls.get_logger().info(
            f"Credit audit: {len(discrepancies)} of {len(snapshots)} customers drifted",
            extra={"checked": len(snapshots), "discrepancies": len(discrepancies)},
        )
        return report

    @classmethod
    def apply_credit_fixes(
        cls,
        report: CreditAuditReport | None = None,
        *,
        confirm: bool = False,
        performed_by=None,
    ) -> CreditAuditReport:
        """
        Persist the derived available credit for every drifted customer.

        Args:
            report: A previous dry-run report (default: run one now)
            confirm: Must be True; corrections are never implicit
            performed_by: Operator confirming the run

        Returns:
            The report with corrected and run_id filled in

        Raises:
            ConfirmationRequiredError: If confirm is not True
            LockAcquisitionError: If another credit fix run is in progress
        """
        if confirm is not True:
            raise ConfirmationRequiredError(
                "Applying credit corrections requires explicit confirmation",
                details={"kind": AuditKind.CUSTOMER_CREDIT.value},
            )

        report = report or cls.audit_customer_credit()
        targets = [item.customer_id for item in report.discrepancies]
        run = cls._run(
            AuditKind.CUSTOMER_CREDIT,
            targets,
            cls._fix_customer,
            checked=report.customers_checked,
            performed_by=performed_by,
        )
        report.corrected = run.corrections_applied
        report.run_id = run.id
        return report

    @classmethod
    @retry_on_conflict
    def _fix_customer(cls, run: AuditRun, customer_id: Any) -> bool:
        with cls.atomic():
            customer = lock_customer(customer_id)
            snapshot = CreditService.snapshot(customer)
            if not snapshot.drifted:
                return False

            customer.available_credit_cents = snapshot.expected.cents
            customer.save(update_fields=["available_credit_cents", "updated_at"])
            DriftCorrection.objects.create(
                run=run,
                customer=customer,
                before_cents=snapshot.stored.cents,
                after_cents=snapshot.expected.cents,
                details=snapshot.breakdown.to_dict(),
            )

        cls.get_logger().warning(
            f"Corrected available credit of customer {customer.pk}: "
            f"{snapshot.stored} -> {snapshot.expected}",
            extra={
                "run_id": str(run.id),
                "customer_id": customer.pk,
                "before": snapshot.stored.cents,
                "after": snapshot.expected.cents,
            },
        )
        return True

    @classmethod
    def assert_no_credit_drift(cls) -> CreditAuditReport:
        """
        Strict credit audit.

        Raises:
            IntegrityViolationError: Listing every drifted customer
        """
        report = cls.audit_customer_credit()
        if report.has_drift:
            raise IntegrityViolationError(
                f"{len(report.discrepancies)} customers have drifted available credit",
                details={"discrepancies": [item.to_dict() for item in report.discrepancies]},
            )
        return report

    # ==========================================================================
    # Bank account balances
    # ==========================================================================

    @classmethod
    def audit_account_balances(cls) -> BalanceAuditReport:
        """
        Replay every account's history and compare it to the cached values.

        An account is reported when its cached balance differs from the
        ledger sum beyond tolerance, or when any balance_after snapshot is
        inconsistent with the ordered history. Read-only.
        """
        accounts = list(BankAccount.objects.order_by("id"))
        discrepancies = []
        for account in accounts:
            inspected = BankLedgerService.inspect_account_balance(account.id)
            if inspected.corrected_row_count or inspected.old_balance.differs_materially(
                inspected.new_balance
            ):
                discrepancies.append(
                    BalanceDiscrepancy(
                        account_id=account.id,
                        account_name=account.name,
                        stored_balance=inspected.old_balance,
                        ledger_balance=inspected.new_balance,
                        drifted_rows=inspected.corrected_row_count,
                    )
                )

        cls.get_logger().info(
            f"Balance audit: {len(discrepancies)} of {len(accounts)} accounts drifted",
            extra={"checked": len(accounts), "discrepancies": len(discrepancies)},
        )
        return BalanceAuditReport(accounts_checked=len(accounts), discrepancies=discrepancies)

    @classmethod
    def apply_balance_fixes(
        cls,
        report: BalanceAuditReport | None = None,
        *,
        confirm: bool = False,
        performed_by=None,
    ) -> BalanceAuditReport:
        """
        Recompute every drifted account from its transaction history.

        Raises:
            ConfirmationRequiredError: If confirm is not True
            LockAcquisitionError: If another balance fix run is in progress
        """
        if confirm is not True:
            raise ConfirmationRequiredError(
                "Applying balance corrections requires explicit confirmation",
                details={"kind": AuditKind.ACCOUNT_BALANCE.value},
            )

        report = report or cls.audit_account_balances()
        targets = [item.account_id for item in report.discrepancies]
        run = cls._run(
            AuditKind.ACCOUNT_BALANCE,
            targets,
            cls._fix_account,
            checked=report.accounts_checked,
            performed_by=performed_by,
        )
        report.corrected = run.corrections_applied
        report.run_id = run.id
        return report

    @classmethod
    @retry_on_conflict
    def _fix_account(cls, run: AuditRun, account_id: Any) -> bool:
        with cls.atomic():
            result = BankLedgerService.recompute_account_balance(account_id)
            if not result.changed:
                return False
            DriftCorrection.objects.create(
                run=run,
                bank_account_id=result.account_id,
                before_cents=result.old_balance.cents,
                after_cents=result.new_balance.cents,
                corrected_rows=result.corrected_row_count,
            )

        cls.get_logger().warning(
            f"Corrected balance of account {account_id}: "
            f"{result.old_balance} -> {result.new_balance}",
            extra={
                "run_id": str(run.id),
                "account_id": str(account_id),
                "before": result.old_balance.cents,
                "after": result.new_balance.cents,
                "corrected_rows": result.corrected_row_count,
            },
        )
        return True

    @classmethod
    def assert_no_balance_drift(cls) -> BalanceAuditReport:
        """
        Strict balance audit.

        Raises:
            IntegrityViolationError: Listing every drifted account
        """
        report = cls.audit_account_balances()
        if report.has_drift:
            raise IntegrityViolationError(
                f"{len(report.discrepancies)} bank accounts have drifted balances",
                details={"discrepancies": [item.to_dict() for item in report.discrepancies]},
            )
        return report

    # ==========================================================================
    # Run bookkeeping
    # ==========================================================================

    @classmethod
    def _run(
        cls,
        kind: str,
        targets: list[Any],
        fix: Callable[[AuditRun, Any], bool],
        *,
        checked: int,
        performed_by=None,
    ) -> AuditRun:
        """Execute one apply-fix pass under the run lock and record it."""
        with DistributedLock(
            f"financial:audit:{kind}",
            ttl=settings.FINANCIAL_AUDIT_LOCK_TTL_SECONDS,
            blocking=False,
        ):
            run = AuditRun.objects.create(
                kind=kind,
                started_at=timezone.now(),
                entities_checked=checked,
                discrepancies_found=len(targets),
                performed_by=performed_by,
            )
            try:
                for target in targets:
                    if fix(run, target):
                        run.corrections_applied += 1
            except Exception as exc:
                run.status = AuditRunStatus.FAILED
                run.error_message = str(exc)
                run.completed_at = timezone.now()
                run.save()
                cls.get_logger().error(
                    f"Audit run {run.id} failed: {exc}",
                    extra={"run_id": str(run.id), "kind": kind},
                    exc_info=True,
                )
                raise

            run.status = AuditRunStatus.COMPLETED
            run.completed_at = timezone.now()
            run.save()

        cls.get_logger().info(
            f"Audit run {run.id} applied {run.corrections_applied} corrections",
            extra={
                "run_id": str(run.id),
                "kind": kind,
                "found": run.discrepancies_found,
                "corrected": run.corrections_applied,
            },
        )
        return run
