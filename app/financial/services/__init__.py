"""
Financial services.

Public API:
    ObligationAggregator: Outstanding debt without double counting
    CreditService: Available credit derivation and persistence
    ObligationService: Boleto/receivable lifecycle and manual override
    PaymentReconciler: Provider payment confirmations
    DriftAuditService: Dry-run audits and confirmed corrections

Bank ledger operations live in financial.ledger.services.
"""

from .audit_service import (
    BalanceAuditReport,
    BalanceDiscrepancy,
    CreditAuditReport,
    CreditDiscrepancy,
    DriftAuditService,
)
from .credit_service import CreditService, CreditSnapshot
from .obligation_aggregator import DebtBreakdown, ObligationAggregator
from .obligation_service import (
    BatchReceiptResult,
    ManualPaymentResult,
    ObligationService,
    OverdueSweepResult,
)
from .payment_reconciler import (
    PaymentReconciler,
    ReconciliationOutcome,
    ReconciliationResult,
)

__all__ = [
    "BalanceAuditReport",
    "BalanceDiscrepancy",
    "BatchReceiptResult",
    "CreditAuditReport",
    "CreditDiscrepancy",
    "CreditService",
    "CreditSnapshot",
    "DebtBreakdown",
    "DriftAuditService",
    "ManualPaymentResult",
    "ObligationAggregator",
    "ObligationService",
    "OverdueSweepResult",
    "PaymentReconciler",
    "ReconciliationOutcome",
    "ReconciliationResult",
]
