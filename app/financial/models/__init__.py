"""
Financial domain models.

This module contains all financial models:
- Boleto: Payment-slip obligation with a provider charge reference
- Receivable: Generic amount owed, optionally represented by a boleto
- ProviderWebhookEvent: Journal of payment-provider webhook deliveries
- AuditRun: A confirmed apply-fix pass
- DriftCorrection: Before/after trail of one corrected cached value
- BankAccount, Transaction: Bank ledger (defined in financial.ledger.models)
"""

from financial.ledger.models import BankAccount, Transaction, TransactionType
from financial.models.audit import AuditRun, DriftCorrection
from financial.models.obligations import Boleto, Receivable
from financial.models.webhook_event import ProviderWebhookEvent

__all__ = [
    "AuditRun",
    "BankAccount",
    "Boleto",
    "DriftCorrection",
    "ProviderWebhookEvent",
    "Receivable",
    "Transaction",
    "TransactionType",
]
