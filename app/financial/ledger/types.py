"""
Data types for bank ledger operations.

Types:
    LegDirection: Which side of a transfer a TRANSFER posting is
    PostingReference: Weak reference carried by a posting
    TransferResult: Both legs and resulting balances of a transfer
    RecomputeResult: Outcome of a balance recomputation

Usage:
    from financial.ledger.types import PostingReference

    reference = PostingReference(reference_type="boleto", reference_id=str(boleto.id))
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import uuid

    from financial.ledger.models import Transaction
    from financial.money import Money


class LegDirection(str, enum.Enum):
    """Sign of a TRANSFER posting: DEBIT takes money out, CREDIT puts it in."""

    DEBIT = "debit"
    CREDIT = "credit"


@dataclass(frozen=True)
class PostingReference:
    """Weak pointer from a transaction to whatever caused it."""

    reference_type: str = ""
    reference_id: str = ""


@dataclass
class TransferResult:
    """
    Result of BankLedgerService.transfer().

    Attributes:
        debit: The leg posted on the source account
        credit: The leg posted on the destination account
        from_balance: Source balance after the transfer
        to_balance: Destination balance after the transfer
    """

    debit: Transaction
    credit: Transaction
    from_balance: Money
    to_balance: Money


@dataclass
class RecomputeResult:
    """
    Result of BankLedgerService.recompute_account_balance().

    Attributes:
        account_id: Account that was recomputed
        old_balance: Cached balance before the pass
        new_balance: Running total of all transaction amounts
        corrected_row_count: Transactions whose balance_after changed
    """

    account_id: uuid.UUID
    old_balance: Money
    new_balance: Money
    corrected_row_count: int

    @property
    def changed(self) -> bool:
        return self.corrected_row_count > 0 or self.old_balance != self.new_balance
