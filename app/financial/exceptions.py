"""
Financial domain exceptions.

This module defines exceptions for credit, obligation, reconciliation and
audit operations. Bank ledger errors live in financial.ledger.exceptions.

Exception Hierarchy:
    BaseApplicationError (core)
    ├── FinancialError
    │   ├── InsufficientCreditError - Order total exceeds available credit
    │   └── IntegrityViolationError - Audit found drift beyond tolerance
    ├── NotFoundError (core)
    │   ├── CustomerNotFound
    │   └── ObligationNotFound
    ├── ConflictError (core)
    │   ├── InvalidTransitionError - Move out of a terminal state
    │   ├── ConcurrencyConflictError - Lock contention after bounded retry
    │   └── LockAcquisitionError - Redis run lock already held
    └── ValidationError (core)
        ├── InvalidAmountError - Non-positive or malformed amount
        └── ConfirmationRequiredError - Apply-fix not confirmed

Usage:
    from financial.exceptions import InsufficientCreditError

    raise InsufficientCreditError(
        customer_id=customer.id,
        required=order_total,
        available=available,
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any

    from financial.money import Money


class FinancialError(BaseApplicationError):
    """Base exception for financial domain errors."""

    default_error_code: str = "FINANCIAL_ERROR"


# =============================================================================
# Not Found
# =============================================================================


class CustomerNotFound(NotFoundError):
    """Raised when a customer does not exist."""

    default_error_code: str = "CUSTOMER_NOT_FOUND"


class ObligationNotFound(NotFoundError):
    """
    Raised when neither a boleto nor a receivable matches an id.

    Not raised for inbound provider events: an unknown provider reference
    is a logged no-op there.
    """

    default_error_code: str = "OBLIGATION_NOT_FOUND"


# =============================================================================
# Validation
# =============================================================================


class InvalidAmountError(ValidationError):
    """Raised when a monetary amount is zero, negative or malformed."""

    default_error_code: str = "INVALID_AMOUNT"


class ConfirmationRequiredError(ValidationError):
    """
    Raised when an apply-fix pass is requested without confirmation.

    Corrections move money-equivalent state, so the caller must pass an
    explicit confirmation flag.
    """

    default_error_code: str = "CONFIRMATION_REQUIRED"


# =============================================================================
# Conflicts
# =============================================================================


class InvalidTransitionError(ConflictError):
    """
    Raised when an obligation cannot make the requested transition.

    Typical causes: paying or cancelling an obligation that is already
    PAID or CANCELLED, or paying a receivable that is represented by an
    active boleto.
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        message: str,
        current_status: str | None = None,
        action: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        merged = dict(details or {})
        if current_status is not None:
            merged["current_status"] = current_status
        if action is not None:
            merged["action"] = action
        super().__init__(message, details=merged)


class ConcurrencyConflictError(ConflictError):
    """
    Raised when a unit of work keeps failing on lock contention.

    Serialization failures are retried a bounded number of times
    (FINANCIAL_CONFLICT_MAX_RETRIES) before this surfaces. The caller may
    safely retry the whole operation.
    """

    default_error_code: str = "CONCURRENCY_CONFLICT"


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed run lock is held by another process.

    Example:
        with DistributedLock("financial:audit:credit", blocking=False):
            ...  # raises LockAcquisitionError if another operator is applying fixes
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


# =============================================================================
# Credit and audit
# =============================================================================


class InsufficientCreditError(FinancialError):
    """
    Raised when an order total exceeds the customer's available credit.

    Carries the computed shortfall so the order screen can show how much
    is missing.

    Attributes:
        customer_id: The customer being checked
        required: The order total
        available: The available credit at check time
        shortfall: required - available
    """

    default_error_code: str = "INSUFFICIENT_CREDIT"
    http_status = 400

    def __init__(self, customer_id: Any, required: Money, available: Money):
        self.customer_id = customer_id
        self.required = required
        self.available = available
        self.shortfall = required - available
        super().__init__(
            f"Insufficient credit: order total {required}, available {available}, "
            f"shortfall {self.shortfall}",
            details={
                "customer_id": str(customer_id),
                "required": str(required.amount),
                "available": str(available.amount),
                "shortfall": str(self.shortfall.amount),
            },
        )


class IntegrityViolationError(FinancialError):
    """
    Raised by strict audits when drift beyond tolerance is found.

    Never auto-corrected: the operator decides whether to run the
    confirmed apply-fix pass.
    """

    default_error_code: str = "INTEGRITY_VIOLATION"
    http_status = 409
