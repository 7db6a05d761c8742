"""
Base exception classes for application-wide error handling.

This module provides a standardized exception hierarchy that enables:
- Consistent error responses across the API
- Machine-readable error codes for the back-office client
- Detailed error information (ids, amounts) for operators

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Input or business-rule validation failures
    ├── NotFoundError - Resource not found
    └── ConflictError - State conflicts (terminal states, lock contention)

Usage:
    from core.exceptions import ValidationError, NotFoundError

    raise ValidationError("Amount must be positive", error_code="INVALID_AMOUNT")

    raise NotFoundError(
        "Customer 42 not found",
        error_code="CUSTOMER_NOT_FOUND",
        details={"customer_id": 42},
    )

    # Convert to dict for API response
    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=400)

Note:
    These exceptions are for domain/business logic errors.
    DRF handles API-layer exceptions (serialization, authentication, etc.).
    core.views.application_error_response maps them to HTTP status codes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (ids, amounts, states)

    Example:
        try:
            credit = CreditService.get_available_credit(customer_id)
        except NotFoundError as e:
            logger.warning(f"Customer not found: {e.error_code}")
            return Response(e.to_dict(), status=404)
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            error_code: Machine-readable error code (defaults to class default)
            details: Additional error context
        """
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Returns:
            Dict with error, error_code, and (when present) details keys

        Example:
            {
                "error": "Insufficient credit",
                "error_code": "INSUFFICIENT_CREDIT",
                "details": {"shortfall": "150.00"}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input or business-rule validation fails.

    Use for:
    - Non-positive monetary amounts
    - Missing required references (customer, account)
    - Operator actions that were not confirmed

    Example:
        raise ValidationError(
            "Amount must be greater than zero",
            error_code="INVALID_AMOUNT",
            details={"amount": "0.00"},
        )

    Note:
        For DRF serializer validation, use DRF's built-in validation.
        Use this for service-layer validation logic.
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested resource is not found.

    Example:
        customer = Customer.objects.filter(id=customer_id).first()
        if not customer:
            raise NotFoundError(
                f"Customer {customer_id} not found",
                error_code="CUSTOMER_NOT_FOUND",
                details={"customer_id": customer_id},
            )

    Note:
        Inbound provider events treat a missing obligation as a logged
        no-op rather than raising this.
    """

    default_error_code: str = "NOT_FOUND"


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current resource state.

    Use for:
    - Transitions out of terminal states (PAID, CANCELLED)
    - Lock contention that survived the bounded retry
    - Drift detected by a strict audit

    Example:
        if boleto.status == ObligationStatus.PAID:
            raise ConflictError(
                "Boleto is already paid",
                error_code="INVALID_STATE_TRANSITION",
                details={"current_status": boleto.status, "action": "cancel"},
            )

    Note:
        HTTP 409 Conflict is the appropriate status for these errors.
    """

    default_error_code: str = "CONFLICT"
