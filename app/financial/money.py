"""
Fixed-precision monetary value type.

Every obligation amount, credit figure and bank balance in the financial
app flows through Money. Amounts are held as an integer number of cents;
the 2-decimal Decimal view is derived on demand, so sums of many
obligations never accumulate floating-point error.

Usage:
    from financial.money import Money

    limit = Money.from_decimal("1000.00")
    debt = Money(cents=30000) + Money(cents=20000)
    available = (limit - debt).clamp(Money.zero(), limit)
    print(available)  # "R$ 500.00"

    # Material discrepancy check (tolerance = 1 cent)
    Money(cents=50000).differs_materially(Money(cents=50001))  # False

Note:
    The system runs on a single currency (BRL). Money deliberately has no
    currency attribute.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from functools import total_ordering

CENT = Decimal("0.01")

# Differences at or below this many cents are rounding noise
TOLERANCE_CENTS = 1


@total_ordering
@dataclass(frozen=True)
class Money:
    """
    Represents a monetary amount in cents.

    Attributes:
        cents: Amount in the smallest currency unit (centavos)

    Example:
        amount = Money(cents=5000)
        print(amount)  # "R$ 50.00"

        refund = -amount
        print(refund.amount)  # Decimal("-50.00")
    """

    cents: int

    def __post_init__(self) -> None:
        if isinstance(self.cents, bool) or not isinstance(self.cents, int):
            raise TypeError(f"Money cents must be an int, got {type(self.cents).__name__}")

    # ==========================================================================
    # Construction
    # ==========================================================================

    @classmethod
    def zero(cls) -> Money:
        return cls(cents=0)

    @classmethod
    def from_decimal(cls, value: Decimal | str | int) -> Money:
        """
        Build Money from a major-unit value.

        Values with more than two decimal places are rounded half-up
        (commercial rounding). Floats are rejected because they cannot
        represent most cent amounts exactly.

        Raises:
            TypeError: If value is a float
            ValueError: If value is not a finite number
        """
        if isinstance(value, float):
            raise TypeError("Money cannot be built from float; pass a str or Decimal")
        try:
            quantized = Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
        except (InvalidOperation, ValueError) as exc:
            raise ValueError(f"Invalid monetary value: {value!r}") from exc
        if not quantized.is_finite():
            raise ValueError(f"Invalid monetary value: {value!r}")
        return cls(cents=int(quantized * 100))

    @classmethod
    def sum(cls, values) -> Money:
        """Sum an iterable of Money (empty iterable gives zero)."""
        total = 0
        for value in values:
            total += value.cents
        return cls(cents=total)

    # ==========================================================================
    # Views
    # ==========================================================================

    @property
    def amount(self) -> Decimal:
        """The value in major units with exactly two decimal places."""
        return (Decimal(self.cents) / 100).quantize(CENT)

    def is_zero(self) -> bool:
        return self.cents == 0

    def is_positive(self) -> bool:
        return self.cents > 0

    def is_negative(self) -> bool:
        return self.cents < 0

    # ==========================================================================
    # Arithmetic
    # ==========================================================================

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(cents=self.cents + other.cents)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(cents=self.cents - other.cents)

    def __neg__(self) -> Money:
        return Money(cents=-self.cents)

    def __abs__(self) -> Money:
        return Money(cents=abs(self.cents))

    def __mul__(self, rate: Decimal | int) -> Money:
        """Multiply by a rate, rounding the result half-up to the cent."""
        if isinstance(rate, float) or isinstance(rate, Money):
            return NotImplemented
        product = (Decimal(self.cents) * Decimal(rate)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
        return Money(cents=int(product))

    __rmul__ = __mul__

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.cents < other.cents

    def clamp(self, lower: Money, upper: Money) -> Money:
        """Restrict the value to [lower, upper]."""
        if lower > upper:
            raise ValueError(f"Invalid clamp range: {lower} > {upper}")
        return max(lower, min(self, upper))

    def differs_materially(self, other: Money, tolerance_cents: int = TOLERANCE_CENTS) -> bool:
        """True when the two values differ by more than the tolerance."""
        return abs(self.cents - other.cents) > tolerance_cents

    # ==========================================================================
    # Formatting
    # ==========================================================================

    def __str__(self) -> str:
        return f"R$ {self.amount}"

    def __repr__(self) -> str:
        return f"Money(cents={self.cents})"
