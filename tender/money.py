"""
Money — fixed-point monetary value.

    Money(amount=1999, currency="USD")   # 19.99 USD

Amounts are integer minor units. Every binary operation requires both
sides to share a currency. Scaling by a factor rounds exactly once, at
the end of the computation, with an explicit Rounding rule.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, ROUND_HALF_EVEN
from enum import Enum
from typing import Any

from tender.errors import CurrencyMismatchError, InvalidCurrencyError

_CURRENCY = re.compile(r"[A-Z]{3}")


# ═══════════════════════════════════════════════════════════════════════════════
# Rounding
# ═══════════════════════════════════════════════════════════════════════════════


class Rounding(Enum):
    """
    Rounding rule for the final step of a computation.

    HALF_UP rounds ties away from zero (2.5 → 3, -2.5 → -3).
    """

    HALF_UP = ROUND_HALF_UP
    HALF_EVEN = ROUND_HALF_EVEN


def round_minor(value: Decimal, rounding: Rounding = Rounding.HALF_UP) -> int:
    """Round a Decimal amount to whole minor units."""
    return int(value.quantize(Decimal(1), rounding=rounding.value))


def validate_currency(code: str) -> str:
    if not isinstance(code, str) or not _CURRENCY.fullmatch(code):
        raise InvalidCurrencyError(f"Invalid currency code: {code!r}")
    return code


# ═══════════════════════════════════════════════════════════════════════════════
# Money
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Money:
    amount: int
    currency: str

    def __post_init__(self) -> None:
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise TypeError(f"Money amount must be int minor units, got {self.amount!r}")
        validate_currency(self.currency)

    # ── Construction ──

    @classmethod
    def zero(cls, currency: str) -> Money:
        return cls(0, currency)

    @classmethod
    def of(cls, amount: int, currency: str) -> Money:
        return cls(amount, currency)

    @classmethod
    def sum_of(cls, values: Iterable[Money], currency: str) -> Money:
        total = cls.zero(currency)
        for value in values:
            total = total + value
        return total

    # ── Arithmetic ──

    def _same(self, other: Money) -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency, other.currency)

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._same(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._same(other)
        return Money(self.amount - other.amount, self.currency)

    def __neg__(self) -> Money:
        return Money(-self.amount, self.currency)

    def __abs__(self) -> Money:
        return Money(abs(self.amount), self.currency)

    def scale(self, factor: Decimal, rounding: Rounding = Rounding.HALF_UP) -> Money:
        """amount × factor, rounded once."""
        return Money(round_minor(Decimal(self.amount) * factor, rounding), self.currency)

    def divide(self, divisor: Decimal, rounding: Rounding = Rounding.HALF_UP) -> Money:
        """amount ÷ divisor, rounded once."""
        if divisor == 0:
            raise ZeroDivisionError("Money divided by zero")
        return Money(round_minor(Decimal(self.amount) / divisor, rounding), self.currency)

    def percent(self, pct: Decimal, rounding: Rounding = Rounding.HALF_UP) -> Money:
        """pct percent of this amount, rounded once."""
        return Money(round_minor(Decimal(self.amount) * pct / 100, rounding), self.currency)

    # ── Comparison ──

    def __lt__(self, other: Money) -> bool:
        self._same(other)
        return self.amount < other.amount

    def __le__(self, other: Money) -> bool:
        self._same(other)
        return self.amount <= other.amount

    def __gt__(self, other: Money) -> bool:
        self._same(other)
        return self.amount > other.amount

    def __ge__(self, other: Money) -> bool:
        self._same(other)
        return self.amount >= other.amount

    def is_zero(self) -> bool:
        return self.amount == 0

    def is_negative(self) -> bool:
        return self.amount < 0

    def is_positive(self) -> bool:
        return self.amount > 0

    # ── Serialization ──

    def to_dict(self) -> dict[str, Any]:
        return {"amount": self.amount, "currency": self.currency}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Money:
        return cls(int(data["amount"]), str(data["currency"]))

    def __str__(self) -> str:
        return f"{Decimal(self.amount) / 100:.2f} {self.currency}"


__all__ = ("Money", "Rounding", "round_minor", "validate_currency")
