"""
Pricing errors — configuration bugs, surfaced synchronously.

None of these are transient: a malformed condition or a currency mix-up
fails the same way on every retry, so they are raised, not wrapped in
Result.
"""


class PricingError(Exception):
    """Base class for pricing configuration errors."""


class InvalidConditionError(PricingError):
    """Condition value or definition cannot be parsed."""


class InvalidCurrencyError(PricingError):
    """Currency code is not a 3-letter ISO code."""


class CurrencyMismatchError(PricingError):
    """Two amounts (or a condition and a cart) disagree on currency."""

    def __init__(self, expected: str, actual: str, context: str = "") -> None:
        self.expected = expected
        self.actual = actual
        where = f" ({context})" if context else ""
        super().__init__(f"Currency mismatch{where}: expected {expected}, got {actual}")


class NegativeTotalError(PricingError):
    """Applying conditions drove a total below zero without a floor policy."""

    def __init__(self, scope: str, amount: int) -> None:
        self.scope = scope
        self.amount = amount
        super().__init__(f"Negative {scope}: {amount}")


__all__ = (
    "PricingError",
    "InvalidConditionError",
    "InvalidCurrencyError",
    "CurrencyMismatchError",
    "NegativeTotalError",
)
