"""
Pricing configuration — explicit defaults handed to the engine.
"""

from __future__ import annotations

from dataclasses import dataclass

from tender.money import Rounding, validate_currency


@dataclass(frozen=True, slots=True)
class PricingConfig:
    """
    Engine defaults.

    Example:
        config = (
            PricingConfig()
            .with_currency("EUR")
            .with_floor_at_zero()
        )

    currency: used when a cart does not declare its own
    rounding: applied once per computed delta
    floor_at_zero: clamp negative line/cart totals to 0 instead of failing
    """

    currency: str = "USD"
    rounding: Rounding = Rounding.HALF_UP
    floor_at_zero: bool = False

    def __post_init__(self) -> None:
        validate_currency(self.currency)

    def with_currency(self, currency: str) -> PricingConfig:
        return PricingConfig(
            currency=currency,
            rounding=self.rounding,
            floor_at_zero=self.floor_at_zero,
        )

    def with_rounding(self, rounding: Rounding) -> PricingConfig:
        return PricingConfig(
            currency=self.currency,
            rounding=rounding,
            floor_at_zero=self.floor_at_zero,
        )

    def with_floor_at_zero(self, enabled: bool = True) -> PricingConfig:
        return PricingConfig(
            currency=self.currency,
            rounding=self.rounding,
            floor_at_zero=enabled,
        )


__all__ = ("PricingConfig",)
