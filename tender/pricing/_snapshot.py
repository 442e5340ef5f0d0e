"""
Pricing snapshot — fully materialized breakdown of a cart at one instant.

A snapshot is a value, not a view: it holds no reference to the cart it
was computed from and survives JSON round-trips unchanged, so it can be
frozen into a payment intent and later into order rows.

Serialized amounts are integer minor units in the snapshot currency.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from tender.money import Money
from tender.pricing._types import ConditionType, Target


@dataclass(frozen=True, slots=True)
class ConditionLine:
    name: str
    type: ConditionType
    target: Target
    computed_amount: Money

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "target": self.target.value,
            "computed_amount": self.computed_amount.amount,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], currency: str) -> ConditionLine:
        return cls(
            name=data["name"],
            type=ConditionType(data["type"]),
            target=Target(data["target"]),
            computed_amount=Money(int(data["computed_amount"]), currency),
        )


@dataclass(frozen=True, slots=True)
class LineSnapshot:
    id: str
    name: str
    unit_price: Money
    quantity: int
    line_total: Money
    conditions: tuple[ConditionLine, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "unit_price": self.unit_price.amount,
            "quantity": self.quantity,
            "line_total": self.line_total.amount,
            "conditions": [c.to_dict() for c in self.conditions],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], currency: str) -> LineSnapshot:
        return cls(
            id=data["id"],
            name=data["name"],
            unit_price=Money(int(data["unit_price"]), currency),
            quantity=int(data["quantity"]),
            line_total=Money(int(data["line_total"]), currency),
            conditions=tuple(ConditionLine.from_dict(c, currency) for c in data.get("conditions", ())),
        )


@dataclass(frozen=True, slots=True)
class Totals:
    subtotal: Money
    subtotal_without_conditions: Money
    discount_total: Money
    tax_total: Money
    shipping_total: Money
    fee_total: Money
    total: Money
    savings: Money

    def to_dict(self) -> dict[str, int]:
        return {
            "subtotal": self.subtotal.amount,
            "subtotal_without_conditions": self.subtotal_without_conditions.amount,
            "discount_total": self.discount_total.amount,
            "tax_total": self.tax_total.amount,
            "shipping_total": self.shipping_total.amount,
            "fee_total": self.fee_total.amount,
            "total": self.total.amount,
            "savings": self.savings.amount,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], currency: str) -> Totals:
        def m(name: str) -> Money:
            return Money(int(data.get(name, 0)), currency)

        return cls(
            subtotal=m("subtotal"),
            subtotal_without_conditions=m("subtotal_without_conditions"),
            discount_total=m("discount_total"),
            tax_total=m("tax_total"),
            shipping_total=m("shipping_total"),
            fee_total=m("fee_total"),
            total=m("total"),
            savings=m("savings"),
        )


@dataclass(frozen=True, slots=True)
class PricingSnapshot:
    currency: str
    items: tuple[LineSnapshot, ...]
    conditions: tuple[ConditionLine, ...]
    totals: Totals

    @property
    def total(self) -> Money:
        return self.totals.total

    def condition(self, name: str) -> ConditionLine | None:
        return next((c for c in self.conditions if c.name == name), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "currency": self.currency,
            "items": [i.to_dict() for i in self.items],
            "conditions": [c.to_dict() for c in self.conditions],
            "totals": self.totals.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PricingSnapshot:
        currency = data["currency"]
        return cls(
            currency=currency,
            items=tuple(LineSnapshot.from_dict(i, currency) for i in data.get("items", ())),
            conditions=tuple(ConditionLine.from_dict(c, currency) for c in data.get("conditions", ())),
            totals=Totals.from_dict(data["totals"], currency),
        )


__all__ = ("ConditionLine", "LineSnapshot", "Totals", "PricingSnapshot")
