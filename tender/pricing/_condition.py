"""
Condition — a named, typed adjustment of a monetary base.

    Condition(
        name="promo",
        type=ConditionType.DISCOUNT,
        target=Target.SUBTOTAL,
        value="-10%",
        priority=1,
    )

Everything about the effect is derived from `value` at construction, so
an invalid condition never exists.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from tender.errors import InvalidConditionError
from tender.money import validate_currency
from tender.pricing._rules import Rule, rule_from_dict, rule_to_dict
from tender.pricing._types import (
    ConditionType,
    Expression,
    Operator,
    Target,
    parse_value,
)


@dataclass(frozen=True, slots=True)
class Condition:
    name: str
    type: ConditionType
    target: Target
    value: str | int | Decimal
    priority: int = 0
    rules: tuple[Rule, ...] = ()
    stackable: bool = True
    exclusion_group: str | None = None
    currency: str | None = None
    attributes: Mapping[str, Any] = field(default_factory=dict)
    expression: Expression = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise InvalidConditionError("Condition name must be a non-empty string")
        try:
            object.__setattr__(self, "type", ConditionType(self.type))
            object.__setattr__(self, "target", Target(self.target))
        except ValueError as e:
            raise InvalidConditionError(f"Condition {self.name!r}: {e}") from e
        if isinstance(self.priority, bool) or not isinstance(self.priority, int):
            raise InvalidConditionError(f"Condition {self.name!r}: priority must be int")
        if self.currency is not None:
            validate_currency(self.currency)
        object.__setattr__(self, "rules", tuple(self.rules))
        object.__setattr__(self, "expression", parse_value(self.value, self.type))

    # ── Derived flags ──

    @property
    def operator(self) -> Operator:
        return self.expression.operator

    @property
    def is_percentage(self) -> bool:
        return self.expression.is_percentage

    @property
    def is_charge(self) -> bool:
        return self.expression.is_charge

    @property
    def is_discount(self) -> bool:
        return self.expression.is_discount

    @property
    def is_dynamic(self) -> bool:
        return bool(self.rules)

    # ── Serialization ──

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "target": self.target.value,
            "value": str(self.value) if isinstance(self.value, Decimal) else self.value,
            "priority": self.priority,
            "rules": [rule_to_dict(r) for r in self.rules],
            "stackable": self.stackable,
            "exclusion_group": self.exclusion_group,
            "currency": self.currency,
            "attributes": dict(self.attributes),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Condition:
        try:
            return cls(
                name=data["name"],
                type=ConditionType(data["type"]),
                target=Target(data["target"]),
                value=data["value"],
                priority=int(data.get("priority", 0)),
                rules=tuple(rule_from_dict(r) for r in data.get("rules", ())),
                stackable=bool(data.get("stackable", True)),
                exclusion_group=data.get("exclusion_group"),
                currency=data.get("currency"),
                attributes=dict(data.get("attributes") or {}),
            )
        except (KeyError, ValueError) as e:
            raise InvalidConditionError(f"Malformed condition: {e}") from e


__all__ = ("Condition",)
