"""
Condition evaluator — condition × base → signed delta.

    evaluate(condition, base, state)
        ├── rules false  → NotApplicable   (left out of the snapshot)
        └── rules true   → Applied(delta)  (delta may be zero)
"""

from __future__ import annotations

from dataclasses import dataclass

from tender.errors import CurrencyMismatchError
from tender.money import Money, Rounding
from tender.pricing._condition import Condition
from tender.pricing._rules import CartState
from tender.pricing._types import Operator


@dataclass(frozen=True, slots=True)
class Applied:
    condition: Condition
    base: Money
    delta: Money


@dataclass(frozen=True, slots=True)
class NotApplicable:
    condition: Condition
    reason: str


type Evaluation = Applied | NotApplicable


def is_active(condition: Condition, state: CartState) -> bool:
    """True when every rule of the condition holds (static conditions always do)."""
    return all(r.evaluate(state) for r in condition.rules)


def compute_delta(
    condition: Condition,
    base: Money,
    rounding: Rounding = Rounding.HALF_UP,
) -> Money:
    """Signed effect of `condition` on `base`. Rules are not consulted."""
    if condition.currency is not None and condition.currency != base.currency:
        raise CurrencyMismatchError(base.currency, condition.currency, f"condition {condition.name!r}")

    expr = condition.expression
    match expr.operator:
        case Operator.PERCENT:
            amount = base.percent(expr.magnitude, rounding)
            return amount if expr.is_charge else -amount
        case Operator.ADD:
            return Money(int(expr.magnitude), base.currency)
        case Operator.SUBTRACT:
            return Money(-int(expr.magnitude), base.currency)
        case Operator.MULTIPLY:
            return base.scale(expr.magnitude, rounding) - base
        case Operator.DIVIDE:
            return base.divide(expr.magnitude, rounding) - base


def evaluate(
    condition: Condition,
    base: Money,
    state: CartState,
    rounding: Rounding = Rounding.HALF_UP,
) -> Evaluation:
    if not is_active(condition, state):
        return NotApplicable(condition, "rules not satisfied")
    return Applied(condition, base, compute_delta(condition, base, rounding))


__all__ = (
    "Applied",
    "NotApplicable",
    "Evaluation",
    "is_active",
    "compute_delta",
    "evaluate",
)
