"""
Pricing types — condition vocabulary and value expressions.

A condition value is a tiny expression:

    "+10%"   charge, 10 percent of the base
    "-5%"    discount, 5 percent of the base
    "6%"     unsigned: discount for type=discount, charge otherwise
    "-500"   discount, 500 minor units
    "*1.1"   multiply the base (charge)
    "/2"     divide the base (discount)

Parsing never coerces: anything malformed raises InvalidConditionError.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import StrEnum
from typing import Any, Protocol

from tender.errors import InvalidConditionError
from tender.money import Money


# ═══════════════════════════════════════════════════════════════════════════════
# Vocabulary
# ═══════════════════════════════════════════════════════════════════════════════


class ConditionType(StrEnum):
    DISCOUNT = "discount"
    TAX = "tax"
    FEE = "fee"
    SHIPPING = "shipping"


class Target(StrEnum):
    """
    Which base a condition reads.

    ITEM:     the line total of the item it is attached to
    SUBTOTAL: the cart subtotal, before any cart-level condition
    TOTAL:    the running total, after every earlier cart-level condition
    """

    ITEM = "item"
    SUBTOTAL = "subtotal"
    TOTAL = "total"


class Operator(StrEnum):
    ADD = "+"
    SUBTRACT = "-"
    MULTIPLY = "*"
    DIVIDE = "/"
    PERCENT = "%"


# ═══════════════════════════════════════════════════════════════════════════════
# Expression — parsed condition value
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Expression:
    """
    Parsed value of a condition.

    magnitude is always >= 0; direction lives in is_charge.
    For MULTIPLY/DIVIDE, magnitude is the factor itself.
    """

    operator: Operator
    magnitude: Decimal
    is_charge: bool

    @property
    def is_percentage(self) -> bool:
        return self.operator is Operator.PERCENT

    @property
    def is_discount(self) -> bool:
        return not self.is_charge


def _number(text: str, raw: object) -> Decimal:
    if not text or text[0] in "+-":
        raise InvalidConditionError(f"Malformed condition value: {raw!r}")
    try:
        number = Decimal(text)
    except InvalidOperation as e:
        raise InvalidConditionError(f"Malformed condition value: {raw!r}") from e
    if not number.is_finite():
        raise InvalidConditionError(f"Condition value must be finite: {raw!r}")
    return number


def parse_value(value: str | int | Decimal, condition_type: ConditionType) -> Expression:
    """Parse a condition value into an Expression."""
    if isinstance(value, bool) or not isinstance(value, (str, int, Decimal)):
        raise InvalidConditionError(f"Unsupported condition value: {value!r}")

    text = str(value).strip()
    is_percentage = text.endswith("%")
    if is_percentage:
        text = text[:-1].rstrip()

    prefix = text[:1]
    if prefix in ("+", "-", "*", "/"):
        text = text[1:].lstrip()
    else:
        prefix = ""

    number = _number(text, value)

    if prefix in ("*", "/"):
        if is_percentage:
            raise InvalidConditionError(f"'%' cannot be combined with '{prefix}': {value!r}")
        if number <= 0:
            raise InvalidConditionError(f"Factor must be positive: {value!r}")
        operator = Operator.MULTIPLY if prefix == "*" else Operator.DIVIDE
        if number == 1:
            is_charge = condition_type is not ConditionType.DISCOUNT
        elif operator is Operator.MULTIPLY:
            is_charge = number > 1
        else:
            is_charge = number < 1
        return Expression(operator, number, is_charge)

    match prefix:
        case "+":
            is_charge = True
        case "-":
            is_charge = False
        case _:
            is_charge = condition_type is not ConditionType.DISCOUNT

    if is_percentage:
        return Expression(Operator.PERCENT, number, is_charge)

    if number != number.to_integral_value():
        raise InvalidConditionError(f"Fixed amounts are whole minor units: {value!r}")
    return Expression(Operator.ADD if is_charge else Operator.SUBTRACT, number, is_charge)


# ═══════════════════════════════════════════════════════════════════════════════
# Priced shapes — what the engine reads from a cart
# ═══════════════════════════════════════════════════════════════════════════════


class PricedItem(Protocol):
    id: str
    name: str
    unit_price: Money
    quantity: int
    attributes: Mapping[str, Any]

    @property
    def conditions(self) -> Sequence[Any]: ...


class PricedCart(Protocol):
    currency: str

    @property
    def items(self) -> Sequence[PricedItem]: ...

    @property
    def conditions(self) -> Sequence[Any]: ...

    @property
    def metadata(self) -> Mapping[str, Any]: ...


__all__ = (
    "ConditionType",
    "Target",
    "Operator",
    "Expression",
    "parse_value",
    "PricedItem",
    "PricedCart",
)
