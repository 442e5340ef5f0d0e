"""
Rules — predicates that switch a dynamic condition on or off.

Each rule is a small frozen value with one method:

    rule.evaluate(state: CartState) -> bool

Rules are tagged by `kind` so they round-trip through JSON:

    rule("min_total", amount=5000)          # build by key
    rule_from_dict({"kind": "min_items", "count": 3})

A condition whose rules do not all hold is left out of the snapshot
entirely; it is never applied as a zero.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, replace
from typing import Any, ClassVar, Protocol

from tender.errors import InvalidConditionError
from tender.money import Money
from tender.pricing._types import PricedItem


# ═══════════════════════════════════════════════════════════════════════════════
# CartState — read-only view handed to rules
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CartState:
    """
    What a rule may look at.

    `subtotal` is the sum of line totals after item-level conditions (during
    the item pass it equals `subtotal_without_conditions`). `item` is set
    while an item-level condition is evaluated.
    """

    currency: str
    items: tuple[PricedItem, ...]
    subtotal: Money
    subtotal_without_conditions: Money
    metadata: Mapping[str, Any] = field(default_factory=dict)
    item: PricedItem | None = None

    @property
    def item_count(self) -> int:
        return len(self.items)

    @property
    def total_quantity(self) -> int:
        return sum(i.quantity for i in self.items)

    def find(self, item_id: str) -> PricedItem | None:
        return next((i for i in self.items if i.id == item_id), None)

    def for_item(self, item: PricedItem) -> CartState:
        return replace(self, item=item)


# ═══════════════════════════════════════════════════════════════════════════════
# Rule protocol + registry
# ═══════════════════════════════════════════════════════════════════════════════


class Rule(Protocol):
    kind: ClassVar[str]

    def evaluate(self, state: CartState) -> bool: ...


_REGISTRY: dict[str, type[Any]] = {}


def register_rule[R](cls: type[R]) -> type[R]:
    """Class decorator: make a rule buildable by its `kind`."""
    kind = getattr(cls, "kind", None)
    if not kind:
        raise TypeError(f"{cls.__name__} has no kind")
    _REGISTRY[kind] = cls
    return cls


def rule(kind: str, **params: Any) -> Rule:
    """Build a registered rule by key."""
    cls = _REGISTRY.get(kind)
    if cls is None:
        raise InvalidConditionError(f"Unknown rule: {kind!r}")
    try:
        return cls(**params)
    except TypeError as e:
        raise InvalidConditionError(f"Bad parameters for rule {kind!r}: {e}") from e


def rule_to_dict(r: Rule) -> dict[str, Any]:
    return {"kind": r.kind, **asdict(r)}  # type: ignore[call-overload]


def rule_from_dict(data: Mapping[str, Any]) -> Rule:
    params = {k: v for k, v in data.items() if k != "kind"}
    return rule(str(data.get("kind", "")), **params)


def rule_kinds() -> tuple[str, ...]:
    return tuple(sorted(_REGISTRY))


# ═══════════════════════════════════════════════════════════════════════════════
# Built-in rules
# ═══════════════════════════════════════════════════════════════════════════════


@register_rule
@dataclass(frozen=True, slots=True)
class Always:
    kind: ClassVar[str] = "always"

    def evaluate(self, state: CartState) -> bool:
        return True


@register_rule
@dataclass(frozen=True, slots=True)
class Never:
    kind: ClassVar[str] = "never"

    def evaluate(self, state: CartState) -> bool:
        return False


@register_rule
@dataclass(frozen=True, slots=True)
class MinTotal:
    """Subtotal is at least `amount` minor units."""

    amount: int
    kind: ClassVar[str] = "min_total"

    def evaluate(self, state: CartState) -> bool:
        return state.subtotal.amount >= self.amount


@register_rule
@dataclass(frozen=True, slots=True)
class MaxTotal:
    """Subtotal is at most `amount` minor units."""

    amount: int
    kind: ClassVar[str] = "max_total"

    def evaluate(self, state: CartState) -> bool:
        return state.subtotal.amount <= self.amount


@register_rule
@dataclass(frozen=True, slots=True)
class MinItems:
    """At least `count` distinct lines."""

    count: int
    kind: ClassVar[str] = "min_items"

    def evaluate(self, state: CartState) -> bool:
        return state.item_count >= self.count


@register_rule
@dataclass(frozen=True, slots=True)
class MaxItems:
    count: int
    kind: ClassVar[str] = "max_items"

    def evaluate(self, state: CartState) -> bool:
        return state.item_count <= self.count


@register_rule
@dataclass(frozen=True, slots=True)
class MinQuantity:
    """Summed quantity over all lines is at least `quantity`."""

    quantity: int
    kind: ClassVar[str] = "min_quantity"

    def evaluate(self, state: CartState) -> bool:
        return state.total_quantity >= self.quantity


@register_rule
@dataclass(frozen=True, slots=True)
class HasItem:
    item_id: str
    kind: ClassVar[str] = "has_item"

    def evaluate(self, state: CartState) -> bool:
        return state.find(self.item_id) is not None


@register_rule
@dataclass(frozen=True, slots=True)
class MissingItem:
    item_id: str
    kind: ClassVar[str] = "missing_item"

    def evaluate(self, state: CartState) -> bool:
        return state.find(self.item_id) is None


@register_rule
@dataclass(frozen=True, slots=True)
class MetadataEquals:
    key: str
    value: Any
    kind: ClassVar[str] = "metadata_equals"

    def evaluate(self, state: CartState) -> bool:
        return self.key in state.metadata and state.metadata[self.key] == self.value


@register_rule
@dataclass(frozen=True, slots=True)
class HasMetadata:
    key: str
    kind: ClassVar[str] = "has_metadata"

    def evaluate(self, state: CartState) -> bool:
        return state.metadata.get(self.key) not in (None, "", [], {})


@register_rule
@dataclass(frozen=True, slots=True)
class CurrencyIs:
    currency: str
    kind: ClassVar[str] = "currency_is"

    def evaluate(self, state: CartState) -> bool:
        return state.currency == self.currency.upper()


@register_rule
@dataclass(frozen=True, slots=True)
class ItemQuantityAtLeast:
    """
    The item under evaluation (or, for cart-level conditions, any item)
    has quantity >= `quantity`.
    """

    quantity: int
    kind: ClassVar[str] = "item_quantity_at_least"

    def evaluate(self, state: CartState) -> bool:
        if state.item is not None:
            return state.item.quantity >= self.quantity
        return any(i.quantity >= self.quantity for i in state.items)


@register_rule
@dataclass(frozen=True, slots=True)
class ItemPriceAtLeast:
    amount: int
    kind: ClassVar[str] = "item_price_at_least"

    def evaluate(self, state: CartState) -> bool:
        if state.item is not None:
            return state.item.unit_price.amount >= self.amount
        return any(i.unit_price.amount >= self.amount for i in state.items)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "CartState",
    "Rule",
    "register_rule",
    "rule",
    "rule_to_dict",
    "rule_from_dict",
    "rule_kinds",
    "Always",
    "Never",
    "MinTotal",
    "MaxTotal",
    "MinItems",
    "MaxItems",
    "MinQuantity",
    "HasItem",
    "MissingItem",
    "MetadataEquals",
    "HasMetadata",
    "CurrencyIs",
    "ItemQuantityAtLeast",
    "ItemPriceAtLeast",
)
