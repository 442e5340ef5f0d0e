"""
Cart types — the mutable aggregate.

The cart is the only writable copy of "current" state. It is never the
record of what was charged; that lives in the frozen snapshot of a
payment intent.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from tender.money import Money
from tender.pricing import Condition

INTENT_KEY = "payment_intent"
INTENT_HISTORY_KEY = "payment_intent_history"

# Checkout bookkeeping that outlives a cart clear, so an in-flight
# purchase can still be finalized.
BOOKKEEPING_KEYS = (INTENT_KEY, INTENT_HISTORY_KEY)


@dataclass(frozen=True, slots=True)
class CartKey:
    """Cart identity: (identifier, instance)."""

    identifier: str
    instance: str = "default"

    def __str__(self) -> str:
        return f"{self.identifier}:{self.instance}"

    @classmethod
    def parse(cls, reference: str) -> CartKey:
        """Inverse of str(): the instance is the part after the last ':'."""
        identifier, sep, instance = reference.rpartition(":")
        if not sep or not identifier or not instance:
            return cls(reference)
        return cls(identifier, instance)


@dataclass(slots=True)
class CartItem:
    id: str
    name: str
    unit_price: Money
    quantity: int
    conditions: list[Condition] = field(default_factory=list)
    attributes: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity <= 0:
            raise ValueError(f"Quantity must be a positive integer, got {self.quantity!r}")

    def find_condition(self, name: str) -> Condition | None:
        return next((c for c in self.conditions if c.name == name), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "unit_price": self.unit_price.to_dict(),
            "quantity": self.quantity,
            "conditions": [c.to_dict() for c in self.conditions],
            "attributes": dict(self.attributes),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CartItem:
        return cls(
            id=data["id"],
            name=data["name"],
            unit_price=Money.from_dict(data["unit_price"]),
            quantity=int(data["quantity"]),
            conditions=[Condition.from_dict(c) for c in data.get("conditions", ())],
            attributes=dict(data.get("attributes") or {}),
        )


@dataclass(slots=True)
class Cart:
    identifier: str
    instance: str = "default"
    currency: str = "USD"
    items: list[CartItem] = field(default_factory=list)
    conditions: list[Condition] = field(default_factory=list)
    version: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> CartKey:
        return CartKey(self.identifier, self.instance)

    def is_empty(self) -> bool:
        return not self.items

    def total_quantity(self) -> int:
        return sum(i.quantity for i in self.items)

    def find_item(self, item_id: str) -> CartItem | None:
        return next((i for i in self.items if i.id == item_id), None)

    def find_condition(self, name: str) -> Condition | None:
        return next((c for c in self.conditions if c.name == name), None)

    @property
    def payment_intent(self) -> dict[str, Any] | None:
        return self.metadata.get(INTENT_KEY)

    def clear(self, keep: tuple[str, ...] = BOOKKEEPING_KEYS) -> None:
        """Drop items, conditions and metadata (except `keep`)."""
        self.items = []
        self.conditions = []
        self.metadata = {k: v for k, v in self.metadata.items() if k in keep}

    def to_dict(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier,
            "instance": self.instance,
            "currency": self.currency,
            "items": [i.to_dict() for i in self.items],
            "conditions": [c.to_dict() for c in self.conditions],
            "version": self.version,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Cart:
        return cls(
            identifier=data["identifier"],
            instance=data.get("instance", "default"),
            currency=data.get("currency", "USD"),
            items=[CartItem.from_dict(i) for i in data.get("items", ())],
            conditions=[Condition.from_dict(c) for c in data.get("conditions", ())],
            version=int(data.get("version", 0)),
            metadata=dict(data.get("metadata") or {}),
        )


__all__ = (
    "INTENT_KEY",
    "INTENT_HISTORY_KEY",
    "BOOKKEEPING_KEYS",
    "CartKey",
    "CartItem",
    "Cart",
)
