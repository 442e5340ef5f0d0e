"""
Cart service — every mutation entry point, each bumping the version once.

    load ──► change(cart) ──► empty? clear ──► store.commit (version += 1)
                  │
                  └── CartError → nothing written, version untouched

An empty cart carries no conditions: when the last item goes, the cart is
cleared in the same commit.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from kungfu import Result, Ok, Error

from tender.cart._errors import CartError, CartErrors
from tender.cart._store import CartStore
from tender.cart._types import Cart, CartItem, CartKey
from tender.logs import get_logger
from tender.money import Money
from tender.pricing import Condition, Target

log = get_logger(__name__)

type Change = Callable[[Cart], CartError | None]


class CartService:
    """
    Mutations over a CartStore.

    Example:
        carts = CartService(MemoryCartStore())
        await carts.add_item(key, CartItem("sku-1", "Mug", Money(1000, "USD"), 2))
        await carts.add_condition(key, promo)
    """

    def __init__(self, store: CartStore, currency: str = "USD") -> None:
        self._store = store
        self._currency = currency

    @property
    def store(self) -> CartStore:
        return self._store

    async def get(self, key: CartKey) -> Result[Cart, CartError]:
        """Stored cart, or a fresh empty one (version 0) if it never existed."""
        loaded = await self._store.get(key)
        match loaded:
            case Error(err):
                return Error(CartErrors.store(err))
            case Ok(None):
                return Ok(Cart(key.identifier, key.instance, currency=self._currency))
            case Ok(cart):
                return Ok(cart)

    # ── Items ──

    async def add_item(self, key: CartKey, item: CartItem) -> Result[Cart, CartError]:
        def change(cart: Cart) -> CartError | None:
            if item.unit_price.currency != cart.currency:
                return CartErrors.currency_mismatch(cart.currency, item.unit_price.currency)
            existing = cart.find_item(item.id)
            if existing is not None:
                existing.quantity += item.quantity
                return None
            cart.items.append(item)
            return None

        return await self._mutate(key, change, f"add item {item.id}")

    async def update_item(
        self,
        key: CartKey,
        item_id: str,
        *,
        quantity: int | None = None,
        unit_price: Money | None = None,
        name: str | None = None,
    ) -> Result[Cart, CartError]:
        """Update an item in place. A quantity <= 0 removes it."""
        def change(cart: Cart) -> CartError | None:
            item = cart.find_item(item_id)
            if item is None:
                return CartErrors.item_not_found(item_id)
            if quantity is not None and quantity <= 0:
                cart.items.remove(item)
                return None
            if unit_price is not None:
                if unit_price.currency != cart.currency:
                    return CartErrors.currency_mismatch(cart.currency, unit_price.currency)
                item.unit_price = unit_price
            if quantity is not None:
                item.quantity = quantity
            if name is not None:
                item.name = name
            return None

        return await self._mutate(key, change, f"update item {item_id}")

    async def remove_item(self, key: CartKey, item_id: str) -> Result[Cart, CartError]:
        def change(cart: Cart) -> CartError | None:
            item = cart.find_item(item_id)
            if item is None:
                return CartErrors.item_not_found(item_id)
            cart.items.remove(item)
            return None

        return await self._mutate(key, change, f"remove item {item_id}")

    # ── Cart conditions ──

    async def add_condition(self, key: CartKey, condition: Condition) -> Result[Cart, CartError]:
        """Attach a cart-level condition, replacing one with the same name."""
        def change(cart: Cart) -> CartError | None:
            if cart.is_empty():
                return CartErrors.empty_cart("Cannot add a condition to an empty cart")
            if condition.target is Target.ITEM:
                return CartErrors.invalid_condition(
                    f"Cart condition {condition.name!r} cannot target item"
                )
            cart.conditions = [c for c in cart.conditions if c.name != condition.name]
            cart.conditions.append(condition)
            return None

        return await self._mutate(key, change, f"add condition {condition.name}")

    async def remove_condition(self, key: CartKey, name: str) -> Result[Cart, CartError]:
        def change(cart: Cart) -> CartError | None:
            if cart.find_condition(name) is None:
                return CartErrors.condition_not_found(name)
            cart.conditions = [c for c in cart.conditions if c.name != name]
            return None

        return await self._mutate(key, change, f"remove condition {name}")

    # ── Item conditions ──

    async def add_item_condition(
        self, key: CartKey, item_id: str, condition: Condition
    ) -> Result[Cart, CartError]:
        def change(cart: Cart) -> CartError | None:
            item = cart.find_item(item_id)
            if item is None:
                return CartErrors.item_not_found(item_id)
            if condition.target is not Target.ITEM:
                return CartErrors.invalid_condition(
                    f"Item condition {condition.name!r} must target item"
                )
            item.conditions = [c for c in item.conditions if c.name != condition.name]
            item.conditions.append(condition)
            return None

        return await self._mutate(key, change, f"add condition {condition.name} to {item_id}")

    async def remove_item_condition(
        self, key: CartKey, item_id: str, name: str
    ) -> Result[Cart, CartError]:
        def change(cart: Cart) -> CartError | None:
            item = cart.find_item(item_id)
            if item is None:
                return CartErrors.item_not_found(item_id)
            if item.find_condition(name) is None:
                return CartErrors.condition_not_found(name)
            item.conditions = [c for c in item.conditions if c.name != name]
            return None

        return await self._mutate(key, change, f"remove condition {name} from {item_id}")

    # ── Metadata / clear ──

    async def set_metadata(self, key: CartKey, name: str, value: Any) -> Result[Cart, CartError]:
        """Checkout-relevant metadata write. Bumps the version; None deletes."""
        def change(cart: Cart) -> CartError | None:
            if value is None:
                cart.metadata.pop(name, None)
            else:
                cart.metadata[name] = value
            return None

        return await self._mutate(key, change, f"set metadata {name}")

    async def clear(self, key: CartKey) -> Result[Cart, CartError]:
        def change(cart: Cart) -> CartError | None:
            cart.clear()
            return None

        return await self._mutate(key, change, "clear")

    # ── Internals ──

    async def _mutate(self, key: CartKey, change: Change, what: str) -> Result[Cart, CartError]:
        loaded = await self.get(key)
        match loaded:
            case Error(err):
                return Error(err)
            case Ok(cart):
                pass

        problem = change(cart)
        if problem is not None:
            log.debug(f"[Cart: {key}] {what} rejected: {problem.message}")
            return Error(problem)

        if cart.is_empty():
            cart.clear()

        committed = await self._store.commit(cart)
        match committed:
            case Error(err):
                log.error(f"[Cart: {key}] {what} not saved: {err.message}")
                return Error(CartErrors.store(err))
            case Ok(version):
                log.debug(f"[Cart: {key}] {what} -> version {version}")
                return Ok(cart)


__all__ = ("CartService",)
