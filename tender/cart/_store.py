"""
Cart store — typed storage protocol with version tracking.

All methods return Result for explicit error handling.

The version counter belongs to the cart identity, not to the cart
contents: `commit` increments it atomically on every write, and a cleared
or re-created cart keeps counting from where it was.
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Mapping
from typing import Any, Protocol

from kungfu import Result, Ok, Error

from tender._types import StoreError
from tender.cart._types import Cart, CartKey, INTENT_KEY, INTENT_HISTORY_KEY


# ═══════════════════════════════════════════════════════════════════════════════
# Store Protocol — Result-based
# ═══════════════════════════════════════════════════════════════════════════════


class CartStore(Protocol):
    """
    Cart persistence.

    Note: `commit` is the version tracker. Every cart mutation goes through
    it, and it must be an atomic read-modify-write of the counter
    (UPDATE ... SET version = version + 1, or a lock in memory).
    """

    async def get(self, key: CartKey) -> Result[Cart | None, StoreError]:
        """Load a cart. Returns Ok(None) if it never existed."""
        ...

    async def commit(self, cart: Cart) -> Result[int, StoreError]:
        """Persist contents, bump the version, return the new version."""
        ...

    async def put_metadata(
        self, key: CartKey, entries: Mapping[str, Any]
    ) -> Result[None, StoreError]:
        """
        Write metadata entries in one step, without bumping the version.

        A None value deletes the entry.
        """
        ...

    async def find_by_purchase_id(self, purchase_id: str) -> Result[Cart | None, StoreError]:
        """Cart whose current or superseded payment intent carries `purchase_id`."""
        ...


def intent_purchase_ids(metadata: Mapping[str, Any]) -> list[str]:
    """Purchase ids of the current intent and every superseded one."""
    entries = [metadata.get(INTENT_KEY), *(metadata.get(INTENT_HISTORY_KEY) or [])]
    return [e["purchase_id"] for e in entries if isinstance(e, dict) and e.get("purchase_id")]


def merge_metadata(current: Mapping[str, Any], entries: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(current)
    for name, value in entries.items():
        if value is None:
            merged.pop(name, None)
        else:
            merged[name] = copy.deepcopy(value)
    return merged


# ═══════════════════════════════════════════════════════════════════════════════
# Memory Store — For Testing
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryCartStore:
    """
    In-memory cart store.

    Note: single process only; data does not survive a restart.
    """

    def __init__(self) -> None:
        self._carts: dict[CartKey, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: CartKey) -> Result[Cart | None, StoreError]:
        async with self._lock:
            data = self._carts.get(key)
            if data is None:
                return Ok(None)
            return Ok(Cart.from_dict(copy.deepcopy(data)))

    async def commit(self, cart: Cart) -> Result[int, StoreError]:
        async with self._lock:
            existing = self._carts.get(cart.key)
            version = (existing["version"] if existing else 0) + 1
            data = copy.deepcopy(cart.to_dict())
            data["version"] = version
            self._carts[cart.key] = data
            cart.version = version
            return Ok(version)

    async def put_metadata(
        self, key: CartKey, entries: Mapping[str, Any]
    ) -> Result[None, StoreError]:
        async with self._lock:
            data = self._carts.get(key)
            if data is None:
                return Error(StoreError(f"Cart not found: {key}"))
            data["metadata"] = merge_metadata(data["metadata"], entries)
            return Ok(None)

    async def find_by_purchase_id(self, purchase_id: str) -> Result[Cart | None, StoreError]:
        async with self._lock:
            for data in self._carts.values():
                if purchase_id in intent_purchase_ids(data["metadata"]):
                    return Ok(Cart.from_dict(copy.deepcopy(data)))
            return Ok(None)


__all__ = (
    "CartStore",
    "MemoryCartStore",
    "intent_purchase_ids",
    "merge_metadata",
)
