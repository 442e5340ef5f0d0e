"""
Cart — mutable aggregate, versioned storage and mutation service.

    from tender import cart as C

    service = C.CartService(C.SQLAlchemyCartStore(session_factory))
    key = C.CartKey("user-42")

    await service.add_item(key, C.CartItem("sku-1", "Mug", Money(1000, "USD"), 2))
    cart = (await service.get(key)).unwrap()
    cart.version   # 1
"""

from tender.cart._types import (
    INTENT_KEY,
    INTENT_HISTORY_KEY,
    BOOKKEEPING_KEYS,
    CartKey,
    CartItem,
    Cart,
)
from tender.cart._errors import CartErrorKind, CartError, CartErrors
from tender.cart._store import CartStore, MemoryCartStore, intent_purchase_ids, merge_metadata
from tender.cart._sqlalchemy import CartPurchaseTable, CartTable, SQLAlchemyCartStore
from tender.cart._service import CartService

__all__ = (
    # Types
    "INTENT_KEY",
    "INTENT_HISTORY_KEY",
    "BOOKKEEPING_KEYS",
    "CartKey",
    "CartItem",
    "Cart",
    # Errors
    "CartErrorKind",
    "CartError",
    "CartErrors",
    # Stores
    "CartStore",
    "MemoryCartStore",
    "intent_purchase_ids",
    "merge_metadata",
    "CartTable",
    "CartPurchaseTable",
    "SQLAlchemyCartStore",
    # Service
    "CartService",
)
