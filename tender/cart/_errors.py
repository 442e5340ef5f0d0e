"""Cart errors."""

from dataclasses import dataclass
from enum import Enum, auto

from tender._types import StoreError


class CartErrorKind(Enum):
    EMPTY_CART = auto()
    ITEM_NOT_FOUND = auto()
    CONDITION_NOT_FOUND = auto()
    INVALID_CONDITION = auto()
    CURRENCY_MISMATCH = auto()
    STORE_ERROR = auto()


@dataclass(frozen=True, slots=True)
class CartError:
    kind: CartErrorKind
    message: str
    cause: Exception | None = None


class CartErrors:
    @staticmethod
    def empty_cart(msg: str) -> CartError:
        return CartError(CartErrorKind.EMPTY_CART, msg)

    @staticmethod
    def item_not_found(item_id: str) -> CartError:
        return CartError(CartErrorKind.ITEM_NOT_FOUND, f"Item not in cart: {item_id}")

    @staticmethod
    def condition_not_found(name: str) -> CartError:
        return CartError(CartErrorKind.CONDITION_NOT_FOUND, f"Condition not found: {name}")

    @staticmethod
    def invalid_condition(msg: str) -> CartError:
        return CartError(CartErrorKind.INVALID_CONDITION, msg)

    @staticmethod
    def currency_mismatch(expected: str, actual: str) -> CartError:
        return CartError(
            CartErrorKind.CURRENCY_MISMATCH,
            f"Cart is priced in {expected}, item in {actual}",
        )

    @staticmethod
    def store(err: StoreError) -> CartError:
        return CartError(CartErrorKind.STORE_ERROR, err.message, err.cause)


__all__ = ("CartErrorKind", "CartError", "CartErrors")
