"""Checkout errors."""

from dataclasses import dataclass
from enum import Enum, auto

from tender._types import StoreError


class CheckoutErrorKind(Enum):
    """
    EMPTY_CART:    nothing to pay for
    CART_CHANGED:  caller's view of the cart is stale (version mismatch)
    CONFIGURATION: pricing failed (bad condition, currency, negative total)
    GATEWAY:       create-purchase failed or timed out; nothing persisted
    NOT_FOUND:     no intent for this cart / purchase
    STORE_ERROR:   persistence failed
    """

    EMPTY_CART = auto()
    CART_CHANGED = auto()
    CONFIGURATION = auto()
    GATEWAY = auto()
    NOT_FOUND = auto()
    STORE_ERROR = auto()


@dataclass(frozen=True, slots=True)
class CheckoutError:
    kind: CheckoutErrorKind
    message: str
    cause: Exception | None = None


class CheckoutErrors:
    @staticmethod
    def empty_cart() -> CheckoutError:
        return CheckoutError(CheckoutErrorKind.EMPTY_CART, "Cart is empty")

    @staticmethod
    def cart_changed(expected: int, actual: int) -> CheckoutError:
        return CheckoutError(
            CheckoutErrorKind.CART_CHANGED,
            f"Cart changed: expected version {expected}, found {actual}",
        )

    @staticmethod
    def configuration(e: Exception) -> CheckoutError:
        return CheckoutError(CheckoutErrorKind.CONFIGURATION, str(e), e)

    @staticmethod
    def gateway(e: Exception) -> CheckoutError:
        if isinstance(e, TimeoutError):
            return CheckoutError(CheckoutErrorKind.GATEWAY, "Gateway timed out", e)
        return CheckoutError(CheckoutErrorKind.GATEWAY, f"Gateway rejected purchase: {e}", e)

    @staticmethod
    def not_found(msg: str) -> CheckoutError:
        return CheckoutError(CheckoutErrorKind.NOT_FOUND, msg)

    @staticmethod
    def store(err: StoreError) -> CheckoutError:
        return CheckoutError(CheckoutErrorKind.STORE_ERROR, err.message, err.cause)


__all__ = ("CheckoutErrorKind", "CheckoutError", "CheckoutErrors")
