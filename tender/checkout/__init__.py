"""
Checkout — payment intents bound to a cart version and a gateway purchase.

    from tender import checkout as K

    intents = K.PaymentIntentManager(carts, engine, gateway, K.CheckoutConfig.from_env())

    match await intents.create_intent(key, K.CustomerSnapshot("Ada", "ada@example.com")):
        case Ok(created):
            created.checkout_url
        case Error(err):
            err.kind   # EMPTY_CART | CART_CHANGED | CONFIGURATION | GATEWAY | STORE_ERROR
"""

from tender.checkout._types import (
    IntentStatus,
    CustomerSnapshot,
    PaymentIntent,
    IntentCreated,
    IntentValidation,
)
from tender.checkout._gateway import PurchaseCreated, Gateway
from tender.checkout._config import CheckoutConfig
from tender.checkout._errors import CheckoutErrorKind, CheckoutError, CheckoutErrors
from tender.checkout._manager import PaymentIntentManager, find_intent, read_history, read_intent, utcnow

__all__ = (
    # Types
    "IntentStatus",
    "CustomerSnapshot",
    "PaymentIntent",
    "IntentCreated",
    "IntentValidation",
    # Gateway
    "PurchaseCreated",
    "Gateway",
    # Config
    "CheckoutConfig",
    # Errors
    "CheckoutErrorKind",
    "CheckoutError",
    "CheckoutErrors",
    # Manager
    "PaymentIntentManager",
    "find_intent",
    "read_history",
    "read_intent",
    "utcnow",
)
