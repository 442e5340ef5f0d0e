"""
tender — cart pricing and exactly-once checkout finalization.

    from tender import pricing as P    # Conditions, rules, the pricing engine
    from tender import cart as C       # Versioned carts and their stores
    from tender import checkout as K   # Payment intents against a gateway
    from tender import finalize as F   # Gateway events to orders and payments
    from tender.web import create_app  # FastAPI webhook endpoint
"""

from tender import pricing
from tender import cart
from tender import checkout
from tender import finalize
from tender import graph
from tender import lift
from tender.money import Money, Rounding
from tender._types import (
    Lazy,
    Pure,
    LCR,
    NoError,
    StoreError,
)

__version__ = "0.1.0"

__all__ = (
    "pricing",
    "cart",
    "checkout",
    "finalize",
    "graph",
    "lift",
    "Money",
    "Rounding",
    "Lazy",
    "Pure",
    "LCR",
    "NoError",
    "StoreError",
)
