"""
Pricing — conditions, rules and the engine that turns a cart into a snapshot.

    from tender import pricing as P

    promo = P.Condition("promo", P.ConditionType.DISCOUNT, P.Target.SUBTOTAL, "-10%", priority=1,
                        rules=(P.rule("min_total", amount=1000),))

    snapshot = P.PricingEngine(P.PricingConfig()).compute(cart)
"""

from tender.errors import (
    PricingError,
    InvalidConditionError,
    InvalidCurrencyError,
    CurrencyMismatchError,
    NegativeTotalError,
)
from tender.pricing._types import (
    ConditionType,
    Target,
    Operator,
    Expression,
    parse_value,
    PricedItem,
    PricedCart,
)
from tender.pricing._rules import (
    CartState,
    Rule,
    register_rule,
    rule,
    rule_to_dict,
    rule_from_dict,
    rule_kinds,
    Always,
    Never,
    MinTotal,
    MaxTotal,
    MinItems,
    MaxItems,
    MinQuantity,
    HasItem,
    MissingItem,
    MetadataEquals,
    HasMetadata,
    CurrencyIs,
    ItemQuantityAtLeast,
    ItemPriceAtLeast,
)
from tender.pricing._condition import Condition
from tender.pricing._evaluate import (
    Applied,
    NotApplicable,
    Evaluation,
    is_active,
    compute_delta,
    evaluate,
)
from tender.pricing._snapshot import (
    ConditionLine,
    LineSnapshot,
    Totals,
    PricingSnapshot,
)
from tender.pricing._config import PricingConfig
from tender.pricing._engine import PricingEngine, resolve_stacking

__all__ = (
    # Errors
    "PricingError",
    "InvalidConditionError",
    "InvalidCurrencyError",
    "CurrencyMismatchError",
    "NegativeTotalError",
    # Vocabulary
    "ConditionType",
    "Target",
    "Operator",
    "Expression",
    "parse_value",
    "PricedItem",
    "PricedCart",
    # Rules
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
    # Conditions
    "Condition",
    "Applied",
    "NotApplicable",
    "Evaluation",
    "is_active",
    "compute_delta",
    "evaluate",
    # Snapshot
    "ConditionLine",
    "LineSnapshot",
    "Totals",
    "PricingSnapshot",
    # Engine
    "PricingConfig",
    "PricingEngine",
    "resolve_stacking",
)
