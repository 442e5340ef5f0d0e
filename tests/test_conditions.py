from decimal import Decimal

import pytest

from tender.money import Money
from tender.pricing import (
    CartState,
    Condition,
    ConditionType,
    CurrencyMismatchError,
    InvalidConditionError,
    Operator,
    PricingError,
    Target,
    compute_delta,
    parse_value,
    rule,
    rule_from_dict,
    rule_kinds,
)

from support import mug


# ═══════════════════════════════════════════════════════════════════════════════
# Value parsing
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize(
    ("value", "ctype", "operator", "magnitude", "is_charge"),
    [
        ("+10%", ConditionType.TAX, Operator.PERCENT, Decimal(10), True),
        ("-5%", ConditionType.DISCOUNT, Operator.PERCENT, Decimal(5), False),
        ("6%", ConditionType.TAX, Operator.PERCENT, Decimal(6), True),
        ("6%", ConditionType.DISCOUNT, Operator.PERCENT, Decimal(6), False),
        ("-500", ConditionType.DISCOUNT, Operator.SUBTRACT, Decimal(500), False),
        ("+500", ConditionType.SHIPPING, Operator.ADD, Decimal(500), True),
        (250, ConditionType.FEE, Operator.ADD, Decimal(250), True),
        ("*1.1", ConditionType.FEE, Operator.MULTIPLY, Decimal("1.1"), True),
        ("*0.5", ConditionType.DISCOUNT, Operator.MULTIPLY, Decimal("0.5"), False),
        ("/2", ConditionType.DISCOUNT, Operator.DIVIDE, Decimal(2), False),
        (" -7.5 % ", ConditionType.DISCOUNT, Operator.PERCENT, Decimal("7.5"), False),
    ],
)
def test_parse_value(value, ctype, operator, magnitude, is_charge):
    expr = parse_value(value, ctype)

    assert expr.operator is operator
    assert expr.magnitude == magnitude
    assert expr.is_charge is is_charge


@pytest.mark.parametrize(
    "value",
    ["", "%", "abc", "--5", "+-5", "10%%", "*10%", "/5%", "*0", "/-2", "-5.5", "NaN", "Infinity", "1,5"],
)
def test_malformed_values_are_rejected(value):
    with pytest.raises(InvalidConditionError):
        parse_value(value, ConditionType.DISCOUNT)


def test_unsupported_value_types_are_rejected():
    with pytest.raises(InvalidConditionError):
        parse_value(True, ConditionType.FEE)  # type: ignore[arg-type]
    with pytest.raises(InvalidConditionError):
        parse_value(1.5, ConditionType.FEE)  # type: ignore[arg-type]


# ═══════════════════════════════════════════════════════════════════════════════
# Condition
# ═══════════════════════════════════════════════════════════════════════════════


def test_condition_flags_come_from_value():
    c = Condition("vat", "tax", "subtotal", "+20%")  # type: ignore[arg-type]

    assert c.type is ConditionType.TAX
    assert c.target is Target.SUBTOTAL
    assert c.is_percentage and c.is_charge and not c.is_discount
    assert not c.is_dynamic


@pytest.mark.parametrize(
    "kwargs",
    [
        {"name": "", "type": "discount", "target": "subtotal", "value": "-1"},
        {"name": "x", "type": "coupon", "target": "subtotal", "value": "-1"},
        {"name": "x", "type": "discount", "target": "order", "value": "-1"},
        {"name": "x", "type": "discount", "target": "subtotal", "value": "-1", "priority": "1"},
        {"name": "x", "type": "discount", "target": "subtotal", "value": "-1", "currency": "usd"},
        {"name": "x", "type": "discount", "target": "subtotal", "value": "oops"},
    ],
)
def test_invalid_conditions_never_exist(kwargs):
    with pytest.raises(PricingError):
        Condition(**kwargs)


def test_condition_survives_json_form():
    original = Condition(
        "bulk",
        ConditionType.DISCOUNT,
        Target.SUBTOTAL,
        "-15%",
        priority=3,
        rules=(rule("min_quantity", quantity=10), rule("metadata_equals", key="tier", value="gold")),
        stackable=False,
        exclusion_group="volume",
        attributes={"label": "Bulk buyer"},
    )

    assert Condition.from_dict(original.to_dict()) == original


def test_from_dict_reports_missing_fields():
    with pytest.raises(InvalidConditionError):
        Condition.from_dict({"name": "x", "type": "discount"})


# ═══════════════════════════════════════════════════════════════════════════════
# Deltas
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize(
    ("value", "ctype", "expected"),
    [
        ("-10%", ConditionType.DISCOUNT, -200),
        ("+10%", ConditionType.TAX, 200),
        ("-500", ConditionType.DISCOUNT, -500),
        ("+500", ConditionType.SHIPPING, 500),
        ("*1.1", ConditionType.FEE, 200),
        ("/2", ConditionType.DISCOUNT, -1000),
        ("/4", ConditionType.DISCOUNT, -1500),
    ],
)
def test_compute_delta(value, ctype, expected):
    c = Condition("c", ctype, Target.SUBTOTAL, value)

    assert compute_delta(c, Money(2000, "USD")) == Money(expected, "USD")


def test_delta_rejects_condition_in_other_currency():
    c = Condition("eu-fee", ConditionType.FEE, Target.TOTAL, "+100", currency="EUR")

    with pytest.raises(CurrencyMismatchError) as info:
        compute_delta(c, Money(2000, "USD"))
    assert "EUR" in str(info.value)


# ═══════════════════════════════════════════════════════════════════════════════
# Rules
# ═══════════════════════════════════════════════════════════════════════════════


def _state(metadata=None, quantity=2) -> CartState:
    item = mug(quantity=quantity)
    subtotal = Money(item.unit_price.amount * quantity, "USD")
    return CartState("USD", (item,), subtotal, subtotal, metadata or {})


def test_rules_evaluate_against_cart_state():
    state = _state({"tier": "gold"})

    assert rule("always").evaluate(state)
    assert not rule("never").evaluate(state)
    assert rule("min_total", amount=2000).evaluate(state)
    assert not rule("min_total", amount=2001).evaluate(state)
    assert rule("max_total", amount=2000).evaluate(state)
    assert rule("min_items", count=1).evaluate(state)
    assert not rule("max_items", count=0).evaluate(state)
    assert rule("min_quantity", quantity=2).evaluate(state)
    assert rule("has_item", item_id="sku-mug").evaluate(state)
    assert rule("missing_item", item_id="sku-pen").evaluate(state)
    assert rule("metadata_equals", key="tier", value="gold").evaluate(state)
    assert not rule("metadata_equals", key="tier", value="silver").evaluate(state)
    assert rule("has_metadata", key="tier").evaluate(state)
    assert not rule("has_metadata", key="coupon").evaluate(state)
    assert rule("currency_is", currency="usd").evaluate(state)
    assert rule("item_quantity_at_least", quantity=2).evaluate(state)
    assert not rule("item_price_at_least", amount=1001).evaluate(state)


def test_item_rules_look_at_the_item_under_evaluation():
    state = _state(quantity=5)
    small = mug(quantity=1)

    assert rule("item_quantity_at_least", quantity=3).evaluate(state)
    assert not rule("item_quantity_at_least", quantity=3).evaluate(state.for_item(small))


def test_rule_registry():
    assert "min_total" in rule_kinds()
    assert rule_from_dict({"kind": "min_items", "count": 3}) == rule("min_items", count=3)

    with pytest.raises(InvalidConditionError):
        rule("coupon_code", code="X")
    with pytest.raises(InvalidConditionError):
        rule("min_total", minimum=5)
