"""
Pricing engine — cart state → PricingSnapshot.

    items ──► item conditions (by priority) ──► line totals
                                                    │
                                                    ▼
                                                subtotal
                                                    │
    cart conditions ──► active? ──► exclusion groups ──► non-stackable discounts
                                                    │
                                                    ▼
                          apply by priority:  SUBTOTAL → base = subtotal
                                              TOTAL    → base = running total
                                                    │
                                                    ▼
                                            totals + snapshot

Pure: the same cart state always yields an equal snapshot. Nothing is
cached between calls.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from tender.errors import CurrencyMismatchError, InvalidConditionError, NegativeTotalError
from tender.logs import get_logger
from tender.money import Money, validate_currency
from tender.pricing._condition import Condition
from tender.pricing._config import PricingConfig
from tender.pricing._evaluate import compute_delta, is_active
from tender.pricing._rules import CartState
from tender.pricing._snapshot import ConditionLine, LineSnapshot, PricingSnapshot, Totals
from tender.pricing._types import ConditionType, PricedCart, PricedItem, Target

log = get_logger(__name__)


def by_priority(conditions: Iterable[Condition]) -> list[Condition]:
    """Ascending priority; ties keep insertion order."""
    return sorted(conditions, key=lambda c: c.priority)


def _unique_names(conditions: Sequence[Condition], scope: str) -> None:
    seen: set[str] = set()
    for c in conditions:
        if c.name in seen:
            raise InvalidConditionError(f"Duplicate condition {c.name!r} in {scope}")
        seen.add(c.name)


def resolve_stacking(conditions: Sequence[Condition], state: CartState) -> list[Condition]:
    """
    Cart-level conditions that survive filtering, in application order.

    1. drop dynamic conditions whose rules fail
    2. one winner per exclusion group (lowest priority, then earliest)
    3. a surviving non-stackable discount excludes every other discount;
       among several, the lowest priority one is kept
    """
    active = [c for c in conditions if is_active(c, state)]

    winners: dict[str, Condition] = {}
    for c in by_priority(active):
        if c.exclusion_group is not None:
            winners.setdefault(c.exclusion_group, c)
    active = [
        c for c in active
        if c.exclusion_group is None or winners[c.exclusion_group] is c
    ]

    exclusive = next(
        (c for c in by_priority(active) if c.is_discount and not c.stackable),
        None,
    )
    if exclusive is not None:
        active = [c for c in active if not c.is_discount or c is exclusive]

    return by_priority(active)


class PricingEngine:
    """
    Computes pricing snapshots.

    Example:
        engine = PricingEngine(PricingConfig().with_currency("USD"))
        snapshot = engine.compute(cart)
        snapshot.totals.total   # Money

    Raises (synchronously, never retried):
        InvalidConditionError  — malformed or misplaced condition
        CurrencyMismatchError  — item/condition currency differs from the cart
        NegativeTotalError     — negative total without floor_at_zero
    """

    def __init__(self, config: PricingConfig | None = None) -> None:
        self._config = config if config is not None else PricingConfig()

    @property
    def config(self) -> PricingConfig:
        return self._config

    def compute(self, cart: PricedCart) -> PricingSnapshot:
        config = self._config
        currency = validate_currency(cart.currency or config.currency)
        items = tuple(cart.items)
        zero = Money.zero(currency)

        for item in items:
            if item.unit_price.currency != currency:
                raise CurrencyMismatchError(currency, item.unit_price.currency, f"item {item.id!r}")

        raw_subtotal = Money.sum_of(
            (Money(i.unit_price.amount * i.quantity, currency) for i in items), currency
        )
        item_state = CartState(
            currency=currency,
            items=items,
            subtotal=raw_subtotal,
            subtotal_without_conditions=raw_subtotal,
            metadata=dict(cart.metadata),
        )

        # ── Item pass ──

        savings = zero
        lines: list[LineSnapshot] = []
        for item in items:
            line, line_savings = self._price_item(item, item_state)
            lines.append(line)
            savings = savings + line_savings

        subtotal = Money.sum_of((line.line_total for line in lines), currency)

        # ── Cart pass ──

        cart_conditions = list(cart.conditions)
        _unique_names(cart_conditions, "cart")
        for c in cart_conditions:
            if c.target is Target.ITEM:
                raise InvalidConditionError(f"Cart condition {c.name!r} cannot target item")

        cart_state = CartState(
            currency=currency,
            items=items,
            subtotal=subtotal,
            subtotal_without_conditions=raw_subtotal,
            metadata=dict(cart.metadata),
        )

        by_type = {t: zero for t in ConditionType}
        applied: list[ConditionLine] = []
        running = subtotal
        for c in resolve_stacking(cart_conditions, cart_state):
            base = subtotal if c.target is Target.SUBTOTAL else running
            delta = compute_delta(c, base, config.rounding)
            running = running + delta
            by_type[c.type] = by_type[c.type] + delta
            if c.is_discount and delta.is_negative():
                savings = savings - delta
            applied.append(ConditionLine(c.name, c.type, c.target, delta))

        total = self._floor(running, "total")

        return PricingSnapshot(
            currency=currency,
            items=tuple(lines),
            conditions=tuple(applied),
            totals=Totals(
                subtotal=subtotal,
                subtotal_without_conditions=raw_subtotal,
                discount_total=by_type[ConditionType.DISCOUNT],
                tax_total=by_type[ConditionType.TAX],
                shipping_total=by_type[ConditionType.SHIPPING],
                fee_total=by_type[ConditionType.FEE],
                total=total,
                savings=savings,
            ),
        )

    def _price_item(self, item: PricedItem, state: CartState) -> tuple[LineSnapshot, Money]:
        currency = state.currency
        conditions = list(item.conditions)
        _unique_names(conditions, f"item {item.id!r}")

        item_state = state.for_item(item)
        line_total = Money(item.unit_price.amount * item.quantity, currency)
        savings = Money.zero(currency)
        applied: list[ConditionLine] = []

        for c in by_priority(conditions):
            if c.target is not Target.ITEM:
                raise InvalidConditionError(
                    f"Item condition {c.name!r} on {item.id!r} must target item"
                )
            if not is_active(c, item_state):
                log.debug(f"Item condition {c.name!r} on {item.id!r} not applicable")
                continue
            delta = compute_delta(c, line_total, self._config.rounding)
            line_total = line_total + delta
            if c.is_discount and delta.is_negative():
                savings = savings - delta
            applied.append(ConditionLine(c.name, c.type, c.target, delta))

        line = LineSnapshot(
            id=item.id,
            name=item.name,
            unit_price=item.unit_price,
            quantity=item.quantity,
            line_total=self._floor(line_total, f"line total of {item.id!r}"),
            conditions=tuple(applied),
        )
        return line, savings

    def _floor(self, amount: Money, scope: str) -> Money:
        if not amount.is_negative():
            return amount
        if self._config.floor_at_zero:
            log.info(f"Clamping negative {scope} ({amount.amount}) to zero")
            return Money.zero(amount.currency)
        raise NegativeTotalError(scope, amount.amount)


__all__ = ("PricingEngine", "resolve_stacking", "by_priority")
