import asyncio
import logging
from collections import Counter

import pytest
from kungfu import Ok, Error

from tender._types import StoreError
from tender.cart import CartItem
from tender.checkout import CheckoutErrors, IntentStatus, PaymentIntentManager, read_history, read_intent
from tender.finalize import (
    EventKind,
    EventStatus,
    FinalizeError,
    FinalizeErrorKind,
    FinalizeOutcome,
    FinalizeStatus,
    Finalizer,
    GatewayEvent,
    PaymentLedger,
    PaymentStatus,
    event_status,
)
from tender.money import Money
from tender.pricing import PricingEngine

from support import CUSTOMER, checkout, failed_payload, paid_payload, promo


def paid(purchase_id: str = "px_1", reference: str | None = "user-42:default", amount: int | None = 2300) -> GatewayEvent:
    return GatewayEvent.from_payload(paid_payload(purchase_id, reference, amount))


def failed(purchase_id: str = "px_1", reference: str | None = "user-42:default") -> GatewayEvent:
    return GatewayEvent.from_payload(failed_payload(purchase_id, reference))


def outcome_of(result):
    match result:
        case Ok(outcome):
            return outcome
        case Error(err):
            pytest.fail(f"Finalization failed ({err.kind.name}): {err.message}")


def error_of(result):
    match result:
        case Error(err):
            return err
        case Ok(outcome):
            pytest.fail(f"Expected an error, got {outcome.status}")


async def payments(ledger, purchase_id: str = "px_1") -> int:
    match await ledger.count_payments(purchase_id):
        case Ok(count):
            return count
        case Error(err):
            pytest.fail(f"Count failed: {err}")


async def load(carts, key):
    match await carts.get(key):
        case Ok(cart):
            return cart
        case Error(err):
            pytest.fail(f"Cart not loaded: {err}")


# ═══════════════════════════════════════════════════════════════════════════════
# Events
# ═══════════════════════════════════════════════════════════════════════════════


def test_event_types_are_classified():
    assert paid().kind is EventKind.SUCCEEDED
    assert failed().kind is EventKind.FAILED
    assert failed().reason == "card_declined"

    other = GatewayEvent.from_payload({"event": "purchase.created", "data": {"id": "px_1"}})
    assert other.kind is EventKind.IGNORED


@pytest.mark.parametrize("payload", [{}, {"event": "purchase.paid"}, {"event": "purchase.paid", "data": {"id": ""}}])
def test_malformed_event_payloads_raise(payload):
    with pytest.raises((KeyError, TypeError, ValueError)):
        GatewayEvent.from_payload(payload)


# ═══════════════════════════════════════════════════════════════════════════════
# Success
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_paid_event_materializes_the_snapshot(carts, intents, finalizer, ledger, key):
    await checkout(carts, intents, key)

    outcome = outcome_of(await finalizer.on_gateway_event(paid()))

    assert outcome.status is FinalizeStatus.CREATED
    assert outcome.payment.status == PaymentStatus.PAID
    assert outcome.payment.amount == Money(2300, "USD")
    assert outcome.payment.method == "gateway"

    order = outcome.order
    assert order.order_number.startswith("ORD-")
    assert order.total == Money(2300, "USD")
    assert order.savings == Money(200, "USD")
    assert [(i.item_id, i.quantity, i.line_total) for i in order.items] == [
        ("sku-mug", 2, Money(2000, "USD"))
    ]
    assert order.customer["email"] == "ada@example.com"
    assert [c["name"] for c in order.pricing_snapshot["conditions"]] == ["promo", "ship"]
    assert await payments(ledger) == 1


@pytest.mark.asyncio
async def test_paid_event_closes_the_cart(carts, intents, finalizer, key):
    await checkout(carts, intents, key)

    outcome_of(await finalizer.on_gateway_event(paid()))

    cart = await load(carts, key)
    assert cart.is_empty() and cart.conditions == []
    assert cart.version == 4
    assert read_intent(cart).status is IntentStatus.SUCCEEDED


LIVE_CART_CHANGES = {
    "add_item": lambda carts, key: carts.add_item(key, CartItem("sku-pen", "Pen", Money(300, "USD"), 4)),
    "change_quantity": lambda carts, key: carts.update_item(key, "sku-mug", quantity=5),
    "remove_last_item": lambda carts, key: carts.remove_item(key, "sku-mug"),
    "add_condition": lambda carts, key: carts.add_condition(key, promo("-50%")),
}


@pytest.mark.asyncio
@pytest.mark.parametrize("change", list(LIVE_CART_CHANGES.values()), ids=list(LIVE_CART_CHANGES))
async def test_order_reflects_the_snapshot_not_the_live_cart(carts, intents, finalizer, key, change):
    await checkout(carts, intents, key)
    match await change(carts, key):
        case Error(err):
            pytest.fail(f"Cart change failed: {err}")
        case Ok(cart):
            assert cart.version == 4

    outcome = outcome_of(await finalizer.on_gateway_event(paid()))

    assert outcome.status is FinalizeStatus.CREATED
    assert outcome.order.total == Money(2300, "USD")
    assert [(i.item_id, i.quantity) for i in outcome.order.items] == [("sku-mug", 2)]
    assert read_intent(await load(carts, key)).status is IntentStatus.SUCCEEDED


@pytest.mark.asyncio
async def test_event_without_reference_is_found_by_purchase_id(carts, intents, finalizer, key):
    await checkout(carts, intents, key)

    outcome = outcome_of(await finalizer.on_gateway_event(paid(reference=None, amount=None)))

    assert outcome.status is FinalizeStatus.CREATED


# ═══════════════════════════════════════════════════════════════════════════════
# Superseded intents
# ═══════════════════════════════════════════════════════════════════════════════


async def supersede(carts, intents, key) -> None:
    """px_1 at 2300, then a changed cart and px_2 at 2570."""
    await checkout(carts, intents, key)
    await carts.add_item(key, CartItem("sku-pen", "Pen", Money(300, "USD"), 1))
    match await intents.create_intent(key, CUSTOMER):
        case Ok(second):
            assert second.purchase_id == "px_2"
        case Error(err):
            pytest.fail(f"Second intent failed: {err}")


@pytest.mark.asyncio
@pytest.mark.parametrize("reference", ["user-42:default", None])
async def test_paying_a_superseded_intent_creates_its_order(carts, intents, finalizer, ledger, key, reference):
    await supersede(carts, intents, key)

    outcome = outcome_of(await finalizer.on_gateway_event(paid("px_1", reference)))

    assert outcome.status is FinalizeStatus.CREATED
    assert outcome.order.total == Money(2300, "USD")
    assert [i.item_id for i in outcome.order.items] == ["sku-mug"]
    assert await payments(ledger, "px_1") == 1

    cart = await load(carts, key)
    assert cart.version == 4
    assert [i.item_id for i in cart.items] == ["sku-mug", "sku-pen"]
    current = read_intent(cart)
    assert current.purchase_id == "px_2"
    assert current.status is IntentStatus.CREATED
    assert [(i.purchase_id, i.status) for i in read_history(cart)] == [("px_1", IntentStatus.SUCCEEDED)]

    again = outcome_of(await finalizer.on_gateway_event(paid("px_1", reference)))
    assert again.status is FinalizeStatus.DUPLICATE
    assert (await load(carts, key)).version == 4


@pytest.mark.asyncio
async def test_failure_of_a_superseded_intent_is_recorded(carts, intents, finalizer, key):
    await supersede(carts, intents, key)

    outcome = outcome_of(await finalizer.on_gateway_event(failed("px_1", reference=None)))

    assert outcome.status is FinalizeStatus.FAILED
    cart = await load(carts, key)
    [old] = read_history(cart)
    assert old.status is IntentStatus.FAILED
    assert old.failure_reason == "card_declined"
    assert read_intent(cart).status is IntentStatus.CREATED


# ═══════════════════════════════════════════════════════════════════════════════
# Idempotency
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
@pytest.mark.parametrize("deliveries", [1, 2, 5, 50])
async def test_sequential_deliveries_create_one_payment(carts, intents, finalizer, ledger, key, deliveries):
    await checkout(carts, intents, key)

    statuses = [outcome_of(await finalizer.on_gateway_event(paid())).status for _ in range(deliveries)]

    assert statuses[0] is FinalizeStatus.CREATED
    assert all(s is FinalizeStatus.DUPLICATE for s in statuses[1:])
    assert await payments(ledger) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("deliveries", [1, 2, 5, 50])
async def test_concurrent_deliveries_create_one_payment(carts, intents, finalizer, ledger, key, deliveries):
    await checkout(carts, intents, key)

    results = await asyncio.gather(*(finalizer.on_gateway_event(paid()) for _ in range(deliveries)))
    statuses = Counter(outcome_of(r).status for r in results)

    assert statuses[FinalizeStatus.CREATED] == 1
    assert statuses[FinalizeStatus.DUPLICATE] == deliveries - 1
    assert await payments(ledger) == 1


@pytest.mark.asyncio
async def test_staggered_redeliveries_return_the_same_order(carts, intents, finalizer, ledger, key):
    await checkout(carts, intents, key)

    async def deliver(n: int):
        await asyncio.sleep(n * 0.01)
        return outcome_of(await finalizer.on_gateway_event(paid()))

    outcomes = await asyncio.gather(*(deliver(n) for n in range(10)))

    assert len({o.order.order_number for o in outcomes}) == 1
    assert len({o.payment.id for o in outcomes}) == 1
    assert sum(o.status is FinalizeStatus.CREATED for o in outcomes) == 1
    assert await payments(ledger) == 1


@pytest.mark.asyncio
async def test_duplicate_returns_the_recorded_payment_unchanged(carts, intents, finalizer, key):
    await checkout(carts, intents, key)
    first = outcome_of(await finalizer.on_gateway_event(paid()))

    again = outcome_of(await finalizer.on_gateway_event(paid()))

    assert again.status is FinalizeStatus.DUPLICATE
    assert again.payment == first.payment
    assert again.order.order_number == first.order.order_number


@pytest.mark.asyncio
async def test_redelivery_closes_a_cart_left_open(carts, store, gateway, config, clock, ledger, events, key):
    class FlakyIntents(PaymentIntentManager):
        fail_next_mark = True

        async def mark(self, cart, status, reason=None, **kwargs):
            if self.fail_next_mark:
                self.fail_next_mark = False
                return Error(CheckoutErrors.store(StoreError("database is locked")))
            return await super().mark(cart, status, reason, **kwargs)

    intents = FlakyIntents(store, PricingEngine(), gateway, config, clock=clock)
    finalizer = Finalizer(ledger, intents, events, config)
    await checkout(carts, intents, key)

    first = outcome_of(await finalizer.on_gateway_event(paid()))
    assert first.status is FinalizeStatus.CREATED
    left_open = await load(carts, key)
    assert not left_open.is_empty()
    assert read_intent(left_open).status is IntentStatus.CREATED

    again = outcome_of(await finalizer.on_gateway_event(paid()))

    assert again.status is FinalizeStatus.DUPLICATE
    assert again.payment == first.payment
    cart = await load(carts, key)
    assert cart.is_empty() and cart.version == 4
    assert read_intent(cart).status is IntentStatus.SUCCEEDED
    assert not intents.validate(cart).is_valid
    assert await payments(ledger) == 1


# ═══════════════════════════════════════════════════════════════════════════════
# Rejections
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_amount_mismatch_creates_nothing(carts, intents, finalizer, ledger, key):
    await checkout(carts, intents, key)

    err = error_of(await finalizer.on_gateway_event(paid(amount=999)))

    assert err.kind is FinalizeErrorKind.AMOUNT_MISMATCH
    assert "23.00 USD" in err.message
    assert await payments(ledger) == 0
    cart = await load(carts, key)
    assert not cart.is_empty()
    assert read_intent(cart).status is IntentStatus.CREATED


@pytest.mark.asyncio
async def test_unknown_purchase_is_not_found(finalizer, ledger):
    err = error_of(await finalizer.on_gateway_event(paid("px_404", reference=None)))

    assert err.kind is FinalizeErrorKind.INTENT_NOT_FOUND
    assert await payments(ledger, "px_404") == 0


@pytest.mark.asyncio
async def test_informational_events_are_ignored(carts, intents, finalizer, ledger, key):
    await checkout(carts, intents, key)
    event = GatewayEvent.from_payload({"event": "purchase.viewed", "data": {"id": "px_1"}})

    outcome = outcome_of(await finalizer.on_gateway_event(event))

    assert outcome.status is FinalizeStatus.IGNORED
    assert await payments(ledger) == 0


@pytest.mark.asyncio
async def test_ledger_failure_is_a_store_error(intents, events, config):
    class BrokenLedger(PaymentLedger):
        async def find_payment(self, purchase_id):
            return Error(StoreError("disk full"))

    finalizer = Finalizer(BrokenLedger(None), intents, events, config)  # type: ignore[arg-type]

    err = error_of(await finalizer.on_gateway_event(paid()))

    assert err.kind is FinalizeErrorKind.STORE_ERROR
    assert err.message == "disk full"


# ═══════════════════════════════════════════════════════════════════════════════
# Failure events
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_failure_before_payment_fails_the_intent(carts, intents, finalizer, ledger, key):
    await checkout(carts, intents, key)

    outcome = outcome_of(await finalizer.on_gateway_event(failed()))

    assert outcome.status is FinalizeStatus.FAILED
    assert await payments(ledger) == 0
    cart = await load(carts, key)
    assert not cart.is_empty()
    intent = read_intent(cart)
    assert intent.status is IntentStatus.FAILED
    assert intent.failure_reason == "card_declined"

    repeat = outcome_of(await finalizer.on_gateway_event(failed()))
    assert repeat.status is FinalizeStatus.DUPLICATE


@pytest.mark.asyncio
async def test_failure_for_unknown_purchase_is_ignored(finalizer):
    outcome = outcome_of(await finalizer.on_gateway_event(failed("px_404", reference=None)))

    assert outcome.status is FinalizeStatus.IGNORED


@pytest.mark.asyncio
async def test_failure_moves_pending_payment_to_failed(carts, intents, finalizer, ledger, key):
    created = await checkout(carts, intents, key)
    match await ledger.reserve(created.intent, "gateway", cart_reference=str(key)):
        case Ok(reserved):
            assert reserved.created
            assert reserved.payment.status == PaymentStatus.PENDING
        case Error(err):
            pytest.fail(f"Reserve failed: {err}")

    outcome = outcome_of(await finalizer.on_gateway_event(failed()))

    assert outcome.status is FinalizeStatus.FAILED
    assert outcome.payment.status == PaymentStatus.FAILED
    assert outcome.payment.failure_reason == "card_declined"
    assert outcome.payment.failed_at is not None
    assert outcome.order.status == PaymentStatus.FAILED
    assert await payments(ledger) == 1
    assert read_intent(await load(carts, key)).status is IntentStatus.FAILED

    repeat = outcome_of(await finalizer.on_gateway_event(failed()))
    assert repeat.status is FinalizeStatus.DUPLICATE
    assert repeat.payment.status == PaymentStatus.FAILED


@pytest.mark.asyncio
async def test_success_after_reserve_leaves_the_payment_alone(carts, intents, finalizer, ledger, key):
    created = await checkout(carts, intents, key)
    await ledger.reserve(created.intent, "gateway")

    outcome = outcome_of(await finalizer.on_gateway_event(paid()))

    assert outcome.status is FinalizeStatus.DUPLICATE
    assert outcome.payment.status == PaymentStatus.PENDING
    assert await payments(ledger) == 1


# ═══════════════════════════════════════════════════════════════════════════════
# Event log / alerts
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_every_delivery_is_logged(carts, intents, finalizer, events, key):
    await checkout(carts, intents, key)

    await finalizer.on_gateway_event(paid())
    await finalizer.on_gateway_event(paid())
    await finalizer.on_gateway_event(paid("px_404", reference=None))

    match await events.history():
        case Ok(logged):
            assert [(e.purchase_id, e.status) for e in logged] == [
                ("px_1", EventStatus.PROCESSED),
                ("px_1", EventStatus.DUPLICATE),
                ("px_404", EventStatus.FAILED),
            ]
            assert all(e.signature_valid for e in logged)
            assert all(e.processed_at is not None for e in logged)
            assert logged[2].error == "No intent for purchase px_404"
        case Error(err):
            pytest.fail(f"History unavailable: {err}")


@pytest.mark.asyncio
async def test_repeated_failures_raise_an_operator_alert(carts, intents, finalizer, key, caplog):
    caplog.set_level(logging.INFO, logger="tender")
    await checkout(carts, intents, key)

    for _ in range(2):
        error_of(await finalizer.on_gateway_event(paid(amount=1)))
    assert not [r for r in caplog.records if r.levelno == logging.CRITICAL]

    error_of(await finalizer.on_gateway_event(paid(amount=1)))

    alerts = [r for r in caplog.records if r.levelno == logging.CRITICAL]
    assert len(alerts) == 1
    assert "[Purchase: px_1]" in alerts[0].getMessage()


def test_event_status_mapping():
    assert event_status(Ok(FinalizeOutcome(FinalizeStatus.CREATED, "px_1"))) == EventStatus.PROCESSED
    assert event_status(Ok(FinalizeOutcome(FinalizeStatus.FAILED, "px_1"))) == EventStatus.PROCESSED
    assert event_status(Ok(FinalizeOutcome(FinalizeStatus.DUPLICATE, "px_1"))) == EventStatus.DUPLICATE
    assert event_status(Ok(FinalizeOutcome(FinalizeStatus.IGNORED, "px_1"))) == EventStatus.IGNORED
    assert event_status(Error(FinalizeError(FinalizeErrorKind.PROCESSING, "boom"))) == EventStatus.FAILED
