import pytest
from kungfu import Ok, Error

from tender.cart import INTENT_HISTORY_KEY, CartItem
from tender.checkout import CheckoutConfig, CheckoutErrorKind, IntentStatus, read_history
from tender.money import Money
from tender.pricing import Condition, ConditionType, Target

from support import CUSTOMER, checkout, mug, promo


async def load(carts, key):
    match await carts.get(key):
        case Ok(cart):
            return cart
        case Error(err):
            pytest.fail(f"Cart not loaded: {err}")


async def expect_error(result, kind: CheckoutErrorKind):
    match await result:
        case Error(err):
            assert err.kind is kind, err.message
            return err
        case Ok(created):
            pytest.fail(f"Expected {kind.name}, got intent {created.purchase_id}")


# ═══════════════════════════════════════════════════════════════════════════════
# Creation
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_intent_freezes_the_priced_cart(carts, intents, gateway, key):
    created = await checkout(carts, intents, key)

    assert created.purchase_id == "px_1"
    assert created.checkout_url == "https://pay.example.test/px_1"
    assert not created.reused

    intent = created.intent
    assert intent.status is IntentStatus.CREATED
    assert intent.cart_version == 3
    assert intent.amount == Money(2300, "USD")
    assert intent.customer_snapshot == CUSTOMER
    assert intent.expires_at - intent.created_at == CheckoutConfig().intent_ttl

    assert gateway.calls == [
        (2300, "USD", {"reference": "user-42:default", "cart_version": 3, "customer_email": "ada@example.com"})
    ]


@pytest.mark.asyncio
async def test_intent_is_bookkeeping_not_a_cart_change(carts, intents, key):
    await checkout(carts, intents, key)

    cart = await load(carts, key)

    assert cart.version == 3
    assert cart.payment_intent["purchase_id"] == "px_1"
    assert cart.payment_intent["amount"] == 2300
    assert intents.validate(cart).is_valid


@pytest.mark.asyncio
async def test_valid_intent_is_reused(carts, intents, gateway, key):
    first = await checkout(carts, intents, key)

    match await intents.create_intent(key, CUSTOMER, expected_version=3):
        case Ok(again):
            assert again.reused
            assert again.purchase_id == first.purchase_id
        case Error(err):
            pytest.fail(f"Reuse failed: {err}")

    assert gateway.call_count == 1


# ═══════════════════════════════════════════════════════════════════════════════
# Supersession
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_changed_cart_supersedes_the_intent(carts, intents, gateway, key):
    await checkout(carts, intents, key)
    await carts.add_item(key, CartItem("sku-pen", "Pen", Money(300, "USD"), 1))

    stale = intents.validate(await load(carts, key))
    assert stale.cart_changed and not stale.is_valid
    assert stale.has_active_intent

    match await intents.create_intent(key, CUSTOMER):
        case Ok(second):
            assert second.purchase_id == "px_2"
            assert not second.reused
            assert second.intent.cart_version == 4
            # (2000 + 300) - 10% + 500
            assert second.intent.amount == Money(2570, "USD")
        case Error(err):
            pytest.fail(f"Second intent failed: {err}")

    cart = await load(carts, key)
    assert cart.payment_intent["purchase_id"] == "px_2"
    assert [h["purchase_id"] for h in cart.metadata[INTENT_HISTORY_KEY]] == ["px_1"]
    assert gateway.call_count == 2


@pytest.mark.asyncio
async def test_expired_intent_is_replaced(carts, intents, clock, key):
    await checkout(carts, intents, key)
    clock.advance(minutes=31)

    check = intents.validate(await load(carts, key))
    assert check.expired and not check.is_valid
    assert check.status is IntentStatus.EXPIRED
    assert not check.cart_changed

    match await intents.create_intent(key, CUSTOMER):
        case Ok(fresh):
            assert fresh.purchase_id == "px_2"
            assert fresh.intent.created_at == clock.now
        case Error(err):
            pytest.fail(f"Replacement failed: {err}")


@pytest.mark.asyncio
async def test_stale_expected_version_is_rejected(carts, intents, gateway, key):
    await carts.add_item(key, mug())

    err = await expect_error(
        intents.create_intent(key, CUSTOMER, expected_version=0), CheckoutErrorKind.CART_CHANGED
    )

    assert "expected version 0" in err.message
    assert gateway.call_count == 0


# ═══════════════════════════════════════════════════════════════════════════════
# Failures
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_empty_cart_cannot_check_out(carts, intents, key):
    await expect_error(intents.create_intent(key, CUSTOMER), CheckoutErrorKind.EMPTY_CART)

    await carts.add_item(key, mug())
    await carts.remove_item(key, "sku-mug")

    await expect_error(intents.create_intent(key, CUSTOMER), CheckoutErrorKind.EMPTY_CART)


@pytest.mark.asyncio
async def test_gateway_rejection_persists_nothing(carts, intents, gateway, key):
    await carts.add_item(key, mug())
    gateway.fail = RuntimeError("card network down")

    err = await expect_error(intents.create_intent(key, CUSTOMER), CheckoutErrorKind.GATEWAY)

    assert "card network down" in err.message
    cart = await load(carts, key)
    assert cart.payment_intent is None
    assert cart.version == 1


@pytest.mark.asyncio
async def test_gateway_timeout_persists_nothing(carts, intents, gateway, key):
    await carts.add_item(key, mug())
    gateway.delay = 1.0

    err = await expect_error(intents.create_intent(key, CUSTOMER), CheckoutErrorKind.GATEWAY)

    assert err.message == "Gateway timed out"
    assert (await load(carts, key)).payment_intent is None


@pytest.mark.asyncio
async def test_pricing_failure_is_a_configuration_error(carts, intents, gateway, key):
    await carts.add_item(key, mug())
    await carts.add_condition(
        key, Condition("coupon", ConditionType.DISCOUNT, Target.SUBTOTAL, "-5000")
    )

    await expect_error(intents.create_intent(key, CUSTOMER), CheckoutErrorKind.CONFIGURATION)

    assert gateway.call_count == 0


# ═══════════════════════════════════════════════════════════════════════════════
# Transitions
# ═══════════════════════════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_locate_by_reference_or_index(carts, intents, key):
    await checkout(carts, intents, key)

    for reference in (str(key), None, "someone-else:default"):
        match await intents.locate("px_1", reference):
            case Ok((cart, intent)):
                assert cart.key == key
                assert intent.purchase_id == "px_1"
            case Error(err):
                pytest.fail(f"Not located via {reference!r}: {err}")

    match await intents.locate("px_404"):
        case Error(err):
            assert err.kind is CheckoutErrorKind.NOT_FOUND
        case Ok(_):
            pytest.fail("Unknown purchase located")


@pytest.mark.asyncio
async def test_superseded_intent_can_be_located_and_marked(carts, intents, key):
    await checkout(carts, intents, key)
    await carts.add_item(key, CartItem("sku-pen", "Pen", Money(300, "USD"), 1))
    await intents.create_intent(key, CUSTOMER)

    for reference in (str(key), None):
        match await intents.locate("px_1", reference):
            case Ok((cart, intent)):
                assert cart.key == key
                assert intent.purchase_id == "px_1"
                assert intent.amount == Money(2300, "USD")
            case Error(err):
                pytest.fail(f"Superseded intent not located via {reference!r}: {err}")

    cart = await load(carts, key)
    match await intents.mark(cart, IntentStatus.SUCCEEDED, purchase_id="px_1", clear_cart=True):
        case Ok(intent):
            assert intent.status is IntentStatus.SUCCEEDED
        case Error(err):
            pytest.fail(f"Mark failed: {err}")

    after = await load(carts, key)
    assert after.version == 4
    assert not after.is_empty()
    assert after.payment_intent["purchase_id"] == "px_2"
    assert intents.validate(after).is_valid
    assert [(i.purchase_id, i.status) for i in read_history(after)] == [("px_1", IntentStatus.SUCCEEDED)]


@pytest.mark.asyncio
async def test_marking_failed_keeps_the_cart(carts, intents, key):
    await checkout(carts, intents, key)
    cart = await load(carts, key)

    match await intents.mark(cart, IntentStatus.FAILED, "card_declined"):
        case Ok(intent):
            assert intent.status is IntentStatus.FAILED
            assert intent.failure_reason == "card_declined"
        case Error(err):
            pytest.fail(f"Mark failed: {err}")

    after = await load(carts, key)
    assert after.version == 3
    assert not after.is_empty()
    assert intents.validate(after).status is IntentStatus.FAILED
    assert not intents.validate(after).has_active_intent


@pytest.mark.asyncio
async def test_marking_succeeded_can_clear_the_cart(carts, intents, key):
    await checkout(carts, intents, key)
    await carts.set_metadata(key, "gift_note", "Happy birthday")
    cart = await load(carts, key)

    match await intents.mark(cart, IntentStatus.SUCCEEDED, clear_cart=True):
        case Ok(intent):
            assert intent.status is IntentStatus.SUCCEEDED
        case Error(err):
            pytest.fail(f"Mark failed: {err}")

    after = await load(carts, key)
    assert after.is_empty() and after.conditions == []
    assert after.version == 5
    assert "gift_note" not in after.metadata
    assert after.payment_intent["status"] == "succeeded"


@pytest.mark.asyncio
async def test_condition_added_after_intent_needs_a_new_intent(carts, intents, gateway, key):
    await checkout(carts, intents, key)
    await carts.add_condition(key, promo("-50%"))

    match await intents.create_intent(key, CUSTOMER):
        case Ok(created):
            # (2000 - 50%) + 500
            assert created.intent.amount == Money(1500, "USD")
            assert created.purchase_id == "px_2"
        case Error(err):
            pytest.fail(f"New intent failed: {err}")
