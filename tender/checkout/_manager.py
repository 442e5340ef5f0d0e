"""
Payment intent manager — freeze a priced cart against a gateway purchase.

    create_intent(key, customer)
         │
         ├── empty cart                    → EMPTY_CART
         ├── expected_version ≠ version    → CART_CHANGED
         ├── current intent still valid    → reuse it
         │
         ▼
    compute snapshot ──► gateway.create_purchase (bounded) ──► write intent
         │                      │
         └─ PricingError        └─ error / timeout → GATEWAY, nothing written
            → CONFIGURATION

The intent write does not bump the cart version; it is bookkeeping, not a
cart change. A previous intent is appended unchanged to the history list,
where it stays payable: locate() and mark() reach it by purchase id.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, UTC

from kungfu import Result, Ok, Error
from combinators import flow

from tender import lift as L
from tender._types import Lazy
from tender.cart import Cart, CartKey, CartStore, INTENT_KEY, INTENT_HISTORY_KEY
from tender.checkout._config import CheckoutConfig
from tender.checkout._errors import CheckoutError, CheckoutErrors
from tender.checkout._gateway import Gateway
from tender.checkout._types import (
    CustomerSnapshot,
    IntentCreated,
    IntentStatus,
    IntentValidation,
    PaymentIntent,
)
from tender.logs import get_logger, purchase_prefix
from tender.pricing import PricingEngine, PricingError, PricingSnapshot

log = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(UTC)


def read_intent(cart: Cart) -> PaymentIntent | None:
    data = cart.payment_intent
    return PaymentIntent.from_dict(data) if data else None


def read_history(cart: Cart) -> list[PaymentIntent]:
    return [PaymentIntent.from_dict(entry) for entry in cart.metadata.get(INTENT_HISTORY_KEY) or []]


def find_intent(cart: Cart, purchase_id: str) -> PaymentIntent | None:
    """The cart's intent for `purchase_id`, current or superseded."""
    current = read_intent(cart)
    if current is not None and current.purchase_id == purchase_id:
        return current
    return next((i for i in read_history(cart) if i.purchase_id == purchase_id), None)


class PaymentIntentManager:
    """
    Creates, validates and transitions payment intents.

    Example:
        intents = PaymentIntentManager(carts, PricingEngine(), gateway)

        match await intents.create_intent(key, customer, expected_version=7):
            case Ok(created):
                redirect(created.checkout_url)
            case Error(err) if err.kind is CheckoutErrorKind.CART_CHANGED:
                refresh()
    """

    def __init__(
        self,
        carts: CartStore,
        engine: PricingEngine,
        gateway: Gateway,
        config: CheckoutConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._carts = carts
        self._engine = engine
        self._gateway = gateway
        self._config = config if config is not None else CheckoutConfig()
        self._clock = clock

    @property
    def config(self) -> CheckoutConfig:
        return self._config

    # ── Validation ──

    def validate(self, cart: Cart) -> IntentValidation:
        """
        Can the cart's current intent be reused?

        Valid means: same cart version, not expired, still `created`.
        A version mismatch only blocks reuse; it never invalidates an
        intent that is already awaiting the gateway.
        """
        intent = read_intent(cart)
        if intent is None:
            return IntentValidation(is_valid=False, cart_changed=False, has_active_intent=False)

        cart_changed = intent.cart_version != cart.version
        expired = intent.is_expired(self._clock())
        pending = intent.status is IntentStatus.CREATED
        status = IntentStatus.EXPIRED if expired and pending else intent.status

        return IntentValidation(
            is_valid=pending and not cart_changed and not expired,
            cart_changed=cart_changed,
            has_active_intent=pending and not expired,
            expired=expired,
            status=status,
            intent=intent,
        )

    # ── Creation ──

    async def create_intent(
        self,
        key: CartKey,
        customer: CustomerSnapshot,
        expected_version: int | None = None,
    ) -> Result[IntentCreated, CheckoutError]:
        loaded = await self._carts.get(key)
        match loaded:
            case Error(err):
                return Error(CheckoutErrors.store(err))
            case Ok(None):
                return Error(CheckoutErrors.empty_cart())
            case Ok(cart):
                pass

        if cart.is_empty():
            return Error(CheckoutErrors.empty_cart())

        if expected_version is not None and expected_version != cart.version:
            log.info(f"[Cart: {key}] Checkout against stale version {expected_version} (now {cart.version})")
            return Error(CheckoutErrors.cart_changed(expected_version, cart.version))

        check = self.validate(cart)
        if check.is_valid and check.intent is not None:
            intent = check.intent
            log.info(f"{purchase_prefix(intent.purchase_id)} Reusing intent for cart {key}")
            return Ok(IntentCreated(intent.purchase_id, intent.checkout_url, reused=True, intent=intent))

        try:
            snapshot = self._engine.compute(cart)
        except PricingError as e:
            log.error(f"[Cart: {key}] Pricing failed: {e}")
            return Error(CheckoutErrors.configuration(e))

        opened = await self._open_purchase(cart, snapshot, customer)
        match opened:
            case Error(err):
                log.warning(f"[Cart: {key}] Intent not created: {err.message}")
                return Error(err)
            case Ok(intent):
                pass

        prefix = purchase_prefix(intent.purchase_id)
        entries: dict[str, object] = {INTENT_KEY: intent.to_dict()}
        if check.intent is not None:
            reason = "cart changed" if check.cart_changed else f"status {check.status}"
            log.info(f"{prefix} Supersedes {check.intent.purchase_id} ({reason})")
            history = list(cart.metadata.get(INTENT_HISTORY_KEY) or [])
            history.append(cart.payment_intent)
            entries[INTENT_HISTORY_KEY] = history

        written = await self._carts.put_metadata(key, entries)
        match written:
            case Error(err):
                log.error(f"{prefix} Purchase opened but intent not saved: {err.message}")
                return Error(CheckoutErrors.store(err))
            case Ok(_):
                pass

        log.info(
            f"{prefix} Intent created for cart {key} v{cart.version}: "
            f"{snapshot.totals.total}"
        )
        return Ok(IntentCreated(intent.purchase_id, intent.checkout_url, reused=False, intent=intent))

    def _open_purchase(
        self,
        cart: Cart,
        snapshot: PricingSnapshot,
        customer: CustomerSnapshot,
    ) -> Lazy[PaymentIntent, CheckoutError]:
        """Gateway call, bounded by config.gateway_timeout. Not retried."""
        amount = snapshot.totals.total
        metadata = {
            "reference": str(cart.key),
            "cart_version": cart.version,
            "customer_email": customer.email,
        }
        now = self._clock()

        return (
            flow(
                L.bounded(
                    lambda: self._gateway.create_purchase(amount.amount, amount.currency, metadata),
                    seconds=self._config.gateway_timeout,
                    on_error=CheckoutErrors.gateway,
                )
            )
            .map(
                lambda purchase: PaymentIntent(
                    purchase_id=purchase.purchase_id,
                    checkout_url=purchase.checkout_url,
                    cart_version=cart.version,
                    pricing_snapshot=snapshot,
                    customer_snapshot=customer,
                    status=IntentStatus.CREATED,
                    created_at=now,
                    expires_at=now + self._config.intent_ttl,
                )
            )
            .compile()
        )

    # ── Lookup / transitions ──

    async def locate(
        self, purchase_id: str, reference: str | None = None
    ) -> Result[tuple[Cart, PaymentIntent], CheckoutError]:
        """
        Find the cart and intent for a purchase.

        Tries the cart named by `reference` first, then the purchase index.
        The intent may be the cart's current one or a superseded one from
        its history: a purchase already at the gateway stays payable.
        """
        if reference:
            by_ref = await self._carts.get(CartKey.parse(reference))
            match by_ref:
                case Ok(cart) if cart is not None:
                    intent = find_intent(cart, purchase_id)
                    if intent is not None:
                        return Ok((cart, intent))
                case Error(err):
                    return Error(CheckoutErrors.store(err))
                case _:
                    pass

        found = await self._carts.find_by_purchase_id(purchase_id)
        match found:
            case Error(err):
                return Error(CheckoutErrors.store(err))
            case Ok(None):
                return Error(CheckoutErrors.not_found(f"No intent for purchase {purchase_id}"))
            case Ok(cart):
                intent = find_intent(cart, purchase_id)
                if intent is None:
                    return Error(CheckoutErrors.not_found(f"No intent for purchase {purchase_id}"))
                return Ok((cart, intent))

    async def mark(
        self,
        cart: Cart,
        status: IntentStatus,
        reason: str | None = None,
        *,
        purchase_id: str | None = None,
        clear_cart: bool = False,
    ) -> Result[PaymentIntent, CheckoutError]:
        """
        Transition an intent of the cart (the current one by default).

        With clear_cart, the cart is emptied in the same commit (version
        bump) and keeps the transitioned intent as its record.

        A superseded intent is updated in place in the history list. The
        cart, its contents and its current intent are left alone, and
        clear_cart does not apply: the live cart belongs to the newer
        checkout.
        """
        current = read_intent(cart)
        if purchase_id is None and current is not None:
            purchase_id = current.purchase_id
        if purchase_id is None:
            return Error(CheckoutErrors.not_found(f"Cart {cart.key} has no intent"))
        if current is None or current.purchase_id != purchase_id:
            return await self._mark_superseded(cart, purchase_id, status, reason)

        updated = current.with_status(status, self._clock(), reason)
        prefix = purchase_prefix(purchase_id)

        if clear_cart:
            cart.clear()
            cart.metadata[INTENT_KEY] = updated.to_dict()
            committed = await self._carts.commit(cart)
            match committed:
                case Error(err):
                    return Error(CheckoutErrors.store(err))
                case Ok(version):
                    log.info(f"{prefix} Intent {status}, cart {cart.key} cleared (v{version})")
                    return Ok(updated)

        written = await self._carts.put_metadata(cart.key, {INTENT_KEY: updated.to_dict()})
        match written:
            case Error(err):
                return Error(CheckoutErrors.store(err))
            case Ok(_):
                log.info(f"{prefix} Intent {status}")
                return Ok(updated)

    async def _mark_superseded(
        self, cart: Cart, purchase_id: str, status: IntentStatus, reason: str | None
    ) -> Result[PaymentIntent, CheckoutError]:
        history = list(cart.metadata.get(INTENT_HISTORY_KEY) or [])
        index = next(
            (i for i, entry in enumerate(history) if entry.get("purchase_id") == purchase_id),
            None,
        )
        if index is None:
            return Error(CheckoutErrors.not_found(f"Cart {cart.key} has no intent {purchase_id}"))

        updated = PaymentIntent.from_dict(history[index]).with_status(status, self._clock(), reason)
        history[index] = updated.to_dict()

        written = await self._carts.put_metadata(cart.key, {INTENT_HISTORY_KEY: history})
        match written:
            case Error(err):
                return Error(CheckoutErrors.store(err))
            case Ok(_):
                log.info(f"{purchase_prefix(purchase_id)} Superseded intent {status}, cart {cart.key} kept")
                return Ok(updated)


__all__ = ("PaymentIntentManager", "find_intent", "read_intent", "read_history", "utcnow")
