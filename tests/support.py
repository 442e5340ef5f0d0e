"""Test doubles and builders shared by the test modules."""

import asyncio
import hashlib
import hmac
import itertools
import json
from datetime import datetime, timedelta, UTC
from typing import Any

import pytest
from kungfu import Ok, Error

from tender.cart import CartItem, CartKey, CartService
from tender.checkout import (
    CustomerSnapshot,
    IntentCreated,
    PaymentIntentManager,
    PurchaseCreated,
)
from tender.money import Money
from tender.pricing import Condition, ConditionType, Target


# ═══════════════════════════════════════════════════════════════════════════════
# Gateway double
# ═══════════════════════════════════════════════════════════════════════════════


class FakeGateway:
    """
    Gateway that hands out px_1, px_2, ... and signs with HMAC-SHA256.

    Set `fail` to an exception to make create_purchase raise it, or
    `delay` (seconds) to slow it down.
    """

    def __init__(self, secret: bytes = b"whsec_test") -> None:
        self.secret = secret
        self.fail: Exception | None = None
        self.delay = 0.0
        self.calls: list[tuple[int, str, dict[str, Any]]] = []
        self._ids = itertools.count(1)

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def create_purchase(
        self, amount: int, currency: str, metadata: dict[str, Any]
    ) -> PurchaseCreated:
        self.calls.append((amount, currency, dict(metadata)))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail is not None:
            raise self.fail
        n = next(self._ids)
        return PurchaseCreated(f"px_{n}", f"https://pay.example.test/px_{n}")

    def sign(self, raw: bytes) -> str:
        return hmac.new(self.secret, raw, hashlib.sha256).hexdigest()

    def verify_webhook_signature(self, raw_payload: bytes, signature: str) -> bool:
        return hmac.compare_digest(self.sign(raw_payload), signature)


class Clock:
    """Settable clock for intent expiry."""

    def __init__(self) -> None:
        self.now = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


# ═══════════════════════════════════════════════════════════════════════════════
# Builders
# ═══════════════════════════════════════════════════════════════════════════════

CUSTOMER = CustomerSnapshot("Ada Lovelace", "ada@example.com", "+44 20 0000 0000")


def mug(quantity: int = 2, price: int = 1000) -> CartItem:
    return CartItem("sku-mug", "Mug", Money(price, "USD"), quantity)


def promo(value: str = "-10%", priority: int = 1) -> Condition:
    return Condition("promo", ConditionType.DISCOUNT, Target.SUBTOTAL, value, priority=priority)


def shipping(value: str = "+500", priority: int = 2) -> Condition:
    return Condition("ship", ConditionType.SHIPPING, Target.TOTAL, value, priority=priority)


def paid_payload(purchase_id: str, reference: str | None, amount: int | None = 2300) -> dict[str, Any]:
    data: dict[str, Any] = {"id": purchase_id, "reference": reference, "currency": "USD"}
    if amount is not None:
        data["amount"] = amount
    return {"event": "purchase.paid", "data": data}


def failed_payload(purchase_id: str, reference: str | None, reason: str = "card_declined") -> dict[str, Any]:
    return {
        "event": "purchase.payment_failure",
        "data": {"id": purchase_id, "reference": reference, "reason": reason},
    }


def body(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload).encode()


async def checkout(carts: CartService, intents: PaymentIntentManager, key: CartKey) -> IntentCreated:
    """Mug x2 + promo + shipping (total 2300), then open an intent."""
    for step in (
        carts.add_item(key, mug()),
        carts.add_condition(key, promo()),
        carts.add_condition(key, shipping()),
    ):
        match await step:
            case Error(err):
                pytest.fail(f"Cart setup failed: {err}")
            case Ok(_):
                pass

    match await intents.create_intent(key, CUSTOMER):
        case Ok(created):
            return created
        case Error(err):
            pytest.fail(f"Intent not created: {err}")
