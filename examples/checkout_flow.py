"""
Checkout Flow Example

Prices a cart, opens a payment intent against a demo gateway, then
delivers the same "purchase.paid" webhook several times at once.

Run: uv run python examples/checkout_flow.py
"""

import asyncio
import itertools
import tempfile
from pathlib import Path
from typing import Any

from combinators import batch, lift as L
from kungfu import Ok, Error

from tender import cart as C
from tender import checkout as K
from tender import finalize as F
from tender import pricing as P
from tender.db import create_database
from tender.logs import setup_logging
from tender.money import Money


class DemoGateway:
    """Hands out sequential purchase ids; accepts every signature."""

    def __init__(self) -> None:
        self.call_count = 0
        self._ids = itertools.count(1)

    async def create_purchase(
        self, amount: int, currency: str, metadata: dict[str, Any]
    ) -> K.PurchaseCreated:
        self.call_count += 1
        await asyncio.sleep(0.01)
        n = next(self._ids)
        return K.PurchaseCreated(f"px_demo_{n}", f"https://pay.example.test/px_demo_{n}")

    def verify_webhook_signature(self, raw_payload: bytes, signature: str) -> bool:
        return True


def banner(title: str) -> None:
    print(f"\n{'─' * 50}\n{title}\n{'─' * 50}")


async def main() -> None:
    setup_logging("WARNING")
    banner("Checkout Flow")

    workdir = tempfile.TemporaryDirectory()
    session_factory, engine = await create_database(
        f"sqlite+aiosqlite:///{Path(workdir.name) / 'checkout.db'}",
        connect_args={"timeout": 30},
    )
    gateway = DemoGateway()
    store = C.SQLAlchemyCartStore(session_factory)
    carts = C.CartService(store)
    intents = K.PaymentIntentManager(store, P.PricingEngine(), gateway)
    ledger = F.PaymentLedger(session_factory)
    events = F.EventLog(session_factory)
    finalizer = F.Finalizer(ledger, intents, events)

    key = C.CartKey("demo-user")

    try:
        # 1. Fill the cart
        print("1. Cart:")
        await carts.add_item(key, C.CartItem("sku-mug", "Mug", Money(1000, "USD"), 2))
        await carts.add_condition(key, P.Condition("promo", "discount", "subtotal", "-10%", priority=1))
        await carts.add_condition(key, P.Condition("ship", "shipping", "total", "+500", priority=2))
        cart = (await carts.get(key)).unwrap()
        totals = P.PricingEngine().compute(cart).totals
        print(f"   v{cart.version}: subtotal {totals.subtotal}, total {totals.total}, savings {totals.savings}\n")

        # 2. Intent (second call reuses it)
        print("2. Payment intent:")
        customer = K.CustomerSnapshot("Ada Lovelace", "ada@example.com")
        for _ in range(2):
            match await intents.create_intent(key, customer):
                case Ok(created):
                    print(f"   {created.purchase_id} reused={created.reused} → {created.checkout_url}")
                case Error(e):
                    print(f"   Error: {e.kind.name} {e.message}")
                    return
        print(f"   Gateway calls: {gateway.call_count}\n")

        # 3. Five concurrent deliveries of the same webhook
        print("3. Webhook x5 (concurrent):")
        event = F.GatewayEvent.from_payload({
            "event": "purchase.paid",
            "data": {"id": created.purchase_id, "reference": str(key), "amount": 2300, "currency": "USD"},
        })
        await batch(
            range(5),
            handler=lambda _: L.catching_async(
                lambda: finalizer.on_gateway_event(event),
                on_error=str,
            ),
            concurrency=5,
        )

        payments = (await ledger.count_payments(created.purchase_id)).unwrap()
        statuses = [e.status for e in (await events.history(created.purchase_id)).unwrap()]
        print(f"   Deliveries: {statuses}")
        print(f"   Payment rows: {payments} (only 1!)")

    finally:
        await engine.dispose()
        workdir.cleanup()


if __name__ == "__main__":
    asyncio.run(main())
