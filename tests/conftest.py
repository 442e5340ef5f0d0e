"""Fixtures: a file-backed sqlite database and the services built on it."""

import pytest
import pytest_asyncio

from tender.cart import CartKey, CartService, SQLAlchemyCartStore
from tender.checkout import CheckoutConfig, PaymentIntentManager
from tender.db import create_database
from tender.finalize import EventLog, Finalizer, PaymentLedger
from tender.pricing import PricingEngine

from support import Clock, FakeGateway


# ═══════════════════════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════════════════════


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    factory, engine = await create_database(
        f"sqlite+aiosqlite:///{tmp_path / 'tender.db'}",
        connect_args={"timeout": 30},
    )
    yield factory
    await engine.dispose()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def config() -> CheckoutConfig:
    return CheckoutConfig().with_intent_ttl(minutes=30).with_gateway_timeout(seconds=0.5)


@pytest.fixture
def store(session_factory) -> SQLAlchemyCartStore:
    return SQLAlchemyCartStore(session_factory)


@pytest.fixture
def carts(store) -> CartService:
    return CartService(store)


@pytest.fixture
def intents(store, gateway, config, clock) -> PaymentIntentManager:
    return PaymentIntentManager(store, PricingEngine(), gateway, config, clock=clock)


@pytest.fixture
def ledger(session_factory) -> PaymentLedger:
    return PaymentLedger(session_factory)


@pytest.fixture
def events(session_factory) -> EventLog:
    return EventLog(session_factory)


@pytest.fixture
def finalizer(ledger, intents, events, config) -> Finalizer:
    return Finalizer(ledger, intents, events, config)


@pytest.fixture
def key() -> CartKey:
    return CartKey("user-42")

