"""
Finalize — gateway events to orders and payments, exactly once per purchase.

    from tender import finalize as F

    finalizer = F.Finalizer(F.PaymentLedger(sf), intents, F.EventLog(sf), config)

    match await finalizer.on_gateway_event(F.GatewayEvent.from_raw(body)):
        case Ok(outcome) if outcome.status is F.FinalizeStatus.CREATED:
            outcome.order.order_number
        case Ok(outcome):
            ...   # DUPLICATE | FAILED | IGNORED
        case Error(err):
            err.kind

Architecture — state nodes validate, polymorphic routes:

    SpecNode
         │
    ┌────┴────────────┐
    │                 │
    IgnoredEvent   ActionableEvent → FetchPayment
                                        │
                  ┌──────────┬──────────┼──────────────┐
                  │          │          │              │
              StoreError  Existing  PendingFailure  NoPayment
                                                       │
                                                 IntentLookup → VerifiedIntent
                  │          │          │              │
                  └──────────┴──────────┴──────────────┘
                                  │
                           FinalizeRouting (@polymorphic)
"""

from tender.finalize._db import (
    PaymentStatus,
    EventStatus,
    OrderTable,
    OrderItemTable,
    PaymentTable,
    WebhookEventTable,
)
from tender.finalize._types import (
    EventKind,
    SUCCESS_EVENTS,
    FAILURE_EVENTS,
    classify,
    GatewayEvent,
    OrderItem,
    Order,
    Payment,
    Materialized,
    FinalizeStatus,
    FinalizeOutcome,
    FinalizeErrorKind,
    FinalizeError,
    FinalizeErrors,
)
from tender.finalize._ledger import PaymentLedger, ORDER_NUMBER_ATTEMPTS, new_order_number
from tender.finalize._events import LoggedEvent, EventLog
from tender.finalize._graph import FinalizeSpec, run_finalize
from tender.finalize._finalizer import Finalizer, event_status

__all__ = (
    # Tables
    "PaymentStatus",
    "EventStatus",
    "OrderTable",
    "OrderItemTable",
    "PaymentTable",
    "WebhookEventTable",
    # Events
    "EventKind",
    "SUCCESS_EVENTS",
    "FAILURE_EVENTS",
    "classify",
    "GatewayEvent",
    # Records
    "OrderItem",
    "Order",
    "Payment",
    "Materialized",
    # Outcome / Error
    "FinalizeStatus",
    "FinalizeOutcome",
    "FinalizeErrorKind",
    "FinalizeError",
    "FinalizeErrors",
    # Ledger
    "PaymentLedger",
    "ORDER_NUMBER_ATTEMPTS",
    "new_order_number",
    # Event log
    "LoggedEvent",
    "EventLog",
    # Graph
    "FinalizeSpec",
    "run_finalize",
    # Finalizer
    "Finalizer",
    "event_status",
)
