"""
Finalization types — gateway events, materialized records, outcomes.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, StrEnum, auto
from typing import Any

from tender.money import Money


# ═══════════════════════════════════════════════════════════════════════════════
# Gateway Event
# ═══════════════════════════════════════════════════════════════════════════════


class EventKind(StrEnum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    IGNORED = "ignored"


SUCCESS_EVENTS = frozenset({"purchase.paid"})
FAILURE_EVENTS = frozenset({"purchase.payment_failure", "purchase.cancelled", "purchase.expired"})


def classify(event_type: str) -> EventKind:
    if event_type in SUCCESS_EVENTS:
        return EventKind.SUCCEEDED
    if event_type in FAILURE_EVENTS:
        return EventKind.FAILED
    return EventKind.IGNORED


@dataclass(frozen=True, slots=True)
class GatewayEvent:
    """
    A parsed gateway notification.

    Wire shape:
        {"event": "purchase.paid",
         "data": {"id": "px_1", "reference": "user-42:default", "amount": 2300,
                  "currency": "USD", "reason": null, ...}}
    """

    kind: EventKind
    event_type: str
    purchase_id: str
    reference: str | None = None
    amount: int | None = None
    currency: str | None = None
    reason: str | None = None
    payload: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> GatewayEvent:
        """Raises KeyError/TypeError/ValueError on malformed payloads."""
        event_type = str(payload["event"])
        data = payload["data"]
        purchase_id = str(data["id"])
        if not purchase_id:
            raise ValueError("Empty purchase id")
        amount = data.get("amount")
        return cls(
            kind=classify(event_type),
            event_type=event_type,
            purchase_id=purchase_id,
            reference=data.get("reference"),
            amount=int(amount) if amount is not None else None,
            currency=data.get("currency"),
            reason=data.get("reason") or data.get("failure_reason"),
            payload=dict(payload),
        )

    @classmethod
    def from_raw(cls, raw: bytes) -> GatewayEvent:
        return cls.from_payload(json.loads(raw))


# ═══════════════════════════════════════════════════════════════════════════════
# Materialized records
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class OrderItem:
    item_id: str
    name: str
    unit_price: Money
    quantity: int
    line_total: Money


@dataclass(frozen=True, slots=True)
class Order:
    id: str
    order_number: str
    purchase_id: str
    status: str
    total: Money
    savings: Money
    items: tuple[OrderItem, ...]
    customer: Mapping[str, Any]
    pricing_snapshot: Mapping[str, Any]
    created_at: datetime
    failure_reason: str | None = None


@dataclass(frozen=True, slots=True)
class Payment:
    id: str
    purchase_id: str
    order_id: str | None
    amount: Money
    status: str
    method: str
    created_at: datetime
    failure_reason: str | None = None
    failed_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class Materialized:
    """Result of claiming a purchase: `created` is False when another delivery won."""

    payment: Payment
    order: Order | None
    created: bool


# ═══════════════════════════════════════════════════════════════════════════════
# Outcome / Error
# ═══════════════════════════════════════════════════════════════════════════════


class FinalizeStatus(StrEnum):
    CREATED = "created"
    DUPLICATE = "duplicate"
    FAILED = "failed"
    IGNORED = "ignored"


@dataclass(frozen=True, slots=True)
class FinalizeOutcome:
    status: FinalizeStatus
    purchase_id: str
    payment: Payment | None = None
    order: Order | None = None
    message: str = ""


class FinalizeErrorKind(Enum):
    """
    INTENT_NOT_FOUND: no cart carries an intent for this purchase
    AMOUNT_MISMATCH:  gateway amount differs from the frozen snapshot
    STORE_ERROR:      persistence failed (transaction rolled back)
    PROCESSING:       unexpected fault while routing the event
    """

    INTENT_NOT_FOUND = auto()
    AMOUNT_MISMATCH = auto()
    STORE_ERROR = auto()
    PROCESSING = auto()


@dataclass(frozen=True, slots=True)
class FinalizeError:
    kind: FinalizeErrorKind
    message: str
    cause: Any | None = None


class FinalizeErrors:
    @staticmethod
    def intent_not_found(purchase_id: str) -> FinalizeError:
        return FinalizeError(FinalizeErrorKind.INTENT_NOT_FOUND, f"No intent for purchase {purchase_id}")

    @staticmethod
    def amount_mismatch(purchase_id: str, expected: Money, reported: int, currency: str | None) -> FinalizeError:
        return FinalizeError(
            FinalizeErrorKind.AMOUNT_MISMATCH,
            f"Purchase {purchase_id}: snapshot total {expected}, gateway reported {reported} {currency or expected.currency}",
        )

    @staticmethod
    def store(message: str, cause: Any | None = None) -> FinalizeError:
        return FinalizeError(FinalizeErrorKind.STORE_ERROR, message, cause)

    @staticmethod
    def processing(e: Exception) -> FinalizeError:
        return FinalizeError(FinalizeErrorKind.PROCESSING, f"Processing failed: {e}", e)


__all__ = (
    "EventKind",
    "SUCCESS_EVENTS",
    "FAILURE_EVENTS",
    "classify",
    "GatewayEvent",
    "OrderItem",
    "Order",
    "Payment",
    "Materialized",
    "FinalizeStatus",
    "FinalizeOutcome",
    "FinalizeErrorKind",
    "FinalizeError",
    "FinalizeErrors",
)
