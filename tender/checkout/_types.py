"""
Checkout types — payment intent and its lifecycle.

    created ──► succeeded
            └─► failed
            └─► expired   (reported by validate(); superseded on next checkout)

An intent is written once into cart metadata. After that only `status`
(and the failure reason / timestamp that go with it) may change; a new
checkout supersedes it rather than editing it.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import StrEnum
from typing import Any

from tender.pricing import PricingSnapshot
from tender.money import Money


class IntentStatus(StrEnum):
    CREATED = "created"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in (IntentStatus.SUCCEEDED, IntentStatus.FAILED)


@dataclass(frozen=True, slots=True)
class CustomerSnapshot:
    name: str
    email: str
    phone: str | None = None
    address: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": dict(self.address),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CustomerSnapshot:
        return cls(
            name=data.get("name", ""),
            email=data.get("email", ""),
            phone=data.get("phone"),
            address=dict(data.get("address") or {}),
        )


@dataclass(frozen=True, slots=True)
class PaymentIntent:
    purchase_id: str
    checkout_url: str | None
    cart_version: int
    pricing_snapshot: PricingSnapshot
    customer_snapshot: CustomerSnapshot
    status: IntentStatus
    created_at: datetime
    expires_at: datetime
    failure_reason: str | None = None
    updated_at: datetime | None = None

    @property
    def amount(self) -> Money:
        return self.pricing_snapshot.totals.total

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def with_status(
        self, status: IntentStatus, at: datetime, reason: str | None = None
    ) -> PaymentIntent:
        return replace(self, status=status, updated_at=at, failure_reason=reason)

    def to_dict(self) -> dict[str, Any]:
        return {
            "purchase_id": self.purchase_id,
            "checkout_url": self.checkout_url,
            "amount": self.amount.amount,
            "currency": self.amount.currency,
            "cart_version": self.cart_version,
            "pricing_snapshot": self.pricing_snapshot.to_dict(),
            "customer_snapshot": self.customer_snapshot.to_dict(),
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "failure_reason": self.failure_reason,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PaymentIntent:
        updated_at = data.get("updated_at")
        return cls(
            purchase_id=data["purchase_id"],
            checkout_url=data.get("checkout_url"),
            cart_version=int(data["cart_version"]),
            pricing_snapshot=PricingSnapshot.from_dict(data["pricing_snapshot"]),
            customer_snapshot=CustomerSnapshot.from_dict(data.get("customer_snapshot") or {}),
            status=IntentStatus(data["status"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            failure_reason=data.get("failure_reason"),
            updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
        )


@dataclass(frozen=True, slots=True)
class IntentCreated:
    """What the shopper's browser needs: where to pay, and for which purchase."""

    purchase_id: str
    checkout_url: str | None
    reused: bool
    intent: PaymentIntent


@dataclass(frozen=True, slots=True)
class IntentValidation:
    is_valid: bool
    cart_changed: bool
    has_active_intent: bool
    expired: bool = False
    status: IntentStatus | None = None
    intent: PaymentIntent | None = None


__all__ = (
    "IntentStatus",
    "CustomerSnapshot",
    "PaymentIntent",
    "IntentCreated",
    "IntentValidation",
)
