"""
Gateway — the external payment provider, as far as checkout needs it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True, slots=True)
class PurchaseCreated:
    purchase_id: str
    checkout_url: str | None = None


class Gateway(Protocol):
    """
    Payment gateway client.

    Transport, retries and signature crypto belong to the implementation.
    """

    async def create_purchase(
        self, amount: int, currency: str, metadata: dict[str, Any]
    ) -> PurchaseCreated:
        """Open a purchase for `amount` minor units. Raises on rejection."""
        ...

    def verify_webhook_signature(self, raw_payload: bytes, signature: str) -> bool:
        ...


__all__ = ("PurchaseCreated", "Gateway")
