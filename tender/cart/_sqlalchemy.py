"""
SQLAlchemy cart store.

One row per (identifier, instance). Items, conditions and metadata are
JSON columns. `cart_purchases` indexes every purchase id the cart's
intents ever carried (current and superseded), so webhooks can find the
cart without scanning metadata.

Version bump:

    INSERT ... ON CONFLICT (identifier, instance) DO NOTHING   -- row exists
    UPDATE carts SET ..., version = version + 1 RETURNING id, version

The row is never deleted, so the counter survives clears.
"""

from collections.abc import Mapping
from datetime import datetime, UTC
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, UniqueConstraint, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from kungfu import Result, Ok, Error

from tender._types import StoreError
from tender.cart._store import intent_purchase_ids, merge_metadata
from tender.cart._types import Cart, CartKey
from tender.db import Base, dialect_of, insert_ignoring_conflict


# ═══════════════════════════════════════════════════════════════════════════════
# Tables
# ═══════════════════════════════════════════════════════════════════════════════

class CartTable(Base):
    __tablename__ = "carts"
    __table_args__ = (UniqueConstraint("identifier", "instance", name="uq_carts_identity"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    instance: Mapped[str] = mapped_column(String(64), nullable=False, default="default")
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    conditions: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    cart_metadata: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def to_cart(self) -> Cart:
        return Cart.from_dict({
            "identifier": self.identifier,
            "instance": self.instance,
            "currency": self.currency,
            "items": self.items,
            "conditions": self.conditions,
            "version": self.version,
            "metadata": self.cart_metadata,
        })


class CartPurchaseTable(Base):
    """Purchase id → cart. Rows are only added, never rewritten."""

    __tablename__ = "cart_purchases"

    purchase_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    cart_id: Mapped[int] = mapped_column(Integer, ForeignKey("carts.id"), nullable=False, index=True)


def _identity(key: CartKey) -> Any:
    return (CartTable.identifier == key.identifier) & (CartTable.instance == key.instance)


async def _index_purchases(session: AsyncSession, cart_id: int, metadata: Mapping[str, Any]) -> None:
    dialect = dialect_of(session)
    for purchase_id in intent_purchase_ids(metadata):
        await session.execute(
            insert_ignoring_conflict(
                dialect,
                CartPurchaseTable,
                {"purchase_id": purchase_id, "cart_id": cart_id},
                index_elements=["purchase_id"],
            )
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Store
# ═══════════════════════════════════════════════════════════════════════════════

class SQLAlchemyCartStore:
    """
    Cart store backed by the `carts` and `cart_purchases` tables.

    Example:
        session_factory, engine = await create_database(url)
        carts = SQLAlchemyCartStore(session_factory)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, key: CartKey) -> Result[Cart | None, StoreError]:
        try:
            async with self._session_factory() as session:
                row = (
                    await session.execute(select(CartTable).where(_identity(key)))
                ).scalar_one_or_none()
                return Ok(row.to_cart() if row is not None else None)

        except Exception as e:
            return Error(StoreError(f"Failed to get cart {key}: {e}", e))

    async def commit(self, cart: Cart) -> Result[int, StoreError]:
        try:
            data = cart.to_dict()
            now = datetime.now(UTC)
            async with self._session_factory() as session:
                await session.execute(
                    insert_ignoring_conflict(
                        dialect_of(session),
                        CartTable,
                        {
                            "identifier": cart.identifier,
                            "instance": cart.instance,
                            "currency": cart.currency,
                            "items": [],
                            "conditions": [],
                            "cart_metadata": {},
                            "version": 0,
                            "updated_at": now,
                        },
                        index_elements=["identifier", "instance"],
                    )
                )
                stmt = (
                    update(CartTable)
                    .where(_identity(cart.key))
                    .values(
                        currency=cart.currency,
                        items=data["items"],
                        conditions=data["conditions"],
                        cart_metadata=data["metadata"],
                        version=CartTable.version + 1,
                        updated_at=now,
                    )
                    .returning(CartTable.id, CartTable.version)
                )
                cart_id, version = (await session.execute(stmt)).one()
                await _index_purchases(session, cart_id, data["metadata"])
                await session.commit()

            cart.version = version
            return Ok(version)

        except Exception as e:
            return Error(StoreError(f"Failed to commit cart {cart.key}: {e}", e))

    async def put_metadata(
        self, key: CartKey, entries: Mapping[str, Any]
    ) -> Result[None, StoreError]:
        try:
            async with self._session_factory() as session:
                row = (
                    await session.execute(
                        select(CartTable).where(_identity(key)).with_for_update()
                    )
                ).scalar_one_or_none()
                if row is None:
                    return Error(StoreError(f"Cart not found: {key}"))

                metadata = merge_metadata(row.cart_metadata or {}, entries)

                await session.execute(
                    update(CartTable)
                    .where(CartTable.id == row.id)
                    .values(cart_metadata=metadata, updated_at=datetime.now(UTC))
                )
                await _index_purchases(session, row.id, metadata)
                await session.commit()
                return Ok(None)

        except Exception as e:
            return Error(StoreError(f"Failed to write metadata {sorted(entries)} on {key}: {e}", e))

    async def find_by_purchase_id(self, purchase_id: str) -> Result[Cart | None, StoreError]:
        try:
            async with self._session_factory() as session:
                row = (
                    await session.execute(
                        select(CartTable)
                        .join(CartPurchaseTable, CartPurchaseTable.cart_id == CartTable.id)
                        .where(CartPurchaseTable.purchase_id == purchase_id)
                    )
                ).scalar_one_or_none()
                return Ok(row.to_cart() if row is not None else None)

        except Exception as e:
            return Error(StoreError(f"Failed to find cart for purchase {purchase_id}: {e}", e))


__all__ = ("CartTable", "CartPurchaseTable", "SQLAlchemyCartStore")
