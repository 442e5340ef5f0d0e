"""
Payment ledger — orders and payments, created at most once per purchase.

Claim protocol (one transaction):

    INSERT payment ON CONFLICT (purchase_id) DO NOTHING
        │
        ├── rowcount 0 → another delivery owns it: ROLLBACK, re-fetch, created=False
        │
        └── rowcount 1 → INSERT order + order_items (from the frozen snapshot)
                         UPDATE payment.order_id
                         COMMIT                                  created=True

Any exception rolls the whole transaction back: there is never an order
without its payment, or a payment pointing at a missing order.
"""

import secrets
import uuid
from datetime import datetime, UTC
from typing import Any, cast

from sqlalchemy import select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kungfu import Result, Ok, Error

from tender._types import StoreError
from tender.checkout import PaymentIntent
from tender.db import dialect_of, insert_ignoring_conflict
from tender.finalize._db import OrderItemTable, OrderTable, PaymentStatus, PaymentTable
from tender.finalize._types import GatewayEvent, Materialized, Order, OrderItem, Payment
from tender.logs import get_logger, purchase_prefix
from tender.money import Money

log = get_logger(__name__)

# Order numbers are random; a clash aborts the transaction and is retried.
ORDER_NUMBER_ATTEMPTS = 3


def new_order_number(now: datetime) -> str:
    return f"ORD-{now:%Y%m%d}-{secrets.token_hex(4).upper()}"


def _is_order_number_clash(e: IntegrityError) -> bool:
    return "order_number" in str(e.orig)


# ═══════════════════════════════════════════════════════════════════════════════
# Row → domain
# ═══════════════════════════════════════════════════════════════════════════════

def _payment(row: PaymentTable) -> Payment:
    return Payment(
        id=row.id,
        purchase_id=row.purchase_id,
        order_id=row.order_id,
        amount=Money(row.amount, row.currency),
        status=row.status,
        method=row.method,
        created_at=row.created_at,
        failure_reason=row.failure_reason,
        failed_at=row.failed_at,
    )


def _order(row: OrderTable, items: list[OrderItemTable]) -> Order:
    return Order(
        id=row.id,
        order_number=row.order_number,
        purchase_id=row.purchase_id,
        status=row.status,
        total=Money(row.total, row.currency),
        savings=Money(row.savings, row.currency),
        items=tuple(
            OrderItem(
                item_id=i.item_id,
                name=i.name,
                unit_price=Money(i.unit_price, row.currency),
                quantity=i.quantity,
                line_total=Money(i.line_total, row.currency),
            )
            for i in sorted(items, key=lambda i: i.position)
        ),
        customer=row.customer,
        pricing_snapshot=row.pricing_snapshot,
        created_at=row.created_at,
        failure_reason=row.failure_reason,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Ledger
# ═══════════════════════════════════════════════════════════════════════════════

class PaymentLedger:
    """
    Orders + payments keyed by purchase id.

    Example:
        ledger = PaymentLedger(session_factory)
        match await ledger.materialize(intent, event, method="gateway"):
            case Ok(m) if m.created: ...   # this delivery created the order
            case Ok(m): ...                # already processed, m holds the existing records
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_payment(self, purchase_id: str) -> Result[Materialized | None, StoreError]:
        try:
            async with self._session_factory() as session:
                return Ok(await self._load(session, purchase_id))

        except Exception as e:
            return Error(StoreError(f"Failed to find payment {purchase_id}: {e}", e))

    async def count_payments(self, purchase_id: str) -> Result[int, StoreError]:
        try:
            async with self._session_factory() as session:
                rows = (
                    await session.execute(
                        select(PaymentTable.id).where(PaymentTable.purchase_id == purchase_id)
                    )
                ).all()
                return Ok(len(rows))

        except Exception as e:
            return Error(StoreError(f"Failed to count payments {purchase_id}: {e}", e))

    async def materialize(
        self,
        intent: PaymentIntent,
        event: GatewayEvent,
        method: str,
        cart_reference: str | None = None,
    ) -> Result[Materialized, StoreError]:
        """Create order + items + payment from the intent's frozen snapshot, once."""
        prefix = purchase_prefix(intent.purchase_id)
        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            try:
                return Ok(
                    await self._claim(
                        intent,
                        PaymentStatus.PAID,
                        method,
                        cart_reference,
                        gateway_response=dict(event.payload),
                    )
                )
            except IntegrityError as e:
                if _is_order_number_clash(e) and attempt < ORDER_NUMBER_ATTEMPTS:
                    log.warning(f"{prefix} Order number clash, retrying ({attempt}/{ORDER_NUMBER_ATTEMPTS})")
                    continue
                return Error(StoreError(f"Failed to materialize {intent.purchase_id}: {e}", e))
            except Exception as e:
                return Error(StoreError(f"Failed to materialize {intent.purchase_id}: {e}", e))

        return Error(StoreError(f"Failed to materialize {intent.purchase_id}: no order number"))

    async def reserve(
        self,
        intent: PaymentIntent,
        method: str,
        cart_reference: str | None = None,
    ) -> Result[Materialized, StoreError]:
        """
        Record a pending order + payment ahead of gateway confirmation.

        Same claim protocol as materialize. A later failure event moves the
        pending rows to failed through mark_failed.
        """
        try:
            return Ok(await self._claim(intent, PaymentStatus.PENDING, method, cart_reference))
        except Exception as e:
            return Error(StoreError(f"Failed to reserve {intent.purchase_id}: {e}", e))

    async def mark_failed(
        self, purchase_id: str, reason: str
    ) -> Result[Materialized | None, StoreError]:
        """
        pending → failed on payment and order, with reason and timestamp.

        Ok(None) when there is no pending payment for the purchase.
        """
        now = datetime.now(UTC)
        try:
            async with self._session_factory() as session:
                cursor = cast(
                    CursorResult[Any],
                    await session.execute(
                        update(PaymentTable)
                        .where(
                            PaymentTable.purchase_id == purchase_id,
                            PaymentTable.status == PaymentStatus.PENDING,
                        )
                        .values(status=PaymentStatus.FAILED, failure_reason=reason, failed_at=now)
                    ),
                )
                if cursor.rowcount == 0:
                    await session.rollback()
                    return Ok(None)

                await session.execute(
                    update(OrderTable)
                    .where(
                        OrderTable.purchase_id == purchase_id,
                        OrderTable.status == PaymentStatus.PENDING,
                    )
                    .values(status=PaymentStatus.FAILED, failure_reason=reason, failed_at=now)
                )
                await session.commit()
                return Ok(await self._load(session, purchase_id))

        except Exception as e:
            return Error(StoreError(f"Failed to mark {purchase_id} failed: {e}", e))

    # ── Internals ──

    async def _claim(
        self,
        intent: PaymentIntent,
        status: str,
        method: str,
        cart_reference: str | None,
        gateway_response: dict[str, Any] | None = None,
    ) -> Materialized:
        now = datetime.now(UTC)
        snapshot = intent.pricing_snapshot
        totals = snapshot.totals
        payment_id = uuid.uuid4().hex
        order_id = uuid.uuid4().hex
        prefix = purchase_prefix(intent.purchase_id)

        async with self._session_factory() as session:
            claim = cast(
                CursorResult[Any],
                await session.execute(
                    insert_ignoring_conflict(
                        dialect_of(session),
                        PaymentTable,
                        {
                            "id": payment_id,
                            "purchase_id": intent.purchase_id,
                            "order_id": None,
                            "amount": totals.total.amount,
                            "currency": snapshot.currency,
                            "status": status,
                            "method": method,
                            "gateway_response": gateway_response,
                            "created_at": now,
                            "paid_at": now if status == PaymentStatus.PAID else None,
                        },
                        index_elements=["purchase_id"],
                    )
                ),
            )

            if claim.rowcount == 0:
                await session.rollback()
                log.info(f"{prefix} Payment already recorded, returning existing")
                existing = await self._load(session, intent.purchase_id)
                if existing is None:
                    raise RuntimeError(f"Payment {intent.purchase_id} vanished after conflict")
                return existing

            order = OrderTable(
                id=order_id,
                order_number=new_order_number(now),
                purchase_id=intent.purchase_id,
                cart_reference=cart_reference,
                status=status,
                currency=snapshot.currency,
                subtotal=totals.subtotal.amount,
                discount_total=totals.discount_total.amount,
                tax_total=totals.tax_total.amount,
                shipping_total=totals.shipping_total.amount,
                fee_total=totals.fee_total.amount,
                total=totals.total.amount,
                savings=totals.savings.amount,
                pricing_snapshot=snapshot.to_dict(),
                customer=intent.customer_snapshot.to_dict(),
                created_at=now,
                paid_at=now if status == PaymentStatus.PAID else None,
            )
            items = [
                OrderItemTable(
                    order_id=order_id,
                    position=position,
                    item_id=line.id,
                    name=line.name,
                    unit_price=line.unit_price.amount,
                    quantity=line.quantity,
                    line_total=line.line_total.amount,
                    conditions=[c.to_dict() for c in line.conditions],
                )
                for position, line in enumerate(snapshot.items)
            ]
            session.add(order)
            session.add_all(items)
            await session.flush()

            await session.execute(
                update(PaymentTable)
                .where(PaymentTable.id == payment_id)
                .values(order_id=order_id)
            )
            await session.commit()

            log.info(f"{prefix} Order {order.order_number} created ({status}, {totals.total})")
            loaded = await self._load(session, intent.purchase_id)
            if loaded is None:
                raise RuntimeError(f"Payment {intent.purchase_id} missing after commit")
            return Materialized(payment=loaded.payment, order=loaded.order, created=True)

    async def _load(self, session: AsyncSession, purchase_id: str) -> Materialized | None:
        payment = (
            await session.execute(
                select(PaymentTable).where(PaymentTable.purchase_id == purchase_id)
            )
        ).scalar_one_or_none()
        if payment is None:
            return None

        order: Order | None = None
        if payment.order_id is not None:
            order_row = (
                await session.execute(select(OrderTable).where(OrderTable.id == payment.order_id))
            ).scalar_one_or_none()
            if order_row is not None:
                items = (
                    await session.execute(
                        select(OrderItemTable).where(OrderItemTable.order_id == order_row.id)
                    )
                ).scalars().all()
                order = _order(order_row, list(items))

        return Materialized(payment=_payment(payment), order=order, created=False)


__all__ = ("PaymentLedger", "ORDER_NUMBER_ATTEMPTS", "new_order_number")
