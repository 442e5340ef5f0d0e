"""
Event log — durable record of every inbound gateway call.

Written before processing and finished after it, so "never received" and
"received but failed" stay distinguishable and events can be replayed.
"""

from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Any, cast

from sqlalchemy import func, select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kungfu import Result, Ok, Error

from tender._types import StoreError
from tender.finalize._db import EventStatus, WebhookEventTable


@dataclass(frozen=True, slots=True)
class LoggedEvent:
    id: int
    event_type: str | None
    purchase_id: str | None
    raw_payload: str
    signature_valid: bool
    status: str
    error: str | None
    received_at: datetime
    processed_at: datetime | None


def _logged(row: WebhookEventTable) -> LoggedEvent:
    return LoggedEvent(
        id=row.id,
        event_type=row.event_type,
        purchase_id=row.purchase_id,
        raw_payload=row.raw_payload,
        signature_valid=row.signature_valid,
        status=row.status,
        error=row.error,
        received_at=row.received_at,
        processed_at=row.processed_at,
    )


class EventLog:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def record(
        self,
        raw: bytes | str,
        *,
        signature_valid: bool,
        event_type: str | None = None,
        purchase_id: str | None = None,
        status: str = EventStatus.RECEIVED,
        error: str | None = None,
    ) -> Result[int, StoreError]:
        """Insert an event row, return its id."""
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        now = datetime.now(UTC)
        try:
            async with self._session_factory() as session:
                row = WebhookEventTable(
                    event_type=event_type,
                    purchase_id=purchase_id,
                    raw_payload=text,
                    signature_valid=signature_valid,
                    status=status,
                    error=error,
                    received_at=now,
                    processed_at=None if status == EventStatus.RECEIVED else now,
                )
                session.add(row)
                await session.commit()
                return Ok(row.id)

        except Exception as e:
            return Error(StoreError(f"Failed to record event: {e}", e))

    async def finish(
        self, event_id: int, status: str, error: str | None = None
    ) -> Result[None, StoreError]:
        try:
            async with self._session_factory() as session:
                cursor = cast(
                    CursorResult[Any],
                    await session.execute(
                        update(WebhookEventTable)
                        .where(WebhookEventTable.id == event_id)
                        .values(status=status, error=error, processed_at=datetime.now(UTC))
                    ),
                )
                await session.commit()
                if cursor.rowcount == 0:
                    return Error(StoreError(f"Event not found: {event_id}"))
                return Ok(None)

        except Exception as e:
            return Error(StoreError(f"Failed to finish event {event_id}: {e}", e))

    async def failures(self, purchase_id: str) -> Result[int, StoreError]:
        """How many deliveries for this purchase ended in processing failure."""
        try:
            async with self._session_factory() as session:
                count = (
                    await session.execute(
                        select(func.count())
                        .select_from(WebhookEventTable)
                        .where(
                            WebhookEventTable.purchase_id == purchase_id,
                            WebhookEventTable.status == EventStatus.FAILED,
                        )
                    )
                ).scalar_one()
                return Ok(int(count))

        except Exception as e:
            return Error(StoreError(f"Failed to count failures for {purchase_id}: {e}", e))

    async def history(self, purchase_id: str | None = None) -> Result[list[LoggedEvent], StoreError]:
        """Logged events in arrival order, optionally for one purchase."""
        try:
            async with self._session_factory() as session:
                stmt = select(WebhookEventTable).order_by(WebhookEventTable.id)
                if purchase_id is not None:
                    stmt = stmt.where(WebhookEventTable.purchase_id == purchase_id)
                rows = (await session.execute(stmt)).scalars().all()
                return Ok([_logged(r) for r in rows])

        except Exception as e:
            return Error(StoreError(f"Failed to read event history: {e}", e))


__all__ = ("LoggedEvent", "EventLog")
