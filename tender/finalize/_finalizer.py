"""
Finalizer — the entry point for gateway notifications.

    on_gateway_event(event)
         │
         ├── record in the event log (unless the caller already did)
         ├── run the finalization graph
         ├── finish the log entry with the outcome
         └── on error: count failures for the purchase, alert at the threshold
"""

from __future__ import annotations

import json

from kungfu import Result, Ok, Error

from tender.checkout import CheckoutConfig, PaymentIntentManager
from tender.finalize._db import EventStatus
from tender.finalize._events import EventLog
from tender.finalize._graph import FinalizeSpec, run_finalize
from tender.finalize._ledger import PaymentLedger
from tender.finalize._types import (
    FinalizeError,
    FinalizeErrors,
    FinalizeOutcome,
    FinalizeStatus,
    GatewayEvent,
)
from tender.logs import get_logger, purchase_prefix

log = get_logger(__name__)


def event_status(result: Result[FinalizeOutcome, FinalizeError]) -> str:
    """Map a finalization result onto the event log's status column."""
    match result:
        case Ok(outcome) if outcome.status is FinalizeStatus.DUPLICATE:
            return EventStatus.DUPLICATE
        case Ok(outcome) if outcome.status is FinalizeStatus.IGNORED:
            return EventStatus.IGNORED
        case Ok(_):
            return EventStatus.PROCESSED
        case Error(_):
            return EventStatus.FAILED


class Finalizer:
    """
    Turns gateway events into orders and payments, at most once per purchase.

    Example:
        finalizer = Finalizer(PaymentLedger(sf), intents, EventLog(sf))

        match await finalizer.on_gateway_event(GatewayEvent.from_raw(body)):
            case Ok(outcome):
                outcome.status   # CREATED | DUPLICATE | FAILED | IGNORED
            case Error(err):
                err.kind         # INTENT_NOT_FOUND | AMOUNT_MISMATCH | STORE_ERROR | PROCESSING
    """

    def __init__(
        self,
        ledger: PaymentLedger,
        intents: PaymentIntentManager,
        events: EventLog,
        config: CheckoutConfig | None = None,
    ) -> None:
        self.ledger = ledger
        self.intents = intents
        self.events = events
        self.config = config or CheckoutConfig()

    async def on_gateway_event(
        self, event: GatewayEvent, event_id: int | None = None
    ) -> Result[FinalizeOutcome, FinalizeError]:
        prefix = purchase_prefix(event.purchase_id)

        if event_id is None:
            recorded = await self.events.record(
                json.dumps(dict(event.payload), default=str),
                signature_valid=True,
                event_type=event.event_type,
                purchase_id=event.purchase_id,
            )
            match recorded:
                case Ok(new_id):
                    event_id = new_id
                case Error(err):
                    log.error(f"{prefix} Event not recorded: {err.message}")
                    return Error(FinalizeErrors.store(err.message, err.cause))

        log.info(f"{prefix} Processing {event.event_type}")
        spec = FinalizeSpec(event=event, ledger=self.ledger, intents=self.intents, config=self.config)
        try:
            result = await run_finalize(spec)
        except Exception as e:
            log.exception(f"{prefix} Unexpected failure processing {event.event_type}")
            result = Error(FinalizeErrors.processing(e))

        match result:
            case Ok(outcome):
                log.info(f"{prefix} {event.event_type} → {outcome.status}")
                finished = await self.events.finish(event_id, event_status(result))
            case Error(err):
                log.error(f"{prefix} {event.event_type} failed ({err.kind.name}): {err.message}")
                finished = await self.events.finish(event_id, event_status(result), err.message)
                await self._maybe_alert(event)

        match finished:
            case Error(err):
                log.warning(f"{prefix} Event {event_id} not finished: {err.message}")
            case Ok(_):
                pass

        return result

    async def _maybe_alert(self, event: GatewayEvent) -> None:
        prefix = purchase_prefix(event.purchase_id)
        counted = await self.events.failures(event.purchase_id)
        match counted:
            case Ok(count) if count >= self.config.alert_after_failures:
                log.critical(
                    f"{prefix} ALERT: {count} failed deliveries, manual reconciliation needed"
                )
            case Ok(_):
                pass
            case Error(err):
                log.warning(f"{prefix} Failure count unavailable: {err.message}")


__all__ = ("Finalizer", "event_status")
