"""
FastAPI surface — the gateway webhook and a health check.

    POST /webhooks/gateway
         │
         ├── bad X-Signature      → log "rejected", 401
         ├── malformed payload    → log "invalid",  400
         │
         ▼
    record event ──► Finalizer.on_gateway_event
                          │
                          ├── Ok(outcome)        → 200
                          ├── INTENT_NOT_FOUND   → 404
                          ├── AMOUNT_MISMATCH    → 422
                          └── STORE / PROCESSING → 500 (gateway retries)
"""

import json

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from kungfu import Ok, Error
from pydantic import ValidationError

from tender.checkout import Gateway
from tender.finalize import EventLog, EventStatus, Finalizer
from tender.logs import get_logger, purchase_prefix
from tender.web._models import ERROR_STATUS_CODES, ErrorResponse, OutcomeResponse, WebhookPayload

log = get_logger(__name__)

SIGNATURE_HEADER = "X-Signature"


def _peek(raw: bytes) -> tuple[str | None, str | None]:
    """Best-effort event type / purchase id for logging rejected bodies."""
    try:
        body = json.loads(raw)
        data = body.get("data") or {}
        event_type = body.get("event")
        purchase_id = data.get("id")
        return (
            str(event_type) if event_type is not None else None,
            str(purchase_id) if purchase_id is not None else None,
        )
    except (ValueError, AttributeError):
        return None, None


def create_app(finalizer: Finalizer, gateway: Gateway, events: EventLog) -> FastAPI:
    """
    Build the webhook application.

    Example:
        app = create_app(finalizer, gateway, EventLog(session_factory))
        uvicorn.run(app)
    """
    app = FastAPI(title="tender")

    @app.post("/webhooks/gateway")
    async def gateway_webhook(request: Request) -> JSONResponse:
        raw = await request.body()
        signature = request.headers.get(SIGNATURE_HEADER, "")

        if not gateway.verify_webhook_signature(raw, signature):
            event_type, purchase_id = _peek(raw)
            log.warning(f"Rejected webhook with invalid signature (purchase {purchase_id})")
            await events.record(
                raw,
                signature_valid=False,
                event_type=event_type,
                purchase_id=purchase_id,
                status=EventStatus.REJECTED,
                error="Invalid signature",
            )
            return JSONResponse(
                status_code=401,
                content=ErrorResponse(error="INVALID_SIGNATURE", message="Invalid signature").model_dump(),
            )

        try:
            event = WebhookPayload.model_validate_json(raw).to_event()
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            event_type, purchase_id = _peek(raw)
            log.warning(f"Malformed webhook payload: {e}")
            await events.record(
                raw,
                signature_valid=True,
                event_type=event_type,
                purchase_id=purchase_id,
                status=EventStatus.INVALID,
                error=str(e),
            )
            return JSONResponse(
                status_code=400,
                content=ErrorResponse(error="INVALID_PAYLOAD", message=str(e)).model_dump(),
            )

        recorded = await events.record(
            raw,
            signature_valid=True,
            event_type=event.event_type,
            purchase_id=event.purchase_id,
        )
        match recorded:
            case Error(err):
                log.error(f"{purchase_prefix(event.purchase_id)} Event not recorded: {err.message}")
                return JSONResponse(
                    status_code=500,
                    content=ErrorResponse(error="STORE_ERROR", message=err.message).model_dump(),
                )
            case Ok(event_id):
                pass

        result = await finalizer.on_gateway_event(event, event_id)
        match result:
            case Ok(outcome):
                return JSONResponse(
                    status_code=200,
                    content=OutcomeResponse.from_outcome(outcome).model_dump(),
                )
            case Error(err):
                return JSONResponse(
                    status_code=ERROR_STATUS_CODES.get(err.kind, 500),
                    content=ErrorResponse.from_error(err).model_dump(),
                )

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


__all__ = ("create_app", "SIGNATURE_HEADER")
