"""
Webhook wire models.

The gateway posts:

    {"event": "purchase.paid",
     "data": {"id": "px_1", "reference": "user-42:default", "amount": 2300, "currency": "USD"}}

Unknown fields are kept: the whole payload is stored with the payment.
"""

from pydantic import BaseModel, ConfigDict, Field

from tender.finalize import FinalizeError, FinalizeErrorKind, FinalizeOutcome, GatewayEvent


class WebhookData(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = Field(..., min_length=1)
    reference: str | None = None
    amount: int | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    reason: str | None = None


class WebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    event: str = Field(..., min_length=1)
    data: WebhookData

    def to_event(self) -> GatewayEvent:
        return GatewayEvent.from_payload(self.model_dump())


class OutcomeResponse(BaseModel):
    status: str
    purchase_id: str
    order_number: str | None = None
    payment_status: str | None = None
    message: str = ""

    @classmethod
    def from_outcome(cls, outcome: FinalizeOutcome) -> "OutcomeResponse":
        return cls(
            status=outcome.status.value,
            purchase_id=outcome.purchase_id,
            order_number=outcome.order.order_number if outcome.order else None,
            payment_status=outcome.payment.status if outcome.payment else None,
            message=outcome.message,
        )


class ErrorResponse(BaseModel):
    error: str
    message: str

    @classmethod
    def from_error(cls, err: FinalizeError) -> "ErrorResponse":
        return cls(error=err.kind.name, message=err.message)


ERROR_STATUS_CODES: dict[FinalizeErrorKind, int] = {
    FinalizeErrorKind.INTENT_NOT_FOUND: 404,
    FinalizeErrorKind.AMOUNT_MISMATCH: 422,
    FinalizeErrorKind.STORE_ERROR: 500,
    FinalizeErrorKind.PROCESSING: 500,
}


__all__ = (
    "WebhookData",
    "WebhookPayload",
    "OutcomeResponse",
    "ErrorResponse",
    "ERROR_STATUS_CODES",
)
