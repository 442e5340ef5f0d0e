"""
Web — FastAPI webhook endpoint for gateway notifications.

    from tender.web import create_app

    app = create_app(finalizer, gateway, events)
"""

from tender.web._models import (
    WebhookData,
    WebhookPayload,
    OutcomeResponse,
    ErrorResponse,
    ERROR_STATUS_CODES,
)
from tender.web._app import create_app, SIGNATURE_HEADER

__all__ = (
    "WebhookData",
    "WebhookPayload",
    "OutcomeResponse",
    "ErrorResponse",
    "ERROR_STATUS_CODES",
    "create_app",
    "SIGNATURE_HEADER",
)
