"""Webhook intake exceptions.

Each exception carries the HTTP status it is rendered with; the message is
returned to the sender verbatim as ``{"error": message}``.
"""

from fastapi import Request, status
from fastapi.responses import ORJSONResponse


class WebhookError(Exception):
    """Base exception for webhook intake failures."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidPayloadError(WebhookError):
    """Malformed body or missing required fields. Raised before any write."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "Invalid webhook payload"):
        super().__init__(message)


class UnsupportedEventError(WebhookError):
    """The CRM sent an event type this portal does not handle."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, event: str):
        self.event = event
        super().__init__("Unsupported event type")


class EntityNotFoundError(WebhookError):
    """The primary entity referenced by an event does not exist."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str):
        self.entity = entity
        super().__init__(f"{entity} not found")


class StoreError(WebhookError):
    """A required read or write against the database failed."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class WebhookAuthError(WebhookError):
    """Shared-secret header missing or wrong."""

    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Invalid webhook secret"):
        super().__init__(message)


async def webhook_error_handler(request: Request, exc: WebhookError) -> ORJSONResponse:
    """Render webhook errors in the ``{"error": ...}`` shape senders expect."""
    return ORJSONResponse(status_code=exc.status_code, content={"error": exc.message})
