"""Inbound webhooks from the funnel tool and the CRM.

Errors are rendered as ``{"error": message}`` by the webhook exception
handler registered on the app.
"""

import secrets
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from clientportal.config import get_settings
from clientportal.db.session import get_db_session
from clientportal.exceptions import InvalidPayloadError, StoreError, WebhookAuthError, WebhookError
from clientportal.services.crm_events import CoercedStr, CrmEventService
from clientportal.services.provisioning import ClientProvisioningService

router = APIRouter()
logger = structlog.get_logger()
settings = get_settings()


class PabblyClient(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: CoercedStr | None = None
    email: CoercedStr | None = None
    phone: CoercedStr | None = None


class PabblySubaccount(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: CoercedStr = Field(..., min_length=1)


class PabblyWebhookPayload(BaseModel):
    """Funnel purchase: a new CRM subaccount for a client."""

    model_config = ConfigDict(extra="ignore")

    client: PabblyClient
    subaccount: PabblySubaccount


class GhlWebhookPayload(BaseModel):
    """CRM event envelope; ``data`` is validated per event."""

    model_config = ConfigDict(extra="ignore")

    event: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(..., min_length=1)


async def verify_webhook_secret(request: Request) -> None:
    """Require the shared secret header when a secret is configured."""
    expected = settings.webhook_secret.get_secret_value()
    if not expected:
        return
    provided = request.headers.get(settings.webhook_secret_header, "")
    if not secrets.compare_digest(provided.encode(), expected.encode()):
        logger.warning("webhook_secret_mismatch", path=request.url.path)
        raise WebhookAuthError()


async def _read_json_object(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as e:
        raise InvalidPayloadError() from e
    if not isinstance(body, dict):
        raise InvalidPayloadError()
    return body


def _validate(model: type[BaseModel], body: dict[str, Any]) -> Any:
    try:
        return model.model_validate(body)
    except ValidationError as e:
        logger.warning("webhook_payload_invalid", model=model.__name__, errors=e.errors())
        raise InvalidPayloadError() from e


@router.post("/pabbly", dependencies=[Depends(verify_webhook_secret)])
async def pabbly_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> dict[str, Any]:
    """Provision a client (and its default project) for a funnel purchase."""
    payload: PabblyWebhookPayload = _validate(PabblyWebhookPayload, await _read_json_object(request))
    logger.info("pabbly_webhook_received", subaccount_id=payload.subaccount.id)

    try:
        result = await ClientProvisioningService(db).provision_subaccount(
            subaccount_id=payload.subaccount.id,
            name=payload.client.name,
            contact_email=payload.client.email,
            contact_phone=payload.client.phone,
        )
        await db.commit()
    except WebhookError:
        raise
    except Exception as e:
        logger.exception("pabbly_webhook_failed", subaccount_id=payload.subaccount.id)
        raise StoreError("Internal server error") from e

    if not result.created:
        return {
            "success": True,
            "message": "Client already exists",
            "clientId": result.client_id,
        }

    return {
        "success": True,
        "message": "Client created successfully",
        "clientId": result.client_id,
        "projectId": result.project_id,
    }


@router.post("/ghl", dependencies=[Depends(verify_webhook_secret)])
async def ghl_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> dict[str, Any]:
    """Dispatch a CRM event to its handler."""
    payload: GhlWebhookPayload = _validate(GhlWebhookPayload, await _read_json_object(request))
    logger.info("ghl_webhook_received", crm_event=payload.event)

    try:
        message = await CrmEventService(db).dispatch(payload.event, payload.data)
        await db.commit()
    except WebhookError:
        raise
    except Exception as e:
        logger.exception("ghl_webhook_failed", crm_event=payload.event)
        raise StoreError("Internal server error") from e

    return {"success": True, "message": message}
