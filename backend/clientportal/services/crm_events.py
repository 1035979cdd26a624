"""Handlers for CRM webhook events.

Each event is handled independently with sequential lookups and writes in
the request transaction. Events carry no idempotency key, so a redelivered
event produces a second notification.
"""

from collections.abc import Awaitable, Callable
from typing import Annotated, Any, TypeVar
from uuid import UUID

import structlog
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from clientportal.exceptions import (
    EntityNotFoundError,
    InvalidPayloadError,
    StoreError,
    UnsupportedEventError,
)
from clientportal.models.activity import Message
from clientportal.models.client import Client
from clientportal.models.project import Project, Task
from clientportal.services.notification import NotificationService
from clientportal.services.status_mapping import map_external_status

logger = structlog.get_logger()

MESSAGE_PREVIEW_LENGTH = 50

DataT = TypeVar("DataT", bound=BaseModel)


def _coerce_str(value: Any) -> Any:
    # CRMs send phone numbers and ids as numbers as often as strings
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


CoercedStr = Annotated[str, BeforeValidator(_coerce_str)]


class OnboardingCompletedData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    subaccount_id: CoercedStr = Field(..., min_length=1)


class TaskStatusChangedData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    task_id: CoercedStr = Field(..., min_length=1)
    status: str | None = None


class MessageReceivedData(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    sender: CoercedStr = Field(..., alias="from", min_length=1)
    message: str


def message_preview(content: str, limit: int = MESSAGE_PREVIEW_LENGTH) -> str:
    """First ``limit`` characters, with an ellipsis when the text was longer."""
    if len(content) > limit:
        return content[:limit] + "..."
    return content


def _parse(model: type[DataT], data: dict[str, Any]) -> DataT:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.warning("crm_event_data_invalid", model=model.__name__, errors=e.errors())
        raise InvalidPayloadError() from e


class CrmEventService:
    """Dispatches CRM events to their handlers."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.notifications = NotificationService(db)
        self._handlers: dict[str, Callable[[dict[str, Any]], Awaitable[str]]] = {
            "onboarding_completed": self.handle_onboarding_completed,
            "task_status_changed": self.handle_task_status_changed,
            "message_received": self.handle_message_received,
        }

    @property
    def supported_events(self) -> list[str]:
        return sorted(self._handlers)

    async def dispatch(self, event: str, data: dict[str, Any]) -> str:
        """Run the handler for ``event`` and return its success message."""
        handler = self._handlers.get(event)
        if handler is None:
            logger.warning("crm_event_unsupported", crm_event=event)
            raise UnsupportedEventError(event)
        return await handler(data)

    async def handle_onboarding_completed(self, data: dict[str, Any]) -> str:
        """Tell the client's PM that the CRM onboarding form was completed."""
        payload = _parse(OnboardingCompletedData, data)

        try:
            result = await self.db.execute(
                select(Client).where(Client.subaccount_id == payload.subaccount_id)
            )
            client = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreError("Database error when finding client") from e

        if client is None:
            logger.warning("crm_client_not_found", subaccount_id=payload.subaccount_id)
            raise EntityNotFoundError("Client")

        if client.assigned_pm_id is None:
            logger.warning("onboarding_completed_without_pm", client_id=str(client.id))
        else:
            await self.notifications.notify_best_effort(
                user_id=client.assigned_pm_id,
                notification_type="approval_needed",
                title="Onboarding Completed",
                content=f"{client.name} has completed their GHL onboarding form.",
                related_id=client.id,
            )

        return "Onboarding completion processed"

    async def handle_task_status_changed(self, data: dict[str, Any]) -> str:
        """Apply an external status change to a task and notify its client."""
        payload = _parse(TaskStatusChangedData, data)

        try:
            task_id = UUID(payload.task_id)
        except ValueError:
            logger.warning("crm_task_not_found", task_id=payload.task_id)
            raise EntityNotFoundError("Task") from None

        try:
            result = await self.db.execute(
                select(Task, Client)
                .join(Project, Task.project_id == Project.id)
                .join(Client, Project.client_id == Client.id)
                .where(Task.id == task_id)
            )
            row = result.first()
        except SQLAlchemyError as e:
            raise StoreError("Database error when finding task") from e

        if row is None:
            logger.warning("crm_task_not_found", task_id=payload.task_id)
            raise EntityNotFoundError("Task")
        task, client = row

        old_status = task.status
        task.status = map_external_status(payload.status)
        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.error("task_status_update_failed", task_id=str(task_id), error=str(e))
            raise StoreError("Failed to update task") from e

        logger.info(
            "task_status_synced",
            task_id=str(task_id),
            external_status=payload.status,
            old_status=old_status,
            new_status=task.status,
        )

        await self.notifications.notify_best_effort(
            user_id=client.user_id or client.id,
            notification_type="task_assigned",
            title="Task Status Updated",
            content=f'Task "{task.title}" has been updated to {payload.status or task.status}.',
            related_id=task.id,
        )

        return "Task status update processed"

    async def handle_message_received(self, data: dict[str, Any]) -> str:
        """Store an inbound client message on the client's newest project."""
        payload = _parse(MessageReceivedData, data)

        try:
            result = await self.db.execute(
                select(Client)
                .where(
                    or_(
                        Client.contact_phone == payload.sender,
                        Client.contact_email == payload.sender,
                    )
                )
                .order_by(Client.created_at.asc())
                .limit(1)
            )
            client = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreError("Database error when finding client") from e

        if client is None:
            logger.warning("crm_message_sender_unknown", sender=payload.sender)
            raise EntityNotFoundError("Client")

        try:
            result = await self.db.execute(
                select(Project)
                .where(Project.client_id == client.id)
                .order_by(Project.created_at.desc())
                .limit(1)
            )
            project = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreError("Database error when finding project") from e

        if project is None:
            logger.warning("crm_message_without_project", client_id=str(client.id))
            raise EntityNotFoundError("Project")

        message = Message(
            sender_id=client.id,
            sender_type="client",
            content=payload.message,
            project_id=project.id,
            is_read=False,
        )
        self.db.add(message)
        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.error("inbound_message_insert_failed", client_id=str(client.id), error=str(e))
            raise StoreError("Failed to create message") from e

        logger.info(
            "inbound_message_stored",
            message_id=str(message.id),
            client_id=str(client.id),
            project_id=str(project.id),
        )

        if client.assigned_pm_id:
            await self.notifications.notify_best_effort(
                user_id=client.assigned_pm_id,
                notification_type="message",
                title="New Message",
                content=f'New message from {client.name}: "{message_preview(payload.message)}"',
                related_id=project.id,
            )

        return "Message processed"
