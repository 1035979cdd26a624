"""Project message threads.

A thread is the set of messages sharing a project. Messages come from
portal users (``sender_type == "user"``) or, for inbound CRM messages, from
the client record itself (``sender_type == "client"``).
"""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy import and_, not_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clientportal.api.v1.auth import CurrentUser
from clientportal.db.session import get_db_session
from clientportal.models.activity import Message
from clientportal.models.client import Client
from clientportal.models.project import Project
from clientportal.models.user import User
from clientportal.services.access_control import (
    get_client_for_user,
    get_visible_project,
    visible_projects_query,
)
from clientportal.services.crm_events import message_preview
from clientportal.services.notification import NotificationService

router = APIRouter()
logger = structlog.get_logger()


class ThreadSummary(BaseModel):
    project_id: UUID
    project_title: str
    last_message: str | None = None
    last_message_at: datetime | None = None
    unread_count: int = 0


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1)


class MessageResponse(BaseModel):
    id: UUID
    project_id: UUID
    sender_id: UUID
    sender_type: str
    sender_name: str | None = None
    content: str
    is_read: bool
    created_at: datetime


def _to_response(message: Message, sender_name: str | None) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        project_id=message.project_id,
        sender_id=message.sender_id,
        sender_type=message.sender_type,
        sender_name=sender_name,
        content=message.content,
        is_read=message.is_read,
        created_at=message.created_at,
    )


async def _sender_names(db: AsyncSession, messages: list[Message]) -> dict[UUID, str]:
    user_ids = {m.sender_id for m in messages if m.sender_type == "user"}
    client_ids = {m.sender_id for m in messages if m.sender_type == "client"}
    names: dict[UUID, str] = {}
    if user_ids:
        result = await db.execute(select(User.id, User.name).where(User.id.in_(user_ids)))
        names.update({row.id: row.name for row in result.all()})
    if client_ids:
        result = await db.execute(select(Client.id, Client.name).where(Client.id.in_(client_ids)))
        names.update({row.id: row.name for row in result.all()})
    return names


async def _own_senders(db: AsyncSession, user: User) -> list[tuple[str, UUID]]:
    """``(sender_type, sender_id)`` pairs that count as the caller's own messages.

    A client-role user also owns the inbound CRM messages sent by their
    client record.
    """
    senders = [("user", user.id)]
    if user.role == "client":
        client = await get_client_for_user(db, user)
        if client:
            senders.append(("client", client.id))
    return senders


def _from_others(senders: list[tuple[str, UUID]]):
    return not_(
        or_(
            *(
                and_(Message.sender_type == sender_type, Message.sender_id == sender_id)
                for sender_type, sender_id in senders
            )
        )
    )


@router.get("/threads", response_model=list[ThreadSummary])
async def list_threads(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> list[ThreadSummary]:
    """One thread per visible project, most recent activity first."""
    result = await db.execute(
        visible_projects_query(current_user).order_by(Project.updated_at.desc())
    )
    projects = list(result.scalars().all())
    if not projects:
        return []

    own = await _own_senders(db, current_user)
    threads = {
        p.id: ThreadSummary(project_id=p.id, project_title=p.title) for p in projects
    }
    result = await db.execute(
        select(Message)
        .where(Message.project_id.in_(list(threads)))
        .order_by(Message.created_at.desc())
    )
    active: list[ThreadSummary] = []
    for message in result.scalars().all():
        thread = threads[message.project_id]
        if thread.last_message_at is None:
            active.append(thread)
            thread.last_message = message.content
            thread.last_message_at = message.created_at
        if not message.is_read and (message.sender_type, message.sender_id) not in own:
            thread.unread_count += 1

    idle = [t for t in threads.values() if t.last_message_at is None]
    return active + idle


@router.get("/threads/{project_id}", response_model=list[MessageResponse])
async def get_thread(
    project_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> list[MessageResponse]:
    """Messages of a project, oldest first. Marks other senders' messages read."""
    await get_visible_project(db, project_id, current_user)
    own = await _own_senders(db, current_user)

    result = await db.execute(
        update(Message)
        .where(
            Message.project_id == project_id,
            _from_others(own),
            Message.is_read.is_(False),
        )
        .values(is_read=True)
        .execution_options(synchronize_session=False)
    )
    marked = result.rowcount or 0
    await db.commit()

    result = await db.execute(
        select(Message)
        .where(Message.project_id == project_id)
        .order_by(Message.created_at.asc())
        .execution_options(populate_existing=True)
    )
    messages = list(result.scalars().all())
    names = await _sender_names(db, messages)

    if marked:
        logger.info("thread_messages_marked_read", project_id=str(project_id), count=marked)
    return [_to_response(m, names.get(m.sender_id)) for m in messages]


@router.post(
    "/threads/{project_id}",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    project_id: UUID,
    message_data: MessageCreate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    """Post to a project thread and notify the other side."""
    project = await get_visible_project(db, project_id, current_user)

    message = Message(
        project_id=project.id,
        sender_id=current_user.id,
        sender_type="user",
        content=message_data.content,
        is_read=False,
    )
    db.add(message)
    await db.flush()

    result = await db.execute(select(Client).where(Client.id == project.client_id))
    client = result.scalar_one()
    recipient_id = client.assigned_pm_id if current_user.role == "client" else client.user_id
    if recipient_id:
        await NotificationService(db).notify_best_effort(
            user_id=recipient_id,
            notification_type="message",
            title="New Message",
            content=f'New message from {current_user.name}: "{message_preview(message.content)}"',
            related_id=project.id,
            sender_id=current_user.id,
        )

    await db.commit()

    logger.info(
        "message_sent",
        message_id=str(message.id),
        project_id=str(project_id),
        user_id=str(current_user.id),
    )
    return _to_response(message, current_user.name)
