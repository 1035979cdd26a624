"""In-app notifications of the signed-in user."""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from clientportal.api.v1.auth import CurrentUser
from clientportal.db.session import get_db_session
from clientportal.models.activity import Notification
from clientportal.services.notification import NotificationService

router = APIRouter()
logger = structlog.get_logger()


class NotificationResponse(BaseModel):
    id: UUID
    title: str
    content: str
    type: str
    related_id: UUID | None
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class MarkAllReadResponse(BaseModel):
    updated: int


@router.get("/", response_model=list[NotificationResponse])
async def list_notifications(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
    unread_only: bool = Query(False),
    limit: int = Query(20, ge=1, le=100),
) -> list[Notification]:
    return await NotificationService(db).list_for_user(
        current_user.id, limit=limit, unread_only=unread_only
    )


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> Notification:
    notification = await NotificationService(db).mark_read(notification_id, current_user.id)
    if not notification:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )
    await db.commit()
    return notification


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_notifications_read(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> MarkAllReadResponse:
    """Mark every unread notification of the caller read."""
    updated = await NotificationService(db).mark_all_read(current_user.id)
    await db.commit()

    logger.info("notifications_marked_read", user_id=str(current_user.id), count=updated)
    return MarkAllReadResponse(updated=updated)
