"""Notification service for creating in-app notifications."""

from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from clientportal.models.activity import NOTIFICATION_TYPES, Notification

logger = structlog.get_logger()


class NotificationService:
    """Service for creating and reading user notifications.

    Notifications are write-once: after creation only the read flag changes.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def notify(
        self,
        user_id: UUID,
        notification_type: str,
        title: str,
        content: str,
        related_id: UUID | None = None,
        sender_id: UUID | None = None,
    ) -> Notification | None:
        """
        Create a notification for a user.

        Args:
            user_id: The recipient's ID
            notification_type: One of NOTIFICATION_TYPES
            title: Notification title
            content: Notification body
            related_id: Optional entity the notification is about
            sender_id: Optional actor; actors are not notified of their own actions

        Returns:
            The flushed Notification, or None when skipped
        """
        if notification_type not in NOTIFICATION_TYPES:
            raise ValueError(f"Unknown notification type: {notification_type}")

        if sender_id and sender_id == user_id:
            logger.debug(
                "skipping_self_notification",
                user_id=str(user_id),
                notification_type=notification_type,
            )
            return None

        notification = Notification(
            user_id=user_id,
            type=notification_type,
            title=title,
            content=content,
            related_id=related_id,
            is_read=False,
        )
        self.db.add(notification)
        await self.db.flush()

        logger.info(
            "notification_created",
            notification_id=str(notification.id),
            user_id=str(user_id),
            notification_type=notification_type,
        )
        return notification

    async def notify_best_effort(
        self,
        user_id: UUID,
        notification_type: str,
        title: str,
        content: str,
        related_id: UUID | None = None,
        sender_id: UUID | None = None,
    ) -> Notification | None:
        """Like ``notify`` but inside a savepoint; failures are logged and dropped."""
        try:
            async with self.db.begin_nested():
                return await self.notify(
                    user_id=user_id,
                    notification_type=notification_type,
                    title=title,
                    content=content,
                    related_id=related_id,
                    sender_id=sender_id,
                )
        except SQLAlchemyError as e:
            logger.error(
                "notification_create_failed",
                user_id=str(user_id),
                notification_type=notification_type,
                error=str(e),
            )
            return None

    async def list_for_user(
        self,
        user_id: UUID,
        limit: int = 20,
        unread_only: bool = False,
    ) -> list[Notification]:
        """Most recent notifications for a user, newest first."""
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        query = query.order_by(Notification.created_at.desc()).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def mark_read(self, notification_id: UUID, user_id: UUID) -> Notification | None:
        """Mark one of the user's notifications read. None if it is not theirs."""
        result = await self.db.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
        )
        notification = result.scalar_one_or_none()
        if notification is None:
            return None
        notification.is_read = True
        await self.db.flush()
        return notification

    async def mark_all_read(self, user_id: UUID) -> int:
        """Mark every unread notification of the user read; returns the count."""
        result = await self.db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True)
        )
        return result.rowcount or 0
