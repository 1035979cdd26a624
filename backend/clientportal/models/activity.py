"""Message and notification models."""

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from clientportal.db.base import BaseModel

NOTIFICATION_TYPES = (
    "task_assigned",
    "approval_needed",
    "missing_data",
    "project_completed",
    "message",
)
MESSAGE_SENDER_TYPES = ("user", "client")


class Message(BaseModel):
    """A message in a project thread.

    Threads are not stored; they are the messages sharing a ``project_id``.
    Inbound CRM messages are sent by the client record itself, so
    ``sender_id`` is a weak reference qualified by ``sender_type``.
    """

    __tablename__ = "messages"

    project_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sender_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    sender_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="user"
    )  # user, client
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Message project_id={self.project_id} sender={self.sender_type}:{self.sender_id}>"


class Notification(BaseModel):
    """In-app notification. Write-once apart from ``is_read``."""

    __tablename__ = "notifications"

    # Recipient; usually a User id, a Client id when the client has no login yet
    user_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    related_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Notification {self.type} user_id={self.user_id}>"
