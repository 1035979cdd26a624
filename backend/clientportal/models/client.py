"""Client organization model."""

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clientportal.db.base import BaseModel

if TYPE_CHECKING:
    from clientportal.models.project import Project
    from clientportal.models.user import User


class Client(BaseModel):
    """An agency client, created by the funnel webhook or by an admin."""

    __tablename__ = "clients"

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    contact_phone: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)

    # CRM-side account identifier; lookups by it make provisioning idempotent
    subaccount_id: Mapped[str | None] = mapped_column(
        String(255), unique=True, nullable=True, index=True
    )

    # Weak reference: the PM may be removed without touching the client
    assigned_pm_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Portal login of the client, linked on first sign-in by contact email
    user_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Relationships
    assigned_pm: Mapped["User | None"] = relationship(
        "User", foreign_keys=[assigned_pm_id], lazy="raise"
    )
    projects: Mapped[list["Project"]] = relationship(
        "Project", back_populates="client", lazy="raise"
    )

    def __repr__(self) -> str:
        try:
            return f"<Client {self.name}>"
        except Exception:
            return f"<Client id={self.id}>"
