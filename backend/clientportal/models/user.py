"""Portal user model."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from clientportal.db.base import BaseModel

USER_ROLES = ("admin", "team_member", "client")

# Roles allowed to act as a client's project manager
PM_ROLES = ("team_member", "admin")


class User(BaseModel):
    """A person signed in through the identity provider.

    Rows are created on the first authenticated request (upsert-on-read),
    keyed by the identity provider's subject claim.
    """

    __tablename__ = "users"

    external_auth_id: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default="client", index=True
    )  # admin, team_member, client

    @property
    def can_manage_clients(self) -> bool:
        return self.role in PM_ROLES

    def __repr__(self) -> str:
        try:
            return f"<User {self.email} ({self.role})>"
        except Exception:
            return f"<User id={self.id}>"
