"""Project, task and task comment models."""

from datetime import date
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clientportal.db.base import BaseModel

if TYPE_CHECKING:
    from clientportal.models.client import Client

PROJECT_STATUSES = ("planning", "in_progress", "review", "completed")
TASK_STATUSES = ("to_do", "in_progress", "needs_review", "complete")


class Project(BaseModel):
    """A unit of client work; message threads are grouped by project."""

    __tablename__ = "projects"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    client_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="planning"
    )  # planning, in_progress, review, completed
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Relationships
    client: Mapped["Client"] = relationship("Client", back_populates="projects", lazy="raise")
    tasks: Mapped[list["Task"]] = relationship("Task", back_populates="project", lazy="raise")

    def __repr__(self) -> str:
        try:
            return f"<Project {self.title}>"
        except Exception:
            return f"<Project id={self.id}>"


class Task(BaseModel):
    """A Kanban card belonging to a project."""

    __tablename__ = "tasks"

    project_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="to_do", index=True
    )  # to_do, in_progress, needs_review, complete
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    assignee_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Order inside the status column
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Relationships
    project: Mapped["Project"] = relationship("Project", back_populates="tasks", lazy="raise")

    def __repr__(self) -> str:
        try:
            return f"<Task {self.title} [{self.status}]>"
        except Exception:
            return f"<Task id={self.id}>"


class TaskComment(BaseModel):
    """Comment on a task."""

    __tablename__ = "task_comments"

    task_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<TaskComment task_id={self.task_id}>"
