"""Dashboard endpoint: recent projects, next task and latest notifications."""

from datetime import date, datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clientportal.api.v1.auth import CurrentUser
from clientportal.api.v1.projects import ProjectResponse
from clientportal.config import get_settings
from clientportal.db.session import get_db_session
from clientportal.models.project import Project, Task
from clientportal.services.access_control import visible_projects_query
from clientportal.services.notification import NotificationService

router = APIRouter()
logger = structlog.get_logger()
settings = get_settings()


class NextTaskSummary(BaseModel):
    id: UUID
    title: str
    project_id: UUID
    project_title: str
    due_date: date | None


class DashboardNotification(BaseModel):
    id: UUID
    title: str
    content: str
    type: str
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class DashboardResponse(BaseModel):
    """Everything the landing page shows."""

    projects: list[ProjectResponse]
    next_task: NextTaskSummary | None
    notifications: list[DashboardNotification]


@router.get("/", response_model=DashboardResponse)
async def get_dashboard(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> DashboardResponse:
    """Recent projects, the next task to do among them, and notifications."""
    result = await db.execute(
        visible_projects_query(current_user)
        .order_by(Project.updated_at.desc())
        .limit(settings.dashboard_project_limit)
    )
    projects = list(result.scalars().all())

    next_task = None
    if projects:
        titles = {p.id: p.title for p in projects}
        result = await db.execute(
            select(Task)
            .where(Task.project_id.in_(list(titles)), Task.status == "to_do")
            # Undated tasks sort after dated ones
            .order_by(Task.due_date.is_(None), Task.due_date.asc(), Task.position.asc())
            .limit(1)
        )
        task = result.scalar_one_or_none()
        if task:
            next_task = NextTaskSummary(
                id=task.id,
                title=task.title,
                project_id=task.project_id,
                project_title=titles[task.project_id],
                due_date=task.due_date,
            )

    notifications = await NotificationService(db).list_for_user(
        current_user.id, limit=settings.dashboard_notification_limit
    )

    return DashboardResponse(
        projects=[ProjectResponse.model_validate(p) for p in projects],
        next_task=next_task,
        notifications=[DashboardNotification.model_validate(n) for n in notifications],
    )
