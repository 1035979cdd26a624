"""Project endpoints and the Kanban board read."""

from datetime import date, datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clientportal.api.v1.auth import CurrentUser, StaffUser
from clientportal.db.session import get_db_session
from clientportal.models.client import Client
from clientportal.models.project import Project, Task
from clientportal.models.user import User
from clientportal.services.access_control import get_visible_project, visible_projects_query
from clientportal.services.kanban import KanbanBoard
from clientportal.services.notification import NotificationService

router = APIRouter()
logger = structlog.get_logger()

PROJECT_STATUS_PATTERN = "^(planning|in_progress|review|completed)$"


# Request/Response Models
class ProjectCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    client_id: UUID
    status: str = Field(default="planning", pattern=PROJECT_STATUS_PATTERN)
    due_date: date | None = None


class ProjectUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    status: str | None = Field(None, pattern=PROJECT_STATUS_PATTERN)
    due_date: date | None = None


class ProjectResponse(BaseModel):
    """Project response."""

    id: UUID
    title: str
    description: str | None
    client_id: UUID
    status: str
    due_date: date | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BoardCardResponse(BaseModel):
    id: UUID
    title: str
    status: str
    position: int
    due_date: date | None = None
    assignee_id: UUID | None = None


class BoardResponse(BaseModel):
    """Kanban columns keyed by task status, cards in position order."""

    project_id: UUID
    columns: dict[str, list[BoardCardResponse]]


async def load_board(db: AsyncSession, project_id: UUID) -> KanbanBoard:
    """Authoritative board for a project, read from the database."""
    result = await db.execute(
        select(Task)
        .where(Task.project_id == project_id)
        .order_by(Task.position.asc(), Task.created_at.asc())
    )
    return KanbanBoard.from_tasks(project_id, result.scalars().all())


async def _check_client_scope(db: AsyncSession, client_id: UUID, user: User) -> Client:
    result = await db.execute(select(Client).where(Client.id == client_id))
    client = result.scalar_one_or_none()
    if not client:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Client not found",
        )
    if user.role != "admin" and client.assigned_pm_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not manage this client",
        )
    return client


@router.get("/", response_model=list[ProjectResponse])
async def list_projects(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
    status_filter: str | None = Query(None, alias="status", pattern=PROJECT_STATUS_PATTERN),
) -> list[Project]:
    """Projects visible to the caller, most recently updated first."""
    query = visible_projects_query(current_user)
    if status_filter:
        query = query.where(Project.status == status_filter)
    result = await db.execute(query.order_by(Project.updated_at.desc()))
    return list(result.scalars().all())


@router.post("/", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    project_data: ProjectCreate,
    current_user: StaffUser,
    db: AsyncSession = Depends(get_db_session),
) -> Project:
    """Create a project for a client the caller manages."""
    await _check_client_scope(db, project_data.client_id, current_user)

    project = Project(
        title=project_data.title,
        description=project_data.description,
        client_id=project_data.client_id,
        status=project_data.status,
        due_date=project_data.due_date,
    )
    db.add(project)
    await db.commit()

    logger.info(
        "project_created",
        project_id=str(project.id),
        client_id=str(project.client_id),
        user_id=str(current_user.id),
    )
    return project


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> Project:
    return await get_visible_project(db, project_id, current_user)


@router.patch("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: UUID,
    updates: ProjectUpdate,
    current_user: StaffUser,
    db: AsyncSession = Depends(get_db_session),
) -> Project:
    """Update a project. Completing it notifies the client's portal user."""
    project = await get_visible_project(db, project_id, current_user)
    old_status = project.status

    update_data = updates.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        if value is None and field in ("title", "status"):
            continue
        setattr(project, field, value)

    if project.status == "completed" and old_status != "completed":
        result = await db.execute(select(Client.user_id).where(Client.id == project.client_id))
        client_user_id = result.scalar_one_or_none()
        if client_user_id:
            await NotificationService(db).notify_best_effort(
                user_id=client_user_id,
                notification_type="project_completed",
                title="Project Completed",
                content=f'Project "{project.title}" has been marked as completed.',
                related_id=project.id,
                sender_id=current_user.id,
            )

    await db.commit()

    logger.info(
        "project_updated",
        project_id=str(project_id),
        old_status=old_status,
        new_status=project.status,
    )
    return project


@router.get("/{project_id}/board", response_model=BoardResponse)
async def get_project_board(
    project_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Tasks of a project grouped into Kanban columns."""
    project = await get_visible_project(db, project_id, current_user)
    board = await load_board(db, project.id)
    return board.to_dict()
