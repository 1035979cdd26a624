"""Tasks API endpoints."""

from dataclasses import asdict
from datetime import date, datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from clientportal.api.v1.auth import CurrentUser, StaffUser
from clientportal.api.v1.projects import BoardCardResponse, BoardResponse, load_board
from clientportal.db.session import get_db_session
from clientportal.models.project import Task, TaskComment
from clientportal.models.user import User
from clientportal.services.access_control import get_visible_project
from clientportal.services.kanban import KanbanBoard, TaskMove, apply_move
from clientportal.services.notification import NotificationService

router = APIRouter()
logger = structlog.get_logger()

TASK_STATUS_PATTERN = "^(to_do|in_progress|needs_review|complete)$"


# Request/Response Models
class TaskCreate(BaseModel):
    """Create a new task."""

    title: str = Field(..., min_length=1, max_length=500)
    description: str | None = None
    project_id: UUID
    status: str = Field(default="to_do", pattern=TASK_STATUS_PATTERN)
    assignee_id: UUID | None = None
    due_date: date | None = None


class TaskUpdate(BaseModel):
    """Update a task."""

    title: str | None = Field(None, min_length=1, max_length=500)
    description: str | None = None
    status: str | None = Field(None, pattern=TASK_STATUS_PATTERN)
    assignee_id: UUID | None = None
    due_date: date | None = None


class TaskMoveRequest(BaseModel):
    """Drop a card into ``status`` at ``position`` (zero-based)."""

    status: str = Field(..., pattern=TASK_STATUS_PATTERN)
    position: int = Field(..., ge=0)


class TaskResponse(BaseModel):
    """Task response."""

    id: UUID
    project_id: UUID
    title: str
    description: str | None
    status: str
    position: int
    assignee_id: UUID | None
    due_date: date | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TaskMoveResponse(BaseModel):
    """Result of a move; ``board`` is always what the client should render."""

    applied: bool
    task: BoardCardResponse | None = None
    board: BoardResponse
    error: str | None = None


class TaskCommentCreate(BaseModel):
    content: str = Field(..., min_length=1)


class TaskCommentResponse(BaseModel):
    id: UUID
    task_id: UUID
    user_id: UUID
    user_name: str | None = None
    content: str
    created_at: datetime


async def _get_visible_task(db: AsyncSession, task_id: UUID, user: User) -> Task:
    result = await db.execute(select(Task).where(Task.id == task_id))
    task = result.scalar_one_or_none()
    if not task:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Task not found",
        )
    await get_visible_project(db, task.project_id, user)
    return task


async def _next_position(db: AsyncSession, project_id: UUID, task_status: str) -> int:
    result = await db.execute(
        select(func.max(Task.position)).where(
            Task.project_id == project_id,
            Task.status == task_status,
        )
    )
    max_position = result.scalar()
    return 0 if max_position is None else max_position + 1


async def _notify_assignee(db: AsyncSession, task: Task, actor: User) -> None:
    if task.assignee_id is None:
        return
    await NotificationService(db).notify_best_effort(
        user_id=task.assignee_id,
        notification_type="task_assigned",
        title="Task Assigned",
        content=f'You have been assigned to "{task.title}".',
        related_id=task.id,
        sender_id=actor.id,
    )


@router.post("/", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_data: TaskCreate,
    current_user: StaffUser,
    db: AsyncSession = Depends(get_db_session),
) -> Task:
    """Create a task at the end of its status column."""
    await get_visible_project(db, task_data.project_id, current_user)

    task = Task(
        title=task_data.title,
        description=task_data.description,
        project_id=task_data.project_id,
        status=task_data.status,
        assignee_id=task_data.assignee_id,
        due_date=task_data.due_date,
        position=await _next_position(db, task_data.project_id, task_data.status),
    )
    db.add(task)
    await db.flush()
    await _notify_assignee(db, task, current_user)
    await db.commit()

    logger.info(
        "task_created",
        task_id=str(task.id),
        project_id=str(task_data.project_id),
    )
    return task


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> Task:
    return await _get_visible_task(db, task_id, current_user)


@router.patch("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: UUID,
    updates: TaskUpdate,
    current_user: StaffUser,
    db: AsyncSession = Depends(get_db_session),
) -> Task:
    """Update a task. A status change appends it to the new column."""
    task = await _get_visible_task(db, task_id, current_user)
    old_status = task.status
    old_assignee_id = task.assignee_id

    update_data = updates.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        if value is None and field in ("title", "status"):
            continue
        setattr(task, field, value)

    if task.status != old_status:
        task.position = await _next_position(db, task.project_id, task.status)

    if task.assignee_id != old_assignee_id:
        await _notify_assignee(db, task, current_user)

    await db.commit()

    logger.info("task_updated", task_id=str(task_id), old_status=old_status, new_status=task.status)
    return task


@router.post("/{task_id}/move", response_model=TaskMoveResponse)
async def move_task(
    task_id: UUID,
    move_data: TaskMoveRequest,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> TaskMoveResponse:
    """Move a card to a column and position on the project's board.

    When the write fails the move is not applied and the response carries
    the board as stored.
    """
    task = await _get_visible_task(db, task_id, current_user)
    project_id = task.project_id
    board = await load_board(db, project_id)

    async def persist(previous: KanbanBoard, updated: KanbanBoard, card) -> None:
        changed = {c.id: c for c in updated.changed_cards(previous)}
        async with db.begin_nested():
            result = await db.execute(select(Task).where(Task.id.in_(list(changed))))
            for row in result.scalars().all():
                row.status = changed[row.id].status
                row.position = changed[row.id].position
            await db.flush()

    async def refetch() -> KanbanBoard:
        return await load_board(db, project_id)

    outcome = await apply_move(
        board,
        TaskMove(task_id=task_id, to_status=move_data.status, to_index=move_data.position),
        persist,
        refetch,
    )
    await db.commit()

    if outcome.applied:
        logger.info(
            "task_moved",
            task_id=str(task_id),
            new_status=move_data.status,
            new_position=move_data.position,
        )

    moved = BoardCardResponse(**asdict(outcome.moved)) if outcome.moved else None
    return TaskMoveResponse(
        applied=outcome.applied,
        task=moved,
        board=BoardResponse(**outcome.board.to_dict()),
        error=outcome.error,
    )


# Task Comments
@router.get("/{task_id}/comments", response_model=list[TaskCommentResponse])
async def list_task_comments(
    task_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> list[TaskCommentResponse]:
    """Comments on a task, oldest first."""
    await _get_visible_task(db, task_id, current_user)

    result = await db.execute(
        select(TaskComment, User.name)
        .outerjoin(User, TaskComment.user_id == User.id)
        .where(TaskComment.task_id == task_id)
        .order_by(TaskComment.created_at.asc())
    )
    return [
        TaskCommentResponse(
            id=comment.id,
            task_id=comment.task_id,
            user_id=comment.user_id,
            user_name=user_name,
            content=comment.content,
            created_at=comment.created_at,
        )
        for comment, user_name in result.all()
    ]


@router.post(
    "/{task_id}/comments",
    response_model=TaskCommentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_task_comment(
    task_id: UUID,
    comment_data: TaskCommentCreate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> TaskCommentResponse:
    await _get_visible_task(db, task_id, current_user)

    comment = TaskComment(
        task_id=task_id,
        user_id=current_user.id,
        content=comment_data.content,
    )
    db.add(comment)
    await db.commit()

    logger.info("task_comment_created", task_id=str(task_id), comment_id=str(comment.id))
    return TaskCommentResponse(
        id=comment.id,
        task_id=comment.task_id,
        user_id=comment.user_id,
        user_name=current_user.name,
        content=comment.content,
        created_at=comment.created_at,
    )
