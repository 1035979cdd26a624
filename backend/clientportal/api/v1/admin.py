"""Admin endpoints: clients, team roster and PM assignment."""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from clientportal.api.v1.auth import AdminUser
from clientportal.db.session import get_db_session
from clientportal.models.client import Client
from clientportal.models.user import PM_ROLES, User
from clientportal.services.notification import NotificationService
from clientportal.services.provisioning import ClientProvisioningService

router = APIRouter()
logger = structlog.get_logger()


class TeamMemberResponse(BaseModel):
    id: UUID
    name: str
    email: str
    role: str

    class Config:
        from_attributes = True


class ClientProjectSummary(BaseModel):
    id: UUID
    title: str
    status: str

    class Config:
        from_attributes = True


class AdminClientResponse(BaseModel):
    """Client row for the admin table, with its PM and projects."""

    id: UUID
    name: str
    contact_email: str | None
    contact_phone: str | None
    subaccount_id: str | None
    assigned_pm_id: UUID | None
    assigned_pm: TeamMemberResponse | None = None
    user_id: UUID | None
    projects: list[ClientProjectSummary] = []
    created_at: datetime

    class Config:
        from_attributes = True


class AdminClientCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    contact_email: str | None = Field(None, max_length=255)
    contact_phone: str | None = Field(None, max_length=50)
    subaccount_id: str | None = Field(None, min_length=1, max_length=255)
    assigned_pm_id: UUID | None = None


class AssignPMRequest(BaseModel):
    """``pm_id=None`` unassigns the client."""

    pm_id: UUID | None


class RoleUpdate(BaseModel):
    role: str = Field(..., pattern="^(admin|team_member|client)$")


async def _load_client(db: AsyncSession, client_id: UUID) -> Client:
    result = await db.execute(
        select(Client)
        .options(selectinload(Client.assigned_pm), selectinload(Client.projects))
        .where(Client.id == client_id)
        .execution_options(populate_existing=True)
    )
    client = result.scalar_one_or_none()
    if not client:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Client not found",
        )
    return client


async def _get_project_manager(db: AsyncSession, user_id: UUID) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    if not user.can_manage_clients:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Project managers must have one of the roles: {', '.join(PM_ROLES)}",
        )
    return user


@router.get("/clients", response_model=list[AdminClientResponse])
async def list_clients(
    current_user: AdminUser,
    db: AsyncSession = Depends(get_db_session),
) -> list[Client]:
    """All clients by name, with their PM and projects."""
    result = await db.execute(
        select(Client)
        .options(selectinload(Client.assigned_pm), selectinload(Client.projects))
        .order_by(Client.name.asc())
    )
    return list(result.scalars().all())


@router.post("/clients", response_model=AdminClientResponse, status_code=status.HTTP_201_CREATED)
async def create_client(
    client_data: AdminClientCreate,
    current_user: AdminUser,
    db: AsyncSession = Depends(get_db_session),
) -> Client:
    """Create a client by hand. Without a PM the round-robin picks one."""
    if client_data.assigned_pm_id is not None:
        await _get_project_manager(db, client_data.assigned_pm_id)

    try:
        provisioned = await ClientProvisioningService(db).create_client(
            name=client_data.name,
            contact_email=client_data.contact_email,
            contact_phone=client_data.contact_phone,
            subaccount_id=client_data.subaccount_id,
            assigned_pm_id=client_data.assigned_pm_id,
            actor_id=current_user.id,
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A client with this subaccount already exists",
        )

    return await _load_client(db, provisioned.client_id)


@router.get("/team", response_model=list[TeamMemberResponse])
async def list_team(
    current_user: AdminUser,
    db: AsyncSession = Depends(get_db_session),
) -> list[User]:
    """Users who can be assigned as project managers."""
    result = await db.execute(
        select(User).where(User.role.in_(PM_ROLES)).order_by(User.name.asc())
    )
    return list(result.scalars().all())


@router.get("/users", response_model=list[TeamMemberResponse])
async def list_users(
    current_user: AdminUser,
    db: AsyncSession = Depends(get_db_session),
) -> list[User]:
    result = await db.execute(select(User).order_by(User.name.asc()))
    return list(result.scalars().all())


@router.put("/users/{user_id}/role", response_model=TeamMemberResponse)
async def update_user_role(
    user_id: UUID,
    role_data: RoleUpdate,
    current_user: AdminUser,
    db: AsyncSession = Depends(get_db_session),
) -> User:
    """Change a user's role. Demoting a PM leaves their clients unassigned."""
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    if user.id == current_user.id and role_data.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Admins cannot demote themselves",
        )

    old_role = user.role
    user.role = role_data.role
    if old_role in PM_ROLES and role_data.role not in PM_ROLES:
        result = await db.execute(select(Client).where(Client.assigned_pm_id == user.id))
        for client in result.scalars().all():
            client.assigned_pm_id = None
    await db.commit()

    logger.info(
        "user_role_updated",
        user_id=str(user_id),
        old_role=old_role,
        new_role=role_data.role,
    )
    return user


@router.put("/clients/{client_id}/pm", response_model=AdminClientResponse)
async def assign_project_manager(
    client_id: UUID,
    assignment: AssignPMRequest,
    current_user: AdminUser,
    db: AsyncSession = Depends(get_db_session),
) -> Client:
    """Assign (or clear) the client's PM and notify the new PM."""
    client = await _load_client(db, client_id)
    old_pm_id = client.assigned_pm_id

    if assignment.pm_id is not None:
        await _get_project_manager(db, assignment.pm_id)

    client.assigned_pm_id = assignment.pm_id
    if assignment.pm_id is not None and assignment.pm_id != old_pm_id:
        await NotificationService(db).notify_best_effort(
            user_id=assignment.pm_id,
            notification_type="task_assigned",
            title="New Client Assigned",
            content=f"You have been assigned as the Project Manager for {client.name}.",
            related_id=client.id,
            sender_id=current_user.id,
        )
    await db.commit()

    logger.info(
        "client_pm_assigned",
        client_id=str(client_id),
        old_pm_id=str(old_pm_id) if old_pm_id else None,
        new_pm_id=str(assignment.pm_id) if assignment.pm_id else None,
    )
    return await _load_client(db, client_id)
