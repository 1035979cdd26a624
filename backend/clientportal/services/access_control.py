"""Role-based access control.

Two layers:
- ``evaluate_access`` decides whether a signed-in identity may see a page at
  all, returning ``Authorized``, ``Unauthorized(reason)`` or ``Loading``.
- Project visibility scopes what an authorized user sees:
  admins see every project, team members the projects of clients they
  manage, clients the projects of their own client record.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

import structlog
from fastapi import HTTPException, status
from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from clientportal.models.client import Client
from clientportal.models.project import Project
from clientportal.models.user import User

logger = structlog.get_logger()


class UnauthorizedReason(str, Enum):
    NOT_SIGNED_IN = "not_signed_in"
    ROLE_NOT_ALLOWED = "role_not_allowed"


@dataclass(frozen=True)
class Authorized:
    user: User


@dataclass(frozen=True)
class Unauthorized:
    reason: UnauthorizedReason


@dataclass(frozen=True)
class Loading:
    """Identity provider session exists but is not active yet."""


AccessDecision = Authorized | Unauthorized | Loading


def evaluate_access(
    user: User | None,
    allowed_roles: Iterable[str] | None = None,
    session_pending: bool = False,
) -> AccessDecision:
    """Decide page access for ``user``. ``allowed_roles=None`` admits any role."""
    if session_pending:
        return Loading()
    if user is None:
        return Unauthorized(UnauthorizedReason.NOT_SIGNED_IN)
    if allowed_roles is not None and user.role not in set(allowed_roles):
        return Unauthorized(UnauthorizedReason.ROLE_NOT_ALLOWED)
    return Authorized(user)


def visible_projects_query(user: User, *columns) -> Select:
    """``select(Project)`` (or ``columns``) restricted to the projects ``user`` may see."""
    query = select(*(columns or (Project,)))
    if user.role == "admin":
        return query
    query = query.join(Client, Project.client_id == Client.id)
    if user.role == "team_member":
        return query.where(Client.assigned_pm_id == user.id)
    return query.where(Client.user_id == user.id)


async def visible_project_ids(db: AsyncSession, user: User) -> list[UUID]:
    result = await db.execute(visible_projects_query(user, Project.id))
    return list(result.scalars().all())


async def get_visible_project(db: AsyncSession, project_id: UUID, user: User) -> Project:
    """
    Load a project the user may see.

    Raises:
        HTTPException 404 if the project does not exist
        HTTPException 403 if it exists but is outside the user's scope
    """
    result = await db.execute(
        visible_projects_query(user).where(Project.id == project_id)
    )
    project = result.scalar_one_or_none()
    if project is not None:
        return project

    exists = await db.execute(select(Project.id).where(Project.id == project_id))
    if exists.scalar_one_or_none() is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Project not found",
        )

    logger.warning(
        "project_access_denied",
        project_id=str(project_id),
        user_id=str(user.id),
        role=user.role,
    )
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="You do not have access to this project",
    )


async def get_client_for_user(db: AsyncSession, user: User) -> Client | None:
    """The client record a client-role user signs in for."""
    result = await db.execute(
        select(Client).where(Client.user_id == user.id).order_by(Client.created_at.asc()).limit(1)
    )
    return result.scalar_one_or_none()


async def get_accessible_client(
    db: AsyncSession,
    user: User,
    client_id: UUID | None = None,
) -> Client:
    """Resolve the client record ``user`` is acting on.

    Clients always act on their own record. Staff name one with
    ``client_id``; team members only reach the clients they manage.

    Raises:
        HTTPException 404 if there is no such client for the user
        HTTPException 403 if a team member names a client they do not manage
    """
    if user.role == "client":
        client = await get_client_for_user(db, user)
        if client is None or (client_id is not None and client.id != client_id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Client record not found",
            )
        return client

    if client_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="client_id is required",
        )

    result = await db.execute(select(Client).where(Client.id == client_id))
    client = result.scalar_one_or_none()
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Client not found",
        )
    if user.role == "team_member" and client.assigned_pm_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not manage this client",
        )
    return client
