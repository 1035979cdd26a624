"""Files and stored credentials of the caller's projects."""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from clientportal.api.v1.auth import CurrentUser
from clientportal.db.session import get_db_session
from clientportal.models.asset import Credential, File
from clientportal.services.access_control import get_visible_project, visible_project_ids

router = APIRouter()
logger = structlog.get_logger()


class FileResponse(BaseModel):
    id: UUID
    file_name: str
    file_url: str
    file_type: str
    file_size: int | None
    uploader_id: UUID | None
    project_id: UUID | None
    task_id: UUID | None
    created_at: datetime

    class Config:
        from_attributes = True


class CredentialCreate(BaseModel):
    service_name: str = Field(..., min_length=1, max_length=255)
    username: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=1000)
    additional_info: str | None = None
    project_id: UUID | None = None


class CredentialResponse(BaseModel):
    id: UUID
    service_name: str
    username: str
    password: str
    additional_info: str | None
    project_id: UUID | None
    created_at: datetime

    class Config:
        from_attributes = True


async def _project_scope(db: AsyncSession, user, project_id: UUID | None) -> list[UUID]:
    if project_id is not None:
        await get_visible_project(db, project_id, user)
        return [project_id]
    return await visible_project_ids(db, user)


@router.get("/files", response_model=list[FileResponse])
async def list_files(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
    project_id: UUID | None = Query(None),
) -> list[File]:
    """Files of visible projects and the caller's own uploads, newest first."""
    query = select(File).order_by(File.created_at.desc())
    if project_id is not None or current_user.role != "admin":
        project_ids = await _project_scope(db, current_user, project_id)
        condition = File.project_id.in_(project_ids)
        if project_id is None:
            condition = or_(condition, File.uploader_id == current_user.id)
        query = query.where(condition)

    result = await db.execute(query)
    return list(result.scalars().all())


@router.get("/credentials", response_model=list[CredentialResponse])
async def list_credentials(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
    project_id: UUID | None = Query(None),
) -> list[Credential]:
    """Stored logins, newest first. Admins also see ones outside any project."""
    query = select(Credential).order_by(Credential.created_at.desc())
    if project_id is not None or current_user.role != "admin":
        project_ids = await _project_scope(db, current_user, project_id)
        query = query.where(Credential.project_id.in_(project_ids))

    result = await db.execute(query)
    return list(result.scalars().all())


@router.post(
    "/credentials",
    response_model=CredentialResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_credential(
    credential_data: CredentialCreate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> Credential:
    """Store a service login. Only admins may store one outside a project."""
    if credential_data.project_id is not None:
        await get_visible_project(db, credential_data.project_id, current_user)
    elif current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="project_id is required",
        )

    credential = Credential(
        service_name=credential_data.service_name,
        username=credential_data.username,
        password=credential_data.password,
        additional_info=credential_data.additional_info,
        project_id=credential_data.project_id,
    )
    db.add(credential)
    await db.commit()

    logger.info(
        "credential_created",
        credential_id=str(credential.id),
        project_id=str(credential.project_id) if credential.project_id else None,
        user_id=str(current_user.id),
    )
    return credential
