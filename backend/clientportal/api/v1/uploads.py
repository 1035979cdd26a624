"""Upload-complete callback for files stored by the hosting provider."""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clientportal.api.v1.assets import FileResponse
from clientportal.api.v1.auth import CurrentUser
from clientportal.db.session import get_db_session
from clientportal.models.asset import File
from clientportal.models.project import Task
from clientportal.services.access_control import get_visible_project
from clientportal.services.uploads import UploadedFile, UploadRejectedError, record_upload

router = APIRouter()
logger = structlog.get_logger()


class UploadCompleteRequest(BaseModel):
    """Descriptor of a hosted file, optionally attached to a project or task."""

    name: str = Field(..., min_length=1, max_length=500)
    url: str = Field(..., min_length=1, max_length=2000)
    type: str = Field(..., min_length=1, max_length=255)
    size: int | None = Field(None, ge=0)
    project_id: UUID | None = None
    task_id: UUID | None = None


@router.post(
    "/{endpoint}/complete",
    response_model=FileResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_complete(
    endpoint: str,
    upload_data: UploadCompleteRequest,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> File:
    """Record a finished upload after checking the endpoint's type and size rules."""
    project_id = upload_data.project_id
    if upload_data.task_id is not None:
        result = await db.execute(select(Task.project_id).where(Task.id == upload_data.task_id))
        task_project_id = result.scalar_one_or_none()
        if task_project_id is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Task not found",
            )
        if project_id is not None and project_id != task_project_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Task does not belong to the given project",
            )
        project_id = task_project_id
    if project_id is not None:
        await get_visible_project(db, project_id, current_user)

    try:
        file = await record_upload(
            db,
            endpoint,
            UploadedFile(
                name=upload_data.name,
                url=upload_data.url,
                type=upload_data.type,
                size=upload_data.size,
            ),
            uploader_id=current_user.id,
            project_id=project_id,
            task_id=upload_data.task_id,
        )
    except UploadRejectedError as e:
        logger.warning("upload_rejected", endpoint=endpoint, reason=str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )

    await db.commit()
    return file
