"""Onboarding answers: branding, access credentials, legal and content items."""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from clientportal.api.v1.auth import CurrentUser
from clientportal.db.session import get_db_session
from clientportal.models.asset import OnboardingItem
from clientportal.models.client import Client
from clientportal.models.project import Project
from clientportal.services.access_control import get_accessible_client
from clientportal.services.uploads import UploadedFile, UploadRejectedError, record_upload

router = APIRouter()
logger = structlog.get_logger()

CATEGORY_PATTERN = "^(branding|access_credentials|legal|content)$"


class OnboardingFileResponse(BaseModel):
    id: UUID
    file_name: str
    file_url: str
    file_type: str
    file_size: int | None

    class Config:
        from_attributes = True


class OnboardingItemResponse(BaseModel):
    id: UUID
    type: str
    category: str
    value: str | None
    file: OnboardingFileResponse | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class OnboardingClientSummary(BaseModel):
    id: UUID
    name: str
    contact_email: str | None
    contact_phone: str | None

    class Config:
        from_attributes = True


class OnboardingResponse(BaseModel):
    client: OnboardingClientSummary
    items: list[OnboardingItemResponse]


class OnboardingValueCreate(BaseModel):
    """A text answer."""

    category: str = Field(..., pattern=CATEGORY_PATTERN)
    type: str = Field(..., min_length=1, max_length=100)
    value: str = Field(..., min_length=1)
    client_id: UUID | None = None


class OnboardingFileDescriptor(BaseModel):
    name: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    size: int | None = Field(None, ge=0)


class OnboardingUploadCreate(BaseModel):
    """A file answer, sent after the hosting provider finished the upload."""

    category: str = Field(..., pattern=CATEGORY_PATTERN)
    type: str = Field(..., min_length=1, max_length=100)
    endpoint: str = "documentUploader"
    file: OnboardingFileDescriptor
    client_id: UUID | None = None


async def _latest_project_id(db: AsyncSession, client: Client) -> UUID | None:
    result = await db.execute(
        select(Project.id)
        .where(Project.client_id == client.id)
        .order_by(Project.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _load_item(db: AsyncSession, item_id: UUID) -> OnboardingItem:
    result = await db.execute(
        select(OnboardingItem)
        .options(selectinload(OnboardingItem.file))
        .where(OnboardingItem.id == item_id)
    )
    return result.scalar_one()


@router.get("/", response_model=OnboardingResponse)
async def get_onboarding(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
    client_id: UUID | None = Query(None),
) -> OnboardingResponse:
    """The client record and every onboarding answer given so far."""
    client = await get_accessible_client(db, current_user, client_id)

    result = await db.execute(
        select(OnboardingItem)
        .options(selectinload(OnboardingItem.file))
        .where(OnboardingItem.client_id == client.id)
        .order_by(OnboardingItem.created_at.asc())
    )
    return OnboardingResponse(
        client=OnboardingClientSummary.model_validate(client),
        items=[OnboardingItemResponse.model_validate(i) for i in result.scalars().all()],
    )


@router.post("/items", response_model=OnboardingItemResponse, status_code=status.HTTP_201_CREATED)
async def create_onboarding_value(
    item_data: OnboardingValueCreate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> OnboardingItem:
    client = await get_accessible_client(db, current_user, item_data.client_id)

    item = OnboardingItem(
        type=item_data.type,
        category=item_data.category,
        value=item_data.value,
        client_id=client.id,
    )
    db.add(item)
    await db.commit()

    logger.info(
        "onboarding_item_created",
        item_id=str(item.id),
        client_id=str(client.id),
        category=item.category,
    )
    return await _load_item(db, item.id)


@router.post(
    "/uploads",
    response_model=OnboardingItemResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_onboarding_upload(
    upload_data: OnboardingUploadCreate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> OnboardingItem:
    """Record the uploaded file, then the answer pointing at it."""
    client = await get_accessible_client(db, current_user, upload_data.client_id)

    try:
        file = await record_upload(
            db,
            upload_data.endpoint,
            UploadedFile(
                name=upload_data.file.name,
                url=upload_data.file.url,
                type=upload_data.file.type,
                size=upload_data.file.size,
            ),
            uploader_id=current_user.id,
            project_id=await _latest_project_id(db, client),
        )
    except UploadRejectedError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )

    item = OnboardingItem(
        type=upload_data.type,
        category=upload_data.category,
        file_id=file.id,
        client_id=client.id,
    )
    db.add(item)
    await db.commit()

    logger.info(
        "onboarding_upload_created",
        item_id=str(item.id),
        file_id=str(file.id),
        client_id=str(client.id),
    )
    return await _load_item(db, item.id)
