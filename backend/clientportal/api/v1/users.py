"""Current user endpoints."""

from datetime import datetime
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from clientportal.api.v1.auth import CurrentUser
from clientportal.db.session import get_db_session
from clientportal.services.access_control import get_client_for_user

router = APIRouter()
logger = structlog.get_logger()


class UserProfileResponse(BaseModel):
    """User profile response."""

    id: UUID
    email: str
    name: str
    role: str
    client_id: UUID | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class UserProfileUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)


@router.get("/me", response_model=UserProfileResponse)
async def get_me(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> UserProfileResponse:
    """Profile of the signed-in user, created on first sign-in."""
    client = await get_client_for_user(db, current_user) if current_user.role == "client" else None
    profile = UserProfileResponse.model_validate(current_user)
    profile.client_id = client.id if client else None
    return profile


@router.patch("/me", response_model=UserProfileResponse)
async def update_me(
    updates: UserProfileUpdate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> UserProfileResponse:
    if updates.name is not None:
        current_user.name = updates.name
    await db.commit()

    logger.info("user_profile_updated", user_id=str(current_user.id))
    return UserProfileResponse.model_validate(current_user)
