"""Liveness and readiness probes."""

import structlog
from fastapi import APIRouter, Depends, status
from fastapi.responses import ORJSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from clientportal.config import get_settings
from clientportal.db.session import get_db_session

router = APIRouter()
logger = structlog.get_logger()
settings = get_settings()


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
    }


@router.get("/health/ready")
async def readiness_check(
    db: AsyncSession = Depends(get_db_session),
) -> ORJSONResponse:
    """Database probe. Answers 503 when the database cannot be reached.

    ``webhooks`` reports whether the intake endpoints require the shared
    secret; it never makes the service unready.
    """
    ready = True
    try:
        await db.execute(text("SELECT 1"))
        database = "healthy"
    except Exception as e:
        logger.error("readiness_database_check_failed", error=str(e))
        database = f"unhealthy: {e.__class__.__name__}"
        ready = False

    return ORJSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if ready else "unhealthy",
            "version": settings.app_version,
            "checks": {
                "database": database,
                "webhooks": "secret" if settings.webhook_secret.get_secret_value() else "open",
            },
        },
    )
