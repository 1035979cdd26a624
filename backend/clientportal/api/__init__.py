"""API router package."""

from fastapi import APIRouter

from clientportal.api.v1 import (
    admin,
    assets,
    auth,
    dashboard,
    health,
    messages,
    notifications,
    onboarding,
    projects,
    tasks,
    uploads,
    users,
    webhooks,
)

router = APIRouter()

# Include all API routers
router.include_router(health.router, tags=["Health"])
router.include_router(webhooks.router, prefix="/webhook", tags=["Webhooks"])
router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(users.router, prefix="/users", tags=["Users"])
router.include_router(dashboard.router, prefix="/dashboard", tags=["Dashboard"])
router.include_router(projects.router, prefix="/projects", tags=["Projects"])
router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
router.include_router(messages.router, prefix="/messages", tags=["Messages"])
router.include_router(onboarding.router, prefix="/onboarding", tags=["Onboarding"])
router.include_router(assets.router, prefix="/assets", tags=["Assets"])
router.include_router(uploads.router, prefix="/uploads", tags=["Uploads"])
router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
router.include_router(admin.router, prefix="/admin", tags=["Admin"])
