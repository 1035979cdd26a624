"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from clientportal.api import router as api_router
from clientportal.config import get_settings
from clientportal.db.session import close_db, init_db
from clientportal.exceptions import WebhookError, webhook_error_handler
from clientportal.middleware.logging import LoggingMiddleware
from clientportal.middleware.request_id import RequestIDMiddleware

logger = structlog.get_logger()
settings = get_settings()


def configure_logging() -> None:
    """Route structlog output through the configured level and renderer."""
    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.environment == "development"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.log_level)
        ),
        cache_logger_on_first_use=True,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the database pool on startup and release it on shutdown."""
    logger.info("portal_starting", version=settings.app_version, environment=settings.environment)
    await init_db()
    logger.info("database_ready")

    yield

    await close_db()
    logger.info("portal_stopped")


def create_app() -> FastAPI:
    """Build the portal application with middleware, routers and error handlers."""
    configure_logging()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Client portal for agency projects, onboarding and CRM webhooks",
        openapi_url=f"{settings.api_prefix}/openapi.json",
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=None,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    # Last added runs first: proxy headers, then request id, then logging
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type", settings.webhook_secret_header],
    )
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["*"])

    # Webhook failures render as {"error": ...} instead of FastAPI's {"detail": ...}
    app.add_exception_handler(WebhookError, webhook_error_handler)

    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()
