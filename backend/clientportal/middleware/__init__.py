"""Middleware package."""

from clientportal.middleware.logging import LoggingMiddleware
from clientportal.middleware.request_id import RequestIDMiddleware

__all__ = ["LoggingMiddleware", "RequestIDMiddleware"]
