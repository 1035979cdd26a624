"""Database package."""

from clientportal.db.base import Base
from clientportal.db.session import get_db_session

__all__ = ["Base", "get_db_session"]
