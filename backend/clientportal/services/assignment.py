"""Round-robin project manager assignment for new clients."""

from collections.abc import Hashable, Sequence
from typing import TypeVar
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from clientportal.models.client import Client
from clientportal.models.user import User

logger = structlog.get_logger()

IdT = TypeVar("IdT", bound=Hashable)


def next_project_manager(roster: Sequence[IdT], last_assigned_id: IdT | None) -> IdT | None:
    """Pick the PM after ``last_assigned_id`` in ``roster``.

    - empty roster: no assignment
    - no previous PM, or previous PM no longer on the roster: first entry
    - otherwise the entry after the previous PM, wrapping around
    """
    if not roster:
        return None
    if last_assigned_id is None:
        return roster[0]
    try:
        index = list(roster).index(last_assigned_id)
    except ValueError:
        return roster[0]
    return roster[(index + 1) % len(roster)]


class ProjectManagerRotation:
    """Reads the roster and the previous assignment from the database."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def roster(self) -> list[UUID]:
        """Team members eligible for rotation, ordered by creation time then id."""
        result = await self.db.execute(
            select(User.id)
            .where(User.role == "team_member")
            .order_by(User.created_at.asc(), User.id.asc())
        )
        return list(result.scalars().all())

    async def last_assigned(self) -> UUID | None:
        """PM of the most recently created client, if any."""
        result = await self.db.execute(
            select(Client.assigned_pm_id).order_by(Client.created_at.desc()).limit(1)
        )
        return result.scalar_one_or_none()

    async def next_assignment(self, roster: Sequence[UUID]) -> UUID | None:
        """Next PM for ``roster``.

        A failed lookup of the previous assignment falls back to the first
        roster entry rather than failing client creation.
        """
        if not roster:
            return None
        try:
            last_pm_id = await self.last_assigned()
        except SQLAlchemyError as e:
            logger.warning("last_assigned_pm_lookup_failed", error=str(e))
            last_pm_id = None

        assigned = next_project_manager(roster, last_pm_id)
        logger.debug(
            "project_manager_selected",
            roster_size=len(roster),
            previous_pm_id=str(last_pm_id) if last_pm_id else None,
            assigned_pm_id=str(assigned) if assigned else None,
        )
        return assigned
