"""Client provisioning: client row, default project and PM notification.

Used by the funnel webhook (keyed by CRM subaccount id) and by admins
creating clients by hand. All writes share the caller's transaction; the
default project and the PM notification each run in a savepoint so their
failure is logged without undoing the client.
"""

from dataclasses import dataclass
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from clientportal.config import get_settings
from clientportal.exceptions import StoreError
from clientportal.models.client import Client
from clientportal.models.project import Project
from clientportal.services.assignment import ProjectManagerRotation
from clientportal.services.notification import NotificationService

logger = structlog.get_logger()
settings = get_settings()


@dataclass
class ProvisioningResult:
    client: Client
    project: Project | None
    created: bool

    @property
    def client_id(self) -> UUID:
        return self.client.id

    @property
    def project_id(self) -> UUID | None:
        return self.project.id if self.project else None


class ClientProvisioningService:
    """Creates clients together with their default project."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.rotation = ProjectManagerRotation(db)
        self.notifications = NotificationService(db)

    async def find_by_subaccount(self, subaccount_id: str) -> Client | None:
        result = await self.db.execute(
            select(Client).where(Client.subaccount_id == subaccount_id)
        )
        return result.scalar_one_or_none()

    async def provision_subaccount(
        self,
        subaccount_id: str,
        name: str | None,
        contact_email: str | None,
        contact_phone: str | None,
    ) -> ProvisioningResult:
        """Create the client for a CRM subaccount unless it already exists.

        Redelivery of the same subaccount returns the existing client without
        writing anything.
        """
        try:
            existing = await self.find_by_subaccount(subaccount_id)
        except SQLAlchemyError as e:
            logger.error("existing_client_lookup_failed", subaccount_id=subaccount_id, error=str(e))
            raise StoreError("Database error when checking for existing client") from e

        if existing is not None:
            logger.info(
                "client_already_exists",
                client_id=str(existing.id),
                subaccount_id=subaccount_id,
            )
            return ProvisioningResult(client=existing, project=None, created=False)

        try:
            return await self.create_client(
                name=name,
                contact_email=contact_email,
                contact_phone=contact_phone,
                subaccount_id=subaccount_id,
            )
        except IntegrityError as e:
            # A concurrent delivery inserted the same subaccount first
            await self.db.rollback()
            existing = await self.find_by_subaccount(subaccount_id)
            if existing is None:
                logger.error("client_insert_failed", subaccount_id=subaccount_id, error=str(e))
                raise StoreError("Database error when creating client") from e
            logger.info(
                "client_created_concurrently",
                client_id=str(existing.id),
                subaccount_id=subaccount_id,
            )
            return ProvisioningResult(client=existing, project=None, created=False)

    async def create_client(
        self,
        name: str | None,
        contact_email: str | None,
        contact_phone: str | None,
        subaccount_id: str | None = None,
        assigned_pm_id: UUID | None = None,
        actor_id: UUID | None = None,
    ) -> ProvisioningResult:
        """Insert a client, its default project, and notify its PM.

        Without an explicit ``assigned_pm_id`` the next PM in the round-robin
        rotation is assigned (none when there are no team members).

        Raises:
            StoreError: roster lookup or client insert failed
            IntegrityError: the subaccount id is already taken
        """
        if assigned_pm_id is None:
            try:
                roster = await self.rotation.roster()
            except SQLAlchemyError as e:
                logger.error("team_roster_lookup_failed", error=str(e))
                raise StoreError("Database error when fetching team members") from e
            assigned_pm_id = await self.rotation.next_assignment(roster)

        client = Client(
            name=name or settings.default_client_name,
            contact_email=contact_email,
            contact_phone=contact_phone,
            subaccount_id=subaccount_id,
            assigned_pm_id=assigned_pm_id,
        )
        self.db.add(client)
        try:
            await self.db.flush()
        except IntegrityError:
            raise
        except SQLAlchemyError as e:
            logger.error("client_insert_failed", subaccount_id=subaccount_id, error=str(e))
            raise StoreError("Database error when creating client") from e

        logger.info(
            "client_created",
            client_id=str(client.id),
            subaccount_id=subaccount_id,
            assigned_pm_id=str(assigned_pm_id) if assigned_pm_id else None,
        )

        project = await self._create_default_project(client)

        if assigned_pm_id:
            await self.notifications.notify_best_effort(
                user_id=assigned_pm_id,
                notification_type="task_assigned",
                title="New Client Assigned",
                content=(
                    "You have been assigned as the Project Manager for "
                    f"{name or 'a new client'}."
                ),
                related_id=client.id,
                sender_id=actor_id,
            )

        return ProvisioningResult(client=client, project=project, created=True)

    async def _create_default_project(self, client: Client) -> Project | None:
        try:
            async with self.db.begin_nested():
                project = Project(
                    title=settings.default_project_title,
                    description=settings.default_project_description,
                    client_id=client.id,
                    status="planning",
                )
                self.db.add(project)
                await self.db.flush()
        except SQLAlchemyError as e:
            logger.error("default_project_create_failed", client_id=str(client.id), error=str(e))
            return None

        logger.info("default_project_created", client_id=str(client.id), project_id=str(project.id))
        return project
