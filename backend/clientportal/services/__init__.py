"""Services package."""

from clientportal.services.assignment import ProjectManagerRotation, next_project_manager
from clientportal.services.crm_events import CrmEventService
from clientportal.services.kanban import KanbanBoard, TaskMove, apply_move
from clientportal.services.notification import NotificationService
from clientportal.services.provisioning import ClientProvisioningService, ProvisioningResult
from clientportal.services.status_mapping import map_external_status
from clientportal.services.uploads import UploadedFile, UploadRejectedError, record_upload

__all__ = [
    "ClientProvisioningService",
    "CrmEventService",
    "KanbanBoard",
    "NotificationService",
    "ProjectManagerRotation",
    "ProvisioningResult",
    "TaskMove",
    "UploadRejectedError",
    "UploadedFile",
    "apply_move",
    "map_external_status",
    "next_project_manager",
    "record_upload",
]
