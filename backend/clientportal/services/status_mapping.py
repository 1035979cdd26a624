"""Translation of CRM task statuses into portal task statuses."""

DEFAULT_TASK_STATUS = "to_do"

EXTERNAL_TO_INTERNAL_STATUS: dict[str, str] = {
    "not_started": "to_do",
    "in_progress": "in_progress",
    "waiting": "needs_review",
    "completed": "complete",
}


def map_external_status(external_status: str | None) -> str:
    """Map a CRM status string; anything unrecognised becomes ``to_do``."""
    if not isinstance(external_status, str):
        return DEFAULT_TASK_STATUS
    return EXTERNAL_TO_INTERNAL_STATUS.get(external_status, DEFAULT_TASK_STATUS)
