"""Upload-complete callbacks from the file hosting provider.

The hosting provider stores the bytes; the portal only records a ``File``
row describing the hosted file. Each upload endpoint accepts a fixed set of
file kinds with a per-kind size cap.
"""

from dataclasses import dataclass
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from clientportal.models.asset import File

logger = structlog.get_logger()

MB = 1024 * 1024

UPLOAD_ENDPOINTS: dict[str, dict[str, int]] = {
    "imageUploader": {"image": 4 * MB},
    "documentUploader": {"pdf": 16 * MB, "text": 8 * MB},
}


class UploadRejectedError(ValueError):
    """The descriptor does not fit the endpoint's type or size rules."""


@dataclass(frozen=True)
class UploadedFile:
    """File descriptor delivered by the hosting provider."""

    name: str
    url: str
    type: str
    size: int | None = None


def file_kind(mime_type: str) -> str | None:
    """Coarse kind of a MIME type: image, pdf, text or None."""
    mime_type = (mime_type or "").split(";")[0].strip().lower()
    if mime_type.startswith("image/"):
        return "image"
    if mime_type == "application/pdf":
        return "pdf"
    if mime_type.startswith("text/"):
        return "text"
    return None


def validate_upload(endpoint: str, upload: UploadedFile) -> str:
    """Check ``upload`` against ``endpoint`` and return its kind.

    Raises:
        UploadRejectedError: unknown endpoint, disallowed kind, or too large
    """
    limits = UPLOAD_ENDPOINTS.get(endpoint)
    if limits is None:
        raise UploadRejectedError(f"Unknown upload endpoint: {endpoint}")

    kind = file_kind(upload.type)
    if kind is None or kind not in limits:
        raise UploadRejectedError(f"File type {upload.type!r} is not accepted by {endpoint}")

    if upload.size is not None and upload.size > limits[kind]:
        raise UploadRejectedError(
            f"File exceeds the {limits[kind] // MB}MB limit for {kind} uploads"
        )
    return kind


async def record_upload(
    db: AsyncSession,
    endpoint: str,
    upload: UploadedFile,
    uploader_id: UUID | None,
    project_id: UUID | None = None,
    task_id: UUID | None = None,
) -> File:
    """Validate and record a completed upload. Flushes but does not commit."""
    kind = validate_upload(endpoint, upload)

    file = File(
        file_name=upload.name,
        file_url=upload.url,
        file_type=upload.type,
        file_size=upload.size,
        uploader_id=uploader_id,
        project_id=project_id,
        task_id=task_id,
    )
    db.add(file)
    await db.flush()

    logger.info(
        "upload_recorded",
        file_id=str(file.id),
        endpoint=endpoint,
        kind=kind,
        uploader_id=str(uploader_id) if uploader_id else None,
    )
    return file
