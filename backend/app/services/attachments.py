"""
Project attachment replacement and public URL resolution.

Files are uploaded to object storage by the client before a submission is
written; this module only stores their descriptors.
"""
import logging
from typing import Optional, Sequence

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.project import ProjectAttachment
from app.schemas.submission import AttachmentInput

logger = logging.getLogger(__name__)


async def replace_attachments(
    db: AsyncSession,
    project_id: str,
    attachments: Sequence[AttachmentInput],
) -> list[ProjectAttachment]:
    """
    Delete every attachment of the project and insert the given list.

    `order` defaults to the position in the list. Runs inside the caller's
    transaction; a failing row aborts the whole replacement.
    """
    await db.execute(delete(ProjectAttachment).where(ProjectAttachment.project_id == project_id))
    if not attachments:
        return []

    rows = [
        ProjectAttachment(
            project_id=project_id,
            file_name=attachment.file_name,
            file_url=attachment.file_url,
            file_type=attachment.file_type,
            mime_type=attachment.mime_type,
            file_size=attachment.file_size,
            order=attachment.order if attachment.order is not None else index,
        )
        for index, attachment in enumerate(attachments)
    ]
    db.add_all(rows)
    await db.flush()

    logger.info(f"Replaced attachments: project={project_id}, count={len(rows)}")
    return rows


def resolve_public_url(url: Optional[str], endpoint: Optional[str] = None) -> Optional[str]:
    """Return an absolute URL for a stored attachment path."""
    if not url:
        return url
    if url.startswith("http://") or url.startswith("https://"):
        return url
    base = (endpoint if endpoint is not None else settings.STORAGE_PUBLIC_ENDPOINT) or ""
    base = base.strip().rstrip("/")
    if not base:
        return url
    return f"{base}/{url.lstrip('/')}"
