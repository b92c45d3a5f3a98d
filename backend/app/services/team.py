"""
Team roster synchronization for projects.

The roster is always replaced as a whole: callers send the full desired team
on every write and the previous rows are deleted.
"""
import logging
from typing import Iterable, Optional

from fastapi import HTTPException, status
from sqlalchemy import select, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.project import ProjectMember, ProjectMemberRole
from app.models.user import User

logger = logging.getLogger(__name__)


def sanitize_member_ids(
    member_ids: Iterable[str],
    leader_id: str,
    limit: Optional[int] = None,
) -> list[str]:
    """Deduplicate (keeping first occurrence), drop the leader and cap the team size."""
    cap = settings.MAX_TEAM_MEMBERS if limit is None else limit
    seen: set[str] = set()
    sanitized = []
    for user_id in member_ids:
        if user_id == leader_id or user_id in seen:
            continue
        seen.add(user_id)
        sanitized.append(user_id)
    return sanitized[:cap]


async def ensure_users_exist(db: AsyncSession, user_ids: list[str]) -> None:
    """Reject the operation if any referenced user is missing."""
    if not user_ids:
        return
    result = await db.execute(
        select(func.count()).select_from(User).where(User.id.in_(user_ids))
    )
    if (result.scalar() or 0) != len(set(user_ids)):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="One or more team members do not exist"
        )


async def sync_project_members(
    db: AsyncSession,
    project_id: str,
    leader_id: str,
    member_ids: list[str],
) -> list[ProjectMember]:
    """
    Replace the roster of a project with one LEADER and the given MEMBERs.

    `member_ids` must already be sanitized against `leader_id`. Runs inside the
    caller's transaction.
    """
    await db.execute(delete(ProjectMember).where(ProjectMember.project_id == project_id))

    rows = [ProjectMember(project_id=project_id, user_id=leader_id, role=ProjectMemberRole.LEADER)]
    rows.extend(
        ProjectMember(project_id=project_id, user_id=user_id, role=ProjectMemberRole.MEMBER)
        for user_id in member_ids
        if user_id != leader_id
    )
    db.add_all(rows)
    await db.flush()

    logger.info(f"Synced project members: project={project_id}, leader={leader_id}, members={len(rows) - 1}")
    return rows
