"""
Submission lifecycle: create, update, delete and review.

A submission and its project are written together. Every mutation runs
inside one savepoint and touches the aggregate in dependency order (project,
attachments, members, submission on the way in; the reverse on the way out),
so a failing step leaves nothing partially written.
"""
import logging
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import select, delete, exists, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.permissions import (
    can_manage_submission,
    ensure_participant,
    is_active_participant,
)
from app.models.base import as_utc, utc_now
from app.models.event import Event, EventType
from app.models.event_registration import EventRegistration, ACTIVE_REGISTRATION_STATUSES
from app.models.project import Project, ProjectMember, ProjectAttachment
from app.models.submission import (
    EventProjectSubmission,
    SubmissionStatus,
    SubmissionType,
    PUBLIC_SUBMISSION_STATUSES,
    VALID_STATUS_TRANSITIONS,
)
from app.models.user import User
from app.models.vote import ProjectVote
from app.schemas.submission import SubmissionCreate, SubmissionUpdate, SubmissionReview
from app.services.attachments import replace_attachments
from app.services.submission_form import (
    BaseFieldRules,
    normalize_submission_form_config,
    resolve_base_field_rules,
)
from app.services.team import ensure_users_exist, sanitize_member_ids, sync_project_members
from app.services.voting import get_team_member_ids

logger = logging.getLogger(__name__)

PARTICIPANT_SEARCH_LIMIT = 20


def submission_load_options() -> tuple:
    """Eager loads needed to serialize a submission."""
    return (
        selectinload(EventProjectSubmission.project).selectinload(Project.leader),
        selectinload(EventProjectSubmission.project)
        .selectinload(Project.members)
        .selectinload(ProjectMember.user),
        selectinload(EventProjectSubmission.project).selectinload(Project.attachments),
        selectinload(EventProjectSubmission.user),
        selectinload(EventProjectSubmission.event),
    )


async def get_event_or_404(db: AsyncSession, event_id: str) -> Event:
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()
    if not event:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Event not found"
        )
    return event


async def get_submissions_event_or_404(db: AsyncSession, event_id: str) -> Event:
    """Event lookup for submission reads; disabled submissions look like a missing event."""
    event = await get_event_or_404(db, event_id)
    if not event.submissions_feature_enabled:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Submissions are not enabled for this event"
        )
    return event


async def load_submission(db: AsyncSession, submission_id: str) -> Optional[EventProjectSubmission]:
    """Load a submission with everything serialization needs, refreshing stale state."""
    result = await db.execute(
        select(EventProjectSubmission)
        .where(EventProjectSubmission.id == submission_id)
        .options(*submission_load_options())
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_submission_or_404(
    db: AsyncSession,
    submission_id: str,
    user_id: Optional[str] = None,
    require_visible: bool = True,
) -> EventProjectSubmission:
    """
    Fetch a submission the caller may see.

    Submissions of events with the feature switched off do not exist as far
    as callers are concerned. With `require_visible`, a project without
    community-use authorization is hidden from everyone but its managers.
    """
    submission = await load_submission(db, submission_id)
    if submission is None or not submission.event.submissions_feature_enabled:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Submission not found"
        )

    if require_visible and not submission.project.community_use_auth:
        if not user_id or not await can_manage_submission(db, submission, user_id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Submission not found"
            )
    return submission


async def ensure_can_manage(db: AsyncSession, submission: EventProjectSubmission, user_id: str) -> None:
    if not await can_manage_submission(db, submission, user_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the team leader, submitter or event administrators can modify this submission"
        )


async def load_public_submissions(
    db: AsyncSession,
    event_id: str,
    require_registered_submitter: bool = True,
) -> list[EventProjectSubmission]:
    """
    Submissions shown in public listings, oldest first.

    Rejected submissions and projects without community-use authorization
    are left out, as are those whose submitter no longer holds an active
    registration (unless `require_registered_submitter` is false).
    """
    query = (
        select(EventProjectSubmission)
        .join(Project, Project.id == EventProjectSubmission.project_id)
        .where(
            EventProjectSubmission.event_id == event_id,
            EventProjectSubmission.status.in_(PUBLIC_SUBMISSION_STATUSES),
            Project.community_use_auth.is_(True),
        )
    )
    if require_registered_submitter:
        query = query.where(
            exists().where(
                EventRegistration.event_id == EventProjectSubmission.event_id,
                EventRegistration.user_id == EventProjectSubmission.user_id,
                EventRegistration.status.in_(ACTIVE_REGISTRATION_STATUSES),
            )
        )

    result = await db.execute(
        query.options(*submission_load_options())
        .order_by(EventProjectSubmission.submitted_at.asc(), EventProjectSubmission.id.asc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


def build_project_snapshot(project: Project) -> dict:
    """Write-once copy of the project as it was submitted."""
    return {
        "id": project.id,
        "title": project.title,
        "tagline": project.tagline,
        "description": project.description,
        "demo_url": project.demo_url,
        "submitted_at": project.submitted_at.isoformat() if project.submitted_at else None,
    }


def ensure_accepting_submissions(event: Event) -> None:
    if not event.submissions_feature_enabled:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Project submissions are disabled for this event"
        )
    if not event.submissions_open:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Project submissions are closed"
        )
    deadline = as_utc(event.project_submission_deadline)
    if deadline is not None and utc_now() > deadline:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Project submission deadline has passed"
        )


def _check_required_base_fields(
    rules: dict[str, BaseFieldRules],
    tagline: Optional[str],
    demo_url: Optional[str],
    attachment_count: int,
) -> None:
    missing = None
    if rules["tagline"].required and not tagline:
        missing = rules["tagline"].label
    elif rules["demoUrl"].required and not demo_url:
        missing = rules["demoUrl"].label
    elif rules["attachments"].required and attachment_count == 0:
        missing = rules["attachments"].label
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{missing} is required"
        )


async def _ensure_leader_participates(db: AsyncSession, event_id: str, leader_id: str) -> None:
    if not await is_active_participant(db, event_id, leader_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Team leader must be registered for this event"
        )


async def create_submission(
    db: AsyncSession,
    event: Event,
    data: SubmissionCreate,
    user_id: str,
) -> EventProjectSubmission:
    """Create a project and its submission for `event` on behalf of `user_id`."""
    await ensure_participant(db, event.id, user_id)
    leader_id = data.team_leader_id or user_id
    if leader_id != user_id:
        await _ensure_leader_participates(db, event.id, leader_id)

    ensure_accepting_submissions(event)

    rules = resolve_base_field_rules(normalize_submission_form_config(event.submission_form_config))
    tagline = data.tagline if rules["tagline"].enabled else None
    demo_url = data.demo_url if rules["demoUrl"].enabled else None
    attachments = (data.attachments or []) if rules["attachments"].enabled else []
    _check_required_base_fields(rules, tagline, demo_url, len(attachments))

    member_ids = sanitize_member_ids(data.team_member_ids or [], leader_id)
    await ensure_users_exist(db, member_ids)

    now = utc_now()
    async with db.begin_nested():
        project = Project(
            leader_id=leader_id,
            title=data.name,
            tagline=tagline,
            description=data.description,
            demo_url=demo_url,
            community_use_auth=data.community_use_authorization,
            custom_fields=data.custom_fields,
            is_submission=True,
            submitted_at=now,
        )
        db.add(project)
        await db.flush()

        if attachments:
            await replace_attachments(db, project.id, attachments)
        await sync_project_members(db, project.id, leader_id, member_ids)

        submission = EventProjectSubmission(
            event_id=event.id,
            project_id=project.id,
            user_id=user_id,
            submission_type=(
                SubmissionType.HACKATHON_PROJECT if event.type == EventType.HACKATHON
                else SubmissionType.DEMO_PROJECT
            ),
            title=project.title,
            description=project.description or "",
            demo_url=project.demo_url,
            project_snapshot=build_project_snapshot(project),
            status=SubmissionStatus.SUBMITTED,
            submitted_at=now,
        )
        db.add(submission)
        await db.flush()

    logger.info(
        f"Submission created: id={submission.id}, event={event.id}, project={project.id}, "
        f"leader={leader_id}, members={len(member_ids)}"
    )
    return submission


async def update_submission(
    db: AsyncSession,
    submission: EventProjectSubmission,
    data: SubmissionUpdate,
    user_id: str,
) -> EventProjectSubmission:
    """
    Apply a partial update. Only fields present in the request are written.

    The submission goes back to SUBMITTED. Requires the submission loaded
    with `submission_load_options()`.
    """
    await ensure_can_manage(db, submission, user_id)

    project = submission.project
    provided = data.model_fields_set

    leader_id = data.team_leader_id or project.leader_id
    if leader_id != project.leader_id:
        await _ensure_leader_participates(db, submission.event_id, leader_id)

    if data.team_member_ids is not None:
        member_ids = sanitize_member_ids(data.team_member_ids, leader_id)
    else:
        member_ids = sanitize_member_ids(get_team_member_ids(project), leader_id)
    await ensure_users_exist(db, member_ids)

    rules = resolve_base_field_rules(normalize_submission_form_config(submission.event.submission_form_config))
    update_tagline = "tagline" in provided and rules["tagline"].enabled
    update_demo_url = "demo_url" in provided and rules["demoUrl"].enabled
    update_attachments = data.attachments is not None and rules["attachments"].enabled

    _check_required_base_fields(
        rules,
        data.tagline if update_tagline else project.tagline,
        data.demo_url if update_demo_url else project.demo_url,
        len(data.attachments) if update_attachments else len(project.attachments),
    )

    async with db.begin_nested():
        if data.name:
            project.title = data.name
        if update_tagline:
            project.tagline = data.tagline
        if "description" in provided:
            project.description = data.description
        if update_demo_url:
            project.demo_url = data.demo_url
        if data.community_use_authorization is not None:
            project.community_use_auth = data.community_use_authorization
        if "custom_fields" in provided:
            project.custom_fields = data.custom_fields
        project.leader_id = leader_id
        await db.flush()

        if update_attachments:
            await replace_attachments(db, project.id, data.attachments)
        await sync_project_members(db, project.id, leader_id, member_ids)

        submission.title = project.title
        submission.description = project.description or ""
        submission.demo_url = project.demo_url
        submission.status = SubmissionStatus.SUBMITTED
        await db.flush()

    logger.info(
        f"Submission updated: id={submission.id}, by={user_id}, fields={sorted(provided)}"
    )
    return submission


async def delete_submission(db: AsyncSession, submission: EventProjectSubmission, user_id: str) -> None:
    """Remove the submission together with its project, votes and owned rows."""
    await ensure_can_manage(db, submission, user_id)

    submission_id = submission.id
    project_id = submission.project_id
    async with db.begin_nested():
        await db.execute(delete(ProjectVote).where(ProjectVote.project_id == project_id))
        await db.execute(delete(ProjectAttachment).where(ProjectAttachment.project_id == project_id))
        await db.execute(delete(ProjectMember).where(ProjectMember.project_id == project_id))
        await db.execute(delete(EventProjectSubmission).where(EventProjectSubmission.id == submission_id))
        await db.execute(delete(Project).where(Project.id == project_id))

    logger.info(f"Submission deleted: id={submission_id}, project={project_id}, by={user_id}")


async def review_submission(
    db: AsyncSession,
    submission: EventProjectSubmission,
    data: SubmissionReview,
    reviewer_id: str,
) -> EventProjectSubmission:
    """Record a review decision. The caller must be an event administrator."""
    target = SubmissionStatus(data.status)
    current = submission.status
    if target != current and target not in VALID_STATUS_TRANSITIONS.get(current, []):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot change status from {current.value} to {target.value}"
        )

    submission.status = target
    if "review_note" in data.model_fields_set:
        submission.review_note = data.review_note
    if "judge_score" in data.model_fields_set:
        submission.judge_score = data.judge_score
    submission.reviewed_by = reviewer_id
    submission.reviewed_at = utc_now()
    await db.flush()

    logger.info(f"Submission reviewed: id={submission.id}, {current.value} -> {target.value}, by={reviewer_id}")
    return submission


def parse_exclude_ids(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    return [value.strip() for value in raw.split(",") if value.strip()]


async def search_participants(
    db: AsyncSession,
    event_id: str,
    query: str,
    scope: str = "event",
    exclude_ids: Optional[list[str]] = None,
) -> list[tuple[User, bool]]:
    """
    Team builder lookup by name or username.

    The default `event` scope searches active registrants in registration
    order; `global` searches every user by name.
    """
    query = (query or "").strip()
    if not query:
        return []

    pattern = f"%{query}%"
    matches = or_(User.name.ilike(pattern), User.username.ilike(pattern))
    exclude_ids = exclude_ids or []

    if (scope or "").lower() == "global":
        stmt = select(User).where(matches)
        if exclude_ids:
            stmt = stmt.where(User.id.notin_(exclude_ids))
        result = await db.execute(stmt.order_by(User.name.asc()).limit(PARTICIPANT_SEARCH_LIMIT))
        return [(user, False) for user in result.scalars().all()]

    stmt = (
        select(User)
        .join(EventRegistration, EventRegistration.user_id == User.id)
        .where(
            EventRegistration.event_id == event_id,
            EventRegistration.status.in_(ACTIVE_REGISTRATION_STATUSES),
            matches,
        )
    )
    if exclude_ids:
        stmt = stmt.where(User.id.notin_(exclude_ids))
    result = await db.execute(stmt.order_by(EventRegistration.registered_at.asc()).limit(PARTICIPANT_SEARCH_LIMIT))
    return [(user, True) for user in result.scalars().all()]
