"""Identity and permission checks for events and their submissions."""
from typing import Optional
from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.models.event import Event
from app.models.event_registration import EventRegistration
from app.models.org_membership import OrgMembership, EVENT_ADMIN_ROLES
from app.models.organization import Organization
from app.models.submission import EventProjectSubmission


async def get_membership(db: AsyncSession, user_id: str, organization_id: str) -> Optional[OrgMembership]:
    result = await db.execute(
        select(OrgMembership).where(
            OrgMembership.user_id == user_id,
            OrgMembership.organization_id == organization_id,
        )
    )
    return result.scalar_one_or_none()


async def can_administer_event(db: AsyncSession, event: Event, user_id: str) -> bool:
    """Organizer, organization owner, or an active owner/admin member of the organization."""
    if event.organizer_id == user_id:
        return True
    if not event.organization_id:
        return False

    org_result = await db.execute(
        select(Organization.owner_id).where(Organization.id == event.organization_id)
    )
    if org_result.scalar_one_or_none() == user_id:
        return True

    membership = await get_membership(db, user_id, event.organization_id)
    if membership is None or not membership.is_active:
        return False
    return membership.role in EVENT_ADMIN_ROLES


async def get_registration(db: AsyncSession, event_id: str, user_id: str) -> Optional[EventRegistration]:
    result = await db.execute(
        select(EventRegistration).where(
            EventRegistration.event_id == event_id,
            EventRegistration.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def is_active_participant(db: AsyncSession, event_id: str, user_id: str) -> bool:
    registration = await get_registration(db, event_id, user_id)
    return registration is not None and registration.is_active


async def ensure_participant(db: AsyncSession, event_id: str, user_id: str) -> EventRegistration:
    """Raise 403 unless the user holds an active registration for the event."""
    registration = await get_registration(db, event_id, user_id)
    if registration is None or not registration.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User must be registered for this event"
        )
    return registration


async def can_manage_submission(db: AsyncSession, submission: EventProjectSubmission, user_id: str) -> bool:
    """Team leader, original submitter, or event administrator."""
    if submission.project.leader_id == user_id:
        return True
    if submission.user_id == user_id:
        return True
    return await can_administer_event(db, submission.event, user_id)
