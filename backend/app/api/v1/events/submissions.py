"""
Event submission API endpoints.

Endpoints:
- GET /api/v1/events/{event_id}/submissions - List public submissions with rank and caller vote state
- POST /api/v1/events/{event_id}/submissions - Create submission
- GET /api/v1/events/{event_id}/participants/search - Team builder user search
- GET /api/v1/submissions/{id} - Get submission
- PATCH /api/v1/submissions/{id} - Update submission
- DELETE /api/v1/submissions/{id} - Delete submission
- PUT /api/v1/submissions/{id}/review - Review submission

Permissions:
- List/Get: anonymous allowed; private fields only for the leader, submitter or event administrators
- Create: active event participant
- Update/Delete: team leader, submitter or event administrator
- Review: event administrator
"""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.base import get_db
from app.core.deps import get_current_user, get_current_user_optional
from app.core.permissions import can_administer_event, can_manage_submission
from app.models.user import User
from app.models.submission import EventProjectSubmission
from app.schemas.submission import (
    SubmissionCreate, SubmissionUpdate, SubmissionReview,
    SubmissionResponse, SubmissionDetailResponse,
    SubmissionListData, SubmissionListResponse, PublicVotingConfig,
    ParticipantSummary, ParticipantSearchResponse,
)
from app.services.projection import rank_submissions, serialize_submission
from app.services.submissions import (
    get_event_or_404,
    get_submission_or_404,
    get_submissions_event_or_404,
    load_submission,
    load_public_submissions,
    create_submission as create_submission_record,
    update_submission as update_submission_record,
    delete_submission as delete_submission_record,
    review_submission as review_submission_record,
    parse_exclude_ids,
    search_participants,
)
from app.services.voting import (
    count_user_votes,
    get_user_voted_project_ids,
    get_voting_policy,
    load_vote_tallies,
)

router = APIRouter()
submission_router = APIRouter()


async def submission_to_response(
    db: AsyncSession,
    submission: EventProjectSubmission,
    user: Optional[User],
) -> SubmissionResponse:
    """Serialize a single submission for the caller."""
    can_manage = user is not None and await can_manage_submission(db, submission, user.id)
    is_admin = user is not None and await can_administer_event(db, submission.event, user.id)
    tallies = await load_vote_tallies(db, [submission])
    return serialize_submission(
        submission,
        tallies[submission.project_id],
        include_private_fields=can_manage,
        include_vote_adjustment=is_admin,
    )


async def reload_submission(db: AsyncSession, submission_id: str) -> EventProjectSubmission:
    submission = await load_submission(db, submission_id)
    if submission is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Submission not found"
        )
    return submission


# ============================================================================
# EVENT-SCOPED ENDPOINTS
# ============================================================================

@router.get("/{event_id}/submissions", response_model=SubmissionListResponse)
async def list_submissions(
    event_id: str,
    sort: Optional[str] = Query(None, description="voteCount, createdAt or name"),
    order: Optional[str] = Query(None, description="asc or desc"),
    include_private_fields: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user_optional)
):
    """List public submissions of an event."""
    event = await get_submissions_event_or_404(db, event_id)

    submissions = await load_public_submissions(db, event_id)
    tallies = await load_vote_tallies(db, submissions)
    ranked = rank_submissions(submissions, tallies, sort, order)

    is_admin = current_user is not None and await can_administer_event(db, event, current_user.id)

    items = []
    for submission, rank in ranked:
        private = False
        if include_private_fields and current_user is not None:
            private = (
                is_admin
                or submission.project.leader_id == current_user.id
                or submission.user_id == current_user.id
            )
        items.append(serialize_submission(
            submission,
            tallies[submission.project_id],
            rank=rank,
            include_private_fields=private,
            include_vote_adjustment=is_admin,
        ))

    policy = get_voting_policy(event)
    user_votes = []
    remaining_votes = None
    if current_user is not None:
        voted = set(await get_user_voted_project_ids(db, event_id, current_user.id))
        user_votes = [s.id for s, _ in ranked if s.project_id in voted]
        remaining_votes = policy.remaining(await count_user_votes(db, event_id, current_user.id))

    return SubmissionListResponse(
        data=SubmissionListData(
            submissions=items,
            total=len(items),
            user_votes=user_votes,
            remaining_votes=remaining_votes,
            public_voting=PublicVotingConfig(
                allow_public_voting=policy.allow_public_voting,
                vote_quota=policy.quota,
            ),
        )
    )


@router.post(
    "/{event_id}/submissions",
    response_model=SubmissionDetailResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_submission(
    event_id: str,
    submission_data: SubmissionCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Submit a project to an event."""
    event = await get_event_or_404(db, event_id)
    submission = await create_submission_record(db, event, submission_data, current_user.id)

    submission = await reload_submission(db, submission.id)
    return SubmissionDetailResponse(
        data=await submission_to_response(db, submission, current_user),
        message="Submission created",
    )


@router.get("/{event_id}/participants/search", response_model=ParticipantSearchResponse)
async def search_event_participants(
    event_id: str,
    q: str = Query("", max_length=100),
    scope: str = Query("event", description="event or global"),
    exclude_ids: Optional[str] = Query(None, description="Comma-separated user ids"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Find users to add to a team."""
    await get_event_or_404(db, event_id)
    matches = await search_participants(db, event_id, q, scope, parse_exclude_ids(exclude_ids))
    return ParticipantSearchResponse(
        users=[
            ParticipantSummary(
                id=user.id,
                name=user.name,
                image=user.image,
                username=user.username,
                bio=user.bio,
                is_participant=is_participant,
            )
            for user, is_participant in matches
        ]
    )


# ============================================================================
# SUBMISSION-SCOPED ENDPOINTS
# ============================================================================

@submission_router.get("/{submission_id}", response_model=SubmissionDetailResponse)
async def get_submission(
    submission_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user_optional)
):
    """Get a submission."""
    submission = await get_submission_or_404(
        db, submission_id, current_user.id if current_user else None
    )
    return SubmissionDetailResponse(data=await submission_to_response(db, submission, current_user))


@submission_router.patch("/{submission_id}", response_model=SubmissionDetailResponse)
async def update_submission(
    submission_id: str,
    submission_data: SubmissionUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Update a submission. Omitted fields keep their values."""
    submission = await get_submission_or_404(db, submission_id, current_user.id, require_visible=False)
    await update_submission_record(db, submission, submission_data, current_user.id)

    submission = await reload_submission(db, submission_id)
    return SubmissionDetailResponse(
        data=await submission_to_response(db, submission, current_user),
        message="Submission updated",
    )


@submission_router.delete("/{submission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_submission(
    submission_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Delete a submission and its project."""
    submission = await get_submission_or_404(db, submission_id, current_user.id, require_visible=False)
    await delete_submission_record(db, submission, current_user.id)
    return None


@submission_router.put("/{submission_id}/review", response_model=SubmissionDetailResponse)
async def review_submission(
    submission_id: str,
    review_data: SubmissionReview,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Set the review status, note and score of a submission."""
    submission = await get_submission_or_404(db, submission_id, current_user.id, require_visible=False)
    if not await can_administer_event(db, submission.event, current_user.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only event administrators can review submissions"
        )

    await review_submission_record(db, submission, review_data, current_user.id)

    submission = await reload_submission(db, submission_id)
    return SubmissionDetailResponse(
        data=await submission_to_response(db, submission, current_user),
        message="Submission reviewed",
    )
