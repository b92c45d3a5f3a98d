"""
Submission voting API endpoints.

Endpoints:
- GET /api/v1/events/{event_id}/votes/stats - Voting statistics and leaderboard
- POST /api/v1/submissions/{id}/vote - Cast vote
- DELETE /api/v1/submissions/{id}/vote - Revoke vote
- PATCH /api/v1/submissions/{id}/vote-adjustment - Override displayed vote total

Rejected votes answer with {"success": false, "error": <code>, "message": ...}
and the status code mapped to the error.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.base import get_db
from app.core.deps import get_current_user
from app.core.permissions import can_administer_event
from app.api.v1.events.submissions import reload_submission, submission_to_response
from app.models.user import User
from app.schemas.submission import SubmissionDetailResponse, VoteAdjustmentRequest
from app.schemas.voting import VoteResponse, VoteErrorResponse, VotingStatsResponse
from app.services.submissions import get_submission_or_404, get_submissions_event_or_404
from app.services.voting import (
    VoteOutcome,
    cast_vote as cast_vote_record,
    revoke_vote as revoke_vote_record,
    set_manual_vote_count,
    get_voting_stats,
)

router = APIRouter()
submission_router = APIRouter()


def outcome_to_response(outcome: VoteOutcome):
    if not outcome.success:
        return JSONResponse(
            status_code=outcome.status_code,
            content=VoteErrorResponse(error=outcome.error.value, message=outcome.message).model_dump(),
        )
    return VoteResponse(vote_count=outcome.vote_count, remaining_votes=outcome.remaining_votes)


@router.get("/{event_id}/votes/stats", response_model=VotingStatsResponse)
async def voting_stats(
    event_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Vote totals, participation and the top 10 submissions."""
    await get_submissions_event_or_404(db, event_id)
    return VotingStatsResponse(data=await get_voting_stats(db, event_id))


@submission_router.post(
    "/{submission_id}/vote",
    response_model=VoteResponse,
    responses={400: {"model": VoteErrorResponse}, 403: {"model": VoteErrorResponse}}
)
async def cast_vote(
    submission_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Vote for a submission."""
    submission = await get_submission_or_404(db, submission_id, current_user.id)
    return outcome_to_response(await cast_vote_record(db, submission, current_user.id))


@submission_router.delete(
    "/{submission_id}/vote",
    response_model=VoteResponse,
    responses={400: {"model": VoteErrorResponse}, 403: {"model": VoteErrorResponse}}
)
async def revoke_vote(
    submission_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Withdraw a vote."""
    submission = await get_submission_or_404(db, submission_id, current_user.id)
    return outcome_to_response(await revoke_vote_record(db, submission, current_user.id))


@submission_router.patch("/{submission_id}/vote-adjustment", response_model=SubmissionDetailResponse)
async def adjust_vote_count(
    submission_id: str,
    adjustment: VoteAdjustmentRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Set the displayed vote total of a submission. The vote ledger is untouched."""
    submission = await get_submission_or_404(db, submission_id, current_user.id, require_visible=False)
    if not await can_administer_event(db, submission.event, current_user.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only event administrators can adjust votes"
        )

    await set_manual_vote_count(db, submission, adjustment.vote_count)

    submission = await reload_submission(db, submission_id)
    return SubmissionDetailResponse(
        data=await submission_to_response(db, submission, current_user),
        message="Vote count updated",
    )
