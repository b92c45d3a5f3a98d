"""
Vote ledger for event submissions.

Each participant has a fixed number of votes per event (3 unless the event's
voting policy overrides it) and may give at most one of them to any project.
Voting for one's own project, as leader or team member, is never allowed.
Once the event has ended the tallies are frozen: votes can neither be cast
nor revoked.

Business-rule rejections are returned as `VoteOutcome` values carrying a
stable error code instead of being raised, so clients can branch on them.

Concurrency: the (project_id, user_id, event_id) unique constraint is the
only guard against duplicate ballots, and the quota is re-checked after the
insert inside the same savepoint. No application-level locking is used.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.permissions import is_active_participant
from app.models.base import as_utc, utc_now
from app.models.event import Event
from app.models.event_registration import EventRegistration, ACTIVE_REGISTRATION_STATUSES
from app.models.project import Project, ProjectMemberRole
from app.models.submission import EventProjectSubmission
from app.models.vote import ProjectVote
from app.schemas.voting import TopSubmission, VotingStats
from app.services.projection import sort_submissions

logger = logging.getLogger(__name__)


class VoteErrorCode(str, enum.Enum):
    """Stable error codes returned by cast/revoke."""
    OWN_PROJECT = "OWN_PROJECT"
    NOT_ELIGIBLE = "NOT_ELIGIBLE"
    VOTING_CLOSED = "VOTING_CLOSED"
    PUBLIC_VOTING_DISABLED = "PUBLIC_VOTING_DISABLED"
    VOTING_ENDED = "VOTING_ENDED"
    ALREADY_VOTED = "ALREADY_VOTED"
    NO_VOTES_LEFT = "NO_VOTES_LEFT"
    NOT_VOTED = "NOT_VOTED"


VOTE_ERROR_STATUS = {
    VoteErrorCode.OWN_PROJECT: 400,
    VoteErrorCode.NOT_ELIGIBLE: 403,
    VoteErrorCode.VOTING_CLOSED: 403,
    VoteErrorCode.PUBLIC_VOTING_DISABLED: 403,
    VoteErrorCode.VOTING_ENDED: 400,
    VoteErrorCode.ALREADY_VOTED: 400,
    VoteErrorCode.NO_VOTES_LEFT: 400,
    VoteErrorCode.NOT_VOTED: 400,
}

VOTE_ERROR_MESSAGES = {
    VoteErrorCode.OWN_PROJECT: "You cannot vote for your own submission",
    VoteErrorCode.NOT_ELIGIBLE: "You need to register for this event to vote",
    VoteErrorCode.VOTING_CLOSED: "Voting is closed for this event",
    VoteErrorCode.PUBLIC_VOTING_DISABLED: "Public voting is disabled for this event",
    VoteErrorCode.VOTING_ENDED: "Voting has ended for this event",
    VoteErrorCode.ALREADY_VOTED: "You have already voted for this submission",
    VoteErrorCode.NO_VOTES_LEFT: "You have used all available votes",
    VoteErrorCode.NOT_VOTED: "You have not voted for this submission",
}


@dataclass
class VoteOutcome:
    """Result of a cast or revoke."""
    success: bool
    vote_count: Optional[int] = None
    remaining_votes: Optional[int] = None
    error: Optional[VoteErrorCode] = None
    message: Optional[str] = None
    status_code: int = 200

    @classmethod
    def failure(cls, code: VoteErrorCode, message: Optional[str] = None) -> "VoteOutcome":
        return cls(
            success=False,
            error=code,
            message=message or VOTE_ERROR_MESSAGES[code],
            status_code=VOTE_ERROR_STATUS[code],
        )


@dataclass
class VotingPolicy:
    """Public voting settings of an event."""
    allow_public_voting: bool
    quota: int

    def remaining(self, used: int) -> int:
        return max(0, self.quota - used)

    def can_cast(self, used: int) -> bool:
        return used < self.quota


@dataclass
class VoteTally:
    """Raw ledger count of a project plus its manual adjustment."""
    base_vote_count: int
    manual_vote_adjustment: Optional[int] = None

    @property
    def vote_count(self) -> int:
        return displayed_vote_count(self.base_vote_count, self.manual_vote_adjustment)


class _QuotaRaceLost(Exception):
    """A concurrent cast consumed the last vote between check and insert."""


def displayed_vote_count(base_vote_count: int, manual_vote_adjustment: Optional[int]) -> int:
    return max(0, round(base_vote_count + (manual_vote_adjustment or 0)))


def get_voting_policy(event: Event) -> VotingPolicy:
    """
    Read the policy from `hackathon_config["voting"]`.

    Recognised keys: `allowPublicVoting` (default true) and `voteQuota`
    (default MAX_VOTES_PER_USER).
    """
    config = event.hackathon_config if isinstance(event.hackathon_config, dict) else {}
    voting = config.get("voting") if isinstance(config.get("voting"), dict) else {}

    allow = voting.get("allowPublicVoting")
    quota = voting.get("voteQuota")
    if not isinstance(quota, int) or isinstance(quota, bool) or quota < 0:
        quota = settings.MAX_VOTES_PER_USER

    return VotingPolicy(
        allow_public_voting=allow if isinstance(allow, bool) else True,
        quota=quota,
    )


def is_voting_ended(event: Event) -> bool:
    end_time = as_utc(event.end_time)
    return end_time is not None and utc_now() > end_time


def get_team_member_ids(project: Project) -> list[str]:
    """Non-leader members of a project. Requires `project.members` loaded."""
    return [
        member.user_id
        for member in project.members
        if member.user_id != project.leader_id and member.role == ProjectMemberRole.MEMBER
    ]


async def count_user_votes(db: AsyncSession, event_id: str, user_id: str) -> int:
    result = await db.execute(
        select(func.count()).select_from(ProjectVote).where(
            ProjectVote.event_id == event_id,
            ProjectVote.user_id == user_id,
        )
    )
    return result.scalar() or 0


async def count_project_votes(db: AsyncSession, project_id: str) -> int:
    result = await db.execute(
        select(func.count()).select_from(ProjectVote).where(ProjectVote.project_id == project_id)
    )
    return result.scalar() or 0


async def get_user_voted_project_ids(db: AsyncSession, event_id: str, user_id: str) -> list[str]:
    result = await db.execute(
        select(ProjectVote.project_id).where(
            ProjectVote.event_id == event_id,
            ProjectVote.user_id == user_id,
        )
    )
    return list(result.scalars().all())


async def load_vote_tallies(
    db: AsyncSession,
    submissions: Sequence[EventProjectSubmission],
) -> dict[str, VoteTally]:
    """Tallies keyed by project id, recomputed from the ledger."""
    project_ids = [s.project_id for s in submissions]
    counts: dict[str, int] = {}
    if project_ids:
        result = await db.execute(
            select(ProjectVote.project_id, func.count())
            .where(ProjectVote.project_id.in_(project_ids))
            .group_by(ProjectVote.project_id)
        )
        counts = {project_id: count for project_id, count in result.all()}

    return {
        s.project_id: VoteTally(
            base_vote_count=counts.get(s.project_id, 0),
            manual_vote_adjustment=s.project.manual_vote_adjustment,
        )
        for s in submissions
    }


async def _find_vote(db: AsyncSession, submission: EventProjectSubmission, user_id: str) -> Optional[ProjectVote]:
    result = await db.execute(
        select(ProjectVote).where(
            ProjectVote.project_id == submission.project_id,
            ProjectVote.user_id == user_id,
            ProjectVote.event_id == submission.event_id,
        )
    )
    return result.scalar_one_or_none()


async def validate_voting_eligibility(
    db: AsyncSession,
    submission: EventProjectSubmission,
    user_id: str,
) -> Optional[VoteOutcome]:
    """Return a failure outcome when the user may not vote on this submission now."""
    project = submission.project
    if project.leader_id == user_id:
        return VoteOutcome.failure(VoteErrorCode.OWN_PROJECT)

    if user_id in get_team_member_ids(project):
        return VoteOutcome.failure(
            VoteErrorCode.OWN_PROJECT,
            "You cannot vote for your own team's submission",
        )

    if not await is_active_participant(db, submission.event_id, user_id):
        return VoteOutcome.failure(VoteErrorCode.NOT_ELIGIBLE)

    event = submission.event
    if not event.voting_open:
        return VoteOutcome.failure(VoteErrorCode.VOTING_CLOSED)

    if not get_voting_policy(event).allow_public_voting:
        return VoteOutcome.failure(VoteErrorCode.PUBLIC_VOTING_DISABLED)

    if is_voting_ended(event):
        return VoteOutcome.failure(VoteErrorCode.VOTING_ENDED)

    return None


async def cast_vote(db: AsyncSession, submission: EventProjectSubmission, user_id: str) -> VoteOutcome:
    """Record a vote from `user_id` for the submission's project."""
    error = await validate_voting_eligibility(db, submission, user_id)
    if error:
        return error

    if await _find_vote(db, submission, user_id) is not None:
        return VoteOutcome.failure(VoteErrorCode.ALREADY_VOTED)

    policy = get_voting_policy(submission.event)
    used = await count_user_votes(db, submission.event_id, user_id)
    if not policy.can_cast(used):
        return VoteOutcome.failure(VoteErrorCode.NO_VOTES_LEFT)

    try:
        async with db.begin_nested():
            db.add(ProjectVote(
                project_id=submission.project_id,
                user_id=user_id,
                event_id=submission.event_id,
            ))
            await db.flush()
            used = await count_user_votes(db, submission.event_id, user_id)
            if used > policy.quota:
                raise _QuotaRaceLost()
    except IntegrityError:
        logger.warning(f"Duplicate vote rejected by constraint: project={submission.project_id}, user={user_id}")
        return VoteOutcome.failure(VoteErrorCode.ALREADY_VOTED)
    except _QuotaRaceLost:
        logger.warning(f"Vote quota race lost: event={submission.event_id}, user={user_id}")
        return VoteOutcome.failure(VoteErrorCode.NO_VOTES_LEFT)

    base = await count_project_votes(db, submission.project_id)
    logger.info(f"Vote cast: submission={submission.id}, user={user_id}, used={used}/{policy.quota}")
    return VoteOutcome(
        success=True,
        vote_count=displayed_vote_count(base, submission.project.manual_vote_adjustment),
        remaining_votes=policy.remaining(used),
    )


async def revoke_vote(db: AsyncSession, submission: EventProjectSubmission, user_id: str) -> VoteOutcome:
    """Withdraw the user's vote for the submission's project."""
    vote = await _find_vote(db, submission, user_id)
    if vote is None:
        return VoteOutcome.failure(VoteErrorCode.NOT_VOTED)

    error = await validate_voting_eligibility(db, submission, user_id)
    if error:
        return error

    await db.delete(vote)
    await db.flush()

    policy = get_voting_policy(submission.event)
    base = await count_project_votes(db, submission.project_id)
    used = await count_user_votes(db, submission.event_id, user_id)
    logger.info(f"Vote revoked: submission={submission.id}, user={user_id}, used={used}/{policy.quota}")
    return VoteOutcome(
        success=True,
        vote_count=displayed_vote_count(base, submission.project.manual_vote_adjustment),
        remaining_votes=policy.remaining(used),
    )


async def set_manual_vote_count(db: AsyncSession, submission: EventProjectSubmission, vote_count: int) -> Optional[int]:
    """
    Make the displayed total equal `vote_count` without touching the ledger.

    Stores the difference to the raw count; clears it when there is none.
    """
    base = await count_project_votes(db, submission.project_id)
    adjustment = max(0, vote_count) - base
    submission.project.manual_vote_adjustment = adjustment or None
    await db.flush()
    logger.info(
        f"Manual vote adjustment set: submission={submission.id}, target={vote_count}, "
        f"base={base}, adjustment={adjustment}"
    )
    return submission.project.manual_vote_adjustment


async def get_voting_stats(db: AsyncSession, event_id: str, top: int = 10) -> VotingStats:
    """Totals and leaderboard for an event."""
    from app.services.submissions import load_public_submissions

    total_votes = (await db.execute(
        select(func.count()).select_from(ProjectVote).where(ProjectVote.event_id == event_id)
    )).scalar() or 0
    total_participants = (await db.execute(
        select(func.count()).select_from(EventRegistration).where(
            EventRegistration.event_id == event_id,
            EventRegistration.status.in_(ACTIVE_REGISTRATION_STATUSES),
        )
    )).scalar() or 0
    voted_participants = (await db.execute(
        select(func.count(func.distinct(ProjectVote.user_id))).where(ProjectVote.event_id == event_id)
    )).scalar() or 0

    submissions = await load_public_submissions(db, event_id, require_registered_submitter=False)
    tallies = await load_vote_tallies(db, submissions)
    ranked = sort_submissions(submissions, tallies, "votecount", "desc")[:top]

    return VotingStats(
        total_votes=total_votes,
        total_participants=total_participants,
        voted_participants=voted_participants,
        top_submissions=[
            TopSubmission(
                id=s.id,
                project_id=s.project_id,
                name=s.project.title,
                vote_count=tallies[s.project_id].vote_count,
                rank=index + 1,
            )
            for index, s in enumerate(ranked)
        ],
    )
