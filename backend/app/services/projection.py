"""
Ranking and visibility projection of event submissions.

Turns loaded submissions into `SubmissionResponse` objects: live project
data, displayed vote totals, rank and the redacted or private view of the
team and custom field answers.
"""
from typing import Any, Optional, Sequence, TYPE_CHECKING

from app.models.base import as_utc
from app.models.submission import EventProjectSubmission
from app.models.user import User
from app.schemas.submission import (
    AttachmentResponse,
    CustomFieldAnswer,
    EventSummary,
    SubmissionResponse,
    SubmitterResponse,
    TeamMemberResponse,
)
from app.services.attachments import resolve_public_url
from app.services.submission_form import normalize_submission_form_config

if TYPE_CHECKING:
    from app.services.voting import VoteTally

SORT_FIELDS = ("votecount", "createdat", "name")
DEFAULT_SORT = "votecount"
DEFAULT_ORDER = "desc"


def normalize_sort(sort: Optional[str], order: Optional[str]) -> tuple[str, str]:
    """Case-insensitive sort key and direction, falling back to vote count, desc."""
    sort_key = (sort or "").strip().lower()
    direction = (order or "").strip().lower()
    return (
        sort_key if sort_key in SORT_FIELDS else DEFAULT_SORT,
        direction if direction in ("asc", "desc") else DEFAULT_ORDER,
    )


def sort_submissions(
    submissions: Sequence[EventProjectSubmission],
    tallies: dict[str, "VoteTally"],
    sort: str = DEFAULT_SORT,
    order: str = DEFAULT_ORDER,
) -> list[EventProjectSubmission]:
    """Stable sort; ties keep the input order."""
    sort, order = normalize_sort(sort, order)
    if sort == "name":
        key = lambda s: (s.project.title or "").casefold()
    elif sort == "createdat":
        key = lambda s: as_utc(s.submitted_at)
    else:
        key = lambda s: tallies[s.project_id].vote_count

    return sorted(submissions, key=key, reverse=order == "desc")


def rank_submissions(
    submissions: Sequence[EventProjectSubmission],
    tallies: dict[str, "VoteTally"],
    sort: Optional[str] = None,
    order: Optional[str] = None,
) -> list[tuple[EventProjectSubmission, Optional[int]]]:
    """
    Sort and attach ranks.

    Only vote count sorts are ranked: rank is the 1-based position in the
    requested order, so ascending ranks count from the least voted.
    """
    sort, order = normalize_sort(sort, order)
    ordered = sort_submissions(submissions, tallies, sort, order)
    if sort != "votecount":
        return [(s, None) for s in ordered]
    return [(s, index + 1) for index, s in enumerate(ordered)]


def _contact_fields(user: User, include_private_fields: bool) -> dict[str, Any]:
    if not include_private_fields:
        return {}
    return {
        "email": user.email,
        "phone_number": user.phone_number,
        "wechat_id": user.wechat_id,
        "region": user.region,
        "user_role_string": user.user_role_string,
        "current_work_on": user.current_work_on,
    }


def _team_member(user: User, role: str, include_private_fields: bool) -> TeamMemberResponse:
    return TeamMemberResponse(
        id=user.id,
        name=user.name,
        avatar=user.image,
        username=user.username,
        bio=user.bio,
        role=role,
        **_contact_fields(user, include_private_fields),
    )


def _custom_fields(
    submission: EventProjectSubmission,
    include_private_fields: bool,
) -> tuple[list[CustomFieldAnswer], Optional[dict[str, Any]]]:
    raw = submission.project.custom_fields
    raw = raw if isinstance(raw, dict) else None
    config = normalize_submission_form_config(submission.event.submission_form_config)
    fields = config.visible_fields(include_private_fields) if config else []

    answers = []
    if raw is not None:
        for f in fields:
            value = raw.get(f.key)
            if value is None:
                continue
            answers.append(CustomFieldAnswer(
                key=f.key,
                label=f.label,
                type=f.type,
                required=f.required,
                enabled=f.enabled,
                public_visible=f.public_visible,
                order=f.order,
                description=f.description,
                placeholder=f.placeholder,
                options=f.options,
                value=value,
            ))

    if include_private_fields and raw is not None:
        disabled = config.disabled_keys() if config else set()
        return answers, {key: value for key, value in raw.items() if key not in disabled}
    if answers:
        return answers, {answer.key: answer.value for answer in answers}
    return answers, None


def serialize_submission(
    submission: EventProjectSubmission,
    tally: "VoteTally",
    rank: Optional[int] = None,
    include_private_fields: bool = False,
    include_vote_adjustment: bool = False,
) -> SubmissionResponse:
    """
    Project a submission for one caller.

    Requires project (leader, members with users, attachments), user and
    event loaded. `include_private_fields` must only be set for the leader,
    submitter or an event administrator.
    """
    project = submission.project
    leader = project.leader

    # One entry per user, the leader never repeated as a member
    members = {}
    for member in project.members:
        if member.user_id != project.leader_id:
            members.setdefault(member.user_id, member)

    attachments = [
        AttachmentResponse(
            id=attachment.id,
            file_name=attachment.file_name,
            file_url=resolve_public_url(attachment.file_url),
            file_type=attachment.file_type,
            mime_type=attachment.mime_type,
            file_size=attachment.file_size,
            order=attachment.order,
        )
        for attachment in project.attachments
    ]
    cover_image = next((a.file_url for a in attachments if a.file_type == "image" and a.file_url), None)

    answers, custom_fields = _custom_fields(submission, include_private_fields)
    event = submission.event

    return SubmissionResponse(
        id=submission.id,
        project_id=submission.project_id,
        event_id=submission.event_id,
        name=project.title,
        tagline=project.tagline,
        description=project.description,
        demo_url=project.demo_url,
        community_use_authorization=project.community_use_auth,
        status=submission.status.value,
        submission_type=submission.submission_type.value,
        custom_field_answers=answers,
        custom_fields=custom_fields,
        vote_count=tally.vote_count,
        base_vote_count=tally.base_vote_count if include_vote_adjustment else None,
        manual_vote_adjustment=tally.manual_vote_adjustment if include_vote_adjustment else None,
        rank=rank,
        submitted_at=submission.submitted_at,
        updated=submission.updated,
        cover_image=cover_image,
        attachments=attachments,
        team_leader=_team_member(leader, "LEADER", include_private_fields) if leader else None,
        team_members=[
            _team_member(member.user, member.role.value, include_private_fields)
            for member in members.values()
        ],
        team_size=1 + len(members),
        submitter=SubmitterResponse(
            id=submission.user.id,
            name=submission.user.name,
            image=submission.user.image,
            username=submission.user.username,
            **_contact_fields(submission.user, include_private_fields),
        ),
        event=EventSummary(
            id=event.id,
            title=event.title,
            start_time=event.start_time,
            end_time=event.end_time,
        ),
        review_note=submission.review_note if include_private_fields else None,
        judge_score=submission.judge_score if include_private_fields else None,
        reviewed_at=submission.reviewed_at if include_private_fields else None,
    )
