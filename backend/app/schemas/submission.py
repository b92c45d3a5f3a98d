"""
Pydantic schemas for event submission endpoints.
"""
from typing import Any, Literal, Optional
from datetime import datetime
from pydantic import AnyHttpUrl, BaseModel, Field, TypeAdapter, field_validator

from app.core.config import settings

_http_url = TypeAdapter(AnyHttpUrl)


def _strip_to_none(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _validate_url(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    _http_url.validate_python(value)
    return value


# ============================================================================
# Requests
# ============================================================================

class AttachmentInput(BaseModel):
    """An already-uploaded file to attach to a project."""
    id: Optional[str] = None
    file_name: str = Field(..., min_length=1, max_length=255)
    file_url: str = Field(..., min_length=1, max_length=2048)
    file_type: str = Field(..., min_length=1, max_length=50)
    mime_type: Optional[str] = Field(None, min_length=1, max_length=255)
    file_size: int = Field(..., ge=0)
    order: Optional[int] = Field(None, ge=0)

    @field_validator("file_url")
    @classmethod
    def check_file_url(cls, value: str) -> str:
        return _validate_url(value)

    @field_validator("file_size")
    @classmethod
    def check_file_size(cls, value: int) -> int:
        if value > settings.MAX_FILE_SIZE:
            raise ValueError(f"File exceeds the maximum size of {settings.MAX_FILE_SIZE} bytes")
        return value


class SubmissionBase(BaseModel):
    """Fields shared by create and update. Empty strings are treated as absent."""
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    tagline: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=5000)
    demo_url: Optional[str] = Field(None, max_length=2048)
    team_leader_id: Optional[str] = None
    team_member_ids: Optional[list[str]] = None
    attachments: Optional[list[AttachmentInput]] = None
    community_use_authorization: Optional[bool] = None
    custom_fields: Optional[dict[str, Any]] = None

    @field_validator("tagline", "description", "demo_url", "team_leader_id", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        return _strip_to_none(value)

    @field_validator("demo_url")
    @classmethod
    def check_demo_url(cls, value: Optional[str]) -> Optional[str]:
        return _validate_url(value)

    @field_validator("team_member_ids")
    @classmethod
    def check_team_member_ids(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        if value is None:
            return value
        if len(value) > settings.MAX_TEAM_MEMBERS:
            raise ValueError(f"A team can have at most {settings.MAX_TEAM_MEMBERS} members")
        if len(set(value)) != len(value):
            raise ValueError("Duplicate team member ids are not allowed")
        return value


class SubmissionCreate(SubmissionBase):
    """Create a submission together with its project."""
    name: str = Field(..., min_length=1, max_length=50)
    community_use_authorization: bool


class SubmissionUpdate(SubmissionBase):
    """Update a submission. Only fields present in the request are applied."""
    pass


class SubmissionReview(BaseModel):
    """Review decision by an event administrator."""
    status: Literal["UNDER_REVIEW", "APPROVED", "REJECTED"]
    review_note: Optional[str] = Field(None, max_length=5000)
    judge_score: Optional[float] = Field(None, ge=0, le=100)


class VoteAdjustmentRequest(BaseModel):
    """Target displayed vote total for a submission."""
    vote_count: int = Field(..., ge=0, le=1_000_000)


# ============================================================================
# Responses
# ============================================================================

class ContactFields(BaseModel):
    """Private profile fields; left empty unless the caller may see them."""
    email: Optional[str] = None
    phone_number: Optional[str] = None
    wechat_id: Optional[str] = None
    region: Optional[str] = None
    user_role_string: Optional[str] = None
    current_work_on: Optional[str] = None


class TeamMemberResponse(ContactFields):
    id: str
    name: Optional[str] = None
    avatar: Optional[str] = None
    username: Optional[str] = None
    bio: Optional[str] = None
    role: str


class SubmitterResponse(ContactFields):
    id: str
    name: Optional[str] = None
    image: Optional[str] = None
    username: Optional[str] = None


class AttachmentResponse(BaseModel):
    id: str
    file_name: str
    file_url: Optional[str] = None
    file_type: str
    mime_type: Optional[str] = None
    file_size: int
    order: int


class CustomFieldAnswer(BaseModel):
    key: str
    label: str
    type: str
    required: bool
    enabled: bool
    public_visible: bool
    order: float
    description: Optional[str] = None
    placeholder: Optional[str] = None
    options: Optional[list[str]] = None
    value: Any = None


class EventSummary(BaseModel):
    id: str
    title: str
    start_time: datetime
    end_time: Optional[datetime] = None


class SubmissionResponse(BaseModel):
    """Projected submission."""
    id: str
    project_id: str
    event_id: str
    name: str
    tagline: Optional[str] = None
    description: Optional[str] = None
    demo_url: Optional[str] = None
    community_use_authorization: bool
    status: str
    submission_type: str
    custom_field_answers: list[CustomFieldAnswer] = []
    custom_fields: Optional[dict[str, Any]] = None
    vote_count: int
    # Administrators only
    base_vote_count: Optional[int] = None
    manual_vote_adjustment: Optional[int] = None
    rank: Optional[int] = None
    submitted_at: datetime
    updated: datetime
    cover_image: Optional[str] = None
    attachments: list[AttachmentResponse] = []
    team_leader: Optional[TeamMemberResponse] = None
    team_members: list[TeamMemberResponse] = []
    team_size: int
    submitter: SubmitterResponse
    event: EventSummary
    # Managers only
    review_note: Optional[str] = None
    judge_score: Optional[float] = None
    reviewed_at: Optional[datetime] = None


class SubmissionDetailResponse(BaseModel):
    success: bool = True
    data: SubmissionResponse
    message: Optional[str] = None


class PublicVotingConfig(BaseModel):
    allow_public_voting: bool
    vote_quota: Optional[int] = None


class SubmissionListData(BaseModel):
    submissions: list[SubmissionResponse]
    total: int
    user_votes: list[str] = []
    remaining_votes: Optional[int] = None
    public_voting: PublicVotingConfig


class SubmissionListResponse(BaseModel):
    success: bool = True
    data: SubmissionListData


class ParticipantSummary(BaseModel):
    id: str
    name: Optional[str] = None
    image: Optional[str] = None
    username: Optional[str] = None
    bio: Optional[str] = None
    is_participant: bool


class ParticipantSearchResponse(BaseModel):
    success: bool = True
    users: list[ParticipantSummary]
