"""
Event project submission model.

A submission binds one project to one event and carries the review workflow.
`project_snapshot` is captured once when the submission is created and is
never rewritten; every read path renders the live project instead.
"""
from typing import Optional, TYPE_CHECKING
from datetime import datetime
from sqlalchemy import String, Text, Float, ForeignKey, DateTime, JSON, Enum as SQLEnum, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum
from app.models.base import BaseModel, utc_now

if TYPE_CHECKING:
    from app.models.event import Event
    from app.models.project import Project
    from app.models.user import User


class SubmissionStatus(str, enum.Enum):
    """Submission review status."""
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    AWARDED = "AWARDED"


class SubmissionType(str, enum.Enum):
    """Submission kind, derived from the event type."""
    HACKATHON_PROJECT = "HACKATHON_PROJECT"
    DEMO_PROJECT = "DEMO_PROJECT"


# Statuses shown in public listings and statistics
PUBLIC_SUBMISSION_STATUSES = (
    SubmissionStatus.SUBMITTED,
    SubmissionStatus.UNDER_REVIEW,
    SubmissionStatus.APPROVED,
    SubmissionStatus.AWARDED,
)

# Review transitions (from -> allowed targets). AWARDED is set by the awards process.
VALID_STATUS_TRANSITIONS = {
    SubmissionStatus.SUBMITTED: [
        SubmissionStatus.UNDER_REVIEW,
        SubmissionStatus.APPROVED,
        SubmissionStatus.REJECTED,
    ],
    SubmissionStatus.UNDER_REVIEW: [
        SubmissionStatus.APPROVED,
        SubmissionStatus.REJECTED,
    ],
    SubmissionStatus.APPROVED: [
        SubmissionStatus.UNDER_REVIEW,
        SubmissionStatus.REJECTED,
        SubmissionStatus.AWARDED,
    ],
    SubmissionStatus.REJECTED: [
        SubmissionStatus.UNDER_REVIEW,
        SubmissionStatus.APPROVED,
    ],
    SubmissionStatus.AWARDED: [],
}


class EventProjectSubmission(BaseModel):
    """Event-scoped envelope around a project."""
    __tablename__ = "event_project_submissions"
    __table_args__ = (
        UniqueConstraint("event_id", "project_id", name="uq_event_project_submissions_event_project"),
    )

    event_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    project_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        unique=True
    )
    # Submitting user, not necessarily the team leader
    user_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    submission_type: Mapped[SubmissionType] = mapped_column(
        SQLEnum(SubmissionType, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=SubmissionType.DEMO_PROJECT
    )

    # Mirrors of the project at the last write
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    demo_url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)

    project_snapshot: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    status: Mapped[SubmissionStatus] = mapped_column(
        SQLEnum(SubmissionStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=SubmissionStatus.SUBMITTED,
        index=True
    )

    # Review
    review_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    judge_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    reviewed_by: Mapped[Optional[str]] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False
    )

    # Relationships
    event: Mapped["Event"] = relationship("Event", back_populates="submissions")
    project: Mapped["Project"] = relationship("Project", back_populates="submission")
    user: Mapped["User"] = relationship("User", foreign_keys=[user_id])
    reviewer: Mapped[Optional["User"]] = relationship("User", foreign_keys=[reviewed_by])

    def __repr__(self) -> str:
        return f"<EventProjectSubmission {self.title} ({self.status.value})>"
