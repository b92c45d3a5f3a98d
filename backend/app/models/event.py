"""
Event model.

Only the parts of an event that the submission and voting engine reads are
mapped here: scheduling, ownership, and the submission/voting switches.
"""
from typing import Optional, TYPE_CHECKING
from datetime import datetime
from sqlalchemy import String, Boolean, ForeignKey, DateTime, Enum as SQLEnum, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum
from app.models.base import BaseModel

if TYPE_CHECKING:
    from app.models.user import User
    from app.models.organization import Organization
    from app.models.event_registration import EventRegistration
    from app.models.submission import EventProjectSubmission


class EventType(str, enum.Enum):
    """Kind of community event."""
    MEETUP = "MEETUP"
    HACKATHON = "HACKATHON"
    DEMO_DAY = "DEMO_DAY"
    WORKSHOP = "WORKSHOP"
    OTHER = "OTHER"


class Event(BaseModel):
    """Community event that may accept project submissions."""
    __tablename__ = "events"

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[EventType] = mapped_column(
        SQLEnum(EventType, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=EventType.MEETUP
    )

    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    organizer_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    organization_id: Mapped[Optional[str]] = mapped_column(
        String(15),
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Submission switches. submissions_enabled=None falls back to the event type.
    require_project_submission: Mapped[bool] = mapped_column(Boolean, default=False)
    submissions_enabled: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    submissions_open: Mapped[bool] = mapped_column(Boolean, default=True)
    project_submission_deadline: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    submission_form_config: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Voting switches. The public voting policy lives in hackathon_config["voting"].
    voting_open: Mapped[bool] = mapped_column(Boolean, default=True)
    hackathon_config: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Relationships
    organizer: Mapped["User"] = relationship("User", foreign_keys=[organizer_id])
    organization: Mapped[Optional["Organization"]] = relationship(
        "Organization",
        back_populates="events"
    )
    registrations: Mapped[list["EventRegistration"]] = relationship(
        "EventRegistration",
        back_populates="event",
        cascade="all, delete-orphan"
    )
    submissions: Mapped[list["EventProjectSubmission"]] = relationship(
        "EventProjectSubmission",
        back_populates="event",
        passive_deletes=True
    )

    @property
    def submissions_feature_enabled(self) -> bool:
        """Whether the event takes project submissions at all."""
        if self.submissions_enabled is not None:
            return self.submissions_enabled
        return self.type == EventType.HACKATHON or bool(self.require_project_submission)

    def __repr__(self) -> str:
        return f"<Event {self.title}>"
