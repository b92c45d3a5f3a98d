"""
Event registration model.
"""
from typing import TYPE_CHECKING
from datetime import datetime
from sqlalchemy import String, ForeignKey, DateTime, Enum as SQLEnum, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum
from app.models.base import BaseModel, utc_now

if TYPE_CHECKING:
    from app.models.event import Event
    from app.models.user import User


class RegistrationStatus(str, enum.Enum):
    """Registration status."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    WAITLISTED = "WAITLISTED"
    CHECKED_IN = "CHECKED_IN"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


# Registrations that make a user an active participant
ACTIVE_REGISTRATION_STATUSES = (
    RegistrationStatus.PENDING,
    RegistrationStatus.APPROVED,
    RegistrationStatus.WAITLISTED,
    RegistrationStatus.CHECKED_IN,
)


class EventRegistration(BaseModel):
    """A user's registration for an event."""
    __tablename__ = "event_registrations"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_registrations_event_user"),
    )

    event_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    status: Mapped[RegistrationStatus] = mapped_column(
        SQLEnum(RegistrationStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=RegistrationStatus.PENDING,
        index=True
    )
    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False
    )

    # Relationships
    event: Mapped["Event"] = relationship("Event", back_populates="registrations")
    user: Mapped["User"] = relationship("User", back_populates="event_registrations")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_REGISTRATION_STATUSES

    def __repr__(self) -> str:
        return f"<EventRegistration {self.user_id} for {self.event_id} ({self.status.value})>"
