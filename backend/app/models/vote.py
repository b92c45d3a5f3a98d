"""
Project vote model.
"""
from typing import TYPE_CHECKING
from sqlalchemy import String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.models.base import BaseModel

if TYPE_CHECKING:
    from app.models.project import Project
    from app.models.user import User
    from app.models.event import Event


class ProjectVote(BaseModel):
    """
    One user's vote for one project within one event.

    The unique constraint is what serializes concurrent casts of the same
    ballot; the application never locks.
    """
    __tablename__ = "project_votes"
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", "event_id", name="uq_project_votes_project_user_event"),
    )

    project_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    event_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Relationships
    project: Mapped["Project"] = relationship("Project", back_populates="votes")
    user: Mapped["User"] = relationship("User")
    event: Mapped["Event"] = relationship("Event")

    def __repr__(self) -> str:
        return f"<ProjectVote by {self.user_id} on project {self.project_id}>"
