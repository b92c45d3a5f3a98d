"""
Project model for the Events module.

A project is the creative work behind an event submission: its title,
description and links, the team that built it and the files attached to it.
The team and the attachments are owned collections that are always replaced
as a whole.
"""
from enum import Enum
from datetime import datetime
from typing import Optional, TYPE_CHECKING
from sqlalchemy import (
    String, Text, Boolean, Integer, BigInteger, ForeignKey, DateTime, JSON,
    CheckConstraint, UniqueConstraint, Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel

if TYPE_CHECKING:
    from app.models.user import User
    from app.models.submission import EventProjectSubmission
    from app.models.vote import ProjectVote


class ProjectMemberRole(str, Enum):
    """Role of a user in a project team."""
    LEADER = "LEADER"
    MEMBER = "MEMBER"


class Project(BaseModel):
    """
    Project model.

    `leader_id` is the owning team leader. `manual_vote_adjustment` is an
    organizer-set delta added to the raw vote ledger count when displaying
    the project's votes; NULL means no adjustment.
    """
    __tablename__ = "projects"

    leader_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    tagline: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    demo_url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)

    community_use_auth: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    custom_fields: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    manual_vote_adjustment: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    is_submission: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    leader: Mapped["User"] = relationship("User", foreign_keys=[leader_id])
    members: Mapped[list["ProjectMember"]] = relationship(
        "ProjectMember",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True
    )
    attachments: Mapped[list["ProjectAttachment"]] = relationship(
        "ProjectAttachment",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ProjectAttachment.order"
    )
    votes: Mapped[list["ProjectVote"]] = relationship(
        "ProjectVote",
        back_populates="project",
        passive_deletes=True
    )
    submission: Mapped[Optional["EventProjectSubmission"]] = relationship(
        "EventProjectSubmission",
        back_populates="project",
        uselist=False,
        passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Project {self.title}>"


class ProjectMember(BaseModel):
    """Team roster entry. Exactly one LEADER row per project."""
    __tablename__ = "project_members"
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),
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
        nullable=False,
        index=True
    )
    role: Mapped[ProjectMemberRole] = mapped_column(
        SQLEnum(ProjectMemberRole, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=ProjectMemberRole.MEMBER
    )

    # Relationships
    project: Mapped["Project"] = relationship("Project", back_populates="members")
    user: Mapped["User"] = relationship("User")

    def __repr__(self) -> str:
        return f"<ProjectMember {self.user_id} ({self.role.value}) on {self.project_id}>"


class ProjectAttachment(BaseModel):
    """File attached to a project, already uploaded to object storage."""
    __tablename__ = "project_attachments"
    __table_args__ = (
        CheckConstraint("file_size >= 0", name="file_size_non_negative"),
    )

    project_id: Mapped[str] = mapped_column(
        String(15),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    file_type: Mapped[str] = mapped_column(String(50), nullable=False)
    mime_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Relationships
    project: Mapped["Project"] = relationship("Project", back_populates="attachments")

    def __repr__(self) -> str:
        return f"<ProjectAttachment {self.file_name}>"
