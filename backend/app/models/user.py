"""
User model.

Users are provisioned by the identity service; this API reads the profile
fields it needs to render submission teams. Contact fields are private.
"""
from typing import Optional, TYPE_CHECKING
from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.models.base import BaseModel

if TYPE_CHECKING:
    from app.models.org_membership import OrgMembership
    from app.models.event_registration import EventRegistration


class User(BaseModel):
    """User directory entry."""
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    username: Mapped[Optional[str]] = mapped_column(String(100), unique=True, nullable=True, index=True)

    # Public profile
    image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Private profile
    phone_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    wechat_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    region: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    user_role_string: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    current_work_on: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Relationships
    memberships: Mapped[list["OrgMembership"]] = relationship(
        "OrgMembership",
        foreign_keys="OrgMembership.user_id",
        back_populates="user",
        cascade="all, delete-orphan"
    )
    event_registrations: Mapped[list["EventRegistration"]] = relationship(
        "EventRegistration",
        back_populates="user",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User {self.email}>"
