"""
SQLAlchemy models for the community events API.

- Directory: users, organizations, organization memberships
- Events: events and registrations
- Submissions: projects, team members, attachments, event submissions
- Voting: project votes
"""
# Directory
from app.models.user import User
from app.models.organization import Organization
from app.models.org_membership import OrgMembership, OrgMembershipRole, EVENT_ADMIN_ROLES

# Events
from app.models.event import Event, EventType
from app.models.event_registration import (
    EventRegistration,
    RegistrationStatus,
    ACTIVE_REGISTRATION_STATUSES,
)

# Submissions
from app.models.project import Project, ProjectMember, ProjectMemberRole, ProjectAttachment
from app.models.submission import (
    EventProjectSubmission,
    SubmissionStatus,
    SubmissionType,
    PUBLIC_SUBMISSION_STATUSES,
    VALID_STATUS_TRANSITIONS,
)

# Voting
from app.models.vote import ProjectVote

__all__ = [
    # Directory
    "User",
    "Organization",
    "OrgMembership",
    "OrgMembershipRole",
    "EVENT_ADMIN_ROLES",
    # Events
    "Event",
    "EventType",
    "EventRegistration",
    "RegistrationStatus",
    "ACTIVE_REGISTRATION_STATUSES",
    # Submissions
    "Project",
    "ProjectMember",
    "ProjectMemberRole",
    "ProjectAttachment",
    "EventProjectSubmission",
    "SubmissionStatus",
    "SubmissionType",
    "PUBLIC_SUBMISSION_STATUSES",
    "VALID_STATUS_TRANSITIONS",
    # Voting
    "ProjectVote",
]
