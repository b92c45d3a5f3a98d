"""
Events module - project submissions and voting.

This module handles:
- Submissions (projects submitted to events, teams, attachments, review)
- Voting (per-participant vote quotas, manual adjustments, statistics)
- Team builder participant search
"""
from fastapi import APIRouter
from app.api.v1.events.submissions import (
    router as event_submissions_router,
    submission_router as submission_detail_router,
)
from app.api.v1.events.voting import (
    router as event_voting_router,
    submission_router as submission_voting_router,
)

# Event-scoped endpoints: /api/v1/events/{event_id}/...
events_router = APIRouter(prefix="/events", tags=["events"])
events_router.include_router(event_submissions_router, tags=["submissions"])
events_router.include_router(event_voting_router, tags=["voting"])

# Submission-scoped endpoints: /api/v1/submissions/{submission_id}/...
submissions_router = APIRouter(prefix="/submissions", tags=["submissions"])
submissions_router.include_router(submission_detail_router)
submissions_router.include_router(submission_voting_router, tags=["voting"])

__all__ = [
    "events_router",
    "submissions_router",
]
