"""
Pydantic schemas for project voting endpoints.
"""
from typing import Optional
from pydantic import BaseModel


class VoteResponse(BaseModel):
    """Successful cast or revoke."""
    success: bool = True
    vote_count: int
    remaining_votes: Optional[int] = None


class VoteErrorResponse(BaseModel):
    """Rejected cast or revoke. `error` is a stable code clients branch on."""
    success: bool = False
    error: str
    message: str


class TopSubmission(BaseModel):
    id: str
    project_id: str
    name: str
    vote_count: int
    rank: int


class VotingStats(BaseModel):
    total_votes: int
    total_participants: int
    voted_participants: int
    top_submissions: list[TopSubmission]


class VotingStatsResponse(BaseModel):
    success: bool = True
    data: VotingStats
