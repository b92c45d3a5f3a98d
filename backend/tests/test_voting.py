"""
Tests for submission voting: quotas, eligibility, adjustments and rankings.
"""
import pytest
from datetime import datetime, timedelta, timezone
from httpx import AsyncClient
from sqlalchemy import select, func

from app.models.event import Event
from app.models.vote import ProjectVote
from app.services import voting
from app.services.voting import (
    VoteErrorCode,
    cast_vote,
    set_manual_vote_count,
    count_user_votes,
    displayed_vote_count,
    get_voting_policy,
    load_vote_tallies,
)
from app.services.projection import rank_submissions


async def ledger_count(db_session, project_id: str) -> int:
    result = await db_session.execute(
        select(func.count()).select_from(ProjectVote).where(ProjectVote.project_id == project_id)
    )
    return result.scalar()


class TestVotingPolicy:
    """Test reading the public voting policy from an event."""

    def test_defaults(self):
        policy = get_voting_policy(Event(title="Demo day", hackathon_config=None))
        assert policy.allow_public_voting is True
        assert policy.quota == 3

    def test_overrides(self):
        event = Event(title="Demo day", hackathon_config={"voting": {"allowPublicVoting": False, "voteQuota": 5}})
        policy = get_voting_policy(event)
        assert policy.allow_public_voting is False
        assert policy.quota == 5

    def test_invalid_values_fall_back(self):
        event = Event(title="Demo day", hackathon_config={"voting": {"allowPublicVoting": "no", "voteQuota": -1}})
        policy = get_voting_policy(event)
        assert policy.allow_public_voting is True
        assert policy.quota == 3

    def test_displayed_vote_count(self):
        assert displayed_vote_count(5, None) == 5
        assert displayed_vote_count(5, -2) == 3
        assert displayed_vote_count(1, -4) == 0


class TestCastVote:
    """Test casting votes."""

    @pytest.mark.asyncio
    async def test_cast_vote_endpoint(
        self, client: AsyncClient, hackathon, leader, make_user, register, make_submission, auth_headers_for
    ):
        voter = await make_user()
        await register(hackathon, leader, voter)
        submission = await make_submission(hackathon, leader)

        response = await client.post(
            f"/api/v1/submissions/{submission.id}/vote", headers=auth_headers_for(voter)
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "vote_count": 1, "remaining_votes": 2}

        response = await client.post(
            f"/api/v1/submissions/{submission.id}/vote", headers=auth_headers_for(voter)
        )
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "ALREADY_VOTED"

    @pytest.mark.asyncio
    async def test_vote_requires_auth(self, client: AsyncClient, hackathon, leader, register, make_submission):
        await register(hackathon, leader)
        submission = await make_submission(hackathon, leader)
        response = await client.post(f"/api/v1/submissions/{submission.id}/vote")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_quota(self, db_session, hackathon, make_user, register, make_submission):
        """Test that a participant can spend exactly three votes."""
        voter = await make_user()
        await register(hackathon, voter)
        submissions = []
        for i in range(4):
            owner = await make_user()
            await register(hackathon, owner)
            submissions.append(await make_submission(hackathon, owner, name=f"Project {i}"))

        for n, submission in enumerate(submissions[:3], start=1):
            outcome = await cast_vote(db_session, submission, voter.id)
            assert outcome.success
            assert outcome.remaining_votes == 3 - n

        outcome = await cast_vote(db_session, submissions[3], voter.id)
        assert outcome.success is False
        assert outcome.error == VoteErrorCode.NO_VOTES_LEFT
        assert outcome.status_code == 400
        assert await count_user_votes(db_session, hackathon.id, voter.id) == 3

    @pytest.mark.asyncio
    async def test_event_quota_override(self, db_session, hackathon, make_user, register, make_submission):
        hackathon.hackathon_config = {"voting": {"voteQuota": 1}}
        await db_session.flush()
        voter = await make_user()
        first_owner = await make_user()
        second_owner = await make_user()
        await register(hackathon, voter, first_owner, second_owner)
        first = await make_submission(hackathon, first_owner)
        second = await make_submission(hackathon, second_owner)

        outcome = await cast_vote(db_session, first, voter.id)
        assert outcome.remaining_votes == 0
        outcome = await cast_vote(db_session, second, voter.id)
        assert outcome.error == VoteErrorCode.NO_VOTES_LEFT

    @pytest.mark.asyncio
    async def test_own_project_rejected(self, db_session, hackathon, leader, make_user, register, make_submission):
        """Test that leaders and team members cannot vote for their project, even with quota left."""
        teammate = await make_user()
        await register(hackathon, leader, teammate)
        submission = await make_submission(hackathon, leader, team_member_ids=[teammate.id])

        for user in (leader, teammate):
            outcome = await cast_vote(db_session, submission, user.id)
            assert outcome.error == VoteErrorCode.OWN_PROJECT
            assert outcome.status_code == 400

        # Also after the window closed
        hackathon.end_time = datetime.now(timezone.utc) - timedelta(minutes=1)
        await db_session.flush()
        outcome = await cast_vote(db_session, submission, teammate.id)
        assert outcome.error == VoteErrorCode.OWN_PROJECT
        assert await ledger_count(db_session, submission.project_id) == 0

    @pytest.mark.asyncio
    async def test_not_eligible(self, db_session, hackathon, leader, make_user, register, make_submission):
        outsider = await make_user()
        await register(hackathon, leader)
        submission = await make_submission(hackathon, leader)

        outcome = await cast_vote(db_session, submission, outsider.id)
        assert outcome.error == VoteErrorCode.NOT_ELIGIBLE
        assert outcome.status_code == 403

    @pytest.mark.asyncio
    async def test_voting_switches(self, db_session, hackathon, leader, make_user, register, make_submission):
        voter = await make_user()
        await register(hackathon, leader, voter)
        submission = await make_submission(hackathon, leader)

        hackathon.voting_open = False
        await db_session.flush()
        outcome = await cast_vote(db_session, submission, voter.id)
        assert outcome.error == VoteErrorCode.VOTING_CLOSED
        assert outcome.status_code == 403

        hackathon.voting_open = True
        hackathon.hackathon_config = {"voting": {"allowPublicVoting": False}}
        await db_session.flush()
        outcome = await cast_vote(db_session, submission, voter.id)
        assert outcome.error == VoteErrorCode.PUBLIC_VOTING_DISABLED
        assert outcome.status_code == 403

    @pytest.mark.asyncio
    async def test_duplicate_insert_race(
        self, db_session, hackathon, leader, make_user, register, make_submission, monkeypatch
    ):
        """Test that the unique constraint turns a concurrent duplicate into ALREADY_VOTED."""
        voter = await make_user()
        await register(hackathon, leader, voter)
        submission = await make_submission(hackathon, leader)
        assert (await cast_vote(db_session, submission, voter.id)).success

        async def missed_vote(db, submission, user_id):
            return None

        monkeypatch.setattr(voting, "_find_vote", missed_vote)
        outcome = await cast_vote(db_session, submission, voter.id)
        assert outcome.error == VoteErrorCode.ALREADY_VOTED
        assert await ledger_count(db_session, submission.project_id) == 1

    @pytest.mark.asyncio
    async def test_quota_race(self, db_session, hackathon, make_user, register, make_submission, monkeypatch):
        """Test that a vote inserted past the quota is rolled back."""
        voter = await make_user()
        await register(hackathon, voter)
        submissions = []
        for i in range(4):
            owner = await make_user()
            await register(hackathon, owner)
            submissions.append(await make_submission(hackathon, owner, name=f"Project {i}"))
        for submission in submissions[:3]:
            assert (await cast_vote(db_session, submission, voter.id)).success

        real_count = voting.count_user_votes
        calls = {"n": 0}

        async def stale_then_real(db, event_id, user_id):
            calls["n"] += 1
            if calls["n"] == 1:
                return 0
            return await real_count(db, event_id, user_id)

        monkeypatch.setattr(voting, "count_user_votes", stale_then_real)
        outcome = await cast_vote(db_session, submissions[3], voter.id)
        assert outcome.error == VoteErrorCode.NO_VOTES_LEFT
        assert await real_count(db_session, hackathon.id, voter.id) == 3
        assert await ledger_count(db_session, submissions[3].project_id) == 0


class TestRevokeVote:
    """Test revoking votes."""

    @pytest.mark.asyncio
    async def test_revoke(self, client: AsyncClient, db_session, hackathon, leader, make_user, register,
                          make_submission, auth_headers_for):
        voter = await make_user()
        await register(hackathon, leader, voter)
        submission = await make_submission(hackathon, leader)
        url = f"/api/v1/submissions/{submission.id}/vote"

        response = await client.delete(url, headers=auth_headers_for(voter))
        assert response.status_code == 400
        assert response.json()["error"] == "NOT_VOTED"

        await client.post(url, headers=auth_headers_for(voter))
        response = await client.delete(url, headers=auth_headers_for(voter))
        assert response.status_code == 200
        assert response.json() == {"success": True, "vote_count": 0, "remaining_votes": 3}

    @pytest.mark.asyncio
    async def test_window_closure_symmetry(
        self, client: AsyncClient, db_session, hackathon, leader, make_user, register, make_submission,
        auth_headers_for
    ):
        """Test that neither cast nor revoke is possible once the event has ended."""
        voter = await make_user()
        late_voter = await make_user()
        await register(hackathon, leader, voter, late_voter)
        submission = await make_submission(hackathon, leader)
        assert (await cast_vote(db_session, submission, voter.id)).success

        hackathon.end_time = datetime.now(timezone.utc) - timedelta(minutes=1)
        await db_session.flush()

        response = await client.post(
            f"/api/v1/submissions/{submission.id}/vote", headers=auth_headers_for(late_voter)
        )
        assert response.status_code == 400
        assert response.json()["error"] == "VOTING_ENDED"

        response = await client.delete(
            f"/api/v1/submissions/{submission.id}/vote", headers=auth_headers_for(voter)
        )
        assert response.status_code == 400
        assert response.json()["error"] == "VOTING_ENDED"
        assert await ledger_count(db_session, submission.project_id) == 1


class TestAdjustmentsAndRanking:
    """Test manual adjustments, ranks and statistics."""

    async def _scenario(self, db_session, hackathon, make_user, register, make_submission):
        """Three submissions with 5, 3 and 3 votes."""
        owners = [await make_user() for _ in range(3)]
        voters = [await make_user() for _ in range(6)]
        await register(hackathon, *owners, *voters)
        first, second, third = [
            await make_submission(hackathon, owner, name=name)
            for owner, name in zip(owners, ("Leader", "Runner", "Third"))
        ]
        for voter in voters[:5]:
            assert (await cast_vote(db_session, first, voter.id)).success
        for voter in voters[:3]:
            assert (await cast_vote(db_session, second, voter.id)).success
        for voter in voters[3:6]:
            assert (await cast_vote(db_session, third, voter.id)).success
        return (first, second, third), voters

    @pytest.mark.asyncio
    async def test_scenario_adjustment(self, db_session, hackathon, make_user, register, make_submission):
        (first, second, third), voters = await self._scenario(
            db_session, hackathon, make_user, register, make_submission
        )

        tallies = await load_vote_tallies(db_session, [first, second, third])
        ranked = rank_submissions([first, second, third], tallies)
        assert [rank for _, rank in ranked] == [1, 2, 3]
        assert [tallies[s.project_id].vote_count for s, _ in ranked] == [5, 3, 3]

        adjustment = await set_manual_vote_count(db_session, first, 3)
        assert adjustment == -2
        assert await ledger_count(db_session, first.project_id) == 5
        tallies = await load_vote_tallies(db_session, [first])
        assert tallies[first.project_id].vote_count == 3

        outcome = await cast_vote(db_session, first, voters[5].id)
        assert outcome.success
        assert outcome.vote_count == 4

    @pytest.mark.asyncio
    async def test_adjustment_cleared_when_matching(
        self, db_session, hackathon, make_user, register, make_submission
    ):
        (first, _, _), _ = await self._scenario(db_session, hackathon, make_user, register, make_submission)
        assert await set_manual_vote_count(db_session, first, 9) == 4
        assert await set_manual_vote_count(db_session, first, 5) is None
        assert first.project.manual_vote_adjustment is None

    @pytest.mark.asyncio
    async def test_rank_directions_are_reverses(self, db_session, hackathon, make_user, register, make_submission):
        owners = [await make_user() for _ in range(5)]
        voters = [await make_user() for _ in range(6)]
        await register(hackathon, *owners, *voters)
        submissions = [await make_submission(hackathon, owner) for owner in owners]
        # 0 to 4 votes, spread round robin so no voter exceeds the quota
        next_voter = 0
        for i, submission in enumerate(submissions):
            for j in range(i):
                voter = voters[(next_voter + j) % len(voters)]
                assert (await cast_vote(db_session, submission, voter.id)).success
            next_voter += i

        tallies = await load_vote_tallies(db_session, submissions)
        assert [tallies[s.project_id].vote_count for s in submissions] == [0, 1, 2, 3, 4]

        desc = {s.id: rank for s, rank in rank_submissions(submissions, tallies, "voteCount", "desc")}
        asc = {s.id: rank for s, rank in rank_submissions(submissions, tallies, "voteCount", "asc")}
        assert [desc[s.id] for s in submissions] == [5, 4, 3, 2, 1]
        for submission in submissions:
            assert asc[submission.id] == len(submissions) + 1 - desc[submission.id]

    @pytest.mark.asyncio
    async def test_adjustment_endpoint(
        self, client: AsyncClient, db_session, hackathon, organizer, make_user, register, make_submission,
        auth_headers_for
    ):
        (first, _, _), _ = await self._scenario(db_session, hackathon, make_user, register, make_submission)
        url = f"/api/v1/submissions/{first.id}/vote-adjustment"

        response = await client.patch(url, json={"vote_count": 12}, headers=auth_headers_for(first.project.leader))
        assert response.status_code == 403

        response = await client.patch(url, json={"vote_count": 12}, headers=auth_headers_for(organizer))
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["vote_count"] == 12
        assert data["base_vote_count"] == 5
        assert data["manual_vote_adjustment"] == 7

        response = await client.patch(url, json={"vote_count": -1}, headers=auth_headers_for(organizer))
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_listing_includes_caller_vote_state(
        self, client: AsyncClient, db_session, hackathon, make_user, register, make_submission, auth_headers_for
    ):
        (first, second, third), voters = await self._scenario(
            db_session, hackathon, make_user, register, make_submission
        )

        data = (await client.get(
            f"/api/v1/events/{hackathon.id}/submissions", headers=auth_headers_for(voters[0])
        )).json()["data"]
        assert [s["vote_count"] for s in data["submissions"]] == [5, 3, 3]
        assert [s["rank"] for s in data["submissions"]] == [1, 2, 3]
        assert set(data["user_votes"]) == {first.id, second.id}
        assert data["remaining_votes"] == 1
        assert data["public_voting"] == {"allow_public_voting": True, "vote_quota": 3}

        anonymous = (await client.get(f"/api/v1/events/{hackathon.id}/submissions")).json()["data"]
        assert anonymous["user_votes"] == []
        assert anonymous["remaining_votes"] is None

        ascending = (await client.get(
            f"/api/v1/events/{hackathon.id}/submissions", params={"sort": "voteCount", "order": "asc"}
        )).json()["data"]
        assert ascending["submissions"][-1]["id"] == first.id
        assert ascending["submissions"][-1]["rank"] == 3

    @pytest.mark.asyncio
    async def test_stats(
        self, client: AsyncClient, db_session, hackathon, organizer, make_user, register, make_submission
    ):
        (first, second, third), _ = await self._scenario(
            db_session, hackathon, make_user, register, make_submission
        )
        await set_manual_vote_count(db_session, third, 10)

        response = await client.get(f"/api/v1/events/{hackathon.id}/votes/stats")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total_votes"] == 11
        assert data["total_participants"] == 9
        assert data["voted_participants"] == 6
        top = data["top_submissions"]
        assert [s["id"] for s in top] == [third.id, first.id, second.id]
        assert [s["vote_count"] for s in top] == [10, 5, 3]
        assert [s["rank"] for s in top] == [1, 2, 3]
