"""
Unit tests for Man of the Match voting.

Tests vote validation, finalization when every participant has voted, the
earliest-vote tie break and the exactly-once winner bonus.
"""

import pytest
from sqlalchemy import select

from footsquad.database.models import Notification
from footsquad.services import motm_service
from footsquad.services.errors import ConflictError, PermissionDeniedError, ValidationError
from footsquad.tests.factories import (
    create_completed_match,
    create_confirmed_match,
    create_user_and_player,
    reload_player,
)


@pytest.mark.asyncio
async def test_voting_opens_on_score_confirmation(db_session):
    match_id, team_a, team_b = await create_completed_match(db_session, 1, 0, size=1)

    results = await motm_service.get_motm_results(db_session, match_id)
    assert results["voting_open"] is True
    assert results["total_votes"] == 0
    assert results["leaders"] == []
    assert results["winner_id"] is None


@pytest.mark.asyncio
async def test_vote_records_ballot(db_session):
    match_id, team_a, team_b = await create_completed_match(db_session, 1, 0, size=2)
    voter, candidate = team_a["player_ids"][1], team_b["player_ids"][0]

    result = await motm_service.vote(db_session, match_id, voter, candidate)

    assert result == {"voted": True, "finalized": False, "winner_id": None}
    assert await motm_service.has_voted(db_session, match_id, voter) is True
    results = await motm_service.get_motm_results(db_session, match_id)
    assert results["counts"] == [{"player_id": candidate, "votes": 1}]
    assert results["leaders"] == [candidate]


@pytest.mark.asyncio
async def test_vote_rules(db_session):
    match_id, team_a, team_b = await create_completed_match(db_session, 2, 2, size=2)
    voter = team_a["player_ids"][0]
    _, outsider = await create_user_and_player(db_session, "Spectator")

    with pytest.raises(PermissionDeniedError, match="Only match participants can vote"):
        await motm_service.vote(db_session, match_id, outsider, voter)
    with pytest.raises(ValidationError, match="Cannot vote for yourself"):
        await motm_service.vote(db_session, match_id, voter, voter)
    with pytest.raises(ValidationError, match="Player did not play in this match"):
        await motm_service.vote(db_session, match_id, voter, outsider)

    await motm_service.vote(db_session, match_id, voter, team_b["player_ids"][0])
    with pytest.raises(ConflictError, match="Already voted"):
        await motm_service.vote(db_session, match_id, voter, team_b["player_ids"][1])


@pytest.mark.asyncio
async def test_vote_before_completion(db_session):
    match_id, team_a, team_b = await create_confirmed_match(db_session, size=1)

    with pytest.raises(ConflictError, match="MOTM voting is not open"):
        await motm_service.vote(
            db_session, match_id, team_a["captain_id"], team_b["captain_id"]
        )


@pytest.mark.asyncio
async def test_last_vote_finalizes_with_earliest_vote_tie_break(db_session):
    match_id, team_a, team_b = await create_completed_match(db_session, 3, 3, size=3)
    a0, a1, a2 = team_a["player_ids"]
    b0, b1, b2 = team_b["player_ids"]

    # b1, b2 and a0 end on two votes each; b1 received the first of them
    ballots = [(a0, b1), (a1, b2), (a2, b1), (b0, b2), (b1, a0)]
    for voter, candidate in ballots:
        result = await motm_service.vote(db_session, match_id, voter, candidate)
        assert result["finalized"] is False

    result = await motm_service.vote(db_session, match_id, b2, a0)
    assert result == {"voted": True, "finalized": True, "winner_id": b1}

    results = await motm_service.get_motm_results(db_session, match_id)
    assert results["voting_open"] is False
    assert results["winner_id"] == b1
    assert results["total_votes"] == 6
    assert results["leaders"] == [b1, b2, a0]

    winner = await reload_player(db_session, b1)
    assert winner.motm_count == 1
    # Draw point plus the MOTM bonus
    assert winner.total_points == 1 + 2

    runner_up = await reload_player(db_session, b2)
    assert runner_up.motm_count == 0
    assert runner_up.total_points == 1

    notified = (
        await db_session.execute(
            select(Notification.user_id).where(Notification.type == "motm_winner")
        )
    ).scalars().all()
    assert len(notified) == 6

    with pytest.raises(ConflictError, match="MOTM voting is not open"):
        await motm_service.vote(db_session, match_id, a1, b1)


@pytest.mark.asyncio
async def test_finalize_runs_once(db_session):
    match_id, team_a, team_b = await create_completed_match(db_session, 1, 0, size=1)
    await motm_service.vote(db_session, match_id, team_a["captain_id"], team_b["captain_id"])
    result = await motm_service.vote(
        db_session, match_id, team_b["captain_id"], team_a["captain_id"]
    )
    assert result["winner_id"] == team_b["captain_id"]

    assert await motm_service.finalize_motm_winner(db_session, match_id) is None

    winner = await reload_player(db_session, team_b["captain_id"])
    assert winner.motm_count == 1


@pytest.mark.asyncio
async def test_finalize_without_votes(db_session):
    match_id, team_a, team_b = await create_completed_match(db_session, 1, 0, size=1)

    assert await motm_service.finalize_motm_winner(db_session, match_id) is None

    results = await motm_service.get_motm_results(db_session, match_id)
    assert results["voting_open"] is False
    assert results["winner_id"] is None
