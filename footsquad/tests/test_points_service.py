"""
Unit tests for the points & awards calculator.
"""

import pytest

from footsquad.services import points_service, roster_service, score_service
from footsquad.services.errors import ConflictError
from footsquad.tests.factories import (
    create_completed_match,
    create_confirmed_match,
    create_user_and_player,
    reload_player,
    reload_team,
)


@pytest.mark.parametrize(
    "score_a,score_b,expected",
    [
        (3, 1, {"A": 3, "B": 0}),
        (0, 2, {"A": 0, "B": 3}),
        (1, 1, {"A": 1, "B": 1}),
        (0, 0, {"A": 1, "B": 1}),
    ],
)
def test_side_points(score_a, score_b, expected):
    assert points_service.side_points(score_a, score_b) == expected


@pytest.mark.asyncio
async def test_win_credits_players_and_teams(db_session):
    match_id, team_a, team_b = await create_completed_match(db_session, 4, 2, size=2)

    for player_id in team_a["player_ids"]:
        player = await reload_player(db_session, player_id)
        assert player.total_points == 3
        assert player.total_matches == 1
    for player_id in team_b["player_ids"]:
        player = await reload_player(db_session, player_id)
        assert player.total_points == 0
        assert player.total_matches == 1

    winner = await reload_team(db_session, team_a["team_id"])
    loser = await reload_team(db_session, team_b["team_id"])
    assert (winner.total_wins, winner.total_matches) == (1, 1)
    assert (loser.total_wins, loser.total_matches) == (0, 1)


@pytest.mark.asyncio
async def test_award_is_idempotent(db_session):
    match_id, team_a, team_b = await create_completed_match(db_session, 0, 1, size=1)

    assert await points_service.award_match_points(db_session, match_id) is False
    await db_session.commit()

    player = await reload_player(db_session, team_b["captain_id"])
    assert player.total_points == 3
    assert player.total_matches == 1
    team = await reload_team(db_session, team_b["team_id"])
    assert team.total_matches == 1


@pytest.mark.asyncio
async def test_award_requires_completed_match(db_session):
    match_id, team_a, team_b = await create_confirmed_match(db_session, size=1)

    with pytest.raises(ConflictError, match="Points can only be awarded for completed matches"):
        await points_service.award_match_points(db_session, match_id)


@pytest.mark.asyncio
async def test_only_approved_players_score(db_session):
    """Pending joiners are not part of the roster and earn nothing."""
    match_id, team_a, team_b = await create_confirmed_match(db_session, size=1)
    _, pending_id = await create_user_and_player(db_session, "Bench Warmer")
    await roster_service.join_match(db_session, match_id, pending_id, team_a["team_id"], "A")

    await score_service.submit_score(db_session, match_id, team_a["captain_id"], 1, 0)
    await score_service.submit_score(db_session, match_id, team_b["captain_id"], 1, 0)

    bench = await reload_player(db_session, pending_id)
    assert bench.total_points == 0
    assert bench.total_matches == 0
