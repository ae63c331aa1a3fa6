"""
Unit tests for post-match peer ratings.

Tests the per-opponent budget, target validation, one submission per rater
and the trimmed mean used for published averages.
"""

import pytest

from footsquad.services import rating_service
from footsquad.services.errors import ConflictError, PermissionDeniedError, ValidationError
from footsquad.tests.factories import (
    create_completed_match,
    create_confirmed_match,
    create_user_and_player,
    reload_player,
)


def _ratings(player_ids, scores):
    return [{"player_id": pid, "score": score} for pid, score in zip(player_ids, scores)]


# ──────────────────────────────────────────────────────────────
# Trimmed mean
# ──────────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "scores,expected",
    [
        ([7], 7.0),
        ([6, 8], 7.0),
        ([1, 5, 9, 9], 6.0),
        ([1, 6, 7, 8, 10], 7.0),
        ([2, 2, 2, 2, 10, 10], 4.0),
    ],
)
def test_trimmed_mean(scores, expected):
    assert rating_service.trimmed_mean(scores) == expected


# ──────────────────────────────────────────────────────────────
# Budget
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_budget_is_seven_per_opponent(db_session):
    match_id, team_a, team_b = await create_completed_match(
        db_session, 2, 1, size=7, max_players_per_team=7
    )

    budget = await rating_service.get_rating_budget(db_session, match_id, team_a["captain_id"])
    assert budget["opponent_count"] == 7
    assert budget["max_budget"] == 49


@pytest.mark.asyncio
async def test_full_budget_accepted(db_session):
    match_id, team_a, team_b = await create_completed_match(
        db_session, 2, 1, size=7, max_players_per_team=7
    )

    result = await rating_service.submit_ratings(
        db_session, match_id, team_a["captain_id"], _ratings(team_b["player_ids"], [7] * 7)
    )

    assert result["rated"] == 7
    assert result["total"] == 49
    assert result["max_budget"] == 49
    assert await rating_service.has_rated(db_session, match_id, team_a["captain_id"]) is True

    rated = await reload_player(db_session, team_b["player_ids"][0])
    assert rated.rating_count == 1
    assert rated.total_ratings == 7


@pytest.mark.asyncio
async def test_budget_exceeded_by_one(db_session):
    match_id, team_a, team_b = await create_completed_match(
        db_session, 2, 1, size=7, max_players_per_team=7
    )

    with pytest.raises(ValidationError, match="Total rating budget exceeded"):
        await rating_service.submit_ratings(
            db_session,
            match_id,
            team_a["captain_id"],
            _ratings(team_b["player_ids"], [7, 7, 7, 7, 7, 7, 8]),
        )
    assert await rating_service.has_rated(db_session, match_id, team_a["captain_id"]) is False


@pytest.mark.asyncio
async def test_partial_submission_uses_whole_match_budget(db_session):
    """The budget counts every opponent, not just the rated ones."""
    match_id, team_a, team_b = await create_completed_match(db_session, 0, 0, size=3)

    result = await rating_service.submit_ratings(
        db_session, match_id, team_b["captain_id"], _ratings(team_a["player_ids"][:2], [10, 10])
    )
    assert result["total"] == 20
    assert result["max_budget"] == 21


# ──────────────────────────────────────────────────────────────
# Targets and state
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_rating_targets(db_session):
    match_id, team_a, team_b = await create_completed_match(db_session, 1, 0, size=2)
    rater = team_a["captain_id"]
    _, outsider = await create_user_and_player(db_session, "Spectator")

    with pytest.raises(ValidationError, match="Cannot rate yourself"):
        await rating_service.submit_ratings(db_session, match_id, rater, _ratings([rater], [5]))
    with pytest.raises(ValidationError, match="Cannot rate own teammates"):
        await rating_service.submit_ratings(
            db_session, match_id, rater, _ratings([team_a["player_ids"][1]], [5])
        )
    with pytest.raises(ValidationError, match="Can only rate opponents from this match"):
        await rating_service.submit_ratings(db_session, match_id, rater, _ratings([outsider], [5]))
    with pytest.raises(PermissionDeniedError, match="Only match participants can rate"):
        await rating_service.submit_ratings(
            db_session, match_id, outsider, _ratings([team_b["captain_id"]], [5])
        )


@pytest.mark.asyncio
async def test_rate_once_per_match(db_session):
    match_id, team_a, team_b = await create_completed_match(db_session, 1, 0, size=1)
    rater, target = team_a["captain_id"], team_b["captain_id"]
    await rating_service.submit_ratings(db_session, match_id, rater, _ratings([target], [6]))

    with pytest.raises(ConflictError, match="Already rated"):
        await rating_service.submit_ratings(db_session, match_id, rater, _ratings([target], [6]))


@pytest.mark.asyncio
async def test_ratings_need_completed_match(db_session):
    match_id, team_a, team_b = await create_confirmed_match(db_session, size=1)

    with pytest.raises(ConflictError, match="Ratings are not open for this match"):
        await rating_service.submit_ratings(
            db_session, match_id, team_a["captain_id"], _ratings([team_b["captain_id"]], [6])
        )


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "ratings,message",
    [
        ([], "Submit between 1 and 10 ratings"),
        ([{"player_id": i, "score": 1} for i in range(11)], "Submit between 1 and 10 ratings"),
        ([{"player_id": 1, "score": 0}], "Rating scores must be between 1 and 10"),
        ([{"player_id": 1, "score": 11}], "Rating scores must be between 1 and 10"),
        ([{"player_id": 1, "score": "7"}], "Rating scores must be numbers"),
        (
            [{"player_id": 1, "score": 5}, {"player_id": 1, "score": 6}],
            "Each player can only be rated once per submission",
        ),
    ],
)
async def test_malformed_submissions(db_session, ratings, message):
    with pytest.raises(ValidationError, match=message):
        await rating_service.submit_ratings(db_session, 1, 1, ratings)


# ──────────────────────────────────────────────────────────────
# Results
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_rating_results_trim_extremes(db_session):
    match_id, team_a, team_b = await create_completed_match(db_session, 1, 1, size=5)
    target = team_b["player_ids"][0]
    other = team_b["player_ids"][1]

    scores = [1, 6, 7, 8, 7]
    for rater, score in zip(team_a["player_ids"], scores):
        await rating_service.submit_ratings(
            db_session, match_id, rater, _ratings([target, other], [score, 3])
        )

    results = await rating_service.get_rating_results(db_session, match_id)
    assert results == [
        {"player_id": target, "average": 6.7, "count": 5},
        {"player_id": other, "average": 3.0, "count": 5},
    ]

    player = await reload_player(db_session, target)
    assert player.rating_count == 5
    assert player.total_ratings == 29
