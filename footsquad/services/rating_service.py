"""
Post-match peer ratings with a per-submission budget.

A participant rates opponents once per match. The total of a submission is
capped at 7 points per opponent, which stops a rater from maxing out every
opponent. Published averages drop the single highest and lowest rating once
a player has five or more.
"""

from typing import Dict, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_
from sqlalchemy.exc import IntegrityError
from footsquad.database.models import MatchStatus, Player, Rating, TeamSide
from footsquad.services.errors import (
    ConflictError,
    PermissionDeniedError,
    ValidationError,
)
from footsquad.services.lock_service import match_lock, RATING_SCOPE
from footsquad.services.match_service import get_match_or_404, release_read_transaction
from footsquad.services.roster_service import get_approved_entry, get_approved_player_ids
from footsquad.utils.constants import (
    MIN_RATING_SCORE,
    MAX_RATING_SCORE,
    MAX_RATINGS_PER_SUBMISSION,
    RATING_BUDGET_PER_OPPONENT,
    TRIMMED_MEAN_MIN_RATINGS,
)
import logging

logger = logging.getLogger(__name__)


def _other_side(team_side: str) -> str:
    return TeamSide.B.value if team_side == TeamSide.A.value else TeamSide.A.value


def _validate_ratings(ratings: List[Dict]) -> List[Dict]:
    if not ratings or len(ratings) > MAX_RATINGS_PER_SUBMISSION:
        raise ValidationError(
            f"Submit between 1 and {MAX_RATINGS_PER_SUBMISSION} ratings"
        )
    cleaned = []
    for item in ratings:
        player_id = item.get("player_id")
        score = item.get("score")
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise ValidationError("Rating scores must be numbers")
        if not MIN_RATING_SCORE <= score <= MAX_RATING_SCORE:
            raise ValidationError(
                f"Rating scores must be between {MIN_RATING_SCORE} and {MAX_RATING_SCORE}"
            )
        cleaned.append({"player_id": player_id, "score": float(score)})
    if len({item["player_id"] for item in cleaned}) != len(cleaned):
        raise ValidationError("Each player can only be rated once per submission")
    return cleaned


async def has_rated(session: AsyncSession, match_id: int, rater_id: int) -> bool:
    result = await session.execute(
        select(Rating.id).where(and_(Rating.match_id == match_id, Rating.rater_id == rater_id))
    )
    return result.first() is not None


async def get_rating_budget(session: AsyncSession, match_id: int, rater_id: int) -> Dict:
    """
    Budget for a rater: RATING_BUDGET_PER_OPPONENT points per approved opponent.

    A rater who did not play has no opponents and a zero budget.
    """
    await get_match_or_404(session, match_id)
    entry = await get_approved_entry(session, match_id, rater_id)
    opponent_count = 0
    if entry is not None:
        opponent_count = len(
            await get_approved_player_ids(session, match_id, _other_side(entry.team_side))
        )
    return {
        "match_id": match_id,
        "opponent_count": opponent_count,
        "per_opponent": RATING_BUDGET_PER_OPPONENT,
        "max_budget": opponent_count * RATING_BUDGET_PER_OPPONENT,
    }


async def update_player_rating_stats(session: AsyncSession, ratings: List[Dict]) -> None:
    """Add the submitted scores to each rated player's running totals."""
    for item in ratings:
        await session.execute(
            update(Player)
            .where(Player.id == item["player_id"])
            .values(
                total_ratings=Player.total_ratings + item["score"],
                rating_count=Player.rating_count + 1,
            )
            .execution_options(synchronize_session="fetch")
        )


async def submit_ratings(
    session: AsyncSession, match_id: int, rater_id: int, ratings: List[Dict]
) -> Dict:
    """
    Rate opponents after a completed match.

    Args:
        ratings: List of {"player_id": int, "score": 1..10}

    Raises:
        ValidationError: Bad list or scores, self/teammate/non-opponent
            targets, or total over budget
        NotFoundError: Match does not exist
        ConflictError: Match not completed or rater already rated
        PermissionDeniedError: Rater did not play
    """
    ratings = _validate_ratings(ratings)
    await get_match_or_404(session, match_id)

    await release_read_transaction(session)
    async with match_lock(match_id, RATING_SCOPE):
        match = await get_match_or_404(session, match_id)
        if match.status != MatchStatus.COMPLETED.value:
            raise ConflictError("Ratings are not open for this match")

        entry = await get_approved_entry(session, match_id, rater_id)
        if entry is None:
            raise PermissionDeniedError("Only match participants can rate")
        if await has_rated(session, match_id, rater_id):
            raise ConflictError("Already rated")

        teammates = set(await get_approved_player_ids(session, match_id, entry.team_side))
        opponents = set(
            await get_approved_player_ids(session, match_id, _other_side(entry.team_side))
        )
        for item in ratings:
            if item["player_id"] == rater_id:
                raise ValidationError("Cannot rate yourself")
            if item["player_id"] in teammates:
                raise ValidationError("Cannot rate own teammates")
            if item["player_id"] not in opponents:
                raise ValidationError("Can only rate opponents from this match")

        total = sum(item["score"] for item in ratings)
        budget = len(opponents) * RATING_BUDGET_PER_OPPONENT
        if total > budget:
            raise ValidationError("Total rating budget exceeded")

        try:
            async with session.begin_nested():
                session.add_all(
                    [
                        Rating(
                            match_id=match_id,
                            rater_id=rater_id,
                            rated_player_id=item["player_id"],
                            score=item["score"],
                        )
                        for item in ratings
                    ]
                )
        except IntegrityError:
            raise ConflictError("Already rated")

        await update_player_rating_stats(session, ratings)
        await session.commit()

    logger.info(
        f"Player {rater_id} rated {len(ratings)} opponent(s) in match {match_id} "
        f"(total {total:g} of {budget})"
    )
    return {
        "match_id": match_id,
        "rated": len(ratings),
        "total": total,
        "max_budget": budget,
    }


def trimmed_mean(scores: List[float]) -> float:
    """Mean rounded to one decimal; from TRIMMED_MEAN_MIN_RATINGS up, extremes are dropped."""
    values = sorted(scores)
    if len(values) >= TRIMMED_MEAN_MIN_RATINGS:
        values = values[1:-1]
    return round(sum(values) / len(values), 1)


async def get_rating_results(session: AsyncSession, match_id: int) -> List[Dict]:
    """Per-player rating averages for a match, best first."""
    await get_match_or_404(session, match_id)
    result = await session.execute(
        select(Rating.rated_player_id, Rating.score)
        .where(Rating.match_id == match_id)
        .order_by(Rating.id)
    )
    by_player: Dict[int, List[float]] = {}
    for row in result:
        by_player.setdefault(row.rated_player_id, []).append(row.score)

    results = [
        {"player_id": player_id, "average": trimmed_mean(scores), "count": len(scores)}
        for player_id, scores in by_player.items()
    ]
    results.sort(key=lambda r: (-r["average"], r["player_id"]))
    return results
