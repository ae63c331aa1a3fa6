"""
Points & awards calculator.

Applies league points to every approved roster member of a completed match
(win 3, draw 1, loss 0) and bumps team match/win counters. Runs at most once
per match: the points_awarded flag is claimed with a conditional UPDATE
before any counter moves.
"""

from typing import Dict, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import update, and_
from footsquad.database.models import Match, MatchStatus, Player, Team, TeamSide
from footsquad.services.errors import ConflictError
from footsquad.services.match_service import get_match_or_404
from footsquad.services.roster_service import get_approved_player_ids
from footsquad.utils.constants import WIN_POINTS, DRAW_POINTS, LOSS_POINTS
import logging

logger = logging.getLogger(__name__)


def side_points(score_a: int, score_b: int) -> Dict[str, int]:
    """League points earned by each side for a final score."""
    if score_a > score_b:
        return {TeamSide.A.value: WIN_POINTS, TeamSide.B.value: LOSS_POINTS}
    if score_a < score_b:
        return {TeamSide.A.value: LOSS_POINTS, TeamSide.B.value: WIN_POINTS}
    return {TeamSide.A.value: DRAW_POINTS, TeamSide.B.value: DRAW_POINTS}


async def _credit_players(session: AsyncSession, player_ids: List[int], points: int) -> None:
    if not player_ids:
        return
    await session.execute(
        update(Player)
        .where(Player.id.in_(player_ids))
        .values(
            total_points=Player.total_points + points,
            total_matches=Player.total_matches + 1,
        )
        .execution_options(synchronize_session="fetch")
    )


async def _credit_team(session: AsyncSession, team_id: int, won: bool) -> None:
    values = {"total_matches": Team.total_matches + 1}
    if won:
        values["total_wins"] = Team.total_wins + 1
    await session.execute(
        update(Team)
        .where(Team.id == team_id)
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )


async def award_match_points(session: AsyncSession, match_id: int) -> bool:
    """
    Award points for a completed match.

    Does not commit; callers run it inside their own transaction.

    Returns:
        True if points were applied, False if they had already been awarded

    Raises:
        NotFoundError: If the match does not exist
        ConflictError: If the match is not completed
    """
    match = await get_match_or_404(session, match_id)
    if match.status != MatchStatus.COMPLETED.value:
        raise ConflictError("Points can only be awarded for completed matches")

    claimed = await session.execute(
        update(Match)
        .where(and_(Match.id == match_id, Match.points_awarded == False))  # noqa: E712
        .values(points_awarded=True)
    )
    if claimed.rowcount != 1:
        logger.info(f"Points for match {match_id} already awarded; skipping")
        return False

    points = side_points(match.score_a, match.score_b)
    for side, team_id in ((TeamSide.A.value, match.team_a_id), (TeamSide.B.value, match.team_b_id)):
        roster = await get_approved_player_ids(session, match_id, side)
        await _credit_players(session, roster, points[side])
        if team_id is not None:
            other = TeamSide.B.value if side == TeamSide.A.value else TeamSide.A.value
            await _credit_team(session, team_id, won=points[side] > points[other])

    logger.info(
        f"Awarded points for match {match_id} ({match.score_a}-{match.score_b}): "
        f"A={points[TeamSide.A.value]} B={points[TeamSide.B.value]}"
    )
    return True
