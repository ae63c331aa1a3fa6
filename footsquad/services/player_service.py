"""
Player profile service.

Player rows carry the season counters the match engine updates (matches,
points, ratings, MOTM awards) and the team membership/captaincy the engine
checks before every captain-only action.
"""

from typing import Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from footsquad.database.models import Player, PlayerPosition
from footsquad.services.errors import ConflictError, NotFoundError, ValidationError
import logging

logger = logging.getLogger(__name__)


def player_to_dict(player: Player) -> Dict:
    average_rating = (
        round(player.total_ratings / player.rating_count, 1) if player.rating_count else None
    )
    return {
        "id": player.id,
        "user_id": player.user_id,
        "full_name": player.full_name,
        "city": player.city,
        "position": player.position,
        "team_id": player.team_id,
        "is_captain": player.is_captain,
        "total_matches": player.total_matches,
        "total_points": player.total_points,
        "total_ratings": player.total_ratings,
        "rating_count": player.rating_count,
        "average_rating": average_rating,
        "motm_count": player.motm_count,
    }


async def create_player(
    session: AsyncSession,
    user_id: Optional[int],
    full_name: str,
    city: Optional[str] = None,
    position: Optional[str] = None,
) -> Dict:
    """
    Create the player profile for a user.

    Raises:
        ValidationError: If the name is empty or the position unknown
        ConflictError: If the user already has a profile
    """
    if not full_name or not full_name.strip():
        raise ValidationError("Full name is required")
    if position is not None and position not in {p.value for p in PlayerPosition}:
        raise ValidationError(f"Invalid position: {position}")

    if user_id is not None:
        existing = await get_player_by_user_id(session, user_id)
        if existing:
            raise ConflictError("Player profile already exists")

    player = Player(
        user_id=user_id,
        full_name=full_name.strip(),
        city=city,
        position=position,
        is_captain=False,
        total_matches=0,
        total_points=0,
        total_ratings=0,
        rating_count=0,
        motm_count=0,
    )
    session.add(player)
    await session.flush()
    logger.info(f"Created player {player.id} for user {user_id}")
    return player_to_dict(player)


async def get_player(session: AsyncSession, player_id: int) -> Optional[Player]:
    result = await session.execute(select(Player).where(Player.id == player_id))
    return result.scalar_one_or_none()


async def get_player_by_user_id(session: AsyncSession, user_id: int) -> Optional[Player]:
    result = await session.execute(
        select(Player).where(Player.user_id == user_id).order_by(Player.id).limit(1)
    )
    return result.scalar_one_or_none()


async def get_player_or_404(session: AsyncSession, player_id: int) -> Player:
    player = await get_player(session, player_id)
    if not player:
        raise NotFoundError("Player not found")
    return player
