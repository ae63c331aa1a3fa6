"""
Team service: creation, search, membership and captaincy lookups.

Membership changes a captain makes on someone else's behalf use a
conditional UPDATE on players.team_id, so a player who joined or left a team
in the meantime is never moved silently.
"""

from typing import Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_
from footsquad.database.models import NotificationType, Player, Team
from footsquad.services.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from footsquad.services.notification_service import notify_player
from footsquad.services.player_service import get_player, get_player_or_404, player_to_dict
import logging

logger = logging.getLogger(__name__)

TEAM_SEARCH_LIMIT = 20


def team_summary(team: Optional[Team]) -> Optional[Dict]:
    if team is None:
        return None
    return {
        "id": team.id,
        "name": team.name,
        "city": team.city,
        "captain_id": team.captain_id,
    }


async def create_team(
    session: AsyncSession, player_id: int, name: str, city: Optional[str] = None
) -> Dict:
    """
    Create a team captained by its creator.

    The creating player joins the team and becomes its captain.

    Raises:
        NotFoundError: If the player does not exist
        ValidationError: If the name is empty
        ConflictError: If the player already belongs to a team
    """
    if not name or not name.strip():
        raise ValidationError("Team name is required")

    player = await get_player(session, player_id)
    if not player:
        raise NotFoundError("Create player profile first")
    if player.team_id:
        raise ConflictError("Already in a team")

    team = Team(name=name.strip(), city=city, captain_id=player.id, total_wins=0, total_matches=0)
    session.add(team)
    await session.flush()

    player.team_id = team.id
    player.is_captain = True
    await session.flush()

    logger.info(f"Player {player_id} created team {team.id} ({team.name})")
    return {**team_summary(team), "total_wins": 0, "total_matches": 0}


async def join_team(session: AsyncSession, player_id: int, team_id: int) -> Dict:
    """
    Add a teamless player to a team as a regular member.

    Raises:
        NotFoundError: If the player or team does not exist
        ConflictError: If the player already belongs to a team
    """
    player = await get_player(session, player_id)
    if not player:
        raise NotFoundError("Create player profile first")
    team = await get_team(session, team_id)
    if not team:
        raise NotFoundError("Team not found")
    if player.team_id:
        raise ConflictError("Already in a team")

    player.team_id = team.id
    player.is_captain = False
    await session.flush()
    return player_to_dict(player)


async def search_teams(
    session: AsyncSession, query: Optional[str] = None, city: Optional[str] = None
) -> List[Dict]:
    """
    Teams whose name contains ``query`` (case-insensitive), optionally in one city.

    Used to pick the team a friendly match invites. At most TEAM_SEARCH_LIMIT
    teams are returned, ordered by name.
    """
    stmt = select(Team)
    if query and query.strip():
        stmt = stmt.where(Team.name.ilike(f"%{query.strip()}%"))
    if city:
        stmt = stmt.where(Team.city == city)

    result = await session.execute(stmt.order_by(Team.name, Team.id).limit(TEAM_SEARCH_LIMIT))
    return [team_summary(team) for team in result.scalars().all()]


async def _captained_team(session: AsyncSession, captain_id: int, team_id: int, action: str) -> Team:
    team = await get_team(session, team_id)
    if not team:
        raise NotFoundError("Team not found")
    if team.captain_id != captain_id:
        raise PermissionDeniedError(f"Only the captain can {action} players")
    return team


async def add_player(session: AsyncSession, captain_id: int, team_id: int, player_id: int) -> Dict:
    """
    Captain adds a teamless player to their team.

    The added player is notified.

    Raises:
        NotFoundError: If the team or player does not exist
        PermissionDeniedError: If the caller does not captain the team
        ConflictError: If the player already belongs to a team
    """
    team = await _captained_team(session, captain_id, team_id, "add")
    player = await get_player_or_404(session, player_id)
    if player.team_id:
        raise ConflictError("Player already in a team")

    result = await session.execute(
        update(Player)
        .where(and_(Player.id == player_id, Player.team_id.is_(None)))
        .values(team_id=team.id, is_captain=False)
    )
    if result.rowcount != 1:
        raise ConflictError("Player already in a team")
    await session.refresh(player)

    logger.info(f"Captain {captain_id} added player {player_id} to team {team.id}")
    await notify_player(
        session,
        player_id,
        NotificationType.TEAM_INVITE.value,
        "Team Invitation",
        f"You have been added to {team.name}",
        data={"team_id": team.id},
        link_url=f"/teams/{team.id}",
    )
    return player_to_dict(player)


async def remove_player(session: AsyncSession, captain_id: int, team_id: int, player_id: int) -> Dict:
    """
    Captain removes a member from their team.

    The removed player is notified.

    Raises:
        NotFoundError: If the team does not exist or the player is not a member
        PermissionDeniedError: If the caller does not captain the team
        ValidationError: If the captain tries to remove themselves
    """
    team = await _captained_team(session, captain_id, team_id, "remove")
    if player_id == captain_id:
        raise ValidationError("Captain cannot remove themselves")

    result = await session.execute(
        update(Player)
        .where(and_(Player.id == player_id, Player.team_id == team.id))
        .values(team_id=None, is_captain=False)
    )
    if result.rowcount != 1:
        raise NotFoundError("Player not in this team")
    player = await get_player_or_404(session, player_id)
    await session.refresh(player)

    logger.info(f"Captain {captain_id} removed player {player_id} from team {team.id}")
    await notify_player(
        session,
        player_id,
        NotificationType.TEAM_REMOVED.value,
        "Removed from Team",
        f"You have been removed from {team.name}",
        data={"team_id": team.id},
    )
    return player_to_dict(player)


async def leave_team(session: AsyncSession, player_id: int) -> Dict:
    """
    A regular member leaves their team.

    Raises:
        NotFoundError: If the player does not exist
        ValidationError: If the player is not in a team
        ConflictError: If the player captains the team
    """
    player = await get_player_or_404(session, player_id)
    if not player.team_id:
        raise ValidationError("Not in a team")
    team = await get_team(session, player.team_id)
    if player.is_captain or (team is not None and team.captain_id == player.id):
        raise ConflictError("Captain cannot leave team")

    team_id = player.team_id
    player.team_id = None
    player.is_captain = False
    await session.flush()
    logger.info(f"Player {player_id} left team {team_id}")
    return player_to_dict(player)


async def get_team(session: AsyncSession, team_id: Optional[int]) -> Optional[Team]:
    if team_id is None:
        return None
    result = await session.execute(select(Team).where(Team.id == team_id))
    return result.scalar_one_or_none()


async def get_team_members(session: AsyncSession, team_id: int) -> List[Dict]:
    result = await session.execute(
        select(Player).where(Player.team_id == team_id).order_by(Player.is_captain.desc(), Player.id)
    )
    return [player_to_dict(p) for p in result.scalars().all()]


async def get_team_detail(session: AsyncSession, team_id: int) -> Dict:
    """Team with its counters and members."""
    team = await get_team(session, team_id)
    if not team:
        raise NotFoundError("Team not found")
    return {
        **team_summary(team),
        "total_wins": team.total_wins,
        "total_matches": team.total_matches,
        "members": await get_team_members(session, team_id),
    }


def is_captain_of(player: Optional[Player], team: Optional[Team]) -> bool:
    """A player captains a team iff the team names them as captain."""
    return player is not None and team is not None and team.captain_id == player.id
