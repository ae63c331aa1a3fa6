"""
Roster manager: players ask to join a side of a match, captains approve.

Capacity admission runs in the per-match roster lane so concurrent joins and
approvals never push a side past max_players_per_team.
"""

from typing import Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_
from footsquad.database.models import (
    JoinStatus,
    Match,
    MatchPlayer,
    MatchStatus,
    NotificationType,
    Player,
    TeamSide,
)
from footsquad.services.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from footsquad.services.lock_service import match_lock, ROSTER_SCOPE
from footsquad.services.match_service import (
    get_match_or_404,
    lock_match,
    match_link,
    release_read_transaction,
)
from footsquad.services.notification_service import notify_player
from footsquad.services.player_service import get_player
from footsquad.services.team_service import get_team, is_captain_of
from footsquad.utils.datetime_utils import isoformat_or_none
import logging

logger = logging.getLogger(__name__)

CLOSED_TO_JOINS = {
    MatchStatus.CANCELLED.value,
    MatchStatus.COMPLETED.value,
    MatchStatus.NULL_RESULT.value,
}


def _side_team_id(match: Match, team_side: str) -> Optional[int]:
    return match.team_a_id if team_side == TeamSide.A.value else match.team_b_id


def _roster_entry(row: MatchPlayer, player: Player) -> Dict:
    return {
        "id": row.id,
        "match_id": row.match_id,
        "player_id": row.player_id,
        "team_id": row.team_id,
        "team_side": row.team_side,
        "join_status": row.join_status,
        "full_name": player.full_name,
        "position": player.position,
        "created_at": isoformat_or_none(row.created_at),
    }


#
# Roster accessors
#

async def get_match_player_count_by_side(
    session: AsyncSession, match_id: int, team_side: str
) -> int:
    """Approved players on one side."""
    result = await session.execute(
        select(func.count(MatchPlayer.id)).where(
            and_(
                MatchPlayer.match_id == match_id,
                MatchPlayer.team_side == team_side,
                MatchPlayer.join_status == JoinStatus.APPROVED.value,
            )
        )
    )
    return result.scalar_one() or 0


async def get_match_players_by_side(
    session: AsyncSession, match_id: int, team_side: str
) -> List[Dict]:
    """Approved roster of one side, in join order."""
    result = await session.execute(
        select(MatchPlayer, Player)
        .join(Player, Player.id == MatchPlayer.player_id)
        .where(
            and_(
                MatchPlayer.match_id == match_id,
                MatchPlayer.team_side == team_side,
                MatchPlayer.join_status == JoinStatus.APPROVED.value,
            )
        )
        .order_by(MatchPlayer.id)
    )
    return [_roster_entry(row, player) for row, player in result.all()]


async def get_pending_join_requests(session: AsyncSession, match_id: int) -> List[Dict]:
    result = await session.execute(
        select(MatchPlayer, Player)
        .join(Player, Player.id == MatchPlayer.player_id)
        .where(
            and_(
                MatchPlayer.match_id == match_id,
                MatchPlayer.join_status == JoinStatus.PENDING.value,
            )
        )
        .order_by(MatchPlayer.id)
    )
    return [_roster_entry(row, player) for row, player in result.all()]


async def get_approved_player_ids(
    session: AsyncSession, match_id: int, team_side: Optional[str] = None
) -> List[int]:
    query = select(MatchPlayer.player_id).where(
        and_(
            MatchPlayer.match_id == match_id,
            MatchPlayer.join_status == JoinStatus.APPROVED.value,
        )
    )
    if team_side is not None:
        query = query.where(MatchPlayer.team_side == team_side)
    result = await session.execute(query.order_by(MatchPlayer.id))
    return list(result.scalars().all())


async def get_roster_row(
    session: AsyncSession, match_id: int, player_id: int
) -> Optional[MatchPlayer]:
    result = await session.execute(
        select(MatchPlayer)
        .where(and_(MatchPlayer.match_id == match_id, MatchPlayer.player_id == player_id))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_approved_entry(
    session: AsyncSession, match_id: int, player_id: int
) -> Optional[MatchPlayer]:
    row = await get_roster_row(session, match_id, player_id)
    if row is None or row.join_status != JoinStatus.APPROVED.value:
        return None
    return row


#
# Join flow
#

async def join_match(
    session: AsyncSession, match_id: int, player_id: int, team_id: int, team_side: str
) -> Dict:
    """
    Ask to play for one side of a match.

    Creates a pending roster row and notifies that side's captain.

    Raises:
        ValidationError: If team_side is not A or B
        NotFoundError: If the match or player does not exist
        ConflictError: Closed match, wrong side, duplicate request or full side
    """
    if team_side not in {s.value for s in TeamSide}:
        raise ValidationError("team_side must be 'A' or 'B'")

    await get_match_or_404(session, match_id)
    player = await get_player(session, player_id)
    if not player:
        raise NotFoundError("Create player profile first")

    await release_read_transaction(session)
    async with match_lock(match_id, ROSTER_SCOPE):
        match = await lock_match(session, match_id)
        if match.status in CLOSED_TO_JOINS:
            raise ConflictError("Match is not accepting players")
        if team_id is None or _side_team_id(match, team_side) != team_id:
            raise ConflictError("Team does not play on that side")
        if await get_roster_row(session, match_id, player_id):
            raise ConflictError("You have already requested to join this match")

        approved = await get_match_player_count_by_side(session, match_id, team_side)
        if approved >= match.max_players_per_team:
            raise ConflictError(f"Team {team_side} is full")

        row = MatchPlayer(
            match_id=match_id,
            player_id=player_id,
            team_id=team_id,
            team_side=team_side,
            join_status=JoinStatus.PENDING.value,
        )
        session.add(row)
        await session.flush()
        row_id = row.id
        await session.commit()

    logger.info(f"Player {player_id} asked to join match {match_id} on side {team_side}")

    team = await get_team(session, team_id)
    await notify_player(
        session,
        team.captain_id if team else None,
        NotificationType.JOIN_REQUEST.value,
        "New Join Request",
        f"{player.full_name} wants to join your team for this match",
        data={"match_id": match_id, "player_id": player_id, "team_side": team_side},
        link_url=match_link(match_id),
    )
    await session.commit()

    return {
        "id": row_id,
        "match_id": match_id,
        "player_id": player_id,
        "team_id": team_id,
        "team_side": team_side,
        "join_status": JoinStatus.PENDING.value,
    }


async def _resolve_join(
    session: AsyncSession,
    match_id: int,
    captain_player_id: int,
    player_id: int,
    approve: bool,
) -> Dict:
    await get_match_or_404(session, match_id)

    await release_read_transaction(session)
    async with match_lock(match_id, ROSTER_SCOPE):
        match = await lock_match(session, match_id)
        row = await get_roster_row(session, match_id, player_id)
        if not row:
            raise NotFoundError("Join request not found")

        captain = await get_player(session, captain_player_id)
        side_team = await get_team(session, _side_team_id(match, row.team_side))
        if not is_captain_of(captain, side_team) or side_team.id != row.team_id:
            raise PermissionDeniedError("Only the team captain can manage join requests")
        if row.join_status != JoinStatus.PENDING.value:
            raise ConflictError("Request is no longer pending")

        if approve:
            if match.status in CLOSED_TO_JOINS:
                raise ConflictError("Match is not accepting players")
            approved = await get_match_player_count_by_side(session, match_id, row.team_side)
            if approved >= match.max_players_per_team:
                raise ConflictError(f"Team {row.team_side} is full")
            row.join_status = JoinStatus.APPROVED.value
        else:
            row.join_status = JoinStatus.DECLINED.value

        team_side = row.team_side
        team_id = row.team_id
        await session.commit()

    logger.info(
        f"Captain {captain_player_id} {'approved' if approve else 'declined'} "
        f"player {player_id} for match {match_id}"
    )

    if approve:
        await notify_player(
            session,
            player_id,
            NotificationType.JOIN_APPROVED.value,
            "Join Request Approved",
            "You're in! Your request to join the match was approved",
            data={"match_id": match_id, "team_side": team_side},
            link_url=match_link(match_id),
        )
    else:
        await notify_player(
            session,
            player_id,
            NotificationType.JOIN_DECLINED.value,
            "Join Request Declined",
            "Your request to join the match was declined",
            data={"match_id": match_id, "team_side": team_side},
            link_url=match_link(match_id),
        )
    await session.commit()

    return {
        "match_id": match_id,
        "player_id": player_id,
        "team_id": team_id,
        "team_side": team_side,
        "join_status": JoinStatus.APPROVED.value if approve else JoinStatus.DECLINED.value,
    }


async def approve_join(
    session: AsyncSession, match_id: int, captain_player_id: int, player_id: int
) -> Dict:
    """
    Approve a pending join request.

    Capacity is checked again at approval time, inside the roster lane.

    Raises:
        NotFoundError: No such match or join request
        PermissionDeniedError: Caller does not captain the requested side
        ConflictError: Request already resolved, match closed or side full
    """
    return await _resolve_join(session, match_id, captain_player_id, player_id, approve=True)


async def decline_join(
    session: AsyncSession, match_id: int, captain_player_id: int, player_id: int
) -> Dict:
    """Decline a pending join request."""
    return await _resolve_join(session, match_id, captain_player_id, player_id, approve=False)


async def my_join_status(session: AsyncSession, match_id: int, player_id: int) -> Optional[Dict]:
    row = await get_roster_row(session, match_id, player_id)
    if row is None:
        return None
    return {
        "join_status": row.join_status,
        "team_side": row.team_side,
        "team_id": row.team_id,
    }
