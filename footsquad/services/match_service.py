"""
Match service: creation, cancellation and the aggregated match view.

Also hosts the match accessors shared by the negotiation, roster, score,
MOTM, rating and points services.
"""

from datetime import datetime
from typing import Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_, or_
from footsquad.database.models import (
    Match,
    MatchFormat,
    MatchPlayer,
    MatchRequest,
    MatchRequestStatus,
    MatchStatus,
    MatchType,
    NotificationType,
)
from footsquad.services.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from footsquad.services.lock_service import match_lock, OPPONENT_SCOPE
from footsquad.services.notification_service import notify_players
from footsquad.services.player_service import get_player
from footsquad.services.team_service import get_team, is_captain_of, team_summary
from footsquad.utils.constants import FORMAT_PLAYERS_PER_TEAM, DEFAULT_PLAYERS_PER_TEAM
from footsquad.utils.datetime_utils import utcnow, isoformat_or_none
import logging

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = {MatchStatus.PENDING.value, MatchStatus.CONFIRMED.value}
PUBLIC_FEED_LIMIT = 50
UPCOMING_FEED_LIMIT = 10


def match_link(match_id: int) -> str:
    return f"/matches/{match_id}"


def match_to_dict(match: Match) -> Dict:
    return {
        "id": match.id,
        "type": match.type,
        "status": match.status,
        "city": match.city,
        "pitch_name": match.pitch_name,
        "match_date": isoformat_or_none(match.match_date),
        "format": match.format,
        "max_players_per_team": match.max_players_per_team,
        "team_a_id": match.team_a_id,
        "team_b_id": match.team_b_id,
        "score_a": match.score_a,
        "score_b": match.score_b,
        "score_conflict": match.score_conflict,
        "score_conflict_count": match.score_conflict_count,
        "motm_voting_open": match.motm_voting_open,
        "motm_winner_id": match.motm_winner_id,
        "points_awarded": match.points_awarded,
        "created_by": match.created_by,
        "created_at": isoformat_or_none(match.created_at),
        "updated_at": isoformat_or_none(match.updated_at),
    }


async def get_match(session: AsyncSession, match_id: int) -> Optional[Match]:
    result = await session.execute(select(Match).where(Match.id == match_id))
    return result.scalar_one_or_none()


async def get_match_or_404(session: AsyncSession, match_id: int) -> Match:
    match = await get_match(session, match_id)
    if not match:
        raise NotFoundError("Match not found")
    return match


async def lock_match(session: AsyncSession, match_id: int) -> Match:
    """
    Re-read a match with SELECT ... FOR UPDATE.

    populate_existing makes the identity-map copy reflect the locked row, so
    callers always validate against the latest committed state.
    """
    result = await session.execute(
        select(Match)
        .where(Match.id == match_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    match = result.scalar_one_or_none()
    if not match:
        raise NotFoundError("Match not found")
    return match


async def release_read_transaction(session: AsyncSession) -> None:
    """
    End the read-only transaction left open by lookups made before a lane.

    A session queueing for a match lane must hold no database locks: the
    current lane holder may need them to commit.
    """
    if session.in_transaction():
        await session.commit()


async def create_match(
    session: AsyncSession,
    player_id: int,
    type: str,
    city: Optional[str],
    pitch_name: Optional[str],
    match_date: Optional[datetime],
    format: str,
    max_players_per_team: Optional[int] = None,
) -> Dict:
    """
    Create a pending match for the caller's team.

    The caller's team becomes team A. Team B stays empty until negotiation
    binds an opponent.

    Raises:
        ValidationError: Unknown type/format or a non-positive roster size
        NotFoundError: If the caller has no player profile
        PermissionDeniedError: If the caller does not captain a team
    """
    if type not in {t.value for t in MatchType}:
        raise ValidationError(f"Invalid match type: {type}")
    if format not in {f.value for f in MatchFormat}:
        raise ValidationError(f"Invalid match format: {format}")
    if max_players_per_team is None:
        max_players_per_team = FORMAT_PLAYERS_PER_TEAM.get(format, DEFAULT_PLAYERS_PER_TEAM)
    if max_players_per_team < 1:
        raise ValidationError("max_players_per_team must be at least 1")

    player = await get_player(session, player_id)
    if not player:
        raise NotFoundError("Create player profile first")
    team = await get_team(session, player.team_id)
    if not is_captain_of(player, team):
        raise PermissionDeniedError("Only team captains can create matches")

    match = Match(
        type=type,
        status=MatchStatus.PENDING.value,
        city=city,
        pitch_name=pitch_name,
        match_date=match_date,
        format=format,
        max_players_per_team=max_players_per_team,
        team_a_id=team.id,
        team_b_id=None,
        score_conflict=False,
        score_conflict_count=0,
        motm_voting_open=False,
        points_awarded=False,
        created_by=player.id,
    )
    session.add(match)
    await session.flush()
    await session.refresh(match)

    logger.info(f"Team {team.id} created {type} match {match.id}")
    return match_to_dict(match)


async def cancel_match(session: AsyncSession, match_id: int, player_id: int) -> Dict:
    """
    Cancel a pending or confirmed match.

    Only the creating team's captain may cancel. Pending opponent requests are
    rejected; the opponent captain and approved participants are notified.

    Raises:
        NotFoundError: If the match does not exist
        PermissionDeniedError: If the caller does not captain team A
        ConflictError: If the match has already been played or cancelled
    """
    from footsquad.services.roster_service import get_approved_player_ids

    await get_match_or_404(session, match_id)
    await release_read_transaction(session)
    async with match_lock(match_id, OPPONENT_SCOPE):
        match = await lock_match(session, match_id)
        player = await get_player(session, player_id)
        team_a = await get_team(session, match.team_a_id)
        if not is_captain_of(player, team_a):
            raise PermissionDeniedError("Only the match creator's captain can cancel the match")
        if match.status not in CANCELLABLE_STATUSES:
            raise ConflictError("Match can no longer be cancelled")

        now = utcnow()
        match.status = MatchStatus.CANCELLED.value
        await session.execute(
            update(MatchRequest)
            .where(
                and_(
                    MatchRequest.match_id == match_id,
                    MatchRequest.status == MatchRequestStatus.PENDING.value,
                )
            )
            .values(status=MatchRequestStatus.REJECTED.value, responded_at=now)
        )
        await session.commit()

    logger.info(f"Match {match_id} cancelled by player {player_id}")

    recipients = [pid for pid in await get_approved_player_ids(session, match_id) if pid != player_id]
    team_b = await get_team(session, match.team_b_id)
    if team_b is not None and team_b.captain_id != player_id:
        recipients.append(team_b.captain_id)
    await notify_players(
        session,
        recipients,
        NotificationType.MATCH_CANCELLED.value,
        "Match Cancelled",
        f"The match at {match.pitch_name or 'the pitch'} has been cancelled",
        data={"match_id": match_id},
        link_url=match_link(match_id),
    )
    await session.commit()
    return match_to_dict(match)


async def get_match_view(session: AsyncSession, match_id: int) -> Dict:
    """
    Aggregated match for display.

    Includes both team summaries, the roster split by side (approved rows),
    the pending join queue, live approved counts per side and the pending
    opponent requests.
    """
    from footsquad.services.roster_service import (
        get_match_players_by_side,
        get_pending_join_requests,
    )
    from footsquad.services.negotiation_service import get_match_requests

    match = await get_match_or_404(session, match_id)
    team_a = await get_team(session, match.team_a_id)
    team_b = await get_team(session, match.team_b_id)
    roster_a = await get_match_players_by_side(session, match_id, "A")
    roster_b = await get_match_players_by_side(session, match_id, "B")

    return {
        **match_to_dict(match),
        "team_a": team_summary(team_a),
        "team_b": team_summary(team_b),
        "roster_a": roster_a,
        "roster_b": roster_b,
        "count_a": len(roster_a),
        "count_b": len(roster_b),
        "pending_requests": await get_pending_join_requests(session, match_id),
        "opponent_requests": await get_match_requests(
            session, match_id, MatchRequestStatus.PENDING.value
        ),
    }


async def get_public_matches(session: AsyncSession, city: Optional[str] = None) -> List[Dict]:
    """
    Public matches that are still ahead and not cancelled, newest first.

    Matches without a date are listed too.
    """
    conditions = [
        Match.type == MatchType.PUBLIC.value,
        Match.status != MatchStatus.CANCELLED.value,
        or_(Match.match_date.is_(None), Match.match_date >= utcnow()),
    ]
    if city:
        conditions.append(Match.city == city)

    result = await session.execute(
        select(Match)
        .where(and_(*conditions))
        .order_by(Match.created_at.desc(), Match.id.desc())
        .limit(PUBLIC_FEED_LIMIT)
    )
    return await _with_teams(session, result.scalars().all())


async def _with_teams(session: AsyncSession, matches: List[Match]) -> List[Dict]:
    feed = []
    for match in matches:
        team_a = await get_team(session, match.team_a_id)
        team_b = await get_team(session, match.team_b_id)
        feed.append(
            {
                **match_to_dict(match),
                "team_a": team_summary(team_a),
                "team_b": team_summary(team_b),
            }
        )
    return feed


async def get_upcoming_matches(session: AsyncSession, city: Optional[str] = None) -> List[Dict]:
    """Confirmed fixtures with both teams bound, soonest first."""
    conditions = [
        Match.status == MatchStatus.CONFIRMED.value,
        Match.team_b_id.isnot(None),
        Match.match_date >= utcnow(),
    ]
    if city:
        conditions.append(Match.city == city)

    result = await session.execute(
        select(Match)
        .where(and_(*conditions))
        .order_by(Match.match_date.asc(), Match.id)
        .limit(UPCOMING_FEED_LIMIT)
    )
    return await _with_teams(session, result.scalars().all())


async def get_player_matches(
    session: AsyncSession, player_id: int, upcoming_only: bool = False
) -> List[Dict]:
    """
    The player's own matches: those they created and those they have a
    roster row in, whatever its join status. Cancelled matches are left out.

    Args:
        session: Database session
        player_id: Player whose matches to list
        upcoming_only: Keep only matches still to be played

    Returns:
        Matches with team summaries, latest kick-off first; undated matches last
    """
    rostered = select(MatchPlayer.match_id).where(MatchPlayer.player_id == player_id)
    conditions = [
        or_(Match.created_by == player_id, Match.id.in_(rostered)),
        Match.status != MatchStatus.CANCELLED.value,
    ]
    if upcoming_only:
        conditions.append(Match.status.in_(sorted(CANCELLABLE_STATUSES)))
        conditions.append(or_(Match.match_date.is_(None), Match.match_date >= utcnow()))

    result = await session.execute(
        select(Match)
        .where(and_(*conditions))
        .order_by(Match.match_date.is_(None), Match.match_date.desc(), Match.id.desc())
    )
    return await _with_teams(session, result.scalars().all())
