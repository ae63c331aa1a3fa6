"""
Match negotiation: how a pending match finds its opponent.

Friendly matches: team A's captain invites a specific team.
Public matches: any other captain challenges (requests to play).

Both paths end in accept_request, which binds team B exactly once. The
binding runs in the per-match opponent lane, locks the match row and writes
team_b_id with a conditional UPDATE, so of two concurrent accepts only the
first succeeds and the second sees "Match already has a confirmed opponent".
"""

from typing import Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_
from footsquad.database.models import (
    Match,
    MatchRequest,
    MatchRequestDirection,
    MatchRequestStatus,
    MatchStatus,
    MatchType,
    NotificationType,
    Team,
)
from footsquad.services.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
)
from footsquad.services.lock_service import match_lock, OPPONENT_SCOPE
from footsquad.services.match_service import (
    get_match_or_404,
    lock_match,
    match_link,
    release_read_transaction,
)
from footsquad.services.notification_service import notify_player, notify_team_captain
from footsquad.services.player_service import get_player
from footsquad.services.team_service import get_team, is_captain_of, team_summary
from footsquad.utils.datetime_utils import utcnow, isoformat_or_none
import logging

logger = logging.getLogger(__name__)


def _request_to_dict(request: MatchRequest, team: Optional[Team] = None) -> Dict:
    return {
        "id": request.id,
        "match_id": request.match_id,
        "team_id": request.team_id,
        "direction": request.direction,
        "status": request.status,
        "created_at": isoformat_or_none(request.created_at),
        "responded_at": isoformat_or_none(request.responded_at),
        "team": team_summary(team),
    }


async def _get_request(session: AsyncSession, request_id: int) -> MatchRequest:
    result = await session.execute(
        select(MatchRequest)
        .where(MatchRequest.id == request_id)
        .execution_options(populate_existing=True)
    )
    request = result.scalar_one_or_none()
    if not request:
        raise NotFoundError("Match request not found")
    return request


async def _has_pending_request(session: AsyncSession, match_id: int, team_id: int) -> bool:
    result = await session.execute(
        select(MatchRequest.id).where(
            and_(
                MatchRequest.match_id == match_id,
                MatchRequest.team_id == team_id,
                MatchRequest.status == MatchRequestStatus.PENDING.value,
            )
        )
    )
    return result.first() is not None


async def _create_request(
    session: AsyncSession, match_id: int, team_id: int, direction: MatchRequestDirection
) -> MatchRequest:
    request = MatchRequest(
        match_id=match_id,
        team_id=team_id,
        direction=direction.value,
        status=MatchRequestStatus.PENDING.value,
    )
    session.add(request)
    await session.flush()
    await session.refresh(request)
    return request


async def invite_team(
    session: AsyncSession, match_id: int, captain_player_id: int, team_id: int
) -> Dict:
    """
    Invite a team to a friendly match.

    Raises:
        NotFoundError: Match or target team does not exist
        PermissionDeniedError: Caller is not team A's captain
        ConflictError: Not a friendly, opponent already bound, own team, duplicate invite
    """
    await get_match_or_404(session, match_id)

    await release_read_transaction(session)
    async with match_lock(match_id, OPPONENT_SCOPE):
        match = await lock_match(session, match_id)
        if match.type != MatchType.FRIENDLY.value:
            raise ConflictError("Only friendly matches can be invited")

        captain = await get_player(session, captain_player_id)
        team_a = await get_team(session, match.team_a_id)
        if not is_captain_of(captain, team_a):
            raise PermissionDeniedError("Only the match creator's captain can invite teams")
        if match.team_b_id is not None:
            raise ConflictError("Match already has a confirmed opponent")
        if match.status != MatchStatus.PENDING.value:
            raise ConflictError("Match is no longer accepting opponents")

        target = await get_team(session, team_id)
        if not target:
            raise NotFoundError("Team not found")
        if target.id == match.team_a_id:
            raise ConflictError("Cannot invite your own team")
        if await _has_pending_request(session, match_id, target.id):
            raise ConflictError("This team already has a pending invite")

        request = await _create_request(session, match_id, target.id, MatchRequestDirection.INVITE)
        request_dict = _request_to_dict(request, target)
        await session.commit()

    logger.info(f"Team {match.team_a_id} invited team {team_id} to match {match_id}")

    await notify_player(
        session,
        target.captain_id,
        NotificationType.MATCH_INVITE.value,
        "Friendly Match Invitation",
        f"{team_a.name} invited your team to a friendly match",
        data={"match_id": match_id, "request_id": request_dict["id"]},
        link_url=match_link(match_id),
    )
    await session.commit()
    return request_dict


async def request_to_play(session: AsyncSession, match_id: int, captain_player_id: int) -> Dict:
    """
    Challenge a public match on behalf of the caller's team.

    Raises:
        NotFoundError: Match does not exist
        PermissionDeniedError: Caller does not captain a team
        ConflictError: Not public, opponent already bound, own match, duplicate
    """
    await get_match_or_404(session, match_id)

    await release_read_transaction(session)
    async with match_lock(match_id, OPPONENT_SCOPE):
        match = await lock_match(session, match_id)
        captain = await get_player(session, captain_player_id)
        team = await get_team(session, captain.team_id if captain else None)
        if not is_captain_of(captain, team):
            raise PermissionDeniedError("Only captains can request to play")
        if match.type != MatchType.PUBLIC.value:
            raise ConflictError("Only public matches accept challenge requests")
        if match.team_b_id is not None:
            raise ConflictError("Match already has an opponent")
        if team.id == match.team_a_id:
            raise ConflictError("Cannot request to play against your own team")
        if match.status != MatchStatus.PENDING.value:
            raise ConflictError("Match is no longer accepting opponents")
        if await _has_pending_request(session, match_id, team.id):
            raise ConflictError("Request already sent")

        request = await _create_request(
            session, match_id, team.id, MatchRequestDirection.CHALLENGE
        )
        request_dict = _request_to_dict(request, team)
        await session.commit()

    logger.info(f"Team {team.id} challenged match {match_id}")

    await notify_player(
        session,
        match.created_by,
        NotificationType.PLAY_REQUEST.value,
        "New Challenge Request",
        f"{team.name} wants to play your match",
        data={"match_id": match_id, "request_id": request_dict["id"], "team_id": team.id},
        link_url=match_link(match_id),
    )
    await session.commit()
    return request_dict


async def _authorize_response(
    session: AsyncSession, request: MatchRequest, match: Match, captain_player_id: int
) -> None:
    """Invites are answered by the invited captain, challenges by team A's captain."""
    captain = await get_player(session, captain_player_id)
    if request.direction == MatchRequestDirection.INVITE.value:
        invited = await get_team(session, request.team_id)
        if not is_captain_of(captain, invited):
            raise PermissionDeniedError("Only the invited team's captain can respond")
    else:
        team_a = await get_team(session, match.team_a_id)
        if not is_captain_of(captain, team_a):
            raise PermissionDeniedError("Only the match creator's captain can respond to challenges")


def _other_party(request: MatchRequest, match: Match) -> int:
    """Team to tell about the answer: the creator for invites, the challenger otherwise."""
    if request.direction == MatchRequestDirection.INVITE.value:
        return match.team_a_id
    return request.team_id


async def accept_request(session: AsyncSession, request_id: int, captain_player_id: int) -> Dict:
    """
    Accept an invitation or challenge and bind the match's opponent.

    Every other pending request for the match is rejected in the same
    transaction.

    Raises:
        NotFoundError: Request or match does not exist
        PermissionDeniedError: Caller may not answer this request
        ConflictError: Opponent already bound (also for race losers), request
            already answered, or match no longer pending
    """
    match_id = (await _get_request(session, request_id)).match_id

    await release_read_transaction(session)
    async with match_lock(match_id, OPPONENT_SCOPE):
        match = await lock_match(session, match_id)
        request = await _get_request(session, request_id)
        await _authorize_response(session, request, match, captain_player_id)

        if match.team_b_id is not None:
            raise ConflictError("Match already has a confirmed opponent")
        if request.status != MatchRequestStatus.PENDING.value:
            raise ConflictError("Request is no longer pending")
        if match.status != MatchStatus.PENDING.value:
            raise ConflictError("Match is no longer accepting opponents")

        now = utcnow()
        bound = await session.execute(
            update(Match)
            .where(and_(Match.id == match_id, Match.team_b_id.is_(None)))
            .values(
                team_b_id=request.team_id,
                status=MatchStatus.CONFIRMED.value,
                updated_at=now,
            )
        )
        if bound.rowcount != 1:
            raise ConflictError("Match already has a confirmed opponent")

        request.status = MatchRequestStatus.ACCEPTED.value
        request.responded_at = now

        siblings_result = await session.execute(
            select(MatchRequest).where(
                and_(
                    MatchRequest.match_id == match_id,
                    MatchRequest.id != request_id,
                    MatchRequest.status == MatchRequestStatus.PENDING.value,
                )
            )
        )
        siblings = siblings_result.scalars().all()
        for sibling in siblings:
            sibling.status = MatchRequestStatus.REJECTED.value
            sibling.responded_at = now
        rejected_team_ids = [sibling.team_id for sibling in siblings]

        await session.flush()
        request_dict = _request_to_dict(request, await get_team(session, request.team_id))
        await session.commit()

    logger.info(
        f"Match {match_id} bound to team {request.team_id} via request {request_id}; "
        f"rejected {len(rejected_team_ids)} other request(s)"
    )

    if request.direction == MatchRequestDirection.INVITE.value:
        title, message = "Invitation Accepted", "Your friendly match invitation was accepted"
    else:
        title, message = "Challenge Accepted!", "Your challenge was accepted. The match is on!"
    await notify_team_captain(
        session,
        _other_party(request, match),
        NotificationType.PLAY_REQUEST_ACCEPTED.value,
        title,
        message,
        data={"match_id": match_id, "request_id": request_id},
        link_url=match_link(match_id),
    )
    for team_id in rejected_team_ids:
        await notify_team_captain(
            session,
            team_id,
            NotificationType.PLAY_REQUEST_DECLINED.value,
            "Request Declined",
            "The match found another opponent",
            data={"match_id": match_id},
            link_url=match_link(match_id),
        )
    await session.commit()
    return request_dict


async def decline_request(session: AsyncSession, request_id: int, captain_player_id: int) -> Dict:
    """
    Decline an invitation or challenge.

    Raises:
        NotFoundError: Request or match does not exist
        PermissionDeniedError: Caller may not answer this request
        ConflictError: Request already answered
    """
    match_id = (await _get_request(session, request_id)).match_id

    await release_read_transaction(session)
    async with match_lock(match_id, OPPONENT_SCOPE):
        match = await lock_match(session, match_id)
        request = await _get_request(session, request_id)
        await _authorize_response(session, request, match, captain_player_id)
        if request.status != MatchRequestStatus.PENDING.value:
            raise ConflictError("Request is no longer pending")

        request.status = MatchRequestStatus.REJECTED.value
        request.responded_at = utcnow()
        await session.flush()
        request_dict = _request_to_dict(request, await get_team(session, request.team_id))
        await session.commit()

    logger.info(f"Request {request_id} for match {match_id} declined by player {captain_player_id}")

    if request.direction == MatchRequestDirection.INVITE.value:
        message = "Your friendly match invitation was declined"
    else:
        message = "Your challenge request was declined"
    await notify_team_captain(
        session,
        _other_party(request, match),
        NotificationType.PLAY_REQUEST_DECLINED.value,
        "Request Declined",
        message,
        data={"match_id": match_id, "request_id": request_id},
        link_url=match_link(match_id),
    )
    await session.commit()
    return request_dict


async def get_match_requests(
    session: AsyncSession, match_id: int, status: Optional[str] = None
) -> List[Dict]:
    """Opponent requests for a match with team summaries, newest first."""
    query = (
        select(MatchRequest, Team)
        .join(Team, Team.id == MatchRequest.team_id)
        .where(MatchRequest.match_id == match_id)
    )
    if status is not None:
        query = query.where(MatchRequest.status == status)
    result = await session.execute(
        query.order_by(MatchRequest.created_at.desc(), MatchRequest.id.desc())
    )
    return [_request_to_dict(request, team) for request, team in result.all()]
