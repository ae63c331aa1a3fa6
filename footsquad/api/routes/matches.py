"""Match creation, view and opponent negotiation route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from footsquad.api.routes import limiter, service_error
from footsquad.database.db import get_db_session
from footsquad.services import match_service, negotiation_service
from footsquad.api.auth_dependencies import require_player
from footsquad.models.schemas import (
    InviteTeamRequest,
    MatchCreate,
    MatchDetailResponse,
    MatchRequestResponse,
    MatchResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/matches", response_model=MatchResponse, status_code=201)
@limiter.limit("20/minute")
async def create_match(
    request: Request,
    payload: MatchCreate,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a pending match for the caller's team (captains only)."""
    try:
        return await match_service.create_match(
            session,
            user["player_id"],
            payload.type,
            payload.city,
            payload.pitch_name,
            payload.match_date,
            payload.format,
            payload.max_players_per_team,
        )
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error creating match: {e}")
        raise HTTPException(status_code=500, detail="Error creating match")


@router.get("/api/matches/public", response_model=List[MatchResponse])
async def get_public_matches(
    city: Optional[str] = None,
    session: AsyncSession = Depends(get_db_session),
):
    """Public matches that are still ahead, newest first."""
    try:
        return await match_service.get_public_matches(session, city)
    except Exception as e:
        logger.error(f"Error fetching public matches: {e}")
        raise HTTPException(status_code=500, detail="Error fetching public matches")


@router.get("/api/matches/upcoming", response_model=List[MatchResponse])
async def get_upcoming_matches(
    city: Optional[str] = None,
    session: AsyncSession = Depends(get_db_session),
):
    """Confirmed fixtures with both teams bound, soonest first."""
    try:
        return await match_service.get_upcoming_matches(session, city)
    except Exception as e:
        logger.error(f"Error fetching upcoming matches: {e}")
        raise HTTPException(status_code=500, detail="Error fetching upcoming matches")


@router.get("/api/matches/mine", response_model=List[MatchResponse])
async def get_my_matches(
    upcoming: bool = False,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Matches the caller created or has a roster row in."""
    try:
        return await match_service.get_player_matches(session, user["player_id"], upcoming_only=upcoming)
    except Exception as e:
        logger.error(f"Error fetching matches for player {user['player_id']}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching matches")


@router.get("/api/matches/{match_id}", response_model=MatchDetailResponse)
async def get_match(match_id: int, session: AsyncSession = Depends(get_db_session)):
    """Match with both rosters, live counts and pending queues."""
    try:
        return await match_service.get_match_view(session, match_id)
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error fetching match {match_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching match")


@router.post("/api/matches/{match_id}/cancel", response_model=MatchResponse)
async def cancel_match(
    match_id: int,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Cancel a pending or confirmed match (creator's captain only)."""
    try:
        return await match_service.cancel_match(session, match_id, user["player_id"])
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error cancelling match {match_id}: {e}")
        raise HTTPException(status_code=500, detail="Error cancelling match")


@router.post("/api/matches/{match_id}/invite", response_model=MatchRequestResponse, status_code=201)
async def invite_team(
    match_id: int,
    payload: InviteTeamRequest,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Invite a team to a friendly match."""
    try:
        return await negotiation_service.invite_team(
            session, match_id, user["player_id"], payload.team_id
        )
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error inviting team to match {match_id}: {e}")
        raise HTTPException(status_code=500, detail="Error inviting team")


@router.post(
    "/api/matches/{match_id}/request-to-play",
    response_model=MatchRequestResponse,
    status_code=201,
)
async def request_to_play(
    match_id: int,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Challenge a public match with the caller's team."""
    try:
        return await negotiation_service.request_to_play(session, match_id, user["player_id"])
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error requesting to play match {match_id}: {e}")
        raise HTTPException(status_code=500, detail="Error sending challenge request")


@router.get("/api/matches/{match_id}/requests", response_model=List[MatchRequestResponse])
async def get_match_requests(
    match_id: int,
    status: Optional[str] = None,
    session: AsyncSession = Depends(get_db_session),
):
    """Opponent requests for a match, newest first."""
    try:
        await match_service.get_match_or_404(session, match_id)
        return await negotiation_service.get_match_requests(session, match_id, status)
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error fetching requests for match {match_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching match requests")


@router.post("/api/match-requests/{request_id}/accept", response_model=MatchRequestResponse)
async def accept_match_request(
    request_id: int,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Accept an invitation or challenge; binds the match opponent."""
    try:
        return await negotiation_service.accept_request(session, request_id, user["player_id"])
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error accepting match request {request_id}: {e}")
        raise HTTPException(status_code=500, detail="Error accepting match request")


@router.post("/api/match-requests/{request_id}/decline", response_model=MatchRequestResponse)
async def decline_match_request(
    request_id: int,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Decline an invitation or challenge."""
    try:
        return await negotiation_service.decline_request(session, request_id, user["player_id"])
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error declining match request {request_id}: {e}")
        raise HTTPException(status_code=500, detail="Error declining match request")
