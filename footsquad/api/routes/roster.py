"""Match roster (join / approve / decline) route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from footsquad.api.routes import service_error
from footsquad.database.db import get_db_session
from footsquad.services import match_service, roster_service
from footsquad.api.auth_dependencies import require_player
from footsquad.models.schemas import (
    JoinDecisionResponse,
    JoinMatchRequest,
    JoinStatusResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/matches/{match_id}/join", response_model=JoinDecisionResponse, status_code=201)
async def join_match(
    match_id: int,
    payload: JoinMatchRequest,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Ask to play for one side of a match; the side's captain decides."""
    try:
        return await roster_service.join_match(
            session, match_id, user["player_id"], payload.team_id, payload.team_side
        )
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error joining match {match_id}: {e}")
        raise HTTPException(status_code=500, detail="Error joining match")


@router.get("/api/matches/{match_id}/join-status", response_model=JoinStatusResponse)
async def get_join_status(
    match_id: int,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """The caller's own roster row for a match (all fields null when none)."""
    try:
        await match_service.get_match_or_404(session, match_id)
        status = await roster_service.my_join_status(session, match_id, user["player_id"])
        return status or {}
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error fetching join status for match {match_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching join status")


@router.post(
    "/api/matches/{match_id}/players/{player_id}/approve", response_model=JoinDecisionResponse
)
async def approve_join(
    match_id: int,
    player_id: int,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Approve a pending join request (side captain only)."""
    try:
        return await roster_service.approve_join(session, match_id, user["player_id"], player_id)
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error approving player {player_id} for match {match_id}: {e}")
        raise HTTPException(status_code=500, detail="Error approving join request")


@router.post(
    "/api/matches/{match_id}/players/{player_id}/decline", response_model=JoinDecisionResponse
)
async def decline_join(
    match_id: int,
    player_id: int,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Decline a pending join request (side captain only)."""
    try:
        return await roster_service.decline_join(session, match_id, user["player_id"], player_id)
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error declining player {player_id} for match {match_id}: {e}")
        raise HTTPException(status_code=500, detail="Error declining join request")
