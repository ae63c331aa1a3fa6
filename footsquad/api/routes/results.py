"""Score consensus, Man of the Match and rating route handlers."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from footsquad.api.routes import limiter, service_error
from footsquad.database.db import get_db_session
from footsquad.services import motm_service, player_service, rating_service, score_service
from footsquad.api.auth_dependencies import get_current_user_optional, require_player
from footsquad.models.schemas import (
    MotmResultsResponse,
    MotmVoteRequest,
    MotmVoteResponse,
    RatingResultsResponse,
    RatingSubmitRequest,
    RatingSubmitResponse,
    ScoreStatusResponse,
    ScoreSubmitRequest,
    ScoreSubmitResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


async def _optional_player_id(session: AsyncSession, user: Optional[dict]) -> Optional[int]:
    if not user:
        return None
    player = await player_service.get_player_by_user_id(session, user["id"])
    return player.id if player else None


@router.post("/api/matches/{match_id}/score", response_model=ScoreSubmitResponse)
@limiter.limit("30/minute")
async def submit_score(
    request: Request,
    match_id: int,
    payload: ScoreSubmitRequest,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Report the final score as one side's captain."""
    try:
        return await score_service.submit_score(
            session, match_id, user["player_id"], payload.score_a, payload.score_b
        )
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error submitting score for match {match_id}: {e}")
        raise HTTPException(status_code=500, detail="Error submitting score")


@router.get("/api/matches/{match_id}/score-status", response_model=ScoreStatusResponse)
async def get_score_status(
    match_id: int,
    user: Optional[dict] = Depends(get_current_user_optional),
    session: AsyncSession = Depends(get_db_session),
):
    """Score consensus progress; includes the caller's own report when a captain."""
    try:
        player_id = await _optional_player_id(session, user)
        return await score_service.get_score_status(session, match_id, player_id)
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error fetching score status for match {match_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching score status")


@router.post("/api/matches/{match_id}/motm/vote", response_model=MotmVoteResponse)
async def vote_motm(
    match_id: int,
    payload: MotmVoteRequest,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Vote for the Man of the Match."""
    try:
        return await motm_service.vote(session, match_id, user["player_id"], payload.voted_player_id)
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error voting MOTM for match {match_id}: {e}")
        raise HTTPException(status_code=500, detail="Error recording vote")


@router.get("/api/matches/{match_id}/motm", response_model=MotmResultsResponse)
async def get_motm_results(
    match_id: int,
    user: Optional[dict] = Depends(get_current_user_optional),
    session: AsyncSession = Depends(get_db_session),
):
    """Vote counts, current leaders and the winner once decided."""
    try:
        results = await motm_service.get_motm_results(session, match_id)
        player_id = await _optional_player_id(session, user)
        if player_id is not None:
            results["has_voted"] = await motm_service.has_voted(session, match_id, player_id)
        return results
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error fetching MOTM results for match {match_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching MOTM results")


@router.post("/api/matches/{match_id}/ratings", response_model=RatingSubmitResponse)
@limiter.limit("10/minute")
async def submit_ratings(
    request: Request,
    match_id: int,
    payload: RatingSubmitRequest,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Rate opponents from a completed match within the rating budget."""
    try:
        return await rating_service.submit_ratings(
            session,
            match_id,
            user["player_id"],
            [item.model_dump() for item in payload.ratings],
        )
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error submitting ratings for match {match_id}: {e}")
        raise HTTPException(status_code=500, detail="Error submitting ratings")


@router.get("/api/matches/{match_id}/ratings", response_model=RatingResultsResponse)
async def get_ratings(
    match_id: int,
    user: Optional[dict] = Depends(get_current_user_optional),
    session: AsyncSession = Depends(get_db_session),
):
    """Per-player rating averages; the caller also gets their budget."""
    try:
        response = {
            "match_id": match_id,
            "results": await rating_service.get_rating_results(session, match_id),
        }
        player_id = await _optional_player_id(session, user)
        if player_id is not None:
            budget = await rating_service.get_rating_budget(session, match_id, player_id)
            response["has_rated"] = await rating_service.has_rated(session, match_id, player_id)
            response["opponent_count"] = budget["opponent_count"]
            response["max_budget"] = budget["max_budget"]
        return response
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error fetching ratings for match {match_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching ratings")
