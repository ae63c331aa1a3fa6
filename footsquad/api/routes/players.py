"""Player profile and team route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from footsquad.api.routes import service_error
from footsquad.database.db import get_db_session
from footsquad.services import player_service, team_service
from footsquad.api.auth_dependencies import require_user, require_player
from footsquad.models.schemas import (
    AddTeamPlayerRequest,
    PlayerCreate,
    PlayerResponse,
    TeamCreate,
    TeamDetail,
    TeamSummary,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/players", response_model=PlayerResponse, status_code=201)
async def create_player(
    payload: PlayerCreate,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Create the caller's player profile."""
    try:
        return await player_service.create_player(
            session, user["id"], payload.full_name, payload.city, payload.position
        )
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error creating player: {e}")
        raise HTTPException(status_code=500, detail="Error creating player")


@router.get("/api/players/me", response_model=PlayerResponse)
async def get_my_player(
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Get the caller's player profile with season counters."""
    player = await player_service.get_player(session, user["player_id"])
    return player_service.player_to_dict(player)


@router.post("/api/teams", response_model=TeamDetail, status_code=201)
async def create_team(
    payload: TeamCreate,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a team; the caller becomes its captain."""
    try:
        team = await team_service.create_team(session, user["player_id"], payload.name, payload.city)
        return await team_service.get_team_detail(session, team["id"])
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error creating team: {e}")
        raise HTTPException(status_code=500, detail="Error creating team")


@router.get("/api/teams/search", response_model=List[TeamSummary])
async def search_teams(
    q: Optional[str] = None,
    city: Optional[str] = None,
    session: AsyncSession = Depends(get_db_session),
):
    """Teams whose name contains ``q``, optionally filtered by city."""
    try:
        return await team_service.search_teams(session, q, city)
    except Exception as e:
        logger.error(f"Error searching teams: {e}")
        raise HTTPException(status_code=500, detail="Error searching teams")


@router.post("/api/teams/leave", response_model=PlayerResponse)
async def leave_team(
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Leave the caller's team; captains cannot leave."""
    try:
        return await team_service.leave_team(session, user["player_id"])
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error leaving team: {e}")
        raise HTTPException(status_code=500, detail="Error leaving team")


@router.get("/api/teams/{team_id}", response_model=TeamDetail)
async def get_team(team_id: int, session: AsyncSession = Depends(get_db_session)):
    """Get a team with its members."""
    try:
        return await team_service.get_team_detail(session, team_id)
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error fetching team {team_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching team")


@router.post("/api/teams/{team_id}/join", response_model=PlayerResponse)
async def join_team(
    team_id: int,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Join a team as a regular member."""
    try:
        return await team_service.join_team(session, user["player_id"], team_id)
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error joining team {team_id}: {e}")
        raise HTTPException(status_code=500, detail="Error joining team")


@router.post("/api/teams/{team_id}/players", response_model=PlayerResponse, status_code=201)
async def add_team_player(
    team_id: int,
    payload: AddTeamPlayerRequest,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Captain adds a teamless player to the team."""
    try:
        return await team_service.add_player(session, user["player_id"], team_id, payload.player_id)
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error adding player to team {team_id}: {e}")
        raise HTTPException(status_code=500, detail="Error adding player")


@router.delete("/api/teams/{team_id}/players/{player_id}", response_model=PlayerResponse)
async def remove_team_player(
    team_id: int,
    player_id: int,
    user: dict = Depends(require_player),
    session: AsyncSession = Depends(get_db_session),
):
    """Captain removes a member from the team."""
    try:
        return await team_service.remove_player(session, user["player_id"], team_id, player_id)
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error removing player {player_id} from team {team_id}: {e}")
        raise HTTPException(status_code=500, detail="Error removing player")
