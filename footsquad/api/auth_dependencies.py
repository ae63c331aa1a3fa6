"""
Authentication dependencies for FastAPI routes.

Match engine operations act on behalf of a player, so most mutating routes
depend on require_player, which resolves the bearer token to a verified user
and then to that user's player profile.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from footsquad.services import auth_service, user_service, player_service
from footsquad.database.db import get_db_session

security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _user_from_token(session: AsyncSession, token: str) -> dict:
    payload = auth_service.verify_token(token)
    if payload is None:
        raise _unauthorized("Invalid authentication token")

    try:
        user_id = int(payload["user_id"])
    except (KeyError, TypeError, ValueError):
        raise _unauthorized("Invalid token payload")

    user = await user_service.get_user_by_id(session, user_id)
    if user is None:
        # First request from this account
        user = await user_service.provision_user(session, user_id, payload)
    return user


async def get_current_user(
    session: AsyncSession = Depends(get_db_session),
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    Dependency to get the current authenticated user from JWT token.

    Raises:
        HTTPException: 401 if the token is invalid
    """
    return await _user_from_token(session, credentials.credentials)


async def get_current_user_optional(
    session: AsyncSession = Depends(get_db_session),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
) -> Optional[dict]:
    """Anonymous readers get None; match views personalise only when known."""
    if credentials is None:
        return None
    try:
        return await _user_from_token(session, credentials.credentials)
    except HTTPException:
        return None


async def require_user(user: dict = Depends(get_current_user)) -> dict:
    """Inbox routes only need an account, not a player profile."""
    return user


async def require_player(
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
) -> dict:
    """
    Require a verified user who owns a player profile.

    Returns the user fields plus ``player_id``, the id every match engine
    service takes as its acting player.
    """
    if not user.get("is_verified"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account verification required")

    player = await player_service.get_player_by_user_id(session, user["id"])
    if player is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Player profile required")

    return {**user, "player_id": player.id}
