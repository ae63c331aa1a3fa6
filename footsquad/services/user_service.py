"""
User service layer for account lookups.

Accounts are issued by the external identity provider; this service only
mirrors the rows the match engine needs to resolve a bearer token to a user.
The mirror row is provisioned from the token claims the first time a valid
token for an unknown user id is seen.
"""

from typing import Optional, Dict
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from footsquad.database.models import User
from footsquad.services.errors import ConflictError
import logging

logger = logging.getLogger(__name__)


async def create_user(
    session: AsyncSession,
    email: Optional[str] = None,
    name: Optional[str] = None,
    is_verified: bool = True,
) -> int:
    """
    Create a user account row.

    Args:
        session: Database session
        email: Optional unique email
        name: Optional display name
        is_verified: Whether the identity provider verified the account

    Returns:
        User ID of the created user

    Raises:
        ConflictError: If the email is already registered
    """
    if email:
        result = await session.execute(select(User.id).where(User.email == email))
        if result.scalar_one_or_none():
            raise ConflictError(f"Email {email} is already registered")

    new_user = User(email=email, name=name, is_verified=is_verified)
    session.add(new_user)
    await session.flush()
    logger.info(f"Created user {new_user.id}")
    return new_user.id


async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[Dict]:
    """
    Get user by ID.

    Returns:
        User dictionary or None if not found
    """
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    return _user_to_dict(user) if user else None


def _user_to_dict(user: User) -> Dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "is_verified": user.is_verified,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


async def provision_user(session: AsyncSession, user_id: int, claims: Dict) -> Dict:
    """
    Create the local mirror of an identity-provider account.

    Args:
        session: Database session
        user_id: Account id carried by the token
        claims: Verified token payload; ``email``, ``name`` and
            ``email_verified`` are read when present

    Returns:
        User dictionary of the new row, or of the existing row when a
        concurrent request provisioned the same account first
    """
    email = claims.get("email") or None
    if email:
        result = await session.execute(select(User.id).where(User.email == email))
        owner_id = result.scalar_one_or_none()
        if owner_id is not None and owner_id != user_id:
            logger.warning(f"Email {email} belongs to user {owner_id}; provisioning user {user_id} without it")
            email = None

    user = User(
        id=user_id,
        email=email,
        name=claims.get("name"),
        is_verified=bool(claims.get("email_verified", True)),
    )
    try:
        async with session.begin_nested():
            session.add(user)
    except IntegrityError:
        existing = await get_user_by_id(session, user_id)
        if existing is None:
            raise
        return existing

    await session.commit()
    await session.refresh(user)
    logger.info(f"Provisioned user {user_id} from token claims")
    return _user_to_dict(user)
