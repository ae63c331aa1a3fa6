"""
Bearer token handling.

Tokens are HS256 JWTs carrying ``user_id``. Issuing tokens for real users is
the identity provider's job; ``create_access_token`` exists for operators and
tests that share the signing secret.
"""

import logging
import os
from datetime import timedelta
from typing import Dict, Optional

from jose import JWTError, jwt

from footsquad.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "footsquad-dev-secret-change-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRATION_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRATION_MINUTES", "60"))


def create_access_token(data: Dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign a JWT access token.

    Args:
        data: Claims to encode; must include user_id
        expires_delta: Lifetime override (defaults to ACCESS_TOKEN_EXPIRATION_MINUTES)

    Returns:
        Encoded token string
    """
    to_encode = dict(data)
    expire = utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRATION_MINUTES))
    to_encode["exp"] = expire
    return jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def verify_token(token: str) -> Optional[Dict]:
    """
    Decode and validate a JWT access token.

    Returns:
        The token payload, or None if the token is invalid or expired
    """
    try:
        return jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.debug(f"Rejected access token: {e}")
        return None
