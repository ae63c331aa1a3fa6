"""
Shared Redis client for cross-process match locks.

Redis is optional: it is only contacted when MATCH_LOCK_BACKEND=redis, and
an unreachable server makes get_redis_client() return None so callers fall
back to in-process locks. REDIS_URL takes precedence over the individual
REDIS_* settings.
"""

import logging
import os
from typing import Optional

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

REDIS_URL = os.getenv("REDIS_URL")
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_DB = int(os.getenv("REDIS_DB", "0"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

SOCKET_CONNECT_TIMEOUT = 2
SOCKET_TIMEOUT = 5

_redis_client: Optional[Redis] = None


def _describe() -> str:
    return REDIS_URL.split("@")[-1] if REDIS_URL else f"{REDIS_HOST}:{REDIS_PORT}/{REDIS_DB}"


def _build_client() -> Redis:
    options = {
        "decode_responses": True,
        "socket_connect_timeout": SOCKET_CONNECT_TIMEOUT,
        "socket_timeout": SOCKET_TIMEOUT,
        "retry_on_timeout": True,
    }
    if REDIS_URL:
        return Redis.from_url(REDIS_URL, **options)
    return Redis(host=REDIS_HOST, port=REDIS_PORT, db=REDIS_DB, password=REDIS_PASSWORD, **options)


async def get_redis_client() -> Optional[Redis]:
    """
    Return a live client, reconnecting if the cached one stopped answering.

    Returns:
        Redis client, or None when the server cannot be reached
    """
    global _redis_client

    if _redis_client is not None:
        try:
            await _redis_client.ping()
            return _redis_client
        except Exception as e:
            logger.warning(f"Redis connection lost, reconnecting: {e}")
            await close_redis_connection()

    client = _build_client()
    try:
        await client.ping()
    except Exception as e:
        logger.warning(f"Redis unavailable at {_describe()}: {e}")
        await client.aclose()
        return None

    _redis_client = client
    logger.info(f"Connected to Redis at {_describe()}")
    return _redis_client


async def close_redis_connection() -> None:
    """Close the cached client; called on shutdown and after a lost connection."""
    global _redis_client

    client, _redis_client = _redis_client, None
    if client is None:
        return
    try:
        await client.aclose()
        logger.info("Closed Redis connection")
    except Exception as e:
        logger.warning(f"Error closing Redis connection: {e}")
