"""
Per-match mutual exclusion for "first writer wins" transitions.

Opponent binding and roster admission must behave as if serialized per match.
Each critical section opens its transaction, then enters ``match_lock`` and
locks the match row with SELECT ... FOR UPDATE and writes with
conditional UPDATEs, so PostgreSQL keeps the guarantee across processes even
with the local backend.

Backends (MATCH_LOCK_BACKEND):
    local  - asyncio.Lock lanes inside this process (default)
    redis  - redis.asyncio distributed lock; falls back to local lanes when
             Redis cannot be reached
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from footsquad.services.redis_service import get_redis_client

logger = logging.getLogger(__name__)

MATCH_LOCK_BACKEND = os.getenv("MATCH_LOCK_BACKEND", "local").lower()
MATCH_LOCK_TIMEOUT_SECONDS = float(os.getenv("MATCH_LOCK_TIMEOUT_SECONDS", "10"))

# Lock scopes
OPPONENT_SCOPE = "opponent"
SCORE_SCOPE = "score"
MOTM_SCOPE = "motm"
RATING_SCOPE = "ratings"
ROSTER_SCOPE = "roster"


class KeyedLocks:
    """asyncio.Lock per key, dropped again once nobody holds or waits on it."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if not self._holders[key]:
                del self._holders[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


_local_locks = KeyedLocks()


def get_local_locks() -> KeyedLocks:
    """Get the process-wide lock registry."""
    return _local_locks


@asynccontextmanager
async def match_lock(match_id: int, scope: str) -> AsyncIterator[None]:
    """
    Serialize a critical section for one match.

    Args:
        match_id: Match being mutated
        scope: Lane name, one of the *_SCOPE constants

    Usage:
        async with match_lock(match_id, OPPONENT_SCOPE):
            ...  # read, validate, write, commit
    """
    key = f"match:{match_id}:{scope}"

    if MATCH_LOCK_BACKEND == "redis":
        redis = await get_redis_client()
        if redis is not None:
            lock = redis.lock(
                f"footsquad:lock:{key}",
                timeout=MATCH_LOCK_TIMEOUT_SECONDS,
                blocking_timeout=MATCH_LOCK_TIMEOUT_SECONDS,
            )
            async with lock:
                yield
            return
        logger.warning(f"Redis unavailable, using local lock for {key}")

    async with _local_locks.hold(key):
        yield
