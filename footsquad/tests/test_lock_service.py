"""
Unit tests for per-match locking.
"""

import asyncio

import pytest

from footsquad.services import lock_service
from footsquad.services.lock_service import KeyedLocks, match_lock, OPPONENT_SCOPE, SCORE_SCOPE


@pytest.mark.asyncio
async def test_keyed_locks_serialize_same_key():
    locks = KeyedLocks()
    events = []

    async def worker(name):
        async with locks.hold("match:1:opponent"):
            events.append(f"{name}-in")
            await asyncio.sleep(0.01)
            events.append(f"{name}-out")

    await asyncio.gather(worker("first"), worker("second"))

    assert events == ["first-in", "first-out", "second-in", "second-out"]


@pytest.mark.asyncio
async def test_keyed_locks_different_keys_overlap():
    locks = KeyedLocks()
    inside = asyncio.Event()
    released = asyncio.Event()

    async def holder():
        async with locks.hold("match:1:score"):
            inside.set()
            await released.wait()

    task = asyncio.create_task(holder())
    await inside.wait()
    # A different key is not blocked by the held one
    async with locks.hold("match:2:score"):
        pass
    released.set()
    await task


@pytest.mark.asyncio
async def test_keyed_locks_forget_released_keys():
    locks = KeyedLocks()
    async with locks.hold("match:1:motm"):
        assert len(locks) == 1
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_keyed_locks_release_on_error():
    locks = KeyedLocks()
    with pytest.raises(RuntimeError):
        async with locks.hold("match:1:roster"):
            raise RuntimeError("boom")
    assert len(locks) == 0

    # Lock is usable again
    async with locks.hold("match:1:roster"):
        pass


@pytest.mark.asyncio
async def test_match_lock_scopes_are_independent():
    order = []
    opponent_entered = asyncio.Event()
    finish = asyncio.Event()

    async def opponent_section():
        async with match_lock(7, OPPONENT_SCOPE):
            opponent_entered.set()
            await finish.wait()
            order.append("opponent")

    task = asyncio.create_task(opponent_section())
    await opponent_entered.wait()
    async with match_lock(7, SCORE_SCOPE):
        order.append("score")
    finish.set()
    await task

    assert order == ["score", "opponent"]
    assert len(lock_service.get_local_locks()) == 0


@pytest.mark.asyncio
async def test_redis_backend_falls_back_to_local(monkeypatch):
    async def no_redis():
        return None

    monkeypatch.setattr(lock_service, "MATCH_LOCK_BACKEND", "redis")
    monkeypatch.setattr(lock_service, "get_redis_client", no_redis)

    async with match_lock(3, OPPONENT_SCOPE):
        assert len(lock_service.get_local_locks()) == 1
    assert len(lock_service.get_local_locks()) == 0
