"""
Live push channel for match notifications.

Each signed-in user may hold several sockets (phone, browser tab...). The
manager fans a payload out to every socket of a user and forgets sockets
that fail to receive.
"""

import asyncio
import json
import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Set

from fastapi import WebSocket

from footsquad.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

# Sockets with no traffic for this long are closed by prune_idle()
IDLE_TIMEOUT_SECONDS = 60

# How often the pruning worker runs
PRUNE_INTERVAL_SECONDS = 60


class WebSocketManager:
    """Tracks open notification sockets per user."""

    def __init__(self):
        """Initialize the manager with no sockets."""
        self.sockets_by_user: Dict[int, Set[WebSocket]] = {}
        self.last_seen: Dict[WebSocket, datetime] = {}
        self._lock = asyncio.Lock()
        self._prune_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    async def connect(self, user_id: int, websocket: WebSocket):
        """
        Register an accepted notification socket for a user.

        Args:
            user_id: ID of the user
            websocket: WebSocket connection object
        """
        async with self._lock:
            self.sockets_by_user.setdefault(user_id, set()).add(websocket)
            self.last_seen[websocket] = utcnow()
            open_count = len(self.sockets_by_user[user_id])
        logger.info(f"Notification socket opened for user {user_id} ({open_count} open)")

    async def disconnect(self, user_id: int, websocket: WebSocket):
        """
        Forget a user's socket. Unknown sockets are ignored.

        Args:
            user_id: ID of the user
            websocket: WebSocket connection object
        """
        async with self._lock:
            self._forget(user_id, [websocket])
        logger.info(f"Notification socket closed for user {user_id}")

    def _forget(self, user_id: int, websockets: Iterable[WebSocket]):
        """Drop sockets; caller holds the lock."""
        user_sockets = self.sockets_by_user.get(user_id)
        for websocket in websockets:
            self.last_seen.pop(websocket, None)
            if user_sockets is not None:
                user_sockets.discard(websocket)
        if user_sockets is not None and not user_sockets:
            del self.sockets_by_user[user_id]

    async def send_to_user(self, user_id: int, message: dict) -> bool:
        """
        Push a JSON message to every socket the user has open.

        Sockets that fail to receive are forgotten.

        Args:
            user_id: ID of the user
            message: Message dict to send (serialized to JSON)

        Returns:
            True if at least one socket received the message
        """
        async with self._lock:
            targets = list(self.sockets_by_user.get(user_id, ()))
        if not targets:
            return False

        payload = json.dumps(message)
        delivered = False
        dead: List[WebSocket] = []
        for websocket in targets:
            try:
                await websocket.send_text(payload)
                delivered = True
            except Exception as e:
                logger.warning(f"Dropping notification socket for user {user_id}: {e}")
                dead.append(websocket)

        async with self._lock:
            now = utcnow()
            for websocket in targets:
                if websocket not in dead and websocket in self.last_seen:
                    self.last_seen[websocket] = now
            if dead:
                self._forget(user_id, dead)
        return delivered

    async def get_connection_count(self, user_id: int) -> int:
        """
        Number of notification sockets the user has open.

        Args:
            user_id: ID of the user

        Returns:
            Number of open sockets
        """
        async with self._lock:
            return len(self.sockets_by_user.get(user_id, ()))

    async def update_activity(self, websocket: WebSocket):
        """
        Record client traffic (pings) on a socket.

        Args:
            websocket: WebSocket connection object
        """
        async with self._lock:
            if websocket in self.last_seen:
                self.last_seen[websocket] = utcnow()

    async def prune_idle(self) -> int:
        """
        Close sockets idle longer than IDLE_TIMEOUT_SECONDS.

        Called every PRUNE_INTERVAL_SECONDS by the worker start_pruning() launches.

        Returns:
            Number of sockets closed
        """
        cutoff = utcnow() - timedelta(seconds=IDLE_TIMEOUT_SECONDS)
        async with self._lock:
            idle = [
                (user_id, websocket)
                for user_id, sockets in self.sockets_by_user.items()
                for websocket in sockets
                if self.last_seen.get(websocket, cutoff) <= cutoff
            ]
            for user_id, websocket in idle:
                self._forget(user_id, [websocket])

        for user_id, websocket in idle:
            try:
                await websocket.close()
            except Exception as e:
                logger.debug(f"Idle socket for user {user_id} already closed: {e}")
        if idle:
            logger.info(f"Pruned {len(idle)} idle notification sockets")
        return len(idle)

    def start_pruning(self) -> None:
        """Start the background worker that prunes idle sockets."""
        if self._prune_task is None or self._prune_task.done():
            self._stop_event.clear()
            self._prune_task = asyncio.create_task(self._prune_loop())
            logger.info("Notification socket pruning started")

    def stop_pruning(self) -> None:
        """Stop the pruning worker."""
        self._stop_event.set()
        if self._prune_task and not self._prune_task.done():
            self._prune_task.cancel()
            logger.info("Notification socket pruning stopped")

    async def _prune_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.prune_idle()
            except Exception as e:
                logger.error(f"Error pruning notification sockets: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=PRUNE_INTERVAL_SECONDS)
                break
            except asyncio.TimeoutError:
                pass


_websocket_manager: Optional[WebSocketManager] = None


def get_websocket_manager() -> WebSocketManager:
    """Process-wide WebSocketManager."""
    global _websocket_manager
    if _websocket_manager is None:
        _websocket_manager = WebSocketManager()
    return _websocket_manager
