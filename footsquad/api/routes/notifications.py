"""Notification inbox and live WebSocket route handlers."""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession

from footsquad.api.routes import service_error
from footsquad.database.db import get_db_session
from footsquad.services import auth_service, notification_service
from footsquad.services.websocket_manager import get_websocket_manager
from footsquad.api.auth_dependencies import require_user
from footsquad.models.schemas import NotificationResponse, NotificationListResponse

logger = logging.getLogger(__name__)
router = APIRouter()

# Server pings a silent client after this many seconds
WS_PING_INTERVAL_SECONDS = 30


@router.get("/api/notifications", response_model=NotificationListResponse)
async def get_notifications(
    limit: int = 50,
    offset: int = 0,
    unread_only: bool = False,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get the caller's notifications, newest first."""
    try:
        return await notification_service.get_user_notifications(
            session, user["id"], limit=limit, offset=offset, unread_only=unread_only
        )
    except Exception as e:
        logger.error(f"Error fetching notifications: {e}")
        raise HTTPException(status_code=500, detail="Error fetching notifications")


@router.get("/api/notifications/unread-count")
async def get_unread_count(
    user: dict = Depends(require_user), session: AsyncSession = Depends(get_db_session)
):
    """Get unread notification count for the caller."""
    try:
        return {"count": await notification_service.get_unread_count(session, user["id"])}
    except Exception as e:
        logger.error(f"Error fetching unread count: {e}")
        raise HTTPException(status_code=500, detail="Error fetching unread count")


@router.put("/api/notifications/mark-all-read")
async def mark_all_notifications_as_read(
    user: dict = Depends(require_user), session: AsyncSession = Depends(get_db_session)
):
    """Mark all of the caller's notifications as read."""
    try:
        count = await notification_service.mark_all_as_read(session, user["id"])
        return {"success": True, "count": count}
    except Exception as e:
        logger.error(f"Error marking all notifications as read: {e}")
        raise HTTPException(status_code=500, detail="Error marking notifications as read")


@router.put("/api/notifications/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_as_read(
    notification_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Mark a single notification as read."""
    try:
        return await notification_service.mark_as_read(session, notification_id, user["id"])
    except ValueError as e:
        raise service_error(e)
    except Exception as e:
        logger.error(f"Error marking notification {notification_id} as read: {e}")
        raise HTTPException(status_code=500, detail="Error marking notification as read")


@router.websocket("/api/ws/notifications")
async def websocket_notifications(websocket: WebSocket):
    """
    Live notification feed.

    Requires a JWT in the query string: ?token=<jwt_token>. The client may
    send "ping" and gets "pong"; a silent client is pinged by the server and
    dropped once the ping fails.
    """
    await websocket.accept()

    token = websocket.query_params.get("token")
    payload = auth_service.verify_token(token) if token else None
    user_id = payload.get("user_id") if payload else None
    if user_id is None:
        await websocket.close(code=1008, reason="Invalid authentication token")
        return

    manager = get_websocket_manager()
    await manager.connect(user_id, websocket)
    try:
        while True:
            try:
                data = await asyncio.wait_for(
                    websocket.receive_text(), timeout=WS_PING_INTERVAL_SECONDS
                )
            except asyncio.TimeoutError:
                await websocket.send_text("ping")
                continue
            await manager.update_activity(websocket)
            if data == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        logger.info(f"Notification socket for user {user_id} disconnected")
    except Exception as e:
        logger.warning(f"Notification socket for user {user_id} failed: {e}")
    finally:
        await manager.disconnect(user_id, websocket)
