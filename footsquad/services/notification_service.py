"""
Notification service for managing user notifications.

Persists in-app notifications, pushes them to open WebSockets and serves the
notification inbox. Match engine services notify players through
``notify_player`` / ``notify_players``, which never raise: a failed
notification is logged and rolled back to its SAVEPOINT so the state
transition that triggered it stands.
"""

from typing import Dict, Iterable, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, and_
from footsquad.database.models import Notification, Player, Team
from footsquad.services.errors import NotFoundError
from footsquad.utils.datetime_utils import utcnow, isoformat_or_none
import json
import logging

logger = logging.getLogger(__name__)


def _notification_to_dict(notification: Notification) -> Dict:
    return {
        "id": notification.id,
        "user_id": notification.user_id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "data": json.loads(notification.data) if notification.data else None,
        "is_read": notification.is_read,
        "read_at": isoformat_or_none(notification.read_at),
        "link_url": notification.link_url,
        "created_at": isoformat_or_none(notification.created_at),
    }


def _build_notification(
    user_id: int,
    type: str,
    title: str,
    message: str,
    data: Optional[Dict] = None,
    link_url: Optional[str] = None,
) -> Notification:
    if not user_id:
        raise ValueError("user_id is required")
    if not type:
        raise ValueError("type is required")
    if not title:
        raise ValueError("title is required")
    if not message:
        raise ValueError("message is required")

    return Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        data=json.dumps(data) if data is not None else None,
        link_url=link_url,
        is_read=False,
    )


async def _push(notification_dicts: List[Dict]) -> None:
    """Broadcast over WebSocket; delivery problems never fail the caller."""
    from footsquad.services.websocket_manager import get_websocket_manager

    manager = get_websocket_manager()
    for notif_dict in notification_dicts:
        try:
            await manager.send_to_user(
                notif_dict["user_id"], {"type": "notification", "notification": notif_dict}
            )
        except Exception as e:
            logger.warning(
                f"Failed to broadcast notification {notif_dict['id']} to user {notif_dict['user_id']}: {e}"
            )


async def create_notification(
    session: AsyncSession,
    user_id: int,
    type: str,
    title: str,
    message: str,
    data: Optional[Dict] = None,
    link_url: Optional[str] = None
) -> Dict:
    """
    Create a single notification for a user.

    Args:
        session: Database session
        user_id: ID of the user to notify
        type: Notification type (NotificationType enum value)
        title: Notification title
        message: Notification message text
        data: Optional JSON metadata (dict will be serialized to JSON string)
        link_url: Optional URL for navigation when notification is clicked

    Returns:
        Dict containing the created notification data

    Raises:
        ValueError: If required fields are missing
    """
    notification = _build_notification(user_id, type, title, message, data, link_url)
    session.add(notification)
    await session.flush()
    await session.refresh(notification)

    notification_dict = _notification_to_dict(notification)
    await _push([notification_dict])
    return notification_dict


async def create_notifications_bulk(
    session: AsyncSession,
    notifications_list: List[Dict]
) -> List[Dict]:
    """
    Create several notifications in one flush.

    Each entry holds user_id, type, title, message and optionally data and
    link_url, as for create_notification.
    """
    if not notifications_list:
        return []

    notification_objects = [
        _build_notification(
            notif_data.get("user_id"),
            notif_data.get("type"),
            notif_data.get("title"),
            notif_data.get("message"),
            notif_data.get("data"),
            notif_data.get("link_url"),
        )
        for notif_data in notifications_list
    ]

    session.add_all(notification_objects)
    await session.flush()
    for notif in notification_objects:
        await session.refresh(notif)

    notification_dicts = [_notification_to_dict(notif) for notif in notification_objects]
    await _push(notification_dicts)
    return notification_dicts


async def get_user_notifications(
    session: AsyncSession,
    user_id: int,
    limit: int = 50,
    offset: int = 0,
    unread_only: bool = False
) -> Dict:
    """
    Fetch user notifications with pagination, newest first.

    Returns:
        Dict with notifications, total_count and has_more
    """
    query = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        query = query.where(Notification.is_read == False)  # noqa: E712

    total_count = (
        await session.execute(select(func.count()).select_from(query.subquery()))
    ).scalar_one() or 0

    result = await session.execute(
        query.order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .offset(offset)
    )
    notification_dicts = [_notification_to_dict(notif) for notif in result.scalars().all()]

    return {
        "notifications": notification_dicts,
        "total_count": total_count,
        "has_more": (offset + len(notification_dicts)) < total_count,
    }


async def get_unread_count(session: AsyncSession, user_id: int) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(Notification)
        .where(
            and_(
                Notification.user_id == user_id,
                Notification.is_read == False  # noqa: E712
            )
        )
    )
    return result.scalar_one() or 0


async def mark_as_read(
    session: AsyncSession,
    notification_id: int,
    user_id: int
) -> Dict:
    """
    Mark a single notification as read.

    Raises:
        NotFoundError: If the notification does not exist or belongs to another user
    """
    result = await session.execute(
        select(Notification).where(
            and_(
                Notification.id == notification_id,
                Notification.user_id == user_id
            )
        )
    )
    notification = result.scalar_one_or_none()
    if not notification:
        raise NotFoundError("Notification not found or access denied")

    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        await session.flush()
        await session.refresh(notification)

    return _notification_to_dict(notification)


async def mark_all_as_read(session: AsyncSession, user_id: int) -> int:
    """Mark all of a user's notifications as read. Returns how many changed."""
    result = await session.execute(
        update(Notification)
        .where(
            and_(
                Notification.user_id == user_id,
                Notification.is_read == False  # noqa: E712
            )
        )
        .values(is_read=True, read_at=utcnow())
    )
    await session.flush()
    return result.rowcount or 0


#
# Fire-and-forget helpers used by the match engine
#

async def _user_ids_for_players(session: AsyncSession, player_ids: Iterable[int]) -> Dict[int, int]:
    """Map player_id -> user_id, skipping players without an account."""
    ids = list({pid for pid in player_ids if pid is not None})
    if not ids:
        return {}
    result = await session.execute(
        select(Player.id, Player.user_id).where(Player.id.in_(ids), Player.user_id.isnot(None))
    )
    return {row.id: row.user_id for row in result}


async def notify_player(
    session: AsyncSession,
    player_id: Optional[int],
    type: str,
    title: str,
    message: str,
    data: Optional[Dict] = None,
    link_url: Optional[str] = None,
) -> Optional[Dict]:
    """
    Notify one player. Never raises.

    Returns:
        The notification dict, or None if the player has no account or the
        notification could not be stored
    """
    if player_id is None:
        return None
    try:
        async with session.begin_nested():
            user_ids = await _user_ids_for_players(session, [player_id])
            if player_id not in user_ids:
                logger.debug(f"Player {player_id} has no user account; skipping {type} notification")
                return None
            return await create_notification(
                session, user_ids[player_id], type, title, message, data, link_url
            )
    except Exception as e:
        logger.warning(f"Failed to send {type} notification to player {player_id}: {e}")
        return None


async def notify_players(
    session: AsyncSession,
    player_ids: Iterable[int],
    type: str,
    title: str,
    message: str,
    data: Optional[Dict] = None,
    link_url: Optional[str] = None,
) -> List[Dict]:
    """Notify several players with the same message. Never raises."""
    player_ids = list(player_ids)
    try:
        async with session.begin_nested():
            user_ids = await _user_ids_for_players(session, player_ids)
            seen = set()
            notifications_list = []
            for player_id in player_ids:
                user_id = user_ids.get(player_id)
                if user_id is None or user_id in seen:
                    continue
                seen.add(user_id)
                notifications_list.append(
                    {
                        "user_id": user_id,
                        "type": type,
                        "title": title,
                        "message": message,
                        "data": data,
                        "link_url": link_url,
                    }
                )
            return await create_notifications_bulk(session, notifications_list)
    except Exception as e:
        logger.warning(f"Failed to send {type} notifications to players {player_ids}: {e}")
        return []


async def notify_team_captain(
    session: AsyncSession,
    team_id: Optional[int],
    type: str,
    title: str,
    message: str,
    data: Optional[Dict] = None,
    link_url: Optional[str] = None,
) -> Optional[Dict]:
    """Notify the captain of a team. Never raises."""
    if team_id is None:
        return None
    try:
        async with session.begin_nested():
            captain_id = (
                await session.execute(select(Team.captain_id).where(Team.id == team_id))
            ).scalar_one_or_none()
    except Exception as e:
        logger.warning(f"Failed to look up captain of team {team_id} for {type} notification: {e}")
        return None
    return await notify_player(session, captain_id, type, title, message, data, link_url)
