"""
Unit tests for notification service.
Tests notification creation, retrieval, marking as read and the match engine
helpers that must never fail the caller.
"""

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from footsquad.database.models import NotificationType
from footsquad.services import notification_service, player_service, user_service
from footsquad.services.errors import NotFoundError
from footsquad.tests.factories import create_team_with_players, create_user_and_player


@pytest_asyncio.fixture
async def test_user(db_session):
    """Create a test user for notification tests."""
    return await user_service.create_user(session=db_session, email="keeper@example.com")


@pytest_asyncio.fixture
async def test_user2(db_session):
    """Create a second test user for notification tests."""
    return await user_service.create_user(session=db_session, email="striker@example.com")


async def _create(session, user_id, title="Test", message="Test message"):
    return await notification_service.create_notification(
        session=session,
        user_id=user_id,
        type=NotificationType.JOIN_REQUEST.value,
        title=title,
        message=message,
    )


@pytest.mark.asyncio
async def test_create_notification(db_session, test_user):
    notification = await notification_service.create_notification(
        session=db_session,
        user_id=test_user,
        type=NotificationType.MATCH_INVITE.value,
        title="Friendly Match Invitation",
        message="Red Lions invited your team to a friendly match",
        data={"match_id": 1},
        link_url="/matches/1",
    )

    assert notification["user_id"] == test_user
    assert notification["type"] == "match_invite"
    assert notification["data"] == {"match_id": 1}
    assert notification["link_url"] == "/matches/1"
    assert notification["is_read"] is False
    assert notification["id"] > 0
    assert notification["created_at"] is not None


@pytest.mark.asyncio
async def test_create_notification_validation(db_session, test_user):
    with pytest.raises(ValueError, match="user_id is required"):
        await notification_service.create_notification(
            session=db_session, user_id=None, type="join_request", title="T", message="M"
        )
    with pytest.raises(ValueError, match="type is required"):
        await notification_service.create_notification(
            session=db_session, user_id=test_user, type="", title="T", message="M"
        )
    with pytest.raises(ValueError, match="title is required"):
        await notification_service.create_notification(
            session=db_session, user_id=test_user, type="join_request", title="", message="M"
        )
    with pytest.raises(ValueError, match="message is required"):
        await notification_service.create_notification(
            session=db_session, user_id=test_user, type="join_request", title="T", message=""
        )


@pytest.mark.asyncio
async def test_create_notification_pushes_to_websocket(db_session, test_user, monkeypatch):
    manager = AsyncMock()
    monkeypatch.setattr(
        "footsquad.services.websocket_manager.get_websocket_manager", lambda: manager
    )

    notification = await _create(db_session, test_user)

    manager.send_to_user.assert_called_once_with(
        test_user, {"type": "notification", "notification": notification}
    )


@pytest.mark.asyncio
async def test_push_failure_does_not_fail_create(db_session, test_user, monkeypatch):
    manager = AsyncMock()
    manager.send_to_user = AsyncMock(side_effect=RuntimeError("socket gone"))
    monkeypatch.setattr(
        "footsquad.services.websocket_manager.get_websocket_manager", lambda: manager
    )

    notification = await _create(db_session, test_user)
    assert notification["id"] > 0


@pytest.mark.asyncio
async def test_create_notifications_bulk(db_session, test_user, test_user2):
    created = await notification_service.create_notifications_bulk(
        db_session,
        [
            {"user_id": test_user, "type": "score_confirmed", "title": "A", "message": "1"},
            {"user_id": test_user2, "type": "score_confirmed", "title": "B", "message": "2"},
        ],
    )
    assert [n["user_id"] for n in created] == [test_user, test_user2]
    assert await notification_service.create_notifications_bulk(db_session, []) == []


# ──────────────────────────────────────────────────────────────
# Inbox
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_get_user_notifications_pagination(db_session, test_user, test_user2):
    for i in range(5):
        await _create(db_session, test_user, title=f"N{i}")
    await _create(db_session, test_user2)

    page = await notification_service.get_user_notifications(
        db_session, test_user, limit=2, offset=0
    )
    assert page["total_count"] == 5
    assert page["has_more"] is True
    assert [n["title"] for n in page["notifications"]] == ["N4", "N3"]

    last = await notification_service.get_user_notifications(
        db_session, test_user, limit=2, offset=4
    )
    assert [n["title"] for n in last["notifications"]] == ["N0"]
    assert last["has_more"] is False


@pytest.mark.asyncio
async def test_unread_only_and_count(db_session, test_user):
    first = await _create(db_session, test_user)
    await _create(db_session, test_user)
    await notification_service.mark_as_read(db_session, first["id"], test_user)

    unread = await notification_service.get_user_notifications(
        db_session, test_user, unread_only=True
    )
    assert unread["total_count"] == 1
    assert await notification_service.get_unread_count(db_session, test_user) == 1


@pytest.mark.asyncio
async def test_mark_as_read(db_session, test_user):
    notification = await _create(db_session, test_user)

    updated = await notification_service.mark_as_read(db_session, notification["id"], test_user)
    assert updated["is_read"] is True
    assert updated["read_at"] is not None

    again = await notification_service.mark_as_read(db_session, notification["id"], test_user)
    assert again["read_at"] == updated["read_at"]


@pytest.mark.asyncio
async def test_mark_as_read_wrong_user(db_session, test_user, test_user2):
    notification = await _create(db_session, test_user)
    with pytest.raises(NotFoundError, match="Notification not found or access denied"):
        await notification_service.mark_as_read(db_session, notification["id"], test_user2)


@pytest.mark.asyncio
async def test_mark_all_as_read(db_session, test_user, test_user2):
    for _ in range(3):
        await _create(db_session, test_user)
    await _create(db_session, test_user2)

    assert await notification_service.mark_all_as_read(db_session, test_user) == 3
    assert await notification_service.get_unread_count(db_session, test_user) == 0
    assert await notification_service.get_unread_count(db_session, test_user2) == 1
    assert await notification_service.mark_all_as_read(db_session, test_user) == 0


# ──────────────────────────────────────────────────────────────
# Match engine helpers
# ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_notify_player(db_session):
    user_id, player_id = await create_user_and_player(db_session, "Rui Costa")

    notification = await notification_service.notify_player(
        db_session, player_id, "join_approved", "Join Request Approved", "You're in!"
    )
    assert notification["user_id"] == user_id


@pytest.mark.asyncio
async def test_notify_player_without_account(db_session):
    player = await player_service.create_player(db_session, None, "Guest Player")
    assert (
        await notification_service.notify_player(db_session, player["id"], "join_approved", "T", "M")
        is None
    )
    assert await notification_service.notify_player(db_session, None, "join_approved", "T", "M") is None


@pytest.mark.asyncio
async def test_notify_players_dedupes_and_skips_missing(db_session):
    _, p1 = await create_user_and_player(db_session, "One")
    _, p2 = await create_user_and_player(db_session, "Two")

    created = await notification_service.notify_players(
        db_session, [p1, p2, p1, None, 999], "score_confirmed", "Score Confirmed", "2-1"
    )
    assert len(created) == 2


@pytest.mark.asyncio
async def test_notify_player_swallows_failures(db_session, test_user, monkeypatch):
    _, player_id = await create_user_and_player(db_session, "Unlucky")

    async def broken(*args, **kwargs):
        raise RuntimeError("database hiccup")

    monkeypatch.setattr(notification_service, "create_notification", broken)

    result = await notification_service.notify_player(db_session, player_id, "join_request", "T", "M")
    assert result is None
    # Session remains usable after the savepoint rollback
    assert await notification_service.get_unread_count(db_session, test_user) == 0


@pytest.mark.asyncio
async def test_notify_team_captain(db_session):
    team = await create_team_with_players(db_session, "Red Lions", size=2)

    notification = await notification_service.notify_team_captain(
        db_session, team["team_id"], "play_request_accepted", "Challenge Accepted!", "On!"
    )
    assert notification is not None
    assert await notification_service.notify_team_captain(
        db_session, None, "play_request_accepted", "T", "M"
    ) is None
