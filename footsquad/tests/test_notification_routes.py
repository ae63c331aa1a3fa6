"""
Unit tests for notification API routes.
Tests the inbox endpoints and the live notification WebSocket.
"""
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from footsquad.api.main import app
from footsquad.services import auth_service, notification_service, user_service
from footsquad.services.errors import NotFoundError

NOTIFICATION = {
    "id": 1,
    "user_id": 1,
    "type": "match_invite",
    "title": "Friendly Match Invitation",
    "message": "Red Lions invited your team to a friendly match",
    "data": {"match_id": 5},
    "is_read": False,
    "read_at": None,
    "link_url": "/matches/5",
    "created_at": "2026-01-01T00:00:00Z",
}


def make_client_with_auth(monkeypatch, user_id=1):
    """Create a test client with mocked authentication."""

    def fake_verify_token(token):
        return {"user_id": user_id}

    async def fake_get_user_by_id(session, uid):
        return {
            "id": user_id,
            "email": "test@example.com",
            "name": "Test User",
            "is_verified": True,
            "created_at": "2020-01-01T00:00:00Z",
        }

    monkeypatch.setattr(auth_service, "verify_token", fake_verify_token, raising=True)
    monkeypatch.setattr(user_service, "get_user_by_id", fake_get_user_by_id, raising=True)

    return TestClient(app), {"Authorization": "Bearer dummy"}


def test_get_notifications(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch)
    captured = {}

    async def fake_get_user_notifications(session, user_id, limit=50, offset=0, unread_only=False):
        captured.update(user_id=user_id, limit=limit, offset=offset, unread_only=unread_only)
        return {"notifications": [NOTIFICATION], "total_count": 1, "has_more": False}

    monkeypatch.setattr(
        notification_service, "get_user_notifications", fake_get_user_notifications, raising=True
    )

    response = client.get(
        "/api/notifications?limit=10&offset=5&unread_only=true", headers=headers
    )
    assert response.status_code == 200
    data = response.json()
    assert data["total_count"] == 1
    assert data["notifications"][0]["data"] == {"match_id": 5}
    assert captured == {"user_id": 1, "limit": 10, "offset": 5, "unread_only": True}


@pytest.mark.parametrize(
    "method,path",
    [
        ("get", "/api/notifications"),
        ("get", "/api/notifications/unread-count"),
        ("put", "/api/notifications/1/read"),
        ("put", "/api/notifications/mark-all-read"),
    ],
)
def test_notification_endpoints_require_auth(method, path):
    response = getattr(TestClient(app), method)(path)
    assert response.status_code in (401, 403)


def test_get_unread_count(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch)

    async def fake_get_unread_count(session, user_id):
        return 4

    monkeypatch.setattr(notification_service, "get_unread_count", fake_get_unread_count, raising=True)

    response = client.get("/api/notifications/unread-count", headers=headers)
    assert response.status_code == 200
    assert response.json() == {"count": 4}


def test_mark_notification_as_read(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch)

    async def fake_mark_as_read(session, notification_id, user_id):
        return {**NOTIFICATION, "id": notification_id, "is_read": True, "read_at": "2026-01-02T00:00:00Z"}

    monkeypatch.setattr(notification_service, "mark_as_read", fake_mark_as_read, raising=True)

    response = client.put("/api/notifications/1/read", headers=headers)
    assert response.status_code == 200
    assert response.json()["is_read"] is True


def test_mark_notification_as_read_not_found(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch)

    async def fake_mark_as_read(session, notification_id, user_id):
        raise NotFoundError("Notification not found or access denied")

    monkeypatch.setattr(notification_service, "mark_as_read", fake_mark_as_read, raising=True)

    response = client.put("/api/notifications/999/read", headers=headers)
    assert response.status_code == 404


def test_mark_all_notifications_as_read(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch)

    async def fake_mark_all_as_read(session, user_id):
        return 3

    monkeypatch.setattr(notification_service, "mark_all_as_read", fake_mark_all_as_read, raising=True)

    response = client.put("/api/notifications/mark-all-read", headers=headers)
    assert response.status_code == 200
    assert response.json() == {"success": True, "count": 3}


def test_get_notifications_error_handling(monkeypatch):
    client, headers = make_client_with_auth(monkeypatch)

    async def broken(*args, **kwargs):
        raise RuntimeError("Database error")

    monkeypatch.setattr(notification_service, "get_user_notifications", broken, raising=True)

    response = client.get("/api/notifications", headers=headers)
    assert response.status_code == 500


# ──────────────────────────────────────────────────────────────
# WebSocket
# ──────────────────────────────────────────────────────────────


def test_websocket_rejects_missing_token():
    client = TestClient(app)
    with client.websocket_connect("/api/ws/notifications") as websocket:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            websocket.receive_text()
    assert exc_info.value.code == 1008


def test_websocket_ping_pong(monkeypatch):
    monkeypatch.setattr(auth_service, "verify_token", lambda token: {"user_id": 9}, raising=True)
    client = TestClient(app)

    with client.websocket_connect("/api/ws/notifications?token=good") as websocket:
        websocket.send_text("ping")
        assert websocket.receive_text() == "pong"
