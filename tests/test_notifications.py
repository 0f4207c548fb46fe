from __future__ import annotations

from api_helpers import client, reset_state, sign_in
from reschool import novu
from reschool.notifications import create_notification, list_push_subscriptions
from reschool.schemas import NotificationType


def _seed(user_id: int, count: int) -> list:
    return [
        create_notification(
            type=NotificationType.SYSTEM,
            title=f"Besked {index}",
            message="Hej",
            user_id=user_id,
            data={"index": index},
        )
        for index in range(count)
    ]


def test_list_and_mark_notifications() -> None:
    reset_state()
    headers, user = sign_in("mor")
    other_headers, other = sign_in("far")
    seeded = _seed(user["id"], 3)
    foreign = _seed(other["id"], 1)[0]

    listed = client.get("/api/notifications", headers=headers).json()
    assert listed["unread_count"] == 3
    assert len(listed["notifications"]) == 3
    assert listed["notifications"][0]["data"] == {"index": 2}

    marked = client.patch("/api/notifications", json={"notification_id": seeded[0].id}, headers=headers)
    assert marked.status_code == 200
    assert marked.json()["notification"]["is_read"] is True
    unread = client.get("/api/notifications", params={"unread_only": True}, headers=headers).json()
    assert len(unread["notifications"]) == 2
    assert unread["unread_count"] == 2

    assert client.patch("/api/notifications", json={"notification_id": foreign.id}, headers=headers).status_code == 404
    assert client.patch("/api/notifications", json={}, headers=headers).status_code == 400

    all_read = client.patch("/api/notifications", json={"mark_all_as_read": True}, headers=headers)
    assert all_read.json()["updated_count"] == 2
    assert client.get("/api/notifications", headers=headers).json()["unread_count"] == 0
    assert client.get("/api/notifications", headers=other_headers).json()["unread_count"] == 1


def test_delete_notification() -> None:
    reset_state()
    headers, user = sign_in("mor")
    other_headers, _ = sign_in("far")
    notification = _seed(user["id"], 1)[0]

    assert client.delete(f"/api/notifications/{notification.id}", headers=other_headers).status_code == 404
    assert client.delete(f"/api/notifications/{notification.id}", headers=headers).status_code == 200
    assert client.get("/api/notifications", headers=headers).json()["notifications"] == []


def test_register_device(outbox) -> None:
    reset_state()
    headers, user = sign_in("mor", name="Mette Hansen")

    short = client.post("/api/notifications/register", json={"fcm_token": "abc", "platform": "ios"}, headers=headers)
    assert short.status_code == 400
    bad_platform = client.post(
        "/api/notifications/register",
        json={"fcm_token": "x" * 120, "platform": "symbian"},
        headers=headers,
    )
    assert bad_platform.status_code == 400

    ok = client.post("/api/notifications/register", json={"fcm_token": "x" * 120, "platform": "android"}, headers=headers)
    assert ok.status_code == 200
    assert ok.json()["subscriber_id"] == "mor"
    assert outbox.devices == [
        {"subscriber_id": "mor", "fcm_token": "x" * 120, "email": user["email"], "display_name": "Mette Hansen"}
    ]


def test_register_device_without_novu(monkeypatch) -> None:
    reset_state()
    headers, _ = sign_in("mor")

    async def unavailable(*args, **kwargs):
        raise novu.NovuError("credentials update", 503, "Novu is not configured")

    monkeypatch.setattr(novu, "register_fcm_device", unavailable)
    resp = client.post("/api/notifications/register", json={"fcm_token": "x" * 120, "platform": "web"}, headers=headers)
    assert resp.status_code == 503


def test_push_subscriptions() -> None:
    reset_state()
    headers, user = sign_in("mor")
    payload = {"endpoint": "https://push.example.com/abc", "keys": {"p256dh": "key-1", "auth": "auth-1"}}

    assert client.post("/api/push/subscribe", json=payload, headers=headers).status_code == 201
    payload["keys"]["p256dh"] = "key-2"
    again = client.post("/api/push/subscribe", json=payload, headers=headers)
    assert again.json()["subscription"]["p256dh_key"] == "key-2"
    assert len(list_push_subscriptions(user["id"])) == 1

    missing_keys = client.post("/api/push/subscribe", json={"endpoint": "https://x"}, headers=headers)
    assert missing_keys.status_code == 400

    removed = client.request("DELETE", "/api/push/subscribe", json={"endpoint": payload["endpoint"]}, headers=headers)
    assert removed.status_code == 200
    gone = client.request("DELETE", "/api/push/subscribe", json={"endpoint": payload["endpoint"]}, headers=headers)
    assert gone.status_code == 404
