from __future__ import annotations

import jwt

from api_helpers import auth_headers, client, reset_state, sign_in
from reschool.notifications import create_notification, list_notifications
from reschool.schemas import NotificationType


def test_health() -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_missing_and_malformed_tokens_are_rejected() -> None:
    reset_state()
    assert client.get("/api/children").status_code == 401
    assert client.get("/api/children", headers={"Authorization": "Token abc"}).status_code == 401

    forged = jwt.encode({"sub": "x", "email": "x@example.com"}, "wrong-secret-wrong-secret-wrong", algorithm="HS256")
    resp = client.get("/api/children", headers={"Authorization": f"Bearer {forged}"})
    assert resp.status_code == 401


def test_sync_user_creates_and_refreshes_profile() -> None:
    reset_state()
    headers = auth_headers("stack-1", "Mette@Example.com", "Mette Hansen")
    resp = client.post("/api/sync-user", headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["user_slug"] == "mette-hansen"
    assert body["user"]["email"] == "mette@example.com"
    user_id = body["user"]["id"]

    renamed = client.post("/api/sync-user", headers=auth_headers("stack-1", "mette@example.com", "Mette Ø"))
    assert renamed.json()["user"]["id"] == user_id
    assert renamed.json()["user"]["display_name"] == "Mette Ø"

    # A token without a name keeps the stored one.
    unnamed = client.post("/api/sync-user", headers=auth_headers("stack-1", "mette@example.com"))
    assert unnamed.json()["user"]["display_name"] == "Mette Ø"


def test_user_slug_falls_back_to_email_local_part() -> None:
    reset_state()
    resp = client.post("/api/sync-user", headers=auth_headers("stack-2", "lars.larsen@example.com"))
    assert resp.json()["user_slug"] == "lars-larsen"


def test_pending_notifications_attach_on_first_sign_in() -> None:
    reset_state()
    create_notification(
        type=NotificationType.INVITATION_RECEIVED,
        title="Ny invitation",
        message="Du er inviteret",
        pending_email="new@example.com",
    )
    _, user = sign_in("new-user", email="New@example.com")
    notifications = list_notifications(user["id"])
    assert len(notifications) == 1
    assert notifications[0].pending_email is None
