from __future__ import annotations

import pytest

from api_helpers import client, create_child, family, reset_state, sign_in
from reschool.config import CONFIG
from reschool.db import find_user_by_stack_auth_id


def test_user_profile_visibility() -> None:
    fam = family()
    outsider_headers, outsider = sign_in("outsider")
    create_child(fam.admin, "Ida")

    own = client.get(f"/api/users/{fam.admin_user['id']}", headers=fam.admin)
    assert own.status_code == 200
    assert {child["name"] for child in own.json()["children"]} == {"Søren", "Ida"}

    shared = client.get(f"/api/users/{fam.admin_user['id']}", headers=fam.member)
    assert shared.status_code == 200
    assert [child["name"] for child in shared.json()["children"]] == ["Søren"]

    assert client.get(f"/api/users/{fam.admin_user['id']}", headers=outsider_headers).status_code == 403
    assert client.get(f"/api/users/{outsider['id']}", headers=fam.admin).status_code == 403
    assert client.get("/api/users/999999", headers=fam.admin).status_code == 404


def test_webhook_user_lifecycle() -> None:
    reset_state()
    created = client.post(
        "/api/webhooks/stack-auth",
        json={
            "type": "user.created",
            "data": {"id": "stack-42", "primary_email": "Ny@Example.com", "display_name": "Nina"},
        },
    )
    assert created.status_code == 200
    user = find_user_by_stack_auth_id("stack-42")
    assert user is not None
    assert user.email == "ny@example.com"

    client.post(
        "/api/webhooks/stack-auth",
        json={"type": "user.updated", "data": {"id": "stack-42", "profile_image_url": "https://img.example.com/n.png"}},
    )
    user = find_user_by_stack_auth_id("stack-42")
    assert user.display_name == "Nina"
    assert user.profile_image_url == "https://img.example.com/n.png"

    ignored = client.post("/api/webhooks/stack-auth", json={"type": "team.created", "data": {"id": "team-1"}})
    assert ignored.json()["ignored"] is True

    deleted = client.post("/api/webhooks/stack-auth", json={"type": "user.deleted", "data": {"id": "stack-42"}})
    assert deleted.json() == {"success": True, "deleted": True}
    assert find_user_by_stack_auth_id("stack-42") is None

    assert client.post("/api/webhooks/stack-auth", json={"type": "user.deleted", "data": {}}).status_code == 400


def test_deleting_a_user_removes_their_relations() -> None:
    fam = family()
    client.post("/api/webhooks/stack-auth", json={"type": "user.deleted", "data": {"id": "laerer"}})
    users = client.get(f"/api/children/{fam.child['id']}", headers=fam.admin).json()["users"]
    assert [user["display_name"] for user in users] == ["Mette"]


def test_webhook_secret_is_enforced(monkeypatch: pytest.MonkeyPatch) -> None:
    reset_state()
    monkeypatch.setattr(CONFIG, "webhook_secret", "hook-secret")
    event = {"type": "user.created", "data": {"id": "stack-7", "primary_email": "a@example.com"}}

    assert client.post("/api/webhooks/stack-auth", json=event).status_code == 401
    wrong = client.post("/api/webhooks/stack-auth", json=event, headers={"x-webhook-secret": "nope"})
    assert wrong.status_code == 401
    ok = client.post("/api/webhooks/stack-auth", json=event, headers={"x-webhook-secret": "hook-secret"})
    assert ok.status_code == 200
