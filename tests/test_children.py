from __future__ import annotations

import pytest

from api_helpers import add_member, client, create_child, family, reset_state, sign_in
from reschool.children import _load_relation, slugify


def test_slugify_transliterates_danish_letters() -> None:
    assert slugify("Søren Ærø") == "soren-aro"
    assert slugify("  Åse & Bo!! ") == "ase-bo"
    assert slugify("---") == ""


def test_create_child_makes_creator_administrator() -> None:
    reset_state()
    headers, user = sign_in("mor", name="Mette")
    resp = client.post("/api/children", json={"name": "Søren Ærø", "relation": "Mor"}, headers=headers)
    assert resp.status_code == 201
    body = resp.json()
    assert body["child"]["slug"] == "soren-aro"
    assert body["relation"]["is_administrator"] is True
    assert body["relation"]["user_id"] == user["id"]

    listed = client.get("/api/children", headers=headers).json()["children"]
    assert [child["name"] for child in listed] == ["Søren Ærø"]
    assert listed[0]["is_administrator"] is True


def test_duplicate_names_get_numbered_slugs() -> None:
    reset_state()
    headers, _ = sign_in("mor")
    first = create_child(headers, "Emma")
    second = create_child(headers, "Emma")
    third = create_child(headers, "!!!")
    assert first["slug"] == "emma"
    assert second["slug"] == "emma-2"
    assert third["slug"] == "barn"


def test_create_child_validation() -> None:
    reset_state()
    headers, _ = sign_in("mor")
    missing_custom = client.post(
        "/api/children",
        json={"name": "Emma", "relation": "Ressourceperson"},
        headers=headers,
    )
    assert missing_custom.status_code == 400

    blank = client.post("/api/children", json={"name": "  ", "relation": "Mor"}, headers=headers)
    assert blank.status_code == 400

    unknown_relation = client.post("/api/children", json={"name": "Emma", "relation": "Onkel"}, headers=headers)
    assert unknown_relation.status_code == 400

    with_custom = client.post(
        "/api/children",
        json={"name": "Emma", "relation": "Ressourceperson", "custom_relation_name": "Psykolog"},
        headers=headers,
    )
    assert with_custom.status_code == 201
    assert with_custom.json()["relation"]["custom_relation_name"] == "Psykolog"


def test_child_details_require_membership() -> None:
    fam = family()
    outsider, _ = sign_in("outsider")
    child_id = fam.child["id"]

    assert client.get(f"/api/children/{child_id}", headers=outsider).status_code == 403
    assert client.get(f"/api/children/{child_id}", headers=fam.member).status_code == 200
    assert client.get("/api/children/9999", headers=fam.member).status_code == 404
    assert client.get("/api/children/not-a-number", headers=fam.member).status_code == 400


def test_child_by_slug_includes_users_and_pending_invitations() -> None:
    fam = family()
    invite = client.post(
        f"/api/children/{fam.child['id']}/invite",
        json={"email": "far@example.com", "relation": "Far"},
        headers=fam.admin,
    )
    assert invite.status_code == 201

    resp = client.get(f"/api/children/slug/{fam.child['slug']}", headers=fam.member)
    assert resp.status_code == 200
    body = resp.json()
    assert {user["display_name"] for user in body["users"]} == {"Mette", "Lars"}
    assert [invitation["email"] for invitation in body["invitations"]] == ["far@example.com"]
    assert body["current_user_relation"]["relation"] == "Underviser"

    assert client.get("/api/children/slug/unknown", headers=fam.member).status_code == 404


def test_only_administrators_delete_children() -> None:
    fam = family()
    child_id = fam.child["id"]
    assert client.delete(f"/api/children/{child_id}", headers=fam.member).status_code == 403
    assert client.delete(f"/api/children/{child_id}", headers=fam.admin).status_code == 200
    assert client.get("/api/children", headers=fam.admin).json()["children"] == []


def test_add_user_rules() -> None:
    fam = family()
    child_id = fam.child["id"]
    _, far = sign_in("far", name="Frank")

    by_member = client.post(
        f"/api/children/{child_id}/add-user",
        json={"user_id": far["id"], "relation": "Far"},
        headers=fam.member,
    )
    assert by_member.status_code == 403

    unknown = client.post(
        f"/api/children/{child_id}/add-user",
        json={"user_id": 999999, "relation": "Far"},
        headers=fam.admin,
    )
    assert unknown.status_code == 404

    relation = add_member(fam.admin, child_id, far["id"], relation="Far", is_administrator=True)
    assert relation["is_administrator"] is True

    again = client.post(
        f"/api/children/{child_id}/add-user",
        json={"user_id": far["id"], "relation": "Far"},
        headers=fam.admin,
    )
    assert again.status_code == 400


def test_loading_a_missing_relation_raises() -> None:
    reset_state()
    with pytest.raises(ValueError):
        _load_relation(424242, 424242)
