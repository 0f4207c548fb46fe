from __future__ import annotations

from api_helpers import client, family, sign_in


def _members_url(child_id: int, user_id: int) -> str:
    return f"/api/children/{child_id}/users/{user_id}"


def test_promote_and_demote() -> None:
    fam = family()
    url = _members_url(fam.child["id"], fam.member_user["id"])

    assert client.post(f"{url}/promote", headers=fam.member).status_code == 403

    promoted = client.post(f"{url}/promote", headers=fam.admin)
    assert promoted.status_code == 200
    assert promoted.json()["relation"]["is_administrator"] is True
    assert client.post(f"{url}/promote", headers=fam.admin).status_code == 400

    demoted = client.post(f"{url}/demote", headers=fam.admin)
    assert demoted.status_code == 200
    assert demoted.json()["relation"]["is_administrator"] is False
    assert client.post(f"{url}/demote", headers=fam.admin).status_code == 400


def test_last_administrator_is_protected() -> None:
    fam = family()
    admin_url = _members_url(fam.child["id"], fam.admin_user["id"])

    demote = client.post(f"{admin_url}/demote", headers=fam.admin)
    assert demote.status_code == 400
    assert "last administrator" in demote.json()["detail"]

    remove = client.delete(admin_url, headers=fam.admin)
    assert remove.status_code == 400

    client.post(f"{_members_url(fam.child['id'], fam.member_user['id'])}/promote", headers=fam.admin)
    assert client.post(f"{admin_url}/demote", headers=fam.admin).status_code == 200


def test_remove_member() -> None:
    fam = family()
    _, stranger = sign_in("stranger")
    child_id = fam.child["id"]

    assert client.delete(_members_url(child_id, fam.admin_user["id"]), headers=fam.member).status_code == 403
    assert client.delete(_members_url(child_id, stranger["id"]), headers=fam.admin).status_code == 404

    removed = client.delete(_members_url(child_id, fam.member_user["id"]), headers=fam.admin)
    assert removed.status_code == 200
    assert client.get(f"/api/children/{child_id}", headers=fam.member).status_code == 403
