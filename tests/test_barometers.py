from __future__ import annotations

from api_helpers import client, family, sign_in


def _create(fam, **overrides) -> dict:
    payload = {"topic": "Humør", **overrides}
    resp = client.post(f"/api/children/{fam.child['id']}/barometers", json=payload, headers=fam.admin)
    assert resp.status_code == 201, resp.text
    return resp.json()["barometer"]


def test_scale_validation() -> None:
    fam = family()
    url = f"/api/children/{fam.child['id']}/barometers"

    default = _create(fam)
    assert (default["scale_min"], default["scale_max"]) == (1, 5)

    percentage = _create(fam, display_type="percentage")
    assert (percentage["scale_min"], percentage["scale_max"]) == (0, 100)

    smileys = _create(fam, display_type="smileys")
    assert smileys["smiley_type"] == "emojis"

    bad_percentage = client.post(
        url, json={"topic": "X", "display_type": "percentage", "scale_min": 1, "scale_max": 10}, headers=fam.admin
    )
    assert bad_percentage.status_code == 400
    inverted = client.post(url, json={"topic": "X", "scale_min": 5, "scale_max": 5}, headers=fam.admin)
    assert inverted.status_code == 400
    too_wide = client.post(url, json={"topic": "X", "scale_min": 1, "scale_max": 101}, headers=fam.admin)
    assert too_wide.status_code == 400
    no_topic = client.post(url, json={"topic": " "}, headers=fam.admin)
    assert no_topic.status_code == 400
    by_member = client.post(url, json={"topic": "X"}, headers=fam.member)
    assert by_member.status_code == 403


def test_record_entry_replaces_same_day_rating(outbox) -> None:
    fam = family()
    barometer = _create(fam, scale_min=1, scale_max=10)
    entries_url = f"/api/barometers/{barometer['id']}/entries"

    first = client.post(entries_url, json={"rating": 3, "entry_date": "2026-03-02"}, headers=fam.member)
    assert first.status_code == 201
    second = client.post(
        entries_url,
        json={"rating": 8, "comment": " bedre ", "entry_date": "2026-03-02"},
        headers=fam.member,
    )
    assert second.status_code == 201
    assert second.json()["entry"]["id"] == first.json()["entry"]["id"]

    entries = client.get(entries_url, headers=fam.admin).json()["entries"]
    assert len(entries) == 1
    assert entries[0]["rating"] == 8
    assert entries[0]["comment"] == "bedre"
    assert entries[0]["recorded_by_name"] == "Lars"

    # The other member is told about each new rating.
    assert outbox.submissions[-1]["subscriber_ids"] == ["mor"]
    assert outbox.submissions[-1]["submission"]["rating"] == 8


def test_entry_validation() -> None:
    fam = family()
    barometer = _create(fam)
    entries_url = f"/api/barometers/{barometer['id']}/entries"

    assert client.post(entries_url, json={"rating": 6}, headers=fam.member).status_code == 400
    assert client.post(entries_url, json={"rating": 0}, headers=fam.member).status_code == 400
    bad_date = client.post(entries_url, json={"rating": 3, "entry_date": "02-03-2026"}, headers=fam.member)
    assert bad_date.status_code == 400
    assert bad_date.json()["detail"] == "Invalid date format. Use YYYY-MM-DD"
    assert client.post("/api/barometers/9999/entries", json={"rating": 3}, headers=fam.member).status_code == 404


def test_private_barometer_visibility() -> None:
    fam = family()
    far_headers, far = sign_in("far", name="Frank")
    client.post(
        f"/api/children/{fam.child['id']}/add-user",
        json={"user_id": far["id"], "relation": "Far"},
        headers=fam.admin,
    )

    private = _create(fam, topic="Privat", is_public=False, accessible_user_ids=[far["id"]])
    assert private["accessible_user_ids"] == [far["id"]]

    listed_by_member = client.get(f"/api/children/{fam.child['id']}/barometers", headers=fam.member).json()
    assert listed_by_member["barometers"] == []
    listed_by_far = client.get(f"/api/children/{fam.child['id']}/barometers", headers=far_headers).json()
    assert [item["topic"] for item in listed_by_far["barometers"]] == ["Privat"]

    entries_url = f"/api/barometers/{private['id']}/entries"
    assert client.post(entries_url, json={"rating": 2}, headers=fam.member).status_code == 403
    assert client.post(entries_url, json={"rating": 2}, headers=far_headers).status_code == 201

    access = client.get(f"/api/barometers/{private['id']}/access", headers=fam.admin).json()
    assert access["is_public"] is False
    assert [user["id"] for user in access["access_users"]] == [far["id"]]

    _, outsider = sign_in("outsider")
    bad_access = client.post(
        f"/api/children/{fam.child['id']}/barometers",
        json={"topic": "X", "is_public": False, "accessible_user_ids": [outsider["id"]]},
        headers=fam.admin,
    )
    assert bad_access.status_code == 400


def test_update_and_delete_permissions() -> None:
    fam = family()
    barometer = _create(fam)
    url = f"/api/barometers/{barometer['id']}"

    assert client.put(url, json={"topic": "Nyt"}, headers=fam.member).status_code == 403
    updated = client.put(url, json={"topic": "Nyt", "display_type": "percentage"}, headers=fam.admin)
    assert updated.status_code == 200
    assert updated.json()["barometer"]["topic"] == "Nyt"
    assert updated.json()["barometer"]["scale_max"] == 100
    assert client.put(url, json={"is_public": "yes"}, headers=fam.admin).status_code == 400

    assert client.delete(url, headers=fam.member).status_code == 403
    assert client.delete(url, headers=fam.admin).status_code == 200
    assert client.get(f"{url}/entries", headers=fam.admin).status_code == 404


def test_delete_entries() -> None:
    fam = family()
    barometer = _create(fam)
    other = _create(fam, topic="Andet")
    entries_url = f"/api/barometers/{barometer['id']}/entries"

    mine = client.post(entries_url, json={"rating": 4}, headers=fam.admin).json()["entry"]
    theirs = client.post(entries_url, json={"rating": 2}, headers=fam.member).json()["entry"]

    assert client.delete(f"{entries_url}/{mine['id']}", headers=fam.member).status_code == 403
    assert client.delete(f"/api/barometers/{other['id']}/entries/{theirs['id']}", headers=fam.member).status_code == 400
    assert client.delete(f"{entries_url}/{theirs['id']}", headers=fam.member).status_code == 200

    assert client.delete(entries_url, headers=fam.member).status_code == 403
    cleared = client.delete(entries_url, headers=fam.admin)
    assert cleared.status_code == 200
    assert cleared.json() == {"success": True, "deleted_count": 1}
