from __future__ import annotations

from api_helpers import client, family


def test_dagens_smiley_flow(outbox) -> None:
    fam = family()
    url = f"/api/children/{fam.child['id']}/dagens-smiley"

    assert client.post(url, json={"topic": "Skoledag"}, headers=fam.member).status_code == 403
    created = client.post(url, json={"topic": "Skoledag", "description": "Hvordan gik det?"}, headers=fam.admin)
    assert created.status_code == 201
    smiley = created.json()["smiley"]

    entries_url = f"/api/dagens-smiley/{smiley['id']}/entries"
    missing = client.post(entries_url, json={"reasoning": "glemt"}, headers=fam.member)
    assert missing.status_code == 400
    blank = client.post(entries_url, json={"selected_emoji": " "}, headers=fam.member)
    assert blank.status_code == 400

    recorded = client.post(
        entries_url,
        json={"selected_emoji": "😊", "reasoning": "God dag", "entry_date": "2026-05-04"},
        headers=fam.member,
    )
    assert recorded.status_code == 201
    entry = recorded.json()["entry"]
    assert entry["entry_date"] == "2026-05-04"
    assert outbox.submissions[-1]["submission"]["selected_emoji"] == "😊"

    # Smiley entries are not one-per-day.
    client.post(entries_url, json={"selected_emoji": "😐", "entry_date": "2026-05-04"}, headers=fam.member)
    assert len(client.get(entries_url, headers=fam.admin).json()["entries"]) == 2

    listed = client.get(url, headers=fam.member).json()["smileys"]
    assert [item["topic"] for item in listed] == ["Skoledag"]


def test_dagens_smiley_update_and_delete() -> None:
    fam = family()
    smiley = client.post(
        f"/api/children/{fam.child['id']}/dagens-smiley",
        json={"topic": "Frikvarter", "is_public": False},
        headers=fam.admin,
    ).json()["smiley"]
    url = f"/api/dagens-smiley/{smiley['id']}"

    assert client.get(f"{url}/entries", headers=fam.member).status_code == 403
    assert client.get(f"{url}/access", headers=fam.member).status_code == 403

    opened = client.put(url, json={"is_public": True}, headers=fam.admin)
    assert opened.status_code == 200
    assert opened.json()["smiley"]["is_public"] is True
    assert client.get(f"{url}/entries", headers=fam.member).status_code == 200

    entry = client.post(f"{url}/entries", json={"selected_emoji": "😢"}, headers=fam.member).json()["entry"]
    assert client.delete(f"{url}/entries/{entry['id']}", headers=fam.admin).status_code == 200
    assert client.delete(f"{url}/entries/{entry['id']}", headers=fam.admin).status_code == 404

    assert client.put(url, json={"topic": ""}, headers=fam.admin).status_code == 400
    assert client.delete(url, headers=fam.member).status_code == 403
    assert client.delete(url, headers=fam.admin).status_code == 200
