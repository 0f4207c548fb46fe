from __future__ import annotations

from datetime import datetime, timezone

from api_helpers import client, family, reset_state, sign_in
from reschool.progress import summarize_step
from reschool.schemas import IndsatsStep, StepPeriod


def _at(day: int, hour: int = 0) -> datetime:
    return datetime(2026, 1, day, hour, tzinfo=timezone.utc)


def test_summarize_step_groups_entries_by_period() -> None:
    reset_state()
    step = IndsatsStep(
        id=1,
        plan_id=1,
        step_number=1,
        title="Trin 1",
        periods=[
            StepPeriod(id=1, step_id=1, start_date=_at(1), end_date=_at(3, 12), created_at=_at(1)),
            StepPeriod(id=2, step_id=1, start_date=_at(10), created_at=_at(10)),
        ],
        created_at=_at(1),
        updated_at=_at(1),
    )
    entries = [
        {"id": 1, "created_at": _at(2, 10).isoformat(), "tool_created_by": 1, "tool_is_public": 1},
        {"id": 2, "created_at": _at(5).isoformat(), "tool_created_by": 1, "tool_is_public": 1},
        {"id": 3, "created_at": _at(10, 9).isoformat(), "tool_created_by": 1, "tool_is_public": 1},
    ]

    summary = summarize_step(step, entries, now=_at(11))
    assert [entry["id"] for entry in summary["entries"]] == [1, 3]
    assert summary["entry_count"] == 2
    assert "tool_created_by" not in summary["entries"][0]
    assert summary["time_period"] == {"start": _at(1).isoformat(), "end": None}
    # Jan 1 until now (Jan 11), gaps included.
    assert summary["duration_days"] == 10
    assert summary["is_active"] is True


def test_step_without_periods_has_no_entries() -> None:
    reset_state()
    step = IndsatsStep(id=1, plan_id=1, step_number=1, title="Trin", created_at=_at(1), updated_at=_at(1))
    summary = summarize_step(step, [{"id": 1, "created_at": _at(2).isoformat()}], now=_at(3))
    assert summary["entries"] == []
    assert summary["time_period"] is None
    assert summary["duration_days"] == 0


def test_child_progress_endpoint() -> None:
    fam = family()
    child_id = fam.child["id"]
    plan = client.post(f"/api/children/{child_id}/indsatstrappe", json={"title": "Trappe"}, headers=fam.admin).json()["plan"]
    first = client.post(f"/api/indsatstrappe/{plan['id']}/steps", json={"title": "Trin 1"}, headers=fam.admin).json()["step"]
    client.post(f"/api/indsatstrappe/{plan['id']}/steps", json={"title": "Trin 2"}, headers=fam.admin)
    client.post(f"/api/indsatstrappe/{plan['id']}/steps/{first['id']}/periods", json={}, headers=fam.admin)

    public = client.post(f"/api/children/{child_id}/barometers", json={"topic": "Humør"}, headers=fam.admin).json()["barometer"]
    private = client.post(
        f"/api/children/{child_id}/barometers",
        json={"topic": "Privat", "is_public": False},
        headers=fam.admin,
    ).json()["barometer"]
    client.post(f"/api/barometers/{public['id']}/entries", json={"rating": 4}, headers=fam.member)
    client.post(f"/api/barometers/{private['id']}/entries", json={"rating": 2}, headers=fam.admin)

    admin_view = client.get(f"/api/children/{child_id}/progress", headers=fam.admin).json()
    assert admin_view["child_id"] == child_id
    assert admin_view["total_entries"] == 2
    steps = admin_view["plans"][0]["steps_with_entries"]
    assert [step["entry_count"] for step in steps] == [2, 0]
    assert steps[0]["time_period"]["end"] is None

    member_view = client.get(f"/api/children/{child_id}/progress", headers=fam.member).json()
    assert member_view["total_entries"] == 1
    assert member_view["plans"][0]["steps_with_entries"][0]["entries"][0]["tool_name"] == "Humør"

    outsider, _ = sign_in("outsider")
    assert client.get(f"/api/children/{child_id}/progress", headers=outsider).status_code == 403
    assert client.get("/api/children/99999/progress", headers=fam.admin).status_code == 404


def test_latest_registrations_respect_visibility_and_limit() -> None:
    fam = family()
    child_id = fam.child["id"]
    public = client.post(f"/api/children/{child_id}/dagens-smiley", json={"topic": "Dag"}, headers=fam.admin).json()["smiley"]
    private = client.post(
        f"/api/children/{child_id}/dagens-smiley",
        json={"topic": "Skjult", "is_public": False},
        headers=fam.admin,
    ).json()["smiley"]
    for emoji in ["😀", "😐", "😢"]:
        client.post(f"/api/dagens-smiley/{public['id']}/entries", json={"selected_emoji": emoji}, headers=fam.admin)
    client.post(f"/api/dagens-smiley/{private['id']}/entries", json={"selected_emoji": "🤫"}, headers=fam.admin)

    member_latest = client.get("/api/registrations/latest", headers=fam.member).json()["registrations"]
    assert len(member_latest) == 3
    assert {entry["child_slug"] for entry in member_latest} == {fam.child["slug"]}
    assert "tool_is_public" not in member_latest[0]

    admin_latest = client.get("/api/registrations/latest", params={"limit": 2}, headers=fam.admin).json()
    assert len(admin_latest["registrations"]) == 2
    assert admin_latest["registrations"][0]["selected_emoji"] == "🤫"

    capped = client.get("/api/registrations/latest", params={"limit": 500}, headers=fam.admin)
    assert capped.status_code == 200
    assert len(capped.json()["registrations"]) == 4


def test_closed_step_duration_spans_first_start_to_last_end() -> None:
    reset_state()
    step = IndsatsStep(
        id=1,
        plan_id=1,
        step_number=1,
        title="Trin 1",
        periods=[
            StepPeriod(id=1, step_id=1, start_date=_at(1), end_date=_at(3, 12), created_at=_at(1)),
            StepPeriod(id=2, step_id=1, start_date=_at(5), end_date=_at(6), created_at=_at(5)),
        ],
        created_at=_at(1),
        updated_at=_at(1),
    )
    summary = summarize_step(step, [], now=_at(20))
    assert summary["time_period"] == {"start": _at(1).isoformat(), "end": _at(6).isoformat()}
    assert summary["duration_days"] == 5
