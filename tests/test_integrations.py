from __future__ import annotations

import asyncio

import httpx
import pytest

from reschool import novu
from reschool.config import load_config
from reschool.mailer import render_invitation_email, send_invitation_email
from reschool.schemas import ToolType

# Captured at import time, before the autouse fixture swaps them for fakes.
trigger_many = novu._trigger_many
register_fcm_device = novu.register_fcm_device


def test_env_overrides_config(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RESCHOOL_CORS_ORIGINS", "https://a.example.com, https://b.example.com")
    monkeypatch.setenv("RESCHOOL_INVITATION_TTL_DAYS", "14")
    monkeypatch.setenv("RESCHOOL_STACK_PROJECT_ID", "proj-1")
    config = load_config()
    assert config.cors_origins == ["https://a.example.com", "https://b.example.com"]
    assert config.invitation_ttl_days == 14
    assert config.resolved_jwks_url == "https://api.stack-auth.com/api/v1/projects/proj-1/.well-known/jwks.json"


def test_build_submission_payload_skips_empty_fields() -> None:
    payload = novu.build_submission_payload(
        child_name="Søren",
        tool_name="Humør",
        tool_type=ToolType.BAROMETER,
        submitted_by_name="Lars",
        submission={"rating": 4, "comment": "", "scale_min": 1, "scale_max": 5, "unknown": "x"},
    )
    assert payload["submission_child_name"] == "Søren"
    assert payload["submission_tool_type"] == "barometer"
    assert payload["submission_rating"] == 4
    assert payload["submission_scale_max"] == 5
    assert "submission_comment" not in payload
    assert "submission_unknown" not in payload


def test_trigger_many_without_novu_is_skipped(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(novu, "get_novu_client", lambda: None)
    results = asyncio.run(trigger_many("ny-registrering-til-barn", ["a", "b"], {}))
    assert results == [
        {"subscriber_id": "a", "success": False, "skipped": True},
        {"subscriber_id": "b", "success": False, "skipped": True},
    ]


def test_trigger_many_reports_failures(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []

    async def fake_request(self, method, path, json=None):
        calls.append((method, path, json))
        if json["to"]["subscriberId"] == "broken":
            return httpx.Response(500, text="boom")
        return httpx.Response(201, json={"data": {"acknowledged": True}})

    monkeypatch.setattr(novu.NovuClient, "request", fake_request)
    client = novu.NovuClient(base_url="https://eu.api.novu.co", secret_key="key")
    monkeypatch.setattr(novu, "get_novu_client", lambda: client)

    results = asyncio.run(trigger_many("ny-voksen-til-barn", ["ok", "broken"], {"child_name": "Ida"}))
    assert results[0] == {"subscriber_id": "ok", "success": True}
    assert results[1]["success"] is False
    assert "status=500" in results[1]["error"]
    assert calls[0][:2] == ("POST", "/v1/events/trigger")
    assert calls[0][2]["to"]["timezone"] == "Europe/Copenhagen"
    assert calls[0][2]["payload"] == {"child_name": "Ida"}


def test_register_fcm_device_upserts_subscriber_first(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = []

    async def fake_request(self, method, path, json=None):
        calls.append((method, path, json))
        return httpx.Response(200, json={"data": {}})

    monkeypatch.setattr(novu.NovuClient, "request", fake_request)
    client = novu.NovuClient(base_url="https://eu.api.novu.co", secret_key="key")
    monkeypatch.setattr(novu, "get_novu_client", lambda: client)

    asyncio.run(register_fcm_device("stack-1", "t" * 120, email="m@example.com", display_name="Mette Hansen"))
    assert calls[0] == (
        "POST",
        "/v1/subscribers",
        {"subscriberId": "stack-1", "email": "m@example.com", "firstName": "Mette", "lastName": "Hansen"},
    )
    assert calls[1][:2] == ("PUT", "/v1/subscribers/stack-1/credentials")
    assert calls[1][2]["credentials"]["deviceTokens"] == ["t" * 120]


def test_register_fcm_device_requires_configuration(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(novu, "get_novu_client", lambda: None)
    with pytest.raises(novu.NovuError) as excinfo:
        asyncio.run(register_fcm_device("stack-1", "t" * 120))
    assert excinfo.value.status_code == 503


def test_invitation_email_escapes_names() -> None:
    html = render_invitation_email(
        child_name="<Ida>",
        inviter_name="Mette & Co",
        inviter_relation="Mor",
        recipient_relation="Far",
        invite_url="https://app.example.com/invite/abc",
        ttl_days=7,
    )
    assert "&lt;Ida&gt;" in html
    assert "Mette &amp; Co" in html
    assert "https://app.example.com/invite/abc" in html
    assert "7 dage" in html


def test_send_invitation_email_without_key_is_skipped() -> None:
    result = asyncio.run(
        send_invitation_email(
            to="far@example.com",
            child_name="Ida",
            inviter_name="Mette",
            inviter_relation="Mor",
            recipient_relation="Far",
            invite_url="https://app.example.com/invite/abc",
        )
    )
    assert result == {"success": False, "skipped": True}
