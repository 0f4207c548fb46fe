import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List

import pytest

os.environ.setdefault("RESCHOOL_DATABASE_PATH", str(Path(tempfile.mkdtemp()) / "reschool-test.db"))
os.environ.setdefault("RESCHOOL_STACK_JWT_SECRET", "reschool-test-secret-with-enough-length")
os.environ.setdefault("RESCHOOL_APP_URL", "https://app.reschool.test")

from reschool import mailer, novu  # noqa: E402


class Outbox:
    """Records what would have been sent to Novu and Resend."""

    def __init__(self) -> None:
        self.submissions: List[Dict[str, Any]] = []
        self.connections: List[Dict[str, Any]] = []
        self.emails: List[Dict[str, Any]] = []
        self.devices: List[Dict[str, Any]] = []
        self.email_result: Dict[str, Any] = {"success": True, "id": "email-1"}


@pytest.fixture(autouse=True)
def outbox(monkeypatch: pytest.MonkeyPatch) -> Outbox:
    box = Outbox()

    async def fake_submission(subscriber_ids, **kwargs):
        ids = list(subscriber_ids)
        box.submissions.append({"subscriber_ids": ids, **kwargs})
        return [{"subscriber_id": subscriber_id, "success": True} for subscriber_id in ids]

    async def fake_connected(subscriber_ids, **kwargs):
        ids = list(subscriber_ids)
        box.connections.append({"subscriber_ids": ids, **kwargs})
        return [{"subscriber_id": subscriber_id, "success": True} for subscriber_id in ids]

    async def fake_register(subscriber_id, fcm_token, **kwargs):
        box.devices.append({"subscriber_id": subscriber_id, "fcm_token": fcm_token, **kwargs})
        return {"data": {"subscriberId": subscriber_id}}

    async def fake_email(**kwargs):
        box.emails.append(kwargs)
        return box.email_result

    monkeypatch.setattr(novu, "notify_child_submission", fake_submission)
    monkeypatch.setattr(novu, "notify_adult_connected", fake_connected)
    monkeypatch.setattr(novu, "register_fcm_device", fake_register)
    monkeypatch.setattr(mailer, "send_invitation_email", fake_email)
    return box
