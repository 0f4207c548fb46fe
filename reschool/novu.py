"""Novu (EU region) REST client and the workflow triggers ReSchool sends."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Optional

import httpx

from .config import CONFIG
from .schemas import ToolType

logger = logging.getLogger(__name__)

ADULT_CONNECTED_WORKFLOW = "ny-voksen-til-barn"
CHILD_SUBMISSION_WORKFLOW = "ny-registrering-til-barn"
SUBSCRIBER_TIMEZONE = "Europe/Copenhagen"


class NovuError(RuntimeError):
    def __init__(self, action: str, status_code: int, body: str) -> None:
        super().__init__(f"Novu {action} failed: status={status_code}, body={body}")
        self.action = action
        self.status_code = status_code


def _split_name(display_name: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    if not display_name:
        return None, None
    first, _, last = display_name.strip().partition(" ")
    return first or None, last or None


@dataclass
class NovuClient:
    base_url: str
    secret_key: str

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"ApiKey {self.secret_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    async def request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> httpx.Response:
        async with httpx.AsyncClient(timeout=15.0) as client:
            return await client.request(
                method,
                f"{self.base_url}{path}",
                json=json,
                headers=self._headers(),
            )

    async def _send(self, action: str, method: str, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        resp = await self.request(method, path, json=payload)
        if resp.status_code >= 400:
            raise NovuError(action, resp.status_code, resp.text or "<empty response>")
        return resp.json() if resp.content else {}

    async def upsert_subscriber(
        self,
        subscriber_id: str,
        *,
        email: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        first_name, last_name = _split_name(display_name)
        payload: Dict[str, Any] = {"subscriberId": subscriber_id}
        if email:
            payload["email"] = email
        if first_name:
            payload["firstName"] = first_name
        if last_name:
            payload["lastName"] = last_name
        return await self._send("subscriber upsert", "POST", "/v1/subscribers", payload)

    async def set_fcm_token(self, subscriber_id: str, fcm_token: str) -> Dict[str, Any]:
        return await self._send(
            "credentials update",
            "PUT",
            f"/v1/subscribers/{subscriber_id}/credentials",
            {"providerId": "fcm", "credentials": {"deviceTokens": [fcm_token]}},
        )

    async def trigger(self, workflow_id: str, subscriber_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._send(
            "trigger",
            "POST",
            "/v1/events/trigger",
            {
                "name": workflow_id,
                "to": {"subscriberId": subscriber_id, "timezone": SUBSCRIBER_TIMEZONE},
                "payload": payload,
            },
        )


@lru_cache
def get_novu_client() -> Optional[NovuClient]:
    if not CONFIG.novu_secret_key:
        return None
    return NovuClient(base_url=CONFIG.novu_api_url.rstrip("/"), secret_key=CONFIG.novu_secret_key)


async def _trigger_many(workflow_id: str, subscriber_ids: Iterable[str], payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    client = get_novu_client()
    results: List[Dict[str, Any]] = []
    for subscriber_id in subscriber_ids:
        if client is None:
            results.append({"subscriber_id": subscriber_id, "success": False, "skipped": True})
            continue
        try:
            await client.trigger(workflow_id, subscriber_id, payload)
            results.append({"subscriber_id": subscriber_id, "success": True})
        except (httpx.HTTPError, NovuError) as exc:
            logger.warning(
                "novu trigger failed",
                extra={"workflow": workflow_id, "subscriber_id": subscriber_id, "error": str(exc)},
            )
            results.append({"subscriber_id": subscriber_id, "success": False, "error": str(exc)})
    return results


async def notify_adult_connected(
    subscriber_ids: Iterable[str],
    *,
    adult_name: str,
    child_name: str,
    adult_relation: str,
    inviter_name: str,
) -> List[Dict[str, Any]]:
    payload = {
        "adult_name": adult_name,
        "child_name": child_name,
        "adult_relation": adult_relation,
        "inviter_name": inviter_name,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    return await _trigger_many(ADULT_CONNECTED_WORKFLOW, subscriber_ids, payload)


_SUBMISSION_FIELDS = (
    "rating",
    "comment",
    "scale_min",
    "scale_max",
    "selected_emoji",
    "reasoning",
    "entry_date",
    "actual_bedtime",
    "puttetid",
    "sov_kl",
    "vaagnede",
    "notes",
)


def build_submission_payload(
    *,
    child_name: str,
    tool_name: str,
    tool_type: ToolType,
    submitted_by_name: str,
    submission: Dict[str, Any],
) -> Dict[str, Any]:
    """Flatten an entry into the ``submission_*`` variables the workflow template reads."""

    payload: Dict[str, Any] = {
        "submission_child_name": child_name,
        "submission_tool_name": tool_name,
        "submission_tool_type": tool_type.value,
        "submission_submitted_by_name": submitted_by_name,
        "submission_timestamp": datetime.now(timezone.utc).isoformat(),
    }
    for field in _SUBMISSION_FIELDS:
        value = submission.get(field)
        if value is not None and value != "":
            payload[f"submission_{field}"] = value
    return payload


async def notify_child_submission(
    subscriber_ids: Iterable[str],
    *,
    child_name: str,
    tool_name: str,
    tool_type: ToolType,
    submitted_by_name: str,
    submission: Dict[str, Any],
) -> List[Dict[str, Any]]:
    payload = build_submission_payload(
        child_name=child_name,
        tool_name=tool_name,
        tool_type=tool_type,
        submitted_by_name=submitted_by_name,
        submission=submission,
    )
    return await _trigger_many(CHILD_SUBMISSION_WORKFLOW, subscriber_ids, payload)


async def register_fcm_device(
    subscriber_id: str,
    fcm_token: str,
    *,
    email: Optional[str] = None,
    display_name: Optional[str] = None,
) -> Dict[str, Any]:
    """Make sure the subscriber exists, then attach the device token to it."""

    client = get_novu_client()
    if client is None:
        raise NovuError("credentials update", 503, "Novu is not configured")
    await client.upsert_subscriber(subscriber_id, email=email, display_name=display_name)
    return await client.set_fcm_token(subscriber_id, fcm_token)
