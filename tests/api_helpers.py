from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import jwt
from fastapi.testclient import TestClient

from reschool.config import CONFIG
from reschool.db import get_connection
from reschool.main import app

client = TestClient(app)

# Dependent tables first so foreign keys never block the cleanup.
_TABLES = [
    "step_linked_entries",
    "step_periods",
    "indsats_steps",
    "indsatstrappe",
    "barometer_entries",
    "barometers",
    "dagens_smiley_entries",
    "dagens_smiley",
    "sengetider_entries",
    "sengetider",
    "tool_user_access",
    "invitations",
    "notifications",
    "push_subscriptions",
    "user_child_relations",
    "children",
    "users",
]


def reset_state() -> None:
    with get_connection() as conn:
        for table in _TABLES:
            conn.execute(f"DELETE FROM {table}")
        conn.commit()


def mint_token(sub: str, email: str, name: Optional[str] = None) -> str:
    claims: Dict[str, Any] = {"sub": sub, "email": email}
    if name is not None:
        claims["name"] = name
    return jwt.encode(claims, CONFIG.stack_jwt_secret, algorithm="HS256")


def auth_headers(sub: str, email: Optional[str] = None, name: Optional[str] = None) -> Dict[str, str]:
    token = mint_token(sub, email or f"{sub}@example.com", name)
    return {"Authorization": f"Bearer {token}"}


def sign_in(sub: str, *, name: Optional[str] = None, email: Optional[str] = None) -> Tuple[Dict[str, str], dict]:
    headers = auth_headers(sub, email, name if name is not None else sub.capitalize())
    resp = client.post("/api/sync-user", headers=headers)
    assert resp.status_code == 200, resp.text
    return headers, resp.json()["user"]


def create_child(headers: Dict[str, str], name: str = "Søren", relation: str = "Mor") -> dict:
    resp = client.post("/api/children", json={"name": name, "relation": relation}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["child"]


def add_member(
    admin_headers: Dict[str, str],
    child_id: int,
    user_id: int,
    *,
    relation: str = "Underviser",
    is_administrator: bool = False,
) -> dict:
    resp = client.post(
        f"/api/children/{child_id}/add-user",
        json={"user_id": user_id, "relation": relation, "is_administrator": is_administrator},
        headers=admin_headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["relation"]


@dataclass
class Family:
    child: dict
    admin: Dict[str, str]
    admin_user: dict
    member: Dict[str, str]
    member_user: dict


def family() -> Family:
    """A child administered by "mor" with "laerer" as a plain member."""

    reset_state()
    mor_headers, mor = sign_in("mor", name="Mette")
    laerer_headers, laerer = sign_in("laerer", name="Lars")
    child = create_child(mor_headers)
    add_member(mor_headers, child["id"], laerer["id"])
    return Family(child=child, admin=mor_headers, admin_user=mor, member=laerer_headers, member_user=laerer)
