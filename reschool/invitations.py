"""Invitations: single-use, time-bound tokens that attach a new adult to a child."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Optional
from uuid import uuid4

from .config import CONFIG
from .db import get_connection, utc_now
from .schemas import Invitation, InvitationDetails, InvitationStatus, RelationType

_DETAILS_SELECT = """
    SELECT i.*, c.name AS child_name, c.slug AS child_slug,
           u.display_name AS inviter_name, u.email AS inviter_email
    FROM invitations i
    JOIN children c ON c.id = i.child_id
    LEFT JOIN users u ON u.id = i.invited_by
"""


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _row_to_invitation(row) -> Invitation:
    return Invitation(
        id=row["id"],
        email=row["email"],
        child_id=row["child_id"],
        invited_by=row["invited_by"],
        relation=RelationType(row["relation"]),
        custom_relation_name=row["custom_relation_name"],
        is_administrator=bool(row["is_administrator"]),
        token=row["token"],
        status=InvitationStatus(row["status"]),
        expires_at=row["expires_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_details(row) -> InvitationDetails:
    return InvitationDetails(
        **_row_to_invitation(row).model_dump(),
        child_name=row["child_name"],
        child_slug=row["child_slug"],
        inviter_name=row["inviter_name"],
        inviter_email=row["inviter_email"],
    )


def is_expired(invitation: Invitation, *, now: Optional[datetime] = None) -> bool:
    current = now or datetime.now(timezone.utc)
    expires_at = invitation.expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= current


def create_invitation(
    *,
    email: str,
    child_id: int,
    invited_by: int,
    relation: RelationType,
    custom_relation_name: Optional[str] = None,
    is_administrator: bool = False,
    ttl_days: Optional[int] = None,
) -> Invitation:
    """Issue a fresh token; an older pending invitation for the same e-mail and child is expired."""

    now = utc_now()
    normalized = normalize_email(email)
    days = ttl_days if ttl_days is not None else CONFIG.invitation_ttl_days
    expires_at = (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()
    token = uuid4().hex
    with get_connection() as conn:
        conn.execute(
            """
            UPDATE invitations SET status = ?, updated_at = ?
            WHERE child_id = ? AND email = ? AND status = ?
            """,
            (InvitationStatus.EXPIRED.value, now, child_id, normalized, InvitationStatus.PENDING.value),
        )
        cursor = conn.execute(
            """
            INSERT INTO invitations (
                email, child_id, invited_by, relation, custom_relation_name, is_administrator,
                token, status, expires_at, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                normalized,
                child_id,
                invited_by,
                relation.value,
                custom_relation_name,
                1 if is_administrator else 0,
                token,
                InvitationStatus.PENDING.value,
                expires_at,
                now,
                now,
            ),
        )
        conn.commit()
        invitation_id = cursor.lastrowid
    return get_invitation(invitation_id)


def get_invitation(invitation_id: int) -> Invitation:
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM invitations WHERE id = ?", (invitation_id,)).fetchone()
    if not row:
        raise ValueError(f"Invitation {invitation_id} not found")
    return _row_to_invitation(row)


def get_invitation_by_token(token: str) -> Optional[InvitationDetails]:
    with get_connection() as conn:
        row = conn.execute(_DETAILS_SELECT + " WHERE i.token = ?", (token,)).fetchone()
    return _row_to_details(row) if row else None


def list_pending_for_child(child_id: int) -> List[Invitation]:
    with get_connection() as conn:
        rows = conn.execute(
            """
            SELECT * FROM invitations
            WHERE child_id = ? AND status = ? AND expires_at > ?
            ORDER BY created_at DESC, id DESC
            """,
            (child_id, InvitationStatus.PENDING.value, utc_now()),
        ).fetchall()
    return [_row_to_invitation(row) for row in rows]


def list_pending_for_email(email: str) -> List[InvitationDetails]:
    with get_connection() as conn:
        rows = conn.execute(
            _DETAILS_SELECT
            + """
            WHERE i.email = ? AND i.status = ? AND i.expires_at > ?
            ORDER BY i.created_at DESC, i.id DESC
            """,
            (normalize_email(email), InvitationStatus.PENDING.value, utc_now()),
        ).fetchall()
    return [_row_to_details(row) for row in rows]


def set_status(invitation_id: int, status: InvitationStatus) -> Invitation:
    with get_connection() as conn:
        cursor = conn.execute(
            "UPDATE invitations SET status = ?, updated_at = ? WHERE id = ?",
            (status.value, utc_now(), invitation_id),
        )
        conn.commit()
    if cursor.rowcount == 0:
        raise ValueError(f"Invitation {invitation_id} not found")
    return get_invitation(invitation_id)


def mark_accepted(invitation_id: int) -> bool:
    """Flip a pending invitation to accepted; False when another request got there first."""

    with get_connection() as conn:
        cursor = conn.execute(
            "UPDATE invitations SET status = ?, updated_at = ? WHERE id = ? AND status = ?",
            (
                InvitationStatus.ACCEPTED.value,
                utc_now(),
                invitation_id,
                InvitationStatus.PENDING.value,
            ),
        )
        conn.commit()
    return cursor.rowcount == 1


def delete_invitation(invitation_id: int) -> None:
    with get_connection() as conn:
        conn.execute("DELETE FROM invitations WHERE id = ?", (invitation_id,))
        conn.commit()
