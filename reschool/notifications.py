"""In-app notifications and Web Push subscriptions."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from .db import get_connection, utc_now
from .schemas import Notification, NotificationType, PushSubscription

logger = logging.getLogger(__name__)


def _row_to_notification(row) -> Notification:
    data: Dict[str, Any] = {}
    if row["data"]:
        try:
            data = json.loads(row["data"])
        except json.JSONDecodeError:
            logger.warning("notification data is not valid JSON", extra={"notification_id": row["id"]})
    return Notification(
        id=row["id"],
        user_id=row["user_id"],
        pending_email=row["pending_email"],
        type=NotificationType(row["type"]),
        title=row["title"],
        message=row["message"],
        data=data,
        is_read=bool(row["is_read"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def create_notification(
    *,
    type: NotificationType,
    title: str,
    message: str,
    user_id: Optional[int] = None,
    pending_email: Optional[str] = None,
    data: Optional[Dict[str, Any]] = None,
) -> Notification:
    """Store a notification for a user, or park it on an e-mail without an account yet."""

    if user_id is None and not pending_email:
        raise ValueError("A notification needs a user_id or a pending_email")
    now = utc_now()
    with get_connection() as conn:
        cursor = conn.execute(
            """
            INSERT INTO notifications (user_id, pending_email, type, title, message, data, is_read, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?)
            """,
            (
                user_id,
                pending_email.strip().lower() if pending_email and user_id is None else None,
                type.value,
                title,
                message,
                json.dumps(data) if data else None,
                now,
                now,
            ),
        )
        conn.commit()
        notification_id = cursor.lastrowid
    return get_notification(notification_id)


def get_notification(notification_id: int) -> Notification:
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM notifications WHERE id = ?", (notification_id,)).fetchone()
    if not row:
        raise ValueError(f"Notification {notification_id} not found")
    return _row_to_notification(row)


def list_notifications(user_id: int, *, limit: int = 50, unread_only: bool = False) -> List[Notification]:
    query = "SELECT * FROM notifications WHERE user_id = ?"
    params: List[object] = [user_id]
    if unread_only:
        query += " AND is_read = 0"
    query += " ORDER BY created_at DESC, id DESC LIMIT ?"
    params.append(limit)
    with get_connection() as conn:
        rows = conn.execute(query, tuple(params)).fetchall()
    return [_row_to_notification(row) for row in rows]


def count_unread(user_id: int) -> int:
    with get_connection() as conn:
        row = conn.execute(
            "SELECT COUNT(*) FROM notifications WHERE user_id = ? AND is_read = 0",
            (user_id,),
        ).fetchone()
    return int(row[0])


def mark_as_read(notification_id: int, user_id: int) -> Notification:
    with get_connection() as conn:
        cursor = conn.execute(
            "UPDATE notifications SET is_read = 1, updated_at = ? WHERE id = ? AND user_id = ?",
            (utc_now(), notification_id, user_id),
        )
        conn.commit()
    if cursor.rowcount == 0:
        raise ValueError(f"Notification {notification_id} not found")
    return get_notification(notification_id)


def mark_all_as_read(user_id: int) -> int:
    with get_connection() as conn:
        cursor = conn.execute(
            "UPDATE notifications SET is_read = 1, updated_at = ? WHERE user_id = ? AND is_read = 0",
            (utc_now(), user_id),
        )
        conn.commit()
    return cursor.rowcount


def delete_notification(notification_id: int, user_id: int) -> None:
    with get_connection() as conn:
        cursor = conn.execute(
            "DELETE FROM notifications WHERE id = ? AND user_id = ?",
            (notification_id, user_id),
        )
        conn.commit()
    if cursor.rowcount == 0:
        raise ValueError(f"Notification {notification_id} not found")


def activate_pending_notifications(user_id: int, email: str) -> int:
    """Attach notifications parked on ``email`` to the user who now owns it."""

    with get_connection() as conn:
        cursor = conn.execute(
            """
            UPDATE notifications
            SET user_id = ?, pending_email = NULL, updated_at = ?
            WHERE user_id IS NULL AND pending_email = ?
            """,
            (user_id, utc_now(), email.strip().lower()),
        )
        conn.commit()
    return cursor.rowcount


def notify_invitation_received(
    *,
    user_id: Optional[int],
    email: str,
    child_name: str,
    inviter_name: str,
    token: str,
) -> Notification:
    return create_notification(
        type=NotificationType.INVITATION_RECEIVED,
        title="Ny invitation",
        message=f"{inviter_name} har inviteret dig til at følge {child_name}",
        user_id=user_id,
        pending_email=None if user_id is not None else email,
        data={
            "child_name": child_name,
            "inviter_name": inviter_name,
            "invitation_token": token,
            "action_url": f"/invite/{token}",
        },
    )


def notify_child_added(*, user_id: int, child_name: str, child_slug: str) -> Notification:
    return create_notification(
        type=NotificationType.CHILD_ADDED,
        title="Barn tilføjet",
        message=f"Du kan nu følge {child_name}",
        user_id=user_id,
        data={"child_name": child_name, "child_slug": child_slug, "action_url": f"/{child_slug}"},
    )


def notify_user_joined_child(
    *,
    user_id: int,
    user_name: str,
    child_name: str,
    child_slug: str,
) -> Notification:
    return create_notification(
        type=NotificationType.USER_JOINED_CHILD,
        title="Ny bruger tilsluttet",
        message=f"{user_name} følger nu {child_name}",
        user_id=user_id,
        data={
            "user_name": user_name,
            "child_name": child_name,
            "child_slug": child_slug,
            "action_url": f"/{child_slug}",
        },
    )


def _row_to_push_subscription(row) -> PushSubscription:
    return PushSubscription(
        id=row["id"],
        user_id=row["user_id"],
        endpoint=row["endpoint"],
        p256dh_key=row["p256dh_key"],
        auth_key=row["auth_key"],
        created_at=row["created_at"],
    )


def save_push_subscription(*, user_id: int, endpoint: str, p256dh_key: str, auth_key: str) -> PushSubscription:
    with get_connection() as conn:
        conn.execute(
            """
            INSERT INTO push_subscriptions (user_id, endpoint, p256dh_key, auth_key, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (user_id, endpoint) DO UPDATE SET
                p256dh_key = excluded.p256dh_key,
                auth_key = excluded.auth_key
            """,
            (user_id, endpoint, p256dh_key, auth_key, utc_now()),
        )
        conn.commit()
        row = conn.execute(
            "SELECT * FROM push_subscriptions WHERE user_id = ? AND endpoint = ?",
            (user_id, endpoint),
        ).fetchone()
    return _row_to_push_subscription(row)


def delete_push_subscription(user_id: int, endpoint: str) -> bool:
    with get_connection() as conn:
        cursor = conn.execute(
            "DELETE FROM push_subscriptions WHERE user_id = ? AND endpoint = ?",
            (user_id, endpoint),
        )
        conn.commit()
    return cursor.rowcount > 0


def list_push_subscriptions(user_id: int) -> List[PushSubscription]:
    with get_connection() as conn:
        rows = conn.execute(
            "SELECT * FROM push_subscriptions WHERE user_id = ? ORDER BY id",
            (user_id,),
        ).fetchall()
    return [_row_to_push_subscription(row) for row in rows]
