"""Daily smiley check-ins ("dagens smiley")."""
from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from .access import clear_access_users, get_access_user_ids, replace_access_users
from .db import get_connection, utc_now
from .schemas import AccessScope, DagensSmiley, DagensSmileyEntry


def _row_to_smiley(row) -> DagensSmiley:
    return DagensSmiley(
        id=row["id"],
        child_id=row["child_id"],
        created_by=row["created_by"],
        topic=row["topic"],
        description=row["description"],
        is_public=bool(row["is_public"]),
        accessible_user_ids=get_access_user_ids(AccessScope.DAGENS_SMILEY, row["id"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_entry(row) -> DagensSmileyEntry:
    return DagensSmileyEntry(
        id=row["id"],
        smiley_id=row["smiley_id"],
        recorded_by=row["recorded_by"],
        recorded_by_name=row["recorded_by_name"],
        entry_date=row["entry_date"],
        selected_emoji=row["selected_emoji"],
        reasoning=row["reasoning"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def create_smiley(
    *,
    child_id: int,
    created_by: int,
    topic: str,
    description: Optional[str] = None,
    is_public: bool = True,
    accessible_user_ids: Optional[List[int]] = None,
) -> DagensSmiley:
    now = utc_now()
    with get_connection() as conn:
        cursor = conn.execute(
            """
            INSERT INTO dagens_smiley (child_id, created_by, topic, description, is_public, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (child_id, created_by, topic, description, 1 if is_public else 0, now, now),
        )
        conn.commit()
        smiley_id = cursor.lastrowid
    if not is_public and accessible_user_ids:
        replace_access_users(AccessScope.DAGENS_SMILEY, smiley_id, accessible_user_ids)
    return get_smiley(smiley_id)


def get_smiley(smiley_id: int) -> DagensSmiley:
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM dagens_smiley WHERE id = ?", (smiley_id,)).fetchone()
    if not row:
        raise ValueError(f"Dagens smiley {smiley_id} not found")
    return _row_to_smiley(row)


def list_smileys(child_id: int) -> List[DagensSmiley]:
    with get_connection() as conn:
        rows = conn.execute(
            "SELECT * FROM dagens_smiley WHERE child_id = ? ORDER BY created_at, id",
            (child_id,),
        ).fetchall()
    return [_row_to_smiley(row) for row in rows]


def update_smiley(
    smiley_id: int,
    updates: Dict[str, Any],
    *,
    accessible_user_ids: Optional[List[int]] = None,
) -> DagensSmiley:
    fields: List[str] = []
    params: List[object] = []
    for column in ("topic", "description", "is_public"):
        if column in updates:
            value = updates[column]
            fields.append(f"{column} = ?")
            params.append((1 if value else 0) if column == "is_public" else value)
    if fields:
        fields.append("updated_at = ?")
        params.extend([utc_now(), smiley_id])
        with get_connection() as conn:
            conn.execute(f"UPDATE dagens_smiley SET {', '.join(fields)} WHERE id = ?", tuple(params))
            conn.commit()
    if updates.get("is_public") is True:
        clear_access_users(AccessScope.DAGENS_SMILEY, smiley_id)
    elif accessible_user_ids is not None:
        replace_access_users(AccessScope.DAGENS_SMILEY, smiley_id, accessible_user_ids)
    return get_smiley(smiley_id)


def delete_smiley(smiley_id: int) -> None:
    clear_access_users(AccessScope.DAGENS_SMILEY, smiley_id)
    with get_connection() as conn:
        conn.execute("DELETE FROM dagens_smiley WHERE id = ?", (smiley_id,))
        conn.commit()


_ENTRY_SELECT = """
    SELECT e.*, u.display_name AS recorded_by_name
    FROM dagens_smiley_entries e
    LEFT JOIN users u ON u.id = e.recorded_by
"""


def record_entry(
    *,
    smiley_id: int,
    recorded_by: int,
    selected_emoji: str,
    reasoning: Optional[str] = None,
    entry_date: Optional[date] = None,
) -> DagensSmileyEntry:
    now = utc_now()
    day = (entry_date or date.today()).isoformat()
    with get_connection() as conn:
        cursor = conn.execute(
            """
            INSERT INTO dagens_smiley_entries (smiley_id, recorded_by, entry_date, selected_emoji, reasoning, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (smiley_id, recorded_by, day, selected_emoji, reasoning, now, now),
        )
        conn.commit()
        entry_id = cursor.lastrowid
    return get_entry(entry_id)


def get_entry(entry_id: int) -> DagensSmileyEntry:
    with get_connection() as conn:
        row = conn.execute(_ENTRY_SELECT + " WHERE e.id = ?", (entry_id,)).fetchone()
    if not row:
        raise ValueError(f"Dagens smiley entry {entry_id} not found")
    return _row_to_entry(row)


def list_entries(smiley_id: int, limit: int = 50) -> List[DagensSmileyEntry]:
    with get_connection() as conn:
        rows = conn.execute(
            _ENTRY_SELECT + " WHERE e.smiley_id = ? ORDER BY e.entry_date DESC, e.created_at DESC LIMIT ?",
            (smiley_id, limit),
        ).fetchall()
    return [_row_to_entry(row) for row in rows]


def delete_entry(entry_id: int) -> None:
    with get_connection() as conn:
        conn.execute("DELETE FROM dagens_smiley_entries WHERE id = ?", (entry_id,))
        conn.commit()


def delete_all_entries(smiley_id: int) -> int:
    with get_connection() as conn:
        cursor = conn.execute("DELETE FROM dagens_smiley_entries WHERE smiley_id = ?", (smiley_id,))
        conn.commit()
    return cursor.rowcount
