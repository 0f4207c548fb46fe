"""Bedtime logs ("sengetider"): one tool per child, one entry per evening."""
from __future__ import annotations

import re
from datetime import date
from typing import Any, Dict, List, Optional

from .access import clear_access_users, get_access_user_ids, replace_access_users
from .db import get_connection, utc_now
from .schemas import AccessScope, Sengetider, SengetiderEntry

TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9](:[0-5][0-9])?$")
ENTRY_TIME_FIELDS = ("actual_bedtime", "puttetid", "sov_kl", "vaagnede")


class InvalidTimeError(Exception):
    pass


def normalize_time(value: str) -> str:
    """Return ``value`` as HH:MM:SS; accepts H:MM, HH:MM and HH:MM:SS."""

    text = value.strip()
    if not TIME_PATTERN.match(text):
        raise InvalidTimeError(f"Invalid time '{value}'. Use HH:MM or HH:MM:SS")
    parts = text.split(":")
    if len(parts) == 2:
        parts.append("00")
    return ":".join(part.zfill(2) for part in parts)


def _row_to_sengetider(row) -> Sengetider:
    return Sengetider(
        id=row["id"],
        child_id=row["child_id"],
        created_by=row["created_by"],
        description=row["description"],
        target_bedtime=row["target_bedtime"],
        is_public=bool(row["is_public"]),
        accessible_user_ids=get_access_user_ids(AccessScope.SENGETIDER, row["id"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_entry(row) -> SengetiderEntry:
    return SengetiderEntry(
        id=row["id"],
        sengetider_id=row["sengetider_id"],
        recorded_by=row["recorded_by"],
        recorded_by_name=row["recorded_by_name"],
        entry_date=row["entry_date"],
        actual_bedtime=row["actual_bedtime"],
        puttetid=row["puttetid"],
        sov_kl=row["sov_kl"],
        vaagnede=row["vaagnede"],
        notes=row["notes"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def find_for_child(child_id: int) -> Optional[Sengetider]:
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM sengetider WHERE child_id = ?", (child_id,)).fetchone()
    return _row_to_sengetider(row) if row else None


def list_for_child(child_id: int) -> List[Sengetider]:
    found = find_for_child(child_id)
    return [found] if found else []


def create_sengetider(
    *,
    child_id: int,
    created_by: int,
    description: Optional[str] = None,
    target_bedtime: Optional[str] = None,
    is_public: bool = True,
    accessible_user_ids: Optional[List[int]] = None,
) -> Sengetider:
    now = utc_now()
    with get_connection() as conn:
        cursor = conn.execute(
            """
            INSERT INTO sengetider (child_id, created_by, description, target_bedtime, is_public, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (child_id, created_by, description, target_bedtime, 1 if is_public else 0, now, now),
        )
        conn.commit()
        sengetider_id = cursor.lastrowid
    if not is_public and accessible_user_ids:
        replace_access_users(AccessScope.SENGETIDER, sengetider_id, accessible_user_ids)
    return get_sengetider(sengetider_id)


def get_sengetider(sengetider_id: int) -> Sengetider:
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM sengetider WHERE id = ?", (sengetider_id,)).fetchone()
    if not row:
        raise ValueError(f"Sengetider {sengetider_id} not found")
    return _row_to_sengetider(row)


def update_sengetider(
    sengetider_id: int,
    updates: Dict[str, Any],
    *,
    accessible_user_ids: Optional[List[int]] = None,
) -> Sengetider:
    fields: List[str] = []
    params: List[object] = []
    for column in ("description", "target_bedtime", "is_public"):
        if column in updates:
            value = updates[column]
            fields.append(f"{column} = ?")
            params.append((1 if value else 0) if column == "is_public" else value)
    if fields:
        fields.append("updated_at = ?")
        params.extend([utc_now(), sengetider_id])
        with get_connection() as conn:
            conn.execute(f"UPDATE sengetider SET {', '.join(fields)} WHERE id = ?", tuple(params))
            conn.commit()
    if updates.get("is_public") is True:
        clear_access_users(AccessScope.SENGETIDER, sengetider_id)
    elif accessible_user_ids is not None:
        replace_access_users(AccessScope.SENGETIDER, sengetider_id, accessible_user_ids)
    return get_sengetider(sengetider_id)


def delete_sengetider(sengetider_id: int) -> None:
    clear_access_users(AccessScope.SENGETIDER, sengetider_id)
    with get_connection() as conn:
        conn.execute("DELETE FROM sengetider WHERE id = ?", (sengetider_id,))
        conn.commit()


_ENTRY_SELECT = """
    SELECT e.*, u.display_name AS recorded_by_name
    FROM sengetider_entries e
    LEFT JOIN users u ON u.id = e.recorded_by
"""


def record_entry(
    *,
    sengetider_id: int,
    recorded_by: int,
    entry_date: date,
    actual_bedtime: Optional[str] = None,
    puttetid: Optional[str] = None,
    sov_kl: Optional[str] = None,
    vaagnede: Optional[str] = None,
    notes: Optional[str] = None,
) -> SengetiderEntry:
    now = utc_now()
    with get_connection() as conn:
        cursor = conn.execute(
            """
            INSERT INTO sengetider_entries (
                sengetider_id, recorded_by, entry_date, actual_bedtime,
                puttetid, sov_kl, vaagnede, notes, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                sengetider_id,
                recorded_by,
                entry_date.isoformat(),
                actual_bedtime,
                puttetid,
                sov_kl,
                vaagnede,
                notes,
                now,
                now,
            ),
        )
        conn.commit()
        entry_id = cursor.lastrowid
    return get_entry(entry_id)


def get_entry(entry_id: int) -> SengetiderEntry:
    with get_connection() as conn:
        row = conn.execute(_ENTRY_SELECT + " WHERE e.id = ?", (entry_id,)).fetchone()
    if not row:
        raise ValueError(f"Sengetider entry {entry_id} not found")
    return _row_to_entry(row)


def list_entries(sengetider_id: int, limit: int = 50) -> List[SengetiderEntry]:
    with get_connection() as conn:
        rows = conn.execute(
            _ENTRY_SELECT + " WHERE e.sengetider_id = ? ORDER BY e.entry_date DESC, e.created_at DESC LIMIT ?",
            (sengetider_id, limit),
        ).fetchall()
    return [_row_to_entry(row) for row in rows]


def update_entry(entry_id: int, updates: Dict[str, Any]) -> SengetiderEntry:
    fields: List[str] = []
    params: List[object] = []
    for column in ("entry_date", *ENTRY_TIME_FIELDS, "notes"):
        if column in updates:
            value = updates[column]
            fields.append(f"{column} = ?")
            params.append(value.isoformat() if isinstance(value, date) else value)
    if not fields:
        return get_entry(entry_id)
    fields.append("updated_at = ?")
    params.extend([utc_now(), entry_id])
    with get_connection() as conn:
        conn.execute(f"UPDATE sengetider_entries SET {', '.join(fields)} WHERE id = ?", tuple(params))
        conn.commit()
    return get_entry(entry_id)


def delete_entry(entry_id: int) -> None:
    with get_connection() as conn:
        conn.execute("DELETE FROM sengetider_entries WHERE id = ?", (entry_id,))
        conn.commit()
