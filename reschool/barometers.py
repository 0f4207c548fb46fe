"""Barometer tools and their rating entries."""
from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from .access import clear_access_users, get_access_user_ids, replace_access_users
from .db import get_connection, utc_now
from .schemas import AccessScope, Barometer, BarometerEntry, DisplayType, SmileyType

_UPDATABLE_COLUMNS = (
    "topic",
    "description",
    "scale_min",
    "scale_max",
    "display_type",
    "smiley_type",
    "is_public",
)


def _row_to_barometer(row) -> Barometer:
    return Barometer(
        id=row["id"],
        child_id=row["child_id"],
        created_by=row["created_by"],
        topic=row["topic"],
        description=row["description"],
        scale_min=row["scale_min"],
        scale_max=row["scale_max"],
        display_type=DisplayType(row["display_type"]),
        smiley_type=SmileyType(row["smiley_type"]) if row["smiley_type"] else None,
        is_public=bool(row["is_public"]),
        accessible_user_ids=get_access_user_ids(AccessScope.BAROMETER, row["id"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_entry(row) -> BarometerEntry:
    return BarometerEntry(
        id=row["id"],
        barometer_id=row["barometer_id"],
        recorded_by=row["recorded_by"],
        recorded_by_name=row["recorded_by_name"],
        entry_date=row["entry_date"],
        rating=row["rating"],
        comment=row["comment"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def create_barometer(
    *,
    child_id: int,
    created_by: int,
    topic: str,
    description: Optional[str] = None,
    scale_min: int = 1,
    scale_max: int = 5,
    display_type: DisplayType = DisplayType.NUMBERS,
    smiley_type: Optional[SmileyType] = None,
    is_public: bool = True,
    accessible_user_ids: Optional[List[int]] = None,
) -> Barometer:
    now = utc_now()
    with get_connection() as conn:
        cursor = conn.execute(
            """
            INSERT INTO barometers (
                child_id, created_by, topic, description, scale_min, scale_max,
                display_type, smiley_type, is_public, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                child_id,
                created_by,
                topic,
                description,
                scale_min,
                scale_max,
                display_type.value,
                smiley_type.value if smiley_type else None,
                1 if is_public else 0,
                now,
                now,
            ),
        )
        conn.commit()
        barometer_id = cursor.lastrowid
    if not is_public and accessible_user_ids:
        replace_access_users(AccessScope.BAROMETER, barometer_id, accessible_user_ids)
    return get_barometer(barometer_id)


def get_barometer(barometer_id: int) -> Barometer:
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM barometers WHERE id = ?", (barometer_id,)).fetchone()
    if not row:
        raise ValueError(f"Barometer {barometer_id} not found")
    return _row_to_barometer(row)


def list_barometers(child_id: int) -> List[Barometer]:
    with get_connection() as conn:
        rows = conn.execute(
            "SELECT * FROM barometers WHERE child_id = ? ORDER BY created_at, id",
            (child_id,),
        ).fetchall()
    return [_row_to_barometer(row) for row in rows]


def update_barometer(
    barometer_id: int,
    updates: Dict[str, Any],
    *,
    accessible_user_ids: Optional[List[int]] = None,
) -> Barometer:
    fields: List[str] = []
    params: List[object] = []
    for column in _UPDATABLE_COLUMNS:
        if column not in updates:
            continue
        value = updates[column]
        if isinstance(value, (DisplayType, SmileyType)):
            value = value.value
        elif isinstance(value, bool):
            value = 1 if value else 0
        fields.append(f"{column} = ?")
        params.append(value)
    if fields:
        fields.append("updated_at = ?")
        params.append(utc_now())
        params.append(barometer_id)
        with get_connection() as conn:
            conn.execute(f"UPDATE barometers SET {', '.join(fields)} WHERE id = ?", tuple(params))
            conn.commit()
    if updates.get("is_public") is True:
        clear_access_users(AccessScope.BAROMETER, barometer_id)
    elif accessible_user_ids is not None:
        replace_access_users(AccessScope.BAROMETER, barometer_id, accessible_user_ids)
    return get_barometer(barometer_id)


def delete_barometer(barometer_id: int) -> None:
    clear_access_users(AccessScope.BAROMETER, barometer_id)
    with get_connection() as conn:
        conn.execute("DELETE FROM barometers WHERE id = ?", (barometer_id,))
        conn.commit()


_ENTRY_SELECT = """
    SELECT e.*, u.display_name AS recorded_by_name
    FROM barometer_entries e
    LEFT JOIN users u ON u.id = e.recorded_by
"""


def record_entry(
    *,
    barometer_id: int,
    recorded_by: int,
    rating: int,
    comment: Optional[str] = None,
    entry_date: Optional[date] = None,
) -> BarometerEntry:
    """Store a rating; a second rating by the same user on the same day replaces the first."""

    now = utc_now()
    day = (entry_date or date.today()).isoformat()
    with get_connection() as conn:
        conn.execute(
            """
            INSERT INTO barometer_entries (barometer_id, recorded_by, entry_date, rating, comment, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (barometer_id, recorded_by, entry_date) DO UPDATE SET
                rating = excluded.rating,
                comment = excluded.comment,
                updated_at = excluded.updated_at
            """,
            (barometer_id, recorded_by, day, rating, comment, now, now),
        )
        conn.commit()
        row = conn.execute(
            _ENTRY_SELECT + " WHERE e.barometer_id = ? AND e.recorded_by = ? AND e.entry_date = ?",
            (barometer_id, recorded_by, day),
        ).fetchone()
    return _row_to_entry(row)


def get_entry(entry_id: int) -> BarometerEntry:
    with get_connection() as conn:
        row = conn.execute(_ENTRY_SELECT + " WHERE e.id = ?", (entry_id,)).fetchone()
    if not row:
        raise ValueError(f"Barometer entry {entry_id} not found")
    return _row_to_entry(row)


def list_entries(barometer_id: int, limit: int = 50) -> List[BarometerEntry]:
    with get_connection() as conn:
        rows = conn.execute(
            _ENTRY_SELECT + " WHERE e.barometer_id = ? ORDER BY e.entry_date DESC, e.created_at DESC LIMIT ?",
            (barometer_id, limit),
        ).fetchall()
    return [_row_to_entry(row) for row in rows]


def delete_entry(entry_id: int) -> None:
    with get_connection() as conn:
        conn.execute("DELETE FROM barometer_entries WHERE id = ?", (entry_id,))
        conn.commit()


def delete_all_entries(barometer_id: int) -> int:
    with get_connection() as conn:
        cursor = conn.execute("DELETE FROM barometer_entries WHERE barometer_id = ?", (barometer_id,))
        conn.commit()
    return cursor.rowcount
