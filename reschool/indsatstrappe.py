"""Intervention plans ("indsatstrappe"): ordered steps, activation periods and linked entries.

A step is active while it has a period without ``end_date``. Only one step of
a plan is active at a time: activating a step closes the open period of
whichever step was active before.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from .access import clear_access_users, get_access_user_ids, replace_access_users
from .db import get_connection, utc_now
from .schemas import AccessScope, IndsatsStep, Indsatstrappe, LinkedEntry, StepPeriod, ToolType

_ENTRY_TABLES = {
    ToolType.BAROMETER: ("barometer_entries", "barometers", "barometer_id"),
    ToolType.DAGENS_SMILEY: ("dagens_smiley_entries", "dagens_smiley", "smiley_id"),
    ToolType.SENGETIDER: ("sengetider_entries", "sengetider", "sengetider_id"),
}


class StepStateError(Exception):
    """Raised when a step transition is not allowed in its current state."""


def _row_to_period(row) -> StepPeriod:
    return StepPeriod(
        id=row["id"],
        step_id=row["step_id"],
        start_date=row["start_date"],
        end_date=row["end_date"],
        activated_by=row["activated_by"],
        deactivated_by=row["deactivated_by"],
        created_at=row["created_at"],
    )


def _row_to_step(row, periods: List[StepPeriod]) -> IndsatsStep:
    return IndsatsStep(
        id=row["id"],
        plan_id=row["plan_id"],
        step_number=row["step_number"],
        title=row["title"],
        description=row["description"],
        goal=row["goal"],
        is_completed=bool(row["is_completed"]),
        completed_at=row["completed_at"],
        completed_by=row["completed_by"],
        periods=periods,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_plan(row, steps: List[IndsatsStep]) -> Indsatstrappe:
    return Indsatstrappe(
        id=row["id"],
        child_id=row["child_id"],
        created_by=row["created_by"],
        title=row["title"],
        description=row["description"],
        start_date=row["start_date"],
        target_date=row["target_date"],
        is_active=bool(row["is_active"]),
        is_completed=bool(row["is_completed"]),
        is_public=bool(row["is_public"]),
        accessible_user_ids=get_access_user_ids(AccessScope.INDSATSTRAPPE, row["id"]),
        steps=steps,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def create_plan(
    *,
    child_id: int,
    created_by: int,
    title: str,
    description: Optional[str] = None,
    start_date: Optional[date] = None,
    target_date: Optional[date] = None,
    is_public: bool = True,
    accessible_user_ids: Optional[List[int]] = None,
) -> Indsatstrappe:
    """Create an active plan; any other active plan for the child is deactivated."""

    now = utc_now()
    with get_connection() as conn:
        conn.execute(
            "UPDATE indsatstrappe SET is_active = 0, updated_at = ? WHERE child_id = ? AND is_active = 1",
            (now, child_id),
        )
        cursor = conn.execute(
            """
            INSERT INTO indsatstrappe (
                child_id, created_by, title, description, start_date, target_date,
                is_active, is_completed, is_public, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, 1, 0, ?, ?, ?)
            """,
            (
                child_id,
                created_by,
                title,
                description,
                _iso(start_date),
                _iso(target_date),
                1 if is_public else 0,
                now,
                now,
            ),
        )
        conn.commit()
        plan_id = cursor.lastrowid
    if not is_public and accessible_user_ids:
        replace_access_users(AccessScope.INDSATSTRAPPE, plan_id, accessible_user_ids)
    return get_plan(plan_id)


def get_plan(plan_id: int) -> Indsatstrappe:
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM indsatstrappe WHERE id = ?", (plan_id,)).fetchone()
    if not row:
        raise ValueError(f"Indsatstrappe {plan_id} not found")
    return _row_to_plan(row, list_steps(plan_id))


def list_plans(child_id: int) -> List[Indsatstrappe]:
    with get_connection() as conn:
        rows = conn.execute(
            "SELECT * FROM indsatstrappe WHERE child_id = ? ORDER BY created_at DESC, id DESC",
            (child_id,),
        ).fetchall()
    return [_row_to_plan(row, list_steps(row["id"])) for row in rows]


def find_active_plan(child_id: int) -> Optional[Indsatstrappe]:
    with get_connection() as conn:
        row = conn.execute(
            """
            SELECT * FROM indsatstrappe
            WHERE child_id = ? AND is_active = 1
            ORDER BY created_at DESC, id DESC
            LIMIT 1
            """,
            (child_id,),
        ).fetchone()
    return _row_to_plan(row, list_steps(row["id"])) if row else None


def update_plan(
    plan_id: int,
    updates: Dict[str, Any],
    *,
    accessible_user_ids: Optional[List[int]] = None,
) -> Indsatstrappe:
    current = get_plan(plan_id)
    fields: List[str] = []
    params: List[object] = []
    for column in ("title", "description", "start_date", "target_date", "is_active", "is_completed", "is_public"):
        if column not in updates:
            continue
        value = updates[column]
        if isinstance(value, bool):
            value = 1 if value else 0
        elif isinstance(value, date):
            value = value.isoformat()
        fields.append(f"{column} = ?")
        params.append(value)
    now = utc_now()
    if fields:
        fields.append("updated_at = ?")
        params.extend([now, plan_id])
        with get_connection() as conn:
            if updates.get("is_active") is True:
                conn.execute(
                    """
                    UPDATE indsatstrappe SET is_active = 0, updated_at = ?
                    WHERE child_id = ? AND id != ? AND is_active = 1
                    """,
                    (now, current.child_id, plan_id),
                )
            conn.execute(f"UPDATE indsatstrappe SET {', '.join(fields)} WHERE id = ?", tuple(params))
            conn.commit()
    if updates.get("is_public") is True:
        clear_access_users(AccessScope.INDSATSTRAPPE, plan_id)
    elif accessible_user_ids is not None:
        replace_access_users(AccessScope.INDSATSTRAPPE, plan_id, accessible_user_ids)
    return get_plan(plan_id)


def set_plan_access(plan_id: int, *, is_public: bool, user_ids: List[int]) -> Indsatstrappe:
    return update_plan(plan_id, {"is_public": is_public}, accessible_user_ids=[] if is_public else user_ids)


def delete_plan(plan_id: int) -> None:
    clear_access_users(AccessScope.INDSATSTRAPPE, plan_id)
    with get_connection() as conn:
        conn.execute("DELETE FROM indsatstrappe WHERE id = ?", (plan_id,))
        conn.commit()


def list_periods(step_id: int) -> List[StepPeriod]:
    with get_connection() as conn:
        rows = conn.execute(
            "SELECT * FROM step_periods WHERE step_id = ? ORDER BY start_date, id",
            (step_id,),
        ).fetchall()
    return [_row_to_period(row) for row in rows]


def list_steps(plan_id: int) -> List[IndsatsStep]:
    with get_connection() as conn:
        rows = conn.execute(
            "SELECT * FROM indsats_steps WHERE plan_id = ? ORDER BY step_number, id",
            (plan_id,),
        ).fetchall()
    return [_row_to_step(row, list_periods(row["id"])) for row in rows]


def get_step(step_id: int) -> IndsatsStep:
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM indsats_steps WHERE id = ?", (step_id,)).fetchone()
    if not row:
        raise ValueError(f"Step {step_id} not found")
    return _row_to_step(row, list_periods(step_id))


def create_step(
    *,
    plan_id: int,
    title: str,
    description: Optional[str] = None,
    goal: Optional[str] = None,
) -> IndsatsStep:
    now = utc_now()
    with get_connection() as conn:
        row = conn.execute(
            "SELECT COALESCE(MAX(step_number), 0) FROM indsats_steps WHERE plan_id = ?",
            (plan_id,),
        ).fetchone()
        cursor = conn.execute(
            """
            INSERT INTO indsats_steps (plan_id, step_number, title, description, goal, is_completed, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, 0, ?, ?)
            """,
            (plan_id, int(row[0]) + 1, title, description, goal, now, now),
        )
        conn.commit()
        step_id = cursor.lastrowid
    return get_step(step_id)


def update_step(step_id: int, updates: Dict[str, Any]) -> IndsatsStep:
    fields: List[str] = []
    params: List[object] = []
    for column in ("title", "description", "goal"):
        if column in updates:
            fields.append(f"{column} = ?")
            params.append(updates[column])
    if not fields:
        return get_step(step_id)
    fields.append("updated_at = ?")
    params.extend([utc_now(), step_id])
    with get_connection() as conn:
        conn.execute(f"UPDATE indsats_steps SET {', '.join(fields)} WHERE id = ?", tuple(params))
        conn.commit()
    return get_step(step_id)


def delete_step(step_id: int) -> None:
    """Delete a step and close the gap in the plan's step numbering."""

    step = get_step(step_id)
    now = utc_now()
    with get_connection() as conn:
        conn.execute("DELETE FROM indsats_steps WHERE id = ?", (step_id,))
        conn.execute(
            """
            UPDATE indsats_steps SET step_number = step_number - 1, updated_at = ?
            WHERE plan_id = ? AND step_number > ?
            """,
            (now, step.plan_id, step.step_number),
        )
        conn.commit()


def _parse_stamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _close_open_periods(conn, *, plan_id: int, ended_at: str, user_id: int) -> None:
    conn.execute(
        """
        UPDATE step_periods SET end_date = ?, deactivated_by = ?
        WHERE end_date IS NULL
          AND step_id IN (SELECT id FROM indsats_steps WHERE plan_id = ?)
        """,
        (ended_at, user_id, plan_id),
    )


def complete_step(step_id: int, user_id: int) -> IndsatsStep:
    step = get_step(step_id)
    if step.is_completed:
        raise StepStateError("Step is already completed")
    now = utc_now()
    with get_connection() as conn:
        conn.execute(
            """
            UPDATE indsats_steps SET is_completed = 1, completed_at = ?, completed_by = ?, updated_at = ?
            WHERE id = ?
            """,
            (now, user_id, now, step_id),
        )
        conn.execute(
            "UPDATE step_periods SET end_date = ?, deactivated_by = ? WHERE step_id = ? AND end_date IS NULL",
            (now, user_id, step_id),
        )
        conn.commit()
    return get_step(step_id)


def uncomplete_step(step_id: int) -> IndsatsStep:
    step = get_step(step_id)
    if not step.is_completed:
        raise StepStateError("Step is not completed")
    with get_connection() as conn:
        conn.execute(
            """
            UPDATE indsats_steps SET is_completed = 0, completed_at = NULL, completed_by = NULL, updated_at = ?
            WHERE id = ?
            """,
            (utc_now(), step_id),
        )
        conn.commit()
    return get_step(step_id)


def activate_step(step_id: int, user_id: int, *, start: Optional[datetime] = None) -> StepPeriod:
    """Open a period for the step, closing whichever period is open in the plan."""

    step = get_step(step_id)
    if step.is_active:
        raise StepStateError("Step is already active")
    started_at = (start.isoformat() if start else utc_now())
    with get_connection() as conn:
        open_row = conn.execute(
            """
            SELECT p.start_date FROM step_periods p
            JOIN indsats_steps s ON s.id = p.step_id
            WHERE s.plan_id = ? AND p.end_date IS NULL
            ORDER BY p.start_date DESC
            LIMIT 1
            """,
            (step.plan_id,),
        ).fetchone()
        if open_row and _parse_stamp(open_row["start_date"]) > _parse_stamp(started_at):
            raise StepStateError("start_date must not be before the start of the currently active step")
        _close_open_periods(conn, plan_id=step.plan_id, ended_at=started_at, user_id=user_id)
        cursor = conn.execute(
            """
            INSERT INTO step_periods (step_id, start_date, end_date, activated_by, deactivated_by, created_at)
            VALUES (?, ?, NULL, ?, NULL, ?)
            """,
            (step_id, started_at, user_id, utc_now()),
        )
        conn.commit()
        period_id = cursor.lastrowid
    return get_period(period_id)


def add_custom_period(step_id: int, user_id: int, *, start: datetime, end: Optional[datetime]) -> StepPeriod:
    """Record a backdated period; without ``end`` this behaves like an activation at ``start``."""

    if end is None:
        return activate_step(step_id, user_id, start=start)
    if end < start:
        raise StepStateError("end_date must be after start_date")
    get_step(step_id)
    with get_connection() as conn:
        cursor = conn.execute(
            """
            INSERT INTO step_periods (step_id, start_date, end_date, activated_by, deactivated_by, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (step_id, start.isoformat(), end.isoformat(), user_id, user_id, utc_now()),
        )
        conn.commit()
        period_id = cursor.lastrowid
    return get_period(period_id)


def get_period(period_id: int) -> StepPeriod:
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM step_periods WHERE id = ?", (period_id,)).fetchone()
    if not row:
        raise ValueError(f"Step period {period_id} not found")
    return _row_to_period(row)


def entry_child_id(entry_type: ToolType, entry_id: int) -> Optional[int]:
    """Return the child an entry of any tool belongs to, or None if it does not exist."""

    entries_table, tools_table, fk = _ENTRY_TABLES[entry_type]
    with get_connection() as conn:
        row = conn.execute(
            f"""
            SELECT t.child_id
            FROM {entries_table} e
            JOIN {tools_table} t ON t.id = e.{fk}
            WHERE e.id = ?
            """,
            (entry_id,),
        ).fetchone()
    return row["child_id"] if row else None


def link_entry(*, step_id: int, entry_type: ToolType, entry_id: int, notes: Optional[str] = None) -> LinkedEntry:
    with get_connection() as conn:
        conn.execute(
            """
            INSERT INTO step_linked_entries (step_id, entry_type, entry_id, notes, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (step_id, entry_type, entry_id) DO UPDATE SET notes = excluded.notes
            """,
            (step_id, entry_type.value, entry_id, notes, utc_now()),
        )
        conn.commit()
        row = conn.execute(
            "SELECT * FROM step_linked_entries WHERE step_id = ? AND entry_type = ? AND entry_id = ?",
            (step_id, entry_type.value, entry_id),
        ).fetchone()
    return LinkedEntry(
        id=row["id"],
        step_id=row["step_id"],
        entry_type=ToolType(row["entry_type"]),
        entry_id=row["entry_id"],
        notes=row["notes"],
        created_at=row["created_at"],
    )


def list_linked_entries(step_id: int) -> List[LinkedEntry]:
    with get_connection() as conn:
        rows = conn.execute(
            "SELECT * FROM step_linked_entries WHERE step_id = ? ORDER BY created_at, id",
            (step_id,),
        ).fetchall()
    return [
        LinkedEntry(
            id=row["id"],
            step_id=row["step_id"],
            entry_type=ToolType(row["entry_type"]),
            entry_id=row["entry_id"],
            notes=row["notes"],
            created_at=row["created_at"],
        )
        for row in rows
    ]
