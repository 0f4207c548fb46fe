"""Progress timeline: tool entries grouped under the plan steps that were active when they were made."""
from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .access import can_view
from .children import get_relation, list_children_for_user
from .db import get_connection
from .indsatstrappe import list_linked_entries, list_plans
from .schemas import AccessScope, IndsatsStep, StepPeriod, UserChildRelation

_ENTRIES_SQL = """
    SELECT 'barometer' AS tool_type, b.id AS tool_id, b.topic AS tool_name,
           b.created_by AS tool_created_by, b.is_public AS tool_is_public, b.child_id,
           e.id AS id, e.recorded_by AS recorded_by, u.display_name AS recorded_by_name, e.entry_date AS entry_date,
           e.rating AS rating, e.comment AS comment, NULL AS selected_emoji, NULL AS actual_bedtime,
           b.scale_min, b.scale_max, b.display_type, b.smiley_type,
           e.created_at AS created_at, e.updated_at AS updated_at
    FROM barometer_entries e
    JOIN barometers b ON b.id = e.barometer_id
    LEFT JOIN users u ON u.id = e.recorded_by
    WHERE b.child_id IN ({placeholders})

    UNION ALL

    SELECT 'dagens-smiley', s.id, s.topic, s.created_by, s.is_public, s.child_id,
           e.id, e.recorded_by, u.display_name, e.entry_date,
           NULL, e.reasoning, e.selected_emoji, NULL,
           NULL, NULL, NULL, NULL,
           e.created_at, e.updated_at
    FROM dagens_smiley_entries e
    JOIN dagens_smiley s ON s.id = e.smiley_id
    LEFT JOIN users u ON u.id = e.recorded_by
    WHERE s.child_id IN ({placeholders})

    UNION ALL

    SELECT 'sengetider', t.id, COALESCE(t.description, 'Sengetider'), t.created_by, t.is_public, t.child_id,
           e.id, e.recorded_by, u.display_name, e.entry_date,
           NULL, e.notes, NULL, e.actual_bedtime,
           NULL, NULL, NULL, NULL,
           e.created_at, e.updated_at
    FROM sengetider_entries e
    JOIN sengetider t ON t.id = e.sengetider_id
    LEFT JOIN users u ON u.id = e.recorded_by
    WHERE t.child_id IN ({placeholders})
"""


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def list_child_entries(child_ids: List[int]) -> List[Dict[str, Any]]:
    """Return entries of every tool for the given children, newest first."""

    if not child_ids:
        return []
    placeholders = ", ".join("?" for _ in child_ids)
    sql = _ENTRIES_SQL.format(placeholders=placeholders) + " ORDER BY created_at DESC, id DESC"
    with get_connection() as conn:
        rows = conn.execute(sql, tuple(child_ids) * 3).fetchall()
    return [dict(row) for row in rows]


def _visible(entry: Dict[str, Any], relation: Optional[UserChildRelation]) -> bool:
    return can_view(
        relation,
        scope=AccessScope(entry["tool_type"]),
        row_id=entry["tool_id"],
        created_by=entry["tool_created_by"],
        is_public=bool(entry["tool_is_public"]),
    )


_HIDDEN_ENTRY_KEYS = {"tool_created_by", "tool_is_public"}


def _public_entry(entry: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in entry.items() if key not in _HIDDEN_ENTRY_KEYS}


def _in_period(created_at: datetime, period: StepPeriod, now: datetime) -> bool:
    start = _as_utc(period.start_date)
    end = _as_utc(period.end_date) if period.end_date else now
    return start <= created_at <= end


def summarize_step(step: IndsatsStep, entries: List[Dict[str, Any]], now: datetime) -> Dict[str, Any]:
    """Attach the entries made during any of the step's periods plus its overall time span."""

    step_entries = []
    if step.periods:
        for entry in entries:
            created_at = _as_utc(datetime.fromisoformat(entry["created_at"]))
            if any(_in_period(created_at, period, now) for period in step.periods):
                step_entries.append(_public_entry(entry))

    time_period: Optional[Dict[str, Any]] = None
    duration_days = 0
    if step.periods:
        starts = [_as_utc(period.start_date) for period in step.periods]
        ends = [_as_utc(period.end_date) if period.end_date else None for period in step.periods]
        open_ended = any(end is None for end in ends)
        overall_end = None if open_ended else max(end for end in ends if end is not None)
        time_period = {
            "start": min(starts).isoformat(),
            "end": overall_end.isoformat() if overall_end else None,
        }
        seconds = ((overall_end or now) - min(starts)).total_seconds()
        duration_days = math.ceil(max(seconds, 0) / 86400)

    return {
        **step.model_dump(mode="json"),
        "entries": step_entries,
        "entry_count": len(step_entries),
        "linked_entries": [link.model_dump(mode="json") for link in list_linked_entries(step.id)],
        "time_period": time_period,
        "duration_days": duration_days,
    }


def build_child_progress(child_id: int, user_id: int) -> Dict[str, Any]:
    relation = get_relation(user_id, child_id)
    now = datetime.now(timezone.utc)
    entries = [entry for entry in list_child_entries([child_id]) if _visible(entry, relation)]
    plans = [
        plan
        for plan in list_plans(child_id)
        if can_view(
            relation,
            scope=AccessScope.INDSATSTRAPPE,
            row_id=plan.id,
            created_by=plan.created_by,
            is_public=plan.is_public,
        )
    ]
    plan_payloads = []
    for plan in plans:
        payload = plan.model_dump(mode="json", exclude={"steps"})
        payload["steps_with_entries"] = [summarize_step(step, entries, now) for step in plan.steps]
        plan_payloads.append(payload)
    return {
        "child_id": child_id,
        "plans": plan_payloads,
        "total_entries": len(entries),
    }


def latest_registrations(user_id: int, limit: int = 20) -> List[Dict[str, Any]]:
    """Newest entries across every child the user follows, honoring tool visibility."""

    children = {child.id: child for child in list_children_for_user(user_id)}
    if not children:
        return []
    relations = {child_id: get_relation(user_id, child_id) for child_id in children}
    results: List[Dict[str, Any]] = []
    for entry in list_child_entries(list(children)):
        if not _visible(entry, relations.get(entry["child_id"])):
            continue
        child = children[entry["child_id"]]
        payload = _public_entry(entry)
        payload["child_name"] = child.name
        payload["child_slug"] = child.slug
        results.append(payload)
        if len(results) >= limit:
            break
    return results
