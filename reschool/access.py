"""Authorization rules shared by every child-scoped route.

A caller's rights over a child come from their row in ``user_child_relations``:
any row makes them a member, ``is_administrator`` makes them an admin.
Tools and plans add a visibility layer on top: administrators see everything,
other members see public rows, rows they created, and rows whose access list
names them.
"""
from __future__ import annotations

from typing import Iterable, List, Optional

from fastapi import HTTPException

from .children import count_administrators, get_relation, list_member_ids
from .db import get_connection, utc_now
from .schemas import AccessScope, AccessUser, UserChildRelation


def require_member(user_id: int, child_id: int, detail: str = "Access denied") -> UserChildRelation:
    relation = get_relation(user_id, child_id)
    if relation is None:
        raise HTTPException(status_code=403, detail=detail)
    return relation


def require_admin(
    user_id: int,
    child_id: int,
    detail: str = "Only administrators can perform this action",
) -> UserChildRelation:
    relation = get_relation(user_id, child_id)
    if relation is None or not relation.is_administrator:
        raise HTTPException(status_code=403, detail=detail)
    return relation


def require_owner_or_admin(user_id: int, child_id: int, owner_id: int, detail: str) -> UserChildRelation:
    relation = require_member(user_id, child_id)
    if owner_id != user_id and not relation.is_administrator:
        raise HTTPException(status_code=403, detail=detail)
    return relation


def ensure_admin_remains(child_id: int, target: UserChildRelation, action: str) -> None:
    """Reject removing or demoting the only administrator left on a child."""

    if target.is_administrator and count_administrators(child_id) <= 1:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot {action} the last administrator of this child",
        )


def can_view(
    relation: Optional[UserChildRelation],
    *,
    scope: AccessScope,
    row_id: int,
    created_by: int,
    is_public: bool,
) -> bool:
    if relation is None:
        return False
    if relation.is_administrator or is_public or created_by == relation.user_id:
        return True
    return relation.user_id in get_access_user_ids(scope, row_id)


def require_view(
    user_id: int,
    child_id: int,
    *,
    scope: AccessScope,
    row_id: int,
    created_by: int,
    is_public: bool,
) -> UserChildRelation:
    relation = require_member(user_id, child_id)
    if not can_view(relation, scope=scope, row_id=row_id, created_by=created_by, is_public=is_public):
        raise HTTPException(status_code=403, detail="You do not have access to this tool")
    return relation


def validate_access_user_ids(child_id: int, user_ids: Optional[Iterable[int]]) -> List[int]:
    """Return the de-duplicated ids, rejecting any user that is not related to the child."""

    if not user_ids:
        return []
    requested = list(dict.fromkeys(int(user_id) for user_id in user_ids))
    members = set(list_member_ids(child_id))
    unknown = [user_id for user_id in requested if user_id not in members]
    if unknown:
        raise HTTPException(
            status_code=400,
            detail="Some selected users do not have access to this child",
        )
    return requested


def get_access_user_ids(scope: AccessScope, row_id: int) -> List[int]:
    with get_connection() as conn:
        rows = conn.execute(
            "SELECT user_id FROM tool_user_access WHERE tool_type = ? AND tool_id = ? ORDER BY user_id",
            (scope.value, row_id),
        ).fetchall()
    return [row["user_id"] for row in rows]


def list_access_users(scope: AccessScope, row_id: int) -> List[AccessUser]:
    with get_connection() as conn:
        rows = conn.execute(
            """
            SELECT u.id, u.display_name, u.email
            FROM tool_user_access a
            JOIN users u ON u.id = a.user_id
            WHERE a.tool_type = ? AND a.tool_id = ?
            ORDER BY u.id
            """,
            (scope.value, row_id),
        ).fetchall()
    return [AccessUser(id=row["id"], display_name=row["display_name"], email=row["email"]) for row in rows]


def replace_access_users(scope: AccessScope, row_id: int, user_ids: Iterable[int]) -> None:
    now = utc_now()
    with get_connection() as conn:
        conn.execute(
            "DELETE FROM tool_user_access WHERE tool_type = ? AND tool_id = ?",
            (scope.value, row_id),
        )
        conn.executemany(
            "INSERT INTO tool_user_access (tool_type, tool_id, user_id, created_at) VALUES (?, ?, ?, ?)",
            [(scope.value, row_id, user_id, now) for user_id in user_ids],
        )
        conn.commit()


def clear_access_users(scope: AccessScope, row_id: int) -> None:
    replace_access_users(scope, row_id, [])
