"""Children and the caregiver relations attached to them."""
from __future__ import annotations

import re
from typing import List, Optional, Tuple

from .db import get_connection, utc_now
from .schemas import Child, ChildUser, ChildWithRelation, RelationType, UserChildRelation

_SLUG_REPLACEMENTS = (("æ", "a"), ("å", "a"), ("ø", "o"))


def slugify(text: str) -> str:
    """Lower-case, transliterate Danish vowels and collapse everything else to dashes."""

    value = (text or "").lower()
    for source, target in _SLUG_REPLACEMENTS:
        value = value.replace(source, target)
    value = re.sub(r"[^a-z0-9]", "-", value)
    value = re.sub(r"-+", "-", value)
    return value.strip("-")


def _unique_slug(conn, name: str) -> str:
    base = slugify(name) or "barn"
    candidate = base
    suffix = 2
    while conn.execute("SELECT 1 FROM children WHERE slug = ?", (candidate,)).fetchone():
        candidate = f"{base}-{suffix}"
        suffix += 1
    return candidate


def _row_to_child(row) -> Child:
    return Child(
        id=row["id"],
        name=row["name"],
        slug=row["slug"],
        created_by=row["created_by"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_relation(row) -> UserChildRelation:
    return UserChildRelation(
        id=row["id"],
        user_id=row["user_id"],
        child_id=row["child_id"],
        relation=RelationType(row["relation"]),
        custom_relation_name=row["custom_relation_name"],
        is_administrator=bool(row["is_administrator"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def create_child(
    *,
    name: str,
    created_by: int,
    relation: RelationType,
    custom_relation_name: Optional[str] = None,
) -> Tuple[Child, UserChildRelation]:
    """Insert a child and make its creator the first administrator."""

    now = utc_now()
    with get_connection() as conn:
        slug = _unique_slug(conn, name)
        cursor = conn.execute(
            "INSERT INTO children (name, slug, created_by, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            (name, slug, created_by, now, now),
        )
        child_id = cursor.lastrowid
        conn.execute(
            """
            INSERT INTO user_child_relations (
                user_id, child_id, relation, custom_relation_name, is_administrator, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, 1, ?, ?)
            """,
            (created_by, child_id, relation.value, custom_relation_name, now, now),
        )
        conn.commit()
    relation_row = _load_relation(created_by, child_id)
    return get_child(child_id), relation_row


def get_child(child_id: int) -> Child:
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM children WHERE id = ?", (child_id,)).fetchone()
    if not row:
        raise ValueError(f"Child {child_id} not found")
    return _row_to_child(row)


def get_child_by_slug(slug: str) -> Child:
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM children WHERE slug = ?", (slug,)).fetchone()
    if not row:
        raise ValueError(f"Child '{slug}' not found")
    return _row_to_child(row)


def delete_child(child_id: int) -> None:
    with get_connection() as conn:
        for tool_type, table in (
            ("barometer", "barometers"),
            ("dagens-smiley", "dagens_smiley"),
            ("sengetider", "sengetider"),
            ("indsatstrappe", "indsatstrappe"),
        ):
            conn.execute(
                f"""
                DELETE FROM tool_user_access
                WHERE tool_type = ? AND tool_id IN (SELECT id FROM {table} WHERE child_id = ?)
                """,
                (tool_type, child_id),
            )
        conn.execute("DELETE FROM children WHERE id = ?", (child_id,))
        conn.commit()


def list_children_for_user(user_id: int) -> List[ChildWithRelation]:
    with get_connection() as conn:
        rows = conn.execute(
            """
            SELECT c.*, r.relation, r.custom_relation_name, r.is_administrator
            FROM children c
            JOIN user_child_relations r ON r.child_id = c.id
            WHERE r.user_id = ?
            ORDER BY c.name COLLATE NOCASE, c.id
            """,
            (user_id,),
        ).fetchall()
    return [
        ChildWithRelation(
            **_row_to_child(row).model_dump(),
            relation=RelationType(row["relation"]),
            custom_relation_name=row["custom_relation_name"],
            is_administrator=bool(row["is_administrator"]),
        )
        for row in rows
    ]


def get_relation(user_id: int, child_id: int) -> Optional[UserChildRelation]:
    with get_connection() as conn:
        row = conn.execute(
            "SELECT * FROM user_child_relations WHERE user_id = ? AND child_id = ?",
            (user_id, child_id),
        ).fetchone()
    return _row_to_relation(row) if row else None


def _load_relation(user_id: int, child_id: int) -> UserChildRelation:
    relation = get_relation(user_id, child_id)
    if relation is None:
        raise ValueError(f"User {user_id} is not related to child {child_id}")
    return relation


def add_user_to_child(
    *,
    user_id: int,
    child_id: int,
    relation: RelationType,
    custom_relation_name: Optional[str] = None,
    is_administrator: bool = False,
) -> UserChildRelation:
    now = utc_now()
    with get_connection() as conn:
        conn.execute(
            """
            INSERT INTO user_child_relations (
                user_id, child_id, relation, custom_relation_name, is_administrator, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                user_id,
                child_id,
                relation.value,
                custom_relation_name,
                1 if is_administrator else 0,
                now,
                now,
            ),
        )
        conn.commit()
    created = _load_relation(user_id, child_id)
    return created


def remove_user_from_child(user_id: int, child_id: int) -> bool:
    with get_connection() as conn:
        cursor = conn.execute(
            "DELETE FROM user_child_relations WHERE user_id = ? AND child_id = ?",
            (user_id, child_id),
        )
        conn.commit()
    return cursor.rowcount > 0


def set_administrator(user_id: int, child_id: int, is_administrator: bool) -> UserChildRelation:
    with get_connection() as conn:
        cursor = conn.execute(
            """
            UPDATE user_child_relations
            SET is_administrator = ?, updated_at = ?
            WHERE user_id = ? AND child_id = ?
            """,
            (1 if is_administrator else 0, utc_now(), user_id, child_id),
        )
        conn.commit()
    if cursor.rowcount == 0:
        raise ValueError(f"User {user_id} is not related to child {child_id}")
    updated = _load_relation(user_id, child_id)
    return updated


def count_administrators(child_id: int) -> int:
    with get_connection() as conn:
        row = conn.execute(
            "SELECT COUNT(*) FROM user_child_relations WHERE child_id = ? AND is_administrator = 1",
            (child_id,),
        ).fetchone()
    return int(row[0])


def list_child_users(child_id: int) -> List[ChildUser]:
    with get_connection() as conn:
        rows = conn.execute(
            """
            SELECT u.id, u.email, u.display_name, u.profile_image_url,
                   r.relation, r.custom_relation_name, r.is_administrator, r.created_at AS joined_at
            FROM user_child_relations r
            JOIN users u ON u.id = r.user_id
            WHERE r.child_id = ?
            ORDER BY r.is_administrator DESC, r.created_at, u.id
            """,
            (child_id,),
        ).fetchall()
    return [
        ChildUser(
            id=row["id"],
            email=row["email"],
            display_name=row["display_name"],
            profile_image_url=row["profile_image_url"],
            relation=RelationType(row["relation"]),
            custom_relation_name=row["custom_relation_name"],
            is_administrator=bool(row["is_administrator"]),
            joined_at=row["joined_at"],
        )
        for row in rows
    ]


def list_member_ids(child_id: int) -> List[int]:
    with get_connection() as conn:
        rows = conn.execute(
            "SELECT user_id FROM user_child_relations WHERE child_id = ? ORDER BY user_id",
            (child_id,),
        ).fetchall()
    return [row["user_id"] for row in rows]


def users_share_child(user_id: int, other_user_id: int) -> bool:
    with get_connection() as conn:
        row = conn.execute(
            """
            SELECT 1
            FROM user_child_relations a
            JOIN user_child_relations b ON a.child_id = b.child_id
            WHERE a.user_id = ? AND b.user_id = ?
            LIMIT 1
            """,
            (user_id, other_user_id),
        ).fetchone()
    return row is not None


def member_has_email(child_id: int, email: str) -> bool:
    with get_connection() as conn:
        row = conn.execute(
            """
            SELECT 1
            FROM user_child_relations r
            JOIN users u ON u.id = r.user_id
            WHERE r.child_id = ? AND u.email = ?
            LIMIT 1
            """,
            (child_id, email.strip().lower()),
        ).fetchone()
    return row is not None
