"""SQLite helpers."""
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from .config import CONFIG
from .schemas import User

_DB_PATH = CONFIG.resolved_database_path
_DB_PATH.parent.mkdir(parents=True, exist_ok=True)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def initialize_db() -> None:
    with sqlite3.connect(_DB_PATH) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                stack_auth_id TEXT NOT NULL UNIQUE,
                email TEXT NOT NULL,
                display_name TEXT,
                profile_image_url TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_users_email ON users(email)")

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS children (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                slug TEXT NOT NULL UNIQUE,
                created_by INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS user_child_relations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                child_id INTEGER NOT NULL,
                relation TEXT NOT NULL,
                custom_relation_name TEXT,
                is_administrator INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE (user_id, child_id),
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
                FOREIGN KEY (child_id) REFERENCES children(id) ON DELETE CASCADE
            );
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS tool_user_access (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                tool_type TEXT NOT NULL,
                tool_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                UNIQUE (tool_type, tool_id, user_id),
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            );
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS barometers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                child_id INTEGER NOT NULL,
                created_by INTEGER NOT NULL,
                topic TEXT NOT NULL,
                description TEXT,
                scale_min INTEGER NOT NULL DEFAULT 1,
                scale_max INTEGER NOT NULL DEFAULT 5,
                display_type TEXT NOT NULL DEFAULT 'numbers',
                smiley_type TEXT,
                is_public INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (child_id) REFERENCES children(id) ON DELETE CASCADE
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS barometer_entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                barometer_id INTEGER NOT NULL,
                recorded_by INTEGER NOT NULL,
                entry_date TEXT NOT NULL,
                rating INTEGER NOT NULL,
                comment TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE (barometer_id, recorded_by, entry_date),
                FOREIGN KEY (barometer_id) REFERENCES barometers(id) ON DELETE CASCADE
            );
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS dagens_smiley (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                child_id INTEGER NOT NULL,
                created_by INTEGER NOT NULL,
                topic TEXT NOT NULL,
                description TEXT,
                is_public INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (child_id) REFERENCES children(id) ON DELETE CASCADE
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS dagens_smiley_entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                smiley_id INTEGER NOT NULL,
                recorded_by INTEGER NOT NULL,
                entry_date TEXT NOT NULL,
                selected_emoji TEXT NOT NULL,
                reasoning TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (smiley_id) REFERENCES dagens_smiley(id) ON DELETE CASCADE
            );
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS sengetider (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                child_id INTEGER NOT NULL UNIQUE,
                created_by INTEGER NOT NULL,
                description TEXT,
                target_bedtime TEXT,
                is_public INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (child_id) REFERENCES children(id) ON DELETE CASCADE
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS sengetider_entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                sengetider_id INTEGER NOT NULL,
                recorded_by INTEGER NOT NULL,
                entry_date TEXT NOT NULL,
                actual_bedtime TEXT,
                puttetid TEXT,
                sov_kl TEXT,
                vaagnede TEXT,
                notes TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (sengetider_id) REFERENCES sengetider(id) ON DELETE CASCADE
            );
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS indsatstrappe (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                child_id INTEGER NOT NULL,
                created_by INTEGER NOT NULL,
                title TEXT NOT NULL,
                description TEXT,
                start_date TEXT,
                target_date TEXT,
                is_active INTEGER NOT NULL DEFAULT 1,
                is_completed INTEGER NOT NULL DEFAULT 0,
                is_public INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (child_id) REFERENCES children(id) ON DELETE CASCADE
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS indsats_steps (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                plan_id INTEGER NOT NULL,
                step_number INTEGER NOT NULL,
                title TEXT NOT NULL,
                description TEXT,
                goal TEXT,
                is_completed INTEGER NOT NULL DEFAULT 0,
                completed_at TEXT,
                completed_by INTEGER,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (plan_id) REFERENCES indsatstrappe(id) ON DELETE CASCADE
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS step_periods (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                step_id INTEGER NOT NULL,
                start_date TEXT NOT NULL,
                end_date TEXT,
                activated_by INTEGER,
                deactivated_by INTEGER,
                created_at TEXT NOT NULL,
                FOREIGN KEY (step_id) REFERENCES indsats_steps(id) ON DELETE CASCADE
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS step_linked_entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                step_id INTEGER NOT NULL,
                entry_type TEXT NOT NULL,
                entry_id INTEGER NOT NULL,
                notes TEXT,
                created_at TEXT NOT NULL,
                UNIQUE (step_id, entry_type, entry_id),
                FOREIGN KEY (step_id) REFERENCES indsats_steps(id) ON DELETE CASCADE
            );
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS invitations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                email TEXT NOT NULL,
                child_id INTEGER NOT NULL,
                invited_by INTEGER NOT NULL,
                relation TEXT NOT NULL,
                custom_relation_name TEXT,
                is_administrator INTEGER NOT NULL DEFAULT 0,
                token TEXT NOT NULL UNIQUE,
                status TEXT NOT NULL DEFAULT 'pending',
                expires_at TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (child_id) REFERENCES children(id) ON DELETE CASCADE
            );
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS notifications (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER,
                pending_email TEXT,
                type TEXT NOT NULL,
                title TEXT NOT NULL,
                message TEXT NOT NULL,
                data TEXT,
                is_read INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            );
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS push_subscriptions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                endpoint TEXT NOT NULL,
                p256dh_key TEXT NOT NULL,
                auth_key TEXT NOT NULL,
                created_at TEXT NOT NULL,
                UNIQUE (user_id, endpoint),
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            );
            """
        )
        conn.commit()


@contextmanager
def get_connection() -> Iterator[sqlite3.Connection]:
    conn = sqlite3.connect(_DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


def _row_to_user(row) -> User:
    return User(
        id=row["id"],
        stack_auth_id=row["stack_auth_id"],
        email=row["email"],
        display_name=row["display_name"],
        profile_image_url=row["profile_image_url"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def get_user(user_id: int) -> User:
    with get_connection() as conn:
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    if not row:
        raise ValueError(f"User {user_id} not found")
    return _row_to_user(row)


def find_user_by_stack_auth_id(stack_auth_id: str) -> Optional[User]:
    with get_connection() as conn:
        row = conn.execute(
            "SELECT * FROM users WHERE stack_auth_id = ?", (stack_auth_id,)
        ).fetchone()
    return _row_to_user(row) if row else None


def find_user_by_email(email: str) -> Optional[User]:
    with get_connection() as conn:
        row = conn.execute(
            "SELECT * FROM users WHERE email = ? ORDER BY id LIMIT 1",
            (email.strip().lower(),),
        ).fetchone()
    return _row_to_user(row) if row else None


def sync_user(
    *,
    stack_auth_id: str,
    email: Optional[str],
    display_name: Optional[str] = None,
    profile_image_url: Optional[str] = None,
) -> User:
    """Create or refresh the local row for an identity-provider user.

    Missing claims never overwrite stored values, so a token without a display
    name keeps the name set through an earlier sync or webhook.
    """

    now = utc_now()
    normalized_email = (email or "").strip().lower()
    existing = find_user_by_stack_auth_id(stack_auth_id)
    with get_connection() as conn:
        if existing is None:
            cursor = conn.execute(
                """
                INSERT INTO users (stack_auth_id, email, display_name, profile_image_url, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (stack_auth_id, normalized_email, display_name, profile_image_url, now, now),
            )
            conn.commit()
            user_id = cursor.lastrowid
        else:
            user_id = existing.id
            unchanged = (
                (not normalized_email or normalized_email == existing.email)
                and (display_name is None or display_name == existing.display_name)
                and (profile_image_url is None or profile_image_url == existing.profile_image_url)
            )
            if unchanged:
                return existing
            conn.execute(
                """
                UPDATE users
                SET email = COALESCE(NULLIF(?, ''), email),
                    display_name = COALESCE(?, display_name),
                    profile_image_url = COALESCE(?, profile_image_url),
                    updated_at = ?
                WHERE id = ?
                """,
                (normalized_email, display_name, profile_image_url, now, user_id),
            )
            conn.commit()
    return get_user(user_id)


def delete_user_by_stack_auth_id(stack_auth_id: str) -> bool:
    with get_connection() as conn:
        cursor = conn.execute("DELETE FROM users WHERE stack_auth_id = ?", (stack_auth_id,))
        conn.commit()
    return cursor.rowcount > 0


def list_users(user_ids: List[int]) -> List[User]:
    if not user_ids:
        return []
    placeholders = ", ".join("?" for _ in user_ids)
    with get_connection() as conn:
        rows = conn.execute(
            f"SELECT * FROM users WHERE id IN ({placeholders}) ORDER BY id",
            tuple(user_ids),
        ).fetchall()
    return [_row_to_user(row) for row in rows]
