"""User and account-membership statements shared by the domain services.

None of these helpers commit; they run inside the caller's transaction.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from psycopg2.extensions import connection as PgConnection

from .db import dict_cursor

USER_ROLES = ("super_admin", "admin", "agent", "homeowner", "viewer")
DEFAULT_INVITED_USER_ROLE = "homeowner"


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_user_by_email(
    conn: PgConnection, email: str, *, for_update: bool = False
) -> Optional[Dict[str, Any]]:
    query = """
        SELECT id, email, name, role, is_active
        FROM users
        WHERE email = %s
    """
    if for_update:
        query += " FOR UPDATE"
    with dict_cursor(conn) as cur:
        cur.execute(query, (normalize_email(email),))
        row = cur.fetchone()
    return dict(row) if row else None


def create_user(
    conn: PgConnection,
    *,
    email: str,
    name: str,
    password_hash: str,
    role: str = DEFAULT_INVITED_USER_ROLE,
) -> int:
    if role not in USER_ROLES:
        raise ValueError(f"Unknown user role: {role}")
    with dict_cursor(conn) as cur:
        cur.execute(
            """
            INSERT INTO users (email, name, password_hash, role, is_active)
            VALUES (%s, %s, %s, %s, true)
            RETURNING id
            """,
            (normalize_email(email), name, password_hash, role),
        )
        row = cur.fetchone()
    return int(row["id"])


def activate_user(conn: PgConnection, user_id: int, password_hash: str) -> None:
    """Overwrite the password digest and mark the user active."""

    with conn.cursor() as cur:
        cur.execute(
            """
            UPDATE users
            SET password_hash = %s, is_active = true, updated_at = NOW()
            WHERE id = %s
            """,
            (password_hash, user_id),
        )


def upsert_account_user(conn: PgConnection, account_id: int, user_id: int, role: str) -> None:
    with conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO account_users (account_id, user_id, role)
            VALUES (%s, %s, %s)
            ON CONFLICT (account_id, user_id) DO UPDATE SET role = EXCLUDED.role
            """,
            (account_id, user_id, role),
        )
