"""Authorization checks used by the HTTP routes.

Services validate input shape only; whether the caller may act on an
account or property is decided here.
"""
from __future__ import annotations

from typing import Any, Optional

from psycopg2.extensions import connection as PgConnection

from .db import dict_cursor
from .errors import NotAuthorized, NotFound

SUPER_ADMIN_ROLE = "super_admin"
ACCOUNT_MANAGER_ROLES = frozenset({"owner", "admin"})
PROPERTY_MANAGER_ROLES = frozenset({"owner", "admin", "agent"})


def is_super_admin(user: Any) -> bool:
    return getattr(user, "role", None) == SUPER_ADMIN_ROLE


def get_account_role(conn: PgConnection, account_id: int, user_id: int) -> Optional[str]:
    with dict_cursor(conn) as cur:
        cur.execute(
            """
            SELECT role FROM account_users
            WHERE account_id = %s AND user_id = %s
            UNION ALL
            SELECT 'owner' AS role FROM accounts
            WHERE id = %s AND owner_user_id = %s
            """,
            (account_id, user_id, account_id, user_id),
        )
        rows = cur.fetchall()
    roles = {row["role"] for row in rows}
    if "owner" in roles:
        return "owner"
    return next(iter(sorted(roles)), None)


def require_account_member(conn: PgConnection, user: Any, account_id: int) -> None:
    if is_super_admin(user):
        return
    if get_account_role(conn, account_id, user.id) is None:
        raise NotAuthorized("You do not have access to this account.")


def require_account_manager(conn: PgConnection, user: Any, account_id: int) -> None:
    if is_super_admin(user):
        return
    if get_account_role(conn, account_id, user.id) not in ACCOUNT_MANAGER_ROLES:
        raise NotAuthorized("Only account owners and admins can do this.")


def require_property_manager(conn: PgConnection, user: Any, property_id: int) -> int:
    """Return the property's account id if ``user`` may manage its team."""

    with dict_cursor(conn) as cur:
        cur.execute(
            """
            SELECT p.account_id, pu.role AS property_role
            FROM properties p
            LEFT JOIN property_users pu ON pu.property_id = p.id AND pu.user_id = %s
            WHERE p.id = %s
            """,
            (user.id, property_id),
        )
        row = cur.fetchone()
    if row is None:
        raise NotFound(f"No property: {property_id}")
    account_id = int(row["account_id"])
    if is_super_admin(user) or row["property_role"] in PROPERTY_MANAGER_ROLES:
        return account_id
    if get_account_role(conn, account_id, user.id) in ACCOUNT_MANAGER_ROLES:
        return account_id
    raise NotAuthorized("You do not have permission to manage this property.")
