"""SQL for the ``user_invitations`` table.

Functions here never commit; the orchestrator owns transaction boundaries.
State transitions are guarded with ``state = 'pending'`` so a terminal row is
never rewritten.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Mapping, Optional

from psycopg2.extensions import connection as PgConnection

from ..db import dict_cursor
from .models import Invitation, InvitationState

_COLUMNS = """
    id, scope, inviter_user_id, invitee_email, account_id, property_id,
    intended_role, state, expires_at, created_at, consumed_at, accepted_by_user_id
"""

_LISTABLE_COLUMNS = frozenset({"inviter_user_id", "account_id", "property_id"})


def _row_to_invitation(row: Mapping[str, Any]) -> Invitation:
    return Invitation.model_validate(dict(row))


def insert_invitation(
    conn: PgConnection,
    *,
    token_hash: str,
    scope: str,
    inviter_user_id: int,
    invitee_email: str,
    account_id: int,
    property_id: Optional[int],
    intended_role: str,
    expires_at: datetime,
    created_at: datetime,
) -> Invitation:
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            INSERT INTO user_invitations (
                token_hash, scope, inviter_user_id, invitee_email, account_id,
                property_id, intended_role, state, expires_at, created_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, 'pending', %s, %s)
            RETURNING {_COLUMNS}
            """,
            (
                token_hash,
                scope,
                inviter_user_id,
                invitee_email,
                account_id,
                property_id,
                intended_role,
                expires_at,
                created_at,
            ),
        )
        row = cur.fetchone()
    return _row_to_invitation(row)


def find_by_token_hash(
    conn: PgConnection, token_hash: str, *, for_update: bool = False
) -> Optional[Invitation]:
    """Look up an invitation by digest regardless of state."""

    query = f"SELECT {_COLUMNS} FROM user_invitations WHERE token_hash = %s"
    if for_update:
        query += " FOR UPDATE"
    with dict_cursor(conn) as cur:
        cur.execute(query, (token_hash,))
        row = cur.fetchone()
    return _row_to_invitation(row) if row else None


def get_invitation(
    conn: PgConnection, invitation_id: int, *, for_update: bool = False
) -> Optional[Invitation]:
    query = f"SELECT {_COLUMNS} FROM user_invitations WHERE id = %s"
    if for_update:
        query += " FOR UPDATE"
    with dict_cursor(conn) as cur:
        cur.execute(query, (invitation_id,))
        row = cur.fetchone()
    return _row_to_invitation(row) if row else None


def transition_pending(
    conn: PgConnection,
    invitation_id: int,
    state: InvitationState,
    *,
    consumed_at: Optional[datetime] = None,
    accepted_by_user_id: Optional[int] = None,
) -> Optional[Invitation]:
    """Move a pending invitation to ``state``; ``None`` when it was not pending."""

    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            UPDATE user_invitations
            SET state = %s,
                consumed_at = COALESCE(%s, consumed_at),
                accepted_by_user_id = COALESCE(%s, accepted_by_user_id)
            WHERE id = %s AND state = 'pending'
            RETURNING {_COLUMNS}
            """,
            (state.value, consumed_at, accepted_by_user_id, invitation_id),
        )
        row = cur.fetchone()
    return _row_to_invitation(row) if row else None


def list_invitations(conn: PgConnection, column: str, value: int) -> List[Invitation]:
    """Invitations matching ``column = value``, newest first."""

    if column not in _LISTABLE_COLUMNS:
        raise ValueError(f"Cannot list invitations by {column}")
    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            SELECT {_COLUMNS}
            FROM user_invitations
            WHERE {column} = %s
            ORDER BY created_at DESC, id DESC
            """,
            (value,),
        )
        rows = cur.fetchall()
    return [_row_to_invitation(row) for row in rows]


def expire_pending(conn: PgConnection, now: datetime) -> int:
    with dict_cursor(conn) as cur:
        cur.execute(
            """
            UPDATE user_invitations
            SET state = 'expired'
            WHERE state = 'pending' AND expires_at <= %s
            RETURNING id
            """,
            (now,),
        )
        rows = cur.fetchall()
    return len(rows)
