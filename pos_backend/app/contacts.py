"""Account contact statements.

An account's contact list is what the ``max_contacts`` cap counts. None of
these helpers commit.
"""
from __future__ import annotations

import logging
from typing import Optional

from psycopg2.extensions import connection as PgConnection

from .db import dict_cursor
from .users import normalize_email

logger = logging.getLogger(__name__)


def find_account_contact(conn: PgConnection, account_id: int, email: str) -> Optional[int]:
    """Id of a contact linked to ``account_id`` with ``email``, if any."""

    with dict_cursor(conn) as cur:
        cur.execute(
            """
            SELECT c.id
            FROM contacts c
            JOIN account_contacts ac ON ac.contact_id = c.id
            WHERE ac.account_id = %s AND LOWER(c.email) = %s
            ORDER BY c.id
            LIMIT 1
            """,
            (account_id, normalize_email(email)),
        )
        row = cur.fetchone()
    return int(row["id"]) if row else None


def link_account_contact(conn: PgConnection, account_id: int, *, email: str, name: str) -> int:
    """Make sure ``account_id`` lists a contact for ``email``; return its id.

    An existing contact is reused. Otherwise a contact row is created and
    linked to the account.
    """

    existing = find_account_contact(conn, account_id, email)
    if existing is not None:
        return existing

    with dict_cursor(conn) as cur:
        cur.execute(
            "INSERT INTO contacts (name, email) VALUES (%s, %s) RETURNING id",
            (name, normalize_email(email)),
        )
        contact_id = int(cur.fetchone()["id"])
        cur.execute(
            """
            INSERT INTO account_contacts (account_id, contact_id)
            VALUES (%s, %s)
            ON CONFLICT DO NOTHING
            """,
            (account_id, contact_id),
        )
    logger.info("Contact linked to account", extra={"account_id": account_id, "contact_id": contact_id})
    return contact_id
