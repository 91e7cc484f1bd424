"""Subscription tier limits and the admission checks built on them.

Checks are read-only and run outside of any write transaction, so they are
soft limits: two concurrent requests can both pass a check and then insert.
Callers that need a hard limit hold :func:`lock_account_admissions` inside the
transaction that performs the insert.
"""
from __future__ import annotations

import logging
from typing import Optional

from psycopg2.extensions import connection as PgConnection

from ..db import dict_cursor
from .models import DEFAULT_CAPS, AdmissionResult, TierCaps

logger = logging.getLogger(__name__)

# First key of the two-key advisory lock; the second key is the account id.
_ADMISSION_LOCK_NAMESPACE = 7301


def get_account_limits(conn: PgConnection, account_id: int) -> TierCaps:
    """Resolve the caps that apply to ``account_id``.

    The highest-priced active subscription wins. Without one, the active
    product named ``free`` applies, and without that the built-in defaults.
    """

    with dict_cursor(conn) as cur:
        cur.execute(
            """
            SELECT sp.max_properties, sp.max_contacts, sp.max_viewers, sp.max_team_members
            FROM account_subscriptions asub
            JOIN subscription_products sp ON sp.id = asub.subscription_product_id
            WHERE asub.account_id = %s AND asub.status = 'active'
            ORDER BY sp.price DESC, sp.id DESC
            LIMIT 1
            """,
            (account_id,),
        )
        row = cur.fetchone()
        if row:
            return TierCaps.from_row(row)

        cur.execute(
            """
            SELECT max_properties, max_contacts, max_viewers, max_team_members
            FROM subscription_products
            WHERE LOWER(name) = 'free' AND is_active = true
            LIMIT 1
            """
        )
        row = cur.fetchone()
        if row:
            return TierCaps.from_row(row)

    logger.info("No active subscription or free product for account %s; using defaults", account_id)
    return DEFAULT_CAPS


def _count(conn: PgConnection, query: str, params: tuple) -> int:
    with dict_cursor(conn) as cur:
        cur.execute(query, params)
        row = cur.fetchone()
    return int(row["count"]) if row else 0


def can_create_property(conn: PgConnection, account_id: int) -> AdmissionResult:
    limits = get_account_limits(conn, account_id)
    current = _count(
        conn,
        "SELECT COUNT(*) AS count FROM properties WHERE account_id = %s",
        (account_id,),
    )
    return AdmissionResult(current=current, max=limits.max_properties)


def can_add_contact(conn: PgConnection, account_id: int) -> AdmissionResult:
    limits = get_account_limits(conn, account_id)
    current = _count(
        conn,
        "SELECT COUNT(*) AS count FROM account_contacts WHERE account_id = %s",
        (account_id,),
    )
    return AdmissionResult(current=current, max=limits.max_contacts)


def can_invite_viewer(conn: PgConnection, account_id: int, property_id: int) -> AdmissionResult:
    limits = get_account_limits(conn, account_id)
    current = _count(
        conn,
        "SELECT COUNT(*) AS count FROM property_users WHERE property_id = %s AND role = 'viewer'",
        (property_id,),
    )
    return AdmissionResult(current=current, max=limits.max_viewers)


def can_add_team_member(conn: PgConnection, account_id: int, property_id: int) -> AdmissionResult:
    limits = get_account_limits(conn, account_id)
    current = _count(
        conn,
        "SELECT COUNT(*) AS count FROM property_users WHERE property_id = %s",
        (property_id,),
    )
    return AdmissionResult(current=current, max=limits.max_team_members)


def lock_account_admissions(conn: PgConnection, account_id: int) -> None:
    """Serialize check-then-insert flows for one account until commit."""

    with conn.cursor() as cur:
        cur.execute(
            "SELECT pg_advisory_xact_lock(%s, %s)",
            (_ADMISSION_LOCK_NAMESPACE, account_id),
        )


def admission_snapshot(conn: PgConnection, account_id: int, property_id: Optional[int] = None) -> dict:
    """Caps plus current admission state, for the limits endpoint."""

    snapshot: dict = {
        "limits": get_account_limits(conn, account_id).to_dict(),
        "properties": can_create_property(conn, account_id).to_dict(),
        "contacts": can_add_contact(conn, account_id).to_dict(),
    }
    if property_id is not None:
        snapshot["viewers"] = can_invite_viewer(conn, account_id, property_id).to_dict()
        snapshot["teamMembers"] = can_add_team_member(conn, account_id, property_id).to_dict()
    return snapshot
