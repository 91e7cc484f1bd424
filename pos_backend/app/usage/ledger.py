"""Append-only usage ledger with month-to-date aggregates."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Mapping, Optional

import psycopg2.extras
from psycopg2.extensions import connection as PgConnection

from ..db import dict_cursor
from ..errors import InputInvalid
from . import costs
from .models import (
    BudgetStatus,
    CategorySpend,
    Number,
    UsageCharge,
    UsageEvent,
    compute_total_cost,
    quantize_cost,
    to_decimal,
)

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 500

_EVENT_COLUMNS = """
    id, account_id, user_id, category, resource, quantity, unit,
    unit_cost, total_cost, metadata, created_at
"""


def _current_time(clock: Optional[Callable[[], datetime]]) -> datetime:
    if clock is None:
        return datetime.now(timezone.utc)
    value = clock()
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def month_start(now: datetime) -> datetime:
    """First instant of ``now``'s calendar month in UTC."""

    utc_now = now.astimezone(timezone.utc)
    return utc_now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _row_to_event(row: Mapping[str, Any]) -> UsageEvent:
    return UsageEvent(
        id=row["id"],
        account_id=row["account_id"],
        user_id=row.get("user_id"),
        category=row["category"],
        resource=row["resource"],
        quantity=to_decimal(row["quantity"]),
        unit=row["unit"],
        unit_cost=to_decimal(row["unit_cost"]),
        total_cost=to_decimal(row["total_cost"]),
        metadata=row.get("metadata") or {},
        created_at=row["created_at"],
    )


def log_usage(
    conn: PgConnection,
    *,
    account_id: int,
    category: str,
    resource: str,
    quantity: Number,
    unit: str,
    unit_cost: Number,
    user_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> UsageEvent:
    """Insert one immutable usage event; ``total_cost`` is fixed here.

    The insert runs in ``with conn:``, which commits whatever transaction is
    open on ``conn`` when it exits. Pass a connection with no uncommitted work
    of its own, or record usage after the caller's transaction has committed.
    Non-numeric ``quantity`` or ``unit_cost`` raises :class:`InputInvalid`.
    """

    if not category or not resource or not unit:
        raise InputInvalid("category, resource and unit are required")
    quantity_value = to_decimal(quantity)
    unit_cost_value = to_decimal(unit_cost)
    if quantity_value < 0 or unit_cost_value < 0:
        raise InputInvalid("quantity and unit_cost must be non-negative")

    total_cost = compute_total_cost(quantity_value, unit_cost_value)
    created_at = _current_time(clock)

    with conn:
        with dict_cursor(conn) as cur:
            cur.execute(
                f"""
                INSERT INTO account_usage_events (
                    account_id, user_id, category, resource, quantity, unit,
                    unit_cost, total_cost, metadata, created_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING {_EVENT_COLUMNS}
                """,
                (
                    account_id,
                    user_id,
                    category,
                    resource,
                    quantity_value,
                    unit,
                    unit_cost_value,
                    total_cost,
                    psycopg2.extras.Json(metadata or {}),
                    created_at,
                ),
            )
            row = cur.fetchone()

    event = _row_to_event(row)
    logger.debug(
        "Usage event recorded",
        extra={
            "usage_event_id": event.id,
            "account_id": account_id,
            "usage_category": category,
            "usage_total_cost": str(total_cost),
        },
    )
    return event


def log_charge(
    conn: PgConnection,
    charge: UsageCharge,
    *,
    account_id: int,
    user_id: Optional[int] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> UsageEvent:
    return log_usage(
        conn,
        account_id=account_id,
        user_id=user_id,
        category=charge.category,
        resource=charge.resource,
        quantity=charge.quantity,
        unit=charge.unit,
        unit_cost=charge.unit_cost,
        metadata=dict(charge.metadata),
        clock=clock,
    )


def log_ai_usage(
    conn: PgConnection,
    *,
    account_id: int,
    model: Optional[str],
    prompt_tokens: int,
    completion_tokens: int,
    user_id: Optional[int] = None,
    endpoint: Optional[str] = None,
) -> UsageEvent:
    charge = costs.ai_token_cost(model, prompt_tokens, completion_tokens, endpoint=endpoint)
    return log_charge(conn, charge, account_id=account_id, user_id=user_id)


def log_storage_usage(
    conn: PgConnection,
    *,
    account_id: int,
    size_bytes: int,
    user_id: Optional[int] = None,
    file_key: Optional[str] = None,
) -> UsageEvent:
    charge = costs.storage_cost(size_bytes, file_key=file_key)
    return log_charge(conn, charge, account_id=account_id, user_id=user_id)


def log_email_usage(
    conn: PgConnection,
    *,
    account_id: int,
    user_id: Optional[int] = None,
    email_type: Optional[str] = None,
) -> UsageEvent:
    charge = costs.email_cost(email_type=email_type)
    return log_charge(conn, charge, account_id=account_id, user_id=user_id)


def get_monthly_spend(
    conn: PgConnection,
    account_id: int,
    *,
    clock: Optional[Callable[[], datetime]] = None,
) -> Decimal:
    since = month_start(_current_time(clock))
    with dict_cursor(conn) as cur:
        cur.execute(
            """
            SELECT COALESCE(SUM(total_cost), 0) AS spend
            FROM account_usage_events
            WHERE account_id = %s AND created_at >= %s
            """,
            (account_id, since),
        )
        row = cur.fetchone()
    return quantize_cost(to_decimal(row["spend"]))


def get_monthly_spend_by_category(
    conn: PgConnection,
    account_id: int,
    *,
    clock: Optional[Callable[[], datetime]] = None,
) -> List[CategorySpend]:
    since = month_start(_current_time(clock))
    with dict_cursor(conn) as cur:
        cur.execute(
            """
            SELECT category, COALESCE(SUM(total_cost), 0) AS spend
            FROM account_usage_events
            WHERE account_id = %s AND created_at >= %s
            GROUP BY category
            ORDER BY category
            """,
            (account_id, since),
        )
        rows = cur.fetchall()
    return [
        CategorySpend(category=row["category"], spend=quantize_cost(to_decimal(row["spend"])))
        for row in rows
    ]


def check_budget(
    conn: PgConnection,
    account_id: int,
    category: str,
    cap: Number,
    *,
    clock: Optional[Callable[[], datetime]] = None,
) -> BudgetStatus:
    """Compare a category's month-to-date spend with ``cap``."""

    cap_value = to_decimal(cap)
    since = month_start(_current_time(clock))
    with dict_cursor(conn) as cur:
        cur.execute(
            """
            SELECT COALESCE(SUM(total_cost), 0) AS spend
            FROM account_usage_events
            WHERE account_id = %s AND category = %s AND created_at >= %s
            """,
            (account_id, category, since),
        )
        row = cur.fetchone()
    spend = quantize_cost(to_decimal(row["spend"]))
    return BudgetStatus(
        spend=spend,
        remaining=cap_value - spend,
        within_budget=spend < cap_value,
    )


def get_history(
    conn: PgConnection,
    account_id: int,
    *,
    limit: int = DEFAULT_HISTORY_LIMIT,
    offset: int = 0,
    category: Optional[str] = None,
) -> List[UsageEvent]:
    """Most recent events first."""

    if limit < 1 or offset < 0:
        raise InputInvalid("limit must be positive and offset non-negative")
    limit = min(limit, MAX_HISTORY_LIMIT)

    clauses = ["account_id = %s"]
    params: list = [account_id]
    if category:
        clauses.append("category = %s")
        params.append(category)
    params.extend([limit, offset])

    with dict_cursor(conn) as cur:
        cur.execute(
            f"""
            SELECT {_EVENT_COLUMNS}
            FROM account_usage_events
            WHERE {" AND ".join(clauses)}
            ORDER BY created_at DESC, id DESC
            LIMIT %s OFFSET %s
            """,
            tuple(params),
        )
        rows = cur.fetchall()
    return [_row_to_event(row) for row in rows]
