"""Property records and team membership maintenance."""
from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

import psycopg2
from psycopg2.extensions import connection as PgConnection

from ..db import dict_cursor, translate_database_error
from ..errors import InputInvalid, NotFound
from ..tiers import can_create_property, lock_account_admissions
from .models import (
    DEFAULT_TEAM_ROLE,
    PROPERTY_COLUMNS,
    Property,
    PropertyCreate,
    PropertyMember,
    PropertyRole,
    PropertyUpdate,
    TeamMember,
    TeamMemberIn,
    normalize_team_role,
)
from .passport import RandomSource, generate_passport_id

logger = logging.getLogger(__name__)

TeamMemberInput = Union[TeamMemberIn, Mapping[str, Any]]

_CROCKFORD_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_SELECT_PROPERTY = f"SELECT {', '.join(PROPERTY_COLUMNS)} FROM properties"
_RETURNING_PROPERTY = f"RETURNING {', '.join(PROPERTY_COLUMNS)}"


def _current_time(clock: Optional[Callable[[], datetime]]) -> datetime:
    if clock is None:
        return datetime.now(timezone.utc)
    value = clock()
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _encode_crockford(value: int, length: int) -> str:
    chars = []
    for _ in range(length):
        value, index = divmod(value, 32)
        chars.append(_CROCKFORD_ALPHABET[index])
    return "".join(reversed(chars))


def generate_property_uid(clock: Optional[Callable[[], datetime]] = None) -> str:
    """Return a 26 character, lexicographically time-ordered identifier.

    48 bits of millisecond timestamp followed by 80 random bits, both in
    Crockford base32.
    """

    millis = int(_current_time(clock).timestamp() * 1000)
    return _encode_crockford(millis, 10) + _encode_crockford(secrets.randbits(80), 16)


def _coerce_members(desired: Iterable[TeamMemberInput]) -> List[TeamMemberIn]:
    if isinstance(desired, (str, bytes, Mapping)) or not isinstance(desired, Iterable):
        raise InputInvalid("users must be an array")
    members = []
    for entry in desired:
        if isinstance(entry, TeamMemberIn):
            members.append(entry)
            continue
        if not isinstance(entry, Mapping) or entry.get("id") is None:
            raise InputInvalid("Each user must have an id")
        try:
            members.append(TeamMemberIn.model_validate(entry))
        except ValueError as exc:
            raise InputInvalid("Each user must have an integer id") from exc
    return members


def _dedupe_members(members: Iterable[TeamMemberIn]) -> List[TeamMemberIn]:
    """Collapse repeated user ids; the last entry for a user wins."""

    by_user: Dict[int, TeamMemberIn] = {}
    for member in members:
        by_user[member.user_id] = member
    return list(by_user.values())


def _row_to_member(row: Mapping[str, Any]) -> PropertyMember:
    return PropertyMember(
        property_id=row["property_id"],
        user_id=row["user_id"],
        role=PropertyRole(row["role"]),
    )


def sync_property_team(
    conn: PgConnection,
    property_id: int,
    desired: Iterable[TeamMemberInput],
) -> List[PropertyMember]:
    """Make the property's team exactly ``desired``.

    Members missing from ``desired`` are deleted, the rest are upserted with
    their normalized role in a single statement. Rows that survive keep their
    ``created_at``. Everything runs in one transaction.
    """

    members = _dedupe_members(_coerce_members(desired))
    desired_ids = {member.user_id for member in members}

    try:
        with conn:
            with dict_cursor(conn) as cur:
                cur.execute(
                    "SELECT user_id FROM property_users WHERE property_id = %s",
                    (property_id,),
                )
                current_ids = {row["user_id"] for row in cur.fetchall()}
                to_remove = sorted(current_ids - desired_ids)

                if to_remove:
                    cur.execute(
                        "DELETE FROM property_users WHERE property_id = %s AND user_id = ANY(%s)",
                        (property_id, to_remove),
                    )

                if not members:
                    rows = []
                else:
                    placeholders = ", ".join(["(%s, %s, %s)"] * len(members))
                    params: List[Any] = []
                    for member in members:
                        params.extend([property_id, member.user_id, normalize_team_role(member.role)])
                    cur.execute(
                        f"""
                        INSERT INTO property_users (property_id, user_id, role)
                        VALUES {placeholders}
                        ON CONFLICT (property_id, user_id)
                        DO UPDATE SET role = EXCLUDED.role, updated_at = NOW()
                        RETURNING property_id, user_id, role
                        """,
                        tuple(params),
                    )
                    rows = cur.fetchall()
    except psycopg2.Error as exc:
        raise translate_database_error(exc, operation="sync the property team") from exc

    logger.info(
        "Property team synchronized",
        extra={
            "property_id": property_id,
            "team_size": len(members),
            "removed_count": len(to_remove),
        },
    )
    return [_row_to_member(row) for row in rows]


def _coerce_role(role: Optional[str]) -> PropertyRole:
    try:
        return PropertyRole(role or DEFAULT_TEAM_ROLE)
    except ValueError as exc:
        raise InputInvalid(f"Unknown property role: {role}") from exc


def _upsert_member(cur, property_id: int, user_id: int, role: PropertyRole) -> PropertyMember:
    cur.execute(
        """
        INSERT INTO property_users (property_id, user_id, role)
        VALUES (%s, %s, %s)
        ON CONFLICT (property_id, user_id)
        DO UPDATE SET role = EXCLUDED.role, updated_at = NOW()
        RETURNING property_id, user_id, role
        """,
        (property_id, user_id, role.value),
    )
    return _row_to_member(cur.fetchone())


def upsert_property_member(conn: PgConnection, property_id: int, user_id: int, role: str) -> PropertyMember:
    """Upsert one membership inside the caller's transaction."""

    with dict_cursor(conn) as cur:
        return _upsert_member(cur, property_id, user_id, _coerce_role(role))


def add_user_to_property(
    conn: PgConnection, property_id: int, user_id: int, role: Optional[str] = None
) -> PropertyMember:
    try:
        with conn:
            member = upsert_property_member(conn, property_id, user_id, role or DEFAULT_TEAM_ROLE)
    except psycopg2.Error as exc:
        raise translate_database_error(exc, operation="add a user to the property") from exc
    return member


def add_users_to_property(
    conn: PgConnection, property_id: int, users: Iterable[TeamMemberInput]
) -> List[PropertyMember]:
    """Upsert each user in order. Roles are stored as given (default ``agent``)."""

    members = _coerce_members(users)
    roles = [_coerce_role(member.role) for member in members]
    added: List[PropertyMember] = []
    try:
        with conn:
            with dict_cursor(conn) as cur:
                for member, role in zip(members, roles):
                    added.append(_upsert_member(cur, property_id, member.user_id, role))
    except psycopg2.Error as exc:
        raise translate_database_error(exc, operation="add users to the property") from exc
    return added


def get_property_team(conn: PgConnection, property_id: int) -> List[TeamMember]:
    with dict_cursor(conn) as cur:
        cur.execute(
            """
            SELECT u.id, u.email, u.name, u.role, u.is_active, pu.role AS property_role
            FROM property_users pu
            JOIN users u ON u.id = pu.user_id
            WHERE pu.property_id = %s
            ORDER BY u.name
            """,
            (property_id,),
        )
        rows = cur.fetchall()
    return [TeamMember.model_validate(dict(row)) for row in rows]


def create_property(
    conn: PgConnection,
    data: PropertyCreate,
    *,
    account_id: int,
    creator_user_id: int,
    clock: Optional[Callable[[], datetime]] = None,
    rng: Optional[RandomSource] = None,
) -> Property:
    """Create a property within the account's cap; the creator becomes ``owner``.

    The cap check and the insert share one transaction holding the account's
    admission lock, so concurrent creations cannot overshoot the cap.
    """

    values = data.model_dump()
    values["property_uid"] = generate_property_uid(clock)
    values["passport_id"] = generate_passport_id(data.state, data.zip, rng=rng)
    values["account_id"] = account_id
    columns = list(values)

    try:
        with conn:
            lock_account_admissions(conn, account_id)
            can_create_property(conn, account_id).require("Property")
            with dict_cursor(conn) as cur:
                cur.execute(
                    f"""
                    INSERT INTO properties ({', '.join(columns)})
                    VALUES ({', '.join(['%s'] * len(columns))})
                    {_RETURNING_PROPERTY}
                    """,
                    tuple(values[column] for column in columns),
                )
                row = cur.fetchone()
                _upsert_member(cur, row["id"], creator_user_id, PropertyRole.OWNER)
    except psycopg2.Error as exc:
        raise translate_database_error(exc, operation="create the property") from exc

    prop = Property.model_validate(dict(row))
    logger.info(
        "Property created",
        extra={"property_id": prop.id, "account_id": account_id, "creator_user_id": creator_user_id},
    )
    return prop


def get_property(conn: PgConnection, property_uid: str) -> Property:
    with dict_cursor(conn) as cur:
        cur.execute(f"{_SELECT_PROPERTY} WHERE property_uid = %s", (property_uid,))
        row = cur.fetchone()
    if row is None:
        raise NotFound(f"No property with uid: {property_uid}")
    return Property.model_validate(dict(row))


def get_property_by_id(conn: PgConnection, property_id: int) -> Property:
    with dict_cursor(conn) as cur:
        cur.execute(f"{_SELECT_PROPERTY} WHERE id = %s", (property_id,))
        row = cur.fetchone()
    if row is None:
        raise NotFound(f"No property: {property_id}")
    return Property.model_validate(dict(row))


def list_account_properties(conn: PgConnection, account_id: int) -> List[Property]:
    with dict_cursor(conn) as cur:
        cur.execute(
            f"{_SELECT_PROPERTY} WHERE account_id = %s ORDER BY created_at DESC, id DESC",
            (account_id,),
        )
        rows = cur.fetchall()
    return [Property.model_validate(dict(row)) for row in rows]


def update_property(conn: PgConnection, property_id: int, update: PropertyUpdate) -> Property:
    """Write only the fields the caller sent; ``None`` clears a column."""

    changes = update.changes()
    if not changes:
        raise InputInvalid("No data")

    assignments = ", ".join(f"{column} = %s" for column in changes)
    try:
        with conn:
            with dict_cursor(conn) as cur:
                cur.execute(
                    f"""
                    UPDATE properties
                    SET {assignments}, updated_at = NOW()
                    WHERE id = %s
                    {_RETURNING_PROPERTY}
                    """,
                    (*changes.values(), property_id),
                )
                row = cur.fetchone()
    except psycopg2.Error as exc:
        raise translate_database_error(exc, operation="update the property") from exc

    if row is None:
        raise NotFound(f"No property: {property_id}")
    return Property.model_validate(dict(row))
