"""Connection and cursor helpers shared by the service modules."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

import psycopg2
import psycopg2.errorcodes
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from .. import app_context
from .errors import Conflict, InputInvalid, InternalError

logger = logging.getLogger(__name__)


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None) -> Iterator[PgConnection]:
    """Yield ``conn`` untouched, or open (and always close) a fresh one."""

    if conn is not None:
        yield conn
        return

    connection = app_context.get_conn()
    try:
        yield connection
    finally:
        connection.close()


@contextmanager
def dict_cursor(conn: PgConnection) -> Iterator[PgCursor]:
    """Cursor returning rows as dictionaries."""

    cursor = conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
    try:
        yield cursor
    finally:
        cursor.close()


def is_unique_violation(exc: BaseException, constraint: Optional[str] = None) -> bool:
    """Return whether ``exc`` is a unique violation, optionally on ``constraint``."""

    if not isinstance(exc, psycopg2.IntegrityError):
        return False
    if getattr(exc, "pgcode", None) != psycopg2.errorcodes.UNIQUE_VIOLATION:
        return False
    if constraint is None:
        return True
    diag = getattr(exc, "diag", None)
    return getattr(diag, "constraint_name", None) == constraint


def translate_database_error(exc: psycopg2.Error, *, operation: str) -> Exception:
    """Map a driver error onto the service error taxonomy."""

    if is_unique_violation(exc, "users_email_key"):
        return Conflict("A user with this email already exists.")
    if getattr(exc, "pgcode", None) == psycopg2.errorcodes.FOREIGN_KEY_VIOLATION:
        return InputInvalid(f"Referenced record does not exist while attempting to {operation}.")
    if is_unique_violation(exc):
        logger.error("Unique constraint violated during %s", operation)
        return InternalError(f"Duplicate record while attempting to {operation}.")
    logger.exception("Database error during %s", operation)
    return InternalError(f"Database error while attempting to {operation}.")
