import psycopg2
import psycopg2.errorcodes
import pytest
from fastapi import HTTPException

from pos_backend.app.db import is_unique_violation, managed_connection, translate_database_error
from pos_backend.app.errors import (
    AcceptInvalid,
    CapExceeded,
    Conflict,
    InputInvalid,
    InternalError,
    NotAuthorized,
    NotFound,
)


@pytest.mark.parametrize(
    "error_cls, status_code, code",
    [
        (InputInvalid, 400, "input_invalid"),
        (NotAuthorized, 403, "not_authorized"),
        (NotFound, 404, "not_found"),
        (CapExceeded, 403, "cap_exceeded"),
        (AcceptInvalid, 400, "accept_invalid"),
        (Conflict, 409, "conflict"),
        (InternalError, 500, "internal"),
    ],
)
def test_error_kinds_map_to_http(error_cls, status_code, code):
    error = error_cls("Something happened", detail={"current": 3})

    http_exc = error.to_http_exception()

    assert isinstance(http_exc, HTTPException)
    assert http_exc.status_code == status_code
    assert http_exc.detail == {"error": code, "message": "Something happened", "current": 3}
    assert str(error) == "Something happened"


def test_email_unique_violation_is_conflict(integrity_error):
    exc = integrity_error(psycopg2.errorcodes.UNIQUE_VIOLATION, "users_email_key")

    assert is_unique_violation(exc, "users_email_key")
    assert isinstance(translate_database_error(exc, operation="accept"), Conflict)


def test_other_unique_violation_is_internal(integrity_error):
    exc = integrity_error(psycopg2.errorcodes.UNIQUE_VIOLATION, "user_invitations_token_hash_key")

    assert not is_unique_violation(exc, "users_email_key")
    assert isinstance(translate_database_error(exc, operation="create"), InternalError)


def test_foreign_key_violation_is_input_invalid(integrity_error):
    exc = integrity_error(psycopg2.errorcodes.FOREIGN_KEY_VIOLATION)

    translated = translate_database_error(exc, operation="sync the property team")

    assert isinstance(translated, InputInvalid)
    assert "sync the property team" in translated.message


def test_unknown_driver_error_is_logged_as_internal(caplog):
    translated = translate_database_error(psycopg2.OperationalError("gone"), operation="list")

    assert isinstance(translated, InternalError)
    assert "Database error during list" in caplog.text


def test_managed_connection_closes_owned_connection(configured_app, db):
    with managed_connection() as conn:
        assert not conn.closed

    assert conn.closed


def test_managed_connection_leaves_borrowed_connection_open(conn):
    with managed_connection(conn) as borrowed:
        assert borrowed is conn

    assert not conn.closed
