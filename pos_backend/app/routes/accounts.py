"""API routes exposing account tier limits."""
from __future__ import annotations

import os
from functools import lru_cache
from typing import Any, Callable, Optional

from fastapi import APIRouter, Cookie, Depends, Query

from .. import access, tiers
from ..db import managed_connection
from ..errors import ServiceError
from ..schemas.accounts import AccountLimitsResponse


def _resolve_get_current_user() -> Callable[..., Any]:  # pragma: no cover - helper for lazy import
    from ...main import get_current_user as resolved

    return resolved


@lru_cache(maxsize=1)
def _get_current_user_callable() -> Callable[..., Any]:
    return _resolve_get_current_user()


_SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")


def _get_current_user(
    session_token: Optional[str] = Cookie(None, alias=_SESSION_COOKIE_NAME),
):
    resolved = _get_current_user_callable()
    return resolved(session_token=session_token)


router = APIRouter(prefix="/api/accounts", tags=["accounts"])


@router.get("/{account_id}/limits", response_model=AccountLimitsResponse)
def get_account_limits(
    account_id: int,
    *,
    property_id: Optional[int] = Query(default=None, alias="propertyId"),
    current_user=Depends(_get_current_user),
) -> AccountLimitsResponse:
    try:
        with managed_connection() as conn:
            access.require_account_member(conn, current_user, account_id)
            snapshot = tiers.admission_snapshot(conn, account_id, property_id)
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return AccountLimitsResponse.model_validate(snapshot)
