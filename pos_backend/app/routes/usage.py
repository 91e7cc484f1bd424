"""API routes for usage metering and spend."""
from __future__ import annotations

import os
from decimal import Decimal
from functools import lru_cache
from typing import Any, Callable, Optional

from fastapi import APIRouter, Cookie, Depends, Query

from .. import access
from ..db import managed_connection
from ..errors import ServiceError
from ..schemas.usage import (
    BudgetResponse,
    CategorySpendResponse,
    MonthlySpendResponse,
    UsageHistoryResponse,
)
from ..usage import ledger


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


router = APIRouter(prefix="/api/usage", tags=["usage"])


@router.get("/{account_id}/spend", response_model=MonthlySpendResponse)
def get_monthly_spend(account_id: int, *, current_user=Depends(_get_current_user)) -> MonthlySpendResponse:
    try:
        with managed_connection() as conn:
            access.require_account_member(conn, current_user, account_id)
            spend = ledger.get_monthly_spend(conn, account_id)
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return MonthlySpendResponse(accountId=account_id, spend=spend)


@router.get("/{account_id}/spend/categories", response_model=CategorySpendResponse)
def get_spend_by_category(account_id: int, *, current_user=Depends(_get_current_user)) -> CategorySpendResponse:
    try:
        with managed_connection() as conn:
            access.require_account_member(conn, current_user, account_id)
            categories = ledger.get_monthly_spend_by_category(conn, account_id)
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return CategorySpendResponse(accountId=account_id, categories=categories)


@router.get("/{account_id}/budget", response_model=BudgetResponse)
def check_budget(
    account_id: int,
    *,
    category: str = Query(min_length=1),
    cap: Decimal = Query(ge=0),
    current_user=Depends(_get_current_user),
) -> BudgetResponse:
    try:
        with managed_connection() as conn:
            access.require_account_member(conn, current_user, account_id)
            budget = ledger.check_budget(conn, account_id, category, cap)
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return BudgetResponse(accountId=account_id, category=category, cap=cap, budget=budget)


@router.get("/{account_id}/history", response_model=UsageHistoryResponse)
def get_usage_history(
    account_id: int,
    *,
    limit: int = Query(default=ledger.DEFAULT_HISTORY_LIMIT, ge=1, le=ledger.MAX_HISTORY_LIMIT),
    offset: int = Query(default=0, ge=0),
    category: Optional[str] = Query(default=None),
    current_user=Depends(_get_current_user),
) -> UsageHistoryResponse:
    try:
        with managed_connection() as conn:
            access.require_account_member(conn, current_user, account_id)
            events = ledger.get_history(conn, account_id, limit=limit, offset=offset, category=category)
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return UsageHistoryResponse(events=events, limit=limit, offset=offset)
