"""API routes for properties and their teams."""
from __future__ import annotations

import os
from functools import lru_cache
from typing import Any, Callable, List, Optional, Union

from fastapi import APIRouter, Body, Cookie, Depends, status

from .. import access
from ..db import managed_connection
from ..errors import ServiceError
from ..properties import service as property_service
from ..properties.models import PropertyUpdate, TeamMemberIn
from ..schemas.properties import (
    PropertyCreateRequest,
    PropertyListResponse,
    PropertyResponse,
    PropertyTeamMembersResponse,
    PropertyTeamResponse,
    PropertyUsersAdded,
    PropertyUsersAddResponse,
    PropertyUsersPayload,
)


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


router = APIRouter(prefix="/api/properties", tags=["properties"])


@router.post("", response_model=PropertyResponse, status_code=status.HTTP_201_CREATED)
def create_property(
    payload: PropertyCreateRequest,
    *,
    current_user=Depends(_get_current_user),
) -> PropertyResponse:
    try:
        with managed_connection() as conn:
            access.require_account_member(conn, current_user, payload.account_id)
            prop = property_service.create_property(
                conn,
                payload,
                account_id=payload.account_id,
                creator_user_id=current_user.id,
            )
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return PropertyResponse(property=prop)


@router.get("/account/{account_id}", response_model=PropertyListResponse)
def list_account_properties(
    account_id: int,
    *,
    current_user=Depends(_get_current_user),
) -> PropertyListResponse:
    try:
        with managed_connection() as conn:
            access.require_account_member(conn, current_user, account_id)
            properties = property_service.list_account_properties(conn, account_id)
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return PropertyListResponse(properties=properties)


@router.get("/team/{property_uid}", response_model=PropertyTeamMembersResponse)
def get_property_team(
    property_uid: str,
    *,
    current_user=Depends(_get_current_user),
) -> PropertyTeamMembersResponse:
    try:
        with managed_connection() as conn:
            prop = property_service.get_property(conn, property_uid)
            access.require_account_member(conn, current_user, prop.account_id)
            team = property_service.get_property_team(conn, prop.id)
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return PropertyTeamMembersResponse(property_users=team)


@router.get("/{property_uid}", response_model=PropertyResponse)
def get_property(
    property_uid: str,
    *,
    current_user=Depends(_get_current_user),
) -> PropertyResponse:
    try:
        with managed_connection() as conn:
            prop = property_service.get_property(conn, property_uid)
            access.require_account_member(conn, current_user, prop.account_id)
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return PropertyResponse(property=prop)


@router.patch("/{property_id}", response_model=PropertyResponse)
def update_property(
    property_id: int,
    payload: PropertyUpdate,
    *,
    current_user=Depends(_get_current_user),
) -> PropertyResponse:
    try:
        with managed_connection() as conn:
            access.require_property_manager(conn, current_user, property_id)
            prop = property_service.update_property(conn, property_id, payload)
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return PropertyResponse(property=prop)


@router.post("/{property_id}/users", response_model=PropertyUsersAddResponse, status_code=status.HTTP_201_CREATED)
def add_property_users(
    property_id: int,
    payload: Union[List[TeamMemberIn], PropertyUsersPayload] = Body(...),
    *,
    current_user=Depends(_get_current_user),
) -> PropertyUsersAddResponse:
    users = payload.users if isinstance(payload, PropertyUsersPayload) else payload
    try:
        with managed_connection() as conn:
            access.require_property_manager(conn, current_user, property_id)
            added = property_service.add_users_to_property(conn, property_id, users)
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return PropertyUsersAddResponse(property=PropertyUsersAdded(added=len(added), property_users=added))


@router.patch("/{property_id}/team", response_model=PropertyTeamResponse, status_code=status.HTTP_201_CREATED)
def sync_property_team(
    property_id: int,
    payload: List[TeamMemberIn] = Body(...),
    *,
    current_user=Depends(_get_current_user),
) -> PropertyTeamResponse:
    try:
        with managed_connection() as conn:
            access.require_property_manager(conn, current_user, property_id)
            members = property_service.sync_property_team(conn, property_id, payload)
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return PropertyTeamResponse(property_users=members)
