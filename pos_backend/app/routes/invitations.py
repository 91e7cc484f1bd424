"""API routes for account and property invitations."""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Any, Callable, Optional

import psycopg2
from fastapi import APIRouter, BackgroundTasks, Cookie, Depends, Query, status

from ... import app_context
from ...mail import send_invitation_email
from .. import access
from ..db import managed_connection
from ..errors import NotAuthorized, ServiceError
from ..invitations import service as invitation_service
from ..invitations.models import Invitation, InvitationScope
from ..schemas.invitations import (
    InvitationAcceptRequest,
    InvitationAcceptResponse,
    InvitationCreateRequest,
    InvitationCreateResponse,
    InvitationListResponse,
    InvitationStateResponse,
)
from ..usage import ledger as usage_ledger

logger = logging.getLogger("invitations")


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


router = APIRouter(prefix="/api/invitations", tags=["invitations"])


def deliver_invitation_email(invitation: Invitation, token: str) -> None:
    """Background task: email the accept link and meter the send."""

    delivered = send_invitation_email(
        invitation,
        token,
        provider=app_context.get_email_provider(),
        config=app_context.get_mail_config(),
    )
    if not delivered:
        return
    try:
        with managed_connection() as conn:
            usage_ledger.log_email_usage(
                conn,
                account_id=invitation.account_id,
                user_id=invitation.inviter_user_id,
                email_type="invitation",
            )
    except (ServiceError, psycopg2.Error):
        logger.exception(
            "Failed to record invitation email usage",
            extra={"invitation_id": invitation.id, "account_id": invitation.account_id},
        )


@router.post("", response_model=InvitationCreateResponse, status_code=status.HTTP_201_CREATED)
def create_invitation(
    payload: InvitationCreateRequest,
    background_tasks: BackgroundTasks,
    *,
    current_user=Depends(_get_current_user),
) -> InvitationCreateResponse:
    config = app_context.get_app_config()
    try:
        with managed_connection() as conn:
            if payload.scope is InvitationScope.PROPERTY and payload.property_id is not None:
                property_account_id = access.require_property_manager(conn, current_user, payload.property_id)
                if property_account_id != payload.account_id:
                    raise NotAuthorized("The property does not belong to this account.")
            else:
                access.require_account_manager(conn, current_user, payload.account_id)
            created = invitation_service.create_invitation(
                conn,
                scope=payload.scope,
                inviter_user_id=current_user.id,
                invitee_email=payload.invitee_email,
                account_id=payload.account_id,
                property_id=payload.property_id,
                intended_role=payload.intended_role,
                ttl=config.invitation_ttl,
            )
    except ServiceError as exc:
        raise exc.to_http_exception() from exc

    background_tasks.add_task(deliver_invitation_email, created.invitation, created.token)
    return InvitationCreateResponse(invitation=created.invitation, token=created.token)


@router.get("/sent", response_model=InvitationListResponse)
def list_sent_invitations(
    *,
    state: Optional[str] = Query(default=None, alias="status"),
    current_user=Depends(_get_current_user),
) -> InvitationListResponse:
    try:
        with managed_connection() as conn:
            invitations = invitation_service.list_sent_invitations(conn, current_user.id, state=state)
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return InvitationListResponse(invitations=invitations)


@router.get("/account/{account_id}", response_model=InvitationListResponse)
def list_account_invitations(
    account_id: int,
    *,
    state: Optional[str] = Query(default=None, alias="status"),
    current_user=Depends(_get_current_user),
) -> InvitationListResponse:
    try:
        with managed_connection() as conn:
            access.require_account_member(conn, current_user, account_id)
            invitations = invitation_service.list_account_invitations(conn, account_id, state=state)
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return InvitationListResponse(invitations=invitations)


@router.get("/property/{property_id}", response_model=InvitationListResponse)
def list_property_invitations(
    property_id: int,
    *,
    state: Optional[str] = Query(default=None, alias="status"),
    current_user=Depends(_get_current_user),
) -> InvitationListResponse:
    try:
        with managed_connection() as conn:
            access.require_property_manager(conn, current_user, property_id)
            invitations = invitation_service.list_property_invitations(conn, property_id, state=state)
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return InvitationListResponse(invitations=invitations)


@router.post("/{invitation_id}/accept", response_model=InvitationAcceptResponse)
def accept_invitation(invitation_id: int, payload: InvitationAcceptRequest) -> InvitationAcceptResponse:
    try:
        with managed_connection() as conn:
            accepted = invitation_service.accept_invitation(
                conn,
                payload.token.lower(),
                password=payload.password,
                name=payload.name,
                invitation_id=invitation_id,
            )
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return InvitationAcceptResponse(success=True, userId=accepted.user_id)


@router.post("/{invitation_id}/decline", response_model=InvitationStateResponse)
def decline_invitation(
    invitation_id: int,
    *,
    current_user=Depends(_get_current_user),
) -> InvitationStateResponse:
    try:
        with managed_connection() as conn:
            invitation = invitation_service.get_invitation(conn, invitation_id)
            if (getattr(current_user, "email", "") or "").lower() != invitation.invitee_email:
                raise NotAuthorized("Only the invitee can decline this invitation.")
            state = invitation_service.decline_invitation(conn, invitation_id)
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return InvitationStateResponse(state=state)


@router.post("/{invitation_id}/revoke", response_model=InvitationStateResponse)
def revoke_invitation(
    invitation_id: int,
    *,
    current_user=Depends(_get_current_user),
) -> InvitationStateResponse:
    try:
        with managed_connection() as conn:
            invitation = invitation_service.get_invitation(conn, invitation_id)
            if invitation.inviter_user_id != current_user.id:
                access.require_account_manager(conn, current_user, invitation.account_id)
            state = invitation_service.revoke_invitation(conn, invitation_id)
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return InvitationStateResponse(state=state)
