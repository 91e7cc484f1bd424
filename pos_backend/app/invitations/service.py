"""Invitation lifecycle: create, accept, decline, revoke and listing.

An invitation starts ``pending`` and moves to exactly one terminal state.
Expiry is evaluated whenever a pending invitation is read; reads that act on
an expired invitation persist the ``expired`` state.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple, Union

import psycopg2
from psycopg2.extensions import connection as PgConnection

from ... import app_context
from .. import contacts, tokens, users
from ..db import translate_database_error
from ..errors import AcceptInvalid, InputInvalid, NotFound
from ..properties.models import PropertyRole
from ..properties.service import upsert_property_member
from ..tiers import can_add_team_member, can_invite_viewer
from . import repository
from .models import (
    DEFAULT_ACCOUNT_ROLE,
    DEFAULT_PROPERTY_ROLE,
    AcceptedInvitation,
    AccountRole,
    CreatedInvitation,
    Invitation,
    InvitationScope,
    InvitationState,
)

logger = logging.getLogger("invitations")

DEFAULT_INVITATION_TTL = timedelta(hours=48)

_INVALID_TOKEN_MESSAGE = "Invalid or expired invitation token"


def _current_time(clock: Optional[Callable[[], datetime]]) -> datetime:
    if clock is None:
        return datetime.now(timezone.utc)
    value = clock()
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _resolve_role(scope: InvitationScope, intended_role: Optional[str]) -> str:
    if scope is InvitationScope.PROPERTY:
        allowed = {role.value for role in PropertyRole if role is not PropertyRole.OWNER}
        default = DEFAULT_PROPERTY_ROLE
    else:
        allowed = {role.value for role in AccountRole if role is not AccountRole.OWNER}
        default = DEFAULT_ACCOUNT_ROLE
    role = (intended_role or default).strip().lower()
    if role not in allowed:
        raise InputInvalid(
            f"Invalid role for {scope.value} invitation: {intended_role}",
            detail={"allowedRoles": sorted(allowed)},
        )
    return role


def create_invitation(
    conn: PgConnection,
    *,
    scope: Union[InvitationScope, str],
    inviter_user_id: int,
    invitee_email: str,
    account_id: int,
    property_id: Optional[int] = None,
    intended_role: Optional[str] = None,
    clock: Optional[Callable[[], datetime]] = None,
    ttl: timedelta = DEFAULT_INVITATION_TTL,
) -> CreatedInvitation:
    """Store a pending invitation and return it with its raw token.

    The raw token is returned exactly once and must reach the invitee
    out of band.
    """

    try:
        scope = InvitationScope(scope)
    except ValueError as exc:
        raise InputInvalid(f"Unknown invitation scope: {scope}") from exc
    email = users.normalize_email(invitee_email or "")
    if not email:
        raise InputInvalid("inviteeEmail is required")
    if scope is InvitationScope.PROPERTY and property_id is None:
        raise InputInvalid("propertyId is required for property invitations")
    if scope is InvitationScope.ACCOUNT:
        property_id = None
    role = _resolve_role(scope, intended_role)

    if scope is InvitationScope.PROPERTY:
        if role == PropertyRole.VIEWER.value:
            admission = can_invite_viewer(conn, account_id, property_id)
            label = "Viewer"
        else:
            admission = can_add_team_member(conn, account_id, property_id)
            label = "Team member"
        admission.require(label)

    minted = tokens.mint()
    now = _current_time(clock)
    try:
        with conn:
            invitation = repository.insert_invitation(
                conn,
                token_hash=minted.token_hash,
                scope=scope.value,
                inviter_user_id=inviter_user_id,
                invitee_email=email,
                account_id=account_id,
                property_id=property_id,
                intended_role=role,
                expires_at=now + ttl,
                created_at=now,
            )
    except psycopg2.Error as exc:
        raise translate_database_error(exc, operation="create the invitation") from exc

    logger.info(
        "Invitation created",
        extra={
            "invitation_id": invitation.id,
            "invitation_scope": scope.value,
            "account_id": account_id,
            "property_id": property_id,
            "inviter_user_id": inviter_user_id,
        },
    )
    return CreatedInvitation(invitation=invitation, token=minted.raw)


def _default_name(email: str) -> str:
    return email.split("@", 1)[0] or email


def accept_invitation(
    conn: PgConnection,
    raw_token: str,
    *,
    password: Optional[str] = None,
    name: Optional[str] = None,
    clock: Optional[Callable[[], datetime]] = None,
    password_hasher: Optional[Callable[[str], str]] = None,
    invitation_id: Optional[int] = None,
) -> AcceptedInvitation:
    """Redeem a raw token, activating the invitee and granting membership.

    User resolution, membership and the state change commit together or not
    at all. An expired pending invitation is marked ``expired`` and rejected.
    When ``invitation_id`` is given the token must belong to that invitation.
    """

    if not raw_token:
        raise InputInvalid("Invitation token required")
    hasher = password_hasher or app_context.hash_password
    password_hash = hasher(password) if password else None
    token_hash = tokens.hash_token(raw_token)
    now = _current_time(clock)

    accepted: Optional[Invitation] = None
    user_id: Optional[int] = None
    try:
        with conn:
            invitation = repository.find_by_token_hash(conn, token_hash, for_update=True)
            if invitation is not None and invitation_id is not None and invitation.id != invitation_id:
                invitation = None
            if invitation is not None and invitation.state is InvitationState.PENDING:
                if invitation.is_expired(now):
                    repository.transition_pending(conn, invitation.id, InvitationState.EXPIRED)
                    logger.info("Expired invitation presented", extra={"invitation_id": invitation.id})
                else:
                    user_id, display_name = _resolve_invitee(
                        conn, invitation, password_hash=password_hash, name=name
                    )
                    _grant_membership(conn, invitation, user_id)
                    contacts.link_account_contact(
                        conn, invitation.account_id, email=invitation.invitee_email, name=display_name
                    )
                    accepted = repository.transition_pending(
                        conn,
                        invitation.id,
                        InvitationState.ACCEPTED,
                        consumed_at=now,
                        accepted_by_user_id=user_id,
                    )
                    if accepted is None:
                        raise AcceptInvalid(_INVALID_TOKEN_MESSAGE)
    except psycopg2.Error as exc:
        raise translate_database_error(exc, operation="accept the invitation") from exc

    if accepted is None or user_id is None:
        raise AcceptInvalid(_INVALID_TOKEN_MESSAGE)

    logger.info(
        "Invitation accepted",
        extra={"invitation_id": accepted.id, "user_id": user_id, "invitation_scope": accepted.scope.value},
    )
    return AcceptedInvitation(user_id=user_id, invitation=accepted)


def _resolve_invitee(
    conn: PgConnection,
    invitation: Invitation,
    *,
    password_hash: Optional[str],
    name: Optional[str],
) -> Tuple[int, str]:
    """Return the invitee's user id and display name, creating the user if needed."""

    existing = users.get_user_by_email(conn, invitation.invitee_email, for_update=True)
    if existing is not None:
        if password_hash is not None:
            users.activate_user(conn, existing["id"], password_hash)
        return int(existing["id"]), existing.get("name") or _default_name(invitation.invitee_email)

    if password_hash is None:
        raise InputInvalid("A password is required to create a new user")
    display_name = (name or "").strip() or _default_name(invitation.invitee_email)
    user_id = users.create_user(
        conn,
        email=invitation.invitee_email,
        name=display_name,
        password_hash=password_hash,
    )
    return user_id, display_name


def _grant_membership(conn: PgConnection, invitation: Invitation, user_id: int) -> None:
    if invitation.scope is InvitationScope.ACCOUNT:
        users.upsert_account_user(conn, invitation.account_id, user_id, invitation.intended_role)
    else:
        upsert_property_member(conn, invitation.property_id, user_id, invitation.intended_role)


def _finish(
    conn: PgConnection,
    invitation_id: int,
    target: InvitationState,
    clock: Optional[Callable[[], datetime]],
) -> InvitationState:
    now = _current_time(clock)
    try:
        with conn:
            invitation = repository.get_invitation(conn, invitation_id, for_update=True)
            if invitation is None:
                raise NotFound(f"No invitation with id: {invitation_id}")
            if invitation.state.is_terminal:
                return invitation.state
            if invitation.is_expired(now):
                target = InvitationState.EXPIRED
            repository.transition_pending(conn, invitation_id, target)
    except psycopg2.Error as exc:
        raise translate_database_error(exc, operation=f"mark the invitation {target.value}") from exc

    logger.info("Invitation %s", target.value, extra={"invitation_id": invitation_id})
    return target


def decline_invitation(
    conn: PgConnection, invitation_id: int, *, clock: Optional[Callable[[], datetime]] = None
) -> InvitationState:
    return _finish(conn, invitation_id, InvitationState.DECLINED, clock)


def revoke_invitation(
    conn: PgConnection, invitation_id: int, *, clock: Optional[Callable[[], datetime]] = None
) -> InvitationState:
    return _finish(conn, invitation_id, InvitationState.REVOKED, clock)


def get_invitation(
    conn: PgConnection, invitation_id: int, *, clock: Optional[Callable[[], datetime]] = None
) -> Invitation:
    invitation = repository.get_invitation(conn, invitation_id)
    if invitation is None:
        raise NotFound(f"No invitation with id: {invitation_id}")
    return invitation.as_of(_current_time(clock))


def _list(
    conn: PgConnection,
    column: str,
    value: int,
    state: Optional[Union[InvitationState, str]],
    clock: Optional[Callable[[], datetime]],
) -> List[Invitation]:
    wanted: Optional[InvitationState] = None
    if state:
        try:
            wanted = InvitationState(state)
        except ValueError as exc:
            raise InputInvalid(f"Unknown invitation status: {state}") from exc
    now = _current_time(clock)
    invitations = [invitation.as_of(now) for invitation in repository.list_invitations(conn, column, value)]
    if wanted is None:
        return invitations
    return [invitation for invitation in invitations if invitation.state is wanted]


def list_sent_invitations(
    conn: PgConnection,
    user_id: int,
    *,
    state: Optional[Union[InvitationState, str]] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> List[Invitation]:
    return _list(conn, "inviter_user_id", user_id, state, clock)


def list_account_invitations(
    conn: PgConnection,
    account_id: int,
    *,
    state: Optional[Union[InvitationState, str]] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> List[Invitation]:
    return _list(conn, "account_id", account_id, state, clock)


def list_property_invitations(
    conn: PgConnection,
    property_id: int,
    *,
    state: Optional[Union[InvitationState, str]] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> List[Invitation]:
    return _list(conn, "property_id", property_id, state, clock)


def expire_pending_invitations(
    conn: PgConnection, *, clock: Optional[Callable[[], datetime]] = None
) -> int:
    """Persist ``expired`` on every pending invitation past its expiry."""

    now = _current_time(clock)
    with conn:
        count = repository.expire_pending(conn, now)
    if count:
        logger.info("Expired pending invitations", extra={"expired_count": count})
    return count
