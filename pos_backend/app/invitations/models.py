"""Typed representations of invitations."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field


class InvitationScope(str, Enum):
    ACCOUNT = "account"
    PROPERTY = "property"


class InvitationState(str, Enum):
    """Lifecycle state; every state except ``pending`` is terminal."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    REVOKED = "revoked"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not InvitationState.PENDING


class AccountRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


DEFAULT_PROPERTY_ROLE = "agent"
DEFAULT_ACCOUNT_ROLE = AccountRole.MEMBER.value


class Invitation(BaseModel):
    """Public view of an invitation row. The token hash is never exposed."""

    id: int
    scope: InvitationScope
    inviter_user_id: int = Field(alias="inviterUserId")
    invitee_email: str = Field(alias="inviteeEmail")
    account_id: int = Field(alias="accountId")
    property_id: Optional[int] = Field(default=None, alias="propertyId")
    intended_role: str = Field(alias="intendedRole")
    state: InvitationState
    expires_at: datetime = Field(alias="expiresAt")
    created_at: datetime = Field(alias="createdAt")
    consumed_at: Optional[datetime] = Field(default=None, alias="consumedAt")
    accepted_by_user_id: Optional[int] = Field(default=None, alias="acceptedByUserId")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def effective_state(self, now: datetime) -> InvitationState:
        """Pending invitations past their expiry read as expired."""

        if self.state is InvitationState.PENDING and self.is_expired(now):
            return InvitationState.EXPIRED
        return self.state

    def as_of(self, now: datetime) -> "Invitation":
        state = self.effective_state(now)
        if state is self.state:
            return self
        return self.model_copy(update={"state": state})


class CreatedInvitation(NamedTuple):
    """A freshly stored invitation plus the raw token, which exists only here."""

    invitation: Invitation
    token: str


class AcceptedInvitation(NamedTuple):
    user_id: int
    invitation: Invitation
