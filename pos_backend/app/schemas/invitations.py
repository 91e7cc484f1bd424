from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from ..invitations.models import Invitation, InvitationScope, InvitationState


class InvitationCreateRequest(BaseModel):
    scope: InvitationScope = Field(alias="type")
    invitee_email: EmailStr = Field(alias="inviteeEmail")
    account_id: int = Field(alias="accountId")
    property_id: Optional[int] = Field(default=None, alias="propertyId")
    intended_role: Optional[str] = Field(default=None, alias="intendedRole")

    model_config = ConfigDict(populate_by_name=True)


class InvitationCreateResponse(BaseModel):
    invitation: Invitation
    token: str


class InvitationAcceptRequest(BaseModel):
    token: str = Field(min_length=64, max_length=64, pattern=r"^[0-9a-fA-F]{64}$")
    password: Optional[str] = Field(default=None, min_length=8)
    name: Optional[str] = Field(default=None, max_length=200)


class InvitationAcceptResponse(BaseModel):
    success: bool
    user_id: int = Field(alias="userId")

    model_config = ConfigDict(populate_by_name=True)


class InvitationStateResponse(BaseModel):
    state: InvitationState


class InvitationListResponse(BaseModel):
    invitations: List[Invitation]
