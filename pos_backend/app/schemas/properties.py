from typing import List

from pydantic import BaseModel, ConfigDict, Field

from ..properties.models import Property, PropertyCreate, PropertyMember, TeamMember, TeamMemberIn


class PropertyCreateRequest(PropertyCreate):
    account_id: int = Field(alias="accountId")

    model_config = ConfigDict(populate_by_name=True)


class PropertyResponse(BaseModel):
    property: Property


class PropertyListResponse(BaseModel):
    properties: List[Property]


class PropertyUsersPayload(BaseModel):
    users: List[TeamMemberIn] = Field(default_factory=list)


class PropertyUsersAdded(BaseModel):
    added: int
    property_users: List[PropertyMember]


class PropertyUsersAddResponse(BaseModel):
    property: PropertyUsersAdded


class PropertyTeamResponse(BaseModel):
    property_users: List[PropertyMember]


class PropertyTeamMembersResponse(BaseModel):
    property_users: List[TeamMember]
