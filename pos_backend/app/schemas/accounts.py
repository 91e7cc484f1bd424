from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TierLimits(BaseModel):
    max_properties: int = Field(alias="maxProperties")
    max_contacts: int = Field(alias="maxContacts")
    max_viewers: int = Field(alias="maxViewers")
    max_team_members: int = Field(alias="maxTeamMembers")

    model_config = ConfigDict(populate_by_name=True)


class AdmissionStatus(BaseModel):
    allowed: bool
    current: int
    max: int


class AccountLimitsResponse(BaseModel):
    limits: TierLimits
    properties: AdmissionStatus
    contacts: AdmissionStatus
    viewers: Optional[AdmissionStatus] = None
    team_members: Optional[AdmissionStatus] = Field(default=None, alias="teamMembers")

    model_config = ConfigDict(populate_by_name=True)
