"""Typed representations of properties and their team memberships."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PropertyRole(str, Enum):
    """Roles a user may hold on a property."""

    OWNER = "owner"
    ADMIN = "admin"
    AGENT = "agent"
    HOMEOWNER = "homeowner"
    VIEWER = "viewer"


TEAM_ROLES = frozenset({PropertyRole.ADMIN.value, PropertyRole.AGENT.value, PropertyRole.HOMEOWNER.value})
TEAM_ROLE_ALIASES = {"super_admin": PropertyRole.ADMIN.value}
DEFAULT_TEAM_ROLE = PropertyRole.AGENT.value


def normalize_team_role(role: Any) -> str:
    """Map a requested team role onto the roles the team editor may assign.

    ``admin``, ``agent`` and ``homeowner`` pass through, ``super_admin`` becomes
    ``admin`` and anything else (a missing or non-string role included)
    becomes ``agent``.
    """

    if not isinstance(role, str):
        return DEFAULT_TEAM_ROLE
    if role in TEAM_ROLES:
        return role
    return TEAM_ROLE_ALIASES.get(role, DEFAULT_TEAM_ROLE)


class PropertyMember(BaseModel):
    property_id: int
    user_id: int
    role: PropertyRole

    model_config = ConfigDict(frozen=True)


class TeamMemberIn(BaseModel):
    """One entry of a desired team list, as sent by clients (``{id, role}``)."""

    user_id: int = Field(alias="id")
    role: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("role", mode="before")
    @classmethod
    def _non_string_role_is_missing(cls, value: Any) -> Any:
        return value if isinstance(value, str) else None


class TeamMember(BaseModel):
    """A user record joined with the user's role on one property."""

    id: int
    email: str
    name: Optional[str] = None
    role: str
    is_active: bool
    property_role: PropertyRole

    model_config = ConfigDict(frozen=True)


class _PropertyFields(BaseModel):
    property_name: Optional[str] = None
    address: Optional[str] = None
    address_line_1: Optional[str] = None
    address_line_2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    county: Optional[str] = None
    tax_id: Optional[str] = None
    property_type: Optional[str] = None
    year_built: Optional[int] = Field(default=None, ge=0)
    bed_count: Optional[int] = Field(default=None, ge=0)
    bath_count: Optional[int] = Field(default=None, ge=0)
    sq_ft_total: Optional[Decimal] = Field(default=None, ge=0)

    model_config = ConfigDict(extra="ignore")

    @field_validator("state", "zip", mode="before")
    @classmethod
    def _strip_strings(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value


class PropertyCreate(_PropertyFields):
    """Attributes accepted when creating a property."""


class PropertyUpdate(_PropertyFields):
    """Partial update; only fields present in the request are written.

    A field that was sent as ``null`` clears the column, a field that was not
    sent at all is left untouched.
    """

    passport_id: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in sorted(self.model_fields_set)}


PROPERTY_COLUMNS = (
    "id",
    "property_uid",
    "passport_id",
    "account_id",
    *_PropertyFields.model_fields.keys(),
    "created_at",
    "updated_at",
)


class Property(_PropertyFields):
    id: int
    property_uid: str
    passport_id: Optional[str] = None
    account_id: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(frozen=True)
