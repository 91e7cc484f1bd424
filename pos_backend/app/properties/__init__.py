"""Properties, passport labels and team membership."""

from .models import (
    Property,
    PropertyCreate,
    PropertyMember,
    PropertyRole,
    PropertyUpdate,
    TeamMember,
    TeamMemberIn,
    normalize_team_role,
)
from .passport import generate_passport_id
from .service import (
    add_user_to_property,
    add_users_to_property,
    create_property,
    generate_property_uid,
    get_property,
    get_property_by_id,
    get_property_team,
    list_account_properties,
    sync_property_team,
    update_property,
    upsert_property_member,
)

__all__ = [
    "Property",
    "PropertyCreate",
    "PropertyMember",
    "PropertyRole",
    "PropertyUpdate",
    "TeamMember",
    "TeamMemberIn",
    "add_user_to_property",
    "add_users_to_property",
    "create_property",
    "generate_passport_id",
    "generate_property_uid",
    "get_property",
    "get_property_by_id",
    "get_property_team",
    "list_account_properties",
    "normalize_team_role",
    "sync_property_team",
    "update_property",
    "upsert_property_member",
]
