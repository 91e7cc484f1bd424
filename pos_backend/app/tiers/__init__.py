"""Tier policy: subscription caps and admission checks."""

from .models import DEFAULT_CAPS, AdmissionResult, TierCaps
from .service import (
    admission_snapshot,
    can_add_contact,
    can_add_team_member,
    can_create_property,
    can_invite_viewer,
    get_account_limits,
    lock_account_admissions,
)

__all__ = [
    "DEFAULT_CAPS",
    "AdmissionResult",
    "TierCaps",
    "admission_snapshot",
    "can_add_contact",
    "can_add_team_member",
    "can_create_property",
    "can_invite_viewer",
    "get_account_limits",
    "lock_account_admissions",
]
