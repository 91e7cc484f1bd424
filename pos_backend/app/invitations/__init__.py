"""Account and property invitations backed by single-use hashed tokens."""

from .models import (
    AcceptedInvitation,
    CreatedInvitation,
    Invitation,
    InvitationScope,
    InvitationState,
)
from .service import (
    DEFAULT_INVITATION_TTL,
    accept_invitation,
    create_invitation,
    decline_invitation,
    expire_pending_invitations,
    get_invitation,
    list_account_invitations,
    list_property_invitations,
    list_sent_invitations,
    revoke_invitation,
)

__all__ = [
    "DEFAULT_INVITATION_TTL",
    "AcceptedInvitation",
    "CreatedInvitation",
    "Invitation",
    "InvitationScope",
    "InvitationState",
    "accept_invitation",
    "create_invitation",
    "decline_invitation",
    "expire_pending_invitations",
    "get_invitation",
    "list_account_invitations",
    "list_property_invitations",
    "list_sent_invitations",
    "revoke_invitation",
]
