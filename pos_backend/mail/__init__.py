"""Email providers, rendering and invitation delivery."""

from .delivery import send_invitation_email
from .providers import (
    DevPrintProvider,
    EmailProvider,
    SMTPProvider,
    create_email_provider,
)
from .renderer import build_accept_url, render_invitation_email

__all__ = [
    "DevPrintProvider",
    "EmailProvider",
    "SMTPProvider",
    "build_accept_url",
    "create_email_provider",
    "render_invitation_email",
    "send_invitation_email",
]
