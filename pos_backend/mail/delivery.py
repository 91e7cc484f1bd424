"""Best-effort delivery of invitation emails."""
from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from ..app.invitations.models import Invitation, InvitationScope
from ..config import MailConfig
from .providers import EmailProvider
from .renderer import build_accept_url, render_invitation_email

logger = logging.getLogger(__name__)


def _default_target_name(invitation: Invitation) -> str:
    if invitation.scope is InvitationScope.PROPERTY:
        return "a property team"
    return "an account"


def send_invitation_email(
    invitation: Invitation,
    token: str,
    *,
    provider: EmailProvider,
    config: MailConfig,
    target_name: Optional[str] = None,
    inviter_name: Optional[str] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Send the accept link, retrying with linear backoff. Returns success.

    Failures are logged and swallowed; the invitation stays valid and can be
    resent by creating a new one.
    """

    subject, text_body, html_body = render_invitation_email(
        accept_url=build_accept_url(config.accept_base_url, invitation.id, token),
        target_name=target_name or _default_target_name(invitation),
        role=invitation.intended_role,
        expires_at=invitation.expires_at.isoformat(),
        inviter_name=inviter_name,
    )
    attempts = max(1, config.send_attempts)
    backoff = max(0.0, config.retry_backoff_seconds)
    recipient = invitation.invitee_email

    for attempt in range(1, attempts + 1):
        try:
            provider.send_email(recipient, subject, html_body, text_body)
        except Exception:
            logger.exception(
                "Failed to send invitation email",
                extra={
                    "invitation_id": invitation.id,
                    "email_recipient": recipient,
                    "email_attempt": attempt,
                    "email_attempts": attempts,
                },
            )
            if attempt >= attempts:
                return False
            if backoff > 0:
                sleep(backoff * attempt)
            continue

        logger.info(
            "Invitation email dispatched",
            extra={
                "invitation_id": invitation.id,
                "email_recipient": recipient,
                **provider.describe(),
            },
        )
        return True
    return False
