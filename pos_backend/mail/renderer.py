"""Rendering helpers for outbound email."""
from __future__ import annotations

import html
import re
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

_TEMPLATE_PATH = Path(__file__).resolve().parent / "templates"
_PLACEHOLDER_PATTERN = re.compile(r"{{\s*(\w+)\s*}}")


def _load_template(template: str) -> str:
    path = _TEMPLATE_PATH / template
    return path.read_text(encoding="utf-8")


def _render_template(template: str, context: Dict[str, Any]) -> str:
    source = _load_template(template)

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        value = context.get(key, "")
        return "" if value is None else str(value)

    return _PLACEHOLDER_PATTERN.sub(_replace, source)


def _render_subject_body(base_template: str, context: Dict[str, Any]) -> Tuple[str, str, str]:
    subject = _render_template(f"{base_template}_subject.txt.j2", context)
    text_body = _render_template(f"{base_template}_body.txt.j2", context)
    html_body = _render_template(f"{base_template}_body.html.j2", context)
    return subject.strip(), text_body.strip(), html_body.strip()


def build_accept_url(app_base_url: str, invitation_id: int, token: str) -> str:
    return f"{app_base_url.rstrip('/')}/invitations/{invitation_id}/accept?token={token}"


def render_invitation_email(
    *,
    accept_url: str,
    target_name: str,
    role: str,
    expires_at: str,
    inviter_name: Optional[str] = None,
) -> Tuple[str, str, str]:
    """Return ``(subject, text_body, html_body)`` for an invitation."""

    inviter_phrase = inviter_name or "A teammate"
    context = {
        "inviter_phrase": inviter_phrase,
        "inviter_phrase_html": html.escape(inviter_phrase),
        "target_name": target_name,
        "target_name_html": html.escape(target_name),
        "role": role,
        "role_article": "an" if role[:1].lower() in {"a", "e", "i", "o", "u"} else "a",
        "accept_url": accept_url,
        "accept_url_html": html.escape(accept_url, quote=True),
        "expires_at": expires_at,
    }
    return _render_subject_body("invitation", context)
