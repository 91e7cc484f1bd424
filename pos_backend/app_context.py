"""Shared application context for reusable dependencies."""
from __future__ import annotations

from typing import Any, Callable, Optional

_get_conn: Optional[Callable[[], Any]] = None
_get_current_user: Optional[Callable[..., Any]] = None
_password_hasher: Optional[Callable[[str], str]] = None
_app_config: Optional[Any] = None
_mail_config: Optional[Any] = None
_email_provider: Optional[Any] = None


def configure(
    *,
    get_conn: Callable[[], Any],
    get_current_user: Callable[..., Any],
    password_hasher: Callable[[str], str],
    app_config: Any,
    mail_config: Any,
    email_provider: Any,
) -> None:
    """Register application-wide dependencies required by modular routers."""

    global _get_conn
    global _get_current_user
    global _password_hasher
    global _app_config
    global _mail_config
    global _email_provider

    _get_conn = get_conn
    _get_current_user = get_current_user
    _password_hasher = password_hasher
    _app_config = app_config
    _mail_config = mail_config
    _email_provider = email_provider


def _require(value: Optional[Any], name: str) -> Any:
    if value is None:
        raise RuntimeError(f"Application context has not been configured yet: {name}")
    return value


def get_conn() -> Any:
    conn_factory = _require(_get_conn, "get_conn")
    return conn_factory()


def get_current_user(*args: Any, **kwargs: Any) -> Any:
    dependency = _require(_get_current_user, "get_current_user")
    return dependency(*args, **kwargs)


def hash_password(password: str) -> str:
    hasher = _require(_password_hasher, "password_hasher")
    return hasher(password)


def get_app_config() -> Any:
    return _require(_app_config, "app_config")


def get_mail_config() -> Any:
    return _require(_mail_config, "mail_config")


def get_email_provider() -> Any:
    return _require(_email_provider, "email_provider")


def set_email_provider(provider: Any) -> None:
    global _email_provider
    _email_provider = provider
