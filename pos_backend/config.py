"""Application configuration loaded from environment variables."""
from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Mapping, Optional, Tuple


@dataclass(frozen=True)
class AppConfig:
    """Runtime settings for the API process."""

    db_host: str
    db_port: int
    db_name: str
    db_user: str
    db_password: str
    db_connect_timeout: int
    jwt_secret_key: str
    jwt_exp_minutes: int
    session_cookie_name: str
    invitation_ttl_hours: int
    bcrypt_rounds: int
    app_base_url: str
    cors_origins: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def invitation_ttl(self) -> timedelta:
        return timedelta(hours=self.invitation_ttl_hours)

    def db_params(self) -> Dict[str, Any]:
        """Keyword arguments accepted by ``psycopg2.connect``."""

        return dict(
            host=self.db_host,
            port=self.db_port,
            dbname=self.db_name,
            user=self.db_user,
            password=self.db_password,
            connect_timeout=self.db_connect_timeout,
        )


@dataclass(frozen=True)
class MailConfig:
    """Outbound mail settings used for invitation delivery."""

    provider: str
    sender: str
    smtp_host: str
    smtp_port: int
    smtp_username: Optional[str]
    smtp_password: Optional[str]
    smtp_starttls: bool
    accept_base_url: str
    send_attempts: int
    retry_backoff_seconds: float


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _parse_connect_timeout(raw_value: Optional[str]) -> int:
    if raw_value is None or raw_value == "":
        return 5
    try:
        timeout = float(raw_value)
    except ValueError as exc:
        raise ValueError("DB_CONNECT_TIMEOUT must be a number") from exc
    if timeout < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")
    return int(math.ceil(timeout))


def _to_float(value: Optional[str], *, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"Expected number, got {value!r}") from exc


_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def _to_bool(value: Optional[str], *, default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Expected boolean value, got {value!r}")


def _base_url(env: Mapping[str, str]) -> str:
    return env.get("APP_BASE_URL", "http://localhost:5173").rstrip("/")


def _split_origins(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ("http://localhost:5173",)
    return tuple(origin.strip() for origin in value.split(",") if origin.strip())


def load_app_config(env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Load :class:`AppConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    bcrypt_rounds = _to_int(env_mapping.get("BCRYPT_ROUNDS"), default=12)
    if not 4 <= bcrypt_rounds <= 31:
        raise ValueError("BCRYPT_ROUNDS must be between 4 and 31")

    return AppConfig(
        db_host=env_mapping.get("DB_HOST", "127.0.0.1"),
        db_port=_to_int(env_mapping.get("DB_PORT"), default=5432),
        db_name=env_mapping.get("DB_NAME", "pos_db"),
        db_user=env_mapping.get("DB_USER", "pos_user"),
        db_password=env_mapping.get("DB_PASSWORD", "pos_pass"),
        db_connect_timeout=_parse_connect_timeout(env_mapping.get("DB_CONNECT_TIMEOUT")),
        jwt_secret_key=env_mapping.get("JWT_SECRET_KEY", "dev-secret-change-me"),
        jwt_exp_minutes=_to_int(env_mapping.get("JWT_EXP_MINUTES"), default=60 * 24 * 7),
        session_cookie_name=env_mapping.get("SESSION_COOKIE_NAME", "session"),
        invitation_ttl_hours=max(1, _to_int(env_mapping.get("INVITATION_TTL_HOURS"), default=48)),
        bcrypt_rounds=bcrypt_rounds,
        app_base_url=_base_url(env_mapping),
        cors_origins=_split_origins(env_mapping.get("CORS_ORIGINS")),
    )


def load_mail_config(env: Optional[Mapping[str, str]] = None) -> MailConfig:
    """Load :class:`MailConfig` from environment variables.

    Accept links share ``APP_BASE_URL`` with :func:`load_app_config`.
    """

    env_mapping = os.environ if env is None else env

    return MailConfig(
        provider=(env_mapping.get("EMAIL_PROVIDER") or "dev").strip().lower() or "dev",
        sender=env_mapping.get("FROM_EMAIL", "noreply@example.com"),
        smtp_host=env_mapping.get("SMTP_HOST", "localhost"),
        smtp_port=_to_int(env_mapping.get("SMTP_PORT"), default=587),
        smtp_username=env_mapping.get("SMTP_USER") or None,
        smtp_password=env_mapping.get("SMTP_PASS") or None,
        smtp_starttls=_to_bool(env_mapping.get("SMTP_USE_TLS"), default=True),
        accept_base_url=_base_url(env_mapping),
        send_attempts=max(1, _to_int(env_mapping.get("EMAIL_MAX_ATTEMPTS"), default=3)),
        retry_backoff_seconds=max(0.0, _to_float(env_mapping.get("EMAIL_RETRY_BACKOFF"), default=2.0)),
    )
