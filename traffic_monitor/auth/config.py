"""Configuration loading for admin authentication."""

from __future__ import annotations

import os
from dataclasses import dataclass


_DEFAULT_TOKEN_TTL_SECONDS = 900
_DEFAULT_COOKIE_NAME = "traffic_monitor_auth"
_DEFAULT_ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class AuthConfig:
    jwt_secret: str
    jwt_issuer: str | None
    jwt_audience: str | None
    allowed_origins: tuple[str, ...]
    token_ttl_seconds: int
    cookie_name: str
    admin_role: str


def _parse_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


def _parse_origins(value: str | None) -> tuple[str, ...]:
    if not value:
        return tuple()
    return tuple(origin.strip() for origin in value.split(",") if origin.strip())


def load_auth_config() -> AuthConfig:
    """Load auth configuration from environment variables."""
    jwt_secret = os.getenv("TRAFFIC_JWT_SECRET", "").strip()
    if not jwt_secret:
        raise ValueError("TRAFFIC_JWT_SECRET must be set")

    return AuthConfig(
        jwt_secret=jwt_secret,
        jwt_issuer=os.getenv("TRAFFIC_JWT_ISSUER") or None,
        jwt_audience=os.getenv("TRAFFIC_JWT_AUDIENCE") or None,
        allowed_origins=_parse_origins(os.getenv("TRAFFIC_ALLOWED_ORIGINS")),
        token_ttl_seconds=_parse_int(os.getenv("TRAFFIC_TOKEN_TTL_SECONDS"), _DEFAULT_TOKEN_TTL_SECONDS),
        cookie_name=os.getenv("TRAFFIC_COOKIE_NAME", _DEFAULT_COOKIE_NAME).strip() or _DEFAULT_COOKIE_NAME,
        admin_role=os.getenv("TRAFFIC_ADMIN_ROLE", _DEFAULT_ADMIN_ROLE).strip() or _DEFAULT_ADMIN_ROLE,
    )
