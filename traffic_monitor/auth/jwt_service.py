"""Signed auth cookies carrying a subject and its ordered roles.

Accounts live in the site that embeds the monitor; it issues the cookie and
this service only needs the shared secret to read it back.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable
from uuid import uuid4

import jwt

from .config import AuthConfig

_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ["exp", "iat", "jti"]


@dataclass(frozen=True)
class TokenPayload:
    token: str
    token_id: str
    expires_in: int
    expires_at: datetime


def _audience_claims(config: AuthConfig) -> dict[str, str]:
    claims = {}
    if config.jwt_issuer:
        claims["iss"] = config.jwt_issuer
    if config.jwt_audience:
        claims["aud"] = config.jwt_audience
    return claims


def generate_token(
    config: AuthConfig,
    subject: str,
    roles: Iterable[str] = (),
    now: datetime | None = None,
) -> TokenPayload:
    """Sign a cookie value for ``subject``. Role order is preserved."""
    issued_at = now or datetime.now(timezone.utc)
    expires_at = issued_at + timedelta(seconds=config.token_ttl_seconds)
    token_id = uuid4().hex

    claims: dict[str, Any] = {
        "sub": subject,
        "roles": list(roles),
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
        "jti": token_id,
        **_audience_claims(config),
    }
    return TokenPayload(
        token=jwt.encode(claims, config.jwt_secret, algorithm=_ALGORITHM),
        token_id=token_id,
        expires_in=config.token_ttl_seconds,
        expires_at=expires_at,
    )


def decode_token(token: str, config: AuthConfig) -> dict[str, Any]:
    """Verify signature, expiry, issuer and audience; raises jwt.InvalidTokenError."""
    return jwt.decode(
        token,
        config.jwt_secret,
        algorithms=[_ALGORITHM],
        audience=config.jwt_audience,
        issuer=config.jwt_issuer,
        options={"require": _REQUIRED_CLAIMS},
    )


def roles_from_claims(claims: dict[str, Any]) -> tuple[str, ...]:
    """Role names from decoded claims, in issue order; non-strings are dropped."""
    roles = claims.get("roles") or []
    if isinstance(roles, str):
        roles = [roles]
    return tuple(role for role in roles if isinstance(role, str) and role)
