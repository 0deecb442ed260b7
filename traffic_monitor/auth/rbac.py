"""Role checks for admin endpoints and actor roles for logged requests."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable

import jwt
from fastapi import Depends, HTTPException, Request, status

from ..core.models import VISITOR_ROLE
from .auth_dependency import AuthContext, build_auth_dependency
from .config import AuthConfig
from .jwt_service import decode_token, roles_from_claims


@dataclass(frozen=True)
class Principal:
    user_id: str | None
    roles: tuple[str, ...]
    claims: dict[str, Any]


def principal_from_claims(claims: dict[str, Any]) -> Principal:
    """Build a principal from JWT claims, keeping role order."""
    return Principal(
        user_id=claims.get("sub"),
        roles=roles_from_claims(claims),
        claims=claims,
    )


def require_roles(required_roles: Iterable[str], config: AuthConfig) -> Callable[..., Principal]:
    """Dependency factory to require at least one of the specified roles."""
    required = set(required_roles)
    auth_dependency = build_auth_dependency(config)

    def _checker(auth: AuthContext = Depends(auth_dependency)) -> Principal:
        principal = principal_from_claims(auth.claims)
        if not required.intersection(principal.roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Required roles: {sorted(required)}",
            )
        return principal

    return _checker


def current_actor_role(request: Request, config: AuthConfig) -> str:
    """First role of the signed-in user, or 'visitor'.

    Never raises: an absent, expired or forged cookie just means a visitor.
    """
    token = request.cookies.get(config.cookie_name)
    if not token:
        return VISITOR_ROLE
    try:
        claims = decode_token(token, config)
    except jwt.InvalidTokenError:
        return VISITOR_ROLE
    roles = principal_from_claims(claims).roles
    return roles[0] if roles else VISITOR_ROLE
