"""Cookie authentication for the admin endpoints."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

import jwt
from fastapi import HTTPException, Request, status

from .config import AuthConfig
from .jwt_service import decode_token

logger = logging.getLogger(__name__)


@dataclass
class AuthContext:
    claims: dict


def _reject(request: Request, reason: str, detail: str, **context: Any) -> HTTPException:
    logger.warning(
        "Admin auth failed: %s",
        reason,
        extra={
            "reason": reason,
            "client_ip": request.client.host if request.client else "unknown",
            "endpoint": request.url.path,
            "status_code": 401,
            **context,
        },
    )
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def build_auth_dependency(config: AuthConfig) -> Callable[[Request], AuthContext]:
    """Build a FastAPI dependency that requires a valid auth cookie."""

    def _dependency(request: Request) -> AuthContext:
        token = request.cookies.get(config.cookie_name)
        if not token:
            raise _reject(
                request,
                "missing_cookie",
                "Authentication required - missing cookie",
                cookie_name=config.cookie_name,
            )

        try:
            claims = decode_token(token, config)
        except jwt.ExpiredSignatureError:
            raise _reject(request, "token_expired", "Token expired")
        except jwt.InvalidTokenError as e:
            raise _reject(request, "invalid_token", "Invalid token", error=str(e))

        logger.debug("Admin auth successful", extra={"subject": claims.get("sub"), "endpoint": request.url.path})
        return AuthContext(claims=claims)

    return _dependency
