"""
Bearer-token authentication and role checks.

The authenticated actor is attached to ``request.state.actor`` so the audit
interceptor can attribute the request once the handler has run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from fastapi import Depends, Header, HTTPException, Request
from jose import JWTError, jwt

logger = logging.getLogger(__name__)

DEV_JWT_SECRET = "dev-jwt-secret-change-in-production"


class AuthConfigError(RuntimeError):
    """Raised at startup when production runs without a JWT secret."""


@dataclass(frozen=True)
class Actor:
    id: str
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    role: str = ""

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or self.email or self.id


def jwt_secret(settings) -> str:
    secret = settings.JWT_SECRET.strip()
    if secret:
        return secret
    if settings.is_production:
        raise AuthConfigError("JWT_SECRET must be set in production. See .env.example.")
    return DEV_JWT_SECRET


def issue_token(actor: Actor, settings, expires_in: timedelta | None = None) -> str:
    """Mint an access token carrying the actor claims."""
    expires_in = expires_in or timedelta(minutes=settings.JWT_EXPIRES_MINUTES)
    claims = {
        "sub": actor.id,
        "email": actor.email,
        "role": actor.role,
        "firstName": actor.first_name,
        "lastName": actor.last_name,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(claims, jwt_secret(settings), algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str, settings) -> Actor:
    claims = jwt.decode(token, jwt_secret(settings), algorithms=[settings.JWT_ALGORITHM])
    if not claims.get("sub"):
        raise JWTError("Token has no subject")
    return Actor(
        id=str(claims["sub"]),
        email=claims.get("email") or "",
        first_name=claims.get("firstName") or "",
        last_name=claims.get("lastName") or "",
        role=claims.get("role") or "",
    )


def get_current_actor(request: Request, authorization: str | None = Header(None)) -> Actor:
    """Resolve the bearer token into an Actor, or fail with 401."""
    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header missing")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Invalid authentication")
    try:
        actor = decode_token(token.strip(), request.app.state.settings)
    except JWTError as exc:
        logger.info("Rejected bearer token: %s", exc)
        raise HTTPException(status_code=401, detail="Invalid authentication")
    request.state.actor = actor
    return actor


def get_request_actor(request: Request) -> Actor | None:
    return getattr(request.state, "actor", None)


def require_role(*roles: str):
    """
    Dependency factory for role checks.

    Usage: Depends(require_role("provider", "admin"))
    """

    def _check_role(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in roles:
            logger.warning("Role denied: actor=%s role=%s required=%s", actor.id, actor.role, roles)
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return actor

    return _check_role
