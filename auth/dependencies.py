"""
auth/dependencies.py -- Role Gate: FastAPI Depends() helpers for bearer auth.

Two composable capabilities:
  get_current_identity  -- authenticate only. Verifies the access token and
                           attaches Identity(id, role) to request.state.
  require_roles(*roles) -- authenticate, then enforce an allow-list.

Failure mapping:
  no / malformed Authorization header  -> UnauthorizedError (401)
  bad signature, expired, bad claims   -> UnauthorizedError (401)
  role not in the allow-list           -> ForbiddenError (403)

Only the token is consulted. The account is not re-read from the store, so
a deleted or demoted user keeps their access until the token expires (at
most ACCESS_TOKEN_EXPIRE_SECONDS).

Layer rule: no imports from catalog/. May import fastapi because this module
is part of the dependency injection system.
"""

from __future__ import annotations

from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from auth.models import Identity, Role
from auth.roles import role_allowed
from auth.tokens import TokenClass, TokenIssuer
from core.errors import ExpiredTokenError, ForbiddenError, InvalidTokenError, UnauthorizedError

# auto_error=False: a missing header must produce our 401 envelope, not
# Starlette's default 403.
bearer_scheme = HTTPBearer(auto_error=False)


def get_current_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Identity:
    """Require a valid access token. Raises UnauthorizedError otherwise.

    Use as a FastAPI dependency:
        @router.get("/session")
        async def route(identity: Identity = Depends(get_current_identity)): ...
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Token not provided or invalid format!")

    tokens: TokenIssuer = request.app.state.tokens
    try:
        claims = tokens.verify(credentials.credentials, TokenClass.ACCESS)
    except (InvalidTokenError, ExpiredTokenError) as exc:
        raise UnauthorizedError("Invalid token!", detail=exc.message) from exc

    identity = Identity(id=claims["id"], role=claims["role"])
    request.state.identity = identity
    return identity


def require_roles(*roles: Role) -> Callable[..., Identity]:
    """Build a dependency that admits only tokens whose role is in `roles`.

    Use as a FastAPI dependency:
        @router.delete("/{id}")
        async def route(identity: Identity = Depends(require_roles(Role.ADMIN))): ...
    """
    allowed = frozenset(roles)

    def dependency(identity: Identity = Depends(get_current_identity)) -> Identity:
        if not role_allowed(identity.role, allowed):
            raise ForbiddenError("Not allowed!")
        return identity

    dependency.__name__ = "require_" + "_or_".join(sorted(r.value.lower() for r in allowed))
    return dependency
