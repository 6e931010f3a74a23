"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and roles.

Request state machine:
  Unauthenticated -> Authenticated (require_authenticated) -> Authorized | Denied
  (require_role)

require_authenticated() reads only the Authorization: Bearer header. The
verified claims are attached to request.state.principal and returned.
require_role(*roles) builds a dependency that runs require_authenticated()
first and then checks the token's active role with auth.roles.role_admits().
The role comes from the signed token, never from the request body or query.

Both raise core.errors types; api/main.py maps them to 401/403.

Layer rule: auth/dependencies.py may import from fastapi (for Request)
because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Request

from auth.models import Role, SessionClaims
from auth.roles import role_admits
from auth.tokens import TokenService
from core.errors import AccessDenied, AuthenticationRequired

_BEARER_PREFIX = "Bearer "


def get_token_service(request: Request) -> TokenService:
    return request.app.state.tokens


def get_principal(request: Request) -> SessionClaims | None:
    """Return the claims attached by require_authenticated(), or None."""
    return getattr(request.state, "principal", None)


def require_authenticated(request: Request) -> SessionClaims:
    """Verify the bearer token and attach its claims to the request.

    Raises AuthenticationRequired when the header is missing or uses another
    scheme, and the TokenService's TokenExpired / TokenInvalid otherwise. The
    message of the token failure is surfaced to the client unchanged.
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith(_BEARER_PREFIX):
        raise AuthenticationRequired()
    token = auth_header[len(_BEARER_PREFIX) :].strip()
    if not token:
        raise AuthenticationRequired()

    claims = get_token_service(request).verify(token)
    request.state.principal = claims
    return claims


def require_role(*allowed: Role) -> Callable[[Request], SessionClaims]:
    """Build a dependency admitting sessions whose active role passes role_admits().

    Use as a FastAPI dependency:
        @router.get("/admin-only")
        def route(principal: SessionClaims = Depends(require_role(Role.admin))): ...
    """
    allowed_roles = frozenset(allowed)

    def dependency(request: Request) -> SessionClaims:
        principal = get_principal(request) or require_authenticated(request)
        if not role_admits(principal.active_role, allowed_roles):
            raise AccessDenied()
        return principal

    return dependency


def check_role(principal: SessionClaims | None, *allowed: Role) -> SessionClaims:
    """Imperative form of require_role() for routes whose guard depends on the body."""
    if principal is None:
        raise AuthenticationRequired()
    if not role_admits(principal.active_role, allowed):
        raise AccessDenied()
    return principal
