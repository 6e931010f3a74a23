"""
api/routes/v1/auth.py -- Session endpoints.

Routes:
  POST /api/v1/auth/login          -- email + password; returns bearer token
  POST /api/v1/auth/select-role    -- switch active role; returns a new token
  POST /api/v1/auth/logout         -- 200; the client discards its token
  GET  /api/v1/auth/me             -- claims of the presented token + granted roles

Security:
  POST /login is rate-limited per IP (LOGIN_RATE_LIMIT, default 10/minute).
  RoleResolver.login() goes through authenticate_user(), which equalizes
  timing between unknown-email and wrong-password. Both fail with the same
  bad_credentials error.
  Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import LoginRequest, MeResponse, SelectRoleRequest, SessionResponse
from auth.dependencies import require_authenticated
from auth.models import SessionClaims
from auth.roles import RoleResolver, sorted_roles
from core.config import get_settings
from core.errors import AuthenticationRequired

# Auth policy:
# - POST /api/v1/auth/login:        public
# - POST /api/v1/auth/logout:       public -- nothing is revoked server-side
# - POST /api/v1/auth/select-role:  requires auth (require_authenticated)
# - GET  /api/v1/auth/me:           requires auth (require_authenticated)
router = APIRouter()


def _token_response(body: SessionResponse) -> JSONResponse:
    resp = JSONResponse(status_code=200, content=body.model_dump(mode="json"))
    resp.headers["Cache-Control"] = "no-store"
    return resp


@limiter.limit(get_settings().login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=SessionResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Single-role accounts get a token for that role. Multi-role accounts get a
    token for their stored active role and requires_role_selection=true.
    """
    roles: RoleResolver = request.app.state.roles
    session = roles.login(body.email, body.password)
    return _token_response(SessionResponse.from_session(session))


@router.post("/auth/select-role", response_model=SessionResponse)
def select_role(
    request: Request,
    body: SelectRoleRequest,
    principal: SessionClaims = Depends(require_authenticated),
) -> JSONResponse:
    """Persist a new active role and issue a token carrying it.

    The previous token is not revoked; it stays valid until its own expiry.
    """
    roles: RoleResolver = request.app.state.roles
    session = roles.select_active_role(principal.user_id, body.role)
    return _token_response(SessionResponse.from_session(session))


@router.post("/auth/logout")
def logout() -> dict:
    """Acknowledge logout. Tokens are stateless; the client drops its copy."""
    return {"message": "Logged out."}


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, principal: SessionClaims = Depends(require_authenticated)) -> MeResponse:
    """Return the presented token's claims with the account's current granted roles."""
    roles: RoleResolver = request.app.state.roles
    user = request.app.state.user_store.get_by_id(principal.user_id)
    if user is None:
        # Account deleted after the token was issued.
        raise AuthenticationRequired("Account no longer exists.")
    return MeResponse(
        user_id=principal.user_id,
        email=principal.email,
        active_role=principal.active_role,
        roles=sorted_roles(user.granted_roles),
        requires_role_selection=roles.requires_role_selection(user),
        issued_at=principal.issued_at.isoformat(),
        expires_at=principal.expires_at.isoformat(),
    )
