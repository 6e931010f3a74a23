"""
api/routes/v1/users.py -- Account management (admin only).

Routes:
  GET    /api/v1/admin/users         -- list live accounts
  POST   /api/v1/admin/users         -- create account; 201 | 409 duplicate email
  PUT    /api/v1/admin/users/{id}    -- update name/email/password/roles
  DELETE /api/v1/admin/users/{id}    -- soft delete; 204

Privilege rules:
  Any admin session (super_admin included) may manage supplier, agency and
  admin accounts. Granting super_admin, or editing or deleting an account
  that already holds it, additionally needs an active super_admin role.
  Deleting your own account is refused with 400.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from fastapi import APIRouter, Depends, Path, Request, Response

from api.models import UserCreate, UserResponse, UserUpdate
from auth.dependencies import require_role
from auth.models import Role, SessionClaims, User
from auth.roles import primary_role
from auth.store import UserStore
from auth.tokens import hash_password
from core.errors import AccessDenied, InternalError, NotFound, ValidationError
from core.schema import MAX_ROW_ID

logger = logging.getLogger("tourmarket.auth")

router = APIRouter()

_admin = require_role(Role.admin)


def _guard_super_admin(principal: SessionClaims, roles: Iterable[Role]) -> None:
    if Role.super_admin in set(roles) and principal.active_role != Role.super_admin:
        raise AccessDenied("Only a super_admin may manage super_admin accounts.")


def _fetch(user_store: UserStore, user_id: int) -> User:
    user = user_store.get_by_id(user_id)
    if user is None:
        raise NotFound("User not found.")
    return user


@router.get("/admin/users", response_model=list[UserResponse])
def list_users(request: Request, principal: SessionClaims = Depends(_admin)) -> list[UserResponse]:
    user_store: UserStore = request.app.state.user_store
    return [UserResponse.from_user(u) for u in user_store.list_users()]


@router.post("/admin/users", response_model=UserResponse, status_code=201)
def create_user(request: Request, body: UserCreate, principal: SessionClaims = Depends(_admin)) -> UserResponse:
    """Create an account with one or more roles.

    active_role defaults to the most privileged granted role and must be one
    of the granted roles when given.
    """
    _guard_super_admin(principal, body.roles)
    user_store: UserStore = request.app.state.user_store

    active = body.active_role or primary_role(body.roles)
    if active not in body.roles:
        raise ValidationError("Active role must be one of the granted roles.")

    user_id = user_store.create_user(
        User(
            email=body.email,
            display_name=body.name,
            granted_roles=frozenset(body.roles),
            active_role=active,
            password_hash=hash_password(body.password),
        )
    )
    logger.info("User %s created by user_id=%s roles=%s", user_id, principal.user_id, [r.value for r in body.roles])
    created = user_store.get_by_id(user_id)
    if created is None:
        raise InternalError("User not found after write.")
    return UserResponse.from_user(created)


@router.put("/admin/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    body: UserUpdate,
    user_id: int = Path(ge=1, le=MAX_ROW_ID),
    principal: SessionClaims = Depends(_admin),
) -> UserResponse:
    """Update mutable account fields. Replacing roles keeps the active role if still granted."""
    user_store: UserStore = request.app.state.user_store
    target = _fetch(user_store, user_id)
    _guard_super_admin(principal, target.granted_roles)
    if body.roles is not None:
        _guard_super_admin(principal, body.roles)

    fields = body.model_dump(exclude_none=True)
    if not fields:
        raise ValidationError("At least one field must be provided to update.")

    updated = user_store.update_user(
        user_id,
        display_name=body.name,
        email=body.email,
        password_hash=hash_password(body.password) if body.password else None,
        roles=body.roles,
    )
    if not updated:
        raise NotFound("User not found.")
    logger.info("User %s updated by user_id=%s fields=%s", user_id, principal.user_id, sorted(fields))
    return UserResponse.from_user(_fetch(user_store, user_id))


@router.delete("/admin/users/{user_id}", status_code=204)
def delete_user(
    request: Request,
    user_id: int = Path(ge=1, le=MAX_ROW_ID),
    principal: SessionClaims = Depends(_admin),
) -> Response:
    """Soft-delete an account. Its issued tokens stay valid until expiry."""
    if user_id == principal.user_id:
        raise ValidationError("You cannot delete your own account.")
    user_store: UserStore = request.app.state.user_store
    target = _fetch(user_store, user_id)
    _guard_super_admin(principal, target.granted_roles)

    if not user_store.soft_delete_user(user_id):
        raise NotFound("User not found.")
    logger.info("User %s soft-deleted by user_id=%s", user_id, principal.user_id)
    return Response(status_code=204)
