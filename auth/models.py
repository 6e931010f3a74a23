"""
auth/models.py -- Domain types for identities, roles, and sessions.

Pattern: Data class (pure data container, near-zero logic). Mirrors the
approach in catalog/models.py -- dataclasses own domain shape; stores and
services do the work.

Layer rule: no imports from api/ or catalog/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    """Roles a user account can be granted. Values are the wire literals."""

    admin = "admin"
    supplier = "supplier"
    agency = "agency"
    super_admin = "super_admin"


# Most privileged first. Used to derive a display "primary" role and the
# fallback active role when an admin edit removes the current one.
ROLE_PRIORITY: tuple[Role, ...] = (Role.super_admin, Role.admin, Role.supplier, Role.agency)


@dataclass
class User:
    """A marketplace account.

    granted_roles is the single source of truth for what the account may do;
    active_role is the role the account last selected and must be one of
    granted_roles. There is no separate "primary role" column -- see
    auth.roles.primary_role() for the derived display value.

    password_hash is never serialized to API responses.
    """

    email: str
    display_name: str
    granted_roles: frozenset[Role]
    active_role: Role
    id: int | None = None
    password_hash: str | None = None
    created_at: str | None = None
    is_deleted: bool = False
    deleted_at: str | None = None


@dataclass(frozen=True)
class SessionClaims:
    """Verified contents of a bearer token.

    Frozen: a session is never edited in place. Switching role issues a new
    token with new claims.
    """

    user_id: int
    email: str
    active_role: Role
    issued_at: datetime
    expires_at: datetime


@dataclass
class Session:
    """Result of a successful login or role switch."""

    token: str
    user: User
    expires_in: int
    requires_role_selection: bool = False
    roles: list[Role] = field(default_factory=list)
