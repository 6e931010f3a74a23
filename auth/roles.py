"""
auth/roles.py -- Role guard predicate and active-role switching.

role_admits() is the only place the super_admin-implies-admin rule lives.
auth/dependencies.py calls it for every guarded route; nothing else compares
role strings.

RoleResolver owns the two flows that mint tokens: password login and
select-role. A role switch never revokes the previous token -- it stays valid
until its own expiry, consistent with the stateless session model.

Layer rule: no imports from api/ or catalog/. Persistence is reached only
through the UserGateway protocol passed to the constructor.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from auth.models import ROLE_PRIORITY, Role, Session
from auth.tokens import authenticate_user
from core.errors import InvalidCredentials, NotFound, RoleNotGranted

if TYPE_CHECKING:
    from auth.models import User
    from auth.tokens import TokenService
    from core.gateway import UserGateway

logger = logging.getLogger("tourmarket.auth")


def role_admits(role: Role, allowed: Iterable[Role]) -> bool:
    """Return True if a session acting as role may pass a guard for allowed.

    super_admin passes any guard that admits admin. The reverse never holds:
    admin does not pass a super_admin-only guard.
    """
    allowed = frozenset(allowed)
    if role in allowed:
        return True
    return role == Role.super_admin and Role.admin in allowed


def primary_role(roles: Iterable[Role]) -> Role:
    """Return the most privileged role in roles (display and fallback value)."""
    granted = frozenset(roles)
    for role in ROLE_PRIORITY:
        if role in granted:
            return role
    raise ValueError("primary_role() requires at least one role")


def sorted_roles(roles: Iterable[Role]) -> list[Role]:
    """Return roles most-privileged first, for stable API output."""
    granted = frozenset(roles)
    return [r for r in ROLE_PRIORITY if r in granted]


class RoleResolver:
    """Login and active-role switching over an injected UserGateway."""

    def __init__(self, users: UserGateway, tokens: TokenService) -> None:
        self._users = users
        self._tokens = tokens

    def login(self, email: str, password: str) -> Session:
        """Authenticate and issue a token for the account's active role.

        Single-role accounts always act as their only role. Multi-role accounts
        get their stored active role and requires_role_selection=True so the
        client can offer the role picker.
        """
        user = authenticate_user(self._users, email, password)
        if user is None:
            raise InvalidCredentials()

        if len(user.granted_roles) == 1:
            (sole,) = user.granted_roles
            user.active_role = sole
        elif user.active_role not in user.granted_roles:
            # Cannot happen through UserStore; keep the invariant for any gateway.
            user.active_role = primary_role(user.granted_roles)

        logger.info("Login user_id=%s active_role=%s", user.id, user.active_role.value)
        return self._session_for(user, requires_role_selection=self.requires_role_selection(user))

    def select_active_role(self, user_id: int, requested_role: Role) -> Session:
        """Switch the account's active role and return a freshly issued token.

        Raises:
            NotFound: the account no longer exists (or was soft-deleted).
            RoleNotGranted: requested_role is not one of the granted roles.
                Stored state is untouched.
        """
        user = self._users.get_by_id(user_id)
        if user is None:
            raise NotFound("User not found.")
        if requested_role not in user.granted_roles:
            raise RoleNotGranted()

        # Guarded write: a revocation racing with this request makes it fail
        # rather than set an ungranted role.
        if not self._users.set_active_role(user_id, requested_role):
            raise RoleNotGranted()

        user.active_role = requested_role
        logger.info("Role switch user_id=%s active_role=%s", user_id, requested_role.value)
        return self._session_for(user, requires_role_selection=False)

    def requires_role_selection(self, user: User) -> bool:
        """True when the account holds more than one role and the client should offer a picker."""
        return len(user.granted_roles) > 1

    def _session_for(self, user: User, requires_role_selection: bool) -> Session:
        token = self._tokens.issue(user.id, user.email, user.active_role)
        return Session(
            token=token,
            user=user,
            expires_in=self._tokens.expire_seconds,
            requires_role_selection=requires_role_selection,
            roles=sorted_roles(user.granted_roles),
        )
