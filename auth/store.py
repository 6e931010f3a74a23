"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper (same as catalog/store.py).
UserStore is the repository; _row_to_user is the mapper. Route and service
code never touches SQL directly.

Roles:
  granted roles live only in user_roles; users.active_role holds the role the
  account last selected. Any write that changes granted roles re-checks
  active_role in the same transaction so it can never point at a role the
  account no longer holds.

Soft delete:
  is_deleted / deleted_at mark an account as gone. Every read in this module
  filters on is_deleted = 0; the row itself is never removed here.

Security:
  All queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import Role, User
from auth.roles import primary_role
from core.errors import Conflict, ValidationError
from core.schema import user_roles, users


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


_live = users.c.is_deleted == 0


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore(engine)
        uid = store.create_user(User(email="a@x.io", display_name="A",
                                     granted_roles=frozenset({Role.admin}),
                                     active_role=Role.admin,
                                     password_hash=hash_password("secret")))
        user = store.get_by_email("a@x.io")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a user and its granted roles. Returns the new ID.

        Raises ValidationError if the role invariants do not hold and Conflict
        if the email is already registered (including by a deleted account).
        """
        roles = frozenset(user.granted_roles)
        if not roles:
            raise ValidationError("At least one role is required.")
        if user.active_role not in roles:
            raise ValidationError("Active role must be one of the granted roles.")
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    users.insert().values(
                        email=user.email,
                        password_hash=user.password_hash,
                        display_name=user.display_name,
                        active_role=user.active_role.value,
                        created_at=_now_iso(),
                        is_deleted=0,
                    )
                )
                user_id = result.inserted_primary_key[0]
                conn.execute(user_roles.insert(), [{"user_id": user_id, "role": r.value} for r in roles])
        except IntegrityError as exc:
            raise Conflict("Email already registered.") from exc
        return user_id

    def update_user(
        self,
        user_id: int,
        *,
        display_name: Optional[str] = None,
        email: Optional[str] = None,
        password_hash: Optional[str] = None,
        roles: Optional[Iterable[Role]] = None,
    ) -> bool:
        """Update mutable fields on a live user.

        When roles is given the granted set is replaced and active_role is kept
        if still granted, otherwise reset to the most privileged new role --
        all inside one transaction.

        Returns False if user_id is missing or soft-deleted.
        """
        values: dict = {}
        if display_name is not None:
            values["display_name"] = display_name
        if email is not None:
            values["email"] = email
        if password_hash is not None:
            values["password_hash"] = password_hash

        new_roles: frozenset[Role] | None = None
        if roles is not None:
            new_roles = frozenset(roles)
            if not new_roles:
                raise ValidationError("At least one role is required.")
            role_values = [r.value for r in new_roles]
            values["active_role"] = case(
                (users.c.active_role.in_(role_values), users.c.active_role),
                else_=primary_role(new_roles).value,
            )

        if not values:
            return self.get_by_id(user_id) is not None

        try:
            with self.engine.begin() as conn:
                result = conn.execute(users.update().where((users.c.id == user_id) & _live).values(**values))
                if result.rowcount == 0:
                    return False
                if new_roles is not None:
                    conn.execute(user_roles.delete().where(user_roles.c.user_id == user_id))
                    conn.execute(user_roles.insert(), [{"user_id": user_id, "role": r.value} for r in new_roles])
        except IntegrityError as exc:
            raise Conflict("Email already registered.") from exc
        return True

    def set_active_role(self, user_id: int, role: Role) -> bool:
        """Switch active_role in one guarded statement.

        The WHERE clause requires the account to be live and the role to be
        present in user_roles, so a concurrent role revocation cannot slip in
        between a check and the write.
        """
        granted = (
            select(user_roles.c.user_id)
            .where((user_roles.c.user_id == user_id) & (user_roles.c.role == role.value))
            .exists()
        )
        with self.engine.begin() as conn:
            result = conn.execute(
                users.update().where((users.c.id == user_id) & _live & granted).values(active_role=role.value)
            )
        return result.rowcount > 0

    def soft_delete_user(self, user_id: int) -> bool:
        """Mark a live user as deleted. Returns False if missing or already deleted."""
        with self.engine.begin() as conn:
            result = conn.execute(
                users.update().where((users.c.id == user_id) & _live).values(is_deleted=1, deleted_at=_now_iso())
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def count_users(self) -> int:
        """Return the number of live accounts."""
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(users).where(_live)).scalar()
        return result or 0

    def get_by_id(self, user_id: int) -> Optional[User]:
        """Look up a live user by primary key. Returns None if not found."""
        return self._get_one(users.c.id == user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        """Look up a live user by exact email. Returns None if not found."""
        return self._get_one(users.c.email == email)

    def list_users(self) -> list[User]:
        """Return all live users, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(users.select().where(_live).order_by(users.c.id.desc())).fetchall()
            role_rows = conn.execute(
                select(user_roles.c.user_id, user_roles.c.role).where(
                    user_roles.c.user_id.in_([r.id for r in rows])
                )
            ).fetchall()
        grouped: dict[int, set[Role]] = defaultdict(set)
        for rr in role_rows:
            grouped[rr.user_id].add(Role(rr.role))
        return [_row_to_user(r, grouped[r.id]) for r in rows]

    def _get_one(self, condition) -> Optional[User]:
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(condition & _live)).fetchone()
            if row is None:
                return None
            roles = conn.execute(select(user_roles.c.role).where(user_roles.c.user_id == row.id)).scalars().all()
        return _row_to_user(row, {Role(r) for r in roles})


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row, roles: set[Role]) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        display_name=row.display_name,
        granted_roles=frozenset(roles),
        active_role=Role(row.active_role),
        created_at=row.created_at,
        is_deleted=bool(row.is_deleted),
        deleted_at=row.deleted_at,
    )
