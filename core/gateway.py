"""
core/gateway.py -- Persistence contracts the auth and catalog services depend on.

The services (auth.roles.RoleResolver, catalog.workflow.ProductWorkflow,
catalog.itineraries.ItineraryPlanner) are written against these Protocols,
not against SQLAlchemy. auth/store.py and catalog/store.py are the
production implementations; tests/fakes.py provides in-memory ones.

Every mutating method is a single conditional write: the guard predicate and
the mutation happen in one statement, and the boolean result says whether a
row matched. Callers never read-then-write to enforce ownership or state.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Optional, Protocol

if TYPE_CHECKING:
    from auth.models import Role, User
    from catalog.models import Itinerary, Product, ProductStatus


class UserGateway(Protocol):
    def create_user(self, user: User) -> int:
        """Insert a user with its granted roles. Raises Conflict on duplicate email."""
        ...

    def get_by_id(self, user_id: int) -> Optional[User]:
        """Return a non-deleted user, or None."""
        ...

    def get_by_email(self, email: str) -> Optional[User]:
        """Return a non-deleted user, or None."""
        ...

    def list_users(self) -> list[User]: ...

    def update_user(
        self,
        user_id: int,
        *,
        display_name: Optional[str] = None,
        email: Optional[str] = None,
        password_hash: Optional[str] = None,
        roles: Optional[Iterable[Role]] = None,
    ) -> bool: ...

    def set_active_role(self, user_id: int, role: Role) -> bool:
        """Set active_role iff the user is not deleted and role is granted."""
        ...

    def soft_delete_user(self, user_id: int) -> bool: ...


class ProductGateway(Protocol):
    def create_product(self, product: Product) -> int: ...

    def get_product(self, product_id: int, owner_id: Optional[int] = None) -> Optional[Product]:
        """Return a non-deleted product, optionally restricted to an owner."""
        ...

    def get_row(self, product_id: int) -> Optional[Product]:
        """Return the stored row even when soft-deleted (audit/inspection)."""
        ...

    def list_by_owner(self, owner_id: int) -> list[Product]: ...

    def list_all(self, status: Optional[ProductStatus] = None) -> list[Product]: ...

    def list_published(self, destination: Optional[str] = None, category: Optional[str] = None) -> list[Product]: ...

    def count_by_status(self, status: ProductStatus) -> int: ...

    def transition(
        self,
        product_id: int,
        from_states: Iterable[ProductStatus],
        to_status: ProductStatus,
        rejection_reason: Optional[str],
        owner_id: Optional[int] = None,
    ) -> bool: ...

    def update_fields(self, product_id: int, owner_id: int, **fields) -> bool: ...

    def soft_delete(self, product_id: int, owner_id: Optional[int] = None) -> bool: ...


class ItineraryGateway(Protocol):
    """Every method is scoped by owner_id; a foreign row looks missing."""

    def create_itinerary(self, itinerary: Itinerary) -> int: ...

    def get_itinerary(self, itinerary_id: int, owner_id: int) -> Optional[Itinerary]: ...

    def list_itineraries(self, owner_id: int) -> list[Itinerary]: ...

    def update_itinerary(
        self,
        itinerary_id: int,
        owner_id: int,
        *,
        name: Optional[str] = None,
        timeline: Optional[list[dict]] = None,
    ) -> bool: ...

    def delete_itinerary(self, itinerary_id: int, owner_id: int) -> bool: ...
