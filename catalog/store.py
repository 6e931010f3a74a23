"""
catalog/store.py -- SQLAlchemy-backed persistence layer for products and itineraries.

Uses SQLAlchemy Core (not ORM) so catalog/models.py remains the authoritative
domain representation.

Pattern: Repository + Data Mapper. ProductStore and ItineraryStore are the
repositories; _row_to_product and _row_to_itinerary are the mappers.
Route handlers and the services never touch SQL directly.

Conditional writes:
  transition(), update_fields() and soft_delete() put every precondition
  (not deleted, expected from-state, owner) in the UPDATE's WHERE clause and
  report success through rowcount. There is no SELECT-then-UPDATE anywhere in
  this module, so two requests racing on the same product cannot both win.

Soft delete:
  Every read filters on is_deleted = 0 except get_row(), which exists for
  audit and tests that need to see the retained row.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = ProductStore(engine)
    pid = store.create_product(Product(owner_id=7, title="Kyoto", destination="Japan"))
    store.transition(pid, [ProductStatus.draft], ProductStatus.pending_review, None, owner_id=7)
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from catalog.models import Itinerary, Product, ProductStatus
from core.schema import itineraries, products, users

# Descriptive fields a supplier may edit. Status, ownership and deletion
# columns are deliberately absent.
EDITABLE_FIELDS: frozenset[str] = frozenset(
    {
        "title",
        "destination",
        "category",
        "description",
        "cover_image_url",
        "net_price",
        "duration",
        "has_shopping",
        "has_ticket",
        "ticket_price",
    }
)

_live = products.c.is_deleted == 0


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _with_owner_name():
    return select(products, users.c.display_name.label("owner_name")).select_from(
        products.join(users, products.c.owner_id == users.c.id)
    )


class ProductStore:
    """Repository for Product entities."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_product(self, product: Product) -> int:
        """Insert a new product and return its ID. Status is always stored as given."""
        now = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                products.insert().values(
                    owner_id=product.owner_id,
                    title=product.title,
                    destination=product.destination,
                    category=product.category,
                    description=product.description,
                    cover_image_url=product.cover_image_url,
                    net_price=product.net_price,
                    duration=product.duration,
                    has_shopping=product.has_shopping,
                    has_ticket=product.has_ticket,
                    ticket_price=product.ticket_price,
                    status=ProductStatus(product.status).value,
                    rejection_reason=product.rejection_reason,
                    created_at=now,
                    updated_at=now,
                    is_deleted=0,
                )
            )
        return result.inserted_primary_key[0]

    def transition(
        self,
        product_id: int,
        from_states: Iterable[ProductStatus],
        to_status: ProductStatus,
        rejection_reason: Optional[str],
        owner_id: Optional[int] = None,
    ) -> bool:
        """Move a live product from one of from_states to to_status.

        owner_id, when given, is added to the guard. rejection_reason is written
        unconditionally (None clears it). Returns True if exactly the guarded
        row was updated.
        """
        states = [ProductStatus(s).value for s in from_states]
        if not states:
            return False
        condition = (products.c.id == product_id) & _live & products.c.status.in_(states)
        if owner_id is not None:
            condition = condition & (products.c.owner_id == owner_id)
        with self.engine.begin() as conn:
            result = conn.execute(
                products.update()
                .where(condition)
                .values(status=to_status.value, rejection_reason=rejection_reason, updated_at=_now_iso())
            )
        return result.rowcount > 0

    def update_fields(self, product_id: int, owner_id: int, **fields) -> bool:
        """Update descriptive fields on a live product owned by owner_id.

        Only keys in EDITABLE_FIELDS are accepted. Unknown keys raise
        ValueError rather than being ignored.
        """
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown product fields: {sorted(unknown)!r}")
        condition = (products.c.id == product_id) & _live & (products.c.owner_id == owner_id)
        with self.engine.begin() as conn:
            result = conn.execute(products.update().where(condition).values(updated_at=_now_iso(), **fields))
        return result.rowcount > 0

    def soft_delete(self, product_id: int, owner_id: Optional[int] = None) -> bool:
        """Flag a live product as deleted. A second call returns False."""
        condition = (products.c.id == product_id) & _live
        if owner_id is not None:
            condition = condition & (products.c.owner_id == owner_id)
        now = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(products.update().where(condition).values(is_deleted=1, deleted_at=now))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_product(self, product_id: int, owner_id: Optional[int] = None) -> Optional[Product]:
        """Return a live product, optionally only if owned by owner_id."""
        condition = (products.c.id == product_id) & _live
        if owner_id is not None:
            condition = condition & (products.c.owner_id == owner_id)
        with self.engine.connect() as conn:
            row = conn.execute(_with_owner_name().where(condition)).fetchone()
        return _row_to_product(row) if row is not None else None

    def get_row(self, product_id: int) -> Optional[Product]:
        """Return the stored row regardless of soft-delete state."""
        with self.engine.connect() as conn:
            row = conn.execute(products.select().where(products.c.id == product_id)).fetchone()
        return _row_to_product(row) if row is not None else None

    def list_by_owner(self, owner_id: int) -> list[Product]:
        """Return the owner's live products, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                products.select().where((products.c.owner_id == owner_id) & _live).order_by(products.c.id.desc())
            ).fetchall()
        return [_row_to_product(r) for r in rows]

    def list_all(self, status: Optional[ProductStatus] = None) -> list[Product]:
        """Return every live product with owner names, optionally filtered by status."""
        query = _with_owner_name().where(_live)
        if status is not None:
            query = query.where(products.c.status == ProductStatus(status).value)
        with self.engine.connect() as conn:
            rows = conn.execute(query.order_by(products.c.id.desc())).fetchall()
        return [_row_to_product(r) for r in rows]

    def list_published(self, destination: Optional[str] = None, category: Optional[str] = None) -> list[Product]:
        """Return the public catalog: live, published products with optional filters."""
        query = _with_owner_name().where(_live & (products.c.status == ProductStatus.published.value))
        if destination:
            query = query.where(products.c.destination == destination)
        if category:
            query = query.where(products.c.category == category)
        with self.engine.connect() as conn:
            rows = conn.execute(query.order_by(products.c.id.desc())).fetchall()
        return [_row_to_product(r) for r in rows]

    def count_by_status(self, status: ProductStatus) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count())
                .select_from(products)
                .where(_live & (products.c.status == ProductStatus(status).value))
            ).scalar()
        return result or 0


class ItineraryStore:
    """Repository for an agency's itineraries.

    Every method takes owner_id and puts it in the WHERE clause, so another
    agency's itinerary is indistinguishable from a missing one.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_itinerary(self, itinerary: Itinerary) -> int:
        now = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                itineraries.insert().values(
                    owner_id=itinerary.owner_id,
                    name=itinerary.name,
                    timeline=itinerary.timeline,
                    created_at=now,
                    updated_at=now,
                )
            )
        return result.inserted_primary_key[0]

    def get_itinerary(self, itinerary_id: int, owner_id: int) -> Optional[Itinerary]:
        condition = (itineraries.c.id == itinerary_id) & (itineraries.c.owner_id == owner_id)
        with self.engine.connect() as conn:
            row = conn.execute(itineraries.select().where(condition)).fetchone()
        return _row_to_itinerary(row) if row is not None else None

    def list_itineraries(self, owner_id: int) -> list[Itinerary]:
        """Return the owner's itineraries, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                itineraries.select().where(itineraries.c.owner_id == owner_id).order_by(itineraries.c.id.desc())
            ).fetchall()
        return [_row_to_itinerary(r) for r in rows]

    def update_itinerary(
        self,
        itinerary_id: int,
        owner_id: int,
        *,
        name: Optional[str] = None,
        timeline: Optional[list[dict]] = None,
    ) -> bool:
        """Replace name and/or timeline. None leaves the column as it is."""
        values: dict = {"updated_at": _now_iso()}
        if name is not None:
            values["name"] = name
        if timeline is not None:
            values["timeline"] = timeline
        condition = (itineraries.c.id == itinerary_id) & (itineraries.c.owner_id == owner_id)
        with self.engine.begin() as conn:
            result = conn.execute(itineraries.update().where(condition).values(**values))
        return result.rowcount > 0

    def delete_itinerary(self, itinerary_id: int, owner_id: int) -> bool:
        condition = (itineraries.c.id == itinerary_id) & (itineraries.c.owner_id == owner_id)
        with self.engine.begin() as conn:
            result = conn.execute(itineraries.delete().where(condition))
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_product(row) -> Product:
    return Product(
        id=row.id,
        owner_id=row.owner_id,
        title=row.title,
        destination=row.destination,
        category=row.category or "",
        description=row.description or "",
        cover_image_url=row.cover_image_url,
        net_price=float(row.net_price),
        duration=float(row.duration),
        has_shopping=bool(row.has_shopping),
        has_ticket=bool(row.has_ticket),
        ticket_price=float(row.ticket_price) if row.ticket_price is not None else None,
        status=ProductStatus(row.status),
        rejection_reason=row.rejection_reason,
        owner_name=getattr(row, "owner_name", None),
        created_at=row.created_at,
        updated_at=row.updated_at,
        is_deleted=bool(row.is_deleted),
        deleted_at=row.deleted_at,
    )


def _row_to_itinerary(row) -> Itinerary:
    return Itinerary(
        id=row.id,
        owner_id=row.owner_id,
        name=row.name,
        timeline=list(row.timeline or []),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
