"""
catalog/models.py -- Domain dataclasses for the TourMarket product catalog.

These are pure data containers with zero logic. Persistence lives in catalog/store.py.
The approval lifecycle is in catalog/workflow.py; trip planning is in
catalog/itineraries.py.

ProductStatus values are internal state identifiers. User-facing labels are a
presentation concern and live in api/models.py (STATUS_LABELS).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ProductStatus(str, Enum):
    draft = "draft"
    pending_review = "pending_review"
    published = "published"
    needs_revision = "needs_revision"


@dataclass
class Product:
    """A travel product ("tour") listed by a supplier.

    rejection_reason is set only while status is needs_revision; every other
    transition clears it.

    owner_name is filled in by reads that join the owner's account (admin
    list, public catalog); owner-scoped reads leave it None.

    id is None before the record is written to the database.
    """

    owner_id: int
    title: str
    destination: str
    category: str = ""
    description: str = ""
    cover_image_url: Optional[str] = None
    net_price: float = 0.0
    duration: float = 1.0  # days, one decimal (half-day tours)
    has_shopping: bool = False
    has_ticket: bool = False
    ticket_price: Optional[float] = None
    status: ProductStatus = ProductStatus.draft
    rejection_reason: Optional[str] = None
    id: Optional[int] = None
    owner_name: Optional[str] = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""
    is_deleted: bool = False
    deleted_at: Optional[str] = None


@dataclass
class Itinerary:
    """An agency's private trip plan.

    timeline is the JSON-ready list of days, each {"day_number", "items"}, as
    validated at the API boundary. The store persists it verbatim.
    """

    owner_id: int
    name: str
    timeline: list[dict] = field(default_factory=list)
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""
