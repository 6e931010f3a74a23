"""
catalog/itineraries.py -- Agency trip planner.

An itinerary is a named, day-by-day plan an agency builds from catalog
entries. It is private to the agency that created it: every read and write is
keyed on the caller's user id, and another agency's itinerary answers exactly
like a missing one (OwnershipViolationOrNotFound, 404).

Unlike products there is no lifecycle and no soft delete. Deleting an
itinerary removes the row.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from catalog.models import Itinerary
from core.errors import OwnershipViolationOrNotFound, ValidationError

if TYPE_CHECKING:
    from core.gateway import ItineraryGateway

logger = logging.getLogger("tourmarket.itineraries")


class ItineraryPlanner:
    """Owner-scoped CRUD over an injected ItineraryGateway."""

    def __init__(self, itineraries: ItineraryGateway) -> None:
        self._itineraries = itineraries

    def create(self, owner_id: int, name: str, timeline: list[dict]) -> Itinerary:
        itinerary_id = self._itineraries.create_itinerary(Itinerary(owner_id=owner_id, name=name, timeline=timeline))
        logger.info("Itinerary %s created by user_id=%s", itinerary_id, owner_id)
        return self.get(itinerary_id, owner_id)

    def list_for_owner(self, owner_id: int) -> list[Itinerary]:
        return self._itineraries.list_itineraries(owner_id)

    def get(self, itinerary_id: int, owner_id: int) -> Itinerary:
        itinerary = self._itineraries.get_itinerary(itinerary_id, owner_id)
        if itinerary is None:
            raise OwnershipViolationOrNotFound("Itinerary not found.")
        return itinerary

    def update(
        self,
        itinerary_id: int,
        owner_id: int,
        name: Optional[str] = None,
        timeline: Optional[list[dict]] = None,
    ) -> Itinerary:
        if name is None and timeline is None:
            raise ValidationError("At least one field must be provided to update.")
        if not self._itineraries.update_itinerary(itinerary_id, owner_id, name=name, timeline=timeline):
            raise OwnershipViolationOrNotFound("Itinerary not found.")
        return self.get(itinerary_id, owner_id)

    def delete(self, itinerary_id: int, owner_id: int) -> None:
        if not self._itineraries.delete_itinerary(itinerary_id, owner_id):
            raise OwnershipViolationOrNotFound("Itinerary not found.")
        logger.info("Itinerary %s deleted by user_id=%s", itinerary_id, owner_id)
