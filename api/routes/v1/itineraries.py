"""
api/routes/v1/itineraries.py -- Agency trip planner.

Routes:
  POST   /api/v1/agency/itineraries        -- create (201)
  GET    /api/v1/agency/itineraries        -- the caller's itineraries, newest first
  GET    /api/v1/agency/itineraries/{id}   -- one own itinerary
  PUT    /api/v1/agency/itineraries/{id}   -- rename and/or replace the timeline
  DELETE /api/v1/agency/itineraries/{id}   -- delete (204)

Agency role only. Another agency's itinerary answers 404, the same as a
missing one.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Request, Response

from api.models import ItineraryCreate, ItineraryResponse, ItineraryUpdate
from auth.dependencies import require_role
from auth.models import Role, SessionClaims
from catalog.itineraries import ItineraryPlanner
from core.schema import MAX_ROW_ID

router = APIRouter()

_agency = require_role(Role.agency)


@router.post("/agency/itineraries", response_model=ItineraryResponse, status_code=201)
def create_itinerary(
    request: Request,
    body: ItineraryCreate,
    principal: SessionClaims = Depends(_agency),
) -> ItineraryResponse:
    planner: ItineraryPlanner = request.app.state.planner
    itinerary = planner.create(principal.user_id, body.name, body.timeline_data())
    return ItineraryResponse.from_itinerary(itinerary)


@router.get("/agency/itineraries", response_model=list[ItineraryResponse])
def list_itineraries(request: Request, principal: SessionClaims = Depends(_agency)) -> list[ItineraryResponse]:
    planner: ItineraryPlanner = request.app.state.planner
    return [ItineraryResponse.from_itinerary(i) for i in planner.list_for_owner(principal.user_id)]


@router.get("/agency/itineraries/{itinerary_id}", response_model=ItineraryResponse)
def get_itinerary(
    request: Request,
    itinerary_id: int = Path(ge=1, le=MAX_ROW_ID),
    principal: SessionClaims = Depends(_agency),
) -> ItineraryResponse:
    planner: ItineraryPlanner = request.app.state.planner
    return ItineraryResponse.from_itinerary(planner.get(itinerary_id, principal.user_id))


@router.put("/agency/itineraries/{itinerary_id}", response_model=ItineraryResponse)
def update_itinerary(
    request: Request,
    body: ItineraryUpdate,
    itinerary_id: int = Path(ge=1, le=MAX_ROW_ID),
    principal: SessionClaims = Depends(_agency),
) -> ItineraryResponse:
    """Only fields present in the body change. An empty body is 400."""
    planner: ItineraryPlanner = request.app.state.planner
    itinerary = planner.update(itinerary_id, principal.user_id, name=body.name, timeline=body.timeline_data())
    return ItineraryResponse.from_itinerary(itinerary)


@router.delete("/agency/itineraries/{itinerary_id}", status_code=204)
def delete_itinerary(
    request: Request,
    itinerary_id: int = Path(ge=1, le=MAX_ROW_ID),
    principal: SessionClaims = Depends(_agency),
) -> Response:
    planner: ItineraryPlanner = request.app.state.planner
    planner.delete(itinerary_id, principal.user_id)
    return Response(status_code=204)
