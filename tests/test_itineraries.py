"""
tests/test_itineraries.py -- Agency trip planner: store, service and routes.

Coverage:
  - ItineraryStore owner-scoped reads and writes, hard delete
  - ItineraryPlanner error mapping (404 for foreign/missing, 400 for empty update)
  - /api/v1/agency/itineraries CRUD, role gate and ownership isolation
"""

from __future__ import annotations

import pytest

from auth.models import Role
from catalog.itineraries import ItineraryPlanner
from catalog.models import Itinerary
from catalog.store import ItineraryStore
from conftest import ApiContext, seed_user
from core.errors import OwnershipViolationOrNotFound, ValidationError

TIMELINE = [
    {"day_number": 1, "items": [{"id": "p-12", "title": "Jiufen Old Street", "notes": "Arrive before noon"}]},
    {"day_number": 2, "items": [{"id": "p-40", "title": "Taroko Gorge", "notes": None}]},
]


@pytest.fixture
def agencies(user_store) -> tuple[int, int]:
    return (
        seed_user(user_store, "north@x.io", {Role.agency}),
        seed_user(user_store, "south@x.io", {Role.agency}),
    )


@pytest.fixture
def planner(itinerary_store: ItineraryStore) -> ItineraryPlanner:
    return ItineraryPlanner(itinerary_store)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class TestItineraryStore:
    def test_create_and_get(self, itinerary_store: ItineraryStore, agencies) -> None:
        a, b = agencies
        iid = itinerary_store.create_itinerary(Itinerary(owner_id=a, name="Taiwan East Coast", timeline=TIMELINE))
        stored = itinerary_store.get_itinerary(iid, a)
        assert stored.name == "Taiwan East Coast"
        assert stored.timeline == TIMELINE
        assert stored.created_at and stored.updated_at
        assert itinerary_store.get_itinerary(iid, b) is None

    def test_list_is_owner_scoped_newest_first(self, itinerary_store: ItineraryStore, agencies) -> None:
        a, b = agencies
        first = itinerary_store.create_itinerary(Itinerary(owner_id=a, name="One"))
        second = itinerary_store.create_itinerary(Itinerary(owner_id=a, name="Two"))
        itinerary_store.create_itinerary(Itinerary(owner_id=b, name="Theirs"))
        assert [i.id for i in itinerary_store.list_itineraries(a)] == [second, first]

    def test_update_is_owner_guarded(self, itinerary_store: ItineraryStore, agencies) -> None:
        a, b = agencies
        iid = itinerary_store.create_itinerary(Itinerary(owner_id=a, name="Draft plan", timeline=TIMELINE))
        assert not itinerary_store.update_itinerary(iid, b, name="Hijacked")
        assert itinerary_store.update_itinerary(iid, a, name="Final plan")
        stored = itinerary_store.get_itinerary(iid, a)
        assert stored.name == "Final plan"
        assert stored.timeline == TIMELINE

    def test_delete_removes_row(self, itinerary_store: ItineraryStore, agencies) -> None:
        a, b = agencies
        iid = itinerary_store.create_itinerary(Itinerary(owner_id=a, name="Short trip"))
        assert not itinerary_store.delete_itinerary(iid, b)
        assert itinerary_store.delete_itinerary(iid, a)
        assert not itinerary_store.delete_itinerary(iid, a)
        assert itinerary_store.get_itinerary(iid, a) is None


# ---------------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------------


class TestItineraryPlanner:
    def test_foreign_itinerary_looks_missing(self, planner: ItineraryPlanner, agencies) -> None:
        a, b = agencies
        created = planner.create(a, "Kyoto", TIMELINE)
        for call in (
            lambda: planner.get(created.id, b),
            lambda: planner.update(created.id, b, name="Mine now"),
            lambda: planner.delete(created.id, b),
        ):
            with pytest.raises(OwnershipViolationOrNotFound):
                call()
        assert planner.get(created.id, a).name == "Kyoto"

    def test_update_requires_a_field(self, planner: ItineraryPlanner, agencies) -> None:
        a, _ = agencies
        created = planner.create(a, "Kyoto", [])
        with pytest.raises(ValidationError):
            planner.update(created.id, a)

    def test_replace_timeline(self, planner: ItineraryPlanner, agencies) -> None:
        a, _ = agencies
        created = planner.create(a, "Kyoto", TIMELINE)
        updated = planner.update(created.id, a, timeline=TIMELINE[:1])
        assert updated.timeline == TIMELINE[:1]
        assert updated.name == "Kyoto"


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

BASE = "/api/v1/agency/itineraries"


def _create(api: ApiContext, who: str = "agency", **overrides) -> dict:
    body = {"name": "Hokkaido Winter", "timeline": TIMELINE}
    body.update(overrides)
    resp = api.client.post(BASE, json=body, headers=api.headers(who))
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.fixture(scope="module")
def other_agency(api: ApiContext) -> dict[str, str]:
    uid = seed_user(api.user_store, "agency.two@tourmarket.test", {Role.agency})
    return {"Authorization": f"Bearer {api.token_for(uid, 'agency.two@tourmarket.test', Role.agency)}"}


class TestItineraryRoutes:
    def test_crud(self, api: ApiContext) -> None:
        created = _create(api)
        assert created["name"] == "Hokkaido Winter"
        assert [d["day_number"] for d in created["timeline"]] == [1, 2]

        listed = api.client.get(BASE, headers=api.headers("agency")).json()
        assert created["id"] in {i["id"] for i in listed}

        resp = api.client.put(f"{BASE}/{created['id']}", json={"name": "Hokkaido Snow"}, headers=api.headers("agency"))
        assert resp.status_code == 200, resp.text
        assert resp.json()["name"] == "Hokkaido Snow"
        assert resp.json()["timeline"] == created["timeline"]

        assert api.client.delete(f"{BASE}/{created['id']}", headers=api.headers("agency")).status_code == 204
        assert api.client.get(f"{BASE}/{created['id']}", headers=api.headers("agency")).status_code == 404

    def test_days_are_sorted(self, api: ApiContext) -> None:
        created = _create(api, timeline=[TIMELINE[1], TIMELINE[0]])
        assert [d["day_number"] for d in created["timeline"]] == [1, 2]

    def test_other_agency_gets_404(self, api: ApiContext, other_agency: dict[str, str]) -> None:
        created = _create(api)
        path = f"{BASE}/{created['id']}"
        assert api.client.get(path, headers=other_agency).status_code == 404
        assert api.client.put(path, json={"name": "Mine"}, headers=other_agency).status_code == 404
        assert api.client.delete(path, headers=other_agency).status_code == 404
        assert created["id"] not in {i["id"] for i in api.client.get(BASE, headers=other_agency).json()}
        assert api.client.get(path, headers=api.headers("agency")).json()["name"] == "Hokkaido Winter"

    @pytest.mark.parametrize("who", ["supplier_a", "admin", "super"])
    def test_agency_only(self, api: ApiContext, who: str) -> None:
        assert api.client.get(BASE, headers=api.headers(who)).status_code == 403

    @pytest.mark.parametrize(
        "body",
        [
            {"timeline": []},
            {"name": "", "timeline": []},
            {"name": "Dup days", "timeline": [TIMELINE[0], TIMELINE[0]]},
            {"name": "Day zero", "timeline": [{"day_number": 0, "items": []}]},
            {"name": "No title", "timeline": [{"day_number": 1, "items": [{"id": "x"}]}]},
        ],
    )
    def test_create_validation(self, api: ApiContext, body: dict) -> None:
        resp = api.client.post(BASE, json=body, headers=api.headers("agency"))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_empty_update(self, api: ApiContext) -> None:
        created = _create(api)
        assert api.client.put(f"{BASE}/{created['id']}", json={}, headers=api.headers("agency")).status_code == 400
