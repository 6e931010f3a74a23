"""
tests/conftest.py -- Shared test fixtures for TourMarket.

This module provides:
  - make_engine_for(): initialized named shared-memory SQLite engine
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api: ApiContext with a TestClient, seeded accounts and their tokens
  - user_store / product_store / itinerary_store: fresh SQLAlchemy-backed
    stores per test

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

DEBUG and RATE_LIMIT_ENABLED must be set before any core/api import so
get_settings() auto-generates SECRET_KEY and the shared limiter starts
disabled.
"""

from __future__ import annotations

import itertools
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

# CRITICAL: Set env before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from api.main import app, wire_state
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import TokenService, hash_password
from catalog.store import ItineraryStore, ProductStore
from core.schema import init_schema, make_engine

TEST_SECRET = "test-secret-key-that-is-long-enough-0123456789"
TEST_PASSWORD = "password123"

_db_counter = itertools.count()


def make_engine_for(name: str) -> Engine:
    """Return an engine on a fresh, initialized named in-memory database."""
    url = f"sqlite:///file:tm_{name}_{next(_db_counter)}?mode=memory&cache=shared&uri=true"
    engine = make_engine(url)
    init_schema(engine)
    return engine


def seed_user(
    store: UserStore,
    email: str,
    roles: set[Role],
    active: Role | None = None,
    name: str | None = None,
    password: str = TEST_PASSWORD,
) -> int:
    ordered = sorted(roles, key=lambda r: r.value)
    return store.create_user(
        User(
            email=email,
            display_name=name or email.split("@")[0],
            granted_roles=frozenset(roles),
            active_role=active or ordered[0],
            password_hash=hash_password(password),
        )
    )


def _patch_lifespan(
    user_store: UserStore,
    product_store: ProductStore,
    itinerary_store: ItineraryStore,
    tokens: TokenService,
):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see
    isolated test DBs rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_state(app, user_store, product_store, itinerary_store, tokens)
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# API context
# ---------------------------------------------------------------------------


@dataclass
class ApiContext:
    """Everything an integration test needs: client, stores, ids and tokens."""

    client: TestClient
    user_store: UserStore
    product_store: ProductStore
    itinerary_store: ItineraryStore
    tokens: TokenService
    ids: dict[str, int] = field(default_factory=dict)
    bearer: dict[str, str] = field(default_factory=dict)

    def headers(self, who: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.bearer[who]}"}

    def token_for(self, user_id: int, email: str, role: Role) -> str:
        return self.tokens.issue(user_id, email, role)


# (key, email, roles, active role) seeded into every API database.
SEED_ACCOUNTS: tuple[tuple[str, str, set[Role], Role], ...] = (
    ("super", "root@tourmarket.test", {Role.super_admin}, Role.super_admin),
    ("admin", "admin@tourmarket.test", {Role.admin}, Role.admin),
    ("supplier_a", "supplier.a@tourmarket.test", {Role.supplier}, Role.supplier),
    ("supplier_b", "supplier.b@tourmarket.test", {Role.supplier}, Role.supplier),
    ("agency", "agency@tourmarket.test", {Role.agency}, Role.agency),
    ("multi", "multi@tourmarket.test", {Role.supplier, Role.agency}, Role.supplier),
)


@pytest.fixture(scope="module")
def api(request) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use an isolated in-memory database.
    One database per test module; tests create the products they need.
    """
    engine = make_engine_for(request.module.__name__.rsplit(".", 1)[-1])
    user_store = UserStore(engine)
    product_store = ProductStore(engine)
    itinerary_store = ItineraryStore(engine)
    tokens = TokenService(TEST_SECRET, expire_seconds=3600)

    ctx = ApiContext(
        client=None,  # type: ignore[arg-type]
        user_store=user_store,
        product_store=product_store,
        itinerary_store=itinerary_store,
        tokens=tokens,
    )
    for key, email, roles, active in SEED_ACCOUNTS:
        uid = seed_user(user_store, email, roles, active=active)
        ctx.ids[key] = uid
        ctx.bearer[key] = tokens.issue(uid, email, active)

    app.router.lifespan_context = _patch_lifespan(user_store, product_store, itinerary_store, tokens)

    with TestClient(app, raise_server_exceptions=True) as client:
        ctx.client = client
        yield ctx

    engine.dispose()


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    eng = make_engine_for("unit")
    yield eng
    eng.dispose()


@pytest.fixture
def user_store(engine: Engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture
def product_store(engine: Engine) -> ProductStore:
    return ProductStore(engine)


@pytest.fixture
def itinerary_store(engine: Engine) -> ItineraryStore:
    return ItineraryStore(engine)
