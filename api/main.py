"""
api/main.py -- FastAPI application entry point for TourMarket.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds the process-wide collaborators exactly once -- the Engine
(connection pool), the stores, the TokenService and the services that use
them -- and stores them on app.state. Nothing below reads module globals for
persistence; every route goes through app.state.

Startup refuses to continue if the database schema version does not match
(core.schema.check_schema).
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from starlette.exceptions import HTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.admin import router as admin_router
from api.routes.v1.agency import router as agency_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.itineraries import router as itineraries_router
from api.routes.v1.supplier import router as supplier_router
from api.routes.v1.tours import router as tours_router
from api.routes.v1.users import router as users_router
from auth.roles import RoleResolver
from auth.store import UserStore
from auth.tokens import TokenService
from catalog.itineraries import ItineraryPlanner
from catalog.store import ItineraryStore, ProductStore
from catalog.workflow import ProductWorkflow
from core.config import get_settings
from core.errors import AppError
from core.schema import check_schema, init_schema, make_engine

API_VERSION = "0.3.0"

_settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=_settings.log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("tourmarket.api")


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def wire_state(
    app: FastAPI,
    user_store: UserStore,
    product_store: ProductStore,
    itinerary_store: ItineraryStore,
    tokens: TokenService,
) -> None:
    """Attach stores and services to app.state.

    Shared by the real lifespan and the test lifespan so both build the same
    object graph.
    """
    app.state.user_store = user_store
    app.state.product_store = product_store
    app.state.tokens = tokens
    app.state.roles = RoleResolver(user_store, tokens)
    app.state.workflow = ProductWorkflow(product_store)
    app.state.planner = ItineraryPlanner(itinerary_store)


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown.

    Startup order matters:
      1. Engine first -- every store shares its pool.
      2. Schema check second -- fail before serving a single request.
      3. Stores and services last.
    """
    logger.info("TourMarket API starting up")
    engine = make_engine(_settings.database_url)
    if _settings.auto_init_schema:
        init_schema(engine)
    version = check_schema(engine)
    logger.info("Database schema version %d", version)

    app.state.engine = engine
    wire_state(
        app,
        UserStore(engine),
        ProductStore(engine),
        ItineraryStore(engine),
        TokenService(_settings.secret_key, expire_seconds=_settings.token_expire_seconds),
    )
    logger.info("Auth and workflow initialized (token window %ds)", _settings.token_expire_seconds)

    yield

    engine.dispose()
    logger.info("TourMarket API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="TourMarket API",
    description="B2B travel marketplace: supplier listings, admin review, agency catalog.",
    version=API_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(supplier_router, prefix="/api/v1", tags=["Supplier"])
app.include_router(admin_router, prefix="/api/v1", tags=["Admin Review"])
app.include_router(agency_router, prefix="/api/v1", tags=["Agency Catalog"])
app.include_router(itineraries_router, prefix="/api/v1", tags=["Itineraries"])
app.include_router(tours_router, prefix="/api/v1", tags=["Workflow"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Map a typed domain failure to its HTTP status.

    4xx failures are normal traffic and logged at DEBUG. Server-side failures
    are logged with the traceback and their message is not sent to the client.
    """
    if exc.status_code >= 500:
        logger.error(
            "Internal error on %s %s: %s",
            request.method,
            request.url.path,
            exc.message,
            exc_info=exc,
        )
        return _error_response(exc.status_code, "internal_error", "An unexpected error occurred.")
    logger.debug("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.code)
    response = _error_response(exc.status_code, exc.code, exc.message, exc.detail)
    if exc.status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error_response(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with structured error when request body or query params fail validation."""
    return _error_response(400, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for FastAPI/Starlette HTTP exceptions (404 route, 405, ...)."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is logged server-side only, never written to the
    response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is always reachable regardless of router
# registration state. No rate limit and no auth.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and database reachability."""
    database = "ok"
    try:
        with request.app.state.product_store.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Health check: database unreachable")
        database = "error"
    return HealthResponse(version=API_VERSION, components={"app": "ok", "database": database})
