"""
API request and response models for TourMarket REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
catalog/models.py, which own the internal domain representation. Route
handlers map between the two.

Status labels:
  ProductStatus values (draft, pending_review, ...) are the wire identifiers
  and round-trip exactly. STATUS_LABELS holds the human-facing text the
  front-end shows; it is emitted alongside as status_label and never parsed.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import Role, Session, User
from auth.roles import primary_role, sorted_roles
from auth.tokens import MAX_PASSWORD_BYTES
from catalog.models import Itinerary, Product, ProductStatus
from catalog.workflow import BatchOutcome
from core.schema import MAX_ROW_ID

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"

RowId = Annotated[int, Field(ge=1, le=MAX_ROW_ID)]

STATUS_LABELS: dict[ProductStatus, str] = {
    ProductStatus.draft: "草稿",
    ProductStatus.pending_review: "待審核",
    ProductStatus.published: "已發佈",
    ProductStatus.needs_revision: "需要修改",
}


def _password_fits_bcrypt(value: Optional[str]) -> Optional[str]:
    if value is not None and len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded")
    return value


# ---------------------------------------------------------------------------
# Shared envelopes
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error code plus a human message."""

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Every non-2xx response body has this shape."""

    error: ErrorDetail


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


class CountResponse(BaseModel):
    count: int


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class SelectRoleRequest(BaseModel):
    role: Role


class UserSummary(BaseModel):
    """Account as returned by login and select-role."""

    id: int
    email: str
    name: str
    role: Role  # active role
    roles: list[Role]
    primary_role: Role

    @classmethod
    def from_user(cls, user: User) -> "UserSummary":
        return cls(
            id=user.id,
            email=user.email,
            name=user.display_name,
            role=user.active_role,
            roles=sorted_roles(user.granted_roles),
            primary_role=primary_role(user.granted_roles),
        )


class SessionResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_in: int
    requires_role_selection: bool
    user: UserSummary

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        return cls(
            token=session.token,
            expires_in=session.expires_in,
            requires_role_selection=session.requires_role_selection,
            user=UserSummary.from_user(session.user),
        )


class MeResponse(BaseModel):
    user_id: int
    email: str
    active_role: Role
    roles: list[Role]
    requires_role_selection: bool
    issued_at: str
    expires_at: str


# ---------------------------------------------------------------------------
# User management
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Request body for POST /api/v1/admin/users.

    active_role defaults to the most privileged granted role.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=8, max_length=72)
    name: str = Field(min_length=1, max_length=255)
    roles: list[Role] = Field(min_length=1, max_length=4)
    active_role: Optional[Role] = None

    @field_validator("roles")
    @classmethod
    def dedupe_roles(cls, values: list[Role]) -> list[Role]:
        return sorted_roles(values)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: Optional[str]) -> Optional[str]:
        return _password_fits_bcrypt(value)


class UserUpdate(BaseModel):
    """Request body for PUT /api/v1/admin/users/{id}. At least one field is required."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, pattern=EMAIL_PATTERN, max_length=255)
    password: Optional[str] = Field(default=None, min_length=8, max_length=72)
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    roles: Optional[list[Role]] = Field(default=None, min_length=1, max_length=4)

    @field_validator("roles")
    @classmethod
    def dedupe_roles(cls, values: Optional[list[Role]]) -> Optional[list[Role]]:
        return sorted_roles(values) if values is not None else None

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: Optional[str]) -> Optional[str]:
        return _password_fits_bcrypt(value)


class UserResponse(BaseModel):
    id: int
    email: str
    name: str
    roles: list[Role]
    active_role: Role
    primary_role: Role
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            name=user.display_name,
            roles=sorted_roles(user.granted_roles),
            active_role=user.active_role,
            primary_role=primary_role(user.granted_roles),
            created_at=user.created_at or "",
        )


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


class ProductCreate(BaseModel):
    """Request body for POST /api/v1/supplier/tours. Products always start as draft.

    duration is in days and kept to one decimal place, so half-day tours are 0.5.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=255)
    destination: str = Field(min_length=1, max_length=255)
    category: str = Field(default="", max_length=100)
    description: str = Field(default="", max_length=20000)
    cover_image_url: Optional[str] = Field(default=None, max_length=2048)
    net_price: float = Field(ge=0)
    duration: float = Field(default=1.0, ge=0.1, le=999.9)
    has_shopping: bool = False
    has_ticket: bool = False
    ticket_price: Optional[float] = Field(default=None, ge=0)

    @field_validator("duration")
    @classmethod
    def one_decimal(cls, value: float) -> float:
        return round(value, 1)


class ProductUpdate(BaseModel):
    """Request body for PUT /api/v1/supplier/tours/{id}. Only supplied fields change."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    destination: Optional[str] = Field(default=None, min_length=1, max_length=255)
    category: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=20000)
    cover_image_url: Optional[str] = Field(default=None, max_length=2048)
    net_price: Optional[float] = Field(default=None, ge=0)
    duration: Optional[float] = Field(default=None, ge=0.1, le=999.9)
    has_shopping: Optional[bool] = None
    has_ticket: Optional[bool] = None
    ticket_price: Optional[float] = Field(default=None, ge=0)

    @field_validator("duration")
    @classmethod
    def one_decimal(cls, value: Optional[float]) -> Optional[float]:
        return round(value, 1) if value is not None else None


class StatusUpdate(BaseModel):
    """Request body for PUT /api/v1/tours/{id}/status.

    feedback is only read when status is needs_revision, where it is required.
    """

    status: ProductStatus
    feedback: Optional[str] = Field(default=None, max_length=2000)


class ProductResponse(BaseModel):
    id: int
    owner_id: int
    owner_name: Optional[str] = None
    title: str
    destination: str
    category: str
    description: str
    cover_image_url: Optional[str]
    net_price: float
    duration: float
    has_shopping: bool
    has_ticket: bool
    ticket_price: Optional[float]
    status: ProductStatus
    status_label: str
    rejection_reason: Optional[str]
    created_at: str
    updated_at: str

    @classmethod
    def from_product(cls, product: Product) -> "ProductResponse":
        return cls(
            id=product.id,
            owner_id=product.owner_id,
            owner_name=product.owner_name,
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
            status=product.status,
            status_label=STATUS_LABELS[product.status],
            rejection_reason=product.rejection_reason,
            created_at=product.created_at,
            updated_at=product.updated_at,
        )


class BatchApproveRequest(BaseModel):
    ids: list[RowId] = Field(min_length=1, max_length=100)


class BatchOutcomeRow(BaseModel):
    product_id: int
    ok: bool
    status: Optional[ProductStatus] = None
    error_code: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def from_outcome(cls, outcome: BatchOutcome) -> "BatchOutcomeRow":
        return cls(
            product_id=outcome.product_id,
            ok=outcome.ok,
            status=outcome.status,
            error_code=outcome.error_code,
            message=outcome.message,
        )


class BatchApproveResponse(BaseModel):
    """Per-id outcomes. Callers must check failed > 0 for partial success."""

    results: list[BatchOutcomeRow]
    succeeded: int
    failed: int


# ---------------------------------------------------------------------------
# Itineraries
# ---------------------------------------------------------------------------


class TimelineItem(BaseModel):
    """One stop in a day. id is the client's reference to the catalog entry or landmark."""

    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(min_length=1, max_length=64)
    title: str = Field(min_length=1, max_length=255)
    notes: Optional[str] = Field(default=None, max_length=2000)


class TimelineDay(BaseModel):
    day_number: int = Field(ge=1, le=365)
    items: list[TimelineItem] = Field(default_factory=list, max_length=100)


def _days_in_order(days: Optional[list[TimelineDay]]) -> Optional[list[TimelineDay]]:
    if days is None:
        return None
    numbers = [d.day_number for d in days]
    if len(set(numbers)) != len(numbers):
        raise ValueError("day_number values must be unique")
    return sorted(days, key=lambda d: d.day_number)


class ItineraryCreate(BaseModel):
    """Request body for POST /api/v1/agency/itineraries. Days are stored sorted by day_number."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    timeline: list[TimelineDay] = Field(max_length=365)

    @field_validator("timeline")
    @classmethod
    def unique_days(cls, value: list[TimelineDay]) -> list[TimelineDay]:
        return _days_in_order(value)

    def timeline_data(self) -> list[dict]:
        return [d.model_dump() for d in self.timeline]


class ItineraryUpdate(BaseModel):
    """Request body for PUT /api/v1/agency/itineraries/{id}. A supplied timeline replaces the old one."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    timeline: Optional[list[TimelineDay]] = Field(default=None, max_length=365)

    @field_validator("timeline")
    @classmethod
    def unique_days(cls, value: Optional[list[TimelineDay]]) -> Optional[list[TimelineDay]]:
        return _days_in_order(value)

    def timeline_data(self) -> Optional[list[dict]]:
        return [d.model_dump() for d in self.timeline] if self.timeline is not None else None


class ItineraryResponse(BaseModel):
    id: int
    name: str
    timeline: list[TimelineDay]
    created_at: str
    updated_at: str

    @classmethod
    def from_itinerary(cls, itinerary: Itinerary) -> "ItineraryResponse":
        return cls(
            id=itinerary.id,
            name=itinerary.name,
            timeline=[TimelineDay.model_validate(d) for d in itinerary.timeline],
            created_at=itinerary.created_at,
            updated_at=itinerary.updated_at,
        )
