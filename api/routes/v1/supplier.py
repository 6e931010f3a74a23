"""
api/routes/v1/supplier.py -- Supplier authoring endpoints.

Routes:
  POST /api/v1/supplier/tours        -- create a draft product (201)
  GET  /api/v1/supplier/tours        -- the supplier's own products
  GET  /api/v1/supplier/tours/{id}   -- one own product
  PUT  /api/v1/supplier/tours/{id}   -- edit descriptive fields

Every read and write here is scoped to the caller's user id. Someone else's
product answers 404, the same as a missing one. Status changes go through
PUT /api/v1/tours/{id}/status, never through PUT here.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Request

from api.models import ProductCreate, ProductResponse, ProductUpdate
from auth.dependencies import require_role
from auth.models import Role, SessionClaims
from catalog.workflow import ActorContext, ProductWorkflow
from core.schema import MAX_ROW_ID

router = APIRouter()

_supplier = require_role(Role.supplier)


@router.post("/supplier/tours", response_model=ProductResponse, status_code=201)
def create_tour(
    request: Request,
    body: ProductCreate,
    principal: SessionClaims = Depends(_supplier),
) -> ProductResponse:
    workflow: ProductWorkflow = request.app.state.workflow
    product = workflow.create_product(ActorContext.from_claims(principal), **body.model_dump())
    return ProductResponse.from_product(product)


@router.get("/supplier/tours", response_model=list[ProductResponse])
def list_own_tours(request: Request, principal: SessionClaims = Depends(_supplier)) -> list[ProductResponse]:
    workflow: ProductWorkflow = request.app.state.workflow
    return [ProductResponse.from_product(p) for p in workflow.list_for_owner(ActorContext.from_claims(principal))]


@router.get("/supplier/tours/{product_id}", response_model=ProductResponse)
def get_own_tour(
    request: Request,
    product_id: int = Path(ge=1, le=MAX_ROW_ID),
    principal: SessionClaims = Depends(_supplier),
) -> ProductResponse:
    workflow: ProductWorkflow = request.app.state.workflow
    return ProductResponse.from_product(workflow.get_for_owner(product_id, ActorContext.from_claims(principal)))


@router.put("/supplier/tours/{product_id}", response_model=ProductResponse)
def edit_tour(
    request: Request,
    body: ProductUpdate,
    product_id: int = Path(ge=1, le=MAX_ROW_ID),
    principal: SessionClaims = Depends(_supplier),
) -> ProductResponse:
    """Update only the fields present in the body. Status is unaffected."""
    workflow: ProductWorkflow = request.app.state.workflow
    product = workflow.edit_product(product_id, ActorContext.from_claims(principal), **body.model_dump(exclude_none=True))
    return ProductResponse.from_product(product)
