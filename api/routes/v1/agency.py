"""
api/routes/v1/agency.py -- Published catalog for travel agencies.

Routes:
  GET /api/v1/agency/tours?destination=&category=   -- published products only
  GET /api/v1/agency/tours/{id}                      -- 404 unless published

Admins may browse the catalog too (role_admits lets super_admin through as well).
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, Request

from api.models import ProductResponse
from auth.dependencies import require_role
from auth.models import Role, SessionClaims
from catalog.workflow import ProductWorkflow
from core.schema import MAX_ROW_ID

router = APIRouter()

_catalog_reader = require_role(Role.agency, Role.admin)


@router.get("/agency/tours", response_model=list[ProductResponse])
def list_catalog(
    request: Request,
    destination: Optional[str] = Query(default=None, max_length=255),
    category: Optional[str] = Query(default=None, max_length=100),
    principal: SessionClaims = Depends(_catalog_reader),
) -> list[ProductResponse]:
    workflow: ProductWorkflow = request.app.state.workflow
    return [ProductResponse.from_product(p) for p in workflow.list_catalog(destination, category)]


@router.get("/agency/tours/{product_id}", response_model=ProductResponse)
def get_catalog_entry(
    request: Request,
    product_id: int = Path(ge=1, le=MAX_ROW_ID),
    principal: SessionClaims = Depends(_catalog_reader),
) -> ProductResponse:
    workflow: ProductWorkflow = request.app.state.workflow
    return ProductResponse.from_product(workflow.get_catalog_entry(product_id))
