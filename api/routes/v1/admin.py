"""
api/routes/v1/admin.py -- Review queue endpoints (admin only, super_admin admitted).

Routes:
  GET  /api/v1/admin/tours                  -- all live products, optional ?status=
  GET  /api/v1/admin/tours/pending          -- products awaiting review
  GET  /api/v1/admin/tours/pending/count    -- size of the review queue
  GET  /api/v1/admin/tours/{id}             -- one product, any owner
  POST /api/v1/admin/tours/batch-approve    -- approve many; per-id outcomes

Single approvals and rejections use PUT /api/v1/tours/{id}/status.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, Request

from api.models import (
    BatchApproveRequest,
    BatchApproveResponse,
    BatchOutcomeRow,
    CountResponse,
    ProductResponse,
)
from auth.dependencies import require_role
from auth.models import Role, SessionClaims
from catalog.models import ProductStatus
from catalog.workflow import ActorContext, ProductWorkflow
from core.schema import MAX_ROW_ID

router = APIRouter()

_admin = require_role(Role.admin)


@router.get("/admin/tours", response_model=list[ProductResponse])
def list_tours(
    request: Request,
    status: Optional[ProductStatus] = Query(default=None),
    principal: SessionClaims = Depends(_admin),
) -> list[ProductResponse]:
    workflow: ProductWorkflow = request.app.state.workflow
    return [ProductResponse.from_product(p) for p in workflow.list_for_admin(status)]


# Registered before /admin/tours/{product_id} so "pending" is not parsed as an id.
@router.get("/admin/tours/pending", response_model=list[ProductResponse])
def list_pending(request: Request, principal: SessionClaims = Depends(_admin)) -> list[ProductResponse]:
    workflow: ProductWorkflow = request.app.state.workflow
    return [ProductResponse.from_product(p) for p in workflow.list_for_admin(ProductStatus.pending_review)]


@router.get("/admin/tours/pending/count", response_model=CountResponse)
def pending_count(request: Request, principal: SessionClaims = Depends(_admin)) -> CountResponse:
    workflow: ProductWorkflow = request.app.state.workflow
    return CountResponse(count=workflow.pending_count())


@router.get("/admin/tours/{product_id}", response_model=ProductResponse)
def get_tour(
    request: Request,
    product_id: int = Path(ge=1, le=MAX_ROW_ID),
    principal: SessionClaims = Depends(_admin),
) -> ProductResponse:
    workflow: ProductWorkflow = request.app.state.workflow
    return ProductResponse.from_product(workflow.get_for_admin(product_id))


@router.post("/admin/tours/batch-approve", response_model=BatchApproveResponse)
def batch_approve(
    request: Request,
    body: BatchApproveRequest,
    principal: SessionClaims = Depends(_admin),
) -> BatchApproveResponse:
    """Approve each id independently.

    Always 200: a failed id is reported in results with its error code and
    leaves the others untouched. Clients must check failed > 0.
    """
    workflow: ProductWorkflow = request.app.state.workflow
    outcomes = workflow.batch_approve(body.ids, ActorContext.from_claims(principal))
    rows = [BatchOutcomeRow.from_outcome(o) for o in outcomes]
    succeeded = sum(1 for r in rows if r.ok)
    return BatchApproveResponse(results=rows, succeeded=succeeded, failed=len(rows) - succeeded)
