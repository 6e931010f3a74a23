"""
api/routes/v1/tours.py -- Status changes and deletion shared by suppliers and admins.

Routes:
  PUT    /api/v1/tours/{id}/status   -- move a product through the lifecycle
  DELETE /api/v1/tours/{id}          -- soft delete (204)

The role guard for a status change depends on the requested target, so it is
checked in the handler with check_role() rather than as a route dependency:
  draft, pending_review        -> supplier (owner scope)
  published, needs_revision    -> admin    (super_admin admitted)
Whether the move is legal from the product's current status is decided by
catalog.workflow.TRANSITIONS alone.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Request, Response

from api.models import ProductResponse, StatusUpdate
from auth.dependencies import check_role, require_authenticated, require_role
from auth.models import Role, SessionClaims
from catalog.models import ProductStatus
from catalog.workflow import ActorContext, ProductWorkflow
from core.schema import MAX_ROW_ID

router = APIRouter()

_TARGET_ROLES: dict[ProductStatus, tuple[Role, ...]] = {
    ProductStatus.draft: (Role.supplier,),
    ProductStatus.pending_review: (Role.supplier,),
    ProductStatus.published: (Role.admin,),
    ProductStatus.needs_revision: (Role.admin,),
}

_supplier_or_admin = require_role(Role.supplier, Role.admin)


@router.put("/tours/{product_id}/status", response_model=ProductResponse)
def update_status(
    request: Request,
    body: StatusUpdate,
    product_id: int = Path(ge=1, le=MAX_ROW_ID),
    principal: SessionClaims = Depends(require_authenticated),
) -> ProductResponse:
    """Request a status change. Rejections (needs_revision) require non-empty feedback."""
    check_role(principal, *_TARGET_ROLES[body.status])
    workflow: ProductWorkflow = request.app.state.workflow
    product = workflow.update_status(product_id, body.status, ActorContext.from_claims(principal), body.feedback)
    return ProductResponse.from_product(product)


@router.delete("/tours/{product_id}", status_code=204)
def delete_tour(
    request: Request,
    product_id: int = Path(ge=1, le=MAX_ROW_ID),
    principal: SessionClaims = Depends(_supplier_or_admin),
) -> Response:
    """Soft-delete a product. Suppliers may delete only their own."""
    workflow: ProductWorkflow = request.app.state.workflow
    workflow.soft_delete(product_id, ActorContext.from_claims(principal))
    return Response(status_code=204)
