"""
catalog/workflow.py -- Product approval lifecycle.

TRANSITIONS below is the only place product status changes are defined. Route
handlers pass a target status (or an action name) and an ActorContext; they
never compare status strings themselves.

    draft           --submit-->    pending_review   (owner)
    pending_review  --withdraw-->  draft            (owner)
    pending_review  --approve-->   published        (admin)
    pending_review  --reject-->    needs_revision   (admin, feedback required)
    needs_revision  --resubmit-->  pending_review   (owner)

Every status change is one guarded UPDATE (see ProductStore.transition). When
it matches no row, a read classifies the failure:
  - product not visible to this actor (missing, deleted, someone else's)
      -> OwnershipViolationOrNotFound (404)
  - product visible but in a state the table does not allow
      -> InvalidTransition (400)
The classification read happens after the write has already failed, so it
cannot cause a lost update. Nothing is written on any failure path.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

from auth.models import Role, SessionClaims
from auth.roles import role_admits
from catalog.models import Product, ProductStatus
from core.errors import AccessDenied, AppError, InvalidTransition, OwnershipViolationOrNotFound, ValidationError

if TYPE_CHECKING:
    from core.gateway import ProductGateway

logger = logging.getLogger("tourmarket.workflow")


class Action(str, Enum):
    submit = "submit"
    withdraw = "withdraw"
    approve = "approve"
    reject = "reject"
    resubmit = "resubmit"


class ActorScope(str, Enum):
    owner = "owner"
    admin = "admin"


@dataclass(frozen=True)
class Transition:
    action: Action
    source: ProductStatus
    target: ProductStatus
    scope: ActorScope
    requires_feedback: bool = False


TRANSITIONS: tuple[Transition, ...] = (
    Transition(Action.submit, ProductStatus.draft, ProductStatus.pending_review, ActorScope.owner),
    Transition(Action.withdraw, ProductStatus.pending_review, ProductStatus.draft, ActorScope.owner),
    Transition(Action.approve, ProductStatus.pending_review, ProductStatus.published, ActorScope.admin),
    Transition(
        Action.reject,
        ProductStatus.pending_review,
        ProductStatus.needs_revision,
        ActorScope.admin,
        requires_feedback=True,
    ),
    Transition(Action.resubmit, ProductStatus.needs_revision, ProductStatus.pending_review, ActorScope.owner),
)

_BY_ACTION: dict[Action, Transition] = {t.action: t for t in TRANSITIONS}


def transitions_into(target: ProductStatus, scope: ActorScope) -> list[Transition]:
    """Return the table rows an actor with scope may use to reach target."""
    return [t for t in TRANSITIONS if t.target == target and t.scope == scope]


def find_transition(source: ProductStatus, action: Action) -> Optional[Transition]:
    """Return the table row for (source, action), or None if the pair is not allowed."""
    t = _BY_ACTION.get(action)
    if t is None or t.source != source:
        return None
    return t


@dataclass(frozen=True)
class ActorContext:
    """Who is acting, and therefore which ownership predicate applies."""

    user_id: int
    role: Role

    @classmethod
    def from_claims(cls, claims: SessionClaims) -> "ActorContext":
        return cls(user_id=claims.user_id, role=claims.active_role)

    @property
    def scope(self) -> ActorScope:
        if role_admits(self.role, {Role.admin}):
            return ActorScope.admin
        if self.role == Role.supplier:
            return ActorScope.owner
        raise AccessDenied()

    @property
    def owner_filter(self) -> Optional[int]:
        """owner_id to add to write guards: the actor's id for owners, None for admins."""
        return self.user_id if self.scope == ActorScope.owner else None


@dataclass
class BatchOutcome:
    """Per-id result of batch_approve(). ok=False carries the failure code."""

    product_id: int
    ok: bool
    status: Optional[ProductStatus] = None
    error_code: Optional[str] = None
    message: Optional[str] = None


def _clean_feedback(feedback: Optional[str]) -> str:
    text = (feedback or "").strip()
    if not text:
        raise ValidationError("Feedback is required when requesting revisions.")
    return text


class ProductWorkflow:
    """Lifecycle operations on products, over an injected ProductGateway."""

    def __init__(self, products: ProductGateway) -> None:
        self._products = products

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    def update_status(
        self,
        product_id: int,
        target_status: ProductStatus,
        actor: ActorContext,
        feedback: Optional[str] = None,
    ) -> Product:
        """Move a product to target_status if the table allows it for this actor."""
        target_status = ProductStatus(target_status)
        candidates = transitions_into(target_status, actor.scope)
        if not candidates:
            raise InvalidTransition(f"A {actor.scope.value} cannot move a product to {target_status.value}.")
        return self._run(product_id, candidates, actor, feedback)

    def apply(
        self,
        product_id: int,
        action: Action,
        actor: ActorContext,
        feedback: Optional[str] = None,
    ) -> Product:
        """Perform one named action from the transition table."""
        transition = _BY_ACTION[Action(action)]
        if transition.scope != actor.scope:
            raise InvalidTransition(f"A {actor.scope.value} cannot {transition.action.value} a product.")
        return self._run(product_id, [transition], actor, feedback)

    def _run(
        self,
        product_id: int,
        candidates: list[Transition],
        actor: ActorContext,
        feedback: Optional[str],
    ) -> Product:
        target = candidates[0].target
        reason = _clean_feedback(feedback) if any(t.requires_feedback for t in candidates) else None
        owner_id = actor.owner_filter

        moved = self._products.transition(
            product_id,
            [t.source for t in candidates],
            target,
            reason,
            owner_id=owner_id,
        )
        if not moved:
            visible = self._products.get_product(product_id, owner_id=owner_id)
            if visible is None:
                raise OwnershipViolationOrNotFound("Product not found.")
            raise InvalidTransition(f"Cannot move product from {visible.status.value} to {target.value}.")

        logger.info(
            "Product %s -> %s by user_id=%s (%s)",
            product_id,
            target.value,
            actor.user_id,
            actor.scope.value,
        )
        product = self._products.get_product(product_id)
        if product is None:
            # Deleted between the transition and the read-back.
            raise OwnershipViolationOrNotFound("Product not found.")
        return product

    def batch_approve(self, product_ids: Iterable[int], actor: ActorContext) -> list[BatchOutcome]:
        """Approve each id independently and report one outcome per unique id.

        There is no cross-item transaction: each approval is its own guarded
        write, so a failure on one id leaves the others untouched.
        """
        if actor.scope != ActorScope.admin:
            raise AccessDenied()

        outcomes: list[BatchOutcome] = []
        seen: set[int] = set()
        for product_id in product_ids:
            if product_id in seen:
                continue
            seen.add(product_id)
            try:
                product = self.apply(product_id, Action.approve, actor)
            except AppError as exc:
                outcomes.append(BatchOutcome(product_id=product_id, ok=False, error_code=exc.code, message=exc.message))
            else:
                outcomes.append(BatchOutcome(product_id=product_id, ok=True, status=product.status))
        failed = sum(1 for o in outcomes if not o.ok)
        logger.info("Batch approve by user_id=%s: %d ok, %d failed", actor.user_id, len(outcomes) - failed, failed)
        return outcomes

    # ------------------------------------------------------------------
    # Soft delete
    # ------------------------------------------------------------------

    def soft_delete(self, product_id: int, actor: ActorContext) -> None:
        """Flag a product as deleted. Owners may delete only their own products.

        Not idempotent: the guard excludes deleted rows, so repeating the call
        raises OwnershipViolationOrNotFound.
        """
        if not self._products.soft_delete(product_id, owner_id=actor.owner_filter):
            raise OwnershipViolationOrNotFound("Product not found.")
        logger.info("Product %s soft-deleted by user_id=%s (%s)", product_id, actor.user_id, actor.scope.value)

    # ------------------------------------------------------------------
    # Supplier authoring
    # ------------------------------------------------------------------

    def create_product(self, actor: ActorContext, **fields) -> Product:
        """Create a product owned by actor. New products always start as draft."""
        if actor.scope != ActorScope.owner:
            raise AccessDenied()
        product = Product(owner_id=actor.user_id, status=ProductStatus.draft, **fields)
        product_id = self._products.create_product(product)
        logger.info("Product %s created by user_id=%s", product_id, actor.user_id)
        return self._products.get_product(product_id)

    def edit_product(self, product_id: int, actor: ActorContext, **fields) -> Product:
        """Update descriptive fields on the actor's own product. Status is never touched here."""
        if actor.scope != ActorScope.owner:
            raise AccessDenied()
        if not fields:
            raise ValidationError("At least one field must be provided to update.")
        if not self._products.update_fields(product_id, actor.user_id, **fields):
            raise OwnershipViolationOrNotFound("Product not found.")
        return self._products.get_product(product_id, owner_id=actor.user_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_for_owner(self, actor: ActorContext) -> list[Product]:
        return self._products.list_by_owner(actor.user_id)

    def get_for_owner(self, product_id: int, actor: ActorContext) -> Product:
        product = self._products.get_product(product_id, owner_id=actor.user_id)
        if product is None:
            raise OwnershipViolationOrNotFound("Product not found.")
        return product

    def list_for_admin(self, status: Optional[ProductStatus] = None) -> list[Product]:
        return self._products.list_all(status)

    def get_for_admin(self, product_id: int) -> Product:
        product = self._products.get_product(product_id)
        if product is None:
            raise OwnershipViolationOrNotFound("Product not found.")
        return product

    def pending_count(self) -> int:
        return self._products.count_by_status(ProductStatus.pending_review)

    def list_catalog(self, destination: Optional[str] = None, category: Optional[str] = None) -> list[Product]:
        return self._products.list_published(destination=destination, category=category)

    def get_catalog_entry(self, product_id: int) -> Product:
        """Return a published product. Anything else looks like a missing one."""
        product = self._products.get_product(product_id)
        if product is None or product.status != ProductStatus.published:
            raise OwnershipViolationOrNotFound("Product not found.")
        return product
