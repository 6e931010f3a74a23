"""
tests/test_workflow.py -- ProductWorkflow against the in-memory gateway.

Covers:
  - transition closure: every (state, action) pair outside TRANSITIONS fails
    with InvalidTransition and leaves state unchanged
  - update_status target mapping for owner and admin scopes
  - ownership isolation: another supplier's product looks missing (404)
  - soft-delete exclusion from every read and write, second delete is 404
  - feedback requirement on reject, checked before any write
  - batch_approve partial success and id de-duplication
"""

from __future__ import annotations

import pytest

from auth.models import Role
from catalog.models import Product, ProductStatus
from catalog.workflow import (
    TRANSITIONS,
    Action,
    ActorContext,
    ActorScope,
    ProductWorkflow,
    find_transition,
    transitions_into,
)
from core.errors import AccessDenied, InvalidTransition, OwnershipViolationOrNotFound, ValidationError
from fakes import FakeProductGateway

OWNER = ActorContext(user_id=10, role=Role.supplier)
OTHER = ActorContext(user_id=11, role=Role.supplier)
ADMIN = ActorContext(user_id=1, role=Role.admin)
SUPER = ActorContext(user_id=2, role=Role.super_admin)
AGENCY = ActorContext(user_id=20, role=Role.agency)


@pytest.fixture
def products() -> FakeProductGateway:
    return FakeProductGateway()


@pytest.fixture
def workflow(products: FakeProductGateway) -> ProductWorkflow:
    return ProductWorkflow(products)


def _make(products: FakeProductGateway, status: ProductStatus = ProductStatus.draft, owner: int = OWNER.user_id) -> int:
    product_id = products.create_product(
        Product(owner_id=owner, title="Kyoto 5D", destination="Kyoto", category="culture", net_price=1200.0)
    )
    products.force_status(product_id, status)
    return product_id


def _actor_for(scope: ActorScope) -> ActorContext:
    return OWNER if scope == ActorScope.owner else ADMIN


class TestTable:
    def test_five_transitions(self) -> None:
        assert len(TRANSITIONS) == 5
        assert {t.action for t in TRANSITIONS} == set(Action)

    def test_only_reject_requires_feedback(self) -> None:
        assert [t.action for t in TRANSITIONS if t.requires_feedback] == [Action.reject]

    def test_transitions_into(self) -> None:
        assert [t.source for t in transitions_into(ProductStatus.pending_review, ActorScope.owner)] == [
            ProductStatus.draft,
            ProductStatus.needs_revision,
        ]
        assert transitions_into(ProductStatus.published, ActorScope.owner) == []
        assert transitions_into(ProductStatus.draft, ActorScope.admin) == []


class TestClosure:
    @pytest.mark.parametrize("source", list(ProductStatus))
    @pytest.mark.parametrize("action", list(Action))
    def test_every_pair(self, products, workflow, source: ProductStatus, action: Action) -> None:
        product_id = _make(products, source)
        allowed = find_transition(source, action)
        scope = allowed.scope if allowed else _BY_ACTION_SCOPE[action]
        feedback = "Needs photos" if action == Action.reject else None

        if allowed is None:
            with pytest.raises(InvalidTransition):
                workflow.apply(product_id, action, _actor_for(scope), feedback)
            assert products.get_row(product_id).status == source
            assert products.writes == 0
        else:
            result = workflow.apply(product_id, action, _actor_for(scope), feedback)
            assert result.status == allowed.target
            assert products.get_row(product_id).status == allowed.target

    @pytest.mark.parametrize("action", list(Action))
    def test_wrong_scope_for_action(self, products, workflow, action: Action) -> None:
        transition = next(t for t in TRANSITIONS if t.action == action)
        wrong = ADMIN if transition.scope == ActorScope.owner else OWNER
        product_id = _make(products, transition.source)
        with pytest.raises(InvalidTransition):
            workflow.apply(product_id, action, wrong, "feedback")
        assert products.get_row(product_id).status == transition.source


_BY_ACTION_SCOPE = {t.action: t.scope for t in TRANSITIONS}


class TestUpdateStatus:
    def test_submit_then_approve(self, products, workflow) -> None:
        product_id = _make(products)
        assert workflow.update_status(product_id, ProductStatus.pending_review, OWNER).status == (
            ProductStatus.pending_review
        )
        assert workflow.update_status(product_id, ProductStatus.published, ADMIN).status == ProductStatus.published

    def test_withdraw(self, products, workflow) -> None:
        product_id = _make(products, ProductStatus.pending_review)
        assert workflow.update_status(product_id, ProductStatus.draft, OWNER).status == ProductStatus.draft

    def test_resubmit_clears_feedback(self, products, workflow) -> None:
        product_id = _make(products, ProductStatus.pending_review)
        rejected = workflow.update_status(product_id, ProductStatus.needs_revision, ADMIN, "  Add itinerary  ")
        assert rejected.rejection_reason == "Add itinerary"
        resubmitted = workflow.update_status(product_id, ProductStatus.pending_review, OWNER)
        assert resubmitted.rejection_reason is None

    def test_super_admin_approves(self, products, workflow) -> None:
        product_id = _make(products, ProductStatus.pending_review)
        assert workflow.update_status(product_id, ProductStatus.published, SUPER).status == ProductStatus.published

    def test_owner_cannot_publish(self, products, workflow) -> None:
        product_id = _make(products, ProductStatus.pending_review)
        with pytest.raises(InvalidTransition):
            workflow.update_status(product_id, ProductStatus.published, OWNER)

    def test_publish_from_draft_is_invalid(self, products, workflow) -> None:
        product_id = _make(products, ProductStatus.draft)
        with pytest.raises(InvalidTransition):
            workflow.update_status(product_id, ProductStatus.published, ADMIN)
        assert products.get_row(product_id).status == ProductStatus.draft

    def test_agency_has_no_scope(self, products, workflow) -> None:
        product_id = _make(products, ProductStatus.pending_review)
        with pytest.raises(AccessDenied):
            workflow.update_status(product_id, ProductStatus.published, AGENCY)

    def test_missing_product(self, workflow) -> None:
        with pytest.raises(OwnershipViolationOrNotFound):
            workflow.update_status(404, ProductStatus.pending_review, OWNER)


class TestFeedbackRequirement:
    @pytest.mark.parametrize("feedback", [None, "", "   \n\t"])
    def test_reject_requires_feedback(self, products, workflow, feedback) -> None:
        product_id = _make(products, ProductStatus.pending_review)
        with pytest.raises(ValidationError) as exc_info:
            workflow.update_status(product_id, ProductStatus.needs_revision, ADMIN, feedback)
        assert not isinstance(exc_info.value, InvalidTransition)
        assert products.get_row(product_id).status == ProductStatus.pending_review
        assert products.writes == 0

    def test_feedback_checked_before_visibility(self, workflow, products) -> None:
        with pytest.raises(ValidationError):
            workflow.update_status(12345, ProductStatus.needs_revision, ADMIN, " ")
        assert products.writes == 0


class TestOwnershipIsolation:
    def test_other_supplier_cannot_transition(self, products, workflow) -> None:
        product_id = _make(products, ProductStatus.draft)
        with pytest.raises(OwnershipViolationOrNotFound):
            workflow.update_status(product_id, ProductStatus.pending_review, OTHER)
        assert products.get_row(product_id).status == ProductStatus.draft

    def test_other_supplier_cannot_read_edit_or_delete(self, products, workflow) -> None:
        product_id = _make(products)
        with pytest.raises(OwnershipViolationOrNotFound):
            workflow.get_for_owner(product_id, OTHER)
        with pytest.raises(OwnershipViolationOrNotFound):
            workflow.edit_product(product_id, OTHER, title="Hijacked")
        with pytest.raises(OwnershipViolationOrNotFound):
            workflow.soft_delete(product_id, OTHER)
        row = products.get_row(product_id)
        assert row.title == "Kyoto 5D"
        assert row.is_deleted is False

    def test_owner_lists_only_own(self, products, workflow) -> None:
        mine = _make(products)
        _make(products, owner=OTHER.user_id)
        assert [p.id for p in workflow.list_for_owner(OWNER)] == [mine]

    def test_admin_sees_all(self, products, workflow) -> None:
        a = _make(products)
        b = _make(products, owner=OTHER.user_id)
        assert {p.id for p in workflow.list_for_admin()} == {a, b}
        assert workflow.get_for_admin(b).owner_id == OTHER.user_id


class TestSoftDelete:
    def test_deleted_product_disappears(self, products, workflow) -> None:
        product_id = _make(products, ProductStatus.pending_review)
        workflow.soft_delete(product_id, OWNER)

        assert products.get_row(product_id).is_deleted is True
        assert workflow.list_for_owner(OWNER) == []
        assert workflow.list_for_admin() == []
        assert workflow.pending_count() == 0
        with pytest.raises(OwnershipViolationOrNotFound):
            workflow.get_for_admin(product_id)
        with pytest.raises(OwnershipViolationOrNotFound):
            workflow.update_status(product_id, ProductStatus.published, ADMIN)

    def test_second_delete_is_not_found(self, products, workflow) -> None:
        product_id = _make(products)
        workflow.soft_delete(product_id, ADMIN)
        with pytest.raises(OwnershipViolationOrNotFound):
            workflow.soft_delete(product_id, ADMIN)

    def test_deleted_published_leaves_catalog(self, products, workflow) -> None:
        product_id = _make(products, ProductStatus.published)
        assert [p.id for p in workflow.list_catalog()] == [product_id]
        workflow.soft_delete(product_id, ADMIN)
        assert workflow.list_catalog() == []
        with pytest.raises(OwnershipViolationOrNotFound):
            workflow.get_catalog_entry(product_id)


class TestBatchApprove:
    def test_partial_success(self, products, workflow) -> None:
        pending = _make(products, ProductStatus.pending_review)
        draft = _make(products, ProductStatus.draft)
        outcomes = workflow.batch_approve([pending, draft, 999], ADMIN)

        by_id = {o.product_id: o for o in outcomes}
        assert by_id[pending].ok and by_id[pending].status == ProductStatus.published
        assert not by_id[draft].ok and by_id[draft].error_code == "invalid_transition"
        assert not by_id[999].ok and by_id[999].error_code == "not_found"
        assert products.get_row(draft).status == ProductStatus.draft

    def test_duplicates_collapsed_in_order(self, products, workflow) -> None:
        a = _make(products, ProductStatus.pending_review)
        b = _make(products, ProductStatus.pending_review)
        outcomes = workflow.batch_approve([b, a, b], ADMIN)
        assert [o.product_id for o in outcomes] == [b, a]
        assert all(o.ok for o in outcomes)

    def test_owner_cannot_batch(self, products, workflow) -> None:
        with pytest.raises(AccessDenied):
            workflow.batch_approve([_make(products, ProductStatus.pending_review)], OWNER)


class TestAuthoring:
    def test_create_is_always_draft(self, products, workflow) -> None:
        product = workflow.create_product(OWNER, title="Alps", destination="Zermatt", net_price=900.0, duration=4.5)
        assert product.status == ProductStatus.draft
        assert product.duration == 4.5
        assert product.owner_id == OWNER.user_id

    def test_admin_cannot_create(self, workflow) -> None:
        with pytest.raises(AccessDenied):
            workflow.create_product(ADMIN, title="Alps", destination="Zermatt")

    def test_edit_keeps_status(self, products, workflow) -> None:
        product_id = _make(products, ProductStatus.needs_revision)
        edited = workflow.edit_product(product_id, OWNER, description="Now with itinerary")
        assert edited.description == "Now with itinerary"
        assert edited.status == ProductStatus.needs_revision

    def test_edit_requires_fields(self, products, workflow) -> None:
        with pytest.raises(ValidationError):
            workflow.edit_product(_make(products), OWNER)

    def test_catalog_filters(self, products, workflow) -> None:
        kyoto = _make(products, ProductStatus.published)
        _make(products, ProductStatus.pending_review)
        assert [p.id for p in workflow.list_catalog(destination="Kyoto")] == [kyoto]
        assert workflow.list_catalog(destination="Paris") == []
        assert [p.id for p in workflow.list_catalog(category="culture")] == [kyoto]
