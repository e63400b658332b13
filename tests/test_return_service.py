# Overview: Pytest coverage for the return workflow and its stock effects.

"""
Return Workflow Tests

Approval moves stock into the warehouse exactly once; reversing an
approval takes it back out (clamped at zero). Edits are pending-only.
"""

import pytest

from conftest import quantity_of, stock
from wareflow.errors import AccessDenied, InvalidState, NotFound, ValidationError
from wareflow.models import InventoryMovement, ReturnOrder
from wareflow.services import catalog_service, inventory_service, order_service, return_service
from wareflow.validation import OrderInput, OrderLineInput, ReturnInput


@pytest.fixture
def pending_return(db_session, dealer_actor, warehouse_a, item):
    """Dealer returns 4 units to warehouse A."""
    return return_service.create_return(dealer_actor, ReturnInput(
        item_id=item.id, quantity=4, warehouse_id=warehouse_a.id, reason="Damaged bags",
    ))


class TestCreateReturn:
    def test_dealer_bound_to_self(self, db_session, pending_return, dealer):
        assert pending_return.dealer_id == dealer.id
        assert pending_return.status == "pending"
        assert pending_return.return_number.startswith("RET-")

    def test_dealer_cannot_file_for_another(self, db_session, dealer_actor, warehouse_a, other_dealer, item):
        with pytest.raises(AccessDenied):
            return_service.create_return(dealer_actor, ReturnInput(
                item_id=item.id, quantity=1, warehouse_id=warehouse_a.id, dealer_id=other_dealer.id,
            ))

    def test_warehouse_required(self, db_session, dealer_actor, item):
        with pytest.raises(ValidationError):
            return_service.create_return(dealer_actor, ReturnInput(item_id=item.id, quantity=1))

    def test_owner_needs_a_party(self, db_session, owner, warehouse_a, item):
        with pytest.raises(ValidationError):
            return_service.create_return(owner, ReturnInput(item_id=item.id, quantity=1, warehouse_id=warehouse_a.id))

    def test_unknown_item_not_found(self, db_session, dealer_actor, warehouse_a):
        with pytest.raises(NotFound):
            return_service.create_return(dealer_actor, ReturnInput(
                item_id=999999, quantity=1, warehouse_id=warehouse_a.id,
            ))

    def test_original_order_must_be_visible(
        self, db_session, owner, dealer_actor, warehouse_a, other_dealer, item
    ):
        foreign = order_service.create_order(owner, OrderInput(
            lines=[OrderLineInput(item_id=item.id, quantity=1)],
            warehouse_id=warehouse_a.id,
            dealer_id=other_dealer.id,
        ))
        with pytest.raises(NotFound):
            return_service.create_return(dealer_actor, ReturnInput(
                item_id=item.id, quantity=1, warehouse_id=warehouse_a.id, original_order_id=foreign.id,
            ))

    def test_inactive_dealer_rejected(self, db_session, owner, dealer_actor, warehouse_a, dealer, item):
        catalog_service.set_dealer_status(owner, dealer.id, "inactive")

        with pytest.raises(ValidationError, match="inactive"):
            return_service.create_return(dealer_actor, ReturnInput(
                item_id=item.id, quantity=1, warehouse_id=warehouse_a.id,
            ))
        assert db_session.query(ReturnOrder).count() == 0

    def test_zero_quantity_rejected(self, item):
        with pytest.raises(ValidationError):
            ReturnInput(item_id=item.id, quantity=0)


class TestReturnStatus:
    """Status transitions and their inventory effect."""

    def test_approval_adds_stock_once(self, db_session, owner, pending_return, warehouse_a, item):
        stock(warehouse_a, item, 10)

        approved = return_service.update_return_status(owner, pending_return.id, "approved")
        assert approved.status == "approved"
        assert quantity_of(warehouse_a, item) == 14

        with pytest.raises(InvalidState):
            return_service.update_return_status(owner, pending_return.id, "approved")
        assert quantity_of(warehouse_a, item) == 14

    def test_approval_creates_absent_record(self, db_session, owner, pending_return, warehouse_a, item):
        return_service.update_return_status(owner, pending_return.id, "approved")
        assert quantity_of(warehouse_a, item) == 4

        movement = db_session.query(InventoryMovement).one()
        assert movement.reason == "return_approved"
        assert movement.reference == pending_return.return_number

    def test_reject_after_approval_reverses(self, db_session, owner, pending_return, warehouse_a, item):
        stock(warehouse_a, item, 10)
        return_service.update_return_status(owner, pending_return.id, "approved")

        return_service.update_return_status(owner, pending_return.id, "rejected")
        assert quantity_of(warehouse_a, item) == 10

        return_service.update_return_status(owner, pending_return.id, "approved")
        assert quantity_of(warehouse_a, item) == 14

    def test_reversal_clamps_at_zero(self, db_session, owner, pending_return, warehouse_a, item):
        return_service.update_return_status(owner, pending_return.id, "approved")
        # 3 of the 4 returned units were sold on before the reversal
        inventory_service.subtract_quantity(owner, warehouse_a.id, item.id, 3)

        return_service.update_return_status(owner, pending_return.id, "rejected")
        assert quantity_of(warehouse_a, item) == 0

    def test_rejecting_pending_leaves_stock(self, db_session, owner, pending_return, warehouse_a, item):
        stock(warehouse_a, item, 10)
        return_service.update_return_status(owner, pending_return.id, "rejected")
        assert quantity_of(warehouse_a, item) == 10

    def test_back_to_pending_not_allowed(self, db_session, owner, pending_return):
        return_service.update_return_status(owner, pending_return.id, "rejected")
        with pytest.raises(InvalidState):
            return_service.update_return_status(owner, pending_return.id, "pending")

    def test_dealer_cannot_approve(self, db_session, dealer_actor, pending_return):
        with pytest.raises(AccessDenied):
            return_service.update_return_status(dealer_actor, pending_return.id, "approved")

    def test_other_warehouse_sees_not_found(self, db_session, other_warehouse_actor, pending_return):
        with pytest.raises(NotFound):
            return_service.update_return_status(other_warehouse_actor, pending_return.id, "approved")

    def test_bulk_reports_per_id(self, db_session, owner, dealer_actor, pending_return, warehouse_a, item):
        second = return_service.create_return(dealer_actor, ReturnInput(
            item_id=item.id, quantity=2, warehouse_id=warehouse_a.id,
        ))
        return_service.update_return_status(owner, second.id, "approved")

        result = return_service.bulk_update_return_status(
            owner, [pending_return.id, second.id, 999999], "approved",
        )

        assert result["updated"] == [pending_return.id]
        assert [(e["id"], e["code"]) for e in result["errors"]] == [
            (second.id, "INVALID_STATE"),
            (999999, "NOT_FOUND"),
        ]
        assert quantity_of(warehouse_a, item) == 6


class TestEditWindow:
    def test_update_pending(self, db_session, dealer_actor, pending_return, second_item):
        updated = return_service.update_return(dealer_actor, pending_return.id, ReturnInput(
            item_id=second_item.id, quantity=1, reason="Wrong item",
        ))
        assert updated.item_id == second_item.id
        assert updated.quantity == 1

    def test_update_after_approval_rejected(self, db_session, owner, dealer_actor, pending_return, item):
        return_service.update_return_status(owner, pending_return.id, "approved")
        with pytest.raises(InvalidState):
            return_service.update_return(dealer_actor, pending_return.id, ReturnInput(item_id=item.id, quantity=9))

    def test_delete_rules(self, db_session, owner, pending_return):
        return_service.update_return_status(owner, pending_return.id, "approved")
        with pytest.raises(InvalidState):
            return_service.delete_return(owner, pending_return.id)

        return_service.update_return_status(owner, pending_return.id, "rejected")
        return_service.delete_return(owner, pending_return.id)
        assert db_session.query(ReturnOrder).count() == 0


class TestListing:
    def test_scoped_and_filtered(self, db_session, owner, salesman_actor, dealer_actor, pending_return, warehouse_a, dealer, item):
        filed = return_service.create_return(salesman_actor, ReturnInput(
            item_id=item.id, quantity=1, warehouse_id=warehouse_a.id, dealer_id=dealer.id,
        ))

        assert [r.id for r in return_service.list_returns(salesman_actor)] == [filed.id]
        assert len(return_service.list_returns(dealer_actor)) == 2
        assert len(return_service.list_returns(owner, {"status": "pending"})) == 2
        assert return_service.list_returns(owner, {"status": "approved"}) == []

    def test_returns_for_order(self, db_session, owner, dealer_actor, warehouse_a, dealer, item):
        order = order_service.create_order(dealer_actor, OrderInput(
            lines=[OrderLineInput(item_id=item.id, quantity=5)], warehouse_id=warehouse_a.id,
        ))
        filed = return_service.create_return(dealer_actor, ReturnInput(
            item_id=item.id, quantity=2, warehouse_id=warehouse_a.id, original_order_id=order.id,
        ))

        assert [r.id for r in return_service.list_returns_for_order(owner, order.id)] == [filed.id]

    def test_returnable_items(self, db_session, owner, dealer_actor, salesman_actor, warehouse_a, dealer, item, second_item):
        order = order_service.create_order(dealer_actor, OrderInput(
            lines=[
                OrderLineInput(item_id=item.id, quantity=5),
                OrderLineInput(item_id=second_item.id, quantity=2),
            ],
            warehouse_id=warehouse_a.id,
        ))
        return_service.create_return(dealer_actor, ReturnInput(
            item_id=item.id, quantity=2, warehouse_id=warehouse_a.id, original_order_id=order.id,
        ))
        rejected = return_service.create_return(dealer_actor, ReturnInput(
            item_id=item.id, quantity=1, warehouse_id=warehouse_a.id, original_order_id=order.id,
        ))
        return_service.update_return_status(owner, rejected.id, "rejected")
        return_service.create_return(dealer_actor, ReturnInput(
            item_id=second_item.id, quantity=2, warehouse_id=warehouse_a.id, original_order_id=order.id,
        ))

        remaining = return_service.returnable_items(dealer_actor, order.id)

        assert remaining == [{
            "item_id": item.id,
            "item_name": item.name,
            "unit_price_cents": 1000,
            "ordered_quantity": 5,
            "returned_quantity": 2,
            "returnable_quantity": 3,
        }]
        with pytest.raises(NotFound):
            return_service.returnable_items(salesman_actor, order.id)
