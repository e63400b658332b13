# Overview: Pytest coverage for the inventory ledger.

"""
Inventory Ledger Tests

Covers set/add/subtract clamping, strict transfers, all-or-nothing bulk
updates, movement history and access rules.
"""

import pytest

from conftest import quantity_of, stock
from wareflow.errors import AccessDenied, InsufficientStock, NotFound, ValidationError
from wareflow.models import InventoryMovement, InventoryRecord
from wareflow.services import inventory_service
from wareflow.validation import InventoryUpdate


class TestAdjustments:
    """set / add / subtract semantics."""

    def test_set_then_add_then_subtract(self, db_session, owner, warehouse_a, item):
        assert inventory_service.set_quantity(owner, warehouse_a.id, item.id, 10) == 10
        assert inventory_service.add_quantity(owner, warehouse_a.id, item.id, 5) == 15
        assert inventory_service.subtract_quantity(owner, warehouse_a.id, item.id, 4) == 11
        assert quantity_of(warehouse_a, item) == 11

    def test_subtract_clamps_at_zero(self, db_session, owner, warehouse_a, item):
        stock(warehouse_a, item, 3)

        assert inventory_service.subtract_quantity(owner, warehouse_a.id, item.id, 10) == 0
        assert quantity_of(warehouse_a, item) == 0

    def test_absent_record_reads_as_zero(self, db_session, owner, warehouse_a, item):
        assert inventory_service.get_quantity(owner, warehouse_a.id, item.id) == 0

    def test_zero_against_absent_record_creates_nothing(self, db_session, owner, warehouse_a, item):
        assert inventory_service.set_quantity(owner, warehouse_a.id, item.id, 0) == 0
        assert inventory_service.subtract_quantity(owner, warehouse_a.id, item.id, 5) == 0

        assert db_session.query(InventoryRecord).count() == 0
        assert db_session.query(InventoryMovement).count() == 0

    def test_add_creates_record(self, db_session, owner, warehouse_a, item):
        inventory_service.add_quantity(owner, warehouse_a.id, item.id, 7)

        record = db_session.query(InventoryRecord).filter_by(warehouse_id=warehouse_a.id, item_id=item.id).one()
        assert record.quantity == 7

    @pytest.mark.parametrize("bad", [-1, 1.5, "abc", None, True])
    def test_rejects_non_integer_or_negative(self, db_session, owner, warehouse_a, item, bad):
        with pytest.raises(ValidationError):
            inventory_service.set_quantity(owner, warehouse_a.id, item.id, bad)

    def test_unknown_item_not_found(self, db_session, owner, warehouse_a):
        with pytest.raises(NotFound):
            inventory_service.add_quantity(owner, warehouse_a.id, 999999, 1)

    def test_warehouse_writes_only_own_stock(
        self, db_session, warehouse_actor, warehouse_a, warehouse_b, item
    ):
        assert inventory_service.add_quantity(warehouse_actor, warehouse_a.id, item.id, 2) == 2
        with pytest.raises(AccessDenied):
            inventory_service.add_quantity(warehouse_actor, warehouse_b.id, item.id, 2)

    def test_dealer_cannot_write(self, db_session, dealer_actor, warehouse_a, item):
        with pytest.raises(AccessDenied):
            inventory_service.set_quantity(dealer_actor, warehouse_a.id, item.id, 5)

    def test_movements_recorded(self, db_session, owner, warehouse_a, item):
        inventory_service.set_quantity(owner, warehouse_a.id, item.id, 10)
        inventory_service.subtract_quantity(owner, warehouse_a.id, item.id, 3)

        movements = inventory_service.list_movements(owner, warehouse_a.id, item.id)
        assert [(m.reason, m.quantity_change, m.quantity_after) for m in movements] == [
            ("subtract", -3, 7),
            ("set", 10, 10),
        ]
        assert movements[0].actor_role == "owner"


class TestTransfer:
    """Strict, atomic transfers between warehouses."""

    def test_drain_then_fail(self, db_session, owner, warehouse_a, warehouse_b, item):
        """5 units: transfer 5 succeeds, a further transfer of 1 fails and changes nothing."""
        stock(warehouse_a, item, 5)

        result = inventory_service.transfer(owner, warehouse_a.id, warehouse_b.id, item.id, 5)
        assert result["from_quantity"] == 0
        assert result["to_quantity"] == 5

        with pytest.raises(InsufficientStock):
            inventory_service.transfer(owner, warehouse_a.id, warehouse_b.id, item.id, 1)

        assert quantity_of(warehouse_a, item) == 0
        assert quantity_of(warehouse_b, item) == 5

    def test_adds_to_existing_destination(self, db_session, owner, warehouse_a, warehouse_b, item):
        stock(warehouse_a, item, 10)
        stock(warehouse_b, item, 4)

        inventory_service.transfer(owner, warehouse_a.id, warehouse_b.id, item.id, 6)

        assert quantity_of(warehouse_a, item) == 4
        assert quantity_of(warehouse_b, item) == 10

    def test_absent_source_is_insufficient(self, db_session, owner, warehouse_a, warehouse_b, item):
        with pytest.raises(InsufficientStock):
            inventory_service.transfer(owner, warehouse_a.id, warehouse_b.id, item.id, 1)
        assert db_session.query(InventoryRecord).count() == 0

    def test_owner_only(self, db_session, warehouse_actor, warehouse_a, warehouse_b, item):
        stock(warehouse_a, item, 5)
        with pytest.raises(AccessDenied):
            inventory_service.transfer(warehouse_actor, warehouse_a.id, warehouse_b.id, item.id, 1)

    def test_same_warehouse_rejected(self, db_session, owner, warehouse_a, item):
        with pytest.raises(ValidationError):
            inventory_service.transfer(owner, warehouse_a.id, warehouse_a.id, item.id, 1)

    def test_non_positive_quantity_rejected(self, db_session, owner, warehouse_a, warehouse_b, item):
        with pytest.raises(ValidationError):
            inventory_service.transfer(owner, warehouse_a.id, warehouse_b.id, item.id, 0)

    def test_records_both_movements(self, db_session, owner, warehouse_a, warehouse_b, item):
        stock(warehouse_a, item, 5)
        inventory_service.transfer(owner, warehouse_a.id, warehouse_b.id, item.id, 2)

        reasons = sorted(m.reason for m in db_session.query(InventoryMovement).all())
        assert reasons == ["transfer_in", "transfer_out"]


class TestBulkUpdate:
    """All-or-nothing batches."""

    def test_applies_all(self, db_session, owner, warehouse_a, item, second_item):
        results = inventory_service.bulk_update(owner, [
            InventoryUpdate(warehouse_id=warehouse_a.id, item_id=item.id, quantity=5, mode="set"),
            InventoryUpdate(warehouse_id=warehouse_a.id, item_id=second_item.id, quantity=3, mode="add"),
            InventoryUpdate(warehouse_id=warehouse_a.id, item_id=item.id, quantity=2, mode="subtract"),
        ])

        assert [r["quantity"] for r in results] == [5, 3, 3]
        assert quantity_of(warehouse_a, item) == 3
        assert quantity_of(warehouse_a, second_item) == 3

    def test_failure_rolls_back_everything(self, db_session, owner, warehouse_a, item):
        with pytest.raises(NotFound):
            inventory_service.bulk_update(owner, [
                InventoryUpdate(warehouse_id=warehouse_a.id, item_id=item.id, quantity=5, mode="set"),
                InventoryUpdate(warehouse_id=warehouse_a.id, item_id=999999, quantity=1, mode="add"),
            ])

        assert quantity_of(warehouse_a, item) == 0
        assert db_session.query(InventoryMovement).count() == 0

    def test_access_checked_before_any_write(
        self, db_session, warehouse_actor, warehouse_a, warehouse_b, item
    ):
        with pytest.raises(AccessDenied):
            inventory_service.bulk_update(warehouse_actor, [
                InventoryUpdate(warehouse_id=warehouse_a.id, item_id=item.id, quantity=5, mode="set"),
                InventoryUpdate(warehouse_id=warehouse_b.id, item_id=item.id, quantity=5, mode="set"),
            ])
        assert quantity_of(warehouse_a, item) == 0

    def test_invalid_mode_rejected(self, warehouse_a, item):
        with pytest.raises(ValidationError):
            InventoryUpdate(warehouse_id=warehouse_a.id, item_id=item.id, quantity=1, mode="multiply")


class TestReads:
    """Availability, listings and record deletion."""

    def test_check_availability(self, db_session, owner, warehouse_a, item):
        stock(warehouse_a, item, 4)

        assert inventory_service.check_availability(owner, warehouse_a.id, item.id, 4) == {
            "available": True,
            "current_quantity": 4,
            "required_quantity": 4,
        }
        assert inventory_service.check_availability(owner, warehouse_a.id, item.id, 5)["available"] is False

    def test_warehouse_listing_is_scoped(
        self, db_session, owner, warehouse_actor, warehouse_a, warehouse_b, item
    ):
        stock(warehouse_a, item, 4)
        stock(warehouse_b, item, 9)

        assert len(inventory_service.list_inventory(owner)) == 2
        listed = inventory_service.list_inventory(warehouse_actor, warehouse_id=warehouse_b.id)
        assert [r.warehouse_id for r in listed] == [warehouse_a.id]

    def test_low_stock(self, db_session, owner, warehouse_a, item, second_item):
        stock(warehouse_a, item, 2)
        stock(warehouse_a, second_item, 50)

        low = inventory_service.list_low_stock(owner, threshold=10)
        assert [r.item_id for r in low] == [item.id]

    def test_delete_record(self, db_session, owner, warehouse_a, item):
        stock(warehouse_a, item, 2)

        inventory_service.delete_inventory_record(owner, warehouse_a.id, item.id)
        assert quantity_of(warehouse_a, item) == 0
        with pytest.raises(NotFound):
            inventory_service.delete_inventory_record(owner, warehouse_a.id, item.id)

    def test_delete_is_recorded_as_deletion(self, db_session, owner, warehouse_a, item):
        inventory_service.set_quantity(owner, warehouse_a.id, item.id, 6)

        inventory_service.delete_inventory_record(owner, warehouse_a.id, item.id)

        movements = inventory_service.list_movements(owner, warehouse_a.id, item.id)
        assert [(m.reason, m.quantity_change, m.quantity_after) for m in movements] == [
            ("deleted", -6, 0),
            ("set", 6, 6),
        ]
