# Overview: Pytest coverage for owner administration of the catalog and parties.

import pytest

from wareflow.errors import AccessDenied, Conflict, InvalidState, NotFound, ValidationError
from wareflow.models import Warehouse
from wareflow.services import catalog_service, order_service
from wareflow.validation import ItemInput, OrderInput, OrderLineInput, PriceUpdate


class TestItems:
    def test_create_and_update(self, db_session, owner):
        item = catalog_service.create_item(owner, ItemInput(name="  Tiles  ", price_cents=1500))
        assert item.name == "Tiles"
        assert item.status == "active"

        updated = catalog_service.update_item(owner, item.id, ItemInput(name="Floor Tiles", price_cents=1800))
        assert updated.price_cents == 1800

    def test_owner_only(self, db_session, warehouse_actor):
        with pytest.raises(AccessDenied):
            catalog_service.create_item(warehouse_actor, ItemInput(name="Tiles", price_cents=1))

    def test_price_bounds(self):
        with pytest.raises(ValidationError):
            ItemInput(name="Tiles", price_cents=-1)
        with pytest.raises(ValidationError):
            ItemInput(name="Tiles", price_cents=1_000_000_000)

    def test_status_and_search(self, db_session, owner, item, second_item):
        catalog_service.set_item_status(owner, second_item.id, "inactive")

        assert [i.id for i in catalog_service.list_items(status="active")] == [item.id]
        assert [i.id for i in catalog_service.list_items(search="steel")] == [second_item.id]

    def test_missing_item(self, db_session):
        with pytest.raises(NotFound):
            catalog_service.get_item(999999)

    def test_bulk_prices(self, db_session, owner, item, second_item):
        items = catalog_service.bulk_update_prices(owner, [
            {"item_id": item.id, "price_cents": 1100},
            PriceUpdate(item_id=second_item.id, price_cents=2600),
        ])
        assert [i.price_cents for i in items] == [1100, 2600]

    def test_bulk_prices_all_or_nothing(self, db_session, owner, item):
        with pytest.raises(NotFound):
            catalog_service.bulk_update_prices(owner, [
                {"item_id": item.id, "price_cents": 1100},
                {"item_id": 999999, "price_cents": 5},
            ])

        db_session.expire_all()
        assert catalog_service.get_item(item.id).price_cents == 1000

    def test_bulk_prices_validated_before_write(self, db_session, owner, item):
        with pytest.raises(ValidationError):
            catalog_service.bulk_update_prices(owner, [
                {"item_id": item.id, "price_cents": 1100},
                {"item_id": item.id, "price_cents": -5},
            ])
        with pytest.raises(ValidationError):
            catalog_service.bulk_update_prices(owner, [])

        db_session.expire_all()
        assert catalog_service.get_item(item.id).price_cents == 1000

    def test_bulk_prices_owner_only(self, db_session, warehouse_actor, item):
        with pytest.raises(AccessDenied):
            catalog_service.bulk_update_prices(warehouse_actor, [{"item_id": item.id, "price_cents": 1}])


class TestWarehouses:
    def test_duplicate_username(self, db_session, owner, warehouse_a):
        with pytest.raises(Conflict):
            catalog_service.create_warehouse(owner, name="Again", username=warehouse_a.username)

    def test_delete_refused_while_referenced(self, db_session, owner, warehouse_a, dealer):
        with pytest.raises(InvalidState):
            catalog_service.delete_warehouse(owner, warehouse_a.id)

    def test_delete_unreferenced(self, db_session, owner):
        warehouse = catalog_service.create_warehouse(owner, name="Spare", username="spare")
        catalog_service.delete_warehouse(owner, warehouse.id)
        assert db_session.query(Warehouse).filter_by(username="spare").count() == 0

    def test_deactivate(self, db_session, owner, warehouse_a, warehouse_b):
        catalog_service.set_warehouse_status(owner, warehouse_b.id, "inactive")
        assert [w.id for w in catalog_service.list_warehouses(status="active")] == [warehouse_a.id]

    def test_update_profile(self, db_session, owner, warehouse_a):
        warehouse = catalog_service.update_warehouse(owner, warehouse_a.id, {"address": "Dock 4", "pincode": "560001"})
        assert warehouse.address == "Dock 4"
        assert warehouse.name == "Warehouse A"

        with pytest.raises(ValidationError):
            catalog_service.update_warehouse(owner, warehouse_a.id, {"name": " "})

    def test_lost_username_race_is_conflict(self, db_session, owner, warehouse_a, monkeypatch):
        monkeypatch.setattr(catalog_service, "_username_taken", lambda username: False)

        with pytest.raises(Conflict):
            catalog_service.create_warehouse(owner, name="Racer", username=warehouse_a.username)
        assert db_session.query(Warehouse).count() == 1


class TestParties:
    def test_create_dealer_with_home_warehouse(self, db_session, owner, warehouse_a):
        dealer = catalog_service.create_dealer(
            owner, name="Fresh Dealer", mobile_number="9400000001", warehouse_id=str(warehouse_a.id),
        )
        assert dealer.warehouse_id == warehouse_a.id

    def test_duplicate_mobile(self, db_session, owner, dealer):
        with pytest.raises(Conflict):
            catalog_service.create_dealer(owner, name="Copy", mobile_number=dealer.mobile_number)

    def test_salesman_needs_name(self, db_session, owner):
        with pytest.raises(ValidationError):
            catalog_service.create_salesman(owner, name="  ", mobile_number="9400000002")

    def test_dealer_cannot_create_parties(self, db_session, dealer_actor):
        with pytest.raises(AccessDenied):
            catalog_service.create_salesman(dealer_actor, name="Nope", mobile_number="9400000003")

    def test_update_dealer(self, db_session, owner, dealer, other_dealer, warehouse_b):
        updated = catalog_service.update_dealer(owner, dealer.id, {
            "agency_name": "Sharma Traders", "warehouse_id": warehouse_b.id,
        })
        assert updated.agency_name == "Sharma Traders"
        assert updated.warehouse_id == warehouse_b.id
        assert updated.mobile_number == "9100000001"

        with pytest.raises(Conflict):
            catalog_service.update_dealer(owner, dealer.id, {"mobile_number": other_dealer.mobile_number})
        # Keeping its own number is not a conflict
        catalog_service.update_dealer(owner, dealer.id, {"mobile_number": dealer.mobile_number})

    def test_update_requires_owner(self, db_session, dealer_actor, dealer):
        with pytest.raises(AccessDenied):
            catalog_service.update_dealer(dealer_actor, dealer.id, {"name": "Self Promoted"})

    def test_status_toggle(self, db_session, owner, salesman):
        assert catalog_service.set_salesman_status(owner, salesman.id, "inactive").is_active is False
        assert catalog_service.set_salesman_status(owner, salesman.id, "active").is_active is True
        with pytest.raises(ValidationError):
            catalog_service.set_salesman_status(owner, salesman.id, "retired")

    def test_delete_refused_while_referenced(self, db_session, owner, warehouse_a, dealer, item):
        order_service.create_order(owner, OrderInput(
            lines=[OrderLineInput(item_id=item.id, quantity=1)], warehouse_id=warehouse_a.id, dealer_id=dealer.id,
        ))
        with pytest.raises(InvalidState):
            catalog_service.delete_dealer(owner, dealer.id)

    def test_delete_unreferenced(self, db_session, owner, salesman):
        catalog_service.delete_salesman(owner, salesman.id)
        with pytest.raises(NotFound):
            catalog_service.update_salesman(owner, salesman.id, {"name": "Ghost"})

    def test_listing_scoped_for_warehouse(
        self, db_session, owner, warehouse_actor, dealer, other_dealer, dealer_actor
    ):
        assert {d.id for d in catalog_service.list_dealers(owner)} == {dealer.id, other_dealer.id}
        assert [d.id for d in catalog_service.list_dealers(warehouse_actor)] == [dealer.id]
        with pytest.raises(AccessDenied):
            catalog_service.list_dealers(dealer_actor)
