# Overview: Owner administration of items, warehouses and trading parties.

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from ..errors import Conflict, InvalidState, NotFound, ValidationError
from ..extensions import db
from ..models import Dealer, InventoryRecord, Item, Order, ReturnOrder, Salesman, Warehouse
from ..validation import ItemInput, PriceUpdate, coerce_int, optional_text, require_choice
from .concurrency import run_in_transaction
from .scope_service import ROLE_OWNER, ROLE_WAREHOUSE, Actor, effective_warehouse_filter, require_role

logger = logging.getLogger(__name__)


STATUS_ACTIVE = "active"
STATUS_INACTIVE = "inactive"
STATUSES = (STATUS_ACTIVE, STATUS_INACTIVE)


def _require_text(value, field_name: str, max_length: int) -> str:
    text = optional_text(value, max_length, field_name)
    if not text:
        raise ValidationError(f"{field_name} is required")
    return text


def _commit_unique(func, message: str):
    """run_in_transaction, reporting a lost race on a UNIQUE column as Conflict."""
    try:
        return run_in_transaction(func)
    except IntegrityError:
        raise Conflict(message)


# =============================================================================
# ITEMS
# =============================================================================

def _get_item(item_id: int) -> Item:
    item = db.session.get(Item, item_id)
    if item is None:
        raise NotFound(f"Item {item_id} not found")
    return item


def create_item(actor: Actor, data: ItemInput) -> Item:
    require_role(actor, ROLE_OWNER, action="create items")

    def _op():
        item = Item(
            name=data.name.strip(),
            description=data.description,
            price_cents=data.price_cents,
            status=STATUS_ACTIVE,
        )
        db.session.add(item)
        db.session.flush()
        return item

    item = run_in_transaction(_op)
    logger.info("Item %s created (price_cents=%s)", item.id, item.price_cents)
    return item


def update_item(actor: Actor, item_id: int, data: ItemInput) -> Item:
    """
    Change an item's name, description or price.

    Existing order lines keep the price they were placed at; only orders
    created after this call see the new price.
    """
    require_role(actor, ROLE_OWNER, action="update items")

    def _op():
        item = _get_item(item_id)
        old_price = item.price_cents
        item.name = data.name.strip()
        item.description = data.description
        item.price_cents = data.price_cents
        db.session.flush()
        return item, old_price

    item, old_price = run_in_transaction(_op)
    if old_price != item.price_cents:
        logger.info("Item %s price %s -> %s", item.id, old_price, item.price_cents)
    return item


def bulk_update_prices(actor: Actor, updates) -> list[Item]:
    """
    Reprice many items at once, all or nothing.

    Every entry is validated before the transaction opens; an unknown item
    rolls back every price already changed.
    """
    require_role(actor, ROLE_OWNER, action="update item prices")
    if not isinstance(updates, list) or not updates:
        raise ValidationError("updates must be a non-empty list")
    updates = [u if isinstance(u, PriceUpdate) else PriceUpdate.from_payload(u) for u in updates]

    def _op():
        changed = []
        for update in updates:
            item = _get_item(update.item_id)
            item.price_cents = update.price_cents
            changed.append(item)
        db.session.flush()
        return changed

    items = run_in_transaction(_op)
    logger.info("Repriced %s items", len(updates))
    return items


def set_item_status(actor: Actor, item_id: int, status: str) -> Item:
    require_choice(status, "status", STATUSES)
    require_role(actor, ROLE_OWNER, action="change item status")

    def _op():
        item = _get_item(item_id)
        item.status = status
        db.session.flush()
        return item

    return run_in_transaction(_op)


def get_item(item_id: int) -> Item:
    return _get_item(item_id)


def list_items(status: str | None = None, search: str | None = None) -> list[Item]:
    """Catalog listing; visible to every role."""
    query = db.session.query(Item)
    if status:
        query = query.filter(Item.status == require_choice(status, "status", STATUSES))
    if search:
        query = query.filter(Item.name.ilike(f"%{search}%"))
    return query.order_by(Item.name.asc(), Item.id.asc()).all()


# =============================================================================
# WAREHOUSES
# =============================================================================

def _get_warehouse(warehouse_id: int) -> Warehouse:
    warehouse = db.session.get(Warehouse, warehouse_id)
    if warehouse is None:
        raise NotFound(f"Warehouse {warehouse_id} not found")
    return warehouse


def _username_taken(username: str) -> bool:
    return db.session.query(Warehouse.id).filter(Warehouse.username == username).first() is not None


def add_warehouse(name, username, address=None, pincode=None, password_hash=None) -> Warehouse:
    """Build and add (not commit) a warehouse row; joins the caller's transaction."""
    username = _require_text(username, "username", 64)
    if _username_taken(username):
        raise Conflict(f"Username {username!r} is already taken")
    warehouse = Warehouse(
        name=_require_text(name, "name", 255),
        username=username,
        address=optional_text(address, 512, "address"),
        pincode=optional_text(pincode, 16, "pincode"),
        password_hash=password_hash,
        status=STATUS_ACTIVE,
    )
    db.session.add(warehouse)
    db.session.flush()
    return warehouse


def create_warehouse(actor: Actor, name, username, address=None, pincode=None, password_hash=None) -> Warehouse:
    require_role(actor, ROLE_OWNER, action="create warehouses")
    warehouse = _commit_unique(
        lambda: add_warehouse(name, username, address, pincode, password_hash),
        f"Username {username!r} is already taken",
    )
    logger.info("Warehouse %s (%s) created", warehouse.id, warehouse.username)
    return warehouse


def update_warehouse(actor: Actor, warehouse_id: int, changes: dict) -> Warehouse:
    """Edit a warehouse's name, address or pincode; keys not given stay as they are."""
    require_role(actor, ROLE_OWNER, action="update warehouses")
    changes = changes or {}

    def _op():
        warehouse = _get_warehouse(warehouse_id)
        if "name" in changes:
            warehouse.name = _require_text(changes["name"], "name", 255)
        if "address" in changes:
            warehouse.address = optional_text(changes["address"], 512, "address")
        if "pincode" in changes:
            warehouse.pincode = optional_text(changes["pincode"], 16, "pincode")
        db.session.flush()
        return warehouse

    warehouse = run_in_transaction(_op)
    logger.info("Warehouse %s updated", warehouse.id)
    return warehouse


def set_warehouse_status(actor: Actor, warehouse_id: int, status: str) -> Warehouse:
    """Activate or deactivate; inactive warehouses accept no new orders."""
    require_choice(status, "status", STATUSES)
    require_role(actor, ROLE_OWNER, action="change warehouse status")

    def _op():
        warehouse = _get_warehouse(warehouse_id)
        warehouse.status = status
        db.session.flush()
        return warehouse

    warehouse = run_in_transaction(_op)
    logger.info("Warehouse %s status set to %s", warehouse.id, status)
    return warehouse


def delete_warehouse(actor: Actor, warehouse_id: int) -> None:
    """Hard delete, refused while any order, return, stock or party references it."""
    require_role(actor, ROLE_OWNER, action="delete warehouses")

    def _op():
        warehouse = _get_warehouse(warehouse_id)
        for model in (Order, ReturnOrder, InventoryRecord, Dealer, Salesman):
            if db.session.query(model.id).filter(model.warehouse_id == warehouse.id).first() is not None:
                raise InvalidState("Warehouse is still referenced; deactivate it instead")
        db.session.delete(warehouse)
        db.session.flush()

    run_in_transaction(_op)
    logger.info("Warehouse %s deleted", warehouse_id)


def list_warehouses(status: str | None = None) -> list[Warehouse]:
    query = db.session.query(Warehouse)
    if status:
        query = query.filter(Warehouse.status == require_choice(status, "status", STATUSES))
    return query.order_by(Warehouse.name.asc()).all()


# =============================================================================
# DEALERS / SALESMEN
# =============================================================================

_PARTY_LABELS = {Dealer: "Dealer", Salesman: "Salesman"}
_PARTY_PLURALS = {Dealer: "dealers", Salesman: "salesmen"}

# Optional text columns editable per party type, with their max lengths
_PARTY_TEXT_FIELDS = {
    Dealer: {"agency_name": 255, "address": 512, "pincode": 16},
    Salesman: {},
}


def _check_mobile(model, mobile_number, exclude_id: int | None = None) -> str:
    mobile_number = _require_text(mobile_number, "mobile_number", 20)
    query = db.session.query(model.id).filter(model.mobile_number == mobile_number)
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    if query.first() is not None:
        raise Conflict(f"Mobile number {mobile_number} is already registered")
    return mobile_number


def _check_home_warehouse(warehouse_id) -> int | None:
    warehouse_id = coerce_int(warehouse_id, "warehouse_id", required=False)
    if warehouse_id is not None:
        _get_warehouse(warehouse_id)
    return warehouse_id


def _get_party(model, party_id: int):
    party = db.session.get(model, party_id)
    if party is None:
        raise NotFound(f"{_PARTY_LABELS[model]} {party_id} not found")
    return party


def add_dealer(name, mobile_number, agency_name=None, address=None, pincode=None,
               warehouse_id=None, password_hash=None) -> Dealer:
    dealer = Dealer(
        name=_require_text(name, "name", 255),
        mobile_number=_check_mobile(Dealer, mobile_number),
        agency_name=optional_text(agency_name, 255, "agency_name"),
        address=optional_text(address, 512, "address"),
        pincode=optional_text(pincode, 16, "pincode"),
        warehouse_id=_check_home_warehouse(warehouse_id),
        password_hash=password_hash,
        status=STATUS_ACTIVE,
    )
    db.session.add(dealer)
    db.session.flush()
    return dealer


def add_salesman(name, mobile_number, warehouse_id=None, password_hash=None) -> Salesman:
    salesman = Salesman(
        name=_require_text(name, "name", 255),
        mobile_number=_check_mobile(Salesman, mobile_number),
        warehouse_id=_check_home_warehouse(warehouse_id),
        password_hash=password_hash,
        status=STATUS_ACTIVE,
    )
    db.session.add(salesman)
    db.session.flush()
    return salesman


def create_dealer(actor: Actor, **profile) -> Dealer:
    require_role(actor, ROLE_OWNER, action="create dealers")
    dealer = _commit_unique(lambda: add_dealer(**profile), "Mobile number is already registered")
    logger.info("Dealer %s created", dealer.id)
    return dealer


def create_salesman(actor: Actor, **profile) -> Salesman:
    require_role(actor, ROLE_OWNER, action="create salesmen")
    salesman = _commit_unique(lambda: add_salesman(**profile), "Mobile number is already registered")
    logger.info("Salesman %s created", salesman.id)
    return salesman


def _update_party(actor: Actor, model, party_id: int, changes: dict):
    label = _PARTY_LABELS[model]
    require_role(actor, ROLE_OWNER, action=f"update {_PARTY_PLURALS[model]}")
    changes = changes or {}

    def _op():
        party = _get_party(model, party_id)
        if "name" in changes:
            party.name = _require_text(changes["name"], "name", 255)
        if "mobile_number" in changes:
            party.mobile_number = _check_mobile(model, changes["mobile_number"], exclude_id=party.id)
        if "warehouse_id" in changes:
            party.warehouse_id = _check_home_warehouse(changes["warehouse_id"])
        for field_name, max_length in _PARTY_TEXT_FIELDS[model].items():
            if field_name in changes:
                setattr(party, field_name, optional_text(changes[field_name], max_length, field_name))
        db.session.flush()
        return party

    party = _commit_unique(_op, "Mobile number is already registered")
    logger.info("%s %s updated", label, party.id)
    return party


def _set_party_status(actor: Actor, model, party_id: int, status: str):
    label = _PARTY_LABELS[model]
    require_choice(status, "status", STATUSES)
    require_role(actor, ROLE_OWNER, action=f"change {label.lower()} status")

    def _op():
        party = _get_party(model, party_id)
        party.status = status
        db.session.flush()
        return party

    party = run_in_transaction(_op)
    logger.info("%s %s status set to %s", label, party.id, status)
    return party


def _delete_party(actor: Actor, model, party_id: int, column_name: str) -> None:
    """Hard delete, refused while any order or return names the party."""
    label = _PARTY_LABELS[model]
    require_role(actor, ROLE_OWNER, action=f"delete {_PARTY_PLURALS[model]}")

    def _op():
        party = _get_party(model, party_id)
        for referencing in (Order, ReturnOrder):
            column = getattr(referencing, column_name)
            if db.session.query(referencing.id).filter(column == party.id).first() is not None:
                raise InvalidState(f"{label} is still referenced; deactivate it instead")
        db.session.delete(party)
        db.session.flush()

    run_in_transaction(_op)
    logger.info("%s %s deleted", label, party_id)


def update_dealer(actor: Actor, dealer_id: int, changes: dict) -> Dealer:
    return _update_party(actor, Dealer, dealer_id, changes)


def set_dealer_status(actor: Actor, dealer_id: int, status: str) -> Dealer:
    """Inactive dealers can neither place nor be named on new orders and returns."""
    return _set_party_status(actor, Dealer, dealer_id, status)


def delete_dealer(actor: Actor, dealer_id: int) -> None:
    _delete_party(actor, Dealer, dealer_id, "dealer_id")


def update_salesman(actor: Actor, salesman_id: int, changes: dict) -> Salesman:
    return _update_party(actor, Salesman, salesman_id, changes)


def set_salesman_status(actor: Actor, salesman_id: int, status: str) -> Salesman:
    return _set_party_status(actor, Salesman, salesman_id, status)


def delete_salesman(actor: Actor, salesman_id: int) -> None:
    _delete_party(actor, Salesman, salesman_id, "salesman_id")


def list_dealers(actor: Actor, status: str | None = None, warehouse_id=None) -> list[Dealer]:
    return _list_parties(actor, Dealer, status, warehouse_id)


def list_salesmen(actor: Actor, status: str | None = None, warehouse_id=None) -> list[Salesman]:
    return _list_parties(actor, Salesman, status, warehouse_id)


def _list_parties(actor: Actor, model, status, warehouse_id):
    """Owner sees every party; a warehouse sees only parties homed with it."""
    require_role(actor, ROLE_OWNER, ROLE_WAREHOUSE, action=f"list {_PARTY_PLURALS[model]}")
    query = db.session.query(model)
    if status:
        query = query.filter(model.status == require_choice(status, "status", STATUSES))
    warehouse_id = effective_warehouse_filter(actor, coerce_int(warehouse_id, "warehouse_id", required=False))
    if warehouse_id is not None:
        query = query.filter(model.warehouse_id == warehouse_id)
    return query.order_by(model.name.asc(), model.id.asc()).all()
