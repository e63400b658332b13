"""
Inventory Ledger

WHY: Quantity on hand per (warehouse, item) is shared by concurrent
adjustments, transfers and return approvals. Every change here is an atomic,
version-checked read-modify-write so no update is ever lost.

RULES:
- An absent record reads as quantity 0.
- set/add/subtract never fail for lack of stock: the result clamps at 0.
  A result of 0 against an absent record writes nothing.
- transfer is strict: a short source fails with InsufficientStock and
  neither side changes.
- Every write appends an InventoryMovement in the same transaction.

CONCURRENCY:
InventoryRecord carries a version_id column, so two writers that read the
same row cannot both commit. The loser gets StaleDataError and the whole
operation is re-run against fresh state (run_in_transaction). Two writers
racing to create the same absent record collide on the (warehouse, item)
UNIQUE constraint and are retried the same way.
"""
from __future__ import annotations

import logging
from datetime import timedelta

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..errors import AccessDenied, InsufficientStock, NotFound, ValidationError
from ..extensions import db
from ..models import InventoryMovement, InventoryRecord, Item, Warehouse
from ..time_utils import utcnow
from ..validation import InventoryUpdate, coerce_int, require_non_negative, require_positive
from .concurrency import lock_for_update, run_in_transaction
from .scope_service import (
    ROLE_OWNER,
    Actor,
    effective_warehouse_filter,
    require_role,
    require_warehouse_access,
    scoped_query,
)

logger = logging.getLogger(__name__)


# Movement reasons
REASON_SET = "set"
REASON_ADD = "add"
REASON_SUBTRACT = "subtract"
REASON_TRANSFER_OUT = "transfer_out"
REASON_TRANSFER_IN = "transfer_in"
REASON_RETURN_APPROVED = "return_approved"
REASON_RETURN_REVERSED = "return_reversed"
REASON_DELETED = "deleted"


# =============================================================================
# INTERNAL HELPERS
# =============================================================================

def _get_record(warehouse_id: int, item_id: int, *, lock: bool = False) -> InventoryRecord | None:
    query = db.session.query(InventoryRecord).filter_by(warehouse_id=warehouse_id, item_id=item_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def _require_warehouse(warehouse_id: int) -> Warehouse:
    warehouse = db.session.get(Warehouse, warehouse_id)
    if warehouse is None:
        raise NotFound(f"Warehouse {warehouse_id} not found")
    return warehouse


def _require_item(item_id: int) -> Item:
    item = db.session.get(Item, item_id)
    if item is None:
        raise NotFound(f"Item {item_id} not found")
    return item


def _record_movement(
    actor: Actor | None,
    warehouse_id: int,
    item_id: int,
    *,
    reason: str,
    change: int,
    after: int,
    reference: str | None = None,
) -> None:
    db.session.add(InventoryMovement(
        warehouse_id=warehouse_id,
        item_id=item_id,
        reason=reason,
        quantity_change=change,
        quantity_after=after,
        actor_role=actor.role if actor else None,
        actor_id=actor.id if actor else None,
        reference=reference,
        occurred_at=utcnow(),
    ))


def _write_quantity(
    actor: Actor | None,
    warehouse_id: int,
    item_id: int,
    new_quantity: int,
    *,
    reason: str,
    reference: str | None = None,
) -> int:
    """
    Upsert the record to new_quantity (already clamped) and log the movement.

    Must run inside a transaction; flushes so version conflicts surface now.
    """
    record = _get_record(warehouse_id, item_id, lock=True)
    current = record.quantity if record else 0

    if record is None:
        if new_quantity == 0:
            return 0
        record = InventoryRecord(warehouse_id=warehouse_id, item_id=item_id, quantity=new_quantity)
        db.session.add(record)
    elif record.quantity == new_quantity:
        return current
    else:
        record.quantity = new_quantity

    db.session.flush()
    _record_movement(
        actor, warehouse_id, item_id,
        reason=reason,
        change=new_quantity - current,
        after=new_quantity,
        reference=reference,
    )
    return new_quantity


def _apply_mode(actor: Actor | None, update: InventoryUpdate, *, reference: str | None = None) -> int:
    record = _get_record(update.warehouse_id, update.item_id, lock=True)
    current = record.quantity if record else 0

    if update.mode == "set":
        target = update.quantity
    elif update.mode == "add":
        target = current + update.quantity
    else:
        target = max(current - update.quantity, 0)

    return _write_quantity(
        actor, update.warehouse_id, update.item_id, target,
        reason=update.mode,
        reference=reference,
    )


def apply_delta(
    actor: Actor | None,
    warehouse_id: int,
    item_id: int,
    delta: int,
    *,
    reason: str,
    reference: str | None = None,
) -> int:
    """
    Add (delta > 0) or subtract (delta < 0) with the ledger's clamp at 0.

    Joins the caller's transaction: used by the return workflow so the
    status change and the stock change commit together.
    """
    record = _get_record(warehouse_id, item_id, lock=True)
    current = record.quantity if record else 0
    target = max(current + delta, 0)
    return _write_quantity(actor, warehouse_id, item_id, target, reason=reason, reference=reference)


def _change(actor: Actor, warehouse_id, item_id, quantity, mode: str) -> int:
    update = InventoryUpdate(
        warehouse_id=coerce_int(warehouse_id, "warehouse_id"),
        item_id=coerce_int(item_id, "item_id"),
        quantity=coerce_int(quantity, "quantity"),
        mode=mode,
    )
    require_warehouse_access(actor, update.warehouse_id)

    def _op():
        _require_warehouse(update.warehouse_id)
        _require_item(update.item_id)
        return _apply_mode(actor, update)

    new_quantity = run_in_transaction(_op, retry_on=(IntegrityError,))
    logger.info(
        "Inventory %s warehouse=%s item=%s qty=%s -> %s by %s",
        mode, update.warehouse_id, update.item_id, update.quantity, new_quantity, actor,
    )
    return new_quantity


# =============================================================================
# ADJUSTMENTS
# =============================================================================

def set_quantity(actor: Actor, warehouse_id: int, item_id: int, quantity: int) -> int:
    """
    Set the quantity on hand to an absolute value.

    Returns:
        int: the stored quantity afterwards

    Raises:
        ValidationError: quantity not a non-negative integer
        AccessDenied: actor may not write this warehouse's stock
        NotFound: warehouse or item does not exist
    """
    return _change(actor, warehouse_id, item_id, quantity, "set")


def add_quantity(actor: Actor, warehouse_id: int, item_id: int, quantity: int) -> int:
    """Increase the quantity on hand; creates the record if absent."""
    return _change(actor, warehouse_id, item_id, quantity, "add")


def subtract_quantity(actor: Actor, warehouse_id: int, item_id: int, quantity: int) -> int:
    """Decrease the quantity on hand, clamping at 0 rather than failing."""
    return _change(actor, warehouse_id, item_id, quantity, "subtract")


def bulk_update(actor: Actor, updates: list[InventoryUpdate]) -> list[dict]:
    """
    Apply many adjustments as one all-or-nothing unit.

    Every entry is validated and access-checked before anything is written;
    any failure while writing rolls back the whole batch.

    Returns:
        list[dict]: one {warehouse_id, item_id, mode, quantity} per entry, in order
    """
    if not updates:
        raise ValidationError("No updates provided")
    for update in updates:
        if not isinstance(update, InventoryUpdate):
            raise ValidationError("Bulk entries must be inventory updates")
        require_warehouse_access(actor, update.warehouse_id)

    def _op():
        results = []
        for update in updates:
            _require_warehouse(update.warehouse_id)
            _require_item(update.item_id)
            new_quantity = _apply_mode(actor, update, reference="bulk")
            results.append({
                "warehouse_id": update.warehouse_id,
                "item_id": update.item_id,
                "mode": update.mode,
                "quantity": new_quantity,
            })
        return results

    results = run_in_transaction(_op, retry_on=(IntegrityError,))
    logger.info("Bulk inventory update of %s entries by %s", len(results), actor)
    return results


# =============================================================================
# TRANSFER
# =============================================================================

def transfer(actor: Actor, from_warehouse_id: int, to_warehouse_id: int, item_id: int, quantity: int) -> dict:
    """
    Move stock between two warehouses atomically.

    The source is checked and decremented first; its version-checked write
    is what serializes concurrent transfers draining the same row. The
    destination is incremented (or created) only after that succeeds.

    Returns:
        dict: {"from_quantity", "to_quantity", ...} after the move

    Raises:
        AccessDenied: actor is not the owner
        ValidationError: bad quantity, or source == destination
        NotFound: a warehouse or the item does not exist
        InsufficientStock: source record absent or short; nothing written
    """
    require_role(actor, ROLE_OWNER, action="transfer inventory")
    from_warehouse_id = coerce_int(from_warehouse_id, "from_warehouse_id")
    to_warehouse_id = coerce_int(to_warehouse_id, "to_warehouse_id")
    item_id = coerce_int(item_id, "item_id")
    quantity = require_positive(coerce_int(quantity, "quantity"), "quantity")
    if from_warehouse_id == to_warehouse_id:
        raise ValidationError("Source and destination warehouses must differ")

    reference = f"transfer:{from_warehouse_id}->{to_warehouse_id}"

    def _op():
        _require_warehouse(from_warehouse_id)
        _require_warehouse(to_warehouse_id)
        _require_item(item_id)

        source = _get_record(from_warehouse_id, item_id, lock=True)
        available = source.quantity if source else 0
        if source is None or available < quantity:
            raise InsufficientStock(
                f"Insufficient quantity in source warehouse: available {available}, requested {quantity}"
            )

        source.quantity = available - quantity
        db.session.flush()
        _record_movement(
            actor, from_warehouse_id, item_id,
            reason=REASON_TRANSFER_OUT, change=-quantity, after=source.quantity, reference=reference,
        )

        destination = _get_record(to_warehouse_id, item_id, lock=True)
        if destination is None:
            destination = InventoryRecord(warehouse_id=to_warehouse_id, item_id=item_id, quantity=quantity)
            db.session.add(destination)
        else:
            destination.quantity = destination.quantity + quantity
        db.session.flush()
        _record_movement(
            actor, to_warehouse_id, item_id,
            reason=REASON_TRANSFER_IN, change=quantity, after=destination.quantity, reference=reference,
        )

        return {
            "from_warehouse_id": from_warehouse_id,
            "to_warehouse_id": to_warehouse_id,
            "item_id": item_id,
            "quantity": quantity,
            "from_quantity": source.quantity,
            "to_quantity": destination.quantity,
        }

    result = run_in_transaction(_op, retry_on=(IntegrityError,))
    logger.info(
        "Transferred %s of item %s from warehouse %s to %s",
        quantity, item_id, from_warehouse_id, to_warehouse_id,
    )
    return result


# =============================================================================
# READS
# =============================================================================

def _check_read_access(actor: Actor, warehouse_id: int) -> None:
    # Dealers and salesmen may read any warehouse's stock to place orders
    if actor.is_warehouse and warehouse_id != actor.id:
        raise AccessDenied(f"Access denied to warehouse {warehouse_id}")


def get_quantity(actor: Actor, warehouse_id: int, item_id: int) -> int:
    """Quantity on hand; 0 when no record exists."""
    warehouse_id = coerce_int(warehouse_id, "warehouse_id")
    item_id = coerce_int(item_id, "item_id")
    _check_read_access(actor, warehouse_id)
    record = _get_record(warehouse_id, item_id)
    return record.quantity if record else 0


def check_availability(actor: Actor, warehouse_id: int, item_id: int, required_quantity: int) -> dict:
    required_quantity = require_non_negative(coerce_int(required_quantity, "quantity"), "quantity")
    current = get_quantity(actor, warehouse_id, item_id)
    return {
        "available": current >= required_quantity,
        "current_quantity": current,
        "required_quantity": required_quantity,
    }


def list_inventory(
    actor: Actor,
    warehouse_id: int | None = None,
    search: str | None = None,
    low_stock: int | None = None,
) -> list[InventoryRecord]:
    """Scoped inventory listing ordered by warehouse then item name."""
    query = (
        scoped_query(actor, InventoryRecord)
        .join(Warehouse, InventoryRecord.warehouse_id == Warehouse.id)
        .join(Item, InventoryRecord.item_id == Item.id)
    )
    warehouse_id = effective_warehouse_filter(actor, warehouse_id)
    if warehouse_id is not None:
        query = query.filter(InventoryRecord.warehouse_id == warehouse_id)
    if low_stock is not None:
        query = query.filter(InventoryRecord.quantity <= low_stock)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Item.name.ilike(pattern), Warehouse.name.ilike(pattern)))
    return query.order_by(Warehouse.name, Item.name).all()


def list_low_stock(actor: Actor, threshold: int | None = None, warehouse_id: int | None = None) -> list[InventoryRecord]:
    """Records at or below threshold for active warehouses and items, lowest first."""
    if threshold is None:
        threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 10)
    threshold = require_non_negative(coerce_int(threshold, "threshold"), "threshold")

    query = (
        scoped_query(actor, InventoryRecord)
        .join(Warehouse, InventoryRecord.warehouse_id == Warehouse.id)
        .join(Item, InventoryRecord.item_id == Item.id)
        .filter(
            InventoryRecord.quantity <= threshold,
            Warehouse.status == "active",
            Item.status == "active",
        )
    )
    warehouse_id = effective_warehouse_filter(actor, warehouse_id)
    if warehouse_id is not None:
        query = query.filter(InventoryRecord.warehouse_id == warehouse_id)
    return query.order_by(InventoryRecord.quantity.asc(), Item.name).all()


def list_movements(actor: Actor, warehouse_id: int, item_id: int, days: int = 30) -> list[InventoryMovement]:
    warehouse_id = coerce_int(warehouse_id, "warehouse_id")
    item_id = coerce_int(item_id, "item_id")
    _check_read_access(actor, warehouse_id)
    since = utcnow() - timedelta(days=require_positive(coerce_int(days, "days"), "days"))
    return (
        scoped_query(actor, InventoryMovement)
        .filter(
            InventoryMovement.warehouse_id == warehouse_id,
            InventoryMovement.item_id == item_id,
            InventoryMovement.occurred_at >= since,
        )
        .order_by(InventoryMovement.occurred_at.desc(), InventoryMovement.id.desc())
        .all()
    )


def delete_inventory_record(actor: Actor, warehouse_id: int, item_id: int) -> None:
    """Remove the (warehouse, item) record entirely; NotFound if there is none."""
    warehouse_id = coerce_int(warehouse_id, "warehouse_id")
    item_id = coerce_int(item_id, "item_id")
    require_warehouse_access(actor, warehouse_id, action="delete inventory")

    def _op():
        record = _get_record(warehouse_id, item_id, lock=True)
        if record is None:
            raise NotFound("Inventory record not found")
        removed = record.quantity
        db.session.delete(record)
        db.session.flush()
        _record_movement(
            actor, warehouse_id, item_id,
            reason=REASON_DELETED, change=-removed, after=0,
        )

    run_in_transaction(_op)
    logger.info("Deleted inventory record warehouse=%s item=%s by %s", warehouse_id, item_id, actor)
