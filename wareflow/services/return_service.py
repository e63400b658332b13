"""
Return Workflow

WHY: Goods returned by dealers and salesmen flow back into a warehouse's
stock, but only once a warehouse or the owner approves the return. The
status change and the inventory change always commit together.

LIFECYCLE:
    pending  -> approved   (stock += quantity)
    pending  -> rejected
    approved -> rejected   (stock -= quantity, clamped at 0)
    rejected -> approved   (stock += quantity)

Anything else, including a repeated approval, is InvalidState: the stock
effect of an approval is applied exactly once. Item and quantity are only
editable while the return is pending.
"""
from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import AccessDenied, InvalidState, NotFound, ServiceError, ValidationError
from ..extensions import db
from ..models import Dealer, Item, Order, ReturnOrder, Salesman, Warehouse
from ..time_utils import utcnow
from ..validation import ReturnInput, coerce_int, require_choice
from .concurrency import run_in_transaction
from .inventory_service import REASON_RETURN_APPROVED, REASON_RETURN_REVERSED, apply_delta
from .numbering_service import next_return_number, run_numbered_insert
from .scope_service import (
    ROLE_OWNER,
    ROLE_WAREHOUSE,
    Actor,
    get_scoped_or_404,
    require_role,
    scoped_query,
)

logger = logging.getLogger(__name__)


# Return status constants
RETURN_PENDING = "pending"
RETURN_APPROVED = "approved"
RETURN_REJECTED = "rejected"
RETURN_STATUSES = (RETURN_PENDING, RETURN_APPROVED, RETURN_REJECTED)

RETURN_TRANSITIONS = {
    RETURN_PENDING: {RETURN_APPROVED, RETURN_REJECTED},
    RETURN_APPROVED: {RETURN_REJECTED},
    RETURN_REJECTED: {RETURN_APPROVED},
}


def _resolve_parties(actor: Actor, data: ReturnInput) -> tuple[int, int | None, int | None]:
    warehouse_id, dealer_id, salesman_id = data.warehouse_id, data.dealer_id, data.salesman_id

    if actor.is_warehouse:
        if warehouse_id is not None and warehouse_id != actor.id:
            raise AccessDenied("Warehouses may only accept returns into their own stock")
        warehouse_id = actor.id
    elif actor.is_dealer:
        if dealer_id is not None and dealer_id != actor.id:
            raise AccessDenied("Dealers may only file returns for themselves")
        dealer_id = actor.id
    elif actor.is_salesman:
        if salesman_id is not None and salesman_id != actor.id:
            raise AccessDenied("Salesmen may only file returns as themselves")
        salesman_id = actor.id

    if warehouse_id is None:
        raise ValidationError("warehouse_id is required")
    if dealer_id is None and salesman_id is None:
        raise ValidationError("Either dealer_id or salesman_id is required")
    return warehouse_id, dealer_id, salesman_id


def _require_active_party(model, party_id: int, label: str) -> None:
    party = db.session.get(model, party_id)
    if party is None:
        raise NotFound(f"{label} {party_id} not found")
    if not party.is_active:
        raise ValidationError(f"{label} {party_id} is inactive")


def _check_references(actor: Actor, warehouse_id, dealer_id, salesman_id, item_id, original_order_id) -> None:
    if db.session.get(Warehouse, warehouse_id) is None:
        raise NotFound(f"Warehouse {warehouse_id} not found")
    if dealer_id is not None:
        _require_active_party(Dealer, dealer_id, "Dealer")
    if salesman_id is not None:
        _require_active_party(Salesman, salesman_id, "Salesman")
    if db.session.get(Item, item_id) is None:
        raise NotFound(f"Item {item_id} not found")
    if original_order_id is not None:
        get_scoped_or_404(actor, Order, original_order_id, label="Order")


# =============================================================================
# CREATE / UPDATE / DELETE
# =============================================================================

def create_return(actor: Actor, data: ReturnInput) -> ReturnOrder:
    """
    File a new return request (status: pending).

    Args:
        actor: any role; dealer/salesman actors are bound to their own id and
            a warehouse actor to its own warehouse
        data: validated return input

    Returns:
        ReturnOrder: the persisted return

    Raises:
        ValidationError: missing warehouse, or neither dealer nor salesman
        AccessDenied: actor named a party it may not act for
        NotFound: a referenced warehouse/party/item/order does not exist or
            the original order is outside the actor's scope
    """
    if not isinstance(data, ReturnInput):
        raise ValidationError("Invalid return input")
    warehouse_id, dealer_id, salesman_id = _resolve_parties(actor, data)

    def _op():
        _check_references(actor, warehouse_id, dealer_id, salesman_id, data.item_id, data.original_order_id)
        return_order = ReturnOrder(
            return_number=next_return_number(),
            original_order_id=data.original_order_id,
            warehouse_id=warehouse_id,
            dealer_id=dealer_id,
            salesman_id=salesman_id,
            item_id=data.item_id,
            quantity=data.quantity,
            reason=data.reason,
            status=RETURN_PENDING,
            return_date=utcnow(),
        )
        db.session.add(return_order)
        db.session.flush()
        return return_order

    return_order = run_numbered_insert(_op, "return")
    logger.info("Return %s created by %s", return_order.return_number, actor)
    return return_order


def update_return(actor: Actor, return_id: int, data: ReturnInput) -> ReturnOrder:
    """Edit item, quantity, reason or original order while the return is pending."""
    if not isinstance(data, ReturnInput):
        raise ValidationError("Invalid return input")

    def _op():
        return_order = get_scoped_or_404(actor, ReturnOrder, return_id, lock=True, label="Return")
        if return_order.status != RETURN_PENDING:
            raise InvalidState(f"Cannot modify return in {return_order.status} status")

        _check_references(
            actor,
            return_order.warehouse_id,
            return_order.dealer_id,
            return_order.salesman_id,
            data.item_id,
            data.original_order_id,
        )
        return_order.item_id = data.item_id
        return_order.quantity = data.quantity
        return_order.reason = data.reason
        return_order.original_order_id = data.original_order_id
        db.session.flush()
        return return_order

    return_order = run_in_transaction(_op)
    logger.info("Return %s updated by %s", return_order.return_number, actor)
    return return_order


def delete_return(actor: Actor, return_id: int) -> None:
    def _op():
        return_order = get_scoped_or_404(actor, ReturnOrder, return_id, lock=True, label="Return")
        if return_order.status == RETURN_APPROVED:
            raise InvalidState("Cannot delete an approved return")
        number = return_order.return_number
        db.session.delete(return_order)
        db.session.flush()
        return number

    number = run_in_transaction(_op)
    logger.info("Return %s deleted by %s", number, actor)


# =============================================================================
# STATUS CHANGES
# =============================================================================

def _apply_status(actor: Actor, return_id: int, status: str) -> ReturnOrder:
    """Transition one return and apply its stock effect; joins the caller's transaction."""
    return_order = get_scoped_or_404(actor, ReturnOrder, return_id, lock=True, label="Return")
    current = return_order.status
    if status not in RETURN_TRANSITIONS.get(current, set()):
        raise InvalidState(f"Cannot change return status from {current} to {status}")

    if status == RETURN_APPROVED:
        apply_delta(
            actor, return_order.warehouse_id, return_order.item_id, return_order.quantity,
            reason=REASON_RETURN_APPROVED, reference=return_order.return_number,
        )
    elif current == RETURN_APPROVED:
        apply_delta(
            actor, return_order.warehouse_id, return_order.item_id, -return_order.quantity,
            reason=REASON_RETURN_REVERSED, reference=return_order.return_number,
        )

    return_order.status = status
    db.session.flush()
    logger.info("Return %s %s -> %s by %s", return_order.return_number, current, status, actor)
    return return_order


def update_return_status(actor: Actor, return_id: int, status: str) -> ReturnOrder:
    """
    Approve or reject a return, moving stock in the same transaction.

    Raises:
        ValidationError: status is not a return status
        AccessDenied: dealer or salesman
        NotFound: return absent or outside the actor's scope
        InvalidState: transition not allowed (e.g. approving twice)
    """
    require_choice(status, "status", RETURN_STATUSES)
    require_role(actor, ROLE_OWNER, ROLE_WAREHOUSE, action="change return status")
    return run_in_transaction(lambda: _apply_status(actor, return_id, status), retry_on=(IntegrityError,))


def bulk_update_return_status(actor: Actor, return_ids, status: str) -> dict:
    """
    Apply one status to many returns, each in its own transaction.

    A failure on one id does not undo the others.

    Returns:
        dict: {"updated": [ids], "errors": [{"id", "error", "code"}]}
    """
    require_choice(status, "status", RETURN_STATUSES)
    require_role(actor, ROLE_OWNER, ROLE_WAREHOUSE, action="change return status")
    if not isinstance(return_ids, list) or not return_ids:
        raise ValidationError("return_ids must be a non-empty list")
    ids = [coerce_int(raw, "return_id") for raw in return_ids]

    updated, errors = [], []
    for return_id in ids:
        try:
            run_in_transaction(lambda rid=return_id: _apply_status(actor, rid, status), retry_on=(IntegrityError,))
        except ServiceError as e:
            errors.append({"id": return_id, "error": e.message, "code": e.code})
        else:
            updated.append(return_id)
    return {"updated": updated, "errors": errors}


# =============================================================================
# READS
# =============================================================================

def get_return(actor: Actor, return_id: int) -> ReturnOrder:
    return get_scoped_or_404(actor, ReturnOrder, return_id, label="Return")


def list_returns(actor: Actor, filters: dict | None = None) -> list[ReturnOrder]:
    filters = filters or {}
    query = scoped_query(actor, ReturnOrder)

    for key, column in (
        ("warehouse_id", ReturnOrder.warehouse_id),
        ("dealer_id", ReturnOrder.dealer_id),
        ("salesman_id", ReturnOrder.salesman_id),
        ("item_id", ReturnOrder.item_id),
        ("original_order_id", ReturnOrder.original_order_id),
    ):
        value = coerce_int(filters.get(key), key, required=False)
        if value is not None:
            query = query.filter(column == value)

    if filters.get("status"):
        query = query.filter(ReturnOrder.status == require_choice(filters["status"], "status", RETURN_STATUSES))
    if filters.get("search"):
        query = query.filter(ReturnOrder.return_number.ilike(f"%{filters['search']}%"))

    return query.order_by(ReturnOrder.return_date.desc(), ReturnOrder.id.desc()).all()


def list_returns_for_order(actor: Actor, order_id: int) -> list[ReturnOrder]:
    """Returns filed against an order; NotFound if the order itself is not visible."""
    order = get_scoped_or_404(actor, Order, order_id, label="Order")
    return (
        scoped_query(actor, ReturnOrder)
        .filter(ReturnOrder.original_order_id == order.id)
        .order_by(ReturnOrder.id.asc())
        .all()
    )


def returnable_items(actor: Actor, order_id: int) -> list[dict]:
    """
    Per item of an order: ordered quantity minus what has already come back.

    Every non-rejected return filed against the order counts, whoever filed
    it. Items with nothing left to return are omitted.
    """
    order = get_scoped_or_404(actor, Order, order_id, label="Order")

    ordered: dict[int, dict] = {}
    for line in order.lines:
        entry = ordered.setdefault(line.item_id, {
            "item_id": line.item_id,
            "item_name": line.item.name if line.item else None,
            "unit_price_cents": line.unit_price_cents,
            "ordered_quantity": 0,
        })
        entry["ordered_quantity"] += line.quantity

    returned = dict(
        db.session.query(ReturnOrder.item_id, func.coalesce(func.sum(ReturnOrder.quantity), 0))
        .filter(
            ReturnOrder.original_order_id == order.id,
            ReturnOrder.status != RETURN_REJECTED,
        )
        .group_by(ReturnOrder.item_id)
        .all()
    )

    result = []
    for item_id, entry in ordered.items():
        already = int(returned.get(item_id, 0))
        remaining = entry["ordered_quantity"] - already
        if remaining > 0:
            result.append({**entry, "returned_quantity": already, "returnable_quantity": remaining})
    return result
