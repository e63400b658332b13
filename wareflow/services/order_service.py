"""
Order Lifecycle

WHY: Orders are placed by any of the four roles, carry lines whose prices
are frozen at placement, and then move through a transport state machine.
Once an order leaves 'pending' it is a historical fact.

LIFECYCLE (transport_status):
    pending -> dispatched -> delivered
    pending -> cancelled
    dispatched -> cancelled

PRICE SNAPSHOT:
OrderLine.unit_price_cents is copied from Item.price_cents when the line is
written. Totals are computed from lines only and never rejoin to Item.
"""
from __future__ import annotations

import logging

from ..errors import AccessDenied, InvalidState, NotFound, ServiceError, ValidationError
from ..extensions import db
from ..models import Dealer, Item, Order, OrderLine, Payment, Salesman, Warehouse
from ..time_utils import utcnow
from ..validation import OrderInput, OrderLineInput, coerce_int, parse_order_lines, require_choice
from .concurrency import run_in_transaction
from .numbering_service import next_order_number, run_numbered_insert
from .payment_service import PAYMENT_PENDING, PAYMENT_STATUSES, derive_payment_status, paid_sum
from .scope_service import (
    ROLE_OWNER,
    ROLE_WAREHOUSE,
    Actor,
    get_scoped_or_404,
    require_role,
    scoped_query,
)

logger = logging.getLogger(__name__)


# Transport status constants
TRANSPORT_PENDING = "pending"
TRANSPORT_DISPATCHED = "dispatched"
TRANSPORT_DELIVERED = "delivered"
TRANSPORT_CANCELLED = "cancelled"
TRANSPORT_STATUSES = (TRANSPORT_PENDING, TRANSPORT_DISPATCHED, TRANSPORT_DELIVERED, TRANSPORT_CANCELLED)

TRANSPORT_TRANSITIONS = {
    TRANSPORT_PENDING: {TRANSPORT_DISPATCHED, TRANSPORT_CANCELLED},
    TRANSPORT_DISPATCHED: {TRANSPORT_DELIVERED, TRANSPORT_CANCELLED},
}

# Order type constants
ORDER_TYPE_DIRECT_DEALER = "direct_dealer"
ORDER_TYPE_SALESMAN_FOR_DEALER = "salesman_for_dealer"
ORDER_TYPE_WAREHOUSE_FOR_DEALER = "warehouse_for_dealer"
ORDER_TYPE_OWNER_PLACED = "owner_placed"


# =============================================================================
# INTERNAL HELPERS
# =============================================================================

def _require_active_warehouse(warehouse_id: int) -> Warehouse:
    warehouse = db.session.get(Warehouse, warehouse_id)
    if warehouse is None:
        raise NotFound(f"Warehouse {warehouse_id} not found")
    if not warehouse.is_active:
        raise ValidationError(f"Warehouse {warehouse_id} is inactive")
    return warehouse


def _require_party(model, party_id: int, label: str):
    party = db.session.get(model, party_id)
    if party is None:
        raise NotFound(f"{label} {party_id} not found")
    if not party.is_active:
        raise ValidationError(f"{label} {party_id} is inactive")
    return party


def _resolve_parties(actor: Actor, data: OrderInput) -> tuple[int, int | None, int | None, str]:
    """
    Apply the per-role placement rules.

    Returns:
        (warehouse_id, dealer_id, salesman_id, order_type)
    """
    warehouse_id, dealer_id, salesman_id = data.warehouse_id, data.dealer_id, data.salesman_id

    if actor.is_owner:
        if warehouse_id is None:
            raise ValidationError("warehouse_id is required")
        if dealer_id is None and salesman_id is None:
            raise ValidationError("Either dealer_id or salesman_id is required")
        order_type = ORDER_TYPE_OWNER_PLACED

    elif actor.is_warehouse:
        if warehouse_id is not None and warehouse_id != actor.id:
            raise AccessDenied("Warehouses may only place orders on their own stock")
        warehouse_id = actor.id
        if dealer_id is None:
            raise ValidationError("dealer_id is required")
        order_type = ORDER_TYPE_WAREHOUSE_FOR_DEALER

    elif actor.is_dealer:
        if dealer_id is not None and dealer_id != actor.id:
            raise AccessDenied("Dealers may only place orders for themselves")
        if salesman_id is not None:
            raise ValidationError("Dealer orders cannot name a salesman")
        dealer_id = actor.id
        if warehouse_id is None:
            raise ValidationError("warehouse_id is required")
        order_type = ORDER_TYPE_DIRECT_DEALER

    else:
        if salesman_id is not None and salesman_id != actor.id:
            raise AccessDenied("Salesmen may only place orders as themselves")
        salesman_id = actor.id
        if dealer_id is None:
            raise ValidationError("dealer_id is required")
        if warehouse_id is None:
            raise ValidationError("warehouse_id is required")
        order_type = ORDER_TYPE_SALESMAN_FOR_DEALER

    return warehouse_id, dealer_id, salesman_id, order_type


def _build_lines(lines: list[OrderLineInput]) -> tuple[list[OrderLine], int]:
    """Snapshot current item prices into new OrderLine rows; returns (lines, total)."""
    built = []
    total = 0
    for line in lines:
        item = db.session.get(Item, line.item_id)
        if item is None:
            raise ValidationError(f"Item {line.item_id} not found")
        if not item.is_active:
            raise ValidationError(f"Item {line.item_id} is not active")

        line_total = item.price_cents * line.quantity
        built.append(OrderLine(
            item_id=item.id,
            quantity=line.quantity,
            unit_price_cents=item.price_cents,
            line_total_cents=line_total,
        ))
        total += line_total
    return built, total


# =============================================================================
# CREATE / UPDATE / DELETE
# =============================================================================

def create_order(actor: Actor, data: OrderInput) -> Order:
    """
    Place a new order.

    Args:
        actor: placing party; role decides which of warehouse/dealer/salesman
            may be supplied and which are forced to the actor's own id
        data: validated order input (non-empty lines of positive quantities)

    Returns:
        Order: the persisted order with its lines

    Raises:
        ValidationError: missing party, unknown/inactive item, inactive warehouse
        AccessDenied: actor named a party it may not act for
        NotFound: warehouse, dealer or salesman does not exist
        Conflict: no unique order number could be allocated
    """
    if not isinstance(data, OrderInput):
        raise ValidationError("Invalid order input")

    warehouse_id, dealer_id, salesman_id, order_type = _resolve_parties(actor, data)

    def _op():
        _require_active_warehouse(warehouse_id)
        if dealer_id is not None:
            _require_party(Dealer, dealer_id, "Dealer")
        if salesman_id is not None:
            _require_party(Salesman, salesman_id, "Salesman")

        lines, total = _build_lines(data.lines)

        order = Order(
            order_number=next_order_number(),
            warehouse_id=warehouse_id,
            dealer_id=dealer_id,
            salesman_id=salesman_id,
            order_type=order_type,
            placed_by_role=actor.role,
            placed_by_id=actor.id,
            total_amount_cents=total,
            transport_status=TRANSPORT_PENDING,
            payment_status=PAYMENT_PENDING,
            order_date=utcnow(),
        )
        order.lines = lines
        db.session.add(order)
        db.session.flush()
        return order

    order = run_numbered_insert(_op, "order")
    logger.info("Order %s created by %s (total_cents=%s)", order.order_number, actor, order.total_amount_cents)
    return order


def update_order(
    actor: Actor,
    order_id: int,
    lines,
    dealer_id: int | None = None,
    salesman_id: int | None = None,
) -> Order:
    """
    Replace a pending order's lines (fresh price snapshots) and recompute its total.

    The derived payment status is re-evaluated against the new total in the
    same transaction.
    """
    if not (isinstance(lines, list) and all(isinstance(line, OrderLineInput) for line in lines)):
        lines = parse_order_lines(lines)
    if not lines:
        raise ValidationError("Order requires a non-empty list of lines")

    def _op():
        order = get_scoped_or_404(actor, Order, order_id, lock=True, label="Order")
        if order.transport_status != TRANSPORT_PENDING:
            raise InvalidState(f"Cannot modify order in {order.transport_status} status")

        if dealer_id is not None:
            if actor.is_dealer and dealer_id != actor.id:
                raise AccessDenied("Dealers may only place orders for themselves")
            _require_party(Dealer, dealer_id, "Dealer")
            order.dealer_id = dealer_id
        if salesman_id is not None:
            if actor.is_dealer:
                raise ValidationError("Dealer orders cannot name a salesman")
            if actor.is_salesman and salesman_id != actor.id:
                raise AccessDenied("Salesmen may only place orders as themselves")
            _require_party(Salesman, salesman_id, "Salesman")
            order.salesman_id = salesman_id

        new_lines, total = _build_lines(lines)
        # delete-orphan cascade removes the old lines on flush
        order.lines = new_lines
        order.total_amount_cents = total
        order.payment_status = derive_payment_status(paid_sum(order.id), total)
        db.session.flush()
        return order

    order = run_in_transaction(_op)
    logger.info("Order %s lines replaced by %s (total_cents=%s)", order.order_number, actor, order.total_amount_cents)
    return order


def delete_order(actor: Actor, order_id: int) -> None:
    """Delete a pending order with no payments; lines go first, then the header."""
    def _op():
        order = get_scoped_or_404(actor, Order, order_id, lock=True, label="Order")
        if order.transport_status != TRANSPORT_PENDING:
            raise InvalidState(f"Cannot delete order in {order.transport_status} status")
        has_payments = db.session.query(Payment.id).filter(Payment.order_id == order.id).first()
        if has_payments is not None:
            raise InvalidState("Cannot delete an order that has payments")

        # delete-orphan cascade removes the lines before the header
        db.session.delete(order)
        db.session.flush()
        return order.order_number

    order_number = run_in_transaction(_op)
    logger.info("Order %s deleted by %s", order_number, actor)


# =============================================================================
# STATUS CHANGES
# =============================================================================

def _check_status_request(actor: Actor, transport_status: str | None, payment_status: str | None) -> None:
    """Value and capability checks for a status change; runs before any lookup."""
    if transport_status is None and payment_status is None:
        raise ValidationError("transport_status or payment_status is required")

    if transport_status is not None:
        require_choice(transport_status, "transport_status", TRANSPORT_STATUSES)
        if actor.is_salesman:
            raise AccessDenied("Salesmen cannot change transport status")
        if actor.is_dealer and transport_status != TRANSPORT_DELIVERED:
            raise AccessDenied("Dealers can only mark orders as delivered")

    if payment_status is not None:
        require_choice(payment_status, "payment_status", PAYMENT_STATUSES)
        require_role(actor, ROLE_OWNER, ROLE_WAREHOUSE, action="override payment status")


def _apply_status(actor: Actor, order_id: int, transport_status: str | None, payment_status: str | None):
    """Apply both halves of a status change to one order; joins the caller's transaction."""
    order = get_scoped_or_404(actor, Order, order_id, lock=True, label="Order")
    previous = order.transport_status

    if transport_status is not None:
        if transport_status not in TRANSPORT_TRANSITIONS.get(previous, set()):
            raise InvalidState(f"Cannot change transport status from {previous} to {transport_status}")
        order.transport_status = transport_status
        now = utcnow()
        if transport_status == TRANSPORT_DISPATCHED:
            order.dispatch_date = now
        elif transport_status == TRANSPORT_DELIVERED:
            order.delivery_date = now

    if payment_status is not None:
        order.payment_status = payment_status

    db.session.flush()
    return order, previous


def _log_status_change(order: Order, previous: str, transport_status, payment_status, actor: Actor) -> None:
    if transport_status is not None:
        logger.info("Order %s transport %s -> %s by %s", order.order_number, previous, transport_status, actor)
    if payment_status is not None:
        logger.info("Order %s payment status overridden to %s by %s", order.order_number, payment_status, actor)


def update_order_status(
    actor: Actor,
    order_id: int,
    transport_status: str | None = None,
    payment_status: str | None = None,
) -> Order:
    """
    Change transport status, override payment status, or both, atomically.

    Every value and capability check runs before the transaction opens, so
    a request that fails on either half changes nothing.

    Raises:
        ValidationError: neither field given, or an unknown status value
        AccessDenied: salesman moving transport, dealer asking for anything
            but 'delivered', or a non owner/warehouse overriding payment
        NotFound: order absent or outside the actor's scope
        InvalidState: transport transition not allowed from the current status
    """
    _check_status_request(actor, transport_status, payment_status)
    order, previous = run_in_transaction(lambda: _apply_status(actor, order_id, transport_status, payment_status))
    _log_status_change(order, previous, transport_status, payment_status, actor)
    return order


def update_transport_status(actor: Actor, order_id: int, status: str) -> Order:
    """
    Move an order along the transport state machine.

    Checks run in a fixed order: target value, role capability, scoped
    lookup, then the transition itself.
    """
    if status is None:
        raise ValidationError("status is required")
    return update_order_status(actor, order_id, transport_status=status)


def set_payment_status(actor: Actor, order_id: int, status: str) -> Order:
    """
    Directly override the derived payment status.

    The next payment mutation on the order recomputes it from the payment set.
    """
    if status is None:
        raise ValidationError("payment_status is required")
    return update_order_status(actor, order_id, payment_status=status)


def bulk_update_order_status(
    actor: Actor,
    order_ids,
    transport_status: str | None = None,
    payment_status: str | None = None,
) -> dict:
    """
    Apply one status change to many orders, each in its own transaction.

    Values and capabilities are checked once up front; per-order failures
    (scope, transition) are reported without undoing the others.

    Returns:
        dict: {"updated": [ids], "errors": [{"id", "error", "code"}]}
    """
    _check_status_request(actor, transport_status, payment_status)
    if not isinstance(order_ids, list) or not order_ids:
        raise ValidationError("order_ids must be a non-empty list")
    ids = [coerce_int(raw, "order_id") for raw in order_ids]

    updated, errors = [], []
    for order_id in ids:
        try:
            order, previous = run_in_transaction(
                lambda oid=order_id: _apply_status(actor, oid, transport_status, payment_status)
            )
        except ServiceError as e:
            errors.append({"id": order_id, "error": e.message, "code": e.code})
        else:
            _log_status_change(order, previous, transport_status, payment_status, actor)
            updated.append(order_id)
    return {"updated": updated, "errors": errors}


# =============================================================================
# READS
# =============================================================================

def get_order(actor: Actor, order_id: int) -> Order:
    return get_scoped_or_404(actor, Order, order_id, label="Order")


def list_orders(actor: Actor, filters: dict | None = None) -> list[Order]:
    """Scoped order listing, newest first."""
    filters = filters or {}
    query = scoped_query(actor, Order)

    for key, column in (
        ("warehouse_id", Order.warehouse_id),
        ("dealer_id", Order.dealer_id),
        ("salesman_id", Order.salesman_id),
    ):
        value = coerce_int(filters.get(key), key, required=False)
        if value is not None:
            query = query.filter(column == value)

    for key, column in (
        ("order_type", Order.order_type),
        ("transport_status", Order.transport_status),
        ("payment_status", Order.payment_status),
    ):
        if filters.get(key):
            query = query.filter(column == filters[key])

    search = filters.get("search")
    if search:
        query = query.filter(Order.order_number.ilike(f"%{search}%"))

    return query.order_by(Order.order_date.desc(), Order.id.desc()).all()


def can_modify_order(actor: Actor, order_id: int) -> tuple[bool, str | None]:
    """Whether the order's header and lines may still change, with the reason if not."""
    try:
        order = get_order(actor, order_id)
    except ServiceError as e:
        return False, e.message
    if order.transport_status != TRANSPORT_PENDING:
        return False, f"Cannot modify order in {order.transport_status} status"
    return True, None
