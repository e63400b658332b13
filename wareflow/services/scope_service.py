"""
Authorization Scope Resolver

WHY: Every read and write is narrowed to the rows the acting party may see
or change. Role dispatch lives here once instead of being scattered through
each operation.

SCOPE RULES:
- owner: unrestricted
- warehouse: rows where warehouse_id == actor.id
- dealer: rows where dealer_id == actor.id
- salesman: rows where salesman_id == actor.id

SECURITY INVARIANTS:
1. A row outside the actor's scope is reported exactly like a row that
   does not exist (NotFound), never leaking existence.
2. Capability checks (AccessDenied) are independent of row scoping and run
   before any lookup.
3. List operations only scope the query; they never raise for scope.

USAGE:
    actor = Actor.from_claims("warehouse", 3)
    orders = scoped_query(actor, Order).all()
    order = get_scoped_or_404(actor, Order, order_id, lock=True)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from ..errors import AccessDenied, NotFound, ValidationError
from ..extensions import db
from ..models import InventoryMovement, InventoryRecord, Order, Payment, ReturnOrder
from .concurrency import lock_for_update

logger = logging.getLogger(__name__)


ROLE_OWNER = "owner"
ROLE_WAREHOUSE = "warehouse"
ROLE_DEALER = "dealer"
ROLE_SALESMAN = "salesman"

VALID_ROLES = (ROLE_OWNER, ROLE_WAREHOUSE, ROLE_DEALER, ROLE_SALESMAN)


@dataclass(frozen=True)
class Actor:
    """The authenticated role + identity pair making a request."""
    role: str
    id: int | None = None

    @classmethod
    def from_claims(cls, role, actor_id) -> "Actor":
        """Build an Actor from identity-service claims, trusted verbatim."""
        if role not in VALID_ROLES:
            raise ValidationError(f"Unknown role: {role!r}")
        if actor_id is None or isinstance(actor_id, bool):
            raise ValidationError("Actor id is required")
        try:
            actor_id = int(actor_id)
        except (TypeError, ValueError):
            raise ValidationError("Actor id must be an integer")
        return cls(role=role, id=actor_id)

    @property
    def is_owner(self) -> bool:
        return self.role == ROLE_OWNER

    @property
    def is_warehouse(self) -> bool:
        return self.role == ROLE_WAREHOUSE

    @property
    def is_dealer(self) -> bool:
        return self.role == ROLE_DEALER

    @property
    def is_salesman(self) -> bool:
        return self.role == ROLE_SALESMAN

    def __str__(self) -> str:
        return f"{self.role}:{self.id}"


# Column each non-owner role is pinned to, per scoped model
_SCOPE_COLUMNS = {
    Order: {
        ROLE_WAREHOUSE: Order.warehouse_id,
        ROLE_DEALER: Order.dealer_id,
        ROLE_SALESMAN: Order.salesman_id,
    },
    ReturnOrder: {
        ROLE_WAREHOUSE: ReturnOrder.warehouse_id,
        ROLE_DEALER: ReturnOrder.dealer_id,
        ROLE_SALESMAN: ReturnOrder.salesman_id,
    },
    InventoryRecord: {
        ROLE_WAREHOUSE: InventoryRecord.warehouse_id,
    },
    InventoryMovement: {
        ROLE_WAREHOUSE: InventoryMovement.warehouse_id,
    },
}


def scope_filter(actor: Actor, model):
    """
    Return the SQLAlchemy criterion restricting `model` to the actor's rows.

    None means unrestricted (owner). Payments are scoped through their order.
    Dealers and salesmen have no inventory scope: they may read stock levels
    (catalog availability) but never write them.
    """
    if actor.is_owner:
        return None

    if model is Payment:
        order_criterion = scope_filter(actor, Order)
        return Payment.order_id.in_(db.select(Order.id).where(order_criterion))

    columns = _SCOPE_COLUMNS.get(model)
    if columns is None:
        raise ValueError(f"No scope rule for {model.__name__}")

    column = columns.get(actor.role)
    if column is None:
        return None
    return column == actor.id


def scoped_query(actor: Actor, model):
    """Base query over `model` narrowed to the actor's rows."""
    query = db.session.query(model)
    criterion = scope_filter(actor, model)
    if criterion is not None:
        query = query.filter(criterion)
    return query


def get_scoped_or_404(actor: Actor, model, entity_id, *, lock: bool = False, label: str | None = None):
    """
    Fetch one row by id inside the actor's scope.

    Raises NotFound identically for absent and out-of-scope rows.
    lock=True takes a row lock (FOR UPDATE) for read-modify-write sequences.
    """
    label = label or model.__name__
    query = scoped_query(actor, model).filter(model.id == entity_id)
    if lock:
        query = lock_for_update(query)
    row = query.first()
    if row is None:
        raise NotFound(f"{label} {entity_id} not found")
    return row


def require_role(actor: Actor, *roles: str, action: str) -> None:
    """Capability check: raise AccessDenied unless actor.role is one of roles."""
    if actor.role not in roles:
        logger.warning("Access denied: %s attempted %s", actor, action)
        raise AccessDenied(f"Role {actor.role} may not {action}")


def require_warehouse_access(actor: Actor, warehouse_id: int, *, action: str = "change inventory") -> None:
    """
    Inventory write capability for a specific warehouse.

    owner: any warehouse; warehouse: only its own; dealer/salesman: never.
    """
    require_role(actor, ROLE_OWNER, ROLE_WAREHOUSE, action=action)
    if actor.is_warehouse and warehouse_id != actor.id:
        logger.warning("Access denied: %s attempted to %s for warehouse %s", actor, action, warehouse_id)
        raise AccessDenied(f"Access denied to warehouse {warehouse_id}")


def effective_warehouse_filter(actor: Actor, warehouse_id: int | None) -> int | None:
    """Warehouse actors always see their own warehouse, whatever was asked for."""
    if actor.is_warehouse:
        return actor.id
    return warehouse_id
