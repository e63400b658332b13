from __future__ import annotations

from ..extensions import db
from wareflow.time_utils import to_utc_z, utcnow


class Order(db.Model):
    """
    Order header.

    - total_amount_cents is always the sum of its lines' line_total_cents
    - payment_status is derived from the payment set (see payment_service)
    - Once transport_status leaves 'pending' the header and lines are
      historical facts; only payment_status and timestamps move after that
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_warehouse_transport", "warehouse_id", "transport_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True)

    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    dealer_id = db.Column(db.Integer, db.ForeignKey("dealers.id"), nullable=True, index=True)
    salesman_id = db.Column(db.Integer, db.ForeignKey("salesmen.id"), nullable=True, index=True)

    # direct_dealer / salesman_for_dealer / warehouse_for_dealer / owner_placed
    order_type = db.Column(db.String(32), nullable=False)
    placed_by_role = db.Column(db.String(16), nullable=False)
    placed_by_id = db.Column(db.Integer, nullable=True)

    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    transport_status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    order_date = db.Column(db.DateTime, nullable=False, default=utcnow)
    dispatch_date = db.Column(db.DateTime, nullable=True)
    delivery_date = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    lines = db.relationship(
        "OrderLine",
        backref="order",
        lazy=True,
        order_by="OrderLine.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} transport={self.transport_status}>"

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "warehouse_id": self.warehouse_id,
            "dealer_id": self.dealer_id,
            "salesman_id": self.salesman_id,
            "order_type": self.order_type,
            "placed_by_role": self.placed_by_role,
            "placed_by_id": self.placed_by_id,
            "total_amount_cents": self.total_amount_cents,
            "transport_status": self.transport_status,
            "payment_status": self.payment_status,
            "order_date": to_utc_z(self.order_date),
            "dispatch_date": to_utc_z(self.dispatch_date),
            "delivery_date": to_utc_z(self.delivery_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class OrderLine(db.Model):
    """Order line with the item price frozen at order time."""
    __tablename__ = "order_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    item = db.relationship("Item")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "item_id": self.item_id,
            "item_name": self.item.name if self.item else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
