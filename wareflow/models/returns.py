from __future__ import annotations

from ..extensions import db
from wareflow.time_utils import to_utc_z, utcnow


class ReturnOrder(db.Model):
    """
    Single-item return request.

    LIFECYCLE: pending -> approved | rejected; approved -> rejected
    (reverses inventory); rejected -> approved. Approval adds the
    quantity to the warehouse's inventory inside the same transaction.
    """
    __tablename__ = "return_orders"
    __table_args__ = (
        db.Index("ix_return_orders_warehouse_status", "warehouse_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    return_number = db.Column(db.String(32), nullable=False, unique=True)

    original_order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    dealer_id = db.Column(db.Integer, db.ForeignKey("dealers.id"), nullable=True, index=True)
    salesman_id = db.Column(db.Integer, db.ForeignKey("salesmen.id"), nullable=True, index=True)

    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    return_date = db.Column(db.DateTime, nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    item = db.relationship("Item")
    original_order = db.relationship("Order")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_number": self.return_number,
            "original_order_id": self.original_order_id,
            "original_order_number": self.original_order.order_number if self.original_order else None,
            "warehouse_id": self.warehouse_id,
            "dealer_id": self.dealer_id,
            "salesman_id": self.salesman_id,
            "item_id": self.item_id,
            "item_name": self.item.name if self.item else None,
            "quantity": self.quantity,
            "reason": self.reason,
            "status": self.status,
            "return_date": to_utc_z(self.return_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
