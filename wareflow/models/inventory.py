from __future__ import annotations

from ..extensions import db
from wareflow.time_utils import to_utc_z, utcnow


class InventoryRecord(db.Model):
    """
    Quantity on hand for one (warehouse, item) pair.

    INVARIANTS:
    - quantity >= 0 (CHECK constraint backs up the service-level rules)
    - An absent row reads as quantity 0
    - Every write is version-checked (version_id_col), so a concurrent
      read-modify-write raises StaleDataError instead of losing an update
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.UniqueConstraint("warehouse_id", "item_id", name="uq_inventory_warehouse_item"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    warehouse = db.relationship("Warehouse")
    item = db.relationship("Item")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryRecord warehouse_id={self.warehouse_id} item_id={self.item_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "warehouse_id": self.warehouse_id,
            "item_id": self.item_id,
            "item_name": self.item.name if self.item else None,
            "warehouse_name": self.warehouse.name if self.warehouse else None,
            "quantity": self.quantity,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryMovement(db.Model):
    """
    Append-only history of ledger changes.

    Written inside the same transaction as the quantity change it records;
    never updated or deleted.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_inventory_movements_wh_item_time", "warehouse_id", "item_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False)

    # set / add / subtract / transfer_out / transfer_in / return_approved / return_reversed / deleted
    reason = db.Column(db.String(32), nullable=False, index=True)
    quantity_change = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)

    actor_role = db.Column(db.String(16), nullable=True)
    actor_id = db.Column(db.Integer, nullable=True)
    reference = db.Column(db.String(64), nullable=True)

    occurred_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "warehouse_id": self.warehouse_id,
            "item_id": self.item_id,
            "reason": self.reason,
            "quantity_change": self.quantity_change,
            "quantity_after": self.quantity_after,
            "actor_role": self.actor_role,
            "actor_id": self.actor_id,
            "reference": self.reference,
            "occurred_at": to_utc_z(self.occurred_at),
        }
