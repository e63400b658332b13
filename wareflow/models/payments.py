from __future__ import annotations

from ..extensions import db
from wareflow.time_utils import to_iso_date, to_utc_z, utcnow


class Payment(db.Model):
    """
    Payment recorded against an order.

    Payments are many-to-one with orders. Only rows with status 'paid'
    count toward the order's derived payment_status.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_order_status", "order_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    # cash / cheque / bank_transfer / upi / card / other
    method = db.Column(db.String(32), nullable=False)
    # pending / paid / failed
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    transaction_id = db.Column(db.String(128), nullable=True)
    payment_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    order = db.relationship("Order", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "order_number": self.order.order_number if self.order else None,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "status": self.status,
            "transaction_id": self.transaction_id,
            "payment_date": to_iso_date(self.payment_date),
            "due_date": to_iso_date(self.due_date),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
