from __future__ import annotations

from ..extensions import db
from wareflow.time_utils import to_utc_z, utcnow


class Warehouse(db.Model):
    """
    A stocking location and, at the same time, the warehouse actor.

    The warehouse role's actor id IS the warehouse id, so every
    warehouse-scoped row is filtered by `warehouse_id == actor.id`.
    Warehouses are deactivated, never hard-deleted while referenced.
    """
    __tablename__ = "warehouses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    address = db.Column(db.String(512), nullable=True)
    pincode = db.Column(db.String(16), nullable=True)

    username = db.Column(db.String(64), nullable=False, unique=True)
    # Opaque hash produced by the identity service; never interpreted here
    password_hash = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="active", index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def __repr__(self) -> str:
        return f"<Warehouse id={self.id} name={self.name!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "pincode": self.pincode,
            "username": self.username,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class Dealer(db.Model):
    __tablename__ = "dealers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    agency_name = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(512), nullable=True)
    pincode = db.Column(db.String(16), nullable=True)
    mobile_number = db.Column(db.String(20), nullable=False, unique=True)
    password_hash = db.Column(db.String(255), nullable=True)

    # Home warehouse inherited from the registration code (optional)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=True, index=True)
    status = db.Column(db.String(16), nullable=False, default="active", index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "agency_name": self.agency_name,
            "address": self.address,
            "pincode": self.pincode,
            "mobile_number": self.mobile_number,
            "warehouse_id": self.warehouse_id,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class Salesman(db.Model):
    __tablename__ = "salesmen"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    mobile_number = db.Column(db.String(20), nullable=False, unique=True)
    password_hash = db.Column(db.String(255), nullable=True)

    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=True, index=True)
    status = db.Column(db.String(16), nullable=False, default="active", index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "mobile_number": self.mobile_number,
            "warehouse_id": self.warehouse_id,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class RegistrationCode(db.Model):
    """
    Single-use code that lets a new warehouse/dealer/salesman register.

    Consumed exactly once: `is_used` flips inside the same transaction
    that creates the party row.
    """
    __tablename__ = "registration_codes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(16), nullable=False, unique=True)
    role = db.Column(db.String(16), nullable=False)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=True)

    expires_at = db.Column(db.DateTime, nullable=False)
    is_used = db.Column(db.Boolean, nullable=False, default=False)
    used_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "role": self.role,
            "warehouse_id": self.warehouse_id,
            "expires_at": to_utc_z(self.expires_at),
            "is_used": self.is_used,
            "used_at": to_utc_z(self.used_at),
            "created_at": to_utc_z(self.created_at),
        }
