"""
Registration codes

WHY: New warehouses, dealers and salesmen onboard themselves with a
short-lived code issued by the owner. A code is consumed exactly once:
the party row is created and the code is marked used in one transaction.

Codes are logged by id only, never in full.
"""
from __future__ import annotations

import logging
import secrets
import string
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import Conflict, NotFound, ValidationError
from ..extensions import db
from ..models import RegistrationCode, Warehouse
from ..time_utils import utcnow
from ..validation import coerce_int, require_choice
from .catalog_service import add_dealer, add_salesman, add_warehouse
from .concurrency import lock_for_update, run_in_transaction
from .numbering_service import run_numbered_insert
from .scope_service import ROLE_DEALER, ROLE_OWNER, ROLE_SALESMAN, ROLE_WAREHOUSE, Actor, require_role

logger = logging.getLogger(__name__)


CODE_LENGTH = 8
CODE_ALPHABET = string.ascii_uppercase + string.digits
REGISTRABLE_ROLES = (ROLE_WAREHOUSE, ROLE_DEALER, ROLE_SALESMAN)


def _new_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def _normalize(code) -> str:
    if not code or not str(code).strip():
        raise ValidationError("Registration code is required")
    return str(code).strip().upper()


def generate_registration_code(actor: Actor, role: str, warehouse_id: int | None = None) -> RegistrationCode:
    """
    Issue a single-use code for `role`, valid for REGISTRATION_CODE_TTL_HOURS.

    Dealers and salesmen registering with a code tied to a warehouse get
    that warehouse as their home warehouse.
    """
    require_role(actor, ROLE_OWNER, action="generate registration codes")
    require_choice(role, "role", REGISTRABLE_ROLES)
    warehouse_id = coerce_int(warehouse_id, "warehouse_id", required=False)
    ttl_hours = current_app.config.get("REGISTRATION_CODE_TTL_HOURS", 24)

    def _op():
        if warehouse_id is not None and db.session.get(Warehouse, warehouse_id) is None:
            raise NotFound(f"Warehouse {warehouse_id} not found")
        code = _new_code()
        while db.session.query(RegistrationCode.id).filter_by(code=code).first() is not None:
            code = _new_code()
        row = RegistrationCode(
            code=code,
            role=role,
            warehouse_id=warehouse_id,
            expires_at=utcnow() + timedelta(hours=ttl_hours),
            is_used=False,
        )
        db.session.add(row)
        db.session.flush()
        return row

    row = run_numbered_insert(_op, "registration code")
    logger.info("Registration code %s issued for role %s", row.id, role)
    return row


def _usable_code(code: str, *, lock: bool = False) -> RegistrationCode:
    query = db.session.query(RegistrationCode).filter(RegistrationCode.code == code)
    if lock:
        query = lock_for_update(query)
    row = query.first()
    if row is None or row.is_used or row.expires_at <= utcnow():
        raise ValidationError("Invalid or expired registration code")
    return row


def verify_registration_code(code) -> RegistrationCode:
    """Return the code row if it exists, is unused and unexpired."""
    return _usable_code(_normalize(code))


def register_with_code(code, role: str, profile: dict):
    """
    Create the party the code was issued for and consume the code.

    Args:
        code: registration code (case-insensitive)
        role: must match the role the code was issued for
        profile: party fields (name, username or mobile_number, ...);
            password_hash is stored as given

    Returns:
        Warehouse | Dealer | Salesman: the created party

    Raises:
        ValidationError: unknown/used/expired code, role mismatch, missing fields
        Conflict: username or mobile number already registered
    """
    code = _normalize(code)
    require_choice(role, "role", REGISTRABLE_ROLES)
    if not isinstance(profile, dict):
        raise ValidationError("Profile must be an object")

    def _op():
        row = _usable_code(code, lock=True)
        if row.role != role:
            raise ValidationError("Role mismatch")

        if role == ROLE_WAREHOUSE:
            party = add_warehouse(
                profile.get("name"),
                profile.get("username"),
                profile.get("address"),
                profile.get("pincode"),
                profile.get("password_hash"),
            )
        elif role == ROLE_DEALER:
            party = add_dealer(
                name=profile.get("name"),
                mobile_number=profile.get("mobile_number"),
                agency_name=profile.get("agency_name"),
                address=profile.get("address"),
                pincode=profile.get("pincode"),
                warehouse_id=row.warehouse_id,
                password_hash=profile.get("password_hash"),
            )
        else:
            party = add_salesman(
                name=profile.get("name"),
                mobile_number=profile.get("mobile_number"),
                warehouse_id=row.warehouse_id,
                password_hash=profile.get("password_hash"),
            )

        # Version-checked: a concurrent consumer of the same code loses here
        row.is_used = True
        row.used_at = utcnow()
        db.session.flush()
        return party, row.id

    try:
        party, code_id = run_in_transaction(_op)
    except IntegrityError:
        raise Conflict("A party with these details is already registered")
    logger.info("Registered %s %s with code %s", role, party.id, code_id)
    return party


def list_registration_codes(actor: Actor) -> list[RegistrationCode]:
    require_role(actor, ROLE_OWNER, action="list registration codes")
    return db.session.query(RegistrationCode).order_by(RegistrationCode.created_at.desc()).all()


def purge_expired_codes() -> int:
    """Delete every code past its expiry; returns how many were removed."""
    def _op():
        return (
            db.session.query(RegistrationCode)
            .filter(RegistrationCode.expires_at < utcnow())
            .delete(synchronize_session=False)
        )

    removed = run_in_transaction(_op)
    logger.info("Purged %s expired registration codes", removed)
    return removed
