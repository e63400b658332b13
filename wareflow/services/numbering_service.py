# Overview: Unique human-readable numbers for orders and returns.

from __future__ import annotations

import secrets
import time

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import Conflict, StoreContention
from ..extensions import db
from ..models import Order, ReturnOrder
from .concurrency import run_in_transaction


def _candidate(prefix: str) -> str:
    # <prefix>-<last 6 digits of epoch ms><4 random digits>
    stamp = str(int(time.time() * 1000))[-6:]
    suffix = f"{secrets.randbelow(10_000):04d}"
    return f"{prefix}-{stamp}{suffix}"


def _next_unique_number(column, prefix: str) -> str:
    """
    Pick a number not yet present in `column`.

    The UNIQUE constraint is still the final arbiter: a concurrent insert of
    the same number surfaces as IntegrityError and the caller's transaction
    is retried from the top (see run_numbered_insert).
    """
    attempts = current_app.config.get("DOCUMENT_NUMBER_ATTEMPTS", 5)
    for _ in range(attempts):
        candidate = _candidate(prefix)
        taken = db.session.query(column).filter(column == candidate).first()
        if taken is None:
            return candidate
    raise Conflict(f"Could not allocate a unique {prefix} number")


def next_order_number() -> str:
    return _next_unique_number(Order.order_number, current_app.config.get("ORDER_NUMBER_PREFIX", "ORD"))


def next_return_number() -> str:
    return _next_unique_number(ReturnOrder.return_number, current_app.config.get("RETURN_NUMBER_PREFIX", "RET"))


def run_numbered_insert(func, label: str):
    """
    Run an insert that allocates a document number, retrying on collisions.

    Raises:
        Conflict: every attempt collided on the UNIQUE number constraint
    """
    try:
        return run_in_transaction(func, retry_on=(IntegrityError,))
    except StoreContention as exc:
        if isinstance(exc.__cause__, IntegrityError):
            raise Conflict(f"Could not allocate a unique {label} number") from exc.__cause__
        raise
