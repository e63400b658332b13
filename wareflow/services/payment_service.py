"""
Payment Reconciliation

WHY: An order's payment_status must always reflect its current payment set.
Every payment mutation locks the order row and recomputes the status from
scratch inside the same transaction, so the result does not depend on the
order in which payments were recorded, edited or removed.

DERIVATION:
- sum of 'paid' payments == 0          -> pending
- sum >= order total                   -> paid
- otherwise                            -> partial
"""
from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import Order, Payment
from ..validation import (
    PAYMENT_METHODS,
    PAYMENT_RECORD_STATUSES,
    PaymentInput,
    coerce_int,
    require_choice,
)
from .concurrency import run_in_transaction
from .scope_service import (
    ROLE_OWNER,
    ROLE_WAREHOUSE,
    Actor,
    get_scoped_or_404,
    require_role,
    scoped_query,
)

logger = logging.getLogger(__name__)


# Order payment status constants
PAYMENT_PENDING = "pending"
PAYMENT_PARTIAL = "partial"
PAYMENT_PAID = "paid"
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_PARTIAL, PAYMENT_PAID)

# Payment record status constants
RECORD_PENDING = "pending"
RECORD_PAID = "paid"
RECORD_FAILED = "failed"


# =============================================================================
# DERIVATION
# =============================================================================

def derive_payment_status(paid_sum_cents: int, total_cents: int) -> str:
    """Pure mapping from (sum of paid payments, order total) to payment status."""
    if paid_sum_cents <= 0:
        return PAYMENT_PENDING
    if paid_sum_cents >= total_cents:
        return PAYMENT_PAID
    return PAYMENT_PARTIAL


def paid_sum(order_id: int) -> int:
    return (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(Payment.order_id == order_id, Payment.status == RECORD_PAID)
        .scalar()
    ) or 0


def recompute_order_payment_status(order_id: int) -> str:
    """
    Re-derive and store the order's payment_status from its current payments.

    Idempotent. Joins the caller's transaction; the caller is expected to
    hold the order row lock.
    """
    order = db.session.get(Order, order_id)
    db.session.flush()
    status = derive_payment_status(paid_sum(order_id), order.total_amount_cents)
    if order.payment_status != status:
        logger.info("Order %s payment %s -> %s", order.order_number, order.payment_status, status)
        order.payment_status = status
        db.session.flush()
    return status


def _require_payment_writer(actor: Actor, action: str) -> None:
    require_role(actor, ROLE_OWNER, ROLE_WAREHOUSE, action=action)


def _lock_order(actor: Actor, order_id: int) -> Order:
    return get_scoped_or_404(actor, Order, order_id, lock=True, label="Order")


def _lock_payment(actor: Actor, payment_id: int) -> Payment:
    """Resolve the payment, then lock its order before anything is changed."""
    payment = get_scoped_or_404(actor, Payment, payment_id, label="Payment")
    _lock_order(actor, payment.order_id)
    return payment


# =============================================================================
# MUTATIONS
# =============================================================================

def record_payment(actor: Actor, data: PaymentInput) -> Payment:
    """
    Record a payment against an order and recompute the order's status.

    Args:
        actor: owner, or the warehouse that owns the order
        data: validated payment input; order_id is required

    Returns:
        Payment: the persisted payment

    Raises:
        AccessDenied: dealer or salesman
        ValidationError: missing order_id
        NotFound: order absent or outside the actor's scope
    """
    _require_payment_writer(actor, "record payments")
    if data.order_id is None:
        raise ValidationError("order_id is required")

    def _op():
        order = _lock_order(actor, data.order_id)
        payment = Payment(
            order_id=order.id,
            amount_cents=data.amount_cents,
            method=data.method,
            status=data.status,
            transaction_id=data.transaction_id,
            payment_date=data.payment_date or date.today(),
            due_date=data.due_date,
            notes=data.notes,
        )
        db.session.add(payment)
        db.session.flush()
        recompute_order_payment_status(order.id)
        return payment

    payment = run_in_transaction(_op)
    logger.info(
        "Payment %s recorded on order %s (%s cents, %s) by %s",
        payment.id, payment.order_id, payment.amount_cents, payment.status, actor,
    )
    return payment


def update_payment(actor: Actor, payment_id: int, data: PaymentInput) -> Payment:
    """Replace a payment's fields; the order it belongs to never changes."""
    _require_payment_writer(actor, "update payments")

    def _op():
        payment = _lock_payment(actor, payment_id)
        payment.amount_cents = data.amount_cents
        payment.method = data.method
        payment.status = data.status
        payment.transaction_id = data.transaction_id
        if data.payment_date is not None:
            payment.payment_date = data.payment_date
        payment.due_date = data.due_date
        payment.notes = data.notes
        db.session.flush()
        recompute_order_payment_status(payment.order_id)
        return payment

    payment = run_in_transaction(_op)
    logger.info("Payment %s updated by %s", payment.id, actor)
    return payment


def update_payment_record_status(actor: Actor, payment_id: int, status: str) -> Payment:
    require_choice(status, "status", PAYMENT_RECORD_STATUSES)
    _require_payment_writer(actor, "update payment status")

    def _op():
        payment = _lock_payment(actor, payment_id)
        payment.status = status
        db.session.flush()
        recompute_order_payment_status(payment.order_id)
        return payment

    payment = run_in_transaction(_op)
    logger.info("Payment %s status set to %s by %s", payment.id, status, actor)
    return payment


def delete_payment(actor: Actor, payment_id: int) -> None:
    _require_payment_writer(actor, "delete payments")

    def _op():
        payment = _lock_payment(actor, payment_id)
        order_id = payment.order_id
        db.session.delete(payment)
        db.session.flush()
        recompute_order_payment_status(order_id)
        return order_id

    order_id = run_in_transaction(_op)
    logger.info("Payment %s on order %s deleted by %s", payment_id, order_id, actor)


# =============================================================================
# READS
# =============================================================================

def get_payment(actor: Actor, payment_id: int) -> Payment:
    return get_scoped_or_404(actor, Payment, payment_id, label="Payment")


def list_payments(
    actor: Actor,
    order_id: int | None = None,
    status: str | None = None,
    method: str | None = None,
) -> list[Payment]:
    query = scoped_query(actor, Payment)
    order_id = coerce_int(order_id, "order_id", required=False)
    if order_id is not None:
        query = query.filter(Payment.order_id == order_id)
    if status:
        query = query.filter(Payment.status == require_choice(status, "status", PAYMENT_RECORD_STATUSES))
    if method:
        query = query.filter(Payment.method == require_choice(method, "method", PAYMENT_METHODS))
    return query.order_by(Payment.payment_date.desc(), Payment.id.desc()).all()


def list_overdue_payments(actor: Actor, today: date | None = None) -> list[Payment]:
    """Payments whose due date has passed and that are not yet paid, oldest due first."""
    today = today or date.today()
    return (
        scoped_query(actor, Payment)
        .filter(
            Payment.due_date.isnot(None),
            Payment.due_date < today,
            Payment.status != RECORD_PAID,
        )
        .order_by(Payment.due_date.asc(), Payment.id.asc())
        .all()
    )


def get_order_balance(actor: Actor, order_id: int) -> dict:
    order = get_scoped_or_404(actor, Order, order_id, label="Order")
    paid = paid_sum(order.id)
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "total_amount_cents": order.total_amount_cents,
        "paid_cents": paid,
        "outstanding_cents": max(order.total_amount_cents - paid, 0),
        "payment_status": order.payment_status,
    }
