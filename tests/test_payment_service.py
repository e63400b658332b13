# Overview: Pytest coverage for payment recording and status reconciliation.

"""
Payment Reconciliation Tests

The order's payment_status must always equal the status derived from its
current payment set, whatever sequence of mutations produced that set.
"""

from datetime import date

import pytest

from wareflow.errors import AccessDenied, NotFound, ValidationError
from wareflow.services import order_service, payment_service
from wareflow.services.payment_service import derive_payment_status
from wareflow.validation import OrderInput, OrderLineInput, PaymentInput


@pytest.fixture
def order(db_session, owner, warehouse_a, dealer, item):
    """Order totalling 30.00."""
    return order_service.create_order(owner, OrderInput(
        lines=[OrderLineInput(item_id=item.id, quantity=3)],
        warehouse_id=warehouse_a.id,
        dealer_id=dealer.id,
    ))


def _pay(actor, order, amount_cents, status="paid", **kwargs):
    return payment_service.record_payment(actor, PaymentInput(
        order_id=order.id, amount_cents=amount_cents, method="cash", status=status, **kwargs,
    ))


def _status(actor, order):
    return order_service.get_order(actor, order.id).payment_status


class TestDerivation:
    @pytest.mark.parametrize("paid, total, expected", [
        (0, 3000, "pending"),
        (1, 3000, "partial"),
        (2999, 3000, "partial"),
        (3000, 3000, "paid"),
        (4000, 3000, "paid"),
        (0, 0, "pending"),
    ])
    def test_derive_payment_status(self, paid, total, expected):
        assert derive_payment_status(paid, total) == expected


class TestReconciliation:
    """Recorded payments drive the order's payment status."""

    def test_full_payment_marks_paid(self, db_session, owner, order):
        _pay(owner, order, 3000)
        assert _status(owner, order) == "paid"

    def test_partial_then_paid(self, db_session, owner, order):
        _pay(owner, order, 1000)
        assert _status(owner, order) == "partial"

        _pay(owner, order, 2000)
        assert _status(owner, order) == "paid"

    def test_pending_and_failed_payments_do_not_count(self, db_session, owner, order):
        _pay(owner, order, 3000, status="pending")
        _pay(owner, order, 3000, status="failed")
        assert _status(owner, order) == "pending"

    def test_delete_reverts_to_pending(self, db_session, owner, order):
        payment = _pay(owner, order, 3000)
        payment_service.delete_payment(owner, payment.id)
        assert _status(owner, order) == "pending"

    def test_record_status_change_recomputes(self, db_session, owner, order):
        payment = _pay(owner, order, 3000, status="pending")
        payment_service.update_payment_record_status(owner, payment.id, "paid")
        assert _status(owner, order) == "paid"

        payment_service.update_payment_record_status(owner, payment.id, "failed")
        assert _status(owner, order) == "pending"

    def test_update_amount_recomputes(self, db_session, owner, order):
        payment = _pay(owner, order, 3000)
        payment_service.update_payment(owner, payment.id, PaymentInput(
            amount_cents=500, method="cheque", status="paid",
        ))
        assert _status(owner, order) == "partial"
        assert payment_service.get_payment(owner, payment.id).order_id == order.id

    def test_override_is_replaced_on_next_mutation(self, db_session, owner, order):
        order_service.set_payment_status(owner, order.id, "paid")
        assert _status(owner, order) == "paid"

        _pay(owner, order, 1000)
        assert _status(owner, order) == "partial"

    def test_balance(self, db_session, owner, order):
        _pay(owner, order, 1200)
        balance = payment_service.get_order_balance(owner, order.id)
        assert balance["total_amount_cents"] == 3000
        assert balance["paid_cents"] == 1200
        assert balance["outstanding_cents"] == 1800
        assert balance["payment_status"] == "partial"


class TestAccess:
    """Who may record and read payments."""

    def test_dealer_cannot_record(self, db_session, dealer_actor, order):
        with pytest.raises(AccessDenied):
            _pay(dealer_actor, order, 1000)

    def test_salesman_cannot_delete(self, db_session, owner, salesman_actor, order):
        payment = _pay(owner, order, 1000)
        with pytest.raises(AccessDenied):
            payment_service.delete_payment(salesman_actor, payment.id)

    def test_warehouse_records_on_own_orders_only(
        self, db_session, warehouse_actor, other_warehouse_actor, order
    ):
        _pay(warehouse_actor, order, 1000)
        with pytest.raises(NotFound):
            _pay(other_warehouse_actor, order, 1000)

    def test_dealer_reads_own_payments(self, db_session, owner, dealer_actor, order):
        payment = _pay(owner, order, 1000)
        assert [p.id for p in payment_service.list_payments(dealer_actor)] == [payment.id]

    def test_non_positive_amount_rejected(self):
        with pytest.raises(ValidationError):
            PaymentInput(order_id=1, amount_cents=0, method="cash")

    def test_unknown_method_rejected(self):
        with pytest.raises(ValidationError):
            PaymentInput(order_id=1, amount_cents=100, method="barter")


class TestOverdue:
    def test_lists_unpaid_past_due(self, db_session, owner, order):
        late = _pay(owner, order, 500, status="pending", due_date=date(2024, 1, 10))
        _pay(owner, order, 500, status="paid", due_date=date(2024, 1, 10))
        _pay(owner, order, 500, status="pending", due_date=date(2024, 3, 1))

        overdue = payment_service.list_overdue_payments(owner, today=date(2024, 2, 1))
        assert [p.id for p in overdue] == [late.id]
